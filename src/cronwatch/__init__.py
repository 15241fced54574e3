"""cronwatch — cron-scheduled health checks and commands with live config reload."""

__version__ = "1.1.0"
