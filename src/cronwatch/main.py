"""
main.py — cronwatch Entry Point

Usage:
    cronwatch                                   # run the daemon with default settings
    cronwatch --config config/cronwatch.yaml    # daemon settings file
    cronwatch --tasks /etc/cronwatch/tasks.json # override the task file
    cronwatch --log-level DEBUG                 # verbose logging
    cronwatch --check                           # validate the task file and show next fires
    cronwatch --write-sample                    # write the sample task file and exit
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from datetime import timezone
from pathlib import Path

from dotenv import load_dotenv

from cronwatch import __version__


def _find_env_file() -> Path | None:
    """Walk up from CWD looking for .env file."""
    cwd = Path.cwd()
    for d in [cwd, *cwd.parents]:
        candidate = d / ".env"
        if candidate.is_file():
            return candidate
    return None


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cronwatch",
        description="cronwatch — cron-scheduled health checks and commands with live config reload",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to cronwatch.yaml (default: $CRONWATCH_CONFIG or config/cronwatch.yaml)",
    )
    parser.add_argument(
        "--tasks",
        default=None,
        help="Path to the JSON task file (overrides scheduler.tasks_file)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--check",
        action="store_true",
        default=False,
        help="Validate the task file, print the schedule and exit (status 1 if invalid)",
    )
    mode.add_argument(
        "--write-sample",
        action="store_true",
        default=False,
        help="Write the sample task file (if it does not exist) and exit",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load settings, validate them fully, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if:
      - cronwatch.yaml has invalid values (Pydantic ValidationError)
      - cross-field problems are found (ConfigError from validate_all())
    """
    from cronwatch.config.settings import load_settings
    from cronwatch.exceptions import ConfigError
    from cronwatch.observability.logger import setup_logging, get_logger
    from pydantic import ValidationError

    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {'.'.join(str(p) for p in e['loc']) or '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix cronwatch.yaml or your CRONWATCH_* environment and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except (ConfigError, OSError, ValueError) as exc:
        print(
            f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n",
            file=sys.stderr,
        )
        sys.exit(1)

    if args.tasks:
        settings.scheduler.tasks_file = args.tasks

    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    setup_logging(
        level=args.log_level or settings.log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("cronwatch.main")
    return settings, log


# ─────────────────────────────────────────────────────────────────────────────
# Modes
# ─────────────────────────────────────────────────────────────────────────────

def _check(settings) -> int:
    """Validate the task file and print a table of tasks with their next fire."""
    from rich.console import Console
    from rich.table import Table

    from cronwatch.config.watch import WatchConfig
    from cronwatch.exceptions import CronwatchError
    from cronwatch.scheduler.triggers import Schedule, parse_trigger
    from cronwatch.tasks.task_set import TaskSet

    console = Console()
    watch = WatchConfig(settings.tasks_path)
    try:
        task_set = TaskSet.from_config(watch.load())
    except CronwatchError as e:
        console.print(f"[red]❌ {settings.tasks_path}: {type(e).__name__}: {e}[/]")
        return 1

    schedule = Schedule(tz=timezone.utc if task_set.use_utc else None)
    now = schedule.now()
    table = Table(title=f"{settings.tasks_path} (UTC={task_set.use_utc})")
    table.add_column("#", justify="right")
    table.add_column("At")
    table.add_column("Do")
    table.add_column("Args")
    table.add_column("Next fire")
    for i, task in enumerate(task_set.tasks, start=1):
        if task.is_error_task:
            nxt = "[yellow]on failure[/]"
        else:
            nxt = parse_trigger(task.trigger).next_after(now).isoformat()
        table.add_row(str(i), task.trigger, task.kind, " ".join(task.args), nxt)
    console.print(table)
    console.print(
        f"[green]✓[/] {len(task_set.ordinary_tasks)} scheduled task(s), "
        f"{len(task_set.error_tasks)} error task(s)"
    )
    return 0


def _write_sample(settings) -> int:
    from cronwatch.config.watch import WatchConfig
    from cronwatch.tasks.schema import SAMPLE_CONFIG

    path = settings.tasks_path
    if path.exists():
        print(f"{path} already exists; not overwriting.", file=sys.stderr)
        return 1
    WatchConfig(path).write(SAMPLE_CONFIG)
    print(f"Sample task file written to {path}")
    return 0


async def _run_service(settings, log) -> int:
    from cronwatch.exceptions import TriggerRegistrationError
    from cronwatch.service import Service

    service = Service.from_settings(settings)
    try:
        service.init()
    except OSError as e:
        print(f"\n❌  Could not open task file: {e}\n", file=sys.stderr)
        return 1

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_requested.set)

    runner = asyncio.create_task(service.start(), name="cronwatch:reload-loop")
    stopper = asyncio.create_task(stop_requested.wait(), name="cronwatch:stop-signal")
    await asyncio.wait({runner, stopper}, return_when=asyncio.FIRST_COMPLETED)
    stopper.cancel()

    exit_code = 0
    if runner.done() and not runner.cancelled():
        exc = runner.exception()
        if isinstance(exc, TriggerRegistrationError):
            log.critical("cronwatch.fatal", error=str(exc))
            exit_code = 1
        elif exc is not None:
            log.error("cronwatch.reload_loop_crashed", error=str(exc), error_type=type(exc).__name__)
            exit_code = 1

    log.info("cronwatch.stopping")
    await service.stop()
    await service.wait()
    log.info("cronwatch.stopped", exit_code=exit_code)
    return exit_code


async def main(argv: list[str] | None = None) -> int:
    env_path = _find_env_file()
    if env_path:
        load_dotenv(dotenv_path=env_path)

    args = parse_args(argv)
    settings, log = bootstrap(args)

    if args.check:
        return _check(settings)
    if args.write_sample:
        return _write_sample(settings)

    log.info("cronwatch.starting", version=__version__, tasks_file=str(settings.tasks_path))
    return await _run_service(settings, log)


def run() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))
