"""
scheduler/ — trigger engine, single-flight executor, reload state machine.

    from cronwatch.scheduler.scheduler import Scheduler
"""
