"""Periodic scratch-space sweeping for the trail timelapse service."""

from __future__ import annotations

from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

SWEEP_JOB_ID = "sweep_scratch"


def _add_sweep_job(scheduler: Any, service: Any) -> None:
    scheduler.add_job(
        service.sweep_scratch,
        trigger=IntervalTrigger(minutes=service.settings.sweep_interval_minutes),
        id=SWEEP_JOB_ID,
        name="Sweep Scratch Space",
        max_instances=1,
        coalesce=True,
    )


def start_background(service: Any) -> BackgroundScheduler:
    """Start a daemon scheduler that sweeps orphaned scratch files."""
    scheduler = BackgroundScheduler(daemon=True)
    _add_sweep_job(scheduler, service)
    scheduler.start()
    service.logger.info(
        "Scratch janitor started for %s (every %s minutes, max age %s minutes)",
        service.scratch_dir,
        service.settings.sweep_interval_minutes,
        service.settings.scratch_max_age_minutes,
    )
    return scheduler


def run(service: Any) -> None:
    """Sweep scratch space now and then on a fixed interval until interrupted."""
    scheduler = BlockingScheduler()
    _add_sweep_job(scheduler, service)

    service.logger.info(
        "Scratch janitor running for %s (every %s minutes)",
        service.scratch_dir,
        service.settings.sweep_interval_minutes,
    )

    try:
        service.sweep_scratch()
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        service.logger.info("Scratch janitor stopped")
        scheduler.shutdown()


__all__ = ["SWEEP_JOB_ID", "run", "start_background"]
