"""APScheduler worker that keeps autopilot runs moving.

Every finished batch enqueues the next one as a one-shot job. A periodic
sweep re-enqueues running runs whose continuation was lost (worker restart,
crashed job) or that were started from another process.
"""

import logging
import signal
import sys
from datetime import datetime, timedelta

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.blocking import BlockingScheduler

from autopilot import AutopilotOrchestrator
from config import (
    AUTOPILOT_CONTINUE_DELAY_SECONDS,
    AUTOPILOT_STALE_MINUTES,
    AUTOPILOT_SWEEP_MINUTES,
    DB_PATH,
)
from db import get_connection, get_stale_runs, minutes_ago

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "autopilot_sweep"


def batch_job_id(run_id: int) -> str:
    return f"autopilot_run_{run_id}"


class BatchDispatcher:
    """Turns "process the next batch of run X" into scheduler jobs."""

    def __init__(self, scheduler, db_path: str = DB_PATH, orchestrator=None,
                 delay_seconds: float = AUTOPILOT_CONTINUE_DELAY_SECONDS):
        self.scheduler = scheduler
        self.db_path = db_path
        self.delay_seconds = delay_seconds
        self.orchestrator = orchestrator or AutopilotOrchestrator(db_path)
        self.orchestrator.dispatch = self.enqueue

    def enqueue(self, run_id: int):
        """Schedule the next batch. At most one pending job per run."""
        self.scheduler.add_job(
            self.orchestrator.run_batch,
            "date",
            run_date=datetime.now() + timedelta(seconds=self.delay_seconds),
            args=[run_id],
            id=batch_job_id(run_id),
            name=f"Autopilot run {run_id}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.debug(f"[Autopilot] Next batch for run {run_id} enqueued")

    def sweep(self) -> list[int]:
        """Re-enqueue running runs that have no pending batch job."""
        conn = get_connection(self.db_path)
        try:
            runs = get_stale_runs(conn, minutes_ago(AUTOPILOT_STALE_MINUTES))
        finally:
            conn.close()

        recovered = []
        for run in runs:
            if self.scheduler.get_job(batch_job_id(run.id)) is not None:
                continue
            logger.warning(
                f"[Autopilot] Run {run.id} has no pending batch "
                f"(batch {run.current_batch}, updated {run.updated_at}), re-enqueueing"
            )
            self.enqueue(run.id)
            recovered.append(run.id)
        return recovered


def _on_job_event(event):
    if event.code == EVENT_JOB_MISSED:
        logger.warning(f"Job {event.job_id} missed its run time")
    elif event.exception:
        logger.error(f"Job {event.job_id} failed: {event.exception}")


def build_scheduler(db_path: str = DB_PATH, scheduler=None) -> BatchDispatcher:
    """Wire the dispatcher, sweep job and error listener onto a scheduler."""
    scheduler = scheduler or BlockingScheduler()
    dispatcher = BatchDispatcher(scheduler, db_path)
    scheduler.add_listener(_on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
    scheduler.add_job(
        dispatcher.sweep,
        "interval",
        minutes=AUTOPILOT_SWEEP_MINUTES,
        id=SWEEP_JOB_ID,
        name="Autopilot sweep",
        next_run_time=datetime.now(),
    )
    return dispatcher


def run_scheduler(dispatcher: BatchDispatcher = None):
    """Start the blocking autopilot worker."""
    dispatcher = dispatcher or build_scheduler()
    scheduler = dispatcher.scheduler

    def shutdown(signum, frame):
        logger.info("Shutting down scheduler...")
        scheduler.shutdown(wait=False)
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    logger.info(
        f"Autopilot worker started. Sweeping every {AUTOPILOT_SWEEP_MINUTES} minutes. "
        "Press Ctrl+C to stop."
    )
    scheduler.start()
