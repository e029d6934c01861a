"""Analysis worker: claims queued analyses and runs one orchestration attempt per claim."""

import argparse
import logging
import os
import socket
import threading
import time
from typing import Callable

from sqlmodel import Session

from gitgrade.core.config import settings
from gitgrade.core.database import engine, init_db, utc_now
from gitgrade.core.errors import AnalysisNotFoundError, AttemptTimeoutError
from gitgrade.logging import setup_logging
from gitgrade.models import AnalysisJob, AnalysisRecord, AnalysisStatus
from gitgrade.services import queue, retention
from gitgrade.services.orchestrator import AnalysisOrchestrator, failure_message

logger = logging.getLogger(__name__)

OrchestratorFactory = Callable[[Session], AnalysisOrchestrator]


def _default_factory(db: Session) -> AnalysisOrchestrator:
    return AnalysisOrchestrator(db)


def _run_attempt(
    factory: OrchestratorFactory,
    analysis_uuid: str,
    attempt: int,
    max_attempts: int,
    deadline: float,
) -> tuple[AnalysisStatus, str | None]:
    # Attempt thread: gets its own session
    with Session(engine) as db:
        record: AnalysisRecord = factory(db).run(
            analysis_uuid, attempt=attempt, max_attempts=max_attempts, deadline=deadline
        )
        return AnalysisStatus(record.status), record.error_message


class AttemptThread(threading.Thread):
    """
    Runs one attempt off the worker's thread so it can be abandoned on timeout.
    Daemon: a hung attempt must not keep a --once worker alive at interpreter exit;
    its deadline already keeps it from persisting anything late.
    """

    def __init__(self, *args):
        super().__init__(name="analysis-attempt", daemon=True)
        self.attempt_args = args
        self.outcome: tuple[AnalysisStatus, str | None] | None = None
        self.error: Exception | None = None

    def run(self) -> None:
        try:
            self.outcome = _run_attempt(*self.attempt_args)
        except Exception as e:
            self.error = e


def process_job(
    db: Session,
    job: AnalysisJob,
    factory: OrchestratorFactory = _default_factory,
    policy: queue.RetryPolicy | None = None,
) -> None:
    """Run one claimed job and settle it: done, retry later, or failed for good."""
    policy = policy or queue.RetryPolicy.from_settings()
    analysis_uuid = job.analysis_uuid
    attempt = job.attempt_count
    # An attempt with no possible successor stores FAILED itself instead of re-raising
    final = policy.next_retry_at(job, utc_now()) is None
    max_attempts = attempt if final else job.max_attempts
    deadline = time.monotonic() + policy.attempt_timeout_seconds

    start = time.perf_counter()
    worker = AttemptThread(factory, analysis_uuid, attempt, max_attempts, deadline)
    worker.start()
    worker.join(policy.attempt_timeout_seconds)
    outcome = worker.outcome
    error = worker.error
    if worker.is_alive():
        outcome = None
        error = AttemptTimeoutError(f"Attempt {attempt} exceeded {policy.attempt_timeout_seconds}s")
    elif isinstance(error, AnalysisNotFoundError):
        queue.mark_failed(db, job, str(error), int((time.perf_counter() - start) * 1000))
        return
    duration_ms = int((time.perf_counter() - start) * 1000)

    if outcome is not None:
        status, error_message = outcome
        if status == AnalysisStatus.FAILED:
            queue.mark_failed(db, job, error_message or "Analysis failed", duration_ms)
        else:
            queue.mark_done(db, job, duration_ms)
            logger.info("Job %s done: analysis=%s status=%s duration_ms=%s", job.id, analysis_uuid, status.value, duration_ms)
        return

    message = failure_message(error)
    retry_at = None if final else policy.next_retry_at(job, utc_now())
    if retry_at is not None:
        queue.schedule_retry(db, job, retry_at, message, duration_ms)
        return

    with Session(engine) as orchestrator_db:
        factory(orchestrator_db).fail_permanently(analysis_uuid, message)
    queue.mark_failed(db, job, message, duration_ms)


def run_worker(loop: bool, sleep_seconds: int, factory: OrchestratorFactory = _default_factory) -> int:
    worker_id = f"{socket.gethostname()}:{os.getpid()}"
    policy = queue.RetryPolicy.from_settings()
    logger.info("Analysis worker started: worker_id=%s loop=%s", worker_id, loop)
    with Session(engine) as db:
        while True:
            job = queue.claim_next_job(db, worker_id, policy)
            if not job:
                if not loop:
                    return 0
                time.sleep(sleep_seconds)
                continue

            process_job(db, job, factory, policy)
            if not loop:
                return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="GitGrade analysis worker")
    parser.add_argument("--once", action="store_true", help="Process a single job and exit")
    parser.add_argument("--loop", action="store_true", help="Run continuously")
    parser.add_argument("--sleep", type=int, default=settings.worker_poll_seconds, help="Sleep seconds between polls when looping")
    parser.add_argument("--prune", action="store_true", help="Delete old unpaid analyses and stale throttle counters, then exit")
    args = parser.parse_args()

    setup_logging(level=settings.log_level)
    init_db()
    if args.prune:
        with Session(engine) as db:
            retention.run_retention(db)
        return 0

    loop_mode = args.loop and not args.once
    return run_worker(loop=loop_mode, sleep_seconds=args.sleep)


if __name__ == "__main__":
    raise SystemExit(main())
