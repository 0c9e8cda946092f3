from __future__ import annotations

import argparse
from dataclasses import replace
import logging
import signal
from threading import Event
import time
from typing import Callable

from sqlalchemy.engine import Engine

from jobs_shared.interface import ProcessOutcome, Transform
from jobs_shared.logger import setup_logger
from jobs_worker.claimer import claim_next_job
from jobs_worker.config import Settings, get_settings
from jobs_worker.db import create_worker_engine
from jobs_worker.processor import process_claimed_job
from jobs_worker.sweep import fail_stalled_jobs
from jobs_worker.transforms import transform_from_settings

logger = logging.getLogger(__name__)


def process_next_job(
    engine: Engine,
    *,
    transform: Transform,
    settings: Settings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProcessOutcome | None:
    """Claim the next pending job and run it to a terminal status.

    Returns ``None`` without touching the table when nothing is pending.
    Transform failures and exhausted retries are recorded in the table, not
    raised; only database errors escape.
    """
    settings = settings or get_settings()

    job = claim_next_job(engine)
    if job is None:
        return None

    return process_claimed_job(
        engine,
        job,
        transform=transform,
        max_attempts=settings.max_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
        sleep=sleep,
    )


def _install_signal_handlers(stop_event: Event) -> None:
    def _handler(signum, frame) -> None:
        logger.info("received signal %s; stopping after the current job", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handler)


def warn_if_lease_too_short(settings: Settings) -> bool:
    if not settings.lease_sweep_enabled:
        return False
    window = settings.processing_window_seconds
    if settings.lease_seconds >= window:
        return False
    logger.warning(
        "WORKER_LEASE_SECONDS=%d is shorter than the processing window of %.0fs "
        "(%d attempts x %.0fs timeout + backoff); live jobs may be swept as failed",
        settings.lease_seconds,
        window,
        settings.max_attempts,
        settings.transform_timeout_seconds,
    )
    return True


def run_worker(
    engine: Engine,
    *,
    transform: Transform,
    settings: Settings,
    stop_event: Event,
) -> None:
    warn_if_lease_too_short(settings)
    while not stop_event.is_set():
        if settings.lease_sweep_enabled:
            swept = fail_stalled_jobs(engine, lease_seconds=settings.lease_seconds)
            if swept:
                logger.info("lease sweep failed %d stalled job(s)", swept)

        outcome = process_next_job(engine, transform=transform, settings=settings)
        if outcome is None:
            stop_event.wait(settings.poll_seconds)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobs-worker",
        description="Claim pending jobs and run them through the configured transform",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process at most one job and exit",
    )
    parser.add_argument(
        "--transform",
        default=None,
        help=(
            "Transform callable as 'module:attribute' (overrides WORKER_TRANSFORM); "
            "it is called as fn(connection, payload) and must return the new payload"
        ),
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    setup_logger(settings.log_format, settings.log_level)

    if args.transform is not None:
        settings = replace(settings, transform=args.transform, transform_command=None)
    transform = transform_from_settings(settings)
    engine = create_worker_engine(settings)

    try:
        if args.once:
            outcome = process_next_job(engine, transform=transform, settings=settings)
            if outcome is None:
                logger.info("no pending job")
            return

        stop_event = Event()
        _install_signal_handlers(stop_event)
        logger.info(
            "worker started max_attempts=%d backoff=%.1fs poll=%ds lease=%ds",
            settings.max_attempts,
            settings.retry_backoff_seconds,
            settings.poll_seconds,
            settings.lease_seconds,
        )
        run_worker(engine, transform=transform, settings=settings, stop_event=stop_event)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
