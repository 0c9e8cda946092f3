"""Fail jobs whose claim outlived the lease.

A worker that dies between claiming a job and storing its outcome leaves the
row in ``processing`` forever. When a lease is configured, such rows are
closed out as ``failed`` with a log entry. They are never requeued.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.engine import Engine

from jobs_shared.interface import FAILED, PROCESSING
from jobs_worker.clock import db_timestamp

logger = logging.getLogger(__name__)


def _lease_message(lease_seconds: int) -> str:
    return f"lease expired: job still processing after {lease_seconds}s"


def fail_stalled_jobs(
    engine: Engine,
    *,
    lease_seconds: int,
    now: datetime | None = None,
) -> int:
    """Mark expired ``processing`` jobs as ``failed``; returns how many."""
    if lease_seconds <= 0:
        return 0

    cutoff = db_timestamp(engine, now) - timedelta(seconds=lease_seconds)
    message = _lease_message(lease_seconds)
    swept = 0

    with engine.begin() as connection:
        rows = connection.execute(
            text(
                """
                SELECT row_id
                FROM jobs
                WHERE status = :processing
                  AND processed_at IS NOT NULL
                  AND processed_at < :cutoff
                ORDER BY row_id ASC
                """
            ).bindparams(bindparam("cutoff", type_=DateTime(timezone=True))),
            {"processing": PROCESSING, "cutoff": cutoff},
        ).scalars().all()

        for row_id in rows:
            updated = connection.execute(
                text(
                    """
                    UPDATE jobs
                    SET status = :failed
                    WHERE row_id = :row_id AND status = :processing
                    """
                ),
                {"row_id": row_id, "failed": FAILED, "processing": PROCESSING},
            )
            if updated.rowcount != 1:
                continue

            connection.execute(
                text(
                    """
                    INSERT INTO job_processing_log (row_id, error_message)
                    VALUES (:row_id, :error_message)
                    """
                ),
                {"row_id": row_id, "error_message": message},
            )
            logger.warning("failed stalled job row_id=%s (%s)", row_id, message)
            swept += 1

    return swept
