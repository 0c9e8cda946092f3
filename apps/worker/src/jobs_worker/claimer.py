"""Claim exactly one pending job.

Selection and the ``processing`` mark share one short transaction, so no other
claimer can see the row as ``pending`` in between. The transaction commits
before anything else happens to the job.

Dialects with a row-lock primitive read through it:
  PostgreSQL / MySQL  ``FOR UPDATE SKIP LOCKED``
  SQL Server          ``WITH (ROWLOCK, READPAST, UPDLOCK)``
Anything else (SQLite) falls back to an optimistic ``UPDATE`` guarded on
``status = 'pending'``; losing the race moves on to the next candidate.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql.elements import TextClause

from jobs_shared.interface import PENDING, PROCESSING, Job
from jobs_worker.clock import db_timestamp

logger = logging.getLogger(__name__)

_SKIP_LOCKED_DIALECTS = {"postgresql", "mysql", "mariadb"}

_SELECT_SKIP_LOCKED = text(
    """
    SELECT row_id, payload
    FROM jobs
    WHERE processed = :processed AND status = :pending
    ORDER BY row_id ASC
    LIMIT 1
    FOR UPDATE SKIP LOCKED
    """
)

_SELECT_READPAST = text(
    """
    SELECT TOP 1 row_id, payload
    FROM jobs WITH (ROWLOCK, READPAST, UPDLOCK)
    WHERE processed = :processed AND status = :pending
    ORDER BY row_id ASC
    """
)

_SELECT_CANDIDATE = text(
    """
    SELECT row_id, payload
    FROM jobs
    WHERE processed = :processed AND status = :pending
    ORDER BY row_id ASC
    LIMIT 1
    """
)

_MARK_PROCESSING = text(
    """
    UPDATE jobs
    SET processed = :claimed,
        status = :processing,
        processed_at = :claimed_at
    WHERE row_id = :row_id AND status = :pending
    """
).bindparams(bindparam("claimed_at", type_=DateTime(timezone=True)))


def _to_job(row: Any) -> Job:
    return Job(row_id=int(row["row_id"]), payload=str(row["payload"]))


def _mark_processing(connection: Connection, row_id: int, claimed_at: datetime) -> int:
    result = connection.execute(
        _MARK_PROCESSING,
        {
            "claimed": True,
            "processing": PROCESSING,
            "row_id": row_id,
            "pending": PENDING,
            "claimed_at": claimed_at,
        },
    )
    return result.rowcount


def _claim_with_row_lock(
    engine: Engine, select_stmt: TextClause, claimed_at: datetime
) -> Job | None:
    with engine.begin() as connection:
        row = connection.execute(
            select_stmt,
            {"processed": False, "pending": PENDING},
        ).mappings().first()
        if row is None:
            return None

        job = _to_job(row)
        _mark_processing(connection, job.row_id, claimed_at)
        return job


def _claim_optimistic(engine: Engine, claimed_at: datetime) -> Job | None:
    while True:
        with engine.begin() as connection:
            row = connection.execute(
                _SELECT_CANDIDATE,
                {"processed": False, "pending": PENDING},
            ).mappings().first()
            if row is None:
                return None

            job = _to_job(row)
            if _mark_processing(connection, job.row_id, claimed_at) == 1:
                return job

        logger.debug("lost claim race for row_id=%s; trying next candidate", job.row_id)


def claim_next_job(engine: Engine, *, now: datetime | None = None) -> Job | None:
    claimed_at = db_timestamp(engine, now)
    dialect = engine.dialect.name
    if dialect in _SKIP_LOCKED_DIALECTS:
        job = _claim_with_row_lock(engine, _SELECT_SKIP_LOCKED, claimed_at)
    elif dialect == "mssql":
        job = _claim_with_row_lock(engine, _SELECT_READPAST, claimed_at)
    else:
        job = _claim_optimistic(engine, claimed_at)

    if job is not None:
        logger.info("claimed job row_id=%s", job.row_id)
    return job
