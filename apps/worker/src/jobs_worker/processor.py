from __future__ import annotations

import logging
import time
from typing import Callable

from sqlalchemy import text
from sqlalchemy.engine import Engine

from jobs_shared.interface import (
    COMPLETED,
    FAILED,
    PAYLOAD_MAX_LENGTH,
    PROCESSING,
    Job,
    ProcessOutcome,
    Transform,
    TransformFailure,
    TransformOutcome,
    TransformSuccess,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_SECONDS = 1.0


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or type(exc).__name__


def _check_payload(value: object) -> str:
    if not isinstance(value, str):
        raise TypeError(f"transform must return a string payload, got {type(value).__name__}")
    if len(value) > PAYLOAD_MAX_LENGTH:
        raise ValueError(
            f"transformed payload is {len(value)} characters; limit is {PAYLOAD_MAX_LENGTH}"
        )
    return value


def invoke_transform(engine: Engine, transform: Transform, payload: str) -> TransformOutcome:
    """Run ``transform`` on a connection of its own.

    The connection is committed when the transform returns a storable payload
    and rolled back otherwise. Job bookkeeping never shares this connection, so
    whatever the transform does to it (including rolling it back itself) only
    affects the transform's own writes.
    """
    with engine.connect() as connection:
        try:
            new_payload = _check_payload(transform(connection, payload))
            connection.commit()
        except Exception as exc:
            connection.rollback()
            return TransformFailure(error=describe_error(exc))

    return TransformSuccess(payload=new_payload)


def _mark_job_completed(engine: Engine, row_id: int, payload: str) -> bool:
    with engine.begin() as connection:
        result = connection.execute(
            text(
                """
                UPDATE jobs
                SET payload = :payload,
                    status = :completed
                WHERE row_id = :row_id AND status = :processing
                """
            ),
            {
                "row_id": row_id,
                "payload": payload,
                "completed": COMPLETED,
                "processing": PROCESSING,
            },
        )
    return result.rowcount == 1


def _record_failure(engine: Engine, row_id: int, error_message: str) -> None:
    with engine.begin() as connection:
        connection.execute(
            text(
                """
                INSERT INTO job_processing_log (row_id, error_message)
                VALUES (:row_id, :error_message)
                """
            ),
            {"row_id": row_id, "error_message": error_message},
        )


def _mark_job_failed(engine: Engine, row_id: int) -> bool:
    with engine.begin() as connection:
        result = connection.execute(
            text(
                """
                UPDATE jobs
                SET status = :failed
                WHERE row_id = :row_id AND status = :processing
                """
            ),
            {"row_id": row_id, "failed": FAILED, "processing": PROCESSING},
        )
    return result.rowcount == 1


def process_claimed_job(
    engine: Engine,
    job: Job,
    *,
    transform: Transform,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> ProcessOutcome:
    """Drive a claimed job to ``completed`` or ``failed``.

    Every attempt that fails appends one row to ``job_processing_log``. The
    backoff sleep runs between attempts only, never after the last one.
    Database errors while persisting an outcome propagate to the caller.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempts = 0
    while attempts < max_attempts:
        outcome = invoke_transform(engine, transform, job.payload)
        attempts += 1

        if isinstance(outcome, TransformSuccess):
            if not _mark_job_completed(engine, job.row_id, outcome.payload):
                logger.warning(
                    "job row_id=%s left processing before completion was stored",
                    job.row_id,
                )
            logger.info("job completed row_id=%s attempts=%d", job.row_id, attempts)
            return ProcessOutcome(
                row_id=job.row_id,
                status=COMPLETED,
                attempts=attempts,
                payload=outcome.payload,
            )

        _record_failure(engine, job.row_id, outcome.error)
        logger.warning(
            "job attempt failed row_id=%s attempt=%d/%d error=%s",
            job.row_id,
            attempts,
            max_attempts,
            outcome.error,
        )
        if attempts < max_attempts:
            sleep(backoff_seconds)

    if not _mark_job_failed(engine, job.row_id):
        logger.warning("job row_id=%s left processing before failure was stored", job.row_id)
    logger.error("job failed row_id=%s attempts=%d", job.row_id, attempts)
    return ProcessOutcome(
        row_id=job.row_id,
        status=FAILED,
        attempts=attempts,
        payload=job.payload,
    )
