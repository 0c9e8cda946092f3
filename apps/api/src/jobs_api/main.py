from datetime import datetime
import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from jobs_api.config import get_settings
from jobs_api.db import get_engine, open_session
from jobs_api.models import JobProcessingLogRecord, JobRecord
from jobs_shared.interface import PAYLOAD_MAX_LENGTH, PENDING
from jobs_shared.logger import setup_logger

logger = logging.getLogger(__name__)

app = FastAPI(title="Jobs API", version="0.1.0")

# Times an auto-assigned row_id is re-read after a concurrent enqueue took it.
AUTO_ID_ATTEMPTS = 5


class EnqueueJobRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    payload: str = Field(max_length=PAYLOAD_MAX_LENGTH)
    row_id: int | None = Field(default=None, ge=1)


@app.on_event("startup")
def startup() -> None:
    get_engine()


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _job_summary(job: JobRecord) -> dict[str, Any]:
    return {
        "row_id": job.row_id,
        "status": job.status,
    }


def _job_detail(job: JobRecord) -> dict[str, Any]:
    return {
        "row_id": job.row_id,
        "processed": bool(job.processed),
        "payload": job.payload,
        "status": job.status,
        "processed_at": _to_iso(job.processed_at),
    }


def _failure_entry(record: JobProcessingLogRecord) -> dict[str, Any]:
    return {
        "log_id": record.log_id,
        "row_id": record.row_id,
        "error_message": record.error_message,
        "error_time": _to_iso(record.error_time),
    }


def _next_row_id(session: Session) -> int:
    current = session.scalar(select(func.max(JobRecord.row_id)))
    return int(current or 0) + 1


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def _conflict(row_id: int) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": "job already exists", "existing_row_id": row_id},
    )


def _insert_job(session: Session, row_id: int, payload: str) -> bool:
    session.add(
        JobRecord(
            row_id=row_id,
            processed=False,
            payload=payload,
            status=PENDING,
        )
    )
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        return False
    return True


@app.post("/jobs")
def enqueue_job(request: EnqueueJobRequest) -> JSONResponse:
    with open_session() as session:
        if request.row_id is not None:
            row_id = request.row_id
            if session.get(JobRecord, row_id) is not None:
                return _conflict(row_id)
            if not _insert_job(session, row_id, request.payload):
                return _conflict(row_id)
        else:
            for _ in range(AUTO_ID_ATTEMPTS):
                row_id = _next_row_id(session)
                if _insert_job(session, row_id, request.payload):
                    break
                logger.info("auto row_id=%s taken by a concurrent enqueue; retrying", row_id)
            else:
                return JSONResponse(
                    status_code=503,
                    content={"detail": "could not allocate a row_id; retry the request"},
                )

    logger.info("enqueued job row_id=%s", row_id)
    return JSONResponse(status_code=201, content={"row_id": row_id, "status": PENDING})


@app.get("/jobs")
def list_jobs(status: str | None = Query(default=None)) -> list[dict[str, Any]]:
    with open_session() as session:
        stmt = select(JobRecord)
        if status is not None:
            stmt = stmt.where(JobRecord.status == status)

        jobs = session.scalars(stmt.order_by(JobRecord.row_id.asc())).all()

    return [_job_summary(job) for job in jobs]


@app.get("/jobs/{row_id}")
def get_job(row_id: int) -> dict[str, Any]:
    with open_session() as session:
        job = session.get(JobRecord, row_id)

    if job is None:
        raise HTTPException(status_code=404, detail="job not found")
    return _job_detail(job)


@app.get("/jobs/{row_id}/failures")
def list_job_failures(row_id: int) -> list[dict[str, Any]]:
    with open_session() as session:
        if session.get(JobRecord, row_id) is None:
            raise HTTPException(status_code=404, detail="job not found")

        records = session.scalars(
            select(JobProcessingLogRecord)
            .where(JobProcessingLogRecord.row_id == row_id)
            .order_by(JobProcessingLogRecord.log_id.asc())
        ).all()

    return [_failure_entry(record) for record in records]


def run() -> None:
    import uvicorn

    settings = get_settings()
    setup_logger(settings.log_format, settings.log_level)
    uvicorn.run("jobs_api.main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    run()
