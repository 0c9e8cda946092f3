from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from jobs_worker.config import get_settings


def create_schema(engine: Engine) -> None:
    with engine.begin() as connection:
        connection.execute(
            text(
                """
                CREATE TABLE jobs (
                    row_id INTEGER NOT NULL PRIMARY KEY,
                    processed BOOLEAN NOT NULL DEFAULT 0,
                    payload VARCHAR(100) NOT NULL,
                    status VARCHAR(20) NOT NULL DEFAULT 'pending',
                    processed_at TIMESTAMP NULL
                )
                """
            )
        )
        connection.execute(
            text(
                """
                CREATE TABLE job_processing_log (
                    log_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    row_id INTEGER,
                    error_message TEXT,
                    error_time TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
        )


@pytest.fixture(autouse=True)
def reset_worker_settings() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def engine(tmp_path: Path) -> Iterator[Engine]:
    sqlite_engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'worker-tests.db'}",
        connect_args={"timeout": 30},
    )
    create_schema(sqlite_engine)
    yield sqlite_engine
    sqlite_engine.dispose()


@pytest.fixture
def seed_jobs(engine: Engine):
    def _seed(*payloads: str, status: str = "pending") -> list[int]:
        row_ids = list(range(1, len(payloads) + 1))
        with engine.begin() as connection:
            for row_id, payload in zip(row_ids, payloads):
                connection.execute(
                    text(
                        """
                        INSERT INTO jobs (row_id, processed, payload, status)
                        VALUES (:row_id, 0, :payload, :status)
                        """
                    ),
                    {"row_id": row_id, "payload": payload, "status": status},
                )
        return row_ids

    return _seed


@pytest.fixture
def read_job(engine: Engine):
    def _read(row_id: int) -> dict:
        with engine.connect() as connection:
            row = connection.execute(
                text(
                    "SELECT row_id, processed, payload, status, processed_at FROM jobs WHERE row_id = :row_id"
                ),
                {"row_id": row_id},
            ).mappings().one()
        return dict(row)

    return _read


@pytest.fixture
def read_failures(engine: Engine):
    def _read(row_id: int) -> list[str]:
        with engine.connect() as connection:
            return list(
                connection.execute(
                    text(
                        "SELECT error_message FROM job_processing_log WHERE row_id = :row_id ORDER BY log_id"
                    ),
                    {"row_id": row_id},
                ).scalars()
            )

    return _read
