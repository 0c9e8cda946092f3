from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from jobs_worker.config import Settings


def create_worker_engine(settings: Settings) -> Engine:
    return create_engine(
        settings.database_url,
        echo=settings.db_echo,
        pool_pre_ping=True,
    )
