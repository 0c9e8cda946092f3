from datetime import datetime, timezone

from sqlalchemy.engine import Engine

# Dialects whose timestamp columns keep the UTC offset.
_OFFSET_AWARE_DIALECTS = {"postgresql"}


def db_timestamp(engine: Engine, value: datetime | None = None) -> datetime:
    """Return ``value`` (default: now) as UTC in the form ``jobs`` stores it.

    ``processed_at`` is always written and compared with worker-side UTC, so
    the database server's own time zone never enters the lease arithmetic.
    Columns without an offset get naive UTC.
    """
    stamp = (value or datetime.now(timezone.utc)).astimezone(timezone.utc)
    if engine.dialect.name in _OFFSET_AWARE_DIALECTS:
        return stamp
    return stamp.replace(tzinfo=None)
