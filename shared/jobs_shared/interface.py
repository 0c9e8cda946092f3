from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union

from sqlalchemy.engine import Connection

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

# Width of jobs.payload.
PAYLOAD_MAX_LENGTH = 100


@dataclass(frozen=True)
class Job:
    row_id: int
    payload: str


@dataclass(frozen=True)
class TransformSuccess:
    payload: str


@dataclass(frozen=True)
class TransformFailure:
    error: str


TransformOutcome = Union[TransformSuccess, TransformFailure]


@dataclass(frozen=True)
class ProcessOutcome:
    row_id: int
    status: str
    attempts: int
    payload: str


class Transform(Protocol):
    """External payload transform.

    ``connection`` belongs to this call alone. The transform may write through
    it, roll it back, or raise; none of that reaches the job bookkeeping.
    """

    def __call__(self, connection: Connection, payload: str) -> str: ...
