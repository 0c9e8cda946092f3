from jobs_shared.interface import (
    COMPLETED,
    FAILED,
    PAYLOAD_MAX_LENGTH,
    PENDING,
    PROCESSING,
    Job,
    ProcessOutcome,
    Transform,
    TransformFailure,
    TransformOutcome,
    TransformSuccess,
)

__all__ = [
    "COMPLETED",
    "FAILED",
    "PAYLOAD_MAX_LENGTH",
    "PENDING",
    "PROCESSING",
    "Job",
    "ProcessOutcome",
    "Transform",
    "TransformFailure",
    "TransformOutcome",
    "TransformSuccess",
]
