from jobs_worker.claimer import claim_next_job
from jobs_worker.main import process_next_job
from jobs_worker.processor import invoke_transform, process_claimed_job
from jobs_worker.sweep import fail_stalled_jobs

__all__ = [
    "claim_next_job",
    "fail_stalled_jobs",
    "invoke_transform",
    "process_claimed_job",
    "process_next_job",
]
