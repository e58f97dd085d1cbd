"""Background workers for async processing tasks."""

from shootx.workers.generation_dispatcher import GenerationDispatcher
from shootx.workers.stale_job_reconciler import run_stale_job_reconciler

__all__ = [
    "GenerationDispatcher",
    "run_stale_job_reconciler",
]
