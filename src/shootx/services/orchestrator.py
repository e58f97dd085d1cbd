"""Try-on job orchestrator.

Bridges the synchronous submission path and the asynchronous generation
backend. For every job it performs at most one generation attempt and writes
exactly one terminal outcome:

- generation succeeded: processing -> completed (result image set)
- backend timed out: processing -> failed (reason "timeout")
- backend rejected/malformed: processing -> failed (reason "external_service")
- anything unexpected: processing -> failed (reason "internal")

Generation runs outside any database transaction; the job row is read in one
short unit of work and updated in another. Status readers therefore only ever
observe ``processing`` followed by the single terminal state.
"""

import time
from datetime import timedelta
from typing import Optional, Protocol
from uuid import UUID

import structlog

from shootx.core.timezone import utcnow
from shootx.models.tryon_job import FailureReason, TryOnStatus
from shootx.services.exceptions import GenerationError, GenerationTimeoutError
from shootx.services.generation.comfyui_client import GenerationResult
from shootx.uow import UoWFactory

logger = structlog.get_logger(__name__)


class TryOnGenerator(Protocol):
    """Anything able to turn a customer/garment pair into a result image."""

    async def generate(
        self, customer_image: str, garment_image: str, job_id: Optional[str] = None
    ) -> GenerationResult: ...


class TryOnOrchestrator:
    """Owns the try-on job state machine."""

    def __init__(self, uow_factory: UoWFactory, generator: TryOnGenerator):
        self.uow_factory = uow_factory
        self.generator = generator

    async def run(self, job_id: UUID) -> Optional[TryOnStatus]:
        """Generate the try-on image for a job and record the outcome.

        Generation failures never propagate; they are recorded on the job.
        Cancellation propagates and leaves the job processing for the stale
        reconciler.

        Args:
            job_id: Id of a job created by the submission endpoint

        Returns:
            Final job status, or None if the job was missing or already terminal
        """
        async with await self.uow_factory() as uow:
            job = await uow.tryon_jobs.get_by_id(job_id)
            if job is None:
                logger.warning("tryon.generation.job_missing", job_id=str(job_id))
                return None
            if job.is_terminal:
                logger.info(
                    "tryon.generation.skipped", job_id=str(job_id), status=job.status.value
                )
                return None
            customer_image = job.customer_image
            garment_image = job.product_image
            shop_domain = job.shop_domain

        log = logger.bind(job_id=str(job_id), shop=shop_domain)
        log.info("tryon.generation.started")
        start_time = time.monotonic()

        result: Optional[GenerationResult] = None
        reason: Optional[FailureReason] = None
        prompt_id: Optional[str] = None

        try:
            result = await self.generator.generate(
                customer_image, garment_image, job_id=str(job_id)
            )
            prompt_id = result.prompt_id
        except GenerationTimeoutError as e:
            reason = FailureReason.TIMEOUT
            prompt_id = e.prompt_id
            log.error(
                "tryon.generation.timeout",
                prompt_id=e.prompt_id,
                attempts=e.attempts,
                error_message=str(e),
            )
        except GenerationError as e:
            reason = FailureReason.EXTERNAL_SERVICE
            prompt_id = e.prompt_id
            log.error(
                "tryon.generation.external_failure",
                prompt_id=e.prompt_id,
                error_type=type(e).__name__,
                error_message=str(e),
            )
        except Exception as e:
            reason = FailureReason.INTERNAL
            log.error(
                "tryon.generation.internal_failure",
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )

        status = await self._record_outcome(job_id, result, reason, prompt_id)
        log.info(
            "tryon.generation.finished",
            status=status.value if status else None,
            prompt_id=prompt_id,
            duration_seconds=time.monotonic() - start_time,
        )
        return status

    async def _record_outcome(
        self,
        job_id: UUID,
        result: Optional[GenerationResult],
        reason: Optional[FailureReason],
        prompt_id: Optional[str],
    ) -> Optional[TryOnStatus]:
        async with await self.uow_factory() as uow:
            job = await uow.tryon_jobs.get_by_id(job_id, for_update=True)
            if job is None or job.is_terminal:
                # Reconciled as stale while generation was still running. The row
                # lock orders this read after any concurrent reconcile commit.
                logger.warning(
                    "tryon.generation.outcome_discarded",
                    job_id=str(job_id),
                    status=job.status.value if job else None,
                )
                return None

            if prompt_id:
                job.record_prompt_id(prompt_id)

            if result is not None:
                job.mark_completed(result.image_url)
            else:
                job.mark_failed(reason or FailureReason.INTERNAL)

            uow.session.add(job)
            return job.status

    async def reconcile_stale(self, older_than_minutes: int) -> int:
        return await fail_stale_jobs(self.uow_factory, older_than_minutes)


async def fail_stale_jobs(uow_factory: UoWFactory, older_than_minutes: int) -> int:
    """Fail jobs stuck in processing longer than the cutoff.

    Covers jobs whose background task was lost (process restart, crash).

    Args:
        uow_factory: Unit of Work factory
        older_than_minutes: Age after which a processing job is considered orphaned

    Returns:
        Number of jobs marked failed
    """
    cutoff = utcnow() - timedelta(minutes=older_than_minutes)

    async with await uow_factory() as uow:
        stale_jobs = await uow.tryon_jobs.get_stale_processing(cutoff)
        for job in stale_jobs:
            job.mark_failed(FailureReason.STALE)
            uow.session.add(job)

    if stale_jobs:
        logger.warning(
            "tryon.stale_jobs_failed",
            count=len(stale_jobs),
            older_than_minutes=older_than_minutes,
            job_ids=[str(job.id) for job in stale_jobs],
        )
    return len(stale_jobs)
