"""Submission and status lookups for storefront try-on requests."""

from dataclasses import dataclass
from typing import Optional, Protocol
from uuid import UUID

import structlog

from shootx.models.tryon_job import TryOnJob
from shootx.services.exceptions import NotEnabledError, NotFoundError, ValidationError
from shootx.uow import UoWFactory

logger = structlog.get_logger(__name__)


class JobDispatcher(Protocol):
    """Hands created jobs to background generation."""

    def reserve(self) -> None: ...

    def release(self) -> None: ...

    def enqueue(self, job_id: UUID) -> None: ...


@dataclass
class TryOnSubmission:
    """Fields posted by the storefront widget."""

    shop: Optional[str]
    product_id: Optional[str]
    product_title: Optional[str]
    product_image: Optional[str]
    customer_image: Optional[str]

    def missing_fields(self) -> list[str]:
        return [
            name
            for name, value in (
                ("shop", self.shop),
                ("productId", self.product_id),
                ("productTitle", self.product_title),
                ("productImage", self.product_image),
                ("customerImage", self.customer_image),
            )
            if value is None or not value.strip()
        ]


async def submit_tryon(
    submission: TryOnSubmission,
    uow_factory: UoWFactory,
    dispatcher: JobDispatcher,
) -> UUID:
    """Validate a submission, create its job and queue generation.

    Returns as soon as the job is committed and queued; generation happens in
    the dispatcher's workers.

    Raises:
        ValidationError: A required field is missing or blank
        NotEnabledError: Shop unknown, inactive or try-on disabled
        CapacityError: Generation pool is full (raised by dispatcher.reserve)
    """
    missing = submission.missing_fields()
    if missing:
        logger.info("tryon.submission.rejected", reason="missing_fields", fields=missing)
        raise ValidationError()

    shop_domain = submission.shop.strip().lower()  # type: ignore[union-attr]

    reserved = False
    try:
        async with await uow_factory() as uow:
            shop = await uow.shops.get_by_domain(shop_domain)
            if shop is None or not shop.accepts_try_on:
                logger.info(
                    "tryon.submission.rejected",
                    reason="not_enabled",
                    shop=shop_domain,
                    known_shop=shop is not None,
                )
                raise NotEnabledError()

            dispatcher.reserve()
            reserved = True

            job = await uow.tryon_jobs.add(
                TryOnJob(
                    shop_domain=shop.shop_domain,
                    product_id=submission.product_id.strip(),  # type: ignore[union-attr]
                    product_title=submission.product_title.strip(),  # type: ignore[union-attr]
                    product_image=submission.product_image.strip(),  # type: ignore[union-attr]
                    customer_image=submission.customer_image.strip(),  # type: ignore[union-attr]
                )
            )
            job_id = job.id
    except BaseException:
        # Insert or commit failed after a slot was taken
        if reserved:
            dispatcher.release()
        raise

    # Committed; workers can now load the row
    dispatcher.enqueue(job_id)
    logger.info("tryon.submission.accepted", job_id=str(job_id), shop=shop_domain)
    return job_id


async def get_tryon_status(request_id: Optional[str], uow_factory: UoWFactory) -> TryOnJob:
    """Look up a job for status polling. Read-only.

    Raises:
        ValidationError: request_id missing
        NotFoundError: request_id malformed or unknown
    """
    if not request_id or not request_id.strip():
        raise ValidationError("Request ID is required")

    try:
        job_id = UUID(request_id.strip())
    except ValueError:
        raise NotFoundError()

    async with await uow_factory() as uow:
        job = await uow.tryon_jobs.get_by_id(job_id)

    if job is None:
        raise NotFoundError()
    return job
