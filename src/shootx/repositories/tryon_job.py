"""TryOnJob repository.

Provides data access methods for TryOnJob entities, including the per-shop
aggregates shown on the analytics page.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shootx.models.tryon_job import TryOnJob, TryOnStatus


class TryOnJobRepository:
    """Repository for TryOnJob entities.

    Jobs are never deleted here; retention is handled outside the service.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, job: TryOnJob) -> TryOnJob:
        """Persist new try-on job to database.

        Args:
            job: TryOnJob entity to persist

        Returns:
            Persisted job with generated ID
        """
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: UUID, for_update: bool = False) -> TryOnJob | None:
        """Retrieve try-on job by UUID.

        Args:
            job_id: Job's unique identifier
            for_update: Lock the row until the transaction ends (SELECT ... FOR UPDATE)

        Returns:
            TryOnJob if found, None otherwise
        """
        query = select(TryOnJob).where(TryOnJob.id == job_id)  # type: ignore[arg-type]
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_stale_processing(
        self, created_before: datetime, limit: int = 500
    ) -> list[TryOnJob]:
        """Retrieve jobs still processing that were created before the cutoff.

        Uses FOR UPDATE SKIP LOCKED so concurrent reconcilers never pick the
        same rows (the clause is omitted on SQLite).

        Args:
            created_before: Naive UTC cutoff timestamp
            limit: Maximum number of jobs to return

        Returns:
            Stale jobs ordered oldest first
        """
        result = await self.session.execute(
            select(TryOnJob)
            .where(TryOnJob.status == TryOnStatus.PROCESSING)  # type: ignore[arg-type]
            .where(TryOnJob.created_at < created_before)  # type: ignore[arg-type]
            .order_by(TryOnJob.created_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list(result.scalars().all())

    async def count_for_shop(self, shop_domain: str, status: TryOnStatus | None = None) -> int:
        """Count a shop's try-on jobs, optionally restricted to one status."""
        query = select(func.count()).select_from(TryOnJob).where(
            TryOnJob.shop_domain == shop_domain  # type: ignore[arg-type]
        )
        if status is not None:
            query = query.where(TryOnJob.status == status)  # type: ignore[arg-type]
        result = await self.session.execute(query)
        return result.scalar_one()

    async def recent_for_shop(self, shop_domain: str, limit: int = 20) -> list[TryOnJob]:
        """Retrieve a shop's most recent try-on jobs (newest first)."""
        result = await self.session.execute(
            select(TryOnJob)
            .where(TryOnJob.shop_domain == shop_domain)  # type: ignore[arg-type]
            .order_by(TryOnJob.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return list(result.scalars().all())

    async def top_products_for_shop(
        self, shop_domain: str, limit: int = 10
    ) -> list[tuple[str, str, int]]:
        """Products with the most try-on requests for a shop.

        Returns:
            List of (product_id, product_title, request_count), highest count first
        """
        request_count = func.count(TryOnJob.id).label("request_count")  # type: ignore[arg-type]
        result = await self.session.execute(
            select(TryOnJob.product_id, TryOnJob.product_title, request_count)
            .where(TryOnJob.shop_domain == shop_domain)  # type: ignore[arg-type]
            .group_by(TryOnJob.product_id, TryOnJob.product_title)
            .order_by(request_count.desc(), TryOnJob.product_id.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return [(row[0], row[1], row[2]) for row in result.all()]
