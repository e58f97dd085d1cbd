"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from shootx.models.shop import Shop
from shootx.models.tryon_job import (
    FailureReason,
    InvalidStateTransition,
    TryOnJob,
    TryOnStatus,
)

__all__ = [
    "Shop",
    "TryOnJob",
    "TryOnStatus",
    "FailureReason",
    "InvalidStateTransition",
]
