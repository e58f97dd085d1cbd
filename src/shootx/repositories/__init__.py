"""Repository layer.

Provides data access abstractions for all domain entities.
"""

from shootx.repositories.shop import ShopRepository
from shootx.repositories.tryon_job import TryOnJobRepository

__all__ = [
    "ShopRepository",
    "TryOnJobRepository",
]
