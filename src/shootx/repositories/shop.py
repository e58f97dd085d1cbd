"""Shop repository.

Provides lookup and upsert for storefront tenants.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shootx.models.shop import Shop


class ShopRepository:
    """Repository for Shop entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_domain(self, shop_domain: str) -> Shop | None:
        """Retrieve shop by its domain (case-insensitive).

        Args:
            shop_domain: Storefront domain, e.g. ``acme.myshopify.com``

        Returns:
            Shop if found, None otherwise
        """
        domain = shop_domain.strip().lower()
        result = await self.session.execute(
            select(Shop).where(Shop.shop_domain == domain)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def upsert(self, shop_domain: str, **settings) -> Shop:
        """Create shop if missing, otherwise update the given settings.

        Args:
            shop_domain: Storefront domain
            **settings: Shop column values to set (e.g. try_on_enabled=False)

        Returns:
            Created or updated Shop
        """
        shop = await self.get_by_domain(shop_domain)
        if shop is None:
            domain = shop_domain.strip().lower()
            shop = Shop(
                shop_domain=domain,
                shop_id=Shop.shop_id_from_domain(domain),
                **settings,
            )
        else:
            for field, value in settings.items():
                setattr(shop, field, value)

        self.session.add(shop)
        await self.session.flush()
        return shop
