"""Shop entity - Storefront tenant with try-on feature flag and widget settings."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from shootx.core.timezone import utcnow

DEFAULT_ALLOWED_FILE_TYPES = "image/jpeg,image/png,image/webp"


class Shop(SQLModel, table=True):
    """Shop represents a storefront that installed the try-on widget."""

    __tablename__ = "shops"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    shop_domain: str = Field(max_length=255, unique=True, index=True)
    shop_id: str = Field(max_length=255)
    is_active: bool = Field(default=True)
    try_on_enabled: bool = Field(default=True)

    # Widget settings
    button_text: str = Field(default="Try It On", max_length=100)
    button_color: str = Field(default="#000000", max_length=20)
    popup_title: str = Field(default="Virtual Try-On", max_length=200)
    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)  # bytes
    allowed_file_types: str = Field(default=DEFAULT_ALLOWED_FILE_TYPES, max_length=500)

    created_at: datetime = Field(default_factory=utcnow)

    @property
    def accepts_try_on(self) -> bool:
        """True when the storefront may submit try-on requests."""
        return self.is_active and self.try_on_enabled

    @property
    def allowed_file_types_list(self) -> list[str]:
        return [t.strip() for t in self.allowed_file_types.split(",") if t.strip()]

    @staticmethod
    def shop_id_from_domain(shop_domain: str) -> str:
        """Derive the short shop id (``acme.myshopify.com`` -> ``acme``)."""
        return shop_domain.strip().lower().removesuffix(".myshopify.com")
