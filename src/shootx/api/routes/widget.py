"""Widget configuration endpoint.

GET /api/widget-config?shop=<domain> returns the settings the storefront
script needs to render the try-on button, or ``{"enabled": false}`` when the
shop is unknown or has the feature turned off.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import Field

from shootx.api.dependencies import get_uow_factory
from shootx.api.routes.tryon import CamelModel
from shootx.services.exceptions import ValidationError

router = APIRouter(prefix="/api", tags=["widget"])

CACHE_SECONDS = 300


class WidgetConfigResponse(CamelModel):
    enabled: bool
    shop_domain: Optional[str] = None
    button_text: Optional[str] = None
    button_color: Optional[str] = None
    popup_title: Optional[str] = None
    max_file_size: Optional[int] = Field(default=None, description="Bytes")
    allowed_file_types: Optional[list[str]] = None


@router.get(
    "/widget-config", response_model=WidgetConfigResponse, response_model_exclude_none=True
)
async def widget_config(
    response: Response,
    shop: Annotated[Optional[str], Query()] = None,
    uow_factory=Depends(get_uow_factory),
) -> WidgetConfigResponse:
    """Return widget settings for a storefront."""
    if not shop or not shop.strip():
        raise ValidationError("Shop parameter is required")

    async with await uow_factory() as uow:
        record = await uow.shops.get_by_domain(shop)

    response.headers["Cache-Control"] = f"public, max-age={CACHE_SECONDS}"

    if record is None or not record.accepts_try_on:
        return WidgetConfigResponse(enabled=False)

    return WidgetConfigResponse(
        enabled=True,
        shop_domain=record.shop_domain,
        button_text=record.button_text,
        button_color=record.button_color,
        popup_title=record.popup_title,
        max_file_size=record.max_file_size,
        allowed_file_types=record.allowed_file_types_list,
    )
