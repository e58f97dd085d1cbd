"""Public try-on endpoints called by the storefront widget.

- POST /api/tryon - Submit a customer photo/garment pair, returns a request id
  immediately while generation continues in the background
- GET /api/tryon-status - Poll a request's status and result image

Errors are rendered as ``{"error": "<message>"}`` by the application's
ServiceError handler.
"""

from datetime import datetime
from typing import Annotated, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Form, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shootx.api.dependencies import get_dispatcher, get_uow_factory
from shootx.services.tryon_requests import TryOnSubmission, get_tryon_status, submit_tryon

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["tryon"])


# Response Models


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys for the widget script."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubmitTryOnResponse(CamelModel):
    success: bool = True
    request_id: UUID = Field(..., description="Id to poll via /api/tryon-status")
    message: str = "Try-on request submitted successfully"


class TryOnStatusResponse(CamelModel):
    status: str = Field(..., description="processing, completed or failed")
    result_image: Optional[str] = Field(
        default=None, description="Generated image URL (only when completed)"
    )
    created_at: datetime
    updated_at: datetime


# API Endpoints


@router.post("/tryon", response_model=SubmitTryOnResponse)
async def submit_tryon_request(
    shop: Annotated[Optional[str], Form()] = None,
    product_id: Annotated[Optional[str], Form(alias="productId")] = None,
    product_title: Annotated[Optional[str], Form(alias="productTitle")] = None,
    product_image: Annotated[Optional[str], Form(alias="productImage")] = None,
    customer_image: Annotated[Optional[str], Form(alias="customerImage")] = None,
    uow_factory=Depends(get_uow_factory),
    dispatcher=Depends(get_dispatcher),
) -> SubmitTryOnResponse:
    """Submit a virtual try-on request.

    All form fields are optional at the framework level so that missing ones
    produce the widget-facing 400 instead of FastAPI's 422.

    Returns:
        200: {"success": true, "requestId": "<uuid>", "message": "..."}
        400: Missing required fields
        403: Shop unknown or try-on disabled
        503: Generation pool saturated
    """
    job_id = await submit_tryon(
        TryOnSubmission(
            shop=shop,
            product_id=product_id,
            product_title=product_title,
            product_image=product_image,
            customer_image=customer_image,
        ),
        uow_factory,
        dispatcher,
    )
    return SubmitTryOnResponse(request_id=job_id)


@router.get("/tryon-status", response_model=TryOnStatusResponse)
async def tryon_status(
    request_id: Annotated[Optional[str], Query(alias="requestId")] = None,
    uow_factory=Depends(get_uow_factory),
) -> TryOnStatusResponse:
    """Return the current status of a try-on request.

    Returns:
        200: {"status", "resultImage", "createdAt", "updatedAt"}
        400: requestId missing
        404: Unknown requestId
    """
    job = await get_tryon_status(request_id, uow_factory)
    return TryOnStatusResponse(
        status=job.status.value,
        result_image=job.result_image,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )
