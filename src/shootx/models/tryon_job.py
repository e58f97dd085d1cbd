"""TryOnJob entity - One virtual try-on request and its generation lifecycle."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from shootx.core.timezone import utcnow


class TryOnStatus(str, Enum):
    """Try-on job lifecycle status."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why a job ended in the failed state."""

    EXTERNAL_SERVICE = "external_service"
    TIMEOUT = "timeout"
    STALE = "stale"
    INTERNAL = "internal"


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid try-on job state transition."""

    pass


class TryOnJob(SQLModel, table=True):
    """TryOnJob records a customer/garment image pair relayed for generation.

    Status moves from processing to exactly one terminal state (completed or
    failed) and never changes afterwards. result_image is set only by the
    completed transition.
    """

    __tablename__ = "tryon_jobs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    shop_domain: str = Field(max_length=255, index=True)
    product_id: str = Field(max_length=255, index=True)
    product_title: str = Field(max_length=1000)
    product_image: str  # TEXT - garment image URL
    customer_image: str  # TEXT - URL or inline data URI
    status: TryOnStatus = Field(default=TryOnStatus.PROCESSING, index=True)
    result_image: Optional[str] = Field(default=None)
    external_prompt_id: Optional[str] = Field(default=None, max_length=255)
    failure_reason: Optional[FailureReason] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (TryOnStatus.COMPLETED, TryOnStatus.FAILED)

    def record_prompt_id(self, prompt_id: str) -> None:
        """Remember the generation service token for diagnostics.

        Raises:
            InvalidStateTransition: If the job already reached a terminal state
        """
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot record prompt id on terminal job ({self.status.value})."
            )
        self.external_prompt_id = prompt_id

    def mark_completed(self, result_image: str) -> None:
        """Transition from processing to completed.

        Args:
            result_image: URL of the generated try-on image

        Raises:
            InvalidStateTransition: If current status is not processing
            ValueError: If result_image is empty
        """
        if self.status != TryOnStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. "
                "Job must be in processing state."
            )
        if not result_image:
            raise ValueError("result_image is required")
        self.result_image = result_image
        self.status = TryOnStatus.COMPLETED
        self.updated_at = utcnow()

    def mark_failed(self, reason: FailureReason) -> None:
        """Transition from processing to failed.

        Args:
            reason: Failure category stored for diagnostics

        Raises:
            InvalidStateTransition: If current status is not processing
        """
        if self.status != TryOnStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark failed from {self.status.value}. Job must be in processing state."
            )
        self.failure_reason = reason
        self.status = TryOnStatus.FAILED
        self.updated_at = utcnow()
