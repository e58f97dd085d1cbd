"""Storefront-side try-on client.

Mirrors what the widget script does in the shopper's browser: submit the
photo/garment pair, then poll the status endpoint until the job finishes.

States::

    idle -> uploading -> submitted -> polling -> done | failed | timed_out

Unlike the server's loop against the generation backend, a network error
while polling ends the run as ``failed`` right away instead of being counted
as an attempt.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx
import structlog

from shootx.services.polling import PollingExhausted, poll_until

logger = structlog.get_logger(__name__)


class PollerState(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    SUBMITTED = "submitted"
    POLLING = "polling"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class GenerationFailed(Exception):
    """Status endpoint reported the job as failed."""


@dataclass
class TryOnRequest:
    """What the widget posts to /api/tryon."""

    shop: str
    product_id: str
    product_title: str
    product_image: str
    customer_image: str

    def form_data(self) -> dict[str, str]:
        return {
            "shop": self.shop,
            "productId": self.product_id,
            "productTitle": self.product_title,
            "productImage": self.product_image,
            "customerImage": self.customer_image,
        }


@dataclass
class PollOutcome:
    """Final result of one try-on run."""

    state: PollerState
    request_id: Optional[str] = None
    result_image: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state == PollerState.DONE

    @property
    def can_retry(self) -> bool:
        """Failed and timed-out runs offer the shopper a retry."""
        return self.state in (PollerState.FAILED, PollerState.TIMED_OUT)


class TryOnPoller:
    """Runs one submit-then-poll cycle against the try-on API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        poll_interval: float = 2.0,
        max_attempts: int = 60,
        on_state_change: Optional[Callable[[PollerState], None]] = None,
    ):
        """Initialize poller.

        Args:
            client: HTTP client whose base_url points at the try-on API
            poll_interval: Seconds between status reads
            max_attempts: Status reads before giving up (60 x 2s = ~2 minutes)
            on_state_change: Callback invoked with every new state (UI updates);
                exceptions it raises are logged, not propagated
        """
        self.client = client
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.on_state_change = on_state_change
        self.state = PollerState.IDLE
        self.attempts = 0

    def _transition(self, state: PollerState) -> None:
        self.state = state
        logger.debug("poller.state", state=state.value)
        if self.on_state_change is None:
            return
        try:
            self.on_state_change(state)
        except Exception as e:
            # UI callback failures must not abort the run
            logger.error(
                "poller.state_callback_failed",
                state=state.value,
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )

    def _finish(self, state: PollerState, **fields) -> PollOutcome:
        self._transition(state)
        return PollOutcome(state=state, attempts=self.attempts, **fields)

    async def run(self, request: TryOnRequest) -> PollOutcome:
        """Submit a try-on request and wait for its result.

        Never raises for HTTP or network problems; they end the run as failed.
        Exceptions from on_state_change are logged and ignored.
        """
        self.attempts = 0
        self._transition(PollerState.UPLOADING)

        try:
            response = await self.client.post("/api/tryon", data=request.form_data())
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("poller.submit_failed", error_type=type(e).__name__, error=str(e))
            return self._finish(PollerState.FAILED, error=f"Submission failed: {e}")

        if not isinstance(body, dict) or not body.get("success"):
            error = body.get("error") if isinstance(body, dict) else None
            logger.warning("poller.submit_rejected", status_code=response.status_code, error=error)
            return self._finish(
                PollerState.FAILED, error=error or "Failed to start try-on generation"
            )

        request_id = str(body["requestId"])
        self._transition(PollerState.SUBMITTED)
        self._transition(PollerState.POLLING)

        try:
            result_image = await poll_until(
                lambda: self._check_status(request_id),
                interval=self.poll_interval,
                max_attempts=self.max_attempts,
            )
        except PollingExhausted:
            logger.info("poller.timed_out", request_id=request_id, attempts=self.attempts)
            return self._finish(
                PollerState.TIMED_OUT,
                request_id=request_id,
                error="Try-on generation timed out",
            )
        except GenerationFailed as e:
            return self._finish(PollerState.FAILED, request_id=request_id, error=str(e))
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "poller.status_failed",
                request_id=request_id,
                attempts=self.attempts,
                error_type=type(e).__name__,
                error=str(e),
            )
            return self._finish(
                PollerState.FAILED, request_id=request_id, error=f"Status polling failed: {e}"
            )

        return self._finish(PollerState.DONE, request_id=request_id, result_image=result_image)

    async def _check_status(self, request_id: str) -> Optional[str]:
        self.attempts += 1
        response = await self.client.get("/api/tryon-status", params={"requestId": request_id})
        status = response.json()
        if not isinstance(status, dict):
            return None

        if status.get("status") == "completed" and status.get("resultImage"):
            return status["resultImage"]
        if status.get("status") == "failed":
            raise GenerationFailed("Try-on generation failed")
        return None
