"""ComfyUI (RunPod) client for virtual try-on generation with error classification."""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import httpx
import structlog

from shootx.services.exceptions import (
    ExternalServiceError,
    GenerationTimeoutError,
    TransientError,
)
from shootx.services.polling import PollingExhausted, poll_until

logger = structlog.get_logger(__name__)

# Workflow node ids
CUSTOMER_IMAGE_NODE = "1"
GARMENT_IMAGE_NODE = "2"
TRYON_NODE = "3"
SAVE_IMAGE_NODE = "4"


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of a successful generation."""

    image_url: str
    prompt_id: str


def build_workflow(customer_image: str, garment_image: str, seed: Optional[int] = None) -> dict:
    """Build the ComfyUI prompt graph for one try-on.

    Args:
        customer_image: Customer photo (URL or data URI)
        garment_image: Product/garment image (URL or data URI)
        seed: Sampler seed (random when omitted)

    Returns:
        Request body for ``POST /prompt``
    """
    if seed is None:
        seed = random.randrange(1_000_000)

    return {
        "prompt": {
            CUSTOMER_IMAGE_NODE: {
                "inputs": {"image": customer_image, "upload": "image"},
                "class_type": "LoadImage",
            },
            GARMENT_IMAGE_NODE: {
                "inputs": {"image": garment_image, "upload": "image"},
                "class_type": "LoadImage",
            },
            TRYON_NODE: {
                "inputs": {
                    "person_image": [CUSTOMER_IMAGE_NODE, 0],
                    "garment_image": [GARMENT_IMAGE_NODE, 0],
                    "seed": seed,
                    "steps": 20,
                    "cfg": 7.0,
                    "sampler_name": "euler",
                    "scheduler": "normal",
                    "denoise": 1.0,
                },
                "class_type": "VirtualTryOnNode",
            },
            SAVE_IMAGE_NODE: {
                "inputs": {"images": [TRYON_NODE, 0], "filename_prefix": "tryon_result"},
                "class_type": "SaveImage",
            },
        }
    }


class ComfyUIClient:
    """Generation client for a ComfyUI instance hosted on RunPod.

    Submits a workflow, then polls the history endpoint until the prompt
    completes or the attempt ceiling is reached.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        poll_interval: float = 2.0,
        max_attempts: int = 30,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize ComfyUI client.

        Args:
            base_url: ComfyUI base URL (from RUNPOD_API_URL env var)
            api_key: RunPod API key sent as bearer token
            poll_interval: Seconds between history polls
            max_attempts: History polls before declaring a timeout
            timeout: Per-request HTTP timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.transport = transport
        self.headers = {"Authorization": f"Bearer {api_key}"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout, headers=self.headers, transport=self.transport
        )

    def view_url(self, filename: str) -> str:
        """URL serving a generated output image."""
        return f"{self.base_url}/view?filename={quote(filename)}"

    async def submit(self, client: httpx.AsyncClient, workflow: dict) -> str:
        """Submit a workflow and return the prompt id.

        Raises:
            ExternalServiceError: Network failure, non-2xx response or missing prompt_id
        """
        try:
            response = await client.post(f"{self.base_url}/prompt", json=workflow)
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Workflow submission failed: {type(e).__name__}: {e}")

        if response.is_error:
            raise ExternalServiceError(
                f"ComfyUI API error ({response.status_code}): {response.text[:500]}"
            )

        try:
            payload = response.json()
        except ValueError:
            raise ExternalServiceError("ComfyUI returned a non-JSON submission response")

        prompt_id = payload.get("prompt_id") if isinstance(payload, dict) else None
        if not prompt_id:
            raise ExternalServiceError(f"ComfyUI response missing prompt_id: {payload!r:.500}")

        return str(prompt_id)

    async def fetch_result(self, client: httpx.AsyncClient, prompt_id: str) -> Optional[str]:
        """Read the history entry for a prompt.

        Returns:
            View URL of the output image when complete, None while still running

        Raises:
            TransientError: Network failure, non-2xx response or undecodable body
            ExternalServiceError: Execution errored or completed without an output image
        """
        try:
            response = await client.get(f"{self.base_url}/history/{prompt_id}")
        except httpx.HTTPError as e:
            raise TransientError(f"History poll failed: {type(e).__name__}: {e}", prompt_id)

        if response.is_error:
            raise TransientError(
                f"History endpoint returned {response.status_code}", prompt_id=prompt_id
            )

        try:
            history = response.json()
        except ValueError:
            raise TransientError("History endpoint returned non-JSON body", prompt_id=prompt_id)

        entry = history.get(prompt_id) if isinstance(history, dict) else None
        if not isinstance(entry, dict):
            return None

        status = entry.get("status") or {}
        if status.get("status_str") == "error":
            raise ExternalServiceError(
                f"ComfyUI execution failed: {status.get('messages')!r:.500}", prompt_id=prompt_id
            )
        if not status.get("completed"):
            return None

        return self.view_url(self._extract_output_filename(entry, prompt_id))

    @staticmethod
    def _extract_output_filename(entry: dict[str, Any], prompt_id: str) -> str:
        try:
            filename = entry["outputs"][SAVE_IMAGE_NODE]["images"][0]["filename"]
        except (KeyError, IndexError, TypeError):
            raise ExternalServiceError(
                f"Completed prompt has no output image in node {SAVE_IMAGE_NODE}",
                prompt_id=prompt_id,
            )
        if not filename:
            raise ExternalServiceError("Completed prompt has empty output filename", prompt_id)
        return filename

    @property
    def deadline_seconds(self) -> float:
        """Wall-clock cap on one generation: the polling budget plus one request timeout."""
        return self.max_attempts * self.poll_interval + self.timeout

    async def generate(
        self,
        customer_image: str,
        garment_image: str,
        job_id: Optional[str] = None,
    ) -> GenerationResult:
        """Run one try-on generation end to end.

        Slow backend responses count against ``deadline_seconds``; the call
        never outlives it regardless of how long each history read takes.

        Args:
            customer_image: Customer photo (URL or data URI)
            garment_image: Garment image (URL or data URI)
            job_id: Try-on job id, used for log context only

        Returns:
            GenerationResult with the output image URL and prompt id

        Raises:
            ExternalServiceError: Backend rejected the request or returned a malformed payload
            GenerationTimeoutError: Prompt did not complete within max_attempts polls
                or within deadline_seconds
        """
        if not self.base_url or not self.api_key:
            raise ExternalServiceError("RunPod API configuration is missing")

        log = logger.bind(job_id=job_id)
        start_time = time.monotonic()
        prompt_id: Optional[str] = None
        attempts = 0

        async def check(client: httpx.AsyncClient) -> Optional[str]:
            nonlocal attempts
            attempts += 1
            return await self.fetch_result(client, prompt_id)  # type: ignore[arg-type]

        try:
            async with asyncio.timeout(self.deadline_seconds):
                async with self._client() as client:
                    prompt_id = await self.submit(
                        client, build_workflow(customer_image, garment_image)
                    )
                    log = log.bind(prompt_id=prompt_id)
                    log.info("comfyui.prompt_submitted")

                    image_url = await poll_until(
                        lambda: check(client),
                        interval=self.poll_interval,
                        max_attempts=self.max_attempts,
                        retry_on=(TransientError,),
                    )
        except PollingExhausted as e:
            log.warning(
                "comfyui.poll_timeout",
                attempts=e.attempts,
                last_error=str(e.last_error) if e.last_error else None,
            )
            raise GenerationTimeoutError(
                "Try-on generation timed out", prompt_id=prompt_id, attempts=e.attempts
            )
        except TimeoutError:
            log.warning(
                "comfyui.deadline_exceeded",
                attempts=attempts,
                deadline_seconds=self.deadline_seconds,
            )
            raise GenerationTimeoutError(
                "Try-on generation exceeded its deadline", prompt_id=prompt_id, attempts=attempts
            )

        log.info("comfyui.prompt_completed", duration_seconds=time.monotonic() - start_time)
        return GenerationResult(image_url=image_url, prompt_id=prompt_id)
