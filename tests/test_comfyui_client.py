"""Tests for the ComfyUI generation client.

Uses httpx.MockTransport (FakeComfyUI in conftest) in place of RunPod:
- Workflow shape and bearer auth
- Completion with output image -> view URL
- Ceiling exhausted -> GenerationTimeoutError after exactly max_attempts polls
- Transient poll errors are counted, not fatal
- Submission errors and malformed completion payloads -> ExternalServiceError
"""

import asyncio
import time

import httpx
import pytest

from conftest import COMFYUI_URL, PROMPT_ID, FakeComfyUI
from shootx.core.config import Settings
from shootx.services.exceptions import (
    ExternalServiceError,
    GenerationError,
    GenerationTimeoutError,
)
from shootx.services.generation.comfyui_client import ComfyUIClient, build_workflow

CUSTOMER = "data:image/png;base64,Y3VzdG9tZXI="
GARMENT = "https://cdn.example.com/shirt.png"


def test_build_workflow_references_both_images():
    workflow = build_workflow(CUSTOMER, GARMENT, seed=42)
    nodes = workflow["prompt"]

    assert nodes["1"] == {
        "inputs": {"image": CUSTOMER, "upload": "image"},
        "class_type": "LoadImage",
    }
    assert nodes["2"]["inputs"]["image"] == GARMENT
    assert nodes["3"]["class_type"] == "VirtualTryOnNode"
    assert nodes["3"]["inputs"]["person_image"] == ["1", 0]
    assert nodes["3"]["inputs"]["garment_image"] == ["2", 0]
    assert nodes["3"]["inputs"]["seed"] == 42
    assert nodes["3"]["inputs"]["steps"] == 20
    assert nodes["3"]["inputs"]["sampler_name"] == "euler"
    assert nodes["4"]["inputs"] == {"images": ["3", 0], "filename_prefix": "tryon_result"}


def test_build_workflow_random_seed_in_range():
    seed = build_workflow(CUSTOMER, GARMENT)["prompt"]["3"]["inputs"]["seed"]

    assert 0 <= seed < 1_000_000


@pytest.mark.asyncio
async def test_generate_returns_view_url_on_completion():
    fake = FakeComfyUI(complete_after=3)

    result = await fake.client().generate(CUSTOMER, GARMENT, job_id="job-1")

    assert result.image_url == f"{COMFYUI_URL}/view?filename=tryon_result_00001.png"
    assert result.prompt_id == PROMPT_ID
    assert fake.history_calls == 3
    assert len(fake.submitted) == 1
    assert fake.submitted[0]["prompt"]["1"]["inputs"]["image"] == CUSTOMER
    assert all(header == "Bearer test-runpod-key" for header in fake.auth_headers)


@pytest.mark.asyncio
async def test_generate_times_out_after_exact_attempt_ceiling():
    fake = FakeComfyUI(complete_after=None)

    with pytest.raises(GenerationTimeoutError) as exc_info:
        await fake.client(max_attempts=30).generate(CUSTOMER, GARMENT)

    assert fake.history_calls == 30
    assert exc_info.value.attempts == 30
    assert exc_info.value.prompt_id == PROMPT_ID
    assert isinstance(exc_info.value, TimeoutError)


@pytest.mark.asyncio
async def test_transient_poll_errors_are_counted_not_fatal():
    fake = FakeComfyUI(complete_after=1, history_errors=2)

    result = await fake.client(max_attempts=5).generate(CUSTOMER, GARMENT)

    assert result.image_url.endswith("tryon_result_00001.png")
    assert fake.history_calls == 3


@pytest.mark.asyncio
async def test_transient_poll_errors_consume_the_ceiling():
    fake = FakeComfyUI(complete_after=1, history_errors=10)

    with pytest.raises(GenerationTimeoutError):
        await fake.client(max_attempts=4).generate(CUSTOMER, GARMENT)

    assert fake.history_calls == 4


@pytest.mark.asyncio
async def test_history_http_error_is_treated_as_not_ready():
    calls = {"history": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/prompt":
            return httpx.Response(200, json={"prompt_id": "p1"})
        calls["history"] += 1
        if calls["history"] == 1:
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(
            200,
            json={
                "p1": {
                    "status": {"completed": True, "status_str": "success"},
                    "outputs": {"4": {"images": [{"filename": "out.png"}]}},
                }
            },
        )

    client = ComfyUIClient(
        COMFYUI_URL, "key", poll_interval=0, transport=httpx.MockTransport(handler)
    )

    result = await client.generate(CUSTOMER, GARMENT)

    assert result.image_url == f"{COMFYUI_URL}/view?filename=out.png"
    assert calls["history"] == 2


@pytest.mark.asyncio
async def test_submit_non_2xx_raises_external_service_error():
    fake = FakeComfyUI(submit_status=503)

    with pytest.raises(ExternalServiceError) as exc_info:
        await fake.client().generate(CUSTOMER, GARMENT)

    assert not isinstance(exc_info.value, GenerationTimeoutError)
    assert "503" in str(exc_info.value)
    assert fake.history_calls == 0


@pytest.mark.asyncio
async def test_submit_without_prompt_id_raises_external_service_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"number": 1, "node_errors": {}})

    client = ComfyUIClient(
        COMFYUI_URL, "key", poll_interval=0, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(ExternalServiceError):
        await client.generate(CUSTOMER, GARMENT)


@pytest.mark.asyncio
async def test_submit_network_error_raises_external_service_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route to host", request=request)

    client = ComfyUIClient(
        COMFYUI_URL, "key", poll_interval=0, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(ExternalServiceError):
        await client.generate(CUSTOMER, GARMENT)


@pytest.mark.asyncio
async def test_completed_without_output_image_fails_immediately():
    fake = FakeComfyUI(complete_after=1, include_outputs=False)

    with pytest.raises(ExternalServiceError) as exc_info:
        await fake.client(max_attempts=30).generate(CUSTOMER, GARMENT)

    assert exc_info.value.prompt_id == PROMPT_ID
    assert fake.history_calls == 1


@pytest.mark.asyncio
async def test_execution_error_status_raises_external_service_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/prompt":
            return httpx.Response(200, json={"prompt_id": "p1"})
        return httpx.Response(
            200,
            json={"p1": {"status": {"completed": False, "status_str": "error"}, "outputs": {}}},
        )

    client = ComfyUIClient(
        COMFYUI_URL, "key", poll_interval=0, transport=httpx.MockTransport(handler)
    )

    with pytest.raises(ExternalServiceError):
        await client.generate(CUSTOMER, GARMENT)


@pytest.mark.asyncio
async def test_missing_configuration_fails_without_network():
    client = ComfyUIClient("", "", poll_interval=0)

    with pytest.raises(GenerationError):
        await client.generate(CUSTOMER, GARMENT)


@pytest.mark.asyncio
async def test_slow_history_reads_bounded_by_deadline():
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/prompt":
            return httpx.Response(200, json={"prompt_id": "p1"})
        await asyncio.sleep(0.3)
        return httpx.Response(200, json={})

    client = ComfyUIClient(
        COMFYUI_URL,
        "key",
        poll_interval=0.01,
        max_attempts=10,
        timeout=0.1,
        transport=httpx.MockTransport(handler),
    )
    assert client.deadline_seconds == pytest.approx(0.2)

    start = time.monotonic()
    with pytest.raises(GenerationTimeoutError) as exc_info:
        await client.generate(CUSTOMER, GARMENT)
    elapsed = time.monotonic() - start

    assert elapsed < 1.0
    assert exc_info.value.prompt_id == "p1"
    assert exc_info.value.attempts == 1


def test_default_deadline_stays_under_stale_cutoff():
    settings = Settings(_env_file=None)
    client = ComfyUIClient(
        COMFYUI_URL,
        "key",
        poll_interval=settings.generation_poll_interval_seconds,
        max_attempts=settings.generation_max_attempts,
        timeout=settings.generation_request_timeout_seconds,
    )

    assert client.deadline_seconds == 90
    assert client.deadline_seconds < settings.stale_job_minutes * 60
