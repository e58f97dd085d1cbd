"""pytest fixtures for try-on relay tests.

Provides:
- postgres_container: Session-scoped testcontainer PostgreSQL instance with migrations applied
- engine: Function-scoped database, run once on SQLite (temporary file, tables from
  metadata) and once on PostgreSQL (migrated schema, tables emptied after each test)
- session_factory / uow_factory: Session and UnitOfWork factories bound to it
- enabled_shop / disabled_shop: Tenants with try-on on and off
- fake_comfyui: Scriptable ComfyUI backend served through httpx.MockTransport
- test_client: AsyncClient over the FastAPI app with a running generation pool
"""

import os

# Must be set before shootx.app builds its Settings at import time
os.environ["APP_ENV"] = "test"
os.environ["TZ"] = "UTC"

import asyncio
import json
import subprocess
import sys
from pathlib import Path
from typing import AsyncGenerator, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel
from testcontainers.postgres import PostgresContainer

import shootx.models  # noqa: F401
from shootx.models.shop import Shop
from shootx.services.generation.comfyui_client import ComfyUIClient
from shootx.services.orchestrator import TryOnOrchestrator
from shootx.uow import create_uow_factory
from shootx.workers.generation_dispatcher import GenerationDispatcher

COMFYUI_URL = "http://comfyui.test"
PROMPT_ID = "prompt-abc123"

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(scope="session")
def postgres_container():
    """Provide session-scoped PostgreSQL container with migrations applied.

    Container starts once per test session and is reused across all tests.
    Migrations run in a subprocess to avoid asyncio event loop conflicts.
    PostgreSQL-backed tests are skipped when no container runtime is available.
    """
    container = PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_shootx",
    ).with_bind_ports(5432, None)
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"PostgreSQL container unavailable: {e}")

    try:
        # alembic/env.py reads DATABASE_URL
        env = os.environ.copy()
        env["DATABASE_URL"] = container.get_connection_url(driver="psycopg")

        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            env=env,
            cwd=PROJECT_ROOT,
        )

        yield container
    finally:
        container.stop()


@pytest_asyncio.fixture(
    scope="function",
    params=["sqlite", pytest.param("postgres", marks=pytest.mark.postgres)],
)
async def engine(request, tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Provide a fresh database per test on each supported backend."""
    if request.param == "postgres":
        container = request.getfixturevalue("postgres_container")
        engine = create_async_engine(container.get_connection_url(driver="psycopg"))
        yield engine

        # Empty tables for test isolation (schema comes from migrations)
        async with engine.begin() as conn:
            await conn.execute(text("DELETE FROM tryon_jobs"))
            await conn.execute(text("DELETE FROM shops"))
        await engine.dispose()
        return

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shootx-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    return create_uow_factory(session_factory)


@pytest_asyncio.fixture
async def enabled_shop(uow_factory) -> Shop:
    async with await uow_factory() as uow:
        return await uow.shops.upsert("acme.myshopify.com", try_on_enabled=True)


@pytest_asyncio.fixture
async def disabled_shop(uow_factory) -> Shop:
    async with await uow_factory() as uow:
        return await uow.shops.upsert("closed.myshopify.com", try_on_enabled=False)


class FakeComfyUI:
    """In-memory ComfyUI: /prompt, /history/{id}.

    ``complete_after`` history reads return an empty history before the
    completed entry appears; None means the prompt never completes.
    When ``gate`` is given, history reads wait for it to be set.
    """

    def __init__(
        self,
        complete_after: Optional[int] = 1,
        filename: str = "tryon_result_00001.png",
        submit_status: int = 200,
        include_outputs: bool = True,
        history_errors: int = 0,
    ):
        self.complete_after = complete_after
        self.filename = filename
        self.submit_status = submit_status
        self.include_outputs = include_outputs
        self.history_errors = history_errors
        self.gate: Optional[asyncio.Event] = None
        self.submitted: list[dict] = []
        self.history_calls = 0
        self.auth_headers: list[str] = []

    def completed_entry(self) -> dict:
        entry: dict = {"status": {"status_str": "success", "completed": True, "messages": []}}
        if self.include_outputs:
            entry["outputs"] = {
                "4": {"images": [{"filename": self.filename, "subfolder": "", "type": "output"}]}
            }
        else:
            entry["outputs"] = {}
        return {PROMPT_ID: entry}

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.auth_headers.append(request.headers.get("Authorization", ""))

        if request.method == "POST" and request.url.path == "/prompt":
            self.submitted.append(json.loads(request.content))
            if self.submit_status != 200:
                return httpx.Response(self.submit_status, text="upstream unavailable")
            return httpx.Response(
                200, json={"prompt_id": PROMPT_ID, "number": 1, "node_errors": {}}
            )

        if request.method == "GET" and request.url.path == f"/history/{PROMPT_ID}":
            if self.gate is not None:
                await self.gate.wait()
            self.history_calls += 1
            if self.history_calls <= self.history_errors:
                raise httpx.ConnectError("connection reset", request=request)
            if self.complete_after is None or self.history_calls < self.complete_after:
                return httpx.Response(200, json={})
            return httpx.Response(200, json=self.completed_entry())

        return httpx.Response(404, json={"error": "not found"})

    def client(self, max_attempts: int = 30) -> ComfyUIClient:
        return ComfyUIClient(
            base_url=COMFYUI_URL,
            api_key="test-runpod-key",
            poll_interval=0,
            max_attempts=max_attempts,
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def fake_comfyui() -> FakeComfyUI:
    return FakeComfyUI()


@pytest_asyncio.fixture
async def dispatcher(uow_factory, fake_comfyui) -> AsyncGenerator[GenerationDispatcher, None]:
    """Running generation pool wired to the fake ComfyUI backend."""
    orchestrator = TryOnOrchestrator(uow_factory, fake_comfyui.client())
    dispatcher = GenerationDispatcher(orchestrator.run, workers=2, max_pending=10)
    dispatcher.start()
    yield dispatcher
    await dispatcher.stop()


@pytest_asyncio.fixture
async def test_client(
    session_factory, uow_factory, dispatcher
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Provide AsyncClient for testing API endpoints with database access."""
    from shootx.app import app

    # Inject dependencies into app.state (lifespan does not run under ASGITransport)
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.dispatcher = dispatcher

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client
