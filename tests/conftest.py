"""Shared test fixtures for devcms."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, unquote

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from devcms.config import Settings
from devcms.main import create_app, init_sync_services
from devcms.models.base import Base
from devcms.realpad.client import RealpadClient

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable
    from pathlib import Path

logger = logging.getLogger(__name__)

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"
TEST_ADMIN_TOKEN = "test-admin-token-with-enough-entropy"
REALPAD_ENDPOINT = "https://realpad.test/ws/v10/get-project"
REALPAD_RESOURCE_BASE_URL = "https://realpad.test"

SAMPLE_INVENTORY = """<?xml version="1.0" encoding="UTF-8"?>
<export>
  <project id="7">
    <building id="B1">
      <floor id="F1">
        <flat id="101">
          <flat-attribute key="Area" value="54.2"/>
          <flat-attribute key="Status" value="free"/>
          <flat-attribute key="planPdf" value="abc123"/>
        </flat>
        <flat id="102">
          <flat-attribute key="Area" value="61.0"/>
        </flat>
      </floor>
    </building>
  </project>
</export>
"""


@dataclass
class RealpadStub:
    """In-memory stand-in for the Realpad web service, served through ``httpx.MockTransport``.

    ``inventories`` maps the ``projectid`` form field to the XML returned for it.
    ``inventory_failures`` holds status codes returned, in order, before the
    inventory succeeds. ``resources`` maps a UID to its binary; unknown UIDs
    answer 404 unless listed in ``resource_statuses``.
    """

    inventories: dict[str, str] = field(default_factory=dict)
    inventory_failures: dict[str, list[int]] = field(default_factory=dict)
    resources: dict[str, bytes] = field(default_factory=dict)
    resource_statuses: dict[str, int] = field(default_factory=dict)
    inventory_requests: list[dict[str, str]] = field(default_factory=list)
    resource_requests: list[str] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and str(request.url) == REALPAD_ENDPOINT:
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.inventory_requests.append(form)
            project_id = form.get("projectid", "")
            pending = self.inventory_failures.get(project_id)
            if pending:
                return httpx.Response(pending.pop(0), text="<error>Realpad unavailable</error>")
            if project_id not in self.inventories:
                return httpx.Response(403, text="Invalid credentials")
            return httpx.Response(
                200,
                text=self.inventories[project_id],
                headers={"content-type": "application/xml"},
            )

        prefix = f"{REALPAD_RESOURCE_BASE_URL}/resource/"
        if request.method == "GET" and str(request.url).startswith(prefix):
            uid = unquote(str(request.url).removeprefix(prefix))
            self.resource_requests.append(uid)
            if uid in self.resource_statuses:
                return httpx.Response(self.resource_statuses[uid])
            if uid not in self.resources:
                return httpx.Response(404)
            return httpx.Response(
                200, content=self.resources[uid], headers={"content-type": "application/pdf"}
            )

        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@asynccontextmanager
async def create_test_client(
    settings: Settings, realpad: RealpadStub
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan (DB, sync services)
    because ASGITransport does not trigger it. Realpad calls go to ``realpad``.
    """
    from devcms.database import create_engine as create_db_engine

    app = create_app(settings)
    settings.validate_runtime_security()

    engine, session_factory = create_db_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.settings = settings

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    http_client = httpx.AsyncClient(transport=realpad.transport())
    init_sync_services(app, settings, session_factory, http_client)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await app.state.sync_scheduler.stop()
    await http_client.aclose()
    await engine.dispose()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with temporary paths and no retry backoff."""
    db_path = tmp_path / "test.db"
    return Settings(
        secret_key=TEST_SECRET_KEY,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        media_dir=tmp_path / "media",
        admin_token=TEST_ADMIN_TOKEN,
        realpad_endpoint=REALPAD_ENDPOINT,
        realpad_resource_base_url=REALPAD_RESOURCE_BASE_URL,
        realpad_retry_initial_seconds=0,
        realpad_retry_max_seconds=0,
        sync_enabled=False,
    )


@pytest.fixture
def realpad() -> RealpadStub:
    """A fresh Realpad stub with no inventories or resources."""
    return RealpadStub()


@pytest.fixture
async def realpad_http(realpad: RealpadStub) -> AsyncGenerator[httpx.AsyncClient]:
    """An httpx client whose requests are answered by the Realpad stub."""
    async with httpx.AsyncClient(transport=realpad.transport()) as client:
        yield client


@pytest.fixture
def realpad_client(realpad_http: httpx.AsyncClient) -> RealpadClient:
    return RealpadClient(
        realpad_http, endpoint=REALPAD_ENDPOINT, resource_base_url=REALPAD_RESOURCE_BASE_URL
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with all tables."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def sample_inventory() -> str:
    """One building, one floor, two flats; flat 101 references resource ``abc123``."""
    return SAMPLE_INVENTORY


@pytest.fixture
def make_project(
    session_factory: async_sessionmaker[AsyncSession], test_settings: Settings
) -> Callable[..., Awaitable[int]]:
    """Return a factory that stores a Realpad-enabled project and returns its id."""
    from devcms.schemas.project import ProjectCreate, RealpadConfigUpdate
    from devcms.services.project_service import create_project, update_realpad_config

    async def _make(
        name: str = "Riverside",
        realpad_project_id: int = 7,
        password: str | None = "realpad-secret",
        **overrides: object,
    ) -> int:
        config = {
            "enabled": True,
            "login": "developer@example.com",
            "password": password,
            "screen_id": 11,
            "project_id": realpad_project_id,
            "developer_id": 3,
            **overrides,
        }
        async with session_factory() as session:
            project = await create_project(session, ProjectCreate(name=name))
            await update_realpad_config(
                session,
                project,
                RealpadConfigUpdate.model_validate(config),
                test_settings.secret_key,
            )
            return project.id

    return _make
