"""Shared API dependencies: settings, DB session, admin auth, sync services."""

from __future__ import annotations

import secrets
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from devcms.config import Settings
from devcms.services.scheduler import SyncScheduler
from devcms.services.sync_service import SyncOrchestrator

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


def get_orchestrator(request: Request) -> SyncOrchestrator:
    """Get the Realpad sync orchestrator from app state."""
    orchestrator: SyncOrchestrator = request.app.state.sync_orchestrator
    return orchestrator


def get_scheduler(request: Request) -> SyncScheduler:
    """Get the Realpad sync scheduler from app state."""
    scheduler: SyncScheduler = request.app.state.sync_scheduler
    return scheduler


async def require_admin(
    settings: Annotated[Settings, Depends(get_settings)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> None:
    """Require the admin bearer token. Raises 401 otherwise."""
    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode(), settings.admin_token.encode()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
