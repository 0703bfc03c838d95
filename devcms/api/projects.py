"""Project API endpoints: Realpad configuration, sync status and units."""

from __future__ import annotations

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from devcms.api.deps import get_orchestrator, get_session, get_settings, require_admin
from devcms.api.sync import project_sync_response
from devcms.config import Settings
from devcms.models.project import Project
from devcms.schemas.project import (
    ProjectCreate,
    ProjectResponse,
    ProjectSyncResponse,
    RealpadConfigResponse,
    RealpadConfigUpdate,
    SyncStatusResponse,
    UnitResponse,
)
from devcms.services.project_service import (
    create_project,
    get_project,
    list_projects,
    list_units,
    missing_credentials,
    update_realpad_config,
)
from devcms.services.sync_service import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/projects", tags=["projects"], dependencies=[Depends(require_admin)]
)


def _project_response(project: Project, secret_key: str) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        created_at=project.created_at,
        updated_at=project.updated_at,
        realpad=RealpadConfigResponse(
            enabled=project.realpad_enabled,
            login=project.realpad_login,
            has_password=bool(project.realpad_password_ref),
            screen_id=project.realpad_screen_id,
            project_id=project.realpad_project_id,
            developer_id=project.realpad_developer_id,
            sync_frequency_minutes=project.realpad_sync_frequency_minutes,
            missing_credentials=missing_credentials(project, secret_key),
        ),
        sync=SyncStatusResponse(
            last_sync_at=project.last_sync_at,
            last_sync_status=project.last_sync_status,
            last_sync_error=project.last_sync_error,
        ),
    )


async def _require_project(session: AsyncSession, project_id: int) -> Project:
    project = await get_project(session, project_id)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


@router.get("", response_model=list[ProjectResponse])
async def list_projects_endpoint(
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> list[ProjectResponse]:
    """List projects with their sync status."""
    projects = await list_projects(session)
    return [_project_response(project, settings.secret_key) for project in projects]


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project_endpoint(
    body: ProjectCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ProjectResponse:
    """Create a project. Realpad sync starts disabled."""
    project = await create_project(session, body)
    logger.info("Created project %d (%s)", project.id, project.name)
    return _project_response(project, settings.secret_key)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project_endpoint(
    project_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ProjectResponse:
    """Get a project with its Realpad configuration and sync status."""
    project = await _require_project(session, project_id)
    return _project_response(project, settings.secret_key)


@router.put("/{project_id}/realpad", response_model=ProjectResponse)
async def update_realpad_endpoint(
    project_id: int,
    body: RealpadConfigUpdate,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ProjectResponse:
    """Update a project's Realpad configuration."""
    project = await _require_project(session, project_id)
    project = await update_realpad_config(session, project, body, settings.secret_key)
    logger.info("Updated Realpad configuration of project %d", project_id)
    return _project_response(project, settings.secret_key)


@router.get("/{project_id}/units", response_model=list[UnitResponse])
async def list_units_endpoint(
    project_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[UnitResponse]:
    """List the units stored by the project's last successful sync."""
    await _require_project(session, project_id)
    units = await list_units(session, project_id)
    return [
        UnitResponse(
            id=unit.id,
            building_id=unit.building_id,
            floor_id=unit.floor_id,
            flat_id=unit.flat_id,
            attributes=json.loads(unit.attributes),
            resources=json.loads(unit.resources),
            warnings=json.loads(unit.warnings),
            synced_at=unit.synced_at,
        )
        for unit in units
    ]


@router.post("/{project_id}/sync", response_model=ProjectSyncResponse)
async def sync_project_endpoint(
    project_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    orchestrator: Annotated[SyncOrchestrator, Depends(get_orchestrator)],
) -> ProjectSyncResponse:
    """Sync one project now, regardless of its sync frequency."""
    await _require_project(session, project_id)
    await session.close()
    result = await orchestrator.sync_project(project_id, force=True)
    return project_sync_response(result)
