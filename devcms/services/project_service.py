"""Project store: Realpad configuration, sync status and synced units."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from enum import StrEnum
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from devcms.exceptions import MissingCredentialsError, PersistenceError
from devcms.models.project import Project
from devcms.models.unit import Unit
from devcms.realpad.client import SyncCredentials
from devcms.services.crypto_service import encrypt_value, env_reference, resolve_secret
from devcms.services.datetime_service import format_iso, now_utc

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from devcms.realpad.extractor import ExtractedFlat
    from devcms.schemas.project import ProjectCreate, RealpadConfigUpdate

logger = logging.getLogger(__name__)


class SyncStatus(StrEnum):
    """Outcome of the last sync attempt for a project."""

    OK = "ok"
    ERROR = "error"
    SKIPPED = "skipped"


async def create_project(session: AsyncSession, data: ProjectCreate) -> Project:
    """Create a project with Realpad sync disabled and no sync history."""
    now = format_iso(now_utc())
    project = Project(
        name=data.name,
        created_at=now,
        updated_at=now,
        realpad_enabled=False,
        realpad_login="",
        realpad_password_ref="",
        realpad_sync_frequency_minutes=60,
        last_sync_at=None,
        last_sync_status=None,
        last_sync_error="",
    )
    session.add(project)
    await session.commit()
    await session.refresh(project)
    return project


async def get_project(session: AsyncSession, project_id: int) -> Project | None:
    return await session.get(Project, project_id)


async def list_projects(session: AsyncSession) -> list[Project]:
    """List all projects ordered by id."""
    result = await session.execute(select(Project).order_by(Project.id))
    return list(result.scalars().all())


async def list_enabled_project_ids(session: AsyncSession) -> list[int]:
    """Return the ids of projects with Realpad sync enabled."""
    stmt = select(Project.id).where(Project.realpad_enabled.is_(True)).order_by(Project.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_realpad_config(
    session: AsyncSession,
    project: Project,
    data: RealpadConfigUpdate,
    secret_key: str,
) -> Project:
    """Apply a partial Realpad configuration update.

    A plaintext ``password`` is encrypted before it is stored; ``password_env``
    stores a reference to an environment variable instead.
    """
    if data.password is not None and data.password_env is not None:
        raise ValueError("Provide either password or password_env, not both")

    if data.enabled is not None:
        project.realpad_enabled = data.enabled
    if data.login is not None:
        project.realpad_login = data.login
    if data.password is not None:
        project.realpad_password_ref = (
            encrypt_value(data.password, secret_key) if data.password else ""
        )
    if data.password_env is not None:
        project.realpad_password_ref = env_reference(data.password_env)
    if data.screen_id is not None:
        project.realpad_screen_id = data.screen_id
    if data.project_id is not None:
        project.realpad_project_id = data.project_id
    if data.developer_id is not None:
        project.realpad_developer_id = data.developer_id
    if data.sync_frequency_minutes is not None:
        project.realpad_sync_frequency_minutes = data.sync_frequency_minutes
    project.updated_at = format_iso(now_utc())

    await session.commit()
    await session.refresh(project)
    return project


def credentials_for(project: Project, secret_key: str) -> SyncCredentials:
    """Build validated Realpad credentials from a project's configuration.

    Raises MissingCredentialsError when a field is empty or the password
    reference cannot be resolved.
    """
    password = ""
    if project.realpad_password_ref:
        try:
            password = resolve_secret(project.realpad_password_ref, secret_key)
        except ValueError as exc:
            logger.warning("Cannot resolve Realpad password for project %d: %s", project.id, exc)
    credentials = SyncCredentials(
        login=project.realpad_login,
        password=password,
        screen_id=project.realpad_screen_id or 0,
        project_id=project.realpad_project_id or 0,
        developer_id=project.realpad_developer_id or 0,
    )
    credentials.validate()
    return credentials


async def record_sync_status(
    session: AsyncSession,
    project_id: int,
    status: SyncStatus,
    error: str = "",
    at: datetime | None = None,
) -> None:
    """Overwrite all sync status fields of a project in a single statement."""
    stmt = (
        update(Project)
        .where(Project.id == project_id)
        .values(
            last_sync_at=format_iso(at or now_utc()),
            last_sync_status=str(status),
            last_sync_error=error if status is not SyncStatus.OK else "",
        )
    )
    try:
        await session.execute(stmt)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError(f"Failed to record sync status: {exc}") from exc


def _unit_row(
    project_id: int,
    flat: ExtractedFlat,
    media_ids: dict[str, int],
    synced_at: str,
) -> Unit:
    resources = [
        {**asdict(ref), "media_id": media_ids.get(ref.uid)} for ref in flat.resources
    ]
    return Unit(
        project_id=project_id,
        building_id=flat.building_id,
        floor_id=flat.floor_id,
        flat_id=flat.flat_id,
        attributes=json.dumps(flat.attributes, ensure_ascii=False),
        resources=json.dumps(resources),
        warnings=json.dumps(flat.warnings, ensure_ascii=False),
        synced_at=synced_at,
    )


async def complete_sync(
    session: AsyncSession,
    project_id: int,
    flats: list[ExtractedFlat],
    media_ids: dict[str, int],
    at: datetime | None = None,
) -> None:
    """Replace a project's units and mark the sync ``ok`` in one transaction."""
    synced_at = format_iso(at or now_utc())
    try:
        await session.execute(delete(Unit).where(Unit.project_id == project_id))
        session.add_all(_unit_row(project_id, flat, media_ids, synced_at) for flat in flats)
        await session.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(
                last_sync_at=synced_at,
                last_sync_status=str(SyncStatus.OK),
                last_sync_error="",
            )
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise PersistenceError(f"Failed to store synced units: {exc}") from exc


async def list_units(session: AsyncSession, project_id: int) -> list[Unit]:
    """List a project's synced units in extraction order."""
    stmt = select(Unit).where(Unit.project_id == project_id).order_by(Unit.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


def missing_credentials(project: Project, secret_key: str) -> list[str]:
    """Return the names of missing Realpad credential fields (empty when complete)."""
    try:
        credentials_for(project, secret_key)
    except MissingCredentialsError as exc:
        return exc.missing
    return []
