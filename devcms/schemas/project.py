"""Project and Realpad sync schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ProjectCreate(BaseModel):
    """Request to create a project."""

    name: str = Field(min_length=1, max_length=200, description="Project display name")


class RealpadConfigUpdate(BaseModel):
    """Partial update of a project's Realpad configuration.

    Omitted fields keep their current value. ``password`` is stored encrypted;
    ``password_env`` stores a reference to an environment variable instead.
    """

    enabled: bool | None = None
    login: str | None = Field(default=None, max_length=200)
    password: str | None = Field(default=None, max_length=500)
    password_env: str | None = Field(
        default=None, min_length=1, max_length=200, pattern=r"^[A-Za-z_][A-Za-z0-9_]*$"
    )
    screen_id: int | None = Field(default=None, ge=0)
    project_id: int | None = Field(default=None, ge=0)
    developer_id: int | None = Field(default=None, ge=0)
    sync_frequency_minutes: int | None = Field(default=None, ge=1, le=7 * 24 * 60)


class RealpadConfigResponse(BaseModel):
    """Realpad configuration without the password."""

    enabled: bool
    login: str
    has_password: bool
    screen_id: int | None = None
    project_id: int | None = None
    developer_id: int | None = None
    sync_frequency_minutes: int
    missing_credentials: list[str] = Field(default_factory=list)


class SyncStatusResponse(BaseModel):
    """Last sync attempt of a project. ``last_sync_status`` is null if never synced."""

    last_sync_at: str | None = None
    last_sync_status: str | None = None
    last_sync_error: str = ""


class ProjectResponse(BaseModel):
    """Project with its Realpad configuration and sync status."""

    id: int
    name: str
    created_at: str
    updated_at: str
    realpad: RealpadConfigResponse
    sync: SyncStatusResponse


class UnitResponse(BaseModel):
    """One synced unit."""

    id: int
    building_id: str
    floor_id: str
    flat_id: str
    attributes: dict[str, str]
    resources: list[dict[str, Any]]
    warnings: list[str]
    synced_at: str


class ProjectSyncResponse(BaseModel):
    """Outcome of syncing one project."""

    project_id: int
    status: str | None = None
    error: str = ""
    unit_count: int = 0
    media_count: int = 0
    warnings: list[str] = Field(default_factory=list)


class SyncPassResponse(BaseModel):
    """Outcome of a full sync pass. ``started`` is false if a pass was already running."""

    started: bool
    results: list[ProjectSyncResponse] = Field(default_factory=list)
