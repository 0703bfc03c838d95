"""Sync API endpoints for triggering Realpad sync passes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends

from devcms.api.deps import get_scheduler, require_admin
from devcms.schemas.project import ProjectSyncResponse, SyncPassResponse
from devcms.services.scheduler import SyncScheduler

if TYPE_CHECKING:
    from devcms.services.sync_service import ProjectSyncResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"], dependencies=[Depends(require_admin)])


def project_sync_response(result: ProjectSyncResult) -> ProjectSyncResponse:
    return ProjectSyncResponse(
        project_id=result.project_id,
        status=result.status,
        error=result.error,
        unit_count=result.unit_count,
        media_count=result.media_count,
        warnings=result.warnings,
    )


@router.post("/run", response_model=SyncPassResponse)
async def run_sync_endpoint(
    scheduler: Annotated[SyncScheduler, Depends(get_scheduler)],
) -> SyncPassResponse:
    """Run a forced sync pass over all enabled projects.

    Returns ``started: false`` when a pass is already running.
    """
    report = await scheduler.run_once(force=True)
    if report is None:
        return SyncPassResponse(started=False)
    return SyncPassResponse(
        started=True,
        results=[project_sync_response(result) for result in report.results],
    )
