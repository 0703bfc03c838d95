"""Realpad sync orchestrator: one pass over all enabled projects.

Each project runs inside its own failure boundary: whatever goes wrong is
converted into the project's persisted sync status and never reaches the
other projects or the caller.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from devcms.exceptions import MissingCredentialsError, ResourceFetchError, SyncError
from devcms.realpad.extractor import DEFAULT_RESOURCE_SUFFIXES, ExtractedFlat, extract_flats
from devcms.realpad.xml_tree import parse
from devcms.services.datetime_service import is_due, now_utc
from devcms.services.lock_service import KeyedLocks
from devcms.services.project_service import (
    SyncStatus,
    complete_sync,
    credentials_for,
    get_project,
    list_enabled_project_ids,
    record_sync_status,
)
from devcms.services.retry_service import NO_RETRY, RetryPolicy

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from devcms.realpad.client import RealpadClient
    from devcms.services.media_service import ResourceCache

logger = logging.getLogger(__name__)

_MAX_ERROR_LENGTH = 2000
_MAX_DEBUG_DUMP_LENGTH = 4000


@dataclass
class ProjectSyncResult:
    """Outcome of syncing one project."""

    project_id: int
    status: SyncStatus | None
    error: str = ""
    unit_count: int = 0
    media_count: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def ran(self) -> bool:
        """False when the project was not due and nothing was recorded."""
        return self.status is not None


@dataclass
class SyncPassReport:
    """Outcome of one orchestrator pass."""

    results: list[ProjectSyncResult] = field(default_factory=list)

    def count(self, status: SyncStatus) -> int:
        return sum(1 for result in self.results if result.status is status)


def _error_message(exc: BaseException) -> str:
    message = str(exc) or type(exc).__name__
    return message[:_MAX_ERROR_LENGTH]


class SyncOrchestrator:
    """Runs the Realpad pipeline for every enabled project.

    Args:
        session_factory: Factory for database sessions; each project uses its own.
        client: Realpad web-service client.
        resource_cache: Cache that stores referenced resources in the media store.
        secret_key: Application secret used to resolve stored passwords.
        retry_policy: Retry policy for the inventory request.
        resource_suffixes: Attribute key suffix -> resource type mapping.
        concurrency: Maximum number of projects synced at once.
        project_timeout: Upper bound in seconds for one project's sync.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: RealpadClient,
        resource_cache: ResourceCache,
        secret_key: str,
        retry_policy: RetryPolicy = NO_RETRY,
        resource_suffixes: Mapping[str, str] = DEFAULT_RESOURCE_SUFFIXES,
        concurrency: int = 4,
        project_timeout: float = 600.0,
    ) -> None:
        if concurrency < 1:
            msg = f"concurrency must be >= 1, got {concurrency}"
            raise ValueError(msg)
        self._session_factory = session_factory
        self._client = client
        self._resource_cache = resource_cache
        self._secret_key = secret_key
        self._retry_policy = retry_policy
        self._resource_suffixes = dict(resource_suffixes)
        self._concurrency = concurrency
        self._project_timeout = project_timeout
        self._project_locks = KeyedLocks()

    async def run_pass(self, force: bool = False) -> SyncPassReport:
        """Sync every enabled project that is due (or all of them with ``force``)."""
        async with self._session_factory() as session:
            project_ids = await list_enabled_project_ids(session)
        logger.info("Realpad sync pass starting for %d enabled project(s)", len(project_ids))

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _bounded(project_id: int) -> ProjectSyncResult:
            async with semaphore:
                return await self.sync_project(project_id, force=force)

        results = await asyncio.gather(*(_bounded(pid) for pid in project_ids))
        report = SyncPassReport(results=list(results))
        logger.info(
            "Realpad sync pass finished: %d ok, %d error, %d skipped",
            report.count(SyncStatus.OK),
            report.count(SyncStatus.ERROR),
            report.count(SyncStatus.SKIPPED),
        )
        return report

    async def sync_project(self, project_id: int, force: bool = True) -> ProjectSyncResult:
        """Sync one project and persist its status. Never raises SyncError.

        Concurrent calls for the same project are serialized.
        """
        async with self._project_locks.hold(project_id):
            try:
                return await asyncio.wait_for(
                    self._sync_project(project_id, force), timeout=self._project_timeout
                )
            except TimeoutError:
                message = f"Sync timed out after {self._project_timeout:g}s"
                logger.error("Realpad sync of project %d timed out", project_id)
                return await self._record_failure(project_id, SyncStatus.ERROR, message)
            except Exception as exc:
                logger.exception("Realpad sync of project %d failed", project_id)
                return await self._record_failure(
                    project_id, SyncStatus.ERROR, _error_message(exc)
                )

    async def _sync_project(self, project_id: int, force: bool) -> ProjectSyncResult:
        # Re-read the row: the project may have been edited since the pass started.
        async with self._session_factory() as session:
            project = await get_project(session, project_id)
        if project is None:
            raise SyncError(f"Project {project_id} no longer exists")
        if not project.realpad_enabled:
            return await self._record_failure(
                project_id, SyncStatus.SKIPPED, "Realpad sync is disabled"
            )
        if not force and not is_due(
            project.last_sync_at, project.realpad_sync_frequency_minutes, now_utc()
        ):
            logger.debug("Project %d is not due for sync", project_id)
            return ProjectSyncResult(project_id=project_id, status=None)
        try:
            credentials = credentials_for(project, self._secret_key)
        except MissingCredentialsError as exc:
            return await self._record_failure(project_id, SyncStatus.SKIPPED, str(exc))

        raw_xml = await self._retry_policy.call(
            lambda: self._client.fetch_project_inventory(credentials)
        )
        root = parse(raw_xml)
        if logger.isEnabledFor(logging.DEBUG):
            dump = json.dumps(root.to_dict(), ensure_ascii=False)
            logger.debug(
                "Parsed inventory of project %d: %s", project_id, dump[:_MAX_DEBUG_DUMP_LENGTH]
            )
        flats = extract_flats(root, self._resource_suffixes)
        media_ids = await self._cache_resources(flats)

        async with self._session_factory() as session:
            await complete_sync(session, project_id, flats, media_ids)

        warnings = [warning for flat in flats for warning in flat.warnings]
        logger.info(
            "Realpad sync of project %d ok: %d unit(s), %d resource(s), %d warning(s)",
            project_id,
            len(flats),
            len(media_ids),
            len(warnings),
        )
        return ProjectSyncResult(
            project_id=project_id,
            status=SyncStatus.OK,
            unit_count=len(flats),
            media_count=len(media_ids),
            warnings=warnings,
        )

    async def _cache_resources(self, flats: list[ExtractedFlat]) -> dict[str, int]:
        """Cache every referenced resource; a failed download becomes a flat warning."""
        media_ids: dict[str, int] = {}
        failed: dict[str, str] = {}
        for flat in flats:
            for ref in flat.resources:
                if ref.uid in media_ids:
                    continue
                if ref.uid in failed:
                    flat.warnings.append(failed[ref.uid])
                    continue
                try:
                    record = await self._resource_cache.ensure_cached(ref.uid, ref.type)
                except ResourceFetchError as exc:
                    logger.warning("Skipping resource: %s", exc)
                    failed[ref.uid] = str(exc)
                    flat.warnings.append(str(exc))
                    continue
                media_ids[ref.uid] = record.id
        return media_ids

    async def _record_failure(
        self, project_id: int, status: SyncStatus, message: str
    ) -> ProjectSyncResult:
        """Persist a non-ok status; a failing status write is logged, not raised."""
        try:
            async with self._session_factory() as session:
                await record_sync_status(session, project_id, status, message)
        except Exception:
            logger.exception("Failed to record %s status for project %d", status, project_id)
        if status is SyncStatus.SKIPPED:
            logger.info("Realpad sync of project %d skipped: %s", project_id, message)
        return ProjectSyncResult(project_id=project_id, status=status, error=message)
