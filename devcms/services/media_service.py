"""Content-addressed cache of Realpad resources in the media store.

Each external resource UID is downloaded and stored at most once. The
lookup-then-create sequence is serialized per UID inside the process, and the
unique constraint on ``media.external_uid`` resolves races between processes.
Binaries are written to a temporary file and renamed into place, so a reader
never sees a truncated file.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
import re
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from devcms.exceptions import PersistenceError
from devcms.models.media import MediaRecord
from devcms.services.datetime_service import format_iso, now_utc
from devcms.services.lock_service import KeyedLocks
from devcms.services.retry_service import NO_RETRY, RetryPolicy

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from devcms.realpad.client import RealpadClient
    from devcms.realpad.extractor import ResourceType

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_MAX_STEM_LENGTH = 64


def media_filename(uid: str, content_type: str) -> str:
    """Build a filesystem-safe file name for a resource UID.

    The readable stem is lossy, so the name also carries the sha256 of the
    UID; distinct UIDs never share a file.
    """
    stem = _UNSAFE_FILENAME_CHARS.sub("_", uid).strip("._")[:_MAX_STEM_LENGTH] or "resource"
    digest = hashlib.sha256(uid.encode("utf-8")).hexdigest()
    extension = mimetypes.guess_extension(content_type.split(";", 1)[0].strip()) or ""
    return f"{stem}-{digest}{extension}"


class MediaStorage:
    """Filesystem storage for media binaries."""

    def __init__(self, media_dir: Path) -> None:
        self._media_dir = media_dir

    @property
    def media_dir(self) -> Path:
        return self._media_dir

    def path_for(self, filename: str) -> Path:
        path = (self._media_dir / filename).resolve()
        if not path.is_relative_to(self._media_dir.resolve()):
            raise ValueError(f"Invalid media file name: {filename}")
        return path

    def write(self, filename: str, data: bytes) -> Path:
        """Write ``data`` atomically and return the final path."""
        self._media_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(filename)
        fd, tmp_name = tempfile.mkstemp(dir=self._media_dir, prefix=".tmp-", suffix=".part")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return target

    def delete(self, filename: str) -> None:
        self.path_for(filename).unlink(missing_ok=True)

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).is_file()


async def find_media_by_uid(session: AsyncSession, uid: str) -> MediaRecord | None:
    """Return the cached media record for an external UID, if any."""
    stmt = select(MediaRecord).where(MediaRecord.external_uid == uid).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


class ResourceCache:
    """Guarantees at most one fetch-and-store per external resource UID."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: RealpadClient,
        storage: MediaStorage,
        retry_policy: RetryPolicy = NO_RETRY,
    ) -> None:
        self._session_factory = session_factory
        self._client = client
        self._storage = storage
        self._retry_policy = retry_policy
        self._locks = KeyedLocks()

    async def ensure_cached(self, uid: str, resource_type: ResourceType = "other") -> MediaRecord:
        """Return the media record for ``uid``, downloading it on first use.

        Raises ResourceFetchError when the download fails and PersistenceError
        when the record cannot be stored.
        """
        async with self._locks.hold(uid):
            async with self._session_factory() as session:
                existing = await find_media_by_uid(session, uid)
            if existing is not None:
                logger.debug("Media cache hit for uid=%s", uid)
                return existing

            payload = await self._retry_policy.call(lambda: self._client.fetch_resource(uid))
            return await self._store(uid, resource_type, payload.data, payload.content_type)

    async def _store(
        self, uid: str, resource_type: ResourceType, data: bytes, content_type: str
    ) -> MediaRecord:
        filename = media_filename(uid, content_type)
        record = MediaRecord(
            external_uid=uid,
            resource_type=resource_type,
            filename=filename,
            content_type=content_type,
            size=len(data),
            created_at=format_iso(now_utc()),
        )
        async with self._session_factory() as session:
            session.add(record)
            try:
                await session.flush()
            except IntegrityError:
                await session.rollback()
                logger.info("Media for uid=%s was stored concurrently, reusing it", uid)
                winner = await find_media_by_uid(session, uid)
                if winner is None:
                    raise PersistenceError(f"Failed to store media for uid={uid}") from None
                return winner
            except SQLAlchemyError as exc:
                await session.rollback()
                raise PersistenceError(f"Failed to store media for uid={uid}: {exc}") from exc

            try:
                self._storage.write(filename, data)
            except OSError as exc:
                await session.rollback()
                raise PersistenceError(f"Failed to write media file for uid={uid}: {exc}") from exc

            try:
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                self._storage.delete(filename)
                raise PersistenceError(f"Failed to store media for uid={uid}: {exc}") from exc
            except BaseException:
                # Cancelled mid-commit: no row may point at the file.
                self._storage.delete(filename)
                raise

        logger.info(
            "Cached Realpad resource uid=%s type=%s (%d bytes)", uid, resource_type, len(data)
        )
        return record
