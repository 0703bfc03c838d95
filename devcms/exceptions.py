"""Application-level exception types.

Convention:
- ``InternalServerError``: for API errors whose details must never reach
  clients. The global handler logs the full message at ERROR and returns a
  generic "Internal server error" (500).
- ``ValueError``: for validation errors that are safe to forward to clients.
  The global ``ValueError`` handler returns ``str(exc)`` as the 422 detail.
- ``SyncError`` and its subclasses: raised inside the Realpad sync pipeline.
  They never escape a project's sync: the orchestrator converts them into the
  project's persisted sync status.
"""

from __future__ import annotations

_SNIPPET_LENGTH = 200


def truncate_snippet(text: str, limit: int = _SNIPPET_LENGTH) -> str:
    """Collapse whitespace and truncate text for inclusion in error messages."""
    collapsed = " ".join(text.split())
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[:limit] + "..."


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients."""


def is_transient_status(status: int | None) -> bool:
    """Return True for outcomes worth retrying: no response, 429 or 5xx."""
    return status is None or status == 429 or status >= 500


class SyncError(Exception):
    """Base class for Realpad sync pipeline failures."""

    @property
    def retryable(self) -> bool:
        return False


class TransportError(SyncError):
    """The inventory request failed at the network or HTTP level.

    ``status`` is None when no response was received.
    """

    def __init__(self, message: str, status: int | None = None, snippet: str = "") -> None:
        self.status = status
        self.snippet = truncate_snippet(snippet)
        detail = message
        if status is not None:
            detail = f"{detail} (HTTP {status})"
        if self.snippet:
            detail = f"{detail}: {self.snippet}"
        super().__init__(detail)

    @property
    def retryable(self) -> bool:
        return is_transient_status(self.status)


class ParseError(SyncError):
    """The inventory payload is not well-formed XML."""

    def __init__(self, message: str, fragment: str = "") -> None:
        self.fragment = fragment
        detail = f"{message} near {fragment!r}" if fragment else message
        super().__init__(detail)


class ResourceFetchError(SyncError):
    """Downloading a single resource binary failed."""

    def __init__(self, uid: str, status: int | None = None, reason: str = "") -> None:
        self.uid = uid
        self.status = status
        detail = f"Realpad resource download failed uid={uid}"
        if status is not None:
            detail = f"{detail} HTTP {status}"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail)

    @property
    def retryable(self) -> bool:
        return is_transient_status(self.status)


class PersistenceError(SyncError):
    """A store write failed; aborts the current project's sync."""


class MissingCredentialsError(SyncError):
    """The project's Realpad configuration is incomplete."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(f"Missing Realpad credentials: {', '.join(missing)}")
