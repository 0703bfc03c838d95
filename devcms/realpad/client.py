"""Realpad web-service client using the Realpad HTTP API."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from urllib.parse import quote

import httpx

from devcms.exceptions import MissingCredentialsError, ResourceFetchError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://cms.realpad.eu/ws/v10/get-project"
DEFAULT_RESOURCE_BASE_URL = "https://cms.realpad.eu"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class SyncCredentials:
    """Credentials and identifiers for one Realpad project export."""

    login: str
    password: str = field(repr=False)
    screen_id: int
    project_id: int
    developer_id: int

    def validate(self) -> None:
        """Raise MissingCredentialsError naming every empty or zero field."""
        missing = [
            name
            for name, value in (
                ("login", self.login),
                ("password", self.password),
                ("screen_id", self.screen_id),
                ("project_id", self.project_id),
                ("developer_id", self.developer_id),
            )
            if not value
        ]
        if missing:
            raise MissingCredentialsError(missing)

    def form_fields(self) -> dict[str, str]:
        """Return the form-encoded request body fields."""
        return {
            "login": self.login,
            "password": self.password,
            "screenid": str(self.screen_id),
            "projectid": str(self.project_id),
            "developerid": str(self.developer_id),
        }


@dataclass(frozen=True)
class ResourcePayload:
    """A downloaded resource binary."""

    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE

    @property
    def size(self) -> int:
        return len(self.data)


class RealpadClient:
    """Client for the Realpad inventory export and resource endpoints.

    Args:
        http_client: Shared ``httpx.AsyncClient``; its timeout bounds every call.
        endpoint: URL of the ``get-project`` export.
        resource_base_url: Base URL that serves ``/resource/<uid>``.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        endpoint: str = DEFAULT_ENDPOINT,
        resource_base_url: str = DEFAULT_RESOURCE_BASE_URL,
    ) -> None:
        self._http = http_client
        self._endpoint = endpoint
        self._resource_base_url = resource_base_url.rstrip("/")

    async def fetch_project_inventory(self, credentials: SyncCredentials) -> str:
        """POST the credentials and return the raw XML export.

        Raises TransportError on network failure or a non-2xx response.
        """
        credentials.validate()
        try:
            resp = await self._http.post(self._endpoint, data=credentials.form_fields())
        except httpx.HTTPError as exc:
            logger.warning(
                "Realpad get-project request failed for project %s: %s",
                credentials.project_id,
                type(exc).__name__,
            )
            raise TransportError(f"Realpad get-project request failed: {exc}") from exc

        if not resp.is_success:
            raise TransportError(
                f"Realpad get-project failed: {resp.reason_phrase}",
                status=resp.status_code,
                snippet=resp.text,
            )
        return resp.text

    def resource_url(self, uid: str) -> str:
        return f"{self._resource_base_url}/resource/{quote(uid, safe='')}"

    async def fetch_resource(self, uid: str) -> ResourcePayload:
        """Download one resource binary by its UID.

        Raises ResourceFetchError on network failure or a non-2xx response.
        """
        try:
            resp = await self._http.get(self.resource_url(uid))
        except httpx.HTTPError as exc:
            raise ResourceFetchError(uid, reason=str(exc) or type(exc).__name__) from exc

        if not resp.is_success:
            raise ResourceFetchError(uid, status=resp.status_code)
        content_type = resp.headers.get("content-type") or DEFAULT_CONTENT_TYPE
        return ResourcePayload(data=resp.content, content_type=content_type)
