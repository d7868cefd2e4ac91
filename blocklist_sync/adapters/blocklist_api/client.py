"""Blocked-users REST API client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from blocklist_sync.adapters.blocklist_api.errors import (
    BlocklistApiError,
    NetworkError,
    error_for_status,
    is_auth_error,
    is_network_error,
)
from blocklist_sync.adapters.blocklist_api.models import (
    BlockUserRequest,
    BulkBlockRequest,
    BulkBlockResult,
    ConnectionCheck,
    RemoteBlockedUser,
    RemoteBlockedUserList,
)
from blocklist_sync.config.integrations import DEFAULT_API_URL

if TYPE_CHECKING:
    from typing import Self

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class BlocklistApiClient:
    """Async HTTP client for the remote blocked-users list.

    Block requests answered with 409 and unblock requests answered with 404
    are reported as success so that retrying either is always safe.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Base URL of the blocklist API
            api_key: Bearer token identifying the user
            timeout: Per-request timeout in seconds; expiry counts as a network error
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self.api_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise BlocklistApiError("Client not initialized. Use async context manager.")
        return self._client

    async def _request(self, method: str, path: str, *, json: Any = None) -> Any:
        """Send one request and translate failures into the error taxonomy."""
        try:
            response = await self.client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise NetworkError("Request timeout") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Network error: {exc}") from exc

        if response.is_error:
            message = f"HTTP {response.status_code}: {response.reason_phrase}"
            code: str | None = None
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                message = payload.get("error") or message
                code = payload.get("code")
            raise error_for_status(response.status_code, message, code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise BlocklistApiError(
                "Malformed JSON response", status_code=response.status_code
            ) from exc

    async def list(self) -> list[RemoteBlockedUser]:
        """Fetch the complete remote blocked list."""
        data = await self._request("GET", "/blocked-users")
        users = RemoteBlockedUserList.model_validate(data or {}).users
        logger.debug("blocklist_api_listed", extra={"count": len(users)})
        return users

    async def add(self, identity: str) -> None:
        """Block ``identity`` remotely."""
        body = BlockUserRequest(username=identity).model_dump()
        try:
            await self._request("POST", "/blocked-users", json=body)
        except BlocklistApiError as exc:
            if exc.status_code == 409:
                logger.debug("blocklist_api_already_blocked", extra={"identity": identity})
                return
            raise

    async def remove(self, identity: str) -> None:
        """Unblock ``identity`` remotely."""
        try:
            await self._request("DELETE", f"/blocked-users/{quote(identity, safe='')}")
        except BlocklistApiError as exc:
            if exc.status_code == 404:
                logger.debug("blocklist_api_not_blocked", extra={"identity": identity})
                return
            raise

    async def bulk_add(self, identities: list[str]) -> BulkBlockResult:
        """Block many identities in one call; per-item failures are reported, not raised."""
        body = BulkBlockRequest(usernames=identities).model_dump()
        data = await self._request("POST", "/blocked-users/bulk", json=body)
        result = BulkBlockResult.model_validate(data or {})
        logger.info(
            "blocklist_api_bulk_add",
            extra={"requested": len(identities), "successful": result.successful},
        )
        return result

    async def check_connection(self) -> ConnectionCheck:
        """Check the key and URL with a list call and classify any failure."""
        try:
            await self.list()
        except BlocklistApiError as exc:
            logger.warning("blocklist_api_check_failed", extra={"error": str(exc)})
            return ConnectionCheck(
                success=False,
                error=str(exc),
                is_auth_error=is_auth_error(exc),
                is_network_error=is_network_error(exc),
            )
        except ValidationError as exc:
            logger.warning("blocklist_api_check_malformed_response", extra={"error": str(exc)})
            return ConnectionCheck(success=False, error=f"Unexpected response from API: {exc}")
        return ConnectionCheck(success=True)
