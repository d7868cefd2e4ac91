"""Error taxonomy for the remote blocked-users API.

The sync engine never inspects HTTP details directly; it asks the predicates
at the bottom of this module whether a failure is worth retrying.
"""

from __future__ import annotations


class BlocklistApiError(Exception):
    """Base exception for remote blocklist API failures."""

    def __init__(
        self, message: str, *, status_code: int | None = None, code: str | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class NetworkError(BlocklistApiError):
    """Connection failure or timeout before a response arrived."""


class ServerError(BlocklistApiError):
    """Remote answered with a 5xx status."""


class AuthError(BlocklistApiError):
    """Remote rejected the API key (401)."""


class ClientError(BlocklistApiError):
    """Remote rejected the request with a 4xx status other than 401."""


class NoCredentialError(Exception):
    """No API key is configured; the engine is in offline mode."""

    reason = "no_api_key"


def error_for_status(status_code: int, message: str, code: str | None = None) -> BlocklistApiError:
    """Build the taxonomy member matching an HTTP error status."""
    if status_code == 401:
        return AuthError(message, status_code=status_code, code=code)
    if 500 <= status_code < 600:
        return ServerError(message, status_code=status_code, code=code)
    if 400 <= status_code < 500:
        return ClientError(message, status_code=status_code, code=code)
    return BlocklistApiError(message, status_code=status_code, code=code)


def is_network_error(error: BaseException) -> bool:
    return isinstance(error, NetworkError)


def is_auth_error(error: BaseException) -> bool:
    return isinstance(error, AuthError) or getattr(error, "status_code", None) == 401


def is_server_error(error: BaseException) -> bool:
    status_code = getattr(error, "status_code", None)
    return isinstance(error, ServerError) or (
        isinstance(status_code, int) and 500 <= status_code < 600
    )


def is_retryable_error(error: BaseException) -> bool:
    """Network failures and server errors are transient; everything else is final."""
    return is_network_error(error) or is_server_error(error)
