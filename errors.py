"""Errors raised to callers of ApiClient.

Transport failures are not wrapped: aiohttp's own ``ClientError`` hierarchy
(and ``asyncio.TimeoutError``) reaches the caller unchanged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from api_client import Response


class ApiClientError(Exception):
    """Base class for every error raised by the client itself."""


class UnsupportedMethod(ApiClientError, ValueError):  # noqa: N818
    """Raised by ``ApiClient.request`` for a missing or unknown HTTP method.

    The request is never enqueued.
    """

    def __init__(self, method: str | None):
        super().__init__(f"Unsupported HTTP method: {method!r}")
        self.method = method


class HTTPStatusError(ApiClientError):
    """A request finished with a non-2xx status.

    A 401 only ends up here when it could not be recovered: no refresh token
    was held, the refresh itself was rejected, or the replayed request was
    rejected again.
    """

    def __init__(self, method: str, url: str, response: Response):
        super().__init__(f"{method} {url} → {response.status}")
        self.method = method
        self.url = url
        self.response = response

    @property
    def status(self) -> int:
        return self.response.status


class QueueCleared(ApiClientError):  # noqa: N818
    """The request was dropped from the queue before it was dispatched."""


class ClientClosed(ApiClientError):  # noqa: N818
    """The client was closed before the request could be queued."""
