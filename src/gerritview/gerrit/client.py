# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Gerrit REST client with retry, timeout, and typed error handling.

This module provides an async wrapper for Gerrit REST API calls with:
- Bounded retries using exponential backoff (1s, 2s, 4s)
- Request timeouts
- Typed failure classification (auth, not found, server, network)
- XSSI guard stripping for Gerrit JSON responses
- Basic or Bearer authentication, rooted at the ``/a/`` prefix

Usage:
    from gerritview.gerrit.client import Credentials, build_rest_client

    async with build_rest_client("https://gerrit.example.org/") as client:
        version = await client.get_version()
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Final, TypeVar
from urllib.parse import quote, urlsplit

import httpx
from pydantic import ValidationError

from gerritview import __version__
from gerritview.gerrit import rest_wire
from gerritview.gerrit.models import Account, Change, Comment

log = logging.getLogger("gerritview.gerrit.client")

T = TypeVar("T")

MAX_RETRIES: Final[int] = 3
CONNECT_TIMEOUT: Final[float] = 10.0
REQUEST_TIMEOUT: Final[float] = 30.0

_XSSI_MARKER: Final[str] = ")]}"

_QUERY_OPTIONS: Final[str] = "o=CURRENT_REVISION&o=DETAILED_ACCOUNTS"
_DETAIL_OPTIONS: Final[str] = (
    "o=CURRENT_REVISION&o=DETAILED_ACCOUNTS&o=MESSAGES"
)
_ALL_REVISIONS_OPTIONS: Final[str] = "o=ALL_REVISIONS&o=DETAILED_ACCOUNTS"


class GerritRestError(RuntimeError):
    """Base class for REST failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body

    @property
    def retryable(self) -> bool:
        """Whether the failure is transient and worth retrying."""
        return False


class GerritAuthError(GerritRestError):
    """Raised for authentication failures (401/403)."""


class GerritNotFoundError(GerritRestError):
    """Raised when a resource is not found (404)."""


class GerritServerError(GerritRestError):
    """Raised for any other non-2xx response."""

    @property
    def retryable(self) -> bool:
        return self.status_code is not None and self.status_code >= 500


class GerritNetworkError(GerritRestError):
    """Raised when the request never produced an HTTP response."""

    @property
    def retryable(self) -> bool:
        return True


class GerritDecodeError(GerritRestError):
    """Raised when a response body cannot be decoded into the model."""


class GerritRetriesExhaustedError(GerritRestError):
    """Raised when a retryable failure persists past the retry budget."""


class AuthType(str, Enum):
    """Type of HTTP authentication to send."""

    BASIC = "basic"
    BEARER = "bearer"


@dataclass(frozen=True)
class Credentials:
    """HTTP credentials; for Bearer auth the password is the token."""

    username: str
    password: str
    auth_type: AuthType = AuthType.BASIC

    def __repr__(self) -> str:
        return (
            f"Credentials(username={self.username!r}, password='[REDACTED]', "
            f"auth_type={self.auth_type.value!r})"
        )


def _mask_secret(s: str) -> str:
    """Mask a secret for logging, preserving first/last 2 chars."""
    if not s:
        return s
    if len(s) <= 4:
        return "****"
    return s[:2] + "*" * (len(s) - 4) + s[-2:]


def _calculate_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
) -> float:
    """Calculate the exponential backoff delay before the next attempt."""
    return float(min(base_delay * (2**attempt), max_delay))


def strip_xssi(text: str) -> str:
    """
    Strip Gerrit's XSSI guard from a JSON response.

    Gerrit prepends ``)]}'`` (the quote is optional) and a newline to JSON
    responses. Only that first line is removed; a body that does not begin
    with the marker is returned unchanged.
    """
    newline = text.find("\n")
    if newline >= 0 and text[:newline].startswith(_XSSI_MARKER):
        return text[newline + 1 :]
    return text


def _json_loads(text: str, what: str) -> Any:
    """Parse JSON, providing clear error messages."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise GerritDecodeError(
            f"Failed to parse JSON response ({what}, REST): {exc}"
        ) from exc


def _decode(decoder: Callable[[Any], T], data: Any, what: str) -> T:
    """Run a wire decoder, naming the operation on failure."""
    try:
        return decoder(data)
    except ValidationError as exc:
        raise GerritDecodeError(f"parsing {what} (REST): {exc}") from exc


def _auth_header(credentials: Credentials) -> str:
    if credentials.auth_type is AuthType.BEARER:
        return f"Bearer {credentials.password}"
    token = base64.b64encode(
        f"{credentials.username}:{credentials.password}".encode()
    ).decode("ascii")
    return f"Basic {token}"


class GerritRestClient:
    """
    Async REST client for Gerrit with retry and timeout handling.

    Authenticated requests go to ``<base>/a/...`` and unauthenticated ones
    to ``<base>/...``; the prefix follows from whether credentials are set.
    Instances are immutable with respect to credentials: use
    ``with_credentials`` to obtain a client with different ones.
    """

    def __init__(
        self,
        *,
        base_url: str,
        credentials: Credentials | None = None,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the Gerrit REST client.

        Args:
            base_url: The base URL of the Gerrit server, including any
                     sub-path (e.g., "https://host/gerrit/").
            credentials: Optional credentials; enables the /a/ prefix.
            timeout: Total request timeout in seconds.
            max_retries: Retries after the first attempt for transient
                        failures.
            verify: Whether to verify TLS certificates.
            transport: Optional httpx transport (used to inject fakes).
        """
        self._base_url: str = base_url.rstrip("/") + "/"
        self._credentials = credentials
        self._timeout = float(timeout)
        self._max_retries = int(max_retries)
        self._verify = verify
        self._transport = transport
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout, connect=CONNECT_TIMEOUT),
            headers={
                "Accept": "application/json",
                "User-Agent": f"gerritview/{__version__}",
            },
            verify=verify,
            transport=transport,
        )

        log.debug(
            "GerritRestClient initialized: base_url=%s, timeout=%.1fs, "
            "max_retries=%d, auth_user=%s",
            self._base_url,
            self._timeout,
            self._max_retries,
            credentials.username if credentials else "(none)",
        )

    async def __aenter__(self) -> GerritRestClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    @property
    def base_url(self) -> str:
        """Get the base URL of the Gerrit server."""
        return self._base_url

    @property
    def credentials(self) -> Credentials | None:
        """Get the credentials in use, if any."""
        return self._credentials

    @property
    def is_authenticated(self) -> bool:
        """Check if the client has authentication credentials."""
        return self._credentials is not None

    def with_credentials(self, credentials: Credentials) -> GerritRestClient:
        """Return a new client for the same server using other credentials."""
        return GerritRestClient(
            base_url=self._base_url,
            credentials=credentials,
            timeout=self._timeout,
            max_retries=self._max_retries,
            verify=self._verify,
            transport=self._transport,
        )

    def api_url(self, path: str) -> str:
        """
        Build the full URL for an API path.

        The path is appended to the base URL's own path so that a sub-path
        prefix (e.g. "/gerrit/") is preserved.
        """
        if not path.startswith("/"):
            path = "/" + path
        prefix = "a/" if self._credentials is not None else ""
        return f"{self._base_url}{prefix}{path[1:]}"

    async def get(self, path: str) -> str:
        """
        Perform a GET request with retry on transient errors.

        Args:
            path: The API path (e.g., "/changes/12345").

        Returns:
            The response body with the XSSI guard removed.

        Raises:
            GerritAuthError: On 401/403.
            GerritNotFoundError: On 404.
            GerritServerError: On other non-retryable statuses.
            GerritRetriesExhaustedError: When retries are used up.
        """
        if not path:
            raise ValueError("path is required")

        url = self.api_url(path)
        attempts = self._max_retries + 1

        for attempt in range(attempts):
            try:
                return await self._get_once(url, path)
            except GerritRestError as exc:
                if not exc.retryable:
                    raise
                if attempt >= self._max_retries:
                    raise GerritRetriesExhaustedError(
                        f"Gerrit API request to {path} (exhausted retries): "
                        f"{exc}",
                        status_code=exc.status_code,
                        response_body=exc.response_body,
                    ) from exc
                delay = _calculate_backoff(attempt)
                log.warning(
                    "Gerrit REST GET %s failed (attempt %d/%d): %s, "
                    "retrying in %.1fs",
                    path,
                    attempt + 1,
                    attempts,
                    exc,
                    delay,
                )
                # Cancellation of the caller interrupts this sleep.
                await asyncio.sleep(delay)

        raise GerritRestError(f"Gerrit REST GET {path} failed unexpectedly")

    async def _get_once(self, url: str, path: str) -> str:
        """Perform a single GET request (no retry)."""
        headers = {}
        if self._credentials is not None:
            headers["Authorization"] = _auth_header(self._credentials)

        log.debug(
            "Gerrit REST GET %s (auth=%s)",
            url,
            "yes" if self._credentials else "no",
        )

        try:
            resp = await self._client.get(url, headers=headers)
        except httpx.HTTPError as exc:
            raise GerritNetworkError(
                f"network error for {path}: {exc}"
            ) from exc

        status = resp.status_code
        if status in (401, 403):
            raise GerritAuthError(
                f"authentication failed (HTTP {status}) for {path}",
                status_code=status,
                response_body=resp.text,
            )
        if status == 404:
            raise GerritNotFoundError(
                f"not found (HTTP 404): {path}",
                status_code=status,
                response_body=resp.text,
            )
        if not resp.is_success:
            raise GerritServerError(
                f"server error (HTTP {status}) for {path}: {resp.text}",
                status_code=status,
                response_body=resp.text,
            )

        return strip_xssi(resp.text)

    async def _get_json(self, path: str, what: str) -> Any:
        body = await self.get(path)
        if not body.strip():
            raise GerritDecodeError(f"empty response body ({what}, REST)")
        return _json_loads(body, what)

    async def get_version(self) -> str:
        """Get the Gerrit server version."""
        data = await self._get_json("/config/server/version", "server version")
        return _decode(rest_wire.decode_version, data, "server version")

    async def get_self_account(self) -> Account:
        """Get the authenticated user's account info."""
        data = await self._get_json("/accounts/self", "account info")
        return _decode(rest_wire.decode_account, data, "account info")

    async def verify_credentials(self) -> Account:
        """Confirm the configured credentials are accepted by the server."""
        try:
            account = await self.get_self_account()
        except GerritRestError as exc:
            raise type(exc)(
                f"verifying credentials against Gerrit: {exc}",
                status_code=exc.status_code,
                response_body=exc.response_body,
            ) from exc
        log.debug("credentials verified for %s", account.display())
        return account

    async def query_changes(self, query: str) -> list[Change]:
        """Query changes using Gerrit query syntax."""
        path = f"/changes/?q={quote(query, safe='')}&{_QUERY_OPTIONS}"
        data = await self._get_json(path, "change list")
        return _decode(rest_wire.decode_changes, data, "change list")

    async def get_change_detail(self, change_id: str) -> Change:
        """Get change detail with the current revision and messages."""
        path = f"/changes/{_encode(change_id)}/detail?{_DETAIL_OPTIONS}"
        data = await self._get_json(path, "change detail")
        return _decode(rest_wire.decode_change, data, "change detail")

    async def get_change_all_revisions(self, change_id: str) -> Change:
        """Get change detail including every revision."""
        path = f"/changes/{_encode(change_id)}/detail?{_ALL_REVISIONS_OPTIONS}"
        what = "change detail with all revisions"
        data = await self._get_json(path, what)
        return _decode(rest_wire.decode_change, data, what)

    async def get_change_comments(
        self, change_id: str
    ) -> dict[str, list[Comment]]:
        """Get all published comments on a change (all revisions)."""
        path = f"/changes/{_encode(change_id)}/comments"
        data = await self._get_json(path, "change comments")
        return _decode(rest_wire.decode_comment_map, data, "change comments")

    async def get_revision_comments(
        self, change_id: str, revision: str
    ) -> dict[str, list[Comment]]:
        """Get published comments on a single revision."""
        path = (
            f"/changes/{_encode(change_id)}/revisions/"
            f"{_encode(revision)}/comments"
        )
        data = await self._get_json(path, "revision comments")
        return _decode(rest_wire.decode_comment_map, data, "revision comments")

    async def get_robot_comments(
        self, change_id: str
    ) -> dict[str, list[Comment]]:
        """Get robot (automated) comments on a change."""
        path = f"/changes/{_encode(change_id)}/robotcomments"
        data = await self._get_json(path, "robot comments")
        return _decode(rest_wire.decode_comment_map, data, "robot comments")

    def __repr__(self) -> str:
        """String representation for debugging."""
        masked = ""
        if self._credentials is not None:
            masked = (
                f"{self._credentials.username}:"
                f"{_mask_secret(self._credentials.password)}@"
            )
        return f"GerritRestClient(base_url='{masked}{self._base_url}')"


def _encode(segment: str) -> str:
    return quote(segment, safe="")


def build_rest_client(
    base_url: str,
    credentials: Credentials | None = None,
    *,
    allow_insecure: bool = False,
    timeout: float = REQUEST_TIMEOUT,
    verify: bool = True,
    transport: httpx.AsyncBaseTransport | None = None,
) -> GerritRestClient:
    """
    Build a GerritRestClient for a server base URL.

    Args:
        base_url: Server URL with http or https scheme.
        credentials: Optional credentials to attach.
        allow_insecure: Permit credentials over plain HTTP.
        timeout: Request timeout in seconds.
        verify: Whether to verify TLS certificates.
        transport: Optional httpx transport.

    Returns:
        A configured GerritRestClient instance.

    Raises:
        GerritRestError: If the scheme is unsupported, or credentials would
            be sent over plain HTTP without ``allow_insecure``.
    """
    scheme = urlsplit(base_url).scheme
    if scheme not in ("http", "https"):
        raise GerritRestError(f"Unsupported URL scheme: {scheme!r}")
    if credentials is not None and scheme != "https" and not allow_insecure:
        raise GerritRestError(
            f"refusing to send credentials over plain HTTP (scheme: {scheme}); "
            "enable insecure mode or switch to HTTPS"
        )
    return GerritRestClient(
        base_url=base_url,
        credentials=credentials,
        timeout=timeout,
        verify=verify,
        transport=transport,
    )


__all__ = [
    "AuthType",
    "Credentials",
    "GerritAuthError",
    "GerritDecodeError",
    "GerritNetworkError",
    "GerritNotFoundError",
    "GerritRestClient",
    "GerritRestError",
    "GerritRetriesExhaustedError",
    "GerritServerError",
    "MAX_RETRIES",
    "build_rest_client",
    "strip_xssi",
]
