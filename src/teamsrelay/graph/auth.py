"""Entra ID client-credentials authentication and token caching.

This module provides:
- IdentityProviderClient: exchanges app credentials for a Graph bearer token
- TokenCache: persists the credential in the key/value store and refreshes
  it proactively, five minutes before expiry
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import httpx

from teamsrelay.clock import SystemTimeProvider, now_ms
from teamsrelay.logging import log_token_refreshed

if TYPE_CHECKING:
    from teamsrelay.clock import TimeProvider
    from teamsrelay.state.store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"

# Used when the token endpoint omits expires_in
DEFAULT_EXPIRES_IN_SECONDS = 3599

# A cached token is never used within this window before its expiry
REFRESH_BUFFER_MS = int(timedelta(minutes=5).total_seconds() * 1000)

ACCESS_TOKEN_KEY = "ms_graph_access_token"
TOKEN_EXPIRY_KEY = "ms_graph_token_expiry"


class AuthFailure(Exception):
    """Raised when the identity provider rejects the credentials or is unreachable."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        """Initialize authentication failure.

        Args:
            message: Error description.
            status_code: HTTP status code if the provider answered.
            error_code: OAuth error code (e.g. 'invalid_client').
        """
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


@dataclass(frozen=True)
class Credential:
    """A bearer token and its expiry in epoch milliseconds."""

    bearer_token: str = field(repr=False)
    expires_at_ms: int

    def is_fresh(self, at_ms: int, buffer_ms: int = REFRESH_BUFFER_MS) -> bool:
        """Whether the token is still usable at the given time, buffer included."""
        return at_ms + buffer_ms < self.expires_at_ms


def mask_token(token: str) -> str:
    """Mask a token for safe logging.

    Args:
        token: Token to mask.

    Returns:
        Masked token showing first 4 and last 4 characters.
    """
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"


class IdentityProviderClient:
    """OAuth2 client-credentials exchange against the Entra ID v2.0 endpoint.

    The client supports both context manager and standalone usage. An
    externally supplied httpx client is used as-is and never closed here.
    """

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        *,
        authority: str = DEFAULT_AUTHORITY,
        scope: str = GRAPH_SCOPE,
        time_provider: TimeProvider | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._authority = authority.rstrip("/")
        self._scope = scope
        self._time = time_provider or SystemTimeProvider()
        self._client = client
        self._owns_client = client is None

    @property
    def token_url(self) -> str:
        return f"{self._authority}/{self._tenant_id}/oauth2/v2.0/token"

    async def __aenter__(self) -> IdentityProviderClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
            self._owns_client = True
        return self._client

    async def exchange(self) -> Credential:
        """Exchange the app credentials for a fresh bearer token.

        Returns:
            Credential expiring expires_in seconds from now (3599 if omitted).

        Raises:
            AuthFailure: If the provider rejects the request or cannot be reached.
        """
        client = await self._ensure_client()
        form = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "scope": self._scope,
            "grant_type": "client_credentials",
        }

        try:
            response = await client.post(self.token_url, data=form)
        except httpx.RequestError as e:
            raise AuthFailure(f"Failed to reach identity provider: {e}") from e

        body = _json_or_empty(response)

        if not response.is_success:
            error_code = body.get("error") if isinstance(body.get("error"), str) else None
            detail = body.get("error_description") or error_code or response.reason_phrase
            raise AuthFailure(
                f"Failed to get access token: {detail}",
                status_code=response.status_code,
                error_code=error_code,
            )

        token = body.get("access_token")
        if not isinstance(token, str) or not token:
            raise AuthFailure(
                "Token response did not contain an access_token",
                status_code=response.status_code,
            )

        expires_in = body.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS
        try:
            expires_in_seconds = int(expires_in)
        except (TypeError, ValueError):
            expires_in_seconds = DEFAULT_EXPIRES_IN_SECONDS

        credential = Credential(
            bearer_token=token,
            expires_at_ms=now_ms(self._time) + expires_in_seconds * 1000,
        )
        logger.debug(
            "Obtained access token %s (expires in %ds)",
            mask_token(token),
            expires_in_seconds,
        )
        return credential


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class TokenCache:
    """Bearer credential cache backed by a KeyValueStore.

    The credential is stored under two fixed keys (token and expiry as a
    decimal string of epoch milliseconds). Writes overwrite; nothing is
    ever deleted. Concurrent refreshes are last-writer-wins.
    """

    def __init__(
        self,
        store: KeyValueStore,
        identity: IdentityProviderClient,
        *,
        time_provider: TimeProvider | None = None,
    ) -> None:
        self._store = store
        self._identity = identity
        self._time = time_provider or SystemTimeProvider()

    def peek(self) -> Credential | None:
        """Read the stored credential without checking freshness."""
        token = self._store.get(ACCESS_TOKEN_KEY)
        raw_expiry = self._store.get(TOKEN_EXPIRY_KEY)
        if not token or not raw_expiry:
            return None
        try:
            expires_at_ms = int(raw_expiry)
        except ValueError:
            logger.warning("Ignoring unparseable token expiry: %r", raw_expiry)
            return None
        return Credential(bearer_token=token, expires_at_ms=expires_at_ms)

    async def get_valid_token(self) -> Credential:
        """Return a credential usable for at least the next five minutes.

        Raises:
            AuthFailure: If a refresh was needed and the exchange failed.
        """
        cached = self.peek()
        if cached is not None and cached.is_fresh(now_ms(self._time)):
            return cached
        return await self.refresh(trigger="cache_miss")

    async def refresh(self, trigger: str = "forced") -> Credential:
        """Exchange for a new credential and overwrite the stored one.

        Args:
            trigger: Reason for the refresh, recorded in the log event.

        Raises:
            AuthFailure: If the exchange failed. The stored credential is left as is.
        """
        credential = await self._identity.exchange()
        self._store.set(ACCESS_TOKEN_KEY, credential.bearer_token)
        self._store.set(TOKEN_EXPIRY_KEY, str(credential.expires_at_ms))
        log_token_refreshed(trigger, credential.expires_at_ms)
        return credential
