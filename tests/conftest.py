"""Shared pytest fixtures for teams-relay tests.

This module provides common fixtures for:
- A pinned clock (FixedTimeProvider)
- Temporary config files
- Test database instances and in-memory key/value stores
- A scripted fake of the Entra ID and Graph HTTP endpoints
- Sample Graph payloads
"""

from __future__ import annotations

import json
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx
import pytest
import yaml

from teamsrelay.clock import FixedTimeProvider
from teamsrelay.config import validate_config
from teamsrelay.state import InMemoryKeyValueStore, StateStore

if TYPE_CHECKING:
    from collections.abc import Callable, Generator

    from teamsrelay.config import Config
    from teamsrelay.routing import ConsumerRegistration, HydratedMessage


TENANT_ID = "tenant-123"
TOKEN_URL = f"https://login.microsoftonline.com/{TENANT_ID}/oauth2/v2.0/token"
GRAPH = "https://graph.microsoft.com/v1.0"

TEAM_ID = "team-1"
CHANNEL_ID = "19:chan-1@thread.tacv2"
MESSAGE_ID = "1700000000000"
MESSAGE_RESOURCE = f"teams('{TEAM_ID}')/channels('{CHANNEL_ID}')/messages('{MESSAGE_ID}')"
MESSAGE_URL = f"{GRAPH}/{MESSAGE_RESOURCE}"


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def frozen_time() -> datetime:
    """Return a fixed datetime for deterministic tests."""
    return datetime(2026, 1, 10, 15, 30, 0, tzinfo=UTC)


@pytest.fixture
def clock(frozen_time: datetime) -> FixedTimeProvider:
    """Return a settable clock starting at frozen_time."""
    return FixedTimeProvider(frozen_time)


@pytest.fixture
def now_ms(frozen_time: datetime) -> int:
    """frozen_time in epoch milliseconds."""
    return int(frozen_time.timestamp() * 1000)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory (cleaned up after test)
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def minimal_config() -> dict[str, Any]:
    """Return a minimal valid configuration dictionary."""
    return {
        "version": 1,
        "tenant": {
            "tenant_id": TENANT_ID,
            "client_id": "client-abc",
            "client_secret": "s3cret-value",
        },
        "webhook": {
            "public_url": "https://relay.example.com/hooks",
        },
    }


@pytest.fixture
def sample_config(minimal_config: dict[str, Any]) -> dict[str, Any]:
    """Return a configuration with subscriptions enabled and two consumers."""
    return {
        **minimal_config,
        "subscriptions": {"enabled": True},
        "consumers": [
            {
                "id": "ops-feed",
                "team_id": TEAM_ID,
            },
            {
                "id": "general-only",
                "team_id": TEAM_ID,
                "channel_id": CHANNEL_ID,
                "target": {"type": "webhook", "url": "https://consumer.example.com/in"},
            },
            {
                "id": "other-team",
                "team_id": "team-10",
            },
        ],
    }


@pytest.fixture
def config(sample_config: dict[str, Any]) -> Config:
    """Validated Config built from sample_config."""
    return validate_config(sample_config)


@pytest.fixture
def write_config(temp_dir: Path) -> Callable[..., Path]:
    """Factory fixture to write config files.

    Args:
        config: Configuration dictionary
        filename: Name of the config file (default: config.yaml)

    Returns:
        Path to the written config file
    """

    def _write(config: dict[str, Any], filename: str = "config.yaml") -> Path:
        path = temp_dir / filename
        with path.open("w") as f:
            yaml.safe_dump(config, f)
        return path

    return _write


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def test_db_path(temp_dir: Path) -> Path:
    """Return path for a test database file."""
    return temp_dir / "state.db"


@pytest.fixture
def state_store(test_db_path: Path) -> Generator[StateStore, None, None]:
    """Create a StateStore for testing.

    Yields:
        Initialized StateStore instance (closed after test)
    """
    store = StateStore(test_db_path)
    yield store
    store.close()


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


# ============================================================================
# HTTP Fakes
# ============================================================================


@dataclass
class ScriptedResponse:
    status: int = 200
    json_body: Any = None
    text: str | None = None
    error: Exception | None = None


@dataclass
class FakeGraph:
    """Scripted stand-in for login.microsoftonline.com and graph.microsoft.com.

    Register responses per (method, url). When several responses are
    registered for the same route they are served in order and the last one
    repeats. Unregistered routes answer 404 with a Graph-style error body.
    """

    routes: dict[tuple[str, str], list[ScriptedResponse]] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    @staticmethod
    def _key(method: str, url: str) -> tuple[str, str]:
        return method.upper(), str(httpx.URL(url)).split("?", 1)[0]

    def on(
        self,
        method: str,
        url: str,
        *,
        status: int = 200,
        json: Any = None,
        text: str | None = None,
        error: Exception | None = None,
    ) -> FakeGraph:
        self.routes.setdefault(self._key(method, url), []).append(
            ScriptedResponse(status=status, json_body=json, text=text, error=error)
        )
        return self

    def on_token(
        self,
        token: str = "eyJ0eXAi.fake-access.token",
        expires_in: int | None = 3599,
    ) -> FakeGraph:
        body: dict[str, Any] = {"token_type": "Bearer", "access_token": token}
        if expires_in is not None:
            body["expires_in"] = expires_in
        return self.on("POST", TOKEN_URL, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url).split("?", 1)[0])
        scripted = self.routes.get(key)
        if not scripted:
            return httpx.Response(
                404,
                json={"error": {"code": "NotFound", "message": f"No route for {key}"}},
            )
        response = scripted.pop(0) if len(scripted) > 1 else scripted[0]
        if response.error is not None:
            raise response.error
        if response.text is not None:
            return httpx.Response(response.status, text=response.text)
        if response.json_body is None:
            return httpx.Response(response.status)
        return httpx.Response(response.status, json=response.json_body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls(self, method: str | None = None, url: str | None = None) -> list[httpx.Request]:
        """Recorded requests, optionally filtered by method and exact URL."""
        result = self.requests
        if method is not None:
            result = [r for r in result if r.method == method.upper()]
        if url is not None:
            target = str(httpx.URL(url)).split("?", 1)[0]
            result = [r for r in result if str(r.url).split("?", 1)[0] == target]
        return result

    @staticmethod
    def json_of(request: httpx.Request) -> Any:
        return json.loads(request.content)


@pytest.fixture
def fake_graph() -> FakeGraph:
    return FakeGraph()


@dataclass
class RecordingSink:
    """ConsumerSink that records deliveries and can be told to fail."""

    deliveries: list[tuple[list[str], dict[str, Any]]] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)

    async def deliver(
        self,
        consumers: list[ConsumerRegistration],
        hydrated: HydratedMessage,
    ) -> None:
        payload = hydrated.to_payload()
        if any(payload.get("id") == message_id for message_id in self.fail_for):
            msg = f"sink rejected {payload.get('id')}"
            raise RuntimeError(msg)
        self.deliveries.append(([c.consumer_id for c in consumers], payload))


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


# ============================================================================
# Graph Payload Fixtures
# ============================================================================


@pytest.fixture
def channel_message() -> dict[str, Any]:
    """Return a sample Graph chatMessage."""
    return {
        "id": MESSAGE_ID,
        "messageType": "message",
        "createdDateTime": "2026-01-10T15:29:58.123Z",
        "from": {
            "user": {"id": "user-42", "displayName": "Ada Lovelace"},
        },
        "body": {
            "contentType": "html",
            "content": "<p>Deploy finished &amp; green</p>",
        },
        "channelIdentity": {"teamId": TEAM_ID, "channelId": CHANNEL_ID},
        "webUrl": "https://teams.microsoft.com/l/message/19%3Achan-1/1700000000000",
    }


@pytest.fixture
def system_event_message() -> dict[str, Any]:
    """Return a Graph system event message (member added, renamed, ...)."""
    return {
        "id": MESSAGE_ID,
        "messageType": "systemEventMessage",
        "body": {"contentType": "html", "content": "<systemEventMessage/>"},
    }


@pytest.fixture
def notification_batch() -> dict[str, Any]:
    """Return a data notification batch with one channel message."""
    return {
        "value": [
            {
                "subscriptionId": "sub-1",
                "changeType": "created",
                "clientState": "teams-relay",
                "resource": MESSAGE_RESOURCE,
                "tenantId": TENANT_ID,
            }
        ]
    }
