"""Tests for the teams-relay command line interface."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
import structlog
from typer.testing import CliRunner

from conftest import GRAPH, TOKEN_URL, FakeGraph, RecordingSink
from teamsrelay import __version__, cli
from teamsrelay.cli import ExitCode, app
from teamsrelay.graph.auth import ACCESS_TOKEN_KEY, TOKEN_EXPIRY_KEY
from teamsrelay.integration import Integration
from teamsrelay.state import (
    SIGNAL_NAMESPACE,
    SUBSCRIPTION_EXPIRY_KEY,
    SUBSCRIPTION_ID_KEY,
    TOKEN_NAMESPACE,
    StateStore,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from pathlib import Path

    from teamsrelay.config import Config

runner = CliRunner()

# 2100-01-01T00:00:00Z
FAR_FUTURE_MS = 4102444800000


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Commands configure structlog against the runner's streams."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def config_path(sample_config: dict[str, Any], write_config: Callable[..., Path]) -> Path:
    return write_config(sample_config)


@pytest.fixture
def state_dir(temp_dir: Path) -> Path:
    return temp_dir / "state"


@pytest.fixture
def offline_integration(fake_graph: FakeGraph, monkeypatch: pytest.MonkeyPatch) -> FakeGraph:
    """Route every CLI-built integration through the fake Graph."""

    def build(cfg: Config, store: StateStore) -> Integration:
        return Integration.from_config(
            cfg, store, http_client=fake_graph.client(), sink=RecordingSink()
        )

    monkeypatch.setattr(cli, "_build_integration", build)
    return fake_graph


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"teams-relay {__version__}" in result.output


class TestValidate:
    def test_valid_config(self, config_path: Path) -> None:
        result = runner.invoke(app, ["validate", "--config", str(config_path)])

        assert result.exit_code == ExitCode.SUCCESS
        assert "Configuration is valid" in result.output

    def test_verbose_summary(self, config_path: Path) -> None:
        result = runner.invoke(app, ["validate", "--config", str(config_path), "--verbose"])

        assert result.exit_code == ExitCode.SUCCESS
        assert "Notification URL: https://relay.example.com/hooks/webhook" in result.output
        assert "Subscriptions: enabled" in result.output
        assert "Consumers: 3 (3 enabled)" in result.output
        assert "general-only: team-1/19:chan-1@thread.tacv2 -> webhook" in result.output

    def test_invalid_config(
        self, minimal_config: dict[str, Any], write_config: Callable[..., Path]
    ) -> None:
        minimal_config["webhook"]["public_url"] = "http://insecure.example.com"
        path = write_config(minimal_config)

        result = runner.invoke(app, ["validate", "--config", str(path)])

        assert result.exit_code == ExitCode.CONFIG_ERROR
        assert "public_url" in result.output

    def test_missing_config(self, temp_dir: Path) -> None:
        result = runner.invoke(app, ["validate", "--config", str(temp_dir / "absent.yaml")])

        assert result.exit_code == ExitCode.CONFIG_ERROR
        assert "Config file not found" in result.output


class TestStatus:
    def test_no_database(self, state_dir: Path) -> None:
        result = runner.invoke(app, ["status", "--state-dir", str(state_dir)])

        assert result.exit_code == ExitCode.SUCCESS
        assert "No state database found" in result.output
        assert not (state_dir / "state.db").exists()

    def test_shows_token_and_subscription(self, state_dir: Path) -> None:
        store = StateStore(state_dir / "state.db")
        store.set(TOKEN_NAMESPACE, ACCESS_TOKEN_KEY, "stored-token")
        store.set(TOKEN_NAMESPACE, TOKEN_EXPIRY_KEY, str(FAR_FUTURE_MS))
        store.set(SIGNAL_NAMESPACE, SUBSCRIPTION_ID_KEY, "sub-1")
        store.set(SIGNAL_NAMESPACE, SUBSCRIPTION_EXPIRY_KEY, str(FAR_FUTURE_MS))
        store.close()

        result = runner.invoke(app, ["status", "--state-dir", str(state_dir)])

        assert result.exit_code == ExitCode.SUCCESS
        assert "2100-01-01T00:00:00+00:00 (valid)" in result.output
        assert "ID: sub-1" in result.output
        assert "stored-token" not in result.output

    def test_expired_token_and_no_subscription(self, state_dir: Path) -> None:
        store = StateStore(state_dir / "state.db")
        store.set(TOKEN_NAMESPACE, ACCESS_TOKEN_KEY, "stored-token")
        store.set(TOKEN_NAMESPACE, TOKEN_EXPIRY_KEY, "1000")
        store.close()

        result = runner.invoke(app, ["status", "--state-dir", str(state_dir)])

        assert "(expired)" in result.output
        assert "ID: (none)" in result.output
        assert "Expires: (none)" in result.output


class TestSync:
    def test_creates_subscription(
        self, config_path: Path, state_dir: Path, offline_integration: FakeGraph
    ) -> None:
        offline_integration.on_token()
        offline_integration.on("GET", f"{GRAPH}/organization", json={"value": []})
        offline_integration.on("POST", f"{GRAPH}/subscriptions", status=201, json={"id": "sub-9"})

        result = runner.invoke(
            app, ["sync", "--config", str(config_path), "--state-dir", str(state_dir)]
        )

        assert result.exit_code == ExitCode.SUCCESS
        assert "Ready (subscription: created)" in result.output
        store = StateStore(state_dir / "state.db")
        try:
            assert store.get(SIGNAL_NAMESPACE, SUBSCRIPTION_ID_KEY) == "sub-9"
        finally:
            store.close()

    def test_auth_failure_exit_code(
        self, config_path: Path, state_dir: Path, offline_integration: FakeGraph
    ) -> None:
        offline_integration.on("POST", TOKEN_URL, status=401, json={"error": "invalid_client"})

        result = runner.invoke(
            app, ["sync", "--config", str(config_path), "--state-dir", str(state_dir)]
        )

        assert result.exit_code == ExitCode.AUTH_ERROR
        assert "Authentication failed, see logs" in result.output

    def test_api_failure_exit_code(
        self, config_path: Path, state_dir: Path, offline_integration: FakeGraph
    ) -> None:
        offline_integration.on_token()
        offline_integration.on("GET", f"{GRAPH}/organization", status=403)

        result = runner.invoke(
            app, ["sync", "--config", str(config_path), "--state-dir", str(state_dir)]
        )

        assert result.exit_code == ExitCode.PARTIAL_FAILURE
        assert "API access failed, see logs" in result.output


class TestRefreshToken:
    def test_success(
        self, config_path: Path, state_dir: Path, offline_integration: FakeGraph
    ) -> None:
        offline_integration.on_token(token="cli-token")

        result = runner.invoke(
            app, ["refresh-token", "--config", str(config_path), "--state-dir", str(state_dir)]
        )

        assert result.exit_code == ExitCode.SUCCESS
        assert "Token refreshed" in result.output
        assert "cli-token" not in result.output

    def test_rejected(
        self, config_path: Path, state_dir: Path, offline_integration: FakeGraph
    ) -> None:
        offline_integration.on(
            "POST",
            TOKEN_URL,
            status=401,
            json={"error": "invalid_client", "error_description": "Bad secret"},
        )

        result = runner.invoke(
            app, ["refresh-token", "--config", str(config_path), "--state-dir", str(state_dir)]
        )

        assert result.exit_code == ExitCode.AUTH_ERROR
        assert "Bad secret" in result.output


class TestDrain:
    def test_nothing_to_drain(
        self, config_path: Path, state_dir: Path, offline_integration: FakeGraph
    ) -> None:
        result = runner.invoke(
            app, ["drain", "--config", str(config_path), "--state-dir", str(state_dir)]
        )

        assert result.exit_code == ExitCode.SUCCESS
        assert "Subscription drained" in result.output
        assert offline_integration.requests == []

    def test_delete_failure(
        self, config_path: Path, state_dir: Path, offline_integration: FakeGraph
    ) -> None:
        store = StateStore(state_dir / "state.db")
        store.set(SIGNAL_NAMESPACE, SUBSCRIPTION_ID_KEY, "sub-1")
        store.close()
        offline_integration.on_token()
        offline_integration.on("DELETE", f"{GRAPH}/subscriptions/sub-1", status=500)

        result = runner.invoke(
            app, ["drain", "--config", str(config_path), "--state-dir", str(state_dir)]
        )

        assert result.exit_code == ExitCode.PARTIAL_FAILURE
        assert "Failed to delete subscription, see logs" in result.output
