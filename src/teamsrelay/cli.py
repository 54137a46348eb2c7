"""CLI entry point for Teams Relay.

This module provides the Typer-based CLI with commands:
- teams-relay serve: Run the webhook server and maintenance scheduler
- teams-relay sync: Run one reconciliation pass
- teams-relay refresh-token: Force a token refresh
- teams-relay drain: Delete the stored subscription
- teams-relay validate: Validate configuration
- teams-relay status: Show stored token and subscription state

Exit codes:
- 0: Success
- 1: Configuration error
- 2: Authentication error
- 3: Partial failure
- 4: Fatal error
"""

from __future__ import annotations

import asyncio
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
import uvicorn

from teamsrelay import __version__
from teamsrelay.clock import SystemTimeProvider, from_epoch_ms, now_ms
from teamsrelay.config import load_config
from teamsrelay.config.loader import (
    ConfigError,
    ConfigNotFoundError,
    ConfigValidationError,
    EnvironmentVariableError,
)
from teamsrelay.graph.auth import ACCESS_TOKEN_KEY, TOKEN_EXPIRY_KEY, AuthFailure
from teamsrelay.integration import AUTH_FAILED, Integration
from teamsrelay.logging import configure_logging, get_logger
from teamsrelay.paths import get_default_state_dir
from teamsrelay.scheduler import MaintenanceScheduler
from teamsrelay.state import SIGNAL_NAMESPACE, TOKEN_NAMESPACE, StateStore, load_signals
from teamsrelay.webhook import create_app

if TYPE_CHECKING:
    import structlog

    from teamsrelay.config.schema import Config


class ExitCode(IntEnum):
    """CLI exit codes."""

    SUCCESS = 0
    CONFIG_ERROR = 1
    AUTH_ERROR = 2
    PARTIAL_FAILURE = 3
    FATAL_ERROR = 4


app = typer.Typer(
    name="teams-relay",
    help="Teams Relay - Microsoft Graph change notifications for Teams channel messages.",
    add_completion=False,
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to configuration file.",
    ),
]
StateDirOption = Annotated[
    Path | None,
    typer.Option(
        "--state-dir",
        help="State directory path (overrides state.directory).",
    ),
]
VerboseOption = Annotated[
    bool,
    typer.Option(
        "--verbose",
        "-v",
        help="Enable debug logging.",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"teams-relay {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Teams Relay - Microsoft Graph change notifications for Teams."""


def _fail(message: str, code: ExitCode) -> typer.Exit:
    typer.echo(typer.style(f"✗ {message}", fg=typer.colors.RED), err=True)
    return typer.Exit(code)


def _load_config_or_exit(config: Path | None) -> Config:
    try:
        return load_config(config)
    except ConfigError as e:
        raise _fail(f"Configuration error: {e}", ExitCode.CONFIG_ERROR) from e


def _open_state(cfg: Config, state_dir: Path | None) -> StateStore:
    directory = state_dir or cfg.state.get_directory()
    return StateStore(directory / "state.db")


def _build_integration(cfg: Config, store: StateStore) -> Integration:
    return Integration.from_config(cfg, store)


@app.command()
def validate(
    config: ConfigOption = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Show a configuration summary.",
        ),
    ] = False,
) -> None:
    """Validate configuration without running.

    Loads the configuration file, expands environment variables,
    and validates against the schema. Exits with code 0 if valid,
    or code 1 if there are errors.
    """
    configure_logging(verbose=verbose, json_output=False)
    log = get_logger("teamsrelay.cli")

    try:
        cfg = load_config(config)
    except (ConfigNotFoundError, EnvironmentVariableError, ConfigValidationError) as e:
        raise _fail(str(e), ExitCode.CONFIG_ERROR) from e
    except ConfigError as e:
        log.exception("Configuration error")
        raise _fail(str(e), ExitCode.CONFIG_ERROR) from e

    typer.echo(typer.style("✓ Configuration is valid", fg=typer.colors.GREEN))

    if verbose:
        enabled = cfg.get_enabled_consumers()
        typer.echo("\nConfiguration summary:")
        typer.echo(f"  Version: {cfg.version}")
        typer.echo(f"  Tenant: {cfg.tenant.tenant_id}")
        typer.echo(f"  Notification URL: {cfg.webhook.notification_url}")
        typer.echo(f"  Lifecycle URL: {cfg.webhook.lifecycle_url}")
        typer.echo(f"  Subscriptions: {'enabled' if cfg.subscriptions.enabled else 'disabled'}")
        typer.echo(f"  Consumers: {len(cfg.consumers)} ({len(enabled)} enabled)")
        for consumer in enabled:
            scope = consumer.team_id
            if consumer.channel_id:
                scope += f"/{consumer.channel_id}"
            typer.echo(f"    - {consumer.id}: {scope} -> {consumer.target.type}")

    raise typer.Exit(ExitCode.SUCCESS)


@app.command()
def serve(
    config: ConfigOption = None,
    state_dir: StateDirOption = None,
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (overrides webhook.host)."),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", help="Listen port (overrides webhook.port).", min=1, max=65535),
    ] = None,
    no_scheduler: Annotated[
        bool,
        typer.Option(
            "--no-scheduler",
            help="Do not run the token refresh and subscription sync jobs.",
        ),
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Run the webhook server.

    Serves /webhook and /lifecycle for Microsoft Graph, refreshes the
    token every 50 minutes and reconciles the subscription at startup
    and every few hours. Runs until interrupted (Ctrl+C).
    """
    configure_logging(verbose=verbose)
    log = get_logger("teamsrelay.cli")

    cfg = _load_config_or_exit(config)
    store = _open_state(cfg, state_dir)
    integration = _build_integration(cfg, store)
    scheduler = None if no_scheduler else MaintenanceScheduler(integration, cfg.schedule)

    web_app = create_app(integration, scheduler=scheduler)
    bind_host = host or cfg.webhook.host
    bind_port = port or cfg.webhook.port

    log.info(
        "server_starting",
        host=bind_host,
        port=bind_port,
        notification_url=cfg.webhook.notification_url,
        consumers=len(cfg.get_enabled_consumers()),
    )

    try:
        uvicorn.run(web_app, host=bind_host, port=bind_port, log_config=None)
    except Exception as e:
        log.exception("Server crashed")
        raise _fail(f"Fatal error: {e}", ExitCode.FATAL_ERROR) from e
    finally:
        store.close()


@app.command()
def sync(
    config: ConfigOption = None,
    state_dir: StateDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Run one reconciliation pass and exit.

    Refreshes the token, checks Graph access and creates, renews or
    deletes the subscription as configured.
    """
    configure_logging(verbose=verbose)
    log = get_logger("teamsrelay.cli")

    cfg = _load_config_or_exit(config)
    store = _open_state(cfg, state_dir)
    try:
        code = asyncio.run(_run_sync_impl(cfg, store, log))
    finally:
        store.close()
    raise typer.Exit(code)


async def _run_sync_impl(
    cfg: Config,
    store: StateStore,
    log: structlog.stdlib.BoundLogger,
) -> ExitCode:
    """Implementation of a single sync.

    Args:
        cfg: Configuration object
        store: Open state store
        log: Logger instance

    Returns:
        Exit code for the outcome
    """
    integration = _build_integration(cfg, store)
    try:
        outcome = await integration.sync()
    except Exception:
        log.exception("Sync crashed")
        return ExitCode.FATAL_ERROR
    finally:
        await integration.aclose()

    if outcome.ok:
        action = outcome.action or "none"
        typer.echo(typer.style(f"✓ Ready (subscription: {action})", fg=typer.colors.GREEN))
        return ExitCode.SUCCESS

    typer.echo(typer.style(f"✗ {outcome.description}", fg=typer.colors.RED), err=True)
    if outcome.description == AUTH_FAILED:
        return ExitCode.AUTH_ERROR
    return ExitCode.PARTIAL_FAILURE


@app.command("refresh-token")
def refresh_token(
    config: ConfigOption = None,
    state_dir: StateDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Force a token exchange and store the new credential."""
    configure_logging(verbose=verbose)

    cfg = _load_config_or_exit(config)
    store = _open_state(cfg, state_dir)
    try:
        code = asyncio.run(_run_refresh_impl(cfg, store))
    finally:
        store.close()
    raise typer.Exit(code)


async def _run_refresh_impl(cfg: Config, store: StateStore) -> ExitCode:
    integration = _build_integration(cfg, store)
    try:
        credential = await integration.tokens.refresh(trigger="cli")
    except AuthFailure as e:
        typer.echo(typer.style(f"✗ {e}", fg=typer.colors.RED), err=True)
        return ExitCode.AUTH_ERROR
    finally:
        await integration.aclose()

    expires = from_epoch_ms(credential.expires_at_ms).isoformat()
    typer.echo(typer.style(f"✓ Token refreshed (expires {expires})", fg=typer.colors.GREEN))
    return ExitCode.SUCCESS


@app.command()
def drain(
    config: ConfigOption = None,
    state_dir: StateDirOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Delete the stored subscription (best effort)."""
    configure_logging(verbose=verbose)

    cfg = _load_config_or_exit(config)
    store = _open_state(cfg, state_dir)
    try:
        code = asyncio.run(_run_drain_impl(cfg, store))
    finally:
        store.close()
    raise typer.Exit(code)


async def _run_drain_impl(cfg: Config, store: StateStore) -> ExitCode:
    integration = _build_integration(cfg, store)
    try:
        deleted = await integration.drain()
    finally:
        await integration.aclose()

    if deleted:
        typer.echo(typer.style("✓ Subscription drained", fg=typer.colors.GREEN))
        return ExitCode.SUCCESS
    typer.echo(
        typer.style("✗ Failed to delete subscription, see logs", fg=typer.colors.RED),
        err=True,
    )
    return ExitCode.PARTIAL_FAILURE


@app.command()
def status(
    state_dir: StateDirOption = None,
) -> None:
    """Show stored token expiry and subscription signals."""
    if state_dir is None:
        state_dir = get_default_state_dir()

    db_path = state_dir / "state.db"

    if not db_path.exists():
        typer.echo(
            typer.style(f"No state database found at {db_path}", fg=typer.colors.YELLOW)
        )
        typer.echo("Run 'teams-relay sync' to initialize.")
        raise typer.Exit(ExitCode.SUCCESS)

    store = StateStore(db_path)
    current_ms = now_ms(SystemTimeProvider())

    try:
        token_store = store.namespace(TOKEN_NAMESPACE)
        has_token = token_store.get(ACCESS_TOKEN_KEY) is not None
        raw_expiry = token_store.get(TOKEN_EXPIRY_KEY)
        signals = load_signals(store.namespace(SIGNAL_NAMESPACE))

        typer.echo(typer.style("Teams Relay Status", bold=True))
        typer.echo("─" * 40)
        typer.echo(f"State directory: {state_dir}")
        typer.echo(f"Database: {db_path}")
        typer.echo()

        typer.echo(typer.style("Access token:", bold=True))
        if has_token and raw_expiry and raw_expiry.isdigit():
            expiry_ms = int(raw_expiry)
            state = "valid" if expiry_ms > current_ms else "expired"
            typer.echo(f"  Expires: {from_epoch_ms(expiry_ms).isoformat()} ({state})")
        else:
            typer.echo("  (none)")

        typer.echo()
        typer.echo(typer.style("Subscription:", bold=True))
        typer.echo(f"  ID: {signals.subscription_id or '(none)'}")
        if signals.subscription_expiry_ms is not None:
            expires = from_epoch_ms(signals.subscription_expiry_ms).isoformat()
            typer.echo(f"  Expires: {expires}")
        else:
            typer.echo("  Expires: (none)")

    finally:
        store.close()

    raise typer.Exit(ExitCode.SUCCESS)
