"""Logging module for Teams Relay.

This module provides structured JSON logging with:
- structlog configuration for consistent log formatting
- Secret redaction for access tokens and client secrets
- Structured log events for the subscription and notification lifecycle

Usage:
    from teamsrelay.logging import configure_logging, log_notification_routed

    configure_logging(verbose=True)
    log_notification_routed(resource, "created", "delivered", ["ops-feed"])
"""

from teamsrelay.logging.audit import (
    configure_logging,
    get_logger,
    log_lifecycle_event,
    log_notification_routed,
    log_subscription_reconciled,
    log_sync_complete,
    log_token_refreshed,
    redact_secrets,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "log_lifecycle_event",
    "log_notification_routed",
    "log_subscription_reconciled",
    "log_sync_complete",
    "log_token_refreshed",
    "redact_secrets",
]
