"""Structured JSON logging and audit events.

This module provides:
- structlog configuration for JSON logging to stderr
- Secret redaction for bearer tokens and client secrets
- Structured log events for token refresh, subscription reconciliation,
  notification routing and lifecycle handling
"""

from __future__ import annotations

import logging
import re
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

    from structlog.typing import EventDict, WrappedLogger

# Patterns for secret redaction
SECRET_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    # JWT access tokens issued by Entra ID
    (
        re.compile(r"eyJ[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]{10,}\.[A-Za-z0-9_-]+"),
        "[REDACTED_JWT]",
    ),
    # Bearer tokens in headers
    (re.compile(r"(Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE), r"\1[REDACTED]"),
    # client_secret / access_token in form bodies, query strings or reprs
    (
        re.compile(r"((?:client_secret|access_token)['\"]?\s*[=:]\s*['\"]?)([^\s&'\",]+)"),
        r"\1[REDACTED]",
    ),
]

# Keys whose values are always redacted regardless of content
SECRET_KEYS = frozenset({"client_secret", "access_token", "bearer_token", "authorization"})


def redact_secrets(value: Any) -> Any:
    """Redact sensitive values from a string, dict, or list.

    Args:
        value: Value to redact. Can be str, dict, list, or other.

    Returns:
        Value with sensitive data redacted
    """
    if isinstance(value, str):
        result = value
        for pattern, replacement in SECRET_PATTERNS:
            result = pattern.sub(replacement, result)
        return result

    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in SECRET_KEYS else redact_secrets(v)
            for k, v in value.items()
        }

    if isinstance(value, list):
        return [redact_secrets(item) for item in value]

    return value


def _redact_processor(
    _logger: WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """structlog processor that redacts secrets from log events."""
    return redact_secrets(event_dict)


def configure_logging(
    verbose: bool = False,
    json_output: bool = True,
) -> None:
    """Configure structured logging for the application.

    Sets up structlog with JSON formatting to stderr, including ISO
    timestamps, log level, secret redaction and exception formatting.
    Standard library loggers (uvicorn, apscheduler, httpx) share the
    same stream and level.

    Args:
        verbose: If True, enable DEBUG level. Otherwise INFO.
        json_output: If True, output JSON. Otherwise use console format.
    """
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )
    # httpx logs every request line at INFO, including full URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    processors: list[Callable[..., Any]] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _redact_processor,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured structlog logger.

    Args:
        name: Optional logger name (typically __name__)

    Returns:
        Bound structlog logger
    """
    return structlog.get_logger(name)


# Structured log event helpers


def log_token_refreshed(
    trigger: str,
    expires_at_ms: int,
) -> None:
    """Log a completed token exchange.

    Args:
        trigger: What forced the exchange ('cache_miss', 'schedule', 'sync')
        expires_at_ms: Expiry of the new credential in epoch milliseconds
    """
    log = get_logger("teamsrelay.auth")
    log.info(
        "token_refreshed",
        trigger=trigger,
        expires_at_ms=expires_at_ms,
    )


def log_subscription_reconciled(
    action: str,
    subscription_id: str | None,
    expires_at_ms: int | None,
) -> None:
    """Log the outcome of one subscription reconciliation.

    Args:
        action: 'created', 'renewed', 'valid' or 'deleted'
        subscription_id: Graph subscription ID
        expires_at_ms: Subscription expiry in epoch milliseconds
    """
    log = get_logger("teamsrelay.subscriptions")
    log_func = log.debug if action == "valid" else log.info
    log_func(
        "subscription_reconciled",
        action=action,
        subscription_id=subscription_id,
        expires_at_ms=expires_at_ms,
    )


def log_notification_routed(
    resource: str,
    change_type: str,
    outcome: str,
    consumer_ids: list[str] | None = None,
    error: str | None = None,
) -> None:
    """Log what happened to a single data notification.

    Args:
        resource: Graph resource path from the notification
        change_type: created, updated or deleted
        outcome: 'delivered', 'unmatched', 'suppressed', 'skipped' or 'failed'
        consumer_ids: Consumers the message was (or would have been) sent to
        error: Error message if failed
    """
    log = get_logger("teamsrelay.routing")

    if outcome == "failed":
        log_func = log.warning
    elif outcome == "delivered":
        log_func = log.info
    else:
        log_func = log.debug

    log_func(
        "notification_routed",
        resource=resource,
        change_type=change_type,
        outcome=outcome,
        consumer_ids=consumer_ids or [],
        error=error,
    )


def log_lifecycle_event(
    lifecycle_event: str,
    subscription_id: str | None,
    resync_requested: bool,
) -> None:
    """Log a lifecycle notification from Graph.

    Args:
        lifecycle_event: reauthorizationRequired, subscriptionRemoved, missed, ...
        subscription_id: Subscription the event refers to
        resync_requested: Whether a background resync was scheduled
    """
    log = get_logger("teamsrelay.lifecycle")
    log_func = log.warning if resync_requested else log.info
    log_func(
        "lifecycle_event",
        lifecycle_event=lifecycle_event,
        subscription_id=subscription_id,
        resync_requested=resync_requested,
    )


def log_sync_complete(
    status: str,
    action: str | None,
    duration_ms: float,
    description: str | None = None,
) -> None:
    """Log completion of an integration sync.

    Args:
        status: 'ready' or 'failed'
        action: Subscription action taken, if any
        duration_ms: Sync duration in milliseconds
        description: Failure description
    """
    log = get_logger("teamsrelay.sync")
    log_func = log.info if status == "ready" else log.error
    log_func(
        "sync_complete",
        status=status,
        action=action,
        description=description,
        duration_ms=round(duration_ms, 2),
    )
