"""Configuration module for Teams Relay.

This module provides configuration loading, validation, and schema definitions.

Usage:
    from teamsrelay.config import load_config, Config

    config = load_config()  # Auto-discovers config file
    config = load_config("/path/to/teams-relay.yaml")  # Explicit path
"""

from teamsrelay.config.loader import (
    ConfigError,
    ConfigNotFoundError,
    ConfigValidationError,
    EnvironmentVariableError,
    discover_config_path,
    load_config,
    validate_config,
)
from teamsrelay.config.schema import (
    Config,
    ConsoleTarget,
    ConsumerConfig,
    ScheduleConfig,
    StateConfig,
    SubscriptionsConfig,
    TargetType,
    TenantConfig,
    WebhookConfig,
    WebhookTarget,
)

__all__ = [
    "Config",
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigValidationError",
    "ConsoleTarget",
    "ConsumerConfig",
    "EnvironmentVariableError",
    "ScheduleConfig",
    "StateConfig",
    "SubscriptionsConfig",
    "TargetType",
    "TenantConfig",
    "WebhookConfig",
    "WebhookTarget",
    "discover_config_path",
    "load_config",
    "validate_config",
]
