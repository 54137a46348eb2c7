"""Pydantic schema models for configuration.

This module defines all configuration models:
- Config: Top-level configuration container
- TenantConfig: Entra ID app registration credentials
- WebhookConfig: Public notification endpoint settings
- SubscriptionsConfig: Change-notification subscription toggle
- ScheduleConfig: Periodic trigger intervals
- StateConfig: State storage settings
- ConsumerConfig: Logical consumers and their team/channel filters
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from teamsrelay.paths import get_default_state_dir


class TargetType(str, Enum):
    """Where a consumer's hydrated messages are delivered."""

    CONSOLE = "console"
    WEBHOOK = "webhook"


class TenantConfig(BaseModel):
    """Entra ID (Azure AD) application credentials.

    Attributes:
        tenant_id: Directory (tenant) ID
        client_id: Application (client) ID
        client_secret: Client secret value or env var reference (${VAR})
    """

    model_config = ConfigDict(extra="forbid")

    tenant_id: Annotated[str, Field(min_length=1)]
    client_id: Annotated[str, Field(min_length=1)]
    client_secret: Annotated[str, Field(min_length=1, repr=False)]


class WebhookConfig(BaseModel):
    """Inbound notification endpoint configuration.

    Attributes:
        public_url: Externally reachable base URL; /webhook and /lifecycle
                    are appended to it when creating the subscription
        client_state: Correlation value sent with the subscription
        verify_client_state: Reject notifications whose clientState differs
        host: Interface the HTTP server binds to
        port: Port the HTTP server listens on
    """

    model_config = ConfigDict(extra="forbid")

    public_url: str
    client_state: Annotated[str, Field(min_length=1, max_length=128)] = "teams-relay"
    verify_client_state: bool = False
    host: str = "0.0.0.0"  # noqa: S104
    port: Annotated[int, Field(ge=1, le=65535)] = 8080

    @field_validator("public_url")
    @classmethod
    def validate_public_url(cls, v: str) -> str:
        """Graph only delivers to HTTPS endpoints."""
        if v.startswith("${") and v.endswith("}"):
            return v
        if not v.startswith("https://"):
            msg = "public_url must be an https:// URL reachable by Microsoft Graph"
            raise ValueError(msg)
        return v.rstrip("/")

    @property
    def notification_url(self) -> str:
        return f"{self.public_url}/webhook"

    @property
    def lifecycle_url(self) -> str:
        return f"{self.public_url}/lifecycle"


class SubscriptionsConfig(BaseModel):
    """Change-notification subscription settings.

    Attributes:
        enabled: Keep a /teams/getAllMessages subscription alive. When
                 disabled, an existing subscription is deleted on sync.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False


class ScheduleConfig(BaseModel):
    """Periodic trigger intervals.

    Attributes:
        token_refresh_minutes: Forced token refresh interval (5-59, default: 50).
                               Must stay below the ~60 minute token lifetime.
        sync_interval_hours: Subscription reconciliation interval (1-48, default: 6)
    """

    model_config = ConfigDict(extra="forbid")

    token_refresh_minutes: Annotated[int, Field(ge=5, le=59)] = 50
    sync_interval_hours: Annotated[int, Field(ge=1, le=48)] = 6


class StateConfig(BaseModel):
    """State storage configuration.

    Attributes:
        directory: State directory path (default: XDG data dir)
                   Uses $XDG_DATA_HOME/teams-relay (~/.local/share/teams-relay)
    """

    model_config = ConfigDict(extra="forbid")

    directory: str | None = None

    def get_directory(self) -> Path:
        """Get the state directory path, expanding ~ if needed."""
        if self.directory:
            return Path(self.directory).expanduser()
        return get_default_state_dir()


class ConsoleTarget(BaseModel):
    """Print hydrated messages to stdout."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["console"] = "console"


class WebhookTarget(BaseModel):
    """POST hydrated messages as JSON to a URL."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["webhook"]
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate target URL format (URL or env var reference)."""
        if v.startswith("${") and v.endswith("}"):
            return v
        if v.startswith(("https://", "http://")):
            return v
        msg = "url must be an http(s):// URL or env var reference (${VAR})"
        raise ValueError(msg)


Target = Annotated[ConsoleTarget | WebhookTarget, Field(discriminator="type")]


class ConsumerConfig(BaseModel):
    """A logical consumer interested in channel messages.

    Attributes:
        id: Unique consumer identifier (lowercase, alphanumeric, hyphens)
        team_id: Team whose messages the consumer receives
        channel_id: Optional channel within the team; empty means all channels
        enabled: Whether the consumer is active (default: True)
        target: Delivery target
    """

    model_config = ConfigDict(extra="forbid")

    id: Annotated[str, Field(min_length=2, max_length=64)]
    team_id: Annotated[str, Field(min_length=1)]
    channel_id: str | None = None
    enabled: bool = True
    target: Target = Field(default_factory=ConsoleTarget)

    @field_validator("id")
    @classmethod
    def validate_consumer_id(cls, v: str) -> str:
        """Validate consumer ID format: lowercase, alphanumeric, hyphens."""
        if not re.match(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$", v):
            msg = (
                "consumer id must be lowercase alphanumeric with hyphens, "
                "starting and ending with alphanumeric"
            )
            raise ValueError(msg)
        return v

    @field_validator("channel_id")
    @classmethod
    def empty_channel_means_all(cls, v: str | None) -> str | None:
        """Treat an empty channel filter the same as no filter."""
        if v is not None and not v.strip():
            return None
        return v


class Config(BaseModel):
    """Top-level configuration loaded from YAML.

    Attributes:
        version: Schema version (must be 1)
        tenant: App registration credentials
        webhook: Inbound endpoint settings
        subscriptions: Subscription toggle
        schedule: Periodic trigger intervals
        state: State storage settings
        consumers: Logical consumers of channel messages
    """

    model_config = ConfigDict(extra="forbid")

    version: Literal[1]
    tenant: TenantConfig
    webhook: WebhookConfig
    subscriptions: SubscriptionsConfig = Field(default_factory=SubscriptionsConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    consumers: list[ConsumerConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_consumer_ids(self) -> Config:
        """Ensure all consumer IDs are unique."""
        ids = [consumer.id for consumer in self.consumers]
        duplicates = [id_ for id_ in ids if ids.count(id_) > 1]
        if duplicates:
            msg = f"Duplicate consumer IDs found: {set(duplicates)}"
            raise ValueError(msg)
        return self

    def get_enabled_consumers(self) -> list[ConsumerConfig]:
        """Return only enabled consumers."""
        return [consumer for consumer in self.consumers if consumer.enabled]
