"""Consumer registrations and hydrated message models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from teamsrelay.config.schema import ConsoleTarget, WebhookTarget
from teamsrelay.graph.notifications import ChangeType

if TYPE_CHECKING:
    from teamsrelay.config.schema import Config, ConsumerConfig

MESSAGES_KIND = "messages"


class ConsumerRegistration(BaseModel):
    """A consumer interested in channel messages of one team."""

    model_config = ConfigDict(frozen=True)

    consumer_id: str = Field(..., description="Unique consumer ID")
    team_id: str = Field(..., description="Team whose messages are wanted")
    channel_id: str | None = Field(
        default=None,
        description="Channel filter; None means every channel of the team",
    )
    kind: str = Field(default=MESSAGES_KIND, description="Registration kind")
    target: ConsoleTarget | WebhookTarget = Field(
        default_factory=ConsoleTarget,
        description="Where hydrated messages are delivered",
    )

    @classmethod
    def from_config(cls, consumer: ConsumerConfig) -> ConsumerRegistration:
        return cls(
            consumer_id=consumer.id,
            team_id=consumer.team_id,
            channel_id=consumer.channel_id,
            target=consumer.target,
        )


class HydratedMessage(BaseModel):
    """A fully fetched message together with the change that produced it."""

    model_config = ConfigDict(frozen=True)

    message: dict[str, Any] = Field(..., description="Message body as returned by Graph")
    change_type: ChangeType = Field(..., description="created, updated or deleted")

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON object handed to each consumer."""
        return {**self.message, "changeType": self.change_type.value}


class ConsumerRegistry(Protocol):
    """Enumerates active consumer registrations."""

    def list_consumers(self, kind: str = MESSAGES_KIND) -> list[ConsumerRegistration]: ...


class StaticConsumerRegistry:
    """Registry backed by a fixed list, usually the enabled consumers in config."""

    def __init__(self, registrations: list[ConsumerRegistration]) -> None:
        self._registrations = list(registrations)

    @classmethod
    def from_config(cls, config: Config) -> StaticConsumerRegistry:
        return cls([
            ConsumerRegistration.from_config(consumer)
            for consumer in config.get_enabled_consumers()
        ])

    def list_consumers(self, kind: str = MESSAGES_KIND) -> list[ConsumerRegistration]:
        return [r for r in self._registrations if r.kind == kind]

    def __len__(self) -> int:
        return len(self._registrations)
