"""Delivery executor: the consumer fan-out sink.

This module provides the DeliveryExecutor class which:
- Dispatches a hydrated message to each selected consumer's target
- Supports console and HTTP webhook targets
- Attempts every consumer even when an earlier one fails, then raises
  DeliveryError naming the consumers that did not receive the message
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from teamsrelay.config.schema import TargetType
from teamsrelay.delivery.console import ConsoleDelivery
from teamsrelay.delivery.webhook import WebhookDelivery

if TYPE_CHECKING:
    from teamsrelay.routing.registry import ConsumerRegistration, HydratedMessage

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    """Status of a single consumer delivery."""

    SUCCESS = "success"
    FAILURE = "failure"
    DRY_RUN = "dry_run"


class DeliveryResult(BaseModel):
    """Result of delivering one message to one consumer."""

    model_config = ConfigDict(frozen=True)

    consumer_id: str = Field(..., description="Consumer that was targeted")
    target_type: TargetType = Field(..., description="Type of delivery target")
    status: DeliveryStatus = Field(..., description="Delivery status")
    message: str = Field(default="", description="Status message or error")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Target-specific details",
    )

    @property
    def is_failure(self) -> bool:
        return self.status == DeliveryStatus.FAILURE


class DeliveryError(Exception):
    """Raised when at least one consumer target failed."""

    def __init__(
        self,
        message: str,
        *,
        consumer_ids: list[str],
        results: list[DeliveryResult] | None = None,
    ) -> None:
        super().__init__(message)
        self.consumer_ids = consumer_ids
        self.results = results or []


class DeliveryExecutor:
    """Fans one hydrated message out to a set of consumers.

    The executor supports both context manager and standalone usage; an
    externally supplied httpx client is never closed here.
    """

    def __init__(
        self,
        *,
        dry_run: bool = False,
        console: ConsoleDelivery | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize delivery executor.

        Args:
            dry_run: If True, log deliveries without executing.
            console: Console writer (defaults to stdout).
            client: HTTP client for webhook targets.
        """
        self._dry_run = dry_run
        self._console = console or ConsoleDelivery()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> DeliveryExecutor:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
            self._owns_client = True
        return self._client

    async def deliver(
        self,
        consumers: list[ConsumerRegistration],
        hydrated: HydratedMessage,
    ) -> list[DeliveryResult]:
        """Deliver a message to every consumer, isolating per-consumer failures.

        Args:
            consumers: Consumers selected by the router.
            hydrated: The fetched message and its change type.

        Returns:
            One DeliveryResult per consumer, in order.

        Raises:
            DeliveryError: If any consumer's target failed.
        """
        results = [await self._deliver_one(consumer, hydrated) for consumer in consumers]

        failed = [r.consumer_id for r in results if r.is_failure]
        if failed:
            raise DeliveryError(
                f"Delivery failed for consumer(s): {', '.join(failed)}",
                consumer_ids=failed,
                results=results,
            )
        return results

    async def _deliver_one(
        self,
        consumer: ConsumerRegistration,
        hydrated: HydratedMessage,
    ) -> DeliveryResult:
        target_type = TargetType(consumer.target.type)

        if self._dry_run:
            logger.info(
                "[DRY RUN] Would deliver %s message to consumer '%s' via %s",
                hydrated.change_type.value,
                consumer.consumer_id,
                target_type.value,
            )
            return DeliveryResult(
                consumer_id=consumer.consumer_id,
                target_type=target_type,
                status=DeliveryStatus.DRY_RUN,
                message=f"Dry run: {target_type.value} delivery skipped",
            )

        try:
            if target_type == TargetType.CONSOLE:
                return self._deliver_console(consumer, hydrated)
            return await self._deliver_webhook(consumer, hydrated)
        except Exception as e:
            logger.exception("Error delivering to consumer '%s'", consumer.consumer_id)
            return DeliveryResult(
                consumer_id=consumer.consumer_id,
                target_type=target_type,
                status=DeliveryStatus.FAILURE,
                message=str(e),
            )

    def _deliver_console(
        self,
        consumer: ConsumerRegistration,
        hydrated: HydratedMessage,
    ) -> DeliveryResult:
        success = self._console.deliver(consumer.consumer_id, hydrated)
        return DeliveryResult(
            consumer_id=consumer.consumer_id,
            target_type=TargetType.CONSOLE,
            status=DeliveryStatus.SUCCESS if success else DeliveryStatus.FAILURE,
            message="Printed to console" if success else "Failed to print message",
        )

    async def _deliver_webhook(
        self,
        consumer: ConsumerRegistration,
        hydrated: HydratedMessage,
    ) -> DeliveryResult:
        url = getattr(consumer.target, "url", None)
        if not url:
            return DeliveryResult(
                consumer_id=consumer.consumer_id,
                target_type=TargetType.WEBHOOK,
                status=DeliveryStatus.FAILURE,
                message="Webhook target has no URL",
            )

        sender = WebhookDelivery(url, self._ensure_client())
        result = await sender.send(hydrated.to_payload())
        return DeliveryResult(
            consumer_id=consumer.consumer_id,
            target_type=TargetType.WEBHOOK,
            status=DeliveryStatus.SUCCESS if result.success else DeliveryStatus.FAILURE,
            message=result.message,
            details={"status_code": result.status_code, "url": sender.url},
        )
