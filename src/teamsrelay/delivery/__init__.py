"""Delivery module for Teams Relay.

This module hands hydrated messages to consumer targets:
- ConsoleDelivery: Print to stdout
- WebhookDelivery: POST JSON to a consumer URL
- DeliveryExecutor: The fan-out sink used by the router
"""

from teamsrelay.delivery.console import ConsoleDelivery, message_preview, sender_name
from teamsrelay.delivery.executor import (
    DeliveryError,
    DeliveryExecutor,
    DeliveryResult,
    DeliveryStatus,
)
from teamsrelay.delivery.webhook import WebhookDelivery, WebhookResult

__all__ = [
    "ConsoleDelivery",
    "DeliveryError",
    "DeliveryExecutor",
    "DeliveryResult",
    "DeliveryStatus",
    "WebhookDelivery",
    "WebhookResult",
    "message_preview",
    "sender_name",
]
