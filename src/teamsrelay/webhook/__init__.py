"""Inbound webhook surface for Teams Relay."""

from teamsrelay.webhook.app import create_app
from teamsrelay.webhook.endpoint import EndpointResponse, WebhookEndpoint

__all__ = [
    "EndpointResponse",
    "WebhookEndpoint",
    "create_app",
]
