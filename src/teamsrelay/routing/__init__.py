"""Routing module for Teams Relay.

This module matches change notifications to consumers:
- ConsumerRegistry: who wants which team/channel
- match_consumer / select_consumers: equality filters on parsed ids
- NotificationRouter: fetch once, fan out once, isolate failures

Usage:
    from teamsrelay.routing import NotificationRouter, StaticConsumerRegistry

    router = NotificationRouter(StaticConsumerRegistry.from_config(config), tokens, api, sink)
    report = await router.route(notifications)
"""

from teamsrelay.routing.matchers import match_consumer, select_consumers
from teamsrelay.routing.registry import (
    MESSAGES_KIND,
    ConsumerRegistration,
    ConsumerRegistry,
    HydratedMessage,
    StaticConsumerRegistry,
)
from teamsrelay.routing.router import (
    SYSTEM_EVENT_SENTINEL,
    ConsumerSink,
    NotificationRouter,
    RoutingFailure,
    RoutingReport,
    is_system_event,
)

__all__ = [
    "MESSAGES_KIND",
    "SYSTEM_EVENT_SENTINEL",
    "ConsumerRegistration",
    "ConsumerRegistry",
    "ConsumerSink",
    "HydratedMessage",
    "NotificationRouter",
    "RoutingFailure",
    "RoutingReport",
    "StaticConsumerRegistry",
    "is_system_event",
    "match_consumer",
    "select_consumers",
]
