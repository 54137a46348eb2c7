"""Consumer filter matching.

Filters compare parsed ids for equality, so a consumer of team "1" never
receives messages of team "10".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from teamsrelay.graph.notifications import ResourcePath
    from teamsrelay.routing.registry import ConsumerRegistration


def match_consumer(registration: ConsumerRegistration, path: ResourcePath) -> bool:
    """Check whether a registration's team/channel filter accepts a message.

    Args:
        registration: Consumer registration with team and optional channel filter.
        path: Parsed resource path of the message.

    Returns:
        True if the team matches and the channel filter is unset or matches.
    """
    if registration.team_id != path.team_id:
        return False
    if registration.channel_id is None:
        return True
    return registration.channel_id == path.channel_id


def select_consumers(
    registrations: list[ConsumerRegistration],
    path: ResourcePath,
) -> list[ConsumerRegistration]:
    """Return the registrations interested in a message, in registry order."""
    return [r for r in registrations if match_consumer(r, path)]
