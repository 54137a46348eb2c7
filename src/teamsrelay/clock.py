"""Injectable time source.

Token expiry and subscription expiry decisions are made against a
TimeProvider so tests can pin the clock without patching datetime.
All expiries in this package are integer epoch milliseconds.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol


class TimeProvider(Protocol):
    """Protocol for providing current time."""

    def now(self) -> datetime:
        """Get the current UTC time."""
        ...


class SystemTimeProvider:
    """Default time provider using system clock."""

    def now(self) -> datetime:
        """Get current UTC time from system clock."""
        return datetime.now(UTC)


class FixedTimeProvider:
    """Time provider with a settable time (for testing).

    Example:
        >>> provider = FixedTimeProvider(datetime(2026, 1, 10, 12, 0, 0, tzinfo=UTC))
        >>> provider.advance(minutes=5)
        >>> provider.now()
        datetime.datetime(2026, 1, 10, 12, 5, tzinfo=datetime.timezone.utc)
    """

    def __init__(self, fixed_time: datetime) -> None:
        self._fixed_time = fixed_time

    def now(self) -> datetime:
        """Return the fixed time."""
        return self._fixed_time

    def advance(self, **delta: float) -> None:
        """Move the clock forward by a timedelta expressed as keyword arguments."""
        self._fixed_time += timedelta(**delta)


def to_epoch_ms(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def now_ms(provider: TimeProvider) -> int:
    """Get the provider's current time in epoch milliseconds."""
    return to_epoch_ms(provider.now())


def parse_graph_datetime(value: str) -> datetime:
    """Parse an ISO 8601 timestamp as returned by Graph.

    Graph returns values like ``2026-01-13T09:10:00.1234567Z``: a trailing
    ``Z`` and up to seven fractional digits, which ``fromisoformat`` rejects
    on older interpreters.
    """
    text = value.strip().replace("Z", "+00:00")
    if "." in text:
        head, _, tail = text.partition(".")
        digits = ""
        rest = ""
        for index, char in enumerate(tail):
            if not char.isdigit():
                rest = tail[index:]
                break
            digits += char
        text = f"{head}.{digits[:6]}{rest}"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_graph_datetime(value: datetime) -> str:
    """Format a datetime the way Graph expects expirationDateTime."""
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")
