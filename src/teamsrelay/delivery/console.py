"""Console delivery for printing hydrated messages to stdout."""

from __future__ import annotations

import html
import re
import sys
from typing import TYPE_CHECKING, Any, TextIO

if TYPE_CHECKING:
    from teamsrelay.routing.registry import HydratedMessage

_TAG = re.compile(r"<[^>]+>")


class ConsoleDelivery:
    """Prints one block per consumer for each hydrated message."""

    def __init__(
        self,
        output: TextIO | None = None,
        *,
        colorize: bool = True,
    ) -> None:
        """Initialize console delivery.

        Args:
            output: Output stream (defaults to stdout).
            colorize: Whether to use ANSI colors.
        """
        self._output = output or sys.stdout
        self._colorize = colorize and self._output.isatty()

    def deliver(self, consumer_id: str, hydrated: HydratedMessage) -> bool:
        """Print the message for one consumer.

        Returns:
            True if the block was written, False if the stream failed.
        """
        try:
            print(self._format(consumer_id, hydrated), file=self._output)
        except (OSError, ValueError):
            return False
        return True

    def _format(self, consumer_id: str, hydrated: HydratedMessage) -> str:
        message = hydrated.message
        lines = []

        header = f"💬 [{consumer_id}] {hydrated.change_type.value.upper()}"
        if self._colorize:
            header = f"\033[1;34m{header}\033[0m"
        lines.append(header)

        lines.append(f"   {sender_name(message)}: {message_preview(message)}")

        url = message.get("webUrl")
        if url:
            lines.append(f"   \033[4;36m{url}\033[0m" if self._colorize else f"   {url}")

        return "\n".join(lines)


def sender_name(message: dict[str, Any]) -> str:
    """Best-effort display name of the message author."""
    sender = message.get("from") or {}
    if not isinstance(sender, dict):
        return "unknown"
    for key in ("user", "application", "device"):
        identity = sender.get(key)
        if isinstance(identity, dict) and identity.get("displayName"):
            return str(identity["displayName"])
    return "unknown"


def message_preview(message: dict[str, Any], limit: int = 80) -> str:
    """Single-line plain-text preview of the message body.

    Args:
        message: Graph chatMessage object.
        limit: Maximum preview length.
    """
    body = message.get("body") or {}
    content = (body.get("content") or "") if isinstance(body, dict) else ""
    if isinstance(body, dict) and body.get("contentType") == "html":
        content = html.unescape(_TAG.sub("", content))
    text = " ".join(str(content).split())
    if len(text) > limit:
        text = text[: limit - 3] + "..."
    return text
