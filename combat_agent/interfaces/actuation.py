"""Actuation sink interface for delivering commands to the game."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any


class CommandType(Enum):
    """Wire-level command types understood by the actuation bridge."""

    MOVE = "move"
    KEYPRESS = "keypress"


class SinkCommand:
    """A single command sent to the sink."""

    __slots__ = ("command_type", "x", "y", "key", "timestamp_ms")

    def __init__(
        self,
        command_type: CommandType,
        x: float | None = None,
        y: float | None = None,
        key: str | None = None,
        timestamp_ms: float = 0.0,
    ) -> None:
        """Initialize a command.

        Args:
            command_type: Move or keypress.
            x: Normalized X in [0, 1] for moves.
            y: Normalized Y in [0, 1] for moves.
            key: Key token for keypresses.
            timestamp_ms: When the command was sent.
        """
        self.command_type = command_type
        self.x = x
        self.y = y
        self.key = key
        self.timestamp_ms = timestamp_ms

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON body sent over the wire."""
        if self.command_type == CommandType.MOVE:
            return {"type": "move", "x": self.x, "y": self.y}
        return {"type": "keypress", "key": self.key}

    def __repr__(self) -> str:
        if self.command_type == CommandType.MOVE:
            return f"SinkCommand(move, {self.x}, {self.y})"
        return f"SinkCommand(keypress, {self.key!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SinkCommand):
            return NotImplemented
        return (
            self.command_type == other.command_type
            and self.x == other.x
            and self.y == other.y
            and self.key == other.key
        )


class BridgeStatus:
    """Connectivity state owned by the sink, independent of the core."""

    __slots__ = ("enabled", "connected", "last_error")

    def __init__(
        self,
        enabled: bool = False,
        connected: bool = False,
        last_error: str | None = None,
    ) -> None:
        self.enabled = enabled
        self.connected = connected
        self.last_error = last_error

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "connected": self.connected,
            "last_error": self.last_error,
        }


class CommandSink(ABC):
    """Abstract interface for the outbound actuation channel.

    Every send returns success or failure; failures are recorded in
    ``status`` and never raised to the caller.
    """

    @property
    @abstractmethod
    def status(self) -> BridgeStatus:
        """Get a snapshot of the connectivity state."""
        ...

    @abstractmethod
    def send_move(self, x: float, y: float) -> bool:
        """Send a pointer move in normalized coordinates.

        Args:
            x: Normalized X, clamped to [0, 1].
            y: Normalized Y, clamped to [0, 1].

        Returns:
            True if the sink accepted the command.
        """
        ...

    @abstractmethod
    def send_keypress(self, key: str) -> bool:
        """Send a keypress token.

        Args:
            key: Key token (e.g. '1', 'w', 'space').

        Returns:
            True if the sink accepted the command.
        """
        ...

    @abstractmethod
    def test_connection(self) -> bool:
        """Check the sink and update connectivity state."""
        ...


class ActuationError(Exception):
    """Error raised inside a sink when delivery fails."""

    pass
