"""Event streaming service for observer WebSocket delivery."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)

CONTROL_COMMANDS = (
    "pause",
    "resume",
    "reset-stats",
    "reset",
    "force-state",
    "update-combat",
    "replace-skills",
)


class EventStreamService:
    """Thread-safe bounded event stream plus a control-command queue.

    The loop pushes one event per tick; WebSocket handlers read events
    newer than the last id they delivered. Control commands flow the
    other way: the API queues them and the loop pops them between ticks.
    """

    def __init__(self, max_events: int = 500) -> None:
        self._max_events = max(1, max_events)
        self._lock = threading.Lock()
        self._events: deque[dict[str, Any]] = deque(maxlen=self._max_events)
        self._next_id = 1
        self._control_commands: deque[dict[str, Any]] = deque(maxlen=self._max_events)
        self._next_control_id = 1

    def push_event(self, payload: dict[str, Any]) -> int:
        """Push an event payload and return its assigned event id."""
        with self._lock:
            event_id = self._next_id
            self._next_id += 1
            self._events.append(
                {
                    "id": event_id,
                    "timestamp": datetime.now().isoformat(),
                    "payload": payload,
                }
            )
            return event_id

    def get_events_since(self, last_event_id: int) -> list[dict[str, Any]]:
        """Get events with id greater than `last_event_id`."""
        with self._lock:
            return [event for event in self._events if int(event["id"]) > last_event_id]

    def push_control_command(
        self,
        command: str,
        payload: dict[str, Any] | None = None,
    ) -> int:
        """Queue a control command for the loop.

        Raises:
            ValueError: If the command is unknown.
        """
        if command not in CONTROL_COMMANDS:
            raise ValueError(f"Unknown control command: {command}")
        with self._lock:
            command_id = self._next_control_id
            self._next_control_id += 1
            self._control_commands.append(
                {
                    "id": command_id,
                    "timestamp": datetime.now().isoformat(),
                    "command": command,
                    "payload": payload or {},
                }
            )
            return command_id

    def pop_control_commands(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Pop queued control commands in FIFO order."""
        with self._lock:
            if limit is None or limit <= 0:
                limit = len(self._control_commands)
            popped: list[dict[str, Any]] = []
            while self._control_commands and len(popped) < limit:
                popped.append(self._control_commands.popleft())
            return popped
