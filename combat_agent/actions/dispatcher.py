"""Translate combat actions into sink commands and send them off-thread.

The tick never waits for the bridge. Commands go to a single worker
thread, and at most one action is in flight: while the bridge is still
busy with the previous action, new actions are skipped rather than
queued. The next tick re-issues whatever the situation still calls for,
so a slow bridge never replays stale presses late.

Example:
    >>> dispatcher = ActionDispatcher(NullCommandSink(), mapper)
    >>> future = dispatcher.dispatch(action, origin=(50, 50))
    >>> future.result()
    True
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING

from combat_agent.actions.bridge import NullCommandSink
from combat_agent.config.loader import BridgeConfig
from combat_agent.interfaces.actuation import (
    ActuationError,
    CommandSink,
    CommandType,
    SinkCommand,
)
from combat_agent.models.actions import ActionKind, CombatAction
from combat_agent.perception.coordinates import CoordinateMapper

if TYPE_CHECKING:
    from combat_agent.core.metrics import MetricsCollector

logger = logging.getLogger(__name__)


def direction_key(dx: float, dy: float) -> str:
    """WASD key for the dominant axis of a movement vector.

    Ties go to the vertical axis.
    """
    if abs(dx) > abs(dy):
        return "d" if dx > 0 else "a"
    return "s" if dy > 0 else "w"


class ActionDispatcher:
    """Sends the commands for each action to a sink on a worker thread.

    Attributes:
        sink: Destination for commands.
        config: Bridge settings (movement mode, loot and jump keys).
    """

    def __init__(
        self,
        sink: CommandSink | None = None,
        mapper: CoordinateMapper | None = None,
        config: BridgeConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            sink: Command sink. Defaults to NullCommandSink.
            mapper: Coordinate mapper used for pointer moves.
            config: Bridge settings. Uses defaults if None.
            metrics: Optional collector for dispatch outcomes.
        """
        self.sink = sink if sink is not None else NullCommandSink()
        self.config = config or BridgeConfig()
        self._mapper = mapper or CoordinateMapper()
        self._metrics = metrics
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ActionDispatch")
        self._lock = threading.Lock()
        self._in_flight: Future[bool] | None = None
        self._closed = False

    def commands_for(
        self, action: CombatAction, origin: tuple[float, float]
    ) -> list[SinkCommand]:
        """Build the sink commands for an action without sending them.

        Args:
            action: Action chosen by the state machine.
            origin: Reference point for movement direction (percent space).
        """
        if action.kind == ActionKind.SKILL and action.skill is not None:
            return [SinkCommand(CommandType.KEYPRESS, key=action.skill.keybind)]
        if action.kind == ActionKind.JUMP:
            return [SinkCommand(CommandType.KEYPRESS, key=self.config.jump_key)]
        if action.kind == ActionKind.LOOT:
            return [SinkCommand(CommandType.KEYPRESS, key=self.config.loot_key)]
        if action.kind == ActionKind.MOVE and action.direction is not None:
            if self.config.movement_mode == "pointer":
                return self._pointer_move(action.direction.x, action.direction.y)
            key = direction_key(action.direction.x - origin[0], action.direction.y - origin[1])
            return [SinkCommand(CommandType.KEYPRESS, key=key)]
        return []

    def _pointer_move(self, x: float, y: float) -> list[SinkCommand]:
        metrics = self._mapper.metrics
        if metrics is None:
            logger.debug("No frame metrics yet, skipping pointer move")
            return []
        nx, ny = self._mapper.point_to_normalized(x, y, metrics)
        return [SinkCommand(CommandType.MOVE, x=nx, y=ny)]

    def dispatch(
        self,
        action: CombatAction | None,
        origin: tuple[float, float],
        enabled: bool = True,
    ) -> Future[bool] | None:
        """Hand an action to the worker unless the previous one is still in flight.

        Args:
            action: Action to send. None is a no-op.
            origin: Reference point for movement direction.
            enabled: Whether actuation is switched on.

        Returns:
            Future resolving to True if every command succeeded, or None
            when nothing was sent.

        Raises:
            ActuationError: If the dispatcher has been shut down.
        """
        if action is None or not enabled:
            return None

        commands = self.commands_for(action, origin)
        if not commands:
            return None

        with self._lock:
            if self._closed:
                raise ActuationError("Dispatcher is shut down")
            if self._in_flight is not None and not self._in_flight.done():
                logger.debug(f"Bridge busy, skipping {action.kind.value} action")
                if self._metrics is not None:
                    self._metrics.record_dispatch_skipped()
                return None
            self._in_flight = self._executor.submit(self._send_all, commands)
            return self._in_flight

    def _send_all(self, commands: list[SinkCommand]) -> bool:
        ok = True
        for command in commands:
            try:
                if command.command_type == CommandType.MOVE:
                    sent = self.sink.send_move(command.x or 0.0, command.y or 0.0)
                else:
                    sent = self.sink.send_keypress(command.key or "")
            except ActuationError as e:
                logger.warning(f"Sink rejected {command!r}: {e}")
                sent = False
            except Exception as e:
                logger.error(f"Dispatch of {command!r} failed: {e}")
                sent = False

            if self._metrics is not None:
                self._metrics.record_dispatch(sent)
            ok = ok and sent
        return ok

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker thread. Later dispatches raise ActuationError."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
