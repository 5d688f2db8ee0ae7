"""Runtime container used by CLI commands."""

from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass

from combat_agent.actions.dispatcher import ActionDispatcher
from combat_agent.cli.helpers import ObserverServer
from combat_agent.core.loop import AgentLoop
from combat_agent.core.state_machine import CombatStateMachine
from combat_agent.interfaces.actuation import CommandSink
from combat_agent.observer.streaming import EventStreamService

logger = logging.getLogger(__name__)


@dataclass
class CombatRuntime:
    """Runtime wrapper for an assembled combat session."""

    loop: AgentLoop
    machine: CombatStateMachine
    dispatcher: ActionDispatcher
    sink: CommandSink
    event_service: EventStreamService
    observer_server: ObserverServer | None = None

    def run(self) -> int:
        """Run the loop in the current thread until it stops.

        Returns:
            Number of ticks evaluated.
        """
        self.loop.start(blocking=True)
        ticks = self.loop.tick_count
        stats = self.machine.stats
        logger.info(
            "Session finished: ticks=%d state=%s kills=%d skills=%d aoe_hits=%d dangers_avoided=%d",
            ticks,
            self.machine.state.value,
            stats.kill_count,
            stats.skills_used,
            stats.aoe_hits,
            stats.dangers_avoided,
        )
        return ticks

    def shutdown(self) -> None:
        """Shutdown runtime resources."""
        self.loop.stop()
        self.dispatcher.shutdown(wait=True)
        if self.observer_server is not None:
            with contextlib.suppress(Exception):
                self.observer_server.stop()
