"""Main combat loop implementation.

This module provides the AgentLoop class that orchestrates:
- Pulling detection frames from a source
- Evaluating them with the combat state machine
- Dispatching the chosen action to the bridge

The loop follows the pattern: Perceive → Decide → Act → Repeat

Features:
- Configurable tick rate
- Pause/resume/stop support, also via queued control commands
- Error recovery for transient errors
- Graceful shutdown on signals
- Metrics and event stream updates every tick

Example:
    >>> from combat_agent.core.loop import AgentLoop, LoopConfig
    >>> from combat_agent.perception.sources import JsonlDetectionSource
    >>>
    >>> loop = AgentLoop(
    ...     source=JsonlDetectionSource("session.jsonl"),
    ...     machine=CombatStateMachine(),
    ... )
    >>> loop.start(blocking=True)
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from combat_agent.core.metrics import MetricsCollector
from combat_agent.interfaces.actuation import ActuationError
from combat_agent.interfaces.perception import SourceExhausted
from combat_agent.models.skills import Skill
from combat_agent.models.state import CombatState

if TYPE_CHECKING:
    from combat_agent.actions.dispatcher import ActionDispatcher
    from combat_agent.config.loader import AgentConfig
    from combat_agent.core.state_machine import CombatStateMachine, TickResult
    from combat_agent.interfaces.perception import DetectionSource
    from combat_agent.observer.streaming import EventStreamService

logger = logging.getLogger(__name__)

# Sleep between checks while paused or waiting for frames
_IDLE_POLL_SECONDS = 0.05


class LoopState(StrEnum):
    """Possible states of the combat loop."""

    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"
    STOPPING = "stopping"


class RecoverableError(Exception):
    """Error that the loop can recover from.

    When this error is raised, the loop will log it and continue
    to the next iteration.
    """

    pass


class FatalError(Exception):
    """Error that requires stopping the loop.

    When this error is raised, the loop will stop and
    the error will be propagated.
    """

    pass


@dataclass
class LoopConfig:
    """Configuration for the combat loop.

    Attributes:
        target_rate_hz: Target tick rate in Hz.
        max_consecutive_errors: Max errors before stopping.
        error_recovery_delay_ms: Delay after recoverable error.
        enable_signal_handlers: Whether to install signal handlers.
        max_ticks: Stop after this many ticks (None runs until stopped).
    """

    target_rate_hz: float = 5.0
    max_consecutive_errors: int = 5
    error_recovery_delay_ms: float = 500.0
    enable_signal_handlers: bool = True
    max_ticks: int | None = None

    @classmethod
    def from_agent_config(cls, agent: AgentConfig, **overrides: Any) -> LoopConfig:
        """Build from the ``agent`` section of the root config."""
        return cls(
            target_rate_hz=agent.tick_rate_hz,
            max_consecutive_errors=agent.max_consecutive_errors,
            error_recovery_delay_ms=agent.error_recovery_delay_ms,
            **overrides,
        )


class AgentLoop:
    """Drives the combat state machine from a detection source.

    Each tick pulls one frame. When the source has nothing new the tick
    is skipped; when it is exhausted the loop stops cleanly.

    Attributes:
        state: Current loop state.
        metrics: Metrics collector instance.

    Example:
        >>> loop = AgentLoop(source, machine, dispatcher)
        >>> loop.start()  # Runs in background thread
        >>> loop.pause()
        >>> loop.resume()
        >>> loop.stop()
    """

    def __init__(
        self,
        source: DetectionSource,
        machine: CombatStateMachine,
        dispatcher: ActionDispatcher | None = None,
        metrics: MetricsCollector | None = None,
        config: LoopConfig | None = None,
        events: EventStreamService | None = None,
    ) -> None:
        """Initialize the loop.

        Args:
            source: Where detection frames come from.
            machine: Combat state machine that evaluates each frame.
            dispatcher: Sends actions to the bridge. Actions are not sent if None.
            metrics: Metrics collector. Creates new one if None.
            config: Loop configuration. Uses defaults if None.
            events: Optional event stream that receives one event per tick.
        """
        self._source = source
        self._machine = machine
        self._dispatcher = dispatcher
        self._metrics = metrics or MetricsCollector()
        self._config = config or LoopConfig()
        self._events = events

        self._state = LoopState.STOPPED
        self._state_lock = threading.Lock()
        self._loop_thread: threading.Thread | None = None
        self._consecutive_errors = 0
        self._tick_count = 0
        self._last_result: TickResult | None = None

        # Callbacks
        self._on_tick_complete: Callable[[TickResult], None] | None = None
        self._on_error: Callable[[Exception], None] | None = None
        self._on_state_change: Callable[[LoopState], None] | None = None

        logger.debug(f"AgentLoop initialized: target_rate={self._config.target_rate_hz}Hz")

    @property
    def state(self) -> LoopState:
        """Get the current loop state."""
        with self._state_lock:
            return self._state

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def machine(self) -> CombatStateMachine:
        return self._machine

    @property
    def tick_count(self) -> int:
        """Ticks evaluated since the last start."""
        return self._tick_count

    @property
    def last_result(self) -> TickResult | None:
        """Get the last tick result (for debugging)."""
        return self._last_result

    def set_callbacks(
        self,
        on_tick_complete: Callable[[TickResult], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        on_state_change: Callable[[LoopState], None] | None = None,
    ) -> None:
        """Set optional callbacks.

        Args:
            on_tick_complete: Called after each evaluated tick with its result.
            on_error: Called when an error occurs.
            on_state_change: Called when the loop state changes.
        """
        self._on_tick_complete = on_tick_complete
        self._on_error = on_error
        self._on_state_change = on_state_change

    def _set_state(self, new_state: LoopState) -> None:
        """Set the loop state (thread-safe)."""
        with self._state_lock:
            old_state = self._state
            self._state = new_state

        if old_state != new_state:
            logger.info(f"Loop state: {old_state.value} -> {new_state.value}")
            if self._events is not None:
                self._events.push_event({"event": "loop_state", "state": new_state.value})
            if self._on_state_change:
                try:
                    self._on_state_change(new_state)
                except Exception as e:
                    logger.warning(f"State change callback error: {e}")

    def start(self, blocking: bool = False) -> None:
        """Start the loop.

        Args:
            blocking: If True, runs in current thread (blocks).
                     If False, runs in background thread.

        Raises:
            RuntimeError: If loop is already running.
        """
        if self.state in (LoopState.RUNNING, LoopState.PAUSED):
            raise RuntimeError(f"Loop is already {self.state.value}")

        if self._config.enable_signal_handlers:
            self._install_signal_handlers()

        self._tick_count = 0
        self._consecutive_errors = 0
        self._metrics.start()
        self._set_state(LoopState.RUNNING)

        if blocking:
            self._run_loop()
        else:
            self._loop_thread = threading.Thread(
                target=self._run_loop,
                name="AgentLoop",
                daemon=True,
            )
            self._loop_thread.start()
            logger.info("Combat loop started in background thread")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the loop and reset the state machine.

        Args:
            timeout: Maximum time to wait for the loop thread.
        """
        if self.state == LoopState.STOPPED:
            return

        self._set_state(LoopState.STOPPING)

        if (
            self._loop_thread
            and self._loop_thread.is_alive()
            and self._loop_thread is not threading.current_thread()
        ):
            self._loop_thread.join(timeout=timeout)
            if self._loop_thread.is_alive():
                logger.warning("Loop thread did not stop within timeout")

        self._machine.reset()
        self._set_state(LoopState.STOPPED)
        logger.info("Combat loop stopped")

    def pause(self) -> None:
        """Pause the loop after the current tick."""
        if self.state == LoopState.RUNNING:
            self._set_state(LoopState.PAUSED)

    def resume(self) -> None:
        """Resume the loop from paused state."""
        if self.state == LoopState.PAUSED:
            self._set_state(LoopState.RUNNING)

    def _install_signal_handlers(self) -> None:
        def signal_handler(signum: int, _frame: object) -> None:
            sig_name = signal.Signals(signum).name
            logger.info(f"Received {sig_name}, stopping loop...")
            self.stop()

        try:
            signal.signal(signal.SIGINT, signal_handler)
            signal.signal(signal.SIGTERM, signal_handler)
            logger.debug("Signal handlers installed")
        except ValueError:
            # Can only set handlers in main thread
            logger.debug("Could not install signal handlers (not main thread)")

    def _run_loop(self) -> None:
        """Main loop execution."""
        logger.info("Combat loop running")

        while self.state in (LoopState.RUNNING, LoopState.PAUSED):
            tick_start = time.time()
            self.process_control_commands()

            if self.state == LoopState.PAUSED:
                time.sleep(_IDLE_POLL_SECONDS)
                continue
            if self.state != LoopState.RUNNING:
                break

            try:
                result = self._run_tick()
                self._consecutive_errors = 0

            except SourceExhausted:
                logger.info(f"Detection source exhausted after {self._tick_count} ticks")
                self._set_state(LoopState.STOPPING)
                break

            except RecoverableError as e:
                if not self._handle_recoverable_error(e):
                    break
                continue

            except FatalError as e:
                self._handle_fatal_error(e)
                break

            except Exception as e:
                # Treat unknown exceptions as recoverable up to a limit
                logger.exception(f"Unexpected error in loop: {e}")
                self._metrics.record_error(type(e).__name__, recovered=True)
                self._consecutive_errors += 1

                if self._consecutive_errors >= self._config.max_consecutive_errors:
                    logger.error(
                        f"Max consecutive errors ({self._config.max_consecutive_errors}) reached"
                    )
                    self._set_state(LoopState.ERROR)
                    break

                time.sleep(self._config.error_recovery_delay_ms / 1000)
                continue

            if result is None:
                # No new frame yet
                time.sleep(_IDLE_POLL_SECONDS)
                continue

            if self._on_tick_complete:
                try:
                    self._on_tick_complete(result)
                except Exception as e:
                    logger.warning(f"Tick callback error: {e}")

            if self._config.max_ticks is not None and self._tick_count >= self._config.max_ticks:
                logger.info(f"Reached max ticks ({self._config.max_ticks})")
                self._set_state(LoopState.STOPPING)
                break

            self._apply_rate_limit(tick_start)

        if self.state == LoopState.STOPPING:
            self._set_state(LoopState.STOPPED)
        self._source.close()
        logger.info("Combat loop exited")

    def _run_tick(self) -> TickResult | None:
        """Evaluate one frame, if there is one.

        Raises:
            RecoverableError: If the source failed to read a frame.
            FatalError: If actions can no longer be delivered.
        """
        try:
            frame = self._source.next_frame()
        except OSError as e:
            raise RecoverableError(f"Detection source read failed: {e}") from e
        if frame is None:
            return None

        tick_start = time.time()
        result = self._machine.tick(frame)
        duration_ms = (time.time() - tick_start) * 1000

        self._tick_count += 1
        self._last_result = result
        self._metrics.record_tick(duration_ms, empty=frame.is_empty)
        self._metrics.record_state(result.state.value, entered=result.state_changed)
        if result.action is not None:
            self._metrics.record_action(result.action.kind.value)

        if self._dispatcher is not None:
            try:
                self._dispatcher.dispatch(
                    result.action,
                    self._machine.screen_center,
                    enabled=self._machine.config.combat_enabled,
                )
            except ActuationError as e:
                raise FatalError(f"Action dispatch unavailable: {e}") from e

        if self._events is not None:
            event = result.to_event()
            event["tick"] = self._tick_count
            event["duration_ms"] = round(duration_ms, 2)
            self._events.push_event(event)

        return result

    def process_control_commands(self) -> int:
        """Apply control commands queued on the event stream.

        Returns:
            Number of commands applied.
        """
        if self._events is None:
            return 0

        commands = self._events.pop_control_commands()
        for entry in commands:
            command = entry["command"]
            logger.info(f"Control command: {command}")
            if command == "pause":
                self.pause()
            elif command == "resume":
                self.resume()
            elif command == "reset-stats":
                self._machine.reset_stats()
            elif command == "reset":
                self._machine.reset()
            elif command == "force-state":
                self._machine.force_state(CombatState(entry["payload"]["state"]))
            elif command == "update-combat":
                self._apply_combat_update(entry["payload"]["updates"])
            elif command == "replace-skills":
                skills = [Skill.model_validate(s) for s in entry["payload"]["skills"]]
                self._machine.update_skills(skills)
                self._push_config_event({"section": "skills", "count": len(skills)})
        return len(commands)

    def _apply_combat_update(self, updates: dict[str, Any]) -> None:
        try:
            self._machine.update_config(updates)
        except ValidationError as e:
            # Validated when queued; an earlier queued update can still conflict
            logger.warning(f"Rejected queued combat config update: {e}")
            return
        self._push_config_event({"section": "combat", "fields": sorted(updates)})

    def _push_config_event(self, details: dict[str, Any]) -> None:
        if self._events is not None:
            self._events.push_event({"event": "config", **details})

    def _handle_recoverable_error(self, error: RecoverableError) -> bool:
        """Record a recoverable error. Returns False once the error budget is spent."""
        logger.warning(f"Recoverable error: {error}")
        self._metrics.record_error(type(error).__name__, recovered=True)
        self._consecutive_errors += 1

        if self._on_error:
            try:
                self._on_error(error)
            except Exception as e:
                logger.warning(f"Error callback error: {e}")

        if self._consecutive_errors >= self._config.max_consecutive_errors:
            logger.error(f"Max consecutive errors ({self._config.max_consecutive_errors}) reached")
            self._set_state(LoopState.ERROR)
            return False

        time.sleep(self._config.error_recovery_delay_ms / 1000)
        return True

    def _handle_fatal_error(self, error: FatalError) -> None:
        logger.error(f"Fatal error: {error}")
        self._metrics.record_error(type(error).__name__, recovered=False)
        self._set_state(LoopState.ERROR)

        if self._on_error:
            try:
                self._on_error(error)
            except Exception as e:
                logger.warning(f"Error callback error: {e}")

    def _apply_rate_limit(self, tick_start: float) -> None:
        """Sleep to hold the target tick rate."""
        required_sleep = 1.0 / self._config.target_rate_hz - (time.time() - tick_start)
        if required_sleep > 0:
            time.sleep(required_sleep)

    def run_once(self) -> TickResult | None:
        """Run a single tick manually.

        Useful for testing or step-by-step execution.

        Returns:
            The tick result, or None if the source had no new frame.

        Raises:
            RuntimeError: If loop is currently running.
            SourceExhausted: If the source has no more frames.
        """
        if self.state == LoopState.RUNNING:
            raise RuntimeError("Cannot run_once while loop is running")

        return self._run_tick()
