"""Metrics collection for the combat loop.

This module provides metrics tracking for:
- Tick timing and rate
- Empty frames
- Actions chosen (by kind) and bridge dispatch outcomes
- State entries
- Error tracking

Example:
    >>> from combat_agent.core.metrics import MetricsCollector
    >>>
    >>> metrics = MetricsCollector()
    >>> metrics.record_tick(4.2)
    >>> metrics.record_action("skill")
    >>>
    >>> stats = metrics.get_metrics()
    >>> print(f"Tick rate: {stats.tick_rate_hz:.2f} Hz")
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Timestamps kept for the rate estimate
_RATE_WINDOW = 100


class AgentMetrics(BaseModel):
    """Snapshot of loop metrics at a point in time.

    Immutable, so it can be shared across threads and serialized.

    Attributes:
        tick_count: Total number of evaluated ticks.
        tick_rate_hz: Current tick rate in Hz.
        avg_tick_time_ms: Average time spent evaluating a tick.
        empty_frames: Ticks whose frame had no detections.
        actions_total: Actions chosen by the state machine.
        actions_by_kind: Count of chosen actions by kind.
        actions_dispatched: Bridge commands that succeeded.
        dispatch_failures: Bridge commands that failed.
        dispatch_skipped: Actions dropped because the bridge was still busy.
        actions_per_minute: Action rate.
        errors_total: Total errors encountered.
        errors_recovered: Errors that were recovered from.
        errors_by_type: Count of errors by type.
        state_entries: Number of times each combat state was entered.
        current_state: Last reported combat state.
        started_at: When collection started.
        uptime_seconds: Total uptime.
    """

    # Timing
    tick_count: int = Field(default=0, ge=0)
    tick_rate_hz: float = Field(default=0.0, ge=0.0)
    avg_tick_time_ms: float = Field(default=0.0, ge=0.0)
    empty_frames: int = Field(default=0, ge=0)

    # Actions
    actions_total: int = Field(default=0, ge=0)
    actions_by_kind: dict[str, int] = Field(default_factory=dict)
    actions_dispatched: int = Field(default=0, ge=0)
    dispatch_failures: int = Field(default=0, ge=0)
    dispatch_skipped: int = Field(default=0, ge=0)
    actions_per_minute: float = Field(default=0.0, ge=0.0)

    # Errors
    errors_total: int = Field(default=0, ge=0)
    errors_recovered: int = Field(default=0, ge=0)
    errors_by_type: dict[str, int] = Field(default_factory=dict)

    # Combat
    state_entries: dict[str, int] = Field(default_factory=dict)
    current_state: str = Field(default="")

    # Uptime
    started_at: datetime | None = Field(default=None)
    uptime_seconds: float = Field(default=0.0, ge=0.0)

    model_config = {"frozen": True}

    @property
    def dispatch_success_rate(self) -> float:
        """Fraction of bridge commands that succeeded (0.0 to 1.0)."""
        attempted = self.actions_dispatched + self.dispatch_failures
        if attempted == 0:
            return 0.0
        return self.actions_dispatched / attempted

    @property
    def error_recovery_rate(self) -> float:
        """Calculate error recovery rate (0.0 to 1.0)."""
        if self.errors_total == 0:
            return 1.0
        return self.errors_recovered / self.errors_total


@dataclass
class _TimingStats:
    total_ms: float = 0.0
    count: int = 0

    def record(self, duration_ms: float) -> None:
        self.total_ms += duration_ms
        self.count += 1

    @property
    def average_ms(self) -> float:
        if self.count == 0:
            return 0.0
        return self.total_ms / self.count


class MetricsCollector:
    """Collects metrics during loop execution.

    Thread-safe: the loop thread records while the observer reads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tick_timing = _TimingStats()
        self._empty_frames = 0

        self._actions_by_kind: dict[str, int] = {}
        self._actions_dispatched = 0
        self._dispatch_failures = 0
        self._dispatch_skipped = 0

        self._errors_recovered = 0
        self._errors_fatal = 0
        self._errors_by_type: dict[str, int] = {}

        self._state_entries: dict[str, int] = {}
        self._current_state = ""

        self._started_at: datetime | None = None
        self._tick_times: list[float] = []

        logger.debug("MetricsCollector initialized")

    def start(self) -> None:
        """Mark the start of metrics collection."""
        with self._lock:
            self._started_at = datetime.now()
            logger.debug("Metrics collection started")

    def reset(self) -> None:
        """Reset all metrics to initial state."""
        with self._lock:
            self._tick_timing = _TimingStats()
            self._empty_frames = 0
            self._actions_by_kind.clear()
            self._actions_dispatched = 0
            self._dispatch_failures = 0
            self._dispatch_skipped = 0
            self._errors_recovered = 0
            self._errors_fatal = 0
            self._errors_by_type.clear()
            self._state_entries.clear()
            self._current_state = ""
            self._started_at = None
            self._tick_times.clear()
            logger.debug("Metrics reset")

    def record_tick(self, duration_ms: float, empty: bool = False) -> None:
        """Record a completed tick.

        Args:
            duration_ms: Time spent evaluating the tick.
            empty: Whether the frame carried no detections.
        """
        with self._lock:
            self._tick_timing.record(duration_ms)
            if empty:
                self._empty_frames += 1

            self._tick_times.append(time.time())
            if len(self._tick_times) > _RATE_WINDOW:
                self._tick_times = self._tick_times[-_RATE_WINDOW:]

    def record_action(self, kind: str) -> None:
        """Record an action chosen by the state machine."""
        with self._lock:
            self._actions_by_kind[kind] = self._actions_by_kind.get(kind, 0) + 1

    def record_dispatch(self, success: bool) -> None:
        """Record the outcome of a bridge command."""
        with self._lock:
            if success:
                self._actions_dispatched += 1
            else:
                self._dispatch_failures += 1

    def record_dispatch_skipped(self) -> None:
        """Record an action dropped while the previous one was still being sent."""
        with self._lock:
            self._dispatch_skipped += 1

    def record_state(self, state: str, entered: bool) -> None:
        """Record the current combat state.

        Args:
            state: State value after the tick.
            entered: Whether the tick changed into this state.
        """
        with self._lock:
            self._current_state = state
            if entered:
                self._state_entries[state] = self._state_entries.get(state, 0) + 1

    def record_error(self, error_type: str, recovered: bool) -> None:
        """Record an error.

        Args:
            error_type: Type/class name of the error.
            recovered: Whether the loop recovered from this error.
        """
        with self._lock:
            if recovered:
                self._errors_recovered += 1
            else:
                self._errors_fatal += 1

            self._errors_by_type[error_type] = self._errors_by_type.get(error_type, 0) + 1

    def _calculate_tick_rate(self) -> float:
        if len(self._tick_times) < 2:
            return 0.0

        duration = self._tick_times[-1] - self._tick_times[0]
        if duration <= 0:
            return 0.0

        return (len(self._tick_times) - 1) / duration

    def _calculate_actions_per_minute(self) -> float:
        if self._started_at is None:
            return 0.0

        uptime = (datetime.now() - self._started_at).total_seconds()
        if uptime <= 0:
            return 0.0

        return (sum(self._actions_by_kind.values()) / uptime) * 60

    def get_metrics(self) -> AgentMetrics:
        """Get a snapshot of all current metrics."""
        with self._lock:
            uptime = 0.0
            if self._started_at is not None:
                uptime = (datetime.now() - self._started_at).total_seconds()

            return AgentMetrics(
                tick_count=self._tick_timing.count,
                tick_rate_hz=self._calculate_tick_rate(),
                avg_tick_time_ms=self._tick_timing.average_ms,
                empty_frames=self._empty_frames,
                actions_total=sum(self._actions_by_kind.values()),
                actions_by_kind=dict(self._actions_by_kind),
                actions_dispatched=self._actions_dispatched,
                dispatch_failures=self._dispatch_failures,
                dispatch_skipped=self._dispatch_skipped,
                actions_per_minute=self._calculate_actions_per_minute(),
                errors_total=self._errors_recovered + self._errors_fatal,
                errors_recovered=self._errors_recovered,
                errors_by_type=dict(self._errors_by_type),
                state_entries=dict(self._state_entries),
                current_state=self._current_state,
                started_at=self._started_at,
                uptime_seconds=uptime,
            )
