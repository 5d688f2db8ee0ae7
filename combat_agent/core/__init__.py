"""Core combat components.

This package contains:
- CombatStateMachine: Per-tick decision making
- AgentLoop: Perceive-decide-act loop around the state machine
- MetricsCollector: Loop and combat metrics
"""

from combat_agent.core.loop import (
    AgentLoop,
    FatalError,
    LoopConfig,
    LoopState,
    RecoverableError,
)
from combat_agent.core.metrics import AgentMetrics, MetricsCollector
from combat_agent.core.state_machine import CombatStateMachine, TickResult

__all__ = [
    "AgentLoop",
    "AgentMetrics",
    "CombatStateMachine",
    "FatalError",
    "LoopConfig",
    "LoopState",
    "MetricsCollector",
    "RecoverableError",
    "TickResult",
]
