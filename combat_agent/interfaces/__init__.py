"""Interface definitions for the combat agent's external boundaries.

The decision core depends only on these interfaces, so perception and
actuation can be swapped or faked in tests.
"""

from combat_agent.interfaces.actuation import (
    ActuationError,
    BridgeStatus,
    CommandSink,
    CommandType,
    SinkCommand,
)
from combat_agent.interfaces.perception import DetectionSource, SourceExhausted

__all__ = [
    "ActuationError",
    "BridgeStatus",
    "CommandSink",
    "CommandType",
    "DetectionSource",
    "SinkCommand",
    "SourceExhausted",
]
