"""Shared data models for the combat agent.

All models use Pydantic for validation and serialization.
"""

from combat_agent.models.actions import ActionKind, CombatAction, Position
from combat_agent.models.detections import Detection, DetectionFrame
from combat_agent.models.skills import DEFAULT_SKILLS, Skill
from combat_agent.models.state import CombatState, CombatStats, PlayerPosition, VitalsReading
from combat_agent.models.targets import DangerZone, PrioritizedTarget, ThreatLevel

__all__ = [
    "DEFAULT_SKILLS",
    "ActionKind",
    "CombatAction",
    "CombatState",
    "CombatStats",
    "DangerZone",
    "Detection",
    "DetectionFrame",
    "PlayerPosition",
    "Position",
    "PrioritizedTarget",
    "Skill",
    "ThreatLevel",
    "VitalsReading",
]
