"""Tactical analysis: danger zones, target ranking and skill selection."""

from combat_agent.tactics.danger import DangerZoneDetector
from combat_agent.tactics.prioritizer import TargetPrioritizer
from combat_agent.tactics.skills import SkillScheduler

__all__ = ["DangerZoneDetector", "SkillScheduler", "TargetPrioritizer"]
