"""Skill cooldown tracking and selection."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from combat_agent.models.skills import DEFAULT_SKILLS, Skill

logger = logging.getLogger(__name__)

HEAL_TOKEN = "heal"


class SkillScheduler:
    """Owns the skill roster and its cooldown timestamps.

    Selection never fails: when nothing is eligible it returns None and the
    caller simply skips the action for this tick.
    """

    def __init__(self, roster: Iterable[Skill] | None = None) -> None:
        self._skills: list[Skill] = list(roster if roster is not None else DEFAULT_SKILLS)

    @property
    def skills(self) -> tuple[Skill, ...]:
        """Get a snapshot of the roster in configured order."""
        return tuple(self._skills)

    def get(self, skill_id: str) -> Skill | None:
        for skill in self._skills:
            if skill.id == skill_id:
                return skill
        return None

    def is_eligible(self, skill: Skill, area_needed: bool, target_count: int, now_ms: float) -> bool:
        """Check cooldown and area requirements for one skill."""
        if not skill.is_ready(now_ms):
            return False
        if area_needed:
            if not skill.is_area:
                return False
            return skill.min_targets is None or target_count >= skill.min_targets
        return not skill.is_area_only

    def select(self, area_needed: bool, target_count: int, now_ms: float) -> Skill | None:
        """Pick the highest-priority eligible skill.

        Args:
            area_needed: Whether an area skill is requested.
            target_count: Number of targets the area skill would hit.
            now_ms: Current time in milliseconds.

        Returns:
            The chosen skill, or None if nothing qualifies. Ties go to the
            skill listed first.
        """
        best: Skill | None = None
        for skill in self._skills:
            if not self.is_eligible(skill, area_needed, target_count, now_ms):
                continue
            if best is None or skill.priority > best.priority:
                best = skill
        return best

    def find_heal(self, now_ms: float) -> Skill | None:
        """First ready skill whose name mentions healing."""
        for skill in self._skills:
            if HEAL_TOKEN in skill.name.lower() and skill.is_ready(now_ms):
                return skill
        return None

    def mark_used(self, skill_id: str, now_ms: float) -> Skill | None:
        """Stamp a skill's last use. Timestamps never move backwards."""
        for index, skill in enumerate(self._skills):
            if skill.id == skill_id:
                updated = skill.model_copy(
                    update={"last_used_ms": max(skill.last_used_ms, now_ms)}
                )
                self._skills[index] = updated
                return updated
        logger.warning(f"mark_used for unknown skill id {skill_id!r}")
        return None

    def replace(self, roster: Iterable[Skill]) -> None:
        """Replace the whole roster."""
        self._skills = list(roster)
        logger.info(f"Skill roster replaced ({len(self._skills)} skills)")

    def reset(self) -> None:
        """Put every skill off cooldown."""
        self._skills = [skill.model_copy(update={"last_used_ms": 0.0}) for skill in self._skills]
