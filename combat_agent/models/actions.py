"""Action models emitted by the combat state machine."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from combat_agent.models.skills import Skill
from combat_agent.models.targets import PrioritizedTarget


class ActionKind(StrEnum):
    """Kinds of actions the state machine can emit."""

    SKILL = "skill"
    MOVE = "move"
    JUMP = "jump"
    LOOT = "loot"
    WAIT = "wait"


class Position(BaseModel):
    """A point in detection space. May fall outside the frame."""

    x: float = Field(..., description="X coordinate")
    y: float = Field(..., description="Y coordinate")

    model_config = {"frozen": True}


class CombatAction(BaseModel):
    """One concrete action chosen for a tick.

    Actions are immutable records; the reason is a short human-readable
    explanation kept for logs and the observer.
    """

    kind: ActionKind = Field(..., description="The type of action")
    reason: str = Field(..., min_length=1, description="Why this action was chosen")
    skill: Skill | None = Field(default=None, description="Skill to use")
    target: PrioritizedTarget | None = Field(default=None, description="Target acted upon")
    direction: Position | None = Field(default=None, description="Point to move toward")
    key: str | None = Field(default=None, description="Raw key token")

    model_config = {"frozen": True}

    @classmethod
    def use_skill(
        cls,
        skill: Skill,
        reason: str,
        target: PrioritizedTarget | None = None,
    ) -> CombatAction:
        """Create a skill action."""
        return cls(kind=ActionKind.SKILL, skill=skill, target=target, reason=reason)

    @classmethod
    def move_toward(
        cls,
        x: float,
        y: float,
        reason: str,
        target: PrioritizedTarget | None = None,
    ) -> CombatAction:
        """Create a move action toward a point."""
        return cls(
            kind=ActionKind.MOVE,
            direction=Position(x=x, y=y),
            target=target,
            reason=reason,
        )

    @classmethod
    def jump(cls, reason: str, key: str = "space") -> CombatAction:
        """Create a jump action."""
        return cls(kind=ActionKind.JUMP, key=key, reason=reason)

    @classmethod
    def collect_loot(cls, reason: str) -> CombatAction:
        """Create a loot action."""
        return cls(kind=ActionKind.LOOT, reason=reason)

    @classmethod
    def wait(cls, reason: str) -> CombatAction:
        """Create a wait action."""
        return cls(kind=ActionKind.WAIT, reason=reason)

    def summary(self) -> dict[str, object]:
        """Compact dict used for event streams."""
        data: dict[str, object] = {"kind": self.kind.value, "reason": self.reason}
        if self.skill is not None:
            data["skill"] = self.skill.name
        if self.direction is not None:
            data["direction"] = {"x": round(self.direction.x, 2), "y": round(self.direction.y, 2)}
        if self.target is not None:
            data["target_id"] = self.target.detection.id
        if self.key is not None:
            data["key"] = self.key
        return data
