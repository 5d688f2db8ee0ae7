"""Skill roster model."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Skill(BaseModel):
    """A combat ability bound to a key.

    Skills are immutable; using one produces a copy with a newer
    ``last_used_ms`` (see SkillScheduler.mark_used).
    """

    id: str = Field(..., min_length=1, description="Unique skill identifier")
    name: str = Field(..., min_length=1, description="Display name")
    keybind: str = Field(..., min_length=1, description="Key token sent to the game")
    cooldown_ms: float = Field(default=0.0, ge=0, description="Cooldown duration")
    last_used_ms: float = Field(default=0.0, ge=0, description="Last use timestamp")
    priority: int = Field(default=1, description="Selection rank, higher wins")
    is_area: bool = Field(default=False, description="Hits multiple targets")
    min_targets: int | None = Field(default=None, ge=1, description="Area-only threshold")
    range: float = Field(default=100.0, ge=0, description="Effective range")

    model_config = {"frozen": True}

    def is_ready(self, now_ms: float) -> bool:
        """Check if the cooldown has elapsed."""
        return now_ms - self.last_used_ms >= self.cooldown_ms

    def remaining_ms(self, now_ms: float) -> float:
        """Get remaining cooldown in milliseconds."""
        return max(0.0, self.cooldown_ms - (now_ms - self.last_used_ms))

    @property
    def is_area_only(self) -> bool:
        """Area skills with a target threshold are never used on single targets."""
        return self.is_area and self.min_targets is not None


DEFAULT_SKILLS: tuple[Skill, ...] = (
    Skill(id="1", name="Main Attack", keybind="1", cooldown_ms=0, priority=1, range=100),
    Skill(id="2", name="Heavy Strike", keybind="2", cooldown_ms=5000, priority=2, range=100),
    Skill(
        id="3",
        name="Whirlwind",
        keybind="3",
        cooldown_ms=10000,
        priority=3,
        is_area=True,
        min_targets=3,
        range=150,
    ),
    Skill(id="4", name="Buff", keybind="4", cooldown_ms=30000, priority=4, range=0),
    Skill(id="5", name="Heal", keybind="5", cooldown_ms=15000, priority=10, range=0),
)
