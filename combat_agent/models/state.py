"""Combat state, player tracking and counter models."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class CombatState(StrEnum):
    """The single active state of the combat state machine."""

    IDLE = "idle"
    SEARCHING = "searching"
    APPROACHING = "approaching"
    COMBAT = "combat"
    LOOTING = "looting"
    HEALING = "healing"
    KITING = "kiting"
    AOE = "aoe"
    AVOIDING = "avoiding"


class PlayerPosition(BaseModel):
    """Last known player position."""

    x: float
    y: float
    timestamp_ms: float = Field(default=0.0, ge=0)

    model_config = {"frozen": True}


class VitalsReading(BaseModel):
    """Player HP and mana as percentages."""

    hp: float = Field(default=100.0, ge=0.0, le=100.0)
    mana: float = Field(default=100.0, ge=0.0, le=100.0)

    model_config = {"frozen": True}


class CombatStats(BaseModel):
    """Running counters kept by the state machine."""

    kill_count: int = Field(default=0, ge=0, description="Approximate: vanished enemy ids")
    skills_used: int = Field(default=0, ge=0)
    aoe_hits: int = Field(default=0, ge=0)
    dangers_avoided: int = Field(default=0, ge=0)

    model_config = {"frozen": True}
