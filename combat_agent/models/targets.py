"""Derived target and danger-zone models, rebuilt every tick."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from combat_agent.models.detections import Detection


class ThreatLevel(StrEnum):
    """Display-oriented threat label for a target."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PrioritizedTarget(BaseModel):
    """An enemy detection annotated with scoring data."""

    detection: Detection = Field(..., description="Source detection")
    priority: float = Field(..., description="Weighted score, higher is better")
    distance: float = Field(..., ge=0, description="Distance to the evaluation origin")
    threat_level: ThreatLevel = Field(default=ThreatLevel.MEDIUM)
    neighbor_count: int = Field(default=0, ge=0, description="Enemies within safety distance")
    is_in_danger_zone: bool = Field(default=False)
    is_isolated: bool = Field(default=True, description="neighbor_count <= 1")

    model_config = {"frozen": True}

    @property
    def center(self) -> tuple[float, float]:
        """Get the target's center point."""
        return self.detection.center

    def describe(self) -> str:
        """Short label used in action reasons."""
        crowd = "isolated" if self.is_isolated else f"{self.neighbor_count} neighbors"
        return f"{self.detection.type} ({self.distance:.0f}, {crowd})"


class DangerZone(BaseModel):
    """A cluster of enemies dense enough to avoid."""

    x: float = Field(..., description="Cluster centroid X")
    y: float = Field(..., description="Cluster centroid Y")
    radius: float = Field(..., ge=0, description="Configured safety distance")
    member_count: int = Field(..., ge=1, description="Enemies in the cluster")

    model_config = {"frozen": True}

    def contains(self, x: float, y: float, factor: float = 1.0) -> bool:
        """Check if a point lies within radius * factor of the centroid."""
        return ((x - self.x) ** 2 + (y - self.y) ** 2) ** 0.5 <= self.radius * factor
