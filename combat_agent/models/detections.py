"""Detection models for the perception input contract."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field


class Detection(BaseModel):
    """One perceived entity in a single frame.

    Box values live in the detection's own coordinate space (percent of frame
    for most sources). The id is only meaningful within the frame it came from.
    """

    id: int = Field(..., description="Identity within the source frame")
    type: str = Field(..., description="Free-text class label, e.g. 'enemy_nameplate'")
    x: Annotated[float, Field(ge=0, allow_inf_nan=False)] = Field(..., description="Left edge")
    y: Annotated[float, Field(ge=0, allow_inf_nan=False)] = Field(..., description="Top edge")
    width: Annotated[float, Field(ge=0, allow_inf_nan=False)] = Field(..., description="Box width")
    height: Annotated[float, Field(ge=0, allow_inf_nan=False)] = Field(
        ..., description="Box height"
    )
    confidence: Annotated[float, Field(ge=0.0, le=100.0)] = Field(
        default=100.0, description="Detection confidence (0-100)"
    )
    center_x: float | None = Field(default=None, description="Precomputed center X")
    center_y: float | None = Field(default=None, description="Precomputed center Y")
    raw_width: float | None = Field(default=None, ge=0, description="Raw pixel width")
    raw_height: float | None = Field(default=None, ge=0, description="Raw pixel height")

    model_config = {"frozen": True}

    @property
    def center(self) -> tuple[float, float]:
        """Get the center point, preferring precomputed values."""
        cx = self.center_x if self.center_x is not None else self.x + self.width / 2
        cy = self.center_y if self.center_y is not None else self.y + self.height / 2
        return (cx, cy)

    @property
    def type_lower(self) -> str:
        """Get the lower-cased type label."""
        return self.type.lower()


class DetectionFrame(BaseModel):
    """All detections produced by perception for one tick."""

    detections: list[Detection] = Field(default_factory=list, description="Detected entities")
    player_hp: float | None = Field(
        default=None,
        ge=0.0,
        le=100.0,
        description="HP estimate supplied by perception; overrides HP bar reading",
    )
    source_width: int = Field(default=0, ge=0, description="Intrinsic video width (0 = unknown)")
    source_height: int = Field(
        default=0, ge=0, description="Intrinsic video height (0 = unknown)"
    )
    timestamp: datetime = Field(default_factory=datetime.now, description="Capture time")

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        """Check if the frame carries no detections."""
        return not self.detections
