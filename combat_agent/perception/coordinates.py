"""Coordinate mapping between detection space, viewport pixels and [0, 1].

Detections arrive as percentages of the source frame. The source is shown
letterboxed (or pillarboxed) inside a container, so pointer commands must
account for the display offsets before normalizing.

Example:
    >>> mapper = CoordinateMapper()
    >>> metrics = mapper.update(1920, 1080, 1920, 1200)
    >>> metrics.offset_y
    60.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from combat_agent.models.detections import Detection

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_WIDTH = 1920
DEFAULT_SOURCE_HEIGHT = 1080


@dataclass(frozen=True)
class FrameMetrics:
    """Where the source frame sits inside the container.

    Attributes:
        source_width: Intrinsic source width in pixels.
        source_height: Intrinsic source height in pixels.
        display_width: Rendered width of the source inside the container.
        display_height: Rendered height of the source inside the container.
        offset_x: Horizontal pillarbox offset.
        offset_y: Vertical letterbox offset.
        scale: display_width / source_width.
    """

    source_width: float
    source_height: float
    display_width: float
    display_height: float
    offset_x: float = 0.0
    offset_y: float = 0.0
    scale: float = 1.0

    @property
    def total_width(self) -> float:
        return self.display_width + self.offset_x * 2

    @property
    def total_height(self) -> float:
        return self.display_height + self.offset_y * 2


class CoordinateMapper:
    """Computes and caches the letterbox-aware frame metrics."""

    def __init__(self) -> None:
        self._metrics: FrameMetrics | None = None

    @property
    def metrics(self) -> FrameMetrics | None:
        """Get the last computed metrics, or None before the first update."""
        return self._metrics

    def update(
        self,
        source_width: float,
        source_height: float,
        container_width: float,
        container_height: float,
    ) -> FrameMetrics:
        """Recompute metrics for a source shown inside a container.

        A source without dimensions (stream not ready yet) yields a stable
        1920x1080 mapping that fills the container at scale 1.
        """
        if not source_width or not source_height or not container_height:
            metrics = FrameMetrics(
                source_width=DEFAULT_SOURCE_WIDTH,
                source_height=DEFAULT_SOURCE_HEIGHT,
                display_width=container_width,
                display_height=container_height,
            )
            self._metrics = metrics
            return metrics

        source_aspect = source_width / source_height
        container_aspect = container_width / container_height

        if source_aspect > container_aspect:
            # Wider than the container: bars top and bottom
            display_width = container_width
            display_height = container_width / source_aspect
            offset_x = 0.0
            offset_y = (container_height - display_height) / 2
        else:
            # Taller than the container: bars left and right
            display_height = container_height
            display_width = container_height * source_aspect
            offset_x = (container_width - display_width) / 2
            offset_y = 0.0

        metrics = FrameMetrics(
            source_width=source_width,
            source_height=source_height,
            display_width=display_width,
            display_height=display_height,
            offset_x=offset_x,
            offset_y=offset_y,
            scale=display_width / source_width,
        )
        if metrics != self._metrics:
            logger.debug(
                "Frame metrics: display=%.0fx%.0f offset=(%.1f, %.1f) scale=%.3f",
                display_width,
                display_height,
                offset_x,
                offset_y,
                metrics.scale,
            )
        self._metrics = metrics
        return metrics

    def point_to_viewport(
        self, x: float, y: float, metrics: FrameMetrics
    ) -> tuple[float, float]:
        """Map a percent-space point to viewport pixels."""
        return (
            (x / 100) * metrics.display_width + metrics.offset_x,
            (y / 100) * metrics.display_height + metrics.offset_y,
        )

    def detection_to_viewport(
        self, detection: Detection, metrics: FrameMetrics
    ) -> tuple[float, float]:
        """Map a detection's box center to viewport pixels."""
        center_x = detection.x + detection.width / 2
        center_y = detection.y + detection.height / 2
        return self.point_to_viewport(center_x, center_y, metrics)

    def viewport_to_normalized(
        self, x: float, y: float, metrics: FrameMetrics
    ) -> tuple[float, float]:
        """Project viewport pixels back into [0, 1] x [0, 1]."""
        return (x / metrics.total_width, y / metrics.total_height)

    def detection_to_normalized(
        self, detection: Detection, metrics: FrameMetrics
    ) -> tuple[float, float]:
        """Map a detection's box center to normalized coordinates."""
        vx, vy = self.detection_to_viewport(detection, metrics)
        return self.viewport_to_normalized(vx, vy, metrics)

    def point_to_normalized(
        self, x: float, y: float, metrics: FrameMetrics
    ) -> tuple[float, float]:
        """Map a percent-space point to normalized coordinates."""
        vx, vy = self.point_to_viewport(x, y, metrics)
        return self.viewport_to_normalized(vx, vy, metrics)
