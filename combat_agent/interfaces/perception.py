"""Detection source interface for the perception boundary."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from combat_agent.models.detections import DetectionFrame


class DetectionSource(ABC):
    """Abstract interface for anything that produces detection frames.

    The combat core never runs perception itself; it only pulls frames
    that an external detector has already produced.
    """

    @abstractmethod
    def next_frame(self) -> DetectionFrame | None:
        """Get the next frame to evaluate.

        Returns:
            The next frame, or None when no new frame is available yet.

        Raises:
            SourceExhausted: If the source will never produce another frame.
        """
        ...

    def close(self) -> None:
        """Release any resources held by the source."""
        return None


class SourceExhausted(Exception):
    """Raised when a finite source has no more frames."""

    pass
