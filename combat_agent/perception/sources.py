"""Detection sources: a push queue for live perception and a JSONL replay."""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from collections.abc import Iterator
from pathlib import Path
from typing import IO

from pydantic import ValidationError

from combat_agent.interfaces.perception import DetectionSource, SourceExhausted
from combat_agent.models.detections import DetectionFrame

logger = logging.getLogger(__name__)


class QueueDetectionSource(DetectionSource):
    """Thread-safe bounded buffer fed by an external detector.

    When producers outpace the tick rate, the oldest frames are dropped;
    stale perception is worth less than the latest frame.
    """

    def __init__(self, max_pending: int = 4) -> None:
        self._lock = threading.Lock()
        self._frames: deque[DetectionFrame] = deque(maxlen=max(1, max_pending))
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Number of frames discarded because the buffer was full."""
        with self._lock:
            return self._dropped

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._frames)

    def push(self, frame: DetectionFrame) -> None:
        """Queue a frame for the next tick."""
        with self._lock:
            if len(self._frames) == self._frames.maxlen:
                self._dropped += 1
            self._frames.append(frame)

    def next_frame(self) -> DetectionFrame | None:
        with self._lock:
            if not self._frames:
                return None
            return self._frames.popleft()


class JsonlDetectionSource(DetectionSource):
    """Replays recorded frames, one JSON object per line.

    Blank lines are skipped. Lines that fail validation are logged and
    skipped so one bad record does not end a replay.

    Example line:
        {"player_hp": 80, "detections": [{"id": 1, "type": "mob", "x": 40, "y": 40,
         "width": 4, "height": 6, "confidence": 91}]}
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        if not self._path.exists():
            raise FileNotFoundError(f"Replay file not found: {self._path}")
        self._handle: IO[str] | None = open(self._path, encoding="utf-8")  # noqa: SIM115
        self._lines: Iterator[str] = iter(self._handle)
        self._line_no = 0
        self._skipped = 0

    @property
    def skipped(self) -> int:
        """Number of invalid lines skipped so far."""
        return self._skipped

    def next_frame(self) -> DetectionFrame | None:
        if self._handle is None:
            raise SourceExhausted(f"Replay closed: {self._path}")

        for line in self._lines:
            self._line_no += 1
            text = line.strip()
            if not text:
                continue
            try:
                return DetectionFrame.model_validate(json.loads(text))
            except (json.JSONDecodeError, ValidationError) as e:
                self._skipped += 1
                logger.warning(f"Skipping invalid replay line {self._line_no}: {e}")

        self.close()
        raise SourceExhausted(f"Replay finished after {self._line_no} lines: {self._path}")

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
