"""Keyword-driven partitioning of detections into semantic categories."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from combat_agent.config.loader import ClassifierConfig
from combat_agent.models.detections import Detection
from combat_agent.models.state import VitalsReading

logger = logging.getLogger(__name__)

# Pixel width of a full HP/mana bar when perception reports raw sizes
MAX_BAR_WIDTH = 250.0


def matches_any(detection_type: str, keywords: list[str]) -> bool:
    """Case-insensitive substring match against any keyword."""
    lower = detection_type.lower()
    return any(keyword.lower() in lower for keyword in keywords)


def read_bar_percent(detection: Detection) -> float:
    """Read a vitals bar as a 0-100 percentage.

    Raw pixel widths are taken against MAX_BAR_WIDTH; otherwise the box
    width is already a percentage. A zero-width bar gives no reading and
    counts as full.
    """
    if detection.width <= 0:
        return 100.0
    if detection.raw_width:
        value = detection.raw_width / MAX_BAR_WIDTH * 100
    else:
        value = detection.width
    return max(0.0, min(100.0, value))


@dataclass
class ClassifiedFrame:
    """Detections of one tick split by category."""

    by_category: dict[str, list[Detection]] = field(default_factory=dict)
    vitals: VitalsReading = field(default_factory=VitalsReading)
    hp_seen: bool = False
    mana_seen: bool = False

    def category(self, name: str) -> list[Detection]:
        return self.by_category.get(name, [])

    @property
    def enemies(self) -> list[Detection]:
        return self.category("enemy")

    @property
    def resources(self) -> list[Detection]:
        return self.category("resource")

    @property
    def loot(self) -> list[Detection]:
        return self.category("loot")

    @property
    def players(self) -> list[Detection]:
        return self.category("player")


class TargetClassifier:
    """Partitions detections and tracks the last known player vitals.

    Vitals persist across ticks: a tick without an HP or mana bar keeps
    the previous reading unchanged.
    """

    def __init__(self, config: ClassifierConfig | None = None) -> None:
        self._config = config or ClassifierConfig()
        self._vitals = VitalsReading()

    @property
    def config(self) -> ClassifierConfig:
        return self._config

    @config.setter
    def config(self, config: ClassifierConfig) -> None:
        self._config = config

    @property
    def vitals(self) -> VitalsReading:
        """Get the last known vitals."""
        return self._vitals

    def reset(self) -> None:
        """Forget vitals readings."""
        self._vitals = VitalsReading()

    def classify(self, detections: list[Detection]) -> ClassifiedFrame:
        """Split one tick's detections into category pools.

        HP and mana bars are consumed first and never reach an entity pool.
        Each remaining detection goes to the first matching category.
        """
        config = self._config
        pools: dict[str, list[Detection]] = {name: [] for name in config.entity_categories}
        hp = self._vitals.hp
        mana = self._vitals.mana
        hp_seen = False
        mana_seen = False

        for detection in detections:
            if matches_any(detection.type, config.hp_keywords):
                hp = read_bar_percent(detection)
                hp_seen = True
                continue
            if matches_any(detection.type, config.mana_keywords):
                mana = read_bar_percent(detection)
                mana_seen = True
                continue

            for name, keywords in config.entity_categories.items():
                if matches_any(detection.type, keywords):
                    pools[name].append(detection)
                    break

        self._vitals = VitalsReading(hp=hp, mana=mana)
        return ClassifiedFrame(
            by_category=pools,
            vitals=self._vitals,
            hp_seen=hp_seen,
            mana_seen=mana_seen,
        )
