"""Target scoring and ranking.

Each enemy gets five scores in [0, 1] that are combined with the configured
weights:

- distance: linear falloff to 0 at max_target_distance
- type: rank in the preferred type list, 0.1 when not listed
- hp: constant 0.5 (per-enemy HP is not observable)
- threat: elites and bosses 1.0, adds and minions 0.3, others 0.5
- isolation: alone 1.0, small group 0.5, crowd 0.1

The isolation term is what keeps the agent away from packs even when a
grouped enemy is closer or of a preferred type.
"""

from __future__ import annotations

import logging

from combat_agent.config.loader import CombatConfig
from combat_agent.models.detections import Detection
from combat_agent.models.targets import DangerZone, PrioritizedTarget, ThreatLevel
from combat_agent.tactics.danger import distance_between

logger = logging.getLogger(__name__)

HP_SCORE = 0.5
UNLISTED_TYPE_SCORE = 0.1
LOW_THREAT_DISTANCE_RATIO = 0.7

_HIGH_THREAT_TOKENS = ("elite", "boss")
_LOW_THREAT_TOKENS = ("add", "minion")


def distance_score(distance: float, max_target_distance: float) -> float:
    if max_target_distance <= 0:
        return 0.0
    return 1 - min(distance / max_target_distance, 1)


def type_score(detection_type: str, preferred_types: list[str]) -> float:
    """Rank of the lowercased type in the preferred list.

    Only the detection type is lowercased; preferred entries must already
    be lowercase to match.
    """
    lowered = detection_type.lower()
    if lowered in preferred_types:
        return 1 - preferred_types.index(lowered) / len(preferred_types)
    return UNLISTED_TYPE_SCORE


def threat_score(detection_type: str) -> float:
    lowered = detection_type.lower()
    if any(token in lowered for token in _HIGH_THREAT_TOKENS):
        return 1.0
    if any(token in lowered for token in _LOW_THREAT_TOKENS):
        return 0.3
    return 0.5


def isolation_score(neighbor_count: int, density_threshold: int) -> float:
    if neighbor_count <= 1:
        return 1.0
    if neighbor_count <= density_threshold:
        return 0.5
    return 0.1


def threat_level(detection_type: str, distance: float, max_target_distance: float) -> ThreatLevel:
    """Display label; only the threat score feeds into ranking."""
    lowered = detection_type.lower()
    if any(token in lowered for token in _HIGH_THREAT_TOKENS):
        return ThreatLevel.HIGH
    if distance > max_target_distance * LOW_THREAT_DISTANCE_RATIO:
        return ThreatLevel.LOW
    return ThreatLevel.MEDIUM


class TargetPrioritizer:
    """Scores enemies relative to an origin and ranks them."""

    def score(
        self,
        detection: Detection,
        distance: float,
        neighbor_count: int,
        config: CombatConfig,
    ) -> float:
        """Weighted sum of the five scoring terms."""
        weights = config.priority_weights
        return (
            distance_score(distance, config.max_target_distance) * weights.distance
            + HP_SCORE * weights.hp
            + type_score(detection.type, config.preferred_target_types) * weights.type
            + threat_score(detection.type) * weights.threat
            + isolation_score(neighbor_count, config.mob_density_threshold) * weights.isolation
        )

    def count_neighbors(
        self,
        index: int,
        enemies: list[Detection],
        safety_distance: float,
    ) -> int:
        """Count other enemies within the safety distance of enemies[index]."""
        center = enemies[index].center
        return sum(
            1
            for other_index, other in enumerate(enemies)
            if other_index != index and distance_between(center, other.center) <= safety_distance
        )

    def prioritize(
        self,
        enemies: list[Detection],
        origin: tuple[float, float],
        zones: list[DangerZone],
        config: CombatConfig,
    ) -> list[PrioritizedTarget]:
        """Score every enemy, drop those out of reach, and sort best first.

        The sort is stable, so equal scores keep their input order.
        """
        targets: list[PrioritizedTarget] = []

        for index, detection in enumerate(enemies):
            center = detection.center
            distance = distance_between(center, origin)
            if distance > config.max_target_distance:
                continue

            neighbor_count = self.count_neighbors(index, enemies, config.safety_distance)
            targets.append(
                PrioritizedTarget(
                    detection=detection,
                    priority=self.score(detection, distance, neighbor_count, config),
                    distance=distance,
                    threat_level=threat_level(
                        detection.type, distance, config.max_target_distance
                    ),
                    neighbor_count=neighbor_count,
                    is_in_danger_zone=any(zone.contains(*center) for zone in zones),
                    is_isolated=neighbor_count <= 1,
                )
            )

        targets.sort(key=lambda t: t.priority, reverse=True)
        return targets
