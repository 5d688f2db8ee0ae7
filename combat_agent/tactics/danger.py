"""Greedy clustering of enemies into danger zones."""

from __future__ import annotations

import logging
import math

from combat_agent.models.detections import Detection
from combat_agent.models.targets import DangerZone

logger = logging.getLogger(__name__)


def distance_between(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Euclidean distance between two points."""
    return math.hypot(b[0] - a[0], b[1] - a[1])


class DangerZoneDetector:
    """Flags enemy clusters that exceed a density threshold.

    Single pass in input order: each unassigned enemy seeds a cluster of
    every enemy (itself included) within the safety distance. Clusters
    larger than the threshold become zones and their members are not
    reused as seeds. Results depend on seed order when clusters overlap.
    """

    def detect(
        self,
        enemies: list[Detection],
        safety_distance: float,
        density_threshold: int,
    ) -> list[DangerZone]:
        zones: list[DangerZone] = []
        assigned: set[int] = set()
        centers = [enemy.center for enemy in enemies]

        for index, seed_center in enumerate(centers):
            if index in assigned:
                continue

            cluster = [
                other
                for other, other_center in enumerate(centers)
                if distance_between(seed_center, other_center) <= safety_distance
            ]
            if len(cluster) <= density_threshold:
                continue

            zones.append(
                DangerZone(
                    x=sum(centers[i][0] for i in cluster) / len(cluster),
                    y=sum(centers[i][1] for i in cluster) / len(cluster),
                    radius=safety_distance,
                    member_count=len(cluster),
                )
            )
            assigned.update(cluster)

        if zones:
            logger.debug(
                "Danger zones: %s",
                ", ".join(f"({z.x:.0f},{z.y:.0f})x{z.member_count}" for z in zones),
            )
        return zones
