"""Combat state machine: one decision per perception tick.

The machine is an explicit object owning every piece of mutable combat
state (skill cooldowns, counters, the remembered target, player position
history and the previous state). Each call to ``tick`` runs to completion
and picks at most one action using a fixed priority order:

1. Stuck recovery (only while approaching)
2. Danger-zone avoidance
3. Healing
4. Engaging the best safe target (approach, kite, area or single skill)
5. Looting
6. Searching / waiting / idle

Any state can follow any other; the previous state only gates the stuck
check.

Example:
    >>> machine = CombatStateMachine()
    >>> result = machine.tick(DetectionFrame(detections=[]))
    >>> result.state
    <CombatState.SEARCHING: 'searching'>
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from combat_agent.config.loader import (
    ClassifierConfig,
    CombatConfig,
    DisplayConfig,
    deep_merge,
)
from combat_agent.models.actions import CombatAction
from combat_agent.models.detections import Detection, DetectionFrame
from combat_agent.models.skills import Skill
from combat_agent.models.state import CombatState, CombatStats, PlayerPosition, VitalsReading
from combat_agent.models.targets import DangerZone, PrioritizedTarget
from combat_agent.perception.classifier import ClassifiedFrame, TargetClassifier
from combat_agent.perception.coordinates import CoordinateMapper
from combat_agent.tactics.danger import DangerZoneDetector, distance_between
from combat_agent.tactics.prioritizer import TargetPrioritizer
from combat_agent.tactics.skills import SkillScheduler

logger = logging.getLogger(__name__)

# Movement below this many units counts as standing still
STUCK_MOVE_THRESHOLD = 5.0
# Player within radius * factor of a zone triggers avoidance
DANGER_PROXIMITY_FACTOR = 1.5
# A new target must beat the current one by this factor to take over
TARGET_SWITCH_FACTOR = 1.2


def wall_clock_ms() -> float:
    """Current wall-clock time in milliseconds."""
    return time.time() * 1000


@dataclass
class TickResult:
    """Everything one tick decided and derived."""

    action: CombatAction | None
    state: CombatState
    previous_state: CombatState
    targets: list[PrioritizedTarget] = field(default_factory=list)
    zones: list[DangerZone] = field(default_factory=list)
    vitals: VitalsReading = field(default_factory=VitalsReading)
    classified: ClassifiedFrame = field(default_factory=ClassifiedFrame)
    kills: int = 0
    stuck: bool = False
    now_ms: float = 0.0

    @property
    def state_changed(self) -> bool:
        return self.state != self.previous_state

    def to_event(self) -> dict[str, Any]:
        """Compact payload for event streams."""
        return {
            "event": "tick",
            "state": self.state.value,
            "previous_state": self.previous_state.value,
            "action": self.action.summary() if self.action else None,
            "targets": len(self.targets),
            "zones": len(self.zones),
            "hp": round(self.vitals.hp, 1),
            "kills": self.kills,
        }


class CombatStateMachine:
    """Fuses one tick of detections into a single combat action.

    Attributes:
        state: The currently active combat state.
        stats: Running counters (kills, skills used, area hits, dangers avoided).
        current_target: Target remembered across ticks for switch damping.
    """

    def __init__(
        self,
        config: CombatConfig | None = None,
        classifier_config: ClassifierConfig | None = None,
        skills: Iterable[Skill] | None = None,
        display: DisplayConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the machine.

        Args:
            config: Combat policy. Uses defaults if None.
            classifier_config: Category keyword sets. Uses defaults if None.
            skills: Skill roster. Uses the default roster if None.
            display: Container size and screen center. Uses defaults if None.
            clock: Millisecond clock used when a tick has no explicit time.
        """
        self._config = config or CombatConfig()
        self._display = display or DisplayConfig()
        self._clock = clock or wall_clock_ms

        self._classifier = TargetClassifier(classifier_config)
        self._danger_detector = DangerZoneDetector()
        self._prioritizer = TargetPrioritizer()
        self._scheduler = SkillScheduler(skills)
        self._mapper = CoordinateMapper()

        self._screen_center = (self._display.screen_center_x, self._display.screen_center_y)
        self._state = CombatState.IDLE
        self._last_state_change_ms = 0.0
        self._current_target: PrioritizedTarget | None = None
        self._player_position: PlayerPosition | None = None
        self._stuck_sample: PlayerPosition | None = None
        self._stuck_since_ms = 0.0
        self._previous_enemy_ids: set[int] = set()
        self._stats = CombatStats()
        self._last_result: TickResult | None = None

        self._on_state_change: Callable[[CombatState, CombatState], None] | None = None

    # -- read access ---------------------------------------------------------

    @property
    def state(self) -> CombatState:
        return self._state

    @property
    def stats(self) -> CombatStats:
        return self._stats

    @property
    def config(self) -> CombatConfig:
        return self._config

    @property
    def current_target(self) -> PrioritizedTarget | None:
        return self._current_target

    @property
    def player_position(self) -> PlayerPosition | None:
        return self._player_position

    @property
    def screen_center(self) -> tuple[float, float]:
        return self._screen_center

    @property
    def scheduler(self) -> SkillScheduler:
        return self._scheduler

    @property
    def mapper(self) -> CoordinateMapper:
        return self._mapper

    @property
    def classifier(self) -> TargetClassifier:
        return self._classifier

    @property
    def last_result(self) -> TickResult | None:
        return self._last_result

    @property
    def last_state_change_ms(self) -> float:
        return self._last_state_change_ms

    def set_state_change_callback(
        self, callback: Callable[[CombatState, CombatState], None] | None
    ) -> None:
        """Set a callback invoked with (old, new) on every state change."""
        self._on_state_change = callback

    # -- the tick ------------------------------------------------------------

    def tick(self, frame: DetectionFrame, now_ms: float | None = None) -> TickResult:
        """Evaluate one frame and choose the next action.

        Args:
            frame: Detections for this tick.
            now_ms: Current time in milliseconds. Uses the clock if None.

        Returns:
            The decision and the data derived on the way to it. The action
            is None when the chosen branch has no eligible skill.
        """
        now = self._clock() if now_ms is None else now_ms
        config = self._config
        previous_state = self._state

        self._update_frame_metrics(frame)
        classified = self._classifier.classify(frame.detections)
        vitals = classified.vitals
        if frame.player_hp is not None:
            vitals = vitals.model_copy(update={"hp": frame.player_hp})

        enemies = classified.enemies
        zones = self._danger_detector.detect(
            enemies, config.safety_distance, config.mob_density_threshold
        )
        targets = self._prioritizer.prioritize(enemies, self._screen_center, zones, config)
        kills = self._track_kills(enemies)
        self._update_player_position(classified.players, now)

        # Stuck recovery short-circuits everything else
        if previous_state == CombatState.APPROACHING and self._player_position is not None:
            if self._check_stuck(self._player_position, now):
                self._stuck_since_ms = now
                action = CombatAction.jump("Stuck while approaching, jumping")
                logger.info("Stuck detected while approaching, jumping")
                result = TickResult(
                    action=action,
                    state=previous_state,
                    previous_state=previous_state,
                    targets=targets,
                    zones=zones,
                    vitals=vitals,
                    classified=classified,
                    kills=kills,
                    stuck=True,
                    now_ms=now,
                )
                self._last_result = result
                return result

        action, new_state = self._decide(targets, zones, classified, vitals.hp, now)

        if action is not None and action.skill is not None:
            self._scheduler.mark_used(action.skill.id, now)

        self._transition(new_state, now)

        if action is not None:
            logger.debug(f"Tick: {new_state.value} -> {action.kind.value} ({action.reason})")
        else:
            logger.debug(f"Tick: {new_state.value}, no action")

        result = TickResult(
            action=action,
            state=new_state,
            previous_state=previous_state,
            targets=targets,
            zones=zones,
            vitals=vitals,
            classified=classified,
            kills=kills,
            now_ms=now,
        )
        self._last_result = result
        return result

    def _decide(
        self,
        targets: list[PrioritizedTarget],
        zones: list[DangerZone],
        classified: ClassifiedFrame,
        hp: float,
        now: float,
    ) -> tuple[CombatAction | None, CombatState]:
        config = self._config
        state = self._state
        action: CombatAction | None = None
        player = self._origin()

        # Danger avoidance
        if config.avoid_danger_zones:
            threatening = [
                zone
                for zone in zones
                if distance_between(player, (zone.x, zone.y))
                < zone.radius * DANGER_PROXIMITY_FACTOR
            ]
            if threatening:
                nearest = min(threatening, key=lambda z: distance_between(player, (z.x, z.y)))
                state = CombatState.AVOIDING
                action = CombatAction.move_toward(
                    player[0] - (nearest.x - player[0]),
                    player[1] - (nearest.y - player[1]),
                    reason=f"Avoiding danger zone ({nearest.member_count} enemies)",
                )
                self._bump(dangers_avoided=1)

        # Healing
        if action is None and hp <= config.heal_threshold:
            heal = self._scheduler.find_heal(now)
            if heal is not None:
                state = CombatState.HEALING
                action = CombatAction.use_skill(heal, reason=f"HP low ({hp:.0f}%), healing")

        safe_targets = (
            [t for t in targets if not t.is_in_danger_zone]
            if config.avoid_danger_zones
            else targets
        )

        if action is None and safe_targets:
            action, state = self._engage(safe_targets, player, now)
        elif action is None and classified.loot and config.auto_loot:
            state = CombatState.LOOTING
            action = CombatAction.collect_loot(f"Collecting {len(classified.loot)} loot items")
        elif action is None:
            if not targets:
                state = CombatState.SEARCHING
                action = CombatAction.wait("Searching for targets")
            elif not safe_targets and config.avoid_danger_zones:
                state = CombatState.AVOIDING
                action = CombatAction.wait("Only groups visible, waiting for isolated targets")
            else:
                state = CombatState.IDLE
                self._current_target = None

        return action, state

    def _engage(
        self,
        safe_targets: list[PrioritizedTarget],
        player: tuple[float, float],
        now: float,
    ) -> tuple[CombatAction | None, CombatState]:
        """Choose between approaching, kiting, area and single-target attacks."""
        config = self._config
        top = safe_targets[0]
        self._update_current_target(top)
        target_x, target_y = top.center

        if top.distance > config.max_attack_range:
            return (
                CombatAction.move_toward(
                    target_x, target_y, reason=f"Approaching {top.describe()}", target=top
                ),
                CombatState.APPROACHING,
            )

        if top.distance < config.min_attack_range and config.kite_enabled:
            return (
                CombatAction.move_toward(
                    player[0] - (target_x - player[0]),
                    player[1] - (target_y - player[1]),
                    reason=f"Kiting, target too close ({top.distance:.0f})",
                    target=top,
                ),
                CombatState.KITING,
            )

        # Area attacks mean engaging groups, so they stay off while avoiding
        if len(safe_targets) >= config.aoe_threshold and not config.avoid_danger_zones:
            skill = self._scheduler.select(True, len(safe_targets), now)
            if skill is None:
                return None, CombatState.AOE
            self._bump(aoe_hits=len(safe_targets))
            return (
                CombatAction.use_skill(
                    skill, reason=f"{skill.name} on {len(safe_targets)} targets", target=top
                ),
                CombatState.AOE,
            )

        skill = self._scheduler.select(False, 1, now)
        if skill is None:
            return None, CombatState.COMBAT
        self._bump(skills_used=1)
        return (
            CombatAction.use_skill(skill, reason=f"{skill.name} on {top.describe()}", target=top),
            CombatState.COMBAT,
        )

    # -- helpers ---------------------------------------------------------------

    def _origin(self) -> tuple[float, float]:
        """Player position if known, otherwise the screen center."""
        if self._player_position is not None:
            return (self._player_position.x, self._player_position.y)
        return self._screen_center

    def _update_frame_metrics(self, frame: DetectionFrame) -> None:
        if frame.source_width and frame.source_height:
            self._mapper.update(
                frame.source_width,
                frame.source_height,
                self._display.container_width,
                self._display.container_height,
            )
        elif self._mapper.metrics is None:
            self._mapper.update(
                0, 0, self._display.container_width, self._display.container_height
            )

    def _update_player_position(self, players: list[Detection], now: float) -> None:
        if players:
            x, y = players[0].center
            self._player_position = PlayerPosition(x=x, y=y, timestamp_ms=now)

    def _track_kills(self, enemies: list[Detection]) -> int:
        """Count enemy ids that vanished since the previous tick.

        Occlusion and enemies leaving the frame count too, so this is an
        approximation of kills.
        """
        current_ids = {enemy.id for enemy in enemies}
        vanished = len(self._previous_enemy_ids - current_ids)
        self._previous_enemy_ids = current_ids
        if vanished:
            self._bump(kill_count=vanished)
        return vanished

    def _check_stuck(self, position: PlayerPosition, now: float) -> bool:
        sample = self._stuck_sample
        if sample is None:
            self._stuck_since_ms = now
        else:
            moved = distance_between((position.x, position.y), (sample.x, sample.y))
            if moved < STUCK_MOVE_THRESHOLD:
                if now - self._stuck_since_ms > self._config.stuck_timeout_ms:
                    return True
            else:
                self._stuck_since_ms = now
        self._stuck_sample = PlayerPosition(x=position.x, y=position.y, timestamp_ms=now)
        return False

    def _update_current_target(self, top: PrioritizedTarget) -> None:
        current = self._current_target
        if current is None:
            self._current_target = top
            return
        if top.detection.id == current.detection.id:
            self._current_target = top
            return
        if top.priority > current.priority * TARGET_SWITCH_FACTOR:
            logger.debug(
                f"Switching target {current.detection.id} -> {top.detection.id} "
                f"({current.priority:.3f} -> {top.priority:.3f})"
            )
            self._current_target = top

    def _transition(self, new_state: CombatState, now: float) -> None:
        old_state = self._state
        if new_state == old_state:
            return
        self._state = new_state
        self._last_state_change_ms = now
        if new_state == CombatState.APPROACHING:
            # Fresh approach: measure stuck time from here
            self._stuck_sample = None
        logger.info(f"Combat state: {old_state.value} -> {new_state.value}")
        if self._on_state_change:
            try:
                self._on_state_change(old_state, new_state)
            except Exception as e:
                logger.warning(f"State change callback error: {e}")

    def _bump(self, **increments: int) -> None:
        current = self._stats.model_dump()
        self._stats = CombatStats(
            **{key: current[key] + increments.get(key, 0) for key in current}
        )

    # -- control surface -------------------------------------------------------

    def update_config(self, updates: dict[str, Any]) -> CombatConfig:
        """Merge a partial combat config; unspecified fields keep their value.

        Raises:
            ValidationError: If the merged config is invalid.
        """
        merged = deep_merge(self._config.model_dump(), updates)
        self._config = CombatConfig.model_validate(merged)
        logger.info(f"Combat config updated: {sorted(updates)}")
        return self._config

    def replace_config(self, config: CombatConfig) -> None:
        self._config = config

    def update_classifier(self, config: ClassifierConfig) -> None:
        self._classifier.config = config

    def update_display(self, display: DisplayConfig) -> None:
        self._display = display
        self._screen_center = (display.screen_center_x, display.screen_center_y)

    def update_skills(self, skills: Iterable[Skill]) -> None:
        """Replace the whole skill roster."""
        self._scheduler.replace(skills)

    def set_screen_center(self, x: float, y: float) -> None:
        """Set the evaluation origin used when the player is not detected."""
        self._screen_center = (x, y)

    def force_state(self, state: CombatState) -> None:
        """Override the current state (next tick re-evaluates from inputs)."""
        self._transition(state, self._clock())

    def reset_stats(self) -> None:
        self._stats = CombatStats()

    def reset(self) -> None:
        """Return to initial state: cooldowns, counters, target and history."""
        self._scheduler.reset()
        self._classifier.reset()
        self._stats = CombatStats()
        self._current_target = None
        self._player_position = None
        self._stuck_sample = None
        self._stuck_since_ms = 0.0
        self._previous_enemy_ids = set()
        self._last_result = None
        self._state = CombatState.IDLE
        self._last_state_change_ms = 0.0
        logger.info("Combat state machine reset")

    def snapshot(self, now_ms: float | None = None) -> dict[str, Any]:
        """Serializable view of the machine for observers."""
        now = self._clock() if now_ms is None else now_ms
        result = self._last_result
        target = self._current_target
        return {
            "state": self._state.value,
            "last_state_change_ms": self._last_state_change_ms,
            "stats": self._stats.model_dump(),
            "vitals": result.vitals.model_dump() if result else VitalsReading().model_dump(),
            "current_target": (
                {
                    "id": target.detection.id,
                    "type": target.detection.type,
                    "priority": round(target.priority, 4),
                    "distance": round(target.distance, 1),
                    "threat_level": target.threat_level.value,
                    "is_isolated": target.is_isolated,
                }
                if target
                else None
            ),
            "player_position": (
                self._player_position.model_dump() if self._player_position else None
            ),
            "screen_center": list(self._screen_center),
            "targets": len(result.targets) if result else 0,
            "zones": [zone.model_dump() for zone in result.zones] if result else [],
            "last_action": result.action.summary() if result and result.action else None,
            "skills": [
                {
                    "id": skill.id,
                    "name": skill.name,
                    "ready": skill.is_ready(now),
                    "remaining_ms": round(skill.remaining_ms(now)),
                }
                for skill in self._scheduler.skills
            ],
        }
