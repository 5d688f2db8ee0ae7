"""Tests for the CombatStateMachine."""

from __future__ import annotations

import pytest

from combat_agent.config.loader import CombatConfig, DisplayConfig
from combat_agent.core.state_machine import (
    TARGET_SWITCH_FACTOR,
    CombatStateMachine,
    TickResult,
)
from combat_agent.models.actions import ActionKind
from combat_agent.models.detections import Detection, DetectionFrame
from combat_agent.models.skills import DEFAULT_SKILLS, Skill
from combat_agent.models.state import CombatState


def enemy(detection_id: int, x: float, y: float, type_: str = "mob") -> Detection:
    """Zero-size enemy box so the center is exactly (x, y)."""
    return Detection(id=detection_id, type=type_, x=x, y=y, width=0, height=0)


def player(x: float, y: float) -> Detection:
    return Detection(id=999, type="player_character", x=x, y=y, width=0, height=0)


def frame(*detections: Detection, hp: float | None = None) -> DetectionFrame:
    return DetectionFrame(detections=list(detections), player_hp=hp)


@pytest.fixture
def machine() -> CombatStateMachine:
    return CombatStateMachine(clock=lambda: 0.0)


class TestSearching:
    """No enemies on screen."""

    def test_zero_enemies_searches_and_waits(self, machine: CombatStateMachine) -> None:
        result = machine.tick(frame(), now_ms=1000)

        assert result.state == CombatState.SEARCHING
        assert result.action is not None
        assert result.action.kind == ActionKind.WAIT
        assert machine.state == CombatState.SEARCHING

    def test_non_enemy_detections_still_search(self, machine: CombatStateMachine) -> None:
        ore = Detection(id=1, type="ore_vein", x=10, y=10, width=2, height=2)

        result = machine.tick(frame(ore), now_ms=1000)

        assert result.state == CombatState.SEARCHING
        assert result.classified.resources == [ore]

    def test_enemies_beyond_max_distance_are_ignored(self, machine: CombatStateMachine) -> None:
        result = machine.tick(frame(enemy(1, 50 + 600, 50)), now_ms=1000)

        assert result.targets == []
        assert result.state == CombatState.SEARCHING


class TestHealing:
    """Low HP with a heal skill available."""

    def test_heal_when_hp_below_threshold(self) -> None:
        now = 100_000.0
        skills = [
            s.model_copy(update={"last_used_ms": now - 20_000}) if s.name == "Heal" else s
            for s in DEFAULT_SKILLS
        ]
        machine = CombatStateMachine(skills=skills)

        result = machine.tick(frame(hp=25), now_ms=now)

        assert result.state == CombatState.HEALING
        assert result.action is not None
        assert result.action.kind == ActionKind.SKILL
        assert result.action.skill is not None
        assert result.action.skill.name == "Heal"
        assert machine.scheduler.get("5").last_used_ms == now

    def test_heal_on_cooldown_falls_through(self) -> None:
        now = 100_000.0
        skills = [
            s.model_copy(update={"last_used_ms": now - 1_000}) if s.name == "Heal" else s
            for s in DEFAULT_SKILLS
        ]
        machine = CombatStateMachine(skills=skills)

        result = machine.tick(frame(hp=25), now_ms=now)

        assert result.state == CombatState.SEARCHING

    def test_hp_bar_detection_drives_healing(self) -> None:
        machine = CombatStateMachine()
        hp_bar = Detection(id=50, type="player_hp_bar", x=0, y=0, width=20, height=2)

        result = machine.tick(frame(hp_bar), now_ms=100_000)

        assert result.vitals.hp == 20
        assert result.state == CombatState.HEALING

    def test_frame_hp_overrides_bar_reading(self) -> None:
        machine = CombatStateMachine()
        hp_bar = Detection(id=50, type="player_hp_bar", x=0, y=0, width=20, height=2)

        result = machine.tick(frame(hp_bar, hp=90), now_ms=100_000)

        assert result.vitals.hp == 90
        assert result.state == CombatState.SEARCHING


class TestDangerZones:
    """Cluster detection and avoidance."""

    def test_four_clustered_enemies_form_one_zone(self, machine: CombatStateMachine) -> None:
        machine.set_screen_center(300, 300)
        cluster = [
            enemy(1, 500, 500),
            enemy(2, 550, 500),
            enemy(3, 500, 550),
            enemy(4, 550, 550),
        ]

        result = machine.tick(frame(*cluster), now_ms=1000)

        assert len(result.zones) == 1
        assert result.zones[0].member_count == 4
        assert len(result.targets) == 4
        assert all(t.is_in_danger_zone for t in result.targets)

    def test_only_grouped_targets_wait_in_avoiding(self, machine: CombatStateMachine) -> None:
        machine.set_screen_center(300, 300)
        cluster = [enemy(i, 500 + 10 * i, 500) for i in range(4)]

        result = machine.tick(frame(*cluster), now_ms=1000)

        assert result.state == CombatState.AVOIDING
        assert result.action is not None
        assert result.action.kind == ActionKind.WAIT

    def test_player_near_zone_moves_away(self, machine: CombatStateMachine) -> None:
        cluster = [enemy(1, 380, 400), enemy(2, 400, 400), enemy(3, 420, 400)]

        result = machine.tick(frame(player(350, 400), *cluster), now_ms=1000)

        assert len(result.zones) == 1
        assert result.zones[0].x == pytest.approx(400)
        assert result.state == CombatState.AVOIDING
        assert result.action is not None
        assert result.action.kind == ActionKind.MOVE
        assert result.action.direction is not None
        assert result.action.direction.x == pytest.approx(300)
        assert result.action.direction.y == pytest.approx(400)
        assert machine.stats.dangers_avoided == 1

    def test_avoidance_disabled_engages_group(self) -> None:
        machine = CombatStateMachine(config=CombatConfig(avoid_danger_zones=False))
        cluster = [enemy(1, 100, 50), enemy(2, 110, 50), enemy(3, 120, 50)]

        result = machine.tick(frame(*cluster), now_ms=1000)

        assert result.state == CombatState.AOE


class TestEngagement:
    """Approach, kite, area and single-target branches."""

    def test_single_enemy_in_range_uses_single_target_skill(
        self, machine: CombatStateMachine
    ) -> None:
        result = machine.tick(frame(enemy(1, 90, 50)), now_ms=1000)

        assert result.targets[0].distance == pytest.approx(40)
        assert result.state == CombatState.COMBAT
        assert result.action is not None
        assert result.action.kind == ActionKind.SKILL
        assert result.action.skill is not None
        assert not result.action.skill.is_area
        assert machine.stats.skills_used == 1

    def test_far_enemy_is_approached(self, machine: CombatStateMachine) -> None:
        result = machine.tick(frame(enemy(1, 250, 50)), now_ms=1000)

        assert result.state == CombatState.APPROACHING
        assert result.action is not None
        assert result.action.kind == ActionKind.MOVE
        assert result.action.direction is not None
        assert (result.action.direction.x, result.action.direction.y) == (250, 50)
        assert result.action.target is not None

    def test_close_enemy_is_kited(self, machine: CombatStateMachine) -> None:
        result = machine.tick(frame(enemy(1, 70, 50)), now_ms=1000)

        assert result.state == CombatState.KITING
        assert result.action is not None
        assert result.action.direction is not None
        assert result.action.direction.x == pytest.approx(30)
        assert result.action.direction.y == pytest.approx(50)

    def test_close_enemy_without_kiting_is_attacked(self) -> None:
        machine = CombatStateMachine(config=CombatConfig(kite_enabled=False))

        result = machine.tick(frame(enemy(1, 70, 50)), now_ms=1000)

        assert result.state == CombatState.COMBAT

    def test_area_skill_counts_hits(self) -> None:
        machine = CombatStateMachine(config=CombatConfig(avoid_danger_zones=False))
        group = [enemy(1, 100, 50), enemy(2, 110, 50), enemy(3, 120, 50)]

        result = machine.tick(frame(*group), now_ms=100_000)

        assert result.action is not None
        assert result.action.skill is not None
        assert result.action.skill.name == "Whirlwind"
        assert machine.stats.aoe_hits == 3

    def test_area_skill_on_cooldown_yields_no_action(self) -> None:
        machine = CombatStateMachine(config=CombatConfig(avoid_danger_zones=False))
        group = [enemy(1, 100, 50), enemy(2, 110, 50), enemy(3, 120, 50)]
        machine.tick(frame(*group), now_ms=100_000)

        result = machine.tick(frame(*group), now_ms=100_500)

        assert result.state == CombatState.AOE
        assert result.action is None
        assert machine.stats.aoe_hits == 3

    def test_no_ready_skill_sets_state_without_action(self) -> None:
        slow = Skill(id="a", name="Slow Strike", keybind="1", cooldown_ms=10_000)
        machine = CombatStateMachine(skills=[slow])
        machine.tick(frame(enemy(1, 90, 50)), now_ms=20_000)

        result = machine.tick(frame(enemy(1, 90, 50)), now_ms=21_000)

        assert result.state == CombatState.COMBAT
        assert result.action is None
        assert machine.stats.skills_used == 1


class TestLooting:
    """Loot branch."""

    def test_loot_collected_when_no_targets(self, machine: CombatStateMachine) -> None:
        bag = Detection(id=3, type="loot_bag", x=60, y=60, width=2, height=2)

        result = machine.tick(frame(bag), now_ms=1000)

        assert result.state == CombatState.LOOTING
        assert result.action is not None
        assert result.action.kind == ActionKind.LOOT

    def test_auto_loot_disabled_searches(self) -> None:
        machine = CombatStateMachine(config=CombatConfig(auto_loot=False))
        bag = Detection(id=3, type="loot_bag", x=60, y=60, width=2, height=2)

        result = machine.tick(frame(bag), now_ms=1000)

        assert result.state == CombatState.SEARCHING


class TestTargetHysteresis:
    """Current target switching."""

    @pytest.fixture
    def typed_machine(self) -> CombatStateMachine:
        return CombatStateMachine(
            config=CombatConfig(preferred_target_types=["mob_boss", "mob"])
        )

    def test_first_target_is_adopted(self, typed_machine: CombatStateMachine) -> None:
        typed_machine.tick(frame(enemy(1, 90, 50)), now_ms=1000)

        assert typed_machine.current_target is not None
        assert typed_machine.current_target.detection.id == 1

    def test_slightly_better_target_does_not_replace(
        self, typed_machine: CombatStateMachine
    ) -> None:
        first = typed_machine.tick(frame(enemy(1, 90, 50)), now_ms=1000)
        established = first.targets[0].priority

        second = typed_machine.tick(frame(enemy(2, 60, 50)), now_ms=1100)

        assert second.targets[0].priority > established
        assert second.targets[0].priority <= established * TARGET_SWITCH_FACTOR
        assert typed_machine.current_target is not None
        assert typed_machine.current_target.detection.id == 1

    def test_much_better_target_replaces(self, typed_machine: CombatStateMachine) -> None:
        first = typed_machine.tick(frame(enemy(1, 90, 50)), now_ms=1000)
        established = first.targets[0].priority

        second = typed_machine.tick(frame(enemy(2, 50, 50, type_="mob_boss")), now_ms=1100)

        assert second.targets[0].detection.id == 2

        assert second.targets[0].priority > established * TARGET_SWITCH_FACTOR
        assert typed_machine.current_target is not None
        assert typed_machine.current_target.detection.id == 2


class TestKillTracking:
    """Vanished enemy ids count as kills."""

    def test_vanished_enemy_counts_once(self, machine: CombatStateMachine) -> None:
        machine.tick(frame(enemy(7, 90, 50), enemy(8, 250, 50)), now_ms=1000)

        result = machine.tick(frame(enemy(8, 250, 50)), now_ms=1100)

        assert result.kills == 1
        assert machine.stats.kill_count == 1

    def test_present_enemies_do_not_count(self, machine: CombatStateMachine) -> None:
        machine.tick(frame(enemy(7, 90, 50)), now_ms=1000)
        machine.tick(frame(enemy(7, 91, 50)), now_ms=1100)

        assert machine.stats.kill_count == 0

    def test_every_vanished_id_counts(self, machine: CombatStateMachine) -> None:
        machine.tick(frame(enemy(1, 90, 50), enemy(2, 95, 50), enemy(3, 250, 50)), now_ms=1000)
        machine.tick(frame(), now_ms=1100)

        assert machine.stats.kill_count == 3


class TestStuckRecovery:
    """Jumping when the player does not move while approaching."""

    def _approach(self, machine: CombatStateMachine, now: float, px: float = 50) -> TickResult:
        return machine.tick(frame(player(px, 50), enemy(1, 250, 50)), now_ms=now)

    def test_jumps_after_timeout_without_movement(self, machine: CombatStateMachine) -> None:
        assert self._approach(machine, 0).state == CombatState.APPROACHING
        assert self._approach(machine, 1000).action.kind == ActionKind.MOVE
        assert self._approach(machine, 2500).action.kind == ActionKind.MOVE

        result = self._approach(machine, 3100)

        assert result.stuck is True
        assert result.action is not None
        assert result.action.kind == ActionKind.JUMP
        assert result.state == CombatState.APPROACHING

    def test_timer_resets_after_jump(self, machine: CombatStateMachine) -> None:
        for now in (0, 1000, 2500, 3100):
            self._approach(machine, now)

        result = self._approach(machine, 3200)

        assert result.stuck is False
        assert result.action is not None
        assert result.action.kind == ActionKind.MOVE

    def test_movement_prevents_jump(self, machine: CombatStateMachine) -> None:
        results = [
            self._approach(machine, now, px=50 + index * 10)
            for index, now in enumerate((0, 1000, 2500, 3100, 4000))
        ]

        assert all(not r.stuck for r in results)

    def test_no_stuck_check_without_player(self, machine: CombatStateMachine) -> None:
        for now in (0, 1000, 2500, 3100, 5000):
            result = machine.tick(frame(enemy(1, 250, 50)), now_ms=now)
            assert result.action is not None
            assert result.action.kind == ActionKind.MOVE


class TestControlSurface:
    """Config updates, reset and snapshots."""

    def test_update_config_merges_nested_weights(self, machine: CombatStateMachine) -> None:
        machine.update_config({"priority_weights": {"isolation": 0.5}, "heal_threshold": 45})

        assert machine.config.priority_weights.isolation == 0.5
        assert machine.config.priority_weights.distance == 0.2
        assert machine.config.heal_threshold == 45
        assert machine.config.safety_distance == 150

    def test_weights_are_not_normalized(self, machine: CombatStateMachine) -> None:
        machine.update_config(
            {"priority_weights": {"distance": 2, "hp": 2, "type": 2, "threat": 2, "isolation": 2}}
        )

        result = machine.tick(frame(enemy(1, 90, 50)), now_ms=1000)

        assert result.targets[0].priority > 1.0
        assert result.targets[0].priority <= machine.config.priority_weights.total

    def test_state_change_callback(self, machine: CombatStateMachine) -> None:
        changes: list[tuple[CombatState, CombatState]] = []
        machine.set_state_change_callback(lambda old, new: changes.append((old, new)))

        machine.tick(frame(), now_ms=1000)
        machine.tick(frame(), now_ms=1100)

        assert changes == [(CombatState.IDLE, CombatState.SEARCHING)]
        assert machine.last_state_change_ms == 1000

    def test_callback_error_does_not_break_tick(self, machine: CombatStateMachine) -> None:
        def bad_callback(_old: CombatState, _new: CombatState) -> None:
            raise RuntimeError("boom")

        machine.set_state_change_callback(bad_callback)

        result = machine.tick(frame(), now_ms=1000)

        assert result.state == CombatState.SEARCHING

    def test_replace_config_swaps_wholesale(self, machine: CombatStateMachine) -> None:
        replacement = CombatConfig(auto_loot=False, heal_threshold=50)

        machine.replace_config(replacement)

        assert machine.config is replacement
        assert machine.config.priority_weights.isolation == 0.25

    def test_force_state(self, machine: CombatStateMachine) -> None:
        machine.force_state(CombatState.LOOTING)

        assert machine.state == CombatState.LOOTING

    def test_reset_restores_initial_state(self, machine: CombatStateMachine) -> None:
        machine.tick(frame(enemy(7, 90, 50)), now_ms=1000)
        machine.tick(frame(), now_ms=1100)
        assert machine.stats.kill_count == 1

        machine.reset()

        assert machine.state == CombatState.IDLE
        assert machine.stats.kill_count == 0
        assert machine.stats.skills_used == 0
        assert machine.current_target is None
        assert all(skill.last_used_ms == 0 for skill in machine.scheduler.skills)

    def test_reset_stats_keeps_cooldowns(self, machine: CombatStateMachine) -> None:
        machine.tick(frame(enemy(1, 90, 50)), now_ms=50_000)

        machine.reset_stats()

        assert machine.stats.skills_used == 0
        assert any(skill.last_used_ms == 50_000 for skill in machine.scheduler.skills)

    def test_update_skills_replaces_roster(self, machine: CombatStateMachine) -> None:
        only = Skill(id="x", name="Jab", keybind="q")

        machine.update_skills([only])
        result = machine.tick(frame(enemy(1, 90, 50)), now_ms=1000)

        assert result.action is not None
        assert result.action.skill is not None
        assert result.action.skill.keybind == "q"

    def test_display_sets_screen_center(self) -> None:
        machine = CombatStateMachine(display=DisplayConfig(screen_center_x=10, screen_center_y=20))

        assert machine.screen_center == (10, 20)

    def test_source_size_updates_frame_metrics(self, machine: CombatStateMachine) -> None:
        machine.tick(
            DetectionFrame(detections=[], source_width=1920, source_height=1080), now_ms=1000
        )

        assert machine.mapper.metrics is not None
        assert machine.mapper.metrics.source_width == 1920

    def test_snapshot_is_serializable(self, machine: CombatStateMachine) -> None:
        machine.tick(frame(enemy(1, 90, 50)), now_ms=1000)

        snapshot = machine.snapshot(now_ms=1000)

        assert snapshot["state"] == "combat"
        assert snapshot["current_target"]["id"] == 1
        assert snapshot["stats"]["skills_used"] == 1
        assert len(snapshot["skills"]) == len(DEFAULT_SKILLS)
        assert snapshot["last_action"]["kind"] == "skill"

    def test_tick_uses_clock_when_no_time_given(self) -> None:
        machine = CombatStateMachine(clock=lambda: 42_000.0)

        result = machine.tick(frame())

        assert result.now_ms == 42_000.0

    def test_tick_event_payload(self, machine: CombatStateMachine) -> None:
        result = machine.tick(frame(), now_ms=1000)

        event = result.to_event()

        assert event["event"] == "tick"
        assert event["state"] == "searching"
        assert event["previous_state"] == "idle"
        assert event["action"]["kind"] == "wait"
