"""Configuration loader for the combat agent.

Loads configuration from YAML files and environment variables.
Environment variables override YAML values using the COMBATAGENT_ prefix.
Nested keys use double underscores: COMBATAGENT_COMBAT__HEAL_THRESHOLD=40
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from combat_agent.models.skills import DEFAULT_SKILLS, Skill

logger = logging.getLogger(__name__)

ENV_PREFIX = "COMBATAGENT_"


class PriorityWeights(BaseModel):
    """Weights for the five target scoring terms.

    Used as given: no normalization and no sign checks.
    """

    distance: float = 0.2
    hp: float = 0.2
    type: float = 0.2
    threat: float = 0.15
    isolation: float = 0.25

    @property
    def total(self) -> float:
        """Sum of all weights (upper bound of a target score)."""
        return self.distance + self.hp + self.type + self.threat + self.isolation


class CombatConfig(BaseModel):
    """Tunable combat policy read by every component each tick.

    Edge values (zero radius, zero threshold) are accepted and degrade
    predictably; nothing here is validated beyond types.
    """

    priority_weights: PriorityWeights = Field(default_factory=PriorityWeights)
    preferred_target_types: list[str] = Field(
        default_factory=lambda: ["enemy_nameplate", "mob", "enemy"]
    )
    max_target_distance: float = 500.0

    # Group avoidance
    mob_density_threshold: int = 2
    safety_distance: float = 150.0
    avoid_danger_zones: bool = True

    # Engagement range
    min_attack_range: float = 30.0
    max_attack_range: float = 100.0
    aoe_threshold: int = 3

    # Behavior
    heal_threshold: float = 30.0
    kite_enabled: bool = True
    stuck_timeout_ms: float = 2000.0
    auto_loot: bool = True
    combat_enabled: bool = Field(default=False, description="Forward actions to the bridge")


class ClassifierConfig(BaseModel):
    """Keyword sets used to sort detections into categories.

    Entity categories are checked in insertion order after the HP and mana
    keywords; the first match wins.
    """

    hp_keywords: list[str] = Field(
        default_factory=lambda: ["our-hp", "our_hp", "player_hp", "player-hp", "player_hp_bar"]
    )
    mana_keywords: list[str] = Field(
        default_factory=lambda: ["mana", "player_mana", "our-mana", "our_mana"]
    )
    entity_categories: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "player": ["player_character", "player", "character"],
            "enemy": ["enemy", "enemy_nameplate", "hostile", "mob"],
            "resource": ["ore", "herb", "resource", "resource_node"],
            "loot": ["loot", "item", "corpse"],
        }
    )


class BridgeConfig(BaseModel):
    """Actuation bridge settings."""

    url: str = Field(default="http://localhost:5001/action")
    enabled: bool = Field(default=False)
    log_actions: bool = Field(default=True)
    timeout_seconds: float = Field(default=2.0, gt=0, le=30)
    movement_mode: str = Field(default="keys", pattern="^(keys|pointer)$")
    loot_key: str = Field(default="f", min_length=1)
    jump_key: str = Field(default="space", min_length=1)


class DisplayConfig(BaseModel):
    """Viewport used for coordinate mapping and the evaluation origin."""

    container_width: int = Field(default=1920, ge=1, le=7680)
    container_height: int = Field(default=1080, ge=1, le=4320)
    screen_center_x: float = Field(default=50.0)
    screen_center_y: float = Field(default=50.0)


class AgentConfig(BaseModel):
    """Tick loop settings."""

    tick_rate_hz: float = Field(default=5.0, gt=0, le=30, description="Evaluations per second")
    max_consecutive_errors: int = Field(default=5, ge=1, le=100)
    error_recovery_delay_ms: float = Field(default=500.0, ge=0, le=10000)


class ObserverConfig(BaseModel):
    """Observer/control API settings."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8090, ge=1, le=65535)
    max_events: int = Field(default=500, ge=1, le=100000)


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="readable", pattern="^(readable|json)$")


class Config(BaseModel):
    """Root configuration model."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    combat: CombatConfig = Field(default_factory=CombatConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    skills: list[Skill] = Field(default_factory=lambda: list(DEFAULT_SKILLS))
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)
    observer: ObserverConfig = Field(default_factory=ObserverConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _get_env_value(key: str) -> str | None:
    """Get environment variable with COMBATAGENT_ prefix."""
    return os.environ.get(f"{ENV_PREFIX}{key.upper()}")


def _apply_env_overrides(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Apply environment variable overrides to config data.

    Example: COMBATAGENT_BRIDGE__ENABLED=true sets bridge.enabled to True.
    List and mapping values (skills, keyword sets) are not overridable.
    """
    result = data.copy()

    for key, value in result.items():
        env_key = f"{prefix}__{key}" if prefix else key

        if isinstance(value, dict):
            result[key] = _apply_env_overrides(value, env_key)
        elif isinstance(value, list):
            continue
        else:
            env_value = _get_env_value(env_key)
            if env_value is not None:
                # Convert to appropriate type based on original value
                if isinstance(value, bool):
                    result[key] = env_value.lower() in ("true", "1", "yes")
                elif isinstance(value, int):
                    result[key] = int(env_value)
                elif isinstance(value, float):
                    result[key] = float(env_value)
                else:
                    result[key] = env_value

    return result


def deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Deep merge updates into a copy of base.

    Nested dicts merge key by key; any other value replaces the old one.
    """
    result = base.copy()

    for key, value in updates.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def default_config_path() -> Path:
    """Path of the bundled default configuration."""
    return Path(__file__).parent.parent.parent / "configs" / "default.yaml"


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses configs/default.yaml.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValidationError: If config values are invalid.
    """
    config_path = default_config_path() if config_path is None else Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    # Overrides apply to every known field, not only those present in the file
    data = deep_merge(Config().model_dump(), data)
    data = _apply_env_overrides(data)

    return Config.model_validate(data)


def get_default_config() -> Config:
    """Get default configuration without loading from file."""
    return Config()


ConfigCallback = Callable[[Config], None]


class ConfigManager:
    """Manages configuration with runtime update support.

    Example:
        >>> manager = ConfigManager(load_config())
        >>> manager.subscribe(lambda cfg: print(cfg.combat.heal_threshold))
        >>> manager.update({"combat": {"heal_threshold": 45}})
        45.0
    """

    def __init__(self, config: Config | None = None) -> None:
        self._config = config or Config()
        self._subscribers: list[ConfigCallback] = []

    @property
    def config(self) -> Config:
        """Get the current configuration."""
        return self._config

    def subscribe(self, callback: ConfigCallback) -> None:
        """Subscribe to configuration changes."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: ConfigCallback) -> None:
        """Unsubscribe from configuration changes."""
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def update(self, updates: dict[str, Any]) -> Config:
        """Merge a partial update, validate, and notify subscribers.

        Unspecified fields keep their current value. Lists (such as the
        skill roster) are replaced wholesale.

        Raises:
            ValidationError: If updates result in invalid configuration.
        """
        merged = deep_merge(self._config.model_dump(), updates)
        new_config = Config.model_validate(merged)
        self._config = new_config
        self._notify(new_config)
        return new_config

    def reset(self) -> Config:
        """Reset configuration to defaults."""
        self._config = Config()
        self._notify(self._config)
        return self._config

    def _notify(self, config: Config) -> None:
        for subscriber in self._subscribers:
            try:
                subscriber(config)
            except Exception as e:
                # Log but don't fail on subscriber errors
                logger.warning(f"Config subscriber error: {e}")
