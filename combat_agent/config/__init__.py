"""Configuration management for the combat agent."""

from combat_agent.config.loader import (
    BridgeConfig,
    ClassifierConfig,
    CombatConfig,
    Config,
    ConfigManager,
    PriorityWeights,
    get_default_config,
    load_config,
)
from combat_agent.config.secrets import get_bridge_token, load_environment_secrets

__all__ = [
    "BridgeConfig",
    "ClassifierConfig",
    "CombatConfig",
    "Config",
    "ConfigManager",
    "PriorityWeights",
    "get_bridge_token",
    "get_default_config",
    "load_config",
    "load_environment_secrets",
]
