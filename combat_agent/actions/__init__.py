"""Actuation: command sinks and the action dispatcher."""

from combat_agent.actions.bridge import HttpBridgeSink, NullCommandSink
from combat_agent.actions.dispatcher import ActionDispatcher, direction_key

__all__ = ["ActionDispatcher", "HttpBridgeSink", "NullCommandSink", "direction_key"]
