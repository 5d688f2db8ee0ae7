"""Observer package: event streaming and the control API."""

from combat_agent.observer.server import create_app
from combat_agent.observer.streaming import EventStreamService

__all__ = ["EventStreamService", "create_app"]
