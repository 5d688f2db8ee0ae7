"""Real-time combat decision engine for a game-playing agent."""

__version__ = "0.1.0"
