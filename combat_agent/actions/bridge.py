"""Command sinks that deliver actions to the game.

This module provides:
- HttpBridgeSink: POSTs JSON commands to a local actuation bridge
- NullCommandSink: Records commands in memory for tests and dry runs

The bridge speaks a tiny protocol: ``{"type": "move", "x": .., "y": ..}``
with normalized coordinates, or ``{"type": "keypress", "key": ..}``.
Reachability is checked with a GET on the same URL with ``/action``
replaced by ``/health``.

Example:
    >>> from combat_agent.config import BridgeConfig
    >>> sink = HttpBridgeSink(BridgeConfig(enabled=True))
    >>> sink.send_keypress("1")
    True
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from typing import Any

import requests

from combat_agent.config.loader import BridgeConfig
from combat_agent.config.secrets import get_bridge_token
from combat_agent.interfaces.actuation import BridgeStatus, CommandSink, CommandType, SinkCommand

logger = logging.getLogger(__name__)

ACTION_LOG_LIMIT = 100
UNREACHABLE_MESSAGE = "Bridge not reachable"


def clamp_unit(value: float) -> float:
    """Clamp a value into [0, 1]."""
    return max(0.0, min(1.0, value))


def health_url(action_url: str) -> str:
    """Derive the health-check URL from the action URL."""
    return action_url.replace("/action", "/health", 1)


class HttpBridgeSink(CommandSink):
    """Sends commands to the HTTP actuation bridge.

    Failures never raise: they are logged and reflected in ``status``.
    A disabled sink drops every command and reports failure.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        token: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the sink.

        Args:
            config: Bridge settings. Uses defaults if None.
            token: Bearer token for the bridge. Read from the environment if None.
            session: HTTP session to use. A new one is created if None.
        """
        self._config = config or BridgeConfig()
        self._token = token if token is not None else get_bridge_token()
        self._session = session or requests.Session()
        self._lock = threading.Lock()
        self._connected = False
        self._last_error: str | None = None
        self._log: deque[SinkCommand] = deque(maxlen=ACTION_LOG_LIMIT)

        logger.debug(f"HttpBridgeSink initialized: url={self._config.url}")

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def status(self) -> BridgeStatus:
        with self._lock:
            return BridgeStatus(
                enabled=self._config.enabled,
                connected=self._connected,
                last_error=self._last_error,
            )

    @property
    def action_log(self) -> list[SinkCommand]:
        """Get the most recent successful commands, oldest first."""
        with self._lock:
            return list(self._log)

    def update_config(self, updates: dict[str, Any]) -> BridgeConfig:
        """Merge a partial bridge config.

        Raises:
            ValidationError: If the merged config is invalid.
        """
        self._config = BridgeConfig.model_validate({**self._config.model_dump(), **updates})
        logger.info(
            f"Bridge config updated: url={self._config.url}, enabled={self._config.enabled}"
        )
        return self._config

    def clear_log(self) -> None:
        with self._lock:
            self._log.clear()

    def send_move(self, x: float, y: float) -> bool:
        command = SinkCommand(CommandType.MOVE, x=clamp_unit(x), y=clamp_unit(y))
        return self._send(command)

    def send_keypress(self, key: str) -> bool:
        return self._send(SinkCommand(CommandType.KEYPRESS, key=key))

    def test_connection(self) -> bool:
        url = health_url(self._config.url)
        try:
            response = self._session.get(
                url, headers=self._headers(), timeout=self._config.timeout_seconds
            )
            connected = response.ok
        except requests.exceptions.RequestException as e:
            logger.debug(f"Bridge health check failed: {e}")
            connected = False

        with self._lock:
            self._connected = connected
            self._last_error = None if connected else UNREACHABLE_MESSAGE

        logger.info(f"Bridge health check {url}: {'ok' if connected else 'unreachable'}")
        return connected

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _send(self, command: SinkCommand) -> bool:
        config = self._config
        if not config.enabled:
            logger.debug(f"Bridge disabled, skipping {command!r}")
            return False

        command.timestamp_ms = time.time() * 1000
        try:
            response = self._session.post(
                config.url,
                json=command.to_payload(),
                headers=self._headers(),
                timeout=config.timeout_seconds,
            )
            if not response.ok:
                raise requests.exceptions.HTTPError(f"HTTP {response.status_code}")
        except requests.exceptions.RequestException as e:
            message = str(e) or "Connection failed"
            with self._lock:
                self._connected = False
                self._last_error = message
            logger.error(f"Bridge command {command!r} failed: {message}")
            return False

        with self._lock:
            self._connected = True
            self._last_error = None
            if config.log_actions:
                self._log.append(command)
        logger.debug(f"Bridge command sent: {command!r}")
        return True


class NullCommandSink(CommandSink):
    """In-memory sink for testing and dry runs.

    Every command succeeds and is recorded in ``commands``.
    """

    def __init__(self) -> None:
        self.commands: list[SinkCommand] = []
        self._status = BridgeStatus(enabled=True, connected=True)

    @property
    def status(self) -> BridgeStatus:
        return self._status

    def send_move(self, x: float, y: float) -> bool:
        logger.debug(f"NullCommandSink.send_move({x:.3f}, {y:.3f})")
        self.commands.append(SinkCommand(CommandType.MOVE, x=clamp_unit(x), y=clamp_unit(y)))
        return True

    def send_keypress(self, key: str) -> bool:
        logger.debug(f"NullCommandSink.send_keypress({key!r})")
        self.commands.append(SinkCommand(CommandType.KEYPRESS, key=key))
        return True

    def test_connection(self) -> bool:
        return True
