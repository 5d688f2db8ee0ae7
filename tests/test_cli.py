"""Tests for CLI runtime orchestration."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from combat_agent.actions.bridge import HttpBridgeSink, NullCommandSink
from combat_agent.cli import _create_runtime, check_bridge_command, main, run_command
from combat_agent.cli.helpers import _configure_logging, _JSONLogFormatter
from combat_agent.cli.options import build_arg_parser
from combat_agent.core.loop import AgentLoop, LoopState
from combat_agent.perception.sources import JsonlDetectionSource


@pytest.fixture(autouse=True)
def no_signal_handlers(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the test runner's own SIGINT handling intact."""
    monkeypatch.setattr(AgentLoop, "_install_signal_handlers", lambda self: None)


@pytest.fixture
def replay_file(tmp_path: Path) -> Path:
    frames = [
        {"detections": [{"id": 1, "type": "mob", "x": 90, "y": 50, "width": 0, "height": 0}]},
        {"detections": [{"id": 1, "type": "mob", "x": 90, "y": 50, "width": 0, "height": 0}]},
        {"detections": [{"id": 2, "type": "loot_bag", "x": 55, "y": 50, "width": 0, "height": 0}]},
    ]
    path = tmp_path / "session.jsonl"
    path.write_text("\n".join(json.dumps(frame) for frame in frames) + "\n")
    return path


class TestCLIParser:
    """Argument parsing behavior."""

    def test_parses_run_command_options(self) -> None:
        parser = build_arg_parser()

        args = parser.parse_args(
            ["run", "--replay", "s.jsonl", "--max-ticks", "5", "--dry-run", "--log-format", "json"]
        )

        assert args.command == "run"
        assert args.replay == "s.jsonl"
        assert args.max_ticks == 5
        assert args.dry_run is True
        assert args.observe is False
        assert args.log_format == "json"

    def test_parses_check_bridge(self) -> None:
        args = build_arg_parser().parse_args(["check-bridge", "--config", "c.yaml"])

        assert args.command == "check-bridge"
        assert args.config == "c.yaml"

    def test_rejects_unknown_log_format(self) -> None:
        with pytest.raises(SystemExit):
            build_arg_parser().parse_args(["run", "--log-format", "xml"])


class TestRuntimeAssembly:
    """Tests for _create_runtime."""

    def test_replay_dry_run(self, replay_file: Path) -> None:
        args = build_arg_parser().parse_args(["run", "--replay", str(replay_file), "--dry-run"])

        runtime = _create_runtime(args)
        try:
            assert isinstance(runtime.sink, NullCommandSink)
            assert runtime.observer_server is None
            assert runtime.dispatcher.sink is runtime.sink
        finally:
            runtime.shutdown()

    def test_replay_source_used(self, replay_file: Path) -> None:
        args = build_arg_parser().parse_args(["run", "--replay", str(replay_file), "--dry-run"])
        runtime = _create_runtime(args)
        try:
            assert isinstance(runtime.loop._source, JsonlDetectionSource)
        finally:
            runtime.shutdown()

    def test_live_sink_without_dry_run(self, replay_file: Path) -> None:
        args = build_arg_parser().parse_args(["run", "--replay", str(replay_file)])

        runtime = _create_runtime(args)
        try:
            assert isinstance(runtime.sink, HttpBridgeSink)
        finally:
            runtime.shutdown()

    def test_requires_a_source(self) -> None:
        args = build_arg_parser().parse_args(["run"])

        with pytest.raises(ValueError, match="No detection source"):
            _create_runtime(args)

    def test_run_replays_to_completion(self, replay_file: Path) -> None:
        args = build_arg_parser().parse_args(["run", "--replay", str(replay_file), "--dry-run"])
        runtime = _create_runtime(args)

        try:
            ticks = runtime.run()
        finally:
            runtime.shutdown()

        assert ticks == 3
        assert runtime.loop.state == LoopState.STOPPED

    def test_max_ticks(self, replay_file: Path) -> None:
        args = build_arg_parser().parse_args(
            ["run", "--replay", str(replay_file), "--dry-run", "--max-ticks", "1"]
        )
        runtime = _create_runtime(args)

        try:
            assert runtime.run() == 1
        finally:
            runtime.shutdown()


class TestCommands:
    """Tests for command entrypoints."""

    def test_run_command(self, replay_file: Path) -> None:
        args = build_arg_parser().parse_args(["run", "--replay", str(replay_file), "--dry-run"])

        assert run_command(args) == 0

    def test_run_command_rejects_other_commands(self) -> None:
        args = build_arg_parser().parse_args(["check-bridge"])

        with pytest.raises(ValueError):
            run_command(args)

    def test_check_bridge_reachable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(HttpBridgeSink, "test_connection", lambda self: True)
        args = build_arg_parser().parse_args(["check-bridge"])

        assert check_bridge_command(args) == 0

    def test_check_bridge_unreachable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(HttpBridgeSink, "test_connection", lambda self: False)
        args = build_arg_parser().parse_args(["check-bridge"])

        assert check_bridge_command(args) == 1


class TestMain:
    """Tests for the main entrypoint."""

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 1
        assert "combat-agent" in capsys.readouterr().out

    def test_run_replay(self, replay_file: Path) -> None:
        assert main(["run", "--replay", str(replay_file), "--dry-run", "--max-ticks", "2"]) == 0

    def test_missing_config_returns_error(self, tmp_path: Path) -> None:
        assert main(["run", "--config", str(tmp_path / "nope.yaml"), "--dry-run"]) == 1

    def test_missing_replay_returns_error(self, tmp_path: Path) -> None:
        assert main(["run", "--replay", str(tmp_path / "nope.jsonl"), "--dry-run"]) == 1


class TestLogging:
    """Tests for logging configuration."""

    def test_configure_logging_replaces_own_handler(self) -> None:
        root = logging.getLogger()

        _configure_logging(level="DEBUG")
        _configure_logging(level="WARNING")

        own = [h for h in root.handlers if getattr(h, "_combat_agent_handler", False)]
        assert len(own) == 1
        assert root.level == logging.WARNING

    def test_json_formatter(self) -> None:
        record = logging.LogRecord("combat_agent.test", logging.INFO, __file__, 1, "hi %s", ("x",), None)

        payload = json.loads(_JSONLogFormatter().format(record))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "combat_agent.test"
        assert payload["msg"] == "hi x"
