"""CLI entrypoint for running combat agent sessions."""

from __future__ import annotations

import argparse
import logging
import sys

from combat_agent.actions.bridge import HttpBridgeSink, NullCommandSink
from combat_agent.actions.dispatcher import ActionDispatcher
from combat_agent.cli.helpers import (
    ObserverServer,
    _configure_logging,
    _start_observer_server,
)
from combat_agent.cli.options import LogFormat, build_arg_parser
from combat_agent.cli.runtime import CombatRuntime
from combat_agent.config.loader import Config, load_config
from combat_agent.config.secrets import load_environment_secrets
from combat_agent.core.loop import AgentLoop, LoopConfig
from combat_agent.core.metrics import MetricsCollector
from combat_agent.core.state_machine import CombatStateMachine
from combat_agent.interfaces.actuation import CommandSink
from combat_agent.interfaces.perception import DetectionSource
from combat_agent.observer.streaming import EventStreamService
from combat_agent.perception.sources import JsonlDetectionSource, QueueDetectionSource

logger = logging.getLogger(__name__)


def _load_and_configure(args: argparse.Namespace) -> Config:
    """Load config and reconfigure logging from it."""
    config = load_config(args.config)
    _configure_logging(
        level=str(config.logging.level),
        log_format=str(args.log_format or config.logging.format),
        quiet_uvicorn=True,
    )
    return config


def _create_runtime(args: argparse.Namespace) -> CombatRuntime:
    """Assemble source, machine, sink, loop and observer from CLI arguments."""
    config = _load_and_configure(args)

    if args.replay is None and not args.observe:
        raise ValueError("No detection source: pass --replay FILE or --observe to ingest over HTTP")

    source: DetectionSource
    queue_source: QueueDetectionSource | None = None
    if args.replay is not None:
        source = JsonlDetectionSource(args.replay)
        logger.info("[BOOT] Replaying detections from %s", args.replay)
    else:
        queue_source = QueueDetectionSource()
        source = queue_source

    sink: CommandSink
    if args.dry_run:
        sink = NullCommandSink()
        logger.info("[BOOT] Dry run: actions are recorded, not sent")
    else:
        sink = HttpBridgeSink(config.bridge)
        if not config.bridge.enabled:
            logger.warning("[BOOT] Bridge disabled in config; actions will not reach the game")

    machine = CombatStateMachine(
        config=config.combat,
        classifier_config=config.classifier,
        skills=config.skills,
        display=config.display,
    )
    metrics = MetricsCollector()
    dispatcher = ActionDispatcher(sink, machine.mapper, config.bridge, metrics)
    event_service = EventStreamService(max_events=config.observer.max_events)
    loop = AgentLoop(
        source=source,
        machine=machine,
        dispatcher=dispatcher,
        metrics=metrics,
        config=LoopConfig.from_agent_config(config.agent, max_ticks=args.max_ticks),
        events=event_service,
    )

    observer_server: ObserverServer | None = None
    if args.observe:
        observer_host = str(args.observer_host or config.observer.host)
        observer_port = int(args.observer_port or config.observer.port)
        observer_server = _start_observer_server(
            observer_host,
            observer_port,
            machine=machine,
            event_service=event_service,
            source=queue_source,
            sink=sink,
            dispatcher=dispatcher,
            metrics=metrics,
            loop=loop,
        )
        logger.info("[OBSERVER] live page: http://%s:%s/live", observer_host, observer_port)
        event_service.push_event(
            {"event": "observer_started", "host": observer_host, "port": observer_port}
        )

    if not config.combat.combat_enabled:
        logger.info("[BOOT] combat_enabled is off; decisions are made but not dispatched")

    return CombatRuntime(
        loop=loop,
        machine=machine,
        dispatcher=dispatcher,
        sink=sink,
        event_service=event_service,
        observer_server=observer_server,
    )


def run_command(args: argparse.Namespace) -> int:
    """Execute the `run` command."""
    if args.command != "run":
        raise ValueError(f"Unsupported command: {args.command}")

    runtime = _create_runtime(args)
    try:
        runtime.run()
        return 0
    finally:
        runtime.shutdown()


def check_bridge_command(args: argparse.Namespace) -> int:
    """Execute the `check-bridge` command."""
    if args.command != "check-bridge":
        raise ValueError(f"Unsupported command: {args.command}")

    config = _load_and_configure(args)
    sink = HttpBridgeSink(config.bridge)
    connected = sink.test_connection()
    if connected:
        logger.info("[BRIDGE] %s is reachable", config.bridge.url)
        return 0
    logger.error("[BRIDGE] %s: %s", config.bridge.url, sink.status.last_error)
    return 1


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint function."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    # Configure a sane bootstrap logger before config loading.
    _configure_logging(
        level="INFO",
        log_format=str(getattr(args, "log_format", None) or LogFormat.READABLE.value),
        quiet_uvicorn=True,
    )

    try:
        load_environment_secrets()
        if args.command == "run":
            return run_command(args)
        if args.command == "check-bridge":
            return check_bridge_command(args)
        raise ValueError(f"Unsupported command: {args.command}")
    except Exception as exc:
        logger.error("[BOOT] CLI execution failed: %s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
