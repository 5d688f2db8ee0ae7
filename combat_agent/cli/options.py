"""CLI option models and parser helpers."""

from __future__ import annotations

import argparse
from enum import StrEnum


class LogFormat(StrEnum):
    """CLI log formatter mode."""

    READABLE = "readable"
    JSON = "json"


def build_arg_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="combat-agent", description="Real-time combat decision engine"
    )
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the combat loop")
    run_parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    run_parser.add_argument(
        "--replay", type=str, default=None, help="Replay detection frames from a JSONL file"
    )
    run_parser.add_argument(
        "--max-ticks", type=int, default=None, help="Stop after this many evaluated ticks"
    )
    run_parser.add_argument("--observe", action="store_true", help="Enable the observer web app")
    run_parser.add_argument("--observer-host", type=str, default=None, help="Observer host override")
    run_parser.add_argument("--observer-port", type=int, default=None, help="Observer port override")
    run_parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=[fmt.value for fmt in LogFormat],
        help="Terminal log format (defaults to the config value)",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Record actions in memory instead of sending them to the bridge",
    )

    check_parser = subparsers.add_parser("check-bridge", help="Check that the actuation bridge is reachable")
    check_parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    check_parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=[fmt.value for fmt in LogFormat],
        help="Terminal log format (defaults to the config value)",
    )

    return parser
