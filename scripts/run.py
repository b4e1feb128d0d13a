#!/usr/bin/env python3
"""Monitoring entrypoint — wires the engine and runs check sweeps.

Usage::

    # Run continuously with default config
    python scripts/run.py --targets config/targets.yaml

    # Custom config file
    python scripts/run.py --config config/settings.yaml --targets config/targets.yaml

    # One sweep, print the summary as JSON, exit
    python scripts/run.py --targets config/targets.yaml --once
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any

import structlog
import yaml

from src.core.config import load_settings
from src.core.logging import setup_logging
from src.core.types import AlertRule, Target
from src.engine.factory import create_engine
from src.storage.memory import in_memory_repositories

logger = structlog.get_logger(__name__)


def load_targets(path: str | Path) -> tuple[list[Target], list[AlertRule]]:
    """Read targets and alert rules from a YAML file.

    Expected layout::

        targets:
          - id: api
            owner_id: u1
            name: Public API
            url: https://api.example.com/health
        rules:
          - id: r1
            owner_id: u1
            channels:
              - kind: webhook
                config: {webhook_url: https://hooks.example.com/x}
    """
    with open(path) as f:
        raw = yaml.safe_load(f)
    data: dict[str, Any] = raw if isinstance(raw, dict) else {}
    targets = [Target(**t) for t in data.get("targets") or []]
    rules = [AlertRule(**r) for r in data.get("rules") or []]
    return targets, rules


async def run(args: argparse.Namespace) -> int:
    """Start the engine and run until interrupted (or once with --once)."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level or settings.logging.level, fmt=settings.logging.format)

    targets: list[Target] = []
    rules: list[AlertRule] = []
    if args.targets:
        try:
            targets, rules = load_targets(args.targets)
        except (OSError, yaml.YAMLError, ValueError) as exc:
            logger.error("targets_load_failed", path=args.targets, error=str(exc))
            print(f"Could not load targets from {args.targets}: {exc}", file=sys.stderr)
            return 1

    if not targets:
        logger.error("no_targets_configured")
        print(
            "No targets configured. Pass --targets with a YAML file listing "
            "at least one target.",
            file=sys.stderr,
        )
        return 1

    service = create_engine(settings, in_memory_repositories(targets, rules))
    logger.info("monitor_starting", targets=len(targets), rules=len(rules))

    # ── Single sweep ─────────────────────────────────────────────
    if args.once:
        try:
            summary = await service.run_sweep()
        finally:
            await service.close()
        print(json.dumps(summary.model_dump(mode="json"), indent=2))
        return 0

    # ── Continuous mode ──────────────────────────────────────────
    await service.start()

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("monitor_shutting_down")
    await service.close()

    snapshot = service.metrics_snapshot()
    logger.info(
        "monitor_stopped",
        counters=len(snapshot["counters"]),  # type: ignore[arg-type]
        cache=snapshot["cache"],
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run endpoint health checks and alerting.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--targets",
        default=None,
        help="Path to a YAML file with 'targets' and 'rules' lists",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep, print the JSON summary, and exit",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
