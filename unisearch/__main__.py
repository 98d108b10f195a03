"""Unisearch process entry-point.

Usage:
    python -m unisearch QUERY [--json] [--health] [--log-level LEVEL] [--log-format FORMAT]

The orchestration logic lives in ``unisearch.orchestrator``.  This module
is thin: it calls ``configure_logging()`` first so that every subsequent
import already has a working logger, then runs one search and prints the
outcomes.

The exit code is 0 whenever the search ran, even if every provider failed;
partial and empty results are normal.  It is 1 on configuration errors.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from pydantic import ValidationError

from unisearch.core import configure_logging
from unisearch.core.exceptions import ConfigError
from unisearch.core.models import HealthSummary, TaskOutcome


def _print_text(outcomes: list[TaskOutcome], summary: HealthSummary | None) -> None:
    if not outcomes:
        print("No connected capabilities.")  # noqa: T201
    for outcome in outcomes:
        status = "ok    " if outcome.success else "FAILED"
        detail = "" if outcome.success else f"  {outcome.error}"
        print(f"{status} {outcome.key:<24} {outcome.duration_ms:>7.0f} ms{detail}")  # noqa: T201
    if summary is not None:
        print(  # noqa: T201
            f"health: {summary.overall} "
            f"({summary.healthy_count} healthy, {summary.unhealthy_count} unhealthy)"
        )


def _print_json(outcomes: list[TaskOutcome], summary: HealthSummary | None) -> None:
    body: dict[str, object] = {"outcomes": [o.model_dump(mode="json") for o in outcomes]}
    if summary is not None:
        body["health"] = summary.model_dump(mode="json")
    print(json.dumps(body, indent=2))  # noqa: T201


def main(argv: list[str] | None = None) -> None:
    """CLI entry-point registered in ``pyproject.toml``."""
    parser = argparse.ArgumentParser(
        prog="unisearch",
        description="Search every configured integration for a query, concurrently.",
    )
    parser.add_argument("query", help="Search text sent verbatim to every provider.")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print outcomes as JSON instead of a table.",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        help="Also print the per-capability health summary after the search.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        metavar="LEVEL",
        help="Override LOG_LEVEL env var (DEBUG|INFO|WARNING|ERROR).",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        metavar="FORMAT",
        help="Override LOG_FORMAT env var (text|json).",
    )

    args = parser.parse_args(argv)

    try:
        configure_logging(level=args.log_level, fmt=args.log_format)
    except ValueError as exc:
        print(f"unisearch: configuration error: {exc}", file=sys.stderr)  # noqa: T201
        sys.exit(1)

    logger = logging.getLogger(__name__)

    # Imported after logging is configured.
    from unisearch.core.settings import Settings  # noqa: PLC0415
    from unisearch.orchestrator.fanout import SearchOrchestrator  # noqa: PLC0415
    from unisearch.orchestrator.runner import run_search  # noqa: PLC0415

    try:
        settings = Settings()
        orchestrator = SearchOrchestrator(
            timeout_config=settings.to_timeout_config(),
            retry_config=settings.to_retry_config(),
        )
        outcomes = asyncio.run(run_search(args.query, settings=settings, orchestrator=orchestrator))
    except (ConfigError, ValidationError) as exc:
        logger.critical("Configuration error: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted; exiting.")
        sys.exit(0)

    summary = orchestrator.health.summary() if args.health else None
    if args.json:
        _print_json(outcomes, summary)
    else:
        _print_text(outcomes, summary)


if __name__ == "__main__":
    main()
