#!/usr/bin/env python
"""
Command Line Entry Point

Usage:
    Analyze a snapshot:   buying-patterns run --input data/raw --output data/results
    Generate a snapshot:  buying-patterns generate --output data/raw --users 2000
"""

import argparse
import sys
from typing import List, Optional

import structlog

from buying_patterns.config import AnalyticsSettings, get_settings
from buying_patterns.config.logging import configure_logging
from buying_patterns.data import Relations, SnapshotGenerator
from buying_patterns.exceptions import MalformedRelationError
from buying_patterns.analysis import AnalysisPipeline

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="buying-patterns",
        description="Behavioral buying pattern analytics over an order snapshot",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument("--log-format", choices=["json", "text"], default=None, help="Override LOG_FORMAT")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Compute all result sets from a snapshot")
    run.add_argument("--input", default=settings.data.input_path, help="Snapshot directory")
    run.add_argument("--output", default=settings.data.output_path, help="Result directory")
    run.add_argument("--format", default=settings.data.file_format, choices=["csv", "parquet"])
    run.add_argument("--min-sample-size", type=int, default=None, help="Minimum observations per group")
    run.add_argument("--precision", type=int, default=None, help="Decimal places in the output")
    run.add_argument(
        "--both-directions",
        action="store_true",
        help="Emit every co-purchase pair with each product as anchor",
    )

    generate = subparsers.add_parser("generate", help="Write a synthetic snapshot")
    generate.add_argument("--output", default=settings.data.input_path, help="Snapshot directory")
    generate.add_argument("--format", default=settings.data.file_format, choices=["csv", "parquet"])
    generate.add_argument("--users", type=int, default=1000)
    generate.add_argument("--products", type=int, default=500)
    generate.add_argument("--seed", type=int, default=42)

    return parser


def _analytics_settings(args: argparse.Namespace) -> AnalyticsSettings:
    overrides = {}
    if args.min_sample_size is not None:
        overrides["min_sample_size"] = args.min_sample_size
    if args.precision is not None:
        overrides["precision"] = args.precision
    if args.both_directions:
        overrides["copurchase_both_directions"] = True
    return AnalyticsSettings(**{**get_settings().analytics.model_dump(), **overrides})


def run_command(args: argparse.Namespace) -> int:
    try:
        relations = Relations.from_directory(args.input, args.format)
        result = AnalysisPipeline(relations, _analytics_settings(args)).run()
    except MalformedRelationError as e:
        logger.error("Run aborted: malformed input", relation=e.relation, problems=e.problems)
        return 1

    written = result.write(args.output, args.format)
    for warning in result.warnings:
        logger.warning(warning.message, kind=warning.kind.value, stage=warning.stage)
    logger.info("Results written", files=written)
    return 0


def generate_command(args: argparse.Namespace) -> int:
    written = SnapshotGenerator(seed=args.seed).generate_to(
        args.output,
        args.format,
        n_users=args.users,
        n_products=args.products,
    )
    logger.info("Snapshot written", files=written)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_format)

    if args.command == "generate":
        return generate_command(args)
    return run_command(args)


if __name__ == "__main__":
    sys.exit(main())
