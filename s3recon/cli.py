# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command line front-end for the S3 reconciler.

Usage:
    s3recon apply FILE [--json-logs] [--no-vault]
    s3recon show BUCKET [--region REGION]
    s3recon import BUCKET [--region REGION]
    s3recon destroy BUCKET [--force]
    s3recon history [BUCKET] [--limit N]

Results are printed to stdout as JSON; logs go to stderr.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List

import aiosqlite
import structlog

from s3recon.config import EngineConfig
from s3recon.core import (
    ReconcileResult,
    delete_bucket,
    import_bucket,
    initialize_reconciler_state,
    read_bucket,
    reconcile,
)
from s3recon.env import create_config_from_env, fail_fast, patient
from s3recon.exceptions import S3ReconError
from s3recon.serialization import load_desired_state, state_to_dict

PROFILES = {
    "patient": patient,
    "fail_fast": fail_fast,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="s3recon",
        description="Reconcile S3 bucket configuration with a desired state",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Render logs as JSON lines on stderr",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--profile",
        choices=sorted(PROFILES),
        help="Retry profile applied on top of the environment configuration",
    )
    parser.add_argument(
        "--no-vault",
        action="store_true",
        help="Do not read or write the snapshot vault",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    apply_cmd = commands.add_parser("apply", help="Create or update a bucket from a JSON file")
    apply_cmd.add_argument("file", help="Path to a desired-state JSON document")

    show_cmd = commands.add_parser("show", help="Print the current state of a bucket")
    show_cmd.add_argument("bucket")
    show_cmd.add_argument("--region", help="Region the bucket lives in")

    import_cmd = commands.add_parser("import", help="Adopt an existing bucket")
    import_cmd.add_argument("bucket")
    import_cmd.add_argument("--region", help="Region the bucket lives in")

    destroy_cmd = commands.add_parser("destroy", help="Delete a bucket")
    destroy_cmd.add_argument("bucket")
    destroy_cmd.add_argument(
        "--force",
        action="store_true",
        help="Delete every object version and delete marker first",
    )

    history_cmd = commands.add_parser("history", help="List recorded operations")
    history_cmd.add_argument("bucket", nargs="?")
    history_cmd.add_argument("--limit", type=int, default=20)

    return parser


def configure_logging(json_logs: bool, verbose: bool = False) -> None:
    """Configure structlog rendering for command line use."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.INFO
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _result_to_dict(result: ReconcileResult) -> Dict[str, Any]:
    return {
        "operation_id": result.operation_id,
        "action": result.action,
        "bucket": result.bucket,
        "status": result.status,
        "changed_facets": result.changed_facets,
        "duration_seconds": round(result.duration_seconds, 3),
        "versions_deleted": result.versions_deleted,
        "recorded": state_to_dict(result.recorded) if result.recorded is not None else None,
    }


async def _history(config: EngineConfig, bucket: str | None, limit: int) -> List[Dict[str, Any]]:
    from s3recon.vault import init_vault_db, list_operations

    await init_vault_db(config.vault_path)
    async with aiosqlite.connect(config.vault_path) as db:
        return [dict(r) for r in await list_operations(db, bucket=bucket, limit=limit)]


async def run_command(args: argparse.Namespace, config: EngineConfig) -> Any:
    """Execute a parsed command and return its JSON-compatible output."""
    if args.command == "history":
        return await _history(config, args.bucket, args.limit)

    state = await initialize_reconciler_state(config, use_vault=not args.no_vault)

    if args.command == "apply":
        desired = load_desired_state(args.file)
        result = await reconcile(config, state, desired)
    elif args.command == "show":
        result = await read_bucket(config, state, args.bucket, region=args.region)
    elif args.command == "import":
        result = await import_bucket(config, state, args.bucket, region=args.region)
    else:
        result = await delete_bucket(config, state, args.bucket, force_destroy=args.force)

    return _result_to_dict(result)


def main(argv: List[str] | None = None) -> int:
    """Entry point of the s3recon console script."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.json_logs, args.verbose)

    try:
        config = create_config_from_env()
        if args.profile:
            config = PROFILES[args.profile](config)
        output = asyncio.run(run_command(args, config))
    except S3ReconError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2, sort_keys=True, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
