"""Bulkfetch CLI entry points.
This module exposes the fetch and checkpoint inspection commands.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from typing import Any, Sequence

from core.config import FetchConfig
from core.config_file import apply_config_file
from core.errors import BulkFetchError
from core.timestamps import format_instant
from ingest.pipeline import load_latest_transaction_time, run_bulk_fetch

_OVERRIDE_FIELDS = (
    "client_id",
    "client_secret",
    "server_base_url",
    "auth_url",
    "export_group",
    "output_prefix",
    "rectify",
    "enable_datastore",
    "datastore_url",
    "datastore_token",
    "max_upload_workers",
    "upload_error_file_dir",
    "enable_batch_upload",
    "batch_upload_size",
    "enable_staged_import",
    "staged_import_bucket",
    "since",
    "since_file",
    "no_fail_on_upload_errors",
    "pending_job_url",
    "job_status_period",
    "job_status_timeout",
    "max_record_size",
    "s3_region",
    "s3_profile",
)


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="bulkfetch", description="Incremental bulk data fetch CLI")
    parser.add_argument("--config", help="Optional YAML config file with FetchConfig fields")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_fetch_command(subparsers)
    _add_since_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the bulkfetch CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = _build_config(args)
        if args.command == "fetch":
            return _run_fetch_command(config)
        if args.command == "since":
            return _run_since_command(config)
    except BulkFetchError as error:
        print(f"error: {error}", file=sys.stderr)
        return 1
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_config(args: argparse.Namespace) -> FetchConfig:
    """Build config from env, optional YAML file, then CLI flags.

    Args:
        args: Parsed CLI args.

    Returns:
        Merged fetch configuration.
    """
    config = FetchConfig.from_env()
    if args.config:
        config = apply_config_file(config, args.config)
    overrides = {
        name: getattr(args, name)
        for name in _OVERRIDE_FIELDS
        if getattr(args, name, None) is not None
    }
    if getattr(args, "resource_types", None):
        overrides["resource_types"] = _split_csv(args.resource_types)
    if getattr(args, "auth_scopes", None):
        overrides["auth_scopes"] = tuple(args.auth_scopes)
    return replace(config, **overrides)


def _run_fetch_command(config: FetchConfig) -> int:
    """Handle fetch command.

    Args:
        config: Merged fetch configuration.

    Returns:
        Exit code.
    """
    result = run_bulk_fetch(config)
    print(format_instant(result.transaction_time))
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    return 0


def _run_since_command(config: FetchConfig) -> int:
    """Handle since command.

    Args:
        config: Merged fetch configuration.

    Returns:
        Exit code.
    """
    transaction_time = load_latest_transaction_time(config)
    print(format_instant(transaction_time) if transaction_time else "-")
    return 0


def _split_csv(raw_value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw_value.split(",") if item.strip())


def _add_checkpoint_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--since", help="Explicit since timestamp, e.g. 2021-05-01T00:00:00.000+00:00")
    parser.add_argument("--since-file", help="Transaction time log path or s3://bucket/key")
    parser.add_argument("--s3-region", help="AWS region for S3 operations")
    parser.add_argument("--s3-profile", help="AWS profile for S3 operations")


def _add_fetch_command(subparsers: Any) -> None:
    """Register fetch subcommand."""
    parser = subparsers.add_parser("fetch", help="Run one incremental bulk export fetch")
    parser.add_argument("--client-id", help="Export API client id")
    parser.add_argument("--client-secret", help="Export API client secret")
    parser.add_argument("--server-url", dest="server_base_url", help="Bulk data server base URL")
    parser.add_argument("--auth-url", help="OAuth token URL")
    parser.add_argument(
        "--auth-scope",
        dest="auth_scopes",
        action="append",
        help="OAuth scope to request; repeat for several scopes",
    )
    parser.add_argument("--resource-types", help="Comma-separated resource types to export")
    parser.add_argument("--export-group", help="Group id to export")
    parser.add_argument("--output-prefix", help="Local NDJSON output prefix")
    parser.add_argument("--rectify", action="store_true", default=None, help="Normalize records")
    parser.add_argument(
        "--enable-datastore",
        action="store_true",
        default=None,
        help="Upload records to the datastore",
    )
    parser.add_argument("--datastore-url", help="Datastore REST base URL")
    parser.add_argument("--datastore-token", help="Optional datastore bearer token")
    parser.add_argument("--max-upload-workers", type=int, help="Concurrent datastore upload workers")
    parser.add_argument("--upload-error-file-dir", help="Directory for the failed-upload report")
    parser.add_argument(
        "--enable-batch-upload",
        action="store_true",
        default=None,
        help="Upload to the datastore in batch bundles",
    )
    parser.add_argument("--batch-upload-size", type=int, help="Resources per batch bundle")
    parser.add_argument(
        "--enable-staged-import",
        action="store_true",
        default=None,
        help="Stage NDJSON in S3 and import into the datastore",
    )
    parser.add_argument("--staged-import-bucket", help="S3 bucket for staged import files")
    parser.add_argument(
        "--no-fail-on-upload-errors",
        action="store_true",
        default=None,
        help="Record upload errors instead of failing the run",
    )
    parser.add_argument("--pending-job-url", help="Attach to an existing export job")
    parser.add_argument("--job-status-period", type=float, help="Seconds between job status polls")
    parser.add_argument("--job-status-timeout", type=float, help="Seconds to wait for the export job")
    parser.add_argument("--max-record-size", type=int, help="Maximum NDJSON record size in bytes")
    _add_checkpoint_arguments(parser)


def _add_since_command(subparsers: Any) -> None:
    """Register since subcommand."""
    parser = subparsers.add_parser("since", help="Print the latest stored transaction time")
    _add_checkpoint_arguments(parser)
