#!/usr/bin/env python3
"""
CLI parsing and argument handling for field-reconciler.

Contains all CLI parsing and argument handling including:
- argparse setup and configuration
- subcommands definition (sync, reconcile, plan, status, record)
- help and version handling
- the console script entry point
"""

import argparse
from pathlib import Path

import typer

from . import __version__
from .config_loader import load_config
from .logging_config import get_logger

# Initialize logger for this module
logger = get_logger(__name__)


def _add_common_arguments(parser: argparse.ArgumentParser, config) -> None:
    parser.add_argument(
        "--database-url",
        dest="database_url",
        help=f"SQLAlchemy URL of the mapping store (default: {config.database_url})",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "NOTICE", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help=f"Logging level (default: {config.log_level})",
    )


def _add_inputs_argument(parser: argparse.ArgumentParser, config) -> None:
    parser.add_argument(
        "--inputs",
        help=f"Input snapshot file, YAML or JSON (default: {config.inputs_path})",
    )


def build_parser(config) -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="field-reconciler",
        description="Field Reconciler - custom-field reconciliation between ticket trackers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  field-reconciler sync --inputs data/inputs.yaml
  field-reconciler reconcile --inputs data/inputs.yaml
  field-reconciler plan --inputs data/inputs.yaml --output output/association_plan.yaml
  field-reconciler status
  field-reconciler record --mapping-id 12 --target-field-id 40
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.yaml (default: config/config.yaml, then ./config.yaml)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sync_parser = subparsers.add_parser(
        "sync", help="Create or refresh mapping rows from the source inventory"
    )
    _add_inputs_argument(sync_parser, config)
    _add_common_arguments(sync_parser, config)

    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Sync, then propose a target mapping for every source field"
    )
    _add_inputs_argument(reconcile_parser, config)
    _add_common_arguments(reconcile_parser, config)

    plan_parser = subparsers.add_parser(
        "plan", help="Compute scope associations missing on linked target fields"
    )
    _add_inputs_argument(plan_parser, config)
    plan_parser.add_argument(
        "--output",
        help=f"Where to write the plan YAML (default: {config.plan_output})",
    )
    _add_common_arguments(plan_parser, config)

    status_parser = subparsers.add_parser("status", help="Show mapping counts per status")
    _add_common_arguments(status_parser, config)

    record_parser = subparsers.add_parser(
        "record", help="Record the outcome of pushing a mapping to the target"
    )
    record_parser.add_argument("--mapping-id", dest="mapping_id", type=int, required=True)
    record_parser.add_argument(
        "--target-field-id",
        dest="target_field_id",
        type=int,
        help="Id of the target field that was created or updated",
    )
    record_parser.add_argument(
        "--failed",
        action="store_true",
        help="Mark the push as failed instead of successful",
    )
    record_parser.add_argument("--error", help="Error reported by the target tracker")
    _add_common_arguments(record_parser, config)

    return parser


def setup_cli(argv=None):
    """Set up the command line interface with argparse and merge it with config.yaml."""
    # Pre-parse --config so defaults shown in help come from the right file
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config", type=Path)
    known, _ = pre_parser.parse_known_args(argv)

    config = load_config(known.config)
    parser = build_parser(config)
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        raise SystemExit(1)

    config.merge_with_cli_args(args)
    return args, config


typer_app = typer.Typer(
    name="field-reconciler",
    help="Field Reconciler - custom-field reconciliation between ticket trackers",
    add_completion=False,
)


@typer_app.command(
    add_help_option=False,
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run(ctx: typer.Context):
    """Delegate to the argparse CLI."""
    from .main import main

    try:
        main(list(ctx.args))
    except Exception as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def app():
    """Console script entry point."""
    typer_app()
