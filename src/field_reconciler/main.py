#!/usr/bin/env python3
"""
Main orchestration and entry point for field-reconciler.

Contains the entrypoint and command execution logic:
- sync: refresh mapping rows from the input snapshot
- reconcile: sync and run a reconciliation pass
- plan: derive the association plan from stored mappings
- status: show mapping counts per status
- record: store the outcome of a push to the target tracker
"""

import sys

from rich.console import Console

from .cli import setup_cli
from .engine import ReconciliationEngine
from .logging_config import get_logger, setup_logging
from .matcher import collect_association_plan
from .reporting import render_plan, render_status_counts, render_summary, write_plan_yaml
from .snapshots import load_inputs
from .store import open_store

# Initialize logger for this module
logger = get_logger(__name__)


def run_sync_command(args, config):
    """Run the sync command - refresh mapping rows from the source inventory."""
    inputs = load_inputs(config.get_inputs_path())
    engine = ReconciliationEngine(open_store(config.database_url))
    result = engine.sync_mappings(inputs.source_fields, inputs.assignments)
    Console().print(
        f"Mappings created: {result.created}, refreshed: {result.updated}, purged: {result.purged}"
    )
    return result


def run_reconcile_command(args, config):
    """Run the reconcile command - sync, then reconcile every mapping."""
    inputs = load_inputs(config.get_inputs_path())
    engine = ReconciliationEngine(open_store(config.database_url))
    summary = engine.run(inputs)
    render_summary(summary)
    return summary


def run_plan_command(args, config):
    """Run the plan command - diff linked mappings against the target snapshot."""
    inputs = load_inputs(config.get_inputs_path())
    store = open_store(config.database_url)
    plan = collect_association_plan(store.list_all(), inputs.target_fields)
    render_plan(plan)
    output = write_plan_yaml(plan, config.get_plan_output())
    logger.info(f"Association plan written to {output}")
    return plan


def run_status_command(args, config):
    """Run the status command - show mapping counts per status."""
    store = open_store(config.database_url)
    counts = store.status_counts()
    render_status_counts(counts)
    return counts


def run_record_command(args, config):
    """Run the record command - store the outcome of a push."""
    engine = ReconciliationEngine(open_store(config.database_url))
    mapping = engine.record_push_result(
        args.mapping_id,
        success=not args.failed,
        target_field_id=args.target_field_id,
        error=args.error,
    )
    logger.info(
        f"Mapping #{mapping.mapping_id} ({mapping.source_field_id}) is now {mapping.migration_status.value}"
    )
    return mapping


COMMANDS = {
    "sync": run_sync_command,
    "reconcile": run_reconcile_command,
    "plan": run_plan_command,
    "status": run_status_command,
    "record": run_record_command,
}


def main(argv=None):
    """Main entry point for the application."""
    # Initialize logging
    setup_logging()

    args, config = setup_cli(argv)
    setup_logging(config.log_level)

    command = COMMANDS.get(args.command)
    if command is None:
        logger.error(f"Unknown command: {args.command}")
        sys.exit(1)
    command(args, config)


if __name__ == "__main__":
    main()
