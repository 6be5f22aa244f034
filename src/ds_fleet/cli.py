"""
Shared CLI plumbing and the refresh / tags / audit-trail / select
subcommands.

Every command follows the same flow:

  1. parse and validate the command line (no API call yet)
  2. load config, build the signed client
  3. resolve the selection, optionally save it as a snapshot
  4. confirm (move only), execute, print per-target outcomes
  5. write the JSON report, print the summary, exit non-zero on failures

The move command lives in :mod:`ds_fleet.mover.cli` and reuses these
helpers.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Callable

from .catalog import CatalogError, TargetCatalog
from .client import DataSafeClient
from .compartments import CompartmentResolver
from .config import DEFAULT_CONFIG_PATH, PROJECT_ROOT, AppConfig, ConfigError, load_config
from .executor import Action, ErrorPolicy, ExecutionContext
from .logging_setup import setup_logging
from .models import STATUS_FAILED, RunReport
from .pipeline import run_pipeline
from .report import format_summary, save_json_report
from .selector import (
    CompartmentScan,
    ExplicitSelection,
    ResolutionError,
    SelectionCriteria,
    SnapshotReplay,
    TargetSelector,
    build_criteria,
)
from .snapshot import write_snapshot
from .validation import ValidationError

__all__ = [
    "add_selection_args",
    "add_execution_args",
    "criteria_from_args",
    "connect",
    "execute",
    "refresh_main",
    "tags_main",
    "audit_trail_main",
    "select_main",
]

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2


# ------------------------------------------------------------------
# Argument helpers
# ------------------------------------------------------------------

def add_selection_args(parser: argparse.ArgumentParser, default_states: tuple[str, ...]) -> None:
    group = parser.add_argument_group("target selection (pick one source)")
    group.add_argument(
        "target_args",
        nargs="*",
        metavar="TARGET",
        help="Target display names or OCIDs (same as -T)",
    )
    group.add_argument(
        "--targets",
        "-T",
        action="append",
        help="Comma separated target names and/or OCIDs (repeatable)",
    )
    group.add_argument(
        "--compartment",
        "-c",
        help=(
            "Compartment name or OCID to scan (sub-tree included); with -T it "
            "is the scope for name lookups. Default: datasafe.root_compartment"
        ),
    )
    group.add_argument(
        "--state",
        "-s",
        help=f"Comma separated lifecycle states for a scan (default: {','.join(default_states)})",
    )
    group.add_argument(
        "--filter",
        "-r",
        dest="name_filter",
        help="Regex matched (re.search) against target display names in a scan",
    )
    group.add_argument(
        "--input-json",
        help="Replay a selection saved with --save-json instead of selecting live",
    )
    group.add_argument(
        "--save-json",
        help="Save the resolved selection to this file for later --input-json replay",
    )
    group.add_argument(
        "--max-snapshot-age",
        help="Maximum age of an --input-json snapshot for a real run "
             "(seconds, or 30m/24h/7d, or 'disable'; default: selection.max_snapshot_age)",
    )
    group.add_argument(
        "--allow-stale-selection",
        action="store_true",
        help="Use an --input-json snapshot even if it is stale or undated",
    )


def add_execution_args(parser: argparse.ArgumentParser, preview_by_default: bool = False) -> None:
    parser.add_argument(
        "--dry-run",
        "-n",
        action="store_true",
        help=(
            "Only show what would be done (read-only lookups, no changes)"
            + ("; this is the default, use --apply to write" if preview_by_default else "")
        ),
    )
    if preview_by_default:
        parser.add_argument(
            "--apply",
            action="store_true",
            help="Apply the changes (without it the command only previews)",
        )
    policy = parser.add_mutually_exclusive_group()
    policy.add_argument(
        "--continue-on-error",
        dest="error_policy",
        action="store_const",
        const=ErrorPolicy.CONTINUE,
        help="Keep going after a failed target (default)",
    )
    policy.add_argument(
        "--stop-on-error",
        dest="error_policy",
        action="store_const",
        const=ErrorPolicy.STOP,
        help="Stop at the first failed target; the rest are reported as skipped",
    )
    parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Do not ask for confirmation",
    )
    parser.add_argument(
        "--output-json",
        help="Write the per-target JSON report to this file "
             "(default: <report.output_dir>/<command>_<timestamp>/)",
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to YAML config file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (debug) logging",
    )


def criteria_from_args(
    args: argparse.Namespace,
    cfg: AppConfig,
    default_states: tuple[str, ...],
) -> SelectionCriteria:
    """Build the selection criteria from parsed arguments.

    Raises:
        ValidationError: On conflicting or invalid selection options.
    """
    entries = list(args.targets or []) + list(args.target_args or [])
    targets = entries if (args.targets is not None or args.target_args) else None
    return build_criteria(
        targets=targets,
        compartment=args.compartment,
        states=args.state,
        name_filter=args.name_filter,
        input_json=args.input_json,
        max_age=args.max_snapshot_age or cfg.selection.max_snapshot_age,
        allow_stale=args.allow_stale_selection,
        default_states=default_states,
    )


def describe_criteria(criteria: SelectionCriteria) -> str:
    if isinstance(criteria, ExplicitSelection):
        scope = f" in {criteria.scope}" if criteria.scope else ""
        return f"{len(criteria.entries)} explicit target entr{'y' if len(criteria.entries) == 1 else 'ies'}{scope}"
    if isinstance(criteria, CompartmentScan):
        where = criteria.compartment or "root compartment"
        text = f"scan {where} (state {'/'.join(criteria.lifecycle_states)})"
        if criteria.name_filter:
            text += f", filter {criteria.name_filter!r}"
        return text
    if isinstance(criteria, SnapshotReplay):
        return f"snapshot {criteria.path}"
    return repr(criteria)


def connect(cfg: AppConfig) -> tuple[TargetCatalog, CompartmentResolver]:
    """Build the signed client, catalog and compartment resolver.

    Raises:
        ConfigError: If the OCI profile is unusable.
    """
    client = DataSafeClient.from_oci_config(cfg.oci.config_file, cfg.oci.profile, cfg.oci.region)
    catalog = TargetCatalog(client)
    resolver = CompartmentResolver(catalog, cfg.datasafe.root_compartment)
    return catalog, resolver


def _confirm(lines: list[str]) -> bool:
    print()
    for line in lines:
        print(f"  {line}")
    print()
    try:
        answer = input("Continue? [y/N]: ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        logger.warning("No answer at the confirmation prompt; treating it as 'no'. Use -f/--force to skip it.")
        return False
    return answer in ("y", "yes")


def _report_dir(cfg: AppConfig) -> str:
    report_dir = cfg.report.output_dir
    if not os.path.isabs(report_dir):
        report_dir = os.path.join(PROJECT_ROOT, report_dir)
    return report_dir


def _print_results(report: RunReport) -> None:
    if not report.results:
        return
    print()
    for r in report.results:
        label = r.display_name or r.identifier
        line = f"  {r.status.upper():<9s} {label}"
        if r.detail:
            line += f"  ({r.detail})"
        print(line)
    print()


def _fail(message: str, code: int) -> None:
    logger.error("%s", message)
    sys.exit(code)


# ------------------------------------------------------------------
# Driver
# ------------------------------------------------------------------

def load_or_exit(args: argparse.Namespace) -> AppConfig:
    try:
        return load_config(args.config)
    except ConfigError as exc:
        _fail(f"Configuration error: {exc}", EXIT_FAILURE)


def execute(
    args: argparse.Namespace,
    cfg: AppConfig,
    catalog: TargetCatalog,
    resolver: CompartmentResolver,
    action: Action,
    criteria: SelectionCriteria,
    log_path: str,
    dry_run: bool,
) -> None:
    """Run *action* over *criteria*, print the outcome and exit."""
    ctx = ExecutionContext(
        dry_run=dry_run,
        error_policy=args.error_policy,
        force=args.force,
    )
    selector = TargetSelector(catalog, resolver)

    print(f"Operation:        {action.name}")
    print(f"Selection:        {describe_criteria(criteria)}")
    print(f"Error policy:     {ctx.policy_for(action).value}")
    if dry_run:
        print("Mode:             DRY RUN (no changes will be made)")
    print(f"Log file:         {log_path}")

    try:
        report = run_pipeline(
            criteria,
            selector,
            action,
            ctx,
            confirm=_confirm,
            save_json=args.save_json,
        )
    except ValidationError as exc:
        _fail(str(exc), EXIT_USAGE)
    except (ResolutionError, CatalogError) as exc:
        _fail(str(exc), EXIT_FAILURE)

    if report.cancelled:
        print(f"{action.name.capitalize()} cancelled by user.")

    _print_results(report)

    if report.results and not report.cancelled:
        path = save_json_report(report, args.output_json, _report_dir(cfg))
        print(f"Report:           {path}")

    summary = format_summary(report)
    print(summary)
    logger.info("%s", summary)
    if report.summary.failed:
        failed = [r.display_name or r.identifier for r in report.results if r.status == STATUS_FAILED]
        logger.warning("Failed target(s): %s", ", ".join(failed))
    sys.exit(report.exit_code)


def _run_command(
    parser: argparse.ArgumentParser,
    action_cls: type,
    make_action: Callable[[argparse.Namespace, AppConfig, TargetCatalog, CompartmentResolver], Action],
    argv: list[str] | None,
) -> None:
    args = parser.parse_args(argv)
    log_path = setup_logging(verbose=args.verbose, log_prefix=action_cls.name.replace("-", "_"))
    cfg = load_or_exit(args)

    preview = getattr(args, "apply", None) is False
    dry_run = args.dry_run or preview

    try:
        criteria = criteria_from_args(args, cfg, action_cls.default_states)
        catalog, resolver = connect(cfg)
        action = make_action(args, cfg, catalog, resolver)
    except ValidationError as exc:
        _fail(str(exc), EXIT_USAGE)
    except ConfigError as exc:
        _fail(f"Configuration error: {exc}", EXIT_FAILURE)
    except ResolutionError as exc:
        _fail(str(exc), EXIT_FAILURE)

    execute(args, cfg, catalog, resolver, action, criteria, log_path, dry_run)


# ------------------------------------------------------------------
# refresh
# ------------------------------------------------------------------

def refresh_main(argv: list[str] | None = None) -> None:
    from .actions import RefreshAction

    parser = argparse.ArgumentParser(
        prog="ds-fleet refresh",
        description="Refresh the metadata of Data Safe target databases.",
    )
    add_selection_args(parser, RefreshAction.default_states)
    add_execution_args(parser, RefreshAction.preview_by_default)
    _run_command(
        parser,
        RefreshAction,
        lambda args, cfg, catalog, resolver: RefreshAction(catalog),
        argv,
    )


# ------------------------------------------------------------------
# tags
# ------------------------------------------------------------------

def tags_main(argv: list[str] | None = None) -> None:
    from .actions import TagUpdateAction

    parser = argparse.ArgumentParser(
        prog="ds-fleet tags",
        description=(
            "Set the environment / container / classification defined tags of "
            "Data Safe targets. The environment is derived from the target's "
            "compartment name. Only previews unless --apply is given."
        ),
    )
    add_selection_args(parser, TagUpdateAction.default_states)
    add_execution_args(parser, TagUpdateAction.preview_by_default)
    _run_command(
        parser,
        TagUpdateAction,
        lambda args, cfg, catalog, resolver: TagUpdateAction(catalog, resolver, cfg.tags),
        argv,
    )


# ------------------------------------------------------------------
# audit-trail
# ------------------------------------------------------------------

def audit_trail_main(argv: list[str] | None = None) -> None:
    from .actions import AuditTrailStartAction

    parser = argparse.ArgumentParser(
        prog="ds-fleet audit-trail",
        description="Start audit trail collection on Data Safe targets.",
    )
    add_selection_args(parser, AuditTrailStartAction.default_states)
    add_execution_args(parser, AuditTrailStartAction.preview_by_default)
    parser.add_argument(
        "--start-time",
        default="now",
        help="Audit collection start time: 'now' or RFC 3339 (default: now)",
    )
    parser.add_argument(
        "--auto-purge",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Enable auto-purge of collected audit records (default: on)",
    )
    parser.add_argument(
        "--trail-location",
        default="",
        help="Only start the audit trail with this trail location (or OCID)",
    )
    _run_command(
        parser,
        AuditTrailStartAction,
        lambda args, cfg, catalog, resolver: AuditTrailStartAction(
            catalog,
            start_time=args.start_time,
            auto_purge=args.auto_purge,
            trail_location=args.trail_location,
        ),
        argv,
    )


# ------------------------------------------------------------------
# select
# ------------------------------------------------------------------

def select_main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="ds-fleet select",
        description="Resolve a target selection and print it (optionally save it with --save-json).",
    )
    add_selection_args(parser, ("ACTIVE",))
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to YAML config file (default: config/config.yaml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose (debug) logging")
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, log_prefix="select")
    cfg = load_or_exit(args)

    try:
        criteria = criteria_from_args(args, cfg, ("ACTIVE",))
        catalog, resolver = connect(cfg)
        # Selection only; snapshot freshness is not enforced for read-only use.
        selection = TargetSelector(catalog, resolver).resolve(criteria, dry_run=True)
    except ValidationError as exc:
        _fail(str(exc), EXIT_USAGE)
    except ConfigError as exc:
        _fail(f"Configuration error: {exc}", EXIT_FAILURE)
    except (ResolutionError, CatalogError) as exc:
        _fail(str(exc), EXIT_FAILURE)

    if selection.source_scope:
        print(f"Scope:   {selection.source_scope.label}")
    print(f"Targets: {len(selection.targets)}")
    for target in selection.targets:
        print(f"  {target.display_name:<40s} {target.lifecycle_state:<16s} {target.identifier}")

    if args.save_json:
        path = write_snapshot(args.save_json, selection.targets)
        print(f"Saved selection to {path}")
