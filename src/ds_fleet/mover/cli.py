"""
CLI entry point for the move subcommand.

Moves Data Safe targets to another compartment.  By default the
targets' audit trails, security assessments and security policies are
moved first (phase 1), then the targets themselves (phase 2).

Asks for confirmation after showing the impact (target count, source,
destination, dependents) unless --force or --dry-run is given.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from ..cli import (
    EXIT_FAILURE,
    EXIT_USAGE,
    add_execution_args,
    add_selection_args,
    connect,
    criteria_from_args,
    execute,
    load_or_exit,
)
from ..config import ConfigError
from ..logging_setup import setup_logging
from ..selector import ResolutionError
from ..validation import ValidationError
from .dependencies import DependencyMover

logger = logging.getLogger(__name__)


def _parse_args(argv: Optional[list[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ds-fleet move",
        description=(
            "Move Data Safe targets (and their audit trails, security assessments "
            "and security policies) to another compartment."
        ),
    )
    add_selection_args(parser, DependencyMover.default_states)
    add_execution_args(parser, DependencyMover.preview_by_default)
    parser.add_argument(
        "--dest-compartment",
        "-D",
        required=True,
        help="Destination compartment name or OCID",
    )
    parser.add_argument(
        "--no-move-dependencies",
        dest="move_dependencies",
        action="store_false",
        help="Move only the targets, leave their dependent objects where they are",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)

    log_path = setup_logging(verbose=args.verbose, log_prefix="move")
    cfg = load_or_exit(args)

    try:
        criteria = criteria_from_args(args, cfg, DependencyMover.default_states)
        catalog, resolver = connect(cfg)
        destination = resolver.resolve(args.dest_compartment)
    except ValidationError as exc:
        logger.error("%s", exc)
        sys.exit(EXIT_USAGE)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        sys.exit(EXIT_FAILURE)
    except ResolutionError as exc:
        logger.error("Destination compartment: %s", exc)
        sys.exit(EXIT_FAILURE)

    print(f"Destination:      {destination.label}")
    if not args.move_dependencies:
        print("Dependents:       not moved (--no-move-dependencies)")

    action = DependencyMover(catalog, destination, move_dependencies=args.move_dependencies)
    execute(args, cfg, catalog, resolver, action, criteria, log_path, args.dry_run)
