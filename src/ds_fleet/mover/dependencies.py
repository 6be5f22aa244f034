"""
Dependency-aware two-phase relocation of targets.

Phase 1: for every selected target, enumerate its audit trails,
         security assessments and security policies in the target's
         current compartment and move each to the destination.
Phase 2: move the targets themselves.

The phases are never interleaved across targets: all dependents of all
targets move before the first target does.  A target whose phase-1
step failed is left in place (recorded as failed) so that its remaining
dependents are still found next to it on a re-run.  Relocation is by
resource id, so re-running after a partial failure is safe.
"""

from __future__ import annotations

import logging

from ..catalog import TargetCatalog
from ..executor import Action, ErrorPolicy, ExecutionContext, SkipTarget, Step
from ..models import DEPENDENCY_KINDS, Compartment, Target
from ..selector import ResolutionPolicy, SelectionResult
from ..validation import ValidationError

__all__ = ["DependencyMover"]

logger = logging.getLogger(__name__)


class DependencyMover(Action):
    """Move targets (and, by default, their dependents) to *destination*."""

    name = "move"
    error_policy = ErrorPolicy.CONTINUE
    resolution_policy = ResolutionPolicy.STRICT
    requires_confirmation = True

    def __init__(
        self,
        catalog: TargetCatalog,
        destination: Compartment,
        move_dependencies: bool = True,
        kinds: tuple[str, ...] = DEPENDENCY_KINDS,
    ):
        self.catalog = catalog
        self.destination = destination
        self.move_dependencies = move_dependencies
        self.kinds = kinds

    def steps(self) -> list[Step]:
        steps = []
        if self.move_dependencies:
            steps.append(Step("move dependents", self._move_dependents, self._preview_dependents))
        steps.append(Step("move target", self._move_target, self._preview_target))
        return steps

    # ------------------------------------------------------------------
    # Whole-selection checks
    # ------------------------------------------------------------------

    def validate_selection(self, selection: SelectionResult, ctx: ExecutionContext) -> None:
        scope = selection.source_scope
        if scope is not None and scope.identifier == self.destination.identifier:
            raise ValidationError(
                f"Source and destination compartment are the same ({scope.label}). "
                "Choose a different -D/--dest-compartment."
            )

    def impact_preview(self, targets: list[Target], ctx: ExecutionContext) -> list[str]:
        in_place = sum(1 for t in targets if t.compartment_id == self.destination.identifier)
        source = ctx.source_scope.label if ctx.source_scope else "(each target's current compartment)"
        lines = [
            f"Targets to move:  {len(targets) - in_place}",
            f"Source:           {source}",
            f"Destination:      {self.destination.label}",
            "Dependents:       "
            + ("audit trails, security assessments, security policies" if self.move_dependencies else "not moved"),
        ]
        if in_place:
            lines.append(f"Already there:    {in_place} (skipped)")
        return lines

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _check_destination(self, target: Target) -> None:
        if target.compartment_id == self.destination.identifier:
            raise SkipTarget(f"already in {self.destination.label}")

    def _dependents(self, target: Target):
        for kind in self.kinds:
            for resource in self.catalog.list_dependents(kind, target):
                yield resource

    def _preview_dependents(self, target: Target, ctx: ExecutionContext) -> str:
        self._check_destination(target)
        count = 0
        for resource in self._dependents(target):
            logger.info("[dry-run]   would move %s %s", resource.friendly_kind, resource.label)
            count += 1
        return f"would move {count} dependent(s)"

    def _move_dependents(self, target: Target, ctx: ExecutionContext) -> str:
        self._check_destination(target)
        count = 0
        for resource in self._dependents(target):
            self.catalog.relocate(resource.kind, resource.identifier, self.destination.identifier)
            logger.info("  moved %s %s", resource.friendly_kind, resource.label)
            count += 1
        return f"moved {count} dependent(s)"

    def _preview_target(self, target: Target, ctx: ExecutionContext) -> str:
        self._check_destination(target)
        return f"would move to {self.destination.label}"

    def _move_target(self, target: Target, ctx: ExecutionContext) -> str:
        self._check_destination(target)
        self.catalog.relocate_target(target.identifier, self.destination.identifier)
        target.compartment_id = self.destination.identifier
        return f"moved to {self.destination.label}"
