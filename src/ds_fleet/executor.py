"""
Sequential batch execution of a per-target action.

An :class:`Action` is a list of :class:`Step` objects.  Each step has an
``apply`` function (mutating) and a ``preview`` function (read-only
lookups only).  The executor runs every step across all targets, in
resolution order, before moving to the next step; a dry-run simply calls
``preview`` where a real run calls ``apply``, so both modes produce the
same outcomes, ordering and number of log lines.

Outcomes:
  - step raised :class:`SkipTarget`            -> ``skipped``
  - step raised :class:`PerTargetError` or
    :class:`~ds_fleet.catalog.CatalogError`    -> ``failed``
  - all steps returned                          -> ``succeeded``

A failed or skipped target takes no part in later steps.  With
``ErrorPolicy.STOP`` the first failure aborts the run and every target
that has not finished all steps is recorded as ``skipped``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .catalog import CatalogError
from .models import (
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_SUCCEEDED,
    Compartment,
    OperationResult,
    RunReport,
    Target,
)
from .selector import ResolutionPolicy, SelectionResult

__all__ = [
    "ErrorPolicy",
    "ExecutionContext",
    "Step",
    "Action",
    "SkipTarget",
    "PerTargetError",
    "BatchExecutor",
]

logger = logging.getLogger(__name__)


class ErrorPolicy(enum.Enum):
    CONTINUE = "continue"
    STOP = "stop"


class SkipTarget(Exception):
    """Raised by a step when the target needs no work (e.g. already done)."""


class PerTargetError(Exception):
    """Raised by a step when one target fails; the batch carries on."""


@dataclass
class ExecutionContext:
    """Per-run state shared by the executor and the action steps."""
    dry_run: bool = False
    error_policy: Optional[ErrorPolicy] = None  # None: use the action's policy
    force: bool = False
    source_scope: Optional[Compartment] = None

    def policy_for(self, action: "Action") -> ErrorPolicy:
        return self.error_policy or action.error_policy


StepFunc = Callable[[Target, ExecutionContext], Optional[str]]


@dataclass
class Step:
    label: str
    apply: StepFunc
    preview: StepFunc


class Action:
    """Base class for per-target operations.

    Subclasses set the class attributes and implement :meth:`steps`.
    """

    name = "action"
    error_policy = ErrorPolicy.CONTINUE
    resolution_policy = ResolutionPolicy.STRICT
    requires_confirmation = False
    preview_by_default = False
    default_states: tuple[str, ...] = ("ACTIVE",)

    def steps(self) -> list[Step]:
        raise NotImplementedError

    def validate_selection(self, selection: SelectionResult, ctx: ExecutionContext) -> None:
        """Hook for whole-selection checks before anything runs."""

    def impact_preview(self, targets: list[Target], ctx: ExecutionContext) -> list[str]:
        """Lines shown to the operator before asking for confirmation."""
        return [f"{self.name}: {len(targets)} target(s)"]


@dataclass
class _Progress:
    target: Target
    steps_done: int = 0
    details: list[str] = field(default_factory=list)
    outcome: Optional[OperationResult] = None


class BatchExecutor:
    """Runs an :class:`Action` over a resolved target list."""

    def run(self, targets: list[Target], action: Action, ctx: ExecutionContext) -> RunReport:
        steps = action.steps()
        policy = ctx.policy_for(action)
        prefix = "[dry-run] " if ctx.dry_run else ""
        progress = [_Progress(t) for t in targets]
        aborted = False

        for index, step in enumerate(steps, 1):
            if len(steps) > 1:
                logger.info("%sStep %d/%d: %s", prefix, index, len(steps), step.label)
            func = step.preview if ctx.dry_run else step.apply

            for entry in progress:
                if entry.outcome is not None:
                    continue
                target = entry.target
                try:
                    detail = func(target, ctx)
                except SkipTarget as exc:
                    entry.outcome = OperationResult(
                        target.identifier, target.display_name, STATUS_SKIPPED, str(exc),
                    )
                    logger.info("%s%s %s: skipped (%s)", prefix, step.label, target.label, exc)
                    continue
                except (PerTargetError, CatalogError) as exc:
                    entry.outcome = OperationResult(
                        target.identifier, target.display_name, STATUS_FAILED, str(exc),
                    )
                    logger.error("%s%s %s: FAILED: %s", prefix, step.label, target.label, exc)
                    if policy is ErrorPolicy.STOP:
                        aborted = True
                        break
                    continue

                entry.steps_done += 1
                if detail:
                    entry.details.append(detail)
                logger.info("%s%s %s: %s", prefix, step.label, target.label, detail or "ok")

            if aborted:
                logger.warning("Stopping after first failure (--stop-on-error)")
                break

        results: list[OperationResult] = []
        for entry in progress:
            if entry.outcome is not None:
                results.append(entry.outcome)
            elif entry.steps_done == len(steps):
                results.append(
                    OperationResult(
                        entry.target.identifier,
                        entry.target.display_name,
                        STATUS_SUCCEEDED,
                        "; ".join(entry.details),
                    )
                )
            else:
                results.append(
                    OperationResult(
                        entry.target.identifier,
                        entry.target.display_name,
                        STATUS_SKIPPED,
                        "not processed: run stopped after a failure",
                    )
                )

        return RunReport(operation=action.name, dry_run=ctx.dry_run, results=results)
