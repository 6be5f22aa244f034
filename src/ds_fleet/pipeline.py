"""
Run pipeline: resolve -> (confirm) -> execute -> summarize.

Every run walks a forward-only lifecycle::

    UNRESOLVED -> RESOLVING -> RESOLVED -> EXECUTING -> SUMMARIZED
                      |            |
                      +-> FAILED <-+        RESOLVED -> SUMMARIZED (cancelled)
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Optional

from .catalog import CatalogError
from .executor import Action, BatchExecutor, ExecutionContext
from .models import STATUS_FAILED, STATUS_SKIPPED, OperationResult, RunReport
from .selector import ResolutionError, SelectionCriteria, TargetSelector
from .snapshot import write_snapshot
from .validation import ValidationError

__all__ = [
    "RunState",
    "RunLifecycle",
    "LifecycleError",
    "ConfirmationDeclined",
    "run_pipeline",
]

logger = logging.getLogger(__name__)


class RunState(enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    EXECUTING = "executing"
    SUMMARIZED = "summarized"
    FAILED = "failed"


_TRANSITIONS = {
    RunState.UNRESOLVED: {RunState.RESOLVING},
    RunState.RESOLVING: {RunState.RESOLVED, RunState.FAILED},
    RunState.RESOLVED: {RunState.EXECUTING, RunState.SUMMARIZED, RunState.FAILED},
    RunState.EXECUTING: {RunState.SUMMARIZED},
    RunState.SUMMARIZED: set(),
    RunState.FAILED: set(),
}


class LifecycleError(Exception):
    """Raised on an illegal run state transition."""


class ConfirmationDeclined(Exception):
    """The operator answered no at the confirmation prompt."""


class RunLifecycle:
    def __init__(self):
        self.state = RunState.UNRESOLVED
        self.history = [RunState.UNRESOLVED]

    def advance(self, new_state: RunState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise LifecycleError(f"Illegal run transition {self.state.name} -> {new_state.name}")
        logger.debug("Run state: %s -> %s", self.state.name, new_state.name)
        self.state = new_state
        self.history.append(new_state)


ConfirmFunc = Callable[[list[str]], bool]


def run_pipeline(
    criteria: SelectionCriteria,
    selector: TargetSelector,
    action: Action,
    ctx: ExecutionContext,
    confirm: Optional[ConfirmFunc] = None,
    save_json: Optional[str] = None,
    executor: Optional[BatchExecutor] = None,
    lifecycle: Optional[RunLifecycle] = None,
) -> RunReport:
    """Resolve *criteria* and run *action* over the result.

    *confirm* receives the action's impact preview lines and returns
    True to proceed (it may also raise :class:`ConfirmationDeclined`).
    It is only consulted for actions that require confirmation, outside
    dry-run, when ``ctx.force`` is not set.

    Raises:
        ValidationError / ResolutionError / CatalogError: Resolution
            failed; nothing was executed.
    """
    lifecycle = lifecycle or RunLifecycle()
    executor = executor or BatchExecutor()

    lifecycle.advance(RunState.RESOLVING)
    try:
        selection = selector.resolve(criteria, dry_run=ctx.dry_run, policy=action.resolution_policy)
        ctx.source_scope = selection.source_scope
        action.validate_selection(selection, ctx)
    except (ValidationError, ResolutionError, CatalogError):
        lifecycle.advance(RunState.FAILED)
        raise
    lifecycle.advance(RunState.RESOLVED)

    if save_json:
        write_snapshot(save_json, selection.targets)

    unresolved = [
        OperationResult(f.entry, f.entry, STATUS_FAILED, f"unresolved: {f.reason}")
        for f in selection.failures
    ]

    if not selection.targets:
        logger.info("No targets selected; nothing to execute")
        lifecycle.advance(RunState.EXECUTING)
        lifecycle.advance(RunState.SUMMARIZED)
        return RunReport(operation=action.name, dry_run=ctx.dry_run, results=unresolved)

    if action.requires_confirmation and not ctx.dry_run and not ctx.force:
        lines = action.impact_preview(selection.targets, ctx)
        try:
            if confirm is None or not confirm(lines):
                raise ConfirmationDeclined(f"{action.name} cancelled by user")
        except ConfirmationDeclined as exc:
            logger.info("%s", exc)
            lifecycle.advance(RunState.SUMMARIZED)
            cancelled = [
                OperationResult(t.identifier, t.display_name, STATUS_SKIPPED, "cancelled by user")
                for t in selection.targets
            ]
            return RunReport(
                operation=action.name,
                dry_run=ctx.dry_run,
                results=cancelled + unresolved,
                cancelled=True,
            )

    lifecycle.advance(RunState.EXECUTING)
    report = executor.run(selection.targets, action, ctx)
    report.results.extend(unresolved)
    lifecycle.advance(RunState.SUMMARIZED)
    return report
