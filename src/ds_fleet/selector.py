"""
Target selection: turn operator criteria into an ordered, de-duplicated
list of targets.

Exactly one selection source is allowed per run:

  - **Explicit list**: names and/or OCIDs (``-T`` / positionals)
  - **Compartment scan**: lifecycle state(s) + optional name regex
  - **Snapshot replay**: a previously saved ``--save-json`` file

:func:`build_criteria` turns raw CLI values into one of the three
criteria types (raising ``ValidationError`` on conflicting or empty
input); :class:`TargetSelector` resolves it against the catalog.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence, Union

from .catalog import CatalogError, match_display_name
from .models import Compartment, Target
from .snapshot import check_snapshot, parse_max_age, read_snapshot
from .validation import (
    ValidationError,
    compile_name_filter,
    is_ocid,
    looks_like_valid_ocid,
    parse_lifecycle_states,
    sanitize_display_name,
    split_entries,
)

if TYPE_CHECKING:
    from .catalog import TargetCatalog
    from .compartments import CompartmentResolver

__all__ = [
    "ResolutionError",
    "ResolutionPolicy",
    "ResolutionFailure",
    "ExplicitSelection",
    "CompartmentScan",
    "SnapshotReplay",
    "SelectionCriteria",
    "SelectionResult",
    "build_criteria",
    "TargetSelector",
]

logger = logging.getLogger(__name__)

# Deleted registrations stay listed for a while; names never resolve to them.
REMOVED_STATES = frozenset({"DELETED", "DELETING"})


class ResolutionError(Exception):
    """Raised when the selection cannot be resolved into targets."""


class ResolutionPolicy(enum.Enum):
    STRICT = "strict"            # any unresolved entry aborts the run
    BEST_EFFORT = "best-effort"  # unresolved entries become failed outcomes


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExplicitSelection:
    entries: tuple[str, ...]
    scope: str | None = None


@dataclass(frozen=True)
class CompartmentScan:
    compartment: str | None = None
    lifecycle_states: tuple[str, ...] = ("ACTIVE",)
    name_filter: str | None = None


@dataclass(frozen=True)
class SnapshotReplay:
    path: str
    max_age: int | None = 24 * 3600
    allow_stale: bool = False


SelectionCriteria = Union[ExplicitSelection, CompartmentScan, SnapshotReplay]


def build_criteria(
    targets: Sequence[str] | str | None = None,
    compartment: str | None = None,
    states: str | None = None,
    name_filter: str | None = None,
    input_json: str | None = None,
    max_age: str | int | None = "24h",
    allow_stale: bool = False,
    default_states: Sequence[str] = ("ACTIVE",),
) -> SelectionCriteria:
    """Build selection criteria from raw CLI values.

    *targets* is ``None`` when no explicit list was given at all; an
    explicit list that is empty after trimming is an error.

    Raises:
        ValidationError: On conflicting sources or invalid values.
    """
    if input_json:
        others = [
            flag
            for flag, value in (
                ("-T/--targets", targets),
                ("-c/--compartment", compartment),
                ("-s/--state", states),
                ("-r/--filter", name_filter),
            )
            if value
        ]
        if others:
            raise ValidationError(
                f"--input-json cannot be combined with {', '.join(others)}. "
                "Replay the snapshot alone, or drop --input-json to select live."
            )
        return SnapshotReplay(
            path=input_json,
            max_age=parse_max_age(max_age),
            allow_stale=allow_stale,
        )

    if targets is not None:
        if name_filter:
            raise ValidationError(
                "-r/--filter applies to compartment scans only. "
                "Drop either the target list or the filter."
            )
        if states:
            raise ValidationError(
                "-s/--state applies to compartment scans only. "
                "Drop either the target list or the state filter."
            )
        entries = [sanitize_display_name(e) for e in split_entries(targets)]
        if not entries:
            raise ValidationError(
                "Target list is empty. Pass target names or OCIDs with -T/--targets."
            )
        return ExplicitSelection(entries=tuple(entries), scope=compartment or None)

    compile_name_filter(name_filter)
    lifecycle_states = parse_lifecycle_states(states) if states else list(default_states)
    return CompartmentScan(
        compartment=compartment or None,
        lifecycle_states=tuple(lifecycle_states),
        name_filter=name_filter or None,
    )


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class ResolutionFailure:
    """One explicit entry that could not be resolved."""
    entry: str
    reason: str


@dataclass
class SelectionResult:
    targets: list[Target] = field(default_factory=list)
    failures: list[ResolutionFailure] = field(default_factory=list)
    source_scope: Compartment | None = None


# ---------------------------------------------------------------------------
# Selector
# ---------------------------------------------------------------------------

class TargetSelector:
    """Resolves :data:`SelectionCriteria` into a :class:`SelectionResult`."""

    def __init__(self, catalog: "TargetCatalog", resolver: "CompartmentResolver"):
        self.catalog = catalog
        self.resolver = resolver

    def resolve(
        self,
        criteria: SelectionCriteria,
        dry_run: bool = False,
        policy: ResolutionPolicy = ResolutionPolicy.STRICT,
    ) -> SelectionResult:
        """Resolve *criteria*.

        Raises:
            ValidationError: Bad input (snapshot refused, no scope configured).
            ResolutionError: Scan/filter found nothing usable, or (strict
                policy) an explicit entry could not be resolved.
        """
        if isinstance(criteria, SnapshotReplay):
            result = self._replay(criteria, dry_run)
        elif isinstance(criteria, ExplicitSelection):
            result = self._explicit(criteria)
        elif isinstance(criteria, CompartmentScan):
            result = self._scan(criteria)
        else:
            raise TypeError(f"Unsupported selection criteria: {criteria!r}")

        for failure in result.failures:
            logger.warning("Cannot resolve target %r: %s", failure.entry, failure.reason)
        if result.failures and policy is ResolutionPolicy.STRICT:
            lines = "\n".join(f"  - {f.entry}: {f.reason}" for f in result.failures)
            raise ResolutionError(
                f"{len(result.failures)} target entr{'y' if len(result.failures) == 1 else 'ies'} "
                f"could not be resolved:\n{lines}\n"
                "Fix or remove these entries and re-run."
            )

        logger.info("Selection resolved: %d target(s), %d unresolved", len(result.targets), len(result.failures))
        return result

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _replay(self, criteria: SnapshotReplay, dry_run: bool) -> SelectionResult:
        snapshot = read_snapshot(criteria.path)
        check_snapshot(snapshot, criteria.max_age, dry_run, criteria.allow_stale)
        logger.info("Replaying %d target(s) from snapshot %s", len(snapshot.targets), criteria.path)
        return SelectionResult(targets=list(snapshot.targets))

    def _explicit(self, criteria: ExplicitSelection) -> SelectionResult:
        needs_scope = any(not is_ocid(e) for e in criteria.entries)
        scope: Compartment | None = None
        if criteria.scope:
            scope = self.resolver.resolve(criteria.scope)
        elif needs_scope:
            scope = self.resolver.default_scope()

        population: list[Target] | None = None
        result = SelectionResult(source_scope=scope if criteria.scope else None)
        seen: set[str] = set()

        for entry in criteria.entries:
            if is_ocid(entry):
                if not looks_like_valid_ocid(entry):
                    logger.debug("Entry %s does not look like a well-formed OCID", entry)
                try:
                    target = self.catalog.get_target(entry)
                except CatalogError as exc:
                    reason = "target not found" if exc.status == 404 else str(exc)
                    result.failures.append(ResolutionFailure(entry, reason))
                    continue
            else:
                if population is None:
                    try:
                        population = self.catalog.list_targets(scope.identifier)
                    except CatalogError as exc:
                        raise ResolutionError(
                            f"Cannot list targets in {scope.label}: {exc}"
                        ) from exc
                live = [t for t in population if t.lifecycle_state not in REMOVED_STATES]
                matches = match_display_name(live, entry)
                if not matches:
                    if match_display_name(population, entry):
                        reason = f"only deleted targets carry this name in {scope.label}"
                    else:
                        reason = f"no target with this name in {scope.label}"
                    result.failures.append(ResolutionFailure(entry, reason))
                    continue
                if len(matches) > 1:
                    ids = ", ".join(t.identifier for t in matches)
                    result.failures.append(
                        ResolutionFailure(
                            entry,
                            f"ambiguous name, {len(matches)} targets match ({ids}); use the OCID",
                        )
                    )
                    continue
                target = matches[0]

            if target.identifier in seen:
                logger.debug("Duplicate entry %r for %s ignored", entry, target.identifier)
                continue
            seen.add(target.identifier)
            result.targets.append(target)

        return result

    def _scan(self, criteria: CompartmentScan) -> SelectionResult:
        pattern = compile_name_filter(criteria.name_filter)
        if criteria.compartment:
            scope = self.resolver.resolve(criteria.compartment)
        else:
            scope = self.resolver.default_scope()

        states = list(criteria.lifecycle_states)
        try:
            population = self.catalog.list_targets(scope.identifier, states)
        except CatalogError as exc:
            raise ResolutionError(f"Cannot list targets in {scope.label}: {exc}") from exc

        if not population:
            logger.warning(
                "No targets in state %s under %s; nothing to do",
                "/".join(states), scope.label,
            )
            return SelectionResult(source_scope=scope)

        if pattern is None:
            return SelectionResult(targets=population, source_scope=scope)

        matched = [t for t in population if pattern.search(t.display_name)]
        if not matched:
            raise ResolutionError(
                f"Filter {criteria.name_filter!r} matched none of the {len(population)} "
                f"target(s) in {scope.label}. Adjust the -r/--filter pattern."
            )
        logger.debug("Filter %r kept %d of %d target(s)", criteria.name_filter, len(matched), len(population))
        return SelectionResult(targets=matched, source_scope=scope)
