"""
Per-target actions for the refresh, tags and audit-trail commands.

The move action lives in :mod:`ds_fleet.mover.dependencies`.
"""

from __future__ import annotations

import copy
import logging
import re
from datetime import datetime, timezone

from .catalog import TargetCatalog
from .compartments import CompartmentResolver
from .config import TagConfig
from .executor import Action, ErrorPolicy, ExecutionContext, PerTargetError, SkipTarget, Step
from .models import AUDIT_TRAIL, DependencyResource, Target
from .selector import ResolutionPolicy
from .validation import ValidationError

__all__ = [
    "RefreshAction",
    "TagUpdateAction",
    "AuditTrailStartAction",
    "derive_environment",
    "parse_start_time",
    "UNDEFINED_TAG_VALUE",
]

logger = logging.getLogger(__name__)

UNDEFINED_TAG_VALUE = "undef"

# Audit trail statuses that mean collection is already running or about to.
ACTIVE_TRAIL_STATUSES = {"STARTING", "COLLECTING", "RECOVERING", "RESUMING", "RETRYING"}

_RFC3339 = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})$")


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

class RefreshAction(Action):
    """Trigger a metadata refresh of each target."""

    name = "refresh"
    error_policy = ErrorPolicy.CONTINUE
    resolution_policy = ResolutionPolicy.STRICT
    default_states = ("NEEDS_ATTENTION",)

    def __init__(self, catalog: TargetCatalog):
        self.catalog = catalog

    def steps(self) -> list[Step]:
        return [Step("refresh", self._apply, self._preview)]

    def _preview(self, target: Target, ctx: ExecutionContext) -> str:
        current = self.catalog.get_target(target.identifier)
        return f"would refresh (state {current.lifecycle_state or 'unknown'})"

    def _apply(self, target: Target, ctx: ExecutionContext) -> str:
        self.catalog.refresh_target(target.identifier)
        return "refresh requested"


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

def derive_environment(compartment_name: str, pattern: str, environments) -> str:
    """Environment encoded in a compartment name (``cmp-<org>-<env>-projects``).

    Returns ``undef`` when the name does not follow the pattern or the
    captured value is not one of *environments*.
    """
    match = re.match(pattern, compartment_name or "")
    if not match or not match.groups():
        return UNDEFINED_TAG_VALUE
    env = match.group(1)
    return env if env in environments else UNDEFINED_TAG_VALUE


class TagUpdateAction(Action):
    """Write the environment/container/classification defined tags.

    The tag namespace is merged into the target's existing defined tags;
    other namespaces are left untouched.  Targets whose tags already hold
    the desired values are skipped.
    """

    name = "tags"
    error_policy = ErrorPolicy.CONTINUE
    resolution_policy = ResolutionPolicy.BEST_EFFORT
    preview_by_default = True

    def __init__(self, catalog: TargetCatalog, resolver: CompartmentResolver, tags: TagConfig):
        self.catalog = catalog
        self.resolver = resolver
        self.tags = tags

    def steps(self) -> list[Step]:
        return [Step("update tags", self._apply, self._preview)]

    def desired_tags(self, target: Target, compartment_name: str) -> dict:
        """Merged defined tags for *target*."""
        cfg = self.tags
        merged = copy.deepcopy(target.defined_tags or {})
        current = merged.get(cfg.namespace) or {}
        updated = dict(current)
        updated[cfg.environment_key] = derive_environment(
            compartment_name, cfg.environment_pattern, cfg.environments,
        )
        for key in (cfg.container_stage_key, cfg.container_type_key, cfg.classification_key):
            updated[key] = current.get(key) or UNDEFINED_TAG_VALUE
        merged[cfg.namespace] = updated
        return merged

    def _plan(self, target: Target) -> tuple[Target, dict]:
        fresh = self.catalog.get_target(target.identifier)
        compartment_name = self.resolver.name_of(fresh.compartment_id or target.compartment_id)
        desired = self.desired_tags(fresh, compartment_name)
        ns = self.tags.namespace
        if (fresh.defined_tags or {}).get(ns) == desired[ns]:
            raise SkipTarget("tags already current")
        logger.debug(
            "%s: compartment %s -> %s",
            target.label, compartment_name,
            ", ".join(f"{k}={v}" for k, v in desired[ns].items()),
        )
        return fresh, desired

    def _describe(self, desired: dict) -> str:
        values = desired[self.tags.namespace]
        return ", ".join(f"{self.tags.namespace}.{k}={v}" for k, v in values.items())

    def _preview(self, target: Target, ctx: ExecutionContext) -> str:
        _, desired = self._plan(target)
        return f"would set {self._describe(desired)}"

    def _apply(self, target: Target, ctx: ExecutionContext) -> str:
        fresh, desired = self._plan(target)
        self.catalog.update_target_tags(fresh.identifier, desired)
        return f"set {self._describe(desired)}"


# ---------------------------------------------------------------------------
# Audit trail start
# ---------------------------------------------------------------------------

def parse_start_time(value: str | None) -> str:
    """Validate an audit collection start time (``now`` or RFC 3339).

    Raises:
        ValidationError: If the value is neither.
    """
    value = (value or "now").strip()
    if value.lower() == "now" or _RFC3339.match(value):
        return value
    raise ValidationError(
        f"Invalid start time {value!r}. Use 'now' or an RFC 3339 timestamp "
        "such as 2026-01-31T00:00:00Z."
    )


class AuditTrailStartAction(Action):
    """Start audit collection on each target's audit trail."""

    name = "audit-trail"
    error_policy = ErrorPolicy.CONTINUE
    resolution_policy = ResolutionPolicy.STRICT

    def __init__(
        self,
        catalog: TargetCatalog,
        start_time: str = "now",
        auto_purge: bool = True,
        trail_location: str = "",
    ):
        self.catalog = catalog
        self.start_time = parse_start_time(start_time)
        self.auto_purge = auto_purge
        self.trail_location = trail_location

    def steps(self) -> list[Step]:
        return [Step("start audit trail", self._apply, self._preview)]

    def _pick_trail(self, target: Target) -> DependencyResource:
        trails = self.catalog.list_dependents(AUDIT_TRAIL, target)
        running = [
            t for t in trails
            if t.status in ACTIVE_TRAIL_STATUSES or t.lifecycle_state == "STARTING"
        ]
        if running:
            raise SkipTarget(f"audit trail {running[0].label} already {running[0].status or running[0].lifecycle_state}")
        if self.trail_location:
            trails = [
                t for t in trails
                if self.trail_location in (t.trail_location, t.identifier)
            ]
        if not trails:
            where = f" at location {self.trail_location!r}" if self.trail_location else ""
            raise PerTargetError(
                f"no audit trail{where}; check the target's audit configuration"
            )
        return trails[0]

    def _effective_start_time(self) -> str:
        if self.start_time.lower() == "now":
            return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return self.start_time

    def _preview(self, target: Target, ctx: ExecutionContext) -> str:
        trail = self._pick_trail(target)
        return f"would start {trail.label} from {self.start_time} (auto-purge {'on' if self.auto_purge else 'off'})"

    def _apply(self, target: Target, ctx: ExecutionContext) -> str:
        trail = self._pick_trail(target)
        start = self._effective_start_time()
        self.catalog.start_audit_trail(trail.identifier, start, self.auto_purge)
        return f"started {trail.label} from {start} (auto-purge {'on' if self.auto_purge else 'off'})"
