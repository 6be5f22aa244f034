"""
Target/dependency catalog: the typed view of the Data Safe API that the
selector and the actions work against.

Every call is blocking and addressed by OCID.  HTTP failures surface as
``CatalogError`` so callers never have to know about ``requests``.
"""

from __future__ import annotations

import logging
from typing import Iterable

import requests

from .client import DataSafeClient
from .models import Compartment, DependencyResource, Target

__all__ = ["CatalogError", "TargetCatalog", "match_display_name"]

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Raised when a catalog call fails (HTTP error, timeout, bad payload)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


def _describe(exc: requests.RequestException) -> tuple[str, int | None]:
    resp = getattr(exc, "response", None)
    if resp is None:
        return str(exc), None
    detail = ""
    try:
        body = resp.json()
        detail = body.get("message", "") if isinstance(body, dict) else ""
    except ValueError:
        detail = resp.text[:200]
    return f"HTTP {resp.status_code}: {detail or resp.reason}", resp.status_code


def match_display_name(candidates: list[Target], name: str) -> list[Target]:
    """Targets whose display name equals *name*.

    Exact matches win; only when there is none are case-insensitive
    matches returned.
    """
    exact = [t for t in candidates if t.display_name == name]
    if exact:
        return exact
    folded = name.casefold()
    return [t for t in candidates if t.display_name.casefold() == folded]


def _target_from_api(item: dict) -> Target:
    return Target(
        identifier=item.get("id", ""),
        display_name=item.get("displayName", ""),
        lifecycle_state=item.get("lifecycleState", ""),
        compartment_id=item.get("compartmentId", ""),
        defined_tags=item.get("definedTags") or {},
    )


class TargetCatalog:
    """Typed catalog over :class:`DataSafeClient`."""

    def __init__(self, client: DataSafeClient):
        self.client = client

    def _call(self, what: str, func, *args):
        try:
            return func(*args)
        except requests.RequestException as exc:
            message, status = _describe(exc)
            raise CatalogError(f"{what} failed: {message}", status) from exc

    # ------------------------------------------------------------------
    # Compartments
    # ------------------------------------------------------------------

    def get_compartment(self, compartment_id: str) -> Compartment:
        data = self._call(f"Get compartment {compartment_id}", self.client.get_compartment, compartment_id)
        return Compartment(identifier=data.get("id", compartment_id), name=data.get("name", ""))

    def find_compartments(self, name: str) -> list[Compartment]:
        """Active compartments named *name* anywhere in the tenancy."""
        raw = self._call(f"Search compartment {name!r}", self.client.list_compartments_by_name, name)
        return [Compartment(identifier=c.get("id", ""), name=c.get("name", "")) for c in raw if c.get("id")]

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def list_targets(self, compartment_id: str, lifecycle_states: Iterable[str] | None = None) -> list[Target]:
        """List targets in the compartment sub-tree.

        The API filters on a single lifecycle state, so a multi-state
        request issues one list call per state and merges the results
        (OR semantics), keeping first-seen order.
        """
        states = list(lifecycle_states or [])
        raw: list[dict] = []
        if not states:
            raw = self._call("List targets", self.client.list_target_databases, compartment_id)
        else:
            for state in states:
                raw.extend(
                    self._call(
                        f"List {state} targets",
                        self.client.list_target_databases,
                        compartment_id,
                        state,
                    )
                )
        seen: set[str] = set()
        targets: list[Target] = []
        for item in raw:
            target = _target_from_api(item)
            if not target.identifier or target.identifier in seen:
                continue
            seen.add(target.identifier)
            targets.append(target)
        return targets

    def get_target(self, target_id: str) -> Target:
        data = self._call(f"Get target {target_id}", self.client.get_target_database, target_id)
        return _target_from_api(data)

    def relocate_target(self, target_id: str, destination_id: str) -> None:
        self._call(
            f"Move target {target_id}",
            self.client.change_target_database_compartment,
            target_id,
            destination_id,
        )

    def refresh_target(self, target_id: str) -> None:
        self._call(f"Refresh target {target_id}", self.client.refresh_target_database, target_id)

    def update_target_tags(self, target_id: str, defined_tags: dict) -> None:
        self._call(
            f"Update tags of {target_id}",
            self.client.update_target_database_tags,
            target_id,
            defined_tags,
        )

    # ------------------------------------------------------------------
    # Dependents
    # ------------------------------------------------------------------

    def list_dependents(self, kind: str, target: Target) -> list[DependencyResource]:
        """Enumerate dependents of *kind* in the target's current compartment."""
        raw = self._call(
            f"List {kind} for {target.identifier}",
            self.client.list_dependents,
            kind,
            target.identifier,
            target.compartment_id,
        )
        resources = []
        for item in raw:
            resources.append(
                DependencyResource(
                    kind=kind,
                    identifier=item.get("id", ""),
                    display_name=item.get("displayName", ""),
                    target_id=item.get("targetId", target.identifier),
                    compartment_id=item.get("compartmentId", target.compartment_id),
                    lifecycle_state=item.get("lifecycleState", ""),
                    status=item.get("status", ""),
                    trail_location=item.get("trailLocation", ""),
                )
            )
        return [r for r in resources if r.identifier]

    def relocate(self, kind: str, resource_id: str, destination_id: str) -> None:
        self._call(
            f"Move {kind} {resource_id}",
            self.client.change_dependent_compartment,
            kind,
            resource_id,
            destination_id,
        )

    def start_audit_trail(self, audit_trail_id: str, start_time: str, auto_purge: bool) -> None:
        self._call(
            f"Start audit trail {audit_trail_id}",
            self.client.start_audit_trail,
            audit_trail_id,
            start_time,
            auto_purge,
        )
