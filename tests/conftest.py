"""Shared fixtures: an in-memory Data Safe catalog and compartment tree."""

import copy

import pytest

from ds_fleet.catalog import CatalogError, match_display_name
from ds_fleet.compartments import CompartmentResolver
from ds_fleet.models import Compartment, DependencyResource, Target
from ds_fleet.selector import TargetSelector

ROOT = "ocid1.compartment.oc1..root"
SRC = "ocid1.compartment.oc1..src"
DEST = "ocid1.compartment.oc1..dest"
PROD = "ocid1.compartment.oc1..prod"


def tid(n):
    return f"ocid1.datasafetargetdatabase.oc1.eu-zurich-1.t{n}"


class FakeCatalog:
    """Catalog stand-in that records every call.

    Compartment tree: ROOT -> {SRC, DEST, PROD}.
    """

    def __init__(self):
        self.compartments = {
            ROOT: Compartment(ROOT, "cmp-root"),
            SRC: Compartment(SRC, "cmp-acme-test-projects"),
            DEST: Compartment(DEST, "cmp-archive"),
            PROD: Compartment(PROD, "cmp-acme-prod-projects"),
        }
        self.parents = {SRC: ROOT, DEST: ROOT, PROD: ROOT}
        self.targets: dict[str, Target] = {}
        self.dependents: list[DependencyResource] = []
        self.calls: list[tuple] = []
        self.reads: list[tuple] = []
        self.fail_ids: set[str] = set()

    # -- setup helpers -------------------------------------------------

    def add_target(self, n, name, state="ACTIVE", compartment=SRC, tags=None):
        target = Target(tid(n), name, state, compartment, tags or {})
        self.targets[target.identifier] = target
        return target

    def add_dependent(self, kind, ident, target, status="", trail_location=""):
        resource = DependencyResource(
            kind=kind,
            identifier=ident,
            display_name=ident.rsplit(".", 1)[-1],
            target_id=target.identifier,
            compartment_id=target.compartment_id,
            status=status,
            trail_location=trail_location,
        )
        self.dependents.append(resource)
        return resource

    def _in_subtree(self, compartment_id, root_id):
        while compartment_id:
            if compartment_id == root_id:
                return True
            compartment_id = self.parents.get(compartment_id)
        return False

    def _check(self, ident):
        if ident in self.fail_ids:
            raise CatalogError(f"HTTP 409: {ident} is busy", 409)

    # -- reads ---------------------------------------------------------

    def get_compartment(self, compartment_id):
        self.reads.append(("get_compartment", compartment_id))
        if compartment_id not in self.compartments:
            raise CatalogError("HTTP 404: NotAuthorizedOrNotFound", 404)
        return self.compartments[compartment_id]

    def find_compartments(self, name):
        self.reads.append(("find_compartments", name))
        return [c for c in self.compartments.values() if c.name == name]

    def list_targets(self, compartment_id, lifecycle_states=None):
        self.reads.append(("list_targets", compartment_id, tuple(lifecycle_states or ())))
        states = set(lifecycle_states or [])
        return [
            copy.deepcopy(t)
            for t in self.targets.values()
            if self._in_subtree(t.compartment_id, compartment_id)
            and (not states or t.lifecycle_state in states)
        ]

    def get_target(self, target_id):
        self.reads.append(("get_target", target_id))
        if target_id not in self.targets:
            raise CatalogError("HTTP 404: NotAuthorizedOrNotFound", 404)
        return copy.deepcopy(self.targets[target_id])

    def list_dependents(self, kind, target):
        self.reads.append(("list_dependents", kind, target.identifier))
        return [
            copy.deepcopy(d)
            for d in self.dependents
            if d.kind == kind
            and d.target_id == target.identifier
            and d.compartment_id == target.compartment_id
        ]

    # -- mutations -----------------------------------------------------

    def relocate(self, kind, resource_id, destination_id):
        self.calls.append(("relocate", kind, resource_id, destination_id))
        self._check(resource_id)
        for d in self.dependents:
            if d.identifier == resource_id:
                d.compartment_id = destination_id

    def relocate_target(self, target_id, destination_id):
        self.calls.append(("relocate_target", target_id, destination_id))
        self._check(target_id)
        self.targets[target_id].compartment_id = destination_id

    def refresh_target(self, target_id):
        self.calls.append(("refresh_target", target_id))
        self._check(target_id)

    def update_target_tags(self, target_id, defined_tags):
        self.calls.append(("update_target_tags", target_id, defined_tags))
        self._check(target_id)
        self.targets[target_id].defined_tags = copy.deepcopy(defined_tags)

    def start_audit_trail(self, audit_trail_id, start_time, auto_purge):
        self.calls.append(("start_audit_trail", audit_trail_id, start_time, auto_purge))
        self._check(audit_trail_id)


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def resolver(catalog):
    return CompartmentResolver(catalog, root_compartment=ROOT)


@pytest.fixture
def selector(catalog, resolver):
    return TargetSelector(catalog, resolver)
