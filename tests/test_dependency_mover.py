"""Tests for the two-phase dependency-aware move."""

import pytest

from conftest import DEST, ROOT, SRC, tid
from ds_fleet.executor import BatchExecutor, ErrorPolicy, ExecutionContext
from ds_fleet.models import (
    AUDIT_TRAIL,
    SECURITY_ASSESSMENT,
    SECURITY_POLICY,
    STATUS_FAILED,
    STATUS_SKIPPED,
    STATUS_SUCCEEDED,
    Compartment,
)
from ds_fleet.mover.dependencies import DependencyMover
from ds_fleet.selector import SelectionResult
from ds_fleet.validation import ValidationError

DESTINATION = Compartment(DEST, "cmp-archive")


def _relocations(catalog):
    return [c for c in catalog.calls if c[0] in ("relocate", "relocate_target")]


def _populate(catalog):
    t1 = catalog.add_target(1, "db01")
    t2 = catalog.add_target(2, "db02")
    catalog.add_dependent(AUDIT_TRAIL, "ocid1.auditTrail.oc1..a1", t1)
    catalog.add_dependent(SECURITY_ASSESSMENT, "ocid1.securityAssessment.oc1..s1", t1)
    catalog.add_dependent(SECURITY_POLICY, "ocid1.securityPolicy.oc1..p1", t1)
    catalog.add_dependent(AUDIT_TRAIL, "ocid1.auditTrail.oc1..a2", t2)
    return [catalog.get_target(tid(1)), catalog.get_target(tid(2))]


class TestDependencyMover:

    def test_n_plus_one_relocations_per_target(self, catalog):
        targets = _populate(catalog)
        mover = DependencyMover(catalog, DESTINATION)

        report = BatchExecutor().run(targets, mover, ExecutionContext())

        calls = _relocations(catalog)
        # db01 has 3 dependents, db02 has 1: 3+1 and 1+1 relocations
        assert len(calls) == 6
        assert [r.status for r in report.results] == [STATUS_SUCCEEDED, STATUS_SUCCEEDED]
        assert all(c[-1] == DEST for c in calls)

    def test_dependents_relocated_before_their_target(self, catalog):
        targets = _populate(catalog)
        BatchExecutor().run(targets, DependencyMover(catalog, DESTINATION), ExecutionContext())

        calls = _relocations(catalog)
        first_target_move = next(i for i, c in enumerate(calls) if c[0] == "relocate_target")
        assert all(c[0] == "relocate" for c in calls[:first_target_move])
        assert all(c[0] == "relocate_target" for c in calls[first_target_move:])
        assert [c[1] for c in calls[:first_target_move]] == [
            AUDIT_TRAIL, SECURITY_ASSESSMENT, SECURITY_POLICY, AUDIT_TRAIL,
        ]
        assert [c[1] for c in calls[first_target_move:]] == [tid(1), tid(2)]

    def test_phase_one_failure_keeps_target_in_place(self, catalog):
        targets = _populate(catalog)
        catalog.fail_ids.add("ocid1.securityAssessment.oc1..s1")

        report = BatchExecutor().run(targets, DependencyMover(catalog, DESTINATION), ExecutionContext())

        assert [r.status for r in report.results] == [STATUS_FAILED, STATUS_SUCCEEDED]
        assert ("relocate_target", tid(1), DEST) not in catalog.calls
        assert ("relocate_target", tid(2), DEST) in catalog.calls
        assert report.exit_code == 1

    def test_rerun_after_partial_failure_finds_stranded_dependents(self, catalog):
        targets = _populate(catalog)
        catalog.fail_ids.add("ocid1.securityAssessment.oc1..s1")
        BatchExecutor().run(targets, DependencyMover(catalog, DESTINATION), ExecutionContext())

        catalog.fail_ids.clear()
        catalog.calls.clear()
        report = BatchExecutor().run(
            [catalog.get_target(tid(1))], DependencyMover(catalog, DESTINATION), ExecutionContext(),
        )

        assert report.results[0].status == STATUS_SUCCEEDED
        assert _relocations(catalog) == [
            ("relocate", SECURITY_ASSESSMENT, "ocid1.securityAssessment.oc1..s1", DEST),
            ("relocate", SECURITY_POLICY, "ocid1.securityPolicy.oc1..p1", DEST),
            ("relocate_target", tid(1), DEST),
        ]

    def test_target_already_in_destination_is_skipped(self, catalog):
        catalog.add_target(1, "db01", compartment=DEST)
        for dry_run in (True, False):
            report = BatchExecutor().run(
                [catalog.get_target(tid(1))],
                DependencyMover(catalog, DESTINATION),
                ExecutionContext(dry_run=dry_run),
            )
            assert report.results[0].status == STATUS_SKIPPED
        assert catalog.calls == []

    def test_without_dependencies_only_targets_move(self, catalog):
        targets = _populate(catalog)
        BatchExecutor().run(
            targets, DependencyMover(catalog, DESTINATION, move_dependencies=False), ExecutionContext(),
        )
        assert _relocations(catalog) == [
            ("relocate_target", tid(1), DEST),
            ("relocate_target", tid(2), DEST),
        ]

    def test_dry_run_mutates_nothing(self, catalog):
        targets = _populate(catalog)
        report = BatchExecutor().run(
            targets, DependencyMover(catalog, DESTINATION), ExecutionContext(dry_run=True),
        )
        assert catalog.calls == []
        assert report.summary.succeeded == 2
        assert "would move 3 dependent(s)" in report.results[0].detail

    def test_stop_on_error_in_phase_one(self, catalog):
        targets = _populate(catalog)
        catalog.fail_ids.add("ocid1.auditTrail.oc1..a1")
        ctx = ExecutionContext(error_policy=ErrorPolicy.STOP)

        report = BatchExecutor().run(targets, DependencyMover(catalog, DESTINATION), ctx)

        assert [r.status for r in report.results] == [STATUS_FAILED, STATUS_SKIPPED]
        assert not [c for c in catalog.calls if c[0] == "relocate_target"]


class TestSelectionChecks:

    def test_same_source_and_destination_rejected(self):
        mover = DependencyMover(None, DESTINATION)
        with pytest.raises(ValidationError, match="same"):
            mover.validate_selection(SelectionResult(source_scope=DESTINATION), ExecutionContext())

    def test_different_source_accepted(self):
        mover = DependencyMover(None, DESTINATION)
        mover.validate_selection(SelectionResult(source_scope=Compartment(SRC)), ExecutionContext())
        mover.validate_selection(SelectionResult(), ExecutionContext())

    def test_impact_preview(self, catalog):
        targets = _populate(catalog)
        mover = DependencyMover(catalog, DESTINATION)
        lines = mover.impact_preview(targets, ExecutionContext(source_scope=Compartment(ROOT, "cmp-root")))

        text = "\n".join(lines)
        assert "Targets to move:  2" in text
        assert "cmp-root" in text
        assert "cmp-archive" in text
        assert "audit trails" in text
