"""Tests for the refresh, tag update and audit trail actions."""

import pytest

from conftest import PROD, SRC, tid
from ds_fleet.actions import (
    AuditTrailStartAction,
    RefreshAction,
    TagUpdateAction,
    derive_environment,
    parse_start_time,
)
from ds_fleet.config import TagConfig
from ds_fleet.executor import BatchExecutor, ExecutionContext
from ds_fleet.models import AUDIT_TRAIL, STATUS_FAILED, STATUS_SKIPPED, STATUS_SUCCEEDED
from ds_fleet.validation import ValidationError

PATTERN = TagConfig().environment_pattern
ENVS = TagConfig().environments


class TestDeriveEnvironment:

    @pytest.mark.parametrize("name, expected", [
        ("cmp-acme-test-projects", "test"),
        ("cmp-acme-qs-projects", "qs"),
        ("cmp-acme-prod-projects", "prod"),
        ("cmp-acme-dev-projects", "undef"),
        ("cmp-acme-prod", "undef"),
        ("cmp-a-b-prod-projects", "undef"),
        ("", "undef"),
    ])
    def test_environment_from_compartment_name(self, name, expected):
        assert derive_environment(name, PATTERN, ENVS) == expected


class TestTagUpdateAction:

    def _run(self, catalog, resolver, dry_run=False):
        action = TagUpdateAction(catalog, resolver, TagConfig())
        targets = catalog.list_targets(SRC) + catalog.list_targets(PROD)
        return BatchExecutor().run(targets, action, ExecutionContext(dry_run=dry_run))

    def test_tags_written_and_other_namespaces_kept(self, catalog, resolver):
        catalog.add_target(1, "db01", compartment=PROD, tags={
            "Oracle-Tags": {"CreatedBy": "ops"},
            "DBSec": {"Classification": "restricted"},
        })

        report = self._run(catalog, resolver)

        assert report.results[0].status == STATUS_SUCCEEDED
        _, target_id, tags = catalog.calls[0]
        assert target_id == tid(1)
        assert tags["Oracle-Tags"] == {"CreatedBy": "ops"}
        assert tags["DBSec"] == {
            "Classification": "restricted",
            "Environment": "prod",
            "ContainerStage": "undef",
            "ContainerType": "undef",
        }

    def test_current_tags_are_skipped(self, catalog, resolver):
        catalog.add_target(1, "db01", compartment=SRC, tags={"DBSec": {
            "Environment": "test",
            "ContainerStage": "undef",
            "ContainerType": "undef",
            "Classification": "undef",
        }})

        report = self._run(catalog, resolver)

        assert report.results[0].status == STATUS_SKIPPED
        assert catalog.calls == []

    def test_preview_writes_nothing(self, catalog, resolver):
        catalog.add_target(1, "db01", compartment=SRC)
        report = self._run(catalog, resolver, dry_run=True)

        assert catalog.calls == []
        assert "DBSec.Environment=test" in report.results[0].detail


class TestRefreshAction:

    def test_refresh(self, catalog):
        catalog.add_target(1, "db01", state="NEEDS_ATTENTION")
        catalog.add_target(2, "db02", state="NEEDS_ATTENTION")
        catalog.fail_ids.add(tid(2))

        report = BatchExecutor().run(
            catalog.list_targets(SRC), RefreshAction(catalog), ExecutionContext(),
        )

        assert [r.status for r in report.results] == [STATUS_SUCCEEDED, STATUS_FAILED]
        assert report.summary.failed == 1

    def test_default_state(self):
        assert RefreshAction.default_states == ("NEEDS_ATTENTION",)


class TestAuditTrailStartAction:

    def test_starts_first_idle_trail(self, catalog):
        t = catalog.add_target(1, "db01")
        catalog.add_dependent(AUDIT_TRAIL, "ocid1.auditTrail.oc1..a1", t, status="NOT_STARTED")

        action = AuditTrailStartAction(catalog, start_time="2026-01-01T00:00:00Z", auto_purge=False)
        report = BatchExecutor().run([t], action, ExecutionContext())

        assert report.results[0].status == STATUS_SUCCEEDED
        assert catalog.calls == [
            ("start_audit_trail", "ocid1.auditTrail.oc1..a1", "2026-01-01T00:00:00Z", False),
        ]

    def test_now_is_sent_as_timestamp(self, catalog):
        t = catalog.add_target(1, "db01")
        catalog.add_dependent(AUDIT_TRAIL, "ocid1.auditTrail.oc1..a1", t, status="STOPPED")

        BatchExecutor().run([t], AuditTrailStartAction(catalog), ExecutionContext())

        start_time = catalog.calls[0][2]
        assert start_time != "now"
        assert parse_start_time(start_time) == start_time

    def test_running_trail_is_skipped(self, catalog):
        t = catalog.add_target(1, "db01")
        catalog.add_dependent(AUDIT_TRAIL, "ocid1.auditTrail.oc1..a1", t, status="COLLECTING")

        report = BatchExecutor().run([t], AuditTrailStartAction(catalog), ExecutionContext())

        assert report.results[0].status == STATUS_SKIPPED
        assert catalog.calls == []

    def test_no_trail_is_a_failure(self, catalog):
        t = catalog.add_target(1, "db01")
        report = BatchExecutor().run([t], AuditTrailStartAction(catalog), ExecutionContext())
        assert report.results[0].status == STATUS_FAILED

    def test_trail_location_selects_trail(self, catalog):
        t = catalog.add_target(1, "db01")
        catalog.add_dependent(AUDIT_TRAIL, "ocid1.auditTrail.oc1..a1", t, trail_location="UNIFIED_AUDIT_TRAIL")
        catalog.add_dependent(AUDIT_TRAIL, "ocid1.auditTrail.oc1..a2", t, trail_location="AUDIT_VAULT")

        action = AuditTrailStartAction(catalog, trail_location="AUDIT_VAULT")
        BatchExecutor().run([t], action, ExecutionContext())

        assert catalog.calls[0][1] == "ocid1.auditTrail.oc1..a2"

    @pytest.mark.parametrize("value", ["yesterday", "2026-01-01", "2026-01-01 00:00:00"])
    def test_invalid_start_time(self, value):
        with pytest.raises(ValidationError, match="RFC 3339"):
            parse_start_time(value)
