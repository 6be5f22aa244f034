"""
Shared data models and constants used across the ds-fleet project.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# ------------------------------------------------------------------
# Dependency kinds
# ------------------------------------------------------------------

AUDIT_TRAIL = "audit_trail"
SECURITY_ASSESSMENT = "security_assessment"
SECURITY_POLICY = "security_policy"

# Phase-1 relocation order for the move operation.
DEPENDENCY_KINDS = (AUDIT_TRAIL, SECURITY_ASSESSMENT, SECURITY_POLICY)

FRIENDLY_KIND_NAMES = {
    AUDIT_TRAIL: "audit trail",
    SECURITY_ASSESSMENT: "security assessment",
    SECURITY_POLICY: "security policy",
}


# ------------------------------------------------------------------
# Outcome status values
# ------------------------------------------------------------------

STATUS_SUCCEEDED = "succeeded"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


# ------------------------------------------------------------------
# Catalog objects
# ------------------------------------------------------------------

@dataclass
class Target:
    """A Data Safe target database registration."""
    identifier: str
    display_name: str = ""
    lifecycle_state: str = ""
    compartment_id: str = ""
    defined_tags: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def label(self) -> str:
        """Display name for log lines, falling back to the OCID."""
        return self.display_name or self.identifier

    def to_descriptor(self) -> dict:
        """Snapshot/report form of the target."""
        return {
            "id": self.identifier,
            "display_name": self.display_name,
            "lifecycle_state": self.lifecycle_state,
            "compartment_id": self.compartment_id,
        }

    @classmethod
    def from_descriptor(cls, data: dict) -> "Target":
        """Build a Target from a snapshot descriptor.

        Accepts both the snapshot keys and the API's camelCase /
        OCI CLI kebab-case keys so that exported target lists replay too.
        """
        return cls(
            identifier=data.get("id") or data.get("identifier") or "",
            display_name=(
                data.get("display_name")
                or data.get("displayName")
                or data.get("display-name")
                or ""
            ),
            lifecycle_state=(
                data.get("lifecycle_state")
                or data.get("lifecycleState")
                or data.get("lifecycle-state")
                or ""
            ),
            compartment_id=(
                data.get("compartment_id")
                or data.get("compartmentId")
                or data.get("compartment-id")
                or ""
            ),
        )


@dataclass
class DependencyResource:
    """A sub-resource owned by exactly one target."""
    kind: str
    identifier: str
    display_name: str = ""
    target_id: str = ""
    compartment_id: str = ""
    lifecycle_state: str = ""
    status: str = ""
    trail_location: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.identifier

    @property
    def friendly_kind(self) -> str:
        return FRIENDLY_KIND_NAMES.get(self.kind, self.kind)


@dataclass(frozen=True)
class Compartment:
    identifier: str
    name: str = ""

    @property
    def label(self) -> str:
        if self.name and self.name != self.identifier:
            return f"{self.name} ({self.identifier})"
        return self.identifier


# ------------------------------------------------------------------
# Results
# ------------------------------------------------------------------

@dataclass
class OperationResult:
    """Outcome of one target in a batch run."""
    identifier: str
    display_name: str = ""
    status: str = ""  # "succeeded", "failed", "skipped"
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "identifier": self.identifier,
            "display_name": self.display_name,
            "status": self.status,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class Summary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False

    @classmethod
    def from_results(cls, results: list[OperationResult], cancelled: bool = False) -> "Summary":
        return cls(
            total=len(results),
            succeeded=sum(1 for r in results if r.status == STATUS_SUCCEEDED),
            failed=sum(1 for r in results if r.status == STATUS_FAILED),
            skipped=sum(1 for r in results if r.status == STATUS_SKIPPED),
            cancelled=cancelled,
        )

    @property
    def exit_code(self) -> int:
        return 1 if self.failed > 0 else 0


@dataclass
class RunReport:
    """Everything a run produced: per-target results plus the summary."""
    operation: str
    dry_run: bool
    results: list[OperationResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def summary(self) -> Summary:
        return Summary.from_results(self.results, cancelled=self.cancelled)

    @property
    def exit_code(self) -> int:
        return self.summary.exit_code
