"""Move targets, and the audit trails, assessments and policies that belong to them, between compartments."""
