"""
Run reports: JSON outcome array and the text summary.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path

from .models import RunReport

__all__ = ["generate_json_report", "save_json_report", "format_summary"]

logger = logging.getLogger(__name__)


def generate_json_report(report: RunReport) -> str:
    """JSON array of ``{identifier, display_name, status, detail}``."""
    return json.dumps([r.to_dict() for r in report.results], indent=2, default=str)


def save_json_report(
    report: RunReport,
    output_json: str | None = None,
    output_dir: str = "reports",
) -> str:
    """Write the JSON report and return its absolute path.

    Without *output_json* the file goes to
    ``<output_dir>/<operation>_<timestamp>/<operation>_<timestamp>.json``.
    """
    if output_json:
        filepath = output_json
        parent = os.path.dirname(os.path.abspath(filepath))
    else:
        timestamp = datetime.now().strftime("%Y-%m-%d-%H%M%S")
        stem = f"{report.operation}_{timestamp}"
        parent = os.path.join(output_dir, stem)
        filepath = os.path.join(parent, f"{stem}.json")
    Path(parent).mkdir(parents=True, exist_ok=True)

    content = generate_json_report(report)
    with open(filepath, "w") as f:
        f.write(content + "\n")

    filepath = os.path.abspath(filepath)
    logger.debug("Wrote %d bytes to %s", len(content), filepath)
    return filepath


def format_summary(report: RunReport) -> str:
    """One-line summary, e.g. ``Done. Succeeded: 4  Failed: 1  Skipped: 0  Total: 5``."""
    s = report.summary
    if s.cancelled:
        head = f"Cancelled. {report.operation} was not executed."
    elif report.dry_run:
        head = "Dry run complete."
    else:
        head = "Done."
    return (
        f"{head} Succeeded: {s.succeeded}  Failed: {s.failed}  "
        f"Skipped: {s.skipped}  Total: {s.total}"
    )
