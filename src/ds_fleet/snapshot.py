"""
Selection snapshots: save a resolved target list, replay it later.

A snapshot is a JSON object::

    {"captured_at": "2026-01-31T08:15:00Z", "targets": [{...}, ...]}

Written atomically (temp file + rename) and read whole.  Before a
snapshot may drive a mutating run it must pass :func:`check_snapshot`.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .models import Target
from .validation import ValidationError

__all__ = [
    "SelectionSnapshot",
    "parse_max_age",
    "read_snapshot",
    "write_snapshot",
    "check_snapshot",
]

logger = logging.getLogger(__name__)

_AGE_PATTERN = re.compile(r"^(\d+)([smhd]?)$")
_AGE_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}

# Clock skew tolerated before a capture time counts as future-dated.
CLOCK_SKEW_SECONDS = 300


@dataclass
class SelectionSnapshot:
    targets: list[Target] = field(default_factory=list)
    captured_at: datetime | None = None
    path: str = ""

    def age_seconds(self, now: datetime | None = None) -> float | None:
        if self.captured_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - self.captured_at).total_seconds()


def parse_max_age(value: str | int | None) -> int | None:
    """Parse a maximum snapshot age.

    Accepts bare seconds (``3600``), a suffixed value (``90s``, ``30m``,
    ``24h``, ``7d``) or ``disable`` / ``off`` / ``0``.  Returns the age in
    seconds, or ``None`` when the freshness check is disabled.

    Raises:
        ValidationError: If the value cannot be parsed.
    """
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in ("disable", "disabled", "off", "none"):
        return None
    match = _AGE_PATTERN.match(text)
    if not match:
        raise ValidationError(
            f"Invalid max snapshot age: {value!r}. "
            "Use seconds or a number with s/m/h/d suffix (e.g. 24h), or 'disable'."
        )
    seconds = int(match.group(1)) * _AGE_UNITS[match.group(2)]
    return seconds or None


def _parse_timestamp(raw) -> datetime | None:
    if not raw or not isinstance(raw, str):
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        ts = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Snapshot timestamp %r is not ISO-8601; treating snapshot as undated", raw)
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def read_snapshot(path: str) -> SelectionSnapshot:
    """Load a snapshot file.

    Besides the native object form, an exported target list (a bare JSON
    array, or an object with a ``data`` array) is accepted; such a file
    carries no capture time and counts as undated.

    Raises:
        ValidationError: If the file is missing, unreadable or malformed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ValidationError(f"Snapshot file not found: {path}. Check the --input-json path.") from None
    except (OSError, ValueError) as exc:
        raise ValidationError(f"Cannot read snapshot {path}: {exc}. Re-create it with --save-json.") from exc

    captured_at = None
    if isinstance(data, list):
        items = data
    elif isinstance(data, dict):
        items = data.get("targets")
        if items is None:
            items = data.get("data")
        captured_at = _parse_timestamp(data.get("captured_at"))
    else:
        items = None
    if not isinstance(items, list):
        raise ValidationError(
            f"Snapshot {path} has no target list. Re-create it with --save-json."
        )

    targets: list[Target] = []
    seen: set[str] = set()
    for pos, item in enumerate(items, 1):
        if not isinstance(item, dict):
            raise ValidationError(f"Snapshot {path}: entry {pos} is not an object.")
        target = Target.from_descriptor(item)
        if not target.identifier:
            raise ValidationError(f"Snapshot {path}: entry {pos} has no target id.")
        if target.identifier in seen:
            continue
        seen.add(target.identifier)
        targets.append(target)

    logger.debug("Snapshot %s: %d target(s), captured %s", path, len(targets), captured_at or "unknown")
    return SelectionSnapshot(targets=targets, captured_at=captured_at, path=path)


def write_snapshot(path: str, targets: list[Target], captured_at: datetime | None = None) -> str:
    """Write *targets* as a snapshot, atomically replacing *path*."""
    captured_at = captured_at or datetime.now(timezone.utc)
    payload = {
        "captured_at": captured_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "targets": [t.to_descriptor() for t in targets],
    }
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".snapshot-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    logger.info("Selection snapshot saved: %s (%d target(s))", path, len(targets))
    return path


def check_snapshot(
    snapshot: SelectionSnapshot,
    max_age: int | None,
    dry_run: bool,
    allow_stale: bool,
    now: datetime | None = None,
) -> None:
    """Approve *snapshot* for use, or raise.

    Dry-run always passes (with a warning when the snapshot is stale).
    Apply mode fails closed on a stale or undated snapshot unless
    *allow_stale* is set.  ``max_age=None`` disables the age limit but an
    undated snapshot is still refused in apply mode.  A capture time more
    than ``CLOCK_SKEW_SECONDS`` in the future counts as stale.

    Raises:
        ValidationError: If the snapshot may not drive a mutating run.
    """
    age = snapshot.age_seconds(now)
    if age is None:
        problem = "has no capture timestamp"
    elif age < -CLOCK_SKEW_SECONDS:
        problem = f"is dated {int(-age)}s in the future"
    elif max_age is not None and age > max_age:
        problem = f"is {int(age)}s old (max {max_age}s)"
    else:
        return

    if dry_run:
        logger.warning("Snapshot %s %s; accepted for dry-run", snapshot.path or "(memory)", problem)
        return
    if allow_stale:
        logger.warning("Snapshot %s %s; accepted (--allow-stale-selection)", snapshot.path or "(memory)", problem)
        return
    raise ValidationError(
        f"Snapshot {snapshot.path or '(memory)'} {problem}. "
        "Re-capture it with --save-json, raise --max-snapshot-age, "
        "or pass --allow-stale-selection."
    )
