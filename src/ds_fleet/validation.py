"""
Input validation for user-supplied selection values.

Everything here runs before the first API call: a ``ValidationError``
means the operator has to fix the command line, not the fleet.
"""

from __future__ import annotations

import logging
import re

__all__ = [
    "ValidationError",
    "OCID_PREFIX",
    "is_ocid",
    "looks_like_valid_ocid",
    "split_entries",
    "parse_lifecycle_states",
    "compile_name_filter",
    "sanitize_display_name",
]

logger = logging.getLogger(__name__)

# OCIDs: ocid1.<resource-type>.<realm>.[region][.future-use].<unique-id>
OCID_PREFIX = "ocid1."
_OCID_PATTERN = re.compile(r"^ocid1\.[a-z0-9]+\.[a-z0-9]+\.[a-z0-9\-]*(\.[a-z0-9\-]*)?\.[A-Za-z0-9]+$")

# Lifecycle states are upper-case identifiers such as ACTIVE or NEEDS_ATTENTION.
_STATE_PATTERN = re.compile(r"^[A-Z][A-Z_]*$")

_ENTRY_SEPARATORS = re.compile(r"[,\s]+")


class ValidationError(Exception):
    """Raised when user input fails validation."""


def is_ocid(value: str) -> bool:
    """Return True if *value* looks like an OCID.

    Only the structural prefix decides; a malformed OCID is still routed
    to identifier lookup so the API reports it as not found instead of
    silently treating it as a display name.
    """
    return value.startswith(OCID_PREFIX)


def looks_like_valid_ocid(value: str) -> bool:
    """Strict shape check used for log warnings only."""
    return bool(_OCID_PATTERN.match(value))


def split_entries(raw: str | list[str] | None) -> list[str]:
    """Split comma/whitespace separated target entries.

    Accepts a single string (``"a,b c"``) or a list of strings (argparse
    positionals plus ``-T`` values).  Empty fragments are dropped; order
    is kept.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        raw = [raw]
    entries: list[str] = []
    for chunk in raw:
        for part in _ENTRY_SEPARATORS.split(chunk or ""):
            part = part.strip()
            if part:
                entries.append(part)
    return entries


def parse_lifecycle_states(raw: str | list[str] | None) -> list[str]:
    """Parse a comma separated lifecycle state list (``"ACTIVE,needs_attention"``).

    States are upper-cased and de-duplicated in order.

    Raises:
        ValidationError: If the list is empty or contains a malformed state.
    """
    states: list[str] = []
    for part in split_entries(raw):
        state = part.upper().replace("-", "_")
        if not _STATE_PATTERN.match(state):
            raise ValidationError(
                f"Invalid lifecycle state: {part!r}. "
                "Use states such as ACTIVE or NEEDS_ATTENTION."
            )
        if state not in states:
            states.append(state)
    if not states:
        raise ValidationError(
            "No lifecycle state given. Pass at least one state with -s/--state."
        )
    return states


def compile_name_filter(pattern: str | None) -> re.Pattern | None:
    """Compile the display-name filter regex.

    Raises:
        ValidationError: If the pattern is not a valid regular expression.
    """
    if pattern is None or pattern == "":
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ValidationError(
            f"Invalid filter regex {pattern!r}: {exc}. Adjust the -r/--filter pattern."
        ) from exc


def sanitize_display_name(value: str) -> str:
    """Validate a target display name entry."""
    value = value.strip()
    if not value:
        raise ValidationError("Empty target name.")
    if len(value) > 255:
        raise ValidationError(f"Target name too long ({len(value)} chars, max 255).")
    return value
