"""Task identifier validation and naming helpers."""

from __future__ import annotations

import re

DEFAULT_TASK_ID_PATTERN = r"^ENTRY-[A-Z0-9._-]+$"
TASK_ID_PREFIX = "ENTRY-"

_PREFIX_RE = re.compile(rf"^{re.escape(TASK_ID_PREFIX)}", re.IGNORECASE)


class TaskIdError(ValueError):
    """Raised when a task identifier does not match the configured format."""


def validate_task_id(task_id: str, pattern: str = DEFAULT_TASK_ID_PATTERN) -> str:
    """Return the stripped identifier or raise TaskIdError."""
    candidate = (task_id or "").strip()
    if not candidate or not re.match(pattern, candidate, re.IGNORECASE):
        raise TaskIdError(
            f"Invalid task identifier `{task_id}`: expected format {pattern} (e.g. ENTRY-042)"
        )
    return candidate


def normalize_task_id(task_id: str) -> str:
    """Legacy filename form: prefix dropped, dashes become underscores.

    ``ENTRY-AUTH-7`` becomes ``AUTH_7``.
    """
    return _PREFIX_RE.sub("", task_id).replace("-", "_")
