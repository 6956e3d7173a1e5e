from __future__ import annotations

import pytest

from gatechain.artifacts.canonical_json import canonical_dumps, sha256_text
from gatechain.evidence.types import compute_signature
from gatechain.task_id import TaskIdError, normalize_task_id, validate_task_id


@pytest.mark.parametrize("task", ["ENTRY-042", " ENTRY-AUTH-7 ", "entry-1.2"])
def test_valid_task_ids(task: str) -> None:
    assert validate_task_id(task) == task.strip()


@pytest.mark.parametrize("task", ["", "TASK-7", "ENTRY-", "ENTRY-42/../x", "ENTRY 42"])
def test_invalid_task_ids(task: str) -> None:
    with pytest.raises(TaskIdError):
        validate_task_id(task)


def test_custom_task_pattern() -> None:
    assert validate_task_id("PROJ-9", r"^PROJ-\d+$") == "PROJ-9"


def test_normalize_drops_prefix_and_dashes() -> None:
    assert normalize_task_id("ENTRY-AUTH-7") == "AUTH_7"
    assert normalize_task_id("entry-042") == "042"


def test_canonical_dumps_is_key_order_independent() -> None:
    assert canonical_dumps({"b": 1, "a": [1, "é"]}) == '{"a":[1,"é"],"b":1}'
    assert canonical_dumps({"a": 1, "b": 2}) == canonical_dumps({"b": 2, "a": 1})


def test_signature_binds_actor_timestamp_and_hash() -> None:
    digest = "ab" * 32

    assert compute_signature("alice", "1970-01-01T00:00:00Z", digest) == sha256_text(
        f"alice:1970-01-01T00:00:00Z:{digest}"
    )
    assert compute_signature("bob", "1970-01-01T00:00:00Z", digest) != compute_signature(
        "alice", "1970-01-01T00:00:00Z", digest
    )
