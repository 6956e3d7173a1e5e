from __future__ import annotations

from collections.abc import Callable

import pytest

from gatechain.gates.approval import check_approval, find_approval
from gatechain.gates.types import GateInputs, MissingGateInput
from gatechain.probes.toolbox import ProbeSet
from gatechain.probes.types import PrComment, ProbeUnavailableError

GOOD_BODY = """## Code Review Summary

### Files Changed
- src/app/login.py: new session handling

### Files NOT Changed
- src/app/billing.py: out of scope
"""


def _ctx(make_ctx: Callable, pr: int | None = 12):
    return make_ctx("approval", inputs=GateInputs(pr_number=pr))


def test_requires_pr_number(make_ctx: Callable) -> None:
    with pytest.raises(MissingGateInput, match="--pr"):
        check_approval(_ctx(make_ctx, pr=None), None)


def test_named_approval_passes(make_ctx: Callable, probes: ProbeSet) -> None:
    probes.pr_host.body = GOOD_BODY
    probes.pr_host.comments = [
        PrComment(author="bot", body="CI green"),
        PrComment(author="alice", body="Read the diff. approved"),
    ]

    check = check_approval(_ctx(make_ctx), None)

    assert check.violations == []
    assert check.metrics == {"pr_number": 12, "comment_count": 2, "approved_by": "alice"}


@pytest.mark.parametrize(
    ("body", "fragment"),
    [
        ("Just a PR", "does not contain a \"Code Review Summary\""),
        ("## Code Review Summary\nLooks fine", 'no "Files Changed" part'),
        ("## Code Review Summary\nFiles changed: login.py", 'no "Files NOT Changed" part'),
    ],
)
def test_incomplete_summary_blocks(make_ctx: Callable, probes: ProbeSet, body: str, fragment: str) -> None:
    probes.pr_host.body = body
    probes.pr_host.comments = [PrComment(author="alice", body="APPROVED")]

    check = check_approval(_ctx(make_ctx), None)

    assert len(check.violations) == 1
    assert fragment in check.violations[0].message


def test_no_comments_blocks(make_ctx: Callable, probes: ProbeSet) -> None:
    probes.pr_host.body = GOOD_BODY

    check = check_approval(_ctx(make_ctx), None)

    assert check.violations[0].message.startswith("PR #12 has no comments")


def test_comments_without_approval_show_preview(make_ctx: Callable, probes: ProbeSet) -> None:
    probes.pr_host.body = GOOD_BODY
    probes.pr_host.comments = [PrComment(author="bob", body="please rename\nthis helper")]

    check = check_approval(_ctx(make_ctx), None)

    assert check.violations[0].evidence == "bob: please rename this helper"


def test_host_unavailable_is_a_violation(make_ctx: Callable, probes: ProbeSet) -> None:
    probes.pr_host.error = ProbeUnavailableError("gh missing")

    check = check_approval(_ctx(make_ctx), None)

    assert [v.kind for v in check.violations] == ["probe_unavailable"]


def test_anonymous_approval_does_not_count() -> None:
    assert find_approval([PrComment(author=" ", body="APPROVED")]) is None
    assert find_approval([PrComment(author="carol", body="UNAPPROVED changes")]) is None
