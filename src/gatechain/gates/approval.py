"""Approval gate: a human reviewer signed off on the pull request."""

from __future__ import annotations

import re

from gatechain.gates.types import GateCheck, GateContext, MissingGateInput
from gatechain.probes.types import PrComment, ProbeFailedError, ProbeUnavailableError

SUMMARY_RE = re.compile(r"Code\s+Review\s+Summary", re.IGNORECASE)
FILES_CHANGED_RE = re.compile(r"files?\s+(changed|modified)|changed\s+files?", re.IGNORECASE)
NOT_CHANGED_RE = re.compile(r"not\s+changed|unchanged|did\s+not\s+change|why\s+not", re.IGNORECASE)
APPROVED_RE = re.compile(r"\bAPPROVED\b", re.IGNORECASE)


def find_approval(comments: list[PrComment]) -> PrComment | None:
    for comment in comments:
        if comment.author.strip() and APPROVED_RE.search(comment.body):
            return comment
    return None


def check_approval(ctx: GateContext, text: str | None) -> GateCheck:
    check = GateCheck()
    pr = ctx.inputs.pr_number
    if pr is None:
        raise MissingGateInput(f"{ctx.definition.id} requires --pr")
    check.metrics["pr_number"] = pr

    try:
        body = ctx.probes.pr_host.get_pr_body(pr)
    except ProbeUnavailableError as exc:
        check.block("probe_unavailable", f"PR host unavailable: {exc}")
        return check
    except ProbeFailedError as exc:
        check.block("probe_failure", str(exc), exc.raw_output or None)
        return check

    if not SUMMARY_RE.search(body):
        check.block(
            "content",
            f'PR #{pr} body does not contain a "Code Review Summary". Add the summary heading, '
            "the files changed with the reason for each, and the files NOT changed and why.",
        )
    elif not FILES_CHANGED_RE.search(body):
        check.block(
            "content",
            '"Code Review Summary" found but it has no "Files Changed" part. '
            "List each changed file and explain why it changed.",
        )
    elif not NOT_CHANGED_RE.search(body):
        check.block(
            "content",
            '"Code Review Summary" found but it has no "Files NOT Changed" part. '
            "List what was intentionally left unchanged and why.",
        )

    try:
        comments = ctx.probes.pr_host.get_pr_comments(pr)
    except ProbeUnavailableError as exc:
        check.block("probe_unavailable", f"PR host unavailable: {exc}")
        return check
    except ProbeFailedError as exc:
        check.block("probe_failure", str(exc), exc.raw_output or None)
        return check

    check.metrics["comment_count"] = len(comments)
    if not comments:
        check.block(
            "content",
            f'PR #{pr} has no comments. A reviewer must read the diff and comment "APPROVED".',
        )
        return check

    approval = find_approval(comments)
    if approval is None:
        preview = "; ".join(
            f"{c.author or '?'}: {c.body.replace(chr(10), ' ')[:60]}" for c in comments[:3]
        )
        check.block("content", f'PR #{pr} has no "APPROVED" comment from a named reviewer', preview)
        return check
    check.metrics["approved_by"] = approval.author.strip()
    return check
