"""Verdict serialization: schema-shaped JSON and the human markdown report."""

from __future__ import annotations

import json
from typing import Any

from gatechain import __version__
from gatechain.gates.types import Verdict, Violation

VERDICT_SCHEMA_VERSION = "1.0"

# Fix-it hint per violation kind, shown after each violation.
REMEDIATION: dict[str, str] = {
    "missing_artifact": "Create the document at the first path listed, or point --external-root at it.",
    "content": "Edit the artifact or the code so the check holds, then re-run the gate.",
    "probe_failure": "Run the tool by hand, fix what it reports, and re-run the gate.",
    "probe_unavailable": "Install or authenticate the tool (see `gatechain doctor`), then re-run.",
    "dependency": "Pass the prerequisite gate for this task first.",
}


def _json_safe(value: Any) -> Any:
    """Metrics must survive canonical JSON; tuples become lists and unknown types strings."""
    return json.loads(json.dumps(value, sort_keys=True, default=str))


def verdict_to_dict(verdict: Verdict, *, timestamp_mode: str) -> dict[str, Any]:
    return {
        "schema_version": VERDICT_SCHEMA_VERSION,
        "gatechain_version": __version__,
        "gate": {"id": verdict.gate_id, "title": verdict.gate_title, "kind": verdict.gate_kind},
        "task_id": verdict.task_id,
        "generated_at": verdict.timestamp,
        "timestamp_mode": timestamp_mode,
        "outcome": verdict.outcome,
        "artifact": verdict.artifact,
        "violations": {
            "count": len(verdict.violations),
            "items": [
                {"kind": v.kind, "message": v.message, "evidence": v.evidence}
                for v in verdict.violations
            ],
        },
        "warnings": list(verdict.warnings),
        "metrics": _json_safe(dict(verdict.metrics)),
    }


def verdict_from_dict(data: dict[str, Any]) -> Verdict:
    """Rebuild a verdict from its JSON report.

    Raises:
        ValueError: If required fields are missing or malformed
    """
    try:
        gate = data["gate"]
        return Verdict(
            gate_id=str(gate["id"]),
            gate_title=str(gate.get("title", "")),
            gate_kind=str(gate.get("kind", "")),
            task_id=str(data["task_id"]),
            timestamp=str(data["generated_at"]),
            outcome=data["outcome"],
            violations=tuple(
                Violation(kind=item["kind"], message=item["message"], evidence=item.get("evidence"))
                for item in data["violations"]["items"]
            ),
            warnings=tuple(data.get("warnings", [])),
            metrics=dict(data.get("metrics", {})),
            artifact=data.get("artifact"),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed verdict report: {e}") from e


def render_verdict_markdown(verdict: Verdict) -> str:
    status = "PASS ✓" if verdict.passed else f"BLOCKED ✗ ({len(verdict.violations)} violations)"

    lines = [
        f"# {verdict.gate_title} Report",
        "",
        f"**Status:** {status}",
        f"**Gate:** `{verdict.gate_id}` ({verdict.gate_kind})",
        f"**Task:** {verdict.task_id}",
        f"**Timestamp:** {verdict.timestamp}",
        f"**Artifact:** {f'`{verdict.artifact}`' if verdict.artifact else '*(none)*'}",
        "",
        "## Metrics",
        "",
    ]

    if verdict.metrics:
        for key in sorted(verdict.metrics):
            lines.append(f"- **{key}:** {json.dumps(verdict.metrics[key], sort_keys=True, default=str)}")
    else:
        lines.append("*(none)*")

    if verdict.warnings:
        lines.extend(["", "## Warnings", ""])
        for warning in verdict.warnings:
            lines.append(f"- ⚠ {warning}")

    if verdict.violations:
        lines.extend(["", "## Violations", ""])
        for i, violation in enumerate(verdict.violations, 1):
            lines.append(f"### {i}. {violation.kind}")
            lines.append(f"**Message:** {violation.message}")
            lines.append(f"**Fix:** {REMEDIATION[violation.kind]}")
            if violation.evidence:
                lines.append("**Evidence:**")
                lines.append("```")
                lines.append(violation.evidence)
                lines.append("```")
            lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"
