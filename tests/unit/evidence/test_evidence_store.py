"""Evidence store writes, tickets, ledger verification and the integrity manifest."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gatechain.artifacts.canonical_json import sha256_file
from gatechain.evidence.integrity import IntegrityError, check_integrity, seal_manifest, verify_manifest
from gatechain.evidence.store import EvidenceStore
from gatechain.evidence.types import LEDGER_HEADER, compute_signature
from gatechain.evidence.verify import verify_ledger, verify_ticket
from gatechain.gates.types import Verdict, Violation

TASK = "ENTRY-042"
EPOCH = "1970-01-01T00:00:00Z"


def _verdict(outcome: str = "PASS", gate: str = "plan", **kwargs) -> Verdict:
    violations = (Violation(kind="content", message="Missing Success Metric"),) if outcome == "BLOCKED" else ()
    return Verdict(
        gate_id=gate,
        gate_title="G4 Plan Approval",
        gate_kind="document",
        task_id=TASK,
        timestamp=EPOCH,
        outcome=outcome,
        violations=violations,
        **kwargs,
    )


def test_blocked_verdict_writes_reports_only(store: EvidenceStore) -> None:
    result = store.record(_verdict("BLOCKED"))

    assert result.ticket is None
    assert result.report_json.is_file()
    assert "BLOCKED ✗ (1 violations)" in result.report_md.read_text(encoding="utf-8")
    assert not store.ledger_path.exists()
    assert not (store.root / "evidence").exists()


def test_pass_snapshots_evidence_and_signs_ticket(store: EvidenceStore) -> None:
    result = store.record(_verdict(metrics={"files": ("a.py", "b.py")}))
    ticket = result.ticket

    assert ticket is not None
    assert result.evidence is not None
    assert result.evidence.read_bytes() == result.report_json.read_bytes()
    assert ticket.hash == sha256_file(result.evidence)
    assert ticket.evidence == f"evidence/plan-{TASK}-{ticket.hash[:12]}.json"
    assert ticket.signature == compute_signature("tester", EPOCH, ticket.hash)
    assert store.read_ticket("plan", TASK) == ticket
    assert [row.signature for row in store.read_ledger()] == [ticket.signature]
    assert json.loads(result.report_json.read_text(encoding="utf-8"))["metrics"] == {"files": ["a.py", "b.py"]}


def test_ledger_header_written_once(store: EvidenceStore) -> None:
    store.record(_verdict())
    store.record(_verdict(gate="scope"))

    lines = store.ledger_path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(LEDGER_HEADER)
    assert len(lines) == 3


def test_latest_verdict_round_trips(store: EvidenceStore) -> None:
    store.record(_verdict("BLOCKED"))

    latest = store.latest_verdict("plan", TASK)

    assert latest is not None
    assert latest.outcome == "BLOCKED"
    assert latest.violations == (Violation(kind="content", message="Missing Success Metric"),)
    assert store.latest_verdict("scope", TASK) is None


def test_path_like_gate_ids_are_rejected(store: EvidenceStore) -> None:
    with pytest.raises(ValueError, match="cannot be used in an evidence file name"):
        store.record(_verdict(gate="../escape"))


def test_verify_ticket_detects_evidence_tamper(store: EvidenceStore) -> None:
    result = store.record(_verdict())
    assert verify_ticket(store, "plan", TASK).ok

    result.evidence.write_text("{}", encoding="utf-8")
    report = verify_ticket(store, "plan", TASK)

    assert not report.ok
    assert "evidence hash mismatch" in report.problems[0]
    assert not verify_ledger(store).ok


def test_verify_ticket_detects_forged_signature(store: EvidenceStore) -> None:
    result = store.record(_verdict())
    data = json.loads(result.ticket_path.read_text(encoding="utf-8"))
    data["actor"] = "mallory"
    result.ticket_path.write_text(json.dumps(data), encoding="utf-8")

    report = verify_ticket(store, "plan", TASK)

    assert report.problems == [f"ticket-plan-{TASK}.json: signature does not match actor, timestamp and hash"]


def test_verify_ticket_without_pass(store: EvidenceStore) -> None:
    report = verify_ticket(store, "plan", TASK)

    assert report.checked == 0
    assert "has not passed" in report.problems[0]


def test_ledger_row_disagreeing_with_ticket_is_reported(store: EvidenceStore) -> None:
    store.record(_verdict())
    text = store.ledger_path.read_text(encoding="utf-8")
    store.ledger_path.write_text(text.replace(EPOCH, "2030-01-01T00:00:00Z"), encoding="utf-8")

    report = verify_ledger(store)

    assert report.checked == 1
    assert report.problems == [f"ledger.csv line 2 (plan/{TASK}): row disagrees with the current ticket"]


def test_empty_evidence_root_verifies(store: EvidenceStore) -> None:
    report = verify_ledger(store)

    assert report.ok
    assert report.checked == 0


# -- integrity manifest -----------------------------------------------------


def _protected(workspace: Path) -> Path:
    script = workspace / "scripts" / "gate.sh"
    script.parent.mkdir(parents=True)
    script.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
    return script


def test_sealed_files_verify(workspace: Path) -> None:
    script = _protected(workspace)
    manifest = workspace / "integrity-manifest.json"

    scripts = seal_manifest(manifest, workspace, [Path("scripts/gate.sh")])

    assert scripts == {"scripts/gate.sh": sha256_file(script)}
    assert check_integrity(manifest, workspace).verified == ["scripts/gate.sh"]


def test_modified_file_halts(workspace: Path) -> None:
    script = _protected(workspace)
    manifest = workspace / "integrity-manifest.json"
    seal_manifest(manifest, workspace, [script])
    script.write_text("#!/bin/sh\nexit 1\n", encoding="utf-8")

    with pytest.raises(IntegrityError) as excinfo:
        check_integrity(manifest, workspace)

    assert excinfo.value.problems[0].startswith("scripts/gate.sh: modified")


def test_deleted_file_and_missing_manifest_are_problems(workspace: Path) -> None:
    script = _protected(workspace)
    manifest = workspace / "integrity-manifest.json"
    seal_manifest(manifest, workspace, [script])
    script.unlink()

    assert verify_manifest(manifest, workspace).problems == ["scripts/gate.sh: protected file is missing"]
    assert "not found" in verify_manifest(workspace / "absent.json", workspace).problems[0]


def test_seal_rejects_missing_and_outside_paths(workspace: Path, tmp_path: Path) -> None:
    outside = tmp_path / "elsewhere.sh"
    outside.write_text("echo\n", encoding="utf-8")
    manifest = workspace / "integrity-manifest.json"

    with pytest.raises(FileNotFoundError):
        seal_manifest(manifest, workspace, [Path("scripts/absent.sh")])
    with pytest.raises(ValueError, match="outside workspace root"):
        seal_manifest(manifest, workspace, [outside])
