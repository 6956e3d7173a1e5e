"""Offline verification of tickets and the ledger against the evidence files."""

from __future__ import annotations

import csv
from dataclasses import dataclass, field

from gatechain.artifacts.canonical_json import sha256_file
from gatechain.evidence.store import EvidenceStore
from gatechain.evidence.types import LEDGER_HEADER, EvidenceTicket


@dataclass
class VerificationReport:
    checked: int = 0
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def _check_evidence(store: EvidenceStore, evidence: str, expected_hash: str, where: str) -> list[str]:
    path = store.root / evidence
    if not path.is_file():
        return [f"{where}: evidence file {evidence} is missing"]
    actual = sha256_file(path)
    if actual != expected_hash:
        return [f"{where}: evidence hash mismatch for {evidence} (recorded {expected_hash[:12]}, actual {actual[:12]})"]
    return []


def verify_ticket(store: EvidenceStore, gate_id: str, task_id: str) -> VerificationReport:
    """Recompute the ticket signature and the evidence hash it vouches for."""
    report = VerificationReport()
    path = store.ticket_path(gate_id, task_id)
    try:
        ticket = store.read_ticket(gate_id, task_id)
    except ValueError as e:
        report.problems.append(str(e))
        return report
    if ticket is None:
        report.problems.append(f"No ticket at {path}; the gate has not passed for this task")
        return report

    report.checked = 1
    if (ticket.gate, ticket.task) != (gate_id, task_id):
        report.problems.append(
            f"{path.name}: ticket names {ticket.gate}/{ticket.task}, expected {gate_id}/{task_id}"
        )
    if not ticket.signature_valid:
        report.problems.append(f"{path.name}: signature does not match actor, timestamp and hash")
    report.problems.extend(_check_evidence(store, ticket.evidence, ticket.hash, path.name))
    return report


def verify_ledger(store: EvidenceStore) -> VerificationReport:
    """Check every ledger row's evidence hash and its agreement with the current ticket."""
    report = VerificationReport()
    if not store.ledger_path.exists():
        return report

    with open(store.ledger_path, encoding="utf-8", newline="") as f:
        header = next(csv.reader(f), None)
    if header is None or tuple(header) != LEDGER_HEADER:
        report.problems.append(f"ledger.csv header is {header}, expected {list(LEDGER_HEADER)}")
        return report

    tickets: dict[tuple[str, str], EvidenceTicket | None] = {}
    for index, row in enumerate(store.read_ledger(), start=2):
        report.checked += 1
        where = f"ledger.csv line {index} ({row.gate}/{row.task})"
        report.problems.extend(_check_evidence(store, row.evidence, row.hash, where))

        key = (row.gate, row.task)
        if key not in tickets:
            try:
                tickets[key] = store.read_ticket(row.gate, row.task)
            except ValueError as e:
                report.problems.append(f"{where}: {e}")
                tickets[key] = None
        ticket = tickets[key]
        if ticket is None or ticket.evidence != row.evidence:
            # superseded by a later pass; only the evidence hash is checkable
            continue
        if (row.hash, row.timestamp, row.signature) != (ticket.hash, ticket.timestamp, ticket.signature):
            report.problems.append(f"{where}: row disagrees with the current ticket")
    return report
