"""Evidence store: verdict reports, tickets, ledger and baselines under one root.

Every write happens inside an exclusive ``flock`` on ``<root>/.lock`` and
goes through a staged transaction: all files are written to temp files in
their target directories first, then swapped in with ``os.replace`` in a
fixed order. If any swap fails, already replaced targets are restored.
"""

from __future__ import annotations

import csv
import fcntl
import io
import json
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from gatechain.artifacts.canonical_json import canonical_dumps, pretty_dumps, sha256_bytes
from gatechain.config import TimestampMode
from gatechain.evidence.types import (
    HASH_PREFIX_LENGTH,
    LEDGER_HEADER,
    EvidenceTicket,
    LedgerRow,
)
from gatechain.gates.report import render_verdict_markdown, verdict_from_dict, verdict_to_dict
from gatechain.gates.types import Verdict
from gatechain.utils.json_output import ensure_valid_or_quarantine

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".lock"
LEDGER_FILENAME = "ledger.csv"


@dataclass(frozen=True)
class RecordResult:
    report_json: Path
    report_md: Path
    history: Path
    ticket: EvidenceTicket | None = None
    ticket_path: Path | None = None
    evidence: Path | None = None


class _Transaction:
    """Stage file contents, then swap them in together or not at all."""

    def __init__(self) -> None:
        self._staged: list[tuple[Path, Path]] = []

    def stage(self, target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=target.parent,
            delete=False,
            prefix=f".{target.name}.",
            suffix=".gatechain.tmp",
        ) as tmp_file:
            tmp_file.write(content)
            tmp_path = Path(tmp_file.name)
        self._staged.append((target, tmp_path))

    def commit(self) -> None:
        replaced: list[tuple[Path, bytes | None]] = []
        try:
            for target, tmp_path in self._staged:
                previous = target.read_bytes() if target.exists() else None
                os.replace(tmp_path, target)
                replaced.append((target, previous))
        except Exception:
            logger.warning("evidence commit failed; rolling back %d file(s)", len(replaced))
            for target, previous in reversed(replaced):
                if previous is None:
                    target.unlink(missing_ok=True)
                else:
                    restore = _Transaction()
                    restore.stage(target, previous)
                    restore.commit()
            self.abort()
            raise
        self._staged.clear()

    def abort(self) -> None:
        for _, tmp_path in self._staged:
            tmp_path.unlink(missing_ok=True)
        self._staged.clear()


def _path_component(value: str, what: str) -> str:
    if not value or "/" in value or "\\" in value or value in {".", ".."}:
        raise ValueError(f"{what} `{value}` cannot be used in an evidence file name")
    return value


class EvidenceStore:
    """Filesystem-backed evidence for every gate and task."""

    def __init__(self, root: Path, *, actor: str, timestamp_mode: TimestampMode) -> None:
        self.root = root
        self.actor = actor
        self.timestamp_mode = timestamp_mode

    # -- layout ---------------------------------------------------------

    def _stem(self, gate_id: str, task_id: str) -> str:
        return f"{_path_component(gate_id, 'gate id')}-{_path_component(task_id, 'task id')}"

    def report_json_path(self, gate_id: str, task_id: str) -> Path:
        return self.root / "reports" / f"{self._stem(gate_id, task_id)}.json"

    def report_md_path(self, gate_id: str, task_id: str) -> Path:
        return self.root / "reports" / f"{self._stem(gate_id, task_id)}.md"

    def history_path(self, gate_id: str, task_id: str) -> Path:
        return self.root / "history" / f"{self._stem(gate_id, task_id)}.jsonl"

    def ticket_path(self, gate_id: str, task_id: str) -> Path:
        return self.root / "tickets" / f"ticket-{self._stem(gate_id, task_id)}.json"

    def baseline_path(self, gate_id: str, metric: str = "lint") -> Path:
        return self.root / "baselines" / f"{metric}-{_path_component(gate_id, 'gate id')}.json"

    @property
    def ledger_path(self) -> Path:
        return self.root / LEDGER_FILENAME

    @property
    def quarantine_dir(self) -> Path:
        return self.root / "quarantine"

    # -- locking --------------------------------------------------------

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Exclusive cross-process lock over the whole evidence root."""
        self.root.mkdir(parents=True, exist_ok=True)
        with open(self.root / LOCK_FILENAME, "a") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    # -- writes ---------------------------------------------------------

    def record(self, verdict: Verdict) -> RecordResult:
        """Persist a verdict; on PASS also snapshot evidence, issue a ticket and append the ledger.

        Raises:
            RuntimeError: If the verdict or ticket fails schema validation
        """
        gate_id, task_id = verdict.gate_id, verdict.task_id
        report_json = self.report_json_path(gate_id, task_id)
        report_md = self.report_md_path(gate_id, task_id)
        history = self.history_path(gate_id, task_id)

        data = verdict_to_dict(verdict, timestamp_mode=self.timestamp_mode)
        ensure_valid_or_quarantine(
            data=data,
            intended_path=report_json,
            schema_name="verdict",
            quarantine_dir=self.quarantine_dir,
        )
        report_bytes = pretty_dumps(data).encode("utf-8")

        ticket: EvidenceTicket | None = None
        ticket_path: Path | None = None
        evidence_path: Path | None = None
        if verdict.passed:
            digest = sha256_bytes(report_bytes)
            evidence_rel = f"evidence/{self._stem(gate_id, task_id)}-{digest[:HASH_PREFIX_LENGTH]}.json"
            evidence_path = self.root / evidence_rel
            ticket_path = self.ticket_path(gate_id, task_id)
            ticket = EvidenceTicket.issue(
                gate=gate_id,
                task=task_id,
                evidence=evidence_rel,
                digest=digest,
                timestamp=verdict.timestamp,
                actor=self.actor,
            )
            ensure_valid_or_quarantine(
                data=ticket.to_dict(),
                intended_path=ticket_path,
                schema_name="evidence_ticket",
                quarantine_dir=self.quarantine_dir,
            )

        with self.lock():
            tx = _Transaction()
            try:
                if ticket is not None and evidence_path is not None and ticket_path is not None:
                    tx.stage(evidence_path, report_bytes)
                    tx.stage(ticket_path, pretty_dumps(ticket.to_dict()).encode("utf-8"))
                    tx.stage(self.ledger_path, self._ledger_with(ticket.ledger_row()))
                tx.stage(history, self._read_bytes(history) + (canonical_dumps(data) + "\n").encode("utf-8"))
                tx.stage(report_json, report_bytes)
                tx.stage(report_md, render_verdict_markdown(verdict).encode("utf-8"))
            except Exception:
                tx.abort()
                raise
            tx.commit()

        logger.debug("recorded %s for %s/%s", verdict.outcome, gate_id, task_id)
        return RecordResult(
            report_json=report_json,
            report_md=report_md,
            history=history,
            ticket=ticket,
            ticket_path=ticket_path,
            evidence=evidence_path,
        )

    def write_baseline(self, gate_id: str, data: dict[str, Any], *, metric: str = "lint") -> Path:
        path = self.baseline_path(gate_id, metric)
        with self.lock():
            tx = _Transaction()
            tx.stage(path, pretty_dumps(data).encode("utf-8"))
            tx.commit()
        return path

    def _ledger_with(self, row: LedgerRow) -> bytes:
        existing = self._read_bytes(self.ledger_path).decode("utf-8")
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        if not existing:
            writer.writerow(LEDGER_HEADER)
        elif not existing.endswith("\n"):
            buffer.write("\n")
        writer.writerow(row.to_row())
        return (existing + buffer.getvalue()).encode("utf-8")

    @staticmethod
    def _read_bytes(path: Path) -> bytes:
        return path.read_bytes() if path.exists() else b""

    # -- reads ----------------------------------------------------------

    def latest_verdict(self, gate_id: str, task_id: str) -> Verdict | None:
        path = self.report_json_path(gate_id, task_id)
        if not path.exists():
            return None
        try:
            return verdict_from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("ignoring unreadable verdict report %s: %s", path, e)
            return None

    def read_ticket(self, gate_id: str, task_id: str) -> EvidenceTicket | None:
        """Raises ValueError if the ticket exists but is not valid JSON or lacks fields."""
        path = self.ticket_path(gate_id, task_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValueError(f"Ticket {path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Ticket {path} must be a JSON object")
        return EvidenceTicket.from_dict(data)

    def read_ledger(self) -> list[LedgerRow]:
        if not self.ledger_path.exists():
            return []
        with open(self.ledger_path, encoding="utf-8", newline="") as f:
            return [LedgerRow.from_row(row) for row in csv.DictReader(f)]

    def read_baseline(self, gate_id: str, *, metric: str = "lint") -> dict[str, Any] | None:
        path = self.baseline_path(gate_id, metric)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("%s baseline %s is corrupt; reseeding", metric, path)
            return None
        return data if isinstance(data, dict) else None
