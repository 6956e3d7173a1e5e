"""Evidence ticket and ledger row types."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from gatechain.artifacts.canonical_json import sha256_text

TICKET_SCHEMA_VERSION = "1.0"
LEDGER_HEADER: tuple[str, ...] = ("gate", "task", "evidence", "hash", "timestamp", "signature")
HASH_PREFIX_LENGTH = 12


def compute_signature(actor: str, timestamp: str, digest: str) -> str:
    """sha256 of ``"{actor}:{timestamp}:{hash}"``."""
    return sha256_text(f"{actor}:{timestamp}:{digest}")


@dataclass(frozen=True)
class EvidenceTicket:
    """Signed proof that ``gate`` passed for ``task``.

    ``evidence`` is relative to the evidence root; ``hash`` is the SHA-256
    of that file's bytes.
    """

    gate: str
    task: str
    evidence: str
    hash: str
    timestamp: str
    actor: str
    signature: str

    @classmethod
    def issue(cls, *, gate: str, task: str, evidence: str, digest: str, timestamp: str, actor: str) -> EvidenceTicket:
        return cls(
            gate=gate,
            task=task,
            evidence=evidence,
            hash=digest,
            timestamp=timestamp,
            actor=actor,
            signature=compute_signature(actor, timestamp, digest),
        )

    @property
    def signature_valid(self) -> bool:
        return self.signature == compute_signature(self.actor, self.timestamp, self.hash)

    def to_dict(self) -> dict[str, Any]:
        return {"schema_version": TICKET_SCHEMA_VERSION, **asdict(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvidenceTicket:
        """Raises ValueError if a field is missing."""
        try:
            return cls(
                gate=str(data["gate"]),
                task=str(data["task"]),
                evidence=str(data["evidence"]),
                hash=str(data["hash"]),
                timestamp=str(data["timestamp"]),
                actor=str(data["actor"]),
                signature=str(data["signature"]),
            )
        except KeyError as e:
            raise ValueError(f"Ticket is missing field {e}") from e

    def ledger_row(self) -> LedgerRow:
        return LedgerRow(
            gate=self.gate,
            task=self.task,
            evidence=self.evidence,
            hash=self.hash,
            timestamp=self.timestamp,
            signature=self.signature,
        )


@dataclass(frozen=True)
class LedgerRow:
    gate: str
    task: str
    evidence: str
    hash: str
    timestamp: str
    signature: str

    def to_row(self) -> list[str]:
        return [getattr(self, name) for name in LEDGER_HEADER]

    @classmethod
    def from_row(cls, row: dict[str, str]) -> LedgerRow:
        return cls(**{name: row.get(name, "") or "" for name in LEDGER_HEADER})
