"""Evidence store, tickets, ledger and integrity manifest."""

from gatechain.evidence.integrity import IntegrityError, check_integrity, seal_manifest
from gatechain.evidence.store import EvidenceStore, RecordResult
from gatechain.evidence.types import EvidenceTicket, LedgerRow, compute_signature
from gatechain.evidence.verify import VerificationReport, verify_ledger, verify_ticket

__all__ = [
    "EvidenceStore",
    "EvidenceTicket",
    "IntegrityError",
    "LedgerRow",
    "RecordResult",
    "VerificationReport",
    "check_integrity",
    "compute_signature",
    "seal_manifest",
    "verify_ledger",
    "verify_ticket",
]
