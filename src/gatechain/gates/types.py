"""Gate domain types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from gatechain.artifacts.locator import ArtifactPolicy, LocatedArtifact
from gatechain.validators.factory import ValidatorSpec

if TYPE_CHECKING:
    from gatechain.config import GatechainConfig
    from gatechain.evidence.store import EvidenceStore
    from gatechain.probes.toolbox import ProbeSet

Outcome = Literal["PASS", "BLOCKED"]
ViolationKind = Literal[
    "missing_artifact",
    "content",
    "probe_failure",
    "probe_unavailable",
    "dependency",
]

GATE_KINDS: tuple[str, ...] = (
    "document",
    "scope",
    "performance",
    "mock_coverage",
    "approval",
    "lint",
    "tests",
    "security",
    "accessibility",
    "duplicate_work",
)

# Inputs a kind cannot run without; params may also satisfy ``target_url`` via ``url``.
REQUIRED_INPUTS: dict[str, tuple[str, ...]] = {
    "approval": ("pr_number",),
    "performance": ("target_url",),
    "accessibility": ("target_url",),
}


class UnknownGateError(ValueError):
    """Raised when a gate id is not in the catalogue."""


class MissingGateInput(ValueError):
    """Raised when a gate-specific argument was not supplied."""


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    message: str
    evidence: str | None = None


@dataclass(frozen=True)
class GateDefinition:
    """Static, declarative description of one gate."""

    id: str
    title: str
    kind: str
    depends_on: tuple[str, ...] = ()
    artifact: ArtifactPolicy | None = None
    validators: tuple[ValidatorSpec, ...] = ()
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GateInputs:
    """Gate-specific invocation arguments."""

    base_ref: str | None = None
    head_ref: str | None = None
    pr_number: int | None = None
    target_url: str | None = None


@dataclass(frozen=True)
class Verdict:
    """Immutable outcome of one evaluation."""

    gate_id: str
    gate_title: str
    gate_kind: str
    task_id: str
    timestamp: str
    outcome: Outcome
    violations: tuple[Violation, ...] = ()
    warnings: tuple[str, ...] = ()
    metrics: dict[str, Any] = field(default_factory=dict)
    artifact: str | None = None

    @property
    def passed(self) -> bool:
        return self.outcome == "PASS"


@dataclass
class GateCheck:
    """Accumulator a kind handler fills in."""

    violations: list[Violation] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)

    def block(self, kind: ViolationKind, message: str, evidence: str | None = None) -> None:
        self.violations.append(Violation(kind=kind, message=message, evidence=evidence))

    def warn(self, message: str) -> None:
        self.warnings.append(message)


@dataclass(frozen=True)
class GateContext:
    """Everything a kind handler may consult during one evaluation."""

    definition: GateDefinition
    task_id: str
    inputs: GateInputs
    config: GatechainConfig
    probes: ProbeSet
    store: EvidenceStore
    artifact: LocatedArtifact | None = None

    @property
    def params(self) -> dict[str, Any]:
        return self.definition.params

    def target_url(self) -> str | None:
        return self.inputs.target_url or self.params.get("url")
