"""Load and validate the gate catalogue."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import yaml  # type: ignore[import-untyped]

from gatechain.artifacts.locator import ArtifactPolicy
from gatechain.gates.types import GATE_KINDS, GateDefinition, UnknownGateError
from gatechain.validators.factory import ValidatorSpec, parse_validator_spec

if TYPE_CHECKING:
    from pathlib import Path

_NO_PLACEHOLDERS = {"type": "placeholders"}
_SEMANTIC = [
    {"type": "density", "min": 20, "unit": "words"},
    _NO_PLACEHOLDERS,
    {"type": "vocabulary", "min_ratio": 0.4},
]
_PLAN_CANDIDATES = [
    "docs/implementation/plans/{task}-plan.md",
    "implementation-plan-{task}.md",
]
_SCREENSHOT_PATTERN = r"((?:docs|screenshots?)/[^\s)\]\"',]+\.(?:png|jpg|jpeg|webp))"
_FILES_TO_CHANGE = {
    "type": "section",
    "name": "files to change",
    "patterns": [r"Files?\s+to\s+Change", r"Files?\s+Changed", r"Implementation\s+Log"],
}
_GIT_HEAD_PATTERN = r"git\s+rev-parse|HEAD\s+SHA|HEAD\s+Hash|HEAD\s+Commit|commit\s+hash|Git\s+HEAD"
# Gate ids name evidence files, so they stay single path components.
_GATE_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

# Keep this literal deterministic; it is written with sort_keys.
GATES_TEMPLATE: dict[str, Any] = {
    "chain": [
        "pm-research",
        "pm-prd",
        "pm-feasibility",
        "dupe-check",
        "physical-audit",
        "research",
        "lint",
        "tdd",
        "security",
        "docs",
        "pm-approval",
    ],
    "gates": {
        "pm-research": {
            "title": "PM-G1 User Research",
            "kind": "document",
            "artifact": {
                "label": "user research log",
                "candidates": [
                    "pm-research-{task}.log",
                    "docs/pm/{task}-user-research.md",
                    "docs/pm-research/{task}-user-research.md",
                ],
            },
            "validators": [
                *_SEMANTIC,
                {
                    "type": "pattern",
                    "name": "research evidence",
                    "pattern": r"interview|survey\s+responses?|(?:existing|customer|user)\s+feedback",
                },
                {"type": "pattern", "name": "pain points", "pattern": r"pain\s+points?"},
            ],
        },
        "pm-prd": {
            "title": "PM-G2 Approved PRD",
            "kind": "document",
            "depends_on": ["pm-research"],
            "artifact": {
                "label": "product requirements document",
                "candidates": ["prd-{task}.md", "docs/pm/{task}-prd.md"],
            },
            "validators": [
                *_SEMANTIC,
                {"type": "pattern", "name": "acceptance criteria", "pattern": r"acceptance\s+criteria"},
                {"type": "pattern", "name": "success metrics", "pattern": r"success\s+metrics?|\bkpis?\b"},
                {"type": "pattern", "name": "edge cases", "pattern": r"edge\s+cases?|error\s+handling|failure\s+scenarios?"},
                {
                    "type": "pattern",
                    "name": "approval signature",
                    "pattern": r"\bAPPROVED\b",
                    "case_sensitive": True,
                },
            ],
        },
        "pm-feasibility": {
            "title": "PM-G3 Feasibility Audit",
            "kind": "document",
            "depends_on": ["pm-prd"],
            "artifact": {
                "label": "feasibility audit",
                "candidates": ["feasibility-{task}.log", "docs/pm/{task}-feasibility.md"],
            },
            "validators": [
                *_SEMANTIC,
                {
                    "type": "pattern",
                    "name": "technical sign-off",
                    "pattern": r"coder\s+sign-off|technical\s+approval|feasibility\s+confirmed",
                },
                {
                    "type": "pattern",
                    "name": "risk assessment",
                    "pattern": r"risk:?\s*(?:low|medium|high)|(?:low|medium|high)\s+risk",
                },
            ],
        },
        "pm-approval": {
            "title": "PM-G6 Atomic Ledger Approval",
            "kind": "document",
            "depends_on": ["pm-prd"],
            "artifact": {"label": "project ledger", "candidates": ["PROJECT_LEDGER.md"]},
            "validators": [
                {
                    "type": "pattern",
                    "name": "deploy approval",
                    "pattern": r"APPROVED_FOR_DEPLOY",
                    "case_sensitive": True,
                },
            ],
        },
        "dupe-check": {
            "title": "G0 Duplicate Check",
            "kind": "document",
            "artifact": {
                "label": "duplicate check log",
                "candidates": [
                    "audit-gate-0-{task}.log",
                    "docs/reports/dupe-check-{task}.md",
                    "audit-gate-0-dupe-check.log",
                ],
            },
            "validators": [
                *_SEMANTIC,
                {
                    "type": "pattern",
                    "name": "no-duplicate affirmation",
                    "pattern": r"No duplicates|Unique feature|No overlap",
                },
                {"type": "pattern", "name": "web searches", "pattern": r"https?://", "min": 3},
                {"type": "pattern", "name": "dependency analysis", "pattern": r"dependency|package"},
                {"type": "pattern", "name": "edge cases", "pattern": r"edge case|risk"},
            ],
        },
        "duplicate-work": {
            "title": "G0 Duplicate Work Search",
            "kind": "duplicate_work",
            "params": {"ledger_file": "PROJECT_LEDGER.md"},
        },
        "physical-audit": {
            "title": "G1 Physical Audit",
            "kind": "document",
            "artifact": {
                "label": "physical audit report",
                "candidates": [
                    "docs/reports/physical-audit-{task}.md",
                    "docs/reports/phase_1_assessment_report_TASK_{task_norm}.md",
                    "physical-audit-{task}.md",
                ],
            },
            "validators": [
                {"type": "freshness"},
                {"type": "density", "min": 50, "unit": "lines"},
                {
                    "type": "section",
                    "name": "current state",
                    "patterns": [r"Current\s+State", r"Code\s+State", r"Analysis"],
                },
                {"type": "pattern", "name": "git HEAD", "pattern": _GIT_HEAD_PATTERN},
                {
                    "type": "section",
                    "name": "production state",
                    "patterns": [r"Production", r"Live", r"Deploy"],
                },
                {
                    "type": "section",
                    "name": "files and dependencies",
                    "patterns": [r"Files", r"Dependencies", r"Dependency", r"Changed"],
                },
                {
                    "type": "section",
                    "name": "existing components",
                    "patterns": [
                        r"Existing\s+Components?",
                        r"Component\s+Inventor",
                        r"Related\s+Components?",
                        r"Global\s+(?:Layout|Design|Arch)",
                    ],
                },
                _NO_PLACEHOLDERS,
            ],
        },
        "research": {
            "title": "G2 External Research",
            "kind": "document",
            "artifact": {"label": "research report", "candidates": ["docs/research/{task}-research.md"]},
            "validators": [
                {"type": "pattern", "name": "search blocks", "pattern": r"^##\s+Search\s+#\d+", "min": 3},
                {"type": "pattern", "name": "cited sources", "pattern": r"Source:\s*\[.+?\]\(.+?\)", "min": 5},
                {"type": "pattern", "name": "alternatives considered", "pattern": r"Alternatives?\s+Considered"},
                {"type": "density", "min": 1000, "unit": "words"},
                {"type": "pattern", "name": "external links", "pattern": r"https?://[^\s)]+", "min": 3},
                {"type": "pattern", "name": "key finding", "pattern": r"Key Finding"},
            ],
        },
        "plan": {
            "title": "G4 Plan Approval",
            "kind": "document",
            "artifact": {"label": "implementation plan", "candidates": list(_PLAN_CANDIDATES)},
            "validators": [
                _FILES_TO_CHANGE,
                {"type": "section", "name": "success metric", "patterns": [r"Success\s+Metric"]},
                {"type": "section", "name": "failure signal", "patterns": [r"Failure\s+Signal"]},
                {"type": "pattern", "name": "alternatives considered", "pattern": r"Alternatives?\s+Considered"},
                {
                    "type": "pattern",
                    "name": "plan approval",
                    "pattern": r"Approved by:|Status:\s*APPROVED|✅\s*Approved",
                },
            ],
        },
        "scope": {
            "title": "G3 Scope Validation",
            "kind": "scope",
            "depends_on": ["plan"],
            "artifact": {"label": "implementation plan", "candidates": list(_PLAN_CANDIDATES)},
            "validators": [_FILES_TO_CHANGE],
            "params": {"threshold": 30, "max_major_unplanned": 3},
        },
        "lint": {"title": "G5 Strict Lint", "kind": "lint"},
        "test-quality": {
            "title": "G6 Test Quality",
            "kind": "mock_coverage",
            "params": {
                "integrations": {
                    "openai": ["openai"],
                    "stripe": ["stripe", "sk_live_", "sk_test_"],
                    "supabase": ["supabase"],
                    "twilio": ["twilio"],
                },
            },
        },
        "security": {
            "title": "G7 Security",
            "kind": "security",
            "artifact": {
                "label": "OWASP checklist",
                "candidates": ["docs/security/{task}-owasp-checklist.md"],
                "required": False,
            },
            "validators": [
                {
                    "type": "checklist",
                    "name": "OWASP checklist",
                    "patterns": [r"OWASP", r"Checklist", r"Security"],
                    "min_items": 10,
                },
            ],
        },
        "tdd": {"title": "G8 Test-Driven Development", "kind": "tests", "params": {"min_coverage": 80}},
        "accessibility": {"title": "G9 Accessibility", "kind": "accessibility"},
        "performance": {
            "title": "G10 Performance",
            "kind": "performance",
            "params": {"runs": 5, "baseline": 80},
        },
        "production": {
            "title": "G11 Production Verification",
            "kind": "document",
            "artifact": {
                "label": "production verification report",
                "candidates": [
                    "docs/reports/production-verification-{task}.md",
                    "docs/reports/production_verification_TASK_{task_norm}.md",
                    "docs/reports/production_verification_TASK_{task}.md",
                ],
            },
            "validators": [
                {"type": "reachability", "name": "production url"},
                {
                    "type": "referenced_files",
                    "name": "screenshots",
                    "pattern": _SCREENSHOT_PATTERN,
                    "min_bytes": 5000,
                    "min_count": 2,
                },
                {
                    "type": "checklist",
                    "name": "manual verification",
                    "patterns": [r"Manual\s+Verification", r"Live\s+Browser", r"Production\s+Checklist"],
                },
                {"type": "pattern", "name": "deployment id", "pattern": r"Deployment\s+(?:ID|Timestamp|Time)"},
                {"type": "pattern", "name": "health check", "pattern": r"Health\s+Check"},
                {"type": "pattern", "name": "git HEAD", "pattern": _GIT_HEAD_PATTERN, "severity": "warning"},
            ],
        },
        "docs": {
            "title": "G12 Documentation",
            "kind": "document",
            "artifact": {
                "label": "completion document",
                "candidates": [
                    "docs/implementation/{task}-complete.md",
                    "docs/implementation/gate-12/{task}-gate-12.md",
                ],
            },
            "validators": [
                {"type": "placeholders", "markers": ["TODO", "TBD", "FIXME", "XXX", "PLACEHOLDER"]},
                {"type": "section_density", "min": 200},
                {"type": "pattern", "name": "code block", "pattern": r"```[\s\S]*?```"},
                {
                    "type": "pattern",
                    "name": "file references",
                    "pattern": r"`[^`]*\.(?:py|ts|js|tsx|jsx|md|json)`",
                    "min": 2,
                },
                {"type": "numeric", "name": "test results", "claim": r"\b(?:tests?|passed|failed|coverage|assertions?)\b"},
                {"type": "section", "name": "implementation", "patterns": [r"Implementation"]},
            ],
        },
        "browser": {
            "title": "G13 Browser Verification",
            "kind": "document",
            "artifact": {
                "label": "browser test report",
                "candidates": [
                    "docs/reports/browser-test-{task}.md",
                    "docs/reports/browser_test_{task_norm}.md",
                    "docs/reports/browser_test_ENTRY_{task_norm}.md",
                ],
            },
            "validators": [
                {"type": "reachability", "name": "preview url"},
                {
                    "type": "referenced_files",
                    "name": "screenshots",
                    "pattern": _SCREENSHOT_PATTERN,
                    "min_bytes": 5000,
                },
                {"type": "numeric", "name": "console errors", "claim": r"console\s+errors?", "max": 0},
                {
                    "type": "checklist",
                    "name": "user flow",
                    "patterns": [r"User\s+Flow", r"Test\s+Flow", r"Walkthrough\s+Checklist", r"Test\s+Checklist"],
                },
                {
                    "type": "pattern",
                    "name": "recording",
                    "pattern": r"\.webm|\.mp4|recording\b|browser.*record",
                    "severity": "warning",
                },
            ],
        },
        "code-review": {"title": "G14 PM Code Review", "kind": "approval"},
    },
}


class _NoAliasDumper(yaml.SafeDumper):
    """Shared template fragments are written out in full, never as YAML anchors."""

    def ignore_aliases(self, data: Any) -> bool:
        return True


CATALOG_REASON_PARSE_ERROR = "CATALOG_PARSE_ERROR"
CATALOG_REASON_SCHEMA_INVALID = "CATALOG_SCHEMA_INVALID"


class CatalogError(ValueError):
    """Gate catalogue validation error."""

    reason_code: str

    def __init__(self, message: str, reason_code: str = CATALOG_REASON_SCHEMA_INVALID) -> None:
        super().__init__(message)
        self.reason_code = reason_code


@dataclass(frozen=True)
class GateCatalog:
    gates: dict[str, GateDefinition]
    chain: tuple[str, ...]

    def get(self, gate_id: str) -> GateDefinition:
        try:
            return self.gates[gate_id]
        except KeyError:
            raise UnknownGateError(
                f"Unknown gate `{gate_id}`. Known gates: {', '.join(sorted(self.gates))}"
            ) from None


def catalog_path_for_repo(repo_root: Path) -> Path:
    """Return canonical gate catalogue path for a repository."""
    return repo_root.resolve() / ".gatechain" / "gates.yaml"


def ensure_default_catalog(repo_root: Path, *, force: bool = False) -> Path:
    """Write the built-in catalogue as YAML deterministically."""
    output_path = catalog_path_for_repo(repo_root)
    if output_path.exists() and not force:
        raise FileExistsError(f"Gate catalogue already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    rendered = yaml.dump(GATES_TEMPLATE, Dumper=_NoAliasDumper, sort_keys=True, allow_unicode=True)
    output_path.write_text(rendered, encoding="utf-8")
    return output_path


def load_catalog(repo_root: Path) -> GateCatalog:
    """Load ``.gatechain/gates.yaml`` if present, else the built-in template."""
    path = catalog_path_for_repo(repo_root)
    if not path.exists():
        return parse_catalog(GATES_TEMPLATE)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise CatalogError(f"gates.yaml parse error: {exc}", CATALOG_REASON_PARSE_ERROR) from exc
    if not isinstance(raw, dict):
        raise CatalogError(
            "gates.yaml parse error: expected mapping at top level",
            CATALOG_REASON_PARSE_ERROR,
        )
    return parse_catalog(raw)


def parse_catalog(raw: dict[str, Any]) -> GateCatalog:
    gates_raw = raw.get("gates")
    if not isinstance(gates_raw, dict) or not gates_raw:
        raise CatalogError("catalogue missing required non-empty `gates` mapping")

    gates: dict[str, GateDefinition] = {}
    for gate_id in sorted(gates_raw):
        gates[str(gate_id)] = _parse_gate(str(gate_id), gates_raw[gate_id])

    for gate in gates.values():
        for dep in gate.depends_on:
            if dep not in gates:
                raise CatalogError(f"gates.{gate.id}.depends_on references unknown gate `{dep}`")
            if dep == gate.id:
                raise CatalogError(f"gates.{gate.id} cannot depend on itself")
    _reject_cycles(gates)

    chain_raw = raw.get("chain")
    if not isinstance(chain_raw, list) or not chain_raw:
        raise CatalogError("catalogue missing required non-empty `chain` list")
    chain = tuple(str(item).strip() for item in chain_raw)
    unknown = [g for g in chain if g not in gates]
    if unknown:
        raise CatalogError(f"chain references unknown gate(s): {', '.join(unknown)}")
    if len(set(chain)) != len(chain):
        raise CatalogError("chain lists a gate more than once")

    return GateCatalog(gates=gates, chain=chain)


def _parse_gate(gate_id: str, entry: Any) -> GateDefinition:
    where = f"gates.{gate_id}"
    if not _GATE_ID_RE.match(gate_id):
        raise CatalogError(f"{where}: gate ids may only use letters, digits, `.`, `_` and `-`")
    if not isinstance(entry, dict):
        raise CatalogError(f"{where} must be a mapping")

    title = str(entry.get("title", "")).strip()
    if not title:
        raise CatalogError(f"{where}.title must be a non-empty string")
    kind = str(entry.get("kind", "")).strip()
    if kind not in GATE_KINDS:
        raise CatalogError(f"{where}.kind must be one of {list(GATE_KINDS)}, got `{kind}`")

    depends_on = _normalize_string_list(entry.get("depends_on", []), f"{where}.depends_on")
    artifact = _parse_artifact(entry.get("artifact"), f"{where}.artifact")

    validators_raw = entry.get("validators", [])
    if not isinstance(validators_raw, list):
        raise CatalogError(f"{where}.validators must be a list")
    validators: list[ValidatorSpec] = []
    for index, raw in enumerate(validators_raw):
        try:
            validators.append(parse_validator_spec(raw, f"{where}.validators[{index}]"))
        except ValueError as exc:
            raise CatalogError(str(exc)) from exc
    if validators and artifact is None:
        raise CatalogError(f"{where} declares validators but no artifact to run them on")

    params = entry.get("params", {})
    if not isinstance(params, dict):
        raise CatalogError(f"{where}.params must be a mapping")

    return GateDefinition(
        id=gate_id,
        title=title,
        kind=kind,
        depends_on=tuple(depends_on),
        artifact=artifact,
        validators=tuple(validators),
        params=dict(params),
    )


def _parse_artifact(raw: Any, where: str) -> ArtifactPolicy | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise CatalogError(f"{where} must be a mapping")
    label = str(raw.get("label", "")).strip()
    if not label:
        raise CatalogError(f"{where}.label must be a non-empty string")
    candidates = _normalize_string_list(raw.get("candidates"), f"{where}.candidates")
    if not candidates:
        raise CatalogError(f"{where}.candidates must be a non-empty list")
    for candidate in candidates:
        try:
            candidate.format(task="ENTRY-0", task_norm="0")
        except (KeyError, IndexError, ValueError) as exc:
            raise CatalogError(
                f"{where}.candidates entry `{candidate}` may only use {{task}} and {{task_norm}}"
            ) from exc
    return ArtifactPolicy(
        label=label,
        candidates=tuple(candidates),
        required=bool(raw.get("required", True)),
    )


def _normalize_string_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise CatalogError(f"{field_name} must be a list of strings")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise CatalogError(f"{field_name} must contain non-empty strings")
        output.append(item.strip())
    return output


def _reject_cycles(gates: dict[str, GateDefinition]) -> None:
    visiting: set[str] = set()
    done: set[str] = set()

    def visit(gate_id: str, path: list[str]) -> None:
        if gate_id in done:
            return
        if gate_id in visiting:
            raise CatalogError(f"dependency cycle: {' -> '.join([*path, gate_id])}")
        visiting.add(gate_id)
        for dep in gates[gate_id].depends_on:
            visit(dep, [*path, gate_id])
        visiting.discard(gate_id)
        done.add(gate_id)

    for gate_id in sorted(gates):
        visit(gate_id, [])
