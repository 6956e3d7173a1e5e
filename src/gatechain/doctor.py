"""gatechain installation and environment checker (doctor command).

Reports which probe tools are on PATH and whether the bundled JSON schemas
can be loaded. Missing tools are warnings: gates degrade to estimates or
violations rather than crashing, but the user should know in advance.
"""

from __future__ import annotations

import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Literal

from gatechain import __version__
from gatechain.config import GatechainConfig, make_timestamp
from gatechain.gates.catalog import CatalogError, load_catalog
from gatechain.probes.exec import tool_available
from gatechain.probes.tools import DEFAULT_COMMANDS
from gatechain.utils.json_output import write_json_strict
from gatechain.utils.schema_registry import SchemaRegistry

REQUIRED_SCHEMAS = ("doctor_report", "evidence_ticket", "integrity_manifest", "verdict")

# Which gate kinds lose fidelity when a tool is missing.
TOOL_CONSUMERS: dict[str, str] = {
    "git": "scope, duplicate-work and freshness checks",
    "gh": "PM approval gates",
}

TOOL_HINTS: dict[str, str] = {
    "git": "Install git and run inside a repository",
    "gh": "Install the GitHub CLI and run `gh auth login`",
    "ruff": "pip install ruff",
    "pytest": "pip install pytest pytest-cov",
    "gitleaks": "Install gitleaks (https://github.com/gitleaks/gitleaks)",
    "pip-audit": "pip install pip-audit",
    "axe": "npm install -g @axe-core/cli",
    "lighthouse": "npm install -g lighthouse",
}


@dataclass
class CheckItem:
    """Individual check result."""

    id: str
    status: Literal["pass", "fail", "warn"]
    message: str
    remediation: list[str] = field(default_factory=list)


@dataclass
class DoctorReport:
    schema_version: str = "1.0"
    generated_at: str = ""
    status: Literal["passed", "failed"] = "passed"
    checks: list[CheckItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "schema_version": self.schema_version,
            "generated_at": self.generated_at,
            "status": self.status,
            "checks": [asdict(c) for c in self.checks],
        }


def _tool_executables(config: GatechainConfig) -> dict[str, str]:
    """Map of executable name to what uses it, honouring tool overrides."""
    executables: dict[str, str] = {"git": TOOL_CONSUMERS["git"], "gh": TOOL_CONSUMERS["gh"]}
    for name in sorted(DEFAULT_COMMANDS):
        argv = config.tool_command(name, DEFAULT_COMMANDS[name])
        executables.setdefault(argv[0], f"{name} probe")
    return executables


def _check_tool(executable: str, used_by: str) -> CheckItem:
    if tool_available(executable):
        return CheckItem(
            id=f"tool:{executable}",
            status="pass",
            message=f"`{executable}` found on PATH ({used_by})",
        )
    hint = TOOL_HINTS.get(executable)
    return CheckItem(
        id=f"tool:{executable}",
        status="warn",
        message=f"`{executable}` not found; {used_by} will be estimated or blocked",
        remediation=[hint] if hint else [],
    )


def _check_schema_registry() -> CheckItem:
    """Schema bundling is critical: without it no verdict or ticket can be written."""
    registry = SchemaRegistry()
    missing = sorted(set(REQUIRED_SCHEMAS) - set(registry.available))
    if missing:
        return CheckItem(
            id="schema_registry",
            status="fail",
            message=f"Missing required schemas: {missing}. Found: {len(registry.available)} schemas",
            remediation=[
                "Schema bundling is broken in wheel packaging.",
                "Ensure pyproject.toml lists src/gatechain_schemas under [tool.hatch.build.targets.wheel].",
                "Then reinstall: pip install --force-reinstall -e .",
            ],
        )
    try:
        for name in REQUIRED_SCHEMAS:
            registry.get_json(name)
    except (KeyError, ValueError, RuntimeError) as e:
        return CheckItem(
            id="schema_registry",
            status="fail",
            message=f"Schema failed to load: {e}",
            remediation=["Reinstall gatechain: pip install --force-reinstall -e ."],
        )
    return CheckItem(
        id="schema_registry",
        status="pass",
        message=f"Schema registry OK: {len(registry.available)} schemas available",
    )


def _check_catalog(config: GatechainConfig) -> CheckItem:
    try:
        catalog = load_catalog(config.workspace_root)
    except CatalogError as e:
        return CheckItem(
            id="gate_catalog",
            status="fail",
            message=f"[{e.reason_code}] {e}",
            remediation=["Fix .gatechain/gates.yaml or regenerate it with `gatechain init --force`."],
        )
    return CheckItem(
        id="gate_catalog",
        status="pass",
        message=f"Gate catalogue OK: {len(catalog.gates)} gates, chain of {len(catalog.chain)}",
    )


def run_doctor(config: GatechainConfig, out_path: Path | None = None) -> DoctorReport:
    """Run every check; optionally write the report as schema-validated JSON."""
    report = DoctorReport(generated_at=make_timestamp(config.timestamp_mode))
    report.checks.append(
        CheckItem(
            id="gatechain_import",
            status="pass",
            message=f"gatechain {__version__} on Python {platform.python_version()}",
        )
    )
    report.checks.append(_check_schema_registry())
    report.checks.append(_check_catalog(config))
    for executable, used_by in _tool_executables(config).items():
        report.checks.append(_check_tool(executable, used_by))

    report.status = "failed" if any(c.status == "fail" for c in report.checks) else "passed"

    if out_path is not None:
        write_json_strict(data=report.to_dict(), output_path=out_path, schema_name="doctor_report")
    return report
