"""SHA-256 manifest of protected files; any mismatch halts the chain."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from gatechain.artifacts.canonical_json import sha256_file
from gatechain.schemas.validator import validate_data
from gatechain.utils.json_output import write_json_strict

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "1.0"


class IntegrityError(RuntimeError):
    """A protected file is missing or no longer matches its recorded digest."""

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or []


@dataclass
class IntegrityReport:
    manifest: Path
    verified: list[str] = field(default_factory=list)
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def verify_manifest(manifest_path: Path, workspace_root: Path) -> IntegrityReport:
    """Compare every file listed in the manifest with its recorded digest."""
    report = IntegrityReport(manifest=manifest_path)
    if not manifest_path.is_file():
        report.problems.append(f"Integrity manifest not found: {manifest_path}")
        return report
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
        validate_data(data, "integrity_manifest", strict=True)
    except (json.JSONDecodeError, ValueError) as e:
        report.problems.append(f"Integrity manifest {manifest_path} is invalid: {e}")
        return report

    for relative in sorted(data["scripts"]):
        expected = data["scripts"][relative]
        path = workspace_root / relative
        if not path.is_file():
            report.problems.append(f"{relative}: protected file is missing")
            continue
        actual = sha256_file(path)
        if actual != expected:
            report.problems.append(f"{relative}: modified (expected {expected[:12]}, got {actual[:12]})")
        else:
            report.verified.append(relative)
    return report


def check_integrity(manifest_path: Path, workspace_root: Path) -> IntegrityReport:
    """Verify the manifest.

    Raises:
        IntegrityError: If any protected file is missing or modified, or the manifest is unusable
    """
    report = verify_manifest(manifest_path, workspace_root)
    if not report.ok:
        logger.warning("integrity check failed: %d problem(s)", len(report.problems))
        raise IntegrityError(
            f"Integrity check failed for {len(report.problems)} item(s); the chain is halted",
            report.problems,
        )
    logger.debug("integrity verified for %d file(s)", len(report.verified))
    return report


def seal_manifest(manifest_path: Path, workspace_root: Path, paths: list[Path]) -> dict[str, str]:
    """Record current digests of ``paths`` (relative to the workspace root).

    Raises:
        FileNotFoundError: If a path is not an existing file
        ValueError: If a path lies outside the workspace root
        RuntimeError: If the manifest fails schema validation
    """
    root = workspace_root.resolve()
    scripts: dict[str, str] = {}
    for raw in paths:
        path = raw if raw.is_absolute() else root / raw
        path = path.resolve()
        if not path.is_file():
            raise FileNotFoundError(f"Cannot seal {raw}: not a file")
        try:
            relative = path.relative_to(root).as_posix()
        except ValueError as e:
            raise ValueError(f"Cannot seal {raw}: outside workspace root {root}") from e
        scripts[relative] = sha256_file(path)

    write_json_strict(
        data={"version": MANIFEST_VERSION, "scripts": scripts},
        output_path=manifest_path,
        schema_name="integrity_manifest",
    )
    return scripts
