"""Probe adapters for external analysis tools.

Each adapter owns the parsing of one tool's machine-readable output and
returns a ``ProbeResult``. A missing executable never raises: the adapter
returns an unavailable result with flagged fallback metrics instead.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from gatechain.probes.exec import ExecResult, ToolNotFoundError, run_command
from gatechain.probes.types import ProbeResult, clip_output
from gatechain.utils.files import iter_workspace_files, read_text_lenient

logger = logging.getLogger(__name__)

DEFAULT_COMMANDS: dict[str, tuple[str, ...]] = {
    "lint": ("ruff", "check", "--output-format", "json", "."),
    "tests": ("pytest", "-q", "--cov", "--cov-report=term"),
    "secrets": (
        "gitleaks",
        "detect",
        "--source",
        ".",
        "--no-git",
        "--report-format",
        "json",
        "--report-path",
        "-",
    ),
    "audit": ("pip-audit", "-f", "json"),
    "accessibility": ("axe", "{url}", "--stdout"),
    "performance": (
        "lighthouse",
        "{url}",
        "--output=json",
        "--output-path=stdout",
        "--quiet",
        "--chrome-flags=--headless",
    ),
}

COVERAGE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"All files[^\d]*(\d+(?:\.\d+)?)\s*%"),
    re.compile(r"Statements\s*:\s*(\d+(?:\.\d+)?)\s*%"),
    re.compile(r"Lines\s*:\s*(\d+(?:\.\d+)?)\s*%"),
    re.compile(r"^TOTAL\s+.*?(\d+(?:\.\d+)?)%", re.MULTILINE),
    re.compile(r"coverage[^\d]*(\d+(?:\.\d+)?)\s*%", re.IGNORECASE),
)

SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"api[_-]?key\s*[=:]\s*['\"][^'\"]{20,}['\"]", re.IGNORECASE),
    re.compile(r"secret\s*[=:]\s*['\"][^'\"]{20,}['\"]", re.IGNORECASE),
    re.compile(r"password\s*[=:]\s*['\"][^'\"]+['\"]", re.IGNORECASE),
    re.compile(r"token\s*[=:]\s*['\"][^'\"]{20,}['\"]", re.IGNORECASE),
    re.compile(r"sk_live_[a-zA-Z0-9]{24,}"),
    re.compile(r"sk_test_[a-zA-Z0-9]{24,}"),
    re.compile(r"AIza[0-9A-Za-z_-]{35}"),
    re.compile(r"AKIA[0-9A-Z]{16}"),
)

SECRET_SCAN_SUFFIXES = (
    ".py", ".ts", ".tsx", ".js", ".jsx", ".json", ".yaml", ".yml", ".toml", ".env", ".env.local"
)


def parse_coverage(output: str) -> float | None:
    """First coverage percentage recognised in test runner output."""
    for pattern in COVERAGE_PATTERNS:
        match = pattern.search(output)
        if match:
            return float(match.group(1))
    return None


def _load_json(text: str) -> Any:
    text = text.strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


class CommandProbe:
    """Shared plumbing: expand the argv template and run it with the timeout."""

    tool_label = "tool"

    def __init__(self, argv: Sequence[str], *, cwd: Path, timeout: float) -> None:
        self.argv = tuple(argv)
        self.cwd = cwd
        self.timeout = timeout

    @property
    def executable(self) -> str:
        return self.argv[0]

    def _execute(self, **substitutions: str) -> ExecResult | None:
        argv = [part.format(**substitutions) if substitutions else part for part in self.argv]
        try:
            return run_command(argv, cwd=self.cwd, timeout=self.timeout, check=False)
        except ToolNotFoundError:
            logger.warning("%s executable `%s` not found", self.tool_label, self.executable)
            return None

    def _timed_out(self, result: ExecResult) -> ProbeResult:
        return ProbeResult(
            success=False,
            metrics={"timed_out": True},
            raw_output=clip_output(result.output),
        )


class LintProbe(CommandProbe):
    """Linter emitting eslint-style or ruff-style JSON on stdout."""

    tool_label = "linter"

    def run(self) -> ProbeResult:
        result = self._execute()
        if result is None:
            return ProbeResult.unavailable(
                self.executable, fallback={"error_count": 0, "warning_count": 0}
            )
        if result.timed_out:
            return self._timed_out(result)

        payload = _load_json(result.stdout)
        if not isinstance(payload, list):
            return ProbeResult(
                success=False,
                metrics={"exit_code": result.returncode, "parse_error": True},
                raw_output=clip_output(result.output),
            )

        error_count = 0
        warning_count = 0
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            if "errorCount" in entry or "warningCount" in entry:
                # eslint: one entry per file with counters
                error_count += int(entry.get("errorCount", 0))
                warning_count += int(entry.get("warningCount", 0))
            else:
                # ruff: one entry per diagnostic, no severity levels
                error_count += 1

        return ProbeResult(
            success=error_count == 0,
            metrics={"error_count": error_count, "warning_count": warning_count},
            raw_output=clip_output(result.stdout),
        )


class TestProbe(CommandProbe):
    """Test runner judged by exit code, with coverage scraped from its output."""

    __test__ = False  # not a pytest test class
    tool_label = "test runner"

    def run(self) -> ProbeResult:
        result = self._execute()
        if result is None:
            return ProbeResult.unavailable(self.executable, fallback={"coverage": None})
        if result.timed_out:
            return self._timed_out(result)
        return ProbeResult(
            success=result.returncode == 0,
            metrics={"exit_code": result.returncode, "coverage": parse_coverage(result.output)},
            raw_output=clip_output(result.output),
        )


class SecretScanProbe(CommandProbe):
    """gitleaks, falling back to a regex scan of the workspace."""

    tool_label = "secret scanner"

    def run(self) -> ProbeResult:
        result = self._execute()
        if result is None:
            findings = scan_for_secrets(self.cwd)
            return ProbeResult(
                success=not findings,
                metrics={"findings": len(findings), "locations": findings[:20], "estimated": True},
                available=False,
                warning=f"{self.executable} unavailable; used fallback regex secret scan",
            )
        if result.timed_out:
            return self._timed_out(result)

        payload = _load_json(result.stdout)
        if payload is None and result.returncode == 0:
            payload = []
        if not isinstance(payload, list):
            return ProbeResult(
                success=False,
                metrics={"exit_code": result.returncode, "parse_error": True},
                raw_output=clip_output(result.output),
            )
        locations = [
            f"{item.get('File', '?')}:{item.get('StartLine', '?')} ({item.get('RuleID', 'secret')})"
            for item in payload
            if isinstance(item, dict)
        ]
        return ProbeResult(
            success=not locations,
            metrics={"findings": len(locations), "locations": locations[:20]},
            raw_output=clip_output("\n".join(locations)),
        )


def scan_for_secrets(root: Path) -> list[str]:
    """Regex secret scan; returns ``path:line`` for every hit."""
    hits: list[str] = []
    for path in iter_workspace_files(root, SECRET_SCAN_SUFFIXES):
        text = read_text_lenient(path)
        for lineno, line in enumerate(text.splitlines(), 1):
            if any(pattern.search(line) for pattern in SECRET_PATTERNS):
                hits.append(f"{path.relative_to(root).as_posix()}:{lineno}")
    return hits


class DependencyAuditProbe(CommandProbe):
    """npm audit or pip-audit JSON, reduced to critical/high counts."""

    tool_label = "dependency auditor"

    def run(self) -> ProbeResult:
        result = self._execute()
        if result is None:
            return ProbeResult.unavailable(self.executable, fallback={"critical": 0, "high": 0})
        if result.timed_out:
            return self._timed_out(result)

        payload = _load_json(result.stdout)
        counts = _audit_counts(payload)
        if counts is None:
            return ProbeResult(
                success=False,
                metrics={"exit_code": result.returncode, "parse_error": True},
                raw_output=clip_output(result.output),
            )
        critical, high = counts
        return ProbeResult(
            success=critical == 0 and high == 0,
            metrics={"critical": critical, "high": high},
            raw_output=clip_output(result.stdout),
        )


def _audit_counts(payload: Any) -> tuple[int, int] | None:
    if not isinstance(payload, dict):
        return None
    metadata = payload.get("metadata")
    if isinstance(metadata, dict) and isinstance(metadata.get("vulnerabilities"), dict):
        vulns = metadata["vulnerabilities"]
        return int(vulns.get("critical", 0)), int(vulns.get("high", 0))
    dependencies = payload.get("dependencies")
    if isinstance(dependencies, list):
        # pip-audit reports no severity; every known vulnerability counts as high
        high = sum(len(dep.get("vulns") or []) for dep in dependencies if isinstance(dep, dict))
        return 0, high
    return None


class AccessibilityProbe(CommandProbe):
    """axe-core CLI results, reduced to critical/serious violation counts."""

    tool_label = "accessibility auditor"

    def run(self, url: str) -> ProbeResult:
        result = self._execute(url=url)
        if result is None:
            return ProbeResult.unavailable(self.executable, fallback={"critical": 0, "serious": 0})
        if result.timed_out:
            return self._timed_out(result)

        payload = _load_json(result.stdout)
        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list):
            return ProbeResult(
                success=False,
                metrics={"exit_code": result.returncode, "parse_error": True},
                raw_output=clip_output(result.output),
            )

        impacts: dict[str, int] = {"critical": 0, "serious": 0}
        rules: list[str] = []
        for page in payload:
            if not isinstance(page, dict):
                continue
            for violation in page.get("violations") or []:
                impact = violation.get("impact")
                if impact in impacts:
                    impacts[impact] += 1
                    rules.append(f"{impact}: {violation.get('id', '?')}")
        return ProbeResult(
            success=impacts["critical"] == 0 and impacts["serious"] == 0,
            metrics=impacts,
            raw_output=clip_output("\n".join(rules)),
        )


class PerformanceProbe(CommandProbe):
    """Lighthouse performance score (0-100) for one URL and one run."""

    tool_label = "performance auditor"

    def __init__(
        self,
        argv: Sequence[str],
        *,
        cwd: Path,
        timeout: float,
        fallback_score: int = 85,
    ) -> None:
        super().__init__(argv, cwd=cwd, timeout=timeout)
        self.fallback_score = fallback_score

    def run(self, url: str) -> ProbeResult:
        result = self._execute(url=url)
        if result is None:
            return ProbeResult.unavailable(
                self.executable,
                fallback={"score": self.fallback_score},
                detail=f"fallback score {self.fallback_score}",
            )
        if result.timed_out:
            return self._timed_out(result)

        payload = _load_json(result.stdout)
        try:
            score = round(float(payload["categories"]["performance"]["score"]) * 100)
        except (TypeError, KeyError, ValueError):
            return ProbeResult(
                success=False,
                metrics={"exit_code": result.returncode, "parse_error": True},
                raw_output=clip_output(result.output),
            )
        return ProbeResult(success=True, metrics={"score": score})
