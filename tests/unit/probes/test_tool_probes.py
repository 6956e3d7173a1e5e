"""Tool probe adapters: output parsing and degradation when tools are missing."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gatechain.probes.exec import ExecResult, ToolNotFoundError
from gatechain.probes.tools import (
    AccessibilityProbe,
    DependencyAuditProbe,
    LintProbe,
    PerformanceProbe,
    SecretScanProbe,
    TestProbe,
    parse_coverage,
    scan_for_secrets,
)


def _stub_run(monkeypatch: pytest.MonkeyPatch, stdout: str = "", stderr: str = "", code: int = 0, timed_out: bool = False):
    calls: list[list[str]] = []

    def fake_run(argv: list[str], *, cwd: Path, timeout: float, check: bool = True) -> ExecResult:
        calls.append(argv)
        return ExecResult(
            argv=tuple(argv),
            cwd=cwd,
            returncode=-1 if timed_out else code,
            stdout=stdout,
            stderr=stderr,
            timed_out=timed_out,
        )

    monkeypatch.setattr("gatechain.probes.tools.run_command", fake_run)
    return calls


def _missing_tool(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(argv: list[str], *, cwd: Path, timeout: float, check: bool = True) -> ExecResult:
        raise ToolNotFoundError(argv[0])

    monkeypatch.setattr("gatechain.probes.tools.run_command", fake_run)


@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ("All files      |   84.21% |   70.1% |", 84.21),
        ("TOTAL                 120     12    90%", 90.0),
        ("Statements   : 77.5% ( 31/40 )", 77.5),
        ("5 passed in 0.12s", None),
    ],
)
def test_parse_coverage(output: str, expected: float | None) -> None:
    assert parse_coverage(output) == expected


def test_lint_probe_counts_ruff_diagnostics(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _stub_run(monkeypatch, stdout=json.dumps([{"code": "F401"}, {"code": "E501"}]), code=1)

    result = LintProbe(("ruff", "check", "--output-format", "json", "."), cwd=tmp_path, timeout=5).run()

    assert result.available
    assert not result.success
    assert result.metrics == {"error_count": 2, "warning_count": 0}


def test_lint_probe_reads_eslint_counters(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    payload = [{"filePath": "a.ts", "errorCount": 0, "warningCount": 3}, {"filePath": "b.ts", "errorCount": 1, "warningCount": 1}]
    _stub_run(monkeypatch, stdout=json.dumps(payload), code=1)

    result = LintProbe(("eslint", "--format", "json", "."), cwd=tmp_path, timeout=5).run()

    assert result.metrics == {"error_count": 1, "warning_count": 4}


def test_lint_probe_flags_unparseable_output(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _stub_run(monkeypatch, stdout="not json", code=2)

    result = LintProbe(("ruff",), cwd=tmp_path, timeout=5).run()

    assert result.available
    assert result.metrics["parse_error"] is True


def test_missing_linter_is_unavailable_with_estimated_fallback(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _missing_tool(monkeypatch)

    result = LintProbe(("ruff",), cwd=tmp_path, timeout=5).run()

    assert not result.available
    assert result.estimated
    assert result.metrics["error_count"] == 0
    assert "ruff unavailable" in (result.warning or "")


def test_timeout_is_reported_not_raised(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _stub_run(monkeypatch, stdout="partial", timed_out=True)

    result = TestProbe(("pytest",), cwd=tmp_path, timeout=1).run()

    assert result.available
    assert not result.success
    assert result.metrics == {"timed_out": True}


def test_test_probe_scrapes_coverage(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _stub_run(monkeypatch, stdout="TOTAL   50   5   90%\n12 passed", code=0)

    result = TestProbe(("pytest", "--cov"), cwd=tmp_path, timeout=5).run()

    assert result.success
    assert result.metrics == {"exit_code": 0, "coverage": 90.0}


def test_secret_scan_parses_gitleaks_report(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    report = [{"File": "app/config.py", "StartLine": 3, "RuleID": "generic-api-key"}]
    _stub_run(monkeypatch, stdout=json.dumps(report), code=1)

    result = SecretScanProbe(("gitleaks",), cwd=tmp_path, timeout=5).run()

    assert not result.success
    assert result.metrics["locations"] == ["app/config.py:3 (generic-api-key)"]


def test_secret_scan_falls_back_to_regex_scan(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    (tmp_path / "settings.py").write_text('STRIPE = "sk_live_' + "a" * 24 + '"\n', encoding="utf-8")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "vendored.js").write_text('password = "hunter2"\n', encoding="utf-8")
    _missing_tool(monkeypatch)

    result = SecretScanProbe(("gitleaks",), cwd=tmp_path, timeout=5).run()

    assert not result.available
    assert result.metrics["locations"] == ["settings.py:1"]
    assert "fallback regex secret scan" in (result.warning or "")


def test_scan_for_secrets_ignores_clean_files(tmp_path: Path) -> None:
    (tmp_path / "clean.py").write_text("API_URL = 'https://api.acme.dev'\n", encoding="utf-8")

    assert scan_for_secrets(tmp_path) == []


def test_dependency_audit_reads_npm_and_pip_audit(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _stub_run(monkeypatch, stdout=json.dumps({"metadata": {"vulnerabilities": {"critical": 1, "high": 2}}}))
    npm = DependencyAuditProbe(("npm", "audit", "--json"), cwd=tmp_path, timeout=5).run()

    _stub_run(monkeypatch, stdout=json.dumps({"dependencies": [{"name": "x", "vulns": [{"id": "PYSEC-1"}]}]}))
    pip = DependencyAuditProbe(("pip-audit", "-f", "json"), cwd=tmp_path, timeout=5).run()

    assert npm.metrics == {"critical": 1, "high": 2}
    assert pip.metrics == {"critical": 0, "high": 1}


def test_accessibility_probe_counts_impacts_and_substitutes_url(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    payload = [{"violations": [{"id": "color-contrast", "impact": "serious"}, {"id": "region", "impact": "moderate"}]}]
    calls = _stub_run(monkeypatch, stdout=json.dumps(payload), code=0)

    result = AccessibilityProbe(("axe", "{url}", "--stdout"), cwd=tmp_path, timeout=5).run("https://app.acme.dev")

    assert calls == [["axe", "https://app.acme.dev", "--stdout"]]
    assert result.metrics == {"critical": 0, "serious": 1}
    assert "serious: color-contrast" in result.raw_output


def test_performance_probe_scales_lighthouse_score(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _stub_run(monkeypatch, stdout=json.dumps({"categories": {"performance": {"score": 0.87}}}))

    result = PerformanceProbe(("lighthouse", "{url}"), cwd=tmp_path, timeout=5).run("https://app.acme.dev")

    assert result.metrics == {"score": 87}


def test_performance_probe_fallback_score_is_estimated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _missing_tool(monkeypatch)

    result = PerformanceProbe(("lighthouse", "{url}"), cwd=tmp_path, timeout=5, fallback_score=70).run("https://x.dev")

    assert not result.available
    assert result.estimated
    assert result.metrics["score"] == 70
