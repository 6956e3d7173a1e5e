"""Tool-driven gate kinds: lint, tests, security, accessibility, duplicate work, documents."""

from __future__ import annotations

import logging
import re
from pathlib import Path, PurePosixPath

from gatechain.gates.types import GateCheck, GateContext
from gatechain.probes.types import ProbeFailedError, ProbeResult, ProbeUnavailableError
from gatechain.utils.files import (
    SOURCE_SUFFIXES,
    is_test_file,
    iter_workspace_files,
    read_text_lenient,
)

logger = logging.getLogger(__name__)

SUPPRESSION_PATTERNS: dict[str, re.Pattern[str]] = {
    "eslint-disable": re.compile(r"eslint-disable"),
    "@ts-ignore": re.compile(r"@ts-ignore"),
    "# noqa": re.compile(r"#\s*noqa\b"),
    "# type: ignore": re.compile(r"#\s*type:\s*ignore\b"),
}
DEFAULT_MIN_COVERAGE = 80.0
DEFAULT_PROJECT_LEDGER = "PROJECT_LEDGER.md"


def _broken(result: ProbeResult) -> bool:
    """Tool ran but produced nothing usable."""
    return result.available and (
        bool(result.metrics.get("timed_out")) or bool(result.metrics.get("parse_error"))
    )


def _failure_message(tool: str, result: ProbeResult) -> str:
    if result.metrics.get("timed_out"):
        return f"{tool} timed out"
    if result.metrics.get("parse_error"):
        return f"{tool} output could not be parsed (exit {result.metrics.get('exit_code')})"
    return f"{tool} failed (exit {result.metrics.get('exit_code')})"


def _changed_paths(ctx: GateContext, check: GateCheck, purpose: str) -> list[str] | None:
    """Changed paths for the gate's refs; VCS trouble only degrades to a warning here."""
    base = ctx.inputs.base_ref or "HEAD~1"
    head = ctx.inputs.head_ref or "HEAD"
    try:
        return ctx.probes.vcs.changed_paths(base, head)
    except (ProbeUnavailableError, ProbeFailedError) as exc:
        check.warn(f"Skipped {purpose}: could not diff {base}..{head} ({exc})")
        return None


def check_document(ctx: GateContext, text: str | None) -> GateCheck:
    return GateCheck()


def find_suppressions(root: Path, paths: list[str]) -> list[str]:
    hits: list[str] = []
    for rel in paths:
        path = root / rel
        if not path.is_file():
            continue
        for lineno, line in enumerate(read_text_lenient(path).splitlines(), 1):
            for label, pattern in SUPPRESSION_PATTERNS.items():
                if pattern.search(line):
                    hits.append(f"{rel}:{lineno} ({label})")
    return hits


def check_lint(ctx: GateContext, text: str | None) -> GateCheck:
    check = GateCheck()
    gate_id = ctx.definition.id
    result = ctx.probes.lint.run()

    if not result.available:
        check.warn(result.warning or "linter unavailable")
    elif _broken(result):
        check.block("probe_failure", _failure_message("Linter", result), result.raw_output or None)
        return check

    errors = int(result.metrics.get("error_count", 0))
    warnings = int(result.metrics.get("warning_count", 0))
    check.metrics.update({"error_count": errors, "warning_count": warnings})
    if result.estimated:
        check.metrics["estimated"] = True

    if errors > 0:
        check.block("content", f"{errors} lint error(s)", result.raw_output or None)

    baseline = ctx.store.read_baseline(gate_id) if result.available else None
    if result.available and baseline is not None:
        previous = int(baseline.get("warning_count", 0))
        check.metrics["baseline_warning_count"] = previous
        if warnings > previous:
            check.block(
                "content",
                f"Warning count increased by {warnings - previous} ({previous} -> {warnings})",
            )

    changed = _changed_paths(ctx, check, "suppression scan")
    if changed is not None:
        code_paths = [p for p in changed if p.endswith(SOURCE_SUFFIXES)]
        suppressions = find_suppressions(ctx.config.workspace_root, code_paths)
        check.metrics["suppressions"] = len(suppressions)
        if suppressions:
            check.block(
                "content",
                f"{len(suppressions)} lint suppression comment(s) in changed files",
                "\n".join(suppressions[:20]),
            )

    if result.available and not check.violations:
        if baseline is None:
            logger.debug("seeding lint baseline for %s at %d warning(s)", gate_id, warnings)
            ctx.store.write_baseline(gate_id, {"warning_count": warnings})
        elif warnings < int(baseline.get("warning_count", 0)):
            logger.debug("lowering lint baseline for %s to %d warning(s)", gate_id, warnings)
            ctx.store.write_baseline(gate_id, {"warning_count": warnings})
    return check


def untested_sources(changed: list[str], test_files: list[str], root: Path) -> list[str]:
    """Changed source files with no test file whose name contains the source stem."""
    test_names = [PurePosixPath(t).name.lower() for t in test_files]
    missing: list[str] = []
    for rel in changed:
        posix = PurePosixPath(rel)
        if not rel.endswith(SOURCE_SUFFIXES) or is_test_file(rel) or posix.name == "__init__.py":
            continue
        if not (root / rel).is_file():
            continue
        stem = posix.stem.lower()
        if not any(stem in name for name in test_names):
            missing.append(rel)
    return missing


def check_tests(ctx: GateContext, text: str | None) -> GateCheck:
    check = GateCheck()
    root = ctx.config.workspace_root
    min_coverage = float(ctx.params.get("min_coverage", DEFAULT_MIN_COVERAGE))

    test_files = [
        path.relative_to(root).as_posix()
        for path in iter_workspace_files(root, SOURCE_SUFFIXES)
        if is_test_file(path.relative_to(root).as_posix())
    ]
    check.metrics["test_files"] = len(test_files)
    if not test_files:
        check.block("content", "No test files found (tests/, test_*.py, *.test.ts, *.spec.ts, ...)")

    result = ctx.probes.tests.run()
    if not result.available:
        check.warn(result.warning or "test runner unavailable")
    elif result.metrics.get("timed_out") or not result.success:
        check.block("probe_failure", _failure_message("Test run", result), result.raw_output or None)
    else:
        coverage = result.metrics.get("coverage")
        check.metrics["coverage"] = coverage
        check.metrics["min_coverage"] = min_coverage
        if coverage is None:
            check.warn(f"Could not parse a coverage percentage; verify >= {min_coverage:g}% manually")
        elif float(coverage) < min_coverage:
            check.block(
                "content",
                f"Coverage {float(coverage):g}% is below the {min_coverage:g}% minimum",
            )

    changed = _changed_paths(ctx, check, "test pairing check")
    if changed is not None:
        missing = untested_sources(changed, test_files, root)
        check.metrics["untested_sources"] = len(missing)
        if missing:
            check.block(
                "content",
                f"{len(missing)} changed source file(s) have no corresponding test file",
                "\n".join(missing[:20]),
            )
    return check


def check_security(ctx: GateContext, text: str | None) -> GateCheck:
    check = GateCheck()

    secrets = ctx.probes.secrets.run()
    if _broken(secrets):
        check.block("probe_failure", _failure_message("Secret scan", secrets), secrets.raw_output or None)
    else:
        if secrets.warning:
            check.warn(secrets.warning)
        locations = list(secrets.metrics.get("locations") or [])
        check.metrics["secret_findings"] = int(secrets.metrics.get("findings", len(locations)))
        for location in locations:
            check.block("content", "Potential secret committed to the workspace", str(location))

    audit = ctx.probes.audit.run()
    if not audit.available:
        check.warn(audit.warning or "dependency auditor unavailable")
    elif _broken(audit):
        check.block("probe_failure", _failure_message("Dependency audit", audit), audit.raw_output or None)
    else:
        critical = int(audit.metrics.get("critical", 0))
        high = int(audit.metrics.get("high", 0))
        check.metrics.update({"audit_critical": critical, "audit_high": high})
        if critical:
            check.block("content", f"{critical} critical dependency vulnerabilit{'y' if critical == 1 else 'ies'}")
        if high:
            check.block("content", f"{high} high dependency vulnerabilit{'y' if high == 1 else 'ies'}")
    return check


def check_accessibility(ctx: GateContext, text: str | None) -> GateCheck:
    check = GateCheck()
    url = ctx.target_url()
    result = ctx.probes.accessibility.run(url)
    check.metrics["url"] = url

    if not result.available:
        check.warn(result.warning or "accessibility auditor unavailable")
    elif _broken(result):
        check.block("probe_failure", _failure_message("Accessibility audit", result), result.raw_output or None)
        return check

    critical = int(result.metrics.get("critical", 0))
    serious = int(result.metrics.get("serious", 0))
    check.metrics.update({"critical": critical, "serious": serious, "estimated": result.estimated})
    if critical or serious:
        check.block(
            "content",
            f"{critical} critical and {serious} serious accessibility violation(s) on {url}",
            result.raw_output or None,
        )
    return check


def check_duplicate_work(ctx: GateContext, text: str | None) -> GateCheck:
    check = GateCheck()
    task = ctx.task_id

    try:
        commits = ctx.probes.vcs.commits_matching(task)
    except ProbeUnavailableError as exc:
        check.block("probe_unavailable", f"Version control unavailable: {exc}")
        commits = []
    except ProbeFailedError as exc:
        check.block("probe_failure", f"git history search failed: {exc}", exc.raw_output or None)
        commits = []
    check.metrics["matching_commits"] = len(commits)
    if commits:
        check.block(
            "content",
            f"{len(commits)} existing commit(s) already reference {task}",
            "\n".join(f"{sha[:12]} {subject}" for sha, subject in commits[:10]),
        )

    ledger_name = str(ctx.params.get("ledger_file", DEFAULT_PROJECT_LEDGER))
    ledger = ctx.config.workspace_root / ledger_name
    if ledger.is_file():
        heading = re.compile(rf"^##\s*{re.escape(task)}\b", re.MULTILINE | re.IGNORECASE)
        if heading.search(read_text_lenient(ledger)):
            check.block("content", f"{ledger_name} already has an entry for {task}", ledger_name)
    return check
