"""Test-quality gate: real tests for every third-party integration, assertion density and coverage trend."""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass

from gatechain.gates.types import GateCheck, GateContext
from gatechain.utils.files import SOURCE_SUFFIXES, is_test_file, iter_workspace_files, read_text_lenient

logger = logging.getLogger(__name__)

DEFAULT_INTEGRATIONS: dict[str, tuple[str, ...]] = {
    "stripe": ("stripe", "sk_live_", "sk_test_"),
    "supabase": ("supabase",),
    "openai": ("openai",),
    "twilio": ("twilio",),
}
DEFAULT_SOURCE_GLOBS: tuple[str, ...] = tuple(f"*{suffix}" for suffix in SOURCE_SUFFIXES)
DEFAULT_MIN_ASSERTIONS = 3
DEFAULT_MAX_INTEGRATION_MOCK_RATIO = 0.8

MOCK_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"vi\.mock\(",
        r"jest\.mock\(",
        r"mock\.patch",
        r"@patch\(",
        r"MagicMock\(",
        r"mockResolvedValue",
        r"mockImplementation",
        r"monkeypatch\.setattr",
    )
)
# One match per test case; ``py`` or ``js`` carries its name.
TEST_CASE_RE = re.compile(
    r"^[ \t]*(?:async[ \t]+)?def[ \t]+(?P<py>test_\w*)"
    r"|\b(?:it|test)\s*\(\s*['\"`](?P<js>[^'\"`\n]*)",
    re.MULTILINE,
)
ASSERTION_RE = re.compile(
    r"^[ \t]*assert\b"
    r"|\bexpect\("
    r"|\bassert\.\w+\("
    r"|\.should\b"
    r"|\bself\.assert\w+\("
    r"|\bpytest\.raises\(",
    re.MULTILINE,
)
_CALL_RE = re.compile(r"\.\w+\(")
_NETWORK_CALL_RE = re.compile(r"\bfetch\(|\baxios[.(]|\bpage\.goto\(|\bhttpx\.|\brequests\.")
_INTEGRATION_PATH_RE = re.compile(
    r"\.(?:integration|e2e)\.[jt]sx?$"
    r"|(^|/)(?:integration|e2e)/"
    r"|(^|/)test_(?:integration|e2e)[^/]*\.py$"
    r"|_(?:integration|e2e)_test\.py$"
)


@dataclass(frozen=True)
class TestFileScore:
    __test__ = False  # not a pytest test class

    path: str
    mocks: int
    cases: int

    @property
    def fully_mocked(self) -> bool:
        return self.mocks >= self.cases


@dataclass(frozen=True)
class TestCaseAssertions:
    __test__ = False

    path: str
    name: str
    assertions: int


def _count_mocks(text: str) -> int:
    return sum(len(p.findall(text)) for p in MOCK_PATTERNS)


def score_test_file(path: str, text: str) -> TestFileScore:
    return TestFileScore(path=path, mocks=_count_mocks(text), cases=len(TEST_CASE_RE.findall(text)))


def count_case_assertions(path: str, text: str) -> list[TestCaseAssertions]:
    """Assertions per test case; a case runs until the next case starts."""
    starts = list(TEST_CASE_RE.finditer(text))
    cases: list[TestCaseAssertions] = []
    for index, match in enumerate(starts):
        end = starts[index + 1].start() if index + 1 < len(starts) else len(text)
        body = text[match.end() : end]
        name = match.group("py") or match.group("js") or f"case {index + 1}"
        cases.append(TestCaseAssertions(path=path, name=name, assertions=len(ASSERTION_RE.findall(body))))
    return cases


def is_integration_test(relative_path: str) -> bool:
    return bool(_INTEGRATION_PATH_RE.search(relative_path.replace("\\", "/")))


def _mentions(text: str, signatures: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(sig.lower() in lowered for sig in signatures)


def _load_integrations(raw: object) -> dict[str, tuple[str, ...]]:
    if not raw:
        return dict(DEFAULT_INTEGRATIONS)
    if not isinstance(raw, dict):
        raise ValueError("params.integrations must map integration names to signature lists")
    loaded: dict[str, tuple[str, ...]] = {}
    for name in sorted(raw):
        sigs = raw[name] or [name]
        loaded[str(name)] = (sigs,) if isinstance(sigs, str) else tuple(str(s) for s in sigs)
    return loaded


def check_mock_coverage(ctx: GateContext, text: str | None) -> GateCheck:
    check = GateCheck()
    root = ctx.config.workspace_root
    integrations = _load_integrations(ctx.params.get("integrations"))
    globs = tuple(ctx.params.get("source_globs") or DEFAULT_SOURCE_GLOBS)

    sources: dict[str, str] = {}
    tests: dict[str, str] = {}
    for path in iter_workspace_files(root, SOURCE_SUFFIXES):
        relative = path.relative_to(root).as_posix()
        if is_test_file(relative):
            tests[relative] = read_text_lenient(path)
        elif any(fnmatch.fnmatch(relative, g) for g in globs):
            sources[relative] = read_text_lenient(path)

    used: list[str] = []
    for name, signatures in integrations.items():
        referencing = [rel for rel, body in sources.items() if _mentions(body, signatures)]
        if not referencing:
            continue
        used.append(name)
        associated = [
            score_test_file(rel, body)
            for rel, body in tests.items()
            if _mentions(body, (name, *signatures))
        ]
        logger.debug("integration %s: %d source file(s), %d test file(s)", name, len(referencing), len(associated))
        if not associated:
            check.block(
                "content",
                f"Integration `{name}` is used but no test references it",
                ", ".join(referencing[:5]),
            )
        elif all(score.fully_mocked for score in associated):
            check.block(
                "content",
                f"Integration `{name}` is only covered by fully mocked tests "
                "(mock declarations >= test cases in every test file)",
                ", ".join(f"{s.path} ({s.mocks} mocks/{s.cases} tests)" for s in associated[:5]),
            )

    check.metrics.update(
        {
            "integrations_used": used,
            "source_files_scanned": len(sources),
            "test_files_scanned": len(tests),
        }
    )
    _check_assertion_density(ctx, check, tests)
    _check_integration_tests(ctx, check, tests)
    if ctx.params.get("track_coverage", True):
        _check_coverage_trend(ctx, check)
    return check


def _check_assertion_density(ctx: GateContext, check: GateCheck, tests: dict[str, str]) -> None:
    minimum = int(ctx.params.get("min_assertions", DEFAULT_MIN_ASSERTIONS))
    cases = [case for rel, body in tests.items() for case in count_case_assertions(rel, body)]
    weak = [case for case in cases if case.assertions < minimum]
    check.metrics.update({"test_cases_scanned": len(cases), "weak_test_cases": len(weak)})
    if weak:
        check.block(
            "content",
            f"{len(weak)} test case(s) with fewer than {minimum} assertions",
            "\n".join(f"{c.path}::{c.name} ({c.assertions})" for c in weak[:20]),
        )


def _check_integration_tests(ctx: GateContext, check: GateCheck, tests: dict[str, str]) -> None:
    max_ratio = float(ctx.params.get("max_integration_mock_ratio", DEFAULT_MAX_INTEGRATION_MOCK_RATIO))
    min_real = int(ctx.params.get("min_real_integration_tests", 0))

    heavy: list[str] = []
    real = 0
    integration = {rel: body for rel, body in tests.items() if is_integration_test(rel)}
    for rel, body in integration.items():
        mocks = _count_mocks(body)
        calls = len(_CALL_RE.findall(body))
        if calls and mocks / calls > max_ratio:
            heavy.append(f"{rel} ({mocks}/{calls} calls mocked)")
        if mocks == 0 and _NETWORK_CALL_RE.search(body):
            real += 1

    check.metrics.update({"integration_test_files": len(integration), "real_integration_tests": real})
    if heavy:
        check.block(
            "content",
            f"{len(heavy)} integration test file(s) with more than {max_ratio:.0%} mocked calls",
            "\n".join(heavy[:20]),
        )
    if real < min_real:
        check.block("content", f"Only {real} real integration test(s) (need >= {min_real})")


def _check_coverage_trend(ctx: GateContext, check: GateCheck) -> None:
    gate_id = ctx.definition.id
    result = ctx.probes.tests.run()
    if not result.available:
        check.warn(f"Coverage trend not checked: {result.warning or 'test runner unavailable'}")
        return
    coverage = result.metrics.get("coverage")
    if result.metrics.get("timed_out") or not result.success or coverage is None:
        check.warn("Coverage trend not checked: the test run produced no coverage figure")
        return

    current = float(coverage)
    check.metrics["coverage"] = current
    baseline = ctx.store.read_baseline(gate_id, metric="coverage")
    previous = float(baseline["coverage"]) if baseline and "coverage" in baseline else None
    if previous is not None:
        check.metrics["baseline_coverage"] = previous
        if current < previous:
            check.block(
                "content",
                f"Coverage decreased by {previous - current:.2f}% ({previous:g}% -> {current:g}%)",
            )

    if not check.violations and (previous is None or current > previous):
        logger.debug("recording coverage baseline for %s at %.2f%%", gate_id, current)
        ctx.store.write_baseline(gate_id, {"coverage": current}, metric="coverage")
