"""Pytest configuration and shared fixtures for gatechain tests."""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from gatechain.config import GatechainConfig, load_config
from gatechain.evidence.store import EvidenceStore
from gatechain.gates.catalog import GATES_TEMPLATE, parse_catalog
from gatechain.gates.evaluator import GateEvaluator
from gatechain.gates.types import GateContext, GateDefinition, GateInputs
from gatechain.probes.toolbox import ProbeSet
from gatechain.probes.types import PrComment, ProbeResult

TASK = "ENTRY-042"

PLAN_TEXT = """# Implementation Plan ENTRY-042

## Files to Change
- `src/app/login.py`
- `src/app/session.py`
- `tests/test_login.py`

## Success Metric
Login latency stays under 200ms at p95.

## Failure Signal
Error rate above 1% in the first hour after deploy.

## Alternatives Considered
Keeping the legacy session store was rejected.

Status: APPROVED
"""


def pytest_sessionfinish(session, exitstatus):
    """Fail loudly if --cov was requested but nothing was collected."""
    cov_enabled = any("--cov" in str(arg) for arg in session.config.args)
    if not cov_enabled:
        return
    if not list(Path.cwd().glob(".coverage*")):
        pytest.exit(
            "Coverage was enabled but no data was collected. "
            "Check that tests import from 'gatechain' (the package) not 'src/gatechain'.",
            returncode=1,
        )


class FakeVcs:
    def __init__(self) -> None:
        self.revision = "0123456789abcdef0123456789abcdef01234567"
        self.changed: list[str] = []
        self.commits: list[tuple[str, str]] = []
        self.error: Exception | None = None
        self.refs: list[tuple[str, str]] = []

    def current_revision(self) -> str:
        if self.error:
            raise self.error
        return self.revision

    def changed_paths(self, base_ref: str, head_ref: str) -> list[str]:
        self.refs.append((base_ref, head_ref))
        if self.error:
            raise self.error
        return list(self.changed)

    def commits_matching(self, query: str) -> list[tuple[str, str]]:
        if self.error:
            raise self.error
        return list(self.commits)


class FakePrHost:
    def __init__(self) -> None:
        self.body = ""
        self.comments: list[PrComment] = []
        self.error: Exception | None = None

    def get_pr_body(self, pr_number: int) -> str:
        if self.error:
            raise self.error
        return self.body

    def get_pr_comments(self, pr_number: int) -> list[PrComment]:
        if self.error:
            raise self.error
        return list(self.comments)


class FakeNetwork:
    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.urls: list[str] = []

    def head(self, url: str) -> int:
        self.urls.append(url)
        return self.status


class FakeTool:
    """Returns queued results in order, then repeats the last one."""

    def __init__(self, *results: ProbeResult) -> None:
        self.results = list(results)
        self.calls = 0

    def run(self, url: str | None = None) -> ProbeResult:
        index = min(self.calls, len(self.results) - 1)
        self.calls += 1
        return self.results[index]


def git(repo: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", "-c", "user.email=dev@example.com", "-c", "user.name=Dev", *args],
        cwd=repo,
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout.strip()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in ("GATECHAIN_EVIDENCE_ROOT", "GATECHAIN_EXTERNAL_ROOT", "GATECHAIN_ACTOR"):
        monkeypatch.delenv(name, raising=False)
    root = tmp_path / "repo"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def git_workspace(workspace: Path) -> Path:
    git(workspace, "init", "-q")
    (workspace / "README.md").write_text("# repo\n", encoding="utf-8")
    git(workspace, "add", "README.md")
    git(workspace, "commit", "-q", "-m", "initial commit")
    return workspace


@pytest.fixture
def config(workspace: Path) -> GatechainConfig:
    return load_config(workspace, actor="tester", timestamp_mode="deterministic")


@pytest.fixture
def store(config: GatechainConfig) -> EvidenceStore:
    return EvidenceStore(config.evidence_root, actor=config.actor, timestamp_mode=config.timestamp_mode)


@pytest.fixture
def probes() -> ProbeSet:
    return ProbeSet(
        vcs=FakeVcs(),
        pr_host=FakePrHost(),
        network=FakeNetwork(),
        lint=FakeTool(ProbeResult(success=True, metrics={"error_count": 0, "warning_count": 0})),
        tests=FakeTool(ProbeResult(success=True, metrics={"exit_code": 0, "coverage": 91.0})),
        secrets=FakeTool(ProbeResult(success=True, metrics={"findings": 0, "locations": []})),
        audit=FakeTool(ProbeResult(success=True, metrics={"critical": 0, "high": 0})),
        accessibility=FakeTool(ProbeResult(success=True, metrics={"critical": 0, "serious": 0})),
        performance=FakeTool(ProbeResult(success=True, metrics={"score": 92})),
    )


@pytest.fixture
def evaluator(config: GatechainConfig, probes: ProbeSet, store: EvidenceStore) -> GateEvaluator:
    return GateEvaluator(parse_catalog(GATES_TEMPLATE), config, probes, store)


@pytest.fixture
def write_plan(workspace: Path) -> Callable[..., Path]:
    def _write(text: str = PLAN_TEXT, task: str = TASK) -> Path:
        path = workspace / "docs" / "implementation" / "plans" / f"{task}-plan.md"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_ctx(config: GatechainConfig, probes: ProbeSet, store: EvidenceStore) -> Callable[..., GateContext]:
    def _make(
        kind: str,
        params: dict[str, Any] | None = None,
        inputs: GateInputs | None = None,
        gate_id: str = "under-test",
    ) -> GateContext:
        definition = GateDefinition(id=gate_id, title="Under Test", kind=kind, params=params or {})
        return GateContext(
            definition=definition,
            task_id=TASK,
            inputs=inputs or GateInputs(),
            config=config,
            probes=probes,
            store=store,
        )

    return _make


@pytest.fixture
def run_git() -> Callable[..., str]:
    return git


@pytest.fixture
def plan_text() -> str:
    return PLAN_TEXT
