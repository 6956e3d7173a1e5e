"""Git, PR host, network and subprocess adapters."""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from gatechain.probes.exec import ExecError, ExecResult, ToolNotFoundError, run_command
from gatechain.probes.network import HttpNetworkProbe
from gatechain.probes.pr_host import GhPrHost
from gatechain.probes.types import ProbeFailedError, ProbeUnavailableError
from gatechain.probes.vcs import GitProbe


def test_run_command_captures_output(tmp_path: Path) -> None:
    result = run_command([sys.executable, "-c", "print('hello')"], cwd=tmp_path, timeout=30)

    assert result.returncode == 0
    assert result.stdout.strip() == "hello"


def test_run_command_timeout_sets_flag(tmp_path: Path) -> None:
    result = run_command(
        [sys.executable, "-c", "import time; time.sleep(5)"],
        cwd=tmp_path,
        timeout=0.2,
        check=False,
    )

    assert result.timed_out
    assert result.returncode == -1


def test_run_command_check_raises_on_failure(tmp_path: Path) -> None:
    with pytest.raises(ExecError, match=r"failed \(3\)"):
        run_command([sys.executable, "-c", "import sys; sys.exit(3)"], cwd=tmp_path, timeout=30)


def test_run_command_missing_executable(tmp_path: Path) -> None:
    with pytest.raises(ToolNotFoundError, match="not installed"):
        run_command(["gatechain-no-such-tool"], cwd=tmp_path, timeout=5)


def test_git_probe_answers_revision_diff_and_history(
    git_workspace: Path, run_git: Callable[..., str]
) -> None:
    (git_workspace / "src").mkdir()
    (git_workspace / "src" / "login.py").write_text("def login():\n    return True\n", encoding="utf-8")
    run_git(git_workspace, "add", "src/login.py")
    run_git(git_workspace, "commit", "-q", "-m", "feat: ENTRY-042 add login")

    probe = GitProbe(git_workspace, timeout=30)

    assert probe.current_revision() == run_git(git_workspace, "rev-parse", "HEAD")
    assert probe.changed_paths("HEAD~1", "HEAD") == ["src/login.py"]
    commits = probe.commits_matching("entry-042")
    assert [subject for _, subject in commits] == ["feat: ENTRY-042 add login"]
    assert probe.commits_matching("ENTRY-999") == []


def test_git_probe_outside_repository_fails(tmp_path: Path) -> None:
    with pytest.raises(ProbeFailedError):
        GitProbe(tmp_path, timeout=30).current_revision()


def test_git_probe_without_git_is_unavailable(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(argv: list[str], *, cwd: Path, timeout: float, check: bool = True) -> ExecResult:
        raise ToolNotFoundError("git")

    monkeypatch.setattr("gatechain.probes.vcs.run_command", fake_run)

    with pytest.raises(ProbeUnavailableError):
        GitProbe(tmp_path, timeout=5).changed_paths("HEAD~1", "HEAD")


def _gh_stub(monkeypatch: pytest.MonkeyPatch, payload: object, code: int = 0) -> list[list[str]]:
    calls: list[list[str]] = []

    def fake_run(argv: list[str], *, cwd: Path, timeout: float, check: bool = True) -> ExecResult:
        calls.append(argv)
        result = ExecResult(
            argv=tuple(argv),
            cwd=cwd,
            returncode=code,
            stdout=payload if isinstance(payload, str) else json.dumps(payload),
            stderr="" if code == 0 else "HTTP 404",
        )
        if check and code != 0:
            raise ExecError(result)
        return result

    monkeypatch.setattr("gatechain.probes.pr_host.run_command", fake_run)
    return calls


def test_gh_host_reads_body_and_comments(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {
        "body": "## Code Review Summary",
        "comments": [
            {"author": {"login": "alice"}, "body": "APPROVED"},
            {"author": None, "body": "drive-by"},
        ],
    }
    calls = _gh_stub(monkeypatch, payload)
    host = GhPrHost(tmp_path, timeout=5)

    assert host.get_pr_body(12) == "## Code Review Summary"
    comments = host.get_pr_comments(12)

    assert calls[0] == ["gh", "pr", "view", "12", "--json", "body"]
    assert [(c.author, c.body) for c in comments] == [("alice", "APPROVED"), ("", "drive-by")]


def test_gh_host_failures_map_to_probe_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _gh_stub(monkeypatch, "", code=1)
    with pytest.raises(ProbeFailedError, match="could not fetch PR #7"):
        GhPrHost(tmp_path, timeout=5).get_pr_body(7)

    _gh_stub(monkeypatch, "<html>")
    with pytest.raises(ProbeFailedError, match="non-JSON"):
        GhPrHost(tmp_path, timeout=5).get_pr_body(7)


def test_network_probe_retries_rejected_head_with_get(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(httpx, "head", lambda url, **kwargs: httpx.Response(405))
    monkeypatch.setattr(httpx, "get", lambda url, **kwargs: httpx.Response(200))

    assert HttpNetworkProbe(timeout=5).head("https://app.acme.dev") == 200


def test_network_probe_timeout_is_probe_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def slow(url: str, **kwargs: object) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out")

    monkeypatch.setattr(httpx, "head", slow)

    with pytest.raises(ProbeFailedError, match="did not respond"):
        HttpNetworkProbe(timeout=5).head("https://app.acme.dev")


def test_network_probe_malformed_port_is_probe_failure() -> None:
    with pytest.raises(ProbeFailedError, match="is not a valid URL"):
        HttpNetworkProbe(timeout=2).head("https://myapp.vercel.app:PORT/health")


def test_network_probe_bad_hostname_is_probe_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def bad_idna(url: str, **kwargs: object) -> httpx.Response:
        raise UnicodeError("encoding with 'idna' codec failed (UnicodeError: label empty or too long)")

    monkeypatch.setattr(httpx, "head", bad_idna)

    with pytest.raises(ProbeFailedError, match="is not a valid URL"):
        HttpNetworkProbe(timeout=2).head("https://my..app.io/")
