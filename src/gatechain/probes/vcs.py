"""Version-control probe backed by the git CLI."""

from __future__ import annotations

from pathlib import Path

from gatechain.probes.exec import ExecError, ExecResult, ToolNotFoundError, run_command
from gatechain.probes.types import ProbeFailedError, ProbeUnavailableError

_COMMIT_FIELD_SEP = "\x1f"


class GitProbe:
    """Answer the three questions gates ask of version control."""

    def __init__(self, repo_root: Path, *, timeout: float) -> None:
        self.repo_root = repo_root
        self.timeout = timeout

    def _git(self, args: list[str]) -> ExecResult:
        try:
            return run_command(["git", *args], cwd=self.repo_root, timeout=self.timeout)
        except ToolNotFoundError as e:
            raise ProbeUnavailableError(str(e)) from e
        except ExecError as e:
            raise ProbeFailedError(str(e), raw_output=e.result.output) from e

    def current_revision(self) -> str:
        """Full sha of HEAD."""
        return self._git(["rev-parse", "HEAD"]).stdout.strip()

    def changed_paths(self, base_ref: str, head_ref: str) -> list[str]:
        """Paths changed between two refs, sorted and de-duplicated."""
        result = self._git(["diff", "--name-only", f"{base_ref}..{head_ref}"])
        return sorted({line.strip() for line in result.stdout.splitlines() if line.strip()})

    def commits_matching(self, query: str) -> list[tuple[str, str]]:
        """(sha, subject) of commits on any ref whose message contains ``query``."""
        result = self._git(
            [
                "log",
                "--all",
                "--fixed-strings",
                "--regexp-ignore-case",
                f"--grep={query}",
                f"--format=%H{_COMMIT_FIELD_SEP}%s",
            ]
        )
        commits: list[tuple[str, str]] = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            sha, _, subject = line.partition(_COMMIT_FIELD_SEP)
            commits.append((sha.strip(), subject.strip()))
        return commits
