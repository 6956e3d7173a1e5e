"""Pull-request host probe backed by the GitHub ``gh`` CLI."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from gatechain.probes.exec import ExecError, ToolNotFoundError, run_command
from gatechain.probes.types import PrComment, ProbeFailedError, ProbeUnavailableError


class GhPrHost:
    """Read PR bodies and comments through ``gh pr view --json``.

    ``gh`` resolves the repository from the git remotes of ``repo_root``.
    """

    def __init__(self, repo_root: Path, *, timeout: float) -> None:
        self.repo_root = repo_root
        self.timeout = timeout

    def _view(self, pr_number: int, fields: str) -> dict[str, Any]:
        argv = ["gh", "pr", "view", str(pr_number), "--json", fields]
        try:
            result = run_command(argv, cwd=self.repo_root, timeout=self.timeout)
        except ToolNotFoundError as e:
            raise ProbeUnavailableError(f"{e}. Install the GitHub CLI and run `gh auth login`.") from e
        except ExecError as e:
            raise ProbeFailedError(
                f"could not fetch PR #{pr_number}; check `gh auth status` and that the PR exists",
                raw_output=e.result.output,
            ) from e

        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ProbeFailedError(
                f"gh returned non-JSON output for PR #{pr_number}",
                raw_output=result.stdout,
            ) from e
        if not isinstance(payload, dict):
            raise ProbeFailedError(f"unexpected gh payload for PR #{pr_number}", raw_output=result.stdout)
        return payload

    def get_pr_body(self, pr_number: int) -> str:
        return str(self._view(pr_number, "body").get("body") or "")

    def get_pr_comments(self, pr_number: int) -> list[PrComment]:
        comments: list[PrComment] = []
        for item in self._view(pr_number, "comments").get("comments") or []:
            if not isinstance(item, dict):
                continue
            author = item.get("author") or {}
            login = author.get("login", "") if isinstance(author, dict) else str(author)
            comments.append(PrComment(author=str(login), body=str(item.get("body") or "")))
        return comments
