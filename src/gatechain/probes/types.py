"""Probe adapter result shape and collaborator interfaces."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

RAW_OUTPUT_LIMIT = 4000


class ProbeUnavailableError(RuntimeError):
    """The external tool or service could not be reached at all."""


class ProbeFailedError(RuntimeError):
    """The external call ran but failed, timed out or returned garbage."""

    def __init__(self, message: str, raw_output: str = ""):
        super().__init__(message)
        self.raw_output = raw_output


@dataclass(frozen=True)
class ProbeResult:
    """Normalized result of one external analysis tool run.

    ``available`` is False when the tool could not be started; ``metrics``
    then holds fallback values flagged with ``estimated: True`` and
    ``warning`` explains the degradation.
    """

    success: bool
    metrics: dict[str, Any] = field(default_factory=dict)
    raw_output: str = ""
    available: bool = True
    warning: str | None = None

    @property
    def estimated(self) -> bool:
        return bool(self.metrics.get("estimated", False))

    @classmethod
    def unavailable(
        cls,
        tool: str,
        *,
        fallback: dict[str, Any] | None = None,
        detail: str = "",
    ) -> ProbeResult:
        metrics = dict(fallback or {})
        metrics["estimated"] = True
        message = f"{tool} unavailable; using estimated values"
        if detail:
            message = f"{message} ({detail})"
        return cls(success=True, metrics=metrics, available=False, warning=message)


@dataclass(frozen=True)
class PrComment:
    author: str
    body: str


class VersionControl(Protocol):
    def current_revision(self) -> str: ...

    def changed_paths(self, base_ref: str, head_ref: str) -> list[str]: ...

    def commits_matching(self, query: str) -> list[tuple[str, str]]: ...


class PullRequestHost(Protocol):
    def get_pr_body(self, pr_number: int) -> str: ...

    def get_pr_comments(self, pr_number: int) -> list[PrComment]: ...


class NetworkProbe(Protocol):
    def head(self, url: str) -> int: ...


class ToolProbe(Protocol):
    def run(self) -> ProbeResult: ...


class UrlToolProbe(Protocol):
    def run(self, url: str) -> ProbeResult: ...


def clip_output(text: str, limit: int = RAW_OUTPUT_LIMIT) -> str:
    """Trim raw tool output for evidence pointers, keeping the tail."""
    text = text.strip()
    if len(text) <= limit:
        return text
    return "...\n" + text[-limit:]
