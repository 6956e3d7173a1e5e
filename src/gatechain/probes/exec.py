"""Subprocess runner shared by every external probe."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

TIMEOUT_RETURNCODE = -1


@dataclass(frozen=True)
class ExecResult:
    """Result envelope for subprocess execution."""

    argv: tuple[str, ...]
    cwd: Path
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class ExecError(RuntimeError):
    """Raised when a command returns non-zero in check mode."""

    def __init__(self, result: ExecResult):
        rendered = " ".join(result.argv)
        detail = (result.stderr or result.stdout).strip()
        reason = "timed out" if result.timed_out else f"failed ({result.returncode})"
        super().__init__(f"command {reason}: {rendered}\n{detail}")
        self.result = result


class ToolNotFoundError(RuntimeError):
    """Raised when the executable for a command cannot be found."""

    def __init__(self, tool: str):
        super().__init__(f"`{tool}` is not installed or not on PATH")
        self.tool = tool


def tool_available(tool: str) -> bool:
    return shutil.which(tool) is not None


def run_command(
    argv: list[str],
    *,
    cwd: Path,
    timeout: float,
    check: bool = True,
) -> ExecResult:
    """Run a command with a hard timeout and return a structured result.

    A timeout yields ``timed_out=True`` with return code -1 rather than an
    exception, so callers can report it as a failed probe.

    Raises:
        ToolNotFoundError: If the executable does not exist
        ExecError: If ``check`` and the command failed or timed out
    """
    if not argv:
        raise ValueError("argv must not be empty")
    logger.debug("exec %s (cwd=%s, timeout=%.1fs)", " ".join(argv), cwd, timeout)
    try:
        completed = subprocess.run(
            argv,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
            timeout=timeout,
        )
        result = ExecResult(
            argv=tuple(argv),
            cwd=cwd.resolve(),
            returncode=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
    except FileNotFoundError as e:
        raise ToolNotFoundError(argv[0]) from e
    except subprocess.TimeoutExpired as e:
        logger.warning("command timed out after %.1fs: %s", timeout, " ".join(argv))
        result = ExecResult(
            argv=tuple(argv),
            cwd=cwd.resolve(),
            returncode=TIMEOUT_RETURNCODE,
            stdout=_decode(e.stdout),
            stderr=_decode(e.stderr),
            timed_out=True,
        )

    if check and (result.returncode != 0 or result.timed_out):
        raise ExecError(result)
    return result


def _decode(value: str | bytes | None) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
