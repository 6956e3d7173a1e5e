"""Workspace file walking shared by scanners."""

from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path

SKIP_DIRS = frozenset(
    {
        ".git",
        "node_modules",
        ".venv",
        "venv",
        "__pycache__",
        ".evidence",
        "dist",
        "build",
        ".tox",
        ".mypy_cache",
        ".pytest_cache",
    }
)
MAX_SCAN_BYTES = 1_000_000
SOURCE_SUFFIXES: tuple[str, ...] = (".py", ".ts", ".tsx", ".js", ".jsx")

_TEST_FILE_RE = re.compile(
    r"(^|/)(tests?|__tests__)/"
    r"|(^|/)test_[^/]+\.py$"
    r"|_test\.py$"
    r"|\.(test|spec)\.[jt]sx?$"
)


def is_test_file(relative_path: str) -> bool:
    return bool(_TEST_FILE_RE.search(relative_path.replace("\\", "/")))


def iter_workspace_files(root: Path, suffixes: tuple[str, ...]) -> Iterator[Path]:
    """Files under ``root`` with one of ``suffixes``, skipping vendored and generated trees."""
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if any(part in SKIP_DIRS for part in relative.parts):
            continue
        if not path.is_file() or not path.name.endswith(suffixes):
            continue
        if path.stat().st_size > MAX_SCAN_BYTES:
            continue
        yield path


def read_text_lenient(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="ignore")
    except OSError:
        return ""
