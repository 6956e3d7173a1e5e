"""Scope gate: compare the files a plan promises with the files a diff touches."""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, field

from gatechain.gates.types import GateCheck, GateContext
from gatechain.probes.types import ProbeFailedError, ProbeUnavailableError
from gatechain.utils.files import SKIP_DIRS
from gatechain.validators.markdown import find_heading

logger = logging.getLogger(__name__)

SCOPE_EXTENSIONS: tuple[str, ...] = (
    "py",
    "ts",
    "tsx",
    "js",
    "jsx",
    "md",
    "json",
    "css",
    "toml",
    "yaml",
    "yml",
)
SOURCE_ROOTS: tuple[str, ...] = (
    "src",
    "app",
    "pages",
    "components",
    "lib",
    "utils",
    "scripts",
    "docs",
    "tests",
)
EXPLANATION_HEADINGS: tuple[str, ...] = (r"^Scope\s+Changes?\b", r"^Deviations?\b", r"^Updates?\b")
DEFAULT_THRESHOLD = 30.0
DEFAULT_MAX_MAJOR_UNPLANNED = 3

_EXT = "|".join(SCOPE_EXTENSIONS)
_LINK_RE = re.compile(rf"\[([^\]]+\.(?:{_EXT}))\]\([^)]*\)")
_CODE_RE = re.compile(rf"`([^`\s]+\.(?:{_EXT}))`")
_PATH_RE = re.compile(
    rf"(?:^|\s)((?:{'|'.join(SOURCE_ROOTS)})/[^\s`)\]]+\.(?:{_EXT}))\b",
    re.MULTILINE,
)
_MINOR_MARKERS = ("test", "spec", ".md", "package-lock.json", "poetry.lock", "uv.lock", "yarn.lock")


@dataclass
class ScopeAnalysis:
    planned: list[str]
    actual: list[str]
    matched: list[str] = field(default_factory=list)
    unplanned: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def deviation(self) -> float:
        total = max(len(self.planned), len(self.actual))
        if total == 0:
            return 0.0
        return (len(self.unplanned) + len(self.missing)) / total * 100

    @property
    def major_unplanned(self) -> list[str]:
        return [path for path in self.unplanned if is_major(path)]


def _normalize(path: str) -> str:
    return path.strip().lstrip("/").lower()


def _same_file(left: str, right: str) -> bool:
    return left == right or posixpath.basename(left) == posixpath.basename(right)


def extract_planned_files(plan_text: str) -> list[str]:
    """Paths a plan names via markdown links, code spans or bare paths under source roots."""
    found: list[str] = []
    for pattern in (_LINK_RE, _CODE_RE, _PATH_RE):
        found.extend(match.group(1) for match in pattern.finditer(plan_text))
    seen: set[str] = set()
    planned: list[str] = []
    for path in found:
        cleaned = path.strip().lstrip("/")
        if cleaned not in seen:
            seen.add(cleaned)
            planned.append(cleaned)
    return planned


def filter_changed_files(paths: list[str]) -> list[str]:
    suffixes = tuple(f".{ext}" for ext in SCOPE_EXTENSIONS)
    return [
        path
        for path in paths
        if path.endswith(suffixes) and not any(part in SKIP_DIRS for part in path.split("/"))
    ]


def analyze_deviation(planned: list[str], actual: list[str]) -> ScopeAnalysis:
    analysis = ScopeAnalysis(planned=list(planned), actual=list(actual))
    norm_planned = [_normalize(p) for p in planned]
    norm_actual = [_normalize(a) for a in actual]

    for path, normalized in zip(actual, norm_actual, strict=True):
        if any(_same_file(p, normalized) for p in norm_planned):
            analysis.matched.append(path)
        else:
            analysis.unplanned.append(path)
    for path, normalized in zip(planned, norm_planned, strict=True):
        if not any(_same_file(normalized, a) for a in norm_actual):
            analysis.missing.append(path)
    return analysis


def is_major(path: str) -> bool:
    lowered = path.lower()
    return not any(marker in lowered for marker in _MINOR_MARKERS)


def check_scope(ctx: GateContext, text: str | None) -> GateCheck:
    check = GateCheck()
    if text is None:
        return check

    base = ctx.inputs.base_ref or "HEAD~1"
    head = ctx.inputs.head_ref or "HEAD"
    try:
        changed = ctx.probes.vcs.changed_paths(base, head)
    except ProbeUnavailableError as exc:
        check.block("probe_unavailable", f"Version control unavailable: {exc}")
        return check
    except ProbeFailedError as exc:
        check.block("probe_failure", f"Could not diff {base}..{head}: {exc}", exc.raw_output or None)
        return check

    analysis = analyze_deviation(extract_planned_files(text), filter_changed_files(changed))
    threshold = float(ctx.params.get("threshold", DEFAULT_THRESHOLD))
    max_major = int(ctx.params.get("max_major_unplanned", DEFAULT_MAX_MAJOR_UNPLANNED))
    logger.debug(
        "scope %s..%s planned=%d actual=%d deviation=%.1f",
        base,
        head,
        len(analysis.planned),
        len(analysis.actual),
        analysis.deviation,
    )

    check.metrics.update(
        {
            "planned_files": len(analysis.planned),
            "actual_files": len(analysis.actual),
            "matched_files": len(analysis.matched),
            "unplanned_files": len(analysis.unplanned),
            "missing_files": len(analysis.missing),
            "deviation_percent": round(analysis.deviation, 1),
        }
    )

    if analysis.deviation > threshold:
        if find_heading(text, EXPLANATION_HEADINGS) is None:
            check.block(
                "content",
                f"{analysis.deviation:.1f}% scope deviation without explanation "
                f"(threshold: {threshold:g}%)",
                ", ".join(analysis.unplanned[:10]) or None,
            )
        else:
            check.warn(f"{analysis.deviation:.1f}% scope deviation, explained in plan")

    major = analysis.major_unplanned
    if len(major) > max_major:
        check.block(
            "content",
            f"{len(major)} major unplanned files (need explanation)",
            ", ".join(major[:10]),
        )
    return check
