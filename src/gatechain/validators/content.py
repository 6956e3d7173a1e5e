"""Content validators over document text.

Every validator is a small frozen dataclass that is callable with the
document text and returns a ``ValidationResult``. Validators never raise
for content problems; they report them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit

from gatechain.probes.types import NetworkProbe, ProbeFailedError, ProbeUnavailableError
from gatechain.validators.markdown import (
    checklist_counts,
    count_nonblank_lines,
    count_words,
    extract_urls,
    find_heading,
    section_body,
    split_sections,
)
from gatechain.validators.types import ValidationResult

SHORT_REVISION_LENGTH = 7

DEFAULT_PLACEHOLDER_MARKERS: tuple[str, ...] = (
    "[INSERT",
    "[TODO]",
    "[FILL IN]",
    "your_description_here",
    "[PASTE",
    "lorem ipsum",
)

PLACEHOLDER_HOSTS: tuple[str, ...] = (
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "example.com",
    "example.org",
)
PLACEHOLDER_HOST_WORDS: tuple[str, ...] = ("placeholder", "your-domain", "yourdomain")

DEFAULT_FILE_REFERENCE_PATTERN = (
    r"`([^`\s]+\.[A-Za-z0-9]{1,8})`"
    r"|!\[[^\]]*\]\(([^)\s]+)\)"
)

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


@dataclass(frozen=True)
class SectionPresence:
    """A heading matching one of the accepted synonyms exists."""

    label: str
    patterns: tuple[str, ...]

    @property
    def name(self) -> str:
        return f"section:{self.label}"

    def __call__(self, text: str) -> ValidationResult:
        heading = find_heading(text, self.patterns)
        if heading is None:
            return ValidationResult(
                passed=False,
                detail=f"Missing required section '{self.label}' "
                f"(add a heading matching one of: {', '.join(self.patterns)})",
            )
        return ValidationResult(passed=True, detail=f"section '{heading.title}' present")


@dataclass(frozen=True)
class FreshnessAnchor:
    """The current revision id (full or 7-char short) appears in the text."""

    revision: str | None

    @property
    def name(self) -> str:
        return "freshness"

    def __call__(self, text: str) -> ValidationResult:
        if not self.revision:
            return ValidationResult(
                passed=False,
                detail="Cannot verify freshness: current revision unavailable (is this a git repository?)",
            )
        short = self.revision[:SHORT_REVISION_LENGTH]
        if self.revision in text or short in text:
            return ValidationResult(passed=True, detail=f"anchored to {short}", metrics={"revision": short})
        return ValidationResult(
            passed=False,
            detail=f"Document is stale: current revision {short} not found. "
            f"Re-verify against HEAD and record `git rev-parse HEAD` in the document.",
            metrics={"revision": short},
        )


@dataclass(frozen=True)
class MinimumDensity:
    minimum: int
    unit: str = "lines"

    @property
    def name(self) -> str:
        return f"density:{self.unit}"

    def __call__(self, text: str) -> ValidationResult:
        count = count_words(text) if self.unit == "words" else count_nonblank_lines(text)
        metrics = {f"{self.unit}": count}
        if count < self.minimum:
            return ValidationResult(
                passed=False,
                detail=f"Too thin: {count} {self.unit} (minimum {self.minimum})",
                metrics=metrics,
            )
        return ValidationResult(passed=True, detail=f"{count} {self.unit}", metrics=metrics)


@dataclass(frozen=True)
class SectionDensity:
    """Every section at ``level`` holds at least ``minimum`` words."""

    minimum: int
    level: int = 2

    @property
    def name(self) -> str:
        return "section_density"

    def __call__(self, text: str) -> ValidationResult:
        sections = split_sections(text, self.level)
        if not sections:
            return ValidationResult(passed=False, detail=f"No level-{self.level} sections found")
        thin = [
            f"'{title}' ({count_words(body)} words)"
            for title, body in sections
            if count_words(body) < self.minimum
        ]
        if thin:
            return ValidationResult(
                passed=False,
                detail=f"Sections below {self.minimum} words: {', '.join(thin)}",
                metrics={"thin_sections": len(thin)},
            )
        return ValidationResult(passed=True, detail=f"{len(sections)} sections meet {self.minimum} words")


@dataclass(frozen=True)
class PlaceholderAbsence:
    markers: tuple[str, ...] = DEFAULT_PLACEHOLDER_MARKERS

    @property
    def name(self) -> str:
        return "placeholders"

    def __call__(self, text: str) -> ValidationResult:
        lowered = text.lower()
        found = [marker for marker in self.markers if marker.lower() in lowered]
        if found:
            return ValidationResult(
                passed=False,
                detail=f"Template placeholders left in document: {', '.join(found)}",
                metrics={"placeholders": len(found)},
            )
        return ValidationResult(passed=True, detail="no placeholders")


@dataclass(frozen=True)
class ChecklistCompletion:
    """Every task-list item inside the named section is checked."""

    label: str
    patterns: tuple[str, ...]
    min_items: int = 1

    @property
    def name(self) -> str:
        return f"checklist:{self.label}"

    def __call__(self, text: str) -> ValidationResult:
        body = section_body(text, self.patterns)
        if body is None:
            return ValidationResult(passed=False, detail=f"Checklist section '{self.label}' not found")
        checked, unchecked = checklist_counts(body)
        metrics = {"checked": checked, "unchecked": unchecked}
        if unchecked:
            return ValidationResult(
                passed=False,
                detail=f"'{self.label}' has {_plural(unchecked, 'unchecked item')}",
                metrics=metrics,
            )
        if checked < self.min_items:
            return ValidationResult(
                passed=False,
                detail=f"'{self.label}' has {checked} checked items (minimum {self.min_items})",
                metrics=metrics,
            )
        return ValidationResult(passed=True, detail=f"{checked} items checked", metrics=metrics)


@dataclass(frozen=True)
class NumericEvidence:
    """A claim must carry an actual number, optionally bounded above.

    The number is looked for after the claim on the same line, then before
    it, then on the next non-blank line.
    """

    label: str
    claim: str
    max_value: float | None = None

    @property
    def name(self) -> str:
        return f"numeric:{self.label}"

    def __call__(self, text: str) -> ValidationResult:
        rx = re.compile(self.claim, re.IGNORECASE)
        lines = text.splitlines()
        claimed = False
        for index, line in enumerate(lines):
            match = rx.search(line)
            if not match:
                continue
            claimed = True
            value = _number_near(line, match, lines[index + 1 :])
            if value is None:
                continue
            metrics = {self.label: value}
            if self.max_value is not None and value > self.max_value:
                return ValidationResult(
                    passed=False,
                    detail=f"'{self.label}' is {value:g} (maximum {self.max_value:g})",
                    metrics=metrics,
                )
            return ValidationResult(passed=True, detail=f"'{self.label}' = {value:g}", metrics=metrics)

        if claimed:
            return ValidationResult(
                passed=False,
                detail=f"'{self.label}' is claimed in prose only; state the actual number",
            )
        return ValidationResult(passed=False, detail=f"No '{self.label}' figure found")


def _number_near(line: str, match: re.Match[str], following: list[str]) -> float | None:
    after = _NUMBER_RE.findall(line[match.end() :])
    if after:
        return float(after[0])
    before = _NUMBER_RE.findall(line[: match.start()])
    if before:
        return float(before[-1])
    for nxt in following:
        if nxt.strip():
            found = _NUMBER_RE.findall(nxt)
            return float(found[0]) if found else None
    return None


@dataclass(frozen=True)
class PatternCount:
    label: str
    pattern: str
    minimum: int = 1
    case_sensitive: bool = False

    @property
    def name(self) -> str:
        return f"pattern:{self.label}"

    def __call__(self, text: str) -> ValidationResult:
        flags = re.MULTILINE if self.case_sensitive else re.IGNORECASE | re.MULTILINE
        count = len(re.findall(self.pattern, text, flags))
        metrics = {self.label: count}
        if count < self.minimum:
            return ValidationResult(
                passed=False,
                detail=f"'{self.label}' found {count} time(s) (minimum {self.minimum})",
                metrics=metrics,
            )
        return ValidationResult(passed=True, detail=f"'{self.label}' x{count}", metrics=metrics)


@dataclass(frozen=True)
class VocabularyVariety:
    """Unique-token ratio; low values indicate copy-paste padding."""

    min_ratio: float = 0.4

    @property
    def name(self) -> str:
        return "vocabulary"

    def __call__(self, text: str) -> ValidationResult:
        words = text.split()
        if not words:
            return ValidationResult(passed=False, detail="Document is empty")
        ratio = len(set(words)) / len(words)
        metrics = {"vocabulary_ratio": round(ratio, 3)}
        if ratio < self.min_ratio:
            return ValidationResult(
                passed=False,
                detail=f"Low vocabulary variety ({ratio:.0%}); content looks repetitive or pasted",
                metrics=metrics,
            )
        return ValidationResult(passed=True, detail=f"vocabulary variety {ratio:.0%}", metrics=metrics)


@dataclass(frozen=True)
class ReferencedFiles:
    """Paths referenced by the document exist and are not trivially small."""

    base_dirs: tuple[Path, ...]
    pattern: str = DEFAULT_FILE_REFERENCE_PATTERN
    min_bytes: int = 1
    min_count: int = 1
    label: str = "referenced files"

    @property
    def name(self) -> str:
        return f"files:{self.label}"

    def _references(self, text: str) -> list[str]:
        refs: list[str] = []
        for match in re.finditer(self.pattern, text, re.IGNORECASE):
            groups = [g for g in match.groups() if g] or [match.group(0)]
            ref = groups[0].strip()
            if "://" in ref or ref in refs:
                continue
            refs.append(ref)
        return refs

    def _resolve(self, ref: str) -> Path | None:
        for base in self.base_dirs:
            candidate = base / ref.lstrip("/")
            if candidate.is_file():
                return candidate
        return None

    def __call__(self, text: str) -> ValidationResult:
        refs = self._references(text)
        problems: list[str] = []
        good = 0
        for ref in refs:
            path = self._resolve(ref)
            if path is None:
                problems.append(f"{ref} (missing)")
            elif path.stat().st_size < self.min_bytes:
                problems.append(f"{ref} ({path.stat().st_size} bytes < {self.min_bytes})")
            else:
                good += 1

        metrics = {"files_referenced": len(refs), "files_valid": good}
        if problems:
            return ValidationResult(
                passed=False,
                detail=f"Invalid {self.label}: {', '.join(problems)}",
                metrics=metrics,
            )
        if good < self.min_count:
            return ValidationResult(
                passed=False,
                detail=f"Found {good} {self.label} (minimum {self.min_count})",
                metrics=metrics,
            )
        return ValidationResult(passed=True, detail=f"{good} {self.label} verified", metrics=metrics)


def is_placeholder_url(url: str) -> bool:
    host = (urlsplit(url).hostname or "").lower()
    if not host:
        return True
    if host in PLACEHOLDER_HOSTS or any(host.endswith("." + h) for h in PLACEHOLDER_HOSTS):
        return True
    return any(word in url.lower() for word in PLACEHOLDER_HOST_WORDS)


@dataclass(frozen=True)
class Reachability:
    """The first real (non-placeholder, non-loopback) URL answers 2xx/3xx."""

    network: NetworkProbe
    label: str = "url"
    url_pattern: str | None = None
    exclude: tuple[str, ...] = field(default=())

    @property
    def name(self) -> str:
        return f"reachability:{self.label}"

    def _candidates(self, text: str) -> list[str]:
        scope = text
        if self.url_pattern:
            lines = [line for line in text.splitlines() if re.search(self.url_pattern, line, re.IGNORECASE)]
            scope = "\n".join(lines)
        urls = [u for u in extract_urls(scope) if not is_placeholder_url(u)]
        return [u for u in urls if not any(x in u for x in self.exclude)]

    def __call__(self, text: str) -> ValidationResult:
        candidates = self._candidates(text)
        if not candidates:
            return ValidationResult(
                passed=False,
                detail=f"No real {self.label} found (localhost, example.com and placeholder hosts do not count)",
            )
        url = candidates[0]
        try:
            status = self.network.head(url)
        except (ProbeFailedError, ProbeUnavailableError) as e:
            return ValidationResult(passed=False, detail=f"{self.label} {url} unreachable: {e}", metrics={"url": url})
        metrics = {"url": url, "status": status}
        if 200 <= status < 400:
            return ValidationResult(passed=True, detail=f"{url} responded {status}", metrics=metrics)
        return ValidationResult(passed=False, detail=f"{self.label} {url} responded {status}", metrics=metrics)
