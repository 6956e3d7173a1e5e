"""Markdown scanning helpers shared by validators and gate kinds."""

from __future__ import annotations

import re
from dataclasses import dataclass

_HEADING_RE = re.compile(r"^(#{1,6})[ \t]*(.*?)[ \t#]*$")
_CHECKLIST_RE = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+\[([ xX])\]", re.MULTILINE)
_URL_RE = re.compile(r"https?://[^\s<>()\[\]\"'`]+")
_WORD_RE = re.compile(r"\S+")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


@dataclass(frozen=True)
class Heading:
    level: int
    title: str
    line: int


def iter_headings(text: str) -> list[Heading]:
    """ATX headings outside fenced code blocks."""
    headings: list[Heading] = []
    in_fence = False
    for index, line in enumerate(text.splitlines()):
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _HEADING_RE.match(line)
        if match:
            headings.append(Heading(level=len(match.group(1)), title=match.group(2), line=index))
    return headings


def find_heading(text: str, patterns: list[str] | tuple[str, ...]) -> Heading | None:
    """First heading whose title matches any pattern (case-insensitive)."""
    compiled = [re.compile(p, re.IGNORECASE) for p in patterns]
    for heading in iter_headings(text):
        if any(rx.search(heading.title) for rx in compiled):
            return heading
    return None


def section_body(text: str, patterns: list[str] | tuple[str, ...]) -> str | None:
    """Text under the first matching heading, up to the next heading of the same or higher level."""
    heading = find_heading(text, patterns)
    if heading is None:
        return None
    lines = text.splitlines()
    end = len(lines)
    for other in iter_headings(text):
        if other.line > heading.line and other.level <= heading.level:
            end = other.line
            break
    return "\n".join(lines[heading.line + 1 : end])


def split_sections(text: str, level: int = 2) -> list[tuple[str, str]]:
    """(title, body) for each heading of exactly ``level``; bodies stop at the next such heading or a higher one."""
    lines = text.splitlines()
    headings = iter_headings(text)
    sections: list[tuple[str, str]] = []
    for i, heading in enumerate(headings):
        if heading.level != level:
            continue
        end = len(lines)
        for other in headings[i + 1 :]:
            if other.level <= level:
                end = other.line
                break
        sections.append((heading.title, "\n".join(lines[heading.line + 1 : end])))
    return sections


def count_words(text: str) -> int:
    return len(_WORD_RE.findall(text))


def count_nonblank_lines(text: str) -> int:
    return sum(1 for line in text.splitlines() if line.strip())


def checklist_counts(text: str) -> tuple[int, int]:
    """(checked, unchecked) markdown task-list items."""
    checked = 0
    unchecked = 0
    for mark in _CHECKLIST_RE.findall(text):
        if mark.lower() == "x":
            checked += 1
        else:
            unchecked += 1
    return checked, unchecked


def extract_urls(text: str) -> list[str]:
    """URLs in order of first appearance, trailing punctuation trimmed."""
    seen: list[str] = []
    for raw in _URL_RE.findall(text):
        url = raw.rstrip(".,;:!?*_")
        if url not in seen:
            seen.append(url)
    return seen
