"""Validator interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class ValidationResult:
    passed: bool
    detail: str
    metrics: dict[str, Any] = field(default_factory=dict)


class Validator(Protocol):
    """A named predicate over document text."""

    @property
    def name(self) -> str: ...

    def __call__(self, text: str) -> ValidationResult: ...
