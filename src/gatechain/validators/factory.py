"""Build validators from declarative catalogue entries."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gatechain.probes.types import NetworkProbe
from gatechain.validators.content import (
    DEFAULT_FILE_REFERENCE_PATTERN,
    DEFAULT_PLACEHOLDER_MARKERS,
    ChecklistCompletion,
    FreshnessAnchor,
    MinimumDensity,
    NumericEvidence,
    PatternCount,
    PlaceholderAbsence,
    Reachability,
    ReferencedFiles,
    SectionDensity,
    SectionPresence,
    VocabularyVariety,
)
from gatechain.validators.types import Severity, Validator

SEVERITIES: tuple[str, ...] = ("error", "warning")
NON_WAIVABLE: frozenset[str] = frozenset({"freshness"})

# type -> options that must be present
REQUIRED_OPTIONS: dict[str, tuple[str, ...]] = {
    "section": ("name", "patterns"),
    "freshness": (),
    "density": ("min",),
    "section_density": ("min",),
    "placeholders": (),
    "checklist": ("name", "patterns"),
    "numeric": ("name", "claim"),
    "pattern": ("name", "pattern"),
    "vocabulary": (),
    "referenced_files": (),
    "reachability": (),
}


@dataclass(frozen=True)
class ValidatorSpec:
    """One validator entry of a gate definition."""

    type: str
    severity: Severity = "error"
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return str(self.options.get("name", self.type))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, **self.options}
        if self.severity != "error":
            data["severity"] = self.severity
        return data


@dataclass(frozen=True)
class ValidatorContext:
    """Per-evaluation facts some validators need beyond the text."""

    revision: str | None
    base_dirs: tuple[Path, ...]
    network: NetworkProbe


def parse_validator_spec(raw: Any, where: str) -> ValidatorSpec:
    """Validate one raw catalogue entry.

    Raises:
        ValueError: With ``where`` in the message when the entry is invalid
    """
    if not isinstance(raw, dict):
        raise ValueError(f"{where} must be a mapping")
    vtype = str(raw.get("type", "")).strip()
    if vtype not in REQUIRED_OPTIONS:
        raise ValueError(f"{where}.type must be one of {sorted(REQUIRED_OPTIONS)}, got `{vtype}`")

    severity = str(raw.get("severity", "error")).strip().lower()
    if severity not in SEVERITIES:
        raise ValueError(f"{where}.severity must be one of {SEVERITIES}, got `{severity}`")
    if vtype in NON_WAIVABLE and severity != "error":
        raise ValueError(f"{where}: `{vtype}` cannot be downgraded to a warning")

    options = {k: v for k, v in raw.items() if k not in {"type", "severity"}}
    missing = [key for key in REQUIRED_OPTIONS[vtype] if key not in options]
    if missing:
        raise ValueError(f"{where} ({vtype}) missing required option(s): {', '.join(missing)}")
    for key in ("patterns", "markers"):
        if key in options and (
            not isinstance(options[key], list) or not all(isinstance(p, str) for p in options[key])
        ):
            raise ValueError(f"{where}.{key} must be a list of strings")
    if vtype == "density" and options.get("unit", "lines") not in {"lines", "words"}:
        raise ValueError(f"{where}.unit must be `lines` or `words`")

    return ValidatorSpec(type=vtype, severity=severity, options=options)  # type: ignore[arg-type]


def _section(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return SectionPresence(label=str(o["name"]), patterns=tuple(o["patterns"]))


def _freshness(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return FreshnessAnchor(revision=ctx.revision)


def _density(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return MinimumDensity(minimum=int(o["min"]), unit=str(o.get("unit", "lines")))


def _section_density(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return SectionDensity(minimum=int(o["min"]), level=int(o.get("level", 2)))


def _placeholders(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return PlaceholderAbsence(markers=tuple(o.get("markers", DEFAULT_PLACEHOLDER_MARKERS)))


def _checklist(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return ChecklistCompletion(
        label=str(o["name"]),
        patterns=tuple(o["patterns"]),
        min_items=int(o.get("min_items", 1)),
    )


def _numeric(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    max_value = o.get("max")
    return NumericEvidence(
        label=str(o["name"]),
        claim=str(o["claim"]),
        max_value=float(max_value) if max_value is not None else None,
    )


def _pattern(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return PatternCount(
        label=str(o["name"]),
        pattern=str(o["pattern"]),
        minimum=int(o.get("min", 1)),
        case_sensitive=bool(o.get("case_sensitive", False)),
    )


def _vocabulary(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return VocabularyVariety(min_ratio=float(o.get("min_ratio", 0.4)))


def _referenced_files(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return ReferencedFiles(
        base_dirs=ctx.base_dirs,
        pattern=str(o.get("pattern", DEFAULT_FILE_REFERENCE_PATTERN)),
        min_bytes=int(o.get("min_bytes", 1)),
        min_count=int(o.get("min_count", 1)),
        label=str(o.get("name", "referenced files")),
    )


def _reachability(o: dict[str, Any], ctx: ValidatorContext) -> Validator:
    return Reachability(
        network=ctx.network,
        label=str(o.get("name", "url")),
        url_pattern=o.get("url_pattern"),
        exclude=tuple(o.get("exclude", ())),
    )


_BUILDERS: dict[str, Callable[[dict[str, Any], ValidatorContext], Validator]] = {
    "section": _section,
    "freshness": _freshness,
    "density": _density,
    "section_density": _section_density,
    "placeholders": _placeholders,
    "checklist": _checklist,
    "numeric": _numeric,
    "pattern": _pattern,
    "vocabulary": _vocabulary,
    "referenced_files": _referenced_files,
    "reachability": _reachability,
}


def build_validator(spec: ValidatorSpec, ctx: ValidatorContext) -> Validator:
    return _BUILDERS[spec.type](spec.options, ctx)


def needs_revision(specs: tuple[ValidatorSpec, ...]) -> bool:
    return any(spec.type == "freshness" for spec in specs)
