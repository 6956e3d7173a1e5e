"""Content validators over artifact text."""

from __future__ import annotations

from pathlib import Path

import pytest

from gatechain.probes.types import ProbeFailedError
from gatechain.validators.content import (
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
    is_placeholder_url,
)
from gatechain.validators.factory import (
    ValidatorContext,
    build_validator,
    needs_revision,
    parse_validator_spec,
)

REVISION = "0123456789abcdef0123456789abcdef01234567"


class _Network:
    def __init__(self, status: int = 200, error: Exception | None = None) -> None:
        self.status = status
        self.error = error
        self.urls: list[str] = []

    def head(self, url: str) -> int:
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.status


def test_checklist_reports_single_unchecked_item() -> None:
    text = "# Security\n\n## OWASP Checklist\n- [x] A01 Broken access control\n- [ ] A02 Cryptographic failures\n"
    result = ChecklistCompletion(label="OWASP checklist", patterns=("OWASP",))(text)

    assert not result.passed
    assert "1 unchecked item" in result.detail
    assert result.metrics == {"checked": 1, "unchecked": 1}


def test_checklist_pluralizes_and_enforces_minimum() -> None:
    validator = ChecklistCompletion(label="OWASP checklist", patterns=("OWASP",), min_items=10)

    two_open = validator("## OWASP\n- [ ] one\n- [ ] two\n")
    too_few = validator("## OWASP\n- [x] one\n- [X] two\n")

    assert "2 unchecked items" in two_open.detail
    assert not too_few.passed
    assert "minimum 10" in too_few.detail


def test_checklist_only_counts_items_inside_its_section() -> None:
    text = "## Manual Verification\n- [x] login works\n\n## Notes\n- [ ] unrelated todo\n"
    result = ChecklistCompletion(label="manual verification", patterns=(r"Manual\s+Verification",))(text)

    assert result.passed


def test_checklist_missing_section() -> None:
    result = ChecklistCompletion(label="user flow", patterns=(r"User\s+Flow",))("# Report\n- [x] a\n")

    assert not result.passed
    assert "not found" in result.detail


def test_freshness_accepts_full_or_short_revision() -> None:
    validator = FreshnessAnchor(revision=REVISION)

    assert validator(f"Verified at {REVISION}").passed
    assert validator("Verified at commit 0123456 on main").passed


def test_freshness_blocks_stale_and_unknown_revision() -> None:
    stale = FreshnessAnchor(revision=REVISION)("Verified at commit fedcba9")
    unknown = FreshnessAnchor(revision=None)("Verified at commit 0123456")

    assert not stale.passed
    assert "stale" in stale.detail
    assert "0123456" in stale.detail
    assert not unknown.passed
    assert "revision unavailable" in unknown.detail


def test_numeric_evidence_rejects_prose_only_claims() -> None:
    result = NumericEvidence(label="test results", claim=r"\btests?\b")("All tests pass.")

    assert not result.passed
    assert "prose only" in result.detail


def test_numeric_evidence_reads_number_after_claim() -> None:
    result = NumericEvidence(label="test results", claim=r"\btests?\b")("Tests: 42 passed, 0 failed")

    assert result.passed
    assert result.metrics == {"test results": 42.0}


def test_numeric_evidence_respects_maximum() -> None:
    validator = NumericEvidence(label="console errors", claim=r"console\s+errors?", max_value=0)

    assert validator("Console errors: 0").passed
    blocked = validator("Console errors: 3")
    assert not blocked.passed
    assert "maximum 0" in blocked.detail


def test_numeric_evidence_looks_at_next_line() -> None:
    result = NumericEvidence(label="coverage", claim=r"coverage")("## Coverage\n\n87.5% of lines\n")

    assert result.passed
    assert result.metrics["coverage"] == 87.5


def test_placeholders_are_case_insensitive() -> None:
    result = PlaceholderAbsence()("Owner: [insert name here]\n")

    assert not result.passed
    assert "[INSERT" in result.detail
    assert PlaceholderAbsence()("All filled in.\n").passed


def test_density_counts_words_or_lines() -> None:
    text = "one two three\n\nfour five\n"

    assert MinimumDensity(minimum=5, unit="words")(text).passed
    lines = MinimumDensity(minimum=3, unit="lines")(text)
    assert not lines.passed
    assert lines.metrics == {"lines": 2}


def test_section_density_names_thin_sections() -> None:
    text = "## Implementation\n" + "word " * 12 + "\n## Testing\nshort\n"
    result = SectionDensity(minimum=10)(text)

    assert not result.passed
    assert "'Testing' (1 words)" in result.detail
    assert "Implementation" not in result.detail


def test_section_presence_accepts_synonyms_and_ignores_code_fences() -> None:
    validator = SectionPresence(label="current state", patterns=(r"Current\s+State", r"Analysis"))

    assert validator("# Audit\n## Code Analysis\ntext\n").passed
    assert not validator("# Audit\n```\n## Analysis\n```\n").passed


def test_pattern_count_minimum_and_case_sensitivity() -> None:
    searches = PatternCount(label="search blocks", pattern=r"^##\s+Search\s+#\d+", minimum=3)
    signature = PatternCount(label="approval", pattern=r"\bAPPROVED\b", case_sensitive=True)

    result = searches("## Search #1\n## Search #2\n")
    assert not result.passed
    assert result.metrics == {"search blocks": 2}
    assert not signature("approved by nobody").passed
    assert signature("Status: APPROVED").passed


def test_vocabulary_variety_flags_repetition() -> None:
    assert not VocabularyVariety(min_ratio=0.4)("same " * 50).passed
    assert VocabularyVariety(min_ratio=0.4)("every word here is different from the others").passed


def test_referenced_files_checks_existence_and_size(tmp_path: Path) -> None:
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "home.png").write_bytes(b"\x89PNG" + b"0" * 6000)
    (tmp_path / "docs" / "tiny.png").write_bytes(b"\x89PNG")
    pattern = r"((?:docs|screenshots?)/[^\s)\]\"',]+\.(?:png|jpg|jpeg|webp))"
    validator = ReferencedFiles(base_dirs=(tmp_path,), pattern=pattern, min_bytes=5000, label="screenshots")

    ok = validator("![home](docs/home.png)")
    bad = validator("![home](docs/home.png) ![tiny](docs/tiny.png) ![gone](docs/gone.png)")

    assert ok.passed
    assert not bad.passed
    assert "docs/tiny.png (4 bytes < 5000)" in bad.detail
    assert "docs/gone.png (missing)" in bad.detail


def test_reachability_skips_placeholder_hosts() -> None:
    network = _Network(status=200)
    validator = Reachability(network=network, label="production url")

    result = validator("Local: http://localhost:3000\nLive: https://app.acme.dev/login.")

    assert result.passed
    assert network.urls == ["https://app.acme.dev/login"]


def test_reachability_blocks_bad_status_and_transport_errors() -> None:
    text = "Live: https://app.acme.dev"

    assert not Reachability(network=_Network(status=404))(text).passed
    failed = Reachability(network=_Network(error=ProbeFailedError("timed out")))(text)
    assert not failed.passed
    assert "unreachable" in failed.detail


def test_reachability_requires_a_real_url() -> None:
    result = Reachability(network=_Network())("See https://example.com and http://127.0.0.1:8000")

    assert not result.passed
    assert "No real url" in result.detail


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("http://localhost:3000", True),
        ("https://staging.example.com", True),
        ("https://your-domain.vercel.app", True),
        ("https://app.acme.dev", False),
    ],
)
def test_is_placeholder_url(url: str, expected: bool) -> None:
    assert is_placeholder_url(url) is expected


def test_parse_validator_spec_rejects_waived_freshness() -> None:
    with pytest.raises(ValueError, match="cannot be downgraded"):
        parse_validator_spec({"type": "freshness", "severity": "warning"}, "gates.x.validators[0]")


def test_parse_validator_spec_rejects_unknown_type_and_missing_options() -> None:
    with pytest.raises(ValueError, match="type must be one of"):
        parse_validator_spec({"type": "vibes"}, "v")
    with pytest.raises(ValueError, match="missing required option"):
        parse_validator_spec({"type": "checklist", "name": "x"}, "v")


def test_build_validator_wires_context() -> None:
    spec = parse_validator_spec({"type": "freshness"}, "v")
    ctx = ValidatorContext(revision=REVISION, base_dirs=(), network=_Network())

    assert needs_revision((spec,))
    assert build_validator(spec, ctx)("at 0123456").passed
