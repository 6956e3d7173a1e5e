from __future__ import annotations

from rich.console import Console

from gatechain.chain.runner import CycleReport, GateOutcome
from gatechain.chain.state import ChainState
from gatechain.gates.types import Verdict, Violation
from gatechain.ui import print_cycle_summary, print_outcome, print_verdict


def _console() -> Console:
    return Console(record=True, width=120, color_system=None)


def _blocked() -> Verdict:
    return Verdict(
        gate_id="docs",
        gate_title="G12 Documentation",
        gate_kind="document",
        task_id="ENTRY-042",
        timestamp="1970-01-01T00:00:00Z",
        outcome="BLOCKED",
        violations=(
            Violation(kind="content", message="Placeholder text found: [TBD]", evidence="line 4: [TBD]"),
        ),
        warnings=("recording: not found",),
    )


def test_verdict_shows_fix_hint_and_keeps_brackets() -> None:
    out = _console()

    print_verdict(_blocked(), out=out)

    text = out.export_text()
    assert "content: Placeholder text found: [TBD]" in text
    assert "line 4: [TBD]" in text
    assert "Fix: Edit the artifact" in text
    assert "⚠ recording: not found" in text
    assert "BLOCKED  G12 Documentation (docs) for ENTRY-042: 1 violation(s)" in text


def test_cycle_output_marks_locked_gates() -> None:
    out = _console()
    outcomes = (
        GateOutcome(0, "plan", "PASSED"),
        GateOutcome(1, "docs", "BLOCKED", _blocked()),
        GateOutcome(2, "lint", "LOCKED"),
    )
    for outcome in outcomes:
        print_outcome(outcome, out=out)
    print_cycle_summary(CycleReport("ENTRY-042", ChainState(0, 1), outcomes), 3, out=out)

    text = out.export_text()
    assert "🔒 LOCKED lint" in text
    assert "CHAIN BLOCKED  ENTRY-042: 1/3 gates (at docs)" in text
