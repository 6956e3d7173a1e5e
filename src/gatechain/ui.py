from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from gatechain.chain.runner import CycleReport, GateOutcome
from gatechain.gates.report import REMEDIATION
from gatechain.gates.types import Verdict

console = Console()

STATUS_STYLES: dict[str, str] = {
    "PASSED": "bold green",
    "BLOCKED": "bold red",
    "LOCKED": "dim",
}


def print_verdict(verdict: Verdict, *, out: Console | None = None) -> None:
    """Violations with fix-it hints, then warnings, then the PASS/BLOCKED banner."""
    out = out or console
    for violation in verdict.violations:
        out.print(f"[red]✗[/red] [bold]{violation.kind}[/bold]: {escape(violation.message)}")
        if violation.evidence:
            for line in violation.evidence.splitlines()[:10]:
                out.print(f"    [dim]{escape(line)}[/dim]", highlight=False)
        out.print(f"    [cyan]Fix:[/cyan] {REMEDIATION[violation.kind]}")
    for warning in verdict.warnings:
        out.print(f"[yellow]⚠[/yellow] {escape(warning)}")
    print_banner(verdict, out=out)


def print_banner(verdict: Verdict, *, out: Console | None = None) -> None:
    out = out or console
    label = f"{verdict.gate_title} ({verdict.gate_id}) for {verdict.task_id}"
    if verdict.passed:
        out.print(Text(f" PASS  {label} ", style="bold bright_white on green"))
    else:
        count = len(verdict.violations)
        out.print(Text(f" BLOCKED  {label}: {count} violation(s) ", style="bold bright_white on red"))


def print_outcome(outcome: GateOutcome, *, out: Console | None = None) -> None:
    out = out or console
    style = STATUS_STYLES[outcome.status]
    marker = "🔒 " if outcome.status == "LOCKED" else ""
    out.print(f"  {outcome.index + 1:>2}. {marker}[{style}]{outcome.status}[/{style}] {outcome.gate_id}")
    if outcome.status == "BLOCKED" and outcome.verdict is not None:
        for violation in outcome.verdict.violations:
            out.print(f"      [red]✗[/red] {escape(violation.message)}")


def print_cycle_summary(report: CycleReport, total: int, *, out: Console | None = None) -> None:
    out = out or console
    passed = report.state.last_passed_index + 1
    if report.all_passed:
        out.print(Text(f" CHAIN PASS  {report.task_id}: {passed}/{total} gates ", style="bold bright_white on green"))
    else:
        out.print(
            Text(
                f" CHAIN BLOCKED  {report.task_id}: {passed}/{total} gates (at {report.blocked_at}) ",
                style="bold bright_white on red",
            )
        )


def gates_table(rows: list[tuple[str, str, str, str, str]]) -> Table:
    table = Table(title="Gate catalogue")
    table.add_column("#", justify="right")
    table.add_column("Gate")
    table.add_column("Title")
    table.add_column("Kind")
    table.add_column("Depends on")
    for row in rows:
        table.add_row(*row)
    return table
