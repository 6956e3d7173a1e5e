"""gatechain CLI - evaluate gates, run the chain, verify evidence."""

import logging
from collections.abc import Callable
from functools import partial
from pathlib import Path
from typing import Annotated

import click
import typer
from rich.console import Console
from rich.markup import escape

from gatechain import __version__
from gatechain.chain import ChainRunner, ChainStateStore, JsonChainStateStore, MemoryChainStateStore
from gatechain.config import ConfigError, GatechainConfig, load_config
from gatechain.evidence import (
    EvidenceStore,
    IntegrityError,
    check_integrity,
    seal_manifest,
    verify_ledger,
    verify_ticket,
)
from gatechain.evidence.verify import VerificationReport
from gatechain.gates.catalog import CatalogError, GateCatalog, ensure_default_catalog, load_catalog
from gatechain.gates.evaluator import GateEvaluator
from gatechain.gates.types import GateInputs, MissingGateInput, UnknownGateError
from gatechain.probes.toolbox import build_probe_set
from gatechain.task_id import TaskIdError
from gatechain.ui import gates_table, print_cycle_summary, print_outcome, print_verdict

logger = logging.getLogger(__name__)

EXIT_PASS = 0
EXIT_BLOCKED = 1
EXIT_USAGE = 2
EXIT_INTEGRITY = 3

USAGE_ERRORS = (TaskIdError, UnknownGateError, MissingGateInput)

cli = typer.Typer(
    name="gatechain",
    help="gatechain - ordered process-compliance gates with a tamper-evident evidence ledger",
    no_args_is_help=True,
)
ticket_app = typer.Typer(help="Evidence ticket commands.", no_args_is_help=True)
ledger_app = typer.Typer(help="Evidence ledger commands.", no_args_is_help=True)
integrity_app = typer.Typer(help="Integrity manifest commands.", no_args_is_help=True)
cli.add_typer(ticket_app, name="ticket")
cli.add_typer(ledger_app, name="ledger")
cli.add_typer(integrity_app, name="integrity")

console = Console()

WorkspaceRootOpt = Annotated[
    Path,
    typer.Option("--workspace-root", help="Workspace (repository) root to evaluate"),
]
EvidenceRootOpt = Annotated[
    Path | None,
    typer.Option("--evidence-root", help="Evidence output root (default: <workspace>/.evidence)"),
]
ExternalRootOpt = Annotated[
    Path | None,
    typer.Option("--external-root", help="External artifact root searched after the workspace"),
]
TimestampModeOpt = Annotated[
    str | None,
    typer.Option(
        "--timestamp-mode",
        click_type=click.Choice(["deterministic", "now", "wallclock"], case_sensitive=False),
        help="Timestamp mode: deterministic, now, or wallclock",
    ),
]
ActorOpt = Annotated[
    str | None,
    typer.Option("--actor", help="Actor recorded in tickets (default: $GATECHAIN_ACTOR or $USER)"),
]
VerboseOpt = Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")]


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@cli.callback()
def _cli_callback(
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version and exit."),
    ] = False,
) -> None:
    """Ordered process-compliance gates with a tamper-evident evidence ledger."""


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )


def _error(message: str, code: int) -> typer.Exit:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    return typer.Exit(code)


def _load(
    workspace_root: Path,
    evidence_root: Path | None,
    external_root: Path | None,
    timestamp_mode: str | None,
    actor: str | None,
    verbose: bool,
) -> GatechainConfig:
    _configure_logging(verbose)
    try:
        return load_config(
            workspace_root,
            evidence_root=evidence_root,
            external_root=external_root,
            actor=actor,
            timestamp_mode=timestamp_mode,
        )
    except ConfigError as e:
        raise _error(str(e), EXIT_USAGE) from e


def _catalog(config: GatechainConfig) -> GateCatalog:
    try:
        return load_catalog(config.workspace_root)
    except CatalogError as e:
        raise _error(f"[{e.reason_code}] {e}", EXIT_USAGE) from e


def _store(config: GatechainConfig) -> EvidenceStore:
    return EvidenceStore(config.evidence_root, actor=config.actor, timestamp_mode=config.timestamp_mode)


def _evaluator(config: GatechainConfig) -> tuple[GateCatalog, GateEvaluator]:
    catalog = _catalog(config)
    return catalog, GateEvaluator(catalog, config, build_probe_set(config), _store(config))


def _print_verification(report: VerificationReport, what: str) -> None:
    if report.ok:
        console.print(f"[green]✓ {what} verified ({report.checked} checked)[/green]")
        return
    for problem in report.problems:
        console.print(f"[red]✗[/red] {escape(problem)}")
    console.print(f"[bold red]{what} verification failed: {len(report.problems)} problem(s)[/bold red]")


@cli.command()
def gate(
    gate_id: Annotated[str, typer.Argument(help="Gate id from the catalogue, e.g. plan")],
    task_id: Annotated[str, typer.Argument(help="Task identifier, e.g. ENTRY-042")],
    pr: Annotated[int | None, typer.Option("--pr", help="Pull request number (approval gates)")] = None,
    url: Annotated[str | None, typer.Option("--url", help="Target URL (performance, accessibility)")] = None,
    base: Annotated[str | None, typer.Option("--base", help="Base ref for diffs (default HEAD~1)")] = None,
    head: Annotated[str | None, typer.Option("--head", help="Head ref for diffs (default HEAD)")] = None,
    workspace_root: WorkspaceRootOpt = Path("."),
    evidence_root: EvidenceRootOpt = None,
    external_root: ExternalRootOpt = None,
    timestamp_mode: TimestampModeOpt = None,
    actor: ActorOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Evaluate one gate for one task and record the verdict.

    Exit codes:
      0 - PASS (ticket issued)
      1 - BLOCKED
      2 - Usage or configuration error (nothing written)
    """
    config = _load(workspace_root, evidence_root, external_root, timestamp_mode, actor, verbose)
    _, evaluator = _evaluator(config)
    inputs = GateInputs(base_ref=base, head_ref=head, pr_number=pr, target_url=url)

    try:
        result = evaluator.evaluate(gate_id, task_id, inputs)
    except USAGE_ERRORS as e:
        raise _error(str(e), EXIT_USAGE) from e
    except RuntimeError as e:
        raise _error(str(e), EXIT_BLOCKED) from e

    print_verdict(result.verdict, out=console)
    console.print(f"[dim]Report: {result.record.report_md}[/dim]")
    if result.record.ticket_path is not None:
        console.print(f"[dim]Ticket: {result.record.ticket_path}[/dim]")
    raise typer.Exit(EXIT_PASS if result.verdict.passed else EXIT_BLOCKED)


@cli.command()
def chain(
    task_id: Annotated[str, typer.Argument(help="Task identifier, e.g. ENTRY-042")],
    interval: Annotated[
        float | None, typer.Option("--interval", help="Seconds between cycles (default from config, 5)")
    ] = None,
    cycles: Annotated[int, typer.Option("--cycles", min=0, help="Cycles to run; 0 runs until interrupted")] = 1,
    state_file: Annotated[
        Path | None, typer.Option("--state-file", help="Persist chain progress in this JSON file")
    ] = None,
    pr: Annotated[int | None, typer.Option("--pr", help="Pull request number (approval gates)")] = None,
    url: Annotated[str | None, typer.Option("--url", help="Target URL (performance, accessibility)")] = None,
    base: Annotated[str | None, typer.Option("--base", help="Base ref for diffs (default HEAD~1)")] = None,
    head: Annotated[str | None, typer.Option("--head", help="Head ref for diffs (default HEAD)")] = None,
    workspace_root: WorkspaceRootOpt = Path("."),
    evidence_root: EvidenceRootOpt = None,
    external_root: ExternalRootOpt = None,
    timestamp_mode: TimestampModeOpt = None,
    actor: ActorOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Run the gate chain in order; later gates stay locked until earlier ones pass.

    Exit codes:
      0 - Every gate passed in the last cycle
      1 - The chain is blocked
      2 - Usage or configuration error
      3 - Integrity failure (chain halted)
    """
    config = _load(workspace_root, evidence_root, external_root, timestamp_mode, actor, verbose)
    catalog, evaluator = _evaluator(config)
    inputs = GateInputs(base_ref=base, head_ref=head, pr_number=pr, target_url=url)

    state_store: ChainStateStore = (
        JsonChainStateStore(state_file.resolve()) if state_file is not None else MemoryChainStateStore()
    )
    manifest = config.integrity_manifest
    integrity: Callable[[], object] | None = None
    if manifest is not None:
        integrity = partial(check_integrity, manifest, config.workspace_root)
    else:
        logger.warning("integrity_manifest is disabled; protected files are not checked")

    runner = ChainRunner(
        catalog.chain,
        lambda gate_id, task, gate_inputs: evaluator.evaluate(gate_id, task, gate_inputs).verdict,
        state_store,
        interval=interval if interval is not None else config.chain_interval,
        integrity=integrity,
        on_event=lambda outcome: print_outcome(outcome, out=console),
    )

    console.print(f"[cyan]Gate chain for {task_id} ({len(catalog.chain)} gates)[/cyan]")
    try:
        report = runner.run(task_id, inputs, max_cycles=cycles or None)
    except IntegrityError as e:
        console.print(f"[bold red]INTEGRITY FAILURE:[/bold red] {escape(str(e))}")
        for problem in e.problems:
            console.print(f"  [red]✗[/red] {escape(problem)}")
        raise typer.Exit(EXIT_INTEGRITY) from e
    except USAGE_ERRORS as e:
        raise _error(str(e), EXIT_USAGE) from e
    except RuntimeError as e:
        raise _error(str(e), EXIT_BLOCKED) from e
    except KeyboardInterrupt:
        console.print("[yellow]Chain stopped.[/yellow]")
        raise typer.Exit(EXIT_BLOCKED) from None

    if report is None:
        raise _error("no chain cycle completed", EXIT_BLOCKED)
    print_cycle_summary(report, len(catalog.chain), out=console)
    raise typer.Exit(EXIT_PASS if report.all_passed else EXIT_BLOCKED)


@cli.command(name="gates")
def gates_cmd(
    workspace_root: WorkspaceRootOpt = Path("."),
    verbose: VerboseOpt = False,
) -> None:
    """List the gate catalogue in chain order."""
    config = _load(workspace_root, None, None, None, None, verbose)
    catalog = _catalog(config)

    rows: list[tuple[str, str, str, str, str]] = []
    ordered = list(catalog.chain) + sorted(g for g in catalog.gates if g not in catalog.chain)
    for gate_id in ordered:
        definition = catalog.gates[gate_id]
        position = str(catalog.chain.index(gate_id) + 1) if gate_id in catalog.chain else "-"
        rows.append(
            (position, gate_id, definition.title, definition.kind, ", ".join(definition.depends_on) or "-")
        )
    console.print(gates_table(rows))


@cli.command(name="init")
def init_cmd(
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing gates.yaml")] = False,
    workspace_root: WorkspaceRootOpt = Path("."),
) -> None:
    """Write the default gate catalogue to .gatechain/gates.yaml."""
    try:
        path = ensure_default_catalog(workspace_root, force=force)
    except FileExistsError as e:
        raise _error(f"{e} (use --force to overwrite)", EXIT_BLOCKED) from e
    console.print(f"[green]✓ Wrote {path}[/green]")


@ticket_app.command(name="verify")
def ticket_verify_cmd(
    gate_id: Annotated[str, typer.Argument(help="Gate id")],
    task_id: Annotated[str, typer.Argument(help="Task identifier")],
    workspace_root: WorkspaceRootOpt = Path("."),
    evidence_root: EvidenceRootOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Recompute a ticket's signature and the hash of the evidence it vouches for."""
    config = _load(workspace_root, evidence_root, None, None, None, verbose)
    try:
        report = verify_ticket(_store(config), gate_id, task_id)
    except ValueError as e:
        raise _error(str(e), EXIT_USAGE) from e
    _print_verification(report, f"Ticket {gate_id}/{task_id}")
    raise typer.Exit(EXIT_PASS if report.ok else EXIT_BLOCKED)


@ledger_app.command(name="verify")
def ledger_verify_cmd(
    workspace_root: WorkspaceRootOpt = Path("."),
    evidence_root: EvidenceRootOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Check every ledger row against its evidence file and current ticket."""
    config = _load(workspace_root, evidence_root, None, None, None, verbose)
    report = verify_ledger(_store(config))
    _print_verification(report, "Ledger")
    raise typer.Exit(EXIT_PASS if report.ok else EXIT_BLOCKED)


@integrity_app.command(name="check")
def integrity_check_cmd(
    workspace_root: WorkspaceRootOpt = Path("."),
    verbose: VerboseOpt = False,
) -> None:
    """Verify protected files against the integrity manifest."""
    config = _load(workspace_root, None, None, None, None, verbose)
    if config.integrity_manifest is None:
        raise _error("no integrity_manifest configured", EXIT_USAGE)
    try:
        report = check_integrity(config.integrity_manifest, config.workspace_root)
    except IntegrityError as e:
        console.print(f"[bold red]INTEGRITY FAILURE:[/bold red] {escape(str(e))}")
        for problem in e.problems:
            console.print(f"  [red]✗[/red] {escape(problem)}")
        raise typer.Exit(EXIT_INTEGRITY) from e
    console.print(f"[green]✓ Integrity verified ({len(report.verified)} file(s))[/green]")


@integrity_app.command(name="seal")
def integrity_seal_cmd(
    paths: Annotated[list[Path], typer.Argument(help="Files to protect, relative to the workspace root")],
    workspace_root: WorkspaceRootOpt = Path("."),
    verbose: VerboseOpt = False,
) -> None:
    """Record the current SHA-256 of each path in the integrity manifest."""
    config = _load(workspace_root, None, None, None, None, verbose)
    if config.integrity_manifest is None:
        raise _error("no integrity_manifest configured", EXIT_USAGE)
    try:
        scripts = seal_manifest(config.integrity_manifest, config.workspace_root, paths)
    except (FileNotFoundError, ValueError) as e:
        raise _error(str(e), EXIT_USAGE) from e
    except RuntimeError as e:
        raise _error(str(e), EXIT_BLOCKED) from e
    console.print(f"[green]✓ Sealed {len(scripts)} file(s) into {config.integrity_manifest}[/green]")


@cli.command(name="doctor")
def doctor_cmd(
    out: Annotated[
        Path | None, typer.Option("--out", "-o", help="Also write the report as JSON to this path")
    ] = None,
    workspace_root: WorkspaceRootOpt = Path("."),
    timestamp_mode: TimestampModeOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Report probe tool availability, schema bundling and catalogue health.

    Exit codes:
      0 - No failed checks (missing tools are warnings)
      1 - One or more checks failed
    """
    from gatechain.doctor import run_doctor

    config = _load(workspace_root, None, None, timestamp_mode, None, verbose)
    try:
        report = run_doctor(config, out_path=out)
    except RuntimeError as e:
        raise _error(f"Doctor run failed: {e}", EXIT_BLOCKED) from e

    symbols = {"pass": "[green]✓[/green]", "warn": "[yellow]⚠[/yellow]", "fail": "[red]✗[/red]"}
    for check in report.checks:
        console.print(f"{symbols[check.status]} {check.id}: {escape(check.message)}")
        for step in check.remediation:
            console.print(f"    [dim]{escape(step)}[/dim]")
    if out is not None:
        console.print(f"[dim]Report written to {out}[/dim]")

    if report.status == "failed":
        console.print("\n❌ Some checks failed.")
        raise typer.Exit(EXIT_BLOCKED)
    console.print("\n✅ All checks passed.")


if __name__ == "__main__":
    cli()
