# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Experiment CLI: contract-driven A/B test workflow.

Usage:
    experiment create <key> [contract_path] [--create-pr] [--rollback]
    experiment verify <key>
    experiment status <key>
    experiment start <key>
    experiment stop <key>
    experiment preflight <key>
    experiment list [--remote]
    experiment help

Global options ``--verbose`` and ``--strategy auto|real|fixed`` go before
the subcommand. Every failure (including a missing argument or an unknown
command) exits with status 1.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from expflow.contracts.models import BRANCH_PREFIX
from expflow.lib.errors import ExperimentAutomationError
from expflow.preflight.validator import PreflightResult
from expflow.runtime.context import ClientStrategy, ExperimentContext
from expflow.runtime.operations import (
    ExperimentOperations,
    ExperimentStatusReport,
    LocalListing,
    VerificationReport,
)
from expflow.runtime.orchestrator import ExperimentRunner

# =============================================================================
# Console Setup
# =============================================================================

console = Console()
error_console = Console(stderr=True)

ContextFactory = Callable[[ClientStrategy], ExperimentContext]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _default_context(strategy: ClientStrategy) -> ExperimentContext:
    return ExperimentContext(strategy=strategy)


def _check_badge(passed: bool) -> str:
    return "[green]✓[/green]" if passed else "[red]✗[/red]"


@contextmanager
def _failures_as_click(label: str) -> Iterator[None]:
    """Re-raise workflow errors as ClickException so the CLI exits 1."""
    try:
        yield
    except (ExperimentAutomationError, FileNotFoundError) as exc:
        raise click.ClickException(f"{label}: {exc}") from exc


# =============================================================================
# Rendering
# =============================================================================


def _render_verification(report: VerificationReport) -> None:
    console.print(f"  [green]✓[/green] Contract file found: {report.contract_path}")
    if report.branch_exists:
        console.print(f"  [green]✓[/green] Branch exists: {report.branch}")
    else:
        console.print(f"  [yellow]⚠[/yellow] Branch not found: {report.branch}")
    if report.statsig_status is not None:
        console.print(
            f"  [green]✓[/green] Experiment exists in Statsig: "
            f"{report.experiment_key} (status: {report.statsig_status})"
        )
    else:
        console.print(
            f"  [yellow]⚠[/yellow] Experiment not found in Statsig: "
            f"{report.experiment_key}"
        )


def _render_status(report: ExperimentStatusReport) -> None:
    console.print(f"  [bold]statsig status:[/bold] {report.statsig_status}")
    if report.branch_info is None:
        console.print(f"  [yellow]⚠[/yellow] Branch not found: {report.branch}")
        return
    console.print(f"  [bold]branch:[/bold]         {report.branch_info.name}")
    console.print(f"  [bold]last commit:[/bold]    {report.branch_info.last_commit}")
    console.print(f"  [bold]commit hash:[/bold]    {report.branch_info.commit}")


def _render_preflight(experiment_key: str, result: PreflightResult) -> None:
    table = Table(title=f"Preflight checks: {experiment_key}")
    table.add_column("Check", style="cyan")
    table.add_column("Result", justify="center")
    for name, passed in result.checks.items():
        table.add_row(name, _check_badge(passed))
    console.print(table)

    if result.errors:
        console.print("[bold red]Errors:[/bold red]")
        for error in result.errors:
            console.print(f"  [red]✗[/red] {error}")
    if result.warnings:
        console.print("[bold yellow]Warnings:[/bold yellow]")
        for warning in result.warnings:
            console.print(f"  [yellow]⚠[/yellow] {warning}")


def _render_listing(listing: LocalListing) -> None:
    if not listing.contracts_dir_exists:
        console.print("  [yellow]⚠[/yellow] No contract directory found")
    else:
        console.print("[bold]Contract files:[/bold]")
        for key in listing.contracts:
            console.print(f"  - {key}")
        if not listing.contracts:
            console.print("  (none)")

    if listing.branches_error:
        console.print(
            f"  [yellow]⚠[/yellow] Could not list git branches: "
            f"{listing.branches_error}"
        )
        return
    console.print("[bold]Experiment branches:[/bold]")
    for branch in listing.branches:
        console.print(f"  - {branch}")
    if not listing.branches:
        console.print(f"  (no {BRANCH_PREFIX}* branches)")


# =============================================================================
# Click group
# =============================================================================


class ExperimentGroup(click.Group):
    """Click group whose usage errors exit 1 and print the full help."""

    def main(  # type: ignore[override]
        self,
        args: Any = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        if not standalone_mode:
            return super().main(
                args, prog_name, complete_var, standalone_mode=False, **extra
            )
        try:
            rv = super().main(
                args, prog_name, complete_var, standalone_mode=False, **extra
            )
        except click.UsageError as exc:
            exc.show()
            if exc.ctx is not None:
                click.echo(file=sys.stderr)
                click.echo(exc.ctx.find_root().get_help(), err=True)
            sys.exit(1)
        except click.ClickException as exc:
            error_console.print(f"[red]✗[/red] {escape(exc.format_message())}")
            sys.exit(1)
        except click.Abort:
            click.echo("Aborted!", err=True)
            sys.exit(1)
        sys.exit(rv if isinstance(rv, int) else 0)


def make_experiment_group(
    context_factory: ContextFactory = _default_context,
) -> click.Group:
    """Construct the ``experiment`` Click group.

    Args:
        context_factory: Builds the :class:`ExperimentContext` for the
            chosen client strategy; tests inject fixed contexts here.
    """

    def _context(ctx: click.Context) -> ExperimentContext:
        state = ctx.find_object(dict)
        if state is None:
            raise click.ClickException("CLI state not initialised")
        if "context" not in state:
            try:
                state["context"] = context_factory(state["strategy"])
            except ValidationError as exc:
                raise click.ClickException(f"Invalid configuration: {exc}") from exc
        return state["context"]

    def _close_context(ctx: click.Context) -> None:
        context = (ctx.obj or {}).pop("context", None)
        if context is not None:
            context.close()

    @click.group(
        "experiment", cls=ExperimentGroup, invoke_without_command=True
    )
    @click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
    @click.option(
        "--strategy",
        type=click.Choice([s.value for s in ClientStrategy], case_sensitive=False),
        default=ClientStrategy.AUTO.value,
        show_default=True,
        help="How unconfigured services are handled.",
    )
    @click.pass_context
    def experiment_group(ctx: click.Context, verbose: bool, strategy: str) -> None:
        """Automated A/B testing workflow.

        All experiments run on separate branches (exp/<key>); the main
        branch is never modified.

        Workflow:

            1. Create a contract in contract/<key>.json
            2. experiment create <key>
            3. experiment verify <key>
            4. experiment start <key>
            5. experiment status <key>
            6. experiment stop <key>
        """
        setup_logging(verbose)
        ctx.ensure_object(dict)
        ctx.obj["strategy"] = ClientStrategy(strategy.lower())
        ctx.call_on_close(lambda: _close_context(ctx))
        if ctx.invoked_subcommand is None:
            click.echo(ctx.get_help())

    @experiment_group.command("create")
    @click.argument("experiment_key")
    @click.argument(
        "contract_path", required=False, type=click.Path(path_type=Path)
    )
    @click.option("--create-pr", is_flag=True, help="Open a GitHub pull request.")
    @click.option(
        "--rollback",
        "create_rollbacks",
        is_flag=True,
        help="Restore target files if any code change fails.",
    )
    @click.pass_context
    def create(
        ctx: click.Context,
        experiment_key: str,
        contract_path: Path | None,
        create_pr: bool,
        create_rollbacks: bool,
    ) -> None:
        """Create and deploy a new experiment."""
        with _failures_as_click("Experiment workflow failed"):
            runner = ExperimentRunner.from_context(_context(ctx), console=console)
            runner.run(
                experiment_key,
                contract_path=contract_path,
                create_pr=create_pr,
                create_rollbacks=create_rollbacks,
            )

    @experiment_group.command("verify")
    @click.argument("experiment_key")
    @click.pass_context
    def verify(ctx: click.Context, experiment_key: str) -> None:
        """Verify contract, branch and Statsig experiment."""
        console.rule(f"Verify: {experiment_key}")
        with _failures_as_click("Verification failed"):
            operations = ExperimentOperations.from_context(_context(ctx))
            report = operations.verify(experiment_key)
        _render_verification(report)
        console.print(
            f"  [green]✓[/green] Verification completed for: {experiment_key}"
        )

    @experiment_group.command("status")
    @click.argument("experiment_key")
    @click.pass_context
    def status(ctx: click.Context, experiment_key: str) -> None:
        """Show Statsig status and the experiment branch head."""
        console.rule(f"Status: {experiment_key}")
        with _failures_as_click("Failed to get experiment status"):
            operations = ExperimentOperations.from_context(_context(ctx))
            report = operations.status(experiment_key)
        _render_status(report)

    @experiment_group.command("start")
    @click.argument("experiment_key")
    @click.pass_context
    def start(ctx: click.Context, experiment_key: str) -> None:
        """Start an experiment."""
        with _failures_as_click("Failed to start experiment"):
            ExperimentOperations.from_context(_context(ctx)).start(experiment_key)
        console.print(f"  [green]✓[/green] Experiment started: {experiment_key}")

    @experiment_group.command("stop")
    @click.argument("experiment_key")
    @click.pass_context
    def stop(ctx: click.Context, experiment_key: str) -> None:
        """Stop an experiment."""
        with _failures_as_click("Failed to stop experiment"):
            ExperimentOperations.from_context(_context(ctx)).stop(experiment_key)
        console.print(f"  [green]✓[/green] Experiment stopped: {experiment_key}")

    @experiment_group.command("preflight")
    @click.argument("experiment_key")
    @click.pass_context
    def preflight(ctx: click.Context, experiment_key: str) -> None:
        """Run preflight validation."""
        validator = _context(ctx).preflight_validator()
        result = validator.validate_experiment(experiment_key)
        _render_preflight(experiment_key, result)
        if not result.success:
            raise click.ClickException("Preflight validation failed")
        console.print("  [green]✓[/green] Preflight validation passed")

    @experiment_group.command("list")
    @click.option(
        "--remote", is_flag=True, help="Also list experiments in Statsig."
    )
    @click.pass_context
    def list_experiments(ctx: click.Context, remote: bool) -> None:
        """List contracts and experiment branches."""
        operations = ExperimentOperations.from_context(_context(ctx))
        _render_listing(operations.list_local())
        if not remote:
            return
        with _failures_as_click("Failed to list Statsig experiments"):
            experiments = operations.list_remote()
        console.print(f"[bold]Statsig experiments ({len(experiments)}):[/bold]")
        if not experiments:
            console.print("  (none)")
            return
        table = Table()
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Status", style="green")
        for item in experiments:
            table.add_row(item.id, item.name, item.status)
        console.print(table)

    @experiment_group.command("help")
    @click.pass_context
    def show_help(ctx: click.Context) -> None:
        """Show this help message."""
        click.echo(ctx.find_root().get_help())

    return experiment_group


# =============================================================================
# Entry Point
# =============================================================================

#: Default ``experiment`` group backed by settings from the environment.
experiment = make_experiment_group()


def main() -> None:
    """Main entry point for CLI."""
    experiment(prog_name="experiment")


if __name__ == "__main__":
    main()
