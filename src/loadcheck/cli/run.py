"""``loadcheck run``: execute a load test with live terminal output."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from loadcheck._internal.config import TARGET_ENV_VAR, load_config
from loadcheck._internal.errors import ConfigError, EngineError, ScenarioError
from loadcheck._internal.logging import setup_logging
from loadcheck._internal.units import format_duration
from loadcheck.dsl.loader import load_scenario
from loadcheck.engine.scheduler import Scheduler
from loadcheck.metrics.export import summary_to_json, write_summary
from loadcheck.metrics.models import NO_DATA
from loadcheck.metrics.thresholds import evaluate_threshold

if TYPE_CHECKING:
    from loadcheck.metrics.models import PassRate, RunProgress, RunSummary
    from loadcheck.metrics.thresholds import ThresholdResult

console = Console(stderr=True)

# Exit codes, aligned with k6 so existing CI wiring keeps working.
EXIT_THRESHOLD_FAILED = 99
EXIT_ENGINE_ERROR = 103
EXIT_CONFIG_ERROR = 104
EXIT_SCENARIO_ERROR = 107


# ---------------------------------------------------------------------------
# Rich display
# ---------------------------------------------------------------------------


def _format_rate(value: PassRate) -> str:
    if value is NO_DATA:
        return str(NO_DATA)
    return f"{value * 100:.2f}%"


def _make_live_table(progress: RunProgress | None, total_seconds: float) -> Table:
    """Build the table shown while the run is in progress."""
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    if progress is None:
        table.add_row("Elapsed", f"0s / {format_duration(total_seconds)}")
        table.add_row("Status", "Starting...")
        return table

    table.add_row(
        "Elapsed",
        f"{format_duration(progress.elapsed_seconds)} / {format_duration(total_seconds)}",
    )
    table.add_row("Requests", str(progress.total_requests))
    table.add_row("Requests/sec", f"{progress.requests_per_second:.1f}")
    table.add_row("Checks passed", f"[green]{progress.checks_passed}[/green]")
    table.add_row("Checks failed", f"[red]{progress.checks_failed}[/red]")
    return table


def _print_summary(summary: RunSummary, verdict: ThresholdResult) -> None:
    """Print the final summary and per-check tables."""
    table = Table(
        title="Run Summary",
        show_header=True,
        header_style="bold green" if verdict.passed else "bold red",
        expand=True,
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Virtual users", str(summary.virtual_users))
    table.add_row("Duration", f"{summary.duration_seconds:.1f}s")
    table.add_row("Total requests", str(summary.total_requests))
    table.add_row("Requests/sec", f"{summary.requests_per_second:.1f}")
    table.add_row("Checks passed", str(summary.checks_passed))
    table.add_row("Checks failed", str(summary.checks_failed))
    table.add_row("Check pass rate", _format_rate(summary.pass_rate))
    table.add_row("Latency avg", f"{summary.latency.mean:.1f}ms")
    table.add_row("Latency p50", f"{summary.latency.p50:.1f}ms")
    table.add_row("Latency p95", f"{summary.latency.p95:.1f}ms")
    table.add_row("Latency p99", f"{summary.latency.p99:.1f}ms")
    table.add_row("Latency max", f"{summary.latency.max:.1f}ms")
    table.add_row("Network errors", str(summary.network_errors))
    if summary.scenario_errors:
        table.add_row("Scenario errors", f"[red]{summary.scenario_errors}[/red]")
    if summary.status_codes:
        table.add_row(
            "Status codes",
            ", ".join(f"{code}: {count}" for code, count in summary.status_codes.items()),
        )

    checks_table = Table(
        title="Checks",
        show_header=True,
        header_style="bold cyan",
        expand=True,
    )
    checks_table.add_column("Check")
    checks_table.add_column("Passes", justify="right")
    checks_table.add_column("Fails", justify="right")
    checks_table.add_column("Pass rate", justify="right")

    for name, stats in summary.checks.items():
        mark = "[green]✓[/green]" if not stats.fails else "[red]✗[/red]"
        checks_table.add_row(
            f"{mark} {name}",
            str(stats.passes),
            str(stats.fails),
            _format_rate(summary.per_check_pass_rate[name]),
        )

    console.print(table)
    console.print(checks_table)

    if summary.errors_by_type:
        console.print(
            "[yellow]Network errors by type:[/yellow] "
            + ", ".join(f"{kind}: {count}" for kind, count in summary.errors_by_type.items())
        )


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def run_cmd(
    scenario_file: Path | None = typer.Argument(
        None,
        help="Optional scenario .py file. Defaults to a GET of the target URI.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    scenario_name: str | None = typer.Option(
        None,
        "--scenario",
        "-s",
        help="Name of the scenario to run when the file defines several.",
    ),
    uri: str | None = typer.Option(
        None,
        "--uri",
        help=f"Target URI. Overrides the {TARGET_ENV_VAR} environment variable.",
    ),
    vus: int | None = typer.Option(
        None,
        "--vus",
        "-u",
        help="Number of concurrent virtual users (default: 10).",
    ),
    duration: str | None = typer.Option(
        None,
        "--duration",
        "-d",
        help="Run duration, e.g. 30s, 2m, 1m30s (default: 2m).",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML options file (vus, duration, timeout, threshold, rps, headers).",
        dir_okay=False,
    ),
    timeout: str | None = typer.Option(
        None,
        "--timeout",
        help="Per-request timeout, e.g. 10s (default: 30s).",
    ),
    threshold: float | None = typer.Option(
        None,
        "--threshold",
        "-t",
        help="Minimum check pass rate for a successful run, 0.0-1.0 (default: 1.0).",
    ),
    rps: float | None = typer.Option(
        None,
        "--rps",
        help="Cap on requests per second across all virtual users.",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the run summary as JSON on stdout.",
    ),
    summary_export: Path | None = typer.Option(
        None,
        "--summary-export",
        help="Write the run summary as JSON to this file.",
        dir_okay=False,
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Disable the live progress display.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    log_json: bool = typer.Option(
        False,
        "--log-json",
        help="Emit logs as one-line JSON objects.",
    ),
) -> None:
    """Run a load test and check every response."""
    setup_logging(level=logging.DEBUG if verbose else logging.INFO, json_format=log_json)

    try:
        config = load_config(
            uri=uri,
            vus=vus,
            duration=duration,
            timeout=timeout,
            threshold=threshold,
            rps=rps,
            config_file=config_file,
        )
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc

    try:
        scenario = (
            load_scenario(scenario_file, scenario_name) if scenario_file is not None else None
        )
    except ScenarioError as exc:
        console.print(f"[red]Scenario error:[/red] {exc}")
        raise typer.Exit(code=EXIT_SCENARIO_ERROR) from exc

    # Mutable holder so the progress callback can reach the live display
    live_holder: list[Live | None] = [None]

    def _on_progress(progress: RunProgress) -> None:
        live = live_holder[0]
        if live is not None:
            live.update(_make_live_table(progress, config.duration_seconds))

    scheduler = Scheduler(
        config,
        scenario,
        on_progress=None if quiet else _on_progress,
        handle_signals=True,
    )

    console.print(
        Panel(
            f"[bold]Scenario:[/bold] {scheduler.scenario.name}\n"
            f"[bold]Target:[/bold]   {config.target_uri}\n"
            f"[bold]VUs:[/bold]      {config.virtual_users}\n"
            f"[bold]Duration:[/bold] {format_duration(config.duration_seconds)}\n"
            f"[bold]Checks:[/bold]   {', '.join(scheduler.scenario.check_names)}",
            title="loadcheck",
            border_style="cyan",
        )
    )

    try:
        if quiet:
            summary = scheduler.run()
        else:
            with Live(
                _make_live_table(None, config.duration_seconds),
                console=console,
                refresh_per_second=2,
                transient=True,
            ) as live:
                live_holder[0] = live
                summary = scheduler.run()
    except EngineError as exc:
        console.print(f"[red]Load test failed:[/red] {exc}")
        raise typer.Exit(code=EXIT_ENGINE_ERROR) from exc

    verdict = evaluate_threshold(summary, config.pass_threshold)
    _print_summary(summary, verdict)

    if json_output:
        typer.echo(summary_to_json(summary, verdict))
    if summary_export is not None:
        written = write_summary(summary_export, summary, verdict)
        console.print(f"Summary written to {written}")

    if not verdict.passed:
        failing = ", ".join(summary.failed_checks) or "none"
        console.print(f"[red]FAIL:[/red] {verdict.describe()} (failing checks: {failing})")
        raise typer.Exit(code=EXIT_THRESHOLD_FAILED)

    console.print(f"[green]PASS:[/green] {verdict.describe()}")
