"""CLI command: secretscan scan [PATHS] — find committed secrets."""

from __future__ import annotations

import json
import sys
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from secretscan.config import DetectorKind, ScanConfiguration, apply_env_overrides
from secretscan.errors import ConfigurationError, PathNotFoundError
from secretscan.loader import load_configuration, load_preset
from secretscan.scanner.engine import ScanEngine
from secretscan.scanner.models import ScanResult, Severity

console = Console(stderr=True)

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_ERRORS = 2
EXIT_CONFIG_ERROR = 3

_SEVERITY_COLORS = {
    Severity.CRITICAL: "red",
    Severity.HIGH: "magenta",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}


@click.command()
@click.argument("paths", nargs=-1, type=click.Path())
@click.option(
    "--exclude",
    "-e",
    multiple=True,
    help="Glob patterns to exclude from scan.",
)
@click.option("--preset", help="Start from a bundled preset (strict, balanced, lenient).")
@click.option("--workers", "-w", type=int, help="Number of parallel workers.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
)
@click.option("--no-entropy", is_flag=True, help="Disable the entropy detector.")
@click.option("--no-context", is_flag=True, help="Disable the context-aware detector.")
@click.option("--min-confidence", type=float, help="Drop findings below this confidence.")
@click.option(
    "--fail-on",
    type=click.Choice([s.value for s in Severity]),
    default=Severity.HIGH.value,
    show_default=True,
    help="Exit with status 1 when a finding reaches this severity.",
)
@click.option(
    "--include-tests/--skip-tests",
    default=None,
    help="Scan or skip files matching the test patterns.",
)
@click.option("--show-values", is_flag=True, help="Print matched values unredacted.")
@click.pass_context
def scan(
    ctx: click.Context,
    paths: tuple[str, ...],
    exclude: tuple[str, ...],
    preset: str | None,
    workers: int | None,
    output_format: str,
    no_entropy: bool,
    no_context: bool,
    min_confidence: float | None,
    fail_on: str,
    include_tests: bool | None,
    show_values: bool,
) -> None:
    """Scan source trees for API keys, credentials, and private keys."""
    config_path = ctx.obj.get("config_path")
    if config_path and preset:
        raise click.UsageError("--preset cannot be combined with --config")

    try:
        if config_path:
            config = load_configuration(config_path)
        elif preset:
            config = load_preset(preset)
        else:
            config = ScanConfiguration()
        config = _apply_options(
            apply_env_overrides(config),
            paths=paths,
            exclude=exclude,
            workers=workers,
            no_entropy=no_entropy,
            no_context=no_context,
            min_confidence=min_confidence,
            include_tests=include_tests,
        )
        engine = ScanEngine(config)
        if output_format == "table":
            roots = ", ".join(str(r) for r in config.roots)
            console.print(f"[bold]secretscan[/bold] scanning [cyan]{roots}[/cyan]\n")
        result = engine.scan()
    except (ConfigurationError, PathNotFoundError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    if output_format == "json":
        click.echo(json.dumps(result.to_dict(redact_values=not show_values), indent=2))
    else:
        _print_table(result, show_values)

    sys.exit(exit_code(result, Severity.parse(fail_on)))


def exit_code(result: ScanResult, fail_on: Severity) -> int:
    if result.has_severity(fail_on):
        return EXIT_FINDINGS
    if result.errors or result.timed_out:
        return EXIT_ERRORS
    return EXIT_OK


def _apply_options(
    config: ScanConfiguration,
    *,
    paths: tuple[str, ...],
    exclude: tuple[str, ...],
    workers: int | None,
    no_entropy: bool,
    no_context: bool,
    min_confidence: float | None,
    include_tests: bool | None,
) -> ScanConfiguration:
    changes: dict[str, object] = {}
    if paths:
        changes["roots"] = tuple(Path(p) for p in paths)
    elif not config.roots:
        changes["roots"] = (Path("."),)
    if exclude:
        changes["exclude_globs"] = tuple(config.exclude_globs) + tuple(exclude)
    if workers is not None:
        changes["workers"] = workers
    disabled = set()
    if no_entropy:
        disabled.add(DetectorKind.ENTROPY)
    if no_context:
        disabled.add(DetectorKind.CONTEXT)
    if disabled:
        changes["detectors"] = tuple(d for d in config.detectors if d not in disabled)
    if min_confidence is not None:
        changes["min_confidence"] = min_confidence
    if include_tests is not None:
        changes["scan_test_files"] = include_tests
    return replace(config, **changes)


def _print_table(result: ScanResult, show_values: bool) -> None:
    if not result.findings:
        console.print("[green]No findings.[/green]")
        _print_summary(result)
        return

    # Critical first, then file, then line
    findings = sorted(
        result.findings, key=lambda f: (-f.severity.rank, f.relative_path, f.line, f.column)
    )

    table = Table(title="Findings", show_lines=False)
    table.add_column("Severity", style="bold", width=10)
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Rule")
    table.add_column("Detected by")
    table.add_column("Confidence", justify="right")
    table.add_column("Match", max_width=50)

    for finding in findings:
        color = _SEVERITY_COLORS.get(finding.severity, "white")
        value = finding.matched_value if show_values else finding.redacted_value
        table.add_row(
            f"[{color}]{finding.severity.value}[/{color}]",
            finding.relative_path or finding.file_path,
            str(finding.line),
            finding.rule,
            ", ".join(finding.detected_by),
            f"{finding.confidence:.2f}",
            value.split("\n", 1)[0][:50],
        )

    console.print(table)
    _print_summary(result)


def _print_summary(result: ScanResult) -> None:
    console.print(
        f"\nScanned {result.files_scanned} files "
        f"({result.files_skipped} skipped) "
        f"in {result.duration:.2f}s"
    )
    console.print(f"Total findings: {len(result.findings)}")
    for error in result.errors:
        console.print(f"[yellow]error[/yellow] {error.path}: {error.message}")
    if result.timed_out:
        console.print("[red]Scan timed out; results are partial.[/red]")
