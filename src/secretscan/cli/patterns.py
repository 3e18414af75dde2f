"""CLI command: secretscan patterns — list the built-in detection patterns."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from secretscan.loader import preset_names
from secretscan.scanner.patterns import PATTERNS

console = Console()


@click.command()
def patterns() -> None:
    """List built-in secret patterns and bundled presets."""
    table = Table(title="Built-in patterns")
    table.add_column("Name", style="cyan")
    table.add_column("Severity")
    table.add_column("Category")
    table.add_column("Confidence", justify="right")
    table.add_column("Description")

    for pattern in PATTERNS:
        table.add_row(
            pattern.name,
            pattern.severity.value,
            pattern.category.value,
            f"{pattern.confidence:.2f}",
            pattern.description,
        )

    console.print(table)
    console.print(f"\nPresets: {', '.join(preset_names())}")
