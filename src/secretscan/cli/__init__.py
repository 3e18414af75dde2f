"""CLI entry point — Click group with global options."""

from __future__ import annotations

import logging

import click

from secretscan import __version__


@click.group()
@click.version_option(version=__version__, prog_name="secretscan")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML scan configuration.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """secretscan — find committed secrets in a source tree."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from secretscan.cli.patterns import patterns  # noqa: F811
    from secretscan.cli.scan import scan  # noqa: F811

    main.add_command(scan)
    main.add_command(patterns)


_register_commands()
