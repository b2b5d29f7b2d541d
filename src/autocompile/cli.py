"""autocompile CLI entry point."""

import logging
import runpy
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from autocompile import __version__
from autocompile.errors import ConfigurationError
from autocompile.policy.filter import explain
from autocompile.policy.settings import Settings, load_settings, policy_from_settings

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )


def _load_settings(ctx: click.Context) -> Settings:
    try:
        settings = load_settings(ctx.obj["config_path"])
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    # verbose = true in the settings file acts like -v
    if settings.verbose and not ctx.obj["verbose"]:
        ctx.obj["verbose"] = True
        logging.getLogger().setLevel(logging.DEBUG)
    return settings


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Settings file (default: autocompile.toml or pyproject.toml)",
)
@click.version_option(__version__, prog_name="autocompile")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """autocompile - compile Python modules as they load."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path
    setup_logging(verbose)


@cli.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("--exclude", "-e", multiple=True, help="Extra exclusion pattern (regex)")
@click.option("--bootstrap-file", "-b", type=click.Path(dir_okay=False), help="Entry file of the process")
@click.pass_context
def check(ctx: click.Context, paths: tuple[str, ...], exclude: tuple[str, ...], bootstrap_file: str | None) -> None:
    """Show whether files would be compiled when they load."""
    settings = _load_settings(ctx)
    policy = policy_from_settings(settings, bootstrap_file)
    policy.exclude_patterns.extend(exclude)

    table = Table(title="Compile Eligibility")
    table.add_column("Path", style="cyan")
    table.add_column("Eligible")
    table.add_column("Reason", style="dim")

    for path in paths:
        reason = explain(path, policy)
        if reason is None:
            table.add_row(path, "[green]yes[/green]", "")
        else:
            table.add_row(path, "[yellow]no[/yellow]", reason)

    console.print(table)


@cli.command()
@click.pass_context
def config(ctx: click.Context) -> None:
    """Show the effective settings and exclusions."""
    settings = _load_settings(ctx)
    policy = policy_from_settings(settings)

    console.print_json(data=settings.model_dump(by_alias=True))

    table = Table(title="Exclusions")
    table.add_column("Kind", style="cyan")
    table.add_column("Value", style="green")

    if policy.bootstrap_file is not None:
        table.add_row("bootstrap file", str(policy.bootstrap_file))
    for ending in policy.excluded_files:
        table.add_row("file", ending)
    for pattern in policy.exclude_patterns:
        table.add_row("pattern", str(pattern))

    console.print(table)


@cli.command(context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False})
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def run(ctx: click.Context, script: Path, args: tuple[str, ...]) -> None:
    """Run a Python script with compile-on-load enabled."""
    from autocompile import api

    settings = _load_settings(ctx)
    script_path = script.resolve()

    api.configure(settings=settings, config_path=ctx.obj["config_path"], bootstrap_file=script_path)
    api.enable()
    api.run_pending()

    sys.argv = [str(script_path), *args]
    sys.path.insert(0, str(script_path.parent))
    try:
        runpy.run_path(str(script_path), run_name="__main__")
    finally:
        api.run_pending()
        api.disable()


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
