"""
CLI entry point for pharout.

Provides a command-line interface for building executable phar archives and for
inspecting the archives it produced.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .compiler import write_phar
from .config_loader import load_config, merge_cli_with_config
from .errors import ConfigError, PharError
from .phar import read_phar
from .utils import format_size

# Initialize CLI app
app = typer.Typer(
    name="pharout",
    help="Package PHP command-line projects into executable phar archives.",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"pharout version {__version__}")
        raise typer.Exit()


@app.callback()
def main_options(
    version: bool = typer.Option(
        False,
        "--version", "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Package PHP command-line projects into executable phar archives."""


@app.command()
def build(
    # Input options
    project: Path = typer.Option(
        Path("."),
        "--project", "-p",
        help="Project directory; all other paths are relative to it.",
        exists=True,
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
    ),
    bin_file: Optional[str] = typer.Option(
        None,
        "--bin", "-b",
        help="Executable script started by the archive (e.g., 'bin/tool').",
    ),
    source: Optional[list[str]] = typer.Option(
        None,
        "--source", "-s",
        help="Source directory as PATH[:PATTERN] (default pattern '*.php'). Repeatable.",
    ),
    package: Optional[list[str]] = typer.Option(
        None,
        "--package", "-P",
        help="Composer package to include, e.g. 'symfony/console'. Repeatable.",
    ),
    message: Optional[str] = typer.Option(
        None,
        "--message", "-m",
        help="Text embedded as a comment in the archive stub (e.g., a copyright notice).",
    ),

    # Output options
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Archive file to create; relative paths are taken from the project directory.",
    ),

    # Config file
    config_file: Optional[Path] = typer.Option(
        None,
        "--config", "-c",
        help="Build definition file (default: pharout.toml / pharout.yml in the project).",
        dir_okay=False,
    ),
) -> None:
    """
    Build an executable phar archive.

    Examples:

        # Package src/ and two Composer packages
        pharout build -p ./tool -b bin/tool -s src -P symfony/console -P symfony/finder -o tool.phar

        # Package .inc files as well
        pharout build -b bin/tool -s src -s lib:*.inc -o build/tool.phar

        # Use the build definition in ./pharout.toml
        pharout build
    """
    try:
        project_config = load_config(project, config_file)
        build_config, output_path = merge_cli_with_config(
            project_config,
            project_root=project,
            executable=bin_file,
            sources=source,
            packages=package,
            message=message,
            output=output,
        )
    except ConfigError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if project_config.config_file is not None:
        console.print(f"[dim]Using config: {escape(str(project_config.config_file))}[/dim]")

    if output_path is None:
        console.print("[red]Error: --output must be specified (or 'output' in the config file).[/red]")
        raise typer.Exit(1)

    if build_config.entry_file is None:
        console.print("[red]Error: --bin must be specified (or 'executable' in the config file).[/red]")
        raise typer.Exit(1)

    stats = write_phar(build_config, output_path, console=console)

    console.print()
    console.print("[bold green]✓ Build complete![/bold green]")
    console.print()
    console.print("[cyan]Statistics:[/cyan]")
    console.print(f"  Files added: {stats.files_added}")
    console.print(f"  Files stripped: {stats.files_stripped}")
    console.print(f"  Bytes read: {stats.bytes_read:,}")
    console.print(f"  Bytes saved by stripping: {stats.bytes_saved:,}")
    console.print(f"  Archive size: {format_size(stats.archive_bytes)}")
    console.print(f"  Processing time: {stats.processing_time_seconds:.2f}s")
    console.print()
    console.print("[cyan]Output file:[/cyan]")
    console.print(f"  {escape(str(build_config.resolve_output(output_path)))}")


@app.command("inspect")
def inspect_archive(
    archive: Path = typer.Argument(
        ...,
        help="Phar archive to inspect.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    show_stub: bool = typer.Option(
        False,
        "--stub",
        help="Also print the archive stub.",
    ),
) -> None:
    """
    Show the manifest of a phar archive and verify its signature.
    """
    try:
        phar = read_phar(archive)
    except (PharError, OSError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold]Archive: {escape(archive.name)}[/bold]\n")
    console.print(f"  Alias: {escape(phar.alias)}")
    console.print(f"  API version: {phar.api_version}")
    if phar.signature_algorithm is not None:
        console.print(f"  Signature: {phar.signature_algorithm.name} {phar.signature} [green](verified)[/green]")
    else:
        console.print("  Signature: [yellow]none[/yellow]")
    console.print(f"  Entries: {len(phar.entries)}")
    console.print()

    table = Table(show_header=True, header_style="cyan")
    table.add_column("Path")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    table.add_column("Mode", justify="right")
    for entry in phar.entries.values():
        modified = datetime.fromtimestamp(entry.mtime, tz=timezone.utc)
        table.add_row(
            escape(entry.path),
            f"{entry.size:,}",
            modified.strftime("%Y-%m-%d %H:%M:%S"),
            f"{entry.permissions:o}",
        )
    console.print(table)

    if show_stub:
        console.print("\n[cyan]Stub:[/cyan]")
        console.print(phar.stub, markup=False, highlight=False)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
