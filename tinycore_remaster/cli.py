"""Thin CLI wrapper for tinycore_remaster.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import logging
from pathlib import Path
from typing import Annotated

import httpx
import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from tinycore_remaster import __version__
from tinycore_remaster.config import get_settings, print_settings_json

app = typer.Typer(
    name="tc-remaster",
    help="Tiny Core Remaster - fetch extensions and remaster Tiny Core ISOs",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

VIEWABLE_FILES = {"info": "info.lst", "Log": "Log.txt"}

USAGE = """[bold]Usage:[/bold]

  tc-remaster fetch ExtensionName [ExtensionName ...]
        Fetches the extension(s) and their dependencies.
        ExtensionName is case sensitive. Including .tcz is optional.

  tc-remaster fetch info
        Fetches the list of available extensions in the configured
        repository and displays it using less in a new terminal.

  tc-remaster fetch Log
        Displays the Log.txt file (if it exists) using less in a new
        terminal.

  Run [bold]tc-remaster config[/bold] to see the version and architecture
  downloaded for; set TC_REMASTER_* environment variables to change them."""


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"tinycore-remaster version {__version__}")
        raise typer.Exit()


def configure_logging(level: str) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Tiny Core Remaster - fetch extensions and remaster Tiny Core ISOs."""
    try:
        settings = get_settings()
    except ValidationError as e:
        console.print("[red]Invalid configuration:[/red]")
        console.print(str(e))
        raise typer.Exit(code=1) from None
    configure_logging("DEBUG" if verbose else settings.log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings))
    else:
        owner = (
            f"{settings.owner_uid}:{settings.owner_gid}"
            if settings.owner_uid is not None
            else "(unchanged)"
        )
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Repository:[/bold]")
        console.print(f"  Mirror:              {settings.mirror_url}")
        console.print(f"  Tiny Core version:   {settings.tc_version}")
        console.print(f"  Architecture:        {settings.arch}")
        console.print(f"  Repository URL:      {settings.repository_url}")
        console.print()
        console.print("[bold]Files:[/bold]")
        console.print(f"  File owner:          {owner}")
        console.print(f"  Use sudo:            {settings.use_sudo}")
        console.print(f"  Index max age (s):   {settings.index_max_age}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Terminal:            {settings.terminal}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Request timeout:     {settings.request_timeout}")
        console.print(f"  Download timeout:    {settings.download_timeout}")


@app.command(context_settings={"ignore_unknown_options": True})
def fetch(
    names: Annotated[
        list[str] | None,
        typer.Argument(
            help="Extensions to fetch, or 'info' / 'Log' to view those files",
            show_default=False,
        ),
    ] = None,
    work_dir: Annotated[
        Path,
        typer.Option("--dir", "-C", help="Directory to download into"),
    ] = Path("."),
) -> None:
    """Fetch extensions and their dependencies, verifying MD5 checksums."""
    from tinycore_remaster.extensions.index import IndexRefreshError
    from tinycore_remaster.extensions.service import open_session
    from tinycore_remaster.extensions.viewer import view_file
    from tinycore_remaster.privileges import PrivilegeError
    from tinycore_remaster.types import InvalidArchitectureError

    if not names or names[0].startswith("-"):
        console.print(USAGE)
        raise typer.Exit(code=1)

    settings = get_settings()
    view_name = VIEWABLE_FILES.get(names[0])

    def progress(_entry: str) -> None:
        console.print(".", end="")

    try:
        with httpx.Client(follow_redirects=True) as client:
            fetcher = open_session(settings, client, work_dir, on_progress=progress)
            try:
                if view_name is not None:
                    view_file(work_dir / view_name, settings.terminal, console)
                    return
                fetcher.load_versions()
                report = fetcher.fetch(names)
            finally:
                fetcher.close()
    except OSError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    except (InvalidArchitectureError, PrivilegeError, IndexRefreshError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    console.print(".")
    console.print(fetcher.activity.exit_message, markup=False)
    if report.first_error_at:
        console.print(report.first_error_at, markup=False)
    console.print()


@app.command()
def build(
    recipe_path: Annotated[
        Path | None,
        typer.Option("--recipe", "-r", help="Recipe file (YAML or JSON)"),
    ] = None,
    iso: Annotated[
        Path | None,
        typer.Option("--iso", "-i", help="Base Tiny Core ISO"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="ISO to produce"),
    ] = None,
    extensions: Annotated[
        list[str] | None,
        typer.Option("--extension", "-e", help="Extension to inject (can be repeated)"),
    ] = None,
    startup_script: Annotated[
        Path | None,
        typer.Option("--startup-script", help="Script installed in /etc/profile.d"),
    ] = None,
    work_dir: Annotated[
        Path,
        typer.Option("--work-dir", "-C", help="Directory for intermediate files"),
    ] = Path("."),
    keep: Annotated[
        bool,
        typer.Option("--keep", help="Keep work directories after the build"),
    ] = False,
    no_isohybrid: Annotated[
        bool,
        typer.Option("--no-isohybrid", help="Skip isohybrid post-processing"),
    ] = False,
) -> None:
    """Remaster a Tiny Core ISO with extensions injected into core.gz."""
    from tinycore_remaster.extensions.index import IndexRefreshError
    from tinycore_remaster.iso.models import BuildRecipe, load_recipe
    from tinycore_remaster.iso.runner import MissingToolError, ToolExecutionError
    from tinycore_remaster.iso.service import ImageBuilder
    from tinycore_remaster.privileges import PrivilegeError
    from tinycore_remaster.types import InvalidArchitectureError

    try:
        recipe = load_recipe(recipe_path) if recipe_path else BuildRecipe()
        overrides: dict[str, object] = {}
        if iso is not None:
            overrides["base_iso"] = iso.resolve()
        if output is not None:
            overrides["output_iso"] = output.resolve()
        if extensions:
            overrides["extensions"] = extensions
        if startup_script is not None:
            overrides["startup_script"] = startup_script.resolve()
        if keep:
            overrides["keep_work_dirs"] = True
        if no_isohybrid:
            overrides["isohybrid"] = False
        if overrides:
            recipe = BuildRecipe.model_validate({**recipe.model_dump(), **overrides})
    except ValidationError as e:
        console.print("[red]Invalid recipe:[/red]")
        console.print(str(e))
        raise typer.Exit(code=1) from None
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Failed to load recipe: {e}[/red]")
        raise typer.Exit(code=1) from None

    settings = get_settings()
    work_dir = work_dir.resolve()
    work_dir.mkdir(parents=True, exist_ok=True)
    builder = ImageBuilder(
        settings,
        recipe,
        work_dir,
        on_step=lambda step: console.print(f"[cyan]>[/cyan] {step}"),
    )

    try:
        result = builder.build()
    except MissingToolError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    except ToolExecutionError as e:
        console.print(f"[red]Build failed: {e}[/red]")
        raise typer.Exit(code=1) from None
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None
    except OSError as e:
        console.print(f"[red]Build failed: {e}[/red]")
        raise typer.Exit(code=1) from None
    except (InvalidArchitectureError, PrivilegeError, IndexRefreshError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    report = result.fetch_report
    console.print(f"[green]Built {result.output_iso}[/green]")
    console.print(f"  Extensions injected: {len(result.injected)}")
    if not report.ok:
        console.print(
            f"  [yellow]{len(report.failed)} download problem(s), "
            f"first at {report.first_error_at}[/yellow]"
        )
