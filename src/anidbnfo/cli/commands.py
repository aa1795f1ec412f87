"""CLI commands for anidbnfo.

This module implements the user-facing commands:
- configure: store AniDB client registration and catalog credentials.
- identify: resolve an anime directory and show its identity and episodes.
- version: print the package version.

Design:
- Typer app and Console are instantiated at module level for reuse across
  commands.
- Annotated is used for option definitions.
- Exit codes are defined as an Enum.
"""

import asyncio
from enum import Enum
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.traceback import install as install_traceback

from anidbnfo.cli.renderer import render_episodes, render_identity
from anidbnfo.core.pipeline import ResolutionPipeline
from anidbnfo.errors import (
    AccessDenied,
    AniDBNfoError,
    ClientMisconfigured,
)
from anidbnfo.utils import config as config_utils
from anidbnfo.utils.debug import setup_logger

# Install rich traceback handler
install_traceback(show_locals=True)

app = typer.Typer(
    name="anidbnfo",
    help="Identify anime directories on AniDB, AniList and TMDB and bind their episodes.",
    add_completion=True,
)
console = Console()


class ExitCode(int, Enum):
    """Exit codes for CLI commands."""

    SUCCESS = 0
    ERROR = 1
    NO_MATCH = 2


def parse_yes_no(value: Optional[str]) -> Optional[bool]:
    """Convert a yes/no option to a bool.

    Raises:
        typer.BadParameter: If the value is neither yes nor no.
    """
    if value is None:
        return None
    lowered = value.lower()
    if lowered not in {"yes", "no"}:
        raise typer.BadParameter("Expecting 'yes' or 'no'.")
    return lowered == "yes"


ANIME_DIR = Annotated[
    Path,
    typer.Argument(
        file_okay=False,
        dir_okay=True,
        resolve_path=True,
        help="Path to the anime directory",
    ),
]

AID = Annotated[
    Optional[int],
    typer.Option(
        "--aid",
        help="AniDB anime id to use instead of searching based on the directory name",
    ),
]

ANILIST_ID = Annotated[
    Optional[int],
    typer.Option("--anilistid", help="AniList id to use instead of searching AniList"),
]

TMDB_ID = Annotated[
    Optional[int],
    typer.Option(
        "--tmdbid",
        help="TMDB tv show id to use instead of searching TMDB (movie ids are not supported)",
    ),
]

FORCE_UPDATE = Annotated[
    bool,
    typer.Option("--force-update", help="Force an AniDB metadata update"),
]

THRESHOLD = Annotated[
    Optional[int],
    typer.Option(
        "--threshold",
        help="Maximum edit distance for fuzzy title matches (default: 5)",
    ),
]

VERBOSE = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Show debug logging"),
]


@app.command()
def configure(
    anidb_client: Annotated[
        Optional[str], typer.Option("--anidb-client", help="Your AniDB HTTP client name")
    ] = None,
    anidb_version: Annotated[
        Optional[int],
        typer.Option("--anidb-version", help="Your AniDB HTTP client version"),
    ] = None,
    anidb_poster: Annotated[
        Optional[str],
        typer.Option("--anidb-poster", help="Enable AniDB poster fetching (yes/no)"),
    ] = None,
    anilist_token: Annotated[
        Optional[str], typer.Option("--anilist-token", help="Your AniList API token")
    ] = None,
    tmdb_api_key: Annotated[
        Optional[str], typer.Option("--tmdb-api-key", help="Your TMDB API key")
    ] = None,
    overwrite_nfo: Annotated[
        Optional[str],
        typer.Option(
            "--overwrite-nfo",
            help="Overwrite existing NFO by default (yes/no); passed on to NFO renderers",
        ),
    ] = None,
) -> None:
    """Update the configuration file."""
    try:
        poster = parse_yes_no(anidb_poster)
        overwrite = parse_yes_no(overwrite_nfo)
    except typer.BadParameter as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(ExitCode.ERROR)

    try:
        cfg = config_utils.read_config()
    except AniDBNfoError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(ExitCode.ERROR)

    if anidb_client is not None:
        cfg.anidb.client.name = anidb_client
    if anidb_version is not None:
        cfg.anidb.client.version = anidb_version
    if poster is not None:
        cfg.anidb.poster = poster
    if anilist_token is not None:
        cfg.anilist.token = anilist_token
    if tmdb_api_key is not None:
        cfg.tmdb.api_key = tmdb_api_key
    if overwrite is not None:
        cfg.overwrite_nfo = overwrite

    try:
        config_utils.write_config(cfg)
    except OSError as e:
        console.print(f"[red]Failed to update {config_utils.CONFIG_FILE}: {e}[/red]")
        raise typer.Exit(ExitCode.ERROR)
    console.print(f"[green]Updated {config_utils.CONFIG_FILE}[/green]")


@app.command()
def identify(
    anime_dir: ANIME_DIR,
    aid: AID = None,
    anilist_id: ANILIST_ID = None,
    tmdb_id: TMDB_ID = None,
    force_update: FORCE_UPDATE = False,
    threshold: THRESHOLD = None,
    verbose: VERBOSE = False,
) -> None:
    """Identify an anime directory and bind its episode files."""
    setup_logger(verbose)
    try:
        cfg = config_utils.read_config()
    except AniDBNfoError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(ExitCode.ERROR)

    cfg.matching.threshold = config_utils.resolve_setting(
        "matching.threshold", default=cfg.matching.threshold, cli_value=threshold
    )

    if not cfg.anidb.client.name or cfg.anidb.client.version is None:
        console.print(
            "[red]Please run 'configure' and configure at least "
            "--anidb-client and --anidb-version![/red]"
        )
        raise typer.Exit(ExitCode.ERROR)

    if not anime_dir.is_dir():
        console.print(f'[red]Anime directory "{anime_dir}" does not exist![/red]')
        raise typer.Exit(ExitCode.ERROR)

    pipeline = ResolutionPipeline.from_config(cfg)
    try:
        with console.status(f"[cyan]{anime_dir.name}: Identifying ...", spinner="dots"):
            resolved = asyncio.run(
                pipeline.run(
                    anime_dir,
                    aid=aid,
                    anilist_id=anilist_id,
                    tmdb_id=tmdb_id,
                    force_update=force_update,
                )
            )
    except (AccessDenied, ClientMisconfigured) as e:
        console.print(f"[red]{anime_dir.name}: {e}[/red]")
        console.print("[yellow]Check your credentials with 'anidbnfo configure'.[/yellow]")
        raise typer.Exit(ExitCode.ERROR)
    except AniDBNfoError as e:
        console.print(f"[red]{anime_dir.name}: {e}[/red]")
        raise typer.Exit(ExitCode.ERROR)

    if resolved is None:
        console.print(f"[red]{anime_dir.name}: Failed to match AniDB id via title search![/red]")
        raise typer.Exit(ExitCode.NO_MATCH)

    render_identity(resolved, console)
    render_episodes(resolved, console)


@app.command()
def version() -> None:
    """Show the version of anidbnfo."""
    from anidbnfo.__about__ import __version__

    console.print(f"anidbnfo version: [bold]{__version__}[/bold]")
