"""Renderer for CLI output.

Renders a resolved anime and its episode groupings as Rich tables.
"""

from rich.console import Console
from rich.table import Table

from anidbnfo.metadata.models import ResolvedAnime


def render_identity(anime: ResolvedAnime, console: Console | None = None) -> None:
    """Render the cross-catalog identity of *anime*."""
    console = console or Console()

    table = Table(title=anime.title)
    table.add_column("Catalog", style="bold")
    table.add_column("Id", style="cyan")

    ids = anime.ids
    table.add_row("anidb", str(ids.anidb))
    for catalog, value in (
        ("anilist", ids.anilist),
        ("tmdb", ids.tmdb),
        ("tvdb", ids.tvdb),
    ):
        table.add_row(catalog, str(value) if value is not None else "-", style=None if value else "dim")
    if ids.tvdb_season is not None:
        table.add_row("tvdb season", str(ids.tvdb_season))

    console.print(table)
    if anime.original_title:
        console.print(f"Original title: {anime.original_title}")
    if anime.premiered:
        console.print(f"Premiered: {anime.premiered}")


def render_episodes(anime: ResolvedAnime, console: Console | None = None) -> None:
    """Render one row per bound episode, grouped by file."""
    console = console or Console()

    table = Table(title="Episodes")
    table.add_column("File", style="cyan")
    table.add_column("S", justify="right")
    table.add_column("E", justify="right")
    table.add_column("Title", style="green")
    table.add_column("Premiered")

    unbound = 0
    for group in anime.episodes:
        if not group.episodes:
            unbound += 1
            table.add_row(group.file.path.name, "-", "-", group.file.title, "", style="red")
            continue
        for index, episode in enumerate(group.episodes):
            table.add_row(
                group.file.path.name if index == 0 else "",
                str(episode.season),
                str(episode.episode),
                episode.title,
                episode.premiered or "",
            )

    console.print(table)
    console.print(f"Files: {len(anime.episodes)} | Unbound: {unbound}")
    if unbound:
        console.print(f"Files without canonical episode: {unbound}", style="red bold")
