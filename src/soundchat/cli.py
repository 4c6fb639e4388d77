"""
CLI entrypoint for SoundChat.

Commands:
- serve: run the FastAPI service.
- artists / albums / tracks: browse the Spotify catalog from the terminal.
"""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
import uvicorn

from .catalog import CatalogError, CatalogGateway
from .config import load_config


app = typer.Typer(help="SoundChat – browse Spotify, build playlists, talk about them.")


def _gateway() -> CatalogGateway:
    return CatalogGateway(load_config().spotify)


def _fetch(console: Console, status: str, method: str, *args):
    gateway = _gateway()
    try:
        with console.status(f"[bold cyan]{status}[/bold cyan]"):
            return getattr(gateway, method)(*args)
    except CatalogError as exc:
        console.print(f"[bold red]Spotify error:[/bold red] {exc}")
        raise typer.Exit(1)
    finally:
        gateway.close()


def _artist_names(track: dict) -> str:
    return ", ".join(a.get("name", "") for a in track.get("artists") or [])


@app.command("artists")
def artists(
    query: str = typer.Argument(..., help="Artist name to search for."),
) -> None:
    """
    Search the catalog for artists.
    """
    console = Console()
    items = _fetch(console, "Searching artists...", "search_artists", query)

    if not items:
        console.print(f"[bold yellow]No artists found for {query!r}.[/bold yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Artists – {query!r}")
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Artist", style="bold")
    table.add_column("Genres", style="magenta")
    table.add_column("ID", style="dim")
    for idx, artist in enumerate(items, start=1):
        genres = ", ".join(artist.get("genres") or []) or "Music"
        table.add_row(str(idx), artist.get("name", ""), genres, artist.get("id", ""))
    console.print(table)


@app.command("albums")
def albums(
    artist_id: str = typer.Argument(..., help="Spotify artist ID."),
) -> None:
    """
    List an artist's albums and singles, newest first.
    """
    console = Console()
    items = _fetch(console, "Loading albums...", "list_artist_albums", artist_id)

    if not items:
        console.print("[bold yellow]No albums found for that artist.[/bold yellow]")
        raise typer.Exit(0)

    table = Table(title="Albums")
    table.add_column("Released", style="cyan", no_wrap=True)
    table.add_column("Album", style="bold")
    table.add_column("Type", style="magenta")
    table.add_column("ID", style="dim")
    for album in items:
        table.add_row(
            album.get("release_date", ""),
            album.get("name", ""),
            album.get("album_type", ""),
            album.get("id", ""),
        )
    console.print(table)


@app.command("tracks")
def tracks(
    album_id: str = typer.Argument(..., help="Spotify album ID."),
) -> None:
    """
    List the tracks of an album.
    """
    console = Console()
    items = _fetch(console, "Loading tracks...", "list_album_tracks", album_id)

    if not items:
        console.print("[bold yellow]That album has no tracks.[/bold yellow]")
        raise typer.Exit(0)

    table = Table(title="Tracks")
    table.add_column("#", justify="right", style="cyan", no_wrap=True)
    table.add_column("Track", style="bold")
    table.add_column("Artists", style="magenta")
    table.add_column("ID", style="dim")
    for idx, track in enumerate(items, start=1):
        table.add_row(
            str(track.get("track_number", idx)),
            track.get("name", ""),
            _artist_names(track),
            track.get("id", ""),
        )
    console.print(table)


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Host to bind the SoundChat API server to."),
    port: Optional[int] = typer.Option(None, help="Port to bind the SoundChat API server to."),
    reload: bool = typer.Option(False, help="Enable auto-reload (development only)."),
) -> None:
    """
    Run the SoundChat FastAPI service.

    Example:
        soundchat serve --host 0.0.0.0 --port 3001
    """
    server_cfg = load_config().server
    uvicorn.run(
        "soundchat.api:app",
        host=host or server_cfg.host,
        port=port or server_cfg.port,
        reload=reload,
    )


if __name__ == "__main__":
    app()
