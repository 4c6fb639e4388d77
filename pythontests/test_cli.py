"""
Basic tests for the SoundChat CLI entrypoint.

The catalog gateway is patched out, so no real Spotify calls are made.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from typer.testing import CliRunner

from soundchat.catalog import CatalogAPIError
from soundchat.cli import app


def _fake_gateway() -> MagicMock:
    gateway = MagicMock()
    gateway.search_artists.return_value = [
        {"id": "artist-1", "name": "Test Artist", "genres": ["shoegaze"]},
    ]
    gateway.list_artist_albums.return_value = [
        {"id": "album-2", "name": "Second Album", "release_date": "2024-06-01", "album_type": "album"},
        {"id": "album-1", "name": "First Album", "release_date": "2023-01-01", "album_type": "single"},
    ]
    gateway.list_album_tracks.return_value = [
        {"id": "track-1", "name": "Opening Song", "track_number": 1, "artists": [{"name": "Test Artist"}]},
    ]
    return gateway


def test_cli_artists_renders_table() -> None:
    runner = CliRunner()
    gateway = _fake_gateway()
    with patch("soundchat.cli._gateway", return_value=gateway):
        result = runner.invoke(app, ["artists", "test"])

    assert result.exit_code == 0
    assert "Test Artist" in result.stdout
    assert "shoegaze" in result.stdout
    gateway.search_artists.assert_called_once_with("test")
    gateway.close.assert_called_once()


def test_cli_albums_lists_newest_first() -> None:
    runner = CliRunner()
    with patch("soundchat.cli._gateway", return_value=_fake_gateway()):
        result = runner.invoke(app, ["albums", "artist-1"])

    assert result.exit_code == 0
    assert result.stdout.index("Second Album") < result.stdout.index("First Album")


def test_cli_tracks() -> None:
    runner = CliRunner()
    with patch("soundchat.cli._gateway", return_value=_fake_gateway()):
        result = runner.invoke(app, ["tracks", "album-1"])

    assert result.exit_code == 0
    assert "Opening Song" in result.stdout


def test_cli_artists_no_results() -> None:
    runner = CliRunner()
    gateway = _fake_gateway()
    gateway.search_artists.return_value = []
    with patch("soundchat.cli._gateway", return_value=gateway):
        result = runner.invoke(app, ["artists", "nobody"])

    assert result.exit_code == 0
    assert "No artists found" in result.stdout


def test_cli_reports_catalog_errors() -> None:
    runner = CliRunner()
    gateway = _fake_gateway()
    gateway.list_album_tracks.side_effect = CatalogAPIError("Spotify API error 503")
    with patch("soundchat.cli._gateway", return_value=gateway):
        result = runner.invoke(app, ["tracks", "album-1"])

    assert result.exit_code == 1
    assert "Spotify error" in result.stdout
    gateway.close.assert_called_once()


def test_cli_serve_uses_configured_port() -> None:
    runner = CliRunner()
    with patch("soundchat.cli.uvicorn.run") as mock_run, \
         patch.dict("os.environ", {"SOUNDCHAT_PORT": "4010"}):
        result = runner.invoke(app, ["serve"])

    assert result.exit_code == 0
    args, kwargs = mock_run.call_args
    assert args[0] == "soundchat.api:app"
    assert kwargs["port"] == 4010
    assert kwargs["reload"] is False
