"""
Test suite for playlist endpoints: create, list, add/remove tracks, error handling.
"""

import pytest
from fastapi.testclient import TestClient

from soundchat.api import app
from soundchat.store import CollectionStore


@pytest.fixture(autouse=True)
def fresh_store():
    """Give every test an empty collection store."""
    previous = app.state.store
    app.state.store = CollectionStore()
    yield app.state.store
    app.state.store = previous


@pytest.fixture
def client():
    return TestClient(app)


def _create(client, name="Road Trip", description="", user_id="u1"):
    resp = client.post(
        "/api/playlists",
        json={"name": name, "description": description, "userId": user_id},
    )
    assert resp.status_code == 200
    return resp.json()


def _track_body(track_id="t1", **overrides):
    body = {
        "trackId": track_id,
        "trackName": "Song A",
        "artistName": "Artist A",
        "albumName": "Album A",
        "userId": "u1",
    }
    body.update(overrides)
    return body


class TestCreatePlaylist:
    """Test playlist creation endpoint."""

    def test_create_playlist_success(self, client):
        data = _create(client)

        assert data["id"]
        assert data["name"] == "Road Trip"
        assert data["description"] == ""
        assert data["userId"] == "u1"
        assert data["tracks"] == []
        assert data["isPublic"] is True
        assert data["createdAt"]

    def test_create_playlist_with_empty_body(self, client):
        """Creation performs no validation and always succeeds."""
        resp = client.post("/api/playlists", json={})

        assert resp.status_code == 200
        data = resp.json()
        assert data["id"]
        assert data["name"] is None
        assert data["tracks"] == []

    def test_created_playlists_are_listed(self, client):
        first = _create(client, name="First")
        second = _create(client, name="Second")

        resp = client.get("/api/playlists")

        assert resp.status_code == 200
        assert [p["id"] for p in resp.json()] == [first["id"], second["id"]]

    def test_create_playlist_numeric_fields_become_strings(self, client):
        resp = client.post("/api/playlists", json={"name": 42, "userId": 7})

        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "42"
        assert data["userId"] == "7"

    def test_create_playlist_invalid_body_uses_error_shape(self, client):
        resp = client.post("/api/playlists", json={"name": {"nested": 1}})

        assert resp.status_code == 422
        body = resp.json()
        assert "detail" not in body
        assert "name" in body["error"]
        assert client.get("/api/playlists").json() == []

    def test_list_playlists_empty(self, client):
        resp = client.get("/api/playlists")

        assert resp.status_code == 200
        assert resp.json() == []


class TestAddTrack:
    """Test add track to playlist endpoint."""

    def test_add_track_success(self, client):
        playlist = _create(client)

        resp = client.post(f"/api/playlists/{playlist['id']}/tracks", json=_track_body())

        assert resp.status_code == 200
        track = resp.json()
        assert track["id"]
        assert track["id"] != "t1"
        assert track["trackId"] == "t1"
        assert track["trackName"] == "Song A"
        assert track["artistName"] == "Artist A"
        assert track["albumName"] == "Album A"
        assert track["addedBy"] == "u1"
        assert track["addedAt"]

    def test_add_track_numeric_ids(self, client):
        playlist = _create(client)
        url = f"/api/playlists/{playlist['id']}/tracks"

        resp = client.post(url, json=_track_body(track_id=123, userId=7))

        assert resp.status_code == 200
        assert resp.json()["trackId"] == "123"
        assert resp.json()["addedBy"] == "7"
        # The numeric id and its string form name the same catalog track.
        assert client.post(url, json=_track_body(track_id="123")).status_code == 400

    def test_added_track_shows_up_in_listing(self, client):
        playlist = _create(client)
        track = client.post(f"/api/playlists/{playlist['id']}/tracks", json=_track_body()).json()

        listed = client.get("/api/playlists").json()

        assert listed[0]["tracks"] == [track]

    def test_add_duplicate_track_rejected(self, client):
        playlist = _create(client)
        url = f"/api/playlists/{playlist['id']}/tracks"
        assert client.post(url, json=_track_body()).status_code == 200

        resp = client.post(url, json=_track_body(trackName="Different Name", artistName="Someone"))

        assert resp.status_code == 400
        assert resp.json() == {"error": "Track already in playlist"}
        assert len(client.get("/api/playlists").json()[0]["tracks"]) == 1

    def test_add_track_unknown_playlist(self, client):
        resp = client.post("/api/playlists/does-not-exist/tracks", json=_track_body())

        assert resp.status_code == 404
        assert resp.json() == {"error": "Playlist not found"}

    def test_errors_do_not_break_later_requests(self, client):
        client.post("/api/playlists/does-not-exist/tracks", json=_track_body())
        playlist = _create(client)

        resp = client.post(f"/api/playlists/{playlist['id']}/tracks", json=_track_body())

        assert resp.status_code == 200


class TestRemoveTrack:
    """Test remove track endpoint."""

    def test_remove_track_preserves_order(self, client):
        playlist = _create(client)
        url = f"/api/playlists/{playlist['id']}/tracks"
        t1 = client.post(url, json=_track_body("c1")).json()
        t2 = client.post(url, json=_track_body("c2")).json()
        t3 = client.post(url, json=_track_body("c3")).json()

        resp = client.delete(f"{url}/{t2['id']}")

        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        remaining = client.get("/api/playlists").json()[0]["tracks"]
        assert [t["id"] for t in remaining] == [t1["id"], t3["id"]]

    def test_remove_absent_track_succeeds(self, client):
        playlist = _create(client)
        url = f"/api/playlists/{playlist['id']}/tracks"
        client.post(url, json=_track_body("c1"))
        before = client.get("/api/playlists").json()

        resp = client.delete(f"{url}/not-there")

        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert client.get("/api/playlists").json() == before

    def test_remove_track_unknown_playlist(self, client):
        resp = client.delete("/api/playlists/does-not-exist/tracks/t1")

        assert resp.status_code == 404
        assert resp.json() == {"error": "Playlist not found"}


class TestEndToEnd:
    """The road-trip walkthrough the web client performs."""

    def test_road_trip_scenario(self, client):
        playlist = _create(client, name="Road Trip", description="", user_id="u1")
        assert playlist["id"]
        assert playlist["tracks"] == []

        url = f"/api/playlists/{playlist['id']}/tracks"
        first = client.post(url, json=_track_body("t1"))
        assert first.status_code == 200
        assert first.json()["id"] != "t1"

        second = client.post(url, json=_track_body("t1"))
        assert second.status_code == 400
        assert second.json()["error"] == "Track already in playlist"
