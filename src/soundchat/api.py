"""
FastAPI service for SoundChat.

Two groups of endpoints:

- Catalog proxy (read-only, stateless):
    GET /api/search/artists?q=...
    GET /api/artist/{artist_id}/albums
    GET /api/album/{album_id}/tracks

- Playlists and comments (in-memory collection store):
    GET    /api/playlists
    POST   /api/playlists
    POST   /api/playlists/{playlist_id}/tracks
    DELETE /api/playlists/{playlist_id}/tracks/{track_id}
    GET    /api/playlists/{playlist_id}/comments
    POST   /api/playlists/{playlist_id}/comments
    DELETE /api/comments/{comment_id}

plus the Spotify OAuth handshake under /auth. Errors are returned as
{"error": "<message>"}, which is what the web client reads.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlencode

import httpx
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .catalog import (
    SPOTIFY_API_BASE_URL,
    SPOTIFY_TOKEN_URL,
    CatalogError,
    CatalogGateway,
)
from .config import load_config
from .store import (
    CollectionStore,
    Comment,
    Playlist,
    StoreError,
    TrackRef,
    User,
    UserRegistry,
)

logger = logging.getLogger(__name__)

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
OAUTH_SCOPES = "user-read-private user-read-email playlist-modify-public playlist-modify-private"
OAUTH_STATE_TTL = 600  # seconds

_cfg = load_config()
_oauth_http = httpx.Client(timeout=10.0)
_oauth_states: dict[str, float] = {}  # state -> issue timestamp

app = FastAPI(
    title="SoundChat API",
    description="SoundChat – browse the Spotify catalog, build playlists and talk about them.",
    version="0.1.0",
)

app.state.store = CollectionStore()
app.state.users = UserRegistry()
app.state.catalog = CatalogGateway(_cfg.spotify)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cfg.server.cors_origins,
    allow_credentials="*" not in _cfg.server.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AuthExchangeError(Exception):
    """The OAuth authorization code could not be turned into a user session."""


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return _error(exc.status_code, exc.message)


app.add_exception_handler(StoreError, _store_error_handler)


def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = ", ".join(".".join(str(p) for p in err.get("loc", ())) for err in exc.errors())
    logger.warning(f"{request.method} {request.url.path} invalid request: {fields}")
    return _error(422, f"Invalid request: {fields}" if fields else "Invalid request")


app.add_exception_handler(RequestValidationError, _validation_error_handler)


def get_store(request: Request) -> CollectionStore:
    return request.app.state.store


def get_users(request: Request) -> UserRegistry:
    return request.app.state.users


def get_catalog(request: Request) -> CatalogGateway:
    return request.app.state.catalog


# ------------------------------------------------------------------------- #
# Wire models
# ------------------------------------------------------------------------- #
class _WireModel(BaseModel):
    """Snake_case in Python, camelCase on the wire. Numeric ids arrive as strings."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class CreatePlaylistRequest(_WireModel):
    name: Optional[str] = None
    description: Optional[str] = None
    user_id: Optional[str] = None


class AddTrackRequest(_WireModel):
    track_id: Optional[str] = None
    track_name: Optional[str] = None
    artist_name: Optional[str] = None
    album_name: Optional[str] = None
    user_id: Optional[str] = None


class AddCommentRequest(_WireModel):
    text: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None


class TrackOut(_WireModel):
    id: str
    track_id: Optional[str] = None
    track_name: Optional[str] = None
    artist_name: Optional[str] = None
    album_name: Optional[str] = None
    added_by: Optional[str] = None
    added_at: datetime

    @classmethod
    def from_ref(cls, ref: TrackRef) -> "TrackOut":
        return cls(
            id=ref.id,
            track_id=ref.catalog_track_id,
            track_name=ref.track_name,
            artist_name=ref.artist_name,
            album_name=ref.album_name,
            added_by=ref.added_by,
            added_at=ref.added_at,
        )


class PlaylistOut(_WireModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    user_id: Optional[str] = None
    tracks: List[TrackOut]
    created_at: datetime
    is_public: bool

    @classmethod
    def from_playlist(cls, playlist: Playlist) -> "PlaylistOut":
        return cls(
            id=playlist.id,
            name=playlist.name,
            description=playlist.description,
            user_id=playlist.owner_id,
            tracks=[TrackOut.from_ref(t) for t in playlist.tracks],
            created_at=playlist.created_at,
            is_public=playlist.is_public,
        )


class CommentOut(_WireModel):
    id: str
    playlist_id: str
    text: Optional[str] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentOut":
        return cls(
            id=comment.id,
            playlist_id=comment.playlist_id,
            text=comment.text,
            user_id=comment.author_id,
            user_name=comment.author_name,
            created_at=comment.created_at,
        )


class SuccessOut(BaseModel):
    success: bool = True


class AuthLoginOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auth_url: str = Field(alias="authURL")


class AuthCallbackRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    code: Optional[str] = None
    state: Optional[str] = None


class UserOut(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None


class AuthCallbackOut(BaseModel):
    user: UserOut
    access_token: str


# ------------------------------------------------------------------------- #
# System
# ------------------------------------------------------------------------- #
@app.get("/health", tags=["system"])
def health() -> dict:
    logger.debug("Health check endpoint called")
    return {"status": "ok"}


# ------------------------------------------------------------------------- #
# Auth
# ------------------------------------------------------------------------- #
def _prune_oauth_states(now: float) -> None:
    expired = [s for s, issued in _oauth_states.items() if now - issued > OAUTH_STATE_TTL]
    for s in expired:
        _oauth_states.pop(s, None)


@app.get("/auth/login", response_model=AuthLoginOut, tags=["auth"])
def auth_login():
    """
    Return the Spotify authorize URL the client should send the user to.
    """
    logger.info("OAuth login initiated")
    client_id = _cfg.spotify.client_id
    if not client_id:
        logger.error("OAuth login failed: Spotify client ID not set")
        return _error(500, "Spotify client ID is not configured.")

    now = time.time()
    _prune_oauth_states(now)
    state = secrets.token_urlsafe(32)
    _oauth_states[state] = now
    logger.debug(f"OAuth state generated: {state[:8]}..., redirect_uri={_cfg.spotify.redirect_uri}")

    params = {
        "response_type": "code",
        "client_id": client_id,
        "scope": OAUTH_SCOPES,
        "redirect_uri": _cfg.spotify.redirect_uri,
        "state": state,
    }
    return AuthLoginOut(auth_url=f"{SPOTIFY_AUTHORIZE_URL}?{urlencode(params)}")


def _exchange_code(code: str) -> dict:
    """
    Trade an authorization code for user tokens.
    """
    logger.info("Exchanging authorization code for tokens")
    try:
        resp = _oauth_http.post(
            SPOTIFY_TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": _cfg.spotify.redirect_uri,
            },
            auth=(_cfg.spotify.client_id, _cfg.spotify.client_secret),
        )
    except httpx.HTTPError as exc:
        raise AuthExchangeError(f"Failed to contact Spotify token endpoint: {exc}") from exc

    if resp.status_code != 200:
        raise AuthExchangeError(f"Spotify token exchange failed: {resp.status_code} {resp.text}")

    data = resp.json()
    if not data.get("access_token"):
        raise AuthExchangeError("Spotify token response missing access_token")
    return data


def _fetch_profile(access_token: str) -> dict:
    try:
        resp = _oauth_http.get(
            f"{SPOTIFY_API_BASE_URL}/me",
            headers={"Authorization": f"Bearer {access_token}"},
        )
    except httpx.HTTPError as exc:
        raise AuthExchangeError(f"Failed to fetch Spotify profile: {exc}") from exc

    if not resp.is_success:
        raise AuthExchangeError(f"Failed to fetch Spotify profile: {resp.status_code} {resp.text}")

    profile = resp.json()
    if not profile.get("id"):
        raise AuthExchangeError("Spotify /me response missing user id")
    return profile


@app.post("/auth/callback", response_model=AuthCallbackOut, tags=["auth"])
def auth_callback(body: AuthCallbackRequest, users: UserRegistry = Depends(get_users)):
    """
    Finish the OAuth flow: exchange the code, look up the Spotify profile and
    register (or refresh) the user.
    """
    if not body.code:
        logger.warning("OAuth callback: no authorization code received")
        return _error(400, "Authentication failed")

    if body.state is not None and _oauth_states.pop(body.state, None) is None:
        logger.warning("OAuth callback: invalid or expired state")
        return _error(400, "Authentication failed")

    if not _cfg.spotify.client_id or not _cfg.spotify.client_secret:
        logger.error("OAuth callback failed: Spotify client ID/secret not set")
        return _error(500, "Spotify client ID/secret are not configured.")

    try:
        tokens = _exchange_code(body.code)
        profile = _fetch_profile(tokens["access_token"])
    except AuthExchangeError as exc:
        logger.error(f"Auth callback error: {exc}")
        return _error(400, "Authentication failed")

    user = users.upsert(
        User(
            id=profile["id"],
            name=profile.get("display_name"),
            email=profile.get("email"),
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token"),
        )
    )
    logger.info(f"OAuth callback successful for user {user.id}")
    return AuthCallbackOut(
        user=UserOut(id=user.id, name=user.name, email=user.email),
        access_token=tokens["access_token"],
    )


# ------------------------------------------------------------------------- #
# Catalog proxy
# ------------------------------------------------------------------------- #
@app.get("/api/search/artists", tags=["catalog"])
def api_search_artists(
    q: str = Query("", description="Free-text artist query"),
    catalog: CatalogGateway = Depends(get_catalog),
):
    logger.info(f"API artist search: q={q!r}")
    if not q.strip():
        return []
    try:
        return catalog.search_artists(q)
    except CatalogError as exc:
        logger.error(f"Artist search error: {exc}")
        return _error(500, "Failed to search artists")


@app.get("/api/artist/{artist_id}/albums", tags=["catalog"])
def api_artist_albums(artist_id: str, catalog: CatalogGateway = Depends(get_catalog)):
    try:
        return catalog.list_artist_albums(artist_id)
    except CatalogError as exc:
        logger.error(f"Artist albums error: {exc}")
        return _error(500, "Failed to get artist albums")


@app.get("/api/album/{album_id}/tracks", tags=["catalog"])
def api_album_tracks(album_id: str, catalog: CatalogGateway = Depends(get_catalog)):
    try:
        return catalog.list_album_tracks(album_id)
    except CatalogError as exc:
        logger.error(f"Album tracks error: {exc}")
        return _error(500, "Failed to get album tracks")


# ------------------------------------------------------------------------- #
# Playlists
# ------------------------------------------------------------------------- #
@app.get("/api/playlists", response_model=List[PlaylistOut], tags=["playlists"])
def api_list_playlists(store: CollectionStore = Depends(get_store)) -> List[PlaylistOut]:
    return [PlaylistOut.from_playlist(p) for p in store.list_playlists()]


@app.post("/api/playlists", response_model=PlaylistOut, tags=["playlists"])
def api_create_playlist(
    body: CreatePlaylistRequest,
    store: CollectionStore = Depends(get_store),
) -> PlaylistOut:
    logger.info(f"Creating playlist: name={body.name!r}, user={body.user_id!r}")
    playlist = store.create_playlist(body.name, body.description, body.user_id)
    return PlaylistOut.from_playlist(playlist)


@app.post("/api/playlists/{playlist_id}/tracks", response_model=TrackOut, tags=["playlists"])
def api_add_track(
    playlist_id: str,
    body: AddTrackRequest,
    store: CollectionStore = Depends(get_store),
) -> TrackOut:
    logger.info(f"Adding track {body.track_id!r} to playlist {playlist_id}")
    track = store.add_track(
        playlist_id,
        body.track_id,
        body.track_name,
        body.artist_name,
        body.album_name,
        body.user_id,
    )
    return TrackOut.from_ref(track)


@app.delete(
    "/api/playlists/{playlist_id}/tracks/{track_id}",
    response_model=SuccessOut,
    tags=["playlists"],
)
def api_remove_track(
    playlist_id: str,
    track_id: str,
    store: CollectionStore = Depends(get_store),
) -> SuccessOut:
    store.remove_track(playlist_id, track_id)
    return SuccessOut()


# ------------------------------------------------------------------------- #
# Comments
# ------------------------------------------------------------------------- #
@app.get(
    "/api/playlists/{playlist_id}/comments",
    response_model=List[CommentOut],
    tags=["comments"],
)
def api_list_comments(
    playlist_id: str,
    store: CollectionStore = Depends(get_store),
) -> List[CommentOut]:
    return [CommentOut.from_comment(c) for c in store.list_comments(playlist_id)]


@app.post(
    "/api/playlists/{playlist_id}/comments",
    response_model=CommentOut,
    tags=["comments"],
)
def api_add_comment(
    playlist_id: str,
    body: AddCommentRequest,
    store: CollectionStore = Depends(get_store),
) -> CommentOut:
    comment = store.add_comment(playlist_id, body.text, body.user_id, body.user_name)
    return CommentOut.from_comment(comment)


@app.delete("/api/comments/{comment_id}", response_model=SuccessOut, tags=["comments"])
def api_remove_comment(
    comment_id: str,
    store: CollectionStore = Depends(get_store),
) -> SuccessOut:
    store.remove_comment(comment_id)
    return SuccessOut()
