"""
Spotify catalog gateway for SoundChat.

Read-only access to the Spotify Web API using the Client Credentials flow:
- search artists by free text
- list an artist's albums and singles, newest first
- list the tracks of an album

Responses are passed through as the upstream item dicts; only the album
listing is reordered.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from time import time
from typing import List, Optional

import httpx

from .config import SpotifyConfig

logger = logging.getLogger(__name__)


SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"
TOKEN_EXPIRY_MARGIN = 10  # seconds


class CatalogError(Exception):
    """Base exception for catalog lookups that failed upstream."""


class CatalogAuthError(CatalogError):
    """The service token could not be obtained."""


class CatalogAPIError(CatalogError):
    """A catalog call failed after the token was obtained."""


@dataclass
class _TokenInfo:
    access_token: str
    expires_at: float

    @property
    def is_expired(self) -> bool:
        return time() >= self.expires_at - TOKEN_EXPIRY_MARGIN


def release_date_key(album: dict) -> str:
    """
    Sortable form of an album's release date.

    Spotify reports dates at year, month or day precision ("2023",
    "2023-06", "2023-06-15"); partial dates count as the first day of the
    period. Albums without a date get the smallest key, so they come last in
    a newest-first listing.
    """
    raw = album.get("release_date") or ""
    parts = raw.split("-")
    if not parts[0]:
        return ""
    while len(parts) < 3:
        parts.append("01")
    return "-".join(p.zfill(2) for p in parts[:3])


def sort_albums_newest_first(albums: List[dict]) -> List[dict]:
    # sorted() is stable with reverse=True, so equal dates keep upstream order.
    return sorted(albums, key=release_date_key, reverse=True)


class CatalogGateway:
    """
    Spotify Web API client using the Client Credentials flow.

    The service token is cached until shortly before it expires and dropped
    after a 401 so the request can be retried once with a fresh one.
    """

    def __init__(self, cfg: SpotifyConfig, *, timeout: float = 10.0) -> None:
        self._cfg = cfg
        self._http = httpx.Client(timeout=timeout)
        self._token: Optional[_TokenInfo] = None
        self._token_lock = threading.Lock()

    # --------------------------------------------------------------------- #
    # Authentication
    # --------------------------------------------------------------------- #
    def _ensure_credentials(self) -> None:
        if not self._cfg.client_id or not self._cfg.client_secret:
            logger.error("Catalog lookup refused: no Spotify client credentials configured")
            raise CatalogAuthError(
                "Spotify client ID/secret are missing. "
                "Set SOUNDCHAT_SPOTIFY_CLIENT_ID and SOUNDCHAT_SPOTIFY_CLIENT_SECRET."
            )

    def _fetch_token(self) -> _TokenInfo:
        logger.info("Fetching catalog service token")
        try:
            resp = self._http.post(
                SPOTIFY_TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(self._cfg.client_id, self._cfg.client_secret),
            )
        except httpx.HTTPError as exc:
            logger.error(f"Token endpoint unreachable: {exc}")
            raise CatalogAuthError(f"Token endpoint unreachable: {exc}") from exc

        if resp.status_code != 200:
            logger.error(f"Token request rejected ({resp.status_code}): {resp.text}")
            raise CatalogAuthError(f"Token request rejected ({resp.status_code}): {resp.text}")

        data = resp.json()
        if not isinstance(data, dict) or not data.get("access_token"):
            logger.error("Token response carried no access_token")
            raise CatalogAuthError("Token response carried no access_token")

        lifetime = int(data.get("expires_in") or 3600)
        logger.info(f"Catalog service token valid for {lifetime}s")
        return _TokenInfo(access_token=data["access_token"], expires_at=time() + lifetime)

    def _get_access_token(self) -> str:
        self._ensure_credentials()
        with self._token_lock:
            if self._token is None or self._token.is_expired:
                self._token = self._fetch_token()
            else:
                logger.debug("Reusing cached catalog token")
            return self._token.access_token

    def _invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None

    # --------------------------------------------------------------------- #
    # Requests
    # --------------------------------------------------------------------- #
    def _send(self, method: str, url: str, path: str, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._get_access_token()}"}
        try:
            return self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(f"Transport failure on {path}: {exc}")
            raise CatalogAPIError(f"Transport failure on {path}: {exc}") from exc

    def _request(self, method: str, path: str, **kwargs) -> dict:
        """
        Call a catalog endpoint and return its JSON object body.

        Any transport failure, non-2xx status, or body that is not a JSON
        object raises CatalogAPIError.
        """
        url = f"{SPOTIFY_API_BASE_URL}{path}"
        logger.debug(f"Catalog call {method} {path}")
        resp = self._send(method, url, path, **kwargs)

        if resp.status_code == 401:
            logger.warning(f"Token rejected on {path}; fetching a new one and retrying once")
            self._invalidate_token()
            resp = self._send(method, url, path, **kwargs)

        if not resp.is_success:
            logger.error(f"Catalog call {path} failed with {resp.status_code}: {resp.text}")
            raise CatalogAPIError(f"Catalog call {path} failed with {resp.status_code}: {resp.text}")

        try:
            data = resp.json()
        except ValueError as exc:
            logger.error(f"Catalog call {path} returned invalid JSON")
            raise CatalogAPIError(f"Invalid JSON on {path}") from exc

        if not isinstance(data, dict):
            logger.error(f"Catalog call {path} returned a {type(data).__name__}, expected an object")
            raise CatalogAPIError(f"Unexpected response shape on {path}")

        logger.debug(f"Catalog call {method} {path} ok")
        return data

    # --------------------------------------------------------------------- #
    # Lookups
    # --------------------------------------------------------------------- #
    def search_artists(self, query: str, *, limit: int = 20) -> List[dict]:
        """
        Search for artists by free-text query.
        """
        logger.info(f"Searching Spotify artists: query={query!r}, limit={limit}")
        params = {
            "q": query,
            "type": "artist",
            "limit": max(1, min(limit, 50)),
        }
        data = self._request("GET", "/search", params=params)
        items = (data.get("artists") or {}).get("items") or []
        logger.debug(f"Spotify artist search returned {len(items)} artists")
        return items

    def list_artist_albums(self, artist_id: str) -> List[dict]:
        """
        Albums and singles for an artist, newest release first.
        """
        logger.info(f"Listing albums for artist {artist_id}")
        params = {
            "include_groups": "album,single",
            "market": "US",
            "limit": 20,
        }
        data = self._request("GET", f"/artists/{artist_id}/albums", params=params)
        items = data.get("items") or []
        logger.debug(f"Spotify returned {len(items)} albums for artist {artist_id}")
        return sort_albums_newest_first(items)

    def list_album_tracks(self, album_id: str) -> List[dict]:
        logger.info(f"Listing tracks for album {album_id}")
        data = self._request("GET", f"/albums/{album_id}/tracks")
        items = data.get("items") or []
        logger.debug(f"Spotify returned {len(items)} tracks for album {album_id}")
        return items

    def close(self) -> None:
        logger.debug("Closing CatalogGateway HTTP connection")
        self._http.close()


__all__ = [
    "CatalogGateway",
    "CatalogError",
    "CatalogAuthError",
    "CatalogAPIError",
    "release_date_key",
    "sort_albums_newest_first",
]
