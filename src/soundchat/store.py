"""
In-memory collection store for SoundChat.

Holds playlists (each with an ordered list of track references) and the
comments attached to them. All state lives for the lifetime of the process;
there is no persistence.

Every public method takes the store lock for its whole duration, so the
duplicate check in ``add_track`` and the append that follows it are atomic
with respect to other requests.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for collection store failures."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PlaylistNotFoundError(StoreError):
    """The referenced playlist does not exist."""

    status_code = 404

    def __init__(self, playlist_id: str) -> None:
        super().__init__("Playlist not found")
        self.playlist_id = playlist_id


class DuplicateTrackError(StoreError):
    """The catalog track is already part of the playlist."""

    status_code = 400

    def __init__(self, playlist_id: str, catalog_track_id: Optional[str]) -> None:
        super().__init__("Track already in playlist")
        self.playlist_id = playlist_id
        self.catalog_track_id = catalog_track_id


def _now() -> datetime:
    return datetime.now(timezone.utc)


class IdGenerator:
    """
    Produces unique, strictly increasing ids derived from the wall clock.

    Each id is the current time in milliseconds; when two calls land in the
    same millisecond (or the clock steps backwards) the previous value plus one
    is used instead.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = 0

    def next_id(self) -> str:
        with self._lock:
            candidate = time.time_ns() // 1_000_000
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return str(candidate)


@dataclass
class TrackRef:
    id: str
    catalog_track_id: Optional[str]
    track_name: Optional[str]
    artist_name: Optional[str]
    album_name: Optional[str]
    added_by: Optional[str]
    added_at: datetime


@dataclass
class Playlist:
    id: str
    name: Optional[str]
    description: Optional[str]
    owner_id: Optional[str]
    created_at: datetime
    tracks: List[TrackRef] = field(default_factory=list)
    is_public: bool = True


@dataclass
class Comment:
    id: str
    playlist_id: str
    text: Optional[str]
    author_id: Optional[str]
    author_name: Optional[str]
    created_at: datetime


class CollectionStore:
    """
    Process-local holder for playlists and comments.

    Comments reference playlists by id only. ``add_comment`` does not check
    that the playlist exists, and nothing cascades between the two
    collections.
    """

    def __init__(self, id_generator: Optional[IdGenerator] = None) -> None:
        self._lock = threading.Lock()
        self._ids = id_generator or IdGenerator()
        self._playlists: List[Playlist] = []
        self._comments: List[Comment] = []

    def _find_playlist(self, playlist_id: str) -> Playlist:
        for playlist in self._playlists:
            if playlist.id == playlist_id:
                return playlist
        raise PlaylistNotFoundError(playlist_id)

    # --------------------------------------------------------------------- #
    # Playlists
    # --------------------------------------------------------------------- #
    def list_playlists(self) -> List[Playlist]:
        with self._lock:
            return copy.deepcopy(self._playlists)

    def get_playlist(self, playlist_id: str) -> Playlist:
        with self._lock:
            return copy.deepcopy(self._find_playlist(playlist_id))

    def create_playlist(
        self,
        name: Optional[str],
        description: Optional[str],
        owner_id: Optional[str],
    ) -> Playlist:
        with self._lock:
            playlist = Playlist(
                id=self._ids.next_id(),
                name=name,
                description=description,
                owner_id=owner_id,
                created_at=_now(),
            )
            self._playlists.append(playlist)
            logger.info(f"Created playlist {playlist.id}: name={name!r}, owner={owner_id!r}")
            return copy.deepcopy(playlist)

    def add_track(
        self,
        playlist_id: str,
        catalog_track_id: Optional[str],
        track_name: Optional[str],
        artist_name: Optional[str],
        album_name: Optional[str],
        user_id: Optional[str],
    ) -> TrackRef:
        """
        Append a track reference to a playlist.

        Raises PlaylistNotFoundError if the playlist is unknown and
        DuplicateTrackError if a track with the same catalog id is already in
        it. Only the catalog id is compared; names may differ freely.
        """
        with self._lock:
            playlist = self._find_playlist(playlist_id)
            for existing in playlist.tracks:
                if existing.catalog_track_id == catalog_track_id:
                    raise DuplicateTrackError(playlist_id, catalog_track_id)

            track = TrackRef(
                id=self._ids.next_id(),
                catalog_track_id=catalog_track_id,
                track_name=track_name,
                artist_name=artist_name,
                album_name=album_name,
                added_by=user_id,
                added_at=_now(),
            )
            playlist.tracks.append(track)
            logger.info(f"Added track {catalog_track_id!r} to playlist {playlist_id} as {track.id}")
            return copy.deepcopy(track)

    def remove_track(self, playlist_id: str, track_id: str) -> None:
        """
        Remove the track reference with ``track_id`` from a playlist.

        Unknown playlists raise PlaylistNotFoundError; an unknown track id in
        an existing playlist is a no-op.
        """
        with self._lock:
            playlist = self._find_playlist(playlist_id)
            remaining = [t for t in playlist.tracks if t.id != track_id]
            if len(remaining) == len(playlist.tracks):
                logger.debug(f"Track {track_id} not in playlist {playlist_id}, nothing to remove")
                return
            playlist.tracks = remaining
            logger.info(f"Removed track {track_id} from playlist {playlist_id}")

    # --------------------------------------------------------------------- #
    # Comments
    # --------------------------------------------------------------------- #
    def list_comments(self, playlist_id: str) -> List[Comment]:
        with self._lock:
            return [copy.deepcopy(c) for c in self._comments if c.playlist_id == playlist_id]

    def add_comment(
        self,
        playlist_id: str,
        text: Optional[str],
        author_id: Optional[str],
        author_name: Optional[str],
    ) -> Comment:
        with self._lock:
            comment = Comment(
                id=self._ids.next_id(),
                playlist_id=playlist_id,
                text=text,
                author_id=author_id,
                author_name=author_name,
                created_at=_now(),
            )
            self._comments.append(comment)
            logger.info(f"Added comment {comment.id} to playlist {playlist_id}")
            return copy.deepcopy(comment)

    def remove_comment(self, comment_id: str) -> None:
        with self._lock:
            before = len(self._comments)
            self._comments = [c for c in self._comments if c.id != comment_id]
            if len(self._comments) < before:
                logger.info(f"Removed comment {comment_id}")
            else:
                logger.debug(f"Comment {comment_id} not found, nothing to remove")


@dataclass
class User:
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class UserRegistry:
    """Users who completed the OAuth handshake, keyed by Spotify user id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._users: Dict[str, User] = {}

    def upsert(self, user: User) -> User:
        with self._lock:
            existed = user.id in self._users
            self._users[user.id] = copy.deepcopy(user)
            logger.info(f"{'Updated' if existed else 'Registered'} user {user.id}")
            return copy.deepcopy(user)

    def get(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)


__all__ = [
    "CollectionStore",
    "Comment",
    "DuplicateTrackError",
    "IdGenerator",
    "Playlist",
    "PlaylistNotFoundError",
    "StoreError",
    "TrackRef",
    "User",
    "UserRegistry",
]
