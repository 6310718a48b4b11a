"""Spotify player bridge via Spotipy; uses cached OAuth token."""
import logging
from typing import Any, Callable, Dict, List, Sequence

import requests
from spotipy import Spotify, SpotifyException
from spotipy.cache_handler import CacheFileHandler
from spotipy.oauth2 import SpotifyOAuth

from cdchanger.config import (
    MAX_PLAY_TRACKS,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_DEVICE_ID,
    SPOTIFY_REDIRECT_URI,
    SPOTIFY_SCOPES,
    SPOTIFY_TOKEN_CACHE,
)
from cdchanger.core.errors import (
    MusicNotRunning,
    NoAlbumFound,
    NoCurrentTrack,
    NoPlaylistFound,
    NotAuthorized,
    ScriptFailed,
)
from cdchanger.models.disc import AlbumSuggestion, LoadedDisc
from cdchanger.models.playback import NowPlayingObservation

logger = logging.getLogger(__name__)

ARTWORK_TIMEOUT_SEC = 5.0


def _auth_manager() -> SpotifyOAuth | None:
    if not SPOTIFY_CLIENT_ID or not SPOTIFY_CLIENT_SECRET:
        return None
    cache = CacheFileHandler(cache_path=str(SPOTIFY_TOKEN_CACHE))
    return SpotifyOAuth(
        client_id=SPOTIFY_CLIENT_ID,
        client_secret=SPOTIFY_CLIENT_SECRET,
        redirect_uri=SPOTIFY_REDIRECT_URI,
        scope=SPOTIFY_SCOPES,
        cache_handler=cache,
    )


def get_spotify_client() -> Spotify | None:
    """Return an authenticated Spotipy Spotify client, or None if not logged in."""
    auth = _auth_manager()
    if auth is None:
        return None
    token_info = auth.validate_token(auth.cache_handler.get_cached_token())
    if token_info is None:
        return None
    return Spotify(auth_manager=auth)


def authorize_url() -> str | None:
    """Spotify consent page for linking the changer, or None without credentials."""
    auth = _auth_manager()
    return auth.get_authorize_url() if auth else None


def forget_token() -> bool:
    """Delete the cached token. Returns True if one was removed."""
    if not SPOTIFY_TOKEN_CACHE.exists():
        return False
    SPOTIFY_TOKEN_CACHE.unlink()
    logger.info("Spotify token removed")
    return True


def exchange_code_and_save_token(code: str) -> bool:
    """Exchange OAuth code for tokens and save to cache. Returns True on success."""
    auth = _auth_manager()
    if auth is None:
        return False
    try:
        auth.get_access_token(code=code, check_cache=False)
        return True
    except Exception as e:
        logger.warning("Spotify token exchange failed: %s", e)
        return False


def _id_from_uri(uri: str) -> str:
    """spotify:album:abc -> abc; plain ids pass through."""
    return uri.split(":")[-1] if ":" in uri else uri


def _artist_names(artists: List[Dict[str, Any]]) -> str | None:
    names = [a.get("name") or "" for a in artists or []]
    joined = ", ".join(n for n in names if n)
    return joined or None


def _album_query(title: str, artist: str | None) -> str:
    clean_title = title.replace('"', " ").strip()
    query = f'album:"{clean_title}"'
    if artist:
        query += f' artist:"{artist.replace(chr(34), " ").strip()}"'
    return query


def _sorted_album_tracks(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(
        (t for t in items if t and t.get("uri")),
        key=lambda t: (int(t.get("disc_number") or 0), int(t.get("track_number") or 0)),
    )


class SpotifyBridge:
    """Player bridge backed by the Spotify Web API."""

    def __init__(
        self,
        client_factory: Callable[[], Spotify | None] = get_spotify_client,
        device_id: str | None = SPOTIFY_DEVICE_ID or None,
        fetch_artwork: Callable[[str], bytes | None] | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._device_id = device_id
        self._fetch_artwork = fetch_artwork or self._download_artwork

    def _client(self) -> Spotify:
        sp = self._client_factory()
        if sp is None:
            raise NotAuthorized()
        return sp

    def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Call Spotipy, mapping HTTP failures onto the bridge error taxonomy."""
        try:
            return fn(*args, **kwargs)
        except SpotifyException as e:
            reason = (getattr(e, "reason", None) or "").upper()
            if e.http_status in (401, 403):
                raise NotAuthorized() from e
            if reason == "NO_ACTIVE_DEVICE" or (e.http_status == 404 and "device" in str(e.msg).lower()):
                raise MusicNotRunning() from e
            raise ScriptFailed(str(e.msg or e)) from e
        except requests.RequestException as e:
            raise ScriptFailed(str(e)) from e

    @staticmethod
    def _download_artwork(url: str) -> bytes | None:
        try:
            response = requests.get(url, timeout=ARTWORK_TIMEOUT_SEC)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.info("Artwork download failed (%s): %s", url, e)
            return None
        return response.content or None

    def _artwork_for(self, images: List[Dict[str, Any]]) -> bytes | None:
        # Spotify lists images widest first
        if not images or not images[0].get("url"):
            return None
        return self._fetch_artwork(images[0]["url"])

    # Loading

    def load_current_album_or_playlist(self) -> LoadedDisc:
        """Album of the current track; falls back to the playing playlist."""
        pb = self._call(self._client().current_playback) or {}
        item = pb.get("item")
        context = pb.get("context") or {}
        try:
            if not item:
                raise NoCurrentTrack()
            album_id = (item.get("album") or {}).get("id")
            if not album_id:
                raise NoAlbumFound()
            return self._load_album_by_id(album_id)
        except (NoCurrentTrack, NoAlbumFound):
            if context.get("type") == "playlist" and context.get("uri"):
                return self.load_playlist(context["uri"])
            raise

    def _load_album_by_id(self, album_id: str) -> LoadedDisc:
        sp = self._client()
        album = self._call(sp.album, album_id)
        if not album:
            raise NoAlbumFound()
        page = album.get("tracks") or {}
        items = list(page.get("items") or [])
        while page.get("next"):
            page = self._call(sp.next, page) or {}
            items.extend(page.get("items") or [])
        tracks = _sorted_album_tracks(items)
        if not tracks:
            raise NoAlbumFound()
        artist = _artist_names(album.get("artists"))
        title = album.get("name") or "Unknown Album"
        return LoadedDisc(
            source_type="album",
            source_identifier=album.get("uri") or f"album:{artist or ''}|{title}",
            album_title=title,
            artist_name=artist,
            artwork_bytes=self._artwork_for(album.get("images")),
            track_ids=[t["uri"] for t in tracks],
            track_numbers_by_id={
                t["uri"]: int(t["track_number"]) for t in tracks if t.get("track_number")
            },
        )

    def load_album(self, title: str, artist: str | None = None) -> LoadedDisc:
        result = self._call(self._client().search, q=_album_query(title, artist), type="album", limit=1)
        items = ((result or {}).get("albums") or {}).get("items") or []
        if not items or not items[0] or not items[0].get("id"):
            raise NoAlbumFound()
        return self._load_album_by_id(items[0]["id"])

    def load_playlist(self, playlist_id: str) -> LoadedDisc:
        sp = self._client()
        try:
            playlist = self._call(sp.playlist, _id_from_uri(playlist_id))
        except ScriptFailed as e:
            raise NoPlaylistFound() from e
        if not playlist:
            raise NoPlaylistFound()
        page = playlist.get("tracks") or {}
        entries = list(page.get("items") or [])
        while page.get("next"):
            page = self._call(sp.next, page) or {}
            entries.extend(page.get("items") or [])
        tracks = [(e or {}).get("track") or {} for e in entries]
        track_ids = [t["uri"] for t in tracks if t.get("uri") and t.get("type", "track") == "track"]
        first = tracks[0] if tracks else {}
        first_album = first.get("album") or {}
        return LoadedDisc(
            source_type="playlist",
            source_identifier=playlist.get("uri") or playlist_id,
            album_title=playlist.get("name") or first_album.get("name") or "Playlist",
            artist_name=((playlist.get("owner") or {}).get("display_name")) or _artist_names(first.get("artists")),
            artwork_bytes=self._artwork_for(playlist.get("images")),
            track_ids=track_ids,
        )

    # Search

    def search_albums(self, query: str, limit: int) -> List[AlbumSuggestion]:
        result = self._call(self._client().search, q=query, type="album", limit=limit)
        out: List[AlbumSuggestion] = []
        seen = set()
        for album in ((result or {}).get("albums") or {}).get("items") or []:
            if not album or not album.get("name"):
                continue
            suggestion = AlbumSuggestion(
                album_title=album["name"],
                artist_name=_artist_names(album.get("artists")),
                source_identifier=album.get("uri"),
            )
            if suggestion.key not in seen:
                seen.add(suggestion.key)
                out.append(suggestion)
        return out

    def search_playlists(self, query: str, limit: int) -> List[AlbumSuggestion]:
        result = self._call(self._client().search, q=query, type="playlist", limit=limit)
        out: List[AlbumSuggestion] = []
        for playlist in ((result or {}).get("playlists") or {}).get("items") or []:
            if not playlist or not playlist.get("uri"):
                continue
            out.append(
                AlbumSuggestion(
                    album_title=playlist.get("name") or "Playlist",
                    artist_name=(playlist.get("owner") or {}).get("display_name"),
                    source_identifier=playlist["uri"],
                )
            )
        return out

    # Playback

    def current_playback_info(self) -> NowPlayingObservation:
        pb = self._call(self._client().current_playback)
        item = (pb or {}).get("item")
        if not item:
            raise NoCurrentTrack()
        album = item.get("album") or {}
        context = pb.get("context") or {}
        progress_ms = pb.get("progress_ms")
        return NowPlayingObservation(
            track_id=item.get("uri"),
            track_number=item.get("track_number"),
            elapsed_seconds=progress_ms / 1000.0 if progress_ms is not None else None,
            album_title=album.get("name"),
            artist_name=_artist_names(item.get("artists")),
            external_playlist_id=context.get("uri"),
            is_playing=bool(pb.get("is_playing", False)),
        )

    def play_track_list(self, track_ids: Sequence[str], label: str) -> None:
        if not track_ids:
            raise ScriptFailed("Disc has no tracks.")
        logger.info("Playing %d tracks (%s)", len(track_ids), label)
        self._call(
            self._client().start_playback,
            device_id=self._device_id,
            uris=list(track_ids)[:MAX_PLAY_TRACKS],
        )

    def play_pause(self) -> None:
        sp = self._client()
        pb = self._call(sp.current_playback)
        if pb and pb.get("is_playing"):
            self._call(sp.pause_playback, device_id=self._device_id)
        else:
            self._call(sp.start_playback, device_id=self._device_id)

    def next_track(self) -> None:
        self._call(self._client().next_track, device_id=self._device_id)

    def previous_track(self) -> None:
        self._call(self._client().previous_track, device_id=self._device_id)

    def diagnostics(self) -> str:
        linked = self._client_factory() is not None
        return (
            f"Diagnostics: clientConfigured={bool(SPOTIFY_CLIENT_ID)}, "
            f"linked={linked}, device={self._device_id or 'active'}"
        )
