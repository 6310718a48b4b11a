"""Pytest configuration: an in-memory player bridge and changer fixtures."""

from __future__ import annotations

import random
from concurrent.futures import Executor, Future
from typing import Callable

import pytest

from cdchanger.core.changer import Changer
from cdchanger.core.errors import NoCurrentTrack
from cdchanger.models.disc import AlbumSuggestion, DiscSlot, LoadedDisc
from cdchanger.models.playback import NowPlayingObservation


class InlineExecutor(Executor):
    """Runs submitted work on the calling thread."""

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


class FakeBridge:
    """Player bridge double that records what the changer asked for."""

    def __init__(self) -> None:
        self.current_disc: LoadedDisc | None = None
        self.albums: dict[tuple[str, str | None], LoadedDisc] = {}
        self.playlists: dict[str, LoadedDisc] = {}
        self.observation: NowPlayingObservation | None = None
        self.album_results: list[AlbumSuggestion] = []
        self.playlist_results: list[AlbumSuggestion] = []
        self.search_queries: list[str] = []
        self.played: list[tuple[list[str], str]] = []
        self.transport: list[str] = []
        self.failures: dict[str, Exception] = {}
        # Called with the track ids just before a play is recorded
        self.on_play: Callable[[list[str]], None] | None = None

    def _check(self, name: str) -> None:
        error = self.failures.get(name)
        if error is not None:
            raise error

    def load_current_album_or_playlist(self) -> LoadedDisc:
        self._check("load_current_album_or_playlist")
        if self.current_disc is None:
            raise NoCurrentTrack()
        return self.current_disc

    def load_album(self, title, artist=None) -> LoadedDisc:
        self._check("load_album")
        return self.albums[(title, artist)]

    def load_playlist(self, playlist_id) -> LoadedDisc:
        self._check("load_playlist")
        return self.playlists[playlist_id]

    def search_albums(self, query, limit):
        self._check("search_albums")
        self.search_queries.append(query)
        return self.album_results[:limit]

    def search_playlists(self, query, limit):
        self._check("search_playlists")
        self.search_queries.append(query)
        return self.playlist_results[:limit]

    def current_playback_info(self) -> NowPlayingObservation:
        self._check("current_playback_info")
        if self.observation is None:
            raise NoCurrentTrack()
        return self.observation

    def play_track_list(self, track_ids, label) -> None:
        self._check("play_track_list")
        if self.on_play is not None:
            self.on_play(list(track_ids))
        self.played.append((list(track_ids), label))

    def play_pause(self) -> None:
        self._check("play_pause")
        self.transport.append("play_pause")

    def next_track(self) -> None:
        self._check("next_track")
        self.transport.append("next")

    def previous_track(self) -> None:
        self._check("previous_track")
        self.transport.append("previous")

    def diagnostics(self) -> str:
        return "Diagnostics: fake"


def disc_tracks(index: int, count: int) -> list[str]:
    return [f"d{index}t{n}" for n in range(1, count + 1)]


def loaded_disc(index: int, count: int, *, title: str | None = None, artist: str = "Artist") -> LoadedDisc:
    track_ids = disc_tracks(index, count)
    return LoadedDisc(
        source_type="album",
        source_identifier=f"album:{index}",
        album_title=title or f"Album {index}",
        artist_name=artist,
        track_ids=track_ids,
        track_numbers_by_id={t: n for n, t in enumerate(track_ids, start=1)},
    )


def slot_with(index: int, count: int, **kwargs) -> DiscSlot:
    disc = loaded_disc(index, count, **kwargs)
    return DiscSlot(
        slot_index=index,
        source_type=disc.source_type,
        source_identifier=disc.source_identifier,
        album_title=disc.album_title,
        artist_name=disc.artist_name,
        track_ids=list(disc.track_ids),
        track_numbers_by_id=dict(disc.track_numbers_by_id),
    )


@pytest.fixture
def make_slot() -> Callable[..., DiscSlot]:
    return slot_with


@pytest.fixture
def make_disc() -> Callable[..., LoadedDisc]:
    return loaded_disc


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def make_changer(bridge: FakeBridge, tmp_path):
    """Changer wired to the fake bridge, running bridge calls inline."""
    created: list[Changer] = []

    def factory(slots=None, playback=None, **kwargs) -> Changer:
        kwargs.setdefault("state_path", tmp_path / "state.json")
        kwargs.setdefault("rng", random.Random(7))
        kwargs.setdefault("executor", InlineExecutor())
        kwargs.setdefault("sleep", lambda _seconds: None)
        kwargs.setdefault("debug", False)
        kwargs.setdefault("search_delay", 0.0)
        kwargs.setdefault("save_delay", 60.0)
        changer = Changer(bridge, slots, playback, **kwargs)
        created.append(changer)
        return changer

    yield factory
    for changer in created:
        changer._saver.cancel()
