"""The changer: owns slots, playback and now-playing state, and runs user intents.

All state changes happen under one lock (the coordination context). Player
bridge calls are blocking, so they run on worker threads; each call's Outcome
is applied back under the lock, one at a time. Intents that talk to the player
return the Future of that Outcome so callers can wait when they need to.
"""
import logging
import random
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, List

from cdchanger.config import (
    BRIDGE_WORKERS,
    DEBUG,
    MAX_PLAY_TRACKS,
    PLAYLIST_LABEL_PREFIX,
    SAVE_DEBOUNCE_SEC,
    SEARCH_DEBOUNCE_SEC,
)
from cdchanger.core.bridge import MusicBridge, Outcome, call_bridge
from cdchanger.core.errors import BridgeError, ClipboardEmpty, status_for_error
from cdchanger.core.mode_engine import (
    ENGINE_DRIVEN_MODES,
    Advance,
    AdvanceStatus,
    disc_target,
    next_target,
    select_mode,
    start_target,
)
from cdchanger.core.persistence import DebouncedSaver, load_state
from cdchanger.core.reconciler import NowPlayingReconciler, reconcile, track_finished
from cdchanger.core.search import DebouncedSearch
from cdchanger.core.slot_store import DiscSlotStore
from cdchanger.models.disc import AlbumSuggestion, DiscSlot, LoadedDisc, is_valid_slot_index
from cdchanger.models.playback import Mode, NowPlaying, NowPlayingObservation, PlaybackState

logger = logging.getLogger(__name__)

ALL_DISC_SHUFFLE_LABEL = f"{PLAYLIST_LABEL_PREFIX} All-Disc Shuffle"


def _completed(outcome: Outcome) -> Future:
    future: Future = Future()
    future.set_result(outcome)
    return future


class Changer:
    """Five-disc changer state plus the intents a front end can call."""

    def __init__(
        self,
        bridge: MusicBridge,
        slots: List[DiscSlot] | None = None,
        playback: PlaybackState | None = None,
        *,
        state_path: Path | None = None,
        rng: random.Random | None = None,
        executor: Executor | None = None,
        sleep: Callable[[float], None] = time.sleep,
        debug: bool = DEBUG,
        save_delay: float = SAVE_DEBOUNCE_SEC,
        search_delay: float = SEARCH_DEBOUNCE_SEC,
    ) -> None:
        self._bridge = bridge
        self._lock = threading.RLock()
        self._store = DiscSlotStore(slots)
        self._playback = self._normalized(playback or PlaybackState())
        self._now_playing = NowPlaying()
        self._status_message: str | None = None
        self._rng = rng or random.Random()
        self._executor = executor or ThreadPoolExecutor(max_workers=BRIDGE_WORKERS, thread_name_prefix="bridge")
        self._sleep = sleep
        self._debug = debug
        self._saver = DebouncedSaver(self._state_snapshot, path=state_path, delay=save_delay)
        self._last_observation: NowPlayingObservation | None = None
        # Last track of the most recent list handed to the player
        self._expected_track_id: str | None = None
        self._advance_in_flight = False
        self._album_search = DebouncedSearch(
            bridge.search_albums, self._executor, self._report_error, self._lock, delay=search_delay
        )
        self._playlist_search = DebouncedSearch(
            bridge.search_playlists, self._executor, self._report_error, self._lock, delay=search_delay
        )
        self.reconciler = NowPlayingReconciler(bridge, self.apply_observation)

    @classmethod
    def restore(cls, bridge: MusicBridge, state_path: Path | None = None, **kwargs: Any) -> "Changer":
        """Changer with slots and playback restored from disk (defaults if none)."""
        loaded = load_state(state_path)
        if loaded is None:
            logger.info("No saved state, starting with empty slots")
            return cls(bridge, state_path=state_path, **kwargs)
        slots, playback = loaded
        changer = cls(bridge, slots, playback, state_path=state_path, **kwargs)
        changer._saver.mark_saved(slots, playback)
        logger.info("Restored %d loaded discs", sum(1 for s in slots if s.is_loaded))
        return changer

    @staticmethod
    def _normalized(playback: PlaybackState) -> PlaybackState:
        if is_valid_slot_index(playback.active_disc_index):
            return playback
        return replace(playback, active_disc_index=1)

    # State access

    @property
    def bridge(self) -> MusicBridge:
        return self._bridge

    @property
    def slots(self) -> List[DiscSlot]:
        with self._lock:
            return self._store.slots()

    @property
    def playback(self) -> PlaybackState:
        with self._lock:
            return self._playback

    @property
    def now_playing(self) -> NowPlaying:
        with self._lock:
            return self._now_playing

    @property
    def status_message(self) -> str | None:
        with self._lock:
            return self._status_message

    def _state_snapshot(self):
        with self._lock:
            return self._store.slots(), self._playback

    def _set_playback(self, playback: PlaybackState) -> None:
        playback = self._normalized(playback)
        if playback != self._playback:
            self._playback = playback
            self._saver.schedule()

    def _set_status(self, message: str | None) -> None:
        self._status_message = message
        if message:
            logger.info("Status: %s", message)

    def _report_error(self, error: BridgeError, diagnostics: str = "") -> None:
        self._set_status(status_for_error(error, self._debug, diagnostics))

    # Worker dispatch

    def _dispatch(self, fn: Callable[..., Any], apply: Callable[[Outcome], None], *args: Any) -> Future:
        """Run a bridge call on a worker, then apply its Outcome under the lock."""

        def run() -> Outcome:
            outcome = call_bridge(fn, *args)
            diagnostics = ""
            if not outcome.ok and self._debug:
                diagnostics = call_bridge(self._bridge.diagnostics).value or ""
            with self._lock:
                try:
                    apply(outcome)
                    if not outcome.ok:
                        self._report_error(outcome.error, diagnostics)
                except Exception:
                    logger.exception("Applying %s result failed", getattr(fn, "__name__", fn))
                    raise
            return outcome

        return self._executor.submit(run)

    # Lid, mode and active disc

    def set_active_disc(self, index: int) -> None:
        with self._lock:
            if not is_valid_slot_index(index):
                return
            self._set_playback(replace(self._playback, active_disc_index=index))

    def toggle_lid(self) -> bool:
        with self._lock:
            self._set_playback(replace(self._playback, lid_open=not self._playback.lid_open))
            return self._playback.lid_open

    def set_mode(self, mode: Mode) -> None:
        with self._lock:
            self._set_playback(select_mode(self._playback, mode))
            self._set_status(f"{mode.display_name}.")

    # Slots

    def _load_into(self, index: int, fn: Callable[..., LoadedDisc], *args: Any) -> Future:
        def apply(outcome: Outcome) -> None:
            if outcome.ok and self._store.load(index, outcome.value):
                self._saver.schedule()
                self._set_status(f"Loaded Disc {index}.")

        return self._dispatch(fn, apply, *args)

    def load_disc(self, index: int) -> Future:
        """Load whatever album or playlist the player is on into a slot."""
        if not is_valid_slot_index(index):
            return _completed(Outcome(value=None))
        with self._lock:
            self._set_status("Loading from the player...")
        return self._load_into(index, self._bridge.load_current_album_or_playlist)

    def load_album(self, index: int, album: AlbumSuggestion) -> Future:
        if not is_valid_slot_index(index):
            return _completed(Outcome(value=None))
        with self._lock:
            self._set_status(f"Loading {album.album_title}...")
        return self._load_into(index, self._bridge.load_album, album.album_title, album.artist_name)

    def load_playlist(self, index: int, playlist: AlbumSuggestion) -> Future:
        if not is_valid_slot_index(index) or not playlist.source_identifier:
            return _completed(Outcome(value=None))
        with self._lock:
            self._set_status(f"Loading {playlist.album_title}...")
        return self._load_into(index, self._bridge.load_playlist, playlist.source_identifier)

    def remove_disc(self, index: int) -> None:
        with self._lock:
            if not self._store.remove(index):
                return
            if self._now_playing.disc_index == index:
                self._now_playing = replace(self._now_playing, disc_index=None)
            self._saver.schedule()
            self._set_status(f"Removed Disc {index}.")

    def paste_artwork(self, index: int, image_bytes: bytes | None) -> None:
        """Replace a slot's artwork. Raises ClipboardEmpty without image bytes."""
        with self._lock:
            try:
                pasted = self._store.paste_artwork(index, image_bytes)
            except ClipboardEmpty as e:
                self._set_status(e.user_message)
                raise
            if pasted:
                self._saver.schedule()
                self._set_status(f"Pasted artwork for Disc {index}.")

    # Playback

    def play_disc(self, index: int) -> Future:
        """Play a whole disc from track 1 and make it the active disc."""
        with self._lock:
            slot = self._store.get(index)
            if slot is None:
                return _completed(Outcome(value=None))
            target = disc_target(slot)
            if target is None:
                self._set_status("Load a disc before playing.")
                return _completed(Outcome(value=None))
            self._set_status(f"Starting Disc {index}...")

        def apply(outcome: Outcome) -> None:
            if outcome.ok:
                self._expected_track_id = target.track_ids[-1]
                self._set_playback(replace(self._playback, active_disc_index=index))

        return self._dispatch(self._bridge.play_track_list, apply, target.track_ids, target.label)

    def play_all_discs_shuffled(self) -> Future:
        """Shuffle every track on every disc into one list and play it."""
        with self._lock:
            track_ids = [t for s in self._store.loaded_slots() for t in s.track_ids]
            if not track_ids:
                self._set_status("Load discs before shuffling.")
                return _completed(Outcome(value=None))
            self._rng.shuffle(track_ids)
            if len(track_ids) > MAX_PLAY_TRACKS:
                logger.warning("Shuffle holds %d tracks; playing %d", len(track_ids), MAX_PLAY_TRACKS)
                track_ids = track_ids[:MAX_PLAY_TRACKS]
            self._set_status("Shuffling all discs...")

        def apply(outcome: Outcome) -> None:
            if outcome.ok:
                self._expected_track_id = None

        return self._dispatch(self._bridge.play_track_list, apply, track_ids, ALL_DISC_SHUFFLE_LABEL)

    def play(self) -> Future:
        """Start playback in the current mode."""
        with self._lock:
            return self._issue(start_target(self._store.slots(), self._playback, self._rng))

    def advance(self, current_track_id: str | None = None) -> Future:
        """Skip to whatever the current mode plays next."""
        with self._lock:
            if current_track_id is None:
                current_track_id = self._now_playing.track_id
            return self._issue(
                next_target(self._store.slots(), self._playback, current_track_id, self._rng)
            )

    def _issue(self, advance: Advance) -> Future:
        """Hand an engine decision to the player. Caller holds the lock."""
        if not advance.ok:
            if advance.status.no_eligible_target:
                self._set_status(advance.status.message)
                self._expected_track_id = None
            return _completed(Outcome(value=advance.status))

        target = advance.target
        self._advance_in_flight = True

        def play_target() -> AdvanceStatus:
            if target.delay > 0:
                self._sleep(target.delay)
            self._bridge.play_track_list(target.track_ids, target.label)
            return advance.status

        def apply(outcome: Outcome) -> None:
            self._advance_in_flight = False
            if not outcome.ok:
                return
            self._expected_track_id = target.track_ids[-1]
            current = self._playback
            if current.mode is advance.state.mode:
                self._set_playback(
                    replace(
                        current,
                        active_disc_index=target.disc_index,
                        spiral_position=advance.state.spiral_position,
                        play_all_cursor=advance.state.play_all_cursor,
                    )
                )
            else:
                self._set_playback(replace(current, active_disc_index=target.disc_index))

        return self._dispatch(play_target, apply)

    def _transport(self, fn: Callable[[], None]) -> Future:
        return self._dispatch(fn, lambda outcome: None)

    def play_pause(self) -> Future:
        return self._transport(self._bridge.play_pause)

    def next_track(self) -> Future:
        """Next track; in changer-driven modes the mode engine picks it."""
        with self._lock:
            if self._playback.mode in ENGINE_DRIVEN_MODES:
                return self.advance()
        return self._transport(self._bridge.next_track)

    def previous_track(self) -> Future:
        return self._transport(self._bridge.previous_track)

    # Search

    def search_albums(self, query: str) -> Future:
        """Debounced album search; resolves to a list of AlbumSuggestion."""
        return self._album_search.submit(query)

    def search_playlists(self, query: str) -> Future:
        return self._playlist_search.submit(query)

    # Now playing

    def poll_now_playing(self) -> bool:
        """Run one reconcile tick now. False if one is already running."""
        return self.reconciler.tick()

    def apply_observation(self, observation: NowPlayingObservation | None) -> None:
        """Fold one player snapshot into now-playing state; auto-advance if a track ended."""
        with self._lock:
            previous = self._last_observation
            self._last_observation = observation
            now = reconcile(self._store.slots(), observation)
            self._now_playing = now
            if now.disc_index is not None and now.disc_index != self._playback.active_disc_index:
                logger.info("Player moved to Disc %d", now.disc_index)
                self._set_playback(replace(self._playback, active_disc_index=now.disc_index))

            if self._advance_in_flight:
                return
            finished = self._finished_track_id()
            if track_finished(previous, observation, finished):
                logger.debug("Track %s finished, advancing (%s)", finished, self._playback.mode.value)
                self._issue(
                    next_target(self._store.slots(), self._playback, finished, self._rng)
                )

    def _finished_track_id(self) -> str | None:
        """Track whose end should trigger an advance in the current mode."""
        mode = self._playback.mode
        if mode is Mode.DISC_REPEAT:
            slot = self._store.get(self._playback.active_disc_index)
            # Same cut as disc_target: the player never reaches tracks past the cap
            return slot.track_ids[:MAX_PLAY_TRACKS][-1] if slot and slot.has_tracks else None
        if mode in ENGINE_DRIVEN_MODES:
            return self._expected_track_id
        return None

    # Lifecycle

    def snapshot(self) -> Dict[str, Any]:
        """Everything a front end needs to render the changer."""
        with self._lock:
            playback = self._playback
            now = self._now_playing
            return {
                "slots": [_slot_to_dict(s) for s in self._store.slots()],
                "playback": {
                    "active_disc_index": playback.active_disc_index,
                    "mode": playback.mode.value,
                    "mode_name": playback.mode.display_name,
                    "lid_open": playback.lid_open,
                    "spiral_position": (
                        {
                            "track_number": playback.spiral_position.track_number,
                            "disc_cursor": playback.spiral_position.disc_cursor,
                        }
                        if playback.spiral_position
                        else None
                    ),
                    "play_all_cursor": (
                        {
                            "disc_index": playback.play_all_cursor.disc_index,
                            "track_index": playback.play_all_cursor.track_index,
                        }
                        if playback.play_all_cursor
                        else None
                    ),
                },
                "now_playing": now_playing_to_dict(now),
                "status_message": self._status_message,
            }

    def start(self) -> None:
        self.reconciler.start()

    def close(self) -> None:
        """Stop polling and write any pending state."""
        self.reconciler.stop()
        self._saver.flush()
        self._executor.shutdown(wait=False)


def now_playing_to_dict(now: NowPlaying) -> Dict[str, Any]:
    return {
        "disc_index": now.disc_index,
        "track_number": now.track_number,
        "elapsed_seconds": now.elapsed_seconds,
        "track_id": now.track_id,
    }


def _slot_to_dict(slot: DiscSlot) -> Dict[str, Any]:
    return {
        "slot_index": slot.slot_index,
        "loaded": slot.is_loaded,
        "source_type": slot.source_type,
        "source_identifier": slot.source_identifier,
        "album_title": slot.album_title,
        "artist_name": slot.artist_name,
        "has_artwork": slot.artwork_ref is not None,
        "track_count": len(slot.track_ids),
    }
