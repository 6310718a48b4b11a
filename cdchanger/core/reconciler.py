"""Now-playing reconciliation: map polled player state back onto a disc slot."""
import logging
import threading
from typing import Callable, Sequence

from cdchanger.config import POLL_INTERVAL_SEC
from cdchanger.core.bridge import MusicBridge
from cdchanger.core.errors import BridgeError
from cdchanger.models.disc import DiscSlot
from cdchanger.models.playback import NowPlaying, NowPlayingObservation

logger = logging.getLogger(__name__)


def normalize_text(value: str | None) -> str | None:
    """Trimmed, lowercased text; None for missing or blank."""
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed.lower() if trimmed else None


def match_slot(
    slots: Sequence[DiscSlot],
    observation: NowPlayingObservation,
) -> DiscSlot | None:
    """First slot matching by track id, then playlist id, then album/artist."""
    track_id = observation.track_id
    if track_id:
        for slot in slots:
            if track_id in slot.track_ids:
                return slot

    playlist_id = observation.external_playlist_id
    if playlist_id:
        for slot in slots:
            if slot.source_identifier == playlist_id:
                return slot

    album_key = normalize_text(observation.album_title)
    if album_key is None:
        return None
    artist_key = normalize_text(observation.artist_name)
    for slot in slots:
        if normalize_text(slot.album_title) != album_key:
            continue
        if artist_key is None or normalize_text(slot.artist_name) == artist_key:
            return slot
    return None


def resolve_track_number(
    observation: NowPlayingObservation,
    slot: DiscSlot | None,
) -> int | None:
    """Observed number, else the slot's mapped number, else position in the slot."""
    if observation.track_number is not None and observation.track_number > 0:
        return observation.track_number
    if slot is None or not observation.track_id:
        return None
    return slot.track_number_for(observation.track_id)


def reconcile(
    slots: Sequence[DiscSlot],
    observation: NowPlayingObservation | None,
) -> NowPlaying:
    """Now-playing fields for one observation; None observation -> unknown."""
    if observation is None:
        return NowPlaying()
    slot = match_slot(slots, observation)
    elapsed = observation.elapsed_seconds
    return NowPlaying(
        disc_index=slot.slot_index if slot else None,
        track_number=resolve_track_number(observation, slot),
        elapsed_seconds=elapsed if elapsed is not None and elapsed > 0 else None,
        track_id=observation.track_id,
    )


def track_finished(
    previous: NowPlayingObservation | None,
    current: NowPlayingObservation | None,
    track_id: str | None,
) -> bool:
    """True when track_id was playing last tick and has since ended.

    Ended means the player now reports nothing, another track, or a stop at
    position zero. A pause mid-track keeps its elapsed time and is not an end.
    """
    if not track_id or previous is None:
        return False
    if previous.track_id != track_id or not previous.is_playing:
        return False
    if current is None or not current.track_id:
        return True
    if current.track_id != track_id:
        return True
    if current.is_playing:
        return False
    return not (current.elapsed_seconds and current.elapsed_seconds > 0)


class NowPlayingReconciler:
    """Polls the player on a fixed interval and hands each snapshot to `apply`.

    `apply` receives None when the player could not be queried. Ticks never
    overlap: a tick that starts while another is still running is skipped.
    """

    def __init__(
        self,
        bridge: MusicBridge,
        apply: Callable[[NowPlayingObservation | None], None],
        interval_sec: float = POLL_INTERVAL_SEC,
    ) -> None:
        self._bridge = bridge
        self._apply = apply
        self._interval = interval_sec
        self._tick_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> bool:
        """Run one observe-and-apply cycle. Returns False if skipped."""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Reconcile: previous tick still running, skipping")
            return False
        try:
            try:
                observation = self._bridge.current_playback_info()
            except BridgeError as e:
                logger.debug("Reconcile: no playback (%s)", e.__class__.__name__)
                observation = None
            except Exception as e:
                # Token refresh and transport errors surface outside the bridge taxonomy
                logger.warning("Reconcile: player query failed: %s", e)
                observation = None
            self._apply(observation)
            return True
        finally:
            self._tick_lock.release()

    def _loop(self) -> None:
        while not self._stop.wait(timeout=self._interval):
            try:
                self.tick()
            except Exception as e:
                logger.warning("Reconcile: %s", e)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background poll thread."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="now-playing", daemon=True)
        self._thread.start()
        logger.info("Now-playing poll started (interval %.1fs)", self._interval)

    def stop(self) -> None:
        """Stop the background poll thread."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=5.0)
            self._thread = None
