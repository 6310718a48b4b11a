"""Persist and restore disc slots + playback state (JSON)."""
import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

from cdchanger.config import SAVE_DEBOUNCE_SEC, STATE_PATH, ensure_data_dir
from cdchanger.core.slot_store import normalize_slots
from cdchanger.models.disc import DiscSlot, is_valid_slot_index
from cdchanger.models.playback import Mode, PlayAllCursor, PlaybackState, SpiralPosition

logger = logging.getLogger(__name__)

State = Tuple[List[DiscSlot], PlaybackState]


def _path() -> Path:
    ensure_data_dir()
    return STATE_PATH


def slot_to_dict(slot: DiscSlot) -> Dict[str, Any]:
    return {
        "slotIndex": slot.slot_index,
        "sourceType": slot.source_type,
        "sourceIdentifier": slot.source_identifier,
        "albumTitle": slot.album_title,
        "artistName": slot.artist_name,
        "artworkRef": slot.artwork_ref,
        "trackIDs": list(slot.track_ids),
        "trackNumbersByID": dict(slot.track_numbers_by_id),
    }


def playback_to_dict(playback: PlaybackState) -> Dict[str, Any]:
    spiral = playback.spiral_position
    cursor = playback.play_all_cursor
    return {
        "activeDiscIndex": playback.active_disc_index,
        "mode": playback.mode.value,
        "lidOpen": playback.lid_open,
        "spiralPosition": (
            {"trackNumber": spiral.track_number, "discCursor": spiral.disc_cursor}
            if spiral
            else None
        ),
        "playAllCursor": (
            {"discIndex": cursor.disc_index, "trackIndex": cursor.track_index}
            if cursor
            else None
        ),
    }


def to_payload(slots: List[DiscSlot], playback: PlaybackState) -> Dict[str, Any]:
    return {
        "discSlots": [slot_to_dict(s) for s in normalize_slots(slots)],
        "playback": playback_to_dict(playback),
    }


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def slot_from_dict(item: Dict[str, Any]) -> DiscSlot | None:
    """Parse one persisted slot; None if it has no usable index."""
    index = item.get("slotIndex")
    if not is_valid_slot_index(index):
        return None
    raw_ids = item.get("trackIDs") or []
    track_ids = [t for t in raw_ids if isinstance(t, str)] if isinstance(raw_ids, list) else []
    raw_numbers = item.get("trackNumbersByID") or {}
    numbers = {}
    if isinstance(raw_numbers, dict):
        numbers = {k: v for k, v in raw_numbers.items() if isinstance(k, str) and _is_int(v)}
    identifier = item.get("sourceIdentifier", item.get("playlistPersistentID"))
    artwork = item.get("artworkRef", item.get("artworkPNGBase64"))
    return DiscSlot(
        slot_index=index,
        source_type=_opt_str(item.get("sourceType")),
        source_identifier=_opt_str(identifier),
        album_title=_opt_str(item.get("albumTitle")),
        artist_name=_opt_str(item.get("artistName")),
        artwork_ref=_opt_str(artwork),
        track_ids=track_ids,
        track_numbers_by_id=numbers,
    )


def _spiral_from(raw: Any) -> SpiralPosition | None:
    if not isinstance(raw, dict):
        return None
    track_number, disc_cursor = raw.get("trackNumber"), raw.get("discCursor")
    if not _is_int(track_number) or track_number < 1 or not is_valid_slot_index(disc_cursor):
        return None
    return SpiralPosition(track_number, disc_cursor)


def _play_all_from(raw: Any) -> PlayAllCursor | None:
    if not isinstance(raw, dict):
        return None
    disc_index, track_index = raw.get("discIndex"), raw.get("trackIndex")
    if not is_valid_slot_index(disc_index) or not _is_int(track_index) or track_index < 0:
        return None
    return PlayAllCursor(disc_index, track_index)


def playback_from_dict(raw: Any) -> PlaybackState:
    """Parse persisted playback state, resetting anything out of range."""
    if not isinstance(raw, dict):
        return PlaybackState()
    active = raw.get("activeDiscIndex")
    if not is_valid_slot_index(active):
        active = 1
    lid_open = raw.get("lidOpen")
    return PlaybackState(
        active_disc_index=active,
        mode=Mode.parse(raw.get("mode")) or Mode.NORMAL,
        lid_open=lid_open if isinstance(lid_open, bool) else False,
        spiral_position=_spiral_from(raw.get("spiralPosition")),
        play_all_cursor=_play_all_from(raw.get("playAllCursor")),
    )


def from_payload(data: Any) -> State:
    """Normalized (slots, playback) for a decoded payload of any shape."""
    if not isinstance(data, dict):
        return normalize_slots([]), PlaybackState()
    slots = []
    raw_slots = data.get("discSlots")
    for item in raw_slots if isinstance(raw_slots, list) else []:
        if isinstance(item, dict):
            slot = slot_from_dict(item)
            if slot is not None:
                slots.append(slot)
    return normalize_slots(slots), playback_from_dict(data.get("playback"))


def load_state(path: Path | None = None) -> State | None:
    """Load persisted state, or None if there is none or it is unreadable."""
    p = path or _path()
    if not p.exists():
        return None
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning("Ignoring unreadable state file %s: %s", p, e)
        return None
    return from_payload(data)


def save_state(slots: List[DiscSlot], playback: PlaybackState, path: Path | None = None) -> None:
    """Write state atomically: temp file, then rename over the last good copy."""
    write_payload(to_payload(slots, playback), path)


def write_payload(payload: Dict[str, Any], path: Path | None = None) -> None:
    p = path or _path()
    p.parent.mkdir(parents=True, exist_ok=True)
    temp_path = p.with_suffix(".tmp")
    temp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    os.replace(temp_path, p)


class DebouncedSaver:
    """Coalesces bursts of changes into one write after `delay` seconds of quiet."""

    def __init__(
        self,
        snapshot: Callable[[], State],
        path: Path | None = None,
        delay: float = SAVE_DEBOUNCE_SEC,
    ) -> None:
        self._snapshot = snapshot
        self._path = path
        self._delay = delay
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._last_payload: Dict[str, Any] | None = None

    def schedule(self) -> None:
        """(Re)start the debounce timer."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def mark_saved(self, slots: List[DiscSlot], playback: PlaybackState) -> None:
        """Record state already on disk so an identical save is skipped."""
        self._last_payload = to_payload(slots, playback)

    def flush(self) -> bool:
        """Write now if the state changed since the last write. Returns True if written."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        slots, playback = self._snapshot()
        payload = to_payload(slots, playback)
        with self._write_lock:
            if payload == self._last_payload:
                return False
            try:
                write_payload(payload, self._path)
            except OSError as e:
                logger.warning("Failed to save state: %s", e)
                return False
            self._last_payload = payload
        logger.debug("State saved (%d loaded discs)", sum(1 for s in slots if s.is_loaded))
        return True

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
