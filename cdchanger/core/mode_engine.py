"""Playback mode engine: which disc and track play next under each mode.

Everything here is a pure function of the five slots and a PlaybackState.
Callers apply the returned state; a status other than PLAY means there is
nothing to play and the state comes back unchanged.
"""
import logging
import random
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Sequence, Tuple

from cdchanger.config import (
    DISC_SWAP_MAX_DELAY,
    DISC_SWAP_MIN_DELAY,
    MAX_PLAY_TRACKS,
    PLAYLIST_LABEL_PREFIX,
)
from cdchanger.models.disc import SLOT_COUNT, DiscSlot
from cdchanger.models.playback import Mode, PlayAllCursor, PlaybackState, SpiralPosition

logger = logging.getLogger(__name__)

_rng = random.Random()

SPIRAL_START = SpiralPosition(track_number=1, disc_cursor=1)

# Modes where the changer, not the player, decides the next track
ENGINE_DRIVEN_MODES = frozenset(
    {Mode.PLAY_ALL, Mode.ONE_DISC_SHUFFLE, Mode.FIVE_DISC_SHUFFLE, Mode.SPIRAL}
)


class AdvanceStatus(str, Enum):
    PLAY = "play"
    MANUAL = "manual"
    NO_DISCS_LOADED = "noDiscsLoaded"
    DISC_HAS_NO_TRACKS = "discHasNoTracks"
    SPIRAL_EXHAUSTED = "spiralExhausted"
    PLAY_ALL_COMPLETE = "playAllComplete"

    @property
    def no_eligible_target(self) -> bool:
        return self not in (AdvanceStatus.PLAY, AdvanceStatus.MANUAL)

    @property
    def message(self) -> str:
        return _STATUS_MESSAGES.get(self, "")


_STATUS_MESSAGES = {
    AdvanceStatus.NO_DISCS_LOADED: "Load discs before playing.",
    AdvanceStatus.DISC_HAS_NO_TRACKS: "Load a disc before playing.",
    AdvanceStatus.SPIRAL_EXHAUSTED: "Spiral complete.",
    AdvanceStatus.PLAY_ALL_COMPLETE: "Play All complete.",
}


@dataclass(frozen=True)
class Target:
    """Tracks to hand to the player, in order, for one disc."""
    disc_index: int
    track_ids: Tuple[str, ...]
    label: str
    delay: float = 0.0

    @property
    def track_id(self) -> str:
        return self.track_ids[0]


@dataclass(frozen=True)
class Advance:
    status: AdvanceStatus
    state: PlaybackState
    target: Target | None = None

    @property
    def ok(self) -> bool:
        return self.status is AdvanceStatus.PLAY


def select_mode(state: PlaybackState, mode: Mode) -> PlaybackState:
    """Switch mode; cursors restart from the entering mode's initial value."""
    return replace(
        state,
        mode=mode,
        spiral_position=SPIRAL_START if mode is Mode.SPIRAL else None,
        play_all_cursor=None,
    )


def pick_swap_delay(rng: random.Random | None = None) -> float:
    """Seconds to wait before a 5-disc shuffle play, like a tray swapping discs."""
    return (rng or _rng).uniform(DISC_SWAP_MIN_DELAY, DISC_SWAP_MAX_DELAY)


def disc_label(disc_index: int) -> str:
    return f"{PLAYLIST_LABEL_PREFIX} Disc {disc_index}"


def mode_label(mode: Mode) -> str:
    return f"{PLAYLIST_LABEL_PREFIX} {mode.display_name}"


def disc_target(slot: DiscSlot) -> Target | None:
    """Whole disc from track 1, or None if the slot has nothing to play.

    Discs longer than MAX_PLAY_TRACKS are cut so the last issued track is
    one the player will actually reach.
    """
    if not slot.has_tracks:
        return None
    track_ids = tuple(slot.track_ids)
    if len(track_ids) > MAX_PLAY_TRACKS:
        logger.warning(
            "Disc %d has %d tracks; playing the first %d",
            slot.slot_index, len(track_ids), MAX_PLAY_TRACKS,
        )
        track_ids = track_ids[:MAX_PLAY_TRACKS]
    return Target(slot.slot_index, track_ids, disc_label(slot.slot_index))


def start_target(
    slots: Sequence[DiscSlot],
    state: PlaybackState,
    rng: random.Random | None = None,
) -> Advance:
    """First target when the user presses play in the current mode."""
    if state.mode in (Mode.NORMAL, Mode.DISC_REPEAT):
        return _play_active_disc(slots, state)
    return next_target(slots, state, rng=rng)


def next_target(
    slots: Sequence[DiscSlot],
    state: PlaybackState,
    current_track_id: str | None = None,
    rng: random.Random | None = None,
) -> Advance:
    """What plays after the current track (or disc, for disc repeat) ends."""
    rng = rng or _rng
    mode = state.mode
    if mode is Mode.NORMAL:
        return Advance(AdvanceStatus.MANUAL, state)
    if mode is Mode.DISC_REPEAT:
        return _play_active_disc(slots, state)
    if mode is Mode.ONE_DISC_SHUFFLE:
        return _next_one_disc_shuffle(slots, state, current_track_id, rng)
    if mode is Mode.FIVE_DISC_SHUFFLE:
        return _next_five_disc_shuffle(slots, state, rng)
    if mode is Mode.SPIRAL:
        return _next_spiral(slots, state)
    return _next_play_all(slots, state)


def _slot(slots: Sequence[DiscSlot], disc_index: int) -> DiscSlot | None:
    for slot in slots:
        if slot.slot_index == disc_index:
            return slot
    return None


def _single(slot: DiscSlot, track_id: str, mode: Mode, delay: float = 0.0) -> Target:
    return Target(slot.slot_index, (track_id,), mode_label(mode), delay)


def _play_active_disc(slots: Sequence[DiscSlot], state: PlaybackState) -> Advance:
    slot = _slot(slots, state.active_disc_index)
    target = disc_target(slot) if slot else None
    if target is None:
        return Advance(AdvanceStatus.DISC_HAS_NO_TRACKS, state)
    return Advance(AdvanceStatus.PLAY, state, target)


def _next_one_disc_shuffle(
    slots: Sequence[DiscSlot],
    state: PlaybackState,
    current_track_id: str | None,
    rng: random.Random,
) -> Advance:
    slot = _slot(slots, state.active_disc_index)
    if slot is None or not slot.has_tracks:
        return Advance(AdvanceStatus.DISC_HAS_NO_TRACKS, state)
    candidates = slot.track_ids
    if len(candidates) > 1 and current_track_id in candidates:
        candidates = [t for t in candidates if t != current_track_id]
    track_id = rng.choice(candidates)
    return Advance(AdvanceStatus.PLAY, state, _single(slot, track_id, state.mode))


def _next_five_disc_shuffle(
    slots: Sequence[DiscSlot],
    state: PlaybackState,
    rng: random.Random,
) -> Advance:
    loaded = [s for s in slots if s.is_loaded]
    if not loaded:
        return Advance(AdvanceStatus.NO_DISCS_LOADED, state)
    playable = [s for s in loaded if s.has_tracks]
    if not playable:
        return Advance(AdvanceStatus.DISC_HAS_NO_TRACKS, state)
    slot = rng.choice(playable)
    track_id = rng.choice(slot.track_ids)
    target = _single(slot, track_id, state.mode, pick_swap_delay(rng))
    return Advance(AdvanceStatus.PLAY, replace(state, active_disc_index=slot.slot_index), target)


def _next_spiral(slots: Sequence[DiscSlot], state: PlaybackState) -> Advance:
    loaded = [s for s in slots if s.is_loaded]
    if not loaded:
        return Advance(AdvanceStatus.NO_DISCS_LOADED, state)
    max_track = max(s.track_count for s in loaded)
    position = state.spiral_position or SPIRAL_START
    track_number = max(1, position.track_number)
    cursor = min(max(1, position.disc_cursor), SLOT_COUNT)
    while track_number <= max_track:
        for slot in _from_cursor(loaded, cursor):
            track_id = slot.track_id_for_number(track_number)
            if track_id is None:
                continue
            if slot.slot_index < SLOT_COUNT:
                next_position = SpiralPosition(track_number, slot.slot_index + 1)
            else:
                next_position = SpiralPosition(track_number + 1, 1)
            new_state = replace(
                state,
                active_disc_index=slot.slot_index,
                spiral_position=next_position,
            )
            return Advance(AdvanceStatus.PLAY, new_state, _single(slot, track_id, state.mode))
        track_number += 1
        cursor = 1
    return Advance(AdvanceStatus.SPIRAL_EXHAUSTED, state)


def _from_cursor(loaded: List[DiscSlot], cursor: int) -> List[DiscSlot]:
    return [s for s in loaded if s.slot_index >= cursor]


def _next_play_all(slots: Sequence[DiscSlot], state: PlaybackState) -> Advance:
    if not any(s.is_loaded for s in slots):
        return Advance(AdvanceStatus.NO_DISCS_LOADED, state)
    playable = [s for s in slots if s.has_tracks]
    if not playable:
        return Advance(AdvanceStatus.DISC_HAS_NO_TRACKS, state)

    cursor = state.play_all_cursor
    if cursor is None:
        slot, track_index = playable[0], 0
    else:
        current = _slot(slots, cursor.disc_index)
        if current is not None and current.has_tracks and cursor.track_index + 1 < len(current.track_ids):
            slot, track_index = current, cursor.track_index + 1
        else:
            following = [s for s in playable if s.slot_index > cursor.disc_index]
            if not following:
                return Advance(AdvanceStatus.PLAY_ALL_COMPLETE, state)
            slot, track_index = following[0], 0

    new_state = replace(
        state,
        active_disc_index=slot.slot_index,
        play_all_cursor=PlayAllCursor(slot.slot_index, track_index),
    )
    target = _single(slot, slot.track_ids[track_index], state.mode)
    return Advance(AdvanceStatus.PLAY, new_state, target)
