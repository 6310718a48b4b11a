"""Changer playback state and now-playing observations."""
from dataclasses import dataclass
from enum import Enum


class Mode(str, Enum):
    NORMAL = "normal"
    PLAY_ALL = "playAll"
    DISC_REPEAT = "discRepeat"
    ONE_DISC_SHUFFLE = "oneDiscShuffle"
    FIVE_DISC_SHUFFLE = "fiveDiscShuffle"
    SPIRAL = "spiral"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value) -> "Mode | None":
        """Mode for a persisted/API value, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


_DISPLAY_NAMES = {
    Mode.NORMAL: "Normal",
    Mode.PLAY_ALL: "Play All",
    Mode.DISC_REPEAT: "Disc Repeat",
    Mode.ONE_DISC_SHUFFLE: "One-Disc Shuffle",
    Mode.FIVE_DISC_SHUFFLE: "5-Disc Shuffle",
    Mode.SPIRAL: "Spiral",
}


@dataclass(frozen=True)
class SpiralPosition:
    """Next spiral lookup: track number and first disc to scan."""
    track_number: int
    disc_cursor: int


@dataclass(frozen=True)
class PlayAllCursor:
    """Position of the last track issued in play-all mode."""
    disc_index: int
    track_index: int


@dataclass(frozen=True)
class PlaybackState:
    """Persisted changer state. Cursors only mean something in their own mode."""
    active_disc_index: int = 1
    mode: Mode = Mode.NORMAL
    lid_open: bool = False
    spiral_position: SpiralPosition | None = None
    play_all_cursor: PlayAllCursor | None = None


@dataclass(frozen=True)
class NowPlayingObservation:
    """Best-effort snapshot of the external player, sampled each poll tick."""
    track_id: str | None = None
    track_number: int | None = None
    elapsed_seconds: float | None = None
    album_title: str | None = None
    artist_name: str | None = None
    external_playlist_id: str | None = None
    is_playing: bool = True


@dataclass(frozen=True)
class NowPlaying:
    """Reconciled now-playing fields; all None means unknown."""
    disc_index: int | None = None
    track_number: int | None = None
    elapsed_seconds: float | None = None
    track_id: str | None = None
