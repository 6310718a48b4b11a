"""Data models for disc slots, playback and now-playing state."""
from cdchanger.models.disc import AlbumSuggestion, DiscSlot, LoadedDisc, empty_slots
from cdchanger.models.playback import (
    Mode,
    NowPlaying,
    NowPlayingObservation,
    PlayAllCursor,
    PlaybackState,
    SpiralPosition,
)

__all__ = [
    "AlbumSuggestion",
    "DiscSlot",
    "LoadedDisc",
    "empty_slots",
    "Mode",
    "NowPlaying",
    "NowPlayingObservation",
    "PlayAllCursor",
    "PlaybackState",
    "SpiralPosition",
]
