"""Disc slot metadata, loaded-disc payloads and album search suggestions."""
from dataclasses import dataclass, field
from typing import Dict, List

SLOT_COUNT = 5
SLOT_INDICES = range(1, SLOT_COUNT + 1)


def is_valid_slot_index(index) -> bool:
    """True for 1..5 (bools are rejected even though they are ints)."""
    return isinstance(index, int) and not isinstance(index, bool) and 1 <= index <= SLOT_COUNT


@dataclass
class DiscSlot:
    """One of the five changer slots. Empty when source_identifier is None."""
    slot_index: int
    source_type: str | None = None  # "album" | "playlist" | None (empty)
    source_identifier: str | None = None
    album_title: str | None = None
    artist_name: str | None = None
    artwork_ref: str | None = None  # base64 image bytes
    track_ids: List[str] = field(default_factory=list)
    track_numbers_by_id: Dict[str, int] = field(default_factory=dict)

    @property
    def is_loaded(self) -> bool:
        return self.source_identifier is not None

    @property
    def has_tracks(self) -> bool:
        return self.is_loaded and bool(self.track_ids)

    def track_number_for(self, track_id: str) -> int | None:
        """Explicit track number, else 1-based position, else None."""
        number = self.track_numbers_by_id.get(track_id)
        if number is not None and number > 0:
            return number
        try:
            return self.track_ids.index(track_id) + 1
        except ValueError:
            return None

    def track_id_for_number(self, track_number: int) -> str | None:
        """Track carrying track_number; positional when the slot has no number map."""
        if track_number < 1:
            return None
        if self.track_numbers_by_id:
            for track_id in self.track_ids:
                if self.track_numbers_by_id.get(track_id) == track_number:
                    return track_id
            return None
        if track_number <= len(self.track_ids):
            return self.track_ids[track_number - 1]
        return None

    @property
    def track_count(self) -> int:
        """Highest reachable track number (list length or largest explicit number)."""
        numbers = [n for n in self.track_numbers_by_id.values() if n > 0]
        return max([len(self.track_ids)] + numbers)

    @classmethod
    def empty(cls, slot_index: int) -> "DiscSlot":
        return cls(slot_index=slot_index)


def empty_slots() -> List[DiscSlot]:
    return [DiscSlot.empty(i) for i in SLOT_INDICES]


@dataclass
class LoadedDisc:
    """What the player bridge hands back when a disc is loaded."""
    source_type: str  # "album" | "playlist"
    source_identifier: str
    album_title: str | None = None
    artist_name: str | None = None
    artwork_bytes: bytes | None = None
    track_ids: List[str] = field(default_factory=list)
    track_numbers_by_id: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AlbumSuggestion:
    """Search hit for an album or playlist."""
    album_title: str
    artist_name: str | None = None
    source_identifier: str | None = None

    @property
    def key(self) -> str:
        artist = (self.artist_name or "").lower()
        return f"{self.album_title.lower()}|{artist}"

    @property
    def subtitle(self) -> str:
        return self.artist_name if self.artist_name else "Unknown Artist"
