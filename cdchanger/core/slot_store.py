"""The five disc slots. Owned by the Changer; callers hold its lock."""
import base64
import logging
from dataclasses import replace
from typing import Dict, Iterable, List

from cdchanger.core.errors import ClipboardEmpty
from cdchanger.models.disc import (
    SLOT_INDICES,
    DiscSlot,
    LoadedDisc,
    is_valid_slot_index,
)

logger = logging.getLogger(__name__)


def normalize_slots(slots: Iterable[DiscSlot]) -> List[DiscSlot]:
    """Exactly five slots, indices 1..5 in order. Missing -> empty; first duplicate wins."""
    by_index: Dict[int, DiscSlot] = {}
    for slot in slots:
        if is_valid_slot_index(slot.slot_index) and slot.slot_index not in by_index:
            by_index[slot.slot_index] = slot
    return [by_index.get(i) or DiscSlot.empty(i) for i in SLOT_INDICES]


def encode_artwork(image_bytes: bytes) -> str:
    return base64.b64encode(image_bytes).decode("ascii")


class DiscSlotStore:
    """Five fixed slots holding loaded-disc metadata and track lists."""

    def __init__(self, slots: Iterable[DiscSlot] | None = None) -> None:
        self._slots = normalize_slots(slots or [])

    def slots(self) -> List[DiscSlot]:
        """Normalized copy of all five slots."""
        self._slots = normalize_slots(self._slots)
        return list(self._slots)

    def get(self, slot_index: int) -> DiscSlot | None:
        if not is_valid_slot_index(slot_index):
            return None
        return self.slots()[slot_index - 1]

    def loaded_slots(self) -> List[DiscSlot]:
        return [s for s in self.slots() if s.is_loaded]

    def replace_all(self, slots: Iterable[DiscSlot]) -> None:
        self._slots = normalize_slots(slots)

    def load(self, slot_index: int, disc: LoadedDisc) -> bool:
        """Overwrite a slot with a loaded disc. Returns False for bad indices."""
        current = self.get(slot_index)
        if current is None:
            logger.debug("Ignoring load into slot %r", slot_index)
            return False
        artwork_ref = current.artwork_ref
        if disc.artwork_bytes:
            artwork_ref = encode_artwork(disc.artwork_bytes)
        self._slots[slot_index - 1] = DiscSlot(
            slot_index=slot_index,
            source_type=disc.source_type,
            source_identifier=disc.source_identifier,
            album_title=disc.album_title,
            artist_name=disc.artist_name,
            artwork_ref=artwork_ref,
            track_ids=_unique(disc.track_ids),
            track_numbers_by_id=dict(disc.track_numbers_by_id),
        )
        logger.info("Slot %d loaded %s %s", slot_index, disc.source_type, disc.source_identifier)
        return True

    def remove(self, slot_index: int) -> bool:
        """Reset a slot to empty. Returns False for bad indices."""
        if not is_valid_slot_index(slot_index):
            return False
        self._slots = normalize_slots(self._slots)
        self._slots[slot_index - 1] = DiscSlot.empty(slot_index)
        return True

    def paste_artwork(self, slot_index: int, image_bytes: bytes | None) -> bool:
        """Replace only the artwork. Raises ClipboardEmpty when there is no image."""
        current = self.get(slot_index)
        if current is None:
            return False
        if not image_bytes:
            raise ClipboardEmpty()
        self._slots[slot_index - 1] = replace(current, artwork_ref=encode_artwork(image_bytes))
        return True


def _unique(track_ids: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for track_id in track_ids:
        if track_id and track_id not in seen:
            seen.add(track_id)
            out.append(track_id)
    return out
