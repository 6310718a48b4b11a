import json

from cdchanger.core.persistence import (
    DebouncedSaver,
    from_payload,
    load_state,
    save_state,
    to_payload,
)
from cdchanger.models.disc import DiscSlot, empty_slots
from cdchanger.models.playback import Mode, PlayAllCursor, PlaybackState, SpiralPosition


def test_save_and_load_round_trip(tmp_path, make_slot):
    path = tmp_path / "state.json"
    slots = empty_slots()
    slots[1] = make_slot(2, 3)
    slots[1].artwork_ref = "aGVsbG8="
    playback = PlaybackState(
        active_disc_index=2,
        mode=Mode.SPIRAL,
        lid_open=True,
        spiral_position=SpiralPosition(2, 3),
        play_all_cursor=PlayAllCursor(1, 4),
    )

    save_state(slots, playback, path)
    loaded_slots, loaded_playback = load_state(path)

    assert loaded_slots == slots
    assert loaded_playback == playback
    assert not path.with_suffix(".tmp").exists()


def test_payload_uses_camel_case_keys(make_slot):
    slots = empty_slots()
    slots[0] = make_slot(1, 1)
    payload = to_payload(slots, PlaybackState(mode=Mode.PLAY_ALL))
    first = payload["discSlots"][0]
    assert set(first) == {
        "slotIndex", "sourceType", "sourceIdentifier", "albumTitle",
        "artistName", "artworkRef", "trackIDs", "trackNumbersByID",
    }
    assert payload["playback"]["mode"] == "playAll"
    assert payload["playback"]["activeDiscIndex"] == 1
    assert len(payload["discSlots"]) == 5


def test_missing_file_loads_nothing(tmp_path):
    assert load_state(tmp_path / "nope.json") is None


def test_corrupt_file_loads_nothing(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_state(path) is None


def test_payload_is_normalized_on_load():
    data = {
        "discSlots": [
            {"slotIndex": 3, "sourceIdentifier": "a", "albumTitle": "First"},
            {"slotIndex": 3, "sourceIdentifier": "b", "albumTitle": "Second"},
            {"slotIndex": 7, "sourceIdentifier": "c"},
            "garbage",
        ],
        "playback": {
            "activeDiscIndex": 9,
            "mode": "shuffleEverything",
            "lidOpen": "yes",
            "spiralPosition": {"trackNumber": 0, "discCursor": 2},
            "playAllCursor": {"discIndex": 2, "trackIndex": 1},
        },
    }
    slots, playback = from_payload(data)
    assert [s.slot_index for s in slots] == [1, 2, 3, 4, 5]
    assert slots[2].album_title == "First"
    assert playback.active_disc_index == 1
    assert playback.mode is Mode.NORMAL
    assert playback.lid_open is False
    assert playback.spiral_position is None
    assert playback.play_all_cursor == PlayAllCursor(2, 1)


def test_legacy_field_names_are_accepted():
    data = {
        "discSlots": [
            {
                "slotIndex": 1,
                "sourceType": "playlist",
                "playlistPersistentID": "ABC123",
                "artworkPNGBase64": "aGk=",
                "trackIDs": ["x", "y"],
            }
        ]
    }
    slots, playback = from_payload(data)
    assert slots[0].source_identifier == "ABC123"
    assert slots[0].artwork_ref == "aGk="
    assert playback == PlaybackState()


def test_non_dict_payload_gives_defaults():
    slots, playback = from_payload([1, 2, 3])
    assert slots == empty_slots()
    assert playback == PlaybackState()


def test_saver_skips_unchanged_state(tmp_path):
    path = tmp_path / "state.json"
    state = {"slots": empty_slots(), "playback": PlaybackState()}
    saver = DebouncedSaver(lambda: (state["slots"], state["playback"]), path=path, delay=60)

    assert saver.flush()
    assert not saver.flush()

    state["playback"] = PlaybackState(lid_open=True)
    assert saver.flush()
    assert json.loads(path.read_text())["playback"]["lidOpen"] is True


def test_saver_mark_saved_suppresses_identical_write(tmp_path):
    path = tmp_path / "state.json"
    slots, playback = empty_slots(), PlaybackState()
    saver = DebouncedSaver(lambda: (slots, playback), path=path, delay=60)
    saver.mark_saved(slots, playback)
    assert not saver.flush()
    assert not path.exists()


def test_saver_debounces_into_one_write(tmp_path):
    path = tmp_path / "state.json"
    calls = []

    def snapshot():
        calls.append(1)
        return [DiscSlot(slot_index=1, source_identifier="x")], PlaybackState()

    saver = DebouncedSaver(snapshot, path=path, delay=60)
    for _ in range(5):
        saver.schedule()
    assert calls == []
    assert saver.flush()
    assert len(calls) == 1
    saver.cancel()
