import pytest

from cdchanger.config import MAX_PLAY_TRACKS
from cdchanger.core.changer import Changer
from cdchanger.core.errors import (
    ClipboardEmpty,
    MusicNotRunning,
    NoAlbumFound,
    NotAuthorized,
    ScriptFailed,
)
from cdchanger.core.mode_engine import AdvanceStatus
from cdchanger.models.disc import AlbumSuggestion, DiscSlot
from cdchanger.models.playback import (
    Mode,
    NowPlaying,
    NowPlayingObservation,
    PlaybackState,
    SpiralPosition,
)


def slots_from_counts(make_slot, counts):
    return [
        make_slot(i, n) if n else DiscSlot.empty(i)
        for i, n in enumerate(counts, start=1)
    ]


def playing(track_id, elapsed=10.0):
    return NowPlayingObservation(track_id=track_id, elapsed_seconds=elapsed)


def stopped(track_id):
    return NowPlayingObservation(track_id=track_id, elapsed_seconds=0, is_playing=False)


# Loading


def test_load_disc_from_player(make_changer, bridge, make_disc):
    bridge.current_disc = make_disc(1, 3, title="Blue Train")
    changer = make_changer()

    outcome = changer.load_disc(2).result(timeout=5)

    assert outcome.ok
    slot = changer.slots[1]
    assert slot.album_title == "Blue Train"
    assert slot.track_ids == ["d1t1", "d1t2", "d1t3"]
    assert changer.status_message == "Loaded Disc 2."


def test_load_disc_when_player_not_running(make_changer, bridge):
    bridge.failures["load_current_album_or_playlist"] = MusicNotRunning()
    changer = make_changer()

    outcome = changer.load_disc(1).result(timeout=5)

    assert isinstance(outcome.error, MusicNotRunning)
    assert changer.status_message == MusicNotRunning.user_message
    assert not changer.slots[0].is_loaded


def test_unexpected_failure_is_generic_unless_debug(make_changer, bridge):
    bridge.failures["load_album"] = ScriptFailed("player exited with status 1")

    quiet = make_changer()
    quiet.load_album(1, AlbumSuggestion("X")).result(timeout=5)
    assert quiet.status_message == ScriptFailed.user_message

    loud = make_changer(debug=True)
    loud.load_album(1, AlbumSuggestion("X")).result(timeout=5)
    assert "player exited with status 1" in loud.status_message
    assert "Diagnostics: fake" in loud.status_message


def test_non_bridge_exception_becomes_script_failure(make_changer, bridge):
    bridge.failures["load_album"] = KeyError("boom")
    changer = make_changer()
    outcome = changer.load_album(3, AlbumSuggestion("X")).result(timeout=5)
    assert isinstance(outcome.error, ScriptFailed)
    assert changer.status_message == ScriptFailed.user_message


def test_load_album_and_playlist(make_changer, bridge, make_disc):
    bridge.albums[("Giant Steps", "Coltrane")] = make_disc(4, 2, title="Giant Steps")
    bridge.playlists["spotify:playlist:mix"] = make_disc(5, 4, title="Mix")
    changer = make_changer()

    changer.load_album(4, AlbumSuggestion("Giant Steps", "Coltrane")).result(timeout=5)
    changer.load_playlist(
        5, AlbumSuggestion("Mix", source_identifier="spotify:playlist:mix")
    ).result(timeout=5)

    assert changer.slots[3].album_title == "Giant Steps"
    assert changer.slots[4].track_ids == ["d5t1", "d5t2", "d5t3", "d5t4"]


def test_load_album_not_found(make_changer, bridge):
    bridge.failures["load_album"] = NoAlbumFound()
    changer = make_changer()
    changer.load_album(1, AlbumSuggestion("Nope")).result(timeout=5)
    assert changer.status_message == "Could not find album tracks."


@pytest.mark.parametrize("index", [0, 6])
def test_load_into_invalid_slot_does_nothing(make_changer, bridge, make_disc, index):
    bridge.current_disc = make_disc(1, 2)
    changer = make_changer()
    outcome = changer.load_disc(index).result(timeout=5)
    assert outcome.ok and outcome.value is None
    assert not any(s.is_loaded for s in changer.slots)


def test_remove_disc_clears_now_playing_disc(make_changer, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [0, 0, 3, 0, 0]))
    changer.apply_observation(playing("d3t2"))
    assert changer.now_playing.disc_index == 3

    changer.remove_disc(3)

    assert not changer.slots[2].is_loaded
    assert changer.now_playing.disc_index is None
    assert changer.now_playing.track_id == "d3t2"
    assert changer.status_message == "Removed Disc 3."


def test_paste_artwork(make_changer, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 0, 0, 0]))
    changer.paste_artwork(1, b"\x89PNG")
    assert changer.slots[0].artwork_ref
    assert changer.status_message == "Pasted artwork for Disc 1."

    with pytest.raises(ClipboardEmpty):
        changer.paste_artwork(2, None)
    assert changer.status_message == "Clipboard has no image."


# Lid, mode and active disc


def test_toggle_lid(make_changer):
    changer = make_changer()
    assert changer.toggle_lid() is True
    assert changer.toggle_lid() is False


def test_set_mode_resets_cursor(make_changer):
    changer = make_changer(
        playback=PlaybackState(mode=Mode.SPIRAL, spiral_position=SpiralPosition(4, 3))
    )
    changer.set_mode(Mode.SPIRAL)
    assert changer.playback.spiral_position == SpiralPosition(1, 1)
    changer.set_mode(Mode.PLAY_ALL)
    assert changer.playback.spiral_position is None
    assert changer.status_message == "Play All."


def test_set_active_disc_ignores_invalid(make_changer):
    changer = make_changer()
    changer.set_active_disc(4)
    changer.set_active_disc(6)
    assert changer.playback.active_disc_index == 4


def test_invalid_restored_active_disc_is_reset(make_changer):
    changer = make_changer(playback=PlaybackState(active_disc_index=8))
    assert changer.playback.active_disc_index == 1


# Playback


def test_play_disc(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [0, 3, 0, 0, 0]))
    changer.play_disc(2).result(timeout=5)
    assert bridge.played == [(["d2t1", "d2t2", "d2t3"], "CD Changer Disc 2")]
    assert changer.playback.active_disc_index == 2


def test_play_empty_disc(make_changer, bridge):
    changer = make_changer()
    changer.play_disc(1).result(timeout=5)
    assert bridge.played == []
    assert changer.status_message == "Load a disc before playing."


def test_five_disc_shuffle_without_discs(make_changer, bridge):
    changer = make_changer(playback=PlaybackState(mode=Mode.FIVE_DISC_SHUFFLE))
    outcome = changer.play().result(timeout=5)
    assert outcome.value is AdvanceStatus.NO_DISCS_LOADED
    assert bridge.played == []
    assert changer.status_message == "Load discs before playing."


def test_five_disc_shuffle_waits_for_disc_swap(make_changer, bridge, make_slot):
    delays = []
    changer = make_changer(
        slots_from_counts(make_slot, [2, 0, 0, 3, 0]),
        PlaybackState(mode=Mode.FIVE_DISC_SHUFFLE),
        sleep=delays.append,
    )
    changer.play().result(timeout=5)
    assert len(delays) == 1 and delays[0] > 0
    (track_ids, label), = bridge.played
    assert len(track_ids) == 1
    assert label == "CD Changer 5-Disc Shuffle"
    assert changer.playback.active_disc_index in (1, 4)


def test_spiral_play_moves_cursor(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 2, 0, 0]))
    changer.set_mode(Mode.SPIRAL)
    changer.play().result(timeout=5)
    changer.advance().result(timeout=5)
    changer.advance().result(timeout=5)
    assert [ids for ids, _ in bridge.played] == [["d1t1"], ["d3t1"], ["d1t2"]]
    assert changer.playback.spiral_position == SpiralPosition(2, 2)
    assert changer.playback.active_disc_index == 1


def test_mode_change_during_advance_keeps_new_mode_cursor(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 2, 0, 0]))
    changer.set_mode(Mode.SPIRAL)
    bridge.on_play = lambda _ids: changer.set_mode(Mode.PLAY_ALL)

    changer.play().result(timeout=5)

    playback = changer.playback
    assert playback.mode is Mode.PLAY_ALL
    assert playback.spiral_position is None
    assert playback.play_all_cursor is None
    assert playback.active_disc_index == 1


def test_failed_play_reports_error(make_changer, bridge, make_slot):
    bridge.failures["play_track_list"] = NotAuthorized()
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 0, 0, 0]))
    changer.set_mode(Mode.PLAY_ALL)
    outcome = changer.play().result(timeout=5)
    assert isinstance(outcome.error, NotAuthorized)
    assert changer.status_message == NotAuthorized.user_message
    assert changer.playback.play_all_cursor is None


def test_play_all_discs_shuffled(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 3, 0, 0]))
    changer.play_all_discs_shuffled().result(timeout=5)
    (track_ids, label), = bridge.played
    assert sorted(track_ids) == ["d1t1", "d1t2", "d3t1", "d3t2", "d3t3"]
    assert label == "CD Changer All-Disc Shuffle"


def test_shuffle_all_without_discs(make_changer, bridge):
    changer = make_changer()
    changer.play_all_discs_shuffled().result(timeout=5)
    assert bridge.played == []
    assert changer.status_message == "Load discs before shuffling."


def test_next_track_in_normal_mode_uses_player(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 0, 0, 0]))
    changer.next_track().result(timeout=5)
    changer.previous_track().result(timeout=5)
    changer.play_pause().result(timeout=5)
    assert bridge.transport == ["next", "previous", "play_pause"]
    assert bridge.played == []


def test_next_track_in_play_all_uses_engine(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 0, 0, 0]))
    changer.set_mode(Mode.PLAY_ALL)
    changer.next_track().result(timeout=5)
    assert bridge.transport == []
    assert bridge.played == [(["d1t1"], "CD Changer Play All")]


# Now playing and auto-advance


def test_observation_promotes_active_disc(make_changer, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [1, 0, 4, 0, 0]))
    changer.apply_observation(playing("d3t4", elapsed=33.0))
    now = changer.now_playing
    assert (now.disc_index, now.track_number, now.elapsed_seconds) == (3, 4, 33.0)
    assert changer.playback.active_disc_index == 3


def test_poll_now_playing_without_player(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [1, 0, 0, 0, 0]))
    bridge.observation = playing("d1t1")
    assert changer.poll_now_playing()
    assert changer.now_playing.disc_index == 1

    bridge.observation = None
    assert changer.poll_now_playing()
    assert changer.now_playing.disc_index is None


def test_poll_clears_now_playing_when_query_raises(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 0, 0, 0]))
    bridge.observation = playing("d1t1")
    changer.poll_now_playing()
    assert changer.now_playing.disc_index == 1

    bridge.failures["current_playback_info"] = ConnectionError("offline")
    assert changer.poll_now_playing()
    assert changer.now_playing == NowPlaying()


def test_play_all_advances_when_track_ends(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 1, 0, 0]))
    changer.set_mode(Mode.PLAY_ALL)
    changer.play().result(timeout=5)

    changer.apply_observation(playing("d1t1", elapsed=5))
    changer.apply_observation(playing("d1t1", elapsed=6))
    assert len(bridge.played) == 1

    changer.apply_observation(stopped("d1t1"))
    changer.apply_observation(playing("d1t2", elapsed=1))
    changer.apply_observation(None)
    changer.apply_observation(playing("d3t1", elapsed=1))
    changer.apply_observation(playing("something-else", elapsed=1))

    assert [ids for ids, _ in bridge.played] == [["d1t1"], ["d1t2"], ["d3t1"]]
    assert changer.status_message == "Play All complete."


def test_pause_mid_track_does_not_advance(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [3, 0, 0, 0, 0]))
    changer.set_mode(Mode.ONE_DISC_SHUFFLE)
    changer.play().result(timeout=5)
    (first,), _ = bridge.played[0]

    changer.apply_observation(playing(first, elapsed=40))
    changer.apply_observation(
        NowPlayingObservation(track_id=first, elapsed_seconds=41, is_playing=False)
    )
    assert len(bridge.played) == 1


def test_disc_repeat_replays_after_last_track(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [0, 2, 0, 0, 0]))
    changer.set_active_disc(2)
    changer.set_mode(Mode.DISC_REPEAT)
    changer.play().result(timeout=5)

    changer.apply_observation(playing("d2t1"))
    changer.apply_observation(playing("d2t2"))
    assert len(bridge.played) == 1
    changer.apply_observation(None)

    assert bridge.played == [(["d2t1", "d2t2"], "CD Changer Disc 2")] * 2


def test_disc_repeat_on_disc_longer_than_play_limit(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [MAX_PLAY_TRACKS + 100, 0, 0, 0, 0]))
    changer.set_mode(Mode.DISC_REPEAT)
    changer.play().result(timeout=5)
    assert len(bridge.played[0][0]) == MAX_PLAY_TRACKS

    last = f"d1t{MAX_PLAY_TRACKS}"
    changer.apply_observation(playing(last))
    changer.apply_observation(stopped(last))

    assert len(bridge.played) == 2
    assert bridge.played[1][0][-1] == last


def test_default_executor_uses_configured_worker_count(make_changer, monkeypatch):
    monkeypatch.setattr("cdchanger.core.changer.BRIDGE_WORKERS", 2)
    changer = make_changer(executor=None)
    try:
        assert changer._executor._max_workers == 2
    finally:
        changer._executor.shutdown(wait=False)


def test_normal_mode_never_auto_advances(make_changer, bridge, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 0, 0, 0]))
    changer.play().result(timeout=5)
    changer.apply_observation(playing("d1t2"))
    changer.apply_observation(None)
    assert len(bridge.played) == 1


# Search


def test_search_albums(make_changer, bridge):
    bridge.album_results = [AlbumSuggestion("Kind of Blue", "Miles Davis")]
    changer = make_changer()
    assert changer.search_albums("  kind ").result(timeout=5) == bridge.album_results
    assert bridge.search_queries == ["kind"]


def test_short_query_does_not_search(make_changer, bridge):
    changer = make_changer()
    assert changer.search_albums("k").result(timeout=5) == []
    assert changer.search_playlists(" ").result(timeout=5) == []
    assert bridge.search_queries == []


def test_newer_query_supersedes_older(make_changer, bridge):
    bridge.album_results = [AlbumSuggestion("A")]
    changer = make_changer(search_delay=60.0)
    older = changer.search_albums("kin")
    newer = changer.search_albums("kind")
    assert older.result(timeout=5) == []
    assert not newer.done()
    changer.search_albums("")
    assert newer.result(timeout=5) == []
    assert bridge.search_queries == []


def test_search_failure_sets_status(make_changer, bridge):
    bridge.failures["search_playlists"] = NotAuthorized()
    changer = make_changer()
    assert changer.search_playlists("jazz").result(timeout=5) == []
    assert changer.status_message == NotAuthorized.user_message


# Persistence and snapshot


def test_state_survives_restart(bridge, make_disc, tmp_path, make_changer):
    path = tmp_path / "changer.json"
    bridge.current_disc = make_disc(1, 3)
    changer = make_changer(state_path=path)
    changer.load_disc(3).result(timeout=5)
    changer.set_mode(Mode.SPIRAL)
    changer.toggle_lid()
    changer.close()

    restored = Changer.restore(bridge, state_path=path, save_delay=60.0)
    try:
        assert restored.slots == changer.slots
        assert restored.playback == changer.playback
    finally:
        restored._saver.cancel()


def test_restore_without_saved_state(bridge, tmp_path):
    changer = Changer.restore(bridge, state_path=tmp_path / "missing.json")
    assert not any(s.is_loaded for s in changer.slots)
    assert changer.playback == PlaybackState()


def test_snapshot_shape(make_changer, make_slot):
    changer = make_changer(slots_from_counts(make_slot, [2, 0, 0, 0, 0]))
    changer.set_mode(Mode.SPIRAL)
    snap = changer.snapshot()
    assert set(snap) == {"slots", "playback", "now_playing", "status_message"}
    assert snap["slots"][0]["track_count"] == 2
    assert snap["slots"][0]["has_artwork"] is False
    assert snap["playback"]["mode"] == "spiral"
    assert snap["playback"]["spiral_position"] == {"track_number": 1, "disc_cursor": 1}
    assert snap["now_playing"]["disc_index"] is None
