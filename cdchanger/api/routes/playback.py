"""Changer playback: mode, active disc, lid, transport and now playing."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from cdchanger.api.outcomes import respond, wait
from cdchanger.api.state import AppState, get_state
from cdchanger.core.changer import now_playing_to_dict
from cdchanger.models.playback import Mode

router = APIRouter()


class ActiveDiscBody(BaseModel):
    index: int = Field(..., ge=1, le=5)


class ModeBody(BaseModel):
    mode: str


@router.get("")
def get_playback(state: AppState = Depends(get_state)):
    """Current mode, active disc, lid and cursors."""
    return state.changer.snapshot()["playback"]


@router.get("/modes")
def list_modes():
    return [{"mode": m.value, "name": m.display_name} for m in Mode]


@router.get("/now-playing")
def get_now_playing(state: AppState = Depends(get_state)):
    """Last reconciled now-playing state (all null when unknown)."""
    return now_playing_to_dict(state.changer.now_playing)


@router.post("/now-playing/refresh")
def refresh_now_playing(state: AppState = Depends(get_state)):
    """Poll the player right away instead of waiting for the next tick."""
    ran = state.changer.poll_now_playing()
    return {"ok": True, "skipped": not ran, **now_playing_to_dict(state.changer.now_playing)}


@router.post("/active")
def set_active_disc(body: ActiveDiscBody, state: AppState = Depends(get_state)):
    state.changer.set_active_disc(body.index)
    return {"ok": True, "active_disc_index": state.changer.playback.active_disc_index}


@router.post("/lid")
def toggle_lid(state: AppState = Depends(get_state)):
    """Open or close the lid."""
    return {"ok": True, "lid_open": state.changer.toggle_lid()}


@router.post("/mode")
def set_mode(body: ModeBody, state: AppState = Depends(get_state)):
    mode = Mode.parse(body.mode)
    if mode is None:
        raise HTTPException(status_code=400, detail=f"Unknown mode: {body.mode}")
    state.changer.set_mode(mode)
    return {"ok": True, "mode": mode.value, "name": mode.display_name}


@router.post("/play")
def play(state: AppState = Depends(get_state)):
    """Start playing in the current mode."""
    changer = state.changer
    return respond(changer, wait(changer.play()))


@router.post("/advance")
def advance(state: AppState = Depends(get_state)):
    """Skip to what the current mode plays next."""
    changer = state.changer
    return respond(changer, wait(changer.advance()))


@router.post("/shuffle-all")
def shuffle_all(state: AppState = Depends(get_state)):
    """Shuffle every loaded track into one list and play it."""
    changer = state.changer
    if not any(s.has_tracks for s in changer.slots):
        changer.play_all_discs_shuffled()
        raise HTTPException(status_code=409, detail=changer.status_message)
    return respond(changer, wait(changer.play_all_discs_shuffled()))


@router.post("/play-pause")
def play_pause(state: AppState = Depends(get_state)):
    changer = state.changer
    return respond(changer, wait(changer.play_pause()))


@router.post("/next")
def next_track(state: AppState = Depends(get_state)):
    changer = state.changer
    return respond(changer, wait(changer.next_track()))


@router.post("/previous")
def previous_track(state: AppState = Depends(get_state)):
    changer = state.changer
    return respond(changer, wait(changer.previous_track()))
