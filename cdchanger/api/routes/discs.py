"""Disc slots: list, load from the player, load by album/playlist, remove, artwork, play."""
import base64
import binascii
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response
from pydantic import BaseModel

from cdchanger.api.outcomes import respond, wait
from cdchanger.api.state import AppState, get_state
from cdchanger.core.errors import ClipboardEmpty
from cdchanger.models.disc import AlbumSuggestion

router = APIRouter()

SlotIndex = Annotated[int, Path(ge=1, le=5, description="Disc slot 1-5")]


class AlbumBody(BaseModel):
    album_title: str
    artist_name: str | None = None


class PlaylistBody(BaseModel):
    playlist_id: str
    name: str | None = None


@router.get("")
def list_discs(state: AppState = Depends(get_state)):
    """All five slots (artwork omitted; see /{index}/artwork)."""
    return state.changer.snapshot()["slots"]


@router.post("/{index}/load")
def load_disc(index: SlotIndex, state: AppState = Depends(get_state)):
    """Load whatever album or playlist the player is on into a slot."""
    changer = state.changer
    return respond(changer, wait(changer.load_disc(index)))


@router.post("/{index}/album")
def load_album(body: AlbumBody, index: SlotIndex, state: AppState = Depends(get_state)):
    """Load a searched album (title + optional artist) into a slot."""
    if not body.album_title.strip():
        raise HTTPException(status_code=400, detail="album_title is required")
    changer = state.changer
    suggestion = AlbumSuggestion(album_title=body.album_title.strip(), artist_name=body.artist_name)
    return respond(changer, wait(changer.load_album(index, suggestion)))


@router.post("/{index}/playlist")
def load_playlist(body: PlaylistBody, index: SlotIndex, state: AppState = Depends(get_state)):
    """Load a playlist by id or URI into a slot."""
    if not body.playlist_id.strip():
        raise HTTPException(status_code=400, detail="playlist_id is required")
    changer = state.changer
    suggestion = AlbumSuggestion(
        album_title=body.name or "Playlist",
        source_identifier=body.playlist_id.strip(),
    )
    return respond(changer, wait(changer.load_playlist(index, suggestion)))


@router.delete("/{index}")
def remove_disc(index: SlotIndex, state: AppState = Depends(get_state)):
    """Eject a disc; the slot becomes empty."""
    changer = state.changer
    changer.remove_disc(index)
    return {"ok": True, "status": changer.status_message}


@router.put("/{index}/artwork")
async def paste_artwork(request: Request, index: SlotIndex, state: AppState = Depends(get_state)):
    """Replace a slot's artwork with the raw image bytes in the request body."""
    image_bytes = await request.body()
    changer = state.changer
    try:
        changer.paste_artwork(index, image_bytes)
    except ClipboardEmpty as e:
        raise HTTPException(status_code=400, detail=e.user_message)
    return {"ok": True, "status": changer.status_message}


@router.get("/{index}/artwork")
def get_artwork(index: SlotIndex, state: AppState = Depends(get_state)):
    """Raw artwork bytes for a slot."""
    slot = state.changer.slots[index - 1]
    if not slot.artwork_ref:
        raise HTTPException(status_code=404, detail="No artwork")
    try:
        data = base64.b64decode(slot.artwork_ref, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=404, detail="No artwork")
    return Response(content=data, media_type="application/octet-stream")


@router.post("/{index}/play")
def play_disc(index: SlotIndex, state: AppState = Depends(get_state)):
    """Play a disc from track 1."""
    changer = state.changer
    slot = changer.slots[index - 1]
    if not slot.has_tracks:
        changer.play_disc(index)
        raise HTTPException(status_code=409, detail=changer.status_message)
    return respond(changer, wait(changer.play_disc(index)))
