"""Album and playlist search for loading discs."""
from fastapi import APIRouter, Depends, Query

from cdchanger.api.outcomes import wait
from cdchanger.api.state import AppState, get_state

router = APIRouter()


def _suggestion_to_dict(s):
    return {
        "album_title": s.album_title,
        "artist_name": s.artist_name,
        "subtitle": s.subtitle,
        "source_identifier": s.source_identifier,
        "key": s.key,
    }


@router.get("/albums")
def search_albums(q: str = Query("", description="At least 2 characters"), state: AppState = Depends(get_state)):
    """Debounced album search; a newer query makes older ones return []."""
    return [_suggestion_to_dict(s) for s in wait(state.changer.search_albums(q))]


@router.get("/playlists")
def search_playlists(q: str = Query("", description="At least 2 characters"), state: AppState = Depends(get_state)):
    return [_suggestion_to_dict(s) for s in wait(state.changer.search_playlists(q))]
