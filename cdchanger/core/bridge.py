"""Player bridge capability and tagged call outcomes.

The changer never talks to a player directly. It receives an object satisfying
MusicBridge and runs its (blocking) methods on worker threads through
call_bridge, which turns raised BridgeErrors into Outcome values so nothing
raises across the worker boundary.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Protocol, Sequence

from cdchanger.core.errors import BridgeError, ScriptExecutionFailed
from cdchanger.models.disc import AlbumSuggestion, LoadedDisc
from cdchanger.models.playback import NowPlayingObservation

logger = logging.getLogger(__name__)


class MusicBridge(Protocol):
    """What the changer needs from an external music player."""

    def load_current_album_or_playlist(self) -> LoadedDisc: ...

    def load_album(self, title: str, artist: str | None = None) -> LoadedDisc: ...

    def load_playlist(self, playlist_id: str) -> LoadedDisc: ...

    def search_albums(self, query: str, limit: int) -> List[AlbumSuggestion]: ...

    def search_playlists(self, query: str, limit: int) -> List[AlbumSuggestion]: ...

    def current_playback_info(self) -> NowPlayingObservation: ...

    def play_track_list(self, track_ids: Sequence[str], label: str) -> None: ...

    def play_pause(self) -> None: ...

    def next_track(self) -> None: ...

    def previous_track(self) -> None: ...

    def diagnostics(self) -> str: ...


@dataclass(frozen=True)
class Outcome:
    """Result of a bridge call: a value, or the error that stopped it."""
    value: Any = None
    error: BridgeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def call_bridge(fn: Callable[..., Any], *args, **kwargs) -> Outcome:
    """Run a bridge method and wrap its result or failure."""
    try:
        return Outcome(value=fn(*args, **kwargs))
    except BridgeError as e:
        logger.info("Bridge %s failed: %s", getattr(fn, "__name__", fn), e.__class__.__name__)
        return Outcome(error=e)
    except Exception as e:
        logger.warning("Bridge %s raised unexpectedly: %s", getattr(fn, "__name__", fn), e)
        return Outcome(error=ScriptExecutionFailed(str(e)))
