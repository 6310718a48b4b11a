"""Shared application state (injected into routes)."""

from cdchanger.core.bridge import MusicBridge
from cdchanger.core.changer import Changer
from cdchanger.core.spotify_client import SpotifyBridge


class AppState:
    def __init__(self, bridge: MusicBridge | None = None) -> None:
        self._bridge = bridge
        self._changer: Changer | None = None

    @property
    def bridge(self) -> MusicBridge:
        if self._bridge is None:
            self._bridge = SpotifyBridge()
        return self._bridge

    @property
    def changer(self) -> Changer:
        if self._changer is None:
            self._changer = Changer.restore(self.bridge)
        return self._changer

    def set_changer(self, changer: Changer) -> None:
        """Swap in a prepared changer (tests, alternative bridges)."""
        self._changer = changer
        self._bridge = changer.bridge


_state = AppState()


def get_state() -> AppState:
    return _state
