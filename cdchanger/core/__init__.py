"""Core services: slot store, mode engine, now-playing reconciler, persistence, player bridge."""
from cdchanger.core.changer import Changer
from cdchanger.core.spotify_client import SpotifyBridge

__all__ = ["Changer", "SpotifyBridge"]
