"""Failure taxonomy for player bridge calls and slot edits."""


class ChangerError(Exception):
    """Base for errors the changer turns into status messages."""

    user_message = "Something went wrong."

    def __str__(self) -> str:
        return self.user_message


class BridgeError(ChangerError):
    """A player bridge call failed."""


class EnvironmentUnavailable(BridgeError):
    """Player not running or not authorized. Shown verbatim."""


class MusicNotRunning(EnvironmentUnavailable):
    user_message = "Open Spotify on a device to use the changer."


class NotAuthorized(EnvironmentUnavailable):
    user_message = "Spotify not linked. Use the Connect page to log in."


class ContentNotFound(BridgeError):
    """No current track, album or playlist to work with."""


class NoCurrentTrack(ContentNotFound):
    user_message = "Play a track in Spotify to load an album."


class NoAlbumFound(ContentNotFound):
    user_message = "Could not find album tracks."


class NoPlaylistFound(ContentNotFound):
    user_message = "No current playlist found."


class ScriptExecutionFailed(BridgeError):
    """Unexpected player failure; the raw message is only shown in debug."""

    user_message = "The music player did not respond as expected."

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def debug_message(self) -> str:
        return f"Player error: {self.message}" if self.message else self.user_message


# Name used by the player-facing side for the same failure
ScriptFailed = ScriptExecutionFailed


class ClipboardEmpty(ChangerError):
    user_message = "Clipboard has no image."


def status_for_error(error: BaseException, debug: bool = False, diagnostics: str = "") -> str:
    """User-visible status line for a failed call."""
    if isinstance(error, ScriptExecutionFailed):
        if not debug:
            return error.user_message
        return " ".join(part for part in (error.debug_message(), diagnostics) if part)
    if isinstance(error, ChangerError):
        if debug and diagnostics:
            return f"{error.user_message} {diagnostics}"
        return error.user_message
    if debug:
        return f"Unexpected error: {error}"
    return ChangerError.user_message
