"""Linking the changer to a Spotify account (OAuth) and checking the link."""
import logging
import urllib.parse

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel

from cdchanger.api.state import AppState, get_state
from cdchanger.config import CDCHANGER_WEB_ORIGIN, SPOTIFY_CLIENT_ID
from cdchanger.core.spotify_client import (
    authorize_url,
    exchange_code_and_save_token,
    forget_token,
    get_spotify_client,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class CompleteLoginBody(BaseModel):
    """The redirect URL Spotify sent the browser to, or just its code."""
    redirect_url: str | None = None
    code: str | None = None


def _code_from(body: CompleteLoginBody) -> str:
    if body.code and body.code.strip():
        return body.code.strip()
    if not body.redirect_url:
        raise HTTPException(status_code=400, detail="Send 'redirect_url' or 'code'.")
    query = urllib.parse.urlparse(body.redirect_url.strip()).query
    code = (urllib.parse.parse_qs(query).get("code") or [None])[0]
    if not code:
        raise HTTPException(
            status_code=400,
            detail="The redirect URL has no 'code'. Copy the whole address after logging in.",
        )
    return code


def _page(message: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(f"<body><p>{message}</p></body>", status_code=status_code)


@router.get("/auth-url")
def get_auth_url():
    """Consent URL for the Connect page, plus whether a token is already cached."""
    if not SPOTIFY_CLIENT_ID:
        return {"auth_url": None, "error": "SPOTIFY_CLIENT_ID not set", "logged_in": False}
    return {"auth_url": authorize_url(), "logged_in": get_spotify_client() is not None}


@router.get("/status")
def link_status(state: AppState = Depends(get_state)):
    """Whether the changer can reach Spotify, with the bridge's diagnostics line."""
    return {
        "logged_in": get_spotify_client() is not None,
        "diagnostics": state.bridge.diagnostics(),
    }


@router.get("/callback")
def spotify_callback(code: str | None = None):
    """OAuth redirect target: store the token, then return to the changer UI."""
    if not code:
        return _page("Missing authorization code. Start again from the Connect page.", 400)
    if not exchange_code_and_save_token(code):
        return _page("Could not link Spotify. See the changer logs.", 500)
    if CDCHANGER_WEB_ORIGIN:
        return RedirectResponse(url=f"{CDCHANGER_WEB_ORIGIN.rstrip('/')}/?spotify=linked", status_code=302)
    return _page("Spotify linked. Close this window and load some discs.")


@router.post("/complete-login")
def complete_login(body: CompleteLoginBody):
    """Finish linking by hand when the redirect page could not load."""
    if not exchange_code_and_save_token(_code_from(body)):
        raise HTTPException(
            status_code=502,
            detail="Token exchange failed. Check SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET and the redirect URI.",
        )
    return {"ok": True, "message": "Spotify linked."}


@router.post("/logout")
def logout():
    """Unlink: the changer reports NotAuthorized until the next login."""
    try:
        removed = forget_token()
    except OSError as e:
        logger.warning("Could not remove Spotify token: %s", e)
        raise HTTPException(status_code=500, detail="Could not remove the stored token.")
    return {"ok": True, "removed": removed}
