"""Turn changer outcomes into HTTP responses."""
from concurrent.futures import Future, TimeoutError
from typing import Any

from fastapi import HTTPException

from cdchanger.core.bridge import Outcome
from cdchanger.core.changer import Changer
from cdchanger.core.errors import ContentNotFound, EnvironmentUnavailable
from cdchanger.core.mode_engine import AdvanceStatus

BRIDGE_TIMEOUT_SEC = 30.0


def wait(future: Future) -> Any:
    """Block the route's worker thread until the bridge call has been applied."""
    try:
        return future.result(timeout=BRIDGE_TIMEOUT_SEC)
    except TimeoutError:
        raise HTTPException(status_code=504, detail="The music player did not answer in time.")


def respond(changer: Changer, outcome: Outcome) -> dict:
    """{"ok": True, "status": ...} or an HTTPException carrying the status line."""
    status = changer.status_message
    if outcome.ok:
        if isinstance(outcome.value, AdvanceStatus) and outcome.value.no_eligible_target:
            raise HTTPException(status_code=409, detail=outcome.value.message)
        return {"ok": True, "status": status}
    error = outcome.error
    if isinstance(error, EnvironmentUnavailable):
        code = 503
    elif isinstance(error, ContentNotFound):
        code = 404
    else:
        code = 502
    raise HTTPException(status_code=code, detail=status or str(error))
