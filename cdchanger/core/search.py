"""Debounced album/playlist search with stale-result dropping."""
import logging
import threading
from concurrent.futures import Executor, Future
from typing import Callable, List

from cdchanger.config import SEARCH_DEBOUNCE_SEC, SEARCH_LIMIT, SEARCH_MIN_CHARS
from cdchanger.core.bridge import call_bridge
from cdchanger.core.errors import BridgeError
from cdchanger.models.disc import AlbumSuggestion

logger = logging.getLogger(__name__)


class DebouncedSearch:
    """Runs `search` for the latest query only, `delay` seconds after typing stops.

    Every submitted query gets a Future. A query superseded before its results
    are applied resolves to an empty list.
    """

    def __init__(
        self,
        search: Callable[[str, int], List[AlbumSuggestion]],
        executor: Executor,
        on_error: Callable[[BridgeError], None],
        lock: threading.RLock,
        delay: float = SEARCH_DEBOUNCE_SEC,
        limit: int = SEARCH_LIMIT,
    ) -> None:
        self._search = search
        self._executor = executor
        self._on_error = on_error
        self._lock = lock
        self._delay = delay
        self._limit = limit
        self._latest_query: str | None = None
        self._timer: threading.Timer | None = None
        self._pending: Future | None = None

    def submit(self, query: str) -> Future:
        trimmed = (query or "").strip()
        future: Future = Future()
        with self._lock:
            self._supersede()
            if len(trimmed) < SEARCH_MIN_CHARS:
                self._latest_query = None
                future.set_result([])
                return future
            self._latest_query = trimmed
            self._pending = future
            self._timer = threading.Timer(self._delay, self._fire, args=(trimmed, future))
            self._timer.daemon = True
            self._timer.start()
        return future

    def _supersede(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._pending is not None and not self._pending.done():
            self._pending.set_result([])
        self._pending = None

    def _fire(self, query: str, future: Future) -> None:
        with self._lock:
            if future.done() or query != self._latest_query:
                return
            self._timer = None
        self._executor.submit(self._run, query, future)

    def _run(self, query: str, future: Future) -> None:
        outcome = call_bridge(self._search, query, self._limit)
        with self._lock:
            if future.done():
                return
            if query != self._latest_query:
                logger.debug("Dropping stale search results for %r", query)
                future.set_result([])
                return
            if not outcome.ok:
                self._on_error(outcome.error)
                future.set_result([])
                return
            future.set_result(list(outcome.value or []))
