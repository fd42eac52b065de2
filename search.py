# search.py
"""Debounced, cancellable search pipeline.

Keystrokes go into a ``DebounceGate``; each settled query becomes a
``SearchSession`` run by the ``SearchCoordinator``. Sessions are numbered by
generation and only the newest one may write into the ``ResultStore``, so a
slow response for an old query never replaces the results of a newer one.
"""
import asyncio
import itertools
import logging
import threading
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from config import Config
from models import DisplayItem, HistoryEntry, HistoryLimit, Query, SearchResult, SessionState

logger = logging.getLogger(__name__)


class DebounceGate:
    """Collapses rapid text updates into one settled value per quiet period."""

    def __init__(self, on_settled: Callable[[str], object], delay: float = Config.DEBOUNCE_SECONDS,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.on_settled = on_settled
        self.delay = delay
        self._loop = loop
        self._ticket = 0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending_text: Optional[str] = None
        self._last_settled: Optional[str] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def last_settled(self) -> Optional[str]:
        return self._last_settled

    def update(self, text: str) -> None:
        """Restarts the quiet period with ``text`` as the pending value."""
        loop = self._loop or asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._ticket += 1
        self._pending_text = text
        self._handle = loop.call_later(self.delay, self._fire, self._ticket)

    def _fire(self, ticket: int) -> None:
        # An older timer that escaped cancellation must not fire.
        if ticket != self._ticket:
            return
        self._handle = None
        text, self._pending_text = self._pending_text, None
        if text is None or text == self._last_settled:
            return
        self._last_settled = text
        self.on_settled(text)

    def flush(self) -> None:
        """Settles the pending text right away."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire(self._ticket)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._ticket += 1
        self._handle = None
        self._pending_text = None


class CancellationToken:
    """A cancel flag shared between the event loop and worker threads."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class SearchSession:
    """One history + backend round trip for a settled query."""

    def __init__(self, query: Query):
        self.query = query
        self.token = CancellationToken()
        self.state = SessionState.PENDING
        self.task: Optional[asyncio.Task] = None
        self.search_failed = False

    @property
    def generation(self) -> int:
        return self.query.generation

    @property
    def done(self) -> bool:
        return self.state is not SessionState.PENDING

    def mark(self, state: SessionState) -> None:
        if self.state is SessionState.PENDING:
            self.state = state

    def cancel(self) -> None:
        self.token.cancel()
        self.mark(SessionState.CANCELLED)
        if self.task is not None and not self.task.done():
            self.task.cancel()

    def __repr__(self) -> str:
        return f"<SearchSession g={self.generation} {self.query.text!r} {self.state.value}>"


class ResultStore:
    """The current result list; replaced whole, read as an immutable snapshot."""

    def __init__(self):
        self._lock = threading.Lock()
        self._items: Tuple[DisplayItem, ...] = ()
        self._generation = 0

    def replace(self, items: Iterable[DisplayItem], generation: Optional[int] = None) -> None:
        items = tuple(items)
        with self._lock:
            self._items = items
            if generation is not None:
                self._generation = generation

    def snapshot(self) -> Tuple[DisplayItem, ...]:
        with self._lock:
            return self._items

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def __len__(self) -> int:
        return len(self.snapshot())


def filter_history(entries: Sequence[HistoryEntry], text: str) -> List[HistoryEntry]:
    """Keeps entries whose title or label contains every term of ``text``."""
    terms = text.lower().split()
    if not terms:
        return list(entries)
    matches = []
    for entry in entries:
        haystack = f"{entry.title} {entry.accessibility_label}".lower()
        if all(term in haystack for term in terms):
            matches.append(entry)
    return matches


def merge_results(live: Optional[SearchResult], history: Sequence[HistoryEntry]) -> List[DisplayItem]:
    items = []
    if live is not None:
        items.append(DisplayItem.from_result(live, source="search"))
    for entry in history:
        if live is not None and entry.video_id == live.video_id:
            continue
        items.append(DisplayItem.from_result(entry.to_result(), source="history"))
    return items


class SearchCoordinator:
    """Turns settled queries into sessions and applies only the newest result."""

    def __init__(self, backends, history_store, settings, store: Optional[ResultStore] = None,
                 on_results_changed: Optional[Callable[[int], None]] = None, searcher=None,
                 show_live_without_history: bool = Config.SHOW_LIVE_RESULT_WITHOUT_HISTORY):
        self.backends = backends
        self.history_store = history_store
        self.settings = settings
        self.store = store if store is not None else ResultStore()
        self.on_results_changed = on_results_changed
        self.searcher = searcher
        self.show_live_without_history = show_live_without_history
        self._generations = itertools.count(1)
        self._generation = 0
        self._applied_generation = 0
        self._last_text: Optional[str] = None
        self._session: Optional[SearchSession] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def current_session(self) -> Optional[SearchSession]:
        return self._session

    def on_settled(self, text: str) -> Optional[SearchSession]:
        if text == self._last_text:
            logger.debug("Ignoring repeated query %r", text)
            return None
        self._last_text = text
        return self._start(text)

    def refresh(self) -> Optional[SearchSession]:
        """Runs the last settled query again as a new generation."""
        if self._last_text is None:
            return None
        return self._start(self._last_text)

    def _start(self, text: str) -> SearchSession:
        self._generation = next(self._generations)
        previous = self._session
        if previous is not None and not previous.done:
            previous.cancel()

        session = SearchSession(Query(text, self._generation))
        self._session = session
        session.task = asyncio.create_task(self._run(session))
        return session

    def _is_current(self, session: SearchSession) -> bool:
        return session.generation == self._generation and session.generation > self._applied_generation

    async def _run(self, session: SearchSession) -> None:
        text = session.query.text
        limit = self.settings.history_limit
        try:
            history, live = await asyncio.gather(
                self._load_history(session, text, limit),
                self._search(session, text),
            )
        except asyncio.CancelledError:
            session.mark(SessionState.CANCELLED)
            logger.debug("Cancelled %r", session)
            raise
        except Exception:
            session.mark(SessionState.FAILED)
            logger.exception("Search session %r failed", session)
            # Typing the same text again should retry a failed query.
            if session is self._session:
                self._last_text = None
            return

        if session.token.cancelled:
            session.mark(SessionState.CANCELLED)
            logger.debug("Discarding cancelled %r", session)
            return
        session.mark(SessionState.COMPLETED)
        if not self._is_current(session):
            logger.debug("Discarding stale %r (current generation %d)", session, self._generation)
            return

        if limit is HistoryLimit.NONE and not self.show_live_without_history:
            items = []
        else:
            items = merge_results(live, history)
        self._applied_generation = session.generation
        self.store.replace(items, session.generation)
        if self.on_results_changed is not None:
            self.on_results_changed(len(items))

    async def _load_history(self, session: SearchSession, text: str, limit: HistoryLimit) -> List[HistoryEntry]:
        if limit is HistoryLimit.NONE:
            return []
        try:
            entries = await asyncio.to_thread(self._read_history, session.token)
        except (IOError, ValueError) as e:
            logger.warning("Could not load history: %s", e)
            return []
        return filter_history(entries, text)

    def _read_history(self, token: CancellationToken) -> List[HistoryEntry]:
        if token.cancelled:
            return []
        return self.history_store.load()

    async def _search(self, session: SearchSession, text: str) -> Optional[SearchResult]:
        if not text:
            return None
        try:
            return await asyncio.to_thread(self._search_blocking, text, session.token)
        except Exception as e:
            session.search_failed = True
            logger.warning("Search for %r failed: %s", text, e)
            return None

    def _search_blocking(self, text: str, token: CancellationToken) -> Optional[SearchResult]:
        if token.cancelled:
            return None
        searcher = self.searcher or self.backends.get(self.settings.server_address)
        return searcher.search(text)

    def cancel(self) -> None:
        if self._session is not None and not self._session.done:
            self._session.cancel()

    async def wait(self) -> None:
        """Waits until the newest session has finished, whatever its outcome."""
        while self._session is not None and self._session.task is not None and not self._session.task.done():
            await asyncio.wait({self._session.task})
