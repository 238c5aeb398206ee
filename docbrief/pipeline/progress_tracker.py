"""Processing progress tracking with fire-and-continue listener notification.

Tracks the latest :class:`ProgressEvent` for each processing session and
broadcasts every update to the listeners registered for that session.

# ─── HOW PROGRESS TRACKING WORKS ──────────────────────────────────────
#
# Observer pattern:
#
#   Orchestrator ──update()──→ ProgressTracker ──callback(event)──→ WebSocket handler
#                                              ──→ (any other listener)
#
#   - Every session belongs to one owner.  ``claim_session`` binds a
#     session id to the first owner that asks for it (a websocket opened
#     before upload); ``start_session`` additionally refuses an id that
#     already carries events, so a batch never inherits another batch's
#     progress.
#   - Listeners are keyed by session_id, so concurrent batches never see
#     each other's events.
#   - Synchronous listeners run inline; an exception is logged and the
#     remaining listeners still run.
#   - Asynchronous listeners are scheduled as background tasks and are
#     NOT awaited, so a slow client cannot stall the pipeline.  Their
#     failures are logged from a done-callback.  ``drain()`` awaits
#     whatever is still pending (tests, shutdown).
#   - ``percent`` is clamped to [0, 100] and never decreases within a
#     session.
#   - Session owners and events live in ``TTLCache``s; a session idle for
#     ``session_ttl_seconds`` is forgotten.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable
from typing import Any

import structlog
from cachetools import TTLCache

from docbrief.models.pipeline import ProgressEvent, ProgressStage
from docbrief.utils.errors import ValidationError
from docbrief.utils.logging import get_logger

ProgressListener = Callable[[ProgressEvent], Any]


class ProgressTracker:
    """Tracks and broadcasts processing progress via callbacks.

    Parameters
    ----------
    session_ttl_seconds:
        How long a session is remembered after its last update or claim.
    max_sessions:
        Upper bound on remembered sessions; the oldest are evicted first.
    timer:
        Clock for the TTL caches (tests pass a controllable one).
    """

    def __init__(
        self,
        session_ttl_seconds: float = 3600.0,
        max_sessions: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._events: TTLCache[str, ProgressEvent] = TTLCache(
            maxsize=max_sessions, ttl=session_ttl_seconds, timer=timer
        )
        self._owners: TTLCache[str, str] = TTLCache(
            maxsize=max_sessions, ttl=session_ttl_seconds, timer=timer
        )
        self._listeners: dict[str, list[ProgressListener]] = {}
        self._pending: set[asyncio.Task[Any]] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def claim_session(self, session_id: str, owner_id: str) -> bool:
        """Bind *session_id* to *owner_id* unless another owner holds it."""
        current = self._owners.get(session_id)
        if current is not None and current != owner_id:
            return False
        self._owners[session_id] = owner_id
        return True

    def start_session(self, session_id: str, owner_id: str) -> None:
        """Reserve *session_id* for a new batch run by *owner_id*.

        Raises
        ------
        ValidationError
            If the id already carries progress or belongs to another owner.
        """
        if session_id in self._events or not self.claim_session(session_id, owner_id):
            raise ValidationError(message=f"Session id already in use: {session_id}")

    def owns(self, session_id: str, owner_id: str) -> bool:
        return self._owners.get(session_id) == owner_id

    @property
    def session_count(self) -> int:
        """Number of sessions currently remembered."""
        self._owners.expire()
        self._events.expire()
        return len(set(self._owners) | set(self._events))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        session_id: str,
        stage: ProgressStage,
        percent: float,
        message: str = "",
        *,
        document_id: str | None = None,
        error: str | None = None,
    ) -> ProgressEvent:
        """Record a progress update and notify the session's listeners.

        Parameters
        ----------
        session_id:
            The processing session to update.
        stage:
            Current stage of the document that triggered the update.
        percent:
            Batch completion percentage.  Lower values than the last
            recorded one are raised to it.
        message:
            Human-readable status message.
        document_id, error:
            Optional context carried on the event.

        Returns
        -------
        ProgressEvent
            The event as broadcast.
        """
        percent = max(0.0, min(100.0, percent))
        previous = self._events.get(session_id)
        if previous is not None:
            percent = max(percent, previous.percent)

        event = ProgressEvent(
            session_id=session_id,
            stage=stage,
            percent=percent,
            message=message,
            document_id=document_id,
            error=error,
        )
        self._events[session_id] = event
        owner_id = self._owners.get(session_id)
        if owner_id is not None:
            self._owners[session_id] = owner_id

        self._logger.debug(
            "progress_update",
            session_id=session_id,
            stage=stage.value,
            percent=round(percent, 1),
            document_id=document_id,
        )
        self._notify_listeners(event)
        return event

    def register_listener(self, session_id: str, callback: ProgressListener) -> None:
        """Register a sync or async callable receiving each :class:`ProgressEvent`."""
        listeners = self._listeners.setdefault(session_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                session_id=session_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, session_id: str, callback: ProgressListener) -> None:
        listeners = self._listeners.get(session_id, [])
        if callback in listeners:
            listeners.remove(callback)
        if not listeners:
            self._listeners.pop(session_id, None)

    def get_status(
        self, session_id: str, owner_id: str | None = None
    ) -> ProgressEvent | None:
        """Return the latest event for *session_id*, or ``None`` if unseen.

        With *owner_id*, a session bound to any other owner (or to none)
        is reported as unseen.
        """
        if owner_id is not None and not self.owns(session_id, owner_id):
            return None
        return self._events.get(session_id)

    async def drain(self) -> None:
        """Wait for every scheduled asynchronous listener call to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _notify_listeners(self, event: ProgressEvent) -> None:
        for callback in list(self._listeners.get(event.session_id, [])):
            name = getattr(callback, "__name__", repr(callback))
            try:
                result = callback(event)
            except Exception as exc:  # noqa: BLE001 -- listener faults stay out of the pipeline
                self._logger.warning(
                    "listener_callback_error",
                    session_id=event.session_id,
                    error=str(exc),
                    callback=name,
                )
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._make_done_callback(event.session_id, name))

    def _make_done_callback(
        self, session_id: str, name: str
    ) -> Callable[[asyncio.Task[Any]], None]:
        def _done(task: asyncio.Task[Any]) -> None:
            self._pending.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                self._logger.warning(
                    "listener_callback_error",
                    session_id=session_id,
                    error=str(exc),
                    callback=name,
                )

        return _done
