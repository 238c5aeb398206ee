"""WebSocket endpoint for real-time batch progress updates.

Connects a client to one processing session via the ``ProgressTracker``
listener mechanism.  Each :class:`~docbrief.models.pipeline.ProgressEvent`
is pushed as a JSON message.

# ─── HOW WEBSOCKET PROGRESS WORKS ─────────────────────────────────────
#
#   Client                                Backend (this file)
#   ──────                                ──────────────────
#   open /ws/progress/{sid}   ──────→   resolve bearer token → owner
#     ?token=... or                      claim_session(sid, owner)
#     Authorization: Bearer ...          websocket.accept()
#                                        register_listener(callback)
#                             ←──────   initial snapshot (if any)
#   POST /api/v1/documents
#     (session_id={sid})                 ...pipeline runs...
#                             ←──────   {"stage": "extracting", "percent": 10.0, ...}
#                             ←──────   {"stage": "complete", "percent": 100.0, ...}
#   close                     ──────→   WebSocketDisconnect
#                                        unregister_listener(callback)
#
# A missing or unknown token, or a session held by another owner, closes
# the handshake with 1008 before anything is sent.  Browsers cannot set
# headers on a websocket, hence the ``token`` query parameter.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import WebSocket, WebSocketDisconnect, status

from docbrief.interfaces.identity_resolver import IIdentityResolver
from docbrief.models.pipeline import ProgressEvent
from docbrief.pipeline.progress_tracker import ProgressTracker
from docbrief.utils.errors import AuthenticationError
from docbrief.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def event_payload(event: ProgressEvent) -> dict[str, Any]:
    """JSON body pushed to clients for one progress event."""
    return {
        "session_id": event.session_id,
        "stage": event.stage.value,
        "percent": round(event.percent, 1),
        "message": event.message,
        "document_id": event.document_id,
        "error": event.error,
        "timestamp": event.timestamp.isoformat(),
    }


def _bearer_token(websocket: WebSocket) -> str:
    scheme, _, token = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return websocket.query_params.get("token", "").strip()


async def websocket_progress(websocket: WebSocket, session_id: str) -> None:
    """Stream processing progress updates to the client over WebSocket.

    Parameters
    ----------
    websocket:
        The WebSocket connection managed by FastAPI / Starlette.
    session_id:
        The processing session to subscribe to.
    """
    progress_tracker: ProgressTracker = websocket.app.state.progress_tracker
    resolver: IIdentityResolver = websocket.app.state.identity_resolver

    try:
        owner_id = await resolver.resolve(_bearer_token(websocket))
    except AuthenticationError:
        _logger.warning("websocket_rejected", session_id=session_id, reason="auth")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    if not progress_tracker.claim_session(session_id, owner_id):
        _logger.warning("websocket_rejected", session_id=session_id, reason="foreign_session")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    _logger.info("websocket_connected", session_id=session_id, owner_id=owner_id)

    async def _on_progress(event: ProgressEvent) -> None:
        await websocket.send_json(event_payload(event))

    progress_tracker.register_listener(session_id, _on_progress)

    try:
        current = progress_tracker.get_status(session_id, owner_id=owner_id)
        if current is not None:
            await websocket.send_json(event_payload(current))

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", session_id=session_id)

    finally:
        progress_tracker.unregister_listener(session_id, _on_progress)
        _logger.debug("websocket_listener_cleaned_up", session_id=session_id)
