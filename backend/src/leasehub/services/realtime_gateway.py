"""Realtime Gateway: authenticated dashboard websockets.

Each socket is a ``RealtimeSession`` moving through
``connecting -> authenticating -> connected -> disconnected``.  Sessions are
indexed per user in a ``ConnectionRegistry`` that only the gateway writes.

Server -> client frames are ``{"type": <event>, "data": {...}}``.
Delivery is at-most-once: events for a user with no open session are
dropped, and a failed send drops that one session only.
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect

from leasehub.domain.enums import ConnectionState, RealtimeEvent
from leasehub.domain.errors import ConnectionRejectedError, PullTimeoutError
from leasehub.services.auth_service import decode_token
from leasehub.services.match_store import MatchStore, to_match_response

logger = logging.getLogger(__name__)

# 4401: application-defined close code in the policy-violation family
REJECT_CLOSE_CODE = 4401


class InvalidTransitionError(Exception):
    """Raised when a realtime session state transition is not allowed."""

    def __init__(self, current_state: ConnectionState, target_state: ConnectionState):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid transition from {current_state.value} to {target_state.value}"
        )


# ---------------------------------------------------------------------------
# Transition map: from_state -> allowed next states
# ---------------------------------------------------------------------------

C = ConnectionState

TRANSITION_MAP: dict[ConnectionState, set[ConnectionState]] = {
    C.CONNECTING: {C.AUTHENTICATING, C.DISCONNECTED},
    C.AUTHENTICATING: {C.CONNECTED, C.DISCONNECTED},
    C.CONNECTED: {C.DISCONNECTED},
    C.DISCONNECTED: set(),
}


class RealtimeSession:
    """One client socket and its lifecycle state."""

    def __init__(self, websocket: WebSocket, session_id: Optional[str] = None):
        self.websocket = websocket
        self.id = session_id or f"dash_{uuid.uuid4().hex[:8]}"
        self.state = ConnectionState.CONNECTING
        self.user_id: Optional[str] = None
        self.role: Optional[str] = None

    def transition(self, target: ConnectionState) -> None:
        if target not in TRANSITION_MAP[self.state]:
            raise InvalidTransitionError(self.state, target)
        self.state = target

    async def send_event(self, event: RealtimeEvent, data: dict) -> None:
        await self.websocket.send_json({"type": event.value, "data": data})


class ConnectionRegistry:
    """user_id -> {session_id: session}. Read-only outside the gateway."""

    def __init__(self):
        self._sessions: dict[str, dict[str, RealtimeSession]] = {}

    def _add(self, session: RealtimeSession) -> None:
        self._sessions.setdefault(session.user_id, {})[session.id] = session

    def _remove(self, session: RealtimeSession) -> None:
        user_sessions = self._sessions.get(session.user_id)
        if not user_sessions:
            return
        user_sessions.pop(session.id, None)
        if not user_sessions:
            del self._sessions[session.user_id]

    def is_user_connected(self, user_id: str) -> bool:
        return bool(self._sessions.get(user_id))

    def sessions_for(self, user_id: str) -> list[RealtimeSession]:
        return list(self._sessions.get(user_id, {}).values())

    def connection_count(self, user_id: Optional[str] = None) -> int:
        if user_id is not None:
            return len(self._sessions.get(user_id, {}))
        return sum(len(s) for s in self._sessions.values())


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def extract_token(websocket) -> Optional[str]:
    """Token from the ``accessToken`` cookie, ``?token=``, or a Bearer header."""
    token = websocket.cookies.get("accessToken")
    if token:
        return token
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    return None


class RealtimeGateway:
    """Accepts dashboard sockets and pushes per-user events."""

    def __init__(
        self,
        kpi_cache,
        session_factory,
        registry: Optional[ConnectionRegistry] = None,
        pull_timeout_seconds: float = 5.0,
        top_n: int = 10,
        token_decoder: Callable[[str], Optional[dict]] = decode_token,
    ):
        self.kpi_cache = kpi_cache
        self.session_factory = session_factory
        self.registry = registry or ConnectionRegistry()
        self.pull_timeout_seconds = pull_timeout_seconds
        self.top_n = top_n
        self._decode = token_decoder

    # ── Presence (read-only view of the registry) ──

    def is_user_connected(self, user_id: str) -> bool:
        return self.registry.is_user_connected(user_id)

    def connection_count(self, user_id: Optional[str] = None) -> int:
        return self.registry.connection_count(user_id)

    # ── Lifecycle ──

    def authenticate(self, token: Optional[str]) -> dict:
        """Return the token payload or raise ``ConnectionRejectedError``."""
        if not token:
            raise ConnectionRejectedError(ConnectionRejectedError.TOKEN_REQUIRED)
        payload = self._decode(token)
        if not payload or not payload.get("sub"):
            raise ConnectionRejectedError(ConnectionRejectedError.TOKEN_INVALID)
        return payload

    async def connect(self, websocket: WebSocket) -> Optional[RealtimeSession]:
        """Accept and authenticate. Returns None when the socket was rejected."""
        session = RealtimeSession(websocket)
        await websocket.accept()
        session.transition(ConnectionState.AUTHENTICATING)

        try:
            payload = self.authenticate(extract_token(websocket))
        except ConnectionRejectedError as e:
            logger.info("Rejected dashboard socket %s: %s", session.id, e.reason)
            await self._reject(session, e.reason)
            return None

        session.user_id = payload["sub"]
        session.role = payload.get("role")
        session.transition(ConnectionState.CONNECTED)
        self.registry._add(session)
        logger.info("Dashboard client connected: %s (user %s)", session.id, session.user_id)
        return session

    async def _reject(self, session: RealtimeSession, reason: str) -> None:
        try:
            await session.send_event(RealtimeEvent.CONNECTION_REJECTED, {"reason": reason})
            await session.websocket.close(code=REJECT_CLOSE_CODE, reason=reason)
        except Exception as e:
            logger.debug("Could not deliver rejection to %s: %s", session.id, e)
        session.transition(ConnectionState.DISCONNECTED)

    async def disconnect(self, session: RealtimeSession) -> None:
        if session.state == ConnectionState.DISCONNECTED:
            return
        self.registry._remove(session)
        session.transition(ConnectionState.DISCONNECTED)
        logger.info("Dashboard client disconnected: %s", session.id)

    # ── Push ──

    async def emit_to_user(self, user_id: str, event: RealtimeEvent, data: dict) -> int:
        """Send to every open session of *user_id*; returns how many got it."""
        delivered = 0
        for session in self.registry.sessions_for(user_id):
            try:
                await session.send_event(event, data)
                delivered += 1
            except Exception:
                logger.warning("Failed to send %s to %s, removing", event.value, session.id)
                await self.disconnect(session)
        return delivered

    # ── Pull ──

    async def current_state(self, user_id: str) -> dict:
        kpis = await self.kpi_cache.get(user_id)
        async with self.session_factory() as db:
            matches = await MatchStore(db).list_for_user(user_id, limit=self.top_n)
            top = [to_match_response(m).model_dump(mode="json") for m in matches]
        return {
            "timestamp": _timestamp(),
            "kpis": kpis.to_payload(),
            "matches": top,
        }

    async def pull_current_state(self, user_id: str) -> dict:
        try:
            return await asyncio.wait_for(
                self.current_state(user_id), timeout=self.pull_timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise PullTimeoutError(self.pull_timeout_seconds)

    async def handle_message(self, session: RealtimeSession, message: dict) -> None:
        msg_type = message.get("type")

        if msg_type == RealtimeEvent.PING.value:
            await session.send_event(RealtimeEvent.PONG, {"timestamp": _timestamp()})
        elif msg_type == RealtimeEvent.REQUEST_CURRENT_STATE.value:
            try:
                state = await self.pull_current_state(session.user_id)
            except PullTimeoutError as e:
                logger.warning("Current state pull timed out for %s", session.user_id)
                await session.send_event(
                    RealtimeEvent.ERROR,
                    {"code": "timeout", "message": str(e), "recoverable": True},
                )
                return
            await session.send_event(RealtimeEvent.RECONNECTED, state)
        else:
            logger.debug("Ignoring unknown message type from %s: %s", session.id, msg_type)

    async def serve(self, websocket: WebSocket) -> None:
        """Run one socket until the client goes away."""
        session = await self.connect(websocket)
        if session is None:
            return

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                if isinstance(message, dict):
                    await self.handle_message(session, message)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error("Dashboard WebSocket error for %s: %s", session.id, e)
        finally:
            await self.disconnect(session)
