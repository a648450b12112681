"""
WebSocket Server
================

Socket.IO server for the TrueLocal web client.  Pushes database changes to
open views (dashboard, listings, bookings, navbar unread badge, chat) and
carries live chat messages.

Architecture:
  - python-socketio AsyncServer mounted as an ASGI app on FastAPI
  - Redis client manager for fan-out across server processes (optional)
  - JWT authentication on connect; the profile row supplies the user type
  - Room-based routing: ``{user_type}_{user_id}``, ``conversation_{id}``
  - Per-socket change-feed subscriptions forwarded as ``db:change``

Room emits (chat messages, conversation updates) go through the client
manager, so with Redis they reach sockets held by any worker.  ``subscribe``
is different: the change feed lives in one process, so a socket only sees
``db:change`` events for writes committed by the worker it is connected to.
Run a single worker, or use sticky sessions and treat ``db:change`` as a
hint to refetch.

Connection lifecycle:
  1. Client connects with ``auth: { token: "<jwt>" }``
  2. Server validates the JWT and loads the caller's profile
  3. Server joins the socket to its personal room
  4. Client joins conversation rooms and subscribes to table changes
  5. On disconnect every subscription held by the socket is dropped
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import socketio

from truelocal.api.deps import async_session_factory
from truelocal.core.config import settings
from truelocal.models import UserType, role_column
from truelocal.services import auth_service

from .changeFeed import ChangeEvent, Subscription, change_feed

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Socket.IO server instance
# ---------------------------------------------------------------------------

def _build_client_manager() -> socketio.AsyncManager | None:
    """Redis-backed manager when ``redis_url`` is set, else in-process."""
    if not settings.redis_url:
        return None
    return socketio.AsyncRedisManager(settings.redis_url, write_only=False)


sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.ws_cors_allowed_origins,
    client_manager=_build_client_manager(),
    logger=False,
    engineio_logger=False,
    ping_timeout=settings.ws_ping_timeout,
    ping_interval=settings.ws_ping_interval,
    max_http_buffer_size=1_000_000,  # 1 MB
)


# ---------------------------------------------------------------------------
# Connection registry: sid -> meta, and sid -> change-feed subscriptions
# opened by that socket.
# ---------------------------------------------------------------------------

_sid_meta: dict[str, dict[str, Any]] = {}
_sid_subscriptions: dict[str, dict[str, Subscription]] = {}

# Tables a client may subscribe to, and the columns it may filter on
SUBSCRIBABLE_TABLES: dict[str, frozenset[str]] = {
    "bookings": frozenset({"customer_id", "provider_id"}),
    "services": frozenset({"provider_id"}),
    "conversations": frozenset({"customer_id", "provider_id"}),
    "messages": frozenset({"conversation_id"}),
    "reviews": frozenset({"customer_id", "provider_id"}),
}


def get_sid_meta(sid: str) -> dict[str, Any] | None:
    """Return the metadata dict for a given session ID."""
    return _sid_meta.get(sid)


def _register_connection(sid: str, user_id: str, meta: dict[str, Any]) -> None:
    """Track a new connection in the in-process registry."""
    _sid_meta[sid] = {**meta, "user_id": user_id}


def _unregister_connection(sid: str) -> str | None:
    """Remove a connection and its subscriptions.  Returns the user_id or None."""
    for sub in _sid_subscriptions.pop(sid, {}).values():
        sub.unsubscribe()
    meta = _sid_meta.pop(sid, None)
    if meta is None:
        return None
    return meta["user_id"]


# ---------------------------------------------------------------------------
# JWT authentication helper
# ---------------------------------------------------------------------------

async def _authenticate_token(token: str | None) -> dict[str, Any] | None:
    """Validate a JWT and return ``{user_id, user_type}``, or None on failure."""
    if not token:
        return None
    try:
        async with async_session_factory() as db:
            profile = await auth_service.get_current_profile(db, token)
    except ValueError as exc:
        logger.warning("Socket authentication failed: %s", exc)
        return None
    return {"user_id": str(profile.id), "user_type": UserType(profile.user_type).value}


# ---------------------------------------------------------------------------
# Connect / disconnect
# ---------------------------------------------------------------------------

@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: dict[str, Any] | None = None) -> bool:
    """Authenticate the connection and register the user.

    The client must provide ``auth: { token: "<jwt>" }`` on connect.
    Returns ``False`` to reject unauthenticated connections.
    """
    token = (auth or {}).get("token")
    identity = await _authenticate_token(token)

    if identity is None:
        logger.info("Connection rejected for sid=%s -- authentication failed", sid)
        return False

    user_id = identity["user_id"]
    user_type = identity["user_type"]
    _register_connection(sid, user_id, {"user_type": user_type})

    personal_room = user_room(user_id, user_type)
    await sio.enter_room(sid, personal_room)

    logger.info(
        "Connected: sid=%s user_id=%s user_type=%s room=%s",
        sid, user_id, user_type, personal_room,
    )
    return True


@sio.event
async def disconnect(sid: str) -> None:
    """Drop the socket's rooms, registry entry and change subscriptions."""
    user_id = _unregister_connection(sid)
    if user_id:
        logger.info("Disconnected: sid=%s user_id=%s", sid, user_id)
    else:
        logger.info("Disconnected: sid=%s (no registered user)", sid)


# ---------------------------------------------------------------------------
# Room management events (client-initiated)
# ---------------------------------------------------------------------------

def user_room(user_id: str | uuid.UUID, user_type: str) -> str:
    return f"{user_type}_{user_id}"


def conversation_room(conversation_id: str | uuid.UUID) -> str:
    return f"conversation_{conversation_id}"


@sio.on("join_conversation")
async def handle_join_conversation(sid: str, data: dict[str, Any]) -> dict[str, Any]:
    """Client opens a chat view.

    Payload: { "conversation_id": "<uuid>" }
    """
    meta = get_sid_meta(sid)
    if not meta:
        return {"ok": False, "error": "Not authenticated"}
    conversation_id = (data or {}).get("conversation_id")
    if not conversation_id:
        return {"ok": False, "error": "conversation_id is required"}

    from truelocal.services import conversationService

    try:
        async with async_session_factory() as db:
            conversation = await conversationService.get_conversation(
                db, uuid.UUID(conversation_id),
            )
    except (ValueError, TypeError, AttributeError):
        return {"ok": False, "error": "conversation_id is malformed"}
    if conversation is None:
        return {"ok": False, "error": "Conversation not found"}
    if meta["user_id"] not in (str(conversation.customer_id), str(conversation.provider_id)):
        return {"ok": False, "error": "You are not a participant in this conversation"}

    room = conversation_room(conversation_id)
    await sio.enter_room(sid, room)
    logger.info("sid=%s joined room %s", sid, room)
    return {"ok": True, "room": room}


@sio.on("leave_conversation")
async def handle_leave_conversation(sid: str, data: dict[str, Any]) -> dict[str, Any]:
    """Client closes a chat view."""
    conversation_id = (data or {}).get("conversation_id")
    if not conversation_id:
        return {"ok": False, "error": "conversation_id is required"}
    room = conversation_room(conversation_id)
    await sio.leave_room(sid, room)
    logger.info("sid=%s left room %s", sid, room)
    return {"ok": True, "room": room}


# ---------------------------------------------------------------------------
# Change-feed subscriptions (client-initiated)
# ---------------------------------------------------------------------------

def _allowed_filter(meta: dict[str, Any], table: str, column: str, value: str) -> bool:
    """A socket may only watch rows scoped to itself.

    Role-scoped tables must be filtered on the caller's own id in its own
    role column.  Messages are scoped by conversation; the client must have
    joined that conversation's room first.
    """
    if column not in SUBSCRIBABLE_TABLES.get(table, frozenset()):
        return False
    if table == "messages":
        return True
    if table == "services":
        return value == meta["user_id"]
    return column == role_column(meta["user_type"]) and value == meta["user_id"]


@sio.on("subscribe")
async def handle_subscribe(sid: str, data: dict[str, Any]) -> dict[str, Any]:
    """Start forwarding changes on one table to this socket.

    Payload: { "table": "bookings", "column": "provider_id", "value": "<uuid>",
               "events": ["INSERT", "UPDATE"] (optional) }

    Each matching change is emitted to the socket as ``db:change`` with the
    returned ``subscription_id``.
    """
    meta = get_sid_meta(sid)
    if not meta:
        return {"ok": False, "error": "Not authenticated"}

    data = data or {}
    table = data.get("table")
    column = data.get("column")
    value = str(data.get("value") or "")
    if table not in SUBSCRIBABLE_TABLES:
        return {"ok": False, "error": f"Unknown table '{table}'"}
    if not column or not value or not _allowed_filter(meta, table, column, value):
        return {"ok": False, "error": "Subscription filter not permitted"}
    if table == "messages" and conversation_room(value) not in sio.rooms(sid):
        return {"ok": False, "error": "Join the conversation before subscribing"}

    async def forward(change: ChangeEvent) -> None:
        await sio.emit(
            "db:change",
            {"subscription_id": sub.id, **change.to_payload()},
            to=sid,
        )

    try:
        sub = change_feed.subscribe(
            table, forward, column=column, value=value, events=data.get("events"),
        )
    except ValueError as exc:
        return {"ok": False, "error": str(exc)}

    _sid_subscriptions.setdefault(sid, {})[sub.id] = sub
    logger.info("sid=%s subscribed to %s where %s=%s", sid, table, column, value)
    return {"ok": True, "subscription_id": sub.id}


@sio.on("unsubscribe")
async def handle_unsubscribe(sid: str, data: dict[str, Any]) -> dict[str, Any]:
    """Stop a subscription opened by this socket.  Unknown ids are ignored."""
    subscription_id = (data or {}).get("subscription_id")
    if not subscription_id:
        return {"ok": False, "error": "subscription_id is required"}
    sub = _sid_subscriptions.get(sid, {}).pop(subscription_id, None)
    if sub is not None:
        sub.unsubscribe()
    return {"ok": True}


# ---------------------------------------------------------------------------
# High-level broadcast helpers (used by handlers and services)
# ---------------------------------------------------------------------------

async def broadcast_to_conversation(
    conversation_id: str | uuid.UUID,
    event: str,
    data: dict[str, Any],
    *,
    skip_sid: str | None = None,
) -> None:
    """Send an event to every client viewing a conversation."""
    room = conversation_room(conversation_id)
    await sio.emit(event, data, room=room, skip_sid=skip_sid)
    logger.debug("Broadcast %s to room=%s", event, room)


async def send_to_user(
    user_id: str | uuid.UUID,
    user_type: str,
    event: str,
    data: dict[str, Any],
) -> None:
    """Send an event to every tab a user has open in the given role."""
    room = user_room(user_id, user_type)
    await sio.emit(event, data, room=room)
    logger.debug("Sent %s to room=%s", event, room)


# ---------------------------------------------------------------------------
# ASGI app for mounting onto FastAPI
# ---------------------------------------------------------------------------

socket_app = socketio.ASGIApp(
    socketio_server=sio,
    socketio_path="/ws/socket.io",
)
