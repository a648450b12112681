"""
Chat Handler
============

Socket.IO events for live messaging between a customer and a provider.
Messages sent over the socket go through ``conversationService`` exactly
like the HTTP route, so both paths share validation and unread-counter
updates.

Every committed message insert, whichever path wrote it, is pushed to the
``conversation_{id}`` room by a change-feed listener registered at import.
The ``client_ref`` generated by the sending tab travels with the message so
the sender can swap its optimistic entry for the stored one.

Conversation inserts and updates go to both participants' personal rooms
with that side's unread count, which drives the navbar badge.

Events received FROM clients:
  chat:send_message   { conversation_id, message, client_ref? }
  chat:typing         { conversation_id }

Events emitted TO clients:
  chat:new_message    { id, conversation_id, sender_id, message, client_ref, created_at }
  chat:conversation_updated { conversation_id, last_message, last_message_at, unread_count }
  chat:user_typing    { conversation_id, user_id }
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from truelocal.api.deps import async_session_factory
from truelocal.models import UserType, role_column
from truelocal.realtime.changeFeed import (
    ChangeEvent,
    ChangeType,
    change_feed,
    dispatch_staged,
    discard_staged,
    serialize_row,
)
from truelocal.services import conversationService

from ..socketServer import broadcast_to_conversation, get_sid_meta, send_to_user, sio

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Change-feed listener: message inserts -> conversation room
# ---------------------------------------------------------------------------

async def _on_message_inserted(change: ChangeEvent) -> None:
    record = change.record
    await broadcast_to_conversation(
        record["conversation_id"],
        "chat:new_message",
        {
            "id": record["id"],
            "conversation_id": record["conversation_id"],
            "sender_id": record["sender_id"],
            "message": record["message"],
            "client_ref": record.get("client_ref"),
            "created_at": record["created_at"],
        },
    )


message_subscription = change_feed.subscribe(
    "messages", _on_message_inserted, events=[ChangeType.INSERT],
)


# ---------------------------------------------------------------------------
# Change-feed listener: conversation changes -> both participants
# ---------------------------------------------------------------------------

async def _on_conversation_changed(change: ChangeEvent) -> None:
    record = change.record
    for user_type in (UserType.CUSTOMER, UserType.PROVIDER):
        await send_to_user(
            record[role_column(user_type)],
            user_type.value,
            "chat:conversation_updated",
            {
                "conversation_id": record["id"],
                "last_message": record["last_message"],
                "last_message_at": record["last_message_at"],
                "unread_count": record[f"{user_type.value}_unread"],
            },
        )


conversation_subscription = change_feed.subscribe(
    "conversations", _on_conversation_changed, events=[ChangeType.INSERT, ChangeType.UPDATE],
)


# ---------------------------------------------------------------------------
# Inbound event handlers
# ---------------------------------------------------------------------------

@sio.on("chat:send_message")
async def handle_send_message(sid: str, data: dict[str, Any]) -> dict[str, Any]:
    """Persist a chat message sent over the socket.

    Payload: {
        "conversation_id": "<uuid>",
        "message": "<string>",
        "client_ref": "<client-generated id>"    (optional)
    }

    On success the message is stored, the recipient's unread counter is
    bumped and the ack carries the stored message with its ``client_ref``.
    The room broadcast follows from the change feed once committed.
    """
    meta = get_sid_meta(sid)
    if not meta:
        return {"ok": False, "error": "Not authenticated"}

    data = data or {}
    conversation_id = data.get("conversation_id")
    client_ref = data.get("client_ref")
    if not conversation_id:
        return {"ok": False, "error": "conversation_id is required"}
    if client_ref is not None and (not isinstance(client_ref, str) or len(client_ref) > 64):
        return {"ok": False, "error": "client_ref must be a string of at most 64 characters"}

    try:
        conversation_uuid = uuid.UUID(conversation_id)
        sender_uuid = uuid.UUID(meta["user_id"])
    except (ValueError, TypeError, AttributeError):
        return {"ok": False, "error": "conversation_id is malformed"}

    async with async_session_factory() as db:
        try:
            message = await conversationService.send_message(
                db,
                conversation_uuid,
                sender_uuid,
                data.get("message", ""),
                client_ref=client_ref,
            )
            stored = serialize_row(message)
            await db.commit()
        except conversationService.ConversationError as exc:
            await db.rollback()
            discard_staged(db)
            return {"ok": False, "error": str(exc)}
        except Exception:
            await db.rollback()
            discard_staged(db)
            logger.exception("Failed to persist chat message for conversation=%s", conversation_id)
            return {"ok": False, "error": "Failed to save message"}
        await dispatch_staged(db)

    logger.info(
        "Chat message sent over socket: conversation=%s sender=%s",
        conversation_id, meta["user_id"],
    )
    return {"ok": True, "message": stored, "client_ref": client_ref}


@sio.on("chat:typing")
async def handle_typing(sid: str, data: dict[str, Any]) -> dict[str, Any]:
    """Relay a typing indicator to the other people in the conversation.

    Payload: { "conversation_id": "<uuid>" }

    No persistence; only sockets that have joined the room can relay.
    """
    meta = get_sid_meta(sid)
    if not meta:
        return {"ok": False, "error": "Not authenticated"}

    conversation_id = (data or {}).get("conversation_id")
    if not conversation_id:
        return {"ok": False, "error": "conversation_id is required"}
    if f"conversation_{conversation_id}" not in sio.rooms(sid):
        return {"ok": False, "error": "Join the conversation first"}

    await broadcast_to_conversation(
        conversation_id,
        "chat:user_typing",
        {"conversation_id": conversation_id, "user_id": meta["user_id"]},
        skip_sid=sid,
    )
    return {"ok": True}
