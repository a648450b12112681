"""
Conversation Service
====================

Business logic for customer/provider messaging.  Handles conversation
creation, message persistence, per-role unread counters and the merge of
confirmed messages into a client's optimistic message list.

Business rules:
  - Exactly one conversation per (customer, provider) pair, enforced by a
    unique constraint.  A lost creation race resolves to the existing row.
  - Each side has its own unread counter; sending bumps the recipient's
    counter and marking as read zeroes only the caller's.
  - Max message length: 1000 characters.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from truelocal.models import Conversation, Message, UserType
from truelocal.realtime.changeFeed import ChangeType, serialize_row, stage_change

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConversationError(Exception):
    """Base exception for conversation service errors."""
    pass


class ConversationNotFoundError(ConversationError):
    """Raised when the conversation does not exist."""
    pass


class NotParticipantError(ConversationError):
    """Raised when the user is not a party to the conversation."""
    pass


class InvalidMessageError(ConversationError, ValueError):
    """Raised when a message body is empty or too long."""
    pass


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_MESSAGE_LENGTH: int = 1000


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _clean_text(text: str) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise InvalidMessageError("Message text is required")
    if len(cleaned) > MAX_MESSAGE_LENGTH:
        raise InvalidMessageError(
            f"Message exceeds maximum length of {MAX_MESSAGE_LENGTH} characters"
        )
    return cleaned


def _conversation_query():
    return select(Conversation).options(
        selectinload(Conversation.customer_profile),
        selectinload(Conversation.provider_profile),
        selectinload(Conversation.service),
    )


async def _reload(db: AsyncSession, conversation_id: uuid.UUID) -> Conversation:
    """Re-read a conversation after a bulk UPDATE, overwriting stale state."""
    result = await db.execute(
        _conversation_query()
        .where(Conversation.id == conversation_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def recipient_counter(conversation: Conversation, sender_id: uuid.UUID) -> str:
    """Name of the unread column to bump when ``sender_id`` sends."""
    if sender_id == conversation.customer_id:
        return "provider_unread"
    if sender_id == conversation.provider_id:
        return "customer_unread"
    raise NotParticipantError(
        f"User '{sender_id}' is not a participant in conversation '{conversation.id}'"
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_conversation(
    db: AsyncSession,
    conversation_id: uuid.UUID,
) -> Optional[Conversation]:
    result = await db.execute(_conversation_query().where(Conversation.id == conversation_id))
    return result.scalar_one_or_none()


async def _require_conversation(db: AsyncSession, conversation_id: uuid.UUID) -> Conversation:
    conversation = await get_conversation(db, conversation_id)
    if conversation is None:
        raise ConversationNotFoundError(f"Conversation '{conversation_id}' not found")
    return conversation


async def find_conversation(
    db: AsyncSession,
    customer_id: uuid.UUID,
    provider_id: uuid.UUID,
) -> Optional[Conversation]:
    stmt = _conversation_query().where(
        Conversation.customer_id == customer_id,
        Conversation.provider_id == provider_id,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_conversations(db: AsyncSession, user_id: uuid.UUID) -> List[Conversation]:
    """Every conversation the user is a party to, most recently active first."""
    stmt = (
        _conversation_query()
        .where(or_(Conversation.customer_id == user_id, Conversation.provider_id == user_id))
        .order_by(Conversation.updated_at.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_messages(db: AsyncSession, conversation_id: uuid.UUID) -> List[Message]:
    """Messages of a conversation in the order they were sent."""
    stmt = (
        select(Message)
        .options(selectinload(Message.sender_profile))
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

async def create_or_get_conversation(
    db: AsyncSession,
    customer_id: uuid.UUID,
    provider_id: uuid.UUID,
    service_id: Optional[uuid.UUID] = None,
    initial_message: Optional[str] = None,
    *,
    sender_id: Optional[uuid.UUID] = None,
) -> Conversation:
    """Return the pair's conversation, creating it if needed.

    When a new conversation is created with an ``initial_message``, the
    summary fields are seeded, the recipient's counter starts at 1 and the
    message is stored.  The sender defaults to the customer; pass the
    provider's id as ``sender_id`` to bump the customer's counter instead.
    An existing conversation is returned untouched.
    """
    if customer_id == provider_id:
        raise ConversationError("A user cannot open a conversation with themselves")

    existing = await find_conversation(db, customer_id, provider_id)
    if existing is not None:
        return existing

    text = _clean_text(initial_message) if initial_message is not None else None
    sender = sender_id or customer_id
    if sender not in (customer_id, provider_id):
        raise NotParticipantError(f"User '{sender}' cannot send in this conversation")

    now = datetime.now(timezone.utc)
    conversation = Conversation(
        customer_id=customer_id,
        provider_id=provider_id,
        service_id=service_id,
        last_message=text,
        last_message_at=now if text else None,
        customer_unread=1 if text and sender == provider_id else 0,
        provider_unread=1 if text and sender == customer_id else 0,
    )
    try:
        async with db.begin_nested():
            db.add(conversation)
            await db.flush()
    except IntegrityError:
        logger.info(
            "Conversation for customer=%s provider=%s created concurrently; reusing it",
            customer_id, provider_id,
        )
        winner = await find_conversation(db, customer_id, provider_id)
        if winner is None:
            raise
        return winner

    stage_change(db, "conversations", ChangeType.INSERT, serialize_row(conversation))

    if text:
        message = Message(
            conversation_id=conversation.id,
            sender_id=sender,
            message=text,
            created_at=now,
        )
        db.add(message)
        await db.flush()
        stage_change(db, "messages", ChangeType.INSERT, serialize_row(message))

    logger.info(
        "Conversation created: id=%s customer=%s provider=%s initial_message=%s",
        conversation.id, customer_id, provider_id, bool(text),
    )
    return await _reload(db, conversation.id)


async def send_message(
    db: AsyncSession,
    conversation_id: uuid.UUID,
    sender_id: uuid.UUID,
    text: str,
    *,
    client_ref: Optional[str] = None,
) -> Message:
    """Append a message and update the conversation summary.

    The summary fields and the recipient's unread counter are written in a
    single UPDATE so concurrent senders never lose an increment.
    """
    cleaned = _clean_text(text)
    conversation = await _require_conversation(db, conversation_id)
    counter = recipient_counter(conversation, sender_id)
    old = serialize_row(conversation)

    now = datetime.now(timezone.utc)
    message = Message(
        conversation_id=conversation_id,
        sender_id=sender_id,
        message=cleaned,
        client_ref=client_ref,
        created_at=now,
    )
    db.add(message)
    await db.flush()

    column = getattr(Conversation, counter)
    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values({
            Conversation.last_message: cleaned,
            Conversation.last_message_at: now,
            column: column + 1,
        })
        .execution_options(synchronize_session=False)
    )
    conversation = await _reload(db, conversation_id)

    stage_change(db, "messages", ChangeType.INSERT, serialize_row(message))
    stage_change(db, "conversations", ChangeType.UPDATE, serialize_row(conversation), old)
    logger.info(
        "Message sent: conversation=%s sender=%s len=%d",
        conversation_id, sender_id, len(cleaned),
    )

    await db.refresh(message, attribute_names=["sender_profile"])
    return message


async def mark_as_read(
    db: AsyncSession,
    conversation_id: uuid.UUID,
    user_id: uuid.UUID,
    user_type: UserType | str,
) -> Conversation:
    """Zero the caller's own unread counter.  The other side's is untouched."""
    conversation = await _require_conversation(db, conversation_id)
    role = UserType(user_type)
    if role is UserType.CUSTOMER:
        owner_id, column = conversation.customer_id, Conversation.customer_unread
    else:
        owner_id, column = conversation.provider_id, Conversation.provider_unread
    if owner_id != user_id:
        raise NotParticipantError(
            f"User '{user_id}' is not the {role.value} of conversation '{conversation_id}'"
        )

    old = serialize_row(conversation)
    await db.execute(
        update(Conversation)
        .where(Conversation.id == conversation_id)
        .values({column: 0})
        .execution_options(synchronize_session=False)
    )
    conversation = await _reload(db, conversation_id)

    stage_change(db, "conversations", ChangeType.UPDATE, serialize_row(conversation), old)
    logger.debug("Conversation %s marked read by %s", conversation_id, role.value)
    return conversation


# ---------------------------------------------------------------------------
# Client-side merge
# ---------------------------------------------------------------------------

def reconcile_messages(
    local: Sequence[Mapping[str, Any]],
    incoming: Mapping[str, Any],
) -> List[dict[str, Any]]:
    """Merge a confirmed message into a locally held message list.

    An optimistic entry carrying the same ``client_ref`` is replaced in
    place; an entry with the same ``id`` is replaced (duplicate echo);
    anything else is appended.
    """
    merged = [dict(m) for m in local]
    ref = incoming.get("client_ref")
    msg_id = incoming.get("id")

    for i, existing in enumerate(merged):
        if ref and existing.get("client_ref") == ref:
            merged[i] = dict(incoming)
            return merged
        if msg_id is not None and existing.get("id") == msg_id:
            merged[i] = dict(incoming)
            return merged

    merged.append(dict(incoming))
    return merged
