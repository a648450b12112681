"""
Conversation API Routes
=======================

Endpoints for customer/provider messaging.

Routes:
  GET    /api/v1/conversations                  -- Caller's conversations
  POST   /api/v1/conversations                  -- Open or reuse a conversation
  GET    /api/v1/conversations/{id}/messages    -- Message history (participant)
  POST   /api/v1/conversations/{id}/messages    -- Send a message (participant)
  PATCH  /api/v1/conversations/{id}/read        -- Zero the caller's unread counter

Live delivery happens over Socket.IO (``chat:new_message``); these
endpoints are the durable path and share ``conversationService`` with the
socket handler.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, HTTPException, status

from truelocal.api.deps import CurrentUser, DBSession
from truelocal.api.schemas.conversation import (
    ConversationCreate,
    ConversationOut,
    MessageCreate,
    MessageOut,
)
from truelocal.models import Conversation, Profile, UserType
from truelocal.services import conversationService, profileService

router = APIRouter(prefix="/conversations", tags=["Conversations"])


def _http_error(exc: conversationService.ConversationError) -> HTTPException:
    if isinstance(exc, conversationService.ConversationNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, conversationService.NotParticipantError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


async def _get_participant_conversation(
    db, conversation_id: uuid.UUID, user: Profile,
) -> Conversation:
    conversation = await conversationService.get_conversation(db, conversation_id)
    if conversation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Conversation '{conversation_id}' not found",
        )
    if user.id not in (conversation.customer_id, conversation.provider_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a participant in this conversation",
        )
    return conversation


# ---------------------------------------------------------------------------
# GET / POST /api/v1/conversations
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=List[ConversationOut],
    summary="List the caller's conversations",
    description="Conversations on either side, most recently active first.",
)
async def list_conversations(
    db: DBSession,
    current_user: CurrentUser,
) -> List[ConversationOut]:
    conversations = await conversationService.get_conversations(db, current_user.id)
    return [ConversationOut.model_validate(c) for c in conversations]


@router.post(
    "",
    response_model=ConversationOut,
    summary="Open a conversation",
    description=(
        "Returns the existing conversation between the caller and "
        "``participantId`` or creates it. The caller's current account type "
        "decides which side they are on. ``initialMessage`` is only stored "
        "when the conversation is new."
    ),
)
async def open_conversation(
    body: ConversationCreate,
    db: DBSession,
    current_user: CurrentUser,
) -> ConversationOut:
    participant = await profileService.get_profile(db, body.participant_id)
    if participant is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User '{body.participant_id}' not found",
        )

    if current_user.user_type == UserType.PROVIDER:
        customer_id, provider_id = participant.id, current_user.id
    else:
        customer_id, provider_id = current_user.id, participant.id

    try:
        conversation = await conversationService.create_or_get_conversation(
            db,
            customer_id,
            provider_id,
            body.service_id,
            body.initial_message,
            sender_id=current_user.id,
        )
    except conversationService.ConversationError as exc:
        raise _http_error(exc)
    return ConversationOut.model_validate(conversation)


# ---------------------------------------------------------------------------
# GET / POST /api/v1/conversations/{conversation_id}/messages
# ---------------------------------------------------------------------------

@router.get(
    "/{conversation_id}/messages",
    response_model=List[MessageOut],
    summary="Message history",
    description="All messages of the conversation, oldest first.",
)
async def get_messages(
    conversation_id: uuid.UUID,
    db: DBSession,
    current_user: CurrentUser,
) -> List[MessageOut]:
    await _get_participant_conversation(db, conversation_id, current_user)
    messages = await conversationService.get_messages(db, conversation_id)
    return [MessageOut.model_validate(m) for m in messages]


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageOut,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
    description=(
        "Stores the message, updates the conversation summary and bumps the "
        "recipient's unread counter. ``clientRef`` is echoed back."
    ),
)
async def send_message(
    conversation_id: uuid.UUID,
    body: MessageCreate,
    db: DBSession,
    current_user: CurrentUser,
) -> MessageOut:
    try:
        message = await conversationService.send_message(
            db,
            conversation_id,
            current_user.id,
            body.message,
            client_ref=body.client_ref,
        )
    except conversationService.ConversationError as exc:
        raise _http_error(exc)
    return MessageOut.model_validate(message)


# ---------------------------------------------------------------------------
# PATCH /api/v1/conversations/{conversation_id}/read
# ---------------------------------------------------------------------------

@router.patch(
    "/{conversation_id}/read",
    response_model=ConversationOut,
    summary="Mark a conversation read",
    description="Zeroes the unread counter for the caller's current role only.",
)
async def mark_conversation_read(
    conversation_id: uuid.UUID,
    db: DBSession,
    current_user: CurrentUser,
) -> ConversationOut:
    try:
        conversation = await conversationService.mark_as_read(
            db, conversation_id, current_user.id, current_user.user_type,
        )
    except conversationService.ConversationError as exc:
        raise _http_error(exc)
    return ConversationOut.model_validate(conversation)
