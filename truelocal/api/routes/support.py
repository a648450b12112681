"""
Support Chat API Routes
=======================

  POST /api/v1/support/chat -- Ask the site assistant

Public endpoint.  The completion body is returned as-is so the widget can
read ``choices[0].message.content`` directly.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from truelocal.api.schemas.support import SupportChatRequest
from truelocal.services import supportChatService

router = APIRouter(prefix="/support", tags=["Support"])


@router.post(
    "/chat",
    summary="Ask the support assistant",
    description=(
        "Forwards the conversation, prefixed with the site system prompt, to "
        "the completion API. Any upstream failure yields 500 with "
        "``{\"error\": \"Failed to get response\"}``."
    ),
)
async def support_chat(body: SupportChatRequest) -> Any:
    try:
        return await supportChatService.complete(
            [turn.model_dump() for turn in body.messages],
        )
    except supportChatService.SupportChatError:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to get response"},
        )
