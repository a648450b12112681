"""
Pydantic v2 schemas for the support chatbot proxy.
"""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(max_length=4000)


class SupportChatRequest(BaseModel):
    """The visitor's side of the conversation so far."""

    messages: List[ChatTurn] = Field(min_length=1, max_length=50)
