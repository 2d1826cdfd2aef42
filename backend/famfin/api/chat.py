"""
Chat API endpoints.

Conversations with the AI accountant, saved per household.
"""

import logging
from datetime import datetime
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from famfin.api.deps import get_user_id
from famfin.api.documents import get_document_service
from famfin.database import get_session
from famfin.models import AIConversation
from famfin.services.ai_service import AIService
from famfin.services.chat_tools import ChatTools
from famfin.services.document_service import DocumentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

TITLE_LENGTH = 100
CONVERSATION_LIST_LIMIT = 50


# === Pydantic Models ===


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., min_length=1)


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(..., min_length=1)
    conversation_id: Optional[str] = None


class ChatResponse(BaseModel):
    content: str
    conversation_id: str
    model: str
    tool_calls: list[dict[str, Any]]


class ConversationSummary(BaseModel):
    id: str
    title: str
    model_used: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ConversationResponse(ConversationSummary):
    messages: list[dict[str, Any]]


# === Helper Functions ===


def get_ai_service() -> AIService:
    return AIService()


def conversation_title(messages: list[ChatMessage]) -> str:
    first = next((m.content for m in messages if m.role == "user"), "New conversation")
    return first.strip()[:TITLE_LENGTH] or "New conversation"


async def get_conversation_or_404(session: AsyncSession, conversation_id: str, user_id: str) -> AIConversation:
    conversation = await session.get(AIConversation, conversation_id)
    if not conversation or conversation.user_id != user_id:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


# === Endpoints ===


@router.post("/", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
    ai: AIService = Depends(get_ai_service),
    documents: DocumentService = Depends(get_document_service),
):
    """
    Answer the last user message.

    The full message list replaces the stored conversation, with the
    assistant's reply appended.
    """
    if request.messages[-1].role != "user":
        raise HTTPException(status_code=400, detail="Last message must be from the user")

    conversation = None
    if request.conversation_id:
        conversation = await get_conversation_or_404(session, request.conversation_id, user_id)

    messages = [m.model_dump() for m in request.messages]
    reply = await ai.chat(messages, ChatTools(session, user_id, documents))

    if conversation is None:
        conversation = AIConversation(user_id=user_id, title=conversation_title(request.messages))
        session.add(conversation)

    conversation.messages = [*messages, {"role": "assistant", "content": reply.content}]
    conversation.model_used = reply.model
    await session.flush()

    logger.info(
        "Chat reply in conversation %s (%s, %d tool calls)",
        conversation.id,
        reply.model,
        len(reply.tool_calls),
    )
    return ChatResponse(
        content=reply.content,
        conversation_id=conversation.id,
        model=reply.model,
        tool_calls=reply.tool_calls,
    )


@router.get("/conversations", response_model=list[ConversationSummary])
async def list_conversations(
    limit: int = Query(CONVERSATION_LIST_LIMIT, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    result = await session.execute(
        select(AIConversation)
        .where(AIConversation.user_id == user_id)
        .order_by(AIConversation.updated_at.desc())
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    return await get_conversation_or_404(session, conversation_id, user_id)


@router.delete("/conversations/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str,
    session: AsyncSession = Depends(get_session),
    user_id: str = Depends(get_user_id),
):
    conversation = await get_conversation_or_404(session, conversation_id, user_id)
    await session.delete(conversation)
