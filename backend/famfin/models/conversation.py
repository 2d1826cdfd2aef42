"""
AI chat conversation history.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, String
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column

from famfin.database import Base, new_id


class AIConversation(Base):
    """
    Saved chat with the AI accountant.

    Messages - JSON array:
    [
      {"role": "user", "content": "How much tax will I pay?"},
      {"role": "assistant", "content": "..."}
    ]
    """

    __tablename__ = "ai_conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(100), default="New conversation")
    messages: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    model_used: Mapped[Optional[str]] = mapped_column(String(100))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<AIConversation {self.id}: {len(self.messages)} messages>"
