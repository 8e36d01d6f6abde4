from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    role: Literal["user", "assistant"]
    content: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
    is_streaming: bool = False  # only true while the assistant turn is being filled


class ChatWebhookRequest(BaseModel):
    """JSON body posted to the streaming chat webhook."""

    model_config = ConfigDict(populate_by_name=True)

    chat_input: str = Field(alias="chatInput", min_length=1)
    session_id: str = Field(alias="sessionId", min_length=1)


class StreamRecord(BaseModel):
    """Payload of one ``data:`` line. Only ``type == "message"`` carries content."""

    type: str
    data: Any = None
