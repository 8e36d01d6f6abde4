from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError

from app.config import settings
from app.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)

SESSION_KEY = "hr-chat-session-id"
MESSAGES_KEY = "hr-chat-messages"

_history_adapter = TypeAdapter(list[ChatMessage])


class ChatStorage:
    """Durable client-side store for the chat session id and recent history.

    Backed by a single JSON file holding namespaced keys. Only the newest
    ``history_limit`` messages are kept and the transient streaming flag is
    never written.
    """

    def __init__(self, path: str | Path | None = None, *, history_limit: int | None = None) -> None:
        self.path = Path(path or settings.chat_storage_path)
        self.history_limit = history_limit if history_limit is not None else settings.chat_history_limit

    def get_session_id(self) -> str:
        """Return the stored session id, creating and persisting one on first use."""
        data = self._read()
        session_id = data.get(SESSION_KEY)
        if not isinstance(session_id, str) or not session_id:
            session_id = str(uuid.uuid4())
            data[SESSION_KEY] = session_id
            self._write(data)
            logger.info("chat.session.created", extra={"session_id": session_id})
        return session_id

    def save_messages(self, messages: list[ChatMessage] | tuple[ChatMessage, ...]) -> None:
        recent = list(messages)[-self.history_limit:] if self.history_limit > 0 else []
        data = self._read()
        data[MESSAGES_KEY] = [
            m.model_dump(mode="json", exclude={"is_streaming"}) for m in recent
        ]
        self._write(data)

    def load_messages(self) -> list[ChatMessage]:
        raw = self._read().get(MESSAGES_KEY)
        if not raw:
            return []
        try:
            return _history_adapter.validate_python(raw)
        except ValidationError:
            logger.warning("chat.storage.corrupt_history", extra={"path": str(self.path)})
            return []

    def clear(self) -> None:
        data = self._read()
        data.pop(SESSION_KEY, None)
        data.pop(MESSAGES_KEY, None)
        self._write(data)

    def _read(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.warning("chat.storage.unreadable", extra={"path": str(self.path), "error": str(exc)})
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        # Persistence is best effort; the in-memory conversation stays authoritative
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            logger.warning("chat.storage.unwritable", extra={"path": str(self.path), "error": str(exc)})
