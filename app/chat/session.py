from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from app.chat.retry import RetryExhaustedError, RetryPolicy
from app.chat.storage import ChatStorage
from app.chat.stream import FragmentMode, FragmentSink, stream_reply
from app.config import settings
from app.processing.notifier import Notification, Notifier
from app.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "Hi! I'm your HR Assistant. I can help you with candidate searches, job order "
    "analysis, interview preparation, and more.\n\n"
    "Try asking me something like:\n"
    '- "Who are the best candidates for our Data Engineer position?"\n'
    '- "Summarize the qualifications of the latest applicants"\n'
    '- "Generate interview questions for a Senior Developer role"'
)

CONNECTION_LOST_SUFFIX = "\n\n---\n*Connection lost. Response may be incomplete.*"
FAILED_TO_CONNECT = "Failed to connect to assistant. Please try again."


def welcome_message(message_id: str = "welcome") -> ChatMessage:
    return ChatMessage(id=message_id, role="assistant", content=WELCOME_TEXT)


@dataclass(frozen=True)
class StreamResult:
    """Outcome of one accepted send."""

    ok: bool
    content: str
    attempts: int
    error: str | None = None
    cancelled: bool = False


class _PlaceholderSink(FragmentSink):
    """Writes streamed content into the assistant placeholder of one send."""

    def __init__(self, session: ChatSession, message_id: str) -> None:
        self._session = session
        self._message_id = message_id
        self.content = ""

    def reset(self) -> None:
        self.content = ""
        self._session._update(self._message_id, content="")

    def on_content(self, content: str) -> None:
        self.content = content
        self._session._update(self._message_id, content=content)


class ChatSession:
    """One conversation with the streaming HR assistant webhook.

    Message history is an immutable tuple replaced wholesale on every change, so a
    reader never observes a half-applied update. At most one send is active at a
    time; extra sends while streaming are dropped, not queued.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        storage: ChatStorage,
        notifier: Notifier,
        *,
        url: str | None = None,
        policy: RetryPolicy | None = None,
        cooldown: float | None = None,
        timeout: float | None = None,
        mode: FragmentMode | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._storage = storage
        self._notifier = notifier
        self._url = url or settings.chat_webhook_url
        self._policy = policy or RetryPolicy.from_settings()
        self._cooldown = cooldown if cooldown is not None else settings.chat_cooldown_s
        self._timeout = timeout if timeout is not None else settings.chat_timeout_s
        self._mode = mode or settings.chat_fragment_mode
        self._clock = clock
        self._sleep = sleep

        saved = storage.load_messages()
        self._messages: tuple[ChatMessage, ...] = tuple(saved) if saved else (welcome_message(),)
        self._session_id = storage.get_session_id()
        self._streaming = False
        self._last_send: float | None = None
        self._inflight: asyncio.Future[str] | None = None
        self._cancel_requested: asyncio.Future[str] | None = None

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._messages

    @property
    def is_streaming(self) -> bool:
        return self._streaming

    @property
    def session_id(self) -> str:
        return self._session_id

    async def send_message(self, text: str) -> StreamResult | None:
        """Send ``text`` and stream the assistant reply into the history.

        Returns None when the send was not accepted (blank input, another send in
        flight, or inside the cooldown window).
        """
        trimmed = text.strip()
        if not trimmed or self._streaming:
            return None

        now = self._clock()
        if self._last_send is not None and now - self._last_send < self._cooldown:
            self._notifier.notify(
                Notification(
                    level="info",
                    title="Please wait",
                    description="You can send another message in a moment.",
                )
            )
            return None
        self._last_send = now

        user_msg = ChatMessage(role="user", content=trimmed)
        assistant_msg = ChatMessage(role="assistant", is_streaming=True)
        self._messages = (*self._messages, user_msg, assistant_msg)
        self._streaming = True

        sink = _PlaceholderSink(self, assistant_msg.id)
        attempts = 0

        async def attempt(n: int) -> str:
            nonlocal attempts
            attempts = n
            if n > 1:
                # A retry restarts the reply from scratch
                sink.reset()
            return await stream_reply(
                self._client,
                self._url,
                trimmed,
                self._session_id,
                sink,
                timeout=self._timeout,
                mode=self._mode,
            )

        logger.info("chat.send", extra={"session_id": self._session_id, "chars": len(trimmed)})
        inflight = asyncio.ensure_future(self._policy.run(attempt, sleep=self._sleep))
        self._inflight = inflight
        try:
            content = await inflight
            result = StreamResult(ok=True, content=content, attempts=attempts)
            logger.info(
                "chat.completed",
                extra={"session_id": self._session_id, "attempts": attempts, "chars": len(content)},
            )
        except asyncio.CancelledError:
            if self._cancel_requested is not inflight:
                raise
            logger.info("chat.cancelled", extra={"session_id": self._session_id})
            result = StreamResult(ok=False, content=sink.content, attempts=attempts, cancelled=True)
        except RetryExhaustedError as exc:
            error = str(exc.last_error) or "Connection failed"
            if sink.content:
                content = f"{sink.content}{CONNECTION_LOST_SUFFIX}"
            else:
                content = FAILED_TO_CONNECT
            self._update(assistant_msg.id, content=content)
            logger.error(
                "chat.exhausted",
                extra={"session_id": self._session_id, "attempts": exc.attempts, "error": error},
            )
            self._notifier.notify(Notification(level="error", title="Error", description=error))
            result = StreamResult(ok=False, content=content, attempts=exc.attempts, error=error)
        finally:
            self._update(assistant_msg.id, is_streaming=False)
            # A new chat may already have replaced this send's state
            if self._inflight is inflight:
                self._inflight = None
                self._streaming = False
            if not self._streaming:
                self._storage.save_messages(self._messages)

        return result

    def cancel(self) -> None:
        """Abort the in-flight send. No retry follows an explicit cancel."""
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            self._cancel_requested = inflight
            inflight.cancel()

    def new_chat(self) -> None:
        """Drop the conversation and start over with a fresh session id."""
        self.cancel()
        self._inflight = None
        self._streaming = False
        self._storage.clear()
        self._session_id = self._storage.get_session_id()
        self._messages = (welcome_message(),)
        logger.info("chat.new_session", extra={"session_id": self._session_id})

    def _update(self, message_id: str, **changes: Any) -> None:
        self._messages = tuple(
            m.model_copy(update=changes) if m.id == message_id else m for m in self._messages
        )
