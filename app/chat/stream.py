from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal

import httpx
from pydantic import ValidationError

from app.config import settings
from app.schemas.chat import ChatWebhookRequest, StreamRecord

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
_DATA_PREFIX = "data: "

FragmentMode = Literal["cumulative", "incremental"]


class ChatStreamError(Exception):
    """A single streaming attempt failed (transport error or non-2xx reply)."""


class ChatTimeoutError(ChatStreamError):
    """A single streaming attempt exceeded its time ceiling."""


@dataclass(frozen=True)
class StreamEvent:
    kind: Literal["fragment", "done"]
    content: str = ""


DONE = StreamEvent(kind="done")


def parse_event_line(line: str) -> StreamEvent | None:
    """Decode one line of the webhook body.

    Returns None for lines that carry nothing usable: blank lines, non-``data:``
    lines, records of another type, and malformed JSON (logged, never raised).
    """
    line = line.rstrip("\r")
    if not line.startswith(_DATA_PREFIX):
        return None

    payload = line[len(_DATA_PREFIX):].strip()
    if payload == DONE_SENTINEL:
        return DONE

    try:
        record = StreamRecord.model_validate_json(payload)
    except ValidationError:
        logger.warning("chat.stream.malformed_record", extra={"record": payload[:200]})
        return None

    if record.type != "message" or not isinstance(record.data, str):
        return None
    return StreamEvent(kind="fragment", content=record.data)


class FragmentSink(ABC):
    """Receives progress from a streaming attempt, in arrival order."""

    @abstractmethod
    def on_content(self, content: str) -> None:
        """Called with the full reply accumulated so far."""
        ...


async def stream_reply(
    client: httpx.AsyncClient,
    url: str,
    chat_input: str,
    session_id: str,
    sink: FragmentSink,
    *,
    timeout: float | None = None,
    mode: FragmentMode | None = None,
) -> str:
    """Run one streaming attempt against the chat webhook and return the final reply.

    The whole attempt (connect, headers and body) is bounded by ``timeout``.
    A stream that ends without the ``[DONE]`` sentinel still counts as complete.
    Raises ChatStreamError / ChatTimeoutError; cancellation propagates untouched.
    """
    timeout = timeout if timeout is not None else settings.chat_timeout_s
    mode = mode or settings.chat_fragment_mode
    body = ChatWebhookRequest(chat_input=chat_input, session_id=session_id).model_dump(
        by_alias=True
    )
    accumulated = ""

    async def _read() -> None:
        nonlocal accumulated
        async with client.stream(
            "POST",
            url,
            json=body,
            headers={"Accept": "text/event-stream"},
            timeout=timeout,
        ) as response:
            if response.is_error:
                raise ChatStreamError(f"HTTP {response.status_code}: {response.reason_phrase}")

            async for line in response.aiter_lines():
                event = parse_event_line(line)
                if event is None:
                    continue
                if event.kind == "done":
                    return
                if mode == "cumulative":
                    accumulated = event.content
                else:
                    accumulated += event.content
                sink.on_content(accumulated)

    try:
        await asyncio.wait_for(_read(), timeout)
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise ChatTimeoutError(f"Request timed out after {timeout:g} seconds") from exc
    except httpx.HTTPError as exc:
        raise ChatStreamError(str(exc) or type(exc).__name__) from exc

    logger.debug("chat.stream.done", extra={"session_id": session_id, "chars": len(accumulated)})
    return accumulated
