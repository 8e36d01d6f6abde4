from __future__ import annotations

"""chat_repl.py — Talk to the HR assistant webhook from a terminal.

Usage:
    CHAT_WEBHOOK_URL=https://… python scripts/chat_repl.py

Commands: /new starts a fresh conversation, /quit exits.
History and the session id persist in CHAT_STORAGE_PATH between runs.
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from app.chat.session import ChatSession
from app.chat.storage import ChatStorage
from app.config import settings
from app.main import configure_logging
from app.processing.notifier import LogNotifier


class _Echo:
    """Prints the assistant reply as it grows."""

    def __init__(self, session: ChatSession) -> None:
        self._session = session
        self._previous_id = session.messages[-1].id
        self.shown = ""

    def flush(self) -> None:
        last = self._session.messages[-1]
        if last.id == self._previous_id or last.role != "assistant":
            return
        if not last.content.startswith(self.shown):
            # Content restarted after a retry
            print()
            self.shown = ""
        print(last.content[len(self.shown) :], end="", flush=True)
        self.shown = last.content

    async def run(self, done: asyncio.Event) -> None:
        while not done.is_set():
            self.flush()
            await asyncio.sleep(0.05)


async def main() -> None:
    if not settings.chat_webhook_url:
        print("ERROR: CHAT_WEBHOOK_URL is not set.")
        sys.exit(1)

    async with httpx.AsyncClient() as client:
        session = ChatSession(client, ChatStorage(), LogNotifier())
        for message in session.messages:
            print(f"{message.role}> {message.content}\n")

        loop = asyncio.get_running_loop()
        while True:
            text = await loop.run_in_executor(None, input, "you> ")
            command = text.strip()
            if command == "/quit":
                break
            if command == "/new":
                session.new_chat()
                print(f"assistant> {session.messages[0].content}\n")
                continue

            print("assistant> ", end="", flush=True)
            echo = _Echo(session)
            done = asyncio.Event()
            watcher = asyncio.create_task(echo.run(done))
            await session.send_message(text)
            done.set()
            await watcher
            echo.flush()
            print("\n")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(main())
