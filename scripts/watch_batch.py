from __future__ import annotations

"""watch_batch.py — Follow CV analysis progress from a terminal.

Usage:
    python scripts/watch_batch.py <batch_id>   # one upload batch, 5s interval
    python scripts/watch_batch.py              # everything in flight, 10s interval

Requires the API running at API_BASE_URL (default http://localhost:8000).
"""

import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from app.main import configure_logging
from app.processing.notifier import LogNotifier
from app.processing.poller import ProcessingStatusPoller
from app.processing.status_client import HttpStatusSource

logger = logging.getLogger("watch_batch")


async def _invalidate(keys: Sequence[str]) -> None:
    logger.info("Cached views now stale: %s", ", ".join(keys))


async def main(batch_id: str | None) -> None:
    async with httpx.AsyncClient() as client:
        poller = ProcessingStatusPoller(
            HttpStatusSource(client),
            LogNotifier(),
            invalidate=_invalidate,
            on_complete=lambda n: print(f"  +{n} completed"),
        )
        poller.start(batch_id)
        try:
            await poller.wait()
        finally:
            poller.stop()

    print(f"Done: {poller.completed_count} CV(s) completed while watching.")


if __name__ == "__main__":
    configure_logging()
    batch_arg = sys.argv[1] if len(sys.argv) > 1 else None
    asyncio.run(main(batch_arg))
