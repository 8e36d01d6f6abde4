from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone

from app.config import settings
from app.processing.notifier import Notification, Notifier
from app.processing.status_client import StatusSource, StatusUnavailableError
from app.schemas.processing import ProcessingCandidate

logger = logging.getLogger(__name__)

# Cached views that must refetch once a CV finishes processing
INVALIDATED_QUERIES: tuple[str, ...] = ("candidates", "applications")

_MAX_NAMES_SHOWN = 3
# Placeholder rows are named "Processing CV n..." until the analysis lands
_PLACEHOLDER_MARKER = "Processing"

Invalidator = Callable[[Sequence[str]], Awaitable[None]]


def completion_notification(
    completed: Sequence[ProcessingCandidate],
    on_refresh: Callable[[], Awaitable[None]] | None = None,
) -> Notification:
    """Build the one-shot toast announcing newly completed CVs."""
    n = len(completed)
    names = [
        c.full_name for c in completed if c.full_name and _PLACEHOLDER_MARKER not in c.full_name
    ]
    if names:
        description = ", ".join(names[:_MAX_NAMES_SHOWN])
        if len(names) > _MAX_NAMES_SHOWN:
            description += "..."
    else:
        description = "Analysis complete"

    return Notification(
        level="success",
        title=f"{n} CV{'s' if n > 1 else ''} processed!",
        description=description,
        candidate_ids=tuple(c.id for c in completed),
        action="Refresh",
        on_action=on_refresh,
    )


def slow_processing_notification() -> Notification:
    return Notification(
        level="warning",
        title="Some CVs are taking longer than expected",
        description="Processing will continue in the background",
    )


class ProcessingStatusPoller:
    """Watch CV analysis progress and announce each completed candidate once.

    One poller owns one polling run at a time: ``start()`` resets the seen set and
    the elapsed-time clock, then checks immediately and every ``poll_interval``
    seconds until nothing is left processing or ``max_wait`` has elapsed.

    Scoped runs (with a batch id) default to the short interval. Global runs use the
    long interval and treat their first response as a baseline, so work finished
    before the run started is not announced.
    """

    def __init__(
        self,
        source: StatusSource,
        notifier: Notifier,
        *,
        invalidate: Invalidator | None = None,
        on_complete: Callable[[int], None] | None = None,
        poll_interval: float | None = None,
        max_wait: float | None = None,
        suppress_first: bool | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._notifier = notifier
        self._invalidate = invalidate
        self._on_complete = on_complete
        self._poll_interval = poll_interval
        self._max_wait = max_wait if max_wait is not None else settings.poll_max_wait_s
        self._suppress_first = suppress_first
        self._clock = clock

        self._batch_id: str | None = None
        self._since: datetime | None = None
        self._seen: frozenset[str] = frozenset()
        self._candidates: tuple[ProcessingCandidate, ...] = ()
        self._started_at: float | None = None
        self._checks = 0
        self._polling = False
        self._task: asyncio.Task[None] | None = None
        # Bumped on every start/stop; responses from an older run are dropped
        self._run = 0

    @property
    def is_polling(self) -> bool:
        return self._polling

    @property
    def batch_id(self) -> str | None:
        return self._batch_id

    @property
    def processing_candidates(self) -> tuple[ProcessingCandidate, ...]:
        return self._candidates

    @property
    def seen_ids(self) -> frozenset[str]:
        return self._seen

    @property
    def completed_count(self) -> int:
        return len(self._seen)

    @property
    def poll_interval(self) -> float:
        if self._poll_interval is not None:
            return self._poll_interval
        if self._batch_id:
            return settings.poll_interval_batch_s
        return settings.poll_interval_global_s

    def _suppresses_first(self) -> bool:
        if self._suppress_first is not None:
            return self._suppress_first
        return self._batch_id is None

    def start(self, batch_id: str | None = None) -> asyncio.Task[None]:
        """Begin a new polling run. Must be called from a running event loop."""
        self._cancel_task()
        self._run += 1
        self._batch_id = batch_id
        self._seen = frozenset()
        self._candidates = ()
        self._checks = 0
        self._started_at = self._clock()
        self._since = datetime.now(timezone.utc)
        self._polling = True

        logger.info(
            "poller.start",
            extra={"batch_id": batch_id, "interval_s": self.poll_interval},
        )
        self._task = asyncio.get_running_loop().create_task(self._loop(self._run))
        return self._task

    def stop(self) -> None:
        """Stop polling. Safe to call at any time, including mid-fetch."""
        if not self._polling and self._task is None:
            return
        self._run += 1
        self._polling = False
        self._started_at = None
        self._cancel_task()
        logger.info(
            "poller.stop",
            extra={"batch_id": self._batch_id, "completed": len(self._seen)},
        )

    async def wait(self) -> None:
        """Block until the current run has finished."""
        task = self._task
        if task is not None:
            await asyncio.wait([task])

    async def check_status(self) -> None:
        """Run one status check against the current run."""
        await self._check(self._run)

    def _cancel_task(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _loop(self, run: int) -> None:
        while run == self._run:
            await self._check(run)
            if run != self._run:
                break
            await asyncio.sleep(self.poll_interval)

    async def _check(self, run: int) -> None:
        try:
            status = await self._source.fetch(self._batch_id, since=self._since)
        except StatusUnavailableError as exc:
            logger.warning(
                "poller.fetch_failed",
                extra={"batch_id": self._batch_id, "error": str(exc)},
            )
            return

        if run != self._run:
            logger.debug("poller.stale_response_dropped", extra={"batch_id": self._batch_id})
            return

        baseline = self._checks == 0 and self._suppresses_first()
        self._checks += 1
        self._candidates = tuple(status.candidates)

        fresh: dict[str, ProcessingCandidate] = {}
        for candidate in status.candidates:
            if candidate.status == "completed" and candidate.id not in self._seen:
                fresh.setdefault(candidate.id, candidate)
        newly_completed = list(fresh.values())

        if newly_completed:
            self._seen = self._seen | {c.id for c in newly_completed}
            if baseline:
                logger.info(
                    "poller.baseline",
                    extra={"batch_id": self._batch_id, "already_completed": len(newly_completed)},
                )
            else:
                self._announce(newly_completed)
            if self._invalidate is not None:
                try:
                    await self._invalidate(INVALIDATED_QUERIES)
                except Exception as exc:
                    logger.warning(
                        "poller.invalidate_failed",
                        extra={"batch_id": self._batch_id, "error": str(exc)},
                    )
                if run != self._run:
                    return

        still_processing = status.count("processing")
        elapsed = self._clock() - self._started_at if self._started_at is not None else 0.0
        logger.info(
            "poller.tick",
            extra={
                "batch_id": self._batch_id,
                "processing": still_processing,
                "newly_completed": len(newly_completed),
                "elapsed_s": round(elapsed, 1),
            },
        )

        timed_out = elapsed > self._max_wait
        if still_processing == 0 or timed_out:
            self.stop()
            if timed_out and still_processing > 0:
                self._notify(slow_processing_notification())

    async def refresh(self) -> None:
        """Manual refresh offered alongside completion notifications."""
        if self._invalidate is not None:
            await self._invalidate(INVALIDATED_QUERIES)

    def _announce(self, completed: list[ProcessingCandidate]) -> None:
        self._notify(completion_notification(completed, on_refresh=self.refresh))
        if self._on_complete is not None:
            try:
                self._on_complete(len(completed))
            except Exception as exc:
                logger.warning(
                    "poller.on_complete_failed",
                    extra={"batch_id": self._batch_id, "error": str(exc)},
                )

    def _notify(self, notification: Notification) -> None:
        # A broken notifier must not end the run
        try:
            self._notifier.notify(notification)
        except Exception as exc:
            logger.warning(
                "poller.notify_failed",
                extra={"batch_id": self._batch_id, "title": notification.title, "error": str(exc)},
            )
