from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

NotificationLevel = Literal["info", "success", "warning", "error"]


@dataclass(frozen=True)
class Notification:
    """A user-facing message (the toast of a UI, a log line in a terminal)."""

    level: NotificationLevel
    title: str
    description: str = ""
    candidate_ids: tuple[str, ...] = ()
    action: str | None = None  # label of the optional manual action, e.g. "Refresh"
    on_action: Callable[[], Awaitable[None]] | None = None


class Notifier(ABC):
    @abstractmethod
    def notify(self, notification: Notification) -> None:
        ...


_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LogNotifier(Notifier):
    """Surface notifications through the logging system."""

    def __init__(self, name: str = "talentflow.notifications") -> None:
        self._logger = logging.getLogger(name)

    def notify(self, notification: Notification) -> None:
        self._logger.log(
            _LOG_LEVELS[notification.level],
            "%s: %s",
            notification.title,
            notification.description,
            extra={
                "level_name": notification.level,
                "candidate_ids": list(notification.candidate_ids),
            },
        )
