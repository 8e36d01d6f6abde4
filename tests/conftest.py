from __future__ import annotations

import pytest

from app.processing.notifier import Notification, Notifier


class CollectingNotifier(Notifier):
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def by_level(self, level: str) -> list[Notification]:
        return [n for n in self.notifications if n.level == level]


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
