"""Fakes for the engine's timer, notification and view collaborators."""

import pytest

from deferred_alerts.alerts.engine import AlertEngine
from deferred_alerts.alerts.notifications import (
    NotificationContent,
    NotificationService,
    ViewLauncher,
)
from deferred_alerts.alerts.schemas import Owner
from deferred_alerts.alerts.store import InMemoryAlertStore
from deferred_alerts.alerts.timers import TimerService


class FakeTimerService(TimerService):
    """Records armed timers; tests fire them explicitly."""

    def __init__(self) -> None:
        super().__init__()
        self.armed: dict[str, int] = {}
        self.cancelled: list[str] = []
        self.fail_next_arm = False

    async def arm(self, name: str, when_ms: int) -> None:
        if self.fail_next_arm:
            self.fail_next_arm = False
            raise RuntimeError("timer backend unavailable")
        self.armed[name] = when_ms

    async def cancel(self, name: str) -> bool:
        if name not in self.armed:
            return False
        del self.armed[name]
        self.cancelled.append(name)
        return True

    def fire(self, name: str) -> None:
        """Fire an armed timer as the real service would."""
        when_ms = self.armed.pop(name)
        self._emit(name, when_ms)

    def fire_late(self, name: str, scheduled_for: int) -> None:
        """Deliver a fire that raced a cancel or re-arm."""
        self._emit(name, scheduled_for)


class FakeNotificationService(NotificationService):
    """Keeps displayed notifications in a dict."""

    def __init__(self) -> None:
        super().__init__()
        self.shown: dict[str, NotificationContent] = {}
        self.show_calls: list[str] = []
        self.dismissed: list[str] = []

    async def show(self, notification_id: str, content: NotificationContent) -> str:
        self.shown[notification_id] = content
        self.show_calls.append(notification_id)
        return notification_id

    async def dismiss(self, notification_id: str) -> None:
        self.shown.pop(notification_id, None)
        self.dismissed.append(notification_id)

    def click(self, notification_id: str) -> None:
        self.report_clicked(notification_id)

    def close(self, notification_id: str) -> None:
        self.shown.pop(notification_id, None)
        self.report_closed(notification_id)


class FakeViewLauncher(ViewLauncher):
    def __init__(self) -> None:
        self.calls: list[tuple[Owner, str]] = []

    async def focus_or_open(self, owner: Owner, url: str) -> None:
        self.calls.append((owner, url))


@pytest.fixture
def store():
    return InMemoryAlertStore()


@pytest.fixture
def timers():
    return FakeTimerService()


@pytest.fixture
def notifications():
    return FakeNotificationService()


@pytest.fixture
def view_launcher():
    return FakeViewLauncher()


@pytest.fixture
def engine(store, timers, notifications, view_launcher, alert_config):
    return AlertEngine(
        store=store,
        timers=timers,
        notifications=notifications,
        view_launcher=view_launcher,
        config=alert_config,
    )
