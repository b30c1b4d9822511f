"""Notification display and owner-view collaborators.

``NotificationService`` shows and dismisses system notifications and is the
event source for clicks and closes. ``ViewLauncher`` focuses (or opens) the
owner's view after a click. Each has a webhook implementation that forwards
requests to an external display over HTTP, and a logging implementation for
development.

Webhook delivery creates a new ``httpx.AsyncClient`` per call (short-lived,
no pooling) and raises on non-2xx responses so failures reach the caller.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Callable

import httpx

from deferred_alerts.alerts.schemas import Owner

logger = logging.getLogger(__name__)

NotificationListener = Callable[[str], None]


@dataclass(frozen=True)
class NotificationContent:
    """What a notification displays.

    Attributes:
        title: Headline.
        body: Main text.
        icon: Icon URL.
        context_text: Secondary line naming the app and realm.
        event_time: Epoch millis the notification refers to.
        persistent: Ask the display not to auto-dismiss.
        vibrate: Ask the display to vibrate.
        tag: Grouping tag; an empty string means none.
    """

    title: str
    body: str
    icon: str
    context_text: str
    event_time: int
    persistent: bool = False
    vibrate: bool = False
    tag: str = ""


class NotificationService(ABC):
    """Displays notifications and reports user interaction by id."""

    def __init__(self) -> None:
        self._clicked_listeners: list[NotificationListener] = []
        self._closed_listeners: list[NotificationListener] = []

    def on_clicked(self, listener: NotificationListener) -> None:
        self._clicked_listeners.append(listener)

    def on_closed(self, listener: NotificationListener) -> None:
        self._closed_listeners.append(listener)

    def report_clicked(self, notification_id: str) -> None:
        """Feed a click reported by the display into the listeners."""
        for listener in self._clicked_listeners:
            listener(notification_id)

    def report_closed(self, notification_id: str) -> None:
        """Feed a dismissal reported by the display into the listeners."""
        for listener in self._closed_listeners:
            listener(notification_id)

    @abstractmethod
    async def show(self, notification_id: str, content: NotificationContent) -> str:
        """Display (or replace) the notification ``notification_id``.

        Returns:
            The id the notification was shown under.
        """

    @abstractmethod
    async def dismiss(self, notification_id: str) -> None:
        """Remove a displayed notification."""


class ViewLauncher(ABC):
    """Brings an owner's view to the front after a notification click."""

    @abstractmethod
    async def focus_or_open(self, owner: Owner, url: str) -> None:
        """Focus a view open on ``owner.realm``, or open ``url``."""


class _WebhookClient:
    """Shared JSON POST helper for webhook collaborators."""

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(self._url, json=payload, headers=self._headers)
            resp.raise_for_status()
            return resp


class WebhookNotificationService(_WebhookClient, NotificationService):
    """Forwards show/dismiss requests to an external display.

    The display reports clicks and dismissals back through the
    ``/notifications/{id}/clicked`` and ``/closed`` API endpoints.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        _WebhookClient.__init__(self, url, headers, timeout)
        NotificationService.__init__(self)

    async def show(self, notification_id: str, content: NotificationContent) -> str:
        await self._post({
            "action": "show",
            "notification_id": notification_id,
            **asdict(content),
        })
        return notification_id

    async def dismiss(self, notification_id: str) -> None:
        await self._post({"action": "dismiss", "notification_id": notification_id})


class WebhookViewLauncher(_WebhookClient, ViewLauncher):
    """Asks the external display to focus or open the owner's view."""

    async def focus_or_open(self, owner: Owner, url: str) -> None:
        await self._post({
            "action": "focus",
            "realm": owner.realm,
            "owner_id": owner.owner_id,
            "match": f"{owner.realm}/*",
            "url": url,
        })


class LoggingNotificationService(NotificationService):
    """Writes notifications to the log instead of displaying them.

    There is no display to report back, so ``dismiss`` reports the close
    itself.
    """

    async def show(self, notification_id: str, content: NotificationContent) -> str:
        logger.info(
            "Notification %s: %s - %s (%s)",
            notification_id, content.title, content.body, content.context_text,
        )
        return notification_id

    async def dismiss(self, notification_id: str) -> None:
        logger.info("Notification %s dismissed", notification_id)
        self.report_closed(notification_id)


class LoggingViewLauncher(ViewLauncher):
    """Logs the view that would be focused or opened."""

    async def focus_or_open(self, owner: Owner, url: str) -> None:
        logger.info(
            "Focus view for %s/%d (fallback %s)", owner.realm, owner.owner_id, url,
        )
