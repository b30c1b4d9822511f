"""Typed events delivered to the alert engine through the dispatcher.

Timer and notification collaborators report by name; these events carry
the decoded alert id so handlers never parse strings themselves.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class TimerFired:
    """The timer armed for ``alert_id`` reached its due time.

    Attributes:
        alert_id: Alert the timer belongs to.
        scheduled_for: Epoch millis the timer was armed for.
        generation: Engine timer generation current when the timer fired.
    """

    alert_id: int
    scheduled_for: int
    generation: int = 0

    kind = "timer_fired"


@dataclass(frozen=True)
class NotificationClicked:
    """The user opened the notification shown for ``alert_id``."""

    alert_id: int

    kind = "notification_clicked"


@dataclass(frozen=True)
class NotificationClosed:
    """The notification shown for ``alert_id`` was dismissed or cleared."""

    alert_id: int

    kind = "notification_closed"


AlertEvent = Union[TimerFired, NotificationClicked, NotificationClosed]
