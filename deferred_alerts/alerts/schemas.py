"""Schema definitions for alert records.

Maps 1:1 to the ``alerts`` database table. Each alert is a caller-owned,
time-triggered notification: the payload says what to show and when, the
flags track how far the alert has progressed through its lifecycle
(armed, triggered, notified, handled, pending deletion).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping

from deferred_alerts.alerts.errors import InvalidPayload

# Fields copied out of a raw payload; anything else is dropped.
PAYLOAD_FIELDS: tuple[str, ...] = (
    "title",
    "body",
    "due_at",
    "repeat_interval_ms",
    "actions",
    "category",
    "persistent",
    "tag",
    "vibrate",
)

_PAYLOAD_DEFAULTS: dict[str, Any] = {
    "category": "",
    "tag": "",
    "vibrate": False,
}


@dataclass(frozen=True)
class Owner:
    """The (realm, owner_id) pair an alert belongs to.

    Attributes:
        realm: Origin the owner lives on, e.g. ``https://en1.example.com``.
        owner_id: Owner identifier within the realm.
    """

    realm: str
    owner_id: int

    @property
    def display_realm(self) -> str:
        """Realm without its ``https://`` scheme, for notification text."""
        prefix = "https://"
        if self.realm.startswith(prefix):
            return self.realm[len(prefix):]
        return self.realm


@dataclass(frozen=True)
class AlertPayload:
    """Validated, caller-supplied alert content.

    Attributes:
        title: Notification title.
        body: Notification body text.
        due_at: Absolute trigger time in epoch milliseconds.
        repeat_interval_ms: Repeat interval; 0 means non-repeating. Stored
            only, the engine does not reschedule on its own.
        actions: Reserved; always None.
        category: Free-form classification.
        persistent: Hint that the notification should not auto-dismiss.
        tag: Free-form classification.
        vibrate: Hint for the notification layer.
    """

    title: str
    body: str
    due_at: int
    repeat_interval_ms: int
    persistent: bool
    actions: None = None
    category: str = ""
    tag: str = ""
    vibrate: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {name: getattr(self, name) for name in PAYLOAD_FIELDS}


@dataclass
class AlertRecord:
    """A persisted alert record from the alerts table.

    Attributes:
        owner: Who created the alert.
        payload: Validated payload.
        id: Store-assigned identifier; None for ephemeral (preview) records.
        triggered: Set when the timer fires, before the notification shows.
        handled: Set when the notification is clicked, dismissed or
            acknowledged.
        has_notification: True while a system notification is displayed.
        pending_delete: Soft-delete marker; hidden from every read.
        created_at: When the record was first stored.
    """

    owner: Owner
    payload: AlertPayload
    id: int | None = None
    triggered: bool = False
    handled: bool = False
    has_notification: bool = False
    pending_delete: bool = False
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def belongs_to(self, owner: Owner | None) -> bool:
        """True when no owner restriction applies or the owner matches."""
        return owner is None or self.owner == owner

    def copy(self, **changes: Any) -> "AlertRecord":
        """Return a detached copy with ``changes`` applied."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Public view of the record (never exposes ``pending_delete``)."""
        return {
            "id": self.id,
            "payload": self.payload.to_dict(),
            "triggered": self.triggered,
            "handled": self.handled,
            "has_notification": self.has_notification,
        }


def _coerce_int(value: Any) -> int | None:
    """Best-effort integer coercion; None when the value is not integral."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _datetime_to_millis(value: str) -> int | None:
    """Parse an ISO-8601 string into epoch millis (naive means UTC)."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


def validate_payload(raw: Any) -> AlertPayload:
    """Type-check and coerce a raw payload into an ``AlertPayload``.

    Pure: the input mapping is never modified and the result is a fresh
    value holding only the declared fields.

    Args:
        raw: Caller-supplied mapping.

    Returns:
        Validated payload.

    Raises:
        InvalidPayload: Naming the first offending field.
    """
    if not isinstance(raw, Mapping):
        raise InvalidPayload("payload", 'Alert: "payload" needs to be an object')

    data = {name: raw.get(name) for name in PAYLOAD_FIELDS}

    for name, default in _PAYLOAD_DEFAULTS.items():
        if data[name] is None:
            data[name] = default

    if data["due_at"] is None and isinstance(raw.get("datetime"), str):
        data["due_at"] = _datetime_to_millis(raw["datetime"])

    for name in ("due_at", "repeat_interval_ms"):
        if data[name] is not None:
            data[name] = _coerce_int(data[name])

    checks: tuple[tuple[str, type, str], ...] = (
        ("title", str, "a string"),
        ("body", str, "a string"),
        ("due_at", int, "an integer"),
        ("repeat_interval_ms", int, "an integer"),
        ("actions", type(None), "null (actions are not supported)"),
        ("category", str, "a string"),
        ("persistent", bool, "a boolean"),
        ("tag", str, "a string"),
        ("vibrate", bool, "a boolean"),
    )
    for name, expected, description in checks:
        value = data[name]
        if expected is int and isinstance(value, bool):
            value = None
        if not isinstance(value, expected):
            raise InvalidPayload(name, f'Alert: "{name}" needs to be {description}')

    return AlertPayload(**data)
