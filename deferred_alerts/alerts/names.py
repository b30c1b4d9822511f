"""Typed codecs between alert ids and timer / notification names.

Timers and notifications are addressed by string names shared with other
producers, so each alert id is encoded under a fixed prefix and decoding
returns None for anything that is not one of ours.
"""

from dataclasses import dataclass

MAX_ALERT_ID = 2**53 - 1


@dataclass(frozen=True)
class AlertName:
    """Encode/decode pair for a single name prefix."""

    prefix: str

    def encode(self, alert_id: int) -> str:
        return f"{self.prefix}{alert_id}"

    def decode(self, name: str) -> int | None:
        """Return the alert id for ``name``, or None for unrelated names."""
        if not isinstance(name, str) or not name.startswith(self.prefix):
            return None
        digits = name[len(self.prefix):]
        # str.isdigit() accepts non-ASCII digits and superscripts
        if not digits.isascii() or not digits.isdigit():
            return None
        alert_id = int(digits)
        if alert_id > MAX_ALERT_ID:
            return None
        return alert_id


class AlertTimerName(AlertName):
    """Names of the one-shot timers armed per alert."""

    def __init__(self, prefix: str = "alert:") -> None:
        super().__init__(prefix)


class AlertNotificationName(AlertName):
    """Identifiers of the notifications shown per alert."""

    def __init__(self, prefix: str = "alert:") -> None:
        super().__init__(prefix)
