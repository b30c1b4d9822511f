"""Exceptions raised by the alert engine and stores."""


class AlertError(Exception):
    """Base class for caller-visible alert errors."""


class InvalidPayload(AlertError):
    """A caller-supplied payload failed validation.

    Attributes:
        field: Name of the first offending payload field.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class AlertNotFound(AlertError):
    """The referenced alert does not exist, is pending deletion, or
    belongs to a different owner."""

    def __init__(self, alert_id: int) -> None:
        super().__init__(f"Alert {alert_id} not found")
        self.alert_id = alert_id
