"""Alert engine orchestrating persistence, timers and notifications.

Commands (create, set_data, delete, preview) run on the caller's task and
let store, timer and notification failures propagate. Timer fires and
notification clicks/closes arrive as typed events through the
``EventDispatcher`` and are handled one at a time.

Lifecycle per record:

    created -> armed -> triggered -> notified -> handled
    any --(delete, no live notification)--> removed
    any --(delete, live notification)--> pending delete --(closed)--> removed

``set_data`` puts a record back to armed. Late events for records that
were deleted or re-armed are expected races and are dropped quietly.

Commands that touch both the timer and the store for one alert hold that
alert's lock for the whole sequence, so a timer is never armed for a record
another command has just removed. Each disarm starts a new timer generation;
fires stamped with an older generation are dropped even if the due time is
unchanged.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from deferred_alerts.alerts.config import AlertConfig
from deferred_alerts.alerts.dispatcher import EventDispatcher
from deferred_alerts.alerts.errors import AlertNotFound
from deferred_alerts.alerts.events import (
    AlertEvent,
    NotificationClicked,
    NotificationClosed,
    TimerFired,
)
from deferred_alerts.alerts.names import AlertNotificationName, AlertTimerName
from deferred_alerts.alerts.notifications import (
    NotificationContent,
    NotificationService,
    ViewLauncher,
)
from deferred_alerts.alerts.schemas import (
    AlertPayload,
    AlertRecord,
    Owner,
    validate_payload,
)
from deferred_alerts.alerts.store import AlertStore, CloseOutcome, RemovalOutcome
from deferred_alerts.alerts.timers import TimerService
from deferred_alerts.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class _AlertLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class AlertEngine:
    """Creates, edits and deletes alerts and reacts to their events.

    Methods taking an optional ``owner`` serve both callers: ``None`` is the
    unrestricted caller, a given owner restricts the call to that owner's
    records and treats anyone else's as not found.
    """

    def __init__(
        self,
        store: AlertStore,
        timers: TimerService,
        notifications: NotificationService,
        view_launcher: ViewLauncher,
        config: AlertConfig | None = None,
    ) -> None:
        self._config = config or AlertConfig()
        self._store = store
        self._timers = timers
        self._notifications = notifications
        self._view_launcher = view_launcher

        self._timer_names = AlertTimerName(self._config.timer_prefix)
        self._notification_names = AlertNotificationName(
            self._config.notification_prefix,
        )
        self._dispatcher = EventDispatcher(
            self.handle_event, max_size=self._config.event_queue_size,
        )
        self._preview_tasks: set[asyncio.Task] = set()
        self._locks: dict[int, _AlertLock] = {}
        self._generations: dict[int, int] = {}

        timers.on_fire(self._on_timer_fire)
        notifications.on_clicked(self._on_notification_clicked)
        notifications.on_closed(self._on_notification_closed)

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    @property
    def store(self) -> AlertStore:
        return self._store

    @property
    def notifications(self) -> NotificationService:
        return self._notifications

    # ── Lifecycle ────────────────────────────────────────

    async def start(self) -> int:
        """Restore persisted timers and start consuming events.

        Returns:
            Number of timers re-armed.
        """
        restored = await self.restore()
        await self._dispatcher.start()
        return restored

    async def stop(self) -> None:
        await self._dispatcher.stop()
        for task in list(self._preview_tasks):
            task.cancel()
        await asyncio.gather(*self._preview_tasks, return_exceptions=True)
        await self._timers.close()

    async def restore(self) -> int:
        """Bring stored records in line with a freshly started process.

        No notification survives a restart, so pending deletes are finished
        and stale notification flags cleared. Every untriggered record gets
        its timer back; past-due ones fire immediately.

        Returns:
            Number of timers re-armed.
        """
        rearmed = 0
        for record in await self._store.get_all():
            async with self._serialized(record.id):
                if record.pending_delete:
                    await self._store.hard_delete(record.id)
                    self._generations.pop(record.id, None)
                    continue
                if record.has_notification:
                    await self._store.update(record.id, has_notification=False)
                if not record.triggered:
                    await self._arm(record.id, record.payload.due_at)
                    rearmed += 1

        logger.info("Alert timers restored: %d re-armed", rearmed)
        return rearmed

    # ── Commands ─────────────────────────────────────────

    @staticmethod
    def validate(raw: object) -> AlertPayload:
        """Validate a raw payload. Pure; raises ``InvalidPayload``."""
        return validate_payload(raw)

    async def create(self, raw: object, owner: Owner) -> int:
        """Persist a new alert and arm its timer.

        Returns:
            The store-assigned alert id.
        """
        payload = self.validate(raw)
        record = await self._store.insert(owner, payload)

        async with self._serialized(record.id):
            try:
                await self._arm(record.id, payload.due_at)
            except Exception:
                # An unarmed record would never fire
                await self._store.hard_delete(record.id)
                self._generations.pop(record.id, None)
                raise

        get_metrics().record_alert_created()
        logger.info(
            "Alert %d created for %s/%d, due at %d",
            record.id, owner.realm, owner.owner_id, payload.due_at,
        )
        return record.id

    async def set_data(
        self, alert_id: int, raw: object, owner: Owner | None = None,
    ) -> int:
        """Replace an alert's payload and re-arm it for the new due time.

        ``triggered`` and ``handled`` are reset whatever their prior values.

        Raises:
            InvalidPayload: Before anything is touched.
            AlertNotFound: Unknown, pending deletion, or not ``owner``'s.
        """
        payload = self.validate(raw)
        async with self._serialized(alert_id):
            await self._require(alert_id, owner)
            await self._disarm(alert_id)
            await self._store.reset(alert_id, payload)
            await self._arm(alert_id, payload.due_at)

        logger.info("Alert %d re-armed for %d", alert_id, payload.due_at)
        return alert_id

    async def delete(
        self, alert_id: int, owner: Owner | None = None,
    ) -> RemovalOutcome:
        """Cancel an alert's timer and remove it.

        While its notification is displayed the record is only marked
        ``pending_delete``; the close event removes it for good. Either way
        it disappears from every read immediately, and its timer can no
        longer fire once this returns.

        Raises:
            AlertNotFound: Unknown, already deleted, or not ``owner``'s.
        """
        async with self._serialized(alert_id):
            if owner is not None:
                await self._require(alert_id, owner)
            await self._disarm(alert_id)
            outcome = await self._store.remove(alert_id)

        if outcome is not RemovalOutcome.SOFT_DELETED:
            self._generations.pop(alert_id, None)
        if outcome is RemovalOutcome.NOT_FOUND:
            raise AlertNotFound(alert_id)

        get_metrics().record_deletion(outcome.value)
        logger.info("Alert %d deleted (%s)", alert_id, outcome.value)
        return outcome

    async def acknowledge(self, alert_id: int, owner: Owner | None = None) -> None:
        """Mark an alert handled on the owner's behalf.

        Raises:
            AlertNotFound: Unknown, pending deletion, or not ``owner``'s.
        """
        await self._require(alert_id, owner)
        if await self._store.mark_handled(alert_id) is None:
            raise AlertNotFound(alert_id)

    async def get(
        self, alert_id: int, owner: Owner | None = None,
    ) -> AlertRecord | None:
        """Get a visible alert; None if absent, pending deletion or foreign."""
        record = await self._store.get(alert_id)
        if record is None or record.pending_delete or not record.belongs_to(owner):
            return None
        return record

    async def get_all(self, owner: Owner | None = None) -> list[AlertRecord]:
        """All visible alerts in insertion order, optionally for one owner."""
        records = await self._store.get_all(owner)
        return [record for record in records if not record.pending_delete]

    @staticmethod
    def create_ephemeral(payload: AlertPayload, owner: Owner) -> AlertRecord:
        """Build a record that is never stored or scheduled."""
        return AlertRecord(owner=owner, payload=payload)

    async def trigger(self, record: AlertRecord) -> str:
        """Display the notification for ``record``.

        Stored records are shown under an id derived from theirs, so later
        clicks and closes map back to them; ephemeral records share the
        fixed preview id.

        Returns:
            The notification id.
        """
        if record.id is not None:
            notification_id = self._notification_names.encode(record.id)
            kind = "alert"
        else:
            notification_id = self._config.preview_notification_id
            kind = "preview"

        content = NotificationContent(
            title=record.payload.title,
            body=record.payload.body,
            icon=self._config.icon_url,
            context_text=f"{self._config.app_name} - {record.owner.display_realm}",
            event_time=record.payload.due_at,
            persistent=record.payload.persistent,
            vibrate=record.payload.vibrate,
            tag=record.payload.tag,
        )
        shown_id = await self._notifications.show(notification_id, content)
        get_metrics().record_notification_shown(kind)
        return shown_id

    async def preview(self, raw: object, owner: Owner) -> bool:
        """Show a payload immediately without scheduling it.

        The preview is dismissed after ``preview_clear_seconds``.
        """
        record = self.create_ephemeral(self.validate(raw), owner)
        self._schedule_clear(await self.trigger(record))
        return True

    async def preview_existing(self, alert_id: int) -> bool:
        """Show a stored alert's content again as a preview.

        The copy carries no id, so clicks and closes on it never touch the
        stored record.

        Returns:
            False if the alert is absent or pending deletion.
        """
        record = await self.get(alert_id)
        if record is None:
            return False

        ephemeral = self.create_ephemeral(record.payload, record.owner)
        self._schedule_clear(await self.trigger(ephemeral))
        return True

    # ── Events ───────────────────────────────────────────

    async def handle_event(self, event: AlertEvent) -> None:
        """Apply one event to its record."""
        if isinstance(event, TimerFired):
            await self._handle_timer_fired(event)
        elif isinstance(event, NotificationClicked):
            await self._handle_notification_clicked(event)
        elif isinstance(event, NotificationClosed):
            await self._handle_notification_closed(event)
        else:
            raise TypeError(f"Unsupported alert event {event!r}")

    async def _handle_timer_fired(self, event: TimerFired) -> None:
        async with self._serialized(event.alert_id):
            if event.generation != self._generations.get(event.alert_id, 0):
                record = None
            else:
                record = await self._store.mark_triggered(
                    event.alert_id, event.scheduled_for,
                )
        if record is None:
            get_metrics().record_timer_fired("skipped")
            logger.debug(
                "Timer for alert %d fired after delete or re-arm", event.alert_id,
            )
            return

        get_metrics().record_timer_fired("triggered")
        notification_id = await self.trigger(record)

        if await self._store.set_notification(record.id, True) is None:
            # Deleted while the notification was being shown
            logger.debug("Alert %d vanished during display", record.id)
            await self._notifications.dismiss(notification_id)

    async def _handle_notification_clicked(self, event: NotificationClicked) -> None:
        get_metrics().record_notification_event("clicked")
        record = await self._store.mark_handled(event.alert_id)
        if record is None:
            logger.debug("Click for missing alert %d ignored", event.alert_id)
            return

        url = f"{record.owner.realm}{self._config.view_path}"
        try:
            await self._view_launcher.focus_or_open(record.owner, url)
        except Exception as e:
            logger.warning(
                "Could not focus view for alert %d: %s", record.id, e, exc_info=True,
            )

    async def _handle_notification_closed(self, event: NotificationClosed) -> None:
        get_metrics().record_notification_event("closed")
        outcome = await self._store.close_notification(event.alert_id)
        if outcome is CloseOutcome.DELETED:
            self._generations.pop(event.alert_id, None)
            get_metrics().record_deletion("hard")
        logger.debug("Notification for alert %d closed: %s", event.alert_id, outcome.value)

    # ── Collaborator callbacks ───────────────────────────

    def _on_timer_fire(self, name: str, scheduled_for: int) -> None:
        alert_id = self._timer_names.decode(name)
        if alert_id is not None:
            generation = self._generations.get(alert_id, 0)
            self._dispatcher.submit(TimerFired(alert_id, scheduled_for, generation))

    def _on_notification_clicked(self, notification_id: str) -> None:
        alert_id = self._notification_names.decode(notification_id)
        if alert_id is not None:
            self._dispatcher.submit(NotificationClicked(alert_id))

    def _on_notification_closed(self, notification_id: str) -> None:
        alert_id = self._notification_names.decode(notification_id)
        if alert_id is not None:
            self._dispatcher.submit(NotificationClosed(alert_id))

    # ── Helpers ──────────────────────────────────────────

    async def _require(self, alert_id: int, owner: Owner | None) -> AlertRecord:
        record = await self.get(alert_id, owner)
        if record is None:
            raise AlertNotFound(alert_id)
        return record

    async def _arm(self, alert_id: int, due_at: int) -> None:
        await self._timers.arm(self._timer_names.encode(alert_id), due_at)
        get_metrics().record_timer_armed()

    async def _disarm(self, alert_id: int) -> None:
        # Fires already queued belong to the old generation
        self._generations[alert_id] = self._generations.get(alert_id, 0) + 1
        if await self._timers.cancel(self._timer_names.encode(alert_id)):
            get_metrics().record_timer_cancelled()

    @asynccontextmanager
    async def _serialized(self, alert_id: int) -> AsyncIterator[None]:
        """Hold the per-alert lock; the entry is dropped once unused."""
        entry = self._locks.get(alert_id)
        if entry is None:
            entry = self._locks[alert_id] = _AlertLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[alert_id]

    def _schedule_clear(self, notification_id: str) -> None:
        task = asyncio.create_task(self._clear_preview(notification_id))
        self._preview_tasks.add(task)
        task.add_done_callback(self._preview_tasks.discard)

    async def _clear_preview(self, notification_id: str) -> None:
        await asyncio.sleep(self._config.preview_clear_seconds)
        try:
            await self._notifications.dismiss(notification_id)
        except Exception as e:
            logger.warning("Failed to clear preview %s: %s", notification_id, e)
