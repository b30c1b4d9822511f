"""Scenario tests for AlertEngine with the in-memory store and fake collaborators."""

import asyncio

import pytest

from deferred_alerts.alerts.engine import AlertEngine
from deferred_alerts.alerts.errors import AlertNotFound, InvalidPayload
from deferred_alerts.alerts.events import NotificationClicked, NotificationClosed, TimerFired
from deferred_alerts.alerts.schemas import validate_payload
from deferred_alerts.alerts.store import InMemoryAlertStore, RemovalOutcome
from deferred_alerts.alerts.timers import AsyncioTimerService


async def _drain(engine) -> None:
    await asyncio.wait_for(engine.dispatcher.join(), timeout=1)


async def _fire(engine, timers, alert_id: int) -> None:
    """Fire an alert's timer and wait for the engine to handle it."""
    timers.fire(f"alert:{alert_id}")
    await _drain(engine)


# ── Create ───────────────────────────────────────────────


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_persists_and_arms(self, engine, timers, owner, raw_payload):
        alert_id = await engine.create(raw_payload, owner)

        assert alert_id == 1
        assert timers.armed == {"alert:1": raw_payload["due_at"]}
        record = await engine.get(alert_id)
        assert record.owner == owner
        assert not record.triggered
        assert not record.handled

    @pytest.mark.asyncio
    async def test_invalid_payload_touches_nothing(self, engine, store, timers, owner, payload_factory):
        with pytest.raises(InvalidPayload) as exc_info:
            await engine.create(payload_factory(title=None), owner)

        assert exc_info.value.field == "title"
        assert await store.get_all() == []
        assert timers.armed == {}

    @pytest.mark.asyncio
    async def test_arm_failure_rolls_back(self, engine, store, timers, owner, raw_payload):
        timers.fail_next_arm = True
        with pytest.raises(RuntimeError):
            await engine.create(raw_payload, owner)
        assert await store.get_all() == []

    @pytest.mark.asyncio
    async def test_ids_never_reused(self, engine, owner, raw_payload):
        first = await engine.create(raw_payload, owner)
        await engine.delete(first)
        second = await engine.create(raw_payload, owner)
        assert second == first + 1


# ── Fire, click, close ───────────────────────────────────


class TestFireAndInteract:
    @pytest.mark.asyncio
    async def test_fire_shows_notification(self, engine, timers, notifications, owner, raw_payload):
        await engine.start()
        alert_id = await engine.create(raw_payload, owner)

        await _fire(engine, timers, alert_id)

        record = await engine.get(alert_id)
        assert record.triggered is True
        assert record.has_notification is True
        assert record.handled is False

        content = notifications.shown["alert:1"]
        assert content.title == raw_payload["title"]
        assert content.body == raw_payload["body"]
        assert content.icon == "/images/app128.png"
        assert content.context_text == "Deferred Alerts - en1.example.com"
        assert content.event_time == raw_payload["due_at"]
        await engine.stop()

    @pytest.mark.asyncio
    async def test_click_marks_handled_and_focuses(
        self, engine, timers, notifications, view_launcher, owner, raw_payload,
    ):
        await engine.start()
        alert_id = await engine.create(raw_payload, owner)
        await _fire(engine, timers, alert_id)

        notifications.click("alert:1")
        await _drain(engine)

        assert (await engine.get(alert_id)).handled is True
        assert view_launcher.calls == [(owner, "https://en1.example.com/game/index")]
        await engine.stop()

    @pytest.mark.asyncio
    async def test_close_marks_handled_and_clears_flag(self, engine, timers, notifications, owner, raw_payload):
        await engine.start()
        alert_id = await engine.create(raw_payload, owner)
        await _fire(engine, timers, alert_id)

        notifications.close("alert:1")
        await _drain(engine)

        record = await engine.get(alert_id)
        assert record.handled is True
        assert record.has_notification is False
        await engine.stop()

    @pytest.mark.asyncio
    async def test_view_launcher_failure_contained(self, engine, view_launcher, owner, raw_payload):
        async def broken(owner, url):
            raise RuntimeError("no display")

        view_launcher.focus_or_open = broken
        alert_id = await engine.create(raw_payload, owner)

        await engine.handle_event(NotificationClicked(alert_id))

        assert (await engine.get(alert_id)).handled is True

    @pytest.mark.asyncio
    async def test_foreign_names_ignored(self, engine, timers, notifications):
        timers.fire_late("reminder:1", 5)
        notifications.click("alert-preview")
        notifications.close("chat:9")
        assert engine.dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_events_for_unknown_ids_are_noops(self, engine, notifications):
        await engine.handle_event(TimerFired(99, 1))
        await engine.handle_event(NotificationClicked(99))
        await engine.handle_event(NotificationClosed(99))
        assert notifications.show_calls == []


# ── Delete ───────────────────────────────────────────────


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_before_fire(self, engine, store, timers, notifications, owner, raw_payload):
        alert_id = await engine.create(raw_payload, owner)

        outcome = await engine.delete(alert_id)

        assert outcome is RemovalOutcome.HARD_DELETED
        assert timers.armed == {}
        assert "alert:1" in timers.cancelled
        assert await store.get(alert_id) is None

        # A fire that slipped past the cancel changes nothing
        await engine.handle_event(TimerFired(alert_id, raw_payload["due_at"]))
        assert notifications.show_calls == []

    @pytest.mark.asyncio
    async def test_delete_while_notification_shown(self, engine, store, timers, notifications, owner, raw_payload):
        await engine.start()
        alert_id = await engine.create(raw_payload, owner)
        await _fire(engine, timers, alert_id)

        outcome = await engine.delete(alert_id)

        assert outcome is RemovalOutcome.SOFT_DELETED
        assert await engine.get(alert_id) is None
        assert await engine.get_all() == []
        assert (await store.get(alert_id)).pending_delete is True

        notifications.close("alert:1")
        await _drain(engine)
        assert await store.get(alert_id) is None
        await engine.stop()

    @pytest.mark.asyncio
    async def test_click_on_pending_delete_is_ignored(self, engine, timers, notifications, view_launcher, owner, raw_payload):
        await engine.start()
        alert_id = await engine.create(raw_payload, owner)
        await _fire(engine, timers, alert_id)
        await engine.delete(alert_id)

        notifications.click("alert:1")
        await _drain(engine)

        assert view_launcher.calls == []
        await engine.stop()

    @pytest.mark.asyncio
    async def test_delete_twice_raises(self, engine, owner, raw_payload):
        alert_id = await engine.create(raw_payload, owner)
        await engine.delete(alert_id)
        with pytest.raises(AlertNotFound):
            await engine.delete(alert_id)

    @pytest.mark.asyncio
    async def test_delete_soft_deleted_raises(self, engine, timers, owner, raw_payload):
        alert_id = await engine.create(raw_payload, owner)
        await engine.handle_event(TimerFired(alert_id, raw_payload["due_at"]))
        await engine.delete(alert_id)
        with pytest.raises(AlertNotFound):
            await engine.delete(alert_id)

    @pytest.mark.asyncio
    async def test_record_deleted_during_display_is_dismissed(
        self, engine, store, notifications, owner, raw_payload,
    ):
        alert_id = await engine.create(raw_payload, owner)
        real_show = notifications.show

        async def show_then_delete(notification_id, content):
            shown = await real_show(notification_id, content)
            await engine.delete(alert_id)
            return shown

        notifications.show = show_then_delete
        await engine.handle_event(TimerFired(alert_id, raw_payload["due_at"]))

        assert notifications.dismissed == ["alert:1"]
        assert await store.get(alert_id) is None


# ── setData ──────────────────────────────────────────────


class TestSetData:
    @pytest.mark.asyncio
    async def test_set_data_resets_and_rearms(self, engine, timers, owner, raw_payload, payload_factory):
        alert_id = await engine.create(raw_payload, owner)
        await engine.handle_event(TimerFired(alert_id, raw_payload["due_at"]))
        await engine.handle_event(NotificationClicked(alert_id))

        new_due = raw_payload["due_at"] + 3_600_000
        assert await engine.set_data(alert_id, payload_factory(title="Later", due_at=new_due)) == alert_id

        record = await engine.get(alert_id)
        assert record.payload.title == "Later"
        assert record.triggered is False
        assert record.handled is False
        assert timers.armed == {"alert:1": new_due}

    @pytest.mark.asyncio
    async def test_stale_fire_after_rearm_is_dropped(self, engine, timers, notifications, owner, raw_payload, payload_factory):
        old_due = raw_payload["due_at"]
        alert_id = await engine.create(raw_payload, owner)
        await engine.set_data(alert_id, payload_factory(due_at=old_due + 60_000))

        await engine.handle_event(TimerFired(alert_id, old_due))

        assert (await engine.get(alert_id)).triggered is False
        assert notifications.show_calls == []

    @pytest.mark.asyncio
    async def test_invalid_payload_leaves_record(self, engine, timers, owner, raw_payload, payload_factory):
        alert_id = await engine.create(raw_payload, owner)
        with pytest.raises(InvalidPayload):
            await engine.set_data(alert_id, payload_factory(due_at="soon"))
        assert timers.armed == {"alert:1": raw_payload["due_at"]}

    @pytest.mark.asyncio
    async def test_set_data_on_pending_delete_raises(self, engine, owner, raw_payload):
        alert_id = await engine.create(raw_payload, owner)
        await engine.handle_event(TimerFired(alert_id, raw_payload["due_at"]))
        await engine.delete(alert_id)
        with pytest.raises(AlertNotFound):
            await engine.set_data(alert_id, raw_payload)

    @pytest.mark.asyncio
    async def test_set_data_unknown_raises(self, engine, raw_payload):
        with pytest.raises(AlertNotFound):
            await engine.set_data(5, raw_payload)

    @pytest.mark.asyncio
    async def test_queued_fire_dropped_after_same_time_rearm(
        self, engine, timers, notifications, owner, raw_payload,
    ):
        alert_id = await engine.create(raw_payload, owner)
        # Fire lands in the queue before the dispatcher runs
        timers.fire("alert:1")
        await engine.set_data(alert_id, raw_payload)

        await engine.dispatcher.start()
        await _drain(engine)
        assert notifications.show_calls == []
        assert (await engine.get(alert_id)).triggered is False

        await _fire(engine, timers, alert_id)
        assert notifications.show_calls == ["alert:1"]
        await engine.dispatcher.stop()


# ── Concurrent commands ──────────────────────────────────


class SlowResetStore(InMemoryAlertStore):
    """Commits ``reset`` and then takes a while to return, like a DB round-trip."""

    async def reset(self, alert_id, payload):
        record = await super().reset(alert_id, payload)
        await asyncio.sleep(0.05)
        return record


class TestConcurrentCommands:
    @pytest.fixture
    def real_timers(self, raw_payload):
        return AsyncioTimerService(clock=lambda: raw_payload["due_at"] - 3_600_000)

    @pytest.fixture
    def slow_engine(self, real_timers, notifications, view_launcher, alert_config):
        return AlertEngine(
            store=SlowResetStore(),
            timers=real_timers,
            notifications=notifications,
            view_launcher=view_launcher,
            config=alert_config,
        )

    @pytest.mark.asyncio
    async def test_delete_during_set_data_leaves_no_timer(
        self, slow_engine, real_timers, owner, raw_payload, payload_factory,
    ):
        alert_id = await slow_engine.create(raw_payload, owner)

        async def delete_soon():
            await asyncio.sleep(0.01)
            return await slow_engine.delete(alert_id)

        updated, outcome = await asyncio.gather(
            slow_engine.set_data(alert_id, payload_factory(title="Later")),
            delete_soon(),
        )

        assert updated == alert_id
        assert outcome is RemovalOutcome.HARD_DELETED
        assert await slow_engine.store.get(alert_id) is None
        assert real_timers.armed == frozenset()
        await real_timers.close()

    @pytest.mark.asyncio
    async def test_overlapping_set_data_keeps_one_timer(
        self, slow_engine, real_timers, owner, raw_payload, payload_factory,
    ):
        alert_id = await slow_engine.create(raw_payload, owner)
        later = raw_payload["due_at"] + 60_000

        await asyncio.gather(
            slow_engine.set_data(alert_id, payload_factory(due_at=later)),
            slow_engine.set_data(alert_id, payload_factory(due_at=later + 1)),
        )

        live = [
            task for task in asyncio.all_tasks()
            if task.get_name() == "timer:alert:1" and not task.done()
        ]
        assert len(live) == 1
        assert (await slow_engine.get(alert_id)).payload.due_at == later + 1
        await real_timers.close()

    @pytest.mark.asyncio
    async def test_locks_released_after_commands(self, slow_engine, real_timers, owner, raw_payload):
        alert_id = await slow_engine.create(raw_payload, owner)
        await slow_engine.set_data(alert_id, raw_payload)
        await slow_engine.delete(alert_id)
        with pytest.raises(AlertNotFound):
            await slow_engine.set_data(alert_id, raw_payload)

        assert slow_engine._locks == {}
        assert slow_engine._generations == {}
        await real_timers.close()


# ── Owner scoping ────────────────────────────────────────


class TestOwnerScope:
    @pytest.mark.asyncio
    async def test_foreign_alerts_invisible(self, engine, owner, other_owner, raw_payload):
        alert_id = await engine.create(raw_payload, owner)

        assert await engine.get(alert_id, other_owner) is None
        assert await engine.get_all(other_owner) == []
        assert [r.id for r in await engine.get_all(owner)] == [alert_id]

    @pytest.mark.asyncio
    async def test_foreign_commands_rejected_without_side_effects(
        self, engine, timers, owner, other_owner, raw_payload,
    ):
        alert_id = await engine.create(raw_payload, owner)

        with pytest.raises(AlertNotFound):
            await engine.delete(alert_id, other_owner)
        with pytest.raises(AlertNotFound):
            await engine.set_data(alert_id, raw_payload, other_owner)
        with pytest.raises(AlertNotFound):
            await engine.acknowledge(alert_id, other_owner)

        assert timers.armed == {"alert:1": raw_payload["due_at"]}
        assert timers.cancelled == []
        record = await engine.get(alert_id)
        assert not record.handled

    @pytest.mark.asyncio
    async def test_owner_can_manage_own_alert(self, engine, owner, raw_payload):
        alert_id = await engine.create(raw_payload, owner)
        await engine.acknowledge(alert_id, owner)
        assert (await engine.get(alert_id, owner)).handled is True
        assert await engine.delete(alert_id, owner) is RemovalOutcome.HARD_DELETED

    @pytest.mark.asyncio
    async def test_list_in_creation_order(self, engine, owner, other_owner, raw_payload):
        ids = [
            await engine.create(raw_payload, owner),
            await engine.create(raw_payload, other_owner),
            await engine.create(raw_payload, owner),
        ]
        assert [r.id for r in await engine.get_all()] == ids


# ── Preview ──────────────────────────────────────────────


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_shows_and_clears(self, engine, store, timers, notifications, owner, raw_payload):
        assert await engine.preview(raw_payload, owner) is True

        assert notifications.show_calls == ["alert-preview"]
        assert notifications.shown["alert-preview"].title == raw_payload["title"]
        assert await store.get_all() == []
        assert timers.armed == {}

        await asyncio.sleep(0.05)
        assert notifications.dismissed == ["alert-preview"]

    @pytest.mark.asyncio
    async def test_preview_existing_shows_copy(
        self, engine, timers, notifications, owner, raw_payload,
    ):
        alert_id = await engine.create(raw_payload, owner)

        assert await engine.preview_existing(alert_id) is True

        assert notifications.show_calls == ["alert-preview"]
        assert notifications.shown["alert-preview"].title == raw_payload["title"]
        record = await engine.get(alert_id)
        assert not record.triggered
        assert not record.has_notification
        assert timers.armed == {"alert:1": raw_payload["due_at"]}

        await asyncio.sleep(0.05)
        assert notifications.dismissed == ["alert-preview"]

    @pytest.mark.asyncio
    async def test_preview_existing_missing_or_pending(self, engine, notifications, owner, raw_payload):
        assert await engine.preview_existing(99) is False

        alert_id = await engine.create(raw_payload, owner)
        await engine.handle_event(TimerFired(alert_id, raw_payload["due_at"]))
        await engine.delete(alert_id)

        assert await engine.preview_existing(alert_id) is False
        assert notifications.show_calls == ["alert:1"]

    @pytest.mark.asyncio
    async def test_preview_validates(self, engine, owner, payload_factory):
        with pytest.raises(InvalidPayload):
            await engine.preview(payload_factory(persistent="yes"), owner)

    @pytest.mark.asyncio
    async def test_create_ephemeral_is_not_stored(self, engine, store, owner, raw_payload):
        record = engine.create_ephemeral(validate_payload(raw_payload), owner)
        assert record.id is None
        assert await store.get_all() == []

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_clear(self, engine, notifications, owner, raw_payload, alert_config):
        alert_config.preview_clear_seconds = 10
        await engine.preview(raw_payload, owner)
        await engine.stop()
        assert notifications.dismissed == []


# ── Restore ──────────────────────────────────────────────


class TestRestore:
    @pytest.mark.asyncio
    async def test_restore_reconciles_store(self, engine, store, timers, owner, raw_payload):
        payload = validate_payload(raw_payload)
        armed = await store.insert(owner, payload)
        shown = await store.insert(owner, payload)
        await store.update(shown.id, triggered=True, has_notification=True)
        pending = await store.insert(owner, payload)
        await store.update(pending.id, triggered=True, has_notification=True, pending_delete=True)

        assert await engine.restore() == 1

        assert timers.armed == {f"alert:{armed.id}": payload.due_at}
        assert (await store.get(shown.id)).has_notification is False
        assert await store.get(pending.id) is None

    @pytest.mark.asyncio
    async def test_start_restores_then_consumes(self, engine, store, timers, owner, raw_payload):
        record = await store.insert(owner, validate_payload(raw_payload))

        assert await engine.start() == 1
        await _fire(engine, timers, record.id)

        assert (await store.get(record.id)).triggered is True
        await engine.stop()
        assert not engine.dispatcher.running
