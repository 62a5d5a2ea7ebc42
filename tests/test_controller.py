"""
Tests for the update pass, the request coalescing worker and the deadline timer.
"""

import threading
import pytest
from datetime import timedelta

from nextup.controller import (
    Controller,
    DeadlineTimer,
    PendingUpdate,
    UpdateCoordinator,
    UpdateRequest,
    utc_now,
)
from nextup.schedule import NO_EVENTS_INTERVAL


class RecordingSink:
    def __init__(self):
        self.rendered = []

    def render(self, surface_ids, model):
        self.rendered.append((surface_ids, model))


class RecordingTimer:
    def __init__(self):
        self.scheduled = []

    def schedule(self, when):
        self.scheduled.append(when)

    def cancel(self):
        pass


@pytest.fixture
def controller(db_manager, test_env, local_tz, now):
    ctrl = Controller(
        db_manager,
        test_env,
        RecordingSink(),
        clock=lambda: now,
        timer=RecordingTimer(),
        background=False,
    )
    ctrl.local_tz = local_tz
    return ctrl


def add_timed(dbm, title, start, minutes=60):
    return dbm.add_instance(title, start, start + timedelta(minutes=minutes))


@pytest.mark.unit
class TestPendingUpdate:
    def test_specific_requests_accumulate(self, now):
        pending = PendingUpdate()
        pending.merge(now, surface_ids=[1], changed_ids=[10])
        pending.merge(now + timedelta(seconds=1), surface_ids=[2], changed_ids=[11])

        request = pending.drain()
        assert request == UpdateRequest(
            now=now + timedelta(seconds=1),
            surface_ids=frozenset({1, 2}),
            changed_ids=frozenset({10, 11}),
        )
        assert pending.requested is False
        assert not pending.surface_ids and not pending.changed_ids

    def test_all_surfaces_wins(self, now):
        pending = PendingUpdate()
        pending.merge(now, surface_ids=[1])
        pending.merge(now, surface_ids=None)
        assert pending.drain().surface_ids is None

    def test_unattributed_change_disables_the_watch_set(self, now):
        pending = PendingUpdate()
        pending.merge(now, changed_ids=[10])
        pending.merge(now, changed_ids=None)
        assert pending.drain().changed_ids == frozenset()


@pytest.mark.unit
class TestUpdateCoordinator:
    def test_request_made_during_a_pass_runs_next(self, now):
        seen = []

        def perform(request):
            seen.append(request)
            if len(seen) == 1:
                coordinator.request_update(surface_ids=[7], now=now + timedelta(minutes=1))

        coordinator = UpdateCoordinator(perform, clock=lambda: now, background=False)
        coordinator.request_update()

        assert [r.now for r in seen] == [now, now + timedelta(minutes=1)]
        assert seen[1].surface_ids == frozenset({7})
        assert coordinator.running is False

    def test_requests_during_a_pass_collapse(self, now):
        started = threading.Event()
        release = threading.Event()
        seen = []

        def perform(request):
            seen.append(request)
            if len(seen) == 1:
                started.set()
                release.wait(5)

        coordinator = UpdateCoordinator(perform, clock=lambda: now)
        coordinator.request_update(surface_ids=[1])
        assert started.wait(5)

        coordinator.request_update(surface_ids=[2], changed_ids=[20])
        coordinator.request_update(surface_ids=[3], changed_ids=[30])
        coordinator.request_update(surface_ids=[2], changed_ids=[40])
        release.set()
        coordinator.join(5)

        assert len(seen) == 2
        assert seen[1].surface_ids == frozenset({2, 3})
        assert seen[1].changed_ids == frozenset({20, 30, 40})
        assert coordinator.running is False

    def test_failed_pass_is_logged_and_the_worker_exits(self, now, nextup_home):
        def perform(request):
            raise RuntimeError("boom")

        coordinator = UpdateCoordinator(perform, clock=lambda: now, background=False)
        coordinator.request_update()

        assert coordinator.running is False
        logs = list((nextup_home / "logs").glob("log_*.md"))
        assert "boom" in logs[0].read_text()


@pytest.mark.unit
class TestDeadlineTimer:
    def test_fires(self):
        fired = threading.Event()
        timer = DeadlineTimer(fired.set)
        timer.schedule(utc_now() + timedelta(milliseconds=50))

        assert fired.wait(5)
        assert timer.deadline is None

    def test_past_deadline_fires_at_once(self):
        fired = threading.Event()
        timer = DeadlineTimer(fired.set)
        timer.schedule(utc_now() - timedelta(minutes=5))
        assert fired.wait(5)

    def test_new_deadline_supersedes_the_old_one(self):
        fired = threading.Event()
        timer = DeadlineTimer(fired.set)
        soon = utc_now() + timedelta(milliseconds=100)
        later = utc_now() + timedelta(hours=1)

        timer.schedule(soon)
        timer.schedule(later)

        assert not fired.wait(0.5)
        assert timer.deadline == later
        timer.cancel()

    def test_cancel(self):
        fired = threading.Event()
        timer = DeadlineTimer(fired.set)
        timer.schedule(utc_now() + timedelta(milliseconds=100))
        timer.cancel()

        assert not fired.wait(0.5)
        assert timer.deadline is None


@pytest.mark.unit
class TestPerformUpdate:
    def test_nothing_upcoming(self, controller, now):
        controller.request_update()

        ((surfaces, model),) = controller.sink.rendered
        assert surfaces is None
        assert model.no_events
        assert controller.timer.scheduled == [now + NO_EVENTS_INTERVAL]

    def test_schedules_the_flip_point(self, controller, db_manager, now):
        add_timed(db_manager, "Standup", now + timedelta(minutes=30))
        controller.request_update(surface_ids=[4])

        ((surfaces, model),) = controller.sink.rendered
        assert surfaces == frozenset({4})
        assert model.slots[0].title == "Standup"
        assert model.slots[0].when == "12:30-13:30"
        assert controller.timer.scheduled == [now + timedelta(minutes=45)]

    def test_unwatched_change_skips_render_and_schedule(self, controller, db_manager, now):
        add_timed(db_manager, "Standup", now + timedelta(minutes=30))
        stale = add_timed(db_manager, "Earlier", now - timedelta(hours=2))

        result = controller.perform_update(UpdateRequest(now=now, changed_ids=frozenset({stale})))

        assert result.skipped
        assert controller.sink.rendered == []
        assert controller.timer.scheduled == []

    def test_watched_change_renders(self, controller, db_manager, now):
        event_id = add_timed(db_manager, "Standup", now + timedelta(minutes=30))
        controller.request_update(changed_ids=[event_id])

        assert len(controller.sink.rendered) == 1
        assert controller.timer.scheduled == [now + timedelta(minutes=45)]

    def test_nothing_upcoming_renders_even_when_watching(self, controller, now):
        controller.request_update(changed_ids=[99])

        ((_, model),) = controller.sink.rendered
        assert model.no_events

    def test_configured_placeholder_title(self, controller, db_manager, now):
        controller.no_title = "(untitled)"
        add_timed(db_manager, "", now + timedelta(minutes=30))
        controller.request_update()

        ((_, model),) = controller.sink.rendered
        assert model.slots[0].title == "(untitled)"

    def test_failed_render_still_schedules(self, controller, db_manager, now):
        class BrokenSink:
            def render(self, surface_ids, model):
                raise RuntimeError("paint failed")

        controller.sink = BrokenSink()
        add_timed(db_manager, "Standup", now + timedelta(minutes=30))

        with pytest.raises(RuntimeError):
            controller.perform_update(UpdateRequest(now=now))
        assert controller.timer.scheduled == [now + timedelta(minutes=45)]

    def test_wake_requests_a_pass(self, controller, now):
        controller.on_wake()
        assert len(controller.sink.rendered) == 1

    def test_compute_uses_the_configured_window(self, controller, db_manager, now):
        controller.window = timedelta(days=1)
        add_timed(db_manager, "in two days", now + timedelta(days=2))

        result = controller.compute(UpdateRequest(now=now))
        assert result.events == []
        assert result.deadline is None
