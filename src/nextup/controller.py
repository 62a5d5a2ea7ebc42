from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Hashable, Iterable

from dateutil import tz

from .display import DisplayModel, build_model, no_events_model
from .events import AggregationSummary, EventInstance, aggregate
from .model import DatabaseManager
from .nextup_env import NextupEnvironment
from .schedule import format_debug_time, next_deadline, resolve_trigger
from .shared import log_msg
from .timeconv import local_zone


def utc_now() -> datetime:
    return datetime.now(tz.UTC)


@dataclass(frozen=True)
class UpdateRequest:
    """One drained snapshot of everything asked for since the last pass."""

    now: datetime
    surface_ids: frozenset | None = None  # None: every surface
    changed_ids: frozenset = frozenset()  # empty: update unconditionally


@dataclass
class PendingUpdate:
    requested: bool = False
    last_request: datetime | None = None
    all_surfaces: bool = False
    surface_ids: set = field(default_factory=set)
    unattributed_change: bool = False
    changed_ids: set = field(default_factory=set)

    def merge(
        self,
        now: datetime,
        surface_ids: Iterable[Hashable] | None = None,
        changed_ids: Iterable[Hashable] | None = None,
    ):
        self.requested = True
        self.last_request = now
        if surface_ids is None:
            self.all_surfaces = True
        else:
            self.surface_ids.update(surface_ids)
        if changed_ids is None:
            self.unattributed_change = True
        else:
            self.changed_ids.update(changed_ids)

    def drain(self) -> UpdateRequest:
        request = UpdateRequest(
            now=self.last_request,
            surface_ids=None
            if self.all_surfaces or not self.surface_ids
            else frozenset(self.surface_ids),
            changed_ids=frozenset()
            if self.unattributed_change
            else frozenset(self.changed_ids),
        )
        self.requested = False
        self.all_surfaces = False
        self.surface_ids.clear()
        self.unattributed_change = False
        self.changed_ids.clear()
        return request


class UpdateCoordinator:
    """
    Collapse update requests into a single pending snapshot and run passes
    one at a time on a single worker.

    ``request_update`` never queues: whatever arrives while a pass is running
    is merged and handled by the next iteration of the same worker.
    """

    def __init__(
        self,
        perform: Callable[[UpdateRequest], object],
        clock: Callable[[], datetime] = utc_now,
        background: bool = True,
    ):
        self._perform = perform
        self._clock = clock
        self.background = background
        self._lock = threading.Lock()
        self._pending = PendingUpdate()
        self._running = False
        self._worker: threading.Thread | None = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def request_update(
        self,
        surface_ids: Iterable[Hashable] | None = None,
        changed_ids: Iterable[Hashable] | None = None,
        now: datetime | None = None,
    ):
        with self._lock:
            self._pending.merge(now or self._clock(), surface_ids, changed_ids)
            if self._running:
                return
            self._running = True

        if self.background:
            self._worker = threading.Thread(
                target=self.run, name="nextup-update", daemon=True
            )
            self._worker.start()
        else:
            self.run()

    def run(self):
        while True:
            with self._lock:
                if not self._pending.requested:
                    self._pending = PendingUpdate()
                    self._running = False
                    return
                request = self._pending.drain()

            try:
                self._perform(request)
            except Exception as e:
                log_msg(f"update pass for {request.now} failed: {e!r}")

    def join(self, timeout: float | None = None):
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)


class DeadlineTimer:
    """
    A single one-shot wake-up. Scheduling a new deadline cancels the
    previous one.
    """

    def __init__(
        self,
        callback: Callable[[], object],
        clock: Callable[[], datetime] = utc_now,
    ):
        self._callback = callback
        self._clock = clock
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._generation = 0
        self.deadline: datetime | None = None

    def schedule(self, when: datetime):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            delay = max((when - self._clock()).total_seconds(), 0.0)
            self._timer = threading.Timer(delay, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self.deadline = when
            self._timer.start()

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._timer = None
            self.deadline = None

    def _fire(self, generation: int):
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
            self.deadline = None
        self._callback()


@dataclass(frozen=True)
class UpdateResult:
    events: list[EventInstance]
    summary: AggregationSummary
    model: DisplayModel | None  # None: skipped, nothing watched was current
    deadline: datetime | None

    @property
    def skipped(self) -> bool:
        return self.model is None


class Controller:
    def __init__(
        self,
        db_manager: DatabaseManager,
        env: NextupEnvironment,
        sink,
        clock: Callable[[], datetime] = utc_now,
        timer: DeadlineTimer | None = None,
        background: bool = True,
    ):
        """
        Args:
            db_manager: where upcoming instances come from.
            env: workspace and config.
            sink: anything with ``render(surface_ids, model)``.
            clock: returns an aware "now".
            timer: defaults to a DeadlineTimer that requests a fresh pass.
        """
        self.db_manager = db_manager
        self.env = env
        self.sink = sink
        self.clock = clock

        config = env.config
        self.local_tz = local_zone(config.timezone)
        self.ampm = config.ui.ampm
        self.window = timedelta(days=config.widget.search_days)
        self.limit = config.widget.max_rows
        self.fallback = timedelta(hours=config.widget.no_events_hours)
        self.no_title = config.widget.no_title
        self.tomorrow = config.widget.tomorrow

        self.coordinator = UpdateCoordinator(
            self.perform_update, clock=clock, background=background
        )
        self.timer = timer or DeadlineTimer(self.on_wake, clock=clock)

    def request_update(
        self,
        surface_ids: Iterable[Hashable] | None = None,
        changed_ids: Iterable[Hashable] | None = None,
        now: datetime | None = None,
    ):
        self.coordinator.request_update(surface_ids, changed_ids, now)

    def on_wake(self):
        log_msg("deadline reached, requesting update")
        self.coordinator.request_update()

    def stop(self):
        self.timer.cancel()
        self.coordinator.join()

    def compute(self, request: UpdateRequest) -> UpdateResult:
        now = request.now
        events = self.db_manager.get_upcoming_instances(
            now, self.window, self.limit, self.local_tz
        )
        summary = aggregate(events, request.changed_ids, now, self.local_tz)

        should_update = True
        if request.changed_ids:
            should_update = summary.watch_found

        if summary.primary_count == 0:
            return UpdateResult(events, summary, no_events_model(now, self.local_tz), None)
        if not should_update:
            return UpdateResult(events, summary, None, None)

        model = build_model(
            events,
            summary,
            now,
            self.local_tz,
            ampm=self.ampm,
            no_title=self.no_title,
            tomorrow=self.tomorrow,
        )
        deadline = next_deadline(events, summary, now, self.local_tz)
        return UpdateResult(events, summary, model, deadline)

    def perform_update(self, request: UpdateRequest) -> UpdateResult:
        """
        One full pass: query, aggregate, render and schedule the next wake.
        """
        now = request.now
        result = self.compute(request)

        if result.skipped:
            log_msg(
                f"no watched event among the current ones, skipping update: {sorted(map(str, request.changed_ids))}"
            )
            return result

        trigger = resolve_trigger(result.deadline, now, self.fallback)
        try:
            self.sink.render(request.surface_ids, result.model)
        finally:
            # a failed paint still gets its next wake
            if trigger != result.deadline:
                log_msg(f"no usable deadline ({result.deadline}), polling at {format_debug_time(trigger, now)}")
            self.timer.schedule(trigger)
            log_msg(f"scheduled next update at {format_debug_time(trigger, now)}")
        return result
