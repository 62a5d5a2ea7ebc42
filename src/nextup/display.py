from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Sequence

from dateutil import tz

from .events import AggregationSummary, EventInstance, local_span
from .shared import format_time_range, more_events
from .timeconv import start_of_next_local_day

NO_TITLE = "(No title)"
TOMORROW = "Tomorrow"


@dataclass(frozen=True)
class EventSlot:
    visible: bool = False
    when: str = ""
    title: str = ""
    where: str = ""

    @property
    def show_where(self) -> bool:
        return self.visible and bool(self.where)


@dataclass(frozen=True)
class DisplayModel:
    """
    Everything a surface needs to paint the two slot glance.

    Value equality is what decides whether a surface has to be repainted,
    so the model holds only rendered strings and visibility flags.
    """

    day_of_week: str
    day_of_month: str
    slots: tuple[EventSlot, EventSlot] = (EventSlot(), EventSlot())
    portrait_conflict_visible: bool = False
    portrait_conflict: str = ""
    landscape_conflict_visible: bool = False
    landscape_conflict: str = ""
    no_events: bool = False


def header_fields(now: datetime, local_tz: tzinfo) -> tuple[str, str]:
    """('SUN', '18') for the local day containing ``now``."""
    local_now = now.astimezone(local_tz)
    return local_now.strftime("%a").upper(), str(local_now.day)


def no_events_model(now: datetime, local_tz: tzinfo | None = None) -> DisplayModel:
    day_of_week, day_of_month = header_fields(now, local_tz or tz.tzlocal())
    return DisplayModel(day_of_week, day_of_month, no_events=True)


def format_when(
    event: EventInstance,
    start_of_next_day: datetime,
    local_tz: tzinfo,
    ampm: bool = False,
    tomorrow: str = TOMORROW,
) -> str:
    """
    Today:          9:30-10:15      Sun, Oct 18 (all day)
    Tomorrow:       9:30-10:15, Tomorrow        Tomorrow (all day)
    Later:          Tue 9:30-10:15  Tue, Oct 20 (all day)
    """
    start, end = (dt.astimezone(local_tz) for dt in local_span(event, local_tz))
    day_after = start_of_next_local_day(start_of_next_day, local_tz)
    is_today = start < start_of_next_day
    is_tomorrow = not is_today and start < day_after

    if event.all_day:
        if is_tomorrow:
            return tomorrow
        return start.strftime("%a, %b %-d")

    when = format_time_range(start, end, ampm)
    if is_tomorrow:
        return f"{when}, {tomorrow}"
    if not is_today:
        return f"{start.strftime('%a')} {when}"
    return when


def event_slot(
    event: EventInstance,
    start_of_next_day: datetime,
    local_tz: tzinfo,
    ampm: bool = False,
    no_title: str = NO_TITLE,
    tomorrow: str = TOMORROW,
) -> EventSlot:
    return EventSlot(
        visible=True,
        when=format_when(event, start_of_next_day, local_tz, ampm, tomorrow),
        title=event.title or no_title,
        where=event.location or "",
    )


def build_model(
    events: Sequence[EventInstance],
    summary: AggregationSummary,
    now: datetime,
    local_tz: tzinfo | None = None,
    *,
    ampm: bool = False,
    no_title: str = NO_TITLE,
    tomorrow: str = TOMORROW,
) -> DisplayModel:
    """
    Turn an aggregation summary into the model shown on a surface.

    Slot 0 always holds the primary event. Slot 1 holds the second event
    sharing the primary start time, or else the next distinct event, unless
    a portrait conflict count takes its place.
    """
    local_tz = local_tz or tz.tzlocal()
    if summary.primary_count == 0 or summary.primary_row is None:
        return no_events_model(now, local_tz)

    day_of_week, day_of_month = header_fields(now, local_tz)
    start_of_next_day = start_of_next_local_day(now, local_tz)

    def populate(row: int) -> EventSlot:
        return event_slot(
            events[row], start_of_next_day, local_tz, ampm, no_title, tomorrow
        )

    primary = populate(summary.primary_row)

    landscape_count = summary.primary_count - 1

    portrait_count = 0
    if summary.primary_count > 2:
        portrait_count = summary.primary_count - 1
    elif summary.primary_count == 1 and summary.secondary_count > 1:
        portrait_count = summary.secondary_count

    secondary = EventSlot()
    if portrait_count == 0:
        row = None
        if summary.primary_count == 2:
            row = summary.primary_conflict_row
        elif summary.primary_count == 1:
            row = summary.secondary_row
        if row is not None:
            secondary = populate(row)

    return DisplayModel(
        day_of_week=day_of_week,
        day_of_month=day_of_month,
        slots=(primary, secondary),
        portrait_conflict_visible=portrait_count > 0,
        portrait_conflict=more_events(portrait_count) if portrait_count else "",
        landscape_conflict_visible=landscape_count > 0,
        landscape_conflict=more_events(landscape_count) if landscape_count > 0 else "",
    )


def launch_time(summary: AggregationSummary, now: datetime) -> datetime | None:
    """Where a click on the surface should open the calendar; None for the agenda."""
    if summary.primary_count == 0:
        return None
    if summary.primary_all_day:
        return now
    return summary.primary_time
