from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Collection, Hashable, Sequence

from dateutil import tz

from .timeconv import to_local

FLIP_CAP = timedelta(minutes=15)


@dataclass(frozen=True)
class EventInstance:
    id: Hashable
    start: datetime  # aware; UTC midnight when all_day
    end: datetime
    all_day: bool = False
    title: str = ""
    location: str = ""
    calendar_id: int = 0


@dataclass
class AggregationSummary:
    primary_row: int | None = None
    primary_time: datetime | None = None
    primary_all_day: bool = False
    primary_count: int = 0  # events sharing the primary start time
    primary_conflict_row: int | None = None
    secondary_row: int | None = None
    secondary_time: datetime | None = None
    secondary_count: int = 0  # events sharing the secondary start time
    watch_found: bool = False


def local_span(
    event: EventInstance, local_tz: tzinfo | None = None
) -> tuple[datetime, datetime]:
    """Start and end of ``event`` ready for comparison with a local "now"."""
    if event.all_day:
        return to_local(event.start, local_tz), to_local(event.end, local_tz)
    return event.start, event.end


def flip_point(start_local: datetime, end_local: datetime) -> datetime:
    """
    When this event gives way to the next one: 15 minutes in or half way
    through, whichever comes first.
    """
    return start_local + min(FLIP_CAP, (end_local - start_local) / 2)


def event_flip(event: EventInstance, local_tz: tzinfo | None = None) -> datetime:
    return flip_point(*local_span(event, local_tz))


def sort_key(event: EventInstance, local_tz: tzinfo | None = None) -> tuple:
    """(local start day, start minute, end minute, calendar id)"""
    local_tz = local_tz or tz.tzlocal()
    start, end = (dt.astimezone(local_tz) for dt in local_span(event, local_tz))
    return (
        start.date(),
        start.hour * 60 + start.minute,
        end.hour * 60 + end.minute,
        event.calendar_id,
    )


def aggregate(
    events: Sequence[EventInstance],
    watch_ids: Collection[Hashable] | None,
    now: datetime,
    local_tz: tzinfo | None = None,
) -> AggregationSummary:
    """
    Walk the sorted instances once and mark the first two distinct start
    times still worth showing.

    Args:
        events: instances sorted by local start day, start minute, end
            minute and calendar id.
        watch_ids: event ids known to have changed; sets ``watch_found`` when
            one of them is still current.
        now: the instant of this pass.

    Returns:
        AggregationSummary: rows index into ``events``.
    """
    local_tz = local_tz or tz.tzlocal()
    summary = AggregationSummary()

    for row, event in enumerate(events):
        start, end = local_span(event, local_tz)

        # already past its flip point
        if flip_point(start, end) < now:
            continue

        if watch_ids and event.id in watch_ids:
            summary.watch_found = True

        if summary.primary_row is None:
            summary.primary_row = row
            summary.primary_time = start
            summary.primary_all_day = event.all_day
            summary.primary_count = 1
        elif summary.primary_time == start:
            if summary.primary_conflict_row is None:
                summary.primary_conflict_row = row
            summary.primary_count += 1
        elif summary.secondary_row is None:
            summary.secondary_row = row
            summary.secondary_time = start
            summary.secondary_count = 1
        elif summary.secondary_time == start:
            summary.secondary_count += 1
        else:
            # a third start time; nothing more can be shown
            break

    return summary
