from __future__ import annotations

from datetime import datetime, timedelta, tzinfo
from typing import Sequence

from dateutil import tz

from .events import AggregationSummary, EventInstance, event_flip
from .timeconv import start_of_next_local_day

NO_EVENTS_INTERVAL = timedelta(hours=6)


def next_deadline(
    events: Sequence[EventInstance],
    summary: AggregationSummary,
    now: datetime,
    local_tz: tzinfo | None = None,
) -> datetime | None:
    """
    The next instant the glance goes stale: when the primary event flips or
    at local midnight, when the header date changes, whichever is sooner.
    None when nothing is upcoming.
    """
    if summary.primary_count == 0 or summary.primary_row is None:
        return None
    local_tz = local_tz or tz.tzlocal()
    flip = event_flip(events[summary.primary_row], local_tz)
    return min(flip, start_of_next_local_day(now, local_tz))


def resolve_trigger(
    deadline: datetime | None,
    now: datetime,
    fallback: timedelta = NO_EVENTS_INTERVAL,
) -> datetime:
    """Fall back to polling when there is no deadline or it has already passed."""
    if deadline is None or deadline <= now:
        return now + fallback
    return deadline


def format_debug_time(when: datetime, now: datetime) -> str:
    """'14:45:00 (+45 mins)' or '14:00:30 (+30 secs)' for logs."""
    delta = when - now
    clock = when.strftime("%H:%M:%S")
    if delta > timedelta(minutes=1):
        return f"{clock} ({int(delta / timedelta(minutes=1)):+d} mins)"
    return f"{clock} ({int(delta / timedelta(seconds=1)):+d} secs)"
