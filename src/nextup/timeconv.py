"""
Local wall-clock conversions.

All-day instances are stored as UTC midnights: the date is what matters and
it carries no zone of its own. Before such a value can be compared with
"now" it has to be read as the same wall-clock reading in the local zone.
Timed instances are already absolute and only need ``astimezone``.
"""

from datetime import datetime, time, timedelta, tzinfo

from dateutil import tz

from .shared import log_msg


def local_zone(name: str | None = None) -> tzinfo:
    """Return the zone for ``name``, or the machine's zone when empty or unknown."""
    if not name:
        return tz.tzlocal()
    zone = tz.gettz(name)
    if zone is None:
        log_msg(f"unknown timezone {name!r}, using the local zone")
        return tz.tzlocal()
    return zone


def _at_midnight(day, local_tz: tzinfo) -> datetime:
    # a few zones shift DST at midnight
    return tz.resolve_imaginary(datetime.combine(day, time(0, 0), tzinfo=local_tz))


def to_local(instant: datetime, local_tz: tzinfo | None = None) -> datetime:
    """
    Reinterpret the UTC wall-clock reading of ``instant`` as a local
    wall-clock reading: 2026-10-19 00:00 UTC -> 2026-10-19 00:00 local.
    """
    local_tz = local_tz or tz.tzlocal()
    if instant.tzinfo is not None:
        instant = instant.astimezone(tz.UTC)
    return tz.resolve_imaginary(instant.replace(tzinfo=local_tz))


def as_local(instant: datetime, local_tz: tzinfo | None = None) -> datetime:
    """The same instant expressed in the local zone."""
    return instant.astimezone(local_tz or tz.tzlocal())


def start_of_next_local_day(
    reference: datetime, local_tz: tzinfo | None = None
) -> datetime:
    """Local midnight strictly after ``reference``."""
    local_tz = local_tz or tz.tzlocal()
    day = reference.astimezone(local_tz).date() + timedelta(days=1)
    return _at_midnight(day, local_tz)
