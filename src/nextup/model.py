import os
import sqlite3
from datetime import date, datetime, time, timedelta, tzinfo
from typing import List, Tuple

from dateutil import tz

from nextup.nextup_env import NextupEnvironment

from .events import EventInstance, local_span, sort_key
from .shared import log_msg

# self_attendee_status values
ATTENDEE_STATUS_NONE = 0
ATTENDEE_STATUS_ACCEPTED = 1
ATTENDEE_STATUS_DECLINED = 2
ATTENDEE_STATUS_INVITED = 3
ATTENDEE_STATUS_TENTATIVE = 4

DEFAULT_CALENDAR = "Personal"


def utc_midnight(d: date) -> datetime:
    """All-day boundaries are stored as UTC midnights."""
    return datetime.combine(d, time(0, 0), tzinfo=tz.UTC)


def all_day_bounds(first_day: date, last_day: date | None = None) -> Tuple[datetime, datetime]:
    """[first_day, last_day] inclusive -> (start, end) with end the following midnight."""
    last_day = last_day or first_day
    return utc_midnight(first_day), utc_midnight(last_day + timedelta(days=1))


def _to_ts(dt: datetime) -> int:
    return round(dt.timestamp())


def _from_ts(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=tz.UTC)


class DatabaseManager:
    def __init__(self, db_path: str, env: NextupEnvironment, reset: bool = False):
        self.db_path = str(db_path)
        self.env = env

        if reset and os.path.exists(self.db_path):
            os.remove(self.db_path)

        # the update worker queries from its own thread
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self.setup_database()

    def setup_database(self):
        """
        Create (if missing) the tables and indexes for nextup.

        Notes:
        - Instance timestamps are UTC epoch seconds (INTEGER).
        - All-day instances store UTC midnights; their dates are read as
          local dates when displayed.
        """
        # ---------------- Calendars ----------------
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS Calendars (
                id        INTEGER PRIMARY KEY AUTOINCREMENT,
                name      TEXT NOT NULL UNIQUE,
                selected  INTEGER NOT NULL DEFAULT 1      -- 1: shown, 0: hidden
            );
        """)

        # ---------------- Instances ----------------
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS Instances (
                id                    INTEGER PRIMARY KEY AUTOINCREMENT,
                event_id              INTEGER NOT NULL,
                calendar_id           INTEGER NOT NULL,
                title                 TEXT,
                location              TEXT,
                all_day               INTEGER NOT NULL DEFAULT 0,
                begin_ts              INTEGER NOT NULL,
                end_ts                INTEGER NOT NULL,
                self_attendee_status  INTEGER NOT NULL DEFAULT 0,
                FOREIGN KEY (calendar_id) REFERENCES Calendars(id) ON DELETE CASCADE
            );
        """)
        self.cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_instances_begin
            ON Instances(begin_ts);
        """)
        self.conn.commit()

    def close(self):
        self.conn.close()

    # ---------------- Calendars ----------------

    def add_calendar(self, name: str, selected: bool = True) -> int:
        self.cursor.execute(
            "INSERT OR IGNORE INTO Calendars (name, selected) VALUES (?, ?)",
            (name, int(selected)),
        )
        self.conn.commit()
        return self.get_calendar_id(name)

    def get_calendar_id(self, name: str) -> int | None:
        self.cursor.execute("SELECT id FROM Calendars WHERE name = ?", (name,))
        row = self.cursor.fetchone()
        return row[0] if row else None

    def get_calendars(self) -> List[Tuple[int, str, bool]]:
        self.cursor.execute("SELECT id, name, selected FROM Calendars ORDER BY id")
        return [(cid, name, bool(selected)) for cid, name, selected in self.cursor.fetchall()]

    def set_selected(self, name: str, selected: bool) -> bool:
        """Show or hide a calendar's instances. False when there is no such calendar."""
        self.cursor.execute(
            "UPDATE Calendars SET selected = ? WHERE name = ?", (int(selected), name)
        )
        self.conn.commit()
        return self.cursor.rowcount > 0

    # ---------------- Instances ----------------

    def next_event_id(self) -> int:
        self.cursor.execute("SELECT COALESCE(MAX(event_id), 0) + 1 FROM Instances")
        return self.cursor.fetchone()[0]

    def add_instance(
        self,
        title: str,
        start: datetime,
        end: datetime,
        all_day: bool = False,
        location: str = "",
        calendar: str = DEFAULT_CALENDAR,
        status: int = ATTENDEE_STATUS_NONE,
        event_id: int | None = None,
    ) -> int:
        """
        Store one event instance and return its event id.

        ``start`` and ``end`` must be aware; for all-day instances use
        ``all_day_bounds`` so both are UTC midnights.
        """
        calendar_id = self.get_calendar_id(calendar) or self.add_calendar(calendar)
        if event_id is None:
            event_id = self.next_event_id()
        self.cursor.execute(
            """
            INSERT INTO Instances
                (event_id, calendar_id, title, location, all_day,
                 begin_ts, end_ts, self_attendee_status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event_id,
                calendar_id,
                title,
                location,
                int(all_day),
                _to_ts(start),
                _to_ts(end),
                status,
            ),
        )
        self.conn.commit()
        return event_id

    def delete_event(self, event_id: int) -> int:
        self.cursor.execute("DELETE FROM Instances WHERE event_id = ?", (event_id,))
        self.conn.commit()
        return self.cursor.rowcount

    def get_upcoming_instances(
        self,
        now: datetime,
        window: timedelta = timedelta(days=7),
        limit: int = 10,
        local_tz: tzinfo | None = None,
    ) -> List[EventInstance]:
        """
        Instances overlapping [now, now + window) from selected calendars,
        excluding declined ones, sorted by local start day, start minute,
        end minute and calendar id, and capped at ``limit``.
        """
        local_tz = local_tz or tz.tzlocal()
        period_end = now + window
        # all-day rows are UTC midnights; a day of slack covers any local offset
        slack = timedelta(days=1)
        self.cursor.execute(
            """
            SELECT i.event_id, i.calendar_id, i.title, i.location, i.all_day,
                   i.begin_ts, i.end_ts
            FROM Instances i
            JOIN Calendars c ON i.calendar_id = c.id
            WHERE c.selected = 1
              AND i.self_attendee_status != ?
              AND i.begin_ts < ?
              AND i.end_ts >= ?
            ORDER BY i.begin_ts, i.id
            """,
            (
                ATTENDEE_STATUS_DECLINED,
                _to_ts(period_end + slack),
                _to_ts(now - slack),
            ),
        )
        instances = []
        for event_id, calendar_id, title, location, all_day, begin_ts, end_ts in self.cursor.fetchall():
            instance = EventInstance(
                id=event_id,
                start=_from_ts(begin_ts),
                end=_from_ts(end_ts),
                all_day=bool(all_day),
                title=title or "",
                location=location or "",
                calendar_id=calendar_id,
            )
            start, end = local_span(instance, local_tz)
            if start < period_end and end >= now:
                instances.append(instance)

        instances.sort(key=lambda instance: sort_key(instance, local_tz))
        log_msg(f"{len(instances)} instances in window, keeping {min(len(instances), limit)}")
        return instances[:limit]
