import os
import time
import click
from pathlib import Path
from rich import print
from rich.console import Console
from rich.table import Table
from dateutil.parser import parse as dateutil_parse
from dateutil.parser import ParserError

from nextup import __version__
from nextup.controller import Controller, UpdateRequest, utc_now
from nextup.display import launch_time
from nextup.model import (
    ATTENDEE_STATUS_DECLINED,
    ATTENDEE_STATUS_NONE,
    DEFAULT_CALENDAR,
    DatabaseManager,
    all_day_bounds,
)
from nextup.nextup_env import NextupEnvironment
from nextup.shared import format_time_range, timedelta_in_words
from nextup.timeconv import as_local, local_zone, to_local
from nextup.view import ConsoleSink

from datetime import date, datetime, timedelta


class _DateTimeParam(click.ParamType):
    name = "datetime"

    def convert(self, value, param, ctx):
        if value is None:
            return None
        if isinstance(value, datetime):
            return value
        s = str(value).strip().lower()
        if s == "now":
            return datetime.now()
        if s == "today":
            return datetime.combine(date.today(), datetime.min.time())
        try:
            return dateutil_parse(s)
        except (ParserError, ValueError, OverflowError):
            self.fail("Expected a date or datetime such as '2026-10-18 9:30'", param, ctx)


_DATETIME = _DateTimeParam()

VERSION = __version__


def ensure_database(db_path: str, env: NextupEnvironment):
    if not Path(db_path).exists():
        print(
            f"[yellow]⚠️ [/yellow]Database not found. Creating new database at {db_path}"
        )
        dbm = DatabaseManager(db_path, env)
        dbm.add_calendar(DEFAULT_CALENDAR)
        dbm.close()


def _aware(dt: datetime, local_tz) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=local_tz)
    return dt


@click.group()
@click.version_option(VERSION, prog_name="nextup", message="%(prog)s version %(version)s")
@click.option(
    "--home",
    help="Override the nextup workspace directory (equivalent to setting $NEXTUP_HOME).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, home, verbose):
    """nextup – a two slot glance at what is coming up next."""
    if home:
        os.environ["NEXTUP_HOME"] = (
            home  # Must be set before NextupEnvironment is instantiated
        )

    env = NextupEnvironment()
    env.ensure(init_config=True, init_db_fn=lambda path: ensure_database(path, env))
    config = env.load_config()

    ctx.ensure_object(dict)
    ctx.obj["ENV"] = env
    ctx.obj["DB"] = env.db_path
    ctx.obj["CONFIG"] = config
    ctx.obj["TZ"] = local_zone(config.timezone)
    ctx.obj["VERBOSE"] = verbose


@cli.command()
@click.argument("title", nargs=-1)
@click.option("--start", "-s", type=_DATETIME, required=True, help="Start date or datetime.")
@click.option(
    "--end",
    "-e",
    type=_DATETIME,
    help="End datetime, or last day for all-day events. Default: an hour after start, or the start day.",
)
@click.option("--all-day", "-a", is_flag=True, help="An all-day event; times are ignored.")
@click.option("--location", "-l", default="", help="Where the event takes place.")
@click.option("--calendar", "-c", default=DEFAULT_CALENDAR, show_default=True)
@click.option("--declined", is_flag=True, help="Record the event as declined.")
@click.pass_context
def add(ctx, title, start, end, all_day, location, calendar, declined):
    """Add an event instance."""
    env = ctx.obj["ENV"]
    local_tz = ctx.obj["TZ"]
    title = " ".join(title).strip()

    if all_day:
        begin_dt, end_dt = all_day_bounds(start.date(), end.date() if end else None)
    else:
        begin_dt = _aware(start, local_tz)
        end_dt = _aware(end, local_tz) if end else begin_dt + timedelta(hours=1)

    if end_dt < begin_dt:
        raise click.BadParameter("the end must not be before the start", param_hint="--end")

    dbm = DatabaseManager(ctx.obj["DB"], env)
    event_id = dbm.add_instance(
        title,
        begin_dt,
        end_dt,
        all_day=all_day,
        location=location,
        calendar=calendar,
        status=ATTENDEE_STATUS_DECLINED if declined else ATTENDEE_STATUS_NONE,
    )
    dbm.close()
    print(f"[green]✔ Added event {event_id}:[/green] {title or '(No title)'}")


@cli.command()
@click.pass_context
def calendars(ctx):
    """List calendars and whether they are shown."""
    dbm = DatabaseManager(ctx.obj["DB"], ctx.obj["ENV"])
    table = Table(title="Calendars")
    table.add_column("id", justify="right")
    table.add_column("name")
    table.add_column("shown")
    for cid, name, selected in dbm.get_calendars():
        table.add_row(str(cid), name, "✔" if selected else "")
    dbm.close()
    Console().print(table)


@cli.command()
@click.argument("name")
@click.option("--off", is_flag=True, help="Hide the calendar instead of showing it.")
@click.pass_context
def select(ctx, name, off):
    """Show or hide the events of a calendar."""
    dbm = DatabaseManager(ctx.obj["DB"], ctx.obj["ENV"])
    found = dbm.set_selected(name, not off)
    dbm.close()
    if not found:
        raise click.ClickException(f"no calendar named {name!r}")
    print(f"[green]✔ {name} is now {'hidden' if off else 'shown'}[/green]")


@cli.command(name="list")
@click.option("--now", "now_opt", type=_DATETIME, help="Evaluate at this instant instead of now.")
@click.pass_context
def list_(ctx, now_opt):
    """List the upcoming instances the glance considers."""
    config = ctx.obj["CONFIG"]
    local_tz = ctx.obj["TZ"]
    now = _aware(now_opt, local_tz) if now_opt else utc_now()

    dbm = DatabaseManager(ctx.obj["DB"], ctx.obj["ENV"])
    events = dbm.get_upcoming_instances(
        now,
        timedelta(days=config.widget.search_days),
        config.widget.max_rows,
        local_tz,
    )
    dbm.close()

    table = Table(title=f"Upcoming from {as_local(now, local_tz):%a %b %-d %H:%M}")
    table.add_column("row", justify="right")
    table.add_column("id", justify="right")
    table.add_column("day")
    table.add_column("time")
    table.add_column("title")
    table.add_column("location")
    for row, event in enumerate(events):
        if event.all_day:
            start = to_local(event.start, local_tz)
            when = "all day"
        else:
            start = as_local(event.start, local_tz)
            when = format_time_range(
                start, as_local(event.end, local_tz), config.ui.ampm
            )
        table.add_row(
            str(row),
            str(event.id),
            f"{start:%a %b %-d}",
            when,
            event.title,
            event.location,
        )
    Console().print(table)


@cli.command()
@click.option("--now", "now_opt", type=_DATETIME, help="Evaluate at this instant instead of now.")
@click.option(
    "--orientation",
    type=click.Choice(["portrait", "landscape"]),
    help="Override the configured orientation.",
)
@click.pass_context
def show(ctx, now_opt, orientation):
    """Show the glance once and report when it should next be refreshed."""
    env = ctx.obj["ENV"]
    config = ctx.obj["CONFIG"]
    local_tz = ctx.obj["TZ"]
    verbose = ctx.obj["VERBOSE"]
    now = _aware(now_opt, local_tz) if now_opt else utc_now()

    dbm = DatabaseManager(ctx.obj["DB"], env)
    sink = ConsoleSink(
        orientation=orientation or config.ui.orientation, theme=config.ui.theme
    )
    controller = Controller(dbm, env, sink, background=False)
    result = controller.compute(UpdateRequest(now=now))
    dbm.close()

    sink.render(None, result.model)

    if result.deadline is None:
        print(
            f"[yellow]nothing upcoming, check again in {timedelta_in_words(controller.fallback)}[/yellow]"
        )
    else:
        deadline = as_local(result.deadline, local_tz)
        print(
            f"next refresh: {deadline:%a %b %-d %H:%M} (in {timedelta_in_words(deadline - now)})"
        )
    if verbose:
        target = launch_time(result.summary, now)
        print(f"opens at: {as_local(target, local_tz) if target else 'agenda'}")
        print(result.summary)


@cli.command()
@click.option(
    "--orientation",
    type=click.Choice(["portrait", "landscape"]),
    help="Override the configured orientation.",
)
@click.pass_context
def watch(ctx, orientation):
    """Keep the glance current, refreshing only when it goes stale."""
    env = ctx.obj["ENV"]
    config = ctx.obj["CONFIG"]

    dbm = DatabaseManager(ctx.obj["DB"], env)
    sink = ConsoleSink(
        orientation=orientation or config.ui.orientation, theme=config.ui.theme
    )
    controller = Controller(dbm, env, sink)
    controller.request_update()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("[yellow]stopped[/yellow]")
    finally:
        controller.stop()
        dbm.close()


if __name__ == "__main__":
    cli()
