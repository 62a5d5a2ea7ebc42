import inspect
import textwrap
import shutil
import os
from datetime import datetime, timedelta
from pathlib import Path

from nextup.nextup_env import NextupEnvironment

ELLIPSIS_CHAR = "…"

THEME_PALETTES = {
    "dark": {
        "header_color": "#fffacd",
        "when_color": "#87cefa",
        "title_color": "#32cd32",
        "where_color": "#a9a9a9",
        "conflict_color": "#ff6347",
        "frame_color": "#f0e68c",
        "dim_color": "#a9a9a9",
    },
    "light": {
        "header_color": "#2f4f4f",
        "when_color": "#4169e1",
        "title_color": "#008000",
        "where_color": "#708090",
        "conflict_color": "#dc143c",
        "frame_color": "#b8860b",
        "dim_color": "#708090",
    },
}


def get_theme_palette(theme: str) -> dict[str, str]:
    return dict(THEME_PALETTES.get(theme, THEME_PALETTES["dark"]))


def truncate_string(s: str, max_length: int) -> str:
    if len(s) > max_length:
        return f"{s[: max_length - 2]} {ELLIPSIS_CHAR}"
    else:
        return s


def format_clock(dt: datetime, ampm: bool = False) -> str:
    """9:30, 14:05 or with ampm 9:30am, 2pm."""
    if ampm:
        return dt.strftime("%-I:%M%p").lower().replace(":00", "")
    hm = dt.strftime("%H:%M")
    if hm.startswith("0"):
        hm = hm[1:]
    return hm


def format_time_range(start_dt: datetime, end_dt: datetime | None, ampm: bool = False) -> str:
    """Format a time range respecting the AM/PM preference."""
    if end_dt is None or end_dt <= start_dt:
        return format_clock(start_dt, ampm)

    if ampm:
        start_fmt = "%-I:%M%p" if start_dt.hour < 12 <= end_dt.hour else "%-I:%M"
        start_str = start_dt.strftime(start_fmt).lower().replace(":00", "")
        end_str = end_dt.strftime("%-I:%M%p").lower().replace(":00", "")
        return f"{start_str}-{end_str}"

    return f"{format_clock(start_dt)}-{format_clock(end_dt)}"


def more_events(count: int) -> str:
    return f"{count} more event{'s' if count != 1 else ''}"


def duration_in_words(seconds: int, short: bool = False) -> str:
    """
    Convert a duration (seconds) into a human-readable string.
    """
    sign = "" if seconds >= 0 else "- "
    total_seconds = abs(int(seconds))
    units = [
        ("week", 604800),
        ("day", 86400),
        ("hour", 3600),
        ("minute", 60),
        ("second", 1),
    ]
    parts: list[str] = []
    for name, unit_seconds in units:
        value, total_seconds = divmod(total_seconds, unit_seconds)
        if value:
            parts.append(f"{sign}{value} {name}{'s' if value > 1 else ''}")
    if not parts:
        return "zero minutes"
    return " ".join(parts[:2]) if short else " ".join(parts)


def timedelta_in_words(td: timedelta, short: bool = True) -> str:
    return duration_in_words(int(td.total_seconds()), short=short)


def _get_runtime_home() -> Path:
    override = os.environ.get("NEXTUP_HOME")
    if override:
        return Path(override).expanduser()
    return NextupEnvironment().home


def _resolve_log_file_path(file_path: str | Path) -> Path:
    path = Path(file_path)
    if path.is_absolute():
        return path
    return _get_runtime_home() / path


def _default_log_relative_path(kind: str) -> Path:
    """Return logs/log_<YYMMDD>.md style paths under the runtime home."""
    suffix = datetime.now().strftime("%y%m%d")
    return Path("logs") / f"{kind}_{suffix}.md"


def _caller_name(frame) -> str:
    func_name = frame.f_code.co_name
    if "self" in frame.f_locals:  # instance method
        return f"{frame.f_locals['self'].__class__.__name__}.{func_name}"
    if "cls" in frame.f_locals:  # classmethod
        return f"{frame.f_locals['cls'].__name__}.{func_name}"
    return func_name


def _write_msg(
    kind: str, caller_name: str, msg: str, file_path: str | Path | None, print_output: bool
):
    lines = [
        f"- {datetime.now().strftime('%H:%M:%S')} {kind}_msg ({caller_name}):  ",
    ]
    lines.extend(
        [
            f"\n{x}"
            for x in textwrap.wrap(
                msg.strip(),
                width=max(shutil.get_terminal_size()[0] - 6, 40),
                initial_indent="   ",
                subsequent_indent="   ",
            )
        ]
    )
    lines.append("\n\n")

    # Best-effort file logging; fall back to console when the file is unwritable.
    if file_path is None:
        file_path = _default_log_relative_path(kind)
    log_path = _resolve_log_file_path(file_path)

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a", encoding="utf-8") as f:
            f.writelines(lines)
    except OSError:
        print_output = True

    if print_output:
        print("".join(lines))


def log_msg(
    msg: str,
    file_path: str | Path | None = None,
    print_output: bool = False,
):
    """
    Log a message and save it directly to a file.

    Args:
        msg (str): The message to log.
        file_path (str | Path | None, optional): Overrides the default path when
            provided. Defaults to ``None`` which writes to ``logs/log_<YYMMDD>.md``.
        print_output (bool, optional): If True, also print to console.
    """
    caller_name = _caller_name(inspect.stack()[1].frame)
    _write_msg("log", caller_name, msg, file_path, print_output)

