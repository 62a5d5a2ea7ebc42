from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text
from rich import box

from .display import DisplayModel, EventSlot
from .shared import get_theme_palette, truncate_string

NO_EVENTS = "No upcoming events"


def slot_lines(slot: EventSlot, palette: dict[str, str], width: int) -> list[Text]:
    if not slot.visible:
        return []
    lines = [
        Text(slot.when, style=palette["when_color"]),
        Text(truncate_string(slot.title, width), style=f"bold {palette['title_color']}"),
    ]
    if slot.show_where:
        lines.append(Text(truncate_string(slot.where, width), style=palette["where_color"]))
    return lines


def render_panel(
    model: DisplayModel,
    orientation: str = "portrait",
    theme: str = "dark",
    width: int = 36,
) -> Panel:
    """
    Portrait: both slots and the portrait conflict count.
    Landscape: the first slot and the landscape conflict count.
    """
    palette = get_theme_palette(theme)
    inner = width - 4
    header = Text.assemble(
        (model.day_of_week, f"bold {palette['header_color']}"),
        " ",
        (model.day_of_month, palette["header_color"]),
    )

    if model.no_events:
        body = [Text(NO_EVENTS, style=palette["dim_color"])]
    else:
        first, second = model.slots
        body = slot_lines(first, palette, inner)
        if orientation == "landscape":
            if model.landscape_conflict_visible:
                body.append(Text(model.landscape_conflict, style=palette["conflict_color"]))
        else:
            second_lines = slot_lines(second, palette, inner)
            if second_lines:
                body.append(Text(""))
                body.extend(second_lines)
            if model.portrait_conflict_visible:
                body.append(Text(""))
                body.append(Text(model.portrait_conflict, style=palette["conflict_color"]))

    return Panel(
        Group(*body),
        title=header,
        title_align="left",
        border_style=palette["frame_color"],
        box=box.ROUNDED,
        width=width,
    )


class ConsoleSink:
    """
    Paint models onto a rich console. A surface whose model is unchanged
    is not repainted.
    """

    def __init__(
        self,
        console: Console | None = None,
        orientation: str = "portrait",
        theme: str = "dark",
        width: int = 36,
    ):
        self.console = console or Console()
        self.orientation = orientation
        self.theme = theme
        self.width = width
        self._last: dict = {}

    def render(self, surface_ids, model: DisplayModel) -> bool:
        if self._last.get(surface_ids) == model:
            return False
        self._last[surface_ids] = model
        self.console.print(render_panel(model, self.orientation, self.theme, self.width))
        return True
