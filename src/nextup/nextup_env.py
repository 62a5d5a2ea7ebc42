from pathlib import Path
import os
import tomllib
from pydantic import BaseModel, Field, ValidationError
from typing import Optional
from jinja2 import Template


# ─── Config Schema ─────────────────────────────────────────────────
class UIConfig(BaseModel):
    theme: str = Field("dark", pattern="^(dark|light)$")
    orientation: str = Field("portrait", pattern="^(portrait|landscape)$")
    ampm: bool = False


class WidgetConfig(BaseModel):
    search_days: int = Field(7, ge=1)
    max_rows: int = Field(10, ge=1)
    no_events_hours: float = Field(6.0, gt=0)
    no_title: str = "(No title)"
    tomorrow: str = "Tomorrow"


class NextupConfig(BaseModel):
    title: str = "Nextup Configuration"
    timezone: str = ""
    ui: UIConfig = UIConfig()
    widget: WidgetConfig = WidgetConfig()


# ─── Commented Template ────────────────────────────────────
CONFIG_TEMPLATE = """\
title = "{{ title }}"

# timezone: str = '' | 'America/New_York' | ...
# The zone used for "local" wall-clock time. Leave empty to use
# the zone of the machine.
timezone = "{{ timezone }}"

[ui]
# theme: str = 'dark' | 'light'
theme = "{{ ui.theme }}"

# orientation: str = 'portrait' | 'landscape'
# Portrait shows two event slots, landscape shows one slot
# and a conflict count beside it.
orientation = "{{ ui.orientation }}"

# ampm: bool = true | false
ampm = {{ ui.ampm | lower }}

[widget]
# How many days ahead to look for upcoming events.
search_days = {{ widget.search_days }}

# The most event instances considered in a single pass.
max_rows = {{ widget.max_rows }}

# When there is nothing upcoming, or the computed refresh time
# has already passed, check again after this many hours.
no_events_hours = {{ widget.no_events_hours }}

# Shown in place of an empty event title.
no_title = "{{ widget.no_title }}"

# Shown for events starting on the next local day.
tomorrow = "{{ widget.tomorrow }}"
"""

# ─── Save Config with Comments ───────────────────────────────


def render_config(config: NextupConfig) -> str:
    template = Template(CONFIG_TEMPLATE)
    return template.render(**config.model_dump()).strip() + "\n"


def save_config_from_template(config: NextupConfig, path: Path):
    path.write_text(render_config(config), encoding="utf-8")
    print(f"✅ Config with comments written to: {path}")


# ─── Main Environment Class ───────────────────────────────


class NextupEnvironment:
    def __init__(self):
        self._home = self._resolve_home()
        self._config: Optional[NextupConfig] = None

    @property
    def home(self) -> Path:
        return self._home

    @property
    def config_path(self) -> Path:
        return self.home / "config.toml"

    @property
    def db_path(self) -> Path:
        return self.home / "nextup.db"

    def ensure(self, init_config: bool = True, init_db_fn: Optional[callable] = None):
        self.home.mkdir(parents=True, exist_ok=True)

        if init_config and not self.config_path.exists():
            save_config_from_template(NextupConfig(), self.config_path)

        if init_db_fn and not self.db_path.exists():
            init_db_fn(self.db_path)

    def load_config(self) -> NextupConfig:
        # Step 1: Create the file if it doesn't exist
        if not self.config_path.exists():
            config = NextupConfig()
            self.home.mkdir(parents=True, exist_ok=True)
            self.config_path.write_text(render_config(config), encoding="utf-8")
            print(f"✅ Created new config file at {self.config_path}")
            self._config = config
            return config

        # Step 2: Try to load and validate the config
        try:
            with open(self.config_path, "rb") as f:
                data = tomllib.load(f)
            config = NextupConfig.model_validate(data)
        except (ValidationError, tomllib.TOMLDecodeError) as e:
            print(f"⚠️ Config error in {self.config_path}: {e}\nUsing defaults.")
            config = NextupConfig()

        # Step 3: Always regenerate the canonical version
        rendered = render_config(config)
        current_text = self.config_path.read_text(encoding="utf-8")
        if rendered != current_text:
            self.config_path.write_text(rendered, encoding="utf-8")
            print(f"✅ Updated {self.config_path} with any missing defaults.")

        self._config = config
        return config

    @property
    def config(self) -> NextupConfig:
        if self._config is None:
            return self.load_config()
        return self._config

    def _resolve_home(self) -> Path:
        cwd = Path.cwd()
        if (cwd / "config.toml").exists() and (cwd / "nextup.db").exists():
            return cwd

        env_home = os.getenv("NEXTUP_HOME")
        if env_home:
            return Path(env_home).expanduser()

        xdg_home = os.getenv("XDG_CONFIG_HOME")
        if xdg_home:
            return Path(xdg_home).expanduser() / "nextup"
        else:
            return Path.home() / ".config" / "nextup"
