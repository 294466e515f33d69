"""Tabular display of a merged configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

from tbp.config.convert import format_value

if TYPE_CHECKING:
    from tbp.config.manager import Config


def render_config(config: Config, mask_sensitive: bool = True, title: str = "Configuration") -> Table:
    """Build a table of every key, its value and the source that supplied it."""
    table = Table(title=title)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_column("Source", style="dim")

    values = config.dump(mask_sensitive=mask_sensitive)
    for key in sorted(values):
        table.add_row(key, format_value(values[key]), config.source_of(key) or "")
    return table


def print_config(config: Config, console: Console | None = None, mask_sensitive: bool = True) -> None:
    (console or Console()).print(render_config(config, mask_sensitive=mask_sensitive))
