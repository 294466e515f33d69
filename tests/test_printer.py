"""Tests for configuration display."""

from __future__ import annotations

from rich.console import Console

from tbp.config import Config, DefaultSource, Field, print_config, render_config


def _config() -> Config:
    config = Config([DefaultSource({"server": {"port": 9090}, "db": {"password": "hunter2"}})])
    config.add_field_metadata(Field("db.password", sensitive=True))
    config.load()
    return config


class TestPrinter:
    """Test the rich table rendering."""

    def test_render_config_rows(self) -> None:
        table = render_config(_config())
        assert [column.header for column in table.columns] == ["Key", "Value", "Source"]
        assert table.row_count == 2

    def test_print_config_masks_sensitive(self) -> None:
        console = Console(record=True, width=120)
        print_config(_config(), console=console)
        text = console.export_text()

        assert "server.port" in text
        assert "9090" in text
        assert "defaults" in text
        assert "******" in text
        assert "hunter2" not in text

    def test_print_config_unmasked(self) -> None:
        console = Console(record=True, width=120)
        print_config(_config(), console=console, mask_sensitive=False)
        assert "hunter2" in console.export_text()
