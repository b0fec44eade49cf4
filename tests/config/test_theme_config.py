"""Unit tests for ThemeConfig JSON persistence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from plotbuild.config import SCHEMA_VERSION, ThemeConfig, ThemeConfigData
from plotbuild.theme import Theme, ThemeMode


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Config file location inside a not yet existing directory."""
    return tmp_path / "plotbuild" / "theme.json"


def test_missing_file_gives_defaults(config_path: Path) -> None:
    """A missing file loads empty overrides and is not created."""
    cfg = ThemeConfig.load(config_path=config_path)
    assert cfg.get_overrides() == {}
    assert not config_path.exists()


def test_create_if_missing_writes_defaults(config_path: Path) -> None:
    """create_if_missing writes the default payload straight away."""
    ThemeConfig.load(config_path=config_path, create_if_missing=True)
    assert json.loads(config_path.read_text(encoding="utf-8")) == {"schema_version": SCHEMA_VERSION, "theme": {}}


def test_save_and_load_round_trip(config_path: Path) -> None:
    """Saved overrides come back as Theme values."""
    cfg = ThemeConfig.load(config_path=config_path)
    cfg.set_override("base_size", 14)
    cfg.set_override("mode", "dark")
    cfg.save()

    theme = ThemeConfig.load(config_path=config_path).to_theme()
    assert theme.base_size == 14
    assert theme.mode is ThemeMode.DARK


def test_unknown_override_is_rejected(config_path: Path) -> None:
    """Only Theme fields can be overridden."""
    cfg = ThemeConfig(path=config_path)
    with pytest.raises(KeyError):
        cfg.set_override("font_family", "serif")


def test_invalid_json_gives_defaults(config_path: Path) -> None:
    """A corrupt file is ignored."""
    config_path.parent.mkdir(parents=True)
    config_path.write_text("{not json", encoding="utf-8")
    assert ThemeConfig.load(config_path=config_path).get_overrides() == {}


def test_non_dict_payload_gives_defaults(config_path: Path) -> None:
    """A JSON list is not a config."""
    config_path.parent.mkdir(parents=True)
    config_path.write_text("[1, 2]", encoding="utf-8")
    assert ThemeConfig.load(config_path=config_path).get_overrides() == {}


def test_schema_mismatch_resets_by_default(config_path: Path) -> None:
    """An old schema version is discarded unless asked to keep it."""
    config_path.parent.mkdir(parents=True)
    config_path.write_text(json.dumps({"schema_version": 0, "theme": {"base_size": 9}}), encoding="utf-8")

    assert ThemeConfig.load(config_path=config_path).get_overrides() == {}

    kept = ThemeConfig.load(config_path=config_path, reset_on_version_mismatch=False)
    assert kept.get_overrides() == {"base_size": 9}
    assert kept.data.schema_version == SCHEMA_VERSION


def test_unknown_keys_are_ignored() -> None:
    """Unknown root keys and theme fields are dropped on load."""
    data = ThemeConfigData.from_json_dict({
        "schema_version": 1,
        "theme": {"base_size": 9, "font_family": "serif"},
        "window": {"w": 10},
    })
    assert data.theme == {"base_size": 9}


def test_invalid_stored_value_falls_back(config_path: Path) -> None:
    """Values Theme rejects are dropped; call overrides still apply."""
    cfg = ThemeConfig(path=config_path, data=ThemeConfigData(theme={"legend_position": "middle"}))
    theme = cfg.to_theme(base_size=20.0)
    assert theme.legend_position == "right"
    assert theme.base_size == 20.0


def test_set_from_theme_round_trips_through_json(config_path: Path) -> None:
    """A whole Theme can be stored and rebuilt."""
    cfg = ThemeConfig(path=config_path)
    cfg.set_from_theme(Theme(mode="dark", legend_position=(0.8, 0.2), base_size=12.0))
    cfg.save()

    theme = ThemeConfig.load(config_path=config_path).to_theme()
    assert theme.mode is ThemeMode.DARK
    assert theme.legend_position == (0.8, 0.2)
    assert theme.plot_background == "#000000"
