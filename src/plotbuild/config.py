"""
Theme config persistence for plotbuild (platformdirs + JSON).

Persisted items (schema v1):
- theme: dict of Theme field overrides (base_size, legend_position, ...)

Behavior:
- If config file missing or unreadable -> defaults are used
- If schema_version mismatches:
  - default: reset to defaults
  - optional: keep loaded but update version
- Unknown keys in loaded JSON are ignored with warnings

Design:
- ThemeConfigData dataclass holds JSON-friendly data
- ThemeConfig manager provides explicit API for load/save
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from platformdirs import user_config_dir

from plotbuild.theme import Theme
from plotbuild.utils.logging import get_logger

logger = get_logger(__name__)

# Increment when you make a breaking change to the on-disk JSON schema.
SCHEMA_VERSION: int = 1

THEME_FIELDS = frozenset(f.name for f in fields(Theme) if f.init)


@dataclass
class ThemeConfigData:
    """
    JSON-serializable config payload.

    Schema v1:
    - theme: Dict[str, Any] - Theme keyword overrides, e.g.
      {"mode": "dark", "base_size": 12, "legend_position": "bottom"}
    """
    schema_version: int = SCHEMA_VERSION
    theme: Dict[str, Any] = field(default_factory=dict)

    def to_json_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "schema_version": self.schema_version,
            "theme": dict(self.theme),
        }

    @classmethod
    def from_json_dict(cls, d: Dict[str, Any]) -> "ThemeConfigData":
        """
        Tolerant loader:
        - ignores unknown keys (root level and theme fields)
        - tolerates a missing or malformed theme dict
        """
        schema_version = int(d.get("schema_version", -1))

        theme: Dict[str, Any] = {}
        raw = d.get("theme", {})
        if isinstance(raw, dict):
            for key, value in raw.items():
                if key in THEME_FIELDS:
                    theme[key] = value
                else:
                    logger.warning(f"Unknown theme field '{key}' in theme config, ignoring")
        else:
            logger.warning("theme is not a dict, using empty overrides")

        known_keys = {"schema_version", "theme"}
        for key in d.keys():
            if key not in known_keys:
                logger.warning(f"Unknown key '{key}' in theme config, ignoring")

        return cls(schema_version=schema_version, theme=theme)


class ThemeConfig:
    """
    Manager for loading/saving ThemeConfigData to disk.
    """

    def __init__(self, *, path: Path, data: Optional[ThemeConfigData] = None):
        self.path = path
        self.data = data if data is not None else ThemeConfigData()

    # -----------------------------
    # Construction / persistence
    # -----------------------------
    @staticmethod
    def default_config_path(
        app_name: str = "plotbuild",
        filename: str = "theme.json",
        app_author: str | None = None,
    ) -> Path:
        """
        Determine OS-appropriate per-user config path.

        macOS:   ~/Library/Application Support/plotbuild/theme.json
        Linux:   ~/.config/plotbuild/theme.json
        Windows: %APPDATA%\\plotbuild\\theme.json
        """
        d = Path(user_config_dir(app_name, app_author))
        d.mkdir(parents=True, exist_ok=True)
        return d / filename

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        app_name: str = "plotbuild",
        filename: str = "theme.json",
        app_author: str | None = None,
        schema_version: int = SCHEMA_VERSION,
        reset_on_version_mismatch: bool = True,
        create_if_missing: bool = False,
    ) -> "ThemeConfig":
        """
        Load config from disk.

        If file doesn't exist or is unreadable -> defaults.
        If schema mismatch:
          - reset_on_version_mismatch=True -> defaults
          - else -> keep loaded but overwrite schema_version

        If create_if_missing=True and file is missing -> immediately write defaults.
        """
        path = config_path or cls.default_config_path(app_name=app_name, filename=filename, app_author=app_author)
        default_data = ThemeConfigData(schema_version=schema_version)

        try:
            raw = path.read_text(encoding="utf-8")
            parsed = json.loads(raw)
            if not isinstance(parsed, dict):
                logger.warning(f"Theme config file at {path} does not contain a dict, using defaults")
                return cls(path=path, data=default_data)

            loaded = ThemeConfigData.from_json_dict(parsed)

            if int(loaded.schema_version) != int(schema_version):
                if reset_on_version_mismatch:
                    logger.warning(
                        f"Theme config schema version mismatch: loaded={loaded.schema_version}, "
                        f"expected={schema_version}, resetting to defaults"
                    )
                    return cls(path=path, data=default_data)
                loaded.schema_version = int(schema_version)

            return cls(path=path, data=loaded)
        except FileNotFoundError:
            logger.debug(f"Theme config file not found at {path}, using defaults")
            cfg = cls(path=path, data=default_data)
            if create_if_missing:
                cfg.save()
            return cfg
        except json.JSONDecodeError as e:
            logger.warning(f"Theme config file at {path} is not valid JSON: {e}, using defaults")
            return cls(path=path, data=default_data)
        except OSError as e:
            logger.warning(f"Error loading theme config from {path}: {e}, using defaults")
            return cls(path=path, data=default_data)

    def save(self) -> None:
        """Write config to disk."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            json_str = json.dumps(self.data.to_json_dict(), indent=2)
            self.path.write_text(json_str, encoding="utf-8")
            logger.info(f"Saved theme config to {self.path}")
        except Exception as e:
            logger.error(f"Error saving theme config to {self.path}: {e}")
            raise

    def get_overrides(self) -> Dict[str, Any]:
        return dict(self.data.theme)

    def set_override(self, key: str, value: Any) -> None:
        """Set one Theme field override. Raises KeyError for unknown fields."""
        if key not in THEME_FIELDS:
            raise KeyError(f"Theme has no field {key!r}")
        self.data.theme[key] = value

    def set_from_theme(self, theme: Theme) -> None:
        """Store every field of ``theme`` as an override."""
        self.data.theme = theme.to_dict()

    def to_theme(self, **overrides: Any) -> Theme:
        """Build a Theme from the stored overrides.

        Keyword overrides win over stored values. Stored values Theme rejects
        are dropped with a warning.
        """
        kwargs = {**self.data.theme, **overrides}
        try:
            return Theme(**kwargs)
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid theme config values ({e}), using defaults with call overrides only")
            return Theme(**overrides)
