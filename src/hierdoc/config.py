"""
Configuration for hierdoc.

Serializer defaults in one place. Loaded from:
1. Defaults (this file)
2. Config file (~/.config/hierdoc/config.toml) if exists
3. Environment variables (HIERDOC_*) override file

Values detected in a document (indentation, styles) always win over these
defaults; explicit serialize options win over both.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tomllib  # stdlib in 3.11+
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class YamlConfig:
    """YAML serializer defaults."""
    indent_size: int = 2
    indent_char: str = " "
    flow_max_items: int = 8  # unstyled scalar arrays up to this size go inline
    flow_max_width: int = 60  # ... as long as the inline form fits this width
    fold_width: int = 80  # wrap column for folded (>) scalars

    @property
    def indent(self) -> str:
        return self.indent_char * self.indent_size


@dataclass
class JsonConfig:
    """JSON serializer defaults."""
    indent: int = 2
    ensure_ascii: bool = False


@dataclass
class Config:
    """Root config with all settings."""
    yaml: YamlConfig = field(default_factory=YamlConfig)
    json: JsonConfig = field(default_factory=JsonConfig)


def get_config_path() -> Path:
    """Get config file path, respecting XDG."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "hierdoc" / "config.toml"
    return Path.home() / ".config" / "hierdoc" / "config.toml"


def load_config() -> Config:
    """Load config from file if exists, else return defaults."""
    config = Config()
    path = get_config_path()

    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
            config = _apply_toml(config, data)
        except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError) as exc:
            logger.warning("Ignoring config file %s: %s", path, exc)
            config = Config()

    # env var overrides
    config = _apply_env(config)

    return config


def _indent_char(name: str) -> str:
    """Map 'tab'/'space' (or a literal character) to the indent character."""
    lowered = name.lower()
    if lowered in ("tab", "\t"):
        return "\t"
    if lowered in ("space", " "):
        return " "
    raise ValueError(f"indent_char must be 'space' or 'tab', got {name!r}")


def _apply_toml(config: Config, data: dict) -> Config:
    """Apply toml data to config."""
    if "yaml" in data:
        y = data["yaml"]
        if "indent_size" in y:
            config.yaml.indent_size = int(y["indent_size"])
        if "indent_char" in y:
            config.yaml.indent_char = _indent_char(str(y["indent_char"]))
        if "flow_max_items" in y:
            config.yaml.flow_max_items = int(y["flow_max_items"])
        if "flow_max_width" in y:
            config.yaml.flow_max_width = int(y["flow_max_width"])
        if "fold_width" in y:
            config.yaml.fold_width = int(y["fold_width"])

    if "json" in data:
        j = data["json"]
        if "indent" in j:
            config.json.indent = int(j["indent"])
        if "ensure_ascii" in j:
            config.json.ensure_ascii = bool(j["ensure_ascii"])

    return config


def _apply_env(config: Config) -> Config:
    """Apply environment variable overrides."""
    env_map: dict[str, tuple[str, str, type]] = {
        "HIERDOC_YAML_INDENT_SIZE": ("yaml", "indent_size", int),
        "HIERDOC_YAML_INDENT_CHAR": ("yaml", "indent_char", str),
        "HIERDOC_YAML_FLOW_MAX_ITEMS": ("yaml", "flow_max_items", int),
        "HIERDOC_YAML_FLOW_MAX_WIDTH": ("yaml", "flow_max_width", int),
        "HIERDOC_YAML_FOLD_WIDTH": ("yaml", "fold_width", int),
        "HIERDOC_JSON_INDENT": ("json", "indent", int),
        "HIERDOC_JSON_ENSURE_ASCII": ("json", "ensure_ascii", bool),
    }

    for env_key, (section, attr, conv) in env_map.items():
        val = os.environ.get(env_key)
        if val is None:
            continue
        with contextlib.suppress(ValueError):
            if conv is bool:
                # "true", "1", "yes" -> True
                converted = val.lower() in ("true", "1", "yes")
            elif attr == "indent_char":
                converted = _indent_char(val)
            else:
                converted = conv(val)
            setattr(getattr(config, section), attr, converted)

    return config


# Module-level config instance, loaded once on first use
_config: Config | None = None


def get_config() -> Config:
    """Get the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
