"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. Field defaults in src/config/settings.py
#   2. config/config.yaml  - Static defaults checked into the repo
#   3. .env file / environment variables
#
# The YAML file may group keys in sections for readability:
#
#   chunking:
#     max_chunk_characters: 800
#   retrieval:
#     related_chunks_result_limit: 20
#
# Sections are flattened before the values reach Settings; unknown keys
# raise a ConfigurationError so typos do not silently fall back to defaults.
# ──────────────────────────────────────────────────────────────────────
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from src.config.settings import Settings
from src.utils.errors import ConfigurationError


def load_settings(path: str = "config/config.yaml", **overrides: Any) -> Settings:
    """Build :class:`Settings` from an optional YAML file plus the environment.

    Environment variables (and ``.env``) win over YAML values; explicit
    keyword *overrides* win over both.

    Args:
        path: Path to the YAML configuration file.  A missing file is not
            an error.
        **overrides: Field values applied last (e.g. from CLI flags).

    Returns:
        A validated Settings instance.
    """
    yaml_values = _flatten(_read_yaml(Path(path)))

    unknown = sorted(k for k in yaml_values if k not in Settings.model_fields)
    if unknown:
        raise ConfigurationError(
            message=f"Unknown configuration keys in {path}: {', '.join(unknown)}"
        )

    # Only pass YAML values whose env var is unset; pydantic-settings gives
    # init kwargs precedence over the environment otherwise.
    init_values = {
        key: value
        for key, value in yaml_values.items()
        if key.upper() not in os.environ
    }
    init_values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return Settings(**init_values)
    except ValidationError as exc:
        raise ConfigurationError(message=f"Invalid configuration: {exc}") from exc


def _read_yaml(config_path: Path) -> dict:
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        loaded = yaml.safe_load(f) or {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(message=f"{config_path} must contain a mapping")
    return loaded


def _flatten(values: dict) -> dict[str, Any]:
    """Lift one level of section nesting into a flat key/value dict."""
    flat: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, dict):
            flat.update(value)
        else:
            flat[key] = value
    return flat
