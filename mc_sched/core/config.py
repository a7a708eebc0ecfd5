from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from mc_sched.core.dates.fmt import DATE_FORMATS


DEFAULT_SETTINGS: dict[str, Any] = {
    # abs|rel, see core.dates.fmt
    "date_format": "abs",
    # None draws fresh randomness every run.
    "seed": None,
    "log_level": "WARNING",
}

ENV_OVERRIDES: dict[str, str] = {
    "seed": "MC_SCHED_SEED",
    "log_level": "MC_SCHED_LOG_LEVEL",
}


class SettingsError(ValueError):
    pass


def check_setting(key: str, value: Any) -> Any:
    if key == "date_format":
        if value not in DATE_FORMATS:
            raise SettingsError(f"date_format must be one of {list(DATE_FORMATS)}")
    elif key == "seed":
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise SettingsError("seed must be an integer or null")
    elif key == "log_level":
        if not isinstance(value, str) or not isinstance(logging.getLevelName(value.upper()), int):
            raise SettingsError(f"log_level is not a logging level: {value}")
        value = value.upper()
    else:
        raise SettingsError(f"unknown setting: {key}")
    return value


def load_settings_file(path: str | Path) -> dict[str, Any]:
    """Load settings overrides from a YAML mapping.

    Format:
      date_format: abs|rel
      seed: <int>|null
      log_level: DEBUG|INFO|WARNING|...
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise SettingsError("settings file must be a mapping of name -> value")
    return {k: check_setting(k, v) for k, v in raw.items()}


def env_settings() -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, env_key in ENV_OVERRIDES.items():
        raw = (os.getenv(env_key, "") or "").strip()
        if not raw:
            continue
        if key == "seed":
            try:
                out[key] = int(raw)
            except ValueError:
                raise SettingsError(f"{env_key} must be an integer, got {raw!r}") from None
        else:
            out[key] = check_setting(key, raw)
    return out


def merged_settings(*overrides: dict[str, Any] | None) -> dict[str, Any]:
    """Return DEFAULT_SETTINGS with each override applied in turn."""
    merged = dict(DEFAULT_SETTINGS)
    for o in overrides:
        if o:
            merged.update(o)
    return merged


def load_and_merge(settings_file: str | None) -> dict[str, Any]:
    """Defaults, then the settings file (if any), then environment variables."""
    file_settings = load_settings_file(settings_file) if settings_file else {}
    return merged_settings(file_settings, env_settings())
