from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

from mc_sched.core.errors import ProjectLoadError


def load_project(path: str) -> dict[str, Any]:
    """Load YAML/JSON project file.

    Returns a dict with keys: schema_version, tasks, optional day0 and holidays.
    ISO date strings (JSON has no date type) become ``date`` objects here; anything
    else is passed through untouched and the validator owns shape checking.
    """

    p = Path(path)
    if not p.exists():
        raise ProjectLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except Exception as e:  # pragma: no cover
        raise ProjectLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise ProjectLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except ProjectLoadError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise ProjectLoadError(code=code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise ProjectLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )

    normalized: dict[str, Any] = {
        "schema_version": data.get("schema_version"),
        "tasks": data.get("tasks"),
    }
    for key in ("day0", "holidays"):
        if key in data:
            normalized[key] = data.get(key)

    _coerce_dates(normalized)
    normalized["__file__"] = str(p)
    return normalized


def _to_date(v: Any) -> Any:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, str):
        try:
            return date.fromisoformat(v.strip())
        except ValueError:
            return v
    return v


def _coerce_dates(doc: dict[str, Any]) -> None:
    if "day0" in doc:
        doc["day0"] = _to_date(doc["day0"])

    holidays = doc.get("holidays")
    if isinstance(holidays, list):
        for i, h in enumerate(holidays):
            if isinstance(h, dict):
                for key in ("start", "end"):
                    if key in h:
                        h[key] = _to_date(h[key])
            else:
                holidays[i] = _to_date(h)

    tasks = doc.get("tasks")
    if isinstance(tasks, list):
        for t in tasks:
            if not isinstance(t, dict):
                continue
            for key in ("started", "finished"):
                if key in t:
                    t[key] = _to_date(t[key])
