from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional, cast

from mc_sched.core.dates.calendar import Calendar, Holiday, holiday_dates
from mc_sched.core.errors import CycleError, ProjectValidationError
from mc_sched.core.estimate.estimate import Estimate, parse_estimate
from mc_sched.core.graph.graph import Graph, main_graph
from mc_sched.core.model import Task, TaskType


ALLOWED_TASK_TYPES: set[str] = {"task", "milestone"}


@dataclass(frozen=True)
class Project:
    schema_version: str
    graph: Graph
    calendar: Calendar
    holidays: list[Holiday]
    ids: dict[str, int]  # file key -> task id


def _is_list_of_str(v: Any) -> bool:
    return isinstance(v, list) and all(isinstance(x, str) for x in v)


def _as_date(v: Any) -> Optional[date]:
    # The loader has already turned ISO strings into dates.
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    return None


def validate_project(
    project: dict[str, Any], today: Optional[date] = None
) -> tuple[Optional[Project], list[ProjectValidationError]]:
    """Validate a loaded project document and build its graph and calendar.

    Returns (project, errors). Project is None when errors exist.
    """

    file = cast(Optional[str], project.get("__file__"))
    errors: list[ProjectValidationError] = []

    def err(code: str, message: str, path: str) -> None:
        errors.append(ProjectValidationError(code=code, message=message, file=file, path=path))

    schema_version = project.get("schema_version")
    if not isinstance(schema_version, str) or not schema_version.strip():
        err("E_REQUIRED_FIELD", "schema_version is required and must be a non-empty string", "schema_version")

    raw_tasks = project.get("tasks")
    if not isinstance(raw_tasks, list):
        err("E_REQUIRED_FIELD", "tasks is required and must be an array", "tasks")
        return None, _sorted(errors)

    tasks_by_key: dict[str, Task] = {}
    deps_by_key: dict[str, list[str]] = {}
    index_of: dict[str, int] = {}

    for i, raw in enumerate(raw_tasks):
        task_path = f"tasks[{i}]"
        if not isinstance(raw, dict):
            err("E_INVALID_TYPE", "task must be an object", task_path)
            continue

        key = raw.get("id")
        if not isinstance(key, str) or not key.strip():
            err("E_REQUIRED_FIELD", "id is required and must be a non-empty string", f"{task_path}.id")
            continue
        if key in tasks_by_key:
            err("E_DUPLICATE_ID", f"duplicate task id: {key}", f"{task_path}.id")
            continue

        name = raw.get("name")
        if not isinstance(name, str) or not name.strip():
            err("E_REQUIRED_FIELD", "name is required and must be a non-empty string", f"{task_path}.name")
            continue

        ttype = raw.get("type", "task")
        if not isinstance(ttype, str) or ttype not in ALLOWED_TASK_TYPES:
            err("E_INVALID_ENUM", f"type must be one of {sorted(ALLOWED_TASK_TYPES)}", f"{task_path}.type")
            continue

        deps = raw.get("depends_on", [])
        if deps is None:
            deps = []
        if not _is_list_of_str(deps):
            err("E_INVALID_TYPE", "depends_on must be an array of strings", f"{task_path}.depends_on")
            continue

        estimate: Optional[Estimate] = None
        raw_estimate = raw.get("estimate")
        if raw_estimate is not None:
            if not isinstance(raw_estimate, str):
                err("E_INVALID_TYPE", "estimate must be a string such as '2-4d'", f"{task_path}.estimate")
            else:
                estimate = parse_estimate(raw_estimate)
                if estimate is None:
                    err("E_INVALID_ESTIMATE", f"invalid estimate: {raw_estimate!r}", f"{task_path}.estimate")

        actual: dict[str, Optional[date]] = {}
        for field_name in ("started", "finished"):
            raw_date = raw.get(field_name)
            actual[field_name] = None
            if raw_date is None:
                continue
            parsed = _as_date(raw_date)
            if parsed is None:
                err("E_INVALID_DATE", f"{field_name} must be an ISO date", f"{task_path}.{field_name}")
            actual[field_name] = parsed

        index_of[key] = i
        deps_by_key[key] = cast(list[str], deps)
        tasks_by_key[key] = Task(
            name=name,
            type=cast(TaskType, ttype),
            estimate=estimate,
            started=actual["started"],
            finished=actual["finished"],
            key=key,
        )

    for key, deps in deps_by_key.items():
        for di, dep in enumerate(deps):
            if dep not in tasks_by_key:
                err(
                    "E_UNKNOWN_DEPENDENCY",
                    f"depends_on references unknown id: {dep}",
                    f"tasks[{index_of[key]}].depends_on[{di}]",
                )

    day0 = today or date.today()
    if project.get("day0") is not None:
        parsed_day0 = _as_date(project.get("day0"))
        if parsed_day0 is None:
            err("E_INVALID_DATE", "day0 must be an ISO date", "day0")
        else:
            day0 = parsed_day0

    holidays = _validate_holidays(project.get("holidays"), err)

    if errors:
        return None, _sorted(errors)

    ids = {key: t.id for key, t in tasks_by_key.items()}
    edges = {tasks_by_key[key].id: [ids[d] for d in deps] for key, deps in deps_by_key.items()}
    try:
        graph = main_graph(tasks_by_key.values(), edges)
    except CycleError as e:
        keys_by_id = {v: k for k, v in ids.items()}
        cycle = [keys_by_id[t] for t in e.cycle]
        err(
            "E_CYCLE_DETECTED",
            "dependency cycle detected: " + " -> ".join(cycle),
            f"tasks[{index_of[cycle[0]]}].depends_on",
        )
        return None, _sorted(errors)

    result = Project(
        schema_version=cast(str, schema_version),
        graph=graph,
        calendar=Calendar(day0, holiday_dates(holidays)),
        holidays=holidays,
        ids=ids,
    )
    return result, []


def _validate_holidays(raw: Any, err: Callable[[str, str, str], None]) -> list[Holiday]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        err("E_INVALID_TYPE", "holidays must be an array", "holidays")
        return []

    out: list[Holiday] = []
    for i, h in enumerate(raw):
        path = f"holidays[{i}]"
        single = _as_date(h)
        if single is not None:
            out.append(Holiday(name="", start_date=single, end_date=single))
            continue
        if not isinstance(h, dict):
            err("E_INVALID_TYPE", "holiday must be a date or an object with start/end", path)
            continue
        start = _as_date(h.get("start"))
        end = _as_date(h.get("end") or h.get("start"))
        if start is None or end is None:
            err("E_INVALID_DATE", "holiday start/end must be ISO dates", path)
            continue
        if end < start:
            err("E_INVALID_DATE", "holiday end is before its start", f"{path}.end")
            continue
        name = h.get("name")
        out.append(Holiday(name=name if isinstance(name, str) else "", start_date=start, end_date=end))
    return out


def summarize_project(project: Project) -> str:
    counts = Counter([t.type for t in project.graph.tasks.values()])
    ordered_types: list[str] = ["task", "milestone"]
    parts = [f"{t}={counts.get(t, 0)}" for t in ordered_types]
    return (
        f"OK: {len(project.graph)} tasks ("
        + ", ".join(parts)
        + f")\nEdges: {len(project.graph.all_edges)}\nDay0: {project.calendar.day0.isoformat()}"
    )


def _sorted(errors: Iterable[ProjectValidationError]) -> list[ProjectValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
