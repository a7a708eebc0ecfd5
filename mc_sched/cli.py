from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any

import numpy as np
import typer

from mc_sched.core.config import SettingsError, check_setting, load_and_merge, merged_settings
from mc_sched.core.dates.fmt import DATE_FORMATS, fmt_date_all
from mc_sched.core.errors import ProjectLoadError, ProjectValidationError, SchedError
from mc_sched.core.estimate.estimate import parse_estimate
from mc_sched.core.io.load_project import load_project
from mc_sched.core.model import Task
from mc_sched.core.schedule.propagate import date_range
from mc_sched.core.schedule.session import ScheduleSession
from mc_sched.core.sim.np_value import NPError, NPPercentileOrError
from mc_sched.core.validate.validate_project import Project, summarize_project, validate_project

app = typer.Typer(add_completion=False, no_args_is_help=True)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@app.callback()
def _callback() -> None:
    """Monte-Carlo project scheduler CLI."""
    return


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Validate a project file and check its dependencies form a DAG."""
    _check_format(format, "E_VALIDATE_UNKNOWN_FORMAT")

    def _emit_json(ok: bool, *, exit_code: int, errors: list[SchedError], summary: dict | None) -> None:
        payload = {
            "tool": "mc-sched",
            "command": "validate",
            "ok": ok,
            "error_count": len(errors),
            "errors": [_to_item(e) for e in errors],
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        raw = load_project(path)
    except ProjectLoadError as e:
        if format == "json":
            _emit_json(False, exit_code=1, errors=[e], summary=None)
        _print_errors([e])
        raise typer.Exit(code=1)

    project, errors = validate_project(raw)
    if errors:
        if format == "json":
            _emit_json(False, exit_code=2, errors=list(errors), summary=None)
        _print_errors(list(errors))
        raise typer.Exit(code=2)

    assert project is not None

    if format == "text":
        typer.echo(summarize_project(project))
        return

    from collections import Counter

    counts = Counter([t.type for t in project.graph.tasks.values()])
    summary = {
        "task_count": len(project.graph),
        "type_counts": {k: int(v) for k, v in counts.items()},
        "edge_count": len(project.graph.all_edges),
        "day0": project.calendar.day0.isoformat(),
        "topo": [project.graph.tasks[t].label for t in project.graph.topo],
    }
    _emit_json(True, exit_code=0, errors=[], summary=summary)


@app.command("schedule")
def schedule(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    date_format: str | None = typer.Option(None, "--date-format", help="Date rendering: abs|rel"),
    seed: int | None = typer.Option(None, "--seed", help="Seed for the Monte-Carlo sampler"),
    today: str | None = typer.Option(None, "--today", help="Pretend today is this ISO date"),
    settings_file: str | None = typer.Option(None, "--settings", help="Optional YAML settings file"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level"),
) -> None:
    """Propagate estimates through the dependency graph and print date bands."""
    _check_format(format, "E_SCHEDULE_UNKNOWN_FORMAT")
    settings = _load_settings(settings_file, {"log_level": log_level})
    configure_logging(settings["log_level"])

    date_format = date_format or settings["date_format"]
    if date_format not in DATE_FORMATS:
        _print_errors(
            [
                ProjectValidationError(
                    code="E_SCHEDULE_UNKNOWN_DATE_FORMAT",
                    message=f"unknown date format: {date_format} (choose one of: {', '.join(DATE_FORMATS)})",
                    path="date_format",
                )
            ]
        )
        raise typer.Exit(code=2)

    today_date = _parse_today(today)
    project = _load_and_validate(path, today_date)
    if seed is None:
        seed = settings["seed"]

    session = ScheduleSession(
        project.graph,
        project.calendar,
        today=today_date,
        rng=np.random.default_rng(seed),
    )
    session.request_recalculate()
    session.scheduler.tick()

    g = project.graph
    shown_today = today_date or date.today()
    rows: list[dict[str, Any]] = []
    for t in g.ordered_tasks():
        rows.append(
            {
                "id": t.label,
                "name": t.name,
                "type": t.type,
                "status": g.status(t.id),
                "start": _band(t.dates.start_date_p),
                "finish": _band(t.dates.end_date_p),
                "start_text": fmt_date_all(date_format, t.started, t.dates.start_date_p, shown_today),
                "finish_text": fmt_date_all(date_format, t.finished, t.dates.end_date_p, shown_today),
            }
        )
    span = date_range(g)

    if format == "json":
        payload = {
            "tool": "mc-sched",
            "command": "schedule",
            "ok": True,
            "day0": project.calendar.day0.isoformat(),
            "tasks": rows,
            "date_range": None if span is None else {"min": span[0].isoformat(), "max": span[1].isoformat()},
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    width = max((len(r["id"]) for r in rows), default=2)
    for r in rows:
        typer.echo(f"{r['id']:<{width}}  {r['status']:<8}  {r['start_text']}  ->  {r['finish_text']}  {r['name']}")
    if span is not None:
        typer.echo(f"Range: {span[0].isoformat()} .. {span[1].isoformat()}")


@app.command("layout")
def layout(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Assign dependency-graph columns (lanes) to tasks."""
    _check_format(format, "E_LAYOUT_UNKNOWN_FORMAT")
    project = _load_and_validate(path, None)
    g = project.graph
    result = g.layout_x()

    def label(tid: int) -> str:
        return g.tasks[tid].label

    if format == "json":
        payload = {
            "tool": "mc-sched",
            "command": "layout",
            "ok": True,
            "column_count": result.column_count,
            "rows": [
                {
                    "row": t.layout.row,
                    "column": t.layout.column,
                    "id": t.label,
                    "edges": [[label(a), label(b)] for a, b in t.layout.visible_paths],
                }
                for t in g.ordered_tasks()
            ],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    for t in g.ordered_tasks():
        typer.echo(f"{t.layout.row:>3}  {_lane(t, result.column_count)}  {t.label}  {t.name}")
    typer.echo(f"Columns: {result.column_count}")


@app.command("estimate")
def estimate(text: str = typer.Argument(..., help="Estimate text, e.g. '2-4d' or '3d - 2w'")) -> None:
    """Parse an estimate and print its range in working days."""
    est = parse_estimate(text)
    if est is None:
        _print_errors(
            [
                ProjectValidationError(
                    code="E_INVALID_ESTIMATE",
                    message=f"invalid estimate: {text!r}",
                    path="estimate",
                )
            ]
        )
        raise typer.Exit(code=2)
    typer.echo(f"{est.display_string()}: {est.lb_days:g}-{est.ub_days:g} working days")


def _lane(t: Task, columns: int) -> str:
    return "".join("*" if x == t.layout.column else "." for x in range(columns))


def _band(p: NPPercentileOrError) -> dict[str, Any]:
    if isinstance(p, NPError):
        return {"error": p.message}
    return {"lb": p.lb.isoformat(), "med": p.med.isoformat(), "ub": p.ub.isoformat()}


def _check_format(format: str, code: str) -> None:
    if format not in ("text", "json"):
        err = ProjectValidationError(
            code=code,
            message=f"unknown format: {format} (choose one of: text, json)",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _load_settings(settings_file: str | None, flags: dict[str, Any]) -> dict[str, Any]:
    """Defaults, settings file and environment, then any command-line flags that were given."""
    try:
        settings = load_and_merge(settings_file)
        return merged_settings(settings, {k: check_setting(k, v) for k, v in flags.items() if v is not None})
    except FileNotFoundError:
        _print_errors(
            [
                ProjectLoadError(
                    code="E_SETTINGS_FILE_NOT_FOUND",
                    message=f"settings file not found: {settings_file}",
                    path="settings",
                )
            ]
        )
        raise typer.Exit(code=1)
    except SettingsError as e:
        _print_errors(
            [
                ProjectValidationError(
                    code="E_SETTINGS_INVALID",
                    message=str(e),
                    path="settings",
                )
            ]
        )
        raise typer.Exit(code=2)


def _parse_today(today: str | None) -> date | None:
    if today is None:
        return None
    try:
        return date.fromisoformat(today)
    except ValueError:
        _print_errors(
            [
                ProjectValidationError(
                    code="E_INVALID_DATE",
                    message=f"--today must be an ISO date, got {today!r}",
                    path="today",
                )
            ]
        )
        raise typer.Exit(code=2)


def _load_and_validate(path: str, today: date | None) -> Project:
    try:
        raw = load_project(path)
    except ProjectLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    project, errors = validate_project(raw, today=today)
    if errors or project is None:
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    return project


def _to_item(e: SchedError) -> dict:
    source = "load" if isinstance(e, ProjectLoadError) else "validate"
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
        "severity": "error",
        "source": source,
    }


def _print_errors(errors: list[SchedError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="mc-sched")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
