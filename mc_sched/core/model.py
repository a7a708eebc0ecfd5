from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import date
from typing import Literal, Optional

from mc_sched.core.estimate.estimate import Estimate
from mc_sched.core.sim.np_value import UNDEF, NPPercentileOrError, NPValue


TaskType = Literal["task", "milestone"]
TaskStatus = Literal["blocked", "ready", "started", "finished"]

_task_ids = itertools.count()


@dataclass(frozen=True)
class TaskDates:
    """Propagation output. Replaced wholesale on every run."""

    start_days: NPValue = UNDEF
    end_days: NPValue = UNDEF
    start_date_p: NPPercentileOrError[date] = UNDEF
    end_date_p: NPPercentileOrError[date] = UNDEF


@dataclass(frozen=True)
class TaskLayout:
    """Layout output. Replaced wholesale on every layout pass."""

    column: int = 0
    row: int = 0
    # (dependency, dependent) edges whose connecting line passes this row.
    visible_paths: tuple[tuple[int, int], ...] = ()


@dataclass(eq=False)
class Task:
    name: str
    type: TaskType = "task"
    estimate: Optional[Estimate] = None
    started: Optional[date] = None
    finished: Optional[date] = None
    key: Optional[str] = None

    id: int = field(default_factory=lambda: next(_task_ids))
    dates: TaskDates = field(default_factory=TaskDates, repr=False)
    layout: TaskLayout = field(default_factory=TaskLayout, repr=False)

    @property
    def label(self) -> str:
        return self.key if self.key is not None else str(self.id)

    def toggle_status(self, on: date) -> None:
        """Cycle finished -> unset -> started -> finished."""
        if self.finished is not None:
            self.started = None
            self.finished = None
        elif self.started is not None:
            self.finished = on
        else:
            self.started = on
