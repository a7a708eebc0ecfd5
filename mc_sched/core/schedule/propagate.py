from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Callable, Optional

import numpy as np

from mc_sched.core.dates.calendar import Calendar
from mc_sched.core.graph.graph import Graph
from mc_sched.core.model import Task, TaskDates
from mc_sched.core.sim import np_value
from mc_sched.core.sim.np_value import (
    UNDEF,
    NPError,
    NPPercentile,
    NPPercentileOrError,
    NPScalar,
    NPValue,
)


logger = logging.getLogger(__name__)

# Spread of the start date for tasks with nothing upstream, in working days from today.
DEFAULT_START_SPREAD = 10


def calculate_dates(
    g: Graph,
    calendar: Calendar,
    *,
    today: Optional[date] = None,
    rng: Optional[np.random.Generator] = None,
    on_change: Optional[Callable[[], None]] = None,
) -> None:
    """Propagate duration uncertainty through the graph in topological order.

    Each task gets fresh ``TaskDates``: start/end distributions in working days and
    their 5/50/95 percentile bands as calendar dates. New records are installed only
    after every task has been computed.
    """
    today_wd = calendar.today(today)
    default_start: NPValue = np_value.rand_norm90(today_wd, today_wd + DEFAULT_START_SPREAD, rng)

    durations: dict[int, NPValue] = {}
    for tid in g.topo:
        t = g.tasks[tid]
        if t.finished is None:
            durations[tid] = _duration(t, rng)

    def to_dates(days: NPValue) -> NPPercentileOrError[date]:
        pct = np_value.percentile90(days)
        if isinstance(pct, NPError):
            return pct
        return NPPercentile(
            lb=calendar.date_for_offset(int(pct.lb)),
            med=calendar.date_for_offset(int(pct.med)),
            ub=calendar.date_for_offset(int(pct.ub)),
        )

    computed: dict[int, TaskDates] = {}
    for tid in g.topo:
        t = g.tasks[tid]
        parents = g.edges(tid)
        start: NPValue
        if t.started is not None:
            start = NPScalar(calendar.working_day_offset(t.started))
        elif not parents:
            start = default_start
        else:
            # A parent without computed dates means the topological order is broken.
            ends = [computed[p].end_days if p in computed else UNDEF for p in parents]
            start = np_value.max_(ends + [default_start])
        end: NPValue
        if t.finished is not None:
            end = NPScalar(calendar.working_day_offset(t.finished))
        else:
            end = np_value.add([start, durations[tid]])
        computed[tid] = TaskDates(
            start_days=start,
            end_days=end,
            start_date_p=to_dates(start),
            end_date_p=to_dates(end),
        )

    for tid, dates in computed.items():
        g.tasks[tid].dates = dates
    logger.debug("calculated dates for %d tasks (today=%+d working days)", len(computed), today_wd)
    if on_change is not None:
        on_change()


def _duration(t: Task, rng: Optional[np.random.Generator]) -> NPValue:
    if t.estimate is None:
        return NPError(f"no estimate for task {t.label}")
    return t.estimate.distribution(rng)


def date_range(g: Graph) -> Optional[tuple[date, date]]:
    """Earliest start and latest finish over all tasks, widened to whole months.

    Returns None when no task has a usable date band.
    """
    starts = [t.dates.start_date_p.lb for t in g.ordered_tasks() if isinstance(t.dates.start_date_p, NPPercentile)]
    ends = [t.dates.end_date_p.ub for t in g.ordered_tasks() if isinstance(t.dates.end_date_p, NPPercentile)]
    if not starts or not ends:
        return None
    min_date = min(starts).replace(day=1)
    max_date = max(ends)
    next_month = (max_date.replace(day=28) + timedelta(days=4)).replace(day=1)
    return min_date, next_month - timedelta(days=1)
