from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

import numpy as np

from mc_sched.core.dates.calendar import Calendar
from mc_sched.core.graph.graph import Graph
from mc_sched.core.schedule.propagate import calculate_dates


logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ChangeNotifier:
    """Listeners interested in "dates changed". No payload is delivered."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def attach(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable detaches it again."""
        self._listeners.append(listener)
        return lambda: self.detach(listener)

    def detach(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_all(self) -> None:
        for listener in list(self._listeners):
            listener()

    def __len__(self) -> int:
        return len(self._listeners)


class RecomputeScheduler:
    """Coalesces recompute requests into a single run per tick.

    ``request()`` only records that a recompute is wanted; the host decides when to
    call ``tick()``. Any number of requests between two ticks produce one run.
    """

    def __init__(self, recompute: Callable[[], None]) -> None:
        self._recompute = recompute
        self.pending = False
        self.runs = 0

    def request(self) -> None:
        self.pending = True

    def tick(self) -> bool:
        if not self.pending:
            return False
        # Cleared first: a request made during the run re-arms the next tick.
        self.pending = False
        self._recompute()
        self.runs += 1
        return True


class ScheduleSession:
    """Owns one graph, its calendar and the listeners that consume computed dates."""

    def __init__(
        self,
        graph: Graph,
        calendar: Calendar,
        *,
        today: Optional[date] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.graph = graph
        self.calendar = calendar
        self.today = today
        self.rng = rng
        self.notifier = ChangeNotifier()
        self.scheduler = RecomputeScheduler(self.recalculate)

    def recalculate(self) -> None:
        calculate_dates(
            self.graph,
            self.calendar,
            today=self.today,
            rng=self.rng,
            on_change=self.notifier.notify_all,
        )

    def request_recalculate(self) -> None:
        self.scheduler.request()

    def set_calendar(self, calendar: Calendar) -> None:
        """Swap in a new calendar (e.g. after editing holidays) and schedule a recompute."""
        self.calendar = calendar
        self.request_recalculate()
