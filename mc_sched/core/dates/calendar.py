"""Working-day arithmetic.

Offsets count working days relative to ``day0``: ``forward[i]`` is the date ``i``
working days at/after ``day0`` and ``backward[i]`` is the date ``i + 1`` working days
before it. Both lists are memoized and only ever grow.
"""

from __future__ import annotations

import logging
import numbers
from bisect import bisect_right
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional


logger = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)
_SATURDAY = 5


def truncate_to_day(d: date | datetime) -> date:
    if isinstance(d, datetime):
        return d.date()
    return d


class Calendar:
    """Converts integer counts of business days into calendar dates, taking into
    account holidays and weekends."""

    def __init__(self, day0: date | datetime, holidays: Iterable[date | datetime] = ()) -> None:
        self.day0 = truncate_to_day(day0)
        self.holidays: frozenset[date] = frozenset(truncate_to_day(h) for h in holidays)
        self.forward: list[date] = [self.day0]
        self.backward: list[date] = []

    def is_working_day(self, d: date) -> bool:
        return d.weekday() < _SATURDAY and d not in self.holidays

    def today(self, now: Optional[date | datetime] = None) -> int:
        """Returns the number of working days between day0 and today (or ``now``)."""
        return self.working_day_offset(now if now is not None else date.today())

    def working_day_offset(self, d: date | datetime) -> int:
        """Returns the number of working days between day0 and the given date.

        A weekend or holiday resolves to the offset of the working day before it.
        """
        d = truncate_to_day(d)
        if d >= self.day0:
            return self._forward_offset(d)
        return self._backward_offset(d)

    def _forward_offset(self, d: date) -> int:
        fwd = self.forward
        if d <= fwd[-1]:
            return bisect_right(fwd, d) - 1
        while fwd[-1] < d:
            nxt = self._step(fwd[-1], 1)
            if nxt > d:
                # d falls in a run of non-working days.
                return len(fwd) - 1
            fwd.append(nxt)
        return len(fwd) - 1

    def _backward_offset(self, d: date) -> int:
        bwd = self.backward
        if bwd and d >= bwd[-1]:
            for i, day in enumerate(bwd):
                if day <= d:
                    return -(i + 1)
        while not bwd or bwd[-1] > d:
            bwd.append(self._step(bwd[-1] if bwd else self.day0, -1))
        return -len(bwd)

    def date_for_offset(self, offset: int) -> date:
        """Return the date ``offset`` business days after day0 (before it when negative)."""
        if isinstance(offset, bool) or not isinstance(offset, numbers.Integral):
            raise TypeError(f"working-day offset must be an integer, got {offset!r}")
        offset = int(offset)
        if offset >= 0:
            while len(self.forward) <= offset:
                self.forward.append(self._step(self.forward[-1], 1))
            d = self.forward[offset]
        else:
            idx = -offset - 1
            while len(self.backward) <= idx:
                self.backward.append(self._step(self.backward[-1] if self.backward else self.day0, -1))
            d = self.backward[idx]
        # day0 itself may fall on a weekend; every other offset lands on a working day.
        assert offset == 0 or self.is_working_day(d), f"offset {offset} resolved to non-working day {d}"
        return d

    def _step(self, start: date, direction: int) -> date:
        nxt = start + direction * _ONE_DAY
        while not self.is_working_day(nxt):
            nxt += direction * _ONE_DAY
        return nxt


@dataclass(frozen=True)
class Holiday:
    name: str
    start_date: date
    end_date: date


def holiday_dates(holidays: Iterable[Holiday]) -> list[date]:
    """Expand inclusive holiday ranges into a sorted list of distinct dates."""
    ranges = list(holidays)
    out: set[date] = set()
    for h in ranges:
        d = truncate_to_day(h.start_date)
        end = truncate_to_day(h.end_date)
        while d <= end:
            out.add(d)
            d += _ONE_DAY
    logger.debug("expanded %d holiday ranges into %d dates", len(ranges), len(out))
    return sorted(out)
