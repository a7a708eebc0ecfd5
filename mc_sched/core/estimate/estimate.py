from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal, Optional

import numpy as np

from mc_sched.core.sim.np_value import NPArray, rand_norm90


Unit = Literal["d", "w", "m"]

DAYS = 1
WEEKS = DAYS * 5
MONTHS = WEEKS * 4

UNIT_DAYS: dict[str, int] = {"d": DAYS, "w": WEEKS, "m": MONTHS}

ESTIMATE_RE = re.compile(r"^\s*(\d+(\.\d+)?)\s*([dwm]?)\s*-\s*(\d+(\.\d+)?)\s*([dwm])\s*$", re.ASCII)


@dataclass(frozen=True)
class Estimate:
    """A 90% confidence range for a task's duration.

    To change an estimate, replace it. The sampled distribution is generated on
    first use and reused by every later propagation.
    """

    lb: float
    lb_unit: Unit
    ub: float
    ub_unit: Unit

    lb_days: float = field(init=False)
    ub_days: float = field(init=False)
    _dist: Optional[NPArray] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "lb_days", self.lb * UNIT_DAYS[self.lb_unit])
        object.__setattr__(self, "ub_days", self.ub * UNIT_DAYS[self.ub_unit])

    def distribution(self, rng: Optional[np.random.Generator] = None) -> NPArray:
        if self._dist is None:
            object.__setattr__(self, "_dist", rand_norm90(self.lb_days, self.ub_days, rng))
        return self._dist

    def display_string(self) -> str:
        if self.lb_unit == self.ub_unit:
            return f"{_num(self.lb)}-{_num(self.ub)} {self.lb_unit}"
        return f"{_num(self.lb)}{self.lb_unit} - {_num(self.ub)}{self.ub_unit}"


def parse_estimate(text: str) -> Optional[Estimate]:
    """Parse ``"<lb>[unit] - <ub><unit>"``; the lower bound's unit defaults to the upper's.

    Returns None for anything that does not match or whose bounds are out of order.
    """
    m = ESTIMATE_RE.match(text)
    if not m:
        return None
    lb = float(m.group(1))
    ub = float(m.group(4))
    ub_unit = m.group(6)
    lb_unit = m.group(3) or ub_unit
    est = Estimate(lb=lb, lb_unit=lb_unit, ub=ub, ub_unit=ub_unit)  # type: ignore[arg-type]
    if not (0 <= est.lb_days <= est.ub_days):
        return None
    return est


def _num(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else str(v)
