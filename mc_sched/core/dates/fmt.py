"""Human-readable renderings of actual dates and percentile date bands."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from typing import Literal, Optional

from mc_sched.core.sim.np_value import NPError, NPPercentileOrError


DateFormat = Literal["abs", "rel"]
DATE_FORMATS: tuple[str, ...] = ("abs", "rel")

# Not leap year aware.
DAY = 1
WEEK = 7 * DAY
MONTH = 31 * DAY
YEAR = 365 * DAY


def fmt_date_all(
    date_format: DateFormat,
    actual: Optional[date],
    band: Optional[NPPercentileOrError[date]],
    today: Optional[date] = None,
) -> str:
    if band is None:
        return ""
    today = today or date.today()
    if date_format == "abs":
        return fmt_date_p(actual, band, today)
    return fmt_rel_date_p(actual, band, today)


def fmt_date(d: date, today: date) -> str:
    s = f"{d.day} {d:%b}"
    if d.year != today.year:
        s += f" {d.year}"
    return s


def fmt_date_p(actual: Optional[date], band: NPPercentileOrError[date], today: date) -> str:
    if actual is not None:
        return fmt_date(actual, today)
    if isinstance(band, NPError):
        return band.message
    lb, ub = band.lb, band.ub
    if (lb.year, lb.month) == (ub.year, ub.month):
        return f"{lb.day} - {fmt_date(ub, today)}"
    return f"{fmt_date(lb, today)} - {fmt_date(ub, today)}"


@dataclass(frozen=True)
class DateDiff:
    years: int
    months: int
    days: int
    postfix: str = ""


def rel_date_cmp(today: date, target: date) -> DateDiff:
    if target < today:
        return replace(rel_date_cmp(target, today), postfix=" ago")
    years = target.year - today.year
    months = target.month - today.month
    days = target.day - today.day
    if days < 0:
        days += 31
        months -= 1
    if months < 0:
        years -= 1
        months += 12
    return DateDiff(years, months, days)


def rel_date_str(today: date, target: date) -> str:
    diff = rel_date_cmp(today, target)
    components = []
    if diff.years > 0:
        components.append(f"{diff.years}y")
    if diff.months > 0:
        components.append(f"{diff.months}m")
    if diff.days > 0:
        components.append(f"{diff.days}d")
    if not components:
        return "today"
    return " ".join(components) + diff.postfix


def fmt_rel_range(today: date, lb: date, ub: date) -> str:
    lbd = abs((lb - today).days)
    ubd = abs((ub - today).days)
    # The lower bound picks the unit.
    if lbd < WEEK:
        return f"in {lbd // DAY}-{ubd // DAY} days"
    if lbd < 5 * MONTH:
        return f"in {lbd // WEEK}-{ubd // WEEK} weeks"
    if lbd < YEAR:
        return f"in {lbd / MONTH:.2f}-{ubd / MONTH:.2f} months"
    return f"in {lbd / YEAR:.2f}-{ubd / YEAR:.2f} years"


def fmt_rel_date_p(actual: Optional[date], band: NPPercentileOrError[date], today: date) -> str:
    if actual is not None:
        return rel_date_str(today, actual)
    if isinstance(band, NPError):
        return band.message
    return fmt_rel_range(today, band.lb, band.ub)
