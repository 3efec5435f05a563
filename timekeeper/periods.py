"""Calendar periods used by the dashboard, reports and admin views.

All boundaries are local dates. An entry belongs to a period when the local
date of its start time falls in ``start <= day <= today``. Entries whose
start time cannot be parsed belong to no period; they are counted and logged
so the caller can report them as bad data.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

logger = logging.getLogger(__name__)

TODAY = "today"
WEEK = "week"
MONTH = "month"
YEAR = "year"
ALL = "all"

PERIODS = (TODAY, WEEK, MONTH, YEAR)

PERIOD_LABELS = {
    TODAY: "Today",
    WEEK: "This Week",
    MONTH: "This Month",
    YEAR: "This Year",
    ALL: "All Time",
}


@dataclass(frozen=True)
class PeriodBounds:
    today: date
    week_start: date
    month_start: date
    year_start: date

    @classmethod
    def at(cls, now: Optional[datetime] = None) -> "PeriodBounds":
        if now is None:
            now = datetime.now()
        today = now.date()
        # weeks start on Sunday
        week_start = today - timedelta(days=(today.weekday() + 1) % 7)
        return cls(
            today=today,
            week_start=week_start,
            month_start=today.replace(day=1),
            year_start=today.replace(month=1, day=1),
        )

    def start_of(self, period: str) -> date:
        starts = {
            TODAY: self.today,
            WEEK: self.week_start,
            MONTH: self.month_start,
            YEAR: self.year_start,
        }
        try:
            return starts[period]
        except KeyError:
            raise ValueError(f"unknown period {period!r}") from None

    def contains(self, period: str, day: date) -> bool:
        return self.start_of(period) <= day <= self.today


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Return ``value`` as a naive local datetime, or None if it is not one.

    Accepts datetimes, dates, ISO-8601 strings and epoch milliseconds.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def entry_day(entry: Any) -> Optional[date]:
    started = parse_timestamp(getattr(entry, "start_time", None))
    if started is None:
        return None
    return started.date()


def classify(entry: Any, bounds: PeriodBounds) -> FrozenSet[str]:
    day = entry_day(entry)
    if day is None:
        return frozenset()
    return frozenset(period for period in PERIODS if bounds.contains(period, day))


@dataclass
class PeriodFilter:
    period: str
    entries: List[Any] = field(default_factory=list)
    invalid: int = 0


def filter_period(entries: Iterable[Any], period: str, now: Optional[datetime] = None) -> PeriodFilter:
    if period != ALL and period not in PERIODS:
        raise ValueError(f"unknown period {period!r}")

    bounds = PeriodBounds.at(now)
    result = PeriodFilter(period=period)
    for entry in entries:
        day = entry_day(entry)
        if day is None:
            logger.warning(
                "Skipping entry %s: unparseable start time %r",
                getattr(entry, "id", None),
                getattr(entry, "start_time", None),
            )
            result.invalid += 1
            continue
        if period == ALL or bounds.contains(period, day):
            result.entries.append(entry)
    return result


def group_by_day(entries: Iterable[Any]) -> Dict[date, List[Any]]:
    """Split entries into disjoint buckets keyed by local start date."""
    buckets: Dict[date, List[Any]] = {}
    for entry in entries:
        day = entry_day(entry)
        if day is None:
            continue
        buckets.setdefault(day, []).append(entry)
    return dict(sorted(buckets.items()))
