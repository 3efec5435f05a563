"""Totals, breakdowns and presence derived from in-memory time entries."""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .config import DEFAULT_HOURLY_RATE, ONLINE_WINDOW_MINUTES
from .periods import MONTH, TODAY, WEEK, PeriodBounds, classify, group_by_day, parse_timestamp

NO_PROJECT = "No project"
UNKNOWN_PROJECT = "Unknown project"

TOP_PERFORMERS = 5


def calculate_earnings(duration: float, hourly_rate: float) -> float:
    return (duration / 3600) * hourly_rate


@dataclass(frozen=True)
class Totals:
    total_duration: int = 0
    billable_duration: int = 0
    entry_count: int = 0
    billable_count: int = 0
    earnings: float = 0.0

    @property
    def billable_percentage(self) -> float:
        if self.total_duration <= 0:
            return 0.0
        return min(100.0, max(0.0, self.billable_duration / self.total_duration * 100))

    @property
    def average_session_length(self) -> float:
        if self.entry_count == 0:
            return 0.0
        return self.total_duration / self.entry_count


def summarize(entries: Iterable[Any], hourly_rate: float = DEFAULT_HOURLY_RATE) -> Totals:
    total = billable = count = billable_count = 0
    for entry in entries:
        count += 1
        total += entry.duration
        if entry.is_billable:
            billable += entry.duration
            billable_count += 1
    return Totals(
        total_duration=total,
        billable_duration=billable,
        entry_count=count,
        billable_count=billable_count,
        earnings=calculate_earnings(billable, hourly_rate),
    )


@dataclass
class Breakdown:
    time: int = 0
    entries: int = 0


def _breakdown(entries: Iterable[Any], key: str) -> Dict[str, Breakdown]:
    result: Dict[str, Breakdown] = defaultdict(Breakdown)
    for entry in entries:
        entity_id = getattr(entry, key)
        if not entity_id:
            continue
        result[entity_id].time += entry.duration
        result[entity_id].entries += 1
    return dict(result)


def breakdown_by_project(entries: Iterable[Any]) -> Dict[str, Breakdown]:
    return _breakdown(entries, "project_id")


def breakdown_by_user(entries: Iterable[Any]) -> Dict[str, Breakdown]:
    return _breakdown(entries, "user_id")


def project_label(project_id: Optional[str], projects: Mapping[str, Any]) -> str:
    if not project_id:
        return NO_PROJECT
    project = projects.get(project_id)
    if project is None:
        return UNKNOWN_PROJECT
    return project.name


@dataclass
class DayTotals:
    day: date
    duration: int = 0
    billable: int = 0
    count: int = 0


def daily_totals(entries: Iterable[Any]) -> List[DayTotals]:
    rows = []
    for day, bucket in group_by_day(entries).items():
        totals = summarize(bucket, 0)
        rows.append(
            DayTotals(
                day=day,
                duration=totals.total_duration,
                billable=totals.billable_duration,
                count=totals.entry_count,
            )
        )
    return rows


@dataclass
class ProjectStats:
    project: Any
    totals: Totals


def project_report(projects: Sequence[Any], entries: Sequence[Any], hourly_rate: float) -> List[ProjectStats]:
    by_project: Dict[str, List[Any]] = defaultdict(list)
    for entry in entries:
        if entry.project_id:
            by_project[entry.project_id].append(entry)

    rows = [
        ProjectStats(project=project, totals=summarize(by_project.get(project.id, []), hourly_rate))
        for project in projects
    ]
    rows.sort(key=lambda row: row.totals.total_duration, reverse=True)
    return rows


def last_activity(entries: Iterable[Any]) -> Optional[datetime]:
    starts = [parse_timestamp(entry.start_time) for entry in entries]
    starts = [started for started in starts if started is not None]
    return max(starts) if starts else None


def is_online(last: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Heuristic presence: someone started an entry within the last few minutes."""
    if last is None:
        return False
    if now is None:
        now = datetime.now()
    return now - last < timedelta(minutes=ONLINE_WINDOW_MINUTES)


@dataclass
class UserStats:
    user: Any
    totals: Totals
    today_time: int = 0
    week_time: int = 0
    month_time: int = 0
    project_breakdown: Dict[str, Breakdown] = field(default_factory=dict)
    last_activity: Optional[datetime] = None
    is_online: bool = False


def user_stats(user: Any, entries: Iterable[Any], now: Optional[datetime] = None) -> UserStats:
    if now is None:
        now = datetime.now()
    own = [entry for entry in entries if entry.user_id == user.id]
    bounds = PeriodBounds.at(now)

    period_time = {TODAY: 0, WEEK: 0, MONTH: 0}
    for entry in own:
        for period in classify(entry, bounds):
            if period in period_time:
                period_time[period] += entry.duration

    last = last_activity(own)
    return UserStats(
        user=user,
        totals=summarize(own, user.hourly_rate or 0),
        today_time=period_time[TODAY],
        week_time=period_time[WEEK],
        month_time=period_time[MONTH],
        project_breakdown=breakdown_by_project(own),
        last_activity=last,
        is_online=is_online(last, now),
    )


@dataclass
class TeamOverview:
    total_users: int = 0
    active_users: int = 0
    online_users: int = 0
    total_time: int = 0
    total_billable: int = 0
    total_earnings: float = 0.0
    top_performers: List[UserStats] = field(default_factory=list)
    most_active_today: Optional[UserStats] = None
    highest_billable: Optional[UserStats] = None
    most_entries: Optional[UserStats] = None
    top_earner: Optional[UserStats] = None

    @property
    def average_time_per_user(self) -> float:
        if self.total_users == 0:
            return 0.0
        return self.total_time / self.total_users


def _leader(stats: Sequence[UserStats], key) -> Optional[UserStats]:
    # first one wins on ties, matching the list order
    leader = None
    for row in stats:
        if leader is None or key(row) > key(leader):
            leader = row
    return leader


def team_overview(users: Sequence[Any], stats: Sequence[UserStats]) -> TeamOverview:
    performers = sorted((row for row in stats if row.week_time > 0), key=lambda row: row.week_time, reverse=True)
    return TeamOverview(
        total_users=len(users),
        active_users=sum(1 for user in users if user.is_active),
        online_users=sum(1 for row in stats if row.is_online),
        total_time=sum(row.totals.total_duration for row in stats),
        total_billable=sum(row.totals.billable_duration for row in stats),
        total_earnings=sum(row.totals.earnings for row in stats),
        top_performers=performers[:TOP_PERFORMERS],
        most_active_today=_leader(stats, lambda row: row.today_time),
        highest_billable=_leader(stats, lambda row: row.totals.billable_percentage),
        most_entries=_leader(stats, lambda row: row.totals.entry_count),
        top_earner=_leader(stats, lambda row: row.totals.earnings),
    )


def effective_rate(hourly_rate: Optional[float]) -> float:
    """The user's own rate when set, otherwise the configured default."""
    if hourly_rate is None or hourly_rate <= 0:
        return DEFAULT_HOURLY_RATE
    return hourly_rate
