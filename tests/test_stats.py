"""Tests for totals, breakdowns and the team overview."""
import random
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from timekeeper.periods import WEEK, filter_period, group_by_day
from timekeeper.stats import (
    NO_PROJECT,
    UNKNOWN_PROJECT,
    Totals,
    breakdown_by_project,
    breakdown_by_user,
    calculate_earnings,
    daily_totals,
    effective_rate,
    is_online,
    project_label,
    project_report,
    summarize,
    team_overview,
    user_stats,
)

from conftest import NOW, make_entry


def user(user_id, name=None, rate=50.0, active=True, role="employee"):
    return SimpleNamespace(id=user_id, name=name or user_id, hourly_rate=rate, is_active=active, role=role)


class TestSummarize:
    def test_earnings_at_default_rate(self):
        totals = summarize([make_entry(NOW, duration=10800)], 75)
        assert totals.earnings == pytest.approx(225.0)
        assert calculate_earnings(10800, 75) == pytest.approx(225.0)

    def test_only_billable_time_earns(self):
        entries = [
            make_entry(NOW, duration=3600, billable=True),
            make_entry(NOW, duration=1800, billable=False),
        ]
        totals = summarize(entries, 40)
        assert totals.total_duration == 5400
        assert totals.billable_duration == 3600
        assert totals.entry_count == 2
        assert totals.billable_count == 1
        assert totals.earnings == pytest.approx(40.0)
        assert totals.billable_percentage == pytest.approx(200 / 3)
        assert totals.average_session_length == 2700

    def test_empty(self):
        totals = summarize([])
        assert totals == Totals()
        assert totals.billable_percentage == 0
        assert totals.average_session_length == 0

    def test_percentage_stays_in_bounds(self):
        for billable in (0, 1, 500, 1000):
            totals = Totals(total_duration=1000, billable_duration=billable)
            assert 0 <= totals.billable_percentage <= 100
        assert Totals(total_duration=0, billable_duration=10).billable_percentage == 0

    def test_order_does_not_matter(self):
        rng = random.Random(7)
        entries = [
            make_entry(NOW - timedelta(hours=i), duration=rng.randint(60, 7200), billable=rng.random() < 0.5)
            for i in range(20)
        ]
        shuffled = entries[:]
        rng.shuffle(shuffled)
        assert summarize(entries, 60) == summarize(shuffled, 60)


def test_day_buckets_add_up_to_the_period_total():
    entries = [
        make_entry(datetime(2024, 1, 7, 9, 0), duration=1200),
        make_entry(datetime(2024, 1, 8, 9, 0), duration=600),
        make_entry(datetime(2024, 1, 8, 14, 0), duration=900, billable=False),
        make_entry(datetime(2024, 1, 10, 9, 0), duration=300),
    ]
    selected = filter_period(entries, WEEK, NOW)
    totals = summarize(selected.entries)
    rows = daily_totals(selected.entries)
    assert sum(row.duration for row in rows) == totals.total_duration
    assert sum(row.billable for row in rows) == totals.billable_duration
    assert [row.day for row in rows] == list(group_by_day(selected.entries))


class TestBreakdowns:
    def test_by_project_skips_unassigned(self):
        entries = [
            make_entry(NOW, duration=100, project_id="p1"),
            make_entry(NOW, duration=200, project_id="p1"),
            make_entry(NOW, duration=50, project_id=None),
        ]
        result = breakdown_by_project(entries)
        assert set(result) == {"p1"}
        assert result["p1"].time == 300
        assert result["p1"].entries == 2

    def test_by_user(self):
        entries = [make_entry(NOW, user_id="a"), make_entry(NOW, user_id="b"), make_entry(NOW, user_id="a")]
        result = breakdown_by_user(entries)
        assert result["a"].entries == 2
        assert result["b"].entries == 1

    def test_project_label_fallbacks(self):
        projects = {"p1": SimpleNamespace(id="p1", name="Website")}
        assert project_label("p1", projects) == "Website"
        assert project_label("gone", projects) == UNKNOWN_PROJECT
        assert project_label(None, projects) == NO_PROJECT

    def test_project_report_sorted_by_time(self):
        projects = [SimpleNamespace(id="p1", name="A"), SimpleNamespace(id="p2", name="B")]
        entries = [make_entry(NOW, duration=100, project_id="p1"), make_entry(NOW, duration=900, project_id="p2")]
        rows = project_report(projects, entries, 36)
        assert [row.project.id for row in rows] == ["p2", "p1"]
        assert rows[0].totals.earnings == pytest.approx(9.0)


class TestPresence:
    def test_online_window(self):
        assert is_online(NOW - timedelta(minutes=4), NOW)
        assert not is_online(NOW - timedelta(minutes=5), NOW)
        assert not is_online(None, NOW)


class TestUserStats:
    def test_period_times_and_presence(self):
        alice = user("alice", rate=60)
        entries = [
            make_entry(NOW - timedelta(minutes=2), duration=600, user_id="alice", project_id="p1"),
            make_entry(datetime(2024, 1, 8, 9, 0), duration=1200, user_id="alice"),
            make_entry(datetime(2024, 1, 2, 9, 0), duration=1800, user_id="alice"),
            make_entry(NOW, duration=9999, user_id="bob"),
        ]
        stats = user_stats(alice, entries, NOW)
        assert stats.today_time == 600
        assert stats.week_time == 1800
        assert stats.month_time == 3600
        assert stats.totals.entry_count == 3
        assert stats.totals.earnings == pytest.approx(60.0)
        assert stats.is_online
        assert set(stats.project_breakdown) == {"p1"}

    def test_missing_rate_earns_nothing(self):
        stats = user_stats(user("carol", rate=None), [make_entry(NOW, user_id="carol")], NOW)
        assert stats.totals.earnings == 0


class TestTeamOverview:
    def test_leaders_and_top_performers(self):
        users = [user(f"u{i}", rate=10 * (i + 1)) for i in range(7)] + [user("idle", active=False)]
        entries = [make_entry(NOW - timedelta(hours=1), duration=600 * (i + 1), user_id=f"u{i}") for i in range(7)]
        stats = [user_stats(u, entries, NOW) for u in users]
        overview = team_overview(users, stats)

        assert overview.total_users == 8
        assert overview.active_users == 7
        assert overview.online_users == 0
        assert overview.total_time == sum(600 * (i + 1) for i in range(7))
        assert [row.user.id for row in overview.top_performers] == ["u6", "u5", "u4", "u3", "u2"]
        assert overview.most_active_today.user.id == "u6"
        assert overview.top_earner.user.id == "u6"
        assert overview.average_time_per_user == overview.total_time / 8

    def test_empty_team(self):
        overview = team_overview([], [])
        assert overview.top_performers == []
        assert overview.top_earner is None
        assert overview.average_time_per_user == 0


def test_effective_rate():
    assert effective_rate(None) == 75
    assert effective_rate(0) == 75
    assert effective_rate(42.5) == 42.5
