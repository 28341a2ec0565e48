"""
Tests for PeriodService.

Tests cover:
1. Expected progress and overdue detection
2. Catch-up suggestions
3. Week and month breakdowns
4. Progress summaries
"""
import pytest
from datetime import date, datetime, timedelta

from study_tracker.services.goal_service import GoalService
from study_tracker.services.period_service import PeriodService
from study_tracker.exceptions import GoalNotFoundException, ValidationException


@pytest.fixture
def custom_goal(make_goal):
    """Custom goal running 2026-03-01 to 2026-03-11, target 100"""
    return make_goal(
        target=100,
        progress_unit="pages",
        period="custom",
        start_date=datetime(2026, 3, 1),
        due_date=datetime(2026, 3, 11),
        created_at=datetime(2026, 3, 1),
    )


class TestExpectedProgress:
    """Tests for expected_progress and is_overdue"""

    def test_half_way_through_custom_window(self, db_session, custom_goal):
        """Day 5 of 10 with 40 done: expected 50, overdue"""
        as_of = datetime(2026, 3, 6)
        GoalService(db_session).apply_progress(custom_goal.id, 40, now=as_of)

        assert PeriodService.expected_progress(custom_goal, as_of) == pytest.approx(50)
        assert PeriodService.is_overdue(custom_goal, as_of) is True
        assert PeriodService.days_remaining(custom_goal, as_of) == 5

    def test_before_start_expects_nothing(self, custom_goal):
        assert PeriodService.expected_progress(custom_goal, datetime(2026, 2, 20)) == 0

    def test_after_due_expects_full_target(self, custom_goal):
        as_of = datetime(2026, 3, 20)

        assert PeriodService.expected_progress(custom_goal, as_of) == 100
        assert PeriodService.days_remaining(custom_goal, as_of) == 0

    def test_weekly_goal_uses_current_iso_week(self, make_goal, now):
        """Wednesday noon is 2.5 days into the week"""
        goal = make_goal(target=7)

        assert PeriodService.expected_progress(goal, now) == pytest.approx(2.5)
        assert PeriodService.days_remaining(goal, now) == 5

    def test_completed_goal_is_never_overdue(self, db_session, custom_goal):
        GoalService(db_session).apply_progress(custom_goal.id, 100, now=datetime(2026, 3, 2))

        assert PeriodService.is_overdue(custom_goal, datetime(2026, 3, 10)) is False


class TestCatchUpSuggestions:
    """Tests for catch_up_suggestions"""

    def test_increase_daily_rate(self, db_session, custom_goal):
        """60 left over 5 days means 12 per day"""
        as_of = datetime(2026, 3, 6)
        GoalService(db_session).apply_progress(custom_goal.id, 40, now=as_of)

        suggestions = PeriodService.catch_up_suggestions(custom_goal, as_of)

        assert len(suggestions) == 1
        assert suggestions[0]["type"] == "increase_daily"
        assert suggestions[0]["priority"] == "medium"
        assert suggestions[0]["daily_rate"] == 12
        assert suggestions[0]["remaining_target"] == 60
        assert suggestions[0]["remaining_days"] == 5

    def test_on_track_goal_gets_no_suggestions(self, db_session, custom_goal):
        as_of = datetime(2026, 3, 6)
        GoalService(db_session).apply_progress(custom_goal.id, 55, now=as_of)

        assert PeriodService.catch_up_suggestions(custom_goal, as_of) == []

    def test_far_behind_custom_goal_may_extend_deadline(self, custom_goal):
        """Nothing done at day 8 of 10"""
        suggestions = PeriodService.catch_up_suggestions(custom_goal, datetime(2026, 3, 9))

        assert [s["type"] for s in suggestions] == ["increase_daily", "extend_deadline"]
        assert suggestions[0]["priority"] == "high"
        assert suggestions[0]["daily_rate"] == 50

    def test_past_due_goal_uses_one_day_for_rate(self, custom_goal):
        suggestions = PeriodService.catch_up_suggestions(custom_goal, datetime(2026, 3, 15))

        assert suggestions[0]["remaining_days"] == 1
        assert suggestions[0]["daily_rate"] == 100

    def test_aggregates_only_overdue_goals(self, db_session, make_goal, now):
        behind = make_goal(title="Behind", target=7)
        ahead = make_goal(title="Ahead", target=7)
        GoalService(db_session).apply_progress(ahead.id, 3, now=now)

        result = PeriodService(db_session).get_catch_up_suggestions("user-1", as_of=now)

        assert [item["goal_id"] for item in result] == [behind.id]
        suggestion = result[0]["suggestions"][0]
        assert suggestion["priority"] == "high"
        assert suggestion["daily_rate"] == 1.4
        assert result[0]["days_remaining"] == 5


class TestPeriodBreakdown:
    """Tests for period_breakdown"""

    def test_weekly_buckets_include_empty_weeks(self, db_session, make_goal):
        goal = make_goal(target=7, start_date=datetime(2026, 3, 2), created_at=datetime(2026, 3, 2))
        GoalService(db_session).apply_progress(goal.id, 2, now=datetime(2026, 3, 3, 10, 0))

        buckets = PeriodService(db_session).get_breakdown(goal.id, "week", as_of=datetime(2026, 3, 18, 9, 0))

        assert [(b["period_start"], b["period_end"]) for b in buckets] == [
            (date(2026, 3, 2), date(2026, 3, 8)),
            (date(2026, 3, 9), date(2026, 3, 15)),
            (date(2026, 3, 16), date(2026, 3, 18)),
        ]
        assert [b["target_for_period"] for b in buckets] == [7, 7, 3]
        assert [b["actual_for_period"] for b in buckets] == [2, 0, 0]

    def test_monthly_buckets_are_clipped_to_lifetime(self, make_goal):
        goal = make_goal(
            target=31,
            period="monthly",
            start_date=datetime(2026, 3, 1),
            created_at=datetime(2026, 3, 1),
        )

        buckets = PeriodService.period_breakdown(goal, "month", datetime(2026, 4, 10, 12, 0))

        assert len(buckets) == 2
        assert buckets[0]["target_for_period"] == 31
        assert buckets[1]["period_end"] == date(2026, 4, 10)
        assert buckets[1]["target_for_period"] == pytest.approx(10.33)

    def test_breakdown_stops_at_completion(self, db_session, make_goal):
        goal = make_goal(target=2, start_date=datetime(2026, 3, 2), created_at=datetime(2026, 3, 2))
        GoalService(db_session).apply_progress(goal.id, 2, now=datetime(2026, 3, 4, 8, 0))

        buckets = PeriodService(db_session).get_breakdown(goal.id, "week", as_of=datetime(2026, 4, 1))

        assert len(buckets) == 1
        assert buckets[0]["period_end"] == date(2026, 3, 4)

    def test_unknown_granularity(self, db_session, make_goal):
        goal = make_goal()
        with pytest.raises(ValidationException):
            PeriodService(db_session).get_breakdown(goal.id, "day")

    def test_unknown_goal(self, db_session):
        with pytest.raises(GoalNotFoundException):
            PeriodService(db_session).get_breakdown(404, "week")


class TestLocalTimezone:
    """Recurring windows and buckets follow the configured timezone"""

    def test_daily_window_uses_local_day(self, db_session, default_settings, make_goal):
        """00:00 UTC on 03-12 is 17:00 on 03-11 in Los Angeles"""
        default_settings.timezone = "America/Los_Angeles"
        db_session.commit()
        goal = make_goal(target=10, period="daily")
        as_of = datetime(2026, 3, 12, 0, 0)

        pacing = PeriodService(db_session).pacing(goal, as_of)

        assert pacing["expected_progress"] == pytest.approx(7.08)
        assert pacing["is_overdue"] is True
        assert pacing["days_remaining"] == 1
        assert PeriodService.expected_progress(goal, as_of) == 0

    def test_catch_up_uses_local_window(self, db_session, default_settings, make_goal):
        default_settings.timezone = "America/Los_Angeles"
        db_session.commit()
        make_goal(target=10, period="daily")

        result = PeriodService(db_session).get_catch_up_suggestions("user-1", as_of=datetime(2026, 3, 12, 0, 0))

        assert len(result) == 1
        assert result[0]["suggestions"][0]["priority"] == "high"

    def test_breakdown_buckets_by_local_date(self, db_session, default_settings, make_goal):
        """03:00 UTC on Monday 03-09 is still Sunday 03-08 in Los Angeles"""
        default_settings.timezone = "America/Los_Angeles"
        db_session.commit()
        goal = make_goal(target=7, start_date=datetime(2026, 3, 2, 8, 0), created_at=datetime(2026, 3, 2, 8, 0))
        GoalService(db_session).apply_progress(goal.id, 2, now=datetime(2026, 3, 9, 3, 0))

        buckets = PeriodService(db_session).get_breakdown(goal.id, "week", as_of=datetime(2026, 3, 12, 12, 0))

        assert [(b["period_start"], b["period_end"]) for b in buckets] == [
            (date(2026, 3, 2), date(2026, 3, 8)),
            (date(2026, 3, 9), date(2026, 3, 12)),
        ]
        assert [b["actual_for_period"] for b in buckets] == [2, 0]


class TestProgressSummary:
    """Tests for get_progress_summary"""

    def test_splits_by_source(self, db_session, make_goal, now):
        goal = make_goal(target=20, milestones=[{"title": "Ten", "target": 10}, {"title": "Five", "target": 5}])
        service = GoalService(db_session)
        service.apply_progress(goal.id, 3, now=now - timedelta(days=2))
        service.apply_progress(goal.id, 1.5, source="session", session_id=1, now=now - timedelta(days=1))
        service.apply_progress(goal.id, 4, now=now - timedelta(days=10))

        summary = PeriodService(db_session).get_progress_summary(goal.id, days=7, as_of=now)

        assert summary["entries_count"] == 2
        assert summary["manual_progress"] == 3
        assert summary["session_progress"] == 1.5
        assert summary["total_progress"] == 4.5
        assert summary["average_per_day"] == 0.64
        assert summary["current_progress"] == 8.5
        assert [m["title"] for m in summary["upcoming_milestones"]] == ["Ten"]
        assert summary["upcoming_milestones"][0]["remaining"] == 1.5

    def test_days_must_be_positive(self, db_session, make_goal):
        goal = make_goal()
        with pytest.raises(ValidationException):
            PeriodService(db_session).get_progress_summary(goal.id, days=0)
