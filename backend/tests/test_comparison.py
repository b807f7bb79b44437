"""
Tests for period comparisons (healthdash.metrics.comparison_stats) and the
weekly / monthly report (healthdash.metrics.health_report).

Covers:
  - Per-period steps, sleep and weight summaries
  - Deltas, percentages and trends between two periods
  - Chart rows
  - Report period boundaries and metric changes
  - Highlights, event impacts, daily series and summary text
"""

from datetime import date, datetime

import pytest

from healthdash.metrics.comparison_stats import (
    ComparisonConfig,
    ComparisonPeriod,
    PeriodStats,
    calculate_comparison,
    calculate_comparison_delta,
    calculate_period_stats,
    determine_trend,
    generate_comparison_chart_data,
    percent_change,
)
from healthdash.metrics.health_report import (
    calculate_metric_change,
    calculate_period_ranges,
    generate_health_report,
)
from healthdash.schemas import HealthMetrics, PatternEvent, SleepData, StepData, WeightData


def _night(day: str, start: str, end: str, duration: float, **fields) -> SleepData:
    return SleepData(date=day, start=start, end=end, duration=duration, device_category="bed", **fields)


JANUARY = ComparisonPeriod(label="January", start=date(2024, 1, 1), end=date(2024, 1, 31))
FEBRUARY = ComparisonPeriod(label="February", start=date(2024, 2, 1), end=date(2024, 2, 29))

STEPS = [
    StepData(date="2024-01-02", steps=4000),
    StepData(date="2024-01-03", steps=6000),
    StepData(date="2024-02-05", steps=9000),
]
SLEEP = [
    _night("2024-01-03", "2024-01-02T23:00:00", "2024-01-03T07:00:00", 28800, sleep_score=80),
    _night("2024-02-06", "2024-02-05T23:00:00", "2024-02-06T06:00:00", 25200, sleep_score=0),
]
WEIGHT = [
    WeightData(date="2024-01-01T08:00:00", weight=80.0),
    WeightData(date="2024-01-20T08:00:00", weight=79.0),
    WeightData(date="2024-02-10T08:00:00", weight=78.5),
]


# ======================================================================
# Period statistics
# ======================================================================

class TestPeriodStats:
    def test_january(self):
        stats = calculate_period_stats(STEPS, SLEEP, WEIGHT, JANUARY)
        assert stats.total_steps == 10000
        assert stats.avg_steps == 5000
        assert stats.steps_days == 2
        assert stats.sleep_nights == 1
        assert stats.avg_sleep_seconds == 28800
        assert stats.avg_sleep_score == 80
        assert stats.avg_bedtime_seconds == pytest.approx(23 * 3600)
        assert stats.avg_weight == pytest.approx(79.5)
        assert stats.weight_start == 80.0
        assert stats.weight_end == 79.0
        assert stats.weight_delta == pytest.approx(-1.0)
        assert stats.days_in_period == 31

    def test_single_weigh_in_has_no_delta(self):
        stats = calculate_period_stats(STEPS, SLEEP, WEIGHT, FEBRUARY)
        assert stats.weight_entries == 1
        assert stats.weight_delta is None
        assert stats.avg_sleep_score is None
        assert stats.days_in_period == 29

    def test_weekend_nights_excluded(self):
        # 2024-01-02 is a Tuesday
        stats = calculate_period_stats(
            STEPS, SLEEP, WEIGHT, JANUARY, exclude_weekends=True, weekend_days=[2]
        )
        assert stats.sleep_nights == 0
        assert stats.avg_sleep_seconds is None
        assert stats.total_steps == 10000

    def test_naps_excluded(self):
        nap = _night("2024-01-05", "2024-01-05T14:00:00", "2024-01-05T15:00:00", 3600, is_nap=True)
        stats = calculate_period_stats([], SLEEP + [nap], [], JANUARY, exclude_naps=True)
        assert stats.sleep_nights == 1

    def test_empty_period(self):
        empty = ComparisonPeriod(label="Empty", start=date(2023, 1, 1), end=date(2023, 1, 1))
        stats = calculate_period_stats(STEPS, SLEEP, WEIGHT, empty)
        assert stats.total_steps == 0
        assert stats.avg_steps is None
        assert stats.sleep_nights == 0
        assert stats.days_in_period == 1


# ======================================================================
# Deltas and trends
# ======================================================================

class TestComparisonDelta:
    def test_percent_change(self):
        assert percent_change(100, 150) == 50
        assert percent_change(0, 5) is None
        assert percent_change(None, 5) is None

    @pytest.mark.parametrize(
        "delta, higher_is_better, expected",
        [
            (None, True, "neutral"),
            (0.005, True, "neutral"),
            (10, True, "better"),
            (-10, True, "worse"),
            (5, False, "worse"),
            (-5, False, "better"),
        ],
    )
    def test_trend(self, delta, higher_is_better, expected):
        assert determine_trend(delta, higher_is_better) == expected

    def test_january_vs_february(self):
        result = calculate_comparison(
            STEPS, SLEEP, WEIGHT, ComparisonConfig(period_a=JANUARY, period_b=FEBRUARY)
        )
        delta = result.delta
        assert delta.avg_steps_delta == 4000
        assert delta.avg_steps_percent == pytest.approx(80.0)
        assert delta.steps_trend == "better"
        assert delta.avg_sleep_delta_seconds == -3600
        assert delta.avg_sleep_percent == pytest.approx(-12.5)
        assert delta.sleep_trend == "worse"
        assert delta.avg_weight_delta == pytest.approx(-1.0)
        # February has a single weigh-in, so no weight change to judge
        assert delta.weight_trend == "neutral"
        assert delta.weight_delta_diff == 0.0

    def test_missing_side_contributes_no_change(self):
        delta = calculate_comparison_delta(PeriodStats(avg_sleep_score=80), PeriodStats())
        assert delta.avg_sleep_score_delta == 0.0
        assert delta.avg_sleep_score_percent is None

    def test_weight_gain_is_worse(self):
        delta = calculate_comparison_delta(PeriodStats(), PeriodStats(weight_delta=1.5))
        assert delta.weight_trend == "worse"


class TestChartData:
    def test_rows(self):
        result = calculate_comparison(
            STEPS, SLEEP, WEIGHT, ComparisonConfig(period_a=JANUARY, period_b=FEBRUARY)
        )
        chart = generate_comparison_chart_data(result)
        assert chart.period_a_label == "January"
        assert chart.period_b_label == "February"
        by_name = {metric.name: metric for metric in chart.metrics}
        sleep = by_name["Average Sleep"]
        assert sleep.period_a_value == 8.0
        assert sleep.period_b_value == 7.0
        assert sleep.delta == -1.0
        assert by_name["Average Weight"].higher_is_better is False
        assert by_name["Sleep Score"].period_b_value is None


# ======================================================================
# Reports
# ======================================================================

class TestReportPeriods:
    def test_weekly(self):
        current, previous = calculate_period_ranges("weekly", date(2024, 1, 14))
        assert (current.start, current.end) == (date(2024, 1, 8), date(2024, 1, 14))
        assert (previous.start, previous.end) == (date(2024, 1, 1), date(2024, 1, 7))
        assert current.label == "Jan 8, 2024 - Jan 14, 2024"

    def test_monthly_previous_month_is_complete(self):
        current, previous = calculate_period_ranges("monthly", date(2024, 3, 15))
        assert (current.start, current.end) == (date(2024, 3, 1), date(2024, 3, 15))
        assert (previous.start, previous.end) == (date(2024, 2, 1), date(2024, 2, 29))

    def test_monthly_across_year_boundary(self):
        _, previous = calculate_period_ranges("monthly", date(2024, 1, 10))
        assert (previous.start, previous.end) == (date(2023, 12, 1), date(2023, 12, 31))

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            calculate_period_ranges("daily", date(2024, 1, 1))


class TestMetricChange:
    def test_up(self):
        change = calculate_metric_change(110, 100)
        assert change.change == 10
        assert change.change_percent == pytest.approx(10)
        assert change.trend == "up"

    def test_small_change_is_stable(self):
        assert calculate_metric_change(103, 100).trend == "stable"

    def test_down(self):
        assert calculate_metric_change(80, 100).trend == "down"

    def test_missing_side(self):
        change = calculate_metric_change(None, 100)
        assert change.trend == "no-data"
        assert change.change is None

    def test_zero_previous(self):
        change = calculate_metric_change(5, 0)
        assert change.change == 5
        assert change.change_percent is None
        assert change.trend == "stable"


REPORT_DATA = HealthMetrics(
    steps=[
        StepData(date="2024-01-02", steps=5000),
        StepData(date="2024-01-08", steps=8000),
        StepData(date="2024-01-10", steps=4000),
    ],
    sleep=[
        _night("2024-01-03", "2024-01-02T23:00:00", "2024-01-03T06:00:00", 25200),
        _night("2024-01-09", "2024-01-08T23:00:00", "2024-01-09T07:00:00", 28800, sleep_score=85),
        _night("2024-01-11", "2024-01-10T23:30:00", "2024-01-11T06:30:00", 25200, sleep_score=70),
    ],
    weight=[
        WeightData(date="2024-01-08T08:00:00", weight=80.0, fat_mass=15.0),
        WeightData(date="2024-01-12T08:00:00", weight=79.0),
    ],
)
REPORT_EVENTS = [
    PatternEvent(id="e1", title="Trip", type="range", start_date="2024-01-10", end_date="2024-01-11"),
    PatternEvent(id="e2", title="Old", type="point", start_date="2023-06-01"),
]


@pytest.fixture()
def weekly_report():
    return generate_health_report(
        REPORT_DATA,
        REPORT_EVENTS,
        "weekly",
        date(2024, 1, 14),
        generated_at=datetime(2024, 1, 15, 9, 0),
    )


class TestHealthReport:
    def test_current_metrics(self, weekly_report):
        current = weekly_report.current_metrics
        assert current.sleep.total_sessions == 2
        assert current.sleep.avg_duration == 27000
        assert current.activity.avg_steps == 6000
        assert current.activity.active_days == 2
        assert current.activity.total_days == 7
        assert current.body.avg_weight == pytest.approx(79.5)
        assert current.body.weight_change == pytest.approx(-1.0)
        # zero body composition means "not measured"
        assert current.body.avg_fat_mass == 15.0

    def test_changes_vs_previous_week(self, weekly_report):
        changes = weekly_report.changes
        assert changes["sleep"]["duration"].change == 1800
        assert changes["sleep"]["duration"].trend == "up"
        assert changes["activity"]["steps"].change_percent == pytest.approx(20.0)
        assert changes["body"]["weight"].trend == "no-data"

    def test_highlights(self, weekly_report):
        ratings = [(r.date, r.metric, r.is_best) for r in weekly_report.highlights]
        # score ratings fall on days already rated for duration
        assert ratings == [
            ("2024-01-09", "sleepDuration", True),
            ("2024-01-11", "sleepDuration", False),
            ("2024-01-08", "steps", True),
            ("2024-01-10", "steps", False),
        ]
        assert weekly_report.highlights[0].label == "Tue, Jan 9"

    def test_event_impact_against_rest_of_history(self, weekly_report):
        assert [i.event_id for i in weekly_report.event_impacts] == ["e1"]
        impact = weekly_report.event_impacts[0]
        assert impact.impact.sleep_duration_delta == -1800
        assert impact.impact.steps_delta == -2500
        assert impact.impact.weight_delta is None
        assert impact.description == "Sleep -0.5h vs. baseline; Steps -2500 vs. baseline"

    def test_daily_series(self, weekly_report):
        daily = weekly_report.daily_data
        assert [p.date for p in daily.sleep][:2] == ["2024-01-08", "2024-01-09"]
        assert [p.value for p in daily.sleep] == [None, 28800, None, 25200, None, None, None]
        assert [p.value for p in daily.steps][:3] == [8000, None, 4000]
        assert daily.weight[4].value == 79.0

    def test_summary(self, weekly_report):
        lines = weekly_report.summary.splitlines()
        assert lines[0] == "Health Report: Jan 8, 2024 - Jan 14, 2024"
        assert "Average sleep: 7.5h/night (2 sessions)" in lines
        assert "  Change vs. previous: +0.5h" in lines
        assert "Average steps: 6,000/day" in lines
        assert "Active days: 2/7" in lines
        assert "  Change within period: -1.0 kg" in lines
        assert "  Trip: Sleep -0.5h vs. baseline; Steps -2500 vs. baseline" in lines

    def test_empty_monthly_report(self):
        report = generate_health_report(HealthMetrics(), [], "monthly", date(2024, 3, 15))
        assert report.current_metrics.sleep.total_sessions == 0
        assert report.changes["sleep"]["duration"].trend == "no-data"
        assert len(report.daily_data.steps) == 15
        assert report.highlights == []
        assert report.summary == "Health Report: Mar 1, 2024 - Mar 15, 2024\n"
