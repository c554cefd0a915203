"""Tests for the fitness/fatigue load model and load analysis."""

import math

import pytest
from datetime import date, datetime

from training_load.exceptions import InvalidParameterError
from training_load.metrics.fitness import (
    AcwrStatus,
    DailyLoadPoint,
    FormStatus,
    advance,
    aggregate_daily_stress,
    calculate_acwr,
    calculate_ewma,
    calculate_monotony,
    calculate_strain,
    compute_series,
    days_to_target_tsb,
    determine_acwr_status,
    get_form_recommendation,
    project,
)


class TestEwma:
    """Tests for the single-day recurrence."""

    def test_first_day_from_zero(self):
        """50 stress from zero gives CTL 50/42 and ATL 50/7."""
        ctl, atl, tsb = advance(0.0, 0.0, 50.0)

        assert ctl == pytest.approx(1.1905, abs=1e-4), f"Expected CTL ~1.19, got {ctl}"
        assert atl == pytest.approx(7.1429, abs=1e-4), f"Expected ATL ~7.14, got {atl}"
        assert tsb == pytest.approx(-5.9524, abs=1e-4), f"Expected TSB ~-5.95, got {tsb}"

    def test_rest_day_decays(self):
        """A zero-stress day decays CTL by 1/42 of its value."""
        ctl, _, _ = advance(50.0, 50.0, 0.0)
        assert ctl == pytest.approx(50.0 - 50.0 / 42), f"Got {ctl}"

    def test_fixed_point(self):
        """Stress equal to the current loads leaves them unchanged."""
        ctl, atl, tsb = advance(100.0, 100.0, 100.0)
        assert ctl == 100.0
        assert atl == 100.0
        assert tsb == 0.0

    def test_ewma_formula(self):
        assert calculate_ewma(70.0, 0.0, 7) == pytest.approx(10.0)

    @pytest.mark.parametrize("time_constant", [0, -7])
    def test_non_positive_time_constant_raises(self, time_constant):
        with pytest.raises(InvalidParameterError):
            calculate_ewma(50.0, 10.0, time_constant)

    def test_advance_validates_both_constants(self):
        with pytest.raises(InvalidParameterError) as exc_info:
            advance(10.0, 10.0, 50.0, ctl_time_constant=42, atl_time_constant=0)
        assert exc_info.value.details["field"] == "atl_time_constant"


class TestRecurrenceProperties:
    """Long-run behaviour of the recurrence."""

    def test_constant_stress_converges(self):
        """After 5 time constants CTL is within e^-5 of the constant stress."""
        ctl, atl, tsb = 0.0, 0.0, 0.0
        for _ in range(5 * 42):
            ctl, atl, tsb = advance(ctl, atl, 80.0)

        assert 80.0 - ctl <= 80.0 * math.exp(-5), f"CTL should be near 80, got {ctl}"
        assert atl == pytest.approx(80.0, abs=1e-6), f"ATL should be 80, got {atl}"
        assert abs(tsb) <= 80.0 * math.exp(-5), f"TSB should be near 0, got {tsb}"

    def test_zero_stress_decays_monotonically(self):
        ctl, atl = 60.0, 90.0
        for day in range(120):
            next_ctl, next_atl, _ = advance(ctl, atl, 0.0)
            assert 0.0 < next_ctl < ctl, f"CTL did not decay on day {day}"
            assert 0.0 < next_atl < atl, f"ATL did not decay on day {day}"
            ctl, atl = next_ctl, next_atl

    def test_zero_stress_tsb_overshoots_zero(self):
        """ATL decays faster than CTL, so a negative TSB turns positive."""
        ctl, atl = 60.0, 90.0
        tsbs = []
        for _ in range(60):
            ctl, atl, tsb = advance(ctl, atl, 0.0)
            tsbs.append(tsb)

        assert tsbs[0] < 0
        assert max(tsbs) > 30.0, f"Expected TSB to peak above 30, got {max(tsbs)}"

    def test_single_workout_week(self):
        """50 stress then six rest days."""
        series = compute_series({date(2024, 1, 1): 50.0}, date(2024, 1, 1), date(2024, 1, 7))

        assert series[0].ctl == pytest.approx(50.0 / 42)
        assert series[0].atl == pytest.approx(50.0 / 7)
        assert series[0].tsb == pytest.approx(50.0 / 42 - 50.0 / 7)

        tsbs = [p.tsb for p in series]
        assert tsbs == sorted(tsbs), f"TSB should rise toward 0: {tsbs}"
        assert all(t < 0 for t in tsbs)
        assert series[-1].ctl == pytest.approx(50.0 / 42 * (41 / 42) ** 6)
        assert series[-1].atl == pytest.approx(50.0 / 7 * (6 / 7) ** 6)

    def test_single_workout_form_turns_positive_on_day_15(self):
        series = compute_series({date(2024, 1, 1): 50.0}, date(2024, 1, 1), date(2024, 1, 15))

        assert all(p.tsb < 0 for p in series[:14])
        assert series[14].tsb > 0, f"Got {series[14].tsb}"


class TestComputeSeries:
    """Tests for the full-series fold."""

    def test_every_calendar_day_is_present(self):
        """Days without workouts appear as zero-stress days."""
        stress = {date(2024, 1, 1): 100.0, date(2024, 1, 5): 80.0}
        series = compute_series(stress, date(2024, 1, 1), date(2024, 1, 5))

        assert [p.date for p in series] == [date(2024, 1, d) for d in range(1, 6)]
        assert [p.daily_stress for p in series] == [100.0, 0.0, 0.0, 0.0, 80.0]

    def test_loads_decay_on_gap_days(self):
        stress = {date(2024, 1, 1): 100.0}
        series = compute_series(stress, date(2024, 1, 1), date(2024, 1, 4))

        ctls = [p.ctl for p in series]
        assert ctls == sorted(ctls, reverse=True), f"CTL should decay after day 1: {ctls}"
        assert series[-1].atl < series[0].atl

    def test_initial_values_are_previous_day(self):
        series = compute_series({}, date(2024, 1, 1), date(2024, 1, 1), initial_ctl=42.0, initial_atl=7.0)
        assert series[0].ctl == pytest.approx(41.0)
        assert series[0].atl == pytest.approx(6.0)

    def test_tsb_derived_from_ctl_and_atl(self):
        series = compute_series({date(2024, 1, 1): 60.0}, date(2024, 1, 1), date(2024, 1, 3))
        for point in series:
            assert point.tsb == point.ctl - point.atl

    def test_end_before_start_is_empty(self):
        assert compute_series({}, date(2024, 1, 2), date(2024, 1, 1)) == []

    def test_invalid_time_constant_raises(self):
        with pytest.raises(InvalidParameterError):
            compute_series({}, date(2024, 1, 1), date(2024, 1, 2), ctl_time_constant=0)


class TestAggregateDailyStress:
    """Tests for per-day aggregation."""

    def test_workouts_on_same_day_are_summed(self):
        totals = aggregate_daily_stress([
            (datetime(2024, 1, 1, 7, 0), 50.0),
            (datetime(2024, 1, 1, 18, 0), 30.0),
            (date(2024, 1, 2), 20.0),
        ])
        assert totals == {date(2024, 1, 1): 80.0, date(2024, 1, 2): 20.0}


class TestProjection:
    """Tests for forward projection and days-to-target."""

    def test_project_one_point_per_planned_day(self):
        projections = project(50.0, 60.0, [100.0, 0.0, 50.0])
        assert [p.day for p in projections] == [1, 2, 3]
        assert projections[0].ctl == pytest.approx(50.0 + 50.0 / 42)

    def test_days_to_target_is_first_day_reached(self):
        days = days_to_target_tsb(50.0, 70.0, target_tsb=5.0)

        assert days is not None
        tsbs = [p.tsb for p in project(50.0, 70.0, [0.0] * days)]
        assert tsbs[-1] >= 5.0, f"Target not reached on day {days}: {tsbs[-1]}"
        if days > 1:
            assert tsbs[-2] < 5.0, "Target was already reached a day earlier"

    def test_unreachable_target_returns_none(self):
        """With no load TSB stays at zero and never reaches +10."""
        assert days_to_target_tsb(0.0, 0.0, target_tsb=10.0) is None

    def test_zero_horizon_returns_none(self):
        assert days_to_target_tsb(50.0, 70.0, target_tsb=0.0, max_days=0) is None

    def test_negative_horizon_raises(self):
        with pytest.raises(InvalidParameterError):
            days_to_target_tsb(50.0, 70.0, target_tsb=0.0, max_days=-1)


class TestAcwr:
    """Tests for the acute:chronic workload ratio."""

    def test_acwr_needs_positive_ctl(self):
        assert calculate_acwr(0.0, 10.0) is None
        assert calculate_acwr(50.0, 60.0) == pytest.approx(1.2)

    @pytest.mark.parametrize("acwr,expected", [
        (0.8, AcwrStatus.OPTIMAL),
        (1.0, AcwrStatus.OPTIMAL),
        (1.3, AcwrStatus.OPTIMAL),
        (0.6, AcwrStatus.UNDERTRAINING),
        (1.4, AcwrStatus.CAUTION),
        (1.5, AcwrStatus.HIGH_RISK),
        (0.3, AcwrStatus.VERY_LOW),
        (None, AcwrStatus.UNKNOWN),
    ])
    def test_status_bands(self, acwr, expected):
        assert determine_acwr_status(acwr) == expected, f"ACWR {acwr} should be {expected}"

    def test_point_acwr(self):
        point = DailyLoadPoint(date=date(2024, 1, 1), daily_stress=0.0, ctl=40.0, atl=60.0)
        assert point.acwr == pytest.approx(1.5)
        assert point.to_dict()["tsb"] == -20.0


class TestMonotony:
    """Tests for monotony and strain."""

    def test_known_week(self):
        """Mean 40 with population std 20 gives monotony 2."""
        week = [10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0]
        assert calculate_monotony(week) == pytest.approx(2.0)
        assert calculate_strain(week) == pytest.approx(560.0)

    def test_uses_last_seven_days(self):
        history = [500.0, 500.0] + [10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0]
        assert calculate_monotony(history) == pytest.approx(2.0)

    def test_fewer_than_seven_days(self):
        assert calculate_monotony([50.0] * 6) is None
        assert calculate_strain([50.0] * 6) is None

    def test_identical_days_have_no_monotony(self):
        assert calculate_monotony([50.0] * 7) is None

    def test_zero_week(self):
        assert calculate_monotony([0.0] * 7) is None


class TestFormRecommendation:
    """Tests for TSB-based recommendations."""

    @pytest.mark.parametrize("tsb,expected", [
        (30.0, FormStatus.VERY_FRESH),
        (25.0, FormStatus.VERY_FRESH),
        (10.0, FormStatus.FRESH),
        (0.0, FormStatus.NEUTRAL),
        (-10.0, FormStatus.NEUTRAL),
        (-20.0, FormStatus.TIRED),
        (-30.0, FormStatus.VERY_TIRED),
    ])
    def test_bands(self, tsb, expected):
        recommendation = get_form_recommendation(tsb)
        assert recommendation.status == expected, f"TSB {tsb}: got {recommendation.status}"

    def test_suggested_range(self):
        data = get_form_recommendation(-30.0).to_dict()
        assert data["suggested_stress"] == {"min": 0, "max": 30}
