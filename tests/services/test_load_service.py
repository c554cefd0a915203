"""Tests for the training load service."""

from datetime import date, datetime, timedelta

import pytest

from training_load.config import Settings
from training_load.metrics.fitness import DailyLoadPoint, FormStatus
from training_load.metrics.stress import AthleteThresholds, StressMethod, WorkoutSignals
from training_load.models.workouts import ActivityCategory
from training_load.services.learning import LearningEngine
from training_load.services.load import TrainingLoadService


@pytest.fixture
def service(engine, settings) -> TrainingLoadService:
    return TrainingLoadService(engine=engine, settings=settings)


def hour_at_ftp() -> WorkoutSignals:
    return WorkoutSignals(duration_seconds=3600.0, category=ActivityCategory.BIKE, normalized_power=250.0)


def train(engine: LearningEngine, count: int = 10) -> None:
    for _ in range(count):
        engine.record_direct_comparison(engine._clock(), 120.0, 100.0, 1.0, category=ActivityCategory.BIKE)


class TestScore:
    """Tests for scoring with learned scaling."""

    def test_untrained_profile_leaves_value(self, service):
        result = service.score(hour_at_ftp(), AthleteThresholds(ftp_watts=250.0))

        assert result.method == StressMethod.POWER
        assert result.value == pytest.approx(100.0)
        assert not result.scaling_applied

    def test_learned_factor_applied(self, service, engine):
        train(engine)
        result = service.score(hour_at_ftp(), AthleteThresholds(ftp_watts=250.0))

        assert result.scaling_applied
        assert result.value == pytest.approx(120.0)
        assert result.pre_scaling_value == pytest.approx(100.0)

    def test_scaling_can_be_skipped(self, service, engine):
        train(engine)
        result = service.score(hour_at_ftp(), AthleteThresholds(ftp_watts=250.0), apply_learned_scaling=False)
        assert result.value == pytest.approx(100.0)

    def test_np_window_from_settings(self, engine):
        """A 60 s window needs more than 60 samples."""
        service = TrainingLoadService(engine=engine, settings=Settings(np_window_seconds=60))
        signals = WorkoutSignals(
            duration_seconds=45.0,
            category=ActivityCategory.BIKE,
            power_samples=[(float(t), 250.0) for t in range(46)],
            average_heart_rate=150.0,
        )
        thresholds = AthleteThresholds(ftp_watts=250.0, threshold_heart_rate=150.0)

        assert service.score(signals, thresholds).method == StressMethod.HEART_RATE


class TestSeries:
    """Tests for series computation through the service."""

    def test_compute_series_from_workouts(self, service):
        start = datetime(2024, 1, 1, 7, 0)
        entries = [(start, 60.0), (start + timedelta(hours=10), 40.0), (start + timedelta(days=2), 80.0)]

        series = service.compute_series(entries, date(2024, 1, 1), date(2024, 1, 3))

        assert [p.daily_stress for p in series] == [100.0, 0.0, 80.0]
        assert series[0].ctl == pytest.approx(100.0 / 42)

    def test_time_constants_from_settings(self, engine):
        service = TrainingLoadService(engine=engine, settings=Settings(ctl_time_constant=21, atl_time_constant=5))
        series = service.compute_series([(date(2024, 1, 1), 105.0)], date(2024, 1, 1), date(2024, 1, 1))

        assert series[0].ctl == pytest.approx(5.0)
        assert series[0].atl == pytest.approx(21.0)

    def test_project(self, service):
        current = DailyLoadPoint(date=date(2024, 1, 1), daily_stress=0.0, ctl=50.0, atl=70.0)
        projections = service.project(current, [0.0, 0.0])

        assert len(projections) == 2
        assert projections[0].atl == pytest.approx(60.0)

    def test_days_to_target_uses_configured_horizon(self, engine):
        current = DailyLoadPoint(date=date(2024, 1, 1), daily_stress=0.0, ctl=50.0, atl=70.0)
        short = TrainingLoadService(engine=engine, settings=Settings(target_tsb_max_days=1))
        default = TrainingLoadService(engine=engine, settings=Settings())

        assert short.days_to_target_tsb(current, 5.0) is None
        assert default.days_to_target_tsb(current, 5.0) is not None
        assert short.days_to_target_tsb(current, 5.0, max_days=30) == default.days_to_target_tsb(current, 5.0)


class TestStatus:
    """Tests for the current load summary."""

    def test_empty_series(self, service):
        assert service.status([]) is None

    def test_status_of_last_day(self, service):
        stress = {date(2024, 1, d): float(d * 10) for d in range(1, 8)}
        series = service.compute_series(stress.items(), date(2024, 1, 1), date(2024, 1, 7))

        status = service.status(series)

        assert status.current is series[-1]
        assert status.monotony == pytest.approx(2.0)
        assert status.strain == pytest.approx(560.0)
        assert status.recommendation.status in list(FormStatus)
        assert status.to_dict()["current"]["date"] == "2024-01-07"

    def test_short_series_has_no_monotony(self, service):
        series = service.compute_series([(date(2024, 1, 1), 50.0)], date(2024, 1, 1), date(2024, 1, 3))
        status = service.status(series)

        assert status.monotony is None
        assert status.to_dict()["strain"] is None
