"""Tests for storing readings and applying calibrations."""

from datetime import date, datetime, timedelta, timezone

import pytest

from training_load.exceptions import UntrustworthyCalibrationError
from training_load.metrics.fitness import DailyLoadPoint
from training_load.models.calibration import CalibrationRecord, DerivationMethod, PMCReading
from training_load.models.workouts import ActivityCategory
from training_load.services.calibration import CalibrationService, DaySummary, summarize_day


@pytest.fixture
def service(engine, settings) -> CalibrationService:
    return CalibrationService(engine=engine, settings=settings)


class TestSummarizeDay:
    """Tests for per-day stress summaries."""

    def test_primary_category_has_most_stress(self):
        summary = summarize_day([
            (ActivityCategory.RUN, 50.0),
            (ActivityCategory.BIKE, 80.0),
            (ActivityCategory.RUN, 40.0),
        ])

        assert summary.total_stress == 170.0
        assert summary.primary_category == ActivityCategory.RUN
        assert summary.is_multi_sport
        assert summary.stress_by_category == {ActivityCategory.RUN: 90.0, ActivityCategory.BIKE: 80.0}

    def test_single_sport(self):
        summary = summarize_day([(ActivityCategory.SWIM, 60.0)])
        assert not summary.is_multi_sport
        assert summary.primary_category == ActivityCategory.SWIM

    def test_rest_day(self):
        assert summarize_day([]) == DaySummary()


class TestCalibrate:
    """Tests for recording readings and learning from them."""

    def test_direct_reading(self, service, store, now):
        reading = PMCReading(ctl=50.0, atl=60.0, daily_tss=120.0, effective_date=now, confidence=0.95)
        calculated = DailyLoadPoint(date=now.date(), daily_stress=100.0, ctl=48.0, atl=55.0)

        outcome = service.calibrate(reading, calculated, summarize_day([(ActivityCategory.RUN, 100.0)]))

        assert outcome is not None
        assert len(outcome.data_points) == 1
        point = outcome.data_points[0]
        assert point.derivation_method == DerivationMethod.DIRECT
        assert point.scaling_ratio == pytest.approx(1.2)
        assert point.calibration_record_id == outcome.record.id
        assert outcome.record.ctl_delta == pytest.approx(2.0)
        assert outcome.record.calculated_daily_tss == 100.0
        assert store.find_record(now.date()) is outcome.record

    def test_derived_reading_uses_previous_record(self, service, now):
        day = summarize_day([(ActivityCategory.BIKE, 80.0)])
        yesterday = PMCReading(ctl=50.0, atl=57.0, effective_date=now - timedelta(days=1), confidence=0.95)
        today = PMCReading(ctl=51.0, atl=62.0, effective_date=now, confidence=0.95)

        first = service.calibrate(yesterday, day=day)
        second = service.calibrate(today, day=day)

        assert first.data_points == [], "No previous day for the first reading"
        assert second.data_points[0].derivation_method == DerivationMethod.CROSS_VALIDATED
        assert second.data_points[0].extracted_value == pytest.approx(92.0)

    def test_invalid_reading_ignored(self, service, store, now):
        reading = PMCReading(daily_tss=120.0, effective_date=now, confidence=0.2)

        assert service.calibrate(reading) is None
        assert store.find_record(now.date()) is None

    def test_reading_without_learning_data(self, service, store, now):
        reading = PMCReading(ctl=50.0, effective_date=now, confidence=0.95)
        outcome = service.calibrate(reading, day=summarize_day([(ActivityCategory.RUN, 80.0)]))

        assert outcome.data_points == []
        assert store.find_record(now.date()) is outcome.record

    def test_missing_date_uses_engine_clock(self, service, now):
        reading = PMCReading(daily_tss=120.0, ctl=50.0, confidence=0.95)
        outcome = service.calibrate(reading, day=summarize_day([(ActivityCategory.RUN, 100.0)]))

        assert outcome.record.effective_date == now
        assert outcome.data_points[0].effective_date == outcome.record.effective_date
        assert reading.effective_date is None, "The caller's reading is not modified"

    def test_aware_reading_date(self, service, store):
        aware = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
        reading = PMCReading(daily_tss=120.0, effective_date=aware, confidence=0.95)
        outcome = service.calibrate(reading, day=summarize_day([(ActivityCategory.RUN, 100.0)]))

        local = aware.astimezone().replace(tzinfo=None)
        assert outcome.record.effective_date == local
        assert outcome.data_points[0].effective_date == local
        assert store.find_record(local.date()) is outcome.record

    def test_outcome_to_dict(self, service, now):
        reading = PMCReading(ctl=50.0, atl=60.0, daily_tss=120.0, effective_date=now, confidence=0.95)
        data = service.calibrate(reading, day=summarize_day([(ActivityCategory.RUN, 100.0)])).to_dict()

        assert data["record"]["extracted"]["daily_tss"] == 120.0
        assert len(data["data_points"]) == 1


class TestCheckCalibrationNeeded:
    """Tests for comparing a reading with current values."""

    def test_no_current_values(self, service):
        check = service.check_calibration_needed(PMCReading(ctl=50.0, confidence=0.95), None)
        assert check.is_needed
        assert "initial calibration" in check.reason

    def test_large_delta(self, service):
        current = DailyLoadPoint(date=date(2024, 6, 1), daily_stress=0.0, ctl=50.0, atl=58.0)
        check = service.check_calibration_needed(PMCReading(ctl=56.0, atl=60.0, confidence=0.95), current)

        assert check.is_needed
        assert check.reason == "Values differ significantly from calculated: CTL by 6"
        assert check.atl_delta == pytest.approx(2.0)
        assert check.tsb_delta is None

    def test_within_range(self, service):
        current = DailyLoadPoint(date=date(2024, 6, 1), daily_stress=0.0, ctl=50.0, atl=58.0)
        check = service.check_calibration_needed(PMCReading(ctl=52.0, atl=55.0, tsb=-3.0, confidence=0.95), current)

        assert not check.is_needed
        assert check.reason == "Values are within acceptable range of calculated metrics"


class TestApplyCalibration:
    """Tests for shifting a series by a record's deltas."""

    def series(self):
        return [
            DailyLoadPoint(date=date(2024, 6, d), daily_stress=50.0, ctl=50.0, atl=58.0)
            for d in (1, 2, 3)
        ]

    def test_shift_from_effective_day(self, service):
        original = self.series()
        record = CalibrationRecord(
            effective_date=datetime(2024, 6, 2, 9, 0),
            source_confidence=0.95,
            extracted_ctl=56.0,
            extracted_atl=60.0,
            calculated_ctl=50.0,
            calculated_atl=58.0,
        )

        adjusted = service.apply_calibration(record, original)

        assert [p.ctl for p in adjusted] == [50.0, 56.0, 56.0]
        assert [p.atl for p in adjusted] == [58.0, 60.0, 60.0]
        assert adjusted[1].tsb == pytest.approx(-4.0)
        assert original[1].ctl == 50.0, "Input series must not change"

    def test_missing_delta_not_applied(self, service):
        record = CalibrationRecord(
            effective_date=datetime(2024, 6, 1),
            source_confidence=0.95,
            extracted_ctl=56.0,
            calculated_ctl=50.0,
        )
        adjusted = service.apply_calibration(record, self.series())
        assert all(p.atl == 58.0 for p in adjusted)

    def test_untrustworthy_record_raises(self, service):
        record = CalibrationRecord(effective_date=datetime(2024, 6, 2), source_confidence=0.5, extracted_ctl=56.0)

        with pytest.raises(UntrustworthyCalibrationError) as exc_info:
            service.apply_calibration(record, self.series())
        assert exc_info.value.details["record_id"] == record.id


class TestInitialSeed:
    """Tests for seeding the load model."""

    def test_seed_is_stored(self, service, store, now):
        record = service.initial_seed(50.0, 60.0, now)

        assert record.is_initial_seed
        assert record.extracted_tsb == -10.0
        assert not record.needs_calibration
        assert store.find_record(now.date()) is record

    def test_seed_defaults_to_engine_clock(self, service, now):
        assert service.initial_seed(50.0, 60.0).effective_date == now

    def test_series_from_seed(self, service):
        seed = service.initial_seed(50.0, 60.0, datetime(2024, 1, 1))
        series = service.series_from_seed(seed, {date(2024, 1, 2): 100.0}, end=date(2024, 1, 3))

        assert [p.date for p in series] == [date(2024, 1, 2), date(2024, 1, 3)]
        assert series[0].ctl == pytest.approx(50.0 + (100.0 - 50.0) / 42)
        assert series[0].atl == pytest.approx(60.0 + (100.0 - 60.0) / 7)
