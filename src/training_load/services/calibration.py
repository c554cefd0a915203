"""
Calibration of computed load values against ground-truth readings.

A reading (usually parsed from a screenshot) is stored as a
CalibrationRecord next to our own values for the same day, and handed to
the learning engine when it carries a daily stress value or both CTL and
ATL.
"""

from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import logging

from ..config import Settings
from ..exceptions import UntrustworthyCalibrationError
from ..metrics.fitness import DailyLoadPoint, compute_series
from ..models.calibration import CalibrationDataPoint, CalibrationRecord, PMCReading, to_local_naive
from ..models.workouts import ActivityCategory
from .base import BaseService
from .learning import LearningEngine, get_learning_engine


@dataclass
class DaySummary:
    """Stress totals for one day of workouts."""

    total_stress: float = 0.0
    primary_category: Optional[ActivityCategory] = None
    is_multi_sport: bool = False
    stress_by_category: Dict[ActivityCategory, float] = field(default_factory=dict)


def summarize_day(workouts: Sequence[Tuple[ActivityCategory, float]]) -> DaySummary:
    """
    Summarize a day's (category, stress) pairs.

    The primary category is the one with the most total stress; the day
    is multi-sport when more than one category was trained.
    """
    if not workouts:
        return DaySummary()

    by_category: Dict[ActivityCategory, float] = defaultdict(float)
    for category, stress in workouts:
        by_category[category] += stress

    primary = max(by_category, key=by_category.get)
    return DaySummary(
        total_stress=sum(by_category.values()),
        primary_category=primary,
        is_multi_sport=len(by_category) > 1,
        stress_by_category=dict(by_category),
    )


@dataclass
class CalibrationOutcome:
    """Record stored for a reading plus any data points learned from it."""

    record: CalibrationRecord
    data_points: List[CalibrationDataPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record": self.record.to_dict(),
            "data_points": [p.to_dict() for p in self.data_points],
        }


@dataclass
class CalibrationCheck:
    """Whether a reading differs enough from our values to calibrate."""

    is_needed: bool
    reason: str
    ctl_delta: Optional[float] = None
    atl_delta: Optional[float] = None
    tsb_delta: Optional[float] = None


class CalibrationService(BaseService):
    """Stores calibration records and feeds the learning engine."""

    def __init__(
        self,
        engine: Optional[LearningEngine] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(settings=settings, logger=logger)
        self._engine = engine or get_learning_engine()

    @property
    def engine(self) -> LearningEngine:
        return self._engine

    def calibrate(
        self,
        reading: PMCReading,
        calculated: Optional[DailyLoadPoint] = None,
        day: Optional[DaySummary] = None,
    ) -> Optional[CalibrationOutcome]:
        """
        Record a reading and learn from it.

        Args:
            reading: Parsed ground-truth values
            calculated: Our load values for the reading's day
            day: Summary of our workouts on that day

        Returns:
            CalibrationOutcome, or None when the reading has no usable values
        """
        if not reading.is_valid:
            self._logger.info(f"Ignoring reading with confidence {reading.confidence:.2f} and no values")
            return None

        effective_date = to_local_naive(reading.effective_date or self._engine.now())
        day = day or DaySummary()
        record = CalibrationRecord(
            effective_date=effective_date,
            source_confidence=reading.confidence,
            extracted_ctl=reading.ctl,
            extracted_atl=reading.atl,
            extracted_tsb=reading.tsb,
            extracted_daily_tss=reading.daily_tss,
            calculated_ctl=calculated.ctl if calculated else 0.0,
            calculated_atl=calculated.atl if calculated else 0.0,
            calculated_tsb=calculated.tsb if calculated else 0.0,
            calculated_daily_tss=day.total_stress,
            primary_category=day.primary_category,
            is_multi_sport=day.is_multi_sport,
        )

        outcome = CalibrationOutcome(record=record)
        if reading.has_learning_data:
            if reading.effective_date is None:
                reading = replace(reading, effective_date=effective_date)
            outcome.data_points = self._engine.process_reading(
                reading,
                calculated_daily_tss=day.total_stress,
                primary_category=day.primary_category,
                is_multi_sport=day.is_multi_sport,
                calibration_record_id=record.id,
            )

        # Stored after learning so the reading is not its own previous day
        self._engine.store.add_record(record)
        self._logger.info(
            f"Stored calibration record for {effective_date.date()}"
            f"{' (needs calibration)' if record.needs_calibration else ''}"
        )
        return outcome

    def check_calibration_needed(
        self,
        reading: PMCReading,
        current: Optional[DailyLoadPoint],
    ) -> CalibrationCheck:
        """Compare a reading with our current values against the calibration threshold."""
        if current is None:
            return CalibrationCheck(
                is_needed=True,
                reason="No existing metrics - initial calibration required",
            )

        threshold = CalibrationRecord.CALIBRATION_THRESHOLD
        ctl_delta = None if reading.ctl is None else reading.ctl - current.ctl
        atl_delta = None if reading.atl is None else reading.atl - current.atl
        tsb_delta = None if reading.tsb is None else reading.tsb - current.tsb

        is_needed = any(d is not None and abs(d) > threshold for d in (ctl_delta, atl_delta, tsb_delta))
        if is_needed:
            reason = "Values differ significantly from calculated:"
            if ctl_delta is not None and abs(ctl_delta) > threshold:
                reason += f" CTL by {int(ctl_delta)}"
            if atl_delta is not None and abs(atl_delta) > threshold:
                reason += f" ATL by {int(atl_delta)}"
            if tsb_delta is not None and abs(tsb_delta) > threshold:
                reason += f" TSB by {int(tsb_delta)}"
        else:
            reason = "Values are within acceptable range of calculated metrics"

        return CalibrationCheck(
            is_needed=is_needed,
            reason=reason,
            ctl_delta=ctl_delta,
            atl_delta=atl_delta,
            tsb_delta=tsb_delta,
        )

    def apply_calibration(
        self,
        record: CalibrationRecord,
        series: Sequence[DailyLoadPoint],
    ) -> List[DailyLoadPoint]:
        """
        Shift CTL/ATL by the record's deltas from its effective day onward.

        Returns a new series; TSB follows from the shifted values.

        Raises:
            UntrustworthyCalibrationError: If the record is not trustworthy
        """
        if not record.is_trustworthy:
            raise UntrustworthyCalibrationError(record.id, record.source_confidence)

        start = record.effective_date.date()
        ctl_shift = record.ctl_delta or 0.0
        atl_shift = record.atl_delta or 0.0

        adjusted: List[DailyLoadPoint] = []
        for point in series:
            if point.date >= start:
                point = replace(point, ctl=point.ctl + ctl_shift, atl=point.atl + atl_shift)
            adjusted.append(point)

        self._logger.info(f"Applied calibration delta: CTL {ctl_shift:+.1f}, ATL {atl_shift:+.1f}")
        return adjusted

    def initial_seed(
        self,
        ctl: float,
        atl: float,
        effective_date: Optional[datetime] = None,
    ) -> CalibrationRecord:
        """Store user-entered CTL/ATL as the starting point of the load model."""
        effective_date = to_local_naive(effective_date or self._engine.now())
        record = CalibrationRecord(
            effective_date=effective_date,
            source_confidence=1.0,
            extracted_ctl=ctl,
            extracted_atl=atl,
            extracted_tsb=ctl - atl,
            calculated_ctl=ctl,
            calculated_atl=atl,
            calculated_tsb=ctl - atl,
            is_initial_seed=True,
        )
        self._engine.store.add_record(record)
        self._logger.info(f"Seeded load model with CTL={ctl:.1f}, ATL={atl:.1f} on {effective_date.date()}")
        return record

    def series_from_seed(
        self,
        seed: CalibrationRecord,
        daily_stress_by_date: Mapping[date, float],
        end: date,
    ) -> List[DailyLoadPoint]:
        """Load series for the days after a seed record, starting from its values."""
        return compute_series(
            daily_stress_by_date,
            start=seed.effective_date.date() + timedelta(days=1),
            end=end,
            initial_ctl=seed.extracted_ctl or 0.0,
            initial_atl=seed.extracted_atl or 0.0,
            ctl_time_constant=self._settings.ctl_time_constant,
            atl_time_constant=self._settings.atl_time_constant,
        )
