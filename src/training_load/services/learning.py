"""
Self-calibration of stress estimates against ground-truth readings.

Every ground-truth observation becomes an additive data point comparing
the reference stress value with our own estimate. Scaling factors are
never updated incrementally: each recompute derives a fresh profile from
the full set of valid points, weighting each by source confidence and an
exponential time decay. Recompute and ingest are serialized; readers
always see a complete, immutable ScalingProfile snapshot.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging
import math
import statistics
import threading

from ..config import Settings
from ..exceptions import DataPointNotFoundError
from ..metrics.fitness import DailyLoadPoint
from ..models.calibration import (
    CalibrationDataPoint,
    CalibrationRecord,
    DerivationMethod,
    IntensityBand,
    PMCReading,
    ScalingProfile,
    to_local_naive,
)
from ..models.workouts import ActivityCategory, SCALED_SPORTS
from .base import BaseService
from .calibration_store import CalibrationStore, InMemoryCalibrationStore


# Confidence formula weights and saturation points
SAMPLE_COUNT_WEIGHT = 0.4
CONSISTENCY_WEIGHT = 0.4
RECENCY_WEIGHT = 0.2
SAMPLES_FOR_FULL_CONFIDENCE = 10
RATIO_STD_FOR_ZERO_CONSISTENCY = 0.3

# Import statistics thresholds
MINIMUM_IMPORT_SAMPLES = 10
RECENT_DAYS = 30
DISABLE_IMPORT_CONFIDENCE = 0.9

# (today CTL, today ATL) pair for the day before a reading
PreviousDayValues = Tuple[float, float]


def calculate_confidence(ratios: Sequence[float], time_weights: Sequence[float]) -> float:
    """
    Confidence in a factor learned from the given ratios.

    Combines sample count (saturating at 10 samples), consistency of the
    ratios (sample standard deviation of 0.3 or more gives none) and the
    mean recency weight.
    """
    n = len(ratios)
    if n == 0:
        return 0.0

    count_score = min(1.0, n / SAMPLES_FOR_FULL_CONFIDENCE)

    if n > 1:
        std_dev = math.sqrt(statistics.variance(ratios))
        consistency_score = max(0.0, 1.0 - std_dev / RATIO_STD_FOR_ZERO_CONSISTENCY)
    else:
        consistency_score = 1.0

    recency_score = statistics.mean(time_weights) if time_weights else 0.0

    return (
        count_score * SAMPLE_COUNT_WEIGHT
        + consistency_score * CONSISTENCY_WEIGHT
        + recency_score * RECENCY_WEIGHT
    )


def calculate_weighted_factor(
    points: Sequence[CalibrationDataPoint],
    now: datetime,
    half_life_days: float = 30.0,
    min_confidence: float = 0.5,
) -> Tuple[float, float, int]:
    """
    Weighted mean scaling ratio of the usable points.

    Returns:
        (factor, confidence, sample_count); (1.0, 0.0, 0) when no point is
        usable or the total weight is zero
    """
    usable = [p for p in points if p.is_usable_for_learning(min_confidence)]
    if not usable:
        return 1.0, 0.0, 0

    ratios: List[float] = []
    time_weights: List[float] = []
    weighted_sum = 0.0
    total_weight = 0.0

    for point in usable:
        ratio = point.scaling_ratio
        time_weight = point.time_weight(now, half_life_days)
        weight = time_weight * point.source_confidence
        ratios.append(ratio)
        time_weights.append(time_weight)
        weighted_sum += ratio * weight
        total_weight += weight

    if total_weight <= 0:
        return 1.0, 0.0, 0

    factor = weighted_sum / total_weight
    confidence = calculate_confidence(ratios, time_weights)
    return factor, confidence, len(usable)


@dataclass
class LearningStatistics:
    """Snapshot of the learning state for reporting."""

    scaling_factor: float
    confidence: float
    sample_count: int
    learning_enabled: bool
    can_apply_scaling: bool
    confidence_level: str
    status_description: str
    sport_factors: Dict[ActivityCategory, float] = field(default_factory=dict)
    sport_sample_counts: Dict[ActivityCategory, int] = field(default_factory=dict)
    band_factors: Dict[IntensityBand, float] = field(default_factory=dict)
    band_sample_counts: Dict[IntensityBand, int] = field(default_factory=dict)
    recent_data_points: List[CalibrationDataPoint] = field(default_factory=list)

    @property
    def scaling_percentage(self) -> str:
        """Adjustment as a signed percentage, e.g. '+12.0%'."""
        percent = (self.scaling_factor - 1.0) * 100
        sign = "+" if percent >= 0 else ""
        return f"{sign}{percent:.1f}%"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scaling_factor": round(self.scaling_factor, 4),
            "scaling_percentage": self.scaling_percentage,
            "confidence": round(self.confidence, 3),
            "confidence_level": self.confidence_level,
            "sample_count": self.sample_count,
            "learning_enabled": self.learning_enabled,
            "can_apply_scaling": self.can_apply_scaling,
            "status": self.status_description,
            "sport_factors": {k.value: round(v, 4) for k, v in self.sport_factors.items()},
            "band_factors": {k.value: round(v, 4) for k, v in self.band_factors.items()},
            "recent_data_points": [p.to_dict() for p in self.recent_data_points],
        }


@dataclass
class ImportStatistics:
    """Progress of calibration from directly observed daily stress values."""

    total_samples: int
    recent_samples: int
    scaling_factor: float
    confidence: float
    per_sport_counts: Dict[ActivityCategory, int] = field(default_factory=dict)
    is_calibration_complete: bool = False
    can_disable_import: bool = False

    @property
    def samples_needed(self) -> int:
        return max(0, MINIMUM_IMPORT_SAMPLES - self.total_samples)

    @property
    def progress_to_minimum(self) -> float:
        return min(1.0, self.total_samples / MINIMUM_IMPORT_SAMPLES)

    @property
    def scaling_description(self) -> str:
        difference = abs(self.scaling_factor - 1.0) * 100
        if difference < 1:
            return "Matches reference values"
        direction = "higher" if self.scaling_factor > 1.0 else "lower"
        return f"Reference values are {difference:.0f}% {direction}"

    @property
    def status_message(self) -> str:
        if self.total_samples == 0:
            return "Import daily stress values to start calibration"
        if self.samples_needed > 0:
            return f"Import {self.samples_needed} more days to complete calibration"
        if self.is_calibration_complete:
            return "Calibration complete"
        return "Calibration in progress"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_samples": self.total_samples,
            "recent_samples": self.recent_samples,
            "scaling_factor": round(self.scaling_factor, 4),
            "confidence": round(self.confidence, 3),
            "per_sport_counts": {k.value: v for k, v in self.per_sport_counts.items()},
            "is_calibration_complete": self.is_calibration_complete,
            "can_disable_import": self.can_disable_import,
            "status": self.status_message,
        }


def default_profile(settings: Settings, learning_enabled: bool = True, version: int = 0) -> ScalingProfile:
    """A profile with no learned factors and thresholds taken from settings."""
    return ScalingProfile(
        learning_enabled=learning_enabled,
        min_samples_for_confidence=settings.min_samples_for_confidence,
        min_apply_confidence=settings.min_apply_confidence,
        min_factor=settings.min_scaling_factor,
        max_factor=settings.max_scaling_factor,
        version=version,
    )


class LearningEngine(BaseService):
    """
    Learns scaling factors from calibration data points.

    The engine is the single writer of data points and of the profile.
    Ingestion and recompute hold the same lock, so concurrent callers
    never observe a half-updated set of factors.
    """

    def __init__(
        self,
        store: Optional[CalibrationStore] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        previous_day_provider: Optional[Callable[[date], Optional[PreviousDayValues]]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            store: Persistence for points, records and the profile
            settings: Engine settings
            clock: Returns the current time (injectable for tests)
            previous_day_provider: Fallback source of the previous day's
                (CTL, ATL) when no calibration record exists for that day,
                typically our own computed series
            logger: Logger to use
        """
        super().__init__(settings=settings, logger=logger)
        self._store = store or InMemoryCalibrationStore()
        self._clock = clock or datetime.now
        self._previous_day_provider = previous_day_provider
        self._lock = threading.Lock()
        self._profile = self._store.load_profile() or default_profile(self._settings)

    @property
    def store(self) -> CalibrationStore:
        return self._store

    def now(self) -> datetime:
        """Current time from the engine clock, as naive local time."""
        return to_local_naive(self._clock())

    @property
    def profile(self) -> ScalingProfile:
        """Current immutable profile snapshot."""
        return self._profile

    def scaling_factor(
        self,
        category: Optional[ActivityCategory] = None,
        band: Optional[IntensityBand] = None,
    ) -> float:
        """Factor to apply for a workout, resolved from the current snapshot."""
        return self._profile.scaling_factor(category, band)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def process_reading(
        self,
        reading: PMCReading,
        calculated_daily_tss: float,
        primary_category: Optional[ActivityCategory] = None,
        is_multi_sport: bool = False,
        calibration_record_id: Optional[str] = None,
        previous_day: Optional[PreviousDayValues] = None,
    ) -> List[CalibrationDataPoint]:
        """
        Turn a ground-truth reading into data points and recompute.

        A daily stress value is used directly. Otherwise the day's stress
        is implied from the CTL/ATL change since the previous day,
        cross-validated when both derivations agree.

        Args:
            reading: Parsed ground-truth values
            calculated_daily_tss: Our own stress total for the same day
            primary_category: Category with the most stress that day
            is_multi_sport: Whether several categories were trained
            calibration_record_id: Record the reading was stored under
            previous_day: (CTL, ATL) of the previous day; looked up when omitted

        Returns:
            The data points created (empty when nothing could be learned)
        """
        with self._lock:
            if not self._profile.learning_enabled:
                self._logger.info("Learning disabled, skipping calibration reading")
                return []

            if calculated_daily_tss <= 0:
                self._logger.info("No calculated stress for the reading's day, skipping")
                return []

            effective_date = to_local_naive(reading.effective_date or self._clock())
            category = None if is_multi_sport else primary_category
            points = self._create_points_from_reading(
                reading,
                effective_date,
                calculated_daily_tss,
                category,
                calibration_record_id,
                previous_day,
            )
            if not points:
                self._logger.info(f"No learning data in reading for {effective_date.date()}")
                return []

            for point in points:
                point.is_multi_sport = is_multi_sport

            self._recompute_locked(pending=points)
            self._logger.info(
                f"Created {len(points)} calibration data point(s) "
                f"({points[0].derivation_method.value}) for {effective_date.date()}"
            )
        return points

    def record_direct_comparison(
        self,
        effective_date: datetime,
        reference_tss: float,
        calculated_tss: float,
        source_confidence: float,
        category: Optional[ActivityCategory] = None,
        reference_intensity_factor: Optional[float] = None,
        workout_intensity_factor: Optional[float] = None,
        calibration_record_id: Optional[str] = None,
    ) -> Optional[CalibrationDataPoint]:
        """
        Record a per-workout comparison against an externally computed stress value.

        The intensity band comes from the reference intensity factor when
        given, else from our own.

        Returns:
            The created point, or None when nothing was recorded
        """
        with self._lock:
            if not self._profile.learning_enabled:
                self._logger.info("Learning disabled, skipping direct comparison")
                return None
            if calculated_tss <= 0:
                self._logger.info(f"Calculated stress is {calculated_tss}, ratio undefined, skipping")
                return None

            point = CalibrationDataPoint.from_direct(
                effective_date=effective_date,
                extracted_value=reference_tss,
                calculated_value=calculated_tss,
                source_confidence=source_confidence,
                activity_category=category,
                calibration_record_id=calibration_record_id,
            )
            intensity_factor = reference_intensity_factor or workout_intensity_factor
            if intensity_factor and intensity_factor > 0:
                point.intensity_band = IntensityBand.from_intensity_factor(intensity_factor)
            point.workout_intensity_factor = workout_intensity_factor

            self._recompute_locked(pending=[point])
            self._logger.info(
                f"Recorded direct comparison: reference {reference_tss:.1f} vs calculated {calculated_tss:.1f}"
            )
        return point

    def record_combined_calibration(
        self,
        effective_date: datetime,
        reference_tss: float,
        calculated_tss: float,
        ctl: float,
        atl: float,
        tsb: Optional[float] = None,
        source_confidence: float = 1.0,
        category: Optional[ActivityCategory] = None,
        calculated_load: Optional[DailyLoadPoint] = None,
    ) -> Optional[CalibrationDataPoint]:
        """
        Record a day's stress together with reference CTL/ATL/TSB values.

        The load values are stored as a calibration record so later
        readings can derive stress from the day-over-day change; the
        stress value itself becomes a direct data point.
        """
        if not self._profile.learning_enabled:
            self._logger.info("Learning disabled, skipping combined calibration")
            return None

        record = CalibrationRecord(
            effective_date=effective_date,
            source_confidence=source_confidence,
            extracted_ctl=ctl,
            extracted_atl=atl,
            extracted_tsb=tsb if tsb is not None else ctl - atl,
            extracted_daily_tss=reference_tss,
            calculated_daily_tss=calculated_tss,
            primary_category=category,
        )
        if calculated_load is not None:
            record.calculated_ctl = calculated_load.ctl
            record.calculated_atl = calculated_load.atl
            record.calculated_tsb = calculated_load.tsb
        self._store.add_record(record)

        return self.record_direct_comparison(
            effective_date=effective_date,
            reference_tss=reference_tss,
            calculated_tss=calculated_tss,
            source_confidence=source_confidence,
            category=category,
            calibration_record_id=record.id,
        )

    def _create_points_from_reading(
        self,
        reading: PMCReading,
        effective_date: datetime,
        calculated_daily_tss: float,
        category: Optional[ActivityCategory],
        calibration_record_id: Optional[str],
        previous_day: Optional[PreviousDayValues],
    ) -> List[CalibrationDataPoint]:
        # Priority 1: direct daily stress
        if reading.daily_tss is not None and reading.daily_tss > 0:
            return [CalibrationDataPoint.from_direct(
                effective_date=effective_date,
                extracted_value=reading.daily_tss,
                calculated_value=calculated_daily_tss,
                source_confidence=reading.confidence,
                activity_category=category,
                calibration_record_id=calibration_record_id,
            )]

        if reading.ctl is None or reading.atl is None:
            return []

        if previous_day is None:
            previous_day = self._lookup_previous_day(effective_date)
        if previous_day is None:
            self._logger.info(f"No previous-day values for {effective_date.date()}, cannot derive stress")
            return []
        yesterday_ctl, yesterday_atl = previous_day

        # Priority 2: CTL and ATL derivations that agree
        cross_validated = CalibrationDataPoint.derive_cross_validated(
            effective_date=effective_date,
            today_ctl=reading.ctl,
            yesterday_ctl=yesterday_ctl,
            today_atl=reading.atl,
            yesterday_atl=yesterday_atl,
            calculated_value=calculated_daily_tss,
            source_confidence=reading.confidence,
            activity_category=category,
            calibration_record_id=calibration_record_id,
            ctl_time_constant=self._settings.ctl_time_constant,
            atl_time_constant=self._settings.atl_time_constant,
            min_agreement=self._settings.cross_validation_min_agreement,
        )
        if cross_validated is not None:
            return [cross_validated]

        # Priority 3: CTL derivation alone
        return [CalibrationDataPoint.derive_from_ctl(
            effective_date=effective_date,
            today_ctl=reading.ctl,
            yesterday_ctl=yesterday_ctl,
            calculated_value=calculated_daily_tss,
            source_confidence=reading.confidence,
            activity_category=category,
            calibration_record_id=calibration_record_id,
            ctl_time_constant=self._settings.ctl_time_constant,
            confidence_penalty=self._settings.derived_confidence_penalty,
        )]

    def _lookup_previous_day(self, effective_date: datetime) -> Optional[PreviousDayValues]:
        yesterday = effective_date.date() - timedelta(days=1)
        record = self._store.find_record(yesterday)
        if record is not None and record.extracted_ctl is not None and record.extracted_atl is not None:
            return record.extracted_ctl, record.extracted_atl
        if self._previous_day_provider is not None:
            return self._previous_day_provider(yesterday)
        return None

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    def recompute(self) -> ScalingProfile:
        """Recompute all factors from the stored valid data points."""
        with self._lock:
            return self._recompute_locked()

    def _recompute_locked(self, pending: Sequence[CalibrationDataPoint] = ()) -> ScalingProfile:
        """
        Derive a new profile from the stored valid points plus pending ones.

        Pending points are persisted only once the profile has been
        computed, so a failed recompute leaves the store untouched.
        """
        valid_points = self._store.list_data_points(valid_only=True)
        valid_points.extend(p for p in pending if p.is_valid)
        if not valid_points:
            self._logger.info("No valid calibration data points, keeping current profile")
            return self._profile

        now = self._clock()
        half_life = self._settings.calibration_half_life_days
        min_confidence = self._settings.min_source_confidence
        current = self._profile

        global_factor, global_confidence, global_count = calculate_weighted_factor(
            valid_points, now, half_life, min_confidence
        )

        sport_factors = dict(current.sport_factors)
        sport_counts = dict(current.sport_sample_counts)
        for sport in SCALED_SPORTS:
            subset = [
                p for p in valid_points
                if p.activity_category == sport and not p.is_multi_sport
            ]
            factor, _, count = calculate_weighted_factor(subset, now, half_life, min_confidence)
            if count > 0:
                sport_factors[sport] = factor
                sport_counts[sport] = count

        band_factors = dict(current.band_factors)
        band_counts = dict(current.band_sample_counts)
        for band in IntensityBand:
            subset = [p for p in valid_points if p.intensity_band == band]
            factor, _, count = calculate_weighted_factor(subset, now, half_life, min_confidence)
            if count > 0:
                band_factors[band] = factor
                band_counts[band] = count

        profile = current.model_copy(update={
            "global_factor": global_factor,
            "global_confidence": min(1.0, global_confidence),
            "global_sample_count": global_count,
            "sport_factors": sport_factors,
            "sport_sample_counts": sport_counts,
            "band_factors": band_factors,
            "band_sample_counts": band_counts,
            "version": current.version + 1,
            "updated_at": now,
        })
        if pending:
            self._store.add_data_points(pending)
        self._swap_profile(profile)
        self._logger.info(
            f"Recomputed scaling profile v{profile.version}: factor={global_factor:.3f}, "
            f"confidence={global_confidence:.2f}, samples={global_count}"
        )
        return profile

    def _swap_profile(self, profile: ScalingProfile) -> None:
        self._store.save_profile(profile)
        self._profile = profile

    # ------------------------------------------------------------------
    # Operator controls
    # ------------------------------------------------------------------

    def set_learning_enabled(self, enabled: bool) -> ScalingProfile:
        """Enable or disable learning; factors stop applying while disabled."""
        with self._lock:
            current = self._profile
            profile = current.model_copy(update={
                "learning_enabled": enabled,
                "version": current.version + 1,
                "updated_at": self._clock(),
            })
            self._swap_profile(profile)
        self._logger.info(f"Learning {'enabled' if enabled else 'disabled'}")
        return profile

    def reset_learning(self) -> ScalingProfile:
        """Delete all data points and return to an unscaled profile."""
        with self._lock:
            current = self._profile
            self._store.clear_data_points()
            profile = default_profile(
                self._settings,
                learning_enabled=current.learning_enabled,
                version=current.version + 1,
            ).model_copy(update={"updated_at": self._clock()})
            self._swap_profile(profile)
        self._logger.info("Reset calibration learning")
        return profile

    def invalidate_data_point(self, point_id: str, reason: str) -> ScalingProfile:
        """
        Flag a data point as erroneous and recompute without it.

        Raises:
            DataPointNotFoundError: If no point has the given id
        """
        with self._lock:
            point = self._store.get_data_point(point_id)
            if point is None:
                raise DataPointNotFoundError(point_id)
            point.invalidate(reason)
            self._logger.info(f"Invalidated data point {point_id}: {reason}")
            return self._recompute_locked()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_statistics(self, recent_limit: int = 10) -> LearningStatistics:
        """Current factors plus the most recent valid data points."""
        profile = self._profile
        recent = self._store.list_data_points(valid_only=True)[:recent_limit]
        return LearningStatistics(
            scaling_factor=profile.global_factor,
            confidence=profile.global_confidence,
            sample_count=profile.global_sample_count,
            learning_enabled=profile.learning_enabled,
            can_apply_scaling=profile.can_apply_scaling,
            confidence_level=profile.confidence_level,
            status_description=profile.status_summary,
            sport_factors=dict(profile.sport_factors),
            sport_sample_counts=dict(profile.sport_sample_counts),
            band_factors=dict(profile.band_factors),
            band_sample_counts=dict(profile.band_sample_counts),
            recent_data_points=recent,
        )

    def get_import_statistics(self) -> ImportStatistics:
        """Progress of calibration from directly observed stress values."""
        profile = self._profile
        now = self._clock()
        direct = [
            p for p in self._store.list_data_points(valid_only=True)
            if p.derivation_method == DerivationMethod.DIRECT
        ]

        per_sport: Dict[ActivityCategory, int] = {}
        for point in direct:
            if point.activity_category is not None:
                per_sport[point.activity_category] = per_sport.get(point.activity_category, 0) + 1

        return ImportStatistics(
            total_samples=len(direct),
            recent_samples=sum(1 for p in direct if p.age_days(now) <= RECENT_DAYS),
            scaling_factor=profile.global_factor,
            confidence=profile.global_confidence,
            per_sport_counts=per_sport,
            is_calibration_complete=profile.global_confidence >= profile.import_complete_confidence,
            can_disable_import=(
                len(direct) >= MINIMUM_IMPORT_SAMPLES
                and profile.global_confidence >= DISABLE_IMPORT_CONFIDENCE
            ),
        )


# Singleton instance
_learning_engine: Optional[LearningEngine] = None


def get_learning_engine() -> LearningEngine:
    """Get the learning engine singleton."""
    global _learning_engine
    if _learning_engine is None:
        _learning_engine = LearningEngine()
    return _learning_engine
