"""
Training Stress Score (TSS) strategies and strategy selection.

Every strategy normalizes to "100 TSS = one hour at threshold":

    TSS = duration_hours * IF^2 * 100

and differs only in how the Intensity Factor (IF) is obtained. A strategy
that receives a non-positive threshold or duration returns a zero result
tagged with its method instead of raising, so callers always have
something to display.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..models.calibration import IntensityBand, ScalingProfile
from ..models.workouts import ActivityCategory
from .pace import (
    GRADE_FACTOR_MAX,
    GRADE_FACTOR_MIN,
    TrackPoint,
    calculate_normalized_graded_pace,
    estimate_normalized_graded_pace,
)
from .power import NP_WINDOW_SECONDS, PowerSample, calculate_normalized_power


logger = logging.getLogger(__name__)

HeartRateSample = Tuple[Union[datetime, float], float]  # (timestamp, bpm)


class StressMethod(str, Enum):
    """Which signal a stress score was derived from."""
    POWER = "power"
    RUNNING_POWER = "runningPower"
    PACE = "pace"
    SWIM = "swim"
    HEART_RATE = "heartRate"
    ESTIMATED = "estimated"


@dataclass(frozen=True)
class StressResult:
    """
    Stress score of a single workout.

    Results are immutable; scaling produces a new result that remembers
    the factor and the unscaled value so scaling is never applied twice.
    """

    value: float
    method: StressMethod
    intensity_factor: float
    normalized_power: Optional[float] = None  # watts
    normalized_pace: Optional[float] = None  # seconds per km
    average_heart_rate: Optional[float] = None
    scaling_applied: bool = False
    scaling_factor: Optional[float] = None
    pre_scaling_value: Optional[float] = None

    @classmethod
    def zero(cls, method: StressMethod) -> "StressResult":
        return cls(value=0.0, method=method, intensity_factor=0.0)

    @property
    def value_per_hour(self) -> float:
        """Stress per hour at this intensity (IF^2 * 100)."""
        return self.intensity_factor ** 2 * 100

    @property
    def intensity_band(self) -> Optional[IntensityBand]:
        if self.intensity_factor <= 0:
            return None
        return IntensityBand.from_intensity_factor(self.intensity_factor)

    @property
    def intensity_description(self) -> str:
        """Human-readable intensity level."""
        if self.intensity_factor >= 1.05:
            return "All Out"
        elif self.intensity_factor >= 0.95:
            return "Threshold"
        elif self.intensity_factor >= 0.85:
            return "Tempo"
        elif self.intensity_factor >= 0.75:
            return "Endurance"
        elif self.intensity_factor >= 0.55:
            return "Recovery"
        return "Easy"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "value": round(self.value, 1),
            "method": self.method.value,
            "intensity_factor": round(self.intensity_factor, 3),
            "intensity_description": self.intensity_description,
            "normalized_power": self.normalized_power,
            "normalized_pace": round(self.normalized_pace, 1) if self.normalized_pace else None,
            "average_heart_rate": self.average_heart_rate,
            "scaling_applied": self.scaling_applied,
            "scaling_factor": self.scaling_factor,
            "pre_scaling_value": round(self.pre_scaling_value, 1) if self.pre_scaling_value is not None else None,
        }


@dataclass
class AthleteThresholds:
    """Threshold values of the athlete; any of them may be unknown."""

    ftp_watts: Optional[float] = None
    running_ftp_watts: Optional[float] = None
    threshold_pace_sec_per_km: Optional[float] = None
    swim_threshold_pace_per_100m: Optional[float] = None
    threshold_heart_rate: Optional[float] = None


@dataclass
class WorkoutSignals:
    """The physiological signals available for one workout."""

    duration_seconds: float
    category: ActivityCategory = ActivityCategory.OTHER
    power_samples: Optional[Sequence[PowerSample]] = None
    normalized_power: Optional[float] = None
    distance_meters: Optional[float] = None
    track_points: Optional[Sequence[TrackPoint]] = None
    total_ascent_m: Optional[float] = None
    total_descent_m: Optional[float] = None
    heart_rate_samples: Optional[Sequence[HeartRateSample]] = None
    average_heart_rate: Optional[float] = None
    perceived_intensity: Optional[float] = None  # 0-1


def _tss(duration_seconds: float, intensity_factor: float) -> float:
    return (duration_seconds / 3600) * intensity_factor ** 2 * 100


# =============================================================================
# Strategies
# =============================================================================

def calculate_power_tss(
    normalized_power: float,
    duration_seconds: float,
    ftp: float,
    method: StressMethod = StressMethod.POWER,
) -> StressResult:
    """
    Calculate TSS from cycling power.

    Formula: TSS = (duration_sec * NP * IF) / (FTP * 3600) * 100, IF = NP / FTP
    which reduces to hours * IF^2 * 100.

    Args:
        normalized_power: Normalized Power in watts
        duration_seconds: Workout duration in seconds
        ftp: Functional Threshold Power in watts

    Returns:
        StressResult, zero when FTP or duration is not positive
    """
    if ftp <= 0 or duration_seconds <= 0:
        return StressResult.zero(method)

    intensity_factor = normalized_power / ftp
    return StressResult(
        value=_tss(duration_seconds, intensity_factor),
        method=method,
        intensity_factor=intensity_factor,
        normalized_power=normalized_power,
    )


def calculate_running_power_tss(
    normalized_power: float,
    duration_seconds: float,
    running_ftp: float,
) -> StressResult:
    """Calculate TSS from running power against running FTP."""
    return calculate_power_tss(
        normalized_power,
        duration_seconds,
        running_ftp,
        method=StressMethod.RUNNING_POWER,
    )


def calculate_pace_tss(
    pace_sec_per_km: float,
    duration_seconds: float,
    threshold_pace_sec_per_km: float,
) -> StressResult:
    """
    Calculate running TSS (rTSS) from pace.

    Lower pace values are faster, so IF = threshold_pace / actual_pace.

    Args:
        pace_sec_per_km: Normalized graded pace (or average pace) in sec/km
        duration_seconds: Workout duration in seconds
        threshold_pace_sec_per_km: Threshold pace in sec/km
    """
    if threshold_pace_sec_per_km <= 0 or duration_seconds <= 0 or pace_sec_per_km <= 0:
        return StressResult.zero(StressMethod.PACE)

    intensity_factor = threshold_pace_sec_per_km / pace_sec_per_km
    return StressResult(
        value=_tss(duration_seconds, intensity_factor),
        method=StressMethod.PACE,
        intensity_factor=intensity_factor,
        normalized_pace=pace_sec_per_km,
    )


def calculate_swim_tss(
    pace_per_100m: float,
    duration_seconds: float,
    threshold_pace_per_100m: float,
) -> StressResult:
    """Calculate swim TSS; IF = threshold pace / actual pace (both per 100m)."""
    if threshold_pace_per_100m <= 0 or duration_seconds <= 0 or pace_per_100m <= 0:
        return StressResult.zero(StressMethod.SWIM)

    intensity_factor = threshold_pace_per_100m / pace_per_100m
    return StressResult(
        value=_tss(duration_seconds, intensity_factor),
        method=StressMethod.SWIM,
        intensity_factor=intensity_factor,
    )


def calculate_heart_rate_tss(
    average_heart_rate: float,
    duration_seconds: float,
    threshold_heart_rate: float,
) -> StressResult:
    """
    Calculate hrTSS from average heart rate.

    IF = avg_hr / threshold_hr, so one hour at threshold HR gives 100.
    """
    if threshold_heart_rate <= 0 or duration_seconds <= 0 or average_heart_rate <= 0:
        return StressResult.zero(StressMethod.HEART_RATE)

    intensity_factor = average_heart_rate / threshold_heart_rate
    return StressResult(
        value=_tss(duration_seconds, intensity_factor),
        method=StressMethod.HEART_RATE,
        intensity_factor=intensity_factor,
        average_heart_rate=average_heart_rate,
    )


# TSS per hour spent in each heart rate zone, with the upper bound of the
# zone as a fraction of threshold HR
HR_ZONE_TSS_PER_HOUR: List[Tuple[float, float]] = [
    (0.81, 30.0),  # Zone 1
    (0.89, 50.0),  # Zone 2
    (0.93, 70.0),  # Zone 3
    (0.99, 90.0),  # Zone 4
    (float("inf"), 110.0),  # Zone 5
]


def _zone_tss_per_hour(heart_rate: float, threshold_heart_rate: float) -> float:
    fraction = heart_rate / threshold_heart_rate
    for upper, per_hour in HR_ZONE_TSS_PER_HOUR:
        if fraction < upper:
            return per_hour
    return HR_ZONE_TSS_PER_HOUR[-1][1]


def _seconds_between(later: Union[datetime, float], earlier: Union[datetime, float]) -> float:
    if isinstance(later, datetime):
        return (later - earlier).total_seconds()
    return float(later) - float(earlier)


def calculate_zone_heart_rate_tss(
    heart_rate_samples: Sequence[HeartRateSample],
    duration_seconds: float,
    threshold_heart_rate: float,
) -> StressResult:
    """
    Calculate hrTSS from time spent in each heart rate zone.

    Each interval between two samples is attributed to the zone of the
    earlier sample; the time after the last sample up to the workout
    duration goes to the last sample's zone.
    """
    if not heart_rate_samples or threshold_heart_rate <= 0:
        return StressResult.zero(StressMethod.HEART_RATE)

    samples = sorted(heart_rate_samples, key=lambda s: _seconds_between(s[0], heart_rate_samples[0][0]))
    first_ts = samples[0][0]

    tss = 0.0
    for (ts, bpm), (next_ts, _) in zip(samples, samples[1:]):
        interval = _seconds_between(next_ts, ts)
        tss += interval / 3600 * _zone_tss_per_hour(bpm, threshold_heart_rate)

    last_ts, last_bpm = samples[-1]
    remaining = duration_seconds - _seconds_between(last_ts, first_ts)
    if remaining > 0:
        tss += remaining / 3600 * _zone_tss_per_hour(last_bpm, threshold_heart_rate)

    average = sum(bpm for _, bpm in samples) / len(samples)
    return StressResult(
        value=tss,
        method=StressMethod.HEART_RATE,
        intensity_factor=average / threshold_heart_rate,
        average_heart_rate=average,
    )


def estimate_tss(duration_seconds: float, perceived_intensity: float) -> StressResult:
    """
    Estimate TSS when no reliable signal is available.

    Perceived intensity (0-1) maps linearly onto IF 0.5-1.1. This is a crude
    fallback and should not be trusted for calibration.
    """
    if duration_seconds <= 0:
        return StressResult.zero(StressMethod.ESTIMATED)

    perceived = max(0.0, min(1.0, perceived_intensity))
    intensity_factor = 0.5 + perceived * 0.6
    return StressResult(
        value=_tss(duration_seconds, intensity_factor),
        method=StressMethod.ESTIMATED,
        intensity_factor=intensity_factor,
    )


_DEFAULT_PERCEIVED_INTENSITY = {
    ActivityCategory.RUN: 0.7,
    ActivityCategory.BIKE: 0.65,
    ActivityCategory.SWIM: 0.7,
    ActivityCategory.STRENGTH: 0.6,
}


def default_perceived_intensity(category: ActivityCategory) -> float:
    """Typical perceived intensity for an activity category."""
    return _DEFAULT_PERCEIVED_INTENSITY.get(category, 0.5)


# =============================================================================
# Strategy selection
# =============================================================================

def _resolve_normalized_power(signals: WorkoutSignals, window_seconds: int) -> Optional[float]:
    if signals.normalized_power is not None and signals.normalized_power > 0:
        return signals.normalized_power
    if signals.power_samples:
        return calculate_normalized_power(signals.power_samples, window_seconds)
    return None


def _resolve_running_pace(
    signals: WorkoutSignals,
    grade_factor_bounds: Tuple[float, float],
) -> Optional[float]:
    min_factor, max_factor = grade_factor_bounds
    if signals.track_points:
        ngp = calculate_normalized_graded_pace(signals.track_points, min_factor, max_factor)
        if ngp is not None:
            return ngp

    if not signals.distance_meters or signals.distance_meters <= 0:
        return None

    average_pace = signals.duration_seconds / (signals.distance_meters / 1000)
    if signals.total_ascent_m is not None and signals.total_descent_m is not None:
        ngp = estimate_normalized_graded_pace(
            average_pace,
            signals.duration_seconds,
            signals.total_ascent_m,
            signals.total_descent_m,
            signals.distance_meters,
            min_factor,
            max_factor,
        )
        if ngp is not None:
            return ngp
    return average_pace


def _resolve_average_heart_rate(signals: WorkoutSignals) -> Optional[float]:
    if signals.average_heart_rate is not None and signals.average_heart_rate > 0:
        return signals.average_heart_rate
    if signals.heart_rate_samples:
        return sum(bpm for _, bpm in signals.heart_rate_samples) / len(signals.heart_rate_samples)
    return None


def score_workout(
    signals: WorkoutSignals,
    thresholds: AthleteThresholds,
    np_window_seconds: int = NP_WINDOW_SECONDS,
    grade_factor_bounds: Tuple[float, float] = (GRADE_FACTOR_MIN, GRADE_FACTOR_MAX),
) -> StressResult:
    """
    Score a workout with the first applicable strategy.

    Priority: power with a known threshold > pace with a known threshold
    > heart rate with a known threshold > perceived-intensity estimate.

    Args:
        signals: Available signals for the workout
        thresholds: Athlete thresholds
        np_window_seconds: Rolling window for Normalized Power
        grade_factor_bounds: (min, max) clamp of the grade cost multiplier

    Returns:
        StressResult tagged with the strategy that produced it
    """
    category = signals.category
    duration = signals.duration_seconds

    # Power
    if category == ActivityCategory.BIKE and thresholds.ftp_watts:
        np = _resolve_normalized_power(signals, np_window_seconds)
        if np is not None:
            return calculate_power_tss(np, duration, thresholds.ftp_watts)
    if category == ActivityCategory.RUN and thresholds.running_ftp_watts:
        np = _resolve_normalized_power(signals, np_window_seconds)
        if np is not None:
            return calculate_running_power_tss(np, duration, thresholds.running_ftp_watts)

    # Pace
    if category == ActivityCategory.RUN and thresholds.threshold_pace_sec_per_km:
        pace = _resolve_running_pace(signals, grade_factor_bounds)
        if pace is not None:
            return calculate_pace_tss(pace, duration, thresholds.threshold_pace_sec_per_km)
    if category == ActivityCategory.SWIM and thresholds.swim_threshold_pace_per_100m:
        if signals.distance_meters and signals.distance_meters > 0:
            pace_per_100m = duration / (signals.distance_meters / 100)
            return calculate_swim_tss(pace_per_100m, duration, thresholds.swim_threshold_pace_per_100m)

    # Heart rate
    if thresholds.threshold_heart_rate:
        average_hr = _resolve_average_heart_rate(signals)
        if average_hr is not None:
            return calculate_heart_rate_tss(average_hr, duration, thresholds.threshold_heart_rate)

    # Estimate
    perceived = signals.perceived_intensity
    if perceived is None:
        perceived = default_perceived_intensity(category)
    logger.debug(f"No usable signal for {category.value} workout, estimating stress")
    return estimate_tss(duration, perceived)


def apply_scaling(
    result: StressResult,
    profile: Optional[ScalingProfile],
    category: Optional[ActivityCategory] = None,
    band: Optional[IntensityBand] = None,
) -> StressResult:
    """
    Apply the learned scaling factor to a stress result, at most once.

    Args:
        result: Unscaled (or already scaled) result
        profile: Scaling profile snapshot; None or unusable means no scaling
        category: Activity category for sport-specific factors
        band: Intensity band; derived from the result's IF when omitted

    Returns:
        A scaled copy, or the same result when already scaled or when the
        profile cannot be applied
    """
    if result.scaling_applied:
        return result
    if profile is None or not profile.can_apply_scaling:
        return result

    factor = profile.scaling_factor(category, band or result.intensity_band)
    return replace(
        result,
        value=result.value * factor,
        scaling_applied=True,
        scaling_factor=factor,
        pre_scaling_value=result.value,
    )
