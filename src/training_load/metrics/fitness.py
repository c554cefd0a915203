"""Fitness-Fatigue load model (CTL, ATL, TSB) and derived load analysis."""

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..exceptions import InvalidParameterError


CTL_TIME_CONSTANT = 42  # Chronic Training Load (fitness)
ATL_TIME_CONSTANT = 7  # Acute Training Load (fatigue)


@dataclass
class DailyLoadPoint:
    """One calendar day of the performance management chart."""

    date: date
    daily_stress: float  # Total TSS for the day
    ctl: float  # Chronic Training Load (fitness)
    atl: float  # Acute Training Load (fatigue)

    @property
    def tsb(self) -> float:
        """Training Stress Balance (form), always derived from CTL and ATL."""
        return self.ctl - self.atl

    @property
    def acwr(self) -> Optional[float]:
        return calculate_acwr(self.ctl, self.atl)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        acwr = self.acwr
        return {
            "date": self.date.isoformat(),
            "daily_stress": round(self.daily_stress, 1),
            "ctl": round(self.ctl, 1),
            "atl": round(self.atl, 1),
            "tsb": round(self.tsb, 1),
            "acwr": round(acwr, 2) if acwr is not None else None,
        }


@dataclass
class LoadProjection:
    """Projected load values for a hypothetical future day."""

    day: int  # 1 = tomorrow
    planned_stress: float
    ctl: float
    atl: float

    @property
    def tsb(self) -> float:
        return self.ctl - self.atl


def _validate_time_constant(time_constant: float, field: str) -> None:
    if time_constant <= 0:
        raise InvalidParameterError(
            f"Time constant must be positive, got {time_constant}",
            field=field,
        )


def calculate_ewma(
    current_value: float,
    previous_ewma: float,
    time_constant: float,
) -> float:
    """
    Single-pole exponentially weighted moving average.

    Uses the formula: EWMA_n = EWMA_{n-1} + (value - EWMA_{n-1}) / time_constant

    Args:
        current_value: Today's training stress
        previous_ewma: Yesterday's EWMA value
        time_constant: Time constant in days (42 for CTL, 7 for ATL)

    Returns:
        New EWMA value

    Raises:
        InvalidParameterError: If time_constant is not positive
    """
    _validate_time_constant(time_constant, "time_constant")
    return previous_ewma + (current_value - previous_ewma) / time_constant


def advance(
    previous_ctl: float,
    previous_atl: float,
    today_stress: float,
    ctl_time_constant: float = CTL_TIME_CONSTANT,
    atl_time_constant: float = ATL_TIME_CONSTANT,
) -> Tuple[float, float, float]:
    """
    Advance the load model by one day.

    Args:
        previous_ctl: Yesterday's CTL
        previous_atl: Yesterday's ATL
        today_stress: Today's total training stress
        ctl_time_constant: CTL time constant in days
        atl_time_constant: ATL time constant in days

    Returns:
        Tuple of (ctl, atl, tsb) for today

    Raises:
        InvalidParameterError: If either time constant is not positive
    """
    _validate_time_constant(ctl_time_constant, "ctl_time_constant")
    _validate_time_constant(atl_time_constant, "atl_time_constant")

    ctl = calculate_ewma(today_stress, previous_ctl, ctl_time_constant)
    atl = calculate_ewma(today_stress, previous_atl, atl_time_constant)
    return ctl, atl, ctl - atl


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def aggregate_daily_stress(
    entries: Iterable[Tuple[Union[date, datetime], float]],
) -> Dict[date, float]:
    """
    Sum per-workout stress values into per-day totals.

    Args:
        entries: (start date or datetime, stress) pairs, one per workout

    Returns:
        Mapping of calendar day to total stress
    """
    totals: Dict[date, float] = defaultdict(float)
    for when, stress in entries:
        totals[_as_date(when)] += stress
    return dict(totals)


def compute_series(
    daily_stress_by_date: Mapping[date, float],
    start: date,
    end: date,
    initial_ctl: float = 0.0,
    initial_atl: float = 0.0,
    ctl_time_constant: float = CTL_TIME_CONSTANT,
    atl_time_constant: float = ATL_TIME_CONSTANT,
) -> List[DailyLoadPoint]:
    """
    Compute CTL, ATL and TSB for every calendar day from start to end.

    The model is a strict fold over consecutive days: each day depends on
    the previous day's CTL/ATL. Days without an entry are zero-stress days
    and the loads decay toward zero, so the output has no gaps.

    Args:
        daily_stress_by_date: Total stress per calendar day
        start: First day of the series (inclusive)
        end: Last day of the series (inclusive)
        initial_ctl: CTL on the day before start
        initial_atl: ATL on the day before start
        ctl_time_constant: CTL time constant in days (default 42)
        atl_time_constant: ATL time constant in days (default 7)

    Returns:
        List of DailyLoadPoint ordered by date, empty when end < start
    """
    _validate_time_constant(ctl_time_constant, "ctl_time_constant")
    _validate_time_constant(atl_time_constant, "atl_time_constant")

    results: List[DailyLoadPoint] = []
    ctl = initial_ctl
    atl = initial_atl

    current = start
    while current <= end:
        stress = daily_stress_by_date.get(current, 0.0)
        ctl, atl, _ = advance(ctl, atl, stress, ctl_time_constant, atl_time_constant)
        results.append(DailyLoadPoint(date=current, daily_stress=stress, ctl=ctl, atl=atl))
        current += timedelta(days=1)

    return results


def project(
    current_ctl: float,
    current_atl: float,
    planned_stress: Sequence[float],
    ctl_time_constant: float = CTL_TIME_CONSTANT,
    atl_time_constant: float = ATL_TIME_CONSTANT,
) -> List[LoadProjection]:
    """
    Project CTL/ATL/TSB forward over a sequence of planned daily stress values.

    Args:
        current_ctl: Today's CTL
        current_atl: Today's ATL
        planned_stress: Planned stress for tomorrow, the day after, etc.

    Returns:
        One LoadProjection per planned day
    """
    projections: List[LoadProjection] = []
    ctl = current_ctl
    atl = current_atl

    for day, stress in enumerate(planned_stress, start=1):
        ctl, atl, _ = advance(ctl, atl, stress, ctl_time_constant, atl_time_constant)
        projections.append(LoadProjection(day=day, planned_stress=stress, ctl=ctl, atl=atl))

    return projections


def days_to_target_tsb(
    current_ctl: float,
    current_atl: float,
    target_tsb: float,
    max_days: int = 30,
    ctl_time_constant: float = CTL_TIME_CONSTANT,
    atl_time_constant: float = ATL_TIME_CONSTANT,
) -> Optional[int]:
    """
    Number of rest days until TSB reaches the target.

    Simulates zero-stress days starting tomorrow.

    Returns:
        Day count (1..max_days), or None if the target is not reached
    """
    if max_days < 0:
        raise InvalidParameterError(f"max_days must not be negative, got {max_days}", field="max_days")

    ctl = current_ctl
    atl = current_atl
    for day in range(1, max_days + 1):
        ctl, atl, tsb = advance(ctl, atl, 0.0, ctl_time_constant, atl_time_constant)
        if tsb >= target_tsb:
            return day
    return None


# =============================================================================
# Load analysis
# =============================================================================

class AcwrStatus(str, Enum):
    """Injury-risk classification of the acute:chronic workload ratio."""
    OPTIMAL = "optimal"
    UNDERTRAINING = "undertraining"
    CAUTION = "caution"
    HIGH_RISK = "highRisk"
    VERY_LOW = "veryLow"
    UNKNOWN = "unknown"


class FormStatus(str, Enum):
    """Readiness classification from TSB."""
    VERY_FRESH = "veryFresh"
    FRESH = "fresh"
    NEUTRAL = "neutral"
    TIRED = "tired"
    VERY_TIRED = "veryTired"


@dataclass
class FormRecommendation:
    """Training recommendation for the current form."""

    status: FormStatus
    message: str
    suggested_stress: Tuple[int, int]  # (min, max) daily TSS

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "message": self.message,
            "suggested_stress": {"min": self.suggested_stress[0], "max": self.suggested_stress[1]},
        }


def calculate_acwr(ctl: float, atl: float) -> Optional[float]:
    """Acute:Chronic Workload Ratio (ATL / CTL), None when CTL is not positive."""
    if ctl <= 0:
        return None
    return atl / ctl


def determine_acwr_status(acwr: Optional[float]) -> AcwrStatus:
    """
    Classify ACWR into an injury-risk zone.

    - 0.8 - 1.3: Optimal (sweet spot for adaptation)
    - 0.5 - 0.8: Undertraining
    - 1.3 - 1.5: Caution (elevated injury risk)
    - >= 1.5: High risk
    - < 0.5: Very low load
    """
    if acwr is None:
        return AcwrStatus.UNKNOWN
    if 0.8 <= acwr <= 1.3:
        return AcwrStatus.OPTIMAL
    if 0.5 <= acwr < 0.8:
        return AcwrStatus.UNDERTRAINING
    if 1.3 < acwr < 1.5:
        return AcwrStatus.CAUTION
    if acwr >= 1.5:
        return AcwrStatus.HIGH_RISK
    return AcwrStatus.VERY_LOW


def calculate_monotony(daily_stress: Sequence[float]) -> Optional[float]:
    """
    Training monotony over the last 7 days (mean / standard deviation).

    High monotony (> 2.0) combined with high strain raises injury risk.

    Returns:
        Monotony, or None with fewer than 7 days, zero mean or zero spread
    """
    if len(daily_stress) < 7:
        return None

    last_week = list(daily_stress[-7:])
    mean = sum(last_week) / 7
    if mean <= 0:
        return None

    variance = sum((s - mean) ** 2 for s in last_week) / 7
    std_dev = math.sqrt(variance)
    if std_dev == 0:
        return None
    return mean / std_dev


def calculate_strain(daily_stress: Sequence[float]) -> Optional[float]:
    """Weekly strain: 7-day stress sum multiplied by monotony."""
    monotony = calculate_monotony(daily_stress)
    if monotony is None:
        return None
    return sum(daily_stress[-7:]) * monotony


def get_form_recommendation(tsb: float) -> FormRecommendation:
    """
    Get a training recommendation based on current form (TSB).

    Args:
        tsb: Training Stress Balance

    Returns:
        FormRecommendation with status, message and suggested stress range
    """
    if tsb >= 25:
        return FormRecommendation(
            FormStatus.VERY_FRESH,
            "Very fresh. Great day for high intensity or racing.",
            (80, 150),
        )
    elif tsb >= 10:
        return FormRecommendation(
            FormStatus.FRESH,
            "Fresh. Good for quality training or competitions.",
            (60, 120),
        )
    elif tsb >= -10:
        return FormRecommendation(
            FormStatus.NEUTRAL,
            "Balanced. Normal training load appropriate.",
            (40, 100),
        )
    elif tsb >= -25:
        return FormRecommendation(
            FormStatus.TIRED,
            "Fatigued. Consider easier training or rest.",
            (20, 60),
        )
    else:
        return FormRecommendation(
            FormStatus.VERY_TIRED,
            "Very fatigued. Rest day or active recovery only.",
            (0, 30),
        )
