"""Normalized Graded Pace (elevation-adjusted running pace)."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Union


GRADE_FACTOR_MIN = 0.7
GRADE_FACTOR_MAX = 2.0

# Metabolic cost of running on flat ground (J/kg/m)
FLAT_GROUND_COST = 3.6


@dataclass
class TrackPoint:
    """A single GPS/elevation sample of a run."""

    timestamp: Union[datetime, float]
    pace_sec_per_km: float
    elevation_m: float


def grade_adjustment_factor(
    grade_percent: float,
    min_factor: float = GRADE_FACTOR_MIN,
    max_factor: float = GRADE_FACTOR_MAX,
) -> float:
    """
    Relative metabolic cost of running at a grade versus flat ground.

    Uses the Minetti quintic fit of energy cost against gradient:
    Cost = 155.4g^5 - 30.4g^4 - 43.3g^3 + 46.3g^2 + 19.5g + 3.6
    with g the grade as a fraction. The ratio to flat cost is clamped so
    extreme grades cannot extrapolate the polynomial.

    Args:
        grade_percent: Grade in percent (e.g. 5 for a 5% climb)

    Returns:
        Cost multiplier, 1.0 on flat ground
    """
    g = grade_percent / 100
    cost = (
        155.4 * g ** 5
        - 30.4 * g ** 4
        - 43.3 * g ** 3
        + 46.3 * g ** 2
        + 19.5 * g
        + FLAT_GROUND_COST
    )
    return max(min_factor, min(max_factor, cost / FLAT_GROUND_COST))


def _seconds_between(later: Union[datetime, float], earlier: Union[datetime, float]) -> float:
    if isinstance(later, datetime):
        return (later - earlier).total_seconds()
    return float(later) - float(earlier)


def calculate_normalized_graded_pace(
    track_points: Sequence[TrackPoint],
    min_factor: float = GRADE_FACTOR_MIN,
    max_factor: float = GRADE_FACTOR_MAX,
) -> Optional[float]:
    """
    Calculate Normalized Graded Pace (NGP) from a run's track points.

    For each pair of consecutive points the horizontal distance is derived
    from pace and elapsed time, the local grade from the elevation change,
    and the pace is divided by the grade cost multiplier (uphill segments
    count as faster, downhill as slower). NGP is the mean adjusted pace.

    Args:
        track_points: Points in chronological order

    Returns:
        NGP in seconds per km, or None if no segment could be adjusted
    """
    if len(track_points) < 2:
        return None

    adjusted: List[float] = []
    for previous, current in zip(track_points, track_points[1:]):
        elapsed = _seconds_between(current.timestamp, previous.timestamp)
        if elapsed <= 0 or current.pace_sec_per_km <= 0:
            continue

        horizontal_m = elapsed / current.pace_sec_per_km * 1000
        if horizontal_m <= 0:
            continue

        grade = (current.elevation_m - previous.elevation_m) / horizontal_m * 100
        adjusted.append(current.pace_sec_per_km / grade_adjustment_factor(grade, min_factor, max_factor))

    if not adjusted:
        return None

    return sum(adjusted) / len(adjusted)


def estimate_normalized_graded_pace(
    pace_sec_per_km: float,
    duration_seconds: float,
    total_ascent_m: float,
    total_descent_m: float,
    distance_m: float,
    min_factor: float = GRADE_FACTOR_MIN,
    max_factor: float = GRADE_FACTOR_MAX,
) -> Optional[float]:
    """
    Estimate NGP from workout summary values when no track is available.

    The effective grade combines the net grade with half of the total
    climbing per meter, so hilly out-and-back courses still count as harder.

    Returns:
        Estimated NGP in seconds per km, or None without distance or duration
    """
    if distance_m <= 0 or duration_seconds <= 0:
        return None

    net_grade = (total_ascent_m - total_descent_m) / distance_m * 100
    climbing = (total_ascent_m + total_descent_m) / distance_m * 50
    return pace_sec_per_km / grade_adjustment_factor(net_grade + climbing, min_factor, max_factor)
