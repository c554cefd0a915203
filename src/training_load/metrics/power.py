"""Normalized Power and related power metrics."""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

from ..exceptions import InvalidParameterError


Timestamp = Union[datetime, float]
PowerSample = Tuple[Timestamp, float]  # (timestamp, watts)

NP_WINDOW_SECONDS = 30


def _elapsed_seconds(timestamp: Timestamp, origin: Timestamp) -> float:
    if isinstance(timestamp, datetime):
        return (timestamp - origin).total_seconds()
    return float(timestamp) - float(origin)


def resample_to_one_second(samples: Sequence[PowerSample]) -> List[float]:
    """
    Resample irregular power samples onto a uniform 1-second grid.

    Values between two samples are linearly interpolated; after the last
    sample the last value is held. The grid covers int(last - first)
    seconds starting at the first sample.

    Args:
        samples: (timestamp, watts) pairs; timestamps are datetimes or seconds

    Returns:
        Power values at 1-second spacing (empty if the samples span < 1s)
    """
    if not samples:
        return []

    ordered = sorted(samples, key=lambda s: _elapsed_seconds(s[0], samples[0][0]))
    origin = ordered[0][0]
    offsets = [_elapsed_seconds(ts, origin) for ts, _ in ordered]
    values = [float(watts) for _, watts in ordered]

    total_seconds = int(offsets[-1])
    if total_seconds <= 0:
        return []

    resampled: List[float] = []
    index = 0
    last = len(ordered) - 1
    for second in range(total_seconds):
        while index < last and offsets[index + 1] <= second:
            index += 1

        if index < last:
            span = offsets[index + 1] - offsets[index]
            if span > 0:
                ratio = (second - offsets[index]) / span
                resampled.append(values[index] + (values[index + 1] - values[index]) * ratio)
            else:
                resampled.append(values[index])
        else:
            resampled.append(values[index])

    return resampled


def _fourth_power_mean(values: Sequence[float], window_seconds: int) -> float:
    rolling_averages: List[float] = []
    for i in range(window_seconds - 1, len(values)):
        window = values[i - window_seconds + 1:i + 1]
        rolling_averages.append(sum(window) / window_seconds)

    fourth_power_mean = sum(avg ** 4 for avg in rolling_averages) / len(rolling_averages)
    return fourth_power_mean ** 0.25


def calculate_normalized_power_from_values(
    power_values: Sequence[float],
    window_seconds: int = NP_WINDOW_SECONDS,
) -> Optional[float]:
    """
    Calculate Normalized Power from power values already sampled at 1 Hz.

    Formula: NP = (mean(rolling_30s_power^4))^0.25

    Args:
        power_values: Power in watts, one value per second
        window_seconds: Rolling window length in seconds

    Returns:
        Normalized Power in watts, or None with window_seconds or fewer values
    """
    if window_seconds <= 0:
        raise InvalidParameterError(
            f"Rolling window must be positive, got {window_seconds}",
            field="window_seconds",
        )
    if len(power_values) <= window_seconds:
        return None

    return round(_fourth_power_mean(power_values, window_seconds), 1)


def calculate_normalized_power(
    samples: Sequence[PowerSample],
    window_seconds: int = NP_WINDOW_SECONDS,
) -> Optional[float]:
    """
    Calculate Normalized Power (NP) from irregularly timed power samples.

    NP accounts for the physiological cost of variable power output.
    Samples are resampled to 1-second spacing, smoothed with a trailing
    30-second rolling mean, raised to the 4th power, averaged, and the
    4th root is taken.

    Args:
        samples: (timestamp, watts) pairs
        window_seconds: Rolling window length in seconds (default 30)

    Returns:
        Normalized Power in watts, or None if there is not enough data
        (more than window_seconds raw samples and resampled seconds needed)
    """
    if window_seconds <= 0:
        raise InvalidParameterError(
            f"Rolling window must be positive, got {window_seconds}",
            field="window_seconds",
        )
    if len(samples) <= window_seconds:
        return None

    resampled = resample_to_one_second(samples)
    return calculate_normalized_power_from_values(resampled, window_seconds)


def calculate_average_power(samples: Sequence[PowerSample]) -> float:
    """Time-weighted average power over the resampled series."""
    resampled = resample_to_one_second(samples)
    if not resampled:
        return 0.0
    return sum(resampled) / len(resampled)


def calculate_variability_index(normalized_power: float, avg_power: float) -> float:
    """
    Calculate Variability Index (VI).

    VI indicates how variable the power output was during the workout.
    VI = 1.0 means perfectly steady power (NP = Avg Power).

    Formula: VI = NP / Avg Power

    Typical values:
    - <1.05: Very steady (time trial, indoor trainer)
    - 1.05-1.15: Moderate variability (road race, group ride)
    - >1.15: High variability (criterium, mountain bike)

    Args:
        normalized_power: Normalized Power in watts
        avg_power: Average power in watts

    Returns:
        Variability Index, 1.0 when average power is not positive
    """
    if avg_power <= 0:
        return 1.0

    return round(normalized_power / avg_power, 3)
