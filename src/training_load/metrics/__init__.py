"""Training load metrics calculations."""

from .fitness import (
    # Load model
    DailyLoadPoint,
    LoadProjection,
    calculate_ewma,
    advance,
    aggregate_daily_stress,
    compute_series,
    project,
    days_to_target_tsb,
    # Load analysis
    AcwrStatus,
    FormStatus,
    FormRecommendation,
    calculate_acwr,
    determine_acwr_status,
    calculate_monotony,
    calculate_strain,
    get_form_recommendation,
)
from .power import (
    calculate_average_power,
    calculate_normalized_power,
    calculate_normalized_power_from_values,
    calculate_variability_index,
    resample_to_one_second,
)
from .pace import (
    TrackPoint,
    calculate_normalized_graded_pace,
    estimate_normalized_graded_pace,
    grade_adjustment_factor,
)
from .stress import (
    AthleteThresholds,
    StressMethod,
    StressResult,
    WorkoutSignals,
    apply_scaling,
    calculate_heart_rate_tss,
    calculate_pace_tss,
    calculate_power_tss,
    calculate_running_power_tss,
    calculate_swim_tss,
    calculate_zone_heart_rate_tss,
    default_perceived_intensity,
    estimate_tss,
    score_workout,
)

__all__ = [
    # Load model
    "DailyLoadPoint",
    "LoadProjection",
    "calculate_ewma",
    "advance",
    "aggregate_daily_stress",
    "compute_series",
    "project",
    "days_to_target_tsb",
    # Load analysis
    "AcwrStatus",
    "FormStatus",
    "FormRecommendation",
    "calculate_acwr",
    "determine_acwr_status",
    "calculate_monotony",
    "calculate_strain",
    "get_form_recommendation",
    # Power
    "calculate_average_power",
    "calculate_normalized_power",
    "calculate_normalized_power_from_values",
    "calculate_variability_index",
    "resample_to_one_second",
    # Pace
    "TrackPoint",
    "calculate_normalized_graded_pace",
    "estimate_normalized_graded_pace",
    "grade_adjustment_factor",
    # Stress scoring
    "AthleteThresholds",
    "StressMethod",
    "StressResult",
    "WorkoutSignals",
    "apply_scaling",
    "calculate_heart_rate_tss",
    "calculate_pace_tss",
    "calculate_power_tss",
    "calculate_running_power_tss",
    "calculate_swim_tss",
    "calculate_zone_heart_rate_tss",
    "default_perceived_intensity",
    "estimate_tss",
    "score_workout",
]
