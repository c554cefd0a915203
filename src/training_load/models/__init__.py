"""Data models for workouts, calibration and recognized text."""

from .workouts import ActivityCategory, WorkoutObservation, SCALED_SPORTS
from .calibration import (
    CalibrationDataPoint,
    CalibrationRecord,
    DerivationMethod,
    IntensityBand,
    PMCReading,
    ScalingProfile,
)
from .ocr import BoundingBox, TextFragment

__all__ = [
    # Workouts
    "ActivityCategory",
    "WorkoutObservation",
    "SCALED_SPORTS",
    # Calibration
    "CalibrationDataPoint",
    "CalibrationRecord",
    "DerivationMethod",
    "IntensityBand",
    "PMCReading",
    "ScalingProfile",
    # Recognized text
    "BoundingBox",
    "TextFragment",
]
