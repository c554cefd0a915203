"""Services for matching, calibration and self-calibrating stress scaling."""

from .base import BaseService
from .matching import MatchDetails, MatchMode, MatchResult, WorkoutMatcher
from .fusion import (
    DeduplicationResult,
    EnrichmentPlan,
    partition_new_observations,
    plan_enrichment,
)
from .calibration_store import CalibrationStore, InMemoryCalibrationStore
from .learning import (
    ImportStatistics,
    LearningEngine,
    LearningStatistics,
    calculate_confidence,
    calculate_weighted_factor,
    get_learning_engine,
)
from .load import LoadStatus, TrainingLoadService
from .ocr_parser import parse_fragments, parse_spatial_layout, parse_table_format, parse_text
from .calibration import (
    CalibrationCheck,
    CalibrationOutcome,
    CalibrationService,
    DaySummary,
    summarize_day,
)

__all__ = [
    # Base classes
    "BaseService",
    # Matching
    "MatchDetails",
    "MatchMode",
    "MatchResult",
    "WorkoutMatcher",
    "DeduplicationResult",
    "EnrichmentPlan",
    "partition_new_observations",
    "plan_enrichment",
    # Learning
    "CalibrationStore",
    "InMemoryCalibrationStore",
    "ImportStatistics",
    "LearningEngine",
    "LearningStatistics",
    "calculate_confidence",
    "calculate_weighted_factor",
    "get_learning_engine",
    # Load
    "LoadStatus",
    "TrainingLoadService",
    # Screenshot parsing
    "parse_fragments",
    "parse_spatial_layout",
    "parse_table_format",
    "parse_text",
    # Calibration records
    "CalibrationCheck",
    "CalibrationOutcome",
    "CalibrationService",
    "DaySummary",
    "summarize_day",
]
