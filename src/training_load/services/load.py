"""
Training load service.

Scores workouts (with the learned scaling applied), folds daily totals
into the fitness/fatigue/form series and summarizes the current state.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence, Tuple, Union
import logging

from ..config import Settings
from ..metrics.fitness import (
    AcwrStatus,
    DailyLoadPoint,
    FormRecommendation,
    LoadProjection,
    aggregate_daily_stress,
    calculate_monotony,
    calculate_strain,
    compute_series,
    days_to_target_tsb,
    determine_acwr_status,
    get_form_recommendation,
    project,
)
from ..metrics.stress import (
    AthleteThresholds,
    StressResult,
    WorkoutSignals,
    apply_scaling,
    score_workout,
)
from .base import BaseService
from .learning import LearningEngine, get_learning_engine


@dataclass
class LoadStatus:
    """Current load state derived from the end of a series."""

    current: DailyLoadPoint
    acwr_status: AcwrStatus
    monotony: Optional[float]
    strain: Optional[float]
    recommendation: FormRecommendation

    def to_dict(self) -> dict:
        return {
            "current": self.current.to_dict(),
            "acwr_status": self.acwr_status.value,
            "monotony": round(self.monotony, 2) if self.monotony is not None else None,
            "strain": round(self.strain, 1) if self.strain is not None else None,
            "recommendation": self.recommendation.to_dict(),
        }


class TrainingLoadService(BaseService):
    """
    Service for workout stress and the resulting load series.

    Time constants, the NP window and the grade clamp come from settings;
    the scaling profile comes from the learning engine at call time.
    """

    def __init__(
        self,
        engine: Optional[LearningEngine] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(settings=settings, logger=logger)
        self._engine = engine or get_learning_engine()

    def score(
        self,
        signals: WorkoutSignals,
        thresholds: AthleteThresholds,
        apply_learned_scaling: bool = True,
    ) -> StressResult:
        """Score a workout and, when the profile allows it, apply the learned factor."""
        result = score_workout(
            signals,
            thresholds,
            np_window_seconds=self._settings.np_window_seconds,
            grade_factor_bounds=(self._settings.grade_factor_min, self._settings.grade_factor_max),
        )
        if not apply_learned_scaling:
            return result

        scaled = apply_scaling(result, self._engine.profile, category=signals.category)
        if scaled.scaling_applied:
            self._logger.debug(
                f"Scaled {result.method.value} stress {result.value:.1f} -> {scaled.value:.1f} "
                f"(factor {scaled.scaling_factor:.3f})"
            )
        return scaled

    def compute_series(
        self,
        entries: Iterable[Tuple[Union[date, datetime], float]],
        start: date,
        end: date,
        initial_ctl: float = 0.0,
        initial_atl: float = 0.0,
    ) -> List[DailyLoadPoint]:
        """Load series for start..end from per-workout (when, stress) entries."""
        return compute_series(
            aggregate_daily_stress(entries),
            start=start,
            end=end,
            initial_ctl=initial_ctl,
            initial_atl=initial_atl,
            ctl_time_constant=self._settings.ctl_time_constant,
            atl_time_constant=self._settings.atl_time_constant,
        )

    def project(self, current: DailyLoadPoint, planned_stress: Sequence[float]) -> List[LoadProjection]:
        """Project the series forward over planned daily stress values."""
        return project(
            current.ctl,
            current.atl,
            planned_stress,
            ctl_time_constant=self._settings.ctl_time_constant,
            atl_time_constant=self._settings.atl_time_constant,
        )

    def days_to_target_tsb(
        self,
        current: DailyLoadPoint,
        target_tsb: float,
        max_days: Optional[int] = None,
    ) -> Optional[int]:
        """Rest days until form reaches the target, within the configured horizon."""
        return days_to_target_tsb(
            current.ctl,
            current.atl,
            target_tsb,
            max_days=self._settings.target_tsb_max_days if max_days is None else max_days,
            ctl_time_constant=self._settings.ctl_time_constant,
            atl_time_constant=self._settings.atl_time_constant,
        )

    def status(self, series: Sequence[DailyLoadPoint]) -> Optional[LoadStatus]:
        """Summarize the last day of a series, or None for an empty series."""
        if not series:
            return None

        current = series[-1]
        daily_stress = [point.daily_stress for point in series]
        return LoadStatus(
            current=current,
            acwr_status=determine_acwr_status(current.acwr),
            monotony=calculate_monotony(daily_stress),
            strain=calculate_strain(daily_stress),
            recommendation=get_form_recommendation(current.tsb),
        )
