"""
Fuzzy matching of workout records observed by different sources.

A candidate is scored additively on start time, duration, activity
category and distance. Candidates below the minimum score are rejected;
among the rest the highest score wins, with ties going to the candidate
that appears first in the pool. The matcher never mutates anything: it
returns a decision and the caller deduplicates or enriches.
"""

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple
import logging

from ..config import Settings
from ..models.workouts import WorkoutObservation
from .base import BaseService


# Maximum attainable score for each search, used to normalize confidence
BEST_MATCH_MAX_SCORE = 105.0
ALL_MATCHES_MAX_SCORE = 120.0

# Start-time tiers for precise timestamps: (max seconds apart, points)
PRECISE_TIME_TIERS: List[Tuple[float, float]] = [
    (60, 50.0),
    (120, 35.0),
    (300, 20.0),
]
SAME_DAY_POINTS = 10.0
IMPRECISE_SAME_DAY_POINTS = 40.0
IMPRECISE_ADJACENT_DAY_POINTS = 20.0

# Relative duration difference tiers: (max fraction, points)
DURATION_TIERS: List[Tuple[float, float]] = [
    (0.02, 30.0),
    (0.05, 25.0),
    (0.10, 15.0),
    (0.20, 5.0),
]
CATEGORY_POINTS = 25.0

# Relative distance difference tiers: (max fraction, points)
DISTANCE_TIERS: List[Tuple[float, float]] = [
    (0.02, 15.0),
    (0.05, 10.0),
    (0.10, 5.0),
]


def _tier_points(value: float, tiers: Sequence[Tuple[float, float]]) -> float:
    for limit, points in tiers:
        if value < limit:
            return points
    return 0.0


class MatchMode(str, Enum):
    """How start times of the observation are trusted."""
    # Imported records: midnight or "just now" timestamps are date-only
    IMPORT = "import"
    # Enriching local records from another source: only midnight is
    # date-only and the candidate must be on the same day
    ENRICHMENT = "enrichment"


@dataclass(frozen=True)
class MatchDetails:
    """Per-criterion breakdown of a match."""

    time_difference_seconds: float
    duration_difference_percent: float  # fraction, 0.05 = 5%
    category_matched: bool
    distance_difference_percent: Optional[float] = None

    @property
    def time_difference_formatted(self) -> str:
        if self.time_difference_seconds < 60:
            return "< 1 min"
        return f"{int(self.time_difference_seconds / 60)} min"

    @property
    def duration_difference_formatted(self) -> str:
        return f"{self.duration_difference_percent * 100:.1f}%"

    def to_dict(self) -> dict:
        return {
            "time_difference_seconds": self.time_difference_seconds,
            "duration_difference_percent": self.duration_difference_percent,
            "category_matched": self.category_matched,
            "distance_difference_percent": self.distance_difference_percent,
        }


@dataclass(frozen=True)
class MatchResult:
    """A candidate accepted as describing the same workout."""

    candidate: WorkoutObservation
    score: float
    confidence: float  # 0-1
    details: MatchDetails

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= 0.7

    @property
    def quality_description(self) -> str:
        if self.confidence >= 0.9:
            return "Excellent match"
        elif self.confidence >= 0.7:
            return "Good match"
        elif self.confidence >= 0.5:
            return "Possible match"
        return "Low confidence"

    def to_dict(self) -> dict:
        return {
            "source_id": self.candidate.source_id,
            "score": self.score,
            "confidence": round(self.confidence, 3),
            "quality": self.quality_description,
            "details": self.details.to_dict(),
        }


class WorkoutMatcher(BaseService):
    """
    Scores candidate workouts against an observation.

    The clock is only consulted for the "stamped just now" heuristic and
    can be injected for deterministic behavior.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(settings=settings, logger=logger)
        self._clock = clock

    def _now(self, reference: datetime) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(reference.tzinfo)

    def is_imprecise_time(
        self,
        observation: WorkoutObservation,
        mode: MatchMode = MatchMode.IMPORT,
    ) -> bool:
        """
        Whether the observation's start time should be treated as date-only.

        A start of exactly 00:00 means the source only knew the date. In
        import mode a start within a few minutes of now also counts, since
        it usually means the operator left the current time in place.
        """
        if observation.has_midnight_start:
            return True
        if mode == MatchMode.ENRICHMENT:
            return False
        seconds_from_now = abs((self._now(observation.start_time) - observation.start_time).total_seconds())
        return seconds_from_now < self._settings.match_imprecise_time_seconds

    def candidates_in_window(
        self,
        observation: WorkoutObservation,
        pool: Sequence[WorkoutObservation],
        window_days: int,
    ) -> List[WorkoutObservation]:
        """Candidates starting within +/- window_days calendar days, pool order kept."""
        day_start = datetime.combine(
            observation.start_time.date(), time.min, tzinfo=observation.start_time.tzinfo
        )
        window_start = day_start - timedelta(days=window_days)
        window_end = day_start + timedelta(days=window_days + 1)
        return [c for c in pool if window_start <= c.start_time < window_end]

    def score_candidate(
        self,
        observation: WorkoutObservation,
        candidate: WorkoutObservation,
        mode: MatchMode = MatchMode.IMPORT,
    ) -> Optional[Tuple[float, MatchDetails]]:
        """
        Score one candidate against the observation.

        Returns:
            (score, details), or None when the candidate is rejected
        """
        score = 0.0
        time_diff = abs((candidate.start_time - observation.start_time).total_seconds())
        same_day = candidate.start_time.date() == observation.start_time.date()

        # Start time
        if self.is_imprecise_time(observation, mode):
            if same_day:
                score += IMPRECISE_SAME_DAY_POINTS
            elif mode == MatchMode.IMPORT and int(time_diff / 86400) <= 1:
                score += IMPRECISE_ADJACENT_DAY_POINTS
            else:
                return None
        else:
            points = _tier_points(time_diff, PRECISE_TIME_TIERS)
            if points:
                score += points
            elif same_day:
                score += SAME_DAY_POINTS
            else:
                return None

        # Duration
        reference_duration = (
            candidate.duration_seconds if mode == MatchMode.ENRICHMENT else observation.duration_seconds
        )
        duration_diff = abs(candidate.duration_seconds - observation.duration_seconds) / max(1.0, reference_duration)
        score += _tier_points(duration_diff, DURATION_TIERS)

        # Activity category
        category_matched = candidate.activity_category == observation.activity_category
        if category_matched:
            score += CATEGORY_POINTS

        # Distance
        distance_diff: Optional[float] = None
        if observation.distance_meters and candidate.distance_meters is not None:
            if mode == MatchMode.IMPORT or candidate.distance_meters > 0:
                distance_diff = abs(candidate.distance_meters - observation.distance_meters) / observation.distance_meters
                score += _tier_points(distance_diff, DISTANCE_TIERS)

        if score < self._settings.match_min_score:
            return None

        details = MatchDetails(
            time_difference_seconds=time_diff,
            duration_difference_percent=duration_diff,
            category_matched=category_matched,
            distance_difference_percent=distance_diff,
        )
        return score, details

    def find_match(
        self,
        observation: WorkoutObservation,
        pool: Sequence[WorkoutObservation],
        search_window_days: Optional[int] = None,
        mode: MatchMode = MatchMode.IMPORT,
    ) -> Optional[MatchResult]:
        """
        Find the best matching candidate for an observation.

        Args:
            observation: The workout to match
            pool: Candidate workouts, in the order ties should be broken
            search_window_days: Days before/after to search (default 2)
            mode: How to trust the observation's start time

        Returns:
            The best match, or None if no candidate reaches the minimum score
        """
        window = self._settings.match_search_window_days if search_window_days is None else search_window_days
        candidates = self.candidates_in_window(observation, pool, window)
        if not candidates:
            self._logger.debug(f"No candidates within {window} days for {observation.source_id}")
            return None

        best: Optional[Tuple[WorkoutObservation, float, MatchDetails]] = None
        for candidate in candidates:
            scored = self.score_candidate(observation, candidate, mode)
            if scored is None:
                continue
            score, details = scored
            if best is None or score > best[1]:
                best = (candidate, score, details)

        if best is None:
            self._logger.debug(f"No candidate reached the minimum score for {observation.source_id}")
            return None

        candidate, score, details = best
        result = MatchResult(
            candidate=candidate,
            score=score,
            confidence=min(1.0, score / BEST_MATCH_MAX_SCORE),
            details=details,
        )
        self._logger.info(
            f"Matched {observation.source_id} to {candidate.source_id} "
            f"(score={score:.0f}, {result.quality_description.lower()})"
        )
        return result

    def find_all_matches(
        self,
        observation: WorkoutObservation,
        pool: Sequence[WorkoutObservation],
        search_window_days: Optional[int] = None,
        mode: MatchMode = MatchMode.IMPORT,
    ) -> List[MatchResult]:
        """
        All candidates that reach the minimum score, highest confidence first.

        Confidence is normalized against the full attainable score, so
        values are lower than those returned by find_match.
        """
        window = self._settings.match_all_search_window_days if search_window_days is None else search_window_days
        matches: List[MatchResult] = []
        for candidate in self.candidates_in_window(observation, pool, window):
            scored = self.score_candidate(observation, candidate, mode)
            if scored is None:
                continue
            score, details = scored
            matches.append(MatchResult(
                candidate=candidate,
                score=score,
                confidence=min(1.0, score / ALL_MATCHES_MAX_SCORE),
                details=details,
            ))

        return sorted(matches, key=lambda m: m.confidence, reverse=True)
