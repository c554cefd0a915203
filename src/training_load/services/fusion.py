"""
Deduplication and enrichment decisions built on the workout matcher.

Both functions only decide; persisting the outcome (dropping duplicates,
attaching routes or power data) is up to the caller.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple
import logging

from ..models.workouts import WorkoutObservation
from .matching import MatchMode, MatchResult, WorkoutMatcher


logger = logging.getLogger(__name__)


@dataclass
class DeduplicationResult:
    """Incoming observations split into new records and duplicates."""

    new: List[WorkoutObservation] = field(default_factory=list)
    duplicates: List[Tuple[WorkoutObservation, MatchResult]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "new": [o.source_id for o in self.new],
            "duplicates": [
                {"source_id": o.source_id, "matched": m.candidate.source_id, "confidence": round(m.confidence, 3)}
                for o, m in self.duplicates
            ],
        }


@dataclass
class EnrichmentPlan:
    """Which local records can take data from which external observation."""

    matched: List[Tuple[WorkoutObservation, MatchResult]] = field(default_factory=list)
    unmatched: List[WorkoutObservation] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.matched) + len(self.unmatched)

    @property
    def summary(self) -> str:
        if self.total == 0:
            return "No workouts to enrich"
        parts = []
        if self.matched:
            parts.append(f"{len(self.matched)} matched")
        if self.unmatched:
            parts.append(f"{len(self.unmatched)} unmatched")
        return ", ".join(parts)


def partition_new_observations(
    incoming: Sequence[WorkoutObservation],
    existing: Sequence[WorkoutObservation],
    matcher: Optional[WorkoutMatcher] = None,
) -> DeduplicationResult:
    """
    Split incoming observations into new records and duplicates of existing ones.

    Observations accepted as new join the pool, so two incoming records of
    the same workout are not both kept.

    Args:
        incoming: Observations from the source being imported
        existing: Records already stored locally
        matcher: Matcher to use (default settings when omitted)

    Returns:
        DeduplicationResult with new observations and (duplicate, match) pairs
    """
    matcher = matcher or WorkoutMatcher()
    pool: List[WorkoutObservation] = list(existing)
    result = DeduplicationResult()

    for observation in incoming:
        match = matcher.find_match(observation, pool)
        if match is None:
            result.new.append(observation)
            pool.append(observation)
        else:
            logger.debug(
                f"Found duplicate: {observation.source_id} matches {match.candidate.source_id}"
            )
            result.duplicates.append((observation, match))

    logger.info(f"Deduplicated {len(incoming)} observations: {len(result.new)} new, {len(result.duplicates)} duplicates")
    return result


def plan_enrichment(
    records: Sequence[WorkoutObservation],
    external: Sequence[WorkoutObservation],
    matcher: Optional[WorkoutMatcher] = None,
    is_eligible: Optional[Callable[[WorkoutObservation], bool]] = None,
) -> EnrichmentPlan:
    """
    Pair local records with the external observation best describing them.

    Matching uses enrichment mode: midnight records must match on the same
    day, and the duration difference is measured against the external record.

    Args:
        records: Local records that lack some data
        external: Observations that may carry it (e.g. GPS routes)
        matcher: Matcher to use (default settings when omitted)
        is_eligible: Optional filter on records (e.g. outdoor only)

    Returns:
        EnrichmentPlan of matched and unmatched records
    """
    matcher = matcher or WorkoutMatcher()
    plan = EnrichmentPlan()

    for record in records:
        if is_eligible is not None and not is_eligible(record):
            continue
        match = matcher.find_match(record, external, search_window_days=1, mode=MatchMode.ENRICHMENT)
        if match is None:
            plan.unmatched.append(record)
        else:
            plan.matched.append((record, match))

    logger.info(f"Enrichment plan: {plan.summary}")
    return plan
