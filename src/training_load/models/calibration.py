"""Calibration data models: ground-truth readings, data points and the scaling profile."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .workouts import ActivityCategory, SCALED_SPORTS


class DerivationMethod(str, Enum):
    """How the ground-truth value of a calibration data point was obtained."""
    DIRECT = "direct"                      # Observed daily stress value
    DERIVED_FROM_CTL = "derivedFromCTL"    # Implied by the 42-day CTL change
    DERIVED_FROM_ATL = "derivedFromATL"    # Implied by the 7-day ATL change
    CROSS_VALIDATED = "crossValidated"     # CTL and ATL derivations agreed
    MANUAL = "manual"


class IntensityBand(str, Enum):
    """Intensity bands used to stratify scaling factors by workout IF."""
    RECOVERY = "recovery"              # IF < 0.75
    ENDURANCE = "endurance"            # IF 0.75 - 0.90
    TEMPO = "tempo"                    # IF 0.90 - 1.05
    HIGH_INTENSITY = "highIntensity"   # IF > 1.05

    @classmethod
    def from_intensity_factor(cls, intensity_factor: float) -> "IntensityBand":
        """Classify an intensity factor into its band."""
        if intensity_factor < 0.75:
            return cls.RECOVERY
        if intensity_factor < 0.90:
            return cls.ENDURANCE
        if intensity_factor <= 1.05:
            return cls.TEMPO
        return cls.HIGH_INTENSITY


def _implied_stress(today: float, yesterday: float, time_constant: float) -> float:
    """Invert one step of the load recurrence to recover the day's stress."""
    return time_constant * (today - yesterday) + yesterday


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values are returned as is."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


@dataclass
class CalibrationDataPoint:
    """
    One comparison between a ground-truth stress value and our own estimate.

    Points are additive: once created only the validity flag changes
    (an operator may flag a point as erroneous). All weighting is derived
    from the effective date at read time, so old points fade out without
    being rewritten.
    """

    effective_date: datetime
    calculated_value: float
    source_confidence: float
    extracted_value: Optional[float] = None
    activity_category: Optional[ActivityCategory] = None
    derivation_method: DerivationMethod = DerivationMethod.DIRECT
    is_multi_sport: bool = False
    intensity_band: Optional[IntensityBand] = None
    workout_intensity_factor: Optional[float] = None
    calibration_record_id: Optional[str] = None
    is_valid: bool = True
    invalid_reason: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        self.effective_date = to_local_naive(self.effective_date)

    @property
    def scaling_ratio(self) -> Optional[float]:
        """extracted / calculated, undefined when the estimate is not positive."""
        if self.extracted_value is None or self.calculated_value <= 0:
            return None
        return self.extracted_value / self.calculated_value

    def is_usable_for_learning(self, min_confidence: float = 0.5) -> bool:
        return (
            self.is_valid
            and self.scaling_ratio is not None
            and self.source_confidence >= min_confidence
            and self.calculated_value > 0
        )

    def age_days(self, now: Optional[datetime] = None) -> int:
        """Whole days since the effective date (never negative)."""
        # Effective dates are naive local time, so align an aware clock with them
        now = to_local_naive(now or datetime.now())
        return max(0, (now - self.effective_date).days)

    def time_weight(self, now: Optional[datetime] = None, half_life_days: float = 30.0) -> float:
        """Exponential decay weight, halving every half_life_days."""
        return 0.5 ** (self.age_days(now) / half_life_days)

    def learning_weight(self, now: Optional[datetime] = None, half_life_days: float = 30.0) -> float:
        """Time weight scaled by how much we trust the source."""
        return self.time_weight(now, half_life_days) * self.source_confidence

    def invalidate(self, reason: str) -> None:
        """Soft-delete this point so recomputes ignore it."""
        self.is_valid = False
        self.invalid_reason = reason

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "effective_date": self.effective_date.isoformat(),
            "extracted_value": self.extracted_value,
            "calculated_value": self.calculated_value,
            "scaling_ratio": self.scaling_ratio,
            "source_confidence": self.source_confidence,
            "activity_category": self.activity_category.value if self.activity_category else None,
            "derivation_method": self.derivation_method.value,
            "is_multi_sport": self.is_multi_sport,
            "intensity_band": self.intensity_band.value if self.intensity_band else None,
            "workout_intensity_factor": self.workout_intensity_factor,
            "is_valid": self.is_valid,
            "invalid_reason": self.invalid_reason,
        }

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def from_direct(
        cls,
        effective_date: datetime,
        extracted_value: float,
        calculated_value: float,
        source_confidence: float,
        activity_category: Optional[ActivityCategory] = None,
        calibration_record_id: Optional[str] = None,
    ) -> "CalibrationDataPoint":
        """Point for a directly observed daily stress value."""
        return cls(
            effective_date=effective_date,
            extracted_value=extracted_value,
            calculated_value=calculated_value,
            source_confidence=source_confidence,
            activity_category=activity_category,
            derivation_method=DerivationMethod.DIRECT,
            calibration_record_id=calibration_record_id,
        )

    @classmethod
    def derive_from_ctl(
        cls,
        effective_date: datetime,
        today_ctl: float,
        yesterday_ctl: float,
        calculated_value: float,
        source_confidence: float,
        activity_category: Optional[ActivityCategory] = None,
        calibration_record_id: Optional[str] = None,
        ctl_time_constant: float = 42.0,
        confidence_penalty: float = 0.9,
    ) -> "CalibrationDataPoint":
        """
        Point whose ground truth is implied by a day-over-day CTL change.

        Stress = tau * (CTL_today - CTL_yesterday) + CTL_yesterday, floored at
        zero. Confidence is reduced because rounding in the displayed CTL
        is amplified by tau.
        """
        implied = _implied_stress(today_ctl, yesterday_ctl, ctl_time_constant)
        return cls(
            effective_date=effective_date,
            extracted_value=max(0.0, implied),
            calculated_value=calculated_value,
            source_confidence=source_confidence * confidence_penalty,
            activity_category=activity_category,
            derivation_method=DerivationMethod.DERIVED_FROM_CTL,
            calibration_record_id=calibration_record_id,
        )

    @classmethod
    def derive_from_atl(
        cls,
        effective_date: datetime,
        today_atl: float,
        yesterday_atl: float,
        calculated_value: float,
        source_confidence: float,
        activity_category: Optional[ActivityCategory] = None,
        calibration_record_id: Optional[str] = None,
        atl_time_constant: float = 7.0,
        confidence_penalty: float = 0.9,
    ) -> "CalibrationDataPoint":
        """Point whose ground truth is implied by a day-over-day ATL change."""
        implied = _implied_stress(today_atl, yesterday_atl, atl_time_constant)
        return cls(
            effective_date=effective_date,
            extracted_value=max(0.0, implied),
            calculated_value=calculated_value,
            source_confidence=source_confidence * confidence_penalty,
            activity_category=activity_category,
            derivation_method=DerivationMethod.DERIVED_FROM_ATL,
            calibration_record_id=calibration_record_id,
        )

    @classmethod
    def derive_cross_validated(
        cls,
        effective_date: datetime,
        today_ctl: float,
        yesterday_ctl: float,
        today_atl: float,
        yesterday_atl: float,
        calculated_value: float,
        source_confidence: float,
        activity_category: Optional[ActivityCategory] = None,
        calibration_record_id: Optional[str] = None,
        ctl_time_constant: float = 42.0,
        atl_time_constant: float = 7.0,
        min_agreement: float = 0.8,
    ) -> Optional["CalibrationDataPoint"]:
        """
        Point derived from both CTL and ATL changes when the two agree.

        Returns None when either implied stress is negative or the two
        estimates disagree by more than (1 - min_agreement) of their mean.
        """
        from_ctl = _implied_stress(today_ctl, yesterday_ctl, ctl_time_constant)
        from_atl = _implied_stress(today_atl, yesterday_atl, atl_time_constant)
        if from_ctl < 0 or from_atl < 0:
            return None

        average = (from_ctl + from_atl) / 2
        agreement = 1 - abs(from_ctl - from_atl) / average if average > 0 else 0.0
        if agreement < min_agreement:
            return None

        return cls(
            effective_date=effective_date,
            extracted_value=average,
            calculated_value=calculated_value,
            source_confidence=source_confidence * min(1.0, agreement),
            activity_category=activity_category,
            derivation_method=DerivationMethod.CROSS_VALIDATED,
            calibration_record_id=calibration_record_id,
        )


class ScalingProfile(BaseModel):
    """
    Immutable snapshot of the learned stress scaling factors.

    A new snapshot with an incremented version replaces the old one on
    every recompute; readers holding an older snapshot keep a consistent
    view of all factors.
    """

    model_config = ConfigDict(frozen=True)

    global_factor: float = Field(1.0, gt=0)
    global_confidence: float = Field(0.0, ge=0, le=1)
    global_sample_count: int = Field(0, ge=0)
    sport_factors: Dict[ActivityCategory, float] = Field(default_factory=dict)
    sport_sample_counts: Dict[ActivityCategory, int] = Field(default_factory=dict)
    band_factors: Dict[IntensityBand, float] = Field(default_factory=dict)
    band_sample_counts: Dict[IntensityBand, int] = Field(default_factory=dict)
    learning_enabled: bool = True

    min_samples_for_confidence: int = Field(3, ge=1)
    min_apply_confidence: float = Field(0.5, ge=0, le=1)
    min_factor: float = Field(0.8, gt=0)
    max_factor: float = Field(1.5, gt=0)
    import_complete_confidence: float = Field(0.95, ge=0, le=1)

    version: int = Field(0, ge=0)
    updated_at: Optional[datetime] = None

    @property
    def can_apply_scaling(self) -> bool:
        """Whether the learned factors are trustworthy enough to use."""
        return (
            self.learning_enabled
            and self.global_sample_count >= self.min_samples_for_confidence
            and self.global_confidence >= self.min_apply_confidence
            and self.min_factor <= self.global_factor <= self.max_factor
        )

    def scaling_factor(
        self,
        category: Optional[ActivityCategory] = None,
        band: Optional[IntensityBand] = None,
    ) -> float:
        """
        Factor to apply for a workout of the given category and band.

        Sport-specific factors win over band factors, which win over the
        global factor; a stratified factor is only used once it has at
        least min_samples_for_confidence samples. Returns 1.0 when scaling
        cannot be applied at all.
        """
        if not self.can_apply_scaling:
            return 1.0

        if category in SCALED_SPORTS and category in self.sport_factors:
            if self.sport_sample_counts.get(category, 0) >= self.min_samples_for_confidence:
                return self.sport_factors[category]

        if band is not None and band in self.band_factors:
            if self.band_sample_counts.get(band, 0) >= self.min_samples_for_confidence:
                return self.band_factors[band]

        return self.global_factor

    @property
    def confidence_level(self) -> str:
        if self.global_confidence >= 0.9:
            return "Very High"
        elif self.global_confidence >= 0.7:
            return "High"
        elif self.global_confidence >= 0.5:
            return "Medium"
        elif self.global_confidence >= 0.3:
            return "Low"
        return "Insufficient Data"

    @property
    def status_summary(self) -> str:
        if self.global_sample_count == 0:
            return "No calibration data yet"
        if self.global_sample_count < self.min_samples_for_confidence:
            needed = self.min_samples_for_confidence - self.global_sample_count
            return f"Need {needed} more calibrations"
        if not self.can_apply_scaling:
            return "Scaling factor outside safe bounds"
        return f"Active - applying {(self.global_factor - 1) * 100:.0f}% adjustment"

    @property
    def should_suggest_disabling_import(self) -> bool:
        """Enough high-confidence samples that manual imports are no longer needed."""
        return (
            self.global_confidence >= self.import_complete_confidence
            and self.global_sample_count >= 10
        )

    @property
    def calibration_progress(self) -> float:
        """Progress (0-1) weighting sample count and confidence equally."""
        sample_progress = min(1.0, self.global_sample_count / 10.0)
        confidence_progress = min(1.0, self.global_confidence / self.import_complete_confidence)
        return (sample_progress + confidence_progress) / 2.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for reporting collaborators."""
        return {
            "version": self.version,
            "global_factor": round(self.global_factor, 4),
            "global_confidence": round(self.global_confidence, 3),
            "global_sample_count": self.global_sample_count,
            "confidence_level": self.confidence_level,
            "can_apply_scaling": self.can_apply_scaling,
            "learning_enabled": self.learning_enabled,
            "sport_factors": {k.value: round(v, 4) for k, v in self.sport_factors.items()},
            "sport_sample_counts": {k.value: v for k, v in self.sport_sample_counts.items()},
            "band_factors": {k.value: round(v, 4) for k, v in self.band_factors.items()},
            "band_sample_counts": {k.value: v for k, v in self.band_sample_counts.items()},
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class PMCReading:
    """
    Ground-truth load values read from an external source (usually a screenshot).

    Any field may be missing; confidence reflects how many values the
    parser could attribute to their labels.
    """

    ctl: Optional[float] = None
    atl: Optional[float] = None
    tsb: Optional[float] = None
    daily_tss: Optional[float] = None
    weekly_tss: Optional[float] = None
    effective_date: Optional[datetime] = None
    confidence: float = 0.0
    raw_text: str = ""

    @property
    def has_any_value(self) -> bool:
        return self.ctl is not None or self.atl is not None or self.tsb is not None

    @property
    def is_valid(self) -> bool:
        return self.confidence >= 0.5 and self.has_any_value

    @property
    def has_learning_data(self) -> bool:
        """A daily stress value, or both CTL and ATL for a derived value."""
        return self.daily_tss is not None or (self.ctl is not None and self.atl is not None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "ctl": self.ctl,
            "atl": self.atl,
            "tsb": self.tsb,
            "daily_tss": self.daily_tss,
            "weekly_tss": self.weekly_tss,
            "effective_date": self.effective_date.isoformat() if self.effective_date else None,
            "confidence": self.confidence,
        }


@dataclass
class CalibrationRecord:
    """Comparison of one day's ground-truth load values against our own."""

    effective_date: datetime
    source_confidence: float
    extracted_ctl: Optional[float] = None
    extracted_atl: Optional[float] = None
    extracted_tsb: Optional[float] = None
    extracted_daily_tss: Optional[float] = None
    calculated_ctl: float = 0.0
    calculated_atl: float = 0.0
    calculated_tsb: float = 0.0
    calculated_daily_tss: float = 0.0
    primary_category: Optional[ActivityCategory] = None
    is_multi_sport: bool = False
    is_initial_seed: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    # Absolute difference above which our values need correcting
    CALIBRATION_THRESHOLD = 5.0

    def __post_init__(self) -> None:
        self.effective_date = to_local_naive(self.effective_date)

    @property
    def ctl_delta(self) -> Optional[float]:
        return None if self.extracted_ctl is None else self.extracted_ctl - self.calculated_ctl

    @property
    def atl_delta(self) -> Optional[float]:
        return None if self.extracted_atl is None else self.extracted_atl - self.calculated_atl

    @property
    def tsb_delta(self) -> Optional[float]:
        return None if self.extracted_tsb is None else self.extracted_tsb - self.calculated_tsb

    @property
    def needs_calibration(self) -> bool:
        deltas = (self.ctl_delta, self.atl_delta, self.tsb_delta)
        return any(d is not None and abs(d) > self.CALIBRATION_THRESHOLD for d in deltas)

    @property
    def is_trustworthy(self) -> bool:
        has_value = any(
            v is not None for v in (self.extracted_ctl, self.extracted_atl, self.extracted_tsb)
        )
        return self.source_confidence >= 0.7 and has_value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "effective_date": self.effective_date.isoformat(),
            "source_confidence": self.source_confidence,
            "extracted": {
                "ctl": self.extracted_ctl,
                "atl": self.extracted_atl,
                "tsb": self.extracted_tsb,
                "daily_tss": self.extracted_daily_tss,
            },
            "calculated": {
                "ctl": self.calculated_ctl,
                "atl": self.calculated_atl,
                "tsb": self.calculated_tsb,
                "daily_tss": self.calculated_daily_tss,
            },
            "deltas": {
                "ctl": self.ctl_delta,
                "atl": self.atl_delta,
                "tsb": self.tsb_delta,
            },
            "needs_calibration": self.needs_calibration,
            "is_initial_seed": self.is_initial_seed,
        }
