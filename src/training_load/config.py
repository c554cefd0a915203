"""Configuration settings for the training load engine."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables (TRAINING_LOAD_*)."""

    # Load model
    ctl_time_constant: int = 42  # Chronic (fitness) time constant in days
    atl_time_constant: int = 7  # Acute (fatigue) time constant in days
    target_tsb_max_days: int = 30

    # Intensity smoothing
    np_window_seconds: int = 30
    grade_factor_min: float = 0.7
    grade_factor_max: float = 2.0

    # Matching
    match_min_score: float = 50.0
    match_search_window_days: int = 2
    match_all_search_window_days: int = 3
    match_imprecise_time_seconds: float = 300.0

    # Calibration learning
    calibration_half_life_days: float = 30.0
    min_source_confidence: float = 0.5
    cross_validation_min_agreement: float = 0.8
    derived_confidence_penalty: float = 0.9

    # Scaling profile
    min_samples_for_confidence: int = 3
    min_apply_confidence: float = 0.5
    min_scaling_factor: float = 0.8
    max_scaling_factor: float = 1.5

    model_config = SettingsConfigDict(
        env_prefix="TRAINING_LOAD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
