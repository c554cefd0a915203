"""Shared fixtures for training load tests."""

from datetime import datetime

import pytest

from training_load.config import Settings
from training_load.services.calibration_store import InMemoryCalibrationStore
from training_load.services.learning import LearningEngine


NOW = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def now() -> datetime:
    """Fixed current time used by clocks in tests."""
    return NOW


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the environment cache."""
    return Settings()


@pytest.fixture
def store() -> InMemoryCalibrationStore:
    return InMemoryCalibrationStore()


@pytest.fixture
def engine(store, settings, now) -> LearningEngine:
    """Learning engine with an in-memory store and a fixed clock."""
    return LearningEngine(store=store, settings=settings, clock=lambda: now)
