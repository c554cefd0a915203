"""Training load estimation and self-calibration engine."""

from .config import Settings, get_settings
from .exceptions import (
    DataPointNotFoundError,
    ErrorCode,
    InvalidParameterError,
    TrainingLoadError,
    UntrustworthyCalibrationError,
)

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "DataPointNotFoundError",
    "ErrorCode",
    "InvalidParameterError",
    "TrainingLoadError",
    "UntrustworthyCalibrationError",
    "__version__",
]
