"""
Custom exceptions for the training load engine.

Only invalid input is raised. Insufficient data, rejected matches and
skipped calibrations are expected outcomes and are returned as None or
empty results instead.
"""

from typing import Any, Dict, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for consistent error reporting."""

    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    DATA_POINT_NOT_FOUND = "DATA_POINT_NOT_FOUND"
    UNTRUSTWORTHY_CALIBRATION = "UNTRUSTWORTHY_CALIBRATION"


class TrainingLoadError(Exception):
    """
    Base exception for all training load engine errors.

    Attributes:
        message: Human-readable error message
        code: Error code from ErrorCode enum
        details: Optional dictionary with additional error details
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for callers that report errors."""
        result: Dict[str, Any] = {
            "error": {
                "code": self.code.value,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


class InvalidParameterError(TrainingLoadError, ValueError):
    """Raised when a time constant, threshold, window or horizon is out of range."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        error_details = details or {}
        if field:
            error_details["field"] = field
        super().__init__(
            message=message,
            code=ErrorCode.INVALID_PARAMETER,
            details=error_details,
        )


class DataPointNotFoundError(TrainingLoadError, LookupError):
    """Raised when a calibration data point id is unknown to the store."""

    def __init__(self, point_id: str) -> None:
        super().__init__(
            message=f"Calibration data point not found: {point_id}",
            code=ErrorCode.DATA_POINT_NOT_FOUND,
            details={"point_id": point_id},
        )


class UntrustworthyCalibrationError(TrainingLoadError):
    """Raised when applying a calibration record whose source confidence is too low."""

    def __init__(self, record_id: str, confidence: float) -> None:
        super().__init__(
            message=f"Calibration record {record_id} is not trustworthy (confidence {confidence:.2f})",
            code=ErrorCode.UNTRUSTWORTHY_CALIBRATION,
            details={"record_id": record_id, "confidence": confidence},
        )
