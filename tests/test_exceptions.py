"""Tests for the exception hierarchy."""

import pytest

from training_load import (
    DataPointNotFoundError,
    ErrorCode,
    InvalidParameterError,
    TrainingLoadError,
    UntrustworthyCalibrationError,
)


class TestExceptions:
    """Tests for error codes, details and serialization."""

    def test_invalid_parameter(self):
        error = InvalidParameterError("Time constant must be positive", field="ctl_time_constant")

        assert error.code == ErrorCode.INVALID_PARAMETER
        assert error.details == {"field": "ctl_time_constant"}
        assert isinstance(error, ValueError)

    def test_data_point_not_found(self):
        error = DataPointNotFoundError("abc")

        assert isinstance(error, LookupError)
        assert error.to_dict() == {
            "error": {
                "code": "DATA_POINT_NOT_FOUND",
                "message": "Calibration data point not found: abc",
                "details": {"point_id": "abc"},
            }
        }

    def test_untrustworthy_calibration(self):
        error = UntrustworthyCalibrationError("rec-1", 0.5)

        assert error.code == ErrorCode.UNTRUSTWORTHY_CALIBRATION
        assert "0.50" in error.message

    def test_base_error_without_details(self):
        error = TrainingLoadError("boom")

        assert error.to_dict() == {"error": {"code": "INTERNAL_ERROR", "message": "boom"}}
        assert repr(error) == "TrainingLoadError(code=INTERNAL_ERROR, message='boom')"

    def test_all_errors_share_base(self):
        with pytest.raises(TrainingLoadError):
            raise DataPointNotFoundError("abc")
