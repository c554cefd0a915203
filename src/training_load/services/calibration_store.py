"""Storage interface for calibration data points, records and the scaling profile."""

from datetime import date
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable
import threading

from ..models.calibration import CalibrationDataPoint, CalibrationRecord, ScalingProfile


@runtime_checkable
class CalibrationStore(Protocol):
    """
    Protocol for calibration persistence.

    The learning engine is the only writer; implementations need not
    coordinate concurrent writers themselves.
    """

    def add_data_points(self, points: Sequence[CalibrationDataPoint]) -> None:
        """Persist new data points."""
        ...

    def get_data_point(self, point_id: str) -> Optional[CalibrationDataPoint]:
        """Get a data point by id."""
        ...

    def list_data_points(self, valid_only: bool = True) -> List[CalibrationDataPoint]:
        """Data points, most recent effective date first."""
        ...

    def clear_data_points(self) -> None:
        """Delete all data points."""
        ...

    def add_record(self, record: CalibrationRecord) -> None:
        """Persist a calibration record."""
        ...

    def find_record(self, day: date) -> Optional[CalibrationRecord]:
        """Latest calibration record effective on the given day."""
        ...

    def load_profile(self) -> Optional[ScalingProfile]:
        """Load the persisted scaling profile, if any."""
        ...

    def save_profile(self, profile: ScalingProfile) -> None:
        """Replace the persisted scaling profile."""
        ...


class InMemoryCalibrationStore:
    """Thread-safe in-process CalibrationStore."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._points: Dict[str, CalibrationDataPoint] = {}
        self._records: List[CalibrationRecord] = []
        self._profile: Optional[ScalingProfile] = None

    def add_data_points(self, points: Sequence[CalibrationDataPoint]) -> None:
        with self._lock:
            for point in points:
                self._points[point.id] = point

    def get_data_point(self, point_id: str) -> Optional[CalibrationDataPoint]:
        with self._lock:
            return self._points.get(point_id)

    def list_data_points(self, valid_only: bool = True) -> List[CalibrationDataPoint]:
        with self._lock:
            points = [p for p in self._points.values() if p.is_valid or not valid_only]
        return sorted(points, key=lambda p: p.effective_date, reverse=True)

    def clear_data_points(self) -> None:
        with self._lock:
            self._points.clear()

    def add_record(self, record: CalibrationRecord) -> None:
        with self._lock:
            self._records.append(record)

    def find_record(self, day: date) -> Optional[CalibrationRecord]:
        with self._lock:
            matching = [r for r in self._records if r.effective_date.date() == day]
        if not matching:
            return None
        return max(matching, key=lambda r: r.effective_date)

    def load_profile(self) -> Optional[ScalingProfile]:
        with self._lock:
            return self._profile

    def save_profile(self, profile: ScalingProfile) -> None:
        with self._lock:
            self._profile = profile
