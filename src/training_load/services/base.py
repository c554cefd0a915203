"""
Base service class.

Services hold settings and a logger; the computations they wrap stay in
the metrics package.
"""

from abc import ABC
from typing import Optional
import logging

from ..config import Settings, get_settings


class BaseService(ABC):
    """
    Abstract base class for all services.

    Provides common functionality:
    - Settings with a fallback to the cached environment settings
    - Logging setup
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @property
    def settings(self) -> Settings:
        """Get the settings instance."""
        return self._settings

    @property
    def logger(self) -> logging.Logger:
        """Get the logger instance."""
        return self._logger
