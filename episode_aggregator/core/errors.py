"""Error definitions for the episode aggregator."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Categories of errors that can occur during a round."""

    FETCH_ERROR = "fetch_error"
    PARSE_ERROR = "parse_error"
    PERSISTENCE_ERROR = "persistence_error"
    NOTIFICATION_ERROR = "notification_error"
    FATAL_ERROR = "fatal_error"
    CONFIGURATION_ERROR = "configuration_error"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BaseError(Exception):
    """Base error class for all aggregator errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        severity: ErrorSeverity,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize base error.

        Args:
            message: Error message
            category: Error category
            severity: Error severity
            details: Optional error details
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, details={self.details})"


class FetchError(BaseError):
    """Error raised when a feed cannot be retrieved."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.FETCH_ERROR, severity, details)


class ParseError(BaseError):
    """Error raised when a fetched document cannot be parsed."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.PARSE_ERROR, severity, details)


class PersistenceError(BaseError):
    """Error raised when a store statement fails."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.HIGH,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.PERSISTENCE_ERROR, severity, details)


class NotificationError(BaseError):
    """Error raised when the search index refresh call fails."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.NOTIFICATION_ERROR, severity, details)


class FatalError(BaseError):
    """Error that aborts the current round."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.CRITICAL,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.FATAL_ERROR, severity, details)


class ConfigurationError(BaseError):
    """Error raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.CRITICAL,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, ErrorCategory.CONFIGURATION_ERROR, severity, details)
