"""
Exception hierarchy for analysis requests.

Each exception carries the HTTP status it maps to so the API layer can
translate it without knowing about individual analyses.
"""

from typing import Any, Dict, Optional


class AnalysisError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code: int = 500
    error_code: str = "ANALYSIS_ERROR"

    def __init__(self, message: str, metadata: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.metadata = metadata


class ValidationError(AnalysisError):
    """Malformed or out-of-range request parameters."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class InvalidDateFormat(ValidationError):
    error_code = "INVALID_DATE_FORMAT"


class InvalidDateRange(ValidationError):
    error_code = "INVALID_DATE_RANGE"


class RangeTooLong(ValidationError):
    error_code = "RANGE_TOO_LONG"


class NoData(AnalysisError):
    """A valid request for which the source collection is empty."""

    status_code = 404
    error_code = "NO_DATA"


class InsufficientData(NoData):
    """One of the before/after collections of a change detection is empty."""

    error_code = "INSUFFICIENT_DATA"


class UpstreamError(AnalysisError):
    """A call to Earth Engine failed unexpectedly."""

    status_code = 500
    error_code = "UPSTREAM_ERROR"
