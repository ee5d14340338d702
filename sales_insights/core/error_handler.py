"""
Error handling and user feedback module.

This module maps failures onto error types, HTTP status codes and
user-friendly messages without technical details, and keeps an error log
with full stack traces for debugging.
"""

import logging
import traceback
import time
from collections import deque
from typing import Optional, List, Dict, Any, Deque, Sequence
from enum import Enum

from pydantic import ValidationError

from sales_insights.core.exceptions import (
    ConfigurationError,
    DataSourceError,
    GenerationServiceError,
    ParseWarning,
    TransientGenerationError,
)

logger = logging.getLogger(__name__)


class ErrorType(Enum):
    """Types of errors that can occur."""
    INVALID_REQUEST = "invalid_request"
    RATE_LIMITED = "rate_limited"
    CONFIGURATION_ERROR = "configuration_error"
    DATA_SOURCE_ERROR = "data_source_error"
    API_RATE_LIMIT = "api_rate_limit"
    API_ERROR = "api_error"
    UNKNOWN_ERROR = "unknown_error"


STATUS_CODES = {
    ErrorType.INVALID_REQUEST: 400,
    ErrorType.RATE_LIMITED: 429,
    ErrorType.CONFIGURATION_ERROR: 500,
    ErrorType.DATA_SOURCE_ERROR: 502,
    ErrorType.API_RATE_LIMIT: 502,
    ErrorType.API_ERROR: 502,
    ErrorType.UNKNOWN_ERROR: 500,
}


class ErrorHandler:
    """
    Error handler for user-friendly error messages.

    This class provides:
    - Classification of exceptions into ErrorType
    - HTTP status codes per error type
    - User-friendly error message formatting
    - Data quality warnings for absorbed parse problems
    - Error logging with stack traces
    """

    def __init__(self, log_size: int = 100):
        """
        Initialize the error handler.

        Args:
            log_size: Most recent error entries kept for inspection
        """
        self.error_log: Deque[Dict[str, Any]] = deque(maxlen=log_size)
        logger.info("ErrorHandler initialized")

    @staticmethod
    def classify(error: Exception) -> ErrorType:
        """
        Map an exception to its ErrorType.

        Args:
            error: The exception

        Returns:
            Matching ErrorType, UNKNOWN_ERROR for anything unexpected
        """
        if isinstance(error, (ValidationError, ValueError)):
            return ErrorType.INVALID_REQUEST
        if isinstance(error, ConfigurationError):
            return ErrorType.CONFIGURATION_ERROR
        if isinstance(error, DataSourceError):
            return ErrorType.DATA_SOURCE_ERROR
        if isinstance(error, TransientGenerationError) and error.rate_limited:
            return ErrorType.API_RATE_LIMIT
        if isinstance(error, GenerationServiceError):
            return ErrorType.API_ERROR
        return ErrorType.UNKNOWN_ERROR

    @staticmethod
    def status_code(error_type: ErrorType) -> int:
        return STATUS_CODES[error_type]

    def format_user_friendly_error(
        self,
        error: Exception,
        error_type: Optional[ErrorType] = None,
        user_query: Optional[str] = None
    ) -> str:
        """
        Format an error into a user-friendly message without technical details.

        Args:
            error: The original exception
            error_type: Type of error that occurred (classified when None)
            user_query: The user's question (optional)

        Returns:
            User-friendly error message
        """
        error_type = error_type or self.classify(error)

        # Log the full error with stack trace
        self._log_error(error, error_type, user_query)

        if error_type == ErrorType.INVALID_REQUEST:
            return self._format_invalid_request(error)
        elif error_type == ErrorType.RATE_LIMITED:
            return self.format_rate_limited_error()
        elif error_type == ErrorType.CONFIGURATION_ERROR:
            return self._format_configuration_error(error)
        elif error_type == ErrorType.DATA_SOURCE_ERROR:
            return self._format_data_source_error()
        elif error_type == ErrorType.API_RATE_LIMIT:
            return self._format_api_rate_limit()
        elif error_type == ErrorType.API_ERROR:
            return self._format_api_error()
        else:
            return self._format_unknown_error()

    @staticmethod
    def _format_invalid_request(error: Exception) -> str:
        """Format request validation error message."""
        if isinstance(error, ValidationError):
            details = error.errors()
            if details:
                field_name = ".".join(str(part) for part in details[0].get("loc", ()))
                message = details[0].get("msg", "invalid value")
                return f"Invalid request: {field_name} - {message}" if field_name else f"Invalid request: {message}"
        return f"Invalid request: {error}"

    @staticmethod
    def format_rate_limited_error() -> str:
        return "Too many requests. Please wait a while before asking another question."

    @staticmethod
    def _format_configuration_error(error: Exception) -> str:
        """Name the missing settings, never their values."""
        missing = getattr(error, "missing_keys", None)
        if missing:
            return f"The service is not configured correctly. Missing settings: {', '.join(missing)}"
        return "The service is not configured correctly. Please check the environment settings."

    @staticmethod
    def _format_data_source_error() -> str:
        return (
            "I couldn't load the sales data right now.\n\n"
            "Please check that:\n"
            "- The data file or spreadsheet exists and is accessible\n"
            "- It contains a header row and at least one transaction"
        )

    @staticmethod
    def _format_api_rate_limit() -> str:
        return (
            "I'm currently experiencing high demand. Please try again in a few minutes "
            "or simplify your question."
        )

    @staticmethod
    def _format_api_error() -> str:
        return (
            "I'm having trouble connecting to the AI service.\n\n"
            "This might be temporary. Please try again in a moment."
        )

    @staticmethod
    def _format_unknown_error() -> str:
        return (
            "I encountered an unexpected error.\n\n"
            "Please try again, and if the problem persists, "
            "contact support with details about what you were trying to do."
        )

    def create_data_quality_warning(self, warnings: Sequence[ParseWarning]) -> Optional[str]:
        """
        Summarize absorbed parse problems as a data quality warning.

        Args:
            warnings: ParseWarnings collected by the record parser

        Returns:
            Formatted warning message, or None when there were no problems
        """
        if not warnings:
            return None

        columns: Dict[str, int] = {}
        for warning in warnings:
            columns[warning.column] = columns.get(warning.column, 0) + 1

        affected_rows = len({warning.row_number for warning in warnings})
        summary = ", ".join(f"{column}: {count}" for column, count in sorted(columns.items()))

        message = "Data Quality Warning: unparseable values\n\n"
        message += f"Affected records: {affected_rows}\n"
        message += f"Values by column: {summary}\n"
        message += "\nInvalid amounts were counted as 0; records with invalid dates "
        message += "were left out of monthly and time-of-day figures."

        logger.warning(f"Data quality issue: {len(warnings)} unparseable values in {affected_rows} records")
        return message

    def _log_error(
        self,
        error: Exception,
        error_type: ErrorType,
        user_query: Optional[str] = None
    ) -> None:
        """
        Log error with full details for debugging.

        Args:
            error: The exception
            error_type: Type of error
            user_query: User's question (optional)
        """
        stack_trace = "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        )

        error_entry = {
            "timestamp": time.time(),
            "error_type": error_type.value,
            "error_message": str(error),
            "error_class": error.__class__.__name__,
            "user_query": user_query,
            "stack_trace": stack_trace
        }

        self.error_log.append(error_entry)

        logger.error(
            f"Error occurred: {error_type.value}\n"
            f"Message: {str(error)}\n"
            f"Query: {user_query}\n"
            f"Stack trace:\n{stack_trace}"
        )

    def get_error_log(self) -> List[Dict[str, Any]]:
        """
        Get the error log.

        Returns:
            List of error log entries
        """
        return list(self.error_log)

    def clear_error_log(self) -> None:
        """Clear the error log."""
        self.error_log.clear()
        logger.info("Error log cleared")
