"""Custom exception classes for the Sales Insights Assistant."""


class SalesInsightsError(Exception):
    """Base exception for the Sales Insights Assistant."""
    pass


class ConfigurationError(SalesInsightsError):
    """Missing or malformed external configuration."""

    def __init__(self, message: str, missing_keys=None):
        super().__init__(message)
        self.missing_keys = list(missing_keys or [])


class DataSourceError(SalesInsightsError):
    """The record source failed or returned no data."""
    pass


class GenerationServiceError(SalesInsightsError):
    """The text-generation service failed for this request."""
    pass


class TransientGenerationError(GenerationServiceError):
    """Generation failure that may succeed on retry (rate limit, timeout, 5xx)."""

    def __init__(self, message: str, rate_limited: bool = False):
        super().__init__(message)
        self.rate_limited = rate_limited


class ParseWarning(UserWarning):
    """A single row's date or number could not be parsed.

    Never raised; collected by the record parser and absorbed by zeroing or
    excluding the offending value.
    """

    def __init__(self, row_number: int, column: str, raw_value: str):
        super().__init__(f"Row {row_number}: unparseable {column} value {raw_value!r}")
        self.row_number = row_number
        self.column = column
        self.raw_value = raw_value
