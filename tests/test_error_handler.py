"""
Unit tests for ErrorHandler.
"""

import pytest
from pydantic import ValidationError

from sales_insights.api.schemas import QueryRequest
from sales_insights.core.error_handler import ErrorHandler, ErrorType
from sales_insights.core.exceptions import (
    ConfigurationError,
    DataSourceError,
    GenerationServiceError,
    ParseWarning,
    TransientGenerationError,
)


def validation_error():
    try:
        QueryRequest.model_validate({"question": ""})
    except ValidationError as e:
        return e
    raise AssertionError("expected a ValidationError")


class TestErrorHandler:
    """Test suite for ErrorHandler class."""

    @pytest.fixture
    def error_handler(self):
        """Create an ErrorHandler instance."""
        return ErrorHandler()

    def test_initialization(self, error_handler):
        assert error_handler.get_error_log() == []

    @pytest.mark.parametrize("error,expected", [
        (ValueError("bad"), ErrorType.INVALID_REQUEST),
        (ConfigurationError("missing", ["OPENAI_API_KEY"]), ErrorType.CONFIGURATION_ERROR),
        (DataSourceError("down"), ErrorType.DATA_SOURCE_ERROR),
        (TransientGenerationError("429", rate_limited=True), ErrorType.API_RATE_LIMIT),
        (TransientGenerationError("timeout"), ErrorType.API_ERROR),
        (GenerationServiceError("bad"), ErrorType.API_ERROR),
        (RuntimeError("boom"), ErrorType.UNKNOWN_ERROR),
    ])
    def test_classify(self, error_handler, error, expected):
        assert error_handler.classify(error) == expected

    def test_classify_validation_error(self, error_handler):
        assert error_handler.classify(validation_error()) == ErrorType.INVALID_REQUEST

    @pytest.mark.parametrize("error_type,status", [
        (ErrorType.INVALID_REQUEST, 400),
        (ErrorType.RATE_LIMITED, 429),
        (ErrorType.CONFIGURATION_ERROR, 500),
        (ErrorType.DATA_SOURCE_ERROR, 502),
        (ErrorType.API_ERROR, 502),
        (ErrorType.UNKNOWN_ERROR, 500),
    ])
    def test_status_codes(self, error_handler, error_type, status):
        assert error_handler.status_code(error_type) == status

    def test_invalid_request_names_field(self, error_handler):
        message = error_handler.format_user_friendly_error(validation_error())

        assert message.startswith("Invalid request: question")
        assert "must not be empty" in message

    def test_configuration_error_lists_missing_keys(self, error_handler):
        error = ConfigurationError("missing", missing_keys=["OPENAI_API_KEY", "SALES_DATA_PATH"])

        message = error_handler.format_user_friendly_error(error)

        assert "OPENAI_API_KEY, SALES_DATA_PATH" in message

    def test_no_technical_details_in_messages(self, error_handler):
        error = RuntimeError("KeyError in pandas internals")

        message = error_handler.format_user_friendly_error(error, user_query="Top products?")

        assert "Traceback" not in message
        assert "RuntimeError" not in message
        assert "pandas" not in message

    def test_rate_limited_message(self, error_handler):
        message = error_handler.format_user_friendly_error(
            RuntimeError("limit"), ErrorType.RATE_LIMITED
        )

        assert message == ErrorHandler.format_rate_limited_error()

    def test_error_logging(self, error_handler):
        try:
            raise DataSourceError("No data found in spreadsheet")
        except DataSourceError as e:
            error_handler.format_user_friendly_error(e, user_query="Top products?")

        log = error_handler.get_error_log()
        assert len(log) == 1
        entry = log[0]
        assert entry["error_type"] == "data_source_error"
        assert entry["error_class"] == "DataSourceError"
        assert entry["user_query"] == "Top products?"
        assert "Traceback" in entry["stack_trace"]

    def test_error_log_keeps_most_recent_entries(self):
        error_handler = ErrorHandler(log_size=3)

        for i in range(50):
            error_handler.format_user_friendly_error(RuntimeError(f"boom {i}"))

        log = error_handler.get_error_log()
        assert len(log) == 3
        assert [entry["error_message"] for entry in log] == ["boom 47", "boom 48", "boom 49"]

    def test_clear_error_log(self, error_handler):
        error_handler.format_user_friendly_error(RuntimeError("boom"))

        error_handler.clear_error_log()

        assert error_handler.get_error_log() == []


class TestDataQualityWarning:
    """Test data quality warnings for absorbed parse problems."""

    @pytest.fixture
    def error_handler(self):
        return ErrorHandler()

    def test_no_warnings(self, error_handler):
        assert error_handler.create_data_quality_warning([]) is None

    def test_summarizes_by_column(self, error_handler):
        warnings = [
            ParseWarning(2, "Line_Total", "abc"),
            ParseWarning(2, "Purchase_Date", "yesterday"),
            ParseWarning(5, "Line_Total", ""),
        ]

        message = error_handler.create_data_quality_warning(warnings)

        assert "Data Quality Warning" in message
        assert "Affected records: 2" in message
        assert "Line_Total: 2" in message
        assert "Purchase_Date: 1" in message
