"""
Unit tests for custom exceptions module.

This module contains tests for the framework exception classes, the
engine-specific exceptions and their context handling.
"""

import pytest
from src.exceptions import (
    ConflationBaseException,
    ConflationConfigurationError,
    ConflationValidationError,
    ConflationStoreError,
    ConflationProcessingError,
)
from modules.conflation_engine.exceptions import (
    DeviationNotFoundError,
    InvalidTileError,
    RefreshError,
    RulesetNotFoundError,
    SnapshotNotFoundError,
)


class TestConflationBaseException:
    """Test suite for ConflationBaseException class."""

    def test_base_exception_without_context(self):
        """Test ConflationBaseException without context."""
        exception = ConflationBaseException("Test error message")

        assert str(exception) == "Test error message"
        assert exception.message == "Test error message"
        assert exception.context == {}

    def test_base_exception_with_context(self):
        """Test ConflationBaseException with context."""
        context = {"ruleset_id": "historiskaskyltar_gavle", "dataset_id": 27}
        exception = ConflationBaseException("Test error message", context)

        assert exception.message == "Test error message"
        assert exception.context == context
        assert "ruleset_id=historiskaskyltar_gavle" in str(exception)
        assert "dataset_id=27" in str(exception)

    def test_base_exception_with_none_context(self):
        """Test ConflationBaseException with None context."""
        exception = ConflationBaseException("Test error message", None)

        assert str(exception) == "Test error message"
        assert exception.context == {}

    def test_base_exception_context_string_representation(self):
        """Test string representation with various context types."""
        context = {
            "string_value": "test",
            "int_value": 42,
            "bool_value": True,
            "none_value": None
        }
        error_str = str(ConflationBaseException("Test error", context))

        assert error_str.startswith("Test error (Context: ")
        assert "string_value=test" in error_str
        assert "int_value=42" in error_str
        assert "bool_value=True" in error_str
        assert "none_value=None" in error_str


class TestFrameworkExceptions:
    """Test suite for the framework exception subclasses."""

    @pytest.mark.parametrize("exception_class", [
        ConflationConfigurationError,
        ConflationValidationError,
        ConflationStoreError,
        ConflationProcessingError,
    ])
    def test_inherits_from_base(self, exception_class):
        """Test that every framework exception inherits from the base exception."""
        exception = exception_class("error", {"key": "value"})

        assert isinstance(exception, ConflationBaseException)
        assert isinstance(exception, Exception)
        assert exception.context == {"key": "value"}

    def test_configuration_error_can_be_caught_as_base_exception(self):
        """Test catching a configuration error through the base class."""
        with pytest.raises(ConflationBaseException) as exc_info:
            raise ConflationConfigurationError("Missing region", {"ruleset_id": "signs"})

        assert isinstance(exc_info.value, ConflationConfigurationError)
        assert "ruleset_id=signs" in str(exc_info.value)

    def test_exception_chaining(self):
        """Test that exceptions keep their cause when chained."""
        try:
            try:
                raise OSError("disk unavailable")
            except OSError as e:
                raise ConflationStoreError("Failed to read store file") from e
        except ConflationStoreError as e:
            assert isinstance(e.__cause__, OSError)
            assert "disk unavailable" in str(e.__cause__)


class TestEngineExceptions:
    """Test suite for the conflation engine exceptions."""

    def test_deviation_not_found(self):
        """Test DeviationNotFoundError message and context."""
        exception = DeviationNotFoundError(42)

        assert isinstance(exception, ConflationBaseException)
        assert exception.deviation_id == 42
        assert str(exception) == "Deviation 42 not found (Context: deviation_id=42)"

    def test_snapshot_not_found(self):
        """Test SnapshotNotFoundError message and context."""
        exception = SnapshotNotFoundError("signs")

        assert exception.ruleset_id == "signs"
        assert "No snapshot published for ruleset 'signs'" in str(exception)

    def test_ruleset_not_found_is_configuration_error(self):
        """Test that an unknown ruleset is reported as a configuration error."""
        exception = RulesetNotFoundError("signs")

        assert isinstance(exception, ConflationConfigurationError)
        assert exception.ruleset_id == "signs"

    def test_invalid_tile_is_validation_error(self):
        """Test that invalid tiles are reported as validation errors."""
        exception = InvalidTileError("Zoom level 31 out of range", {"z": 31})

        assert isinstance(exception, ConflationValidationError)
        assert "z=31" in str(exception)

    def test_refresh_error_is_processing_error(self):
        """Test RefreshError context."""
        exception = RefreshError("Refresh failed: boom", "signs")

        assert isinstance(exception, ConflationProcessingError)
        assert exception.context == {"ruleset_id": "signs"}
