"""Tests for ModuleProcessor interface and related models."""

import pytest
from datetime import datetime
from pydantic import ValidationError

from src.interfaces.module_processor import (
    ModuleProcessor,
    ProcessingResult,
    ModuleStatus
)


class TestProcessingResult:
    """Test cases for ProcessingResult Pydantic model."""

    def test_valid_processing_result(self):
        """Test a result covering two refreshed rulesets."""
        result = ProcessingResult(
            success=True,
            records_processed=120,
            metadata={"rulesets": {"signs": {"deviations": 4}, "benches": {"deviations": 0}}},
            execution_time=3.25
        )

        assert result.success is True
        assert result.records_processed == 120
        assert result.errors == []
        assert result.metadata["rulesets"]["signs"]["deviations"] == 4
        assert result.execution_time == 3.25

    def test_processing_result_with_failed_units(self):
        """Test that failed units are listed while the others still count."""
        result = ProcessingResult(
            success=False,
            records_processed=80,
            errors=["benches: Invalid ruleset configuration"],
            execution_time=1.0
        )

        assert result.success is False
        assert result.errors == ["benches: Invalid ruleset configuration"]

    def test_processing_result_defaults(self):
        """Test ProcessingResult with default values."""
        result = ProcessingResult(success=True, records_processed=0, execution_time=0.5)

        assert result.errors == []
        assert result.metadata == {}

    @pytest.mark.parametrize("field, value", [
        ("records_processed", -5),
        ("execution_time", -1.0),
    ])
    def test_negative_values_invalid(self, field, value):
        """Test that negative counters and durations raise ValidationError."""
        data = {"success": True, "records_processed": 10, "execution_time": 1.0}
        data[field] = value

        with pytest.raises(ValidationError) as exc_info:
            ProcessingResult(**data)

        errors = exc_info.value.errors()
        assert any("greater than or equal to 0" in str(error) for error in errors)


class TestModuleStatus:
    """Test cases for ModuleStatus Pydantic model."""

    def test_valid_module_status(self):
        """Test creating a valid ModuleStatus."""
        last_run = datetime(2024, 5, 1, 3, 0, 0)
        status = ModuleStatus(
            module_name="conflation_engine",
            is_configured=True,
            last_run=last_run,
            status="ready",
            health_check=True
        )

        assert status.module_name == "conflation_engine"
        assert status.last_run == last_run
        assert status.status == "ready"

    def test_module_status_serialization(self):
        """Test ModuleStatus serialization before the first run."""
        status = ModuleStatus(
            module_name="conflation_engine",
            is_configured=False,
            status="error",
            health_check=False
        )

        data = status.model_dump()
        assert data == {
            "module_name": "conflation_engine",
            "is_configured": False,
            "last_run": None,
            "status": "error",
            "health_check": False,
        }


class TestModuleProcessor:
    """Test cases for ModuleProcessor abstract base class."""

    def test_cannot_instantiate_abstract_class(self):
        """Test that ModuleProcessor cannot be instantiated directly."""
        with pytest.raises(TypeError) as exc_info:
            ModuleProcessor()

        assert "Can't instantiate abstract class" in str(exc_info.value)

    def test_abstract_methods_required(self):
        """Test that all abstract methods must be implemented in subclasses."""

        class IncompleteModule(ModuleProcessor):
            pass

        with pytest.raises(TypeError) as exc_info:
            IncompleteModule()

        error_message = str(exc_info.value)
        for method in ["__init__", "validate_configuration", "process", "get_status"]:
            assert method in error_message

    def test_concrete_implementation_works(self):
        """Test that a complete implementation can be driven through the interface."""

        class RecordingModule(ModuleProcessor):
            def __init__(self, config_loader):
                self.config_loader = config_loader
                self.dry_runs = []

            def validate_configuration(self) -> bool:
                return True

            def process(self, dry_run: bool = False) -> ProcessingResult:
                self.dry_runs.append(dry_run)
                return ProcessingResult(success=True, records_processed=10,
                                        metadata={"dry_run": dry_run}, execution_time=1.0)

            def get_status(self) -> ModuleStatus:
                return ModuleStatus(module_name="recording", is_configured=True,
                                    status="ready", health_check=True)

        module = RecordingModule("config_loader")

        assert module.validate_configuration() is True
        result = module.process(dry_run=True)
        assert result.metadata == {"dry_run": True}
        assert module.dry_runs == [True]
        assert module.get_status().status == "ready"
