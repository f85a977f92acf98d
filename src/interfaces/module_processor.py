"""Module Processor Interface

This module defines the abstract base class and result models that processing
modules implement so they can be driven by an external scheduler (cron job,
batch runner or the command line) in a uniform way.
"""

from abc import ABC, abstractmethod
from pydantic import BaseModel, Field
from typing import Optional, Dict, List, Any
from datetime import datetime


class ProcessingResult(BaseModel):
    """Result data model for a module processing run.

    A run may cover several independent units of work (for the conflation
    engine, one unit per ruleset); ``errors`` lists the units that failed while
    ``success`` reports whether every unit completed.
    """

    success: bool = Field(..., description="Whether every unit of work completed")
    records_processed: int = Field(ge=0, description="Number of records processed across all units")
    errors: List[str] = Field(default_factory=list, description="Error messages of failed units")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Per-unit processing details")
    execution_time: float = Field(ge=0.0, description="Processing execution time in seconds")


class ModuleStatus(BaseModel):
    """Status data model for module health and configuration reporting."""

    module_name: str = Field(..., description="Name of the processing module")
    is_configured: bool = Field(..., description="Whether the module is properly configured")
    last_run: Optional[datetime] = Field(None, description="Timestamp of the last successful processing run")
    status: str = Field(..., description="Current module status: 'ready', 'running', 'error', 'disabled'")
    health_check: bool = Field(..., description="Result of the most recent health check")


class ModuleProcessor(ABC):
    """Abstract base class for processing modules.

    Concrete modules receive the shared ConfigLoader, validate their own
    configuration, run their processing on demand and report status.
    """

    @abstractmethod
    def __init__(self, config_loader):
        """Initialize module with shared configuration.

        Args:
            config_loader: ConfigLoader instance providing access to framework configuration
        """
        pass

    @abstractmethod
    def validate_configuration(self) -> bool:
        """Validate module-specific configuration.

        Returns:
            bool: True if configuration is valid and complete, False otherwise
        """
        pass

    @abstractmethod
    def process(self, dry_run: bool = False) -> ProcessingResult:
        """Execute module processing logic.

        Args:
            dry_run: If True, compute everything but publish nothing

        Returns:
            ProcessingResult: Standardized result object with success status, metrics, and errors
        """
        pass

    @abstractmethod
    def get_status(self) -> ModuleStatus:
        """Get current module processing status.

        Returns:
            ModuleStatus: Current module status and health information
        """
        pass
