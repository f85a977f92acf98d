"""
Custom exceptions for the conflation engine.

This module provides domain-specific exception classes for error handling
and debugging throughout the system.
"""

from .custom_exceptions import (
    ConflationBaseException,
    ConflationConfigurationError,
    ConflationValidationError,
    ConflationStoreError,
    ConflationProcessingError,
)

__all__ = [
    "ConflationBaseException",
    "ConflationConfigurationError",
    "ConflationValidationError",
    "ConflationStoreError",
    "ConflationProcessingError",
]
