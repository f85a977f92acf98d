"""
Custom exception classes for the conflation engine.

This module defines domain-specific exceptions to provide clear error handling
and debugging information throughout the system.
"""

from typing import Optional, Dict, Any


class ConflationBaseException(Exception):
    """Base exception class for all conflation engine exceptions."""
    
    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
    
    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (Context: {context_str})"
        return self.message


class ConflationConfigurationError(ConflationBaseException):
    """
    Exception raised when configuration loading or validation fails.
    
    This exception is raised when:
    - Configuration files are missing or invalid
    - A ruleset has a missing or malformed region filter
    - Required configuration values are missing
    """
    pass


class ConflationValidationError(ConflationBaseException):
    """
    Exception raised when data validation fails.
    
    This exception is raised when:
    - Configuration structure validation fails
    - Store records cannot be converted into engine models
    - Workflow action values are not part of the enumerated set
    """
    pass


class ConflationStoreError(ConflationBaseException):
    """
    Exception raised when a geometry store cannot be read.
    
    This exception is raised when:
    - Store files are missing or unreadable after retries
    - Required store columns are absent
    """
    pass


class ConflationProcessingError(ConflationBaseException):
    """
    Exception raised when conflation processing fails.
    
    This exception is raised when:
    - A matching pass fails
    - A snapshot cannot be built or published
    - A vector tile cannot be encoded
    """
    pass
