"""Conflation Engine Specific Exceptions

Extends the framework exception hierarchy with lookup and rendering errors
raised by the result cache, the deviation feed and the tile renderer.
"""

from src.exceptions import (
    ConflationBaseException,
    ConflationConfigurationError,
    ConflationProcessingError,
    ConflationValidationError,
)


class DeviationNotFoundError(ConflationBaseException):
    """Raised when a deviation id is not present in any published snapshot."""

    def __init__(self, deviation_id: int):
        super().__init__(f"Deviation {deviation_id} not found", {"deviation_id": deviation_id})
        self.deviation_id = deviation_id


class SnapshotNotFoundError(ConflationBaseException):
    """Raised when no snapshot has been published for a ruleset yet."""

    def __init__(self, ruleset_id: str):
        super().__init__(f"No snapshot published for ruleset '{ruleset_id}'",
                         {"ruleset_id": ruleset_id})
        self.ruleset_id = ruleset_id


class RulesetNotFoundError(ConflationConfigurationError):
    """Raised when a ruleset id is not registered."""

    def __init__(self, ruleset_id: str):
        super().__init__(f"Ruleset '{ruleset_id}' is not registered", {"ruleset_id": ruleset_id})
        self.ruleset_id = ruleset_id


class InvalidTileError(ConflationValidationError):
    """Raised for tile coordinates outside the tile pyramid."""
    pass


class RefreshError(ConflationProcessingError):
    """Raised when a snapshot refresh fails; the previous snapshot stays published."""

    def __init__(self, message: str, ruleset_id: str):
        super().__init__(message, {"ruleset_id": ruleset_id})
        self.ruleset_id = ruleset_id
