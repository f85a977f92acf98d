"""
Utility modules for the conflation engine.

This module provides logging setup and performance timing used throughout
the system.
"""

from .logging_setup import setup_logging, get_logger, log_performance

__all__ = ["setup_logging", "get_logger", "log_performance"]
