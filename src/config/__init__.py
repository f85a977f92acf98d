"""
Configuration management for the conflation engine.

This module provides loading and validation of environment, ruleset and
catalog configuration files.
"""

from .config_loader import ConfigLoader

__all__ = ["ConfigLoader"]
