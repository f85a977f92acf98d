"""
Conflation Framework Core Package

This package contains the shared infrastructure for the conflation engine:
configuration loading, exceptions, logging and the module processor interface
that processing modules implement.
"""

from .interfaces import ModuleProcessor, ProcessingResult, ModuleStatus

__version__ = "1.0.0"
__all__ = ['ModuleProcessor', 'ProcessingResult', 'ModuleStatus']
