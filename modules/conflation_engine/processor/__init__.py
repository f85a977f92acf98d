"""Processor package for the conflation engine module."""

from .conflation_processor import ConflationProcessor

__all__ = ['ConflationProcessor']
