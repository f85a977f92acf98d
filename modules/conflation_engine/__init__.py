"""Conflation Engine Module

Matches an authoritative upstream dataset against the live geospatial database,
publishes the resulting deviations for review and renders the match state as
vector tiles.
"""

from .processor import ConflationProcessor

__all__ = ['ConflationProcessor']
