"""
Review feed over published deviations.
"""

from .deviation_feed import (
    DeviationFeed,
    DeviationView,
    EditLinkInputs,
    LiveElementInfo,
    LiveFeatureLookup,
)

__all__ = ['DeviationFeed', 'DeviationView', 'EditLinkInputs', 'LiveElementInfo',
           'LiveFeatureLookup']
