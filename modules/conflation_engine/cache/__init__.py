"""
Snapshot cache of matching results, with the persisted action journal.
"""

from .snapshot import Snapshot
from .action_journal import ActionJournal, JournalEntry
from .result_cache import RefreshResult, ResultCache

__all__ = ['Snapshot', 'ActionJournal', 'JournalEntry', 'RefreshResult', 'ResultCache']
