"""Action Journal

Persists deviation ids, workflow actions and notes as JSON so that human
decisions survive a process restart. The journal is only read when a ruleset
has no snapshot in memory yet; afterwards the published snapshot is the source
of carried-forward state.
"""

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from src.exceptions import ConflationStoreError
from ..models import Deviation, DeviationAction, UpstreamKey

logger = logging.getLogger(__name__)


class JournalEntry(BaseModel):
    """Persisted state of one deviation."""
    id: int = Field(..., ge=1)
    upstream_item_ids: Tuple[int, ...] = Field(..., min_length=1)
    note: str = Field("")
    action: Optional[DeviationAction] = Field(None)
    action_at: Optional[datetime] = Field(None)

    @classmethod
    def from_deviation(cls, deviation: Deviation) -> 'JournalEntry':
        return cls(id=deviation.id, upstream_item_ids=deviation.upstream_item_ids,
                   note=deviation.note, action=deviation.action,
                   action_at=deviation.action_at)


class ActionJournal:
    """JSON file holding the id counter and per-ruleset deviation state."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._data = self._load()

    def _load(self) -> Dict:
        if not self.path.exists():
            logger.info(f"No action journal at {self.path}, starting empty")
            return {"next_id": 1, "rulesets": {}}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConflationStoreError(f"Failed to read action journal {self.path}: {e}")
        if not isinstance(data, dict) or "rulesets" not in data:
            raise ConflationStoreError(f"Malformed action journal {self.path}")
        return data

    def next_id(self) -> int:
        return int(self._data.get("next_id", 1))

    def entries(self, ruleset_id: str) -> Dict[UpstreamKey, JournalEntry]:
        """Journal entries of a ruleset keyed by upstream key."""
        entries = {}
        for raw in self._data["rulesets"].get(ruleset_id, []):
            try:
                entry = JournalEntry.model_validate(raw)
            except ValidationError as e:
                raise ConflationStoreError(
                    f"Invalid action journal entry: {e}", {"ruleset_id": ruleset_id}
                )
            entries[entry.upstream_item_ids] = entry
        return entries

    def record(self, ruleset_id: str, deviations: Iterable[Deviation], next_id: int) -> None:
        """Replace the journal state of a ruleset and write the file.

        The in-memory state only changes once the file has been written.
        """
        rulesets = dict(self._data["rulesets"])
        rulesets[ruleset_id] = [
            JournalEntry.from_deviation(d).model_dump(mode="json") for d in deviations
        ]
        data = {"next_id": next_id, "rulesets": rulesets}
        self._write(data)
        self._data = data

    def _write(self, data: Dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write then rename so readers never see a partial file
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise ConflationStoreError(f"Failed to write action journal {self.path}: {e}")
