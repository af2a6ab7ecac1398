# manuscript/DB/memory_store.py
from __future__ import annotations
import copy
import logging
from typing import Dict, Iterable, List

from ..models import ChapterRecord

log = logging.getLogger(__name__)


class MemoryStore:
    """Simple in-memory CRUD (useful for tests or ephemeral runs)."""
    def __init__(self) -> None:
        self._rows: Dict[str, ChapterRecord] = {}

    # C
    def create(self, record: ChapterRecord) -> None:
        if record.id in self._rows:
            raise ValueError(f"chapter {record.id!r} already exists")
        self._rows[record.id] = copy.deepcopy(record)

    # R
    def read(self, chapter_id: str) -> ChapterRecord:
        try:
            return copy.deepcopy(self._rows[chapter_id])
        except KeyError:
            raise KeyError(chapter_id)

    def list_ids(self) -> List[str]:
        return list(self._rows)

    def count(self) -> int:
        return len(self._rows)

    # U
    def update(self, record: ChapterRecord) -> None:
        if record.id not in self._rows:
            raise KeyError(record.id)
        self._rows[record.id] = copy.deepcopy(record)

    # D
    def delete(self, chapter_id: str) -> None:
        self._rows.pop(chapter_id, None)

    # blacklist
    def read_blacklist(self, chapter_id: str) -> List[str]:
        record = self._rows.get(chapter_id)
        if record is None:
            log.warning("blacklist read for unknown chapter %s, using an empty one", chapter_id)
            return []
        return list(record.blacklisted_entity_ids)

    def write_blacklist(self, chapter_id: str, ids: Iterable[str]) -> None:
        if chapter_id not in self._rows:
            raise KeyError(chapter_id)
        self._rows[chapter_id].blacklisted_entity_ids = [str(i) for i in ids]

    def close(self) -> None:
        self._rows.clear()
