# manuscript/DB/api.py
from __future__ import annotations
import logging
from typing import Iterable, List, Optional, Protocol

from ..models import ChapterRecord

log = logging.getLogger(__name__)


class ChapterStore(Protocol):
    """The host side of the engine: where chapter records live between sessions."""
    # Create
    def create(self, record: ChapterRecord) -> None: ...
    # Read
    def read(self, chapter_id: str) -> ChapterRecord: ...
    def list_ids(self) -> List[str]: ...
    def count(self) -> int: ...
    # Update
    def update(self, record: ChapterRecord) -> None: ...
    # Delete
    def delete(self, chapter_id: str) -> None: ...
    # blacklist (persisted apart from the content so a toggle never rewrites the chapter)
    def read_blacklist(self, chapter_id: str) -> List[str]: ...
    def write_blacklist(self, chapter_id: str, ids: Iterable[str]) -> None: ...
    # lifecycle
    def close(self) -> None: ...


def make_store(dsn: str, *, chapters: Optional[Iterable[ChapterRecord]] = None) -> ChapterStore:
    """
    Factory:
      - sqlite:///path -> SQLiteStore (file and schema are created on first use)
      - memory://      -> MemoryStore (seeded with ``chapters`` when given)
    """
    if dsn.startswith("sqlite:///"):
        from .sqlite_store import SQLiteStore
        path = dsn.removeprefix("sqlite:///")
        if not path:
            raise ValueError("sqlite DSN needs a file path: sqlite:///path/to/chapters.sqlite")
        store: ChapterStore = SQLiteStore(path)
    elif dsn.startswith("memory://"):
        from .memory_store import MemoryStore
        store = MemoryStore()
    else:
        raise ValueError(f"Unsupported store DSN: {dsn}")

    for record in chapters or ():
        store.create(record)
    log.info("chapter store ready: %s (%d chapter(s))", dsn, store.count())
    return store
