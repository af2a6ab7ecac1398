# manuscript/DB/sqlite_store.py
from __future__ import annotations
import json
import logging
import os
import sqlite3
from typing import Iterable, List

from ..models import Annotation, ChapterRecord, MentionedEntities

log = logging.getLogger(__name__)

# nested structures are stored as JSON text columns
_SCHEMA = """
CREATE TABLE IF NOT EXISTS chapters (
  id TEXT PRIMARY KEY,
  title TEXT NOT NULL DEFAULT '',
  content TEXT NOT NULL DEFAULT '',
  annotations TEXT NOT NULL DEFAULT '[]',
  formats TEXT NOT NULL DEFAULT '[]',
  alignments TEXT NOT NULL DEFAULT '{}',
  blacklisted_entity_ids TEXT NOT NULL DEFAULT '[]',
  mentioned_entities TEXT NOT NULL DEFAULT '{}',
  last_edited TEXT NOT NULL
);
"""

_COLUMNS = (
    "id", "title", "content", "annotations", "formats", "alignments",
    "blacklisted_entity_ids", "mentioned_entities", "last_edited",
)


def _to_row(r: ChapterRecord) -> tuple:
    return (
        r.id, r.title, r.content,
        json.dumps([a.to_dict() for a in r.annotations], ensure_ascii=False),
        json.dumps(r.formats, ensure_ascii=False),
        json.dumps(r.alignments, ensure_ascii=False),
        json.dumps(r.blacklisted_entity_ids, ensure_ascii=False),
        json.dumps(r.mentioned_entities.to_dict(), ensure_ascii=False),
        r.last_edited,
    )


def _from_row(row: sqlite3.Row) -> ChapterRecord:
    return ChapterRecord(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        annotations=[Annotation.from_dict(a) for a in json.loads(row["annotations"])],
        formats=json.loads(row["formats"]),
        alignments=json.loads(row["alignments"]),
        blacklisted_entity_ids=json.loads(row["blacklisted_entity_ids"]),
        mentioned_entities=MentionedEntities.from_dict(json.loads(row["mentioned_entities"])),
        last_edited=row["last_edited"],
    )


class SQLiteStore:
    """Chapter CRUD over a single SQLite table."""
    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self.path = db_path
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(_SCHEMA)

    # ---- Create ----
    def create(self, record: ChapterRecord) -> None:
        try:
            self.conn.execute(
                f"INSERT INTO chapters({', '.join(_COLUMNS)}) VALUES ({', '.join('?' * len(_COLUMNS))})",
                _to_row(record),
            )
        except sqlite3.IntegrityError:
            raise ValueError(f"chapter {record.id!r} already exists")
        self.conn.commit()

    # ---- Read ----
    def read(self, chapter_id: str) -> ChapterRecord:
        row = self.conn.execute("SELECT * FROM chapters WHERE id=?", (chapter_id,)).fetchone()
        if row is None:
            raise KeyError(chapter_id)
        return _from_row(row)

    def list_ids(self) -> List[str]:
        return [r[0] for r in self.conn.execute("SELECT id FROM chapters ORDER BY rowid")]

    def count(self) -> int:
        return int(self.conn.execute("SELECT COUNT(*) FROM chapters").fetchone()[0])

    # ---- Update ----
    def update(self, record: ChapterRecord) -> None:
        row = _to_row(record)
        sets = ", ".join(f"{c}=?" for c in _COLUMNS[1:])
        cur = self.conn.execute(f"UPDATE chapters SET {sets} WHERE id=?", (*row[1:], record.id))
        if cur.rowcount == 0:
            raise KeyError(record.id)
        self.conn.commit()

    # ---- Delete ----
    def delete(self, chapter_id: str) -> None:
        self.conn.execute("DELETE FROM chapters WHERE id=?", (chapter_id,))
        self.conn.commit()

    # ---- blacklist ----
    def read_blacklist(self, chapter_id: str) -> List[str]:
        try:
            row = self.conn.execute(
                "SELECT blacklisted_entity_ids FROM chapters WHERE id=?", (chapter_id,)
            ).fetchone()
            if row is None:
                log.warning("blacklist read for unknown chapter %s, using an empty one", chapter_id)
                return []
            ids = json.loads(row[0])
            if not isinstance(ids, list):
                raise ValueError(f"expected a list, got {type(ids).__name__}")
            return [str(i) for i in ids]
        except (sqlite3.Error, ValueError) as exc:
            # json.JSONDecodeError is a ValueError
            log.warning("could not read blacklist of chapter %s (%s), using an empty one", chapter_id, exc)
            return []

    def write_blacklist(self, chapter_id: str, ids: Iterable[str]) -> None:
        payload = json.dumps([str(i) for i in ids], ensure_ascii=False)
        cur = self.conn.execute(
            "UPDATE chapters SET blacklisted_entity_ids=? WHERE id=?", (payload, chapter_id)
        )
        if cur.rowcount == 0:
            raise KeyError(chapter_id)
        self.conn.commit()

    # ---- lifecycle ----
    def close(self) -> None:
        self.conn.close()
