# src/manuscript/models.py
"""
Data models for the manuscript engine.

This module defines the small, focused records shared by every component:

- Annotation / AnnotationNote: user notes anchored to a [start, end) range.
- SearchOptions / SearchResult: the search surface input and its derived hits.
- DialogueFormats / DialogueRange: dialogue heuristics and their output.
- HistoryState: one undo/redo snapshot.
- Entity / MentionedEntities / EntityLink: fuzzy entity links.
- Segment: one typed run of rendered text.
- ChapterRecord: the host's persisted chapter.

These classes hold no business logic beyond (de)serialization to the host's
chapter record, which keeps the camelCase keys the host stores.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


class SearchMode(str, Enum):
    ALL = "all"
    DIALOGUES = "dialogues"
    NARRATION = "narration"


class DialogueType(str, Enum):
    DOUBLE_QUOTES = "doubleQuotes"
    SINGLE_QUOTES = "singleQuotes"
    EM_DASH = "emDash"


class EntityType(str, Enum):
    CHARACTER = "character"
    REGION = "region"
    ITEM = "item"
    FACTION = "faction"
    RACE = "race"


# ---------------------------------------------------------------- annotations

@dataclass(frozen=True, slots=True)
class AnnotationNote:
    """
    A single note attached to an annotation.

    Attributes
    ----------
    id : str
        Stable identifier, unique within the chapter.
    text : str
        The note body as typed by the user.
    is_important : bool
        Flag the host renders as a highlighted note.
    created_at, updated_at : str
        ISO-8601 UTC timestamps. ``updated_at`` moves on edit and toggle.
    """
    id: str
    text: str
    is_important: bool = False
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "isImportant": self.is_important,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnnotationNote":
        created = data.get("createdAt") or now_iso()
        return cls(
            id=str(data["id"]),
            text=str(data.get("text", "")),
            is_important=bool(data.get("isImportant", False)),
            created_at=created,
            updated_at=data.get("updatedAt") or created,
        )


@dataclass(frozen=True, slots=True)
class Annotation:
    """
    A user annotation anchored to ``[start_offset, end_offset)`` of the buffer.

    ``text`` is the snapshot of the covered substring. It equals
    ``content[start_offset:end_offset]`` right after every recomputation pass.
    Notes are owned by the annotation and kept in insertion order.
    """
    id: str
    start_offset: int
    end_offset: int
    text: str
    notes: Tuple[AnnotationNote, ...] = ()
    created_at: str = field(default_factory=now_iso)

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "startOffset": self.start_offset,
            "endOffset": self.end_offset,
            "text": self.text,
            "notes": [n.to_dict() for n in self.notes],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Annotation":
        return cls(
            id=str(data["id"]),
            start_offset=int(data["startOffset"]),
            end_offset=int(data["endOffset"]),
            text=str(data.get("text", "")),
            notes=tuple(AnnotationNote.from_dict(n) for n in data.get("notes") or []),
            created_at=data.get("createdAt") or now_iso(),
        )


# ---------------------------------------------------------------- search / dialogue

@dataclass(frozen=True, slots=True)
class DialogueFormats:
    double_quotes: bool = True
    single_quotes: bool = True
    em_dash: bool = True

    def to_dict(self) -> Dict[str, bool]:
        return {
            "doubleQuotes": self.double_quotes,
            "singleQuotes": self.single_quotes,
            "emDash": self.em_dash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DialogueFormats":
        return cls(
            double_quotes=bool(data.get("doubleQuotes", True)),
            single_quotes=bool(data.get("singleQuotes", True)),
            em_dash=bool(data.get("emDash", True)),
        )


@dataclass(frozen=True, slots=True)
class DialogueRange:
    start: int
    end: int
    type: DialogueType


@dataclass(frozen=True, slots=True)
class SearchOptions:
    case_sensitive: bool = False
    whole_word: bool = False
    mode: SearchMode = SearchMode.ALL
    dialogue_formats: DialogueFormats = field(default_factory=DialogueFormats)


@dataclass(frozen=True, slots=True)
class SearchResult:
    index: int            # position in the ordered result list
    start: int
    end: int
    text: str             # original-case text of the match

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "start": self.start, "end": self.end, "text": self.text}


# ---------------------------------------------------------------- history

@dataclass(frozen=True, slots=True)
class HistoryState:
    content: str
    cursor_position: int
    annotations: Tuple[Annotation, ...] = ()


# ---------------------------------------------------------------- entities

@dataclass(frozen=True)
class Entity:
    """
    An entity the chapter mentions. Only ``id`` and ``name`` take part in
    matching; ``extra`` carries type-specific display fields for previews.
    """
    id: str
    name: str
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, **self.extra}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Entity":
        extra = {k: v for k, v in data.items() if k not in ("id", "name")}
        return cls(id=str(data["id"]), name=str(data.get("name", "")), extra=extra)


# host record key -> entity type, in matching priority order
_MENTION_KEYS: Tuple[Tuple[str, EntityType], ...] = (
    ("characters", EntityType.CHARACTER),
    ("regions", EntityType.REGION),
    ("items", EntityType.ITEM),
    ("factions", EntityType.FACTION),
    ("races", EntityType.RACE),
)


@dataclass
class MentionedEntities:
    characters: List[Entity] = field(default_factory=list)
    regions: List[Entity] = field(default_factory=list)
    items: List[Entity] = field(default_factory=list)
    factions: List[Entity] = field(default_factory=list)
    races: List[Entity] = field(default_factory=list)

    def iter_all(self) -> Iterator[Tuple[Entity, EntityType]]:
        """Yield (entity, type) in a stable order: by type, then list order."""
        for key, etype in _MENTION_KEYS:
            for entity in getattr(self, key):
                yield entity, etype

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        return {key: [e.to_dict() for e in getattr(self, key)] for key, _ in _MENTION_KEYS}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MentionedEntities":
        data = data or {}
        return cls(**{
            key: [Entity.from_dict(e) for e in data.get(key) or []]
            for key, _ in _MENTION_KEYS
        })


@dataclass(frozen=True, slots=True)
class EntityLink:
    text: str
    entity: Entity
    entity_type: EntityType
    start_offset: int
    end_offset: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "entity": self.entity.to_dict(),
            "entityType": self.entity_type.value,
            "startOffset": self.start_offset,
            "endOffset": self.end_offset,
        }


# ---------------------------------------------------------------- rendering

@dataclass(frozen=True, slots=True)
class Segment:
    """
    One run of rendered text. Concatenating the ``text`` of every segment
    returned by the highlighter reproduces the buffer exactly.

    ``annotation_id`` is the outer layer, ``search`` ("search" or
    "search-current") the inner one; both may be set on the same run.
    """
    text: str
    start: int
    end: int
    annotation_id: Optional[str] = None
    selected: bool = False
    search: Optional[str] = None

    @property
    def kind(self) -> str:
        if self.search and self.annotation_id:
            return f"annotation+{self.search}"
        if self.search:
            return self.search
        if self.annotation_id:
            return "annotation"
        return "plain"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "kind": self.kind,
            "annotationId": self.annotation_id,
            "selected": self.selected,
        }


# ---------------------------------------------------------------- host record

@dataclass
class ChapterRecord:
    """The chapter as the host store persists it."""
    id: str
    title: str = ""
    content: str = ""
    annotations: List[Annotation] = field(default_factory=list)
    formats: List[Dict[str, Any]] = field(default_factory=list)
    alignments: Dict[str, str] = field(default_factory=dict)
    blacklisted_entity_ids: List[str] = field(default_factory=list)
    mentioned_entities: MentionedEntities = field(default_factory=MentionedEntities)
    last_edited: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "annotations": [a.to_dict() for a in self.annotations],
            "formats": list(self.formats),
            "alignments": dict(self.alignments),
            "blacklistedEntityIds": list(self.blacklisted_entity_ids),
            "mentionedEntities": self.mentioned_entities.to_dict(),
            "lastEdited": self.last_edited,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChapterRecord":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            content=str(data.get("content", "")),
            annotations=[Annotation.from_dict(a) for a in data.get("annotations") or []],
            formats=list(data.get("formats") or []),
            alignments={str(k): str(v) for k, v in (data.get("alignments") or {}).items()},
            blacklisted_entity_ids=[str(x) for x in data.get("blacklistedEntityIds") or []],
            mentioned_entities=MentionedEntities.from_dict(data.get("mentionedEntities")),
            last_edited=data.get("lastEdited") or now_iso(),
        )
