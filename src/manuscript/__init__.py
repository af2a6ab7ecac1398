"""
Manuscript Engine Module

The offset-based annotation, search and editing-history core of a long-form
prose editor. It keeps a plain-text buffer together with everything anchored to
it (annotations and their notes, search hits, dialogue ranges, undo/redo
snapshots, bold/italic runs, fuzzy entity links) consistent as the text is
edited.

The module is designed with a clean separation of concerns:
- Pure range algorithms (annotations, search, dialogue, highlight, autolink)
- Stateful controllers (SearchSession, UndoRedoHistory, AutoLinker, FormatModel)
- Cancellable deferred work on a single-threaded loop (scheduling)
- The Engine facade hosts talk to, and the chapter store it saves into

Example Usage:
    from manuscript import Engine, ChapterRecord

    eng = Engine()
    eng.load(ChapterRecord(id="ch-1", content='"Hello" said Ana.'))
    eng.open_search("a")
    eng.set_search_mode("narration")
    for hit in eng.search.results:
        print(hit.start, hit.text)
"""

from .engine import Engine
from .models import (
    Annotation,
    AnnotationNote,
    ChapterRecord,
    DialogueFormats,
    Entity,
    EntityLink,
    EntityType,
    MentionedEntities,
    SearchMode,
    SearchOptions,
    SearchResult,
    Segment,
)
from .scheduling import DeferredTask, ManualScheduler

__version__ = "1.0.0"
__all__ = [
    "Engine",
    "Annotation",
    "AnnotationNote",
    "ChapterRecord",
    "DialogueFormats",
    "Entity",
    "EntityLink",
    "EntityType",
    "MentionedEntities",
    "SearchMode",
    "SearchOptions",
    "SearchResult",
    "Segment",
    "DeferredTask",
    "ManualScheduler",
]
