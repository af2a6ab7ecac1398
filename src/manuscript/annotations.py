# src/manuscript/annotations.py
"""
Annotation lifecycle: creation from a selection (with overlap merging), offset
recomputation after every buffer edit, and note CRUD.

All functions are pure: they take the current annotation list and return a new
one. Annotations never trust offsets carried over verbatim across an edit; the
engine projects the rendered spans through the edit (``project_spans``) and
re-measures them (``recompute_after_edit``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Sequence, Tuple

from .buffer import Edit
from .dialogue import ranges_overlap
from .models import Annotation, AnnotationNote, new_id, now_iso

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RenderedSpan:
    """An annotation highlight as it reads on the surface after an edit."""
    annotation_id: str
    text: str
    offset: int           # characters preceding the span in the full buffer


# ---------------------------------------------------------------- lookup

def find_annotation(annotations: Iterable[Annotation], annotation_id: str) -> Optional[Annotation]:
    return next((a for a in annotations if a.id == annotation_id), None)


def annotation_at(annotations: Iterable[Annotation], offset: int) -> Optional[Annotation]:
    return next((a for a in annotations if a.start_offset <= offset < a.end_offset), None)


def overlapping(annotations: Iterable[Annotation], start: int, end: int) -> List[Annotation]:
    return [a for a in annotations if ranges_overlap(a.start_offset, a.end_offset, start, end)]


# ---------------------------------------------------------------- creation

def create_from_selection(
    text: str,
    start: int,
    end: int,
    existing: Sequence[Annotation],
    content: Optional[str] = None,
) -> Tuple[Optional[Annotation], List[Annotation]]:
    """
    Create an annotation over ``[start, end)``.

    Every existing annotation overlapping the selection is merged into the new
    one: their notes are concatenated in list order and the originals removed,
    so two annotations never persist over intersecting ranges.

    Returns ``(annotation, new_list)``; a zero-length or out-of-bounds
    selection returns ``(None, list(existing))``.
    """
    existing = list(existing)
    if content is not None:
        if not 0 <= start < end <= len(content):
            return None, existing
        text = content[start:end]
    if start >= end or not text:
        return None, existing

    merged = overlapping(existing, start, end)
    notes: List[AnnotationNote] = []
    for ann in merged:
        notes.extend(ann.notes)

    annotation = Annotation(
        id=new_id("annotation"),
        start_offset=start,
        end_offset=end,
        text=text,
        notes=tuple(notes),
    )
    merged_ids = {a.id for a in merged}
    if merged_ids:
        log.info("annotation %s merged %d overlapping annotation(s)", annotation.id, len(merged_ids))
    survivors = [a for a in existing if a.id not in merged_ids]
    survivors.append(annotation)
    return annotation, survivors


# ---------------------------------------------------------------- recomputation

def project_spans(annotations: Iterable[Annotation], edit: Edit, content: str) -> List[RenderedSpan]:
    """
    Read the highlight spans back as a text surface would show them after
    ``edit``: text typed inside a span or at its end grows it, text typed at its
    start lands before it, deleted text leaves the spans it covered.
    ``content`` is the buffer after the edit.
    """
    spans: List[RenderedSpan] = []
    for ann in annotations:
        s, e = edit.map_span(ann.start_offset, ann.end_offset)
        s, e = max(0, min(s, len(content))), max(0, min(e, len(content)))
        spans.append(RenderedSpan(ann.id, content[s:e] if e > s else "", s))
    return spans


def recompute_after_edit(
    annotations: Sequence[Annotation],
    spans: Iterable[RenderedSpan],
    content: str,
) -> List[Annotation]:
    """
    Re-measure every surviving span: its visible text becomes the new ``text``
    and its offset the number of characters preceding it. Spans whose text is
    empty (or only whitespace) are dropped, deleting their annotation.
    """
    by_id = {a.id: a for a in annotations}
    updated: List[Annotation] = []
    for span in spans:
        ann = by_id.get(span.annotation_id)
        if ann is None:
            continue
        if not span.text.strip():
            log.debug("annotation %s lost its text, dropping", ann.id)
            continue
        start = span.offset
        end = start + len(span.text)
        if content[start:end] != span.text:
            # surface and buffer disagree: the buffer wins
            text = content[start:end]
            if not text.strip():
                continue
        else:
            text = span.text
        updated.append(replace(ann, start_offset=start, end_offset=start + len(text), text=text))
    return updated


def follow_edit(annotations: Sequence[Annotation], edit: Edit, content: str) -> List[Annotation]:
    """Project + recompute in one step (what the engine runs after each edit)."""
    if edit.is_noop:
        return list(annotations)
    return recompute_after_edit(annotations, project_spans(annotations, edit, content), content)


def revalidate(annotations: Iterable[Annotation], content: str) -> List[Annotation]:
    """
    Clamp host-supplied annotations to the buffer and refresh their text
    snapshot; empty ones are dropped.
    """
    out: List[Annotation] = []
    for ann in annotations:
        s = max(0, min(ann.start_offset, len(content)))
        e = max(0, min(ann.end_offset, len(content)))
        text = content[s:e]
        if e <= s or not text.strip():
            continue
        out.append(replace(ann, start_offset=s, end_offset=e, text=text))
    return out


# ---------------------------------------------------------------- notes

def _with_notes(annotations: Sequence[Annotation], annotation_id: str, fn) -> List[Annotation]:
    out: List[Annotation] = []
    for ann in annotations:
        if ann.id != annotation_id:
            out.append(ann)
            continue
        notes = fn(list(ann.notes))
        if notes is None:
            out.append(ann)
        elif notes or not ann.notes:
            out.append(replace(ann, notes=tuple(notes)))
        # else: its last note was removed, so the annotation goes too
    return out


def add_note(
    annotations: Sequence[Annotation],
    annotation_id: str,
    text: str,
    is_important: bool = False,
) -> List[Annotation]:
    text = (text or "").strip()
    if not text:
        return list(annotations)
    note = AnnotationNote(id=new_id("note"), text=text, is_important=is_important)
    return _with_notes(annotations, annotation_id, lambda notes: notes + [note])


def edit_note(annotations: Sequence[Annotation], annotation_id: str, note_id: str, text: str) -> List[Annotation]:
    text = (text or "").strip()
    if not text:
        return list(annotations)

    def fn(notes: List[AnnotationNote]):
        return [replace(n, text=text, updated_at=now_iso()) if n.id == note_id else n for n in notes]

    return _with_notes(annotations, annotation_id, fn)


def delete_note(annotations: Sequence[Annotation], annotation_id: str, note_id: str) -> List[Annotation]:
    def fn(notes: List[AnnotationNote]):
        kept = [n for n in notes if n.id != note_id]
        return None if len(kept) == len(notes) else kept

    return _with_notes(annotations, annotation_id, fn)


def toggle_important(annotations: Sequence[Annotation], annotation_id: str, note_id: str) -> List[Annotation]:
    def fn(notes: List[AnnotationNote]):
        return [
            replace(n, is_important=not n.is_important, updated_at=now_iso()) if n.id == note_id else n
            for n in notes
        ]

    return _with_notes(annotations, annotation_id, fn)


def delete_annotation(annotations: Sequence[Annotation], annotation_id: str) -> List[Annotation]:
    return [a for a in annotations if a.id != annotation_id]
