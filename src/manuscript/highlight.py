# src/manuscript/highlight.py
"""
Merge annotation and search ranges into a flat, paintable list of segments,
and keep the caret in place across re-renders.

Nesting policy: annotations are the outer layer, search hits the inner one.
The buffer is split at every interval boundary, so a search hit that only
partly overlaps an annotation produces segments carrying both the annotation
id and the search kind; no range is ever dropped. When two intervals of the
same layer overlap (stale host data), the one with the smaller start owns the
shared characters (list order breaks ties); ``search-current`` beats ``search``.
"""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import Annotation, SearchResult, Segment

SEARCH = "search"
SEARCH_CURRENT = "search-current"

# (start, end, layer, tag, order); layer 0 = annotation, 1 = search
_Interval = Tuple[int, int, int, str, int]


def _intervals(
    content_len: int,
    annotations: Iterable[Annotation],
    search_results: Iterable[SearchResult],
    current_search_index: int,
) -> List[_Interval]:
    out: List[_Interval] = []
    for order, ann in enumerate(annotations):
        s, e = max(0, ann.start_offset), min(ann.end_offset, content_len)
        if e > s:
            out.append((s, e, 0, ann.id, order))
    for order, hit in enumerate(search_results):
        s, e = max(0, hit.start), min(hit.end, content_len)
        if e > s:
            tag = SEARCH_CURRENT if order == current_search_index else SEARCH
            out.append((s, e, 1, tag, order))
    out.sort(key=lambda iv: (iv[0], iv[2], iv[4]))
    return out


def _owner(active: List[_Interval], layer: int) -> Optional[_Interval]:
    # earliest start wins within a layer; search-current wins among search hits
    candidates = [iv for iv in active if iv[2] == layer]
    if not candidates:
        return None
    if layer == 1:
        current = [iv for iv in candidates if iv[3] == SEARCH_CURRENT]
        if current:
            return current[0]
    return candidates[0]


def render(
    content: str,
    annotations: Sequence[Annotation] = (),
    search_results: Sequence[SearchResult] = (),
    current_search_index: int = -1,
    selected_annotation_id: Optional[str] = None,
) -> List[Segment]:
    """
    One left-to-right pass over the start-sorted intervals. Plain runs between
    intervals and highlighted runs are emitted in order, so concatenating the
    segment texts reproduces ``content`` exactly.
    """
    if not content:
        return []
    intervals = _intervals(len(content), annotations, search_results, current_search_index)
    if not intervals:
        return [Segment(text=content, start=0, end=len(content))]

    bounds = sorted({0, len(content), *(iv[0] for iv in intervals), *(iv[1] for iv in intervals)})
    segments: List[Segment] = []
    active: List[_Interval] = []
    nxt = 0
    for lo, hi in zip(bounds, bounds[1:]):
        while nxt < len(intervals) and intervals[nxt][0] <= lo:
            active.append(intervals[nxt])
            nxt += 1
        active = [iv for iv in active if iv[1] > lo]

        ann = _owner(active, 0)
        hit = _owner(active, 1)
        ann_id = ann[3] if ann else None
        seg = Segment(
            text=content[lo:hi],
            start=lo,
            end=hi,
            annotation_id=ann_id,
            selected=ann_id is not None and ann_id == selected_annotation_id,
            search=hit[3] if hit else None,
        )
        prev = segments[-1] if segments else None
        if prev and (prev.annotation_id, prev.selected, prev.search) == (seg.annotation_id, seg.selected, seg.search):
            segments[-1] = Segment(prev.text + seg.text, prev.start, hi, prev.annotation_id, prev.selected, prev.search)
        else:
            segments.append(seg)
    return segments


# ---------------------------------------------------------------- markup

def _escape(text: str) -> str:
    text = "".join(ch for ch in text if ch in "\n\t" or ch.isprintable())
    return html.escape(text, quote=True).replace("\n", "<br>")


def to_markup(segments: Iterable[Segment]) -> str:
    """
    HTML fragment for hosts that paint markup. Raw buffer text is always
    escaped, so it can never be read back as tags.
    """
    parts: List[str] = []
    for seg in segments:
        body = _escape(seg.text)
        if seg.search:
            cls = "search-highlight search-current" if seg.search == SEARCH_CURRENT else "search-highlight"
            body = f'<span class="{cls}" data-search-result="true">{body}</span>'
        if seg.annotation_id:
            cls = "annotation-highlight annotation-selected" if seg.selected else "annotation-highlight"
            body = f'<span class="{cls}" data-annotation-id="{html.escape(seg.annotation_id)}">{body}</span>'
        parts.append(body)
    return "".join(parts)


# ---------------------------------------------------------------- caret

@dataclass(frozen=True, slots=True)
class CaretLocation:
    segment_index: int
    offset_in_segment: int
    offset: int           # absolute offset after clamping


class CaretRestorer:
    """
    Captured before the surface is replaced; ``apply`` finds where the caret
    goes in the new segment list. Applying twice gives the same location.
    """

    def __init__(self, content: str, offset: int) -> None:
        self.offset = max(0, min(int(offset), len(content)))

    def apply(self, segments: Sequence[Segment]) -> CaretLocation:
        if not segments:
            return CaretLocation(0, 0, 0)
        walked = 0
        for i, seg in enumerate(segments):
            n = len(seg.text)
            if walked + n >= self.offset:
                return CaretLocation(i, self.offset - walked, self.offset)
            walked += n
        # offset past the rendered text: clamp to the end
        last = len(segments) - 1
        return CaretLocation(last, len(segments[last].text), walked)


def preserve_caret(content: str, pre_edit_offset: int) -> CaretRestorer:
    return CaretRestorer(content, pre_edit_offset)
