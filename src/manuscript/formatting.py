# src/manuscript/formatting.py
"""
Explicit formatting model: bold/italic runs over offsets and one alignment per
paragraph. Formatting lives beside the plain text, never inside it, so offsets
stay plain character indices.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .buffer import Edit

log = logging.getLogger(__name__)


class Alignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"
    JUSTIFY = "justify"


_STYLES = ("bold", "italic")


@dataclass(frozen=True, slots=True)
class FormatRange:
    start: int
    end: int
    bold: bool = False
    italic: bool = False

    @property
    def is_plain(self) -> bool:
        return not (self.bold or self.italic)

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end, "bold": self.bold, "italic": self.italic}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FormatRange":
        return cls(
            start=int(data["start"]),
            end=int(data["end"]),
            bold=bool(data.get("bold", False)),
            italic=bool(data.get("italic", False)),
        )


def paragraph_index(content: str, offset: int) -> int:
    """Zero-based index of the paragraph (newline-separated line) holding ``offset``."""
    offset = max(0, min(offset, len(content)))
    return content.count("\n", 0, offset)


def _normalize(runs: Iterable[FormatRange]) -> List[FormatRange]:
    out: List[FormatRange] = []
    for run in sorted(runs, key=lambda r: r.start):
        if run.end <= run.start or run.is_plain:
            continue
        prev = out[-1] if out else None
        if prev and prev.end == run.start and (prev.bold, prev.italic) == (run.bold, run.italic):
            out[-1] = replace(prev, end=run.end)
        else:
            out.append(run)
    return out


class FormatModel:
    def __init__(
        self,
        runs: Iterable[FormatRange] = (),
        alignments: Optional[Dict[int, Alignment]] = None,
    ) -> None:
        self._runs: List[FormatRange] = _normalize(runs)
        self._alignments: Dict[int, Alignment] = dict(alignments or {})

    # ------------- queries -------------

    @property
    def runs(self) -> List[FormatRange]:
        return list(self._runs)

    def alignment_of(self, paragraph: int) -> Alignment:
        return self._alignments.get(paragraph, Alignment.LEFT)

    def alignment_at(self, content: str, offset: int) -> Alignment:
        return self.alignment_of(paragraph_index(content, offset))

    def _covered(self, start: int, end: int, style: str) -> int:
        total = 0
        for run in self._runs:
            if getattr(run, style):
                total += max(0, min(run.end, end) - max(run.start, start))
        return total

    def is_bold(self, start: int, end: int) -> bool:
        return end > start and self._covered(start, end, "bold") == end - start

    def is_italic(self, start: int, end: int) -> bool:
        return end > start and self._covered(start, end, "italic") == end - start

    def styles_at(self, offset: int) -> Tuple[bool, bool]:
        run = next((r for r in self._runs if r.start <= offset < r.end), None)
        return (run.bold, run.italic) if run else (False, False)

    # ------------- styles -------------

    def _set_style(self, start: int, end: int, style: str, value: bool) -> None:
        bounds = sorted({start, end, *(r.start for r in self._runs), *(r.end for r in self._runs)})
        pieces: List[FormatRange] = []
        for lo, hi in zip(bounds, bounds[1:]):
            bold, italic = self.styles_at(lo)
            piece = FormatRange(lo, hi, bold, italic)
            if start <= lo and hi <= end:
                piece = replace(piece, **{style: value})
            pieces.append(piece)
        self._runs = _normalize(pieces)

    def _toggle(self, start: int, end: int, style: str) -> bool:
        if end < start:
            start, end = end, start
        if end == start:
            return False
        value = self._covered(start, end, style) != end - start
        self._set_style(start, end, style, value)
        log.debug("%s %s on [%d, %d)", "set" if value else "cleared", style, start, end)
        return value

    def toggle_bold(self, start: int, end: int) -> bool:
        """Clear bold if the whole range is bold, otherwise make all of it bold. Returns the new state."""
        return self._toggle(start, end, "bold")

    def toggle_italic(self, start: int, end: int) -> bool:
        return self._toggle(start, end, "italic")

    # ------------- alignment -------------

    def set_alignment(self, content: str, offset_or_range, alignment) -> None:
        """Align every paragraph touched by an offset or a ``(start, end)`` range."""
        alignment = Alignment(alignment)
        if isinstance(offset_or_range, tuple):
            start, end = offset_or_range
        else:
            start = end = offset_or_range
        first = paragraph_index(content, min(start, end))
        last = paragraph_index(content, max(start, end))
        for p in range(first, last + 1):
            if alignment is Alignment.LEFT:
                self._alignments.pop(p, None)
            else:
                self._alignments[p] = alignment

    # ------------- edits -------------

    def apply_edit(self, edit: Edit, old_content: str, new_content: str) -> None:
        """
        Follow a buffer edit: runs shift or shrink like annotation spans, and
        paragraphs after the edit renumber by the newlines it added or removed.
        Paragraphs merged by a deleted newline take the first one's alignment.
        """
        if edit.is_noop:
            return
        runs: List[FormatRange] = []
        for run in self._runs:
            s, e = edit.map_span(run.start, run.end)
            runs.append(replace(run, start=s, end=e))
        self._runs = _normalize(runs)

        removed_nl = old_content.count("\n", edit.start, edit.old_end)
        added_nl = new_content.count("\n", edit.start, edit.new_end)
        if not (removed_nl or added_nl):
            return
        p = paragraph_index(old_content, edit.start)
        shifted: Dict[int, Alignment] = {}
        for idx, value in self._alignments.items():
            if idx <= p:
                shifted[idx] = value
            elif idx > p + removed_nl:
                shifted[idx + added_nl - removed_nl] = value
        self._alignments = shifted

    # ------------- records -------------

    def to_records(self) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
        return (
            [r.to_dict() for r in self._runs],
            {str(k): v.value for k, v in sorted(self._alignments.items())},
        )

    @classmethod
    def from_records(
        cls,
        formats: Iterable[Dict[str, Any]] = (),
        alignments: Optional[Dict[str, str]] = None,
    ) -> "FormatModel":
        parsed: Dict[int, Alignment] = {}
        for key, value in (alignments or {}).items():
            try:
                parsed[int(key)] = Alignment(value)
            except ValueError:
                log.warning("ignoring bad alignment record %r=%r", key, value)
        return cls([FormatRange.from_dict(f) for f in formats], parsed)
