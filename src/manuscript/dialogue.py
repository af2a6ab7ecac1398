# src/manuscript/dialogue.py
"""Dialogue vs. narration classification by quote and dash heuristics."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from .models import DialogueFormats, DialogueRange, DialogueType

# /* ~~~ quotes may wrap a soft line break but never a blank line ~~~ */
_NO_BLANK = r"(?!\n[ \t]*\n)"

_DOUBLE = re.compile(
    r'"(?:' + _NO_BLANK + r'[^"])*?"'
    r"|“(?:" + _NO_BLANK + r"[^”])*?”"
)

# apostrophes inside words (don't, O'Neil) do not close a single-quoted span
_SINGLE = re.compile(
    r"(?<!\w)'(?:" + _NO_BLANK + r"(?:[^']|(?<=\w)'(?=\w)))*?'(?!\w)"
    r"|‘(?:" + _NO_BLANK + r"(?:[^’]|(?<=\w)’(?=\w)))*?’(?!\w)"
)

_DASHES = ("—", "–", "--")


def ranges_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """
    Four-way overlap test shared by dialogue, search and annotations.

    ``a`` overlaps ``[b_start, b_end)`` when it starts inside it, ends inside it,
    or fully contains it. A range fully inside ``b`` is caught by the first test.
    """
    if a_start in range(b_start, b_end):
        return True
    if b_start < a_end <= b_end:
        return True
    return a_start <= b_start and a_end >= b_end and b_end > b_start


def _scan(pattern: re.Pattern, text: str, kind: DialogueType) -> Iterable[DialogueRange]:
    for m in pattern.finditer(text):
        yield DialogueRange(start=m.start(), end=m.end(), type=kind)


def _starts_with_dash(line: str) -> bool:
    return line.lstrip().startswith(_DASHES)


def _scan_dash_lines(text: str) -> Iterable[DialogueRange]:
    """
    A line whose trimmed form starts with a dash opens a range that runs through
    following lines until a dash-led line, a blank line, or the end of text.
    """
    open_start: Optional[int] = None
    open_end = 0
    pos = 0
    for line in text.split("\n"):
        line_start, line_end = pos, pos + len(line)
        pos = line_end + 1  # skip the "\n"

        if _starts_with_dash(line):
            if open_start is not None:
                yield DialogueRange(open_start, open_end, DialogueType.EM_DASH)
            open_start = line_start + (len(line) - len(line.lstrip()))
            open_end = line_end
        elif not line.strip():
            if open_start is not None:
                yield DialogueRange(open_start, open_end, DialogueType.EM_DASH)
            open_start = None
        elif open_start is not None:
            open_end = line_end  # soft-wrapped continuation

    if open_start is not None:
        yield DialogueRange(open_start, open_end, DialogueType.EM_DASH)


def detect_dialogues(content: str, formats: Optional[DialogueFormats] = None) -> List[DialogueRange]:
    """
    Return every dialogue range for the enabled formats, sorted by start.
    Ranges from different formats may overlap and are not merged.
    """
    formats = formats or DialogueFormats()
    if not content:
        return []
    ranges: List[DialogueRange] = []
    if formats.double_quotes:
        ranges.extend(_scan(_DOUBLE, content, DialogueType.DOUBLE_QUOTES))
    if formats.single_quotes:
        ranges.extend(_scan(_SINGLE, content, DialogueType.SINGLE_QUOTES))
    if formats.em_dash:
        ranges.extend(_scan_dash_lines(content))
    ranges.sort(key=lambda r: r.start)  # stable: equal starts keep format order
    return ranges


def is_range_in_dialogue(start: int, end: int, ranges: Iterable[DialogueRange]) -> bool:
    return any(ranges_overlap(r.start, r.end, start, end) for r in ranges)
