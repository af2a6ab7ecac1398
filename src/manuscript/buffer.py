# src/manuscript/buffer.py
"""
The mutable text buffer and the offset rules every derived structure relies on.

Offsets are zero-based character indices. Ranges are half-open ``[start, end)``
and valid when ``0 <= start < end <= len(content)``. Every mutation returns an
``Edit`` describing the delta so annotations, formats and carets can follow it.
Out-of-range input is clamped, never raised: it happens routinely while typing.
"""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from typing import List, Tuple

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Edit:
    """``removed`` characters at ``start`` were replaced by ``inserted`` new ones."""
    start: int
    removed: int
    inserted: int

    @property
    def old_end(self) -> int:
        return self.start + self.removed

    @property
    def new_end(self) -> int:
        return self.start + self.inserted

    @property
    def delta(self) -> int:
        return self.inserted - self.removed

    @property
    def is_noop(self) -> bool:
        return self.removed == 0 and self.inserted == 0

    def shift(self, offset: int) -> int:
        """Map a pre-edit offset to its post-edit position."""
        if offset <= self.start:
            return offset
        if offset >= self.old_end:
            return offset + self.delta
        # inside the replaced region: land after the inserted text
        return self.new_end

    def map_span(self, start: int, end: int) -> tuple[int, int]:
        """
        Map a pre-edit range through the edit the way a text surface does:
        text typed inside the range or at its end joins it, text typed at its
        start lands before it. A range swallowed by a deletion collapses.
        """
        p = self.start
        if start < p or (start == p and self.removed > 0):
            new_start = start
        elif start >= self.old_end:
            new_start = start + self.delta
        else:
            new_start = self.new_end
        if end < p:
            new_end = end
        elif end >= self.old_end:
            new_end = end + self.delta
        else:
            new_end = self.new_end
        return new_start, max(new_start, new_end)


@dataclass(frozen=True, slots=True)
class Selection:
    anchor: int = 0
    focus: int = 0

    @property
    def start(self) -> int:
        return min(self.anchor, self.focus)

    @property
    def end(self) -> int:
        return max(self.anchor, self.focus)

    @property
    def is_collapsed(self) -> bool:
        return self.anchor == self.focus

    @property
    def caret(self) -> int:
        return self.focus


def diff_edit(old: str, new: str) -> Edit:
    """Smallest single ``Edit`` turning ``old`` into ``new`` (common prefix/suffix trim)."""
    limit = min(len(old), len(new))
    p = 0
    while p < limit and old[p] == new[p]:
        p += 1
    s = 0
    while s < limit - p and old[len(old) - 1 - s] == new[len(new) - 1 - s]:
        s += 1
    return Edit(start=p, removed=len(old) - p - s, inserted=len(new) - p - s)


def diff_hunks(old: str, new: str) -> List[Tuple[int, int, str]]:
    """
    Every changed region turning ``old`` into ``new`` as ``(start, end, text)``
    in ``old`` offsets, last region first so applying them in order never
    shifts the ones still to come. Unchanged text between two changes stays
    out of every hunk, so spans that sit there are never treated as deleted.
    """
    edit = diff_edit(old, new)
    if edit.is_noop:
        return []
    lo = edit.start
    matcher = difflib.SequenceMatcher(None, old[lo:edit.old_end], new[lo:edit.new_end], autojunk=False)
    hunks = [
        (lo + i1, lo + i2, new[lo + j1:lo + j2])
        for tag, i1, i2, j1, j2 in matcher.get_opcodes()
        if tag != "equal"
    ]
    hunks.reverse()
    return hunks


class TextBuffer:
    """
    Plain-text buffer plus the selection owned by the engine.

    The host surface is a thin adapter: it translates key presses, pastes and
    clicks into ``type_text`` / ``replace`` / ``set_selection`` calls.
    """

    def __init__(self, content: str = "") -> None:
        self._content = content or ""
        self._selection = Selection(len(self._content), len(self._content))

    # ------------- accessors -------------

    @property
    def content(self) -> str:
        return self._content

    @property
    def selection(self) -> Selection:
        return self._selection

    @property
    def caret(self) -> int:
        return self._selection.focus

    def __len__(self) -> int:
        return len(self._content)

    def clamp(self, offset: int) -> int:
        return max(0, min(int(offset), len(self._content)))

    def is_valid_range(self, start: int, end: int) -> bool:
        return 0 <= start < end <= len(self._content)

    def slice(self, start: int, end: int) -> str:
        return self._content[self.clamp(start):self.clamp(end)]

    def selected_text(self) -> str:
        sel = self._selection
        return self._content[sel.start:sel.end]

    # ------------- selection -------------

    def set_selection(self, anchor: int, focus: int | None = None) -> Selection:
        focus = anchor if focus is None else focus
        self._selection = Selection(self.clamp(anchor), self.clamp(focus))
        return self._selection

    def set_caret(self, offset: int) -> Selection:
        return self.set_selection(offset, offset)

    # ------------- mutations -------------

    def replace(self, start: int, end: int, text: str) -> Edit:
        start, end = self.clamp(start), self.clamp(end)
        if end < start:
            start, end = end, start
        text = text or ""
        edit = Edit(start=start, removed=end - start, inserted=len(text))
        if edit.is_noop:
            return edit
        self._content = self._content[:start] + text + self._content[end:]
        sel = self._selection
        self._selection = Selection(edit.shift(sel.anchor), edit.shift(sel.focus))
        log.debug("edit at %d: -%d +%d (len=%d)", start, edit.removed, edit.inserted, len(self._content))
        return edit

    def insert(self, offset: int, text: str) -> Edit:
        return self.replace(offset, offset, text)

    def delete(self, start: int, end: int) -> Edit:
        return self.replace(start, end, "")

    def type_text(self, text: str) -> Edit:
        """Replace the selection with ``text`` and collapse the caret after it."""
        sel = self._selection
        edit = self.replace(sel.start, sel.end, text)
        self.set_caret(edit.new_end)
        return edit

    def set_content(self, content: str) -> Edit:
        """Replace the whole buffer; the returned edit covers only what changed."""
        content = content or ""
        edit = diff_edit(self._content, content)
        if edit.is_noop:
            return edit
        self._content = content
        sel = self._selection
        self._selection = Selection(self.clamp(edit.shift(sel.anchor)), self.clamp(edit.shift(sel.focus)))
        return edit
