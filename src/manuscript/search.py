# src/manuscript/search.py
"""
Full-text search over the buffer with dialogue/narration context filtering.

Pure functions (``find``, ``replace_current``, ``replace_all``) carry the
algorithm; ``SearchSession`` holds the state of the search surface (term,
options, result cursor) and recomputes results whenever an input changes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace as dc_replace
from typing import Callable, List, Optional, Tuple

from .dialogue import detect_dialogues, is_range_in_dialogue
from .models import DialogueFormats, SearchMode, SearchOptions, SearchResult
from .scheduling import DeferredTask, Scheduler

log = logging.getLogger(__name__)


def _fold(text: str) -> str:
    """
    Lower-case without changing length, so offsets in the folded text are
    offsets in the original (a few characters grow when lower-cased).
    """
    folded = text.lower()
    if len(folded) == len(text):
        return folded
    return "".join(ch if len(ch.lower()) != 1 else ch.lower() for ch in text)


def _iter_plain(haystack: str, needle: str):
    # overlapping scan: resume one past each hit
    i = haystack.find(needle)
    while i != -1:
        yield i, i + len(needle)
        i = haystack.find(needle, i + 1)


def _iter_whole_word(haystack: str, needle: str):
    for m in re.finditer(rf"\b{re.escape(needle)}\b", haystack):
        if m.end() > m.start():
            yield m.start(), m.end()


def find(content: str, term: str, options: Optional[SearchOptions] = None) -> List[SearchResult]:
    """
    Return every match of ``term`` in ``content`` ordered by position.

    Case-insensitive search folds both sides; whole-word search uses word
    boundaries on the folded text. Under mode ``dialogues`` a match is kept only
    if it overlaps some dialogue range, under ``narration`` only if it overlaps
    none, under ``all`` always.
    """
    options = options or SearchOptions()
    if not term or not content:
        return []

    haystack, needle = content, term
    if not options.case_sensitive:
        haystack, needle = _fold(content), _fold(term)

    mode = SearchMode(options.mode)
    dialogue_ranges = [] if mode is SearchMode.ALL else detect_dialogues(content, options.dialogue_formats)

    def in_context(start: int, end: int) -> bool:
        if mode is SearchMode.ALL:
            return True
        inside = is_range_in_dialogue(start, end, dialogue_ranges)
        return inside if mode is SearchMode.DIALOGUES else not inside

    scan = _iter_whole_word if options.whole_word else _iter_plain
    results: List[SearchResult] = []
    for start, end in scan(haystack, needle):
        if in_context(start, end):
            results.append(SearchResult(index=len(results), start=start, end=end, text=content[start:end]))
    return results


def replace_current(content: str, results: List[SearchResult], current_index: int, replacement: str) -> Optional[str]:
    """Substitute only the current match; ``None`` when there is nothing to do."""
    if not results or not replacement:
        return None
    if not 0 <= current_index < len(results):
        return None
    hit = results[current_index]
    if hit.end > len(content) or content[hit.start:hit.end] != hit.text:
        log.debug("stale search result at %d, skipping replace", hit.start)
        return None
    return content[:hit.start] + replacement + content[hit.end:]


def replacement_hunks(results: List[SearchResult], replacement: str) -> List[Tuple[int, int, str]]:
    """
    The ``(start, end, text)`` replacements of a replace-all, highest offset
    first, so earlier replacements never shift the offsets of matches still to
    be replaced. Overlapping hits (plain scans can overlap) are skipped once a
    neighbour was replaced.
    """
    if not results or not replacement:
        return []
    hunks: List[Tuple[int, int, str]] = []
    floor: Optional[int] = None
    for hit in sorted(results, key=lambda r: r.start, reverse=True):
        if floor is not None and hit.end > floor:
            continue
        hunks.append((hit.start, hit.end, replacement))
        floor = hit.start
    return hunks


def replace_all(content: str, results: List[SearchResult], replacement: str) -> Optional[str]:
    hunks = replacement_hunks(results, replacement)
    if not hunks:
        return None
    out = content
    for start, end, text in hunks:
        out = out[:start] + text + out[end:]
    return out


class SearchSession:
    """
    State of the search surface. The engine feeds it the buffer via
    ``refresh(content)`` after every edit; the session never mutates the buffer,
    replace operations return the new content for the caller to apply.
    """

    def __init__(
        self,
        *,
        options: Optional[SearchOptions] = None,
        scheduler: Optional[Scheduler] = None,
        debounce_ms: int = 0,
        on_results: Optional[Callable[[List[SearchResult]], None]] = None,
    ) -> None:
        self.is_open = False
        self.search_term = ""
        self.replace_term = ""
        self.options = options or SearchOptions()
        self.results: List[SearchResult] = []
        self.current_index = 0
        self._content = ""
        self._on_results = on_results
        self._recompute_task: Optional[DeferredTask] = None
        if scheduler is not None and debounce_ms > 0:
            self._recompute_task = DeferredTask(scheduler, debounce_ms, self._recompute, name="search")

    # ------------- surface lifecycle -------------

    def open(self, initial_term: str = "") -> None:
        self.is_open = True
        if initial_term:
            self.search_term = initial_term
            self._recompute(reset_cursor=True)

    def close(self) -> None:
        if self._recompute_task:
            self._recompute_task.cancel()
        self.is_open = False
        self.search_term = ""
        self.replace_term = ""
        self.results = []
        self.current_index = 0
        self._notify()

    # ------------- inputs -------------

    def refresh(self, content: str) -> None:
        """Content changed: recompute, keeping the cursor where it was (clamped)."""
        self._content = content or ""
        if self.search_term:
            self._recompute(reset_cursor=False)

    def set_search_term(self, term: str) -> None:
        self.search_term = term or ""
        self._request_recompute()

    def set_replace_term(self, term: str) -> None:
        self.replace_term = term or ""

    def toggle_case_sensitive(self) -> None:
        self._set_options(case_sensitive=not self.options.case_sensitive)

    def toggle_whole_word(self) -> None:
        self._set_options(whole_word=not self.options.whole_word)

    def set_search_mode(self, mode: SearchMode | str) -> None:
        self._set_options(mode=SearchMode(mode))

    def set_dialogue_formats(self, formats: DialogueFormats) -> None:
        self._set_options(dialogue_formats=formats)

    def _set_options(self, **changes) -> None:
        self.options = dc_replace(self.options, **changes)
        self._request_recompute()

    # ------------- navigation -------------

    @property
    def total_results(self) -> int:
        return len(self.results)

    @property
    def current_result(self) -> Optional[SearchResult]:
        if 0 <= self.current_index < len(self.results):
            return self.results[self.current_index]
        return None

    def go_to_next(self) -> Optional[SearchResult]:
        n = len(self.results)
        if n == 0:
            return None
        self.current_index = (self.current_index + 1) % n
        return self.current_result

    def go_to_previous(self) -> Optional[SearchResult]:
        n = len(self.results)
        if n == 0:
            return None
        self.current_index = (self.current_index - 1 + n) % n
        return self.current_result

    # ------------- replace -------------

    def replace_current(self) -> Optional[str]:
        new_content = replace_current(self._content, self.results, self.current_index, self.replace_term)
        if new_content is None:
            return None
        if self.current_index >= len(self.results) - 1:
            # replaced the last hit: move to what will be the new last one
            self.current_index = max(0, len(self.results) - 2)
        return new_content

    def replace_all(self) -> Optional[str]:
        return replace_all(self._content, self.results, self.replace_term)

    # ------------- internals -------------

    def _request_recompute(self) -> None:
        if self._recompute_task is not None:
            self._recompute_task.schedule(reset_cursor=True)
        else:
            self._recompute(reset_cursor=True)

    def _recompute(self, reset_cursor: bool = True) -> None:
        self.results = find(self._content, self.search_term, self.options)
        n = len(self.results)
        if reset_cursor or n == 0:
            self.current_index = 0
        else:
            self.current_index = min(self.current_index, n - 1)
        log.debug("search %r: %d result(s)", self.search_term, n)
        self._notify()

    def _notify(self) -> None:
        if self._on_results is not None:
            self._on_results(self.results)
