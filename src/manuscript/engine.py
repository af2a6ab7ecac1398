# src/manuscript/engine.py
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from . import annotations as ann_ops
from . import config as CFG
from .autolink import AutoLinker
from .buffer import Edit, Selection, TextBuffer, diff_hunks
from .DB.api import ChapterStore, make_store
from .dialogue import detect_dialogues
from .formatting import Alignment, FormatModel
from .highlight import CaretLocation, preserve_caret, render, to_markup
from .history import UndoRedoHistory
from .metrics import ChapterMetrics, compute_metrics
from .models import (
    Annotation,
    ChapterRecord,
    DialogueFormats,
    DialogueRange,
    EntityLink,
    HistoryState,
    MentionedEntities,
    SearchMode,
    SearchOptions,
    SearchResult,
    Segment,
    now_iso,
)
from .scheduling import ManualScheduler, Scheduler
from .search import SearchSession, replacement_hunks

log = logging.getLogger(__name__)


def _default_formats() -> DialogueFormats:
    return DialogueFormats(
        double_quotes=CFG.DIALOGUE_DOUBLE_QUOTES,
        single_quotes=CFG.DIALOGUE_SINGLE_QUOTES,
        em_dash=CFG.DIALOGUE_EM_DASH,
    )


class Engine:
    """
    Thin orchestration layer that glues together:
      - the text buffer and its selection (TextBuffer),
      - annotations and their notes (annotations.*),
      - bold/italic runs and paragraph alignment (FormatModel),
      - the search surface (SearchSession),
      - undo/redo snapshots (UndoRedoHistory),
      - fuzzy entity links with a blacklist (AutoLinker),
      - the host's chapter store (ChapterStore), when one is attached.

    Public API (used by the CLI, Flask and the desktop host):
      * load(record) / open(chapter_id, db_dsn=...): start editing a chapter
      * edit / type_text / set_selection / content setter: mutate the buffer
      * annotation, note, search, history, formatting and blacklist operations
      * render() / markup(): paintable segments for the host
      * tick():      run deferred work that is due (history push, auto-link)
      * save() / to_record(): hand the chapter back to the host
      * shutdown():  cancel pending timers and close the store

    Every buffer mutation runs the same pipeline, in this order: annotations
    are recomputed, formatting shifted, search results refreshed, the surface
    re-rendered with the caret restored, then the history push and the
    auto-link rescan are scheduled.
    """

    # ------------- lifecycle -------------

    def __init__(
        self,
        *,
        scheduler: Optional[Scheduler] = None,
        history_max_size: int = CFG.HISTORY_MAX_SIZE,
        history_debounce_ms: int = CFG.HISTORY_DEBOUNCE_MS,
        autolink_threshold: float = CFG.AUTOLINK_THRESHOLD,
        autolink_debounce_ms: int = CFG.AUTOLINK_DEBOUNCE_MS,
        autolink_space_delay_ms: int = CFG.AUTOLINK_SPACE_DELAY_MS,
        search_debounce_ms: int = CFG.SEARCH_DEBOUNCE_MS,
        on_blacklist_change: Optional[Callable[[List[str]], None]] = None,
        on_render: Optional[Callable[[List[Segment]], None]] = None,
    ) -> None:
        self.scheduler: Scheduler = scheduler if scheduler is not None else ManualScheduler()
        self.buffer = TextBuffer()
        self._annotations: List[Annotation] = []
        self.formats = FormatModel()
        self.selected_annotation_id: Optional[str] = None
        self.segments: List[Segment] = []
        self.caret_location: Optional[CaretLocation] = None
        self.record: Optional[ChapterRecord] = None
        self._store: Optional[ChapterStore] = None
        self._on_blacklist_change = on_blacklist_change
        self._on_render = on_render
        self._in_pipeline = False

        self.search = SearchSession(
            options=SearchOptions(
                mode=SearchMode(CFG.SEARCH_DEFAULT_MODE),
                dialogue_formats=_default_formats(),
            ),
            scheduler=self.scheduler,
            debounce_ms=search_debounce_ms,
            on_results=self._search_results_changed,
        )
        self.history = UndoRedoHistory(
            self.scheduler,
            max_size=history_max_size,
            debounce_ms=history_debounce_ms,
        )
        self.autolinker = AutoLinker(
            self.scheduler,
            lambda: self.buffer.content,
            threshold=autolink_threshold,
            debounce_ms=autolink_debounce_ms,
            space_delay_ms=autolink_space_delay_ms,
            on_blacklist_change=self._blacklist_changed,
        )

    # /* ~~~ Start editing a chapter record handed over by the host ~~~ */
    def load(self, record: ChapterRecord) -> None:
        self.history.cancel()
        self.autolinker.cancel()
        self.record = record
        self.buffer = TextBuffer(record.content)
        self._annotations = ann_ops.revalidate(record.annotations, record.content)
        dropped = len(record.annotations) - len(self._annotations)
        if dropped:
            log.warning("chapter %s: dropped %d annotation(s) outside the text", record.id, dropped)
        self.formats = FormatModel.from_records(record.formats, record.alignments)
        self.selected_annotation_id = None

        blacklist = record.blacklisted_entity_ids
        if self._store is not None:
            blacklist = self._store.read_blacklist(record.id)
        self.autolinker.entities = record.mentioned_entities
        self.autolinker.blacklist.replace(blacklist)
        self.autolinker.links = []

        self.history.reset(self.content, self._annotations, self.buffer.caret)
        self.search.refresh(self.content)
        self._render()
        self.autolinker.refresh()
        log.info(
            "loaded chapter %s: %d chars, %d annotation(s), %d blacklisted",
            record.id, len(self.content), len(self._annotations), len(blacklist),
        )

    # /* ~~~ Attach a store and load one chapter from it ~~~ */
    def open(self, chapter_id: str, *, db_dsn: Optional[str] = None, verbose: bool = False) -> None:
        if verbose:
            logging.basicConfig(level=logging.INFO)
        dsn = db_dsn or CFG.DEFAULT_DSN
        log.info("Initializing chapter store: %s", dsn)
        self.attach_store(make_store(dsn))
        self.load(self._store.read(chapter_id))

    def attach_store(self, store: ChapterStore) -> None:
        if self._store is not None and self._store is not store:
            self._store.close()
        self._store = store

    @property
    def store(self) -> Optional[ChapterStore]:
        return self._store

    def save(self) -> ChapterRecord:
        """Commit pending history and write the chapter back to the store."""
        if self._store is None:
            raise RuntimeError("save() needs an attached store")
        record = self.to_record()
        if record.id in self._store.list_ids():
            self._store.update(record)
        else:
            self._store.create(record)
        log.info("saved chapter %s", record.id)
        return record

    def to_record(self) -> ChapterRecord:
        self.history.flush()
        base = self.record or ChapterRecord(id="untitled")
        formats, alignments = self.formats.to_records()
        self.record = replace(
            base,
            content=self.content,
            annotations=list(self._annotations),
            formats=formats,
            alignments=alignments,
            blacklisted_entity_ids=self.autolinker.blacklist.to_list(),
            mentioned_entities=self.autolinker.entities,
            last_edited=now_iso(),
        )
        return self.record

    def tick(self) -> int:
        """Run due deferred work; only meaningful with a ManualScheduler."""
        run_due = getattr(self.scheduler, "run_due", None)
        return run_due() if run_due is not None else 0

    def shutdown(self) -> None:
        self.history.cancel()
        self.autolinker.cancel()
        self.search.close()
        if self._store is not None:
            self._store.close()
            self._store = None
        log.info("engine shut down")

    # ------------- host-facing state -------------

    @property
    def content(self) -> str:
        return self.buffer.content

    @content.setter
    def content(self, value: str) -> None:
        # each changed region follows the pipeline on its own, so spans between
        # two changes keep their place
        self._apply_hunks(diff_hunks(self.content, value or ""), immediate=True)

    @property
    def annotations(self) -> List[Annotation]:
        return list(self._annotations)

    @annotations.setter
    def annotations(self, value: Iterable[Annotation]) -> None:
        self._annotations = ann_ops.revalidate(value, self.content)
        self._drop_stale_selection()
        self._render()

    @property
    def selection(self) -> Selection:
        return self.buffer.selection

    @property
    def links(self) -> List[EntityLink]:
        return list(self.autolinker.links)

    # ------------- edits -------------

    def edit(self, start: int, end: int, text: str) -> Edit:
        """Replace ``[start, end)`` with ``text``. Multi-character inserts (paste, Enter) commit history at once."""
        immediate = len(text or "") > 1 or "\n" in (text or "")
        return self._apply(lambda: self.buffer.replace(start, end, text), immediate=immediate)

    def type_text(self, text: str) -> Edit:
        immediate = len(text or "") > 1 or "\n" in (text or "")
        edit = self._apply(lambda: self.buffer.type_text(text), immediate=immediate)
        self.key_pressed(text)
        return edit

    def key_pressed(self, key: str) -> None:
        """A space schedules the auto-link rescan sooner than the edit debounce."""
        self.autolinker.on_key(key)

    def delete_backward(self) -> Edit:
        sel = self.buffer.selection
        if sel.is_collapsed:
            return self.edit(max(0, sel.start - 1), sel.start, "")
        return self.edit(sel.start, sel.end, "")

    def set_selection(self, anchor: int, focus: Optional[int] = None) -> Selection:
        return self.buffer.set_selection(anchor, focus)

    def _apply(self, mutate: Callable[[], Edit], *, immediate: bool) -> Edit:
        old = self.content
        self._in_pipeline = True
        try:
            edit = mutate()
            if edit.is_noop:
                return edit
            self._follow(edit, old)
            self.search.refresh(self.content)
        finally:
            self._in_pipeline = False
        self._edits_done(immediate)
        return edit

    def _apply_hunks(self, hunks: Sequence[Tuple[int, int, str]], *, immediate: bool) -> List[Edit]:
        """Run several ``(start, end, text)`` replacements, last one first, as one history step."""
        edits: List[Edit] = []
        self._in_pipeline = True
        try:
            for start, end, text in hunks:
                old = self.content
                edit = self.buffer.replace(start, end, text)
                if edit.is_noop:
                    continue
                self._follow(edit, old)
                edits.append(edit)
            if edits:
                self.search.refresh(self.content)
        finally:
            self._in_pipeline = False
        if edits:
            self._edits_done(immediate)
        return edits

    def _follow(self, edit: Edit, old: str) -> None:
        new = self.content
        self._annotations = ann_ops.follow_edit(self._annotations, edit, new)
        self.formats.apply_edit(edit, old, new)

    def _edits_done(self, immediate: bool) -> None:
        self._drop_stale_selection()
        self._render()
        self.history.push_state(self.content, self.buffer.caret, self._annotations, immediate=immediate)
        self.autolinker.on_edit()

    # ------------- annotations -------------

    def create_annotation_from_selection(self) -> Optional[Annotation]:
        sel = self.buffer.selection
        annotation, updated = ann_ops.create_from_selection(
            self.buffer.selected_text(), sel.start, sel.end, self._annotations, content=self.content
        )
        if annotation is None:
            return None
        self._annotations = updated
        self.selected_annotation_id = annotation.id
        self._annotations_changed()
        return annotation

    def navigate_to_annotation(self, annotation_id: str) -> Optional[Annotation]:
        annotation = ann_ops.find_annotation(self._annotations, annotation_id)
        if annotation is None:
            return None
        self.buffer.set_selection(annotation.start_offset, annotation.end_offset)
        self.selected_annotation_id = annotation.id
        self._render()
        return annotation

    def annotation_at(self, offset: int) -> Optional[Annotation]:
        return ann_ops.annotation_at(self._annotations, offset)

    def select_annotation(self, annotation_id: Optional[str]) -> None:
        self.selected_annotation_id = annotation_id
        self._render()

    def add_note(self, annotation_id: str, text: str, is_important: bool = False) -> Optional[Annotation]:
        self._annotations = ann_ops.add_note(self._annotations, annotation_id, text, is_important)
        return self._annotations_changed(annotation_id)

    def edit_note(self, annotation_id: str, note_id: str, text: str) -> Optional[Annotation]:
        self._annotations = ann_ops.edit_note(self._annotations, annotation_id, note_id, text)
        return self._annotations_changed(annotation_id)

    def delete_note(self, annotation_id: str, note_id: str) -> Optional[Annotation]:
        self._annotations = ann_ops.delete_note(self._annotations, annotation_id, note_id)
        return self._annotations_changed(annotation_id)

    def toggle_important(self, annotation_id: str, note_id: str) -> Optional[Annotation]:
        self._annotations = ann_ops.toggle_important(self._annotations, annotation_id, note_id)
        return self._annotations_changed(annotation_id)

    def delete_annotation(self, annotation_id: str) -> None:
        self._annotations = ann_ops.delete_annotation(self._annotations, annotation_id)
        self._annotations_changed()

    def _annotations_changed(self, annotation_id: Optional[str] = None) -> Optional[Annotation]:
        self._drop_stale_selection()
        self._render()
        self.history.push_state(self.content, self.buffer.caret, self._annotations, immediate=True)
        if annotation_id is None:
            return None
        return ann_ops.find_annotation(self._annotations, annotation_id)

    def _drop_stale_selection(self) -> None:
        if self.selected_annotation_id is None:
            return
        if ann_ops.find_annotation(self._annotations, self.selected_annotation_id) is None:
            self.selected_annotation_id = None

    # ------------- search -------------

    def open_search(self, initial_term: str = "") -> None:
        self.search.refresh(self.content)
        if not initial_term and not self.buffer.selection.is_collapsed:
            initial_term = self.buffer.selected_text()
        self.search.open(initial_term)
        self._render()

    def close_search(self) -> None:
        self.search.close()

    def set_search_term(self, term: str) -> None:
        self.search.set_search_term(term)

    def set_replace_term(self, term: str) -> None:
        self.search.set_replace_term(term)

    def toggle_case_sensitive(self) -> None:
        self.search.toggle_case_sensitive()

    def toggle_whole_word(self) -> None:
        self.search.toggle_whole_word()

    def set_search_mode(self, mode: SearchMode | str) -> None:
        self.search.set_search_mode(mode)

    def set_dialogue_formats(self, formats: DialogueFormats) -> None:
        self.search.set_dialogue_formats(formats)

    def go_to_next(self) -> Optional[SearchResult]:
        return self._select_hit(self.search.go_to_next())

    def go_to_previous(self) -> Optional[SearchResult]:
        return self._select_hit(self.search.go_to_previous())

    def replace_current(self) -> Optional[str]:
        hit = self.search.current_result
        if self.search.replace_current() is None or hit is None:
            return None
        self._apply_hunks([(hit.start, hit.end, self.search.replace_term)], immediate=True)
        return self.content

    def replace_all(self) -> Optional[str]:
        hunks = replacement_hunks(self.search.results, self.search.replace_term)
        if not hunks:
            return None
        self._apply_hunks(hunks, immediate=True)
        log.info("replaced %d occurrence(s) of %r", len(hunks), self.search.search_term)
        return self.content

    def _select_hit(self, hit: Optional[SearchResult]) -> Optional[SearchResult]:
        if hit is not None:
            self.buffer.set_selection(hit.start, hit.end)
            self._render()
        return hit

    def _search_results_changed(self, _results: List[SearchResult]) -> None:
        if not self._in_pipeline:
            self._render()

    # ------------- history -------------

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def undo(self) -> Optional[HistoryState]:
        return self._restore(self.history.undo())

    def redo(self) -> Optional[HistoryState]:
        return self._restore(self.history.redo())

    def _restore(self, state: Optional[HistoryState]) -> Optional[HistoryState]:
        if state is None:
            return None
        self._in_pipeline = True
        try:
            for start, end, text in diff_hunks(self.content, state.content):
                old = self.content
                edit = self.buffer.replace(start, end, text)
                self.formats.apply_edit(edit, old, self.content)
            self._annotations = ann_ops.revalidate(state.annotations, state.content)
            self.buffer.set_caret(state.cursor_position)
            self.search.refresh(state.content)
        finally:
            self._in_pipeline = False
        self._drop_stale_selection()
        self._render()
        self.history.mark_applied()
        self.autolinker.on_edit()
        return state

    # ------------- formatting -------------

    def toggle_bold(self) -> bool:
        sel = self.buffer.selection
        value = self.formats.toggle_bold(sel.start, sel.end)
        self._render()
        return value

    def toggle_italic(self) -> bool:
        sel = self.buffer.selection
        value = self.formats.toggle_italic(sel.start, sel.end)
        self._render()
        return value

    def set_alignment(self, alignment: Alignment | str) -> None:
        sel = self.buffer.selection
        self.formats.set_alignment(self.content, (sel.start, sel.end), alignment)
        self._render()

    # ------------- entities -------------

    def set_mentioned_entities(self, entities: MentionedEntities) -> List[EntityLink]:
        self.autolinker.set_entities(entities)
        return self.links

    def add_to_blacklist(self, entity_id: str) -> None:
        self.autolinker.add_to_blacklist(entity_id)

    def remove_from_blacklist(self, entity_id: str) -> None:
        self.autolinker.remove_from_blacklist(entity_id)

    def _blacklist_changed(self, ids: List[str]) -> None:
        if self._store is not None and self.record is not None:
            try:
                self._store.write_blacklist(self.record.id, ids)
            except KeyError:
                log.warning("chapter %s is not in the store yet, blacklist kept in memory", self.record.id)
        if self._on_blacklist_change is not None:
            self._on_blacklist_change(ids)

    # ------------- derived views -------------

    def render(self) -> List[Segment]:
        return self._render()

    def _render(self) -> List[Segment]:
        restorer = preserve_caret(self.content, self.buffer.caret)
        self.segments = render(
            self.content,
            self._annotations,
            self.search.results if self.search.is_open else (),
            self.search.current_index,
            self.selected_annotation_id,
        )
        self.caret_location = restorer.apply(self.segments)
        if self._on_render is not None:
            self._on_render(self.segments)
        return self.segments

    def markup(self) -> str:
        return to_markup(self.segments)

    def dialogues(self, formats: Optional[DialogueFormats] = None) -> List[DialogueRange]:
        return detect_dialogues(self.content, formats or self.search.options.dialogue_formats)

    def metrics(self) -> ChapterMetrics:
        return compute_metrics(self.content, self.search.options.dialogue_formats)

    def history_states(self) -> Sequence[HistoryState]:
        return self.history.states()
