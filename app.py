# app.py
# CustomTkinter editor host for the manuscript engine (dark theme).
# - Open a plain-text file or a chapter from a SQLite store.
# - The textbox is a thin surface: keystrokes become offset edits on the engine.
# - Search bar with dialogue/narration modes, annotation list, event log.

from __future__ import annotations
import logging
import tkinter as tk
from typing import Any, Callable, List, Optional

import tkinter.filedialog as fd
import tkinter.messagebox as mb
import customtkinter as ctk

# Project imports (ensure PYTHONPATH=src)
from manuscript.buffer import diff_edit
from manuscript.engine import Engine
from manuscript.models import ChapterRecord, SearchMode, Segment

log = logging.getLogger(__name__)


# -------------------- small helpers --------------------

def shorten_path(p: str, max_chars: int = 60) -> str:
    """Shorten long paths neatly for labels."""
    if len(p) <= max_chars:
        return p
    keep = max_chars // 2 - 3
    return p[:keep] + "..." + p[-keep:]


def tk_index(offset: int) -> str:
    """Text-widget index for a character offset."""
    return f"1.0+{int(offset)}c"


class TkScheduler:
    """Engine scheduler backed by the Tk event loop (``after`` / ``after_cancel``)."""

    def __init__(self, widget: tk.Misc) -> None:
        self._widget = widget

    def call_later(self, delay_ms: int, callback: Callable[[], Any]) -> str:
        return self._widget.after(max(0, int(delay_ms)), callback)

    def cancel(self, handle: Any) -> None:
        try:
            self._widget.after_cancel(handle)
        except tk.TclError:
            pass  # already fired


# -------------------- main app --------------------

class ManuscriptApp(ctk.CTk):
    """Dark-themed editor window that drives the engine through offset edits."""

    def __init__(self) -> None:
        super().__init__()

        # Theme
        ctk.set_appearance_mode("dark")
        ctk.set_default_color_theme("blue")

        # Window
        self.title("Manuscript")
        self.geometry("1100x760")
        self.minsize(900, 600)

        # State
        self._source_label: str = "Untitled"
        self.engine = Engine(
            scheduler=TkScheduler(self),
            search_debounce_ms=160,
            on_blacklist_change=lambda ids: self._log(f"Blacklist: {len(ids)} entit(ies)"),
            on_render=self._paint,
        )

        # Fonts
        self.font_title = ctk.CTkFont(size=18, weight="bold")
        self.font_label = ctk.CTkFont(size=13)
        self.font_text = ctk.CTkFont(family="Georgia, Times New Roman", size=15)

        # Layout grid
        self.grid_columnconfigure(0, weight=3)
        self.grid_columnconfigure(1, weight=1)
        self.grid_rowconfigure(3, weight=1)  # editor

        # Build UI
        self._build_header()
        self._build_source_bar()
        self._build_search()
        self._build_editor()
        self._build_sidebar()
        self._build_log()
        self._bind_keys()

        self.engine.load(ChapterRecord(id="scratch"))
        self._set_status("Ready")
        self.protocol("WM_DELETE_WINDOW", self._on_close)

    # --------- UI sections ---------

    def _build_header(self) -> None:
        header = ctk.CTkFrame(self, corner_radius=10)
        header.grid(row=0, column=0, columnspan=2, sticky="ew", padx=12, pady=(12, 6))
        header.grid_columnconfigure(0, weight=1)

        title = ctk.CTkLabel(header, text="Manuscript", font=self.font_title)
        title.grid(row=0, column=0, sticky="w", padx=12, pady=10)

    def _build_source_bar(self) -> None:
        bar = ctk.CTkFrame(self, corner_radius=10)
        bar.grid(row=1, column=0, columnspan=2, sticky="ew", padx=12, pady=6)
        bar.grid_columnconfigure(3, weight=1)

        ctk.CTkButton(bar, text="Open Text", command=self._open_text).grid(row=0, column=0, padx=(12, 6), pady=10)
        ctk.CTkButton(bar, text="Open Chapter", command=self._open_chapter).grid(row=0, column=1, padx=(0, 6), pady=10)
        ctk.CTkButton(bar, text="Save", command=self._save).grid(row=0, column=2, padx=(0, 6), pady=10)

        self.lbl_source = ctk.CTkLabel(bar, text=self._source_label, anchor="w", font=self.font_label)
        self.lbl_source.grid(row=0, column=3, sticky="ew", padx=(6, 6), pady=10)

        self.lbl_status = ctk.CTkLabel(bar, text="Status: —", anchor="e")
        self.lbl_status.grid(row=0, column=4, sticky="e", padx=12, pady=10)

    def _build_search(self) -> None:
        box = ctk.CTkFrame(self, corner_radius=10)
        box.grid(row=2, column=0, columnspan=2, sticky="ew", padx=12, pady=(6, 6))
        box.grid_columnconfigure(0, weight=2)
        box.grid_columnconfigure(1, weight=1)

        self.entry_search = ctk.CTkEntry(box, placeholder_text="Search…")
        self.entry_search.grid(row=0, column=0, sticky="ew", padx=(12, 6), pady=10)
        self.entry_search.bind("<KeyRelease>", self._on_search_changed)

        self.entry_replace = ctk.CTkEntry(box, placeholder_text="Replace with…")
        self.entry_replace.grid(row=0, column=1, sticky="ew", padx=6, pady=10)
        self.entry_replace.bind("<KeyRelease>", lambda _e: self.engine.set_replace_term(self.entry_replace.get()))

        self.opt_mode = ctk.CTkOptionMenu(
            box, values=[m.value for m in SearchMode], command=lambda v: self.engine.set_search_mode(v), width=110
        )
        self.opt_mode.grid(row=0, column=2, padx=6, pady=10)

        self.chk_case = ctk.CTkCheckBox(box, text="Aa", width=50, command=self.engine.toggle_case_sensitive)
        self.chk_case.grid(row=0, column=3, padx=4)
        self.chk_word = ctk.CTkCheckBox(box, text="Word", width=60, command=self.engine.toggle_whole_word)
        self.chk_word.grid(row=0, column=4, padx=4)

        ctk.CTkButton(box, text="↑", width=34, command=self._prev_hit).grid(row=0, column=5, padx=2)
        ctk.CTkButton(box, text="↓", width=34, command=self._next_hit).grid(row=0, column=6, padx=2)
        ctk.CTkButton(box, text="Replace", width=80, command=self._replace_one).grid(row=0, column=7, padx=2)
        ctk.CTkButton(box, text="All", width=50, command=self._replace_all).grid(row=0, column=8, padx=(2, 12))

        self.lbl_hits = ctk.CTkLabel(box, text="", width=70)
        self.lbl_hits.grid(row=0, column=9, padx=(0, 12))

    def _build_editor(self) -> None:
        frame = ctk.CTkFrame(self, corner_radius=10)
        frame.grid(row=3, column=0, sticky="nsew", padx=(12, 6), pady=(6, 6))
        frame.grid_columnconfigure(0, weight=1)
        frame.grid_rowconfigure(0, weight=1)

        self.editor = ctk.CTkTextbox(frame, wrap="word", font=self.font_text, undo=False)
        self.editor.grid(row=0, column=0, sticky="nsew", padx=8, pady=8)
        self.editor.bind("<KeyRelease>", self._on_editor_key)
        self.editor.bind("<ButtonRelease-1>", self._on_editor_click)

        self.editor.tag_config("annotation", background="#4a3f1a")
        self.editor.tag_config("annotation-selected", background="#7a6320")
        self.editor.tag_config("search", background="#16404d")
        self.editor.tag_config("search-current", background="#1f7a8c")
        self.editor.tag_config("bold", foreground="#ffffff")
        self.editor.tag_config("italic", underline=True)

        self.lbl_metrics = ctk.CTkLabel(frame, text="", anchor="w", font=ctk.CTkFont(size=12))
        self.lbl_metrics.grid(row=1, column=0, sticky="ew", padx=12, pady=(0, 8))

    def _build_sidebar(self) -> None:
        side = ctk.CTkFrame(self, corner_radius=10)
        side.grid(row=3, column=1, sticky="nsew", padx=(6, 12), pady=(6, 6))
        side.grid_columnconfigure(0, weight=1)
        side.grid_rowconfigure(1, weight=1)

        ctk.CTkLabel(side, text="Annotations", font=self.font_label).grid(
            row=0, column=0, sticky="w", padx=12, pady=(10, 2)
        )
        self.txt_annotations = ctk.CTkTextbox(side, wrap="word", font=ctk.CTkFont(size=12))
        self.txt_annotations.grid(row=1, column=0, sticky="nsew", padx=12, pady=(0, 6))
        self.txt_annotations.configure(state="disabled")

        self.entry_note = ctk.CTkEntry(side, placeholder_text="Note for the selected annotation…")
        self.entry_note.grid(row=2, column=0, sticky="ew", padx=12, pady=6)
        self.entry_note.bind("<Return>", lambda _e: self._add_note())

        ctk.CTkButton(side, text="Annotate Selection", command=self._annotate).grid(
            row=3, column=0, sticky="ew", padx=12, pady=(0, 12)
        )

    def _build_log(self) -> None:
        frame = ctk.CTkFrame(self, corner_radius=10)
        frame.grid(row=4, column=0, columnspan=2, sticky="nsew", padx=12, pady=(6, 12))
        frame.grid_columnconfigure(0, weight=1)

        self.txt_log = ctk.CTkTextbox(frame, height=90, wrap="word", font=ctk.CTkFont(size=12))
        self.txt_log.grid(row=0, column=0, sticky="nsew", padx=12, pady=12)
        self._log("Editor ready. Open a text file or a chapter to begin.")

    def _bind_keys(self) -> None:
        self.bind("<Control-z>", lambda _e: self._undo())
        self.bind("<Control-y>", lambda _e: self._redo())
        self.bind("<Control-f>", lambda _e: self._focus_search())
        self.bind("<Control-b>", lambda _e: self._format("bold"))
        self.bind("<Control-i>", lambda _e: self._format("italic"))
        self.bind("<Escape>", lambda _e: self._close_search())

    # --------- sources ---------

    def _open_text(self) -> None:
        path = fd.askopenfilename(title="Open text", filetypes=[("Text", "*.txt"), ("All files", "*.*")])
        if not path:
            return
        try:
            with open(path, encoding="utf-8") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as exc:
            self._log(f"ERROR: {exc!r}")
            mb.showerror("Open error", "Failed to read the file.\nSee event log for details.")
            return
        self.engine.load(ChapterRecord(id=path, title=path, content=content))
        self._after_load(f"Text: {shorten_path(path)}")

    def _open_chapter(self) -> None:
        path = fd.askopenfilename(title="Open chapter store", filetypes=[("SQLite", "*.sqlite *.db"), ("All files", "*.*")])
        if not path:
            return
        chapter_id = ctk.CTkInputDialog(text="Chapter id:", title="Open chapter").get_input()
        if not chapter_id:
            return
        try:
            self.engine.open(chapter_id, db_dsn=f"sqlite:///{path}")
        except KeyError:
            mb.showerror("Open error", f"No chapter {chapter_id!r} in {shorten_path(path)}.")
            return
        self._after_load(f"Chapter {chapter_id}: {shorten_path(path)}")

    def _after_load(self, label: str) -> None:
        self._source_label = label
        self.lbl_source.configure(text=label)
        self._replace_surface_text()
        self._set_status(f"Loaded {len(self.engine.content):,} characters.")
        self._log(f"Loaded {label}")
        self.editor.focus_set()

    def _save(self) -> None:
        if self.engine.store is None:
            path = fd.asksaveasfilename(title="Save text", defaultextension=".txt")
            if not path:
                return
            with open(path, "w", encoding="utf-8") as f:
                f.write(self.engine.to_record().content)
            self._log(f"Saved text to {path}")
            return
        record = self.engine.save()
        self._log(f"Saved chapter {record.id}")

    # --------- editor surface ---------

    def _surface_text(self) -> str:
        return self.editor.get("1.0", "end-1c")

    def _surface_offset(self, index: str) -> int:
        return len(self.editor.get("1.0", index))

    def _replace_surface_text(self) -> None:
        self.editor.delete("1.0", "end")
        self.editor.insert("1.0", self.engine.content)
        self.editor.mark_set("insert", tk_index(self.engine.buffer.caret))
        self.engine.render()

    def _sync_selection(self) -> None:
        try:
            start = self._surface_offset("sel.first")
            end = self._surface_offset("sel.last")
            self.engine.set_selection(start, end)
        except tk.TclError:
            caret = self._surface_offset("insert")
            self.engine.set_selection(caret)

    def _on_editor_key(self, ev=None) -> None:
        new = self._surface_text()
        old = self.engine.content
        if new != old:
            # the surface already shows the change; hand it to the engine as an offset edit
            edit = diff_edit(old, new)
            self.engine.edit(edit.start, edit.old_end, new[edit.start:edit.new_end])
            if ev is not None and ev.char == " ":
                self.engine.key_pressed(" ")
        self._sync_selection()

    def _on_editor_click(self, _ev=None) -> None:
        self._sync_selection()
        ann = self.engine.annotation_at(self.engine.buffer.caret)
        self.engine.select_annotation(ann.id if ann else None)

    def _paint(self, segments: List[Segment]) -> None:
        for tag in ("annotation", "annotation-selected", "search", "search-current", "bold", "italic"):
            self.editor.tag_remove(tag, "1.0", "end")
        for seg in segments:
            a, b = tk_index(seg.start), tk_index(seg.end)
            if seg.annotation_id:
                self.editor.tag_add("annotation-selected" if seg.selected else "annotation", a, b)
            if seg.search:
                self.editor.tag_add(seg.search, a, b)
        for run in self.engine.formats.runs:
            if run.bold:
                self.editor.tag_add("bold", tk_index(run.start), tk_index(run.end))
            if run.italic:
                self.editor.tag_add("italic", tk_index(run.start), tk_index(run.end))
        self._refresh_sidebar()

    def _refresh_sidebar(self) -> None:
        eng = self.engine
        s = eng.search
        self.lbl_hits.configure(text=f"{s.current_index + 1}/{s.total_results}" if s.total_results else "0/0")
        m = eng.metrics()
        self.lbl_metrics.configure(
            text=f"{m.word_count} words • {m.character_count} chars • {m.paragraph_count} paragraphs • "
                 f"{m.sentence_count} sentences • {m.dialogue_count} dialogues"
        )
        lines = []
        for ann in eng.annotations:
            mark = "▶ " if ann.id == eng.selected_annotation_id else "  "
            lines.append(f"{mark}“{ann.text[:40]}” ({len(ann.notes)} note(s))")
            for note in ann.notes:
                lines.append(f"     {'★' if note.is_important else '•'} {note.text}")
        self.txt_annotations.configure(state="normal")
        self.txt_annotations.delete("0.0", "end")
        self.txt_annotations.insert("end", "\n".join(lines) or "(no annotations)")
        self.txt_annotations.configure(state="disabled")

    # --------- annotations ---------

    def _annotate(self) -> None:
        self._sync_selection()
        ann = self.engine.create_annotation_from_selection()
        if ann is None:
            self._set_status("Select some text to annotate.")
            return
        self._log(f"Annotation created over [{ann.start_offset}, {ann.end_offset})")
        self.entry_note.focus_set()

    def _add_note(self) -> None:
        ann_id = self.engine.selected_annotation_id
        text = self.entry_note.get()
        if not ann_id or not text.strip():
            return
        self.engine.add_note(ann_id, text)
        self.entry_note.delete(0, "end")

    # --------- search ---------

    def _focus_search(self) -> None:
        self._sync_selection()
        self.engine.open_search(self.entry_search.get())
        self.entry_search.focus_set()

    def _close_search(self) -> None:
        self.engine.close_search()
        self.entry_search.delete(0, "end")
        self.entry_replace.delete(0, "end")

    def _on_search_changed(self, _ev=None) -> None:
        if not self.engine.search.is_open:
            self.engine.open_search()
        self.engine.set_search_term(self.entry_search.get())

    def _show_hit(self, hit) -> None:
        if hit is None:
            return
        self.editor.tag_remove("sel", "1.0", "end")
        self.editor.tag_add("sel", tk_index(hit.start), tk_index(hit.end))
        self.editor.see(tk_index(hit.start))

    def _next_hit(self) -> None:
        self._show_hit(self.engine.go_to_next())

    def _prev_hit(self) -> None:
        self._show_hit(self.engine.go_to_previous())

    def _replace_one(self) -> None:
        self.engine.set_replace_term(self.entry_replace.get())
        if self.engine.replace_current() is not None:
            self._replace_surface_text()

    def _replace_all(self) -> None:
        self.engine.set_replace_term(self.entry_replace.get())
        n = self.engine.search.total_results
        if self.engine.replace_all() is not None:
            self._replace_surface_text()
            self._log(f"Replaced {n} occurrence(s).")

    # --------- history / formatting ---------

    def _undo(self) -> str:
        if self.engine.undo() is not None:
            self._replace_surface_text()
        return "break"

    def _redo(self) -> str:
        if self.engine.redo() is not None:
            self._replace_surface_text()
        return "break"

    def _format(self, style: str) -> str:
        self._sync_selection()
        on = self.engine.toggle_bold() if style == "bold" else self.engine.toggle_italic()
        self._set_status(f"{style} {'on' if on else 'off'}")
        return "break"

    # --------- misc UI helpers ---------

    def _set_status(self, text: str) -> None:
        self.lbl_status.configure(text=f"Status: {text}")

    def _log(self, msg: str) -> None:
        self.txt_log.insert("end", msg + "\n")
        self.txt_log.see("end")

    # --------- lifecycle ---------

    def _on_close(self) -> None:
        self.engine.shutdown()
        self.destroy()


if __name__ == "__main__":
    app = ManuscriptApp()
    app.mainloop()
