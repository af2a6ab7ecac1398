# src/manuscript/history.py
"""
Debounced, bounded undo/redo snapshot stack.

States: idle, debounce-pending (a push is armed) and applying (undo/redo just
handed a snapshot to the caller, whose echo must not be recorded as a new edit).
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from . import config as CFG
from .models import Annotation, HistoryState
from .scheduling import DeferredTask, Scheduler

log = logging.getLogger(__name__)


class UndoRedoHistory:
    def __init__(
        self,
        scheduler: Scheduler,
        *,
        initial_content: str = "",
        initial_annotations: Sequence[Annotation] = (),
        max_size: int = CFG.HISTORY_MAX_SIZE,
        debounce_ms: int = CFG.HISTORY_DEBOUNCE_MS,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = int(max_size)
        self._stack: List[HistoryState] = []
        self._index = 0
        self._applying = False
        self._pending: Optional[HistoryState] = None
        self._push_task = DeferredTask(scheduler, debounce_ms, self._commit, name="history push")
        self.reset(initial_content, initial_annotations, len(initial_content))

    # ------------- state -------------

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def size(self) -> int:
        return len(self._stack)

    @property
    def current_state(self) -> HistoryState:
        return self._stack[self._index]

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        if self._pending is not None and not self._is_current(self._pending):
            # the armed push will discard the redo tail when it lands
            return False
        return self._index < len(self._stack) - 1

    @property
    def is_pending(self) -> bool:
        return self._push_task.pending

    @property
    def is_applying(self) -> bool:
        return self._applying

    def states(self) -> List[HistoryState]:
        return list(self._stack)

    # ------------- recording -------------

    def push_state(
        self,
        content: str,
        cursor_position: int,
        annotations: Optional[Sequence[Annotation]] = None,
        immediate: bool = False,
    ) -> None:
        """
        Record a snapshot once typing pauses. Only the last call before the
        debounce window closes takes effect; ``immediate`` commits right away
        (Enter, paste, formatting).
        """
        if self._applying:
            # the caller is applying an undo/redo result; its echo is not an edit
            self._applying = False
            if content == self.current_state.content:
                return
        snapshot = HistoryState(content, int(cursor_position), tuple(annotations or ()))
        if immediate:
            self.cancel()
            self._commit(snapshot)
        else:
            self._pending = snapshot
            self._push_task.schedule(snapshot)

    def flush(self) -> None:
        """Commit a pending push now (before undo, save or unmount)."""
        self._push_task.flush()

    def cancel(self) -> None:
        self._pending = None
        self._push_task.cancel()

    def _is_current(self, state: HistoryState) -> bool:
        current = self._stack[self._index]
        return current.content == state.content and current.annotations == state.annotations

    def _commit(self, state: HistoryState) -> None:
        self._pending = None
        if self._is_current(state):
            return
        del self._stack[self._index + 1:]       # discard the redo tail
        self._stack.append(state)
        if len(self._stack) > self.max_size:
            del self._stack[0]                  # drop the oldest, index stays on the new last
        self._index = len(self._stack) - 1
        log.debug("history: %d state(s), index=%d", len(self._stack), self._index)

    # ------------- time travel -------------

    def undo(self) -> Optional[HistoryState]:
        self.flush()
        if self._index <= 0:
            return None
        self._index -= 1
        self._applying = True
        return self._stack[self._index]

    def redo(self) -> Optional[HistoryState]:
        # typing since the last undo is a new edit: committing it drops the redo tail
        self.flush()
        if self._index >= len(self._stack) - 1:
            return None
        self._index += 1
        self._applying = True
        return self._stack[self._index]

    def mark_applied(self) -> None:
        """The caller finished applying an undo/redo result."""
        self._applying = False

    def reset(
        self,
        content: str = "",
        annotations: Sequence[Annotation] = (),
        cursor_position: int = 0,
    ) -> None:
        self.cancel()
        self._stack = [HistoryState(content, int(cursor_position), tuple(annotations))]
        self._index = 0
        self._applying = False
