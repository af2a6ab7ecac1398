import pytest
from manuscript.history import UndoRedoHistory
from manuscript.models import Annotation
from manuscript.scheduling import ManualScheduler

def _history(**kw):
    sch = ManualScheduler()
    return sch, UndoRedoHistory(sch, **kw)

@pytest.mark.e2e
def test_k_pushes_then_k_undos_restore_initial_content():
    sch, h = _history(initial_content="start")
    for text in ("a", "ab", "abc"):
        h.push_state(text, len(text))
        sch.advance(500)
    assert h.size == 4 and h.current_index == 3

    assert [h.undo().content for _ in range(3)] == ["ab", "a", "start"]
    assert h.undo() is None
    h.mark_applied()
    assert [h.redo().content for _ in range(3)] == ["a", "ab", "abc"]
    assert h.redo() is None

@pytest.mark.e2e
def test_debounce_keeps_only_the_last_push():
    sch, h = _history()
    h.push_state("a", 1)
    sch.advance(100)
    h.push_state("ab", 2)
    sch.advance(100)
    h.push_state("abc", 3)
    assert h.is_pending and h.size == 1
    sch.advance(499)
    assert h.size == 1
    sch.advance(1)
    assert [s.content for s in h.states()] == ["", "abc"]
    assert h.current_state.cursor_position == 3

@pytest.mark.e2e
def test_duplicate_content_is_not_recorded():
    _, h = _history(initial_content="same")
    h.push_state("same", 0, immediate=True)
    assert h.size == 1

@pytest.mark.e2e
def test_annotation_change_alone_is_a_new_state():
    _, h = _history(initial_content="hello")
    ann = Annotation(id="a", start_offset=0, end_offset=5, text="hello")
    h.push_state("hello", 0, [ann], immediate=True)
    assert h.size == 2
    assert h.current_state.annotations == (ann,)

@pytest.mark.e2e
def test_new_edit_discards_redo_tail():
    _, h = _history()
    h.push_state("a", 1, immediate=True)
    h.push_state("ab", 2, immediate=True)
    h.undo()
    h.mark_applied()
    h.push_state("x", 1, immediate=True)
    assert [s.content for s in h.states()] == ["", "a", "x"]
    assert not h.can_redo and h.can_undo

@pytest.mark.e2e
def test_bounded_stack_drops_oldest():
    _, h = _history(max_size=3)
    for text in ("1", "2", "3", "4"):
        h.push_state(text, 1, immediate=True)
    assert [s.content for s in h.states()] == ["2", "3", "4"]
    assert h.current_index == 2
    assert h.undo().content == "3"

@pytest.mark.e2e
def test_undo_flushes_a_pending_push():
    sch, h = _history()
    h.push_state("typed", 5)
    state = h.undo()
    assert state.content == ""
    assert h.can_redo and h.redo().content == "typed"
    assert sch.pending == 0

@pytest.mark.e2e
def test_echo_of_applied_state_is_ignored():
    _, h = _history()
    h.push_state("a", 1, immediate=True)
    h.push_state("ab", 2, immediate=True)
    restored = h.undo()
    assert h.is_applying
    h.push_state(restored.content, restored.cursor_position, immediate=True)
    assert not h.is_applying
    assert h.size == 3 and h.can_redo

@pytest.mark.e2e
def test_reset_and_cancel():
    sch, h = _history()
    h.push_state("a", 1)
    h.cancel()
    sch.advance(1000)
    assert h.size == 1
    h.push_state("b", 1, immediate=True)
    h.reset("fresh", cursor_position=2)
    assert h.size == 1 and h.current_state.content == "fresh"
    assert not (h.can_undo or h.can_redo)

@pytest.mark.e2e
def test_max_size_must_be_positive():
    with pytest.raises(ValueError):
        UndoRedoHistory(ManualScheduler(), max_size=0)

@pytest.mark.e2e
def test_typing_after_undo_blocks_redo():
    sch, h = _history()
    h.push_state("a", 1, immediate=True)
    h.push_state("ab", 2, immediate=True)
    h.undo()
    h.mark_applied()

    h.push_state("aX", 2)
    assert h.is_pending
    assert not h.can_redo
    assert h.redo() is None
    assert [s.content for s in h.states()] == ["", "a", "aX"]
    assert sch.pending == 0

@pytest.mark.e2e
def test_pending_echo_of_current_state_keeps_redo():
    _, h = _history()
    h.push_state("a", 1, immediate=True)
    h.push_state("ab", 2, immediate=True)
    h.undo()
    h.mark_applied()

    h.push_state("a", 1)
    assert h.can_redo
    assert h.redo().content == "ab"
