import pytest
from manuscript.engine import Engine
from manuscript.models import ChapterRecord

@pytest.fixture
def engine():
    eng = Engine()
    eng.load(ChapterRecord(id="ch1", content=""))
    yield eng
    eng.shutdown()

@pytest.mark.e2e
def test_quick_typing_is_one_undo_step(engine):
    for ch in "abc":
        engine.type_text(ch)
        engine.scheduler.advance(100)
    engine.scheduler.advance(500)
    assert [s.content for s in engine.history_states()] == ["", "abc"]

    engine.undo()
    assert engine.content == ""
    assert engine.can_redo
    engine.redo()
    assert engine.content == "abc"
    assert engine.selection.caret == 3

@pytest.mark.e2e
def test_pauses_split_undo_steps(engine):
    engine.type_text("a")
    engine.scheduler.advance(500)
    engine.type_text("b")
    engine.scheduler.advance(500)
    engine.undo()
    assert engine.content == "a"
    engine.undo()
    assert engine.content == ""
    assert not engine.can_undo
    assert engine.undo() is None

@pytest.mark.e2e
def test_undo_commits_pending_typing_first(engine):
    engine.type_text("x")
    engine.undo()
    assert engine.content == ""
    engine.redo()
    assert engine.content == "x"

@pytest.mark.e2e
def test_edit_after_undo_discards_redo(engine):
    engine.type_text("one ")
    engine.type_text("two")
    engine.undo()
    assert engine.content == "one "
    engine.type_text("three")
    assert not engine.can_redo
    assert [s.content for s in engine.history_states()] == ["", "one ", "one three"]

@pytest.mark.e2e
def test_undo_restores_annotations():
    eng = Engine()
    eng.load(ChapterRecord(id="ch1", content="Hello brave world"))
    eng.set_selection(6, 11)
    ann = eng.create_annotation_from_selection()
    assert [a.id for a in eng.annotations] == [ann.id]

    eng.undo()
    assert eng.annotations == []
    assert eng.content == "Hello brave world"
    eng.redo()
    assert [a.id for a in eng.annotations] == [ann.id]

@pytest.mark.e2e
def test_replace_all_is_one_undo_step():
    eng = Engine()
    eng.load(ChapterRecord(id="ch1", content="cat and cat"))
    eng.open_search("cat")
    eng.set_replace_term("dog")
    eng.replace_all()
    assert eng.content == "dog and dog"
    assert eng.search.total_results == 0
    eng.undo()
    assert eng.content == "cat and cat"
    assert eng.search.total_results == 2

@pytest.mark.e2e
def test_history_is_bounded():
    eng = Engine(history_max_size=3)
    eng.load(ChapterRecord(id="ch1", content=""))
    for word in ("aa", "bb", "cc", "dd"):
        eng.type_text(word)
    assert len(eng.history_states()) == 3
    assert eng.history_states()[-1].content == "aabbccdd"

@pytest.mark.e2e
def test_redo_never_overwrites_fresh_typing():
    eng = Engine()
    eng.load(ChapterRecord(id="ch1", content="a"))
    eng.type_text("b")
    eng.scheduler.advance(500)
    eng.undo()
    assert eng.content == "a"

    eng.type_text("X")
    assert not eng.can_redo
    assert eng.redo() is None
    assert eng.content == "aX"

    eng.scheduler.advance(500)
    assert eng.history_states()[-1].content == eng.content == "aX"
    eng.shutdown()
