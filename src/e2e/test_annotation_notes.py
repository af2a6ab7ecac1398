import pytest
from manuscript.annotations import add_note, delete_annotation, delete_note, edit_note, toggle_important
from manuscript.models import Annotation, AnnotationNote

def _anns():
    notes = (AnnotationNote(id="n1", text="first"), AnnotationNote(id="n2", text="second", is_important=True))
    return [Annotation(id="a1", start_offset=0, end_offset=5, text="Hello", notes=notes),
            Annotation(id="a2", start_offset=6, end_offset=11, text="world")]

@pytest.mark.e2e
def test_add_note_appends_and_strips():
    anns = add_note(_anns(), "a1", "  third  ", is_important=True)
    notes = anns[0].notes
    assert [n.text for n in notes] == ["first", "second", "third"]
    assert notes[-1].is_important and notes[-1].id.startswith("note-")

@pytest.mark.e2e
def test_empty_note_text_is_a_noop():
    before = _anns()
    assert add_note(before, "a1", "   ") == before
    assert edit_note(before, "a1", "n1", "") == before

@pytest.mark.e2e
def test_first_note_on_an_annotation_without_notes():
    anns = add_note(_anns(), "a2", "hi")
    assert [n.text for n in anns[1].notes] == ["hi"]

@pytest.mark.e2e
def test_edit_and_toggle_keep_created_at():
    base = _anns()
    original = base[0].notes[0]
    anns = edit_note(base, "a1", "n1", "changed")
    note = anns[0].notes[0]
    assert note.text == "changed" and note.created_at == original.created_at
    anns = toggle_important(anns, "a1", "n1")
    assert anns[0].notes[0].is_important
    anns = toggle_important(anns, "a1", "n1")
    assert not anns[0].notes[0].is_important

@pytest.mark.e2e
def test_deleting_last_note_deletes_annotation():
    anns = delete_note(_anns(), "a1", "n1")
    assert [n.id for n in anns[0].notes] == ["n2"]
    anns = delete_note(anns, "a1", "n2")
    assert [a.id for a in anns] == ["a2"]

@pytest.mark.e2e
def test_unknown_ids_leave_annotations_alone():
    before = _anns()
    assert delete_note(before, "a1", "nope") == before
    assert add_note(before, "nope", "x") == before
    assert [a.id for a in delete_annotation(before, "a1")] == ["a2"]

@pytest.mark.e2e
def test_host_record_keys_round_trip():
    ann = _anns()[0]
    data = ann.to_dict()
    assert set(data) == {"id", "startOffset", "endOffset", "text", "notes", "createdAt"}
    assert data["notes"][1]["isImportant"] is True
    assert Annotation.from_dict(data) == ann
