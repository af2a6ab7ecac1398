import pytest
from manuscript.annotations import annotation_at, create_from_selection, find_annotation, follow_edit
from manuscript.buffer import TextBuffer
from manuscript.highlight import render
from manuscript.models import Annotation, AnnotationNote

CONTENT = "The quick brown fox"

def _ann(aid: str, start: int, end: int, *note_ids: str) -> Annotation:
    notes = tuple(AnnotationNote(id=n, text=f"note {n}") for n in note_ids)
    return Annotation(id=aid, start_offset=start, end_offset=end, text=CONTENT[start:end], notes=notes)

def _edit(ann: Annotation, mutate):
    buf = TextBuffer(CONTENT)
    edit = mutate(buf)
    return follow_edit([ann], edit, buf.content), buf.content

@pytest.mark.e2e
def test_create_from_selection_snapshots_text():
    ann, anns = create_from_selection("", 4, 9, [], content=CONTENT)
    assert ann.text == "quick"
    assert ann.id.startswith("annotation-")
    assert ann.notes == ()
    assert anns == [ann]

@pytest.mark.e2e
def test_zero_length_or_out_of_bounds_selection_is_rejected():
    existing = [_ann("a1", 4, 9)]
    assert create_from_selection("", 4, 4, existing, content=CONTENT) == (None, existing)
    assert create_from_selection("x", 10, 99, existing, content=CONTENT) == (None, existing)

@pytest.mark.e2e
def test_overlapping_annotations_merge_notes_in_order():
    a1 = _ann("a1", 4, 9, "n1")          # quick
    a2 = _ann("a2", 10, 15, "n2", "n3")  # brown
    a3 = _ann("a3", 16, 19, "n4")        # fox
    merged, anns = create_from_selection("", 6, 12, [a1, a2, a3], content=CONTENT)
    assert [n.id for n in merged.notes] == ["n1", "n2", "n3"]
    assert (merged.start_offset, merged.end_offset) == (6, 12)
    assert [a.id for a in anns] == ["a3", merged.id]

@pytest.mark.e2e
def test_touching_annotation_is_not_merged():
    the = _ann("a0", 0, 3, "n0")
    _, anns = create_from_selection("", 3, 9, [the], content=CONTENT)
    assert len(anns) == 2 and find_annotation(anns, "a0") is the

@pytest.mark.e2e
def test_insert_at_start_lands_before_the_span():
    (ann,), content = _edit(_ann("a", 4, 9), lambda b: b.insert(4, "very "))
    assert (ann.start_offset, ann.end_offset, ann.text) == (9, 14, "quick")
    assert content[9:14] == "quick"

@pytest.mark.e2e
def test_insert_at_end_grows_the_span():
    (ann,), _ = _edit(_ann("a", 4, 9), lambda b: b.insert(9, "er"))
    assert (ann.start_offset, ann.end_offset, ann.text) == (4, 11, "quicker")

@pytest.mark.e2e
def test_edit_before_shifts_and_replacement_keeps_start():
    (ann,), _ = _edit(_ann("a", 4, 9), lambda b: b.insert(0, "A "))
    assert (ann.start_offset, ann.end_offset) == (6, 11)
    (ann,), _ = _edit(_ann("a", 4, 9), lambda b: b.replace(4, 9, "slow"))
    assert (ann.start_offset, ann.end_offset, ann.text) == (4, 8, "slow")

@pytest.mark.e2e
def test_annotation_dropped_when_its_text_is_gone():
    anns, _ = _edit(_ann("a", 4, 9), lambda b: b.delete(4, 10))
    assert anns == []
    anns, _ = _edit(_ann("a", 4, 9), lambda b: b.replace(4, 9, " "))
    assert anns == []

@pytest.mark.e2e
def test_text_matches_buffer_after_every_recompute():
    anns = [_ann("a", 4, 9), _ann("b", 10, 15), _ann("c", 16, 19)]
    buf = TextBuffer(CONTENT)
    for mutate in (lambda: buf.insert(0, ">> "), lambda: buf.delete(8, 12), lambda: buf.insert(len(buf), "!")):
        anns = follow_edit(anns, mutate(), buf.content)
        for a in anns:
            assert 0 <= a.start_offset < a.end_offset <= len(buf.content)
            assert buf.content[a.start_offset:a.end_offset] == a.text

@pytest.mark.e2e
def test_rendered_span_reproduces_selection():
    content = "ab cd"
    for start in range(len(content)):
        for end in range(start + 1, len(content) + 1):
            ann, anns = create_from_selection("", start, end, [], content=content)
            if not content[start:end].strip():
                continue
            segs = render(content, anns)
            assert "".join(s.text for s in segs) == content
            assert "".join(s.text for s in segs if s.annotation_id == ann.id) == content[start:end]

@pytest.mark.e2e
def test_annotation_at_offset():
    anns = [_ann("a", 4, 9)]
    assert annotation_at(anns, 4).id == "a"
    assert annotation_at(anns, 9) is None
