import pytest
from manuscript.highlight import preserve_caret, render, to_markup
from manuscript.models import Annotation
from manuscript.search import find

CONTENT = "Hello brave new world"

def _ann(aid, start, end):
    return Annotation(id=aid, start_offset=start, end_offset=end, text=CONTENT[start:end])

@pytest.mark.e2e
def test_segments_in_order_with_kinds():
    hits = find(CONTENT, "new")
    segs = render(CONTENT, [_ann("a1", 6, 11)], hits, 0)
    assert [(s.text, s.kind) for s in segs] == [
        ("Hello ", "plain"),
        ("brave", "annotation"),
        (" ", "plain"),
        ("new", "search-current"),
        (" world", "plain"),
    ]
    assert "".join(s.text for s in segs) == CONTENT

@pytest.mark.e2e
def test_search_hit_nests_inside_annotation():
    hits = find(CONTENT, "o b")
    segs = render(CONTENT, [_ann("a1", 0, 11)], hits)
    assert [(s.start, s.end, s.kind) for s in segs] == [
        (0, 4, "annotation"),
        (4, 7, "annotation+search"),
        (7, 11, "annotation"),
        (11, 21, "plain"),
    ]
    assert all(s.annotation_id == "a1" for s in segs[:3])

@pytest.mark.e2e
def test_overlapping_annotations_earliest_start_wins():
    segs = render(CONTENT, [_ann("late", 3, 9), _ann("early", 0, 5)])
    assert [(s.text, s.annotation_id) for s in segs] == [
        ("Hello", "early"),
        (" bra", "late"),
        ("ve new world", None),
    ]

@pytest.mark.e2e
def test_selected_annotation_flag():
    segs = render(CONTENT, [_ann("a1", 6, 11), _ann("a2", 16, 21)], selected_annotation_id="a2")
    flagged = [s.annotation_id for s in segs if s.selected]
    assert flagged == ["a2"]

@pytest.mark.e2e
def test_empty_buffer_and_out_of_range_intervals():
    assert render("") == []
    segs = render("abc", [Annotation(id="x", start_offset=1, end_offset=99, text="bc")])
    assert [(s.text, s.annotation_id) for s in segs] == [("a", None), ("bc", "x")]

@pytest.mark.e2e
def test_markup_escapes_buffer_text():
    segs = render('<b>&"x"\x07\n')
    assert to_markup(segs) == "&lt;b&gt;&amp;&quot;x&quot;<br>"

@pytest.mark.e2e
def test_markup_wraps_search_inside_annotation():
    segs = render(CONTENT, [_ann("a1", 0, 11)], find(CONTENT, "o b"), 0, "a1")
    html = to_markup(segs)
    assert (
        '<span class="annotation-highlight annotation-selected" data-annotation-id="a1">'
        '<span class="search-highlight search-current" data-search-result="true">o b</span></span>'
    ) in html

@pytest.mark.e2e
def test_caret_restored_by_walking_segments():
    segs = render(CONTENT, [_ann("a1", 0, 11)], find(CONTENT, "o b"))
    restorer = preserve_caret(CONTENT, 5)
    loc = restorer.apply(segs)
    assert (loc.segment_index, loc.offset_in_segment, loc.offset) == (1, 1, 5)
    assert restorer.apply(segs) == loc
    assert preserve_caret(CONTENT, 4).apply(segs).segment_index == 0

@pytest.mark.e2e
def test_caret_past_end_clamps():
    segs = render(CONTENT)
    loc = preserve_caret(CONTENT, 999).apply(segs)
    assert (loc.segment_index, loc.offset_in_segment, loc.offset) == (0, len(CONTENT), len(CONTENT))
    assert preserve_caret("", 3).apply([]).offset == 0
