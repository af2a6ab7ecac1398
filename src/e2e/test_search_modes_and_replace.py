import pytest
from manuscript.models import SearchMode, SearchOptions
from manuscript.search import find, replace_all, replace_current

def _starts(results):
    return [r.start for r in results]

@pytest.mark.e2e
def test_narration_mode_skips_quoted_text():
    content = '"Hello" said Ana.'
    hits = find(content, "a", SearchOptions(mode=SearchMode.NARRATION))
    assert _starts(hits) == [9, 13, 15]
    assert [h.text for h in hits] == ["a", "A", "a"]
    assert find(content, "a", SearchOptions(mode=SearchMode.DIALOGUES)) == []

@pytest.mark.e2e
def test_dialogue_mode_keeps_only_quoted_hits():
    content = '"Ana" said Bo.'
    assert _starts(find(content, "a", SearchOptions(mode=SearchMode.DIALOGUES))) == [1, 3]
    assert _starts(find(content, "a", SearchOptions(mode=SearchMode.NARRATION))) == [7]
    assert _starts(find(content, "a", SearchOptions(mode=SearchMode.ALL))) == [1, 3, 7]

@pytest.mark.e2e
def test_case_sensitivity_and_original_case_text():
    content = "Ana ana"
    assert _starts(find(content, "Ana", SearchOptions(case_sensitive=True))) == [0]
    hits = find(content, "ANA")
    assert _starts(hits) == [0, 4]
    assert [h.text for h in hits] == ["Ana", "ana"]
    assert [h.index for h in hits] == [0, 1]

@pytest.mark.e2e
def test_whole_word_vs_plain_scan():
    content = "cat concat cat."
    assert _starts(find(content, "cat")) == [0, 7, 11]
    assert _starts(find(content, "cat", SearchOptions(whole_word=True))) == [0, 11]
    # plain scans resume one past each hit, so hits may overlap
    assert _starts(find("aaa", "aa")) == [0, 1]
    assert find("anything", "") == []

@pytest.mark.e2e
def test_replace_all_removes_every_occurrence():
    content = "the cat and the hat and the bat"
    hits = find(content, "the")
    n = len(hits)
    out = replace_all(content, hits, "a")
    assert n == 3
    assert "the" not in out
    assert len(out) == len(content) + n * (len("a") - len("the"))
    assert out == "a cat and a hat and a bat"

@pytest.mark.e2e
def test_replace_all_skips_overlapping_hits_and_noops():
    assert replace_all("aaa", find("aaa", "aa"), "b") == "ab"
    assert replace_all("abc", find("abc", "b"), "") is None
    assert replace_all("abc", [], "x") is None

@pytest.mark.e2e
def test_replace_current_only_touches_current_hit():
    content = "one two one"
    hits = find(content, "one")
    assert replace_current(content, hits, 1, "1") == "one two 1"
    assert replace_current(content, hits, 5, "1") is None
    assert replace_current(content, hits, 0, "") is None
    # results computed for another buffer are not applied
    stale = find("cat dog", "cat")
    assert replace_current("cow dog", stale, 0, "x") is None
