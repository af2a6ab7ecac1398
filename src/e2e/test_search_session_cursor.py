import pytest
from manuscript.models import SearchMode
from manuscript.scheduling import ManualScheduler
from manuscript.search import SearchSession

def _session(content: str, term: str) -> SearchSession:
    s = SearchSession()
    s.refresh(content)
    s.open(term)
    return s

@pytest.mark.e2e
def test_navigation_wraps_around():
    s = _session("a b a b a", "a")
    assert s.total_results == 3 and s.current_index == 0
    assert s.go_to_next().start == 4
    s.go_to_previous()
    assert s.go_to_previous().start == 8     # 0 -> last
    assert s.go_to_next().start == 0         # last -> 0

@pytest.mark.e2e
def test_navigation_without_results_is_a_noop():
    s = _session("abc", "zzz")
    assert s.go_to_next() is None
    assert s.go_to_previous() is None
    assert s.current_result is None

@pytest.mark.e2e
def test_replace_current_on_last_hit_moves_to_new_last():
    s = _session("a b a b a", "a")
    s.current_index = 2
    s.set_replace_term("x")
    new = s.replace_current()
    assert new == "a b a b x"
    assert s.current_index == 1
    s.refresh(new)
    assert s.total_results == 2 and s.current_index == 1

@pytest.mark.e2e
def test_replace_current_in_the_middle_keeps_cursor():
    s = _session("a b a b a", "a")
    s.go_to_next()
    s.set_replace_term("x")
    new = s.replace_current()
    assert new == "a b x b a"
    s.refresh(new)
    assert s.current_index == 1 and s.current_result.start == 8

@pytest.mark.e2e
def test_term_and_option_changes_reset_cursor():
    s = _session("A a b a", "a")
    s.go_to_next()
    s.set_search_term("b")
    assert s.current_index == 0 and s.total_results == 1
    s.set_search_term("a")
    assert s.total_results == 3
    s.toggle_case_sensitive()
    assert s.total_results == 2
    s.set_search_mode(SearchMode.DIALOGUES)
    assert s.total_results == 0

@pytest.mark.e2e
def test_narration_mode_by_name():
    s = _session('"a" a', "a")
    s.set_search_mode("narration")
    assert [r.start for r in s.results] == [4]

@pytest.mark.e2e
def test_close_clears_terms_and_results():
    s = _session("abc", "b")
    s.set_replace_term("x")
    s.close()
    assert not s.is_open
    assert (s.search_term, s.replace_term, s.results, s.current_index) == ("", "", [], 0)

@pytest.mark.e2e
def test_debounced_recompute_and_results_callback():
    sch = ManualScheduler()
    seen = []
    s = SearchSession(scheduler=sch, debounce_ms=100, on_results=lambda r: seen.append(len(r)))
    s.refresh("aaa")
    s.open()
    s.set_search_term("a")
    assert s.results == []
    sch.advance(99)
    assert s.results == []
    sch.advance(1)
    assert s.total_results == 3
    assert seen[-1] == 3

@pytest.mark.e2e
def test_close_cancels_pending_recompute():
    sch = ManualScheduler()
    s = SearchSession(scheduler=sch, debounce_ms=100)
    s.refresh("aaa")
    s.open()
    s.set_search_term("a")
    s.close()
    sch.advance(500)
    assert s.results == []
    assert sch.pending == 0
