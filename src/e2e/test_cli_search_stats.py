import json
import logging
from pathlib import Path

import pytest
from frontend.__main__ import main
from manuscript.DB import make_store
from manuscript.models import ChapterRecord

def _text(tmp: Path, body: str) -> str:
    path = tmp / "chapter.txt"
    path.write_text(body, encoding="utf-8")
    return str(path)

@pytest.mark.e2e
def test_cli_narration_search_json(tmp_path: Path, capsys):
    path = _text(tmp_path, '"Hello" said Ana.')
    assert main(["--text", path, "--search", "a", "--mode", "narration", "--json"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert [r["start"] for r in out["results"]] == [9, 13, 15]

@pytest.mark.e2e
def test_cli_stats_and_dialogues(tmp_path: Path, capsys):
    path = _text(tmp_path, '"Run," he said.\n— Wait!')
    assert main(["--text", path, "--stats", "--dialogues", "--json"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["metrics"]["paragraph_count"] == 2
    assert out["metrics"]["dialogue_count"] == 2
    assert [d["type"] for d in out["dialogues"]] == ["doubleQuotes", "emDash"]

@pytest.mark.e2e
def test_cli_replace_all_saves_chapter(tmp_path: Path, capsys):
    dsn = f"sqlite:///{tmp_path / 'chapters.sqlite'}"
    make_store(dsn, chapters=[ChapterRecord(id="c1", content="cat and cat")]).close()

    assert main(["--chapter", "c1", "--db", dsn, "--search", "cat", "--replace-all", "dog"]) == 0
    assert "replaced 2 occurrence(s)" in capsys.readouterr().out

    store = make_store(dsn)
    try:
        assert store.read("c1").content == "dog and dog"
    finally:
        store.close()

@pytest.mark.e2e
def test_cli_missing_chapter(tmp_path: Path, capsys):
    dsn = f"sqlite:///{tmp_path / 'chapters.sqlite'}"
    assert main(["--chapter", "nope", "--db", dsn, "--stats"]) == 2
    assert "chapter not found" in capsys.readouterr().err

@pytest.mark.e2e
def test_cli_requires_an_action(tmp_path: Path):
    with pytest.raises(SystemExit):
        main(["--text", _text(tmp_path, "x")])

@pytest.mark.e2e
def test_cli_verbose_configures_logging_for_text_input(tmp_path: Path, monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))
    assert main(["--text", _text(tmp_path, "One line."), "--stats", "--verbose"]) == 0
    assert calls == [{"level": logging.INFO}]
