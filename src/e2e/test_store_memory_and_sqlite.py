import logging

import pytest
from manuscript.DB import make_store
from manuscript.models import Annotation, AnnotationNote, ChapterRecord, Entity, MentionedEntities

def _record(cid="ch1", content="Hello brave world"):
    return ChapterRecord(
        id=cid,
        title="Opening",
        content=content,
        annotations=[
            Annotation(
                id="a1", start_offset=6, end_offset=11, text="brave",
                notes=(AnnotationNote(id="n1", text="check tone", is_important=True),),
            )
        ],
        formats=[{"start": 0, "end": 5, "bold": True, "italic": False}],
        alignments={"0": "center"},
        blacklisted_entity_ids=["e9"],
        mentioned_entities=MentionedEntities(characters=[Entity(id="c1", name="Brave")]),
    )

@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    dsn = "memory://" if request.param == "memory" else f"sqlite:///{tmp_path / 'db' / 'chapters.sqlite'}"
    s = make_store(dsn)
    yield s
    s.close()

@pytest.mark.e2e
def test_crud_cycle(store):
    rec = _record()
    store.create(rec)
    assert store.count() == 1 and store.list_ids() == ["ch1"]
    assert store.read("ch1").to_dict() == rec.to_dict()

    rec.content = "Hello bold world"
    store.update(rec)
    assert store.read("ch1").content == "Hello bold world"

    store.delete("ch1")
    assert store.count() == 0
    with pytest.raises(KeyError):
        store.read("ch1")

@pytest.mark.e2e
def test_duplicate_and_missing_ids(store):
    store.create(_record())
    with pytest.raises(ValueError):
        store.create(_record())
    with pytest.raises(KeyError):
        store.update(_record("ghost"))
    with pytest.raises(KeyError):
        store.write_blacklist("ghost", ["x"])

@pytest.mark.e2e
def test_reads_are_independent_copies(store):
    store.create(_record())
    got = store.read("ch1")
    got.blacklisted_entity_ids.append("e10")
    assert store.read("ch1").blacklisted_entity_ids == ["e9"]

@pytest.mark.e2e
def test_blacklist_is_written_apart_from_content(store):
    store.create(_record())
    store.write_blacklist("ch1", ["e1", "e2"])
    assert store.read_blacklist("ch1") == ["e1", "e2"]
    assert store.read("ch1").content == "Hello brave world"

@pytest.mark.e2e
def test_unknown_chapter_blacklist_is_empty(store, caplog):
    with caplog.at_level(logging.WARNING):
        assert store.read_blacklist("nope") == []
    assert "unknown chapter" in caplog.text

@pytest.mark.e2e
def test_sqlite_persists_across_reopen(tmp_path):
    dsn = f"sqlite:///{tmp_path / 'chapters.sqlite'}"
    seeded = [_record("a"), _record("b", "Second")]
    first = make_store(dsn, chapters=seeded)
    first.close()

    second = make_store(dsn)
    try:
        assert second.list_ids() == ["a", "b"]
        assert second.read("a").to_dict() == seeded[0].to_dict()
        assert second.read("b").content == "Second"
    finally:
        second.close()

@pytest.mark.e2e
def test_corrupt_blacklist_falls_back_to_empty(tmp_path, caplog):
    s = make_store(f"sqlite:///{tmp_path / 'chapters.sqlite'}", chapters=[_record()])
    try:
        s.conn.execute("UPDATE chapters SET blacklisted_entity_ids='{not json' WHERE id='ch1'")
        s.conn.commit()
        with caplog.at_level(logging.WARNING, logger="manuscript.DB.sqlite_store"):
            assert s.read_blacklist("ch1") == []
        assert "could not read blacklist" in caplog.text

        s.conn.execute("UPDATE chapters SET blacklisted_entity_ids='{\"a\": 1}' WHERE id='ch1'")
        s.conn.commit()
        assert s.read_blacklist("ch1") == []
    finally:
        s.close()

@pytest.mark.e2e
@pytest.mark.parametrize("dsn", ["postgres://x", "sqlite:///", ""])
def test_unsupported_dsn(dsn):
    with pytest.raises(ValueError):
        make_store(dsn)
