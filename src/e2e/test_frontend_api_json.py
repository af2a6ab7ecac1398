import pytest
from manuscript.engine import Engine
from manuscript.models import ChapterRecord
from frontend.web import app as flask_app

@pytest.fixture
def client():
    eng = Engine()
    eng.load(ChapterRecord(id="ch1", content="Hello brave new world"))

    import frontend.web as webmod
    webmod._engine = eng

    yield flask_app.test_client()

    webmod._engine = None
    eng.shutdown()

@pytest.mark.e2e
def test_frontend_annotation_and_note_flow(client):
    rv = client.post("/api/annotations", json={"start": 6, "end": 11})
    assert rv.status_code == 201
    data = rv.get_json()
    ann = data["annotation"]
    assert (ann["startOffset"], ann["endOffset"], ann["text"]) == (6, 11, "brave")
    assert data["selectedAnnotationId"] == ann["id"]

    rv = client.post("/api/annotations", json={"start": 3, "end": 3})
    assert rv.status_code == 200 and rv.get_json()["annotation"] is None

    rv = client.post(f"/api/annotations/{ann['id']}/notes", json={"text": "why brave?", "isImportant": True})
    notes = rv.get_json()["annotations"][0]["notes"]
    assert [(n["text"], n["isImportant"]) for n in notes] == [("why brave?", True)]

    rv = client.post("/api/annotations/missing/navigate")
    assert rv.status_code == 404

    rv = client.delete(f"/api/annotations/{ann['id']}")
    assert rv.get_json()["annotations"] == []

@pytest.mark.e2e
def test_frontend_search_edit_and_undo(client):
    rv = client.post("/api/search/open", json={"term": "new"})
    search = rv.get_json()["search"]
    assert search["isOpen"] is True
    assert [(r["start"], r["end"]) for r in search["results"]] == [(12, 15)]

    rv = client.post("/api/edit", json={"start": 0, "end": 0, "text": "A "})
    state = rv.get_json()
    assert state["content"] == "A Hello brave new world"
    assert state["search"]["results"][0]["start"] == 14
    assert state["canUndo"] is True

    rv = client.post("/api/undo")
    assert rv.get_json()["content"] == "Hello brave new world"

    rv = client.get("/api/render")
    body = rv.get_json()
    assert 'class="search-highlight search-current"' in body["markup"]
    assert "".join(s["text"] for s in body["segments"]) == "Hello brave new world"

@pytest.mark.e2e
def test_frontend_rejects_bad_input(client):
    assert client.post("/api/search/sideways").status_code == 404
    assert client.post("/api/search/mode", json={"mode": "sideways"}).status_code == 400
    assert client.post("/api/blacklist", json={}).status_code == 400
    assert client.post("/api/format/underline").status_code == 404

@pytest.mark.e2e
def test_frontend_format_metrics_and_save(client):
    client.post("/api/selection", json={"anchor": 0, "focus": 5})
    rv = client.post("/api/format/bold")
    assert rv.get_json()["formats"] == [{"start": 0, "end": 5, "bold": True, "italic": False}]

    rv = client.post("/api/format/align", json={"alignment": "center"})
    assert rv.get_json()["alignments"] == {"0": "center"}

    metrics = client.get("/api/metrics").get_json()
    assert metrics["word_count"] == 4

    saved = client.post("/api/save").get_json()
    assert saved["id"] == "ch1"
    assert saved["formats"][0]["bold"] is True

@pytest.mark.e2e
def test_frontend_without_engine_is_unavailable():
    import frontend.web as webmod
    webmod._engine = None
    client = flask_app.test_client()
    assert client.get("/api/state").status_code == 503
    assert client.get("/health").get_json()["ok"] is False
