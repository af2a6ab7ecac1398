from __future__ import annotations
import argparse
import logging
from flask import Flask, request, jsonify, Response, abort
from manuscript.engine import Engine
from manuscript.models import ChapterRecord, DialogueFormats, MentionedEntities
from manuscript.scheduling import monotonic_scheduler
from manuscript import config as CFG

log = logging.getLogger(__name__)

app = Flask(__name__)
_engine: Engine | None = None


def _eng() -> Engine:
    if _engine is None:
        abort(503, description="Engine not initialized")
    return _engine


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _state(eng: Engine) -> dict:
    sel = eng.selection
    s = eng.search
    return {
        "content": eng.content,
        "selection": {"anchor": sel.anchor, "focus": sel.focus},
        "annotations": [a.to_dict() for a in eng.annotations],
        "selectedAnnotationId": eng.selected_annotation_id,
        "segments": [seg.to_dict() for seg in eng.segments],
        "canUndo": eng.can_undo,
        "canRedo": eng.can_redo,
        "search": {
            "isOpen": s.is_open,
            "term": s.search_term,
            "replaceTerm": s.replace_term,
            "caseSensitive": s.options.case_sensitive,
            "wholeWord": s.options.whole_word,
            "mode": s.options.mode.value,
            "dialogueFormats": s.options.dialogue_formats.to_dict(),
            "results": [r.to_dict() for r in s.results],
            "currentIndex": s.current_index,
        },
        "links": [l.to_dict() for l in eng.links],
        "blacklistedEntityIds": eng.autolinker.blacklist.to_list(),
    }


@app.before_request
def _run_due_timers():
    # debounced history pushes and auto-link rescans fire between requests
    if _engine is not None:
        _engine.tick()


@app.errorhandler(ValueError)
def _bad_request(exc: ValueError):
    return jsonify({"error": str(exc)}), 400


@app.errorhandler(KeyError)
def _not_found(exc: KeyError):
    return jsonify({"error": f"not found: {exc.args[0] if exc.args else ''}"}), 404


@app.get("/health")
def health():
    eng = _engine
    return jsonify({
        "ok": eng is not None,
        "chapter": eng.record.id if eng is not None and eng.record is not None else None,
    })


# ---------- buffer ----------
@app.get("/api/state")
def api_state():
    return jsonify(_state(_eng()))


@app.post("/api/chapter")
def api_load_chapter():
    eng = _eng()
    eng.load(ChapterRecord.from_dict(_body()))
    return jsonify(_state(eng))


@app.post("/api/content")
def api_set_content():
    eng = _eng()
    eng.content = str(_body().get("content", ""))
    return jsonify(_state(eng))


@app.post("/api/edit")
def api_edit():
    eng = _eng()
    b = _body()
    eng.edit(int(b.get("start", 0)), int(b.get("end", 0)), str(b.get("text", "")))
    return jsonify(_state(eng))


@app.post("/api/type")
def api_type():
    eng = _eng()
    eng.type_text(str(_body().get("text", "")))
    return jsonify(_state(eng))


@app.post("/api/selection")
def api_selection():
    eng = _eng()
    b = _body()
    anchor = int(b.get("anchor", 0))
    eng.set_selection(anchor, int(b.get("focus", anchor)))
    return jsonify(_state(eng))


# ---------- annotations ----------
@app.post("/api/annotations")
def api_create_annotation():
    eng = _eng()
    b = _body()
    if "start" in b and "end" in b:
        eng.set_selection(int(b["start"]), int(b["end"]))
    created = eng.create_annotation_from_selection()
    if created is None:
        return jsonify({"annotation": None, **_state(eng)})
    return jsonify({"annotation": created.to_dict(), **_state(eng)}), 201


@app.post("/api/annotations/<annotation_id>/navigate")
def api_navigate(annotation_id: str):
    eng = _eng()
    found = eng.navigate_to_annotation(annotation_id)
    if found is None:
        raise KeyError(annotation_id)
    return jsonify(_state(eng))


@app.delete("/api/annotations/<annotation_id>")
def api_delete_annotation(annotation_id: str):
    eng = _eng()
    eng.delete_annotation(annotation_id)
    return jsonify(_state(eng))


@app.post("/api/annotations/<annotation_id>/notes")
def api_add_note(annotation_id: str):
    eng = _eng()
    b = _body()
    eng.add_note(annotation_id, str(b.get("text", "")), bool(b.get("isImportant", False)))
    return jsonify(_state(eng))


@app.patch("/api/annotations/<annotation_id>/notes/<note_id>")
def api_edit_note(annotation_id: str, note_id: str):
    eng = _eng()
    eng.edit_note(annotation_id, note_id, str(_body().get("text", "")))
    return jsonify(_state(eng))


@app.delete("/api/annotations/<annotation_id>/notes/<note_id>")
def api_delete_note(annotation_id: str, note_id: str):
    eng = _eng()
    eng.delete_note(annotation_id, note_id)
    return jsonify(_state(eng))


@app.post("/api/annotations/<annotation_id>/notes/<note_id>/important")
def api_toggle_important(annotation_id: str, note_id: str):
    eng = _eng()
    eng.toggle_important(annotation_id, note_id)
    return jsonify(_state(eng))


# ---------- search ----------
@app.post("/api/search/<action>")
def api_search(action: str):
    eng = _eng()
    b = _body()
    if action == "open":
        eng.open_search(str(b.get("term", "")))
    elif action == "close":
        eng.close_search()
    elif action == "term":
        eng.set_search_term(str(b.get("term", "")))
    elif action == "replace-term":
        eng.set_replace_term(str(b.get("term", "")))
    elif action == "next":
        eng.go_to_next()
    elif action == "previous":
        eng.go_to_previous()
    elif action == "case-sensitive":
        eng.toggle_case_sensitive()
    elif action == "whole-word":
        eng.toggle_whole_word()
    elif action == "mode":
        eng.set_search_mode(str(b.get("mode", CFG.SEARCH_DEFAULT_MODE)))
    elif action == "formats":
        eng.set_dialogue_formats(DialogueFormats.from_dict(b))
    elif action == "replace-current":
        eng.replace_current()
    elif action == "replace-all":
        eng.replace_all()
    else:
        abort(404)
    return jsonify(_state(eng))


# ---------- history ----------
@app.post("/api/undo")
def api_undo():
    eng = _eng()
    eng.undo()
    return jsonify(_state(eng))


@app.post("/api/redo")
def api_redo():
    eng = _eng()
    eng.redo()
    return jsonify(_state(eng))


# ---------- formatting ----------
@app.post("/api/format/<style>")
def api_format(style: str):
    eng = _eng()
    if style == "bold":
        eng.toggle_bold()
    elif style == "italic":
        eng.toggle_italic()
    elif style == "align":
        eng.set_alignment(str(_body().get("alignment", "left")))
    else:
        abort(404)
    runs, alignments = eng.formats.to_records()
    return jsonify({"formats": runs, "alignments": alignments})


# ---------- entities ----------
@app.post("/api/entities")
def api_entities():
    eng = _eng()
    links = eng.set_mentioned_entities(MentionedEntities.from_dict(_body()))
    return jsonify([l.to_dict() for l in links])


@app.post("/api/blacklist")
def api_blacklist_add():
    eng = _eng()
    entity_id = str(_body().get("entityId", ""))
    if not entity_id:
        raise ValueError("entityId is required")
    eng.add_to_blacklist(entity_id)
    return jsonify(_state(eng))


@app.delete("/api/blacklist/<entity_id>")
def api_blacklist_remove(entity_id: str):
    eng = _eng()
    eng.remove_from_blacklist(entity_id)
    return jsonify(_state(eng))


# ---------- derived views ----------
@app.get("/api/render")
def api_render():
    eng = _eng()
    segments = eng.render()
    loc = eng.caret_location
    return jsonify({
        "segments": [s.to_dict() for s in segments],
        "markup": eng.markup(),
        "caret": None if loc is None else {
            "segmentIndex": loc.segment_index, "offsetInSegment": loc.offset_in_segment, "offset": loc.offset,
        },
    })


@app.get("/api/metrics")
def api_metrics():
    return jsonify(_eng().metrics().to_dict())


@app.get("/api/dialogues")
def api_dialogues():
    return jsonify([
        {"start": d.start, "end": d.end, "type": d.type.value} for d in _eng().dialogues()
    ])


@app.post("/api/save")
def api_save():
    eng = _eng()
    if eng.store is None:
        return jsonify(eng.to_record().to_dict())
    return jsonify(eng.save().to_dict())


# ---------- UI ----------
@app.get("/")
def home():
    # A tiny page: the buffer in a textarea, the rendered segments beside it.
    html = r"""
<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8" />
<meta name="viewport" content="width=device-width,initial-scale=1" />
<title>Manuscript • Flask UI</title>
<style>
:root{
  --bg:#0b0f14; --panel:#0f141b; --ink:#cfd8e3; --muted:#8a94a6;
  --accent:#6ee7ff; --border:#1c2530; --ann:rgba(255,214,102,.25); --hit:rgba(110,231,255,.2);
}
*{box-sizing:border-box}
body{margin:0; background:var(--bg); color:var(--ink); font:16px/1.5 system-ui,Segoe UI,Roboto,Arial}
.container{max-width:1100px; margin:24px auto; padding:0 16px}
.card{background:var(--panel); border:1px solid var(--border); border-radius:16px; padding:18px}
h1{font-size:20px; margin:0 0 8px 0}
.controls{display:flex; gap:10px; align-items:center; margin:10px 0; flex-wrap:wrap}
input,select,textarea{background:#0b1117; color:var(--ink); border:1px solid var(--border); border-radius:10px; padding:8px 10px}
.btn{padding:8px 12px; border-radius:10px; border:1px solid var(--border); background:#0b1117; color:var(--ink); cursor:pointer}
.cols{display:grid; grid-template-columns:1fr 1fr; gap:14px}
textarea{width:100%; min-height:360px; font:15px/1.6 ui-monospace,Menlo,Consolas,monospace}
#view{min-height:360px; padding:10px; border:1px solid var(--border); border-radius:10px; white-space:normal}
.annotation-highlight{background:var(--ann)}
.annotation-selected{outline:1px solid #ffd666}
.search-highlight{background:var(--hit)}
.search-current{background:rgba(110,231,255,.55)}
.meta{color:var(--muted); font-size:13px}
</style>
</head>
<body>
<div class="container"><div class="card">
  <h1>Manuscript</h1>
  <div class="controls">
    <input id="term" placeholder="Search…" autocomplete="off" />
    <input id="repl" placeholder="Replace with…" autocomplete="off" />
    <select id="mode"><option value="all">All</option><option value="dialogues">Dialogues</option><option value="narration">Narration</option></select>
    <button class="btn" id="prev">↑</button><button class="btn" id="next">↓</button>
    <button class="btn" id="one">Replace</button><button class="btn" id="all">Replace all</button>
    <button class="btn" id="undo">Undo</button><button class="btn" id="redo">Redo</button>
    <button class="btn" id="annotate">Annotate selection</button>
  </div>
  <div class="cols">
    <textarea id="buf" spellcheck="false"></textarea>
    <div id="view"></div>
  </div>
  <div class="meta" id="stats">Ready.</div>
</div></div>
<script>
const $ = (s) => document.querySelector(s);
const buf = $("#buf"), view = $("#view"), stats = $("#stats"), term = $("#term");
let t;
async function call(method, url, body){
  const r = await fetch(url, {method, headers:{"Content-Type":"application/json"}, body: body ? JSON.stringify(body) : undefined});
  if(!r.ok){ stats.textContent = `Error: HTTP ${r.status}`; return null; }
  return r.json();
}
async function paint(state){
  if(!state) return;
  if(buf.value !== state.content) buf.value = state.content;
  const r = await call("GET", "/api/render");
  view.innerHTML = r ? r.markup : "";
  const s = state.search;
  stats.textContent = `${s.results.length ? (s.currentIndex + 1) + "/" + s.results.length : "0"} hits • ${state.annotations.length} annotations`;
}
buf.addEventListener("input", ()=>{ clearTimeout(t); t = setTimeout(async ()=> paint(await call("POST","/api/content",{content: buf.value})), 150); });
buf.addEventListener("select", ()=> call("POST","/api/selection",{anchor: buf.selectionStart, focus: buf.selectionEnd}));
term.addEventListener("input", ()=>{ clearTimeout(t); t = setTimeout(async ()=> paint(await call("POST","/api/search/open",{term: term.value})), 150); });
$("#repl").addEventListener("change", (e)=> call("POST","/api/search/replace-term",{term: e.target.value}));
$("#mode").addEventListener("change", async (e)=> paint(await call("POST","/api/search/mode",{mode: e.target.value})));
$("#next").onclick = async ()=> paint(await call("POST","/api/search/next"));
$("#prev").onclick = async ()=> paint(await call("POST","/api/search/previous"));
$("#one").onclick = async ()=> paint(await call("POST","/api/search/replace-current"));
$("#all").onclick = async ()=> paint(await call("POST","/api/search/replace-all"));
$("#undo").onclick = async ()=> paint(await call("POST","/api/undo"));
$("#redo").onclick = async ()=> paint(await call("POST","/api/redo"));
$("#annotate").onclick = async ()=> paint(await call("POST","/api/annotations",{start: buf.selectionStart, end: buf.selectionEnd}));
call("GET","/api/state").then(paint);
</script>
</body>
</html>
"""
    return Response(html, mimetype="text/html")


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Run Flask UI on top of Engine")
    ap.add_argument("--db", dest="db", default=CFG.DEFAULT_DSN)  # DSN: "sqlite:///path" or "memory://"
    ap.add_argument("--chapter", default=None, help="Chapter id to open from --db")
    ap.add_argument("--text", default=None, help="Plain-text file to edit when no --chapter is given")
    ap.add_argument("--host", default="127.0.0.1")
    ap.add_argument("--port", type=int, default=8000)
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.INFO)

    global _engine
    _engine = Engine(scheduler=monotonic_scheduler())
    if args.chapter:
        _engine.open(args.chapter, db_dsn=args.db, verbose=args.verbose)
    else:
        content = ""
        if args.text:
            with open(args.text, encoding="utf-8") as f:
                content = f.read()
        _engine.load(ChapterRecord(id="scratch", content=content))

    try:
        app.run(host=args.host, port=args.port, debug=args.verbose)
    finally:
        _engine.shutdown()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
