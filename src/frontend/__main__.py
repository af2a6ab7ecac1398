from __future__ import annotations
import argparse, json, logging, sys
from manuscript import Engine, ChapterRecord
from manuscript import config as CFG
from manuscript.models import SearchMode


def _load(eng: Engine, args) -> None:
    if args.chapter:
        eng.open(args.chapter, db_dsn=args.db, verbose=args.verbose)
        return
    if args.text == "-":
        content = sys.stdin.read()
    else:
        with open(args.text, encoding="utf-8") as f:
            content = f.read()
    eng.load(ChapterRecord(id=args.text, content=content))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Manuscript CLI (Engine-backed)")
    src = p.add_mutually_exclusive_group(required=True)
    src.add_argument("--chapter", default=None, help="Chapter id to read from --db")
    src.add_argument("--text", default=None, help="Plain-text file to read ('-' for stdin)")

    p.add_argument("--db", default=CFG.DEFAULT_DSN, help='Store DSN: "sqlite:///path" or "memory://"')
    p.add_argument("--search", default=None, help="Term to search for")
    p.add_argument("--mode", choices=[m.value for m in SearchMode], default=CFG.SEARCH_DEFAULT_MODE)
    p.add_argument("--case-sensitive", action="store_true")
    p.add_argument("--whole-word", action="store_true")
    p.add_argument("--replace-all", default=None, metavar="REPLACEMENT",
                   help="Replace every hit of --search; saves to --db when reading a chapter")
    p.add_argument("--stats", action="store_true", help="Print chapter metrics")
    p.add_argument("--dialogues", action="store_true", help="List detected dialogue ranges")
    p.add_argument("--json", action="store_true", help="Emit JSON")
    p.add_argument("--verbose", action="store_true")

    args = p.parse_args(argv)
    if args.replace_all is not None and not args.search:
        p.error("--replace-all requires --search")
    if not (args.search or args.stats or args.dialogues):
        p.error("nothing to do: pass --search, --stats or --dialogues")
    if args.verbose:
        logging.basicConfig(level=logging.INFO)

    eng = Engine()
    try:
        try:
            _load(eng, args)
        except KeyError as exc:
            print(f"chapter not found in {args.db}: {exc.args[0]}", file=sys.stderr)
            return 2
        out: dict = {}

        if args.search:
            eng.set_search_mode(args.mode)
            if args.case_sensitive:
                eng.toggle_case_sensitive()
            if args.whole_word:
                eng.toggle_whole_word()
            eng.open_search(args.search)
            hits = list(eng.search.results)
            out["results"] = [h.to_dict() for h in hits]
            if args.replace_all is not None:
                eng.set_replace_term(args.replace_all)
                new_content = eng.replace_all()
                out["replaced"] = len(hits) if new_content is not None else 0
                out["content"] = eng.content
                if args.chapter and new_content is not None:
                    eng.save()

        if args.stats:
            out["metrics"] = eng.metrics().to_dict()

        if args.dialogues:
            out["dialogues"] = [
                {"start": d.start, "end": d.end, "type": d.type.value, "text": eng.content[d.start:d.end]}
                for d in eng.dialogues()
            ]

        if args.json:
            print(json.dumps(out, ensure_ascii=False, indent=2))
            return 0

        if "results" in out:
            if not out["results"]:
                print("(no matches)")
            else:
                print("#   Start  End    Match")
                for r in out["results"]:
                    print(f"{r['index'] + 1:<3} {r['start']:<6} {r['end']:<6} {r['text']}")
        if "replaced" in out:
            print(f"replaced {out['replaced']} occurrence(s)")
            if not args.chapter:
                print(out["content"])
        if "metrics" in out:
            for key, value in out["metrics"].items():
                print(f"{key:<28} {value}")
        if "dialogues" in out:
            for d in out["dialogues"]:
                print(f"[{d['start']},{d['end']}) {d['type']:<13} {d['text']!r}")
        return 0
    finally:
        eng.shutdown()

if __name__ == "__main__":
    raise SystemExit(main())
