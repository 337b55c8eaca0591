import argparse
import json
import logging
import sys
import time
from pathlib import Path

from staticizer.driver import analyze_source, find_java_files


log = logging.getLogger(__name__)


def analyze_file(path: Path, *, apply: bool, with_graph: bool) -> dict:
    src = path.read_bytes()
    analysis = analyze_source(src)
    entry = {
        "path": str(path),
        "package": analysis.unit.package,
        "classes": [c.to_dict(with_graph=with_graph) for c in analysis.classes],
        "eligible": analysis.eligible_count,
        "rewritten": False,
    }
    if apply and analysis.eligible_count:
        new_src = analysis.staticized()
        if new_src != src:
            path.write_bytes(new_src)
            entry["rewritten"] = True
    return entry


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Find private/final Java methods that never touch instance data and can be made static"
    )
    parser.add_argument("paths", nargs="+", help="Java files or directories to scan")
    parser.add_argument("--apply", action="store_true", help="Rewrite files in place, adding `static`")
    parser.add_argument("--out", default="-", help="Report path, '-' for stdout")
    parser.add_argument("--max-files", type=int, default=None)
    parser.add_argument("--graph", action="store_true", help="Include usage graph topology per class")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    started = time.perf_counter()
    report: dict = {
        "meta": {
            "paths": args.paths,
            "apply": args.apply,
            "started_at_unix": time.time(),
        },
        "files": [],
        "summary": {},
        "timings": {},
        "errors": [],
    }

    files = find_java_files([Path(p) for p in args.paths], max_files=args.max_files)
    for path in files:
        try:
            report["files"].append(analyze_file(path, apply=args.apply, with_graph=args.graph))
        except OSError as e:
            log.warning("Cannot read %s: %s", path, e)
            report["errors"].append({"path": str(path), "error": str(e)})
        except Exception as e:
            # A single file the parser chokes on must not abort the whole scan.
            log.warning("Cannot analyze %s: %s", path, e)
            report["errors"].append({"path": str(path), "error": str(e)})

    classes = [c for f in report["files"] for c in f["classes"]]
    report["summary"] = {
        "files": len(report["files"]),
        "classes": len(classes),
        "classes_skipped": sum(1 for c in classes if c["skipped"]),
        "eligible_methods": sum(f["eligible"] for f in report["files"]),
        "files_rewritten": sum(1 for f in report["files"] if f["rewritten"]),
    }
    report["timings"]["total_wall_sec"] = time.perf_counter() - started

    text = json.dumps(report, ensure_ascii=False, indent=2) + "\n"
    if args.out == "-":
        sys.stdout.write(text)
    else:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        print(json.dumps({"status": "ok" if not report["errors"] else "error", "out": str(out_path)}, ensure_ascii=False))

    return 0 if not report["errors"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
