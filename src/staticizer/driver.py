from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from staticizer.instance_access import EligibleMethodSet, analyze_class, build_usage_graph
from staticizer.java_frontend import parse_java
from staticizer.java_model import ClassDecl, CompilationUnit
from staticizer.rewrite import apply_edits, class_edits


log = logging.getLogger(__name__)

PRUNED_DIRS = {".git", "target", "build", ".gradle", ".idea"}


@dataclass(frozen=True)
class ClassResult:
    decl: ClassDecl
    eligible: EligibleMethodSet

    def to_dict(self, *, with_graph: bool = False) -> dict:
        out = {
            "class": self.decl.name,
            "line": self.decl.line,
            "nested": self.decl.is_nested,
            "skipped": self.eligible.skipped,
            "methods": len(self.decl.methods),
            "eligible": self.eligible.signatures(),
        }
        if with_graph and self.eligible.skipped is None:
            graph = build_usage_graph(self.decl)
            out["graph"] = {
                "nodes_count": graph.nodes_count,
                "edges_count": graph.edges_count,
                **graph.export_topology(),
            }
        return out


@dataclass(frozen=True)
class SourceAnalysis:
    src: bytes
    unit: CompilationUnit
    classes: tuple[ClassResult, ...]

    @property
    def eligible_count(self) -> int:
        return sum(len(c.eligible) for c in self.classes)

    def staticized(self) -> bytes:
        edits = []
        for c in self.classes:
            edits.extend(class_edits(c.decl, c.eligible))
        return apply_edits(self.src, edits)


def analyze_source(source: bytes | str) -> SourceAnalysis:
    src = source.encode("utf-8") if isinstance(source, str) else source
    unit = parse_java(src)
    # Nested types come back skipped from analyze_class.
    results = tuple(ClassResult(decl=c, eligible=analyze_class(c)) for c in unit.classes)
    return SourceAnalysis(src=src, unit=unit, classes=results)


def staticize_source(source: str) -> str:
    return analyze_source(source).staticized().decode("utf-8")


def find_java_files(paths: list[Path], *, max_files: int | None = None) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        if path.is_file():
            files.append(path)
            continue
        for root, dirs, fns in os.walk(path):
            dirs[:] = sorted(d for d in dirs if d not in PRUNED_DIRS)
            for fn in sorted(fns):
                if fn.endswith(".java"):
                    files.append(Path(root) / fn)
    if max_files is not None:
        files = files[:max_files]
    return files
