from __future__ import annotations

from dataclasses import dataclass

from staticizer.instance_access import EligibleMethodSet
from staticizer.java_model import ClassDecl, MethodDecl


# Canonical Java modifier order (annotations always come first).
MODIFIER_ORDER = [
    "public",
    "protected",
    "private",
    "abstract",
    "default",
    "static",
    "final",
    "sealed",
    "non-sealed",
    "transient",
    "volatile",
    "synchronized",
    "native",
    "strictfp",
]


@dataclass(frozen=True)
class TextEdit:
    start_byte: int
    end_byte: int
    replacement: str


def _order(keyword: str) -> int:
    try:
        return MODIFIER_ORDER.index(keyword)
    except ValueError:
        return len(MODIFIER_ORDER)


def staticized_keywords(keywords: list[str]) -> list[str] | None:
    if not keywords or "static" in keywords:
        return None
    if "final" in keywords:
        # `static` makes `final` redundant on a method.
        out = ["static" if k == "final" else k for k in keywords]
    elif "private" in keywords:
        out = keywords + ["static"]
    else:
        return None
    return sorted(out, key=_order)


def static_modifier_edit(method: MethodDecl) -> TextEdit | None:
    keyword_tokens = [t for t in method.modifier_tokens if not t.is_annotation]
    new_keywords = staticized_keywords([t.text for t in keyword_tokens])
    if new_keywords is None:
        return None
    start = keyword_tokens[0].start_byte
    end = keyword_tokens[-1].end_byte
    interleaved = [t.text for t in method.modifier_tokens if t.is_annotation and start < t.start_byte < end]
    return TextEdit(start, end, " ".join(interleaved + new_keywords))


def class_edits(class_decl: ClassDecl, eligible: EligibleMethodSet) -> list[TextEdit]:
    edits = []
    for m in class_decl.methods:
        if not eligible.contains(m):
            continue
        edit = static_modifier_edit(m)
        if edit is not None:
            edits.append(edit)
    return edits


def apply_edits(src: bytes, edits: list[TextEdit]) -> bytes:
    out = src
    for e in sorted(edits, key=lambda e: e.start_byte, reverse=True):
        out = out[: e.start_byte] + e.replacement.encode("utf-8") + out[e.end_byte :]
    return out
