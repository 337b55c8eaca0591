"""Instance-data access analysis for one class body.

classify_members -> build_usage_graph -> propagate -> decide. Methods that
are private or final and never reached by instance-data taint can be made
static.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass

from staticizer.java_model import ClassDecl, FieldDecl, MemberRef, MethodDecl, Qualifier, RefKind
from staticizer.usage_graph import (
    INHERITED_MEMBER,
    NodeId,
    UsageGraph,
    field_node_id,
    method_node_id,
)


log = logging.getLogger(__name__)


# Instance methods every class inherits from java.lang.Object.
OBJECT_METHODS = frozenset(
    {"clone", "equals", "finalize", "getClass", "hashCode", "notify", "notifyAll", "toString", "wait"}
)

_PRIMITIVE_WIDENING = {
    "byte": {"byte", "short", "int", "long", "float", "double"},
    "short": {"short", "int", "long", "float", "double"},
    "char": {"char", "int", "long", "float", "double"},
    "int": {"int", "long", "float", "double"},
    "long": {"long", "float", "double"},
    "float": {"float", "double"},
    "double": {"double"},
    "boolean": {"boolean"},
}
_BOXES = {
    "byte": "Byte",
    "short": "Short",
    "char": "Character",
    "int": "Integer",
    "long": "Long",
    "float": "Float",
    "double": "Double",
    "boolean": "Boolean",
}
_UNBOXES = {v: k for k, v in _BOXES.items()}
_BOX_SUPERTYPES = {"Object", "Number", "Comparable", "Serializable", "Constable"}
# Final JDK types: two different names among these are never assignable.
_FINAL_TYPES = set(_UNBOXES) | {"String"}

_GENERIC_ARGS = re.compile(r"<[^<>]*>")
_TYPE_VAR = re.compile(r"^[A-Z][A-Z0-9_]?$")


class StaticizerError(Exception):
    pass


class GraphInvariantError(StaticizerError):
    """The usage graph disagrees with the members it was built from."""


@dataclass(frozen=True)
class ClassMembers:
    fields: tuple[FieldDecl, ...]
    methods: tuple[MethodDecl, ...]
    static_fields: tuple[FieldDecl, ...]
    static_methods: tuple[MethodDecl, ...]


@dataclass(frozen=True)
class PropagationResult:
    visited: frozenset[NodeId]
    accessed_methods: frozenset[MethodDecl]


@dataclass(frozen=True)
class EligibleMethodSet:
    class_name: str
    methods: tuple[MethodDecl, ...] = ()
    skipped: str | None = None

    @classmethod
    def empty(cls, class_name: str, skipped: str | None = None) -> "EligibleMethodSet":
        return cls(class_name=class_name, methods=(), skipped=skipped)

    def contains(self, method: MethodDecl) -> bool:
        key = method_node_id(method)
        return any(method_node_id(m) == key for m in self.methods)

    def __contains__(self, method: object) -> bool:
        return isinstance(method, MethodDecl) and self.contains(method)

    def __iter__(self):
        return iter(self.methods)

    def __len__(self) -> int:
        return len(self.methods)

    def signatures(self) -> list[str]:
        return [m.signature for m in self.methods]


# ── Member classifier ────────────────────────────────────────────────────────


def classify_members(class_decl: ClassDecl) -> ClassMembers:
    fields = tuple(f for f in class_decl.fields if not f.is_static)
    methods = tuple(m for m in class_decl.methods if not m.is_static)
    return ClassMembers(
        fields=fields,
        methods=methods,
        static_fields=tuple(f for f in class_decl.fields if f.is_static),
        static_methods=tuple(m for m in class_decl.methods if m.is_static),
    )


# ── Overload resolution ──────────────────────────────────────────────────────


def _erase(type_name: str) -> str:
    t = type_name.replace(" ", "")
    prev = None
    while prev != t:
        prev = t
        t = _GENERIC_ARGS.sub("", t)
    return t.rsplit(".", 1)[-1]


def _assignable(arg: str | None, param: str) -> bool:
    if arg is None:
        return True
    a = _erase(arg)
    p = _erase(param)
    if a == p or p == "Object" or _TYPE_VAR.match(p):
        return True
    if a in _PRIMITIVE_WIDENING and p in _PRIMITIVE_WIDENING:
        return p in _PRIMITIVE_WIDENING[a]
    if a in _PRIMITIVE_WIDENING:
        return p == _BOXES[a] or p in _BOX_SUPERTYPES
    if p in _PRIMITIVE_WIDENING:
        unboxed = _UNBOXES.get(a)
        return unboxed is not None and p in _PRIMITIVE_WIDENING[unboxed]
    if a in _FINAL_TYPES and p in _FINAL_TYPES:
        return False
    # Unknown class hierarchy; assume a subtype relation may exist.
    return True


def _arity_matches(method: MethodDecl, argc: int) -> bool:
    n = len(method.param_types)
    if method.is_varargs:
        return argc >= n - 1
    return argc == n


def _types_match(method: MethodDecl, arg_types: tuple[str | None, ...]) -> bool:
    params = method.param_types
    for i, arg in enumerate(arg_types):
        if method.is_varargs and i >= len(params) - 1:
            base = params[-1][: -len("...")]
            if not (_assignable(arg, base) or _assignable(arg, base + "[]")):
                return False
        elif not _assignable(arg, params[i]):
            return False
    return True


def resolve_overloads(candidates: list[MethodDecl], ref: MemberRef) -> list[MethodDecl]:
    if ref.arg_types is None:
        return list(candidates)
    argc = len(ref.arg_types)
    by_arity = [m for m in candidates if _arity_matches(m, argc)]
    typed = [m for m in by_arity if _types_match(m, ref.arg_types)]
    return typed or by_arity or list(candidates)


# ── Graph builder ────────────────────────────────────────────────────────────


def _may_be_inherited(class_decl: ClassDecl, ref: MemberRef) -> bool:
    if ref.qualifier is not Qualifier.IMPLICIT:
        return True
    if ref.kind is RefKind.FIELD:
        # Interface fields are static; only a superclass can contribute instance fields.
        return class_decl.superclass is not None
    if ref.name in class_decl.static_imports:
        return False
    return class_decl.has_ancestors or ref.name in OBJECT_METHODS


class _GraphBuilder:
    def __init__(self, class_decl: ClassDecl, members: ClassMembers) -> None:
        self.class_decl = class_decl
        self.members = members
        self.graph = UsageGraph()
        self._edges: set[tuple[NodeId, NodeId]] = set()
        self._fields_by_name = {f.name: f for f in members.fields}
        self._static_field_names = {f.name for f in members.static_fields}
        self._methods_by_name: dict[str, list[MethodDecl]] = {}
        for m in members.methods + members.static_methods:
            self._methods_by_name.setdefault(m.name, []).append(m)

    def build(self) -> UsageGraph:
        for f in self.members.fields:
            self.graph.add_node(field_node_id(f), f)
        for m in self.members.methods:
            self.graph.add_node(method_node_id(m), m)
        for m in self.members.methods:
            for ref in m.references:
                self._add_reference(m, ref)
        return self.graph

    def _link(self, from_id: NodeId, from_payload, method: MethodDecl) -> None:
        to_id = method_node_id(method)
        if (from_id, to_id) in self._edges:
            return
        self._edges.add((from_id, to_id))
        self.graph.add_edge(from_id, from_payload, to_id, method)

    def _link_inherited(self, method: MethodDecl) -> None:
        self._link(INHERITED_MEMBER, None, method)

    def _add_reference(self, method: MethodDecl, ref: MemberRef) -> None:
        if ref.kind is RefKind.RECEIVER or ref.qualifier is Qualifier.SUPER:
            self._link_inherited(method)
        elif ref.kind is RefKind.FIELD:
            self._add_field_reference(method, ref)
        else:
            self._add_call(method, ref)

    def _add_field_reference(self, method: MethodDecl, ref: MemberRef) -> None:
        f = self._fields_by_name.get(ref.name)
        if f is not None:
            self._link(field_node_id(f), f, method)
        elif ref.name in self._static_field_names:
            return
        elif _may_be_inherited(self.class_decl, ref):
            self._link_inherited(method)

    def _add_call(self, method: MethodDecl, ref: MemberRef) -> None:
        declared = self._methods_by_name.get(ref.name)
        if not declared:
            if _may_be_inherited(self.class_decl, ref):
                self._link_inherited(method)
            return
        resolved = resolve_overloads(declared, ref)
        if ref.arg_types is not None and not any(_arity_matches(m, len(ref.arg_types)) for m in declared):
            # No declared overload fits; an inherited one may be the target.
            if self.class_decl.has_ancestors or ref.qualifier is Qualifier.THIS:
                self._link_inherited(method)
        self_id = method_node_id(method)
        for callee in resolved:
            if callee.is_static:
                continue
            callee_id = method_node_id(callee)
            if callee_id == self_id:
                continue
            self._link(callee_id, callee, method)


def build_usage_graph(class_decl: ClassDecl, members: ClassMembers | None = None) -> UsageGraph:
    if members is None:
        members = classify_members(class_decl)
    return _GraphBuilder(class_decl, members).build()


# ── Reachability propagator ──────────────────────────────────────────────────


def is_instance_data_accessed(payload: FieldDecl | MethodDecl | None) -> bool:
    if payload is None:
        # Inherited member: its body is not visible.
        return True
    if isinstance(payload, FieldDecl):
        return True
    return not payload.is_non_overridable


def propagate(graph: UsageGraph) -> PropagationResult:
    queue = deque(n.id for n in graph.nodes() if is_instance_data_accessed(n.payload))
    visited: set[NodeId] = set()
    accessed: set[MethodDecl] = set()
    while queue:
        node_id = queue.popleft()
        if node_id in visited:
            continue
        visited.add(node_id)
        node = graph.node(node_id)
        if node is None:
            raise GraphInvariantError(f"edge points at unknown node {node_id}")
        if isinstance(node.payload, MethodDecl):
            accessed.add(node.payload)
        queue.extend(node.outgoing)
    return PropagationResult(visited=frozenset(visited), accessed_methods=frozenset(accessed))


# ── Eligibility decider ──────────────────────────────────────────────────────


def decide(class_decl: ClassDecl, members: ClassMembers, graph: UsageGraph, result: PropagationResult) -> EligibleMethodSet:
    eligible: list[MethodDecl] = []
    for m in members.methods:
        node = graph.node(method_node_id(m))
        if node is None:
            raise GraphInvariantError(f"method {m.signature} of {class_decl.name} has no graph node")
        if not isinstance(node.payload, MethodDecl):
            raise GraphInvariantError(f"node {node.id} does not carry a method declaration")
        if node.payload != m:
            # Two declarations collapsed onto one identity; neither can be judged alone.
            raise GraphInvariantError(f"duplicate method identity {node.id} in {class_decl.name}")
        if m.is_non_overridable and m not in result.accessed_methods:
            eligible.append(m)
    return EligibleMethodSet(class_name=class_decl.name, methods=tuple(eligible))


def analyze_class(class_decl: ClassDecl) -> EligibleMethodSet:
    if class_decl.is_nested:
        log.debug("Skipping nested type %s", class_decl.name)
        return EligibleMethodSet.empty(class_decl.name, skipped="nested")
    if class_decl.has_errors:
        log.info("Skipping %s: syntax errors in class body", class_decl.name)
        return EligibleMethodSet.empty(class_decl.name, skipped="syntax_error")
    try:
        members = classify_members(class_decl)
        graph = build_usage_graph(class_decl, members)
        if log.isEnabledFor(logging.DEBUG):
            log.debug("Usage graph of %s:\n%s", class_decl.name, graph.render())
        result = propagate(graph)
        return decide(class_decl, members, graph, result)
    except GraphInvariantError as e:
        log.warning("Skipping %s: %s", class_decl.name, e)
        return EligibleMethodSet.empty(class_decl.name, skipped="invariant_violation")
