import sys
import unittest
from pathlib import Path
from unittest import mock


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from staticizer import instance_access  # noqa: E402
from staticizer.instance_access import (  # noqa: E402
    GraphInvariantError,
    analyze_class,
    build_usage_graph,
    classify_members,
    decide,
    propagate,
    resolve_overloads,
)
from staticizer.java_model import (  # noqa: E402
    ClassDecl,
    FieldDecl,
    MemberRef,
    MethodDecl,
    Qualifier,
    RefKind,
)
from staticizer.usage_graph import INHERITED_MEMBER, UsageGraph, field_node_id, method_node_id  # noqa: E402


def method(name, *params, mods=("private",), refs=()):
    return MethodDecl(name=name, param_types=tuple(params), modifiers=frozenset(mods), references=tuple(refs))


def read(name, qualifier=Qualifier.IMPLICIT):
    return MemberRef(RefKind.FIELD, name, qualifier)


def call(name, *arg_types, qualifier=Qualifier.IMPLICIT):
    return MemberRef(RefKind.METHOD, name, qualifier, tuple(arg_types))


def eligible_names(class_decl):
    return sorted(m.signature for m in analyze_class(class_decl))


class MemberClassifierTests(unittest.TestCase):
    def test_static_members_are_excluded(self) -> None:
        cls = ClassDecl(
            name="A",
            fields=(FieldDecl("a", "int"), FieldDecl("s", "int", frozenset({"static"}))),
            methods=(method("f"), method("g", mods=("private", "static"))),
        )
        members = classify_members(cls)

        self.assertEqual([f.name for f in members.fields], ["a"])
        self.assertEqual([m.name for m in members.methods], ["f"])
        self.assertEqual([f.name for f in members.static_fields], ["s"])
        self.assertEqual([m.name for m in members.static_methods], ["g"])


class AnalyzeClassTests(unittest.TestCase):
    def test_field_read_is_not_eligible_and_literal_is(self) -> None:
        cls = ClassDecl(
            name="A",
            fields=(FieldDecl("a", "int"),),
            methods=(method("f1", refs=[read("a")]), method("f2", "int")),
        )
        self.assertEqual(eligible_names(cls), ["f2(int)"])

    def test_static_field_never_taints(self) -> None:
        cls = ClassDecl(
            name="A",
            fields=(FieldDecl("s", "int", frozenset({"private", "static"})),),
            methods=(method("f", refs=[read("s")]),),
        )
        self.assertEqual(eligible_names(cls), ["f()"])

    def test_overridable_methods_are_never_eligible(self) -> None:
        cls = ClassDecl(
            name="A",
            methods=(method("p", mods=("public",)), method("q", mods=("protected",)), method("r", mods=())),
        )
        self.assertEqual(eligible_names(cls), [])

    def test_calling_overridable_method_taints_caller(self) -> None:
        cls = ClassDecl(
            name="A",
            methods=(method("helper", mods=("public",)), method("f", refs=[call("helper")])),
        )
        self.assertEqual(eligible_names(cls), [])

    def test_final_method_is_a_candidate(self) -> None:
        cls = ClassDecl(name="A", methods=(method("f", mods=("final",)),))
        self.assertEqual(eligible_names(cls), ["f()"])

    def test_taint_propagates_transitively(self) -> None:
        cls = ClassDecl(
            name="A",
            fields=(FieldDecl("a", "int"),),
            methods=(
                method("f1", "int"),
                method("f2", "int", refs=[call("f1", "int")]),
                method("f3", "int", refs=[call("f2", "int")]),
                method("f4", "int", refs=[call("f3", "int"), read("a")]),
                method("f5", refs=[call("f4", "int")]),
            ),
        )
        self.assertEqual(eligible_names(cls), ["f1(int)", "f2(int)", "f3(int)"])

    def test_direct_recursion_is_eligible(self) -> None:
        cls = ClassDecl(name="A", methods=(method("f", "int", refs=[call("f", "int")]),))

        self.assertEqual(eligible_names(cls), ["f(int)"])
        self.assertEqual(build_usage_graph(cls).edges_count, 0)

    def test_mutual_recursion(self) -> None:
        clean = ClassDecl(
            name="C",
            methods=(method("odd", "int", refs=[call("even", None)]), method("even", "int", refs=[call("odd", "int")])),
        )
        self.assertEqual(eligible_names(clean), ["even(int)", "odd(int)"])

        tainted = ClassDecl(
            name="C",
            fields=(FieldDecl("steps", "int"),),
            methods=(
                method("odd", "int", refs=[call("even", None)]),
                method("even", "int", refs=[call("odd", "int"), read("steps")]),
            ),
        )
        self.assertEqual(eligible_names(tainted), [])

    def test_overloads_are_discriminated(self) -> None:
        cls = ClassDecl(
            name="A",
            fields=(FieldDecl("a", "int", frozenset({"protected"})),),
            methods=(
                method("func1", "int"),
                method("func1", refs=[read("a")]),
                method("user", refs=[call("func1", "int")]),
            ),
        )
        self.assertEqual(eligible_names(cls), ["func1(int)", "user()"])

    def test_unknown_argument_type_keeps_every_overload(self) -> None:
        cls = ClassDecl(
            name="A",
            fields=(FieldDecl("f", "int"),),
            methods=(
                method("helper", "int", refs=[read("f")]),
                method("helper", "String"),
                method("caller", refs=[call("helper", None)]),
            ),
        )
        self.assertEqual(eligible_names(cls), ["helper(String)"])

    def test_call_to_other_overload_of_same_name_is_an_edge(self) -> None:
        cls = ClassDecl(
            name="A",
            fields=(FieldDecl("a", "int"),),
            methods=(method("f", refs=[read("a")]), method("f", "int", refs=[call("f")])),
        )
        self.assertEqual(eligible_names(cls), [])

    def test_call_to_static_method_adds_no_edge(self) -> None:
        cls = ClassDecl(
            name="A",
            methods=(method("util", mods=("private", "static")), method("f", "int", refs=[call("util")])),
        )
        self.assertEqual(eligible_names(cls), ["f(int)"])

    def test_inherited_field_and_method_taint(self) -> None:
        cls = ClassDecl(
            name="B",
            superclass="A",
            methods=(method("f2", refs=[read("a")]), method("f3", refs=[call("func1")]), method("f4", "int")),
        )
        self.assertEqual(eligible_names(cls), ["f4(int)"])
        graph = build_usage_graph(cls)
        self.assertIsNone(graph.node(INHERITED_MEMBER).payload)
        self.assertEqual(graph.node(INHERITED_MEMBER).outgoing, [method_node_id(cls.methods[0]), method_node_id(cls.methods[1])])

    def test_enum_and_record_members_are_inherited(self) -> None:
        for kind in ("enum", "record"):
            cls = ClassDecl(
                name="E",
                kind=kind,
                methods=(method("idx", mods=("final",), refs=[call("ordinal")]), method("twice", "int")),
            )
            with self.subTest(kind=kind):
                self.assertTrue(cls.has_ancestors)
                self.assertEqual(eligible_names(cls), ["twice(int)"])

    def test_unresolved_names_without_ancestors_are_ignored(self) -> None:
        cls = ClassDecl(name="A", methods=(method("f", refs=[read("x"), call("max", "int", "int")]),))
        self.assertEqual(eligible_names(cls), ["f()"])

    def test_object_methods_are_inherited(self) -> None:
        cls = ClassDecl(name="A", methods=(method("f", refs=[call("hashCode")]),))
        self.assertEqual(eligible_names(cls), [])

    def test_explicit_static_import_is_not_inherited(self) -> None:
        cls = ClassDecl(
            name="A",
            interfaces=("Runnable",),
            static_imports=frozenset({"max"}),
            methods=(method("f", refs=[call("max", "int", "int")]),),
        )
        self.assertEqual(eligible_names(cls), ["f()"])

    def test_super_and_receiver_references_taint(self) -> None:
        cls = ClassDecl(
            name="A",
            methods=(
                method("f", refs=[call("toString", qualifier=Qualifier.SUPER)]),
                method("g", refs=[MemberRef(RefKind.RECEIVER, "this")]),
                method("h", refs=[read("missing", Qualifier.THIS)]),
            ),
        )
        self.assertEqual(eligible_names(cls), [])

    def test_nested_class_is_skipped(self) -> None:
        cls = ClassDecl(name="Inner", is_nested=True, methods=(method("f", "int"),))
        result = analyze_class(cls)

        self.assertEqual(len(result), 0)
        self.assertEqual(result.skipped, "nested")

    def test_class_with_syntax_errors_is_skipped(self) -> None:
        cls = ClassDecl(name="A", has_errors=True, methods=(method("f", "int"),))
        self.assertEqual(analyze_class(cls).skipped, "syntax_error")

    def test_eligible_set_membership(self) -> None:
        cls = ClassDecl(name="A", methods=(method("f", "int"), method("f", "long", mods=("public",))))
        result = analyze_class(cls)

        self.assertTrue(result.contains(method("f", "int")))
        self.assertIn(method("f", "int", mods=("final",)), result)
        self.assertNotIn(method("f", "long"), result)
        self.assertEqual(result.signatures(), ["f(int)"])


class DebugLoggingTests(unittest.TestCase):
    def test_usage_graph_is_logged_at_debug(self) -> None:
        cls = ClassDecl(name="A", fields=(FieldDecl("a", "int"),), methods=(method("f", refs=[read("a")]),))
        with self.assertLogs("staticizer.instance_access", level="DEBUG") as logs:
            analyze_class(cls)

        text = "\n".join(logs.output)
        self.assertIn("Usage graph of A", text)
        self.assertIn("Node: M_f() (inDegree=1)", text)


class PropagationTests(unittest.TestCase):
    def test_every_node_reachable_from_a_seed_is_visited_once(self) -> None:
        cls = ClassDecl(
            name="A",
            fields=(FieldDecl("a", "int"),),
            methods=(
                method("x", refs=[read("a"), call("y")]),
                method("y", refs=[call("x")]),
                method("z"),
            ),
        )
        graph = build_usage_graph(cls)
        result = propagate(graph)

        self.assertEqual({m.name for m in result.accessed_methods}, {"x", "y"})
        self.assertNotIn(method_node_id(cls.methods[2]), result.visited)

    def test_propagation_rejects_dangling_edges(self) -> None:
        graph = UsageGraph()
        m = method("f")
        graph.add_node(method_node_id(m), m)
        graph.node(method_node_id(m)).outgoing.append(method_node_id(method("ghost")))
        field = FieldDecl("a", "int")
        graph.add_edge(field_node_id(field), field, method_node_id(m), m)

        with self.assertRaises(GraphInvariantError):
            propagate(graph)


class InvariantFaultTests(unittest.TestCase):
    def test_decider_rejects_method_missing_from_graph(self) -> None:
        cls = ClassDecl(name="A", methods=(method("f"),))
        members = classify_members(cls)
        graph = UsageGraph()

        with self.assertRaises(GraphInvariantError):
            decide(cls, members, graph, propagate(graph))

    def test_analysis_falls_back_to_no_eligible_methods(self) -> None:
        cls = ClassDecl(name="A", methods=(method("f"), method("g", "int")))
        with mock.patch.object(instance_access, "build_usage_graph", return_value=UsageGraph()):
            result = analyze_class(cls)

        self.assertEqual(len(result), 0)
        self.assertEqual(result.skipped, "invariant_violation")


class OverloadResolutionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.candidates = [
            method("f", "int"),
            method("f", "String"),
            method("f", "int", "int"),
            method("f", "String..."),
        ]

    def _resolve(self, ref):
        return sorted(m.signature for m in resolve_overloads(self.candidates, ref))

    def test_known_argument_types_pick_one_overload(self) -> None:
        self.assertEqual(self._resolve(call("f", "String", "String")), ["f(String...)"])
        self.assertEqual(self._resolve(call("f", "int", "int")), ["f(int,int)"])

    def test_unknown_argument_types_keep_all_arity_matches(self) -> None:
        self.assertEqual(self._resolve(call("f", None)), ["f(String)", "f(String...)", "f(int)"])

    def test_primitive_widening_and_boxing(self) -> None:
        cands = [method("g", "long"), method("g", "boolean"), method("g", "Integer")]
        resolved = sorted(m.signature for m in resolve_overloads(cands, call("g", "int")))
        self.assertEqual(resolved, ["g(Integer)", "g(long)"])

    def test_unknown_arity_matches_every_overload(self) -> None:
        ref = MemberRef(RefKind.METHOD, "f", Qualifier.THIS, None)
        self.assertEqual(len(resolve_overloads(self.candidates, ref)), 4)

    def test_no_compatible_overload_falls_back_to_all(self) -> None:
        cands = [method("h", "int")]
        self.assertEqual(resolve_overloads(cands, call("h", "int", "int", "int")), cands)


if __name__ == "__main__":
    unittest.main()
