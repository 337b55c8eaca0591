"""Directed usage graph over the members of one class.

An edge `a -> b` means "b uses a": instance-data taint flows from the
accessed member to the member that accesses it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from staticizer.java_model import FieldDecl, MethodDecl


FIELD = "field"
METHOD = "method"
INHERITED = "inherited"


@dataclass(frozen=True)
class NodeId:
    kind: str
    name: str
    signature: tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.kind == METHOD:
            return f"M_{self.name}({','.join(self.signature)})"
        if self.kind == FIELD:
            return f"V_{self.name}:{''.join(self.signature)}"
        return "M_anyInheritedMember"


# Stands for any member resolved outside the class body being analyzed.
INHERITED_MEMBER = NodeId(INHERITED, "*")


def field_node_id(f: FieldDecl) -> NodeId:
    return NodeId(FIELD, f.name, (f.type_name,))


def method_node_id(m: MethodDecl) -> NodeId:
    return NodeId(METHOD, m.name, m.param_types)


@dataclass
class Node:
    id: NodeId
    payload: FieldDecl | MethodDecl | None
    outgoing: list[NodeId] = field(default_factory=list)
    in_degree: int = 0


class UsageGraph:
    def __init__(self) -> None:
        self._nodes: dict[NodeId, Node] = {}

    def add_node(self, node_id: NodeId, payload: FieldDecl | MethodDecl | None) -> None:
        if node_id not in self._nodes:
            self._nodes[node_id] = Node(node_id, payload)

    def add_edge(
        self,
        from_id: NodeId,
        from_payload: FieldDecl | MethodDecl | None,
        to_id: NodeId,
        to_payload: FieldDecl | MethodDecl | None,
    ) -> None:
        self.add_node(from_id, from_payload)
        self.add_node(to_id, to_payload)
        self._nodes[from_id].outgoing.append(to_id)
        self._nodes[to_id].in_degree += 1

    def node(self, node_id: NodeId) -> Node | None:
        return self._nodes.get(node_id)

    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def nodes_count(self) -> int:
        return len(self._nodes)

    @property
    def edges_count(self) -> int:
        return sum(len(n.outgoing) for n in self._nodes.values())

    def export_topology(self) -> dict:
        return {
            "nodes": [{"id": str(n.id), "in_degree": n.in_degree} for n in self._nodes.values()],
            "edges": [[str(n.id), str(dst)] for n in self._nodes.values() for dst in n.outgoing],
        }

    def render(self) -> str:
        lines = ["---Graph---"]
        for n in self._nodes.values():
            lines.append(f"  Node: {n.id} (inDegree={n.in_degree})")
            for dst in n.outgoing:
                lines.append(f"    \\-> to Node: {dst}")
        lines.append("-----------")
        return "\n".join(lines) + "\n"
