from __future__ import annotations

import re
from dataclasses import dataclass

import tree_sitter_java as tsjava
from tree_sitter import Language, Parser

from staticizer.java_model import (
    ClassDecl,
    CompilationUnit,
    FieldDecl,
    MemberRef,
    MemberType,
    MethodDecl,
    ModifierToken,
    Qualifier,
    RefKind,
)


_JAVA_PARSER = Parser(Language(tsjava.language()))


TYPE_DECLS = {"class_declaration", "interface_declaration", "enum_declaration", "record_declaration"}
_TYPE_KINDS = {
    "class_declaration": "class",
    "interface_declaration": "interface",
    "enum_declaration": "enum",
    "record_declaration": "record",
}
_TYPE_BODIES = {"class_body", "interface_body", "enum_body", "enum_body_declarations", "annotation_type_body"}

# Subtrees that never hold a member reference.
_SKIP = {
    "line_comment",
    "block_comment",
    "annotation",
    "marker_annotation",
    "modifiers",
    "type_identifier",
    "scoped_type_identifier",
    "generic_type",
    "array_type",
    "integral_type",
    "floating_point_type",
    "boolean_type",
    "void_type",
    "type_arguments",
    "type_parameters",
    "dimensions",
    "throws",
    "superclass",
    "super_interfaces",
    "extends_interfaces",
    "permits",
    "catch_type",
    "receiver_parameter",
    "break_statement",
    "continue_statement",
    "scoped_identifier",
    "decimal_integer_literal",
    "hex_integer_literal",
    "octal_integer_literal",
    "binary_integer_literal",
    "decimal_floating_point_literal",
    "hex_floating_point_literal",
    "character_literal",
    "string_literal",
    "text_block",
    "true",
    "false",
    "null_literal",
}
_SCOPES = {
    "block",
    "switch_block",
    "class_body",
    "interface_body",
    "enum_body",
    "for_statement",
    "catch_clause",
    "try_with_resources_statement",
    "constructor_body",
}
_INT_LITERALS = {"decimal_integer_literal", "hex_integer_literal", "octal_integer_literal", "binary_integer_literal"}
_FLOAT_LITERALS = {"decimal_floating_point_literal", "hex_floating_point_literal"}
_BOOLEAN_OPERATORS = {"==", "!=", "<", ">", "<=", ">=", "&&", "||"}

_WS = re.compile(r"\s+")

_VISIT, _DECLARE, _POP = 0, 1, 2


def _node_text(src: bytes, node) -> str:
    return src[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")


def _type_text(src: bytes, node) -> str:
    return _WS.sub("", _node_text(src, node))


def _first_child(node, type_name: str):
    for ch in node.children:
        if ch.type == type_name:
            return ch
    return None


def _field_text(src: bytes, node, field_name: str) -> str:
    ch = node.child_by_field_name(field_name)
    if ch is None:
        return ""
    return _node_text(src, ch).strip()


def _line(node) -> int:
    return node.start_point[0] + 1


def _package_name(src: bytes, root) -> str:
    pkg = _first_child(root, "package_declaration")
    if pkg is None:
        return ""
    m = re.search(r"package\s+([a-zA-Z0-9_.]+)\s*;", _node_text(src, pkg))
    return m.group(1) if m else ""


def _static_imports(src: bytes, root) -> frozenset[str]:
    names = set()
    for imp in root.children:
        if imp.type != "import_declaration":
            continue
        if not any(ch.type == "static" for ch in imp.children):
            continue
        if any(ch.type == "asterisk" for ch in imp.children):
            continue
        for ch in imp.named_children:
            if ch.type in {"identifier", "scoped_identifier"}:
                names.add(_node_text(src, ch).rsplit(".", 1)[-1])
    return frozenset(names)


def _modifier_tokens(src: bytes, decl_node) -> tuple[ModifierToken, ...]:
    mods = _first_child(decl_node, "modifiers")
    if mods is None:
        return ()
    return tuple(
        ModifierToken(
            text=_node_text(src, ch),
            start_byte=ch.start_byte,
            end_byte=ch.end_byte,
            is_annotation=ch.type in {"annotation", "marker_annotation"},
        )
        for ch in mods.children
    )


def _modifier_set(tokens: tuple[ModifierToken, ...]) -> frozenset[str]:
    return frozenset(t.text for t in tokens if not t.is_annotation)


def _declarator_type(src: bytes, type_node, declarator) -> str:
    base = _type_text(src, type_node) if type_node is not None else ""
    dims = declarator.child_by_field_name("dimensions")
    return base + (_type_text(src, dims) if dims is not None else "")


def _param_types(src: bytes, params_node) -> tuple[str, ...]:
    if params_node is None:
        return ()
    types = []
    for p in params_node.named_children:
        if p.type == "formal_parameter":
            types.append(_declarator_type(src, p.child_by_field_name("type"), p))
        elif p.type == "spread_parameter":
            tnode = next(
                (ch for ch in p.named_children if ch.type not in {"modifiers", "variable_declarator", "annotation", "marker_annotation"}),
                None,
            )
            types.append((_type_text(src, tnode) if tnode is not None else "") + "...")
    return tuple(types)


def _looks_like_type_or_constant(name: str) -> bool:
    # Java naming convention: Types and CONSTANTS start with a capital letter.
    return name[:1].isupper()


@dataclass(frozen=True)
class _ClassContext:
    class_name: str
    field_types: dict[str, str]
    inner_classes: frozenset[str]


def _is_this(node) -> bool:
    if node is None:
        return False
    if node.type == "this":
        return True
    if node.type == "field_access":
        fld = node.child_by_field_name("field")
        return fld is not None and fld.type == "this"
    if node.type == "parenthesized_expression" and node.named_children:
        return _is_this(node.named_children[0])
    return False


def _has_super(node) -> bool:
    return any(ch.type == "super" for ch in node.children)


class _BodyWalker:
    """Collects receiver member references of one method body.

    Tracks local bindings (parameters, locals, lambda/catch/for/resource and
    pattern variables) so that a local shadowing a field is not reported.
    """

    def __init__(self, src: bytes, ctx: _ClassContext) -> None:
        self.src = src
        self.ctx = ctx
        self.scopes: list[dict[str, str | None]] = []
        self.refs: list[MemberRef] = []

    def _lookup(self, name: str) -> tuple[bool, str | None]:
        for scope in reversed(self.scopes):
            if name in scope:
                return True, scope[name]
        return False, None

    def _declare(self, name: str, type_name: str | None) -> None:
        self.scopes[-1][name] = type_name

    def _infer_type(self, node) -> str | None:
        t = node.type
        if t in _INT_LITERALS:
            return "long" if _node_text(self.src, node).endswith(("l", "L")) else "int"
        if t in _FLOAT_LITERALS:
            return "float" if _node_text(self.src, node).endswith(("f", "F")) else "double"
        if t in {"true", "false"}:
            return "boolean"
        if t == "character_literal":
            return "char"
        if t in {"string_literal", "text_block"}:
            return "String"
        if t == "this":
            return self.ctx.class_name
        if t == "identifier":
            name = _node_text(self.src, node)
            found, type_name = self._lookup(name)
            if found:
                return type_name
            return self.ctx.field_types.get(name)
        if t == "field_access" and _is_this(node.child_by_field_name("object")):
            return self.ctx.field_types.get(_field_text(self.src, node, "field"))
        if t in {"object_creation_expression", "cast_expression"}:
            tnode = node.child_by_field_name("type")
            return _type_text(self.src, tnode) if tnode is not None else None
        if t == "parenthesized_expression" and node.named_children:
            return self._infer_type(node.named_children[0])
        if t == "binary_expression":
            op = node.child_by_field_name("operator")
            if op is not None and op.type in _BOOLEAN_OPERATORS:
                return "boolean"
        return None

    def _ref(self, kind: RefKind, name: str, node, qualifier: Qualifier = Qualifier.IMPLICIT, arg_types=()) -> None:
        self.refs.append(MemberRef(kind=kind, name=name, qualifier=qualifier, arg_types=arg_types, line=_line(node)))

    def collect(self, params_node, body_node) -> tuple[MemberRef, ...]:
        self.scopes = [{}]
        if params_node is not None:
            for p in params_node.named_children:
                if p.type == "formal_parameter":
                    self._declare(_field_text(self.src, p, "name"), _declarator_type(self.src, p.child_by_field_name("type"), p))
                elif p.type == "spread_parameter":
                    decl = _first_child(p, "variable_declarator")
                    if decl is not None:
                        self._declare(_field_text(self.src, decl, "name"), None)
        if body_node is not None:
            self._walk(body_node)
        return tuple(self.refs)

    def _walk(self, root) -> None:
        stack: list[tuple] = [(_VISIT, root)]
        while stack:
            item = stack.pop()
            op = item[0]
            if op == _POP:
                self.scopes.pop()
                continue
            if op == _DECLARE:
                self._declare(item[1], item[2])
                continue
            node = item[1]
            t = node.type
            if t in _SKIP or not node.is_named:
                continue

            if t == "identifier":
                self._identifier(node)
                continue
            if t == "this":
                self._ref(RefKind.RECEIVER, "this", node)
                continue

            visit: list = []
            if t == "field_access":
                self._field_access(node, visit)
            elif t == "method_invocation":
                self._method_invocation(node, visit)
            elif t == "method_reference":
                self._method_reference(node, visit)
            elif t == "object_creation_expression":
                self._object_creation(node, visit)
            elif t == "explicit_constructor_invocation":
                visit.extend(ch for ch in node.named_children if ch.type not in {"this", "super"})
            elif t == "lambda_expression":
                self._open_scope(stack)
                self._lambda_params(node.child_by_field_name("parameters"))
                body = node.child_by_field_name("body")
                if body is not None:
                    stack.append((_VISIT, body))
                continue
            elif t == "enhanced_for_statement":
                self._open_scope(stack)
                body = node.child_by_field_name("body")
                if body is not None:
                    stack.append((_VISIT, body))
                stack.append((_DECLARE, _field_text(self.src, node, "name"), self._typed(node, node)))
                value = node.child_by_field_name("value")
                if value is not None:
                    stack.append((_VISIT, value))
                continue
            elif t == "variable_declarator":
                # Initializer first: the new binding starts after its declarator.
                stack.append((_DECLARE, _field_text(self.src, node, "name"), self._typed(node.parent, node)))
                value = node.child_by_field_name("value")
                if value is not None:
                    stack.append((_VISIT, value))
                continue
            elif t in {"formal_parameter", "catch_formal_parameter"}:
                self._declare(_field_text(self.src, node, "name"), self._typed(node, node))
                continue
            elif t == "resource":
                name = node.child_by_field_name("name")
                if name is None:
                    visit.extend(node.named_children)
                else:
                    stack.append((_DECLARE, _node_text(self.src, name), self._typed(node, node)))
                    value = node.child_by_field_name("value")
                    if value is not None:
                        stack.append((_VISIT, value))
                    continue
            elif t == "instanceof_expression":
                name = node.child_by_field_name("name")
                if name is not None:
                    stack.append((_DECLARE, _node_text(self.src, name), self._typed(node, node, "right")))
                for fname in ("pattern", "left"):
                    ch = node.child_by_field_name(fname)
                    if ch is not None:
                        stack.append((_VISIT, ch))
                continue
            elif t in {"type_pattern", "record_pattern_component"}:
                tnode = next((ch for ch in node.named_children if ch.type != "identifier"), None)
                for ch in node.named_children:
                    if ch.type == "identifier":
                        self._declare(_node_text(self.src, ch), _type_text(self.src, tnode) if tnode is not None else None)
                    else:
                        visit.append(ch)
            elif t == "labeled_statement":
                visit.extend(ch for ch in node.named_children if ch.type != "identifier")
            elif t == "switch_label":
                visit.extend(ch for ch in node.named_children if ch.type != "identifier")
            elif t == "enum_constant":
                visit.extend(ch for ch in node.named_children if ch.type in {"argument_list", "class_body"})
            elif t in {"method_declaration", "constructor_declaration", "compact_constructor_declaration"}:
                # Member of a local or anonymous class.
                self._open_scope(stack)
                body = node.child_by_field_name("body")
                if body is not None:
                    stack.append((_VISIT, body))
                params = node.child_by_field_name("parameters")
                if params is not None:
                    stack.append((_VISIT, params))
                continue
            elif t in TYPE_DECLS:
                body = node.child_by_field_name("body")
                if body is not None:
                    visit.append(body)
            elif t in _SCOPES:
                self._open_scope(stack)
                visit.extend(node.named_children)
            else:
                visit.extend(node.named_children)

            for ch in reversed(visit):
                stack.append((_VISIT, ch))

    def _open_scope(self, stack: list) -> None:
        self.scopes.append({})
        stack.append((_POP,))

    def _typed(self, holder, declarator, field_name: str = "type") -> str | None:
        tnode = holder.child_by_field_name(field_name) if holder is not None else None
        if tnode is None:
            return None
        if _type_text(self.src, tnode) == "var":
            # Inferred local type; leave it unknown.
            return None
        return _declarator_type(self.src, tnode, declarator)

    def _lambda_params(self, params) -> None:
        if params is None:
            return
        if params.type == "identifier":
            self._declare(_node_text(self.src, params), None)
            return
        for p in params.named_children:
            if p.type == "identifier":
                self._declare(_node_text(self.src, p), None)
            elif p.type == "formal_parameter":
                self._declare(_field_text(self.src, p, "name"), self._typed(p, p))
            elif p.type == "spread_parameter":
                decl = _first_child(p, "variable_declarator")
                if decl is not None:
                    self._declare(_field_text(self.src, decl, "name"), None)

    def _identifier(self, node) -> None:
        name = _node_text(self.src, node)
        found, _ = self._lookup(name)
        if found:
            return
        if name not in self.ctx.field_types and _looks_like_type_or_constant(name):
            return
        self._ref(RefKind.FIELD, name, node)

    def _field_access(self, node, visit: list) -> None:
        obj = node.child_by_field_name("object")
        fld = node.child_by_field_name("field")
        if fld is not None and fld.type == "this":
            # Outer.this
            self._ref(RefKind.RECEIVER, "this", node)
            return
        name = _node_text(self.src, fld) if fld is not None else ""
        if _has_super(node):
            self._ref(RefKind.FIELD, name, node, Qualifier.SUPER)
        elif _is_this(obj):
            self._ref(RefKind.FIELD, name, node, Qualifier.THIS)
        elif obj is not None:
            # `other.name` selects a member of another object.
            visit.append(obj)

    def _method_invocation(self, node, visit: list) -> None:
        obj = node.child_by_field_name("object")
        name = _field_text(self.src, node, "name")
        args = node.child_by_field_name("arguments")
        arg_types = tuple(self._infer_type(a) for a in args.named_children) if args is not None else ()
        if _has_super(node):
            self._ref(RefKind.METHOD, name, node, Qualifier.SUPER, arg_types)
        elif obj is None:
            self._ref(RefKind.METHOD, name, node, Qualifier.IMPLICIT, arg_types)
        elif _is_this(obj):
            self._ref(RefKind.METHOD, name, node, Qualifier.THIS, arg_types)
        else:
            visit.append(obj)
        if args is not None:
            visit.append(args)

    def _method_reference(self, node, visit: list) -> None:
        receiver = node.children[0] if node.children else None
        last = node.children[-1] if node.children else None
        if receiver is None or last is None or last.type != "identifier":
            return
        name = _node_text(self.src, last)
        if receiver.type == "super":
            self._ref(RefKind.METHOD, name, node, Qualifier.SUPER, None)
        elif _is_this(receiver):
            self._ref(RefKind.METHOD, name, node, Qualifier.THIS, None)
        else:
            visit.append(receiver)

    def _object_creation(self, node, visit: list) -> None:
        first = node.children[0] if node.children else None
        if first is not None and first.type != "new" and first.is_named:
            # outer.new Inner()
            visit.append(first)
        else:
            tnode = node.child_by_field_name("type")
            simple = _type_text(self.src, tnode).split("<", 1)[0].rsplit(".", 1)[-1] if tnode is not None else ""
            if simple in self.ctx.inner_classes:
                self._ref(RefKind.RECEIVER, simple, node)
        args = node.child_by_field_name("arguments")
        if args is not None:
            visit.append(args)
        body = _first_child(node, "class_body")
        if body is not None:
            visit.append(body)


def _is_nested(node) -> bool:
    p = node.parent
    while p is not None:
        if p.type in _TYPE_BODIES or p.type == "block":
            return True
        p = p.parent
    return False


def _find_type_decls(root) -> list:
    out = []
    stack = [root]
    while stack:
        n = stack.pop()
        if n.type in TYPE_DECLS:
            out.append(n)
        for ch in reversed(n.children):
            stack.append(ch)
    out.sort(key=lambda n: n.start_byte)
    return out


def _type_names(src: bytes, node) -> tuple[str, ...]:
    if node is None:
        return ()
    lst = _first_child(node, "type_list")
    items = lst.named_children if lst is not None else node.named_children
    return tuple(_type_text(src, t) for t in items)


def _body_members(decl_node) -> list:
    body = decl_node.child_by_field_name("body")
    if body is None:
        return []
    if body.type == "enum_body":
        decls = _first_child(body, "enum_body_declarations")
        return list(decls.named_children) if decls is not None else []
    return list(body.named_children)


def _class_decl(src: bytes, node, static_imports: frozenset[str]) -> ClassDecl:
    kind = _TYPE_KINDS[node.type]
    name = _field_text(src, node, "name")

    superclass = None
    sc = node.child_by_field_name("superclass")
    if sc is not None and sc.named_children:
        superclass = _type_text(src, sc.named_children[0])
    interfaces = _type_names(src, node.child_by_field_name("interfaces")) + _type_names(
        src, _first_child(node, "extends_interfaces")
    )

    fields: list[FieldDecl] = []
    methods: list[tuple] = []
    member_types: list[MemberType] = []

    if kind == "record":
        params = node.child_by_field_name("parameters")
        for p in params.named_children if params is not None else ():
            if p.type == "formal_parameter":
                fields.append(
                    FieldDecl(
                        name=_field_text(src, p, "name"),
                        type_name=_declarator_type(src, p.child_by_field_name("type"), p),
                        modifiers=frozenset({"private", "final"}),
                        line=_line(p),
                    )
                )

    for member in _body_members(node):
        if member.type in {"field_declaration", "constant_declaration"}:
            mods = _modifier_set(_modifier_tokens(src, member))
            if kind == "interface":
                mods = mods | {"public", "static", "final"}
            type_node = member.child_by_field_name("type")
            for d in member.children_by_field_name("declarator"):
                fields.append(
                    FieldDecl(
                        name=_field_text(src, d, "name"),
                        type_name=_declarator_type(src, type_node, d),
                        modifiers=mods,
                        line=_line(d),
                    )
                )
        elif member.type == "method_declaration":
            methods.append(member)
        elif member.type in TYPE_DECLS:
            mods = _modifier_set(_modifier_tokens(src, member))
            implicit_static = member.type != "class_declaration" or kind == "interface"
            member_types.append(
                MemberType(name=_field_text(src, member, "name"), is_static=implicit_static or "static" in mods)
            )

    ctx = _ClassContext(
        class_name=name,
        field_types={f.name: f.type_name for f in fields},
        inner_classes=frozenset(t.name for t in member_types if not t.is_static),
    )
    method_decls = []
    for m in methods:
        tokens = _modifier_tokens(src, m)
        params = m.child_by_field_name("parameters")
        method_decls.append(
            MethodDecl(
                name=_field_text(src, m, "name"),
                param_types=_param_types(src, params),
                modifiers=_modifier_set(tokens),
                line=_line(m),
                references=_BodyWalker(src, ctx).collect(params, m.child_by_field_name("body")),
                modifier_tokens=tokens,
                start_byte=m.start_byte,
            )
        )

    if kind == "record":
        declared = {(d.name, d.param_types) for d in method_decls}
        for f in fields:
            if not f.is_static and (f.name, ()) not in declared:
                method_decls.append(
                    MethodDecl(
                        name=f.name,
                        modifiers=frozenset({"public"}),
                        line=f.line,
                        references=(MemberRef(RefKind.FIELD, f.name, Qualifier.THIS, line=f.line),),
                    )
                )

    return ClassDecl(
        name=name,
        kind=kind,
        superclass=superclass,
        interfaces=interfaces,
        fields=tuple(fields),
        methods=tuple(method_decls),
        member_types=tuple(member_types),
        is_nested=_is_nested(node),
        has_errors=node.has_error,
        static_imports=static_imports,
        line=_line(node),
    )


def parse_java(source: bytes | str) -> CompilationUnit:
    src = source.encode("utf-8") if isinstance(source, str) else source
    tree = _JAVA_PARSER.parse(src)
    root = tree.root_node
    static_imports = _static_imports(src, root)
    classes = tuple(_class_decl(src, n, static_imports) for n in _find_type_decls(root))
    return CompilationUnit(
        package=_package_name(src, root),
        static_imports=static_imports,
        classes=classes,
    )
