from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


NON_OVERRIDABLE_MODIFIERS = frozenset({"private", "final"})


class RefKind(str, Enum):
    FIELD = "field"
    METHOD = "method"
    # `this` escaping as a value, or an inner-class instance capturing it.
    RECEIVER = "receiver"


class Qualifier(str, Enum):
    IMPLICIT = "implicit"
    THIS = "this"
    SUPER = "super"


@dataclass(frozen=True)
class MemberRef:
    kind: RefKind
    name: str
    qualifier: Qualifier = Qualifier.IMPLICIT
    # None means the arity is unknown (method references such as `this::run`).
    arg_types: tuple[str | None, ...] | None = ()
    line: int = 0


@dataclass(frozen=True)
class ModifierToken:
    text: str
    start_byte: int
    end_byte: int
    is_annotation: bool = False


@dataclass(frozen=True)
class FieldDecl:
    name: str
    type_name: str
    modifiers: frozenset[str] = frozenset()
    line: int = 0

    @property
    def is_static(self) -> bool:
        return "static" in self.modifiers


@dataclass(frozen=True)
class MethodDecl:
    name: str
    param_types: tuple[str, ...] = ()
    modifiers: frozenset[str] = frozenset()
    line: int = 0
    references: tuple[MemberRef, ...] = ()
    modifier_tokens: tuple[ModifierToken, ...] = field(default=(), compare=False)
    start_byte: int = field(default=0, compare=False)

    @property
    def is_static(self) -> bool:
        return "static" in self.modifiers

    @property
    def is_non_overridable(self) -> bool:
        return bool(self.modifiers & NON_OVERRIDABLE_MODIFIERS)

    @property
    def is_varargs(self) -> bool:
        return bool(self.param_types) and self.param_types[-1].endswith("...")

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.param_types)})"


@dataclass(frozen=True)
class MemberType:
    name: str
    is_static: bool


@dataclass(frozen=True)
class ClassDecl:
    name: str
    kind: str = "class"  # class|interface|enum|record
    superclass: str | None = None
    interfaces: tuple[str, ...] = ()
    fields: tuple[FieldDecl, ...] = ()
    methods: tuple[MethodDecl, ...] = ()
    member_types: tuple[MemberType, ...] = ()
    is_nested: bool = False
    has_errors: bool = False
    static_imports: frozenset[str] = frozenset()
    line: int = 0

    @property
    def has_ancestors(self) -> bool:
        # Enums extend java.lang.Enum and records carry implicit accessors.
        return self.superclass is not None or bool(self.interfaces) or self.kind in {"enum", "record"}


@dataclass(frozen=True)
class CompilationUnit:
    package: str = ""
    static_imports: frozenset[str] = frozenset()
    classes: tuple[ClassDecl, ...] = ()
