"""Resolve catalog type ids to Python annotations.

Three modes over the same graph:
- field:    annotation + copyable/serializable capability flags
- argument: annotation + pass-by-value or pass-by-reference decision
- return:   annotation, always by value

Handles:
- Domains, resolved transparently to their base type
- Arrays (list[...] / Sequence[...]) and ranges (asyncpg.Range[...])
- Capability propagation through composite fields
- Self-referential composites, via the set of ids currently being resolved
"""

from __future__ import annotations

from dataclasses import dataclass

from .diagnostics import UnknownTypeError
from .models import (
    ArrayType,
    BaseType,
    CompositeType,
    DomainType,
    EnumType,
    RangeType,
    TypeGraph,
    TypeId,
    TypeNode,
    UnknownType,
)
from .naming import type_name

# Annotation used when a cycle is broken on a type that has no generated class.
PLACEHOLDER_ANNOTATION = "Any"

_NOTHING: frozenset[TypeId] = frozenset()


@dataclass(frozen=True)
class FieldType:
    annotation: str
    copyable: bool
    serializable: bool
    kind: str = "base"
    class_name: str | None = None


@dataclass(frozen=True)
class ArgumentType:
    annotation: str
    by_reference: bool
    kind: str = "base"
    class_name: str | None = None


@dataclass(frozen=True)
class ReturnType:
    annotation: str
    kind: str = "base"
    class_name: str | None = None


class TypeResolver:
    """Resolve type ids against one immutable type graph."""

    def __init__(self, graph: TypeGraph) -> None:
        self.graph = graph

    def lookup(self, type_id: TypeId) -> TypeNode:
        node = self.graph.get(type_id)
        if node is None:
            raise UnknownTypeError(type_id)
        if isinstance(node, UnknownType):
            raise UnknownTypeError(type_id, node.name)
        return node

    def _placeholder(self, type_id: TypeId) -> FieldType:
        node = self.graph.get(type_id)
        if isinstance(node, (EnumType, CompositeType)):
            name = type_name(node.schema, node.name)
            return FieldType(name, copyable=False, serializable=False, kind="placeholder", class_name=name)
        return FieldType(PLACEHOLDER_ANNOTATION, copyable=False, serializable=False, kind="placeholder")

    # -- field --------------------------------------------------------------

    def resolve_field(self, type_id: TypeId, resolving: frozenset[TypeId] = _NOTHING) -> FieldType:
        """Resolve a column or composite field type with its capabilities."""
        if type_id in resolving:
            return self._placeholder(type_id)
        node = self.lookup(type_id)
        inner = resolving | {type_id}

        if isinstance(node, BaseType):
            eq = node.equivalence
            return FieldType(eq.py_type, eq.copyable, eq.serializable)

        if isinstance(node, EnumType):
            name = type_name(node.schema, node.name)
            return FieldType(name, copyable=True, serializable=True, kind="enum", class_name=name)

        if isinstance(node, CompositeType):
            name = type_name(node.schema, node.name)
            copyable = True
            serializable = True
            for f in node.fields:
                resolved = self.resolve_field(f.type_id, inner)
                copyable = copyable and resolved.copyable
                serializable = serializable and resolved.serializable
            return FieldType(name, copyable, serializable, kind="composite", class_name=name)

        if isinstance(node, DomainType):
            return self.resolve_field(node.base_type, inner)

        if isinstance(node, ArrayType):
            element = self.resolve_field(node.base_type, inner)
            return FieldType(
                f"list[{element.annotation}]",
                copyable=False,
                serializable=element.serializable,
                kind="array",
            )

        if isinstance(node, RangeType):
            element = self.resolve_field(node.base_type, inner)
            return FieldType(
                f"asyncpg.Range[{element.annotation}]",
                copyable=element.copyable,
                serializable=False,
                kind="range",
            )

        raise UnknownTypeError(type_id)

    # -- argument -----------------------------------------------------------

    def resolve_argument(self, type_id: TypeId, resolving: frozenset[TypeId] = _NOTHING) -> ArgumentType:
        """Resolve a routine argument type and how it is passed."""
        if type_id in resolving:
            placeholder = self._placeholder(type_id)
            return ArgumentType(placeholder.annotation, by_reference=True, kind="placeholder")
        node = self.lookup(type_id)
        inner = resolving | {type_id}

        if isinstance(node, BaseType):
            eq = node.equivalence
            return ArgumentType(eq.py_type, by_reference=not eq.copyable)

        if isinstance(node, EnumType):
            name = type_name(node.schema, node.name)
            return ArgumentType(name, by_reference=False, kind="enum", class_name=name)

        if isinstance(node, CompositeType):
            name = type_name(node.schema, node.name)
            return ArgumentType(name, by_reference=True, kind="composite", class_name=name)

        if isinstance(node, DomainType):
            return self.resolve_argument(node.base_type, inner)

        if isinstance(node, ArrayType):
            element = self.resolve_argument(node.base_type, inner)
            return ArgumentType(f"Sequence[{element.annotation}]", by_reference=True, kind="array")

        if isinstance(node, RangeType):
            element = self.resolve_argument(node.base_type, inner)
            return ArgumentType(f"asyncpg.Range[{element.annotation}]", by_reference=True, kind="range")

        raise UnknownTypeError(type_id)

    # -- return -------------------------------------------------------------

    def resolve_return(self, type_id: TypeId, resolving: frozenset[TypeId] = _NOTHING) -> ReturnType:
        """Resolve a routine result type."""
        if type_id in resolving:
            placeholder = self._placeholder(type_id)
            return ReturnType(placeholder.annotation, kind="placeholder")
        node = self.lookup(type_id)
        inner = resolving | {type_id}

        if isinstance(node, BaseType):
            return ReturnType(node.equivalence.py_type)

        if isinstance(node, EnumType):
            name = type_name(node.schema, node.name)
            return ReturnType(name, kind="enum", class_name=name)

        if isinstance(node, CompositeType):
            name = type_name(node.schema, node.name)
            return ReturnType(name, kind="composite", class_name=name)

        if isinstance(node, DomainType):
            return self.resolve_return(node.base_type, inner)

        if isinstance(node, ArrayType):
            element = self.resolve_return(node.base_type, inner)
            return ReturnType(f"list[{element.annotation}]", kind="array")

        if isinstance(node, RangeType):
            element = self.resolve_return(node.base_type, inner)
            return ReturnType(f"asyncpg.Range[{element.annotation}]", kind="range")

        raise UnknownTypeError(type_id)
