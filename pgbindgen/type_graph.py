"""Build the closed type graph from catalog rows.

Two passes, merged by type id:
- seed: built-ins via the equivalence table, plus domain/range/array stubs
- detail: full enums and composites (and user domains/ranges/arrays)

Detail nodes always replace seed nodes for the same id.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from .catalog import DetailTypeRow, SeedTypeRow
from .diagnostics import Diagnostics, RowParseError
from .models import (
    ArrayType,
    BaseType,
    CompositeType,
    DomainType,
    EnumType,
    Equivalence,
    RangeType,
    TypeGraph,
    TypeId,
    TypeKind,
    TypeNode,
    UnknownType,
)

_WRAPPERS = {
    TypeKind.DOMAIN: DomainType,
    TypeKind.RANGE: RangeType,
    TypeKind.ARRAY: ArrayType,
}


def _seed_node(row: SeedTypeRow, equivalences: Mapping[str, Equivalence]) -> TypeNode | None:
    """Classify one seed row. Enums and composites are left to the detail pass."""
    if row.kind in (TypeKind.BASE, TypeKind.PSEUDO):
        equivalence = equivalences.get(row.name)
        if equivalence is None:
            return UnknownType(row.name)
        return BaseType(equivalence)
    if row.kind in _WRAPPERS:
        return _WRAPPERS[row.kind](schema=row.schema, name=row.name, base_type=row.base_type)
    return None


def _detail_node(row: DetailTypeRow) -> TypeNode:
    if row.kind == TypeKind.ENUM:
        return EnumType(schema=row.schema, name=row.name, values=row.enum_values)
    if row.kind == TypeKind.COMPOSITE:
        return CompositeType(
            schema=row.schema,
            name=row.name,
            is_table=row.is_table,
            is_view=row.is_view,
            fields=row.struct_fields,
        )
    if row.kind in _WRAPPERS:
        return _WRAPPERS[row.kind](schema=row.schema, name=row.name, base_type=row.base_type)
    raise RowParseError(
        f"{row.kind.name.lower()} types are not expected in user schemas: "
        f"#{row.oid} -> {row.schema}.{row.name}"
    )


def seed_pass(
    rows: Iterable[SeedTypeRow],
    equivalences: Mapping[str, Equivalence],
) -> dict[TypeId, TypeNode]:
    seeded: dict[TypeId, TypeNode] = {}
    for row in rows:
        node = _seed_node(row, equivalences)
        if node is not None:
            seeded[row.oid] = node
    return seeded


def detail_pass(
    rows: Iterable[DetailTypeRow],
    diagnostics: Diagnostics,
) -> dict[TypeId, TypeNode]:
    detailed: dict[TypeId, TypeNode] = {}
    for row in rows:
        try:
            detailed[row.oid] = _detail_node(row)
        except RowParseError as exc:
            diagnostics.add(exc, f"{row.schema}.{row.name}")
    return detailed


def build_type_graph(
    seed_rows: Iterable[SeedTypeRow],
    detail_rows: Iterable[DetailTypeRow],
    equivalences: Mapping[str, Equivalence],
) -> tuple[TypeGraph, Diagnostics]:
    """Merge both passes into an immutable graph keyed by type id."""
    diagnostics = Diagnostics()
    seeded = seed_pass(seed_rows, equivalences)
    detailed = detail_pass(detail_rows, diagnostics)
    graph = MappingProxyType({**seeded, **detailed})
    return graph, diagnostics
