"""Build Jinja2 template context from the introspected catalog.

Walks every enum and composite of the type graph and every routine of the
function map in (schema, name) order, resolves their types, and assembles
the context dict for bindings.py.j2. Entities that cannot be generated are
reported and left out, so the rendered module is always valid.
"""

from __future__ import annotations

from typing import Any, Iterable

from .diagnostics import BindgenError, Diagnostics, NameCollisionError, UnknownTypeError
from .models import (
    ArrayType,
    Catalog,
    CompositeType,
    DomainType,
    EnumType,
    FunctionSignature,
    ProcedureKind,
    RangeType,
    RecordReturn,
    ScalarReturn,
    TypeGraph,
    TypeId,
    VoidReturn,
)
from .naming import (
    RESERVED_ARGUMENT_NAMES,
    RESERVED_TYPE_NAMES,
    NameRegistry,
    argument_name,
    enum_member_name,
    field_name,
    function_name,
    type_name,
)
from .resolver import TypeResolver

# Argument kinds whose values go through _encode before binding.
_ENCODED_KINDS = {"composite", "array"}


def quote_ident(name: str) -> str:
    """Quote a PostgreSQL identifier."""
    return '"' + name.replace('"', '""') + '"'


def _first_line(text: str | None) -> str:
    lines = (text or "").strip().splitlines()
    return lines[0].strip() if lines else ""


def _sorted_types(graph: TypeGraph) -> list[tuple[TypeId, EnumType | CompositeType]]:
    entries = [
        (oid, node) for oid, node in graph.items()
        if isinstance(node, (EnumType, CompositeType))
    ]
    return sorted(entries, key=lambda e: (e[1].schema, e[1].name, e[0]))


def _sorted_functions(functions: Iterable[FunctionSignature]) -> list[FunctionSignature]:
    return sorted(functions, key=lambda f: (f.schema, f.name, f.oid))


def _check_declared(graph: TypeGraph, type_id: TypeId, omitted: set[TypeId], seen: set[TypeId]) -> None:
    """Raise if a type, or anything it embeds, was left out of the module."""
    if type_id in seen:
        return
    seen.add(type_id)
    if type_id in omitted:
        raise UnknownTypeError(type_id, "not generated")
    node = graph.get(type_id)
    if isinstance(node, (DomainType, ArrayType, RangeType)):
        _check_declared(graph, node.base_type, omitted, seen)
    elif isinstance(node, CompositeType):
        for f in node.fields:
            _check_declared(graph, f.type_id, omitted, seen)


def _decoder(graph: TypeGraph, type_id: TypeId, method: str, seen: frozenset[TypeId] = frozenset()) -> str | None:
    """Expression for a callable decoding one non-null value, or None when the driver's value is kept.

    Composites decode through their classmethod ``method`` (from_record or
    from_dict), enums through their class, arrays element by element.
    """
    if type_id in seen:
        return None
    node = graph.get(type_id)
    if isinstance(node, EnumType):
        return type_name(node.schema, node.name)
    if isinstance(node, CompositeType):
        return f"{type_name(node.schema, node.name)}.{method}"
    if isinstance(node, DomainType):
        return _decoder(graph, node.base_type, method, seen | {type_id})
    if isinstance(node, ArrayType):
        element = _decoder(graph, node.base_type, method, seen | {type_id})
        return None if element is None else f"_each({element})"
    return None


def _claim_fields(node: CompositeType, entity: str) -> None:
    """Raise NameCollisionError if two fields normalize to the same name."""
    registry = NameRegistry()
    for f in node.fields:
        registry.claim(field_name(f.name), f"{entity}.{f.name}")


def _enum_context(oid: TypeId, node: EnumType, class_name: str, diagnostics: Diagnostics) -> dict[str, Any]:
    entity = f"{node.schema}.{node.name}"
    members_registry = NameRegistry()
    members = []
    for value in node.values:
        tag = enum_member_name(value)
        unique_tag = members_registry.unique(tag, value)
        if unique_tag != tag:
            diagnostics.add(
                NameCollisionError(f"enum value {value!r} normalizes to {tag!r}; emitted as {unique_tag!r}"),
                entity,
            )
        members.append({
            "tag": unique_tag,
            "value": value,
            "renamed": unique_tag != value,
        })
    return {
        "kind": "enum",
        "oid": oid,
        "schema": node.schema,
        "name": node.name,
        "class_name": class_name,
        "renamed": class_name != node.name,
        "members": members,
    }


def _record_context(
    oid: TypeId, node: CompositeType, class_name: str, resolver: TypeResolver,
) -> dict[str, Any]:
    capabilities = resolver.resolve_field(oid)
    is_bound = node.is_table or node.is_view

    fields = []
    for f in node.fields:
        py_name = field_name(f.name)
        resolved = resolver.resolve_field(f.type_id)
        # Free-standing composites carry no nullability information.
        nullable = is_bound and f.is_nullable
        annotation = f"Optional[{resolved.annotation}]" if nullable else resolved.annotation
        fields.append({
            "name": py_name,
            "column": f.name,
            "annotation": annotation,
            "nullable": nullable,
            "kind": resolved.kind,
            "class_name": resolved.class_name,
            "decode": _decoder(resolver.graph, f.type_id, "from_record"),
            "decode_dict": _decoder(resolver.graph, f.type_id, "from_dict"),
            "renamed": py_name != f.name,
            "description": _first_line(f.description),
        })

    return {
        "kind": "record",
        "oid": oid,
        "schema": node.schema,
        "name": node.name,
        "class_name": class_name,
        "renamed": class_name != node.name,
        "is_table": node.is_table,
        "is_view": node.is_view,
        "is_bound": is_bound,
        "copyable": capabilities.copyable,
        "serializable": capabilities.serializable,
        "fields": fields,
    }


def build_types(catalog: Catalog, resolver: TypeResolver) -> tuple[list[dict[str, Any]], set[TypeId], Diagnostics]:
    """Build enum and record declarations; returns them plus the omitted ids.

    Omission runs to a fixpoint before any record is built: a composite that
    embeds an omitted type is omitted too, so no declaration names a class
    the module never defines.
    """
    diagnostics = Diagnostics()
    registry = NameRegistry(RESERVED_TYPE_NAMES)
    candidates: list[tuple[TypeId, EnumType | CompositeType, str]] = []
    omitted: set[TypeId] = set()

    for oid, node in _sorted_types(catalog.types):
        entity = f"{node.schema}.{node.name}"
        class_name = type_name(node.schema, node.name)
        try:
            registry.claim(class_name, entity)
            if isinstance(node, CompositeType):
                _claim_fields(node, entity)
                resolver.resolve_field(oid)
        except BindgenError as exc:
            diagnostics.add(exc, entity)
            omitted.add(oid)
            continue
        candidates.append((oid, node, class_name))

    changed = True
    while changed:
        changed = False
        for oid, node, _ in candidates:
            if oid in omitted or not isinstance(node, CompositeType):
                continue
            seen = {oid}
            try:
                for f in node.fields:
                    _check_declared(catalog.types, f.type_id, omitted, seen)
            except UnknownTypeError as exc:
                diagnostics.add(exc, f"{node.schema}.{node.name}")
                omitted.add(oid)
                changed = True

    declarations: list[dict[str, Any]] = []
    for oid, node, class_name in candidates:
        if oid in omitted:
            continue
        if isinstance(node, EnumType):
            declarations.append(_enum_context(oid, node, class_name, diagnostics))
        else:
            declarations.append(_record_context(oid, node, class_name, resolver))

    return declarations, omitted, diagnostics


def _function_context(
    func: FunctionSignature, resolver: TypeResolver, omitted: set[TypeId],
) -> dict[str, Any]:
    graph = resolver.graph
    entity = func.qualified_name

    # Reference checks first: every type the binding touches must be emitted.
    referenced = [a.type_id for a in func.arguments]
    if isinstance(func.returns, ScalarReturn):
        referenced.append(func.returns.type_id)
    elif isinstance(func.returns, RecordReturn):
        referenced.extend(a.type_id for a in func.returns.fields)
    for type_id in referenced:
        resolver.resolve_field(type_id)
        _check_declared(graph, type_id, omitted, set())

    args_registry = NameRegistry(RESERVED_ARGUMENT_NAMES)
    args = []
    placeholders = []
    for position, arg in enumerate(func.arguments, start=1):
        py_name = argument_name(arg.name)
        args_registry.claim(py_name, f"{entity}({arg.name})")
        resolved = resolver.resolve_argument(arg.type_id)
        annotation = f"Optional[{resolved.annotation}]" if arg.is_nullable else resolved.annotation
        args.append({
            "name": py_name,
            "pg_name": arg.name,
            "annotation": annotation,
            "by_reference": resolved.by_reference,
            "variadic": arg.is_variadic,
            "nullable": arg.is_nullable,
            "encode": resolved.kind in _ENCODED_KINDS,
        })
        placeholders.append(f"VARIADIC ${position}" if arg.is_variadic else f"${position}")

    target = f"{quote_ident(func.schema)}.{quote_ident(func.name)}({', '.join(placeholders)})"
    if func.kind == ProcedureKind.PROCEDURE:
        sql = f"CALL {target}"
    else:
        sql = f"SELECT * FROM {target}"

    scalar_kind = None
    scalar_class = None
    scalar_decode = None
    columns: list[dict[str, Any]] = []
    if isinstance(func.returns, VoidReturn):
        returns = "void"
        result_annotation = "None"
    elif isinstance(func.returns, ScalarReturn):
        returns = "scalar"
        resolved = resolver.resolve_return(func.returns.type_id)
        result_annotation = resolved.annotation
        # Non-strict routines may return NULL. A composite result is built from the row itself.
        if not func.is_strict and resolved.kind != "composite":
            result_annotation = f"Optional[{result_annotation}]"
        scalar_kind = resolved.kind
        scalar_class = resolved.class_name
        scalar_decode = _decoder(graph, func.returns.type_id, "from_record")
    else:
        returns = "record"
        items = [resolver.resolve_return(a.type_id).annotation for a in func.returns.fields]
        result_annotation = f"tuple[{', '.join(items)}]"
        columns = [
            {"name": a.name, "decode": _decoder(graph, a.type_id, "from_record")}
            for a in func.returns.fields
        ]

    if func.returns_set and returns != "void":
        return_annotation = f"list[{result_annotation}]"
    else:
        return_annotation = result_annotation

    return {
        "oid": func.oid,
        "schema": func.schema,
        "name": func.name,
        "method": function_name(func.schema, func.name),
        "is_procedure": func.kind == ProcedureKind.PROCEDURE,
        "is_strict": func.is_strict,
        "args": args,
        "sql": sql,
        "returns": returns,
        "returns_set": func.returns_set,
        "scalar_kind": scalar_kind,
        "scalar_class": scalar_class,
        "scalar_decode": scalar_decode,
        "columns": columns,
        "return_annotation": return_annotation,
    }


def build_functions_context(
    catalog: Catalog, resolver: TypeResolver, omitted: set[TypeId],
) -> tuple[list[dict[str, Any]], Diagnostics]:
    """Build one binding per routine, in (schema, name) order."""
    diagnostics = Diagnostics()
    registry = NameRegistry()
    bindings: list[dict[str, Any]] = []

    for func in _sorted_functions(catalog.functions.values()):
        entity = func.qualified_name
        try:
            binding = _function_context(func, resolver, omitted)
            registry.claim(binding["method"], f"{entity}#{func.oid}")
        except BindgenError as exc:
            diagnostics.add(exc, entity)
            continue
        bindings.append(binding)

    return bindings, diagnostics


def build_context(catalog: Catalog) -> tuple[dict[str, Any], Diagnostics]:
    """Build the full template context from the catalog."""
    diagnostics = Diagnostics()
    resolver = TypeResolver(catalog.types)

    types, omitted, type_diagnostics = build_types(catalog, resolver)
    diagnostics.extend(type_diagnostics)

    bindings, function_diagnostics = build_functions_context(catalog, resolver, omitted)
    diagnostics.extend(function_diagnostics)

    context = {
        "types": types,
        "functions": bindings,
        "type_count": len(types),
        "function_count": len(bindings),
    }
    return context, diagnostics
