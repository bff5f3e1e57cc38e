"""Build routine signatures from catalog rows.

Arguments are described by three parallel arrays:
  - arg_names: the name of every argument (may be absent)
  - arg_types: the types of every argument, including OUT and TABLE ones
  - arg_modes: one of i/o/b/v/t per argument; absent when all are IN

TABLE arguments are outputs and make the routine set-returning. VARIADIC
arguments are inputs that go after every plain input.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable

from .catalog import FunctionRow
from .diagnostics import Diagnostics, RowParseError, UnsupportedError
from .models import (
    Argument,
    ArgumentMode,
    FunctionMap,
    FunctionSignature,
    ProcedureKind,
    RecordReturn,
    ReturnSpec,
    ScalarReturn,
    TRIGGER_OID,
    VOID_OID,
    VoidReturn,
)


def _zip_arguments(row: FunctionRow) -> list[tuple[str, int, ArgumentMode]]:
    """Zip the three argument arrays, filling in missing modes. Missing names stay empty."""
    types = row.arg_types or ()
    names = row.arg_names if row.arg_names is not None else ("",) * len(types)
    modes = row.arg_modes if row.arg_modes is not None else (ArgumentMode.IN,) * len(types)

    if not (len(names) == len(types) == len(modes)):
        raise RowParseError(
            f"argument arrays differ in length (names={len(names)},"
            f" types={len(types)}, modes={len(modes)})"
        )

    return list(zip(names, types, modes))


def parse_function(row: FunctionRow) -> FunctionSignature:
    """Turn one routine row into a signature, or raise why it is skipped."""
    label = f"#{row.oid} -> {row.schema}.{row.name}"

    if row.kind == ProcedureKind.AGGREGATE:
        raise UnsupportedError(f"Aggregate functions are not supported: {label}")
    if row.kind == ProcedureKind.WINDOW:
        raise UnsupportedError(f"Window functions are not supported: {label}")
    if row.ret_type == TRIGGER_OID:
        raise UnsupportedError(f"Trigger functions are not supported: {label}")

    returns_set = row.ret_set
    inputs: list[Argument] = []
    outputs: list[Argument] = []
    variadics: list[Argument] = []

    for position, (name, type_id, mode) in enumerate(_zip_arguments(row), start=1):
        # Unnamed result columns are column1, column2... counting outputs only.
        if mode in (ArgumentMode.OUT, ArgumentMode.TABLE):
            name = name or f"column{len(outputs) + 1}"
        else:
            name = name or f"arg{position}"
        argument = Argument(
            name=name,
            type_id=type_id,
            is_variadic=mode == ArgumentMode.VARIADIC,
            is_nullable=not row.is_strict,
        )
        if mode == ArgumentMode.IN:
            inputs.append(argument)
        elif mode == ArgumentMode.OUT:
            outputs.append(argument)
        elif mode == ArgumentMode.INOUT:
            raise UnsupportedError(f"INOUT arguments are not supported: {label}")
        elif mode == ArgumentMode.VARIADIC:
            variadics.append(argument)
        elif mode == ArgumentMode.TABLE:
            outputs.append(argument)
            returns_set = True

    if row.kind == ProcedureKind.PROCEDURE and outputs:
        raise UnsupportedError(f"Procedures with OUT arguments are not supported: {label}")

    returns: ReturnSpec
    if row.kind == ProcedureKind.PROCEDURE:
        returns = VoidReturn()
    elif not outputs:
        returns = VoidReturn() if row.ret_type == VOID_OID else ScalarReturn(row.ret_type)
    else:
        returns = RecordReturn(tuple(outputs))

    return FunctionSignature(
        oid=row.oid,
        schema=row.schema,
        name=row.name,
        kind=row.kind,
        is_strict=row.is_strict,
        arguments=tuple(inputs + variadics),
        returns=returns,
        returns_set=returns_set,
    )


def build_functions(rows: Iterable[FunctionRow]) -> tuple[FunctionMap, Diagnostics]:
    """Parse every routine row; unsupported ones are reported and skipped."""
    diagnostics = Diagnostics()
    functions = {}
    for row in rows:
        try:
            functions[row.oid] = parse_function(row)
        except (RowParseError, UnsupportedError) as exc:
            diagnostics.add(exc, f"{row.schema}.{row.name}")
    return MappingProxyType(functions), diagnostics
