"""Shared fixtures for pgbindgen tests.

A small hand-written catalog stands in for a live database: seed rows for
the built-ins, detail rows for user types, and routine rows covering every
argument mode. FakeRecord mimics asyncpg.Record (access by name or index).
"""

from __future__ import annotations

import sys
import types
from typing import Any, Callable

import pytest

from pgbindgen.catalog import (
    CatalogRows,
    DetailTypeRow,
    FunctionRow,
    SeedTypeRow,
)
from pgbindgen.codegen import generate
from pgbindgen.context_builder import build_context
from pgbindgen.loader import load_equivalences
from pgbindgen.models import ArgumentMode, Field, ProcedureKind, TypeKind
from pgbindgen.pipeline import build_catalog


# ---------------------------------------------------------------------------
# Well-known oids
# ---------------------------------------------------------------------------

BOOL, INT8, INT4, TEXT, FLOAT8, NUMERIC = 16, 20, 23, 25, 701, 1700
INT4_ARRAY, TEXT_ARRAY, INT4RANGE = 1007, 1009, 3904
RECORD, VOID, TRIGGER = 2249, 2278, 2279

STATUS, USER_ACCOUNT, POINT2, POSITIVE_INT = 16400, 16401, 16402, 16403
TREE_NODE, TREE_NODE_ARRAY, INVOICE_LINE, PROFILE = 16404, 16405, 16406, 16407
MOOD = 16420  # seeded as an enum but never materialized by the detail pass


class FakeRecord(dict):
    """Row object supporting row["name"] and row[0], like asyncpg.Record."""

    def __getitem__(self, key: Any) -> Any:
        if isinstance(key, int):
            return list(self.values())[key]
        return super().__getitem__(key)


class FakeConnection:
    """Answers the three catalog queries and records binding calls."""

    def __init__(self, results: dict[str, list[Any]] | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, str, tuple]] = []
        self.closed = False

    async def fetch(self, sql: str, *args: Any) -> list[Any]:
        self.calls.append(("fetch", sql, args))
        return self.results.get(sql, [])

    async def execute(self, sql: str, *args: Any) -> str:
        self.calls.append(("execute", sql, args))
        return "OK"

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Catalog rows
# ---------------------------------------------------------------------------

def _seed(oid: int, name: str, kind: str, base_type: int = 0) -> SeedTypeRow:
    return SeedTypeRow(oid=oid, schema="pg_catalog", name=name, kind=TypeKind(kind), base_type=base_type)


SEED_ROWS = [
    _seed(BOOL, "bool", "b"),
    _seed(INT8, "int8", "b"),
    _seed(INT4, "int4", "b"),
    _seed(TEXT, "text", "b"),
    _seed(FLOAT8, "float8", "b"),
    _seed(NUMERIC, "numeric", "b"),
    _seed(INT4_ARRAY, "_int4", "a", INT4),
    _seed(TEXT_ARRAY, "_text", "a", TEXT),
    _seed(INT4RANGE, "int4range", "r", INT4),
    _seed(RECORD, "record", "p"),
    _seed(VOID, "void", "p"),
    _seed(TRIGGER, "trigger", "p"),
    _seed(MOOD, "mood", "e"),
]

DETAIL_ROWS = [
    DetailTypeRow(oid=STATUS, schema="public", name="status", kind=TypeKind.ENUM,
                  enum_values=("a", "b", "B")),
    DetailTypeRow(oid=USER_ACCOUNT, schema="public", name="user_account", kind=TypeKind.COMPOSITE,
                  is_table=True, struct_fields=(
                      Field("id", INT4, is_nullable=False, description="Primary key"),
                      Field("displayName", TEXT, is_nullable=True),
                      Field("status", STATUS, is_nullable=True),
                      Field("tags", TEXT_ARRAY, is_nullable=False),
                  )),
    DetailTypeRow(oid=POINT2, schema="public", name="point2", kind=TypeKind.COMPOSITE,
                  struct_fields=(Field("x", FLOAT8), Field("y", FLOAT8))),
    DetailTypeRow(oid=POSITIVE_INT, schema="public", name="positive_int", kind=TypeKind.DOMAIN,
                  base_type=INT4),
    DetailTypeRow(oid=TREE_NODE, schema="public", name="tree_node", kind=TypeKind.COMPOSITE,
                  struct_fields=(Field("label", TEXT), Field("children", TREE_NODE_ARRAY))),
    DetailTypeRow(oid=TREE_NODE_ARRAY, schema="public", name="_tree_node", kind=TypeKind.ARRAY,
                  base_type=TREE_NODE),
    DetailTypeRow(oid=INVOICE_LINE, schema="billing", name="invoice_line", kind=TypeKind.COMPOSITE,
                  is_table=True, struct_fields=(
                      Field("amount", NUMERIC, is_nullable=False),
                      Field("during", INT4RANGE, is_nullable=True),
                  )),
    DetailTypeRow(oid=PROFILE, schema="public", name="profile", kind=TypeKind.COMPOSITE,
                  is_view=True, struct_fields=(Field("mood", MOOD),)),
]


def _function(
    oid: int,
    name: str,
    *,
    kind: str = "f",
    strict: bool = True,
    names: tuple[str, ...] | None = None,
    types_: tuple[int, ...] | None = None,
    modes: tuple[str, ...] | None = None,
    ret: int = VOID,
    ret_set: bool = False,
    schema: str = "public",
) -> FunctionRow:
    return FunctionRow(
        oid=oid,
        schema=schema,
        name=name,
        kind=ProcedureKind(kind),
        is_strict=strict,
        arg_names=names,
        arg_types=types_,
        arg_modes=None if modes is None else tuple(ArgumentMode(m) for m in modes),
        ret_type=ret,
        ret_set=ret_set,
    )


FUNCTION_ROWS = [
    _function(17000, "add", names=("a", "b"), types_=(INT4, INT4), ret=INT4),
    _function(17001, "list_users", strict=False, ret=USER_ACCOUNT, ret_set=True),
    _function(17002, "concat_all", names=("parts", "sep"), types_=(TEXT_ARRAY, TEXT),
              modes=("v", "i"), ret=TEXT),
    _function(17003, "user_stats", names=("total", "active"), types_=(INT8, INT8),
              modes=("o", "o"), ret=RECORD),
    _function(17004, "search", names=("q", "id", "name"), types_=(TEXT, INT4, TEXT),
              modes=("i", "t", "t"), ret=RECORD, ret_set=False),
    _function(17005, "refresh", kind="p"),
    _function(17006, "total", kind="a", names=("x",), types_=(INT4,), ret=INT8),
    _function(17007, "on_change", ret=TRIGGER),
    _function(17008, "swap", names=("x",), types_=(INT4,), modes=("b",), ret=INT4),
    _function(17009, "nothing", ret=VOID),
    _function(17010, "mood_of", names=("u",), types_=(INT4,), ret=MOOD),
    _function(17011, "current_status", ret=STATUS),
    _function(17012, "double_it", names=("n",), types_=(POSITIVE_INT,), ret=POSITIVE_INT),
]


@pytest.fixture(scope="session")
def equivalences():
    return load_equivalences()


@pytest.fixture
def catalog_rows() -> CatalogRows:
    return CatalogRows(
        seed_types=list(SEED_ROWS),
        detail_types=list(DETAIL_ROWS),
        functions=list(FUNCTION_ROWS),
    )


@pytest.fixture
def catalog(catalog_rows, equivalences):
    built, _ = build_catalog(catalog_rows, equivalences)
    return built


@pytest.fixture
def context(catalog):
    ctx, _ = build_context(catalog)
    return ctx


@pytest.fixture
def generated_code(context) -> str:
    return generate(context)


@pytest.fixture
def load_module(monkeypatch) -> Callable[[str], types.ModuleType]:
    """Exec generated source as a registered module and return it."""
    def _load(code: str, name: str = "generated_bindings") -> types.ModuleType:
        module = types.ModuleType(name)
        monkeypatch.setitem(sys.modules, name, module)
        exec(compile(code, f"<{name}>", "exec"), module.__dict__)
        return module
    return _load

