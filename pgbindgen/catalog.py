"""Read the PostgreSQL catalog.

Runs three fixed queries over one asyncpg connection:
- a seed query over every type, used to classify built-ins
- a detail query over user-visible types (enum values, composite fields)
- a routine query over user-visible functions and procedures

Each query shape has a typed row decoder. A row that fails to decode is
reported once and skipped.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Generic, Iterable, Mapping, Sequence, TypeVar

import asyncpg

from .diagnostics import CatalogConnectionError, Diagnostics, RowParseError
from .models import ArgumentMode, Field, ProcedureKind, TypeId, TypeKind

logger = logging.getLogger(__name__)

_USER_SCHEMAS = """
    n.nspname NOT IN ('pg_catalog', 'information_schema', 'pg_toast')
    AND n.nspname NOT LIKE 'pg_temp_%'
    AND n.nspname NOT LIKE 'pg_toast_temp_%'
"""

# Arrays are base types in pg_type; report them with their own kind tag.
_KIND = """
    CASE WHEN t.typcategory = 'A' AND t.typelem <> 0 THEN 'a'
         ELSE t.typtype::text
    END
"""

_REFERENCED_TYPE = """
    CASE WHEN t.typtype = 'd' THEN t.typbasetype
         WHEN t.typtype = 'r' THEN r.rngsubtype
         WHEN t.typcategory = 'A' THEN t.typelem
         ELSE 0
    END
"""

SEED_TYPES_SQL = f"""
    SELECT
        t.oid AS oid,
        'pg_catalog' AS schema,
        t.typname::text AS name,
        {_KIND} AS kind,
        {_REFERENCED_TYPE} AS base_type
    FROM pg_catalog.pg_type t
    LEFT JOIN pg_catalog.pg_range r ON r.rngtypid = t.oid
    WHERE t.typtype IN ('b', 'p', 'd', 'r', 'e', 'c')
    ORDER BY t.oid
"""

DETAIL_TYPES_SQL = f"""
    SELECT
        t.oid AS oid,
        n.nspname::text AS schema,
        t.typname::text AS name,
        {_KIND} AS kind,
        COALESCE(c.relkind IN ('r', 'p', 'f'), false) AS is_table,
        COALESCE(c.relkind IN ('v', 'm'), false) AS is_view,
        (
            SELECT array_agg(e.enumlabel::text ORDER BY e.enumsortorder)
            FROM pg_catalog.pg_enum e
            WHERE e.enumtypid = t.oid
        ) AS enum_values,
        (
            SELECT json_agg(json_build_object(
                'name', a.attname,
                'type', a.atttypid,
                'nullable', NOT a.attnotnull,
                'description', pg_catalog.col_description(a.attrelid, a.attnum)
            ) ORDER BY a.attnum)
            FROM pg_catalog.pg_attribute a
            WHERE a.attrelid = t.typrelid
            AND a.attnum > 0
            AND NOT a.attisdropped
        ) AS struct_fields,
        {_REFERENCED_TYPE} AS base_type
    FROM pg_catalog.pg_type t
    JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
    LEFT JOIN pg_catalog.pg_class c ON c.oid = t.typrelid
    LEFT JOIN pg_catalog.pg_range r ON r.rngtypid = t.oid
    WHERE {_USER_SCHEMAS}
    AND (t.typtype IN ('e', 'c', 'd', 'r') OR (t.typcategory = 'A' AND t.typelem <> 0))
    AND (c.oid IS NULL OR c.relkind IN ('r', 'p', 'f', 'v', 'm', 'c'))
    ORDER BY n.nspname, t.typname, t.oid
"""

FUNCTIONS_SQL = f"""
    SELECT
        p.oid AS oid,
        n.nspname::text AS schema,
        p.proname::text AS name,
        p.prokind::text AS kind,
        p.proisstrict AS is_strict,
        p.proargnames AS arg_names,
        COALESCE(p.proallargtypes, p.proargtypes::oid[]) AS arg_types,
        p.proargmodes::text[] AS arg_modes,
        p.prorettype AS ret_type,
        p.proretset AS ret_set
    FROM pg_catalog.pg_proc p
    JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
    WHERE {_USER_SCHEMAS}
    AND NOT EXISTS (
        SELECT 1 FROM pg_catalog.pg_depend d
        WHERE d.classid = 'pg_catalog.pg_proc'::regclass
        AND d.objid = p.oid
        AND d.deptype = 'e'
    )
    ORDER BY n.nspname, p.proname, p.oid
"""


# ---------------------------------------------------------------------------
# Row decoders
# ---------------------------------------------------------------------------

def _entity_of(row: Mapping[str, Any]) -> str:
    """Best-effort label for a raw row, used when decoding fails."""
    keys = set(row.keys())
    schema = row["schema"] if "schema" in keys else None
    name = row["name"] if "name" in keys else None
    if schema and name:
        return f"{schema}.{name}"
    if "oid" in keys:
        return f"#{row['oid']}"
    return "<row>"


def _optional_list(value: Any) -> tuple | None:
    if value is None:
        return None
    if isinstance(value, (str, bytes)):
        raise TypeError(f"expected an array, got {type(value).__name__}")
    return tuple(value)


def _decode_fields(value: Any) -> tuple[Field, ...]:
    """Decode the struct_fields JSON column into Field values."""
    if value is None:
        return ()
    if isinstance(value, str):
        value = json.loads(value)
    fields = []
    for item in value:
        fields.append(Field(
            name=str(item["name"]),
            type_id=int(item["type"]),
            is_nullable=bool(item.get("nullable", True)),
            description=item.get("description"),
        ))
    return tuple(fields)


@dataclass(frozen=True)
class SeedTypeRow:
    COLUMNS = ("oid", "schema", "name", "kind", "base_type")

    oid: TypeId
    schema: str
    name: str
    kind: TypeKind
    base_type: TypeId

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> SeedTypeRow:
        return cls(
            oid=int(row["oid"]),
            schema=str(row["schema"]),
            name=str(row["name"]),
            kind=TypeKind(row["kind"]),
            base_type=int(row["base_type"] or 0),
        )


@dataclass(frozen=True)
class DetailTypeRow:
    COLUMNS = (
        "oid", "schema", "name", "kind", "is_table", "is_view",
        "enum_values", "struct_fields", "base_type",
    )

    oid: TypeId
    schema: str
    name: str
    kind: TypeKind
    is_table: bool = False
    is_view: bool = False
    enum_values: tuple[str, ...] = ()
    struct_fields: tuple[Field, ...] = ()
    base_type: TypeId = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> DetailTypeRow:
        return cls(
            oid=int(row["oid"]),
            schema=str(row["schema"]),
            name=str(row["name"]),
            kind=TypeKind(row["kind"]),
            is_table=bool(row["is_table"]),
            is_view=bool(row["is_view"]),
            enum_values=tuple(str(v) for v in _optional_list(row["enum_values"]) or ()),
            struct_fields=_decode_fields(row["struct_fields"]),
            base_type=int(row["base_type"] or 0),
        )


@dataclass(frozen=True)
class FunctionRow:
    COLUMNS = (
        "oid", "schema", "name", "kind", "is_strict", "arg_names",
        "arg_types", "arg_modes", "ret_type", "ret_set",
    )

    oid: int
    schema: str
    name: str
    kind: ProcedureKind
    is_strict: bool
    arg_names: tuple[str, ...] | None
    arg_types: tuple[TypeId, ...] | None
    arg_modes: tuple[ArgumentMode, ...] | None
    ret_type: TypeId
    ret_set: bool

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> FunctionRow:
        names = _optional_list(row["arg_names"])
        types = _optional_list(row["arg_types"])
        modes = _optional_list(row["arg_modes"])
        return cls(
            oid=int(row["oid"]),
            schema=str(row["schema"]),
            name=str(row["name"]),
            kind=ProcedureKind(row["kind"]),
            is_strict=bool(row["is_strict"]),
            arg_names=None if names is None else tuple(str(n or "") for n in names),
            arg_types=None if types is None else tuple(int(t) for t in types),
            arg_modes=None if modes is None else tuple(ArgumentMode(m) for m in modes),
            ret_type=int(row["ret_type"]),
            ret_set=bool(row["ret_set"]),
        )


R = TypeVar("R", SeedTypeRow, DetailTypeRow, FunctionRow)


class RowDecoder(Generic[R]):
    """Decode every row of one query shape.

    The column set is checked once, against the first row; each row is then
    decoded on its own and a failing row is reported and skipped.
    """

    def __init__(self, row_type: type[R]) -> None:
        self.row_type = row_type

    def _check_columns(self, row: Mapping[str, Any]) -> None:
        present = set(row.keys())
        missing = [c for c in self.row_type.COLUMNS if c not in present]
        if missing:
            raise RowParseError(
                f"{self.row_type.__name__}: missing column(s) {', '.join(missing)}"
            )

    def decode(
        self, rows: Iterable[Mapping[str, Any]], diagnostics: Diagnostics,
    ) -> list[R]:
        decoded: list[R] = []
        checked = False
        for row in rows:
            if not checked:
                try:
                    self._check_columns(row)
                except RowParseError as exc:
                    diagnostics.add(exc, self.row_type.__name__)
                    return []
                checked = True
            try:
                decoded.append(self.row_type.from_row(row))
            except (KeyError, TypeError, ValueError) as exc:
                diagnostics.add(
                    RowParseError(f"cannot decode row: {exc}"), _entity_of(row),
                )
        return decoded


# ---------------------------------------------------------------------------
# Connection and queries
# ---------------------------------------------------------------------------

@dataclass
class CatalogRows:
    """Decoded rows of the three catalog queries."""

    seed_types: list[SeedTypeRow] = field(default_factory=list)
    detail_types: list[DetailTypeRow] = field(default_factory=list)
    functions: list[FunctionRow] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


@asynccontextmanager
async def connect(dsn: str, timeout: float = 30.0) -> AsyncIterator[asyncpg.Connection]:
    """Open the single catalog connection; it is always closed on exit."""
    try:
        conn = await asyncpg.connect(dsn=dsn, timeout=timeout)
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
        raise CatalogConnectionError(f"cannot connect to the database: {exc}") from exc

    try:
        yield conn
    finally:
        await conn.close()


async def _fetch(conn: asyncpg.Connection, sql: str) -> Sequence[Mapping[str, Any]]:
    try:
        return await conn.fetch(sql)
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
        raise CatalogConnectionError(f"catalog query failed: {exc}") from exc


async def read_catalog(conn: asyncpg.Connection) -> CatalogRows:
    """Run the seed, detail and routine queries in order and decode them."""
    rows = CatalogRows()

    seed = await _fetch(conn, SEED_TYPES_SQL)
    rows.seed_types = RowDecoder(SeedTypeRow).decode(seed, rows.diagnostics)

    detail = await _fetch(conn, DETAIL_TYPES_SQL)
    rows.detail_types = RowDecoder(DetailTypeRow).decode(detail, rows.diagnostics)

    functions = await _fetch(conn, FUNCTIONS_SQL)
    rows.functions = RowDecoder(FunctionRow).decode(functions, rows.diagnostics)

    logger.info(
        "Read %d seed types, %d user types, %d routines",
        len(rows.seed_types), len(rows.detail_types), len(rows.functions),
    )
    return rows
