"""Tests for the catalog reader: row decoders and the three queries."""

from __future__ import annotations

import json

import pytest

from conftest import INT4, TEXT, FakeConnection, FakeRecord
from pgbindgen.catalog import (
    DETAIL_TYPES_SQL,
    FUNCTIONS_SQL,
    SEED_TYPES_SQL,
    DetailTypeRow,
    FunctionRow,
    RowDecoder,
    SeedTypeRow,
    connect,
    read_catalog,
)
from pgbindgen.diagnostics import CatalogConnectionError, Diagnostics
from pgbindgen.models import ArgumentMode, ProcedureKind, TypeKind


def _seed_record(**overrides):
    row = {"oid": INT4, "schema": "pg_catalog", "name": "int4", "kind": "b", "base_type": 0}
    row.update(overrides)
    return FakeRecord(row)


def _detail_record(**overrides):
    row = {
        "oid": 16401, "schema": "public", "name": "user_account", "kind": "c",
        "is_table": True, "is_view": False, "enum_values": None,
        "struct_fields": json.dumps([
            {"name": "id", "type": INT4, "nullable": False, "description": "Primary key"},
            {"name": "email", "type": TEXT, "nullable": True, "description": None},
        ]),
        "base_type": 0,
    }
    row.update(overrides)
    return FakeRecord(row)


def _function_record(**overrides):
    row = {
        "oid": 17000, "schema": "public", "name": "add", "kind": "f", "is_strict": True,
        "arg_names": ["a", "b"], "arg_types": [INT4, INT4], "arg_modes": None,
        "ret_type": INT4, "ret_set": False,
    }
    row.update(overrides)
    return FakeRecord(row)


class TestSeedTypeRow:
    def test_decodes_base_type(self):
        row = SeedTypeRow.from_row(_seed_record())
        assert row.kind == TypeKind.BASE
        assert row.oid == INT4
        assert row.base_type == 0

    def test_null_base_type_is_zero(self):
        assert SeedTypeRow.from_row(_seed_record(base_type=None)).base_type == 0

    def test_unknown_kind_fails(self):
        with pytest.raises(ValueError):
            SeedTypeRow.from_row(_seed_record(kind="m"))


class TestDetailTypeRow:
    def test_composite_fields_from_json_text(self):
        row = DetailTypeRow.from_row(_detail_record())
        assert row.kind == TypeKind.COMPOSITE
        assert row.is_table is True
        assert [f.name for f in row.struct_fields] == ["id", "email"]
        assert row.struct_fields[0].is_nullable is False
        assert row.struct_fields[0].description == "Primary key"
        assert row.struct_fields[1].type_id == TEXT

    def test_composite_fields_already_decoded(self):
        fields = [{"name": "x", "type": 701, "nullable": True}]
        row = DetailTypeRow.from_row(_detail_record(struct_fields=fields))
        assert row.struct_fields[0].type_id == 701

    def test_enum_values_keep_order(self):
        row = DetailTypeRow.from_row(_detail_record(
            kind="e", struct_fields=None, enum_values=["b", "a", "c"],
        ))
        assert row.enum_values == ("b", "a", "c")
        assert row.struct_fields == ()


class TestFunctionRow:
    def test_missing_modes_stay_none(self):
        row = FunctionRow.from_row(_function_record())
        assert row.kind == ProcedureKind.FUNCTION
        assert row.arg_modes is None
        assert row.arg_types == (INT4, INT4)

    def test_modes_are_decoded(self):
        row = FunctionRow.from_row(_function_record(arg_modes=["i", "v"]))
        assert row.arg_modes == (ArgumentMode.IN, ArgumentMode.VARIADIC)

    def test_null_argument_names(self):
        row = FunctionRow.from_row(_function_record(arg_names=[None, "b"]))
        assert row.arg_names == ("", "b")

    def test_bad_mode_fails(self):
        with pytest.raises(ValueError):
            FunctionRow.from_row(_function_record(arg_modes=["x", "i"]))


class TestRowDecoder:
    def test_bad_row_is_skipped_with_one_diagnostic(self):
        diagnostics = Diagnostics()
        rows = [_seed_record(), _seed_record(oid=1, name="weird", kind="?"), _seed_record(oid=25, name="text")]
        decoded = RowDecoder(SeedTypeRow).decode(rows, diagnostics)
        assert [r.name for r in decoded] == ["int4", "text"]
        assert len(diagnostics) == 1
        assert diagnostics.kinds() == ["parse"]
        assert next(iter(diagnostics)).entity == "pg_catalog.weird"

    def test_missing_column_rejects_result_set(self):
        diagnostics = Diagnostics()
        row = FakeRecord({"oid": 1, "name": "x"})
        assert RowDecoder(SeedTypeRow).decode([row, row], diagnostics) == []
        assert len(diagnostics) == 1
        assert "missing column" in next(iter(diagnostics)).message

    def test_empty_result(self):
        diagnostics = Diagnostics()
        assert RowDecoder(FunctionRow).decode([], diagnostics) == []
        assert not diagnostics


class TestReadCatalog:
    async def test_runs_three_queries_in_order(self):
        conn = FakeConnection({
            SEED_TYPES_SQL: [_seed_record()],
            DETAIL_TYPES_SQL: [_detail_record()],
            FUNCTIONS_SQL: [_function_record(), _function_record(oid=17001, kind="z")],
        })
        rows = await read_catalog(conn)

        assert [call[1] for call in conn.calls] == [SEED_TYPES_SQL, DETAIL_TYPES_SQL, FUNCTIONS_SQL]
        assert len(rows.seed_types) == 1
        assert len(rows.detail_types) == 1
        assert [f.oid for f in rows.functions] == [17000]
        assert rows.diagnostics.kinds() == ["parse"]

    async def test_connection_failure_is_fatal(self):
        # Nothing listens on port 1.
        with pytest.raises(CatalogConnectionError):
            async with connect("postgresql://nobody@127.0.0.1:1/nothing", timeout=2):
                pass
