"""Run both stages: introspect the catalog, then generate the bindings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import asyncpg

from .catalog import CatalogRows, connect, read_catalog
from .codegen import generate
from .context_builder import build_context
from .diagnostics import Diagnostics
from .functions import build_functions
from .loader import load_equivalences
from .models import Catalog, Equivalence
from .type_graph import build_type_graph

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    code: str
    catalog: Catalog
    diagnostics: Diagnostics


def build_catalog(
    rows: CatalogRows, equivalences: Mapping[str, Equivalence],
) -> tuple[Catalog, Diagnostics]:
    """Stage 1: turn decoded rows into the type graph and function map."""
    diagnostics = Diagnostics()
    diagnostics.extend(rows.diagnostics)

    types, type_diagnostics = build_type_graph(rows.seed_types, rows.detail_types, equivalences)
    diagnostics.extend(type_diagnostics)

    functions, function_diagnostics = build_functions(rows.functions)
    diagnostics.extend(function_diagnostics)

    return Catalog(types=types, functions=functions), diagnostics


def generate_from_rows(
    rows: CatalogRows, equivalences: Mapping[str, Equivalence],
) -> GenerationResult:
    """Run both stages over already-read catalog rows."""
    catalog, diagnostics = build_catalog(rows, equivalences)

    context, context_diagnostics = build_context(catalog)
    diagnostics.extend(context_diagnostics)

    code = generate(context)
    logger.info(
        "Generated %d types and %d routines (%d diagnostics)",
        context["type_count"], context["function_count"], len(diagnostics),
    )
    return GenerationResult(code=code, catalog=catalog, diagnostics=diagnostics)


async def generate_from_connection(
    conn: asyncpg.Connection, equivalences: Mapping[str, Equivalence],
) -> GenerationResult:
    rows = await read_catalog(conn)
    return generate_from_rows(rows, equivalences)


async def run(dsn: str, equivalences_path: Path | None = None, timeout: float = 30.0) -> GenerationResult:
    """Connect, introspect and generate. Raises CatalogConnectionError on connection failure."""
    equivalences = load_equivalences(equivalences_path)
    async with connect(dsn, timeout=timeout) as conn:
        return await generate_from_connection(conn, equivalences)
