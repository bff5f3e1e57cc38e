"""Load the built-in type equivalence table.

Reads resources/equivalences.json, which maps PostgreSQL built-in type names
to their Python representation and capability flags.
"""

from __future__ import annotations

import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from .models import Equivalence

EQUIVALENCES_PATH = Path(__file__).parent / "resources" / "equivalences.json"


def load_equivalences(path: Path | None = None) -> Mapping[str, Equivalence]:
    """Load the equivalence table from disk."""
    source = path or EQUIVALENCES_PATH
    with open(source) as f:
        raw = json.load(f)
    return parse_equivalences(raw)


def parse_equivalences(raw: dict[str, Any]) -> Mapping[str, Equivalence]:
    """Build an immutable equivalence table from decoded JSON."""
    table = {
        name: Equivalence(
            py_type=entry["py_type"],
            copyable=bool(entry.get("copyable", False)),
            serializable=bool(entry.get("serializable", False)),
        )
        for name, entry in raw.items()
    }
    return MappingProxyType(table)
