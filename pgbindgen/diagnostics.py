"""Error taxonomy and the diagnostics accumulator.

Every stage of the pipeline returns a Diagnostics value alongside its result.
Entity-level failures are recorded there and the entity is skipped; only a
connection failure aborts the run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

logger = logging.getLogger(__name__)


class BindgenError(Exception):
    """Base class for every error raised by pgbindgen."""

    kind = "error"


class CatalogConnectionError(BindgenError):
    """The catalog store could not be reached. Fatal."""

    kind = "connection"


class RowParseError(BindgenError):
    """A catalog row could not be decoded."""

    kind = "parse"


class UnknownTypeError(BindgenError):
    """A referenced type id is absent from the graph or has no equivalence."""

    kind = "unknown-type"

    def __init__(self, type_id: int, name: str | None = None) -> None:
        self.type_id = type_id
        self.name = name
        if name:
            super().__init__(f"Unknown type #{type_id} ({name})")
        else:
            super().__init__(f"Unknown type #{type_id}")


class UnsupportedError(BindgenError):
    """The catalog entity uses a construct the generator does not handle."""

    kind = "unsupported"


class NameCollisionError(BindgenError):
    """Two catalog names normalize to the same generated identifier."""

    kind = "name-collision"


@dataclass(frozen=True)
class Diagnostic:
    kind: str
    entity: str
    message: str

    def __str__(self) -> str:
        return f"[{self.kind}] {self.entity}: {self.message}"


class Diagnostics:
    """Ordered accumulator of per-entity failures."""

    def __init__(self) -> None:
        self._items: list[Diagnostic] = []

    def add(self, error: BindgenError, entity: str) -> Diagnostic:
        """Record an error against an entity and log it."""
        diagnostic = Diagnostic(kind=error.kind, entity=entity, message=str(error))
        self._items.append(diagnostic)
        logger.warning("%s", diagnostic)
        return diagnostic

    def extend(self, other: Diagnostics) -> None:
        # Already logged when first recorded.
        self._items.extend(other)

    def kinds(self) -> list[str]:
        return [d.kind for d in self._items]

    def for_entity(self, entity: str) -> list[Diagnostic]:
        return [d for d in self._items if d.entity == entity]

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)
