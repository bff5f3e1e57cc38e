"""Convert PostgreSQL names to Python identifiers.

Pattern: [{schema}_]{name}, with the schema prefix omitted for public.
  - types        -> PascalCase          (public.user_account -> UserAccount)
  - routines     -> snake_case          (audit.PurgeLogs     -> audit_purge_logs)
  - fields, args -> snake_case          (createdAt           -> created_at)
  - enum values  -> UPPER_SNAKE         (in-progress         -> IN_PROGRESS)

Examples:
  type     public.status          -> Status
  type     billing.invoice_line   -> Billing_InvoiceLine
  function public.add             -> add
  function billing.totalFor       -> billing_total_for

Any name that comes out different from its catalog spelling needs an
explicit mapping back to the literal text in the generated code.
"""

from __future__ import annotations

import keyword
import re

from .diagnostics import NameCollisionError
from .models import DEFAULT_SCHEMA

SCHEMA_SEPARATOR = "_"

# Names the generated module itself defines or imports.
RESERVED_TYPE_NAMES = frozenset({"Any", "Database", "NoRowsError", "Optional", "Sequence"})

# Methods every generated record defines.
RESERVED_FIELD_NAMES = frozenset({"from_dict", "from_record", "to_dict", "to_tuple"})

RESERVED_ARGUMENT_NAMES = frozenset({"self"})


def _split_words(name: str) -> list[str]:
    """Split camelCase, PascalCase, snake_case and punctuated names into words."""
    s1 = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    s2 = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", s1)
    return [w for w in re.split(r"[\W_]+", s2) if w]


def _make_identifier(name: str, fallback: str, prefix: str = "_") -> str:
    """Make a normalized name a valid, non-keyword Python identifier."""
    if not name:
        return fallback
    if name[0].isdigit():
        name = prefix + name
    if keyword.iskeyword(name):
        name += "_"
    if not name.isidentifier():
        return fallback
    return name


def to_snake_case(name: str) -> str:
    words = _split_words(name)
    return _make_identifier("_".join(w.lower() for w in words), fallback="unnamed")


def to_pascal_case(name: str) -> str:
    words = _split_words(name)
    return _make_identifier("".join(w[:1].upper() + w[1:].lower() for w in words), fallback="Unnamed")


def to_upper_snake_case(name: str) -> str:
    words = _split_words(name)
    return _make_identifier("_".join(w.upper() for w in words), fallback="VALUE", prefix="V_")


def _qualify(schema: str, normalized: str, schema_normalized: str) -> str:
    if schema == DEFAULT_SCHEMA:
        return normalized
    return f"{schema_normalized}{SCHEMA_SEPARATOR}{normalized}"


def type_name(schema: str, name: str) -> str:
    """Generated class name for a catalog type."""
    return _qualify(schema, to_pascal_case(name), to_pascal_case(schema))


def function_name(schema: str, name: str) -> str:
    """Generated method name for a catalog routine."""
    return _qualify(schema, to_snake_case(name), to_snake_case(schema))


def field_name(name: str) -> str:
    normalized = to_snake_case(name)
    if normalized in RESERVED_FIELD_NAMES:
        normalized += "_"
    return normalized


def argument_name(name: str) -> str:
    normalized = to_snake_case(name)
    if normalized in RESERVED_ARGUMENT_NAMES:
        normalized += "_"
    return normalized


def enum_member_name(value: str) -> str:
    return to_upper_snake_case(value)


class NameRegistry:
    """Track generated identifiers within one namespace.

    claim() reports a collision; unique() disambiguates with a numeric suffix.
    """

    def __init__(self, reserved: frozenset[str] | set[str] = frozenset()) -> None:
        self._owners: dict[str, str] = {name: "<generated>" for name in reserved}

    def __contains__(self, identifier: str) -> bool:
        return identifier in self._owners

    def claim(self, identifier: str, owner: str) -> None:
        """Register an identifier, raising if another owner already holds it."""
        current = self._owners.get(identifier)
        if current is not None and current != owner:
            raise NameCollisionError(
                f"{owner!r} and {current!r} both map to the identifier {identifier!r}"
            )
        self._owners[identifier] = owner

    def unique(self, identifier: str, owner: str) -> str:
        """Register an identifier, suffixing _2, _3... until it is free."""
        candidate = identifier
        counter = 1
        while candidate in self._owners:
            counter += 1
            candidate = f"{identifier}_{counter}"
        self._owners[candidate] = owner
        return candidate
