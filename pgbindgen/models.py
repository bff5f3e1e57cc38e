"""Catalog data model: type nodes, routine signatures and the catalog bundle."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Union

TypeId = int

# Fixed oids of the pseudo-types the function builder needs to recognize.
VOID_OID: TypeId = 2278
TRIGGER_OID: TypeId = 2279

# The schema every generated name is relative to.
DEFAULT_SCHEMA = "public"


@dataclass(frozen=True)
class Equivalence:
    """Python representation of a built-in PostgreSQL type."""

    py_type: str
    copyable: bool
    serializable: bool


@dataclass(frozen=True)
class Field:
    name: str
    type_id: TypeId
    is_nullable: bool = True
    description: str | None = None


@dataclass(frozen=True)
class BaseType:
    equivalence: Equivalence


@dataclass(frozen=True)
class EnumType:
    schema: str
    name: str
    values: tuple[str, ...]


@dataclass(frozen=True)
class CompositeType:
    schema: str
    name: str
    is_table: bool
    is_view: bool
    fields: tuple[Field, ...]


@dataclass(frozen=True)
class DomainType:
    schema: str
    name: str
    base_type: TypeId


@dataclass(frozen=True)
class ArrayType:
    schema: str
    name: str
    base_type: TypeId


@dataclass(frozen=True)
class RangeType:
    schema: str
    name: str
    base_type: TypeId


@dataclass(frozen=True)
class UnknownType:
    name: str


TypeNode = Union[
    BaseType, EnumType, CompositeType, DomainType, ArrayType, RangeType, UnknownType
]
TypeGraph = Mapping[TypeId, TypeNode]


class TypeKind(Enum):
    """pg_type.typtype, with arrays split out of base types."""

    BASE = "b"
    PSEUDO = "p"
    DOMAIN = "d"
    RANGE = "r"
    ARRAY = "a"
    ENUM = "e"
    COMPOSITE = "c"


class ProcedureKind(Enum):
    FUNCTION = "f"
    PROCEDURE = "p"
    AGGREGATE = "a"
    WINDOW = "w"


class ArgumentMode(Enum):
    IN = "i"
    OUT = "o"
    INOUT = "b"
    VARIADIC = "v"
    TABLE = "t"


@dataclass(frozen=True)
class Argument:
    name: str
    type_id: TypeId
    is_variadic: bool = False
    is_nullable: bool = False


@dataclass(frozen=True)
class VoidReturn:
    pass


@dataclass(frozen=True)
class ScalarReturn:
    type_id: TypeId


@dataclass(frozen=True)
class RecordReturn:
    fields: tuple[Argument, ...]


ReturnSpec = Union[VoidReturn, ScalarReturn, RecordReturn]


@dataclass(frozen=True)
class FunctionSignature:
    oid: int
    schema: str
    name: str
    kind: ProcedureKind
    is_strict: bool
    arguments: tuple[Argument, ...]
    returns: ReturnSpec
    returns_set: bool

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"


FunctionMap = Mapping[int, FunctionSignature]


@dataclass(frozen=True)
class Catalog:
    """Closed type graph and routine map produced by introspection."""

    types: TypeGraph = field(default_factory=dict)
    functions: FunctionMap = field(default_factory=dict)
