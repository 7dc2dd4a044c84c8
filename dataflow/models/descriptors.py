"""Entity descriptors: a plain-data view of a declared table.

A descriptor records, per field, the semantic type, nullability, default,
foreign-key target and key flags.  :func:`describe_model` reflects one from an
ORM class so the contracts in :mod:`dataflow.models.contracts` never repeat
field lists by hand.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from sqlalchemy import JSON, Boolean, DateTime, Enum as SAEnum, Integer, Numeric, String
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.schema import Column


class SemanticType(str, Enum):
    """Storage-independent field types understood by the contract builder."""

    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DECIMAL = "decimal"
    TIMESTAMP = "timestamp"
    DOCUMENT = "document"
    ENUM = "enum"


class _Marker:
    def __init__(self, label: str) -> None:
        self._label = label

    def __repr__(self) -> str:
        return self._label


NO_DEFAULT: Any = _Marker("NO_DEFAULT")
# The value is produced by the database or a callable at insert time.
SERVER_DEFAULT: Any = _Marker("SERVER_DEFAULT")


@dataclass(frozen=True, slots=True, eq=False)
class FieldSpec:
    """Declaration of a single field."""

    type: SemanticType
    nullable: bool = False
    default: Any = NO_DEFAULT
    foreign_key: str | None = None
    primary_key: bool = False
    generated: bool = False
    precision: int | None = None
    scale: int | None = None
    choices: type[Enum] | None = None
    alias: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not NO_DEFAULT

    @property
    def required(self) -> bool:
        """Whether a create payload must supply this field."""

        return not (self.nullable or self.has_default or self.generated)


@dataclass(frozen=True, slots=True, eq=False)
class EntityDescriptor:
    """Immutable, ordered description of one entity."""

    name: str
    table: str
    fields: Mapping[str, FieldSpec]

    def __iter__(self) -> Iterator[tuple[str, FieldSpec]]:
        return iter(self.fields.items())

    def __getitem__(self, field_name: str) -> FieldSpec:
        return self.fields[field_name]

    def __contains__(self, field_name: object) -> bool:
        return field_name in self.fields

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(self.fields)

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(name for name, spec in self.fields.items() if spec.required)

    @property
    def foreign_keys(self) -> dict[str, str]:
        return {
            name: spec.foreign_key
            for name, spec in self.fields.items()
            if spec.foreign_key is not None
        }


def declare_entity(
    name: str,
    fields: Mapping[str, FieldSpec],
    *,
    table: str | None = None,
) -> EntityDescriptor:
    """Build a descriptor from an ordered mapping of field name to spec."""

    if not name or not name.strip():
        raise ValueError("Entity name must be a non-empty string")
    if not fields:
        raise ValueError(f"Entity '{name}' must declare at least one field")

    checked: dict[str, FieldSpec] = {}
    for field_name, spec in fields.items():
        if not isinstance(spec, FieldSpec):
            raise TypeError(f"{name}.{field_name} must be declared with a FieldSpec")
        if spec.type is SemanticType.ENUM and spec.choices is None:
            raise ValueError(f"{name}.{field_name} is an enum field without choices")
        if spec.primary_key and spec.nullable:
            raise ValueError(f"{name}.{field_name} is a primary key and cannot be nullable")
        checked[field_name] = spec

    return EntityDescriptor(
        name=name,
        table=table or name.lower(),
        fields=MappingProxyType(checked),
    )


def _semantic_type(column: Column) -> tuple[SemanticType, dict[str, Any]]:
    column_type = column.type
    # ``Enum`` subclasses ``String`` and ``Boolean`` is not an ``Integer``; order matters.
    if isinstance(column_type, SAEnum):
        return SemanticType.ENUM, {"choices": column_type.enum_class}
    if isinstance(column_type, Boolean):
        return SemanticType.BOOLEAN, {}
    if isinstance(column_type, Integer):
        return SemanticType.INTEGER, {}
    if isinstance(column_type, Numeric):
        return SemanticType.DECIMAL, {
            "precision": column_type.precision,
            "scale": column_type.scale,
        }
    if isinstance(column_type, DateTime):
        return SemanticType.TIMESTAMP, {}
    if isinstance(column_type, JSON):
        return SemanticType.DOCUMENT, {}
    if isinstance(column_type, String):
        return SemanticType.STRING, {}
    raise TypeError(f"Unsupported column type {column_type!r} on {column}")


def _column_default(column: Column) -> Any:
    default = column.default
    if default is not None and getattr(default, "is_scalar", False):
        return default.arg
    if default is not None or column.server_default is not None:
        return SERVER_DEFAULT
    return NO_DEFAULT


def field_from_column(column: Column) -> FieldSpec:
    """Translate a SQLAlchemy column into a :class:`FieldSpec`."""

    semantic_type, extra = _semantic_type(column)
    foreign_key = next(iter(column.foreign_keys), None)
    generated = bool(
        column.primary_key
        and semantic_type is SemanticType.INTEGER
        and column.autoincrement in ("auto", True)
    )
    return FieldSpec(
        type=semantic_type,
        nullable=bool(column.nullable) and not column.primary_key,
        default=_column_default(column),
        foreign_key=foreign_key.target_fullname if foreign_key is not None else None,
        primary_key=bool(column.primary_key),
        generated=generated,
        alias=column.info.get("alias"),
        **extra,
    )


@lru_cache(maxsize=None)
def describe_model(model: type) -> EntityDescriptor:
    """Return the descriptor of an ORM class, reflecting its mapper once."""

    mapper = sa_inspect(model)
    fields = {
        attribute.key: field_from_column(attribute.columns[0])
        for attribute in mapper.column_attrs
    }
    return declare_entity(model.__name__, fields, table=mapper.local_table.name)


__all__ = [
    "EntityDescriptor",
    "FieldSpec",
    "NO_DEFAULT",
    "SERVER_DEFAULT",
    "SemanticType",
    "declare_entity",
    "describe_model",
    "field_from_column",
]
