"""Immutable rows (tuples) flowing between collections."""

from __future__ import annotations

from typing import Any, Iterator, Optional, Sequence

from tickflow.errors import SchemaMismatch
from tickflow.ir.schema import Schema


def identity(values: Sequence[Any]) -> tuple[tuple[type, Any], ...]:
    """Type-tagged form of ``values`` used for row equality and keys.

    Python treats ``1 == True``; tagging each value with its type keeps such
    values distinct in opaque fields.
    """

    return tuple((type(value), value) for value in values)


class _FieldFirst:
    """Row member that yields to a schema field of the same name."""

    def __init__(self, member: Any) -> None:
        self.member = member
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, row: Optional["Row"], owner: Optional[type] = None) -> Any:
        if row is None:
            return self
        schema = row._schema
        if schema.has_field(self.name):
            return row._values[schema.index_of(self.name)]
        return self.member.__get__(row, owner)


class Row:
    """Fixed-arity record validated against a schema.

    Equality and hashing consider the values (and their types) only, so rows
    built against two compatible schemas compare equal when their values do.
    Fields are readable as attributes; a field named like one of the row
    members (``schema``, ``values``, ``key``, ``get``, ``as_dict``) takes
    precedence over that member, and ``tuple(row)`` always gives the values.
    """

    __slots__ = ("_schema", "_values", "_identity", "_hash")

    def __init__(self, schema: Schema, values: Sequence[Any]) -> None:
        checked = schema.check(values)
        ident = identity(checked)
        object.__setattr__(self, "_schema", schema)
        object.__setattr__(self, "_values", checked)
        object.__setattr__(self, "_identity", ident)
        object.__setattr__(self, "_hash", hash(ident))

    @_FieldFirst
    @property
    def schema(self) -> Schema:
        return self._schema

    @_FieldFirst
    @property
    def values(self) -> tuple[Any, ...]:
        return self._values

    @_FieldFirst
    def key(self) -> tuple[Any, ...]:
        return tuple(self._values[idx] for idx in self._schema.key_indexes)

    @_FieldFirst
    def get(self, name: str, default: Any = None) -> Any:
        if not self._schema.has_field(name):
            return default
        return self._values[self._schema.index_of(name)]

    @_FieldFirst
    def as_dict(self) -> dict[str, Any]:
        return dict(zip(self._schema.names, self._values))

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        schema = object.__getattribute__(self, "_schema")
        if not schema.has_field(name):
            raise AttributeError(f"Row has no field {name!r}; fields are {list(schema.names)}.")
        return self._values[schema.index_of(name)]

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Row is immutable.")

    def __getitem__(self, item: int | str) -> Any:
        if isinstance(item, str):
            return self._values[self._schema.index_of(item)]
        return self._values[item]

    def __iter__(self) -> Iterator[Any]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Row):
            return self._identity == other._identity
        return NotImplemented

    def __hash__(self) -> int:
        return self._hash

    def __lt__(self, other: "Row") -> bool:
        if not isinstance(other, Row):
            return NotImplemented
        try:
            return self._values < other._values
        except TypeError:
            return _sort_key(self._values) < _sort_key(other._values)

    def __repr__(self) -> str:
        return f"Row{self._values!r}"


def _sort_key(values: tuple[Any, ...]) -> tuple[tuple[str, str], ...]:
    return tuple((type(value).__name__, repr(value)) for value in values)


def row_values(row: Row) -> tuple[Any, ...]:
    """Values of ``row``, whatever its field names."""

    return row._values


def make_row(schema: Schema, values: Sequence[Any] | Row) -> Row:
    """Build a Row for ``schema``; raises SchemaMismatch on arity/type errors."""

    if isinstance(values, Row):
        values = values._values
    elif values is None:
        raise SchemaMismatch("Cannot build a row from None.")
    return Row(schema, values)
