"""Field specifications and collection schemas."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Optional, Sequence

from tickflow.errors import SchemaError, SchemaMismatch

if TYPE_CHECKING:
    from tickflow.ir.row import Row


FIELD_TYPES = ("integer", "boolean", "string", "opaque")
_TYPE_ALIASES = {
    "integer": "integer",
    "int": "integer",
    "boolean": "boolean",
    "bool": "boolean",
    "string": "string",
    "str": "string",
    "opaque": "opaque",
    "any": "opaque",
}


def normalize_type(datatype: str) -> str:
    if not isinstance(datatype, str) or not datatype.strip():
        raise SchemaError("Field type must be a non-empty string.")
    dtype = _TYPE_ALIASES.get(datatype.strip().lower())
    if dtype is None:
        raise SchemaError(f"Unknown field type '{datatype}'; expected one of {list(FIELD_TYPES)}.")
    return dtype


def value_matches(value: object, datatype: str) -> bool:
    """Return True when ``value`` is acceptable for a normalized field type."""

    if datatype == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if datatype == "boolean":
        return isinstance(value, bool)
    if datatype == "string":
        return isinstance(value, str)
    try:
        hash(value)
    except TypeError:
        return False
    return True


@dataclass(frozen=True, init=False)
class FieldSpec:
    """A named, typed field. ``"name:type"`` or a bare ``"name"`` (opaque)."""

    name: str
    datatype: str

    def __init__(self, spec: str, datatype: Optional[str] = None) -> None:
        if not isinstance(spec, str) or not spec.strip():
            raise SchemaError("FieldSpec spec must be a non-empty string.")
        spec = spec.strip()
        name = spec
        spec_dtype: Optional[str] = None
        if ":" in spec:
            name_part, dtype_part = (part.strip() for part in spec.split(":", 1))
            if not name_part or not dtype_part:
                raise SchemaError("FieldSpec spec must be 'name:type' or 'name'.")
            name, spec_dtype = name_part, dtype_part
        if spec_dtype and datatype and normalize_type(spec_dtype) != normalize_type(datatype):
            raise SchemaError(f"FieldSpec type conflicts with spec suffix: {spec}")
        if not name.isidentifier():
            raise SchemaError(f"Field name must be an identifier: {name!r}")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "datatype", normalize_type(spec_dtype or datatype or "opaque"))

    def accepts(self, value: object) -> bool:
        return value_matches(value, self.datatype)

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "datatype": self.datatype}

    def __str__(self) -> str:
        return f"{self.name}:{self.datatype}"


def _as_field(item: FieldSpec | str | tuple[str, str]) -> FieldSpec:
    if isinstance(item, FieldSpec):
        return item
    if isinstance(item, str):
        return FieldSpec(item)
    if isinstance(item, (tuple, list)) and len(item) == 2:
        return FieldSpec(str(item[0]), str(item[1]))
    raise SchemaError(f"Cannot build a field from {item!r}.")


class Schema:
    """Ordered, immutable field list with an optional key subset.

    Without an explicit key every field participates in the key, which makes
    key conflicts impossible and leaves plain set semantics in place.
    """

    __slots__ = ("_fields", "_names", "_index", "_key", "_key_idx")

    def __init__(
        self,
        fields: Iterable[FieldSpec | str | tuple[str, str]],
        key: Optional[Sequence[str]] = None,
    ) -> None:
        specs = tuple(_as_field(item) for item in fields)
        index: dict[str, int] = {}
        for pos, spec in enumerate(specs):
            if spec.name in index:
                raise SchemaError(f"Duplicate field name: {spec.name}")
            index[spec.name] = pos
        key_names: Optional[tuple[str, ...]] = None
        if key is not None:
            key_names = tuple(key)
            if not key_names:
                raise SchemaError("Schema key must name at least one field.")
            unknown = [name for name in key_names if name not in index]
            if unknown:
                raise SchemaError(f"Key fields not found in schema: {unknown}")
            if len(set(key_names)) != len(key_names):
                raise SchemaError("Schema key fields must be unique.")
            if len(key_names) == len(specs):
                key_names = None
        self._fields = specs
        self._names = tuple(spec.name for spec in specs)
        self._index = index
        self._key = key_names
        if key_names is None:
            self._key_idx = tuple(range(len(specs)))
        else:
            self._key_idx = tuple(index[name] for name in key_names)

    @staticmethod
    def parse(specs: Iterable[str], key: Optional[Sequence[str]] = None) -> "Schema":
        return Schema([FieldSpec(spec) for spec in specs], key=key)

    @staticmethod
    def keyed(keys: Iterable[str], values: Iterable[str]) -> "Schema":
        """Build ``[keys] => [values]`` style schemas."""

        key_specs = [FieldSpec(spec) for spec in keys]
        value_specs = [FieldSpec(spec) for spec in values]
        return Schema(key_specs + value_specs, key=[spec.name for spec in key_specs])

    @property
    def fields(self) -> tuple[FieldSpec, ...]:
        return self._fields

    @property
    def names(self) -> tuple[str, ...]:
        return self._names

    @property
    def arity(self) -> int:
        return len(self._fields)

    @property
    def key(self) -> tuple[str, ...]:
        return self._key if self._key is not None else self._names

    @property
    def is_keyed(self) -> bool:
        return self._key is not None

    @property
    def key_indexes(self) -> tuple[int, ...]:
        return self._key_idx

    @property
    def signature(self) -> tuple[str, ...]:
        return tuple(spec.datatype for spec in self._fields)

    def index_of(self, name: str) -> int:
        try:
            return self._index[name]
        except KeyError:
            raise SchemaError(f"Unknown field {name!r}; fields are {list(self._names)}.") from None

    def has_field(self, name: str) -> bool:
        return name in self._index

    def conforms(self, values: Sequence[Any]) -> bool:
        if len(values) != len(self._fields):
            return False
        return all(spec.accepts(value) for spec, value in zip(self._fields, values))

    def check(self, values: Sequence[Any], *, context: str = "row") -> tuple[Any, ...]:
        """Return ``values`` as a tuple or raise SchemaMismatch."""

        if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
            raise SchemaMismatch(f"{context} must be a sequence of values, got {values!r}.")
        if len(values) != len(self._fields):
            raise SchemaMismatch(
                f"Arity mismatch for {context}: expected {len(self._fields)} "
                f"({self}), got {len(values)}: {tuple(values)!r}."
            )
        for spec, value in zip(self._fields, values):
            if not spec.accepts(value):
                raise SchemaMismatch(
                    f"Field '{spec.name}' of {context} expects {spec.datatype}, got {value!r}."
                )
        return tuple(values)

    def make(self, values: Sequence[Any]) -> "Row":
        from tickflow.ir.row import make_row

        return make_row(self, values)

    def compatible_with(self, other: "Schema") -> bool:
        if self.arity != other.arity:
            return False
        for mine, theirs in zip(self.signature, other.signature):
            if mine != theirs and "opaque" not in (mine, theirs):
                return False
        return True

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"fields": [str(spec) for spec in self._fields]}
        if self._key is not None:
            data["key"] = list(self._key)
        return data

    @staticmethod
    def from_dict(data: dict[str, object]) -> "Schema":
        if not isinstance(data, dict):
            raise SchemaError("Schema must be a dict.")
        fields = data.get("fields")
        if not isinstance(fields, list):
            raise SchemaError("Schema fields must be a list.")
        key = data.get("key")
        if key is not None and not isinstance(key, list):
            raise SchemaError("Schema key must be a list of field names.")
        return Schema.parse([str(item) for item in fields], key=key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return self._fields == other._fields and self._key == other._key

    def __hash__(self) -> int:
        return hash((self._fields, self._key))

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self):
        return iter(self._fields)

    def __str__(self) -> str:
        body = ", ".join(str(spec) for spec in self._fields)
        if self._key is not None:
            return f"[{body}] key={list(self._key)}"
        return f"[{body}]"

    def __repr__(self) -> str:
        return f"Schema({self})"
