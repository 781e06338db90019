"""Schema and row types."""

from tickflow.ir.schema import FIELD_TYPES, FieldSpec, Schema, normalize_type
from tickflow.ir.row import Row, make_row

__all__ = [
    "FIELD_TYPES",
    "FieldSpec",
    "Schema",
    "normalize_type",
    "Row",
    "make_row",
]
