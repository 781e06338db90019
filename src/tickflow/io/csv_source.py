"""Seed collections from CSV files."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Optional, Sequence

from tickflow.errors import ExternalIOFailure, SchemaMismatch
from tickflow.ir.schema import FieldSpec
from tickflow.state.collection import Collection


_TRUE = {"true", "1", "yes", "t"}
_FALSE = {"false", "0", "no", "f"}


def read_rows(
    path: Path | str,
    fields: Sequence[FieldSpec],
    columns: Optional[Sequence[str]] = None,
) -> list[tuple[object, ...]]:
    """Read CSV rows and coerce each cell to its field type.

    ``columns`` names the CSV header for each field, in field order; by
    default the field names themselves are used.
    """

    path = Path(path).resolve()
    if not path.exists():
        raise ExternalIOFailure(f"CSV file not found: {path}")
    columns = list(columns) if columns is not None else [spec.name for spec in fields]
    if len(columns) != len(fields):
        raise SchemaMismatch(
            f"CSV column mapping arity mismatch for {path}: expected {len(fields)}, got {len(columns)}"
        )
    rows: list[tuple[object, ...]] = []
    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        if reader.fieldnames is None:
            raise ExternalIOFailure(f"CSV file has no header: {path}")
        raw_fieldnames = list(reader.fieldnames)
        normalized_fieldnames = [name.strip() for name in raw_fieldnames]
        fieldname_map = dict(zip(raw_fieldnames, normalized_fieldnames))
        missing = [col for col in columns if col not in normalized_fieldnames]
        if missing:
            raise ExternalIOFailure(f"CSV file {path} missing columns: {missing}")
        for idx, row in enumerate(reader, start=2):
            normalized_row = {
                fieldname_map[key]: (value.strip() if isinstance(value, str) else value)
                for key, value in row.items()
                if key is not None
            }
            rows.append(
                tuple(
                    _coerce_value(normalized_row.get(col), spec, path, idx, col)
                    for col, spec in zip(columns, fields)
                )
            )
    return rows


def load_csv(
    collection: Collection,
    path: Path | str,
    columns: Optional[Sequence[str]] = None,
) -> int:
    """Merge the rows of a CSV file into ``collection``; returns rows added."""

    rows = read_rows(path, collection.schema.fields, columns)
    return collection.merge_now(rows)


def _coerce_value(raw: Optional[str], spec: FieldSpec, path: Path, row: int, col: str) -> object:
    if raw is None:
        raise ExternalIOFailure(f"Missing value in {path} row {row} column {col}")
    value = raw.strip()
    if spec.datatype == "string":
        return value
    if value == "":
        raise ExternalIOFailure(f"Empty value in {path} row {row} column {col}")
    if spec.datatype == "integer":
        try:
            return int(value)
        except ValueError as exc:
            raise ExternalIOFailure(f"Invalid integer in {path} row {row} column {col}: {value}", exc) from exc
    if spec.datatype == "boolean":
        lowered = value.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ExternalIOFailure(f"Invalid boolean in {path} row {row} column {col}: {value}")
    return value
