"""Relational operator expressions evaluated against collection snapshots.

Expressions are pure: they read ``contents()`` of their sources at
evaluation time, never the staged buffers, and never mutate a source.
Transform functions return a row (``Row``, tuple or list), a bare scalar
for single-field rows, or ``None`` to emit nothing for that input.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator, Optional, Sequence

from tickflow.errors import SchemaError
from tickflow.ir.row import Row, row_values
from tickflow.ir.schema import Schema
from tickflow.state.collection import Collection


Output = tuple[Any, ...]
RowFn = Callable[[Row], Any]
PairFn = Callable[[Row, Row], Any]


def normalize_output(result: Any) -> Output:
    if isinstance(result, Row):
        return row_values(result)
    if isinstance(result, (tuple, list)):
        return tuple(result)
    return (result,)


class Expr:
    """Base class for operator expressions."""

    output: Optional[Schema] = None

    @property
    def sources(self) -> tuple[Collection, ...]:  # pragma: no cover - interface
        raise NotImplementedError

    def evaluate(self) -> Iterator[Output]:  # pragma: no cover - interface
        raise NotImplementedError

    def describe(self) -> dict[str, object]:  # pragma: no cover - interface
        raise NotImplementedError

    def results(self) -> set[Output]:
        return set(self.evaluate())

    def reads(self, collection: Collection) -> bool:
        return any(source is collection for source in self.sources)


class MapExpr(Expr):
    """Row-at-a-time transform and filter over one collection."""

    def __init__(
        self,
        source: Collection,
        fn: RowFn,
        output: Optional[Schema] = None,
        label: str = "map",
        detail: Optional[dict[str, object]] = None,
    ) -> None:
        if not isinstance(source, Collection):
            raise SchemaError("MapExpr source must be a Collection.")
        if not callable(fn):
            raise SchemaError("MapExpr fn must be callable.")
        self.source = source
        self.fn = fn
        self.output = output
        self.label = label
        self.detail = dict(detail or {})

    @property
    def sources(self) -> tuple[Collection, ...]:
        return (self.source,)

    def evaluate(self) -> Iterator[Output]:
        for row in self.source.contents():
            result = self.fn(row)
            if result is not None:
                yield normalize_output(result)

    def describe(self) -> dict[str, object]:
        return {"kind": self.label, "from": self.source.name, **self.detail}


class JoinExpr(Expr):
    """Pairwise join: cross product of two collections filtered by ``fn``.

    ``on`` lists ``(left_field, right_field)`` equality pairs. When given, the
    right side is hashed on those fields and only matching pairs reach ``fn``;
    if ``fn`` already tests the same equalities this changes cost, not results.
    """

    def __init__(
        self,
        left: Collection,
        right: Collection,
        fn: PairFn,
        *,
        on: Optional[Sequence[tuple[str, str]]] = None,
        output: Optional[Schema] = None,
    ) -> None:
        if not isinstance(left, Collection) or not isinstance(right, Collection):
            raise SchemaError("JoinExpr sides must be Collections.")
        if not callable(fn):
            raise SchemaError("JoinExpr fn must be callable.")
        self.left = left
        self.right = right
        self.fn = fn
        self.output = output
        self.on: tuple[tuple[str, str], ...] = tuple((str(lf), str(rf)) for lf, rf in (on or ()))
        self._left_idx = tuple(left.schema.index_of(lf) for lf, _ in self.on)
        self._right_idx = tuple(right.schema.index_of(rf) for _, rf in self.on)

    @property
    def sources(self) -> tuple[Collection, ...]:
        return (self.left, self.right)

    def evaluate(self) -> Iterator[Output]:
        left_rows = self.left.contents()
        right_rows = self.right.contents()
        if not self.on:
            for a in left_rows:
                for b in right_rows:
                    result = self.fn(a, b)
                    if result is not None:
                        yield normalize_output(result)
            return
        index: dict[tuple[Any, ...], list[Row]] = {}
        for b in right_rows:
            index.setdefault(tuple(row_values(b)[i] for i in self._right_idx), []).append(b)
        for a in left_rows:
            for b in index.get(tuple(row_values(a)[i] for i in self._left_idx), ()):
                result = self.fn(a, b)
                if result is not None:
                    yield normalize_output(result)

    def describe(self) -> dict[str, object]:
        data: dict[str, object] = {"kind": "join", "left": self.left.name, "right": self.right.name}
        if self.on:
            data["on"] = [list(pair) for pair in self.on]
        return data


class ConstExpr(Expr):
    """Fixed rows, as in ``result <+ [["a", "b"]]``."""

    def __init__(self, rows: Iterable[Any], output: Optional[Schema] = None) -> None:
        self.rows = tuple(normalize_output(row) for row in rows)
        self.output = output

    @property
    def sources(self) -> tuple[Collection, ...]:
        return ()

    def evaluate(self) -> Iterator[Output]:
        return iter(self.rows)

    def describe(self) -> dict[str, object]:
        return {"kind": "const", "rows": [list(row) for row in self.rows]}


def project(source: Collection, *fields: str) -> MapExpr:
    """Keep ``fields`` of every row, in the given order."""

    if not fields:
        raise SchemaError("project requires at least one field.")
    indexes = tuple(source.schema.index_of(name) for name in fields)
    output = Schema([source.schema.fields[idx] for idx in indexes])

    def _project(row: Row) -> Output:
        return tuple(row_values(row)[idx] for idx in indexes)

    return MapExpr(source, _project, output=output, label="project", detail={"fields": list(fields)})


def select(source: Collection, predicate: Callable[[Row], bool]) -> MapExpr:
    """Keep rows of ``source`` for which ``predicate`` holds."""

    def _select(row: Row) -> Optional[Row]:
        return row if predicate(row) else None

    return MapExpr(source, _select, output=source.schema, label="select")
