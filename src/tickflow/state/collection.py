"""Named collections and their tick-boundary semantics."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Iterable, Iterator, Optional, Sequence

from tickflow.errors import ExternalIOFailure, KeyConflict, SchemaError, UnsupportedOperation
from tickflow.ir.row import Row, identity, make_row, row_values
from tickflow.ir.schema import Schema

if TYPE_CHECKING:
    from tickflow.io.sinks import Sink
    from tickflow.io.stores import DurableStore
    from tickflow.ops.expr import JoinExpr, MapExpr


logger = logging.getLogger(__name__)

RowInput = Row | Sequence[Any]


class Persistence(str, Enum):
    SCRATCH = "scratch"
    TABLE = "table"
    DURABLE = "durable_table"
    STREAM = "stream"


@dataclass(frozen=True)
class CollectionDelta:
    """Rows added to and removed from a collection between two snapshots."""

    added: frozenset[Row] = field(default_factory=frozenset)
    removed: frozenset[Row] = field(default_factory=frozenset)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed)

    @staticmethod
    def between(before: frozenset[Row], after: frozenset[Row]) -> "CollectionDelta":
        return CollectionDelta(added=after - before, removed=before - after)


class Collection:
    """Schema-typed set of rows plus the two staging buffers.

    ``pending_next`` holds rows merged at the start of the following tick and
    ``pending_retract`` holds rows removed then, unless the same batch
    re-supplies them.
    """

    persistence: ClassVar[Persistence]
    readable: ClassVar[bool] = True

    def __init__(self, name: str, schema: Schema) -> None:
        if not isinstance(name, str) or not name.isidentifier():
            raise SchemaError(f"Collection name must be an identifier: {name!r}")
        if not isinstance(schema, Schema):
            raise SchemaError("Collection schema must be a Schema.")
        self.name = name
        self.schema = schema
        self.owner: Optional[object] = None
        self._content: set[Row] = set()
        self._by_key: dict[tuple[Any, ...], Row] = {}
        self._pending_next: set[Row] = set()
        self._pending_retract: set[Row] = set()

    # -- reads -------------------------------------------------------------

    def contents(self) -> frozenset[Row]:
        return frozenset(self._content)

    def rows(self) -> list[Row]:
        """Current content in a stable order."""

        return sorted(self._content)

    def values(self) -> set[tuple[Any, ...]]:
        return {row_values(row) for row in self._content}

    def pending(self) -> tuple[frozenset[Row], frozenset[Row]]:
        return frozenset(self._pending_next), frozenset(self._pending_retract)

    def lookup(self, key: Sequence[Any]) -> Optional[Row]:
        return self._by_key.get(identity(tuple(key)))

    def _key_of(self, row: Row) -> tuple[Any, ...]:
        values = row_values(row)
        return identity(tuple(values[idx] for idx in self.schema.key_indexes))

    # -- writes ------------------------------------------------------------

    def coerce(self, rows: Iterable[RowInput]) -> list[Row]:
        """Validate inputs against this collection's schema, dropping duplicates."""

        if isinstance(rows, Row):
            rows = [rows]
        out: list[Row] = []
        seen: set[Row] = set()
        for item in rows:
            row = make_row(self.schema, item)
            if row not in seen:
                seen.add(row)
                out.append(row)
        return out

    def merge_now(self, rows: Iterable[RowInput]) -> int:
        """Union rows into content immediately; returns how many were new."""

        fresh = self._accept(self.coerce(rows), self._content, self._by_key)
        if not fresh:
            return 0
        self._before_accept(fresh)
        for row in fresh:
            self._content.add(row)
            self._by_key[self._key_of(row)] = row
        return len(fresh)

    insert = merge_now

    def stage_merge(self, rows: Iterable[RowInput]) -> None:
        self._pending_next.update(self.coerce(rows))

    def stage_retract_then_merge(self, rows: Iterable[RowInput]) -> None:
        batch = self.coerce(rows)
        self._pending_next.update(batch)
        if self.schema.is_keyed:
            keys = {self._key_of(row) for row in batch}
            self._pending_retract.update(row for row in self._content if self._key_of(row) in keys)
        else:
            self._pending_retract.update(self._content)

    def advance_tick(self) -> CollectionDelta:
        """Apply staged deltas at the start of a tick."""

        before = frozenset(self._content)
        incoming = self._pending_next
        retract = self._pending_retract - incoming
        survivors = self._content - retract
        by_key = {self._key_of(row): row for row in survivors}
        fresh = self._accept(sorted(incoming), survivors, by_key)
        content = set(survivors)
        content.update(fresh)
        removed = frozenset(before - content)
        self._before_commit(frozenset(fresh), removed)
        for row in fresh:
            by_key[self._key_of(row)] = row
        self._content = content
        self._by_key = by_key
        self._pending_next = set()
        self._pending_retract = set()
        if incoming or retract:
            logger.debug(
                "%s: applied %d staged rows, retracted %d", self.name, len(fresh), len(removed)
            )
        return CollectionDelta(added=frozenset(fresh), removed=removed)

    # -- hooks -------------------------------------------------------------

    def _accept(
        self,
        rows: Iterable[Row],
        content: set[Row],
        by_key: dict[tuple[Any, ...], Row],
    ) -> list[Row]:
        fresh: list[Row] = []
        claimed: dict[tuple[Any, ...], Row] = {}
        for row in rows:
            if row in content:
                continue
            key = self._key_of(row)
            existing = by_key.get(key)
            if existing is None:
                existing = claimed.get(key)
            if existing is not None and existing != row:
                shown = tuple(value for _, value in key)
                raise KeyConflict(
                    f"Key {shown!r} of collection '{self.name}' already holds "
                    f"{row_values(existing)!r}; cannot also hold {row_values(row)!r}."
                )
            if existing is None:
                claimed[key] = row
                fresh.append(row)
        return fresh

    def _before_accept(self, fresh: list[Row]) -> None:
        """Called before rows join content through merge_now."""

    def _before_commit(self, added: frozenset[Row], removed: frozenset[Row]) -> None:
        """Called before the tick-boundary content swap."""

    # -- expression helpers ------------------------------------------------

    def map(self, fn: Callable[[Row], Any], output: Optional[Schema] = None) -> "MapExpr":
        from tickflow.ops.expr import MapExpr

        return MapExpr(self, fn, output=output)

    def project(self, *fields: str) -> "MapExpr":
        from tickflow.ops.expr import project

        return project(self, *fields)

    def select(self, predicate: Callable[[Row], bool]) -> "MapExpr":
        from tickflow.ops.expr import select

        return select(self, predicate)

    def join(
        self,
        other: "Collection",
        fn: Callable[[Row, Row], Any],
        *,
        on: Optional[Sequence[tuple[str, str]]] = None,
        output: Optional[Schema] = None,
    ) -> "JoinExpr":
        from tickflow.ops.expr import JoinExpr

        return JoinExpr(self, other, fn, on=on, output=output)

    def __mul__(self, other: "Collection") -> "JoinBuilder":
        if not isinstance(other, Collection):
            return NotImplemented
        return JoinBuilder(self, other)

    # -- container protocol ------------------------------------------------

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows())

    def __len__(self) -> int:
        return len(self._content)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, Row):
            return item in self._content
        if isinstance(item, (tuple, list)):
            wanted = identity(item)
            return any(identity(row_values(row)) == wanted for row in self._content)
        return False

    def describe(self) -> dict[str, object]:
        return {
            "name": self.name,
            "persistence": self.persistence.value,
            "schema": self.schema.to_dict(),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.schema})"


@dataclass(frozen=True)
class JoinBuilder:
    """Result of ``left * right``; finish with ``pairs``."""

    left: Collection
    right: Collection

    def pairs(
        self,
        fn: Callable[[Row, Row], Any],
        *,
        on: Optional[Sequence[tuple[str, str]]] = None,
        output: Optional[Schema] = None,
    ) -> "JoinExpr":
        return self.left.join(self.right, fn, on=on, output=output)


class Scratch(Collection):
    """Ephemeral collection emptied at the start of every tick."""

    persistence = Persistence.SCRATCH

    def advance_tick(self) -> CollectionDelta:
        removed = frozenset(self._content)
        self._content = set()
        self._by_key = {}
        self._pending_next = set()
        self._pending_retract = set()
        return CollectionDelta(removed=removed)


class Table(Collection):
    """Collection whose content persists across ticks."""

    persistence = Persistence.TABLE


class DurableTable(Table):
    """Table mirrored row-by-row to an external durable store."""

    persistence = Persistence.DURABLE

    def __init__(self, name: str, schema: Schema, store: "DurableStore") -> None:
        super().__init__(name, schema)
        self.store = store
        self._hydrate()

    def _hydrate(self) -> None:
        try:
            stored = list(self.store.load(self.name))
        except Exception as exc:
            raise ExternalIOFailure(f"Failed to load durable table '{self.name}': {exc}", exc) from exc
        rows: list[Row] = []
        for values in stored:
            if not self.schema.conforms(tuple(values)):
                logger.warning(
                    "Skipping stored row %r for '%s': does not match %s",
                    values,
                    self.name,
                    self.schema,
                )
                continue
            rows.append(make_row(self.schema, tuple(values)))
        for row in self._accept(sorted(rows), self._content, self._by_key):
            self._content.add(row)
            self._by_key[self._key_of(row)] = row
        if self._content:
            logger.info("Hydrated %d rows into durable table '%s'", len(self._content), self.name)

    def _before_accept(self, fresh: list[Row]) -> None:
        for row in fresh:
            self._call_store("persist", row)

    def _before_commit(self, added: frozenset[Row], removed: frozenset[Row]) -> None:
        for row in sorted(removed):
            self._call_store("retract", row)
        for row in sorted(added):
            self._call_store("persist", row)

    def _call_store(self, method: str, row: Row) -> None:
        try:
            getattr(self.store, method)(self.name, row_values(row))
        except Exception as exc:
            raise ExternalIOFailure(
                f"Durable store {method} failed for '{self.name}' row {row_values(row)!r}: {exc}",
                exc,
            ) from exc


class StreamSink(Collection):
    """Write-only collection forwarding rows to an external sink.

    Each distinct row is forwarded at most once per tick, so re-deriving the
    same row on later fixpoint passes does not repeat output.
    """

    persistence = Persistence.STREAM
    readable = False

    def __init__(self, name: str, schema: Schema, sink: Optional["Sink"] = None) -> None:
        super().__init__(name, schema)
        self.sink = sink
        self._emitted: set[Row] = set()
        self.emitted_total = 0

    def contents(self) -> frozenset[Row]:
        raise UnsupportedOperation(f"Stream collection '{self.name}' is write-only.")

    def rows(self) -> list[Row]:
        raise UnsupportedOperation(f"Stream collection '{self.name}' is write-only.")

    def values(self) -> set[tuple[Any, ...]]:
        raise UnsupportedOperation(f"Stream collection '{self.name}' is write-only.")

    def __len__(self) -> int:
        return 0

    def __contains__(self, item: object) -> bool:
        return False

    def merge_now(self, rows: Iterable[RowInput]) -> int:
        self._forward(self.coerce(rows))
        return 0

    insert = merge_now

    def stage_retract_then_merge(self, rows: Iterable[RowInput]) -> None:
        raise UnsupportedOperation(f"Stream collection '{self.name}' cannot retract rows.")

    def advance_tick(self) -> CollectionDelta:
        self._emitted = set()
        staged = sorted(self._pending_next)
        self._pending_next = set()
        self._pending_retract = set()
        self._forward(staged)
        return CollectionDelta()

    @property
    def emitted_this_tick(self) -> int:
        return len(self._emitted)

    def _forward(self, rows: Iterable[Row]) -> None:
        for row in rows:
            if row in self._emitted:
                continue
            if self.sink is not None:
                try:
                    self.sink.emit(self.name, row)
                except Exception as exc:
                    raise ExternalIOFailure(
                        f"Sink write failed for '{self.name}' row {row_values(row)!r}: {exc}", exc
                    ) from exc
            self._emitted.add(row)
            self.emitted_total += 1
