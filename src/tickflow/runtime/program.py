"""Program: the closed set of collections and rules driven by ``tick()``."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Sequence

from tickflow.config import EngineConfig
from tickflow.errors import ProgramSealed, SchemaError, TickInProgress, UnknownCollection
from tickflow.io.sinks import Sink, StdioSink
from tickflow.io.stores import DiskCacheStore, DurableStore
from tickflow.ir.row import Row
from tickflow.ir.schema import FieldSpec, Schema
from tickflow.ops.expr import Expr
from tickflow.rules.rule import Rule, TemporalOp
from tickflow.runtime.scheduler import FixpointScheduler, TickPhase, TickReport
from tickflow.state.collection import (
    Collection,
    DurableTable,
    Scratch,
    StreamSink,
    Table,
)


logger = logging.getLogger(__name__)

SchemaLike = Schema | Sequence[FieldSpec | str]
Target = Collection | str

STDIO = "stdio"
_LINE_SCHEMA = Schema.parse(["line"])


def as_schema(schema: SchemaLike) -> Schema:
    if isinstance(schema, Schema):
        return schema
    if isinstance(schema, (str, bytes)):
        raise SchemaError("Schema must be a Schema or a list of field specs.")
    return Schema(list(schema))


class Program:
    """Owns every collection and rule of one dataflow program.

    Collections and rules are declared up front. The first ``tick()`` seals
    the program; after that only data changes, through host inserts between
    ticks and through rules during ticks.
    """

    def __init__(
        self,
        name: str = "program",
        *,
        store: Optional[DurableStore] = None,
        sink: Optional[Sink] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.name = name
        self.config = config or EngineConfig()
        self.store = store
        self.sink = sink
        self._collections: dict[str, Collection] = {}
        self._rules: list[Rule] = []
        self._scheduler: Optional[FixpointScheduler] = None
        self._next_tick = 0
        self._in_tick = False

    # -- declarations ------------------------------------------------------

    def scratch(self, name: str, schema: SchemaLike) -> Scratch:
        return self._declare(Scratch(name, as_schema(schema)))

    def table(self, name: str, schema: SchemaLike) -> Table:
        return self._declare(Table(name, as_schema(schema)))

    def durable_table(
        self, name: str, schema: SchemaLike, store: Optional[DurableStore] = None
    ) -> DurableTable:
        self._ensure_open()
        if name in self._collections:
            raise SchemaError(f"Duplicate collection name: {name}")
        return self._declare(DurableTable(name, as_schema(schema), store or self._durable_store()))

    def stream(
        self, name: str, schema: Optional[SchemaLike] = None, sink: Optional[Sink] = None
    ) -> StreamSink:
        resolved = as_schema(schema) if schema is not None else _LINE_SCHEMA
        return self._declare(StreamSink(name, resolved, sink or self._default_sink()))

    @property
    def stdio(self) -> StreamSink:
        existing = self._collections.get(STDIO)
        if existing is not None:
            return existing  # type: ignore[return-value]
        return self.stream(STDIO)

    def _declare(self, collection: Collection) -> Any:
        self._ensure_open()
        if collection.name in self._collections:
            raise SchemaError(f"Duplicate collection name: {collection.name}")
        collection.owner = self
        self._collections[collection.name] = collection
        logger.debug("%s: declared %r", self.name, collection)
        return collection

    def _durable_store(self) -> DurableStore:
        if self.store is None:
            self.store = DiskCacheStore(config=self.config, namespace=self.name)
        return self.store

    def _default_sink(self) -> Sink:
        if self.sink is None:
            self.sink = StdioSink()
        return self.sink

    # -- rules -------------------------------------------------------------

    def rule(
        self,
        target: Target,
        op: TemporalOp | str,
        expr: Expr,
        name: Optional[str] = None,
    ) -> Rule:
        self._ensure_open()
        resolved = self.collection(target) if isinstance(target, str) else target
        self._ensure_member(resolved)
        for source in expr.sources:
            self._ensure_member(source)
        rule = Rule(
            target=resolved,
            op=TemporalOp.parse(op),
            expr=expr,
            name=name,
            validate_output=self.config.validate_outputs,
        )
        self._rules.append(rule)
        return rule

    def merge_now(self, target: Target, expr: Expr, name: Optional[str] = None) -> Rule:
        return self.rule(target, TemporalOp.MERGE_NOW, expr, name)

    def merge_next(self, target: Target, expr: Expr, name: Optional[str] = None) -> Rule:
        return self.rule(target, TemporalOp.MERGE_NEXT, expr, name)

    def retract_then_merge(self, target: Target, expr: Expr, name: Optional[str] = None) -> Rule:
        return self.rule(target, TemporalOp.RETRACT_THEN_MERGE, expr, name)

    def send(self, target: Target, expr: Expr, name: Optional[str] = None) -> Rule:
        return self.rule(target, TemporalOp.ASYNC, expr, name)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules)

    # -- lookup ------------------------------------------------------------

    def collection(self, name: str) -> Collection:
        try:
            return self._collections[name]
        except KeyError:
            if name == STDIO and not self.sealed:
                return self.stdio
            raise UnknownCollection(name, self.name) from None

    @property
    def collections(self) -> dict[str, Collection]:
        return dict(self._collections)

    def __getitem__(self, name: str) -> Collection:
        return self.collection(name)

    def __contains__(self, name: object) -> bool:
        return name in self._collections

    def __getattr__(self, name: str) -> Collection:
        if name.startswith("_"):
            raise AttributeError(name)
        collections = self.__dict__.get("_collections", {})
        if name in collections:
            return collections[name]
        raise AttributeError(f"{type(self).__name__} has no attribute or collection {name!r}")

    def _ensure_member(self, collection: Collection) -> None:
        if self._collections.get(collection.name) is not collection:
            raise UnknownCollection(collection.name, self.name)

    # -- host mutations ----------------------------------------------------

    def insert(self, target: Target, rows: Iterable[Any]) -> int:
        """Merge rows immediately (between ticks)."""

        return self._host_target(target).merge_now(rows)

    def stage(self, target: Target, rows: Iterable[Any]) -> None:
        """Stage rows for the next tick, like ``peeps <+ [...]``."""

        self._host_target(target).stage_merge(rows)

    def replace(self, target: Target, rows: Iterable[Any]) -> None:
        """Stage a retract-then-merge batch for the next tick."""

        self._host_target(target).stage_retract_then_merge(rows)

    def _host_target(self, target: Target) -> Collection:
        if self._in_tick:
            raise TickInProgress(f"Program {self.name!r} is evaluating tick {self._next_tick}.")
        resolved = self.collection(target) if isinstance(target, str) else target
        self._ensure_member(resolved)
        return resolved

    # -- driving -----------------------------------------------------------

    @property
    def sealed(self) -> bool:
        return self._scheduler is not None

    @property
    def current_tick(self) -> int:
        """Number of completed ticks."""

        return self._next_tick

    @property
    def phase(self) -> TickPhase:
        if self._scheduler is None:
            return TickPhase.TICK_END
        return self._scheduler.phase

    @property
    def scheduler(self) -> FixpointScheduler:
        if self._scheduler is None:
            self._scheduler = FixpointScheduler(
                list(self._collections.values()),
                self._rules,
                max_iterations=self.config.max_iterations,
            )
        return self._scheduler

    def tick(self) -> TickReport:
        if self._in_tick:
            raise TickInProgress(f"Program {self.name!r} is already evaluating a tick.")
        scheduler = self.scheduler
        self._in_tick = True
        try:
            report = scheduler.run_tick(self._next_tick)
        finally:
            self._in_tick = False
        self._next_tick += 1
        logger.info(
            "%s: tick %d quiescent after %d passes (%d collections changed, %d rows emitted)",
            self.name,
            report.tick,
            report.iterations,
            len(report.changed),
            report.emitted,
        )
        return report

    def run(self, ticks: int) -> list[TickReport]:
        return [self.tick() for _ in range(ticks)]

    def run_until_quiescent(self, max_ticks: int = 100) -> list[TickReport]:
        """Tick until a tick (after the first) leaves every collection unchanged."""

        reports: list[TickReport] = []
        for _ in range(max_ticks):
            report = self.tick()
            reports.append(report)
            if report.quiet and report.tick > 0:
                return reports
        logger.warning("%s: still changing after %d ticks", self.name, max_ticks)
        return reports

    # -- inspection --------------------------------------------------------

    def snapshot(self) -> dict[str, frozenset[Row]]:
        return {name: c.contents() for name, c in self._collections.items() if c.readable}

    def describe(self) -> dict[str, object]:
        return {
            "name": self.name,
            "tick": self._next_tick,
            "collections": [c.describe() for c in self._collections.values()],
            "rules": [rule.describe() for rule in self._rules],
        }

    def _ensure_open(self) -> None:
        if self.sealed:
            raise ProgramSealed(f"Program {self.name!r} is sealed; declare state and rules before the first tick.")

    def __repr__(self) -> str:
        return f"Program({self.name!r}, collections={list(self._collections)}, rules={len(self._rules)})"
