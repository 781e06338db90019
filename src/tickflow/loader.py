"""Declarative program documents.

A document mirrors a Bloom program: a ``state`` block declaring collections,
a ``rules`` block of ``target op source`` statements, and optional ``seed``
rows inserted before the first tick.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from tickflow.config import EngineConfig
from tickflow.errors import DocumentError, RuleDefinitionError, SchemaError
from tickflow.io.sinks import Sink
from tickflow.io.stores import DurableStore
from tickflow.ir.row import Row, row_values
from tickflow.ir.schema import FieldSpec, Schema
from tickflow.ops.expr import ConstExpr, Expr, MapExpr
from tickflow.rules.rule import TemporalOp
from tickflow.runtime.program import STDIO, Program
from tickflow.state.collection import Collection


Scalar = Union[bool, int, str]


class _DocModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CollectionDoc(_DocModel):
    name: str
    kind: Literal["scratch", "table", "durable_table", "stream"] = "table"
    fields: list[str] = Field(default_factory=list)
    key: Optional[list[str]] = None

    @model_validator(mode="after")
    def _check_fields(self):
        if not self.name.isidentifier():
            raise ValueError(f"Collection name must be an identifier: {self.name!r}")
        if self.kind != "stream" and not self.fields:
            raise ValueError(f"Collection {self.name} must declare at least one field.")
        if self.key is not None and self.kind == "stream":
            raise ValueError(f"Stream collection {self.name} cannot declare a key.")
        return self


class ConstItem(_DocModel):
    const: Scalar


class ProjectSource(_DocModel):
    kind: Literal["project"]
    from_: str = Field(alias="from")
    fields: list[str]
    where: dict[str, Scalar] = Field(default_factory=dict)

    @field_validator("fields")
    @classmethod
    def _non_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("project requires at least one field.")
        return value


class JoinSource(_DocModel):
    kind: Literal["join"]
    left: str
    right: str
    on: list[tuple[str, str]] = Field(default_factory=list)
    select: list[Union[str, ConstItem]]
    where: dict[str, Scalar] = Field(default_factory=dict)

    @field_validator("select")
    @classmethod
    def _non_empty(cls, value: list[Union[str, ConstItem]]) -> list[Union[str, ConstItem]]:
        if not value:
            raise ValueError("join requires at least one selected column.")
        return value


class ConstSource(_DocModel):
    kind: Literal["const"]
    rows: list[list[Scalar]]


SourceDoc = Annotated[Union[ProjectSource, JoinSource, ConstSource], Field(discriminator="kind")]


class RuleDoc(_DocModel):
    target: str
    op: str
    source: SourceDoc
    name: Optional[str] = None

    @field_validator("op")
    @classmethod
    def _known_op(cls, value: str) -> str:
        try:
            TemporalOp.parse(value)
        except RuleDefinitionError as exc:
            raise ValueError(str(exc)) from exc
        return value


class ProgramDoc(_DocModel):
    name: str = "program"
    state: list[CollectionDoc] = Field(default_factory=list)
    rules: list[RuleDoc] = Field(default_factory=list)
    seed: dict[str, list[list[Scalar]]] = Field(default_factory=dict)


def load_program(
    document: dict[str, Any] | ProgramDoc,
    *,
    store: Optional[DurableStore] = None,
    sink: Optional[Sink] = None,
    config: Optional[EngineConfig] = None,
) -> Program:
    """Build a Program from a document dict; raises DocumentError when invalid."""

    if isinstance(document, ProgramDoc):
        doc = document
    else:
        try:
            doc = ProgramDoc.model_validate(document)
        except ValidationError as exc:
            raise DocumentError(f"Invalid program document: {exc}") from exc

    program = Program(doc.name, store=store, sink=sink, config=config)
    for item in doc.state:
        _declare(program, item)
    for index, rule_doc in enumerate(doc.rules):
        expr = _build_source(program, rule_doc.source)
        program.rule(rule_doc.target, rule_doc.op, expr, name=rule_doc.name or f"rule_{index}")
    for name, rows in doc.seed.items():
        program.insert(name, rows)
    return program


def load_program_json(payload: str, **kwargs: Any) -> Program:
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise DocumentError(f"Program document is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise DocumentError("Program document must be a JSON object.")
    return load_program(data, **kwargs)


def _declare(program: Program, item: CollectionDoc) -> Collection:
    if item.kind == "stream":
        if item.name == STDIO and not item.fields:
            return program.stdio
        schema = Schema.parse(item.fields) if item.fields else None
        return program.stream(item.name, schema)
    schema = Schema.parse(item.fields, key=item.key)
    if item.kind == "scratch":
        return program.scratch(item.name, schema)
    if item.kind == "durable_table":
        return program.durable_table(item.name, schema)
    return program.table(item.name, schema)


def _build_source(program: Program, source: ProjectSource | JoinSource | ConstSource) -> Expr:
    if isinstance(source, ConstSource):
        return ConstExpr(source.rows)
    if isinstance(source, ProjectSource):
        return _build_project(program, source)
    return _build_join(program, source)


def _build_project(program: Program, source: ProjectSource) -> MapExpr:
    collection = program.collection(source.from_)
    schema = collection.schema
    indexes = [schema.index_of(name) for name in source.fields]
    conditions = [(schema.index_of(name), value) for name, value in source.where.items()]
    output = Schema([schema.fields[idx] for idx in indexes])

    def _project(row: Row) -> Optional[tuple[Any, ...]]:
        if any(row_values(row)[idx] != value for idx, value in conditions):
            return None
        return tuple(row_values(row)[idx] for idx in indexes)

    detail: dict[str, object] = {"fields": list(source.fields)}
    if source.where:
        detail["where"] = dict(source.where)
    return MapExpr(collection, _project, output=output, label="project", detail=detail)


def _qualified(left: Collection, right: Collection, ref: str) -> tuple[int, int, FieldSpec]:
    side, sep, field = ref.partition(".")
    if not sep or side not in ("left", "right"):
        raise SchemaError(f"Join column must be 'left.<field>' or 'right.<field>': {ref!r}")
    collection = left if side == "left" else right
    idx = collection.schema.index_of(field)
    return (0 if side == "left" else 1), idx, collection.schema.fields[idx]


def _build_join(program: Program, source: JoinSource) -> Expr:
    left = program.collection(source.left)
    right = program.collection(source.right)
    picks: list[tuple[int, int, Any]] = []
    out_fields: list[FieldSpec] = []
    used: set[str] = set()
    for pos, item in enumerate(source.select):
        if isinstance(item, ConstItem):
            picks.append((-1, -1, item.const))
            spec = FieldSpec(f"c{pos}")
        else:
            side, idx, base = _qualified(left, right, item)
            picks.append((side, idx, None))
            name = base.name if base.name not in used else f"{'left' if side == 0 else 'right'}_{base.name}"
            spec = FieldSpec(name, base.datatype)
        used.add(spec.name)
        out_fields.append(spec)
    conditions = []
    for ref, value in source.where.items():
        side, idx, _ = _qualified(left, right, ref)
        conditions.append((side, idx, value))

    def _pair(a: Row, b: Row) -> Optional[tuple[Any, ...]]:
        pair = (row_values(a), row_values(b))
        for side, idx, value in conditions:
            if pair[side][idx] != value:
                return None
        return tuple(value if side < 0 else pair[side][idx] for side, idx, value in picks)

    return left.join(right, _pair, on=source.on, output=Schema(out_fields))
