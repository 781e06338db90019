"""tickflow: tick-based dataflow evaluation in the style of Bloom."""

from tickflow.config import EngineConfig, configure_logging
from tickflow.errors import (
    DocumentError,
    ExternalIOFailure,
    KeyConflict,
    NonTerminatingFixpoint,
    ProgramSealed,
    RuleDefinitionError,
    SchemaError,
    SchemaMismatch,
    TickflowError,
    TickInProgress,
    UnknownCollection,
    UnsupportedOperation,
)
from tickflow.ir import FieldSpec, Row, Schema, make_row
from tickflow.ops import ConstExpr, JoinExpr, MapExpr, project, select
from tickflow.rules import Rule, TemporalOp
from tickflow.runtime import FixpointScheduler, Program, TickPhase, TickReport
from tickflow.state import (
    Collection,
    CollectionDelta,
    DurableTable,
    Persistence,
    Scratch,
    StreamSink,
    Table,
)
from tickflow.io import DiskCacheStore, ListSink, MemoryStore, StdioSink, load_csv
from tickflow.loader import load_program, load_program_json

__all__ = [
    "Collection",
    "CollectionDelta",
    "ConstExpr",
    "DiskCacheStore",
    "DocumentError",
    "DurableTable",
    "EngineConfig",
    "ExternalIOFailure",
    "FieldSpec",
    "FixpointScheduler",
    "JoinExpr",
    "KeyConflict",
    "ListSink",
    "MapExpr",
    "MemoryStore",
    "NonTerminatingFixpoint",
    "Persistence",
    "Program",
    "ProgramSealed",
    "Row",
    "Rule",
    "RuleDefinitionError",
    "Schema",
    "SchemaError",
    "SchemaMismatch",
    "Scratch",
    "StdioSink",
    "StreamSink",
    "Table",
    "TemporalOp",
    "TickInProgress",
    "TickPhase",
    "TickReport",
    "TickflowError",
    "UnknownCollection",
    "UnsupportedOperation",
    "configure_logging",
    "load_csv",
    "load_program",
    "load_program_json",
    "make_row",
    "project",
    "select",
]
