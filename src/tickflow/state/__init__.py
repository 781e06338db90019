"""Collections and persistence classes."""

from tickflow.state.collection import (
    Collection,
    CollectionDelta,
    DurableTable,
    JoinBuilder,
    Persistence,
    Scratch,
    StreamSink,
    Table,
)

__all__ = [
    "Collection",
    "CollectionDelta",
    "DurableTable",
    "JoinBuilder",
    "Persistence",
    "Scratch",
    "StreamSink",
    "Table",
]
