"""External collaborators: durable stores, sinks and CSV seeding."""

from tickflow.io.csv_source import load_csv, read_rows
from tickflow.io.sinks import ListSink, Sink, StdioSink
from tickflow.io.stores import DiskCacheStore, DurableStore, MemoryStore

__all__ = [
    "DiskCacheStore",
    "DurableStore",
    "ListSink",
    "MemoryStore",
    "Sink",
    "StdioSink",
    "load_csv",
    "read_rows",
]
