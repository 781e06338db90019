"""Output sinks for stream collections."""

from __future__ import annotations

import sys
from typing import Any, Callable, Optional, Protocol, TextIO, runtime_checkable

from tickflow.ir.row import Row, row_values


Formatter = Callable[[Row], str]


@runtime_checkable
class Sink(Protocol):
    def emit(self, collection: str, row: Row) -> None:  # pragma: no cover - interface
        ...


def default_format(row: Row) -> str:
    if len(row) == 1:
        return str(row[0])
    return " ".join(str(value) for value in row)


class StdioSink:
    """Line-oriented console sink, one line per emitted row."""

    def __init__(self, stream: Optional[TextIO] = None, formatter: Optional[Formatter] = None) -> None:
        self._stream = stream
        self._formatter = formatter or default_format

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stdout

    def emit(self, collection: str, row: Row) -> None:
        self.stream.write(self._formatter(row) + "\n")
        self.stream.flush()


class ListSink:
    """Records emitted rows in order."""

    def __init__(self) -> None:
        self.records: list[tuple[str, tuple[Any, ...]]] = []

    def emit(self, collection: str, row: Row) -> None:
        self.records.append((collection, row_values(row)))

    def values(self, collection: Optional[str] = None) -> list[tuple[Any, ...]]:
        return [values for name, values in self.records if collection is None or name == collection]

    def clear(self) -> None:
        self.records.clear()
