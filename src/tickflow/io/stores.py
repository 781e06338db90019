"""Durable-store collaborators for durable tables."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, runtime_checkable

from diskcache import Cache

from tickflow.config import EngineConfig


Values = tuple[Any, ...]


@runtime_checkable
class DurableStore(Protocol):
    """What a durable table needs from its backing store."""

    def load(self, collection: str) -> Iterable[Values]:  # pragma: no cover - interface
        ...

    def persist(self, collection: str, values: Values) -> None:  # pragma: no cover - interface
        ...

    def retract(self, collection: str, values: Values) -> None:  # pragma: no cover - interface
        ...


class MemoryStore:
    """In-process store; handy for tests and for embedding."""

    def __init__(self, initial: Optional[dict[str, Iterable[Iterable[Any]]]] = None) -> None:
        self._data: dict[str, set[Values]] = {}
        for name, rows in (initial or {}).items():
            self._data[name] = {tuple(row) for row in rows}

    def load(self, collection: str) -> set[Values]:
        return set(self._data.get(collection, set()))

    def persist(self, collection: str, values: Values) -> None:
        self._data.setdefault(collection, set()).add(tuple(values))

    def retract(self, collection: str, values: Values) -> None:
        self._data.get(collection, set()).discard(tuple(values))

    def rows(self, collection: str) -> set[Values]:
        return self.load(collection)


class DiskCacheStore:
    """Durable store backed by a ``diskcache.Cache`` directory.

    Each collection is stored under its own key as a set of value tuples.
    A ``namespace`` (programs pass their name) keeps same-named collections
    of different programs apart when they share a directory.
    """

    _KEY_PREFIX = "collection:"

    def __init__(
        self,
        directory: Optional[str | Path] = None,
        config: Optional[EngineConfig] = None,
        namespace: Optional[str] = None,
    ) -> None:
        if directory is None:
            directory = (config or EngineConfig.from_env()).resolve_store_dir()
        self.directory = Path(directory)
        self.namespace = namespace
        self._cache = Cache(str(self.directory))

    def _key(self, collection: str) -> str:
        if self.namespace is None:
            return f"{self._KEY_PREFIX}{collection}"
        return f"{self._KEY_PREFIX}{self.namespace}:{collection}"

    def load(self, collection: str) -> set[Values]:
        return set(self._cache.get(self._key(collection), set()))

    def persist(self, collection: str, values: Values) -> None:
        key = self._key(collection)
        with self._cache.transact():
            rows = set(self._cache.get(key, set()))
            rows.add(tuple(values))
            self._cache.set(key, rows)

    def retract(self, collection: str, values: Values) -> None:
        key = self._key(collection)
        with self._cache.transact():
            rows = set(self._cache.get(key, set()))
            rows.discard(tuple(values))
            self._cache.set(key, rows)

    def clear(self, collection: Optional[str] = None) -> None:
        if collection is None and self.namespace is None:
            self._cache.clear()
        elif collection is None:
            prefix = self._key("")
            for key in [key for key in self._cache if isinstance(key, str) and key.startswith(prefix)]:
                self._cache.delete(key)
        else:
            self._cache.delete(self._key(collection))

    def close(self) -> None:
        self._cache.close()

    def __enter__(self) -> "DiskCacheStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
