"""
In-process versioned datastore.

Stands in for the persistence collaborator the engine is written against:
every record carries a version, reads return copies, and writes are
conditional on the version the caller read. `commit()` applies a group of
conditional writes (plus log appends) all-or-nothing, which is the contract
a document store transaction or a row-level compare-and-swap provides.

The internal lock only guards the store's own critical section; callers
never hold it across their own logic.

Usage:
    store = MemoryStore()
    store.insert("orders", "o1", order)
    rec = store.get("orders", "o1")
    store.commit([Write("orders", "o1", rec.version, updated)])
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

T = TypeVar("T")


class StoreError(Exception):
    """Base class for datastore failures."""


class VersionConflict(StoreError):
    """A conditional write found a different version than expected."""

    def __init__(self, collection: str, key: str, expected: int | None, actual: int | None) -> None:
        super().__init__(
            f"{collection}/{key}: expected version {expected}, found {actual}"
        )
        self.collection = collection
        self.key = key
        self.expected = expected
        self.actual = actual


class StoreUnavailable(StoreError):
    """The datastore could not be reached or timed out."""


@dataclass(frozen=True)
class Versioned(Generic[T]):
    """A record snapshot together with the version it was read at."""

    key: str
    version: int
    value: T


@dataclass(frozen=True)
class Write:
    """One conditional write inside a commit.

    expected_version=None means "must not exist yet" (insert).
    """

    collection: str
    key: str
    expected_version: int | None
    value: Any


class MemoryStore:
    """Thread-safe versioned key/value collections plus append-only logs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._collections: dict[str, dict[str, tuple[int, Any]]] = {}
        self._logs: dict[str, list[Any]] = {}
        self._sequences: dict[str, int] = {}

    # ── Reads ────────────────────────────────────────────────────

    def get(self, collection: str, key: str) -> Versioned | None:
        with self._lock:
            entry = self._collections.get(collection, {}).get(key)
            if entry is None:
                return None
            version, value = entry
            return Versioned(key, version, copy.deepcopy(value))

    def scan(
        self,
        collection: str,
        predicate: Callable[[Any], bool] | None = None,
    ) -> list[Versioned]:
        """Return every record of a collection (optionally filtered), in insertion order."""

        with self._lock:
            items = list(self._collections.get(collection, {}).items())
            snapshot = [Versioned(k, v, copy.deepcopy(val)) for k, (v, val) in items]
        if predicate is None:
            return snapshot
        return [rec for rec in snapshot if predicate(rec.value)]

    def read_log(self, log: str, predicate: Callable[[Any], bool] | None = None) -> list[Any]:
        with self._lock:
            entries = copy.deepcopy(self._logs.get(log, []))
        if predicate is None:
            return entries
        return [e for e in entries if predicate(e)]

    # ── Writes ───────────────────────────────────────────────────

    def insert(self, collection: str, key: str, value: Any) -> Versioned:
        self.commit([Write(collection, key, None, value)])
        return Versioned(key, 1, copy.deepcopy(value))

    def commit(
        self,
        writes: Sequence[Write],
        appends: Iterable[tuple[str, Any]] = (),
    ) -> None:
        """Apply all writes and log appends atomically, or none of them.

        Raises:
            VersionConflict: if any record's current version differs from
                the expected one. Nothing is written in that case.
        """
        appends = list(appends)
        with self._lock:
            for w in writes:
                entry = self._collections.get(w.collection, {}).get(w.key)
                actual = entry[0] if entry is not None else None
                if actual != w.expected_version:
                    raise VersionConflict(w.collection, w.key, w.expected_version, actual)

            for w in writes:
                coll = self._collections.setdefault(w.collection, {})
                new_version = 1 if w.expected_version is None else w.expected_version + 1
                coll[w.key] = (new_version, copy.deepcopy(w.value))
            for log, value in appends:
                self._logs.setdefault(log, []).append(copy.deepcopy(value))

    def append(self, log: str, value: Any) -> None:
        with self._lock:
            self._logs.setdefault(log, []).append(copy.deepcopy(value))

    def next_sequence(self, name: str) -> int:
        with self._lock:
            self._sequences[name] = self._sequences.get(name, 0) + 1
            return self._sequences[name]

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))
