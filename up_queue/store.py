"""Store contract and an in-process implementation.

A store holds one document (the Snapshot) and broadcasts every change to its
subscribers, including changes made by the subscriber itself. Stores do not
offer compare-and-swap: concurrent writers race and the last write wins.
"""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Callable, Protocol

from .errors import StoreUnavailable
from .models import SNAPSHOT_FIELDS, Snapshot

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Snapshot], None]
Unsubscribe = Callable[[], None]


class Store(Protocol):
    # True when the store is also a PartialWriteStore.
    supports_partial_writes: bool

    def read(self) -> Snapshot | None: ...

    def write(self, snapshot: Snapshot) -> None: ...

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe: ...

    def destroy(self) -> None: ...


class PartialWriteStore(Store, Protocol):
    """A store that can write a subset of top-level document fields."""

    def update(self, fields: dict[str, Any]) -> None: ...


class MemoryStore:
    """Thread-safe in-memory document store.

    `update()` merges top-level fields into the stored document under a lock,
    the way a document database's field update does. Subscribers are called
    synchronously on the writing thread.
    """

    supports_partial_writes = True

    def __init__(self, initial: Snapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._doc: dict[str, Any] | None = initial.to_dict() if initial is not None else None
        self._subscribers: list[SnapshotCallback] = []
        self.available = True
        self.writes = 0

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailable("memory store is offline")

    def read(self) -> Snapshot | None:
        with self._lock:
            self._check()
            doc = copy.deepcopy(self._doc)
        return Snapshot.from_dict(doc) if doc is not None else None

    def write(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._check()
            self._doc = snapshot.to_dict()
            self.writes += 1
        self._notify()

    def update(self, fields: dict[str, Any]) -> None:
        unknown = set(fields) - set(SNAPSHOT_FIELDS)
        if unknown:
            raise ValueError(f"unknown snapshot fields: {sorted(unknown)}")
        with self._lock:
            self._check()
            doc = self._doc if self._doc is not None else {}
            doc.update(copy.deepcopy(fields))
            self._doc = doc
            self.writes += 1
        self._notify()

    def destroy(self) -> None:
        with self._lock:
            self._check()
            self._doc = None
            self.writes += 1
        self._notify()

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        with self._lock:
            self._subscribers.append(callback)
            doc = copy.deepcopy(self._doc)

        # Deliver the current value right away, like a live query does.
        callback(Snapshot.from_dict(doc))

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            doc = copy.deepcopy(self._doc)
            subscribers = list(self._subscribers)
        snapshot = Snapshot.from_dict(doc)
        for cb in subscribers:
            try:
                cb(snapshot)
            except Exception:
                logger.exception("snapshot subscriber failed")
