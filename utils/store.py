"""Entity store contract and the in-memory reference backend.

Every component reaches records only through this contract:

* ``get(kind, id)`` returns a copy of the record or ``None``;
* ``find(kind, predicate)`` returns copies in insertion (id) order;
* ``find_by(kind, **equals)`` is the same for plain field equality, which
  backends may answer from an index;
* ``insert(kind, partial)`` assigns a fresh id and bootstrap timestamps;
* ``replace(kind, id, record)`` overwrites the whole record but refuses to
  touch the kind's ``immutable_fields``.

There is deliberately no delete; archival is a field flip through ``replace``.
"""
import copy
import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import fields
from datetime import datetime
from typing import Callable, Iterator, Mapping

from models import RECORD_KINDS, utcnow
from utils.errors import ContractViolation

logger = logging.getLogger(__name__)

Predicate = Callable[[object], bool]


def field_names(kind: type) -> set[str]:
    return {f.name for f in fields(kind)}


def build_record(kind: type, partial: Mapping, record_id: int | None, now: datetime):
    names = field_names(kind)
    unknown = set(partial) - names
    if unknown:
        raise ContractViolation(f"Unknown fields for {kind.__name__}: {sorted(unknown)}")
    values = dict(partial)
    values["id"] = record_id
    if "created_at" in names:
        values["created_at"] = now
    if "updated_at" in names:
        values["updated_at"] = now
    return kind(**values)


def check_replacement(kind: type, current, record) -> None:
    if not isinstance(record, kind):
        raise ContractViolation(f"Expected a {kind.__name__} record, got {type(record).__name__}")
    for name in kind.immutable_fields:
        if getattr(current, name) != getattr(record, name):
            raise ContractViolation(f"{kind.__name__}.{name} is immutable")


class EntityStore:
    """Shared behaviour for store backends: kind checks and per-record locks."""

    def __init__(self) -> None:
        self._locks_guard = threading.Lock()
        # Entries vanish once no caller holds or waits on the lock.
        self._record_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    @staticmethod
    def _check_kind(kind: type) -> None:
        if kind not in RECORD_KINDS:
            raise ContractViolation(f"Unknown record kind {kind!r}")

    @contextmanager
    def locked(self, kind: type, record_id: int) -> Iterator[None]:
        """Serialize read-check-write sequences on one record."""
        key = (kind, record_id)
        with self._locks_guard:
            lock = self._record_locks.setdefault(key, threading.Lock())
        with lock:
            yield

    def first(self, kind: type, predicate: Predicate):
        matches = self.find(kind, predicate)
        return matches[0] if matches else None

    def find_by(self, kind: type, **equals) -> list:
        """Records whose fields equal the given values, in id order."""
        unknown = set(equals) - field_names(kind)
        if unknown:
            raise ContractViolation(f"Unknown fields for {kind.__name__}: {sorted(unknown)}")
        return self.find(kind, lambda r: all(getattr(r, name) == value for name, value in equals.items()))

    def first_by(self, kind: type, **equals):
        matches = self.find_by(kind, **equals)
        return matches[0] if matches else None

    def get(self, kind: type, record_id: int):
        raise NotImplementedError

    def find(self, kind: type, predicate: Predicate | None = None) -> list:
        raise NotImplementedError

    def insert(self, kind: type, partial: Mapping):
        raise NotImplementedError

    def replace(self, kind: type, record_id: int, record):
        raise NotImplementedError

    def transaction(self):
        raise NotImplementedError


class MemoryStore(EntityStore):
    """Insertion-ordered maps keyed by numeric id, one per record kind."""

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.RLock()
        self._tables: dict[type, dict[int, object]] = {kind: {} for kind in RECORD_KINDS}
        self._counters: dict[type, int] = {kind: 0 for kind in RECORD_KINDS}
        self._tx_depth = 0

    def get(self, kind: type, record_id: int):
        self._check_kind(kind)
        with self._lock:
            record = self._tables[kind].get(record_id)
            return copy.copy(record) if record is not None else None

    def find(self, kind: type, predicate: Predicate | None = None) -> list:
        self._check_kind(kind)
        with self._lock:
            records = [copy.copy(r) for r in self._tables[kind].values()]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    def insert(self, kind: type, partial: Mapping):
        self._check_kind(kind)
        with self._lock:
            self._counters[kind] += 1
            record = build_record(kind, partial, self._counters[kind], utcnow())
            self._tables[kind][record.id] = record
            return copy.copy(record)

    def replace(self, kind: type, record_id: int, record):
        self._check_kind(kind)
        with self._lock:
            current = self._tables[kind].get(record_id)
            if current is None:
                raise ContractViolation(f"{kind.__name__} {record_id} does not exist")
            check_replacement(kind, current, record)
            stored = copy.copy(record)
            self._tables[kind][record_id] = stored
            return copy.copy(stored)

    @contextmanager
    def transaction(self) -> Iterator["MemoryStore"]:
        """Writes inside the block are undone if it raises. Ids are never reused."""
        with self._lock:
            outer = self._tx_depth == 0
            snapshot = {kind: dict(table) for kind, table in self._tables.items()} if outer else None
            self._tx_depth += 1
            try:
                yield self
            except BaseException:
                if outer:
                    self._tables = snapshot
                    logger.warning("Memory store transaction rolled back")
                raise
            finally:
                self._tx_depth -= 1
