from __future__ import annotations

import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from functools import lru_cache
from threading import Lock, RLock
from typing import Dict, List, Optional

from .context import OperationContext
from .errors import NotFoundError, StorageError
from .models import NewTodoList, TodoListPatch, TodoListRecord
from .settings import get_settings

# Upper bound for a single lock wait so cancellation is noticed promptly.
_LOCK_POLL_SECONDS = 0.05


def next_updated_at(previous: datetime, now: Optional[datetime] = None) -> datetime:
    """
    Return a mutation timestamp strictly greater than `previous`.
    """
    now = now or datetime.now()
    if now <= previous:
        return previous + timedelta(microseconds=1)
    return now


# PUBLIC_INTERFACE
class Transaction(ABC):
    """
    A unit of work opened by `Store.begin`, owned by exactly one operation.
    """

    def __init__(self, ctx: OperationContext) -> None:
        self.ctx = ctx

    @abstractmethod
    def commit(self) -> None:
        """Publish the staged changes and release every lock held."""

    @abstractmethod
    def rollback(self) -> None:
        """Discard the staged changes and release every lock held."""


# PUBLIC_INTERFACE
class Store(ABC):
    """Abstract record store contract for todo list backends."""

    @abstractmethod
    def get_by_id(self, ctx: OperationContext, record_id: int) -> TodoListRecord:
        """Return the record, or raise NotFoundError."""

    @abstractmethod
    def get_by_owner(self, ctx: OperationContext, owner_id: int) -> List[TodoListRecord]:
        """Return every record of the owner ordered by id (possibly empty)."""

    @abstractmethod
    def create(self, ctx: OperationContext, data: NewTodoList) -> TodoListRecord:
        """Persist a new record, assigning id, created_at and updated_at."""

    @abstractmethod
    def begin(self, ctx: OperationContext) -> Transaction:
        """Open a transaction for a locked update."""

    @abstractmethod
    def lock_for_update(self, trx: Transaction, record_id: int) -> TodoListRecord:
        """
        Acquire an exclusive row lock scoped to `trx` and return the locked record.
        Raises NotFoundError, StorageError on lock timeout, CancelledError on cancellation.
        """

    @abstractmethod
    def update(self, trx: Transaction, locked: TodoListRecord, patch: TodoListPatch) -> None:
        """Apply `patch` to the locked row inside `trx`. Visible only after commit."""

    @abstractmethod
    def delete_by_id(self, ctx: OperationContext, record_id: int) -> None:
        """Hard delete the record, or raise NotFoundError."""


class _MemoryTransaction(Transaction):
    def __init__(self, store: "InMemoryStore", ctx: OperationContext) -> None:
        super().__init__(ctx)
        self._store = store
        self.held: Dict[int, Lock] = {}
        self.staged: Dict[int, TodoListRecord] = {}
        self.closed = False

    def commit(self) -> None:
        if self.closed:
            raise StorageError(detail="transaction already closed")
        try:
            self.ctx.check()
            self._store._publish(self.staged)
        finally:
            self._release()

    def rollback(self) -> None:
        if self.closed:
            return
        self.staged.clear()
        self._release()

    def _release(self) -> None:
        self.closed = True
        for row_lock in self.held.values():
            row_lock.release()
        self.held.clear()


class InMemoryStore(Store):
    """
    Thread-safe in-memory store with one exclusive lock per row.

    `_lock` guards the dictionaries; row locks serialize writers of the same
    record only, so updates to different ids never wait on each other.
    """

    def __init__(self, lock_timeout: float = 5.0) -> None:
        self._lock = RLock()
        self._items: Dict[int, TodoListRecord] = {}
        self._row_locks: Dict[int, Lock] = {}
        self._next_id = 1
        self._lock_timeout = lock_timeout

    def _now(self) -> datetime:
        return datetime.now()

    def _allocate_id(self) -> int:
        with self._lock:
            i = self._next_id
            self._next_id += 1
            return i

    def _acquire_row(self, ctx: OperationContext, record_id: int) -> Lock:
        with self._lock:
            row_lock = self._row_locks.get(record_id)
        if row_lock is None:
            raise NotFoundError(detail=f"todo list {record_id} does not exist")

        deadline = time.monotonic() + self._lock_timeout
        while True:
            ctx.check()
            wait = min(_LOCK_POLL_SECONDS, max(deadline - time.monotonic(), 0.0))
            remaining = ctx.remaining()
            if remaining is not None:
                wait = min(wait, remaining)
            if row_lock.acquire(timeout=wait):
                break
            if time.monotonic() >= deadline:
                raise StorageError(detail=f"lock wait timeout exceeded for todo list {record_id}")

        # The row may have been deleted while we were waiting.
        with self._lock:
            if record_id not in self._items:
                row_lock.release()
                raise NotFoundError(detail=f"todo list {record_id} does not exist")
        return row_lock

    def _publish(self, staged: Dict[int, TodoListRecord]) -> None:
        with self._lock:
            for record_id, record in staged.items():
                if record_id not in self._items:
                    raise StorageError(detail=f"todo list {record_id} vanished before commit")
            self._items.update(staged)

    def get_by_id(self, ctx: OperationContext, record_id: int) -> TodoListRecord:
        ctx.check()
        with self._lock:
            item = self._items.get(record_id)
            if item is None:
                raise NotFoundError(detail=f"todo list {record_id} does not exist")
            return item.copy()

    def get_by_owner(self, ctx: OperationContext, owner_id: int) -> List[TodoListRecord]:
        ctx.check()
        with self._lock:
            items = [t.copy() for t in self._items.values() if t["owner_id"] == owner_id]
        return sorted(items, key=lambda t: t["id"])

    def create(self, ctx: OperationContext, data: NewTodoList) -> TodoListRecord:
        ctx.check()
        now = self._now()
        record: TodoListRecord = {
            "id": self._allocate_id(),
            "owner_id": data.owner_id,
            "title": data.title,
            "description": data.description,
            "scheduled_at": data.scheduled_at,
            "created_at": now,
            "updated_at": now,
        }
        with self._lock:
            self._items[record["id"]] = record
            self._row_locks[record["id"]] = Lock()
        return record.copy()

    def begin(self, ctx: OperationContext) -> Transaction:
        ctx.check()
        return _MemoryTransaction(self, ctx)

    def _own(self, trx: Transaction) -> _MemoryTransaction:
        if not isinstance(trx, _MemoryTransaction) or trx._store is not self:
            raise StorageError(detail="transaction was not opened by this store")
        if trx.closed:
            raise StorageError(detail="transaction already closed")
        return trx

    def lock_for_update(self, trx: Transaction, record_id: int) -> TodoListRecord:
        trx = self._own(trx)
        if record_id not in trx.held:
            trx.held[record_id] = self._acquire_row(trx.ctx, record_id)
        with self._lock:
            return self._items[record_id].copy()

    def update(self, trx: Transaction, locked: TodoListRecord, patch: TodoListPatch) -> None:
        trx = self._own(trx)
        trx.ctx.check()
        record_id = locked["id"]
        if record_id not in trx.held:
            raise StorageError(detail=f"todo list {record_id} is not locked by this transaction")
        updated = locked.copy()
        updated["title"] = patch.title
        updated["description"] = patch.description
        updated["scheduled_at"] = patch.scheduled_at
        updated["updated_at"] = next_updated_at(locked["updated_at"], self._now())
        trx.staged[record_id] = updated

    def delete_by_id(self, ctx: OperationContext, record_id: int) -> None:
        row_lock = self._acquire_row(ctx, record_id)
        try:
            with self._lock:
                self._items.pop(record_id, None)
                self._row_locks.pop(record_id, None)
        finally:
            row_lock.release()


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_store() -> Store:
    """
    Return the process-wide store configured by settings.
    - memory: InMemoryStore
    - sqlite: SQLiteStore backed by the standard library sqlite3 module
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteStore

        return SQLiteStore(settings.sqlite_db_path, lock_timeout=settings.lock_timeout_seconds)
    return InMemoryStore(lock_timeout=settings.lock_timeout_seconds)
