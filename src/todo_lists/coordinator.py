"""
Atomic lock → mutate → commit for todo list updates.

    BEGIN -> LOCKED -> MUTATED -> COMMITTED
    BEGIN -> LOCKED -> ROLLED_BACK
    BEGIN -> ABORTED

Errors from the store are re-raised unchanged; the transaction is released
on every exit path.
"""
from __future__ import annotations

import enum
from types import TracebackType
from typing import Callable, Optional, Type

from .context import OperationContext
from .errors import CancelledError, StorageError
from .models import TodoListPatch, TodoListRecord
from .repositories import Store, Transaction


class TransactionState(str, enum.Enum):
    BEGIN = "begin"
    LOCKED = "locked"
    MUTATED = "mutated"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    ABORTED = "aborted"


_TERMINAL = {TransactionState.COMMITTED, TransactionState.ROLLED_BACK, TransactionState.ABORTED}


# PUBLIC_INTERFACE
class UpdateTransaction:
    """
    Scoped update transaction.

    Usage:
        with UpdateTransaction(store, ctx) as tx:
            record = tx.lock(record_id)
            tx.apply(record, patch)
        # committed here; any exception inside the block rolls back

    A commit failure raises StorageError and leaves the state at MUTATED:
    the outcome is unknown and the caller has to re-read the record.
    A context cancelled before the commit rolls back and raises CancelledError.
    """

    def __init__(self, store: Store, ctx: OperationContext) -> None:
        self._store = store
        self._ctx = ctx
        self._trx: Optional[Transaction] = None
        self.state = TransactionState.BEGIN

    def __enter__(self) -> "UpdateTransaction":
        self._trx = self._store.begin(self._ctx)
        return self

    def lock(self, record_id: int) -> TodoListRecord:
        self._expect(TransactionState.BEGIN)
        try:
            record = self._store.lock_for_update(self._trx, record_id)  # type: ignore[arg-type]
        except BaseException:
            self._release(TransactionState.ABORTED)
            raise
        self.state = TransactionState.LOCKED
        return record

    def apply(self, record: TodoListRecord, patch: TodoListPatch) -> None:
        self._expect(TransactionState.LOCKED)
        try:
            self._store.update(self._trx, record, patch)  # type: ignore[arg-type]
        except BaseException:
            self._release(TransactionState.ROLLED_BACK)
            raise
        self.state = TransactionState.MUTATED

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if self.state in _TERMINAL:
            return
        if exc_type is not None:
            self._release(
                TransactionState.ABORTED
                if self.state == TransactionState.BEGIN
                else TransactionState.ROLLED_BACK
            )
            return
        if self.state != TransactionState.MUTATED:
            # Nothing was changed; release the lock without committing.
            self._release(TransactionState.ABORTED)
            return
        try:
            self._ctx.check()
        except CancelledError:
            self._release(TransactionState.ROLLED_BACK)
            raise
        assert self._trx is not None
        self._trx.commit()
        self.state = TransactionState.COMMITTED

    def _expect(self, state: TransactionState) -> None:
        if self.state != state:
            raise StorageError(detail=f"invalid transaction transition from {self.state.value}")

    def _release(self, state: TransactionState) -> None:
        self.state = state
        if self._trx is not None:
            self._trx.rollback()


# PUBLIC_INTERFACE
def run_update(
    store: Store,
    ctx: OperationContext,
    record_id: int,
    build_patch: Callable[[TodoListRecord], TodoListPatch],
) -> TransactionState:
    """
    Lock the record, apply the patch built from it and commit.
    Returns the terminal state (always COMMITTED when no exception is raised).
    """
    with UpdateTransaction(store, ctx) as tx:
        record = tx.lock(record_id)
        tx.apply(record, build_patch(record))
    return tx.state
