from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Generator, List, Optional

from .context import OperationContext
from .errors import CancelledError, NotFoundError, StorageError
from .models import NewTodoList, TodoListPatch, TodoListRecord
from .repositories import Store, Transaction, next_updated_at

# Number of SQLite VM instructions between two cancellation checks.
_PROGRESS_STEPS = 1000


@dataclass(frozen=True)
class _Cols:
    table: str = "todo_lists"
    id: str = "id"
    owner_id: str = "user_id"
    title: str = "title"
    description: str = "description"
    scheduled_at: str = "doing_at"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()


@contextmanager
def _translate_errors(ctx: OperationContext, action: str) -> Generator[None, None, None]:
    """
    Map sqlite3 failures onto the store error taxonomy.
    A statement interrupted by the progress handler surfaces as CancelledError.
    """
    try:
        yield
    except sqlite3.Error as e:
        if ctx.cancelled:
            raise CancelledError(detail=f"{action} interrupted: {e}") from e
        raise StorageError(detail=f"{action} failed: {e}") from e


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _row_to_record(row: sqlite3.Row) -> TodoListRecord:
    return {
        "id": int(row[_COLS.id]),
        "owner_id": int(row[_COLS.owner_id]),
        "title": str(row[_COLS.title]),
        "description": row[_COLS.description],
        "scheduled_at": _parse_dt(row[_COLS.scheduled_at]),
        "created_at": _parse_dt(row[_COLS.created_at]),  # type: ignore
        "updated_at": _parse_dt(row[_COLS.updated_at]),  # type: ignore
    }


class _SQLiteTransaction(Transaction):
    def __init__(self, store: "SQLiteStore", conn: sqlite3.Connection, ctx: OperationContext) -> None:
        super().__init__(ctx)
        self.store = store
        self.conn = conn
        self.locked: set = set()
        self.closed = False

    def commit(self) -> None:
        if self.closed:
            raise StorageError(detail="transaction already closed")
        try:
            self.ctx.check()
            self.conn.set_progress_handler(None, 0)
            with _translate_errors(self.ctx, "commit"):
                self.conn.execute("COMMIT")
        finally:
            # Closing a connection with an open transaction rolls it back.
            self._close()

    def rollback(self) -> None:
        if self.closed:
            return
        self.conn.set_progress_handler(None, 0)
        try:
            if self.conn.in_transaction:
                with _translate_errors(self.ctx, "rollback"):
                    self.conn.execute("ROLLBACK")
        finally:
            self._close()

    def _close(self) -> None:
        self.closed = True
        self.conn.close()


class SQLiteStore(Store):
    """
    SQLite record store.

    Every call opens its own connection, so the database file is the only
    state shared between requests. Row locking is emulated with SQLite's
    writer lock: `lock_for_update` performs a no-op write on the row, which
    blocks concurrent writers until the transaction commits or rolls back.
    Waiting is bounded by the connection busy timeout.
    """

    def __init__(self, db_path: str, lock_timeout: float = 5.0) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._lock_timeout = lock_timeout
        self._init_db()

    def _connect(self, ctx: Optional[OperationContext] = None) -> sqlite3.Connection:
        timeout = self._lock_timeout
        if ctx is not None and ctx.remaining() is not None:
            timeout = min(timeout, ctx.remaining())  # type: ignore[type-var]
        conn = sqlite3.connect(
            self._db_path,
            timeout=timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        if ctx is not None:
            conn.set_progress_handler(lambda: 1 if ctx.cancelled else 0, _PROGRESS_STEPS)
        return conn

    @contextmanager
    def _conn(self, ctx: OperationContext, action: str) -> Generator[sqlite3.Connection, None, None]:
        ctx.check()
        with _translate_errors(ctx, action):
            conn = self._connect(ctx)
            try:
                yield conn
            finally:
                conn.close()

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_COLS.owner_id} INTEGER NOT NULL CHECK ({_COLS.owner_id} > 0),
                    {_COLS.title} TEXT NOT NULL CHECK (length({_COLS.title}) > 0),
                    {_COLS.description} TEXT NULL,
                    {_COLS.scheduled_at} TEXT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_{_COLS.owner_id} ON {_COLS.table}({_COLS.owner_id})"
            )
        finally:
            conn.close()

    def _select(self, conn: sqlite3.Connection, record_id: int) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (record_id,)
        ).fetchone()

    def get_by_id(self, ctx: OperationContext, record_id: int) -> TodoListRecord:
        with self._conn(ctx, "get_by_id") as conn:
            row = self._select(conn, record_id)
        if row is None:
            raise NotFoundError(detail=f"todo list {record_id} does not exist")
        return _row_to_record(row)

    def get_by_owner(self, ctx: OperationContext, owner_id: int) -> List[TodoListRecord]:
        with self._conn(ctx, "get_by_owner") as conn:
            rows = conn.execute(
                f"SELECT * FROM {_COLS.table} WHERE {_COLS.owner_id} = ? ORDER BY {_COLS.id} ASC",
                (owner_id,),
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def create(self, ctx: OperationContext, data: NewTodoList) -> TodoListRecord:
        now = datetime.now().isoformat()
        scheduled = data.scheduled_at.isoformat() if data.scheduled_at else None
        with self._conn(ctx, "create") as conn:
            cur = conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.owner_id}, {_COLS.title}, {_COLS.description},
                    {_COLS.scheduled_at}, {_COLS.created_at}, {_COLS.updated_at})
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (data.owner_id, data.title, data.description, scheduled, now, now),
            )
            row = self._select(conn, cur.lastrowid)
        if row is None:
            raise StorageError(detail="inserted todo list could not be read back")
        return _row_to_record(row)

    def begin(self, ctx: OperationContext) -> Transaction:
        ctx.check()
        with _translate_errors(ctx, "begin"):
            conn = self._connect(ctx)
            try:
                conn.execute("BEGIN")
            except sqlite3.Error:
                conn.close()
                raise
        return _SQLiteTransaction(self, conn, ctx)

    def _own(self, trx: Transaction) -> _SQLiteTransaction:
        if not isinstance(trx, _SQLiteTransaction) or trx.store is not self:
            raise StorageError(detail="transaction was not opened by this store")
        if trx.closed:
            raise StorageError(detail="transaction already closed")
        return trx

    def lock_for_update(self, trx: Transaction, record_id: int) -> TodoListRecord:
        trx = self._own(trx)
        trx.ctx.check()
        with _translate_errors(trx.ctx, "lock_for_update"):
            cur = trx.conn.execute(
                f"UPDATE {_COLS.table} SET {_COLS.id} = {_COLS.id} WHERE {_COLS.id} = ?",
                (record_id,),
            )
            if cur.rowcount == 0:
                raise NotFoundError(detail=f"todo list {record_id} does not exist")
            row = self._select(trx.conn, record_id)
        if row is None:
            raise StorageError(detail=f"locked todo list {record_id} could not be read back")
        trx.locked.add(record_id)
        return _row_to_record(row)

    def update(self, trx: Transaction, locked: TodoListRecord, patch: TodoListPatch) -> None:
        trx = self._own(trx)
        trx.ctx.check()
        record_id = locked["id"]
        if record_id not in trx.locked:
            raise StorageError(detail=f"todo list {record_id} is not locked by this transaction")
        updated_at = next_updated_at(locked["updated_at"])
        with _translate_errors(trx.ctx, "update"):
            trx.conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {_COLS.title} = ?, {_COLS.description} = ?, {_COLS.scheduled_at} = ?,
                    {_COLS.updated_at} = ?
                WHERE {_COLS.id} = ?
                """,
                (
                    patch.title,
                    patch.description,
                    patch.scheduled_at.isoformat() if patch.scheduled_at else None,
                    updated_at.isoformat(),
                    record_id,
                ),
            )

    def delete_by_id(self, ctx: OperationContext, record_id: int) -> None:
        with self._conn(ctx, "delete_by_id") as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (record_id,))
            deleted = cur.rowcount
        if deleted == 0:
            raise NotFoundError(detail=f"todo list {record_id} does not exist")
