from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql.elements import TextClause

from .metrics import observe_db_write

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TrackedWrite:
    start_time: float
    table: str
    op_type: str


class DbTransaction:
    """
    One pooled connection holding one open transaction.

    The transaction begins on construction and ends with exactly one call to
    commit() or rollback(); both return the connection to the pool. After that
    every method raises RuntimeError.

    It can also be used as a context manager, which commits on a clean exit
    and rolls back on any exception (including KeyboardInterrupt and task
    cancellation):

        with DbFactory(engine).begin() as tx:
            tx.execute(stmt, table="todos", op_type="put")

    Do NOT retry inside a single DbTransaction. A failed statement leaves the
    PostgreSQL transaction aborted; each retry needs a new DbFactory.begin().
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._closed = False
        self._writes: list[_TrackedWrite] = []
        self._conn: Connection | None = engine.connect()
        try:
            self._tx = self._conn.begin()
        except BaseException:
            self._conn.close()
            self._conn = None
            raise

    def __enter__(self) -> "DbTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._closed:
            return False
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        # propagate exceptions (if any)
        return False

    @property
    def closed(self) -> bool:
        return self._closed

    def _connection(self) -> Connection:
        if self._closed or self._conn is None:
            raise RuntimeError("Transaction is already closed")
        return self._conn

    def commit(self) -> None:
        """
        Commit and release the connection.

        If COMMIT itself fails the transaction is rolled back on a best-effort
        basis and the commit error propagates.
        """
        if self._closed:
            raise RuntimeError("Transaction is already closed")

        status = "success"
        try:
            self._tx.commit()
        except BaseException:
            status = "error"
            try:
                self._tx.rollback()
            except Exception:
                logger.debug("Rollback after failed commit also failed", exc_info=True)
            raise
        finally:
            self._close(status)

    def rollback(self) -> None:
        """Roll back and release the connection. Rollback errors propagate after cleanup."""
        if self._closed:
            raise RuntimeError("Transaction is already closed")

        try:
            self._tx.rollback()
        finally:
            self._close("error")

    def _close(self, status: str) -> None:
        end_time = time.monotonic()
        self._closed = True
        try:
            if self._conn is not None:
                self._conn.close()
        finally:
            self._conn = None
            self._emit_metrics(status, end_time)

    def _emit_metrics(self, status: str, end_time: float) -> None:
        writes, self._writes = self._writes, []
        # Metrics must never mask the outcome of the transaction itself.
        try:
            for write in writes:
                observe_db_write(
                    table=write.table,
                    op_type=write.op_type,
                    status=status,
                    latency_s=end_time - write.start_time,
                )
        except Exception:
            logger.warning("Failed to record write metrics", exc_info=True)

    def execute(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
        *,
        table: str | None = None,
        op_type: str | None = None,
    ) -> int:
        """
        Execute a non-SELECT statement and return the affected row count.

        When ``table`` and ``op_type`` are given the write is reported to the
        write metrics once the transaction ends, labelled with its outcome.

        Raises:
            RuntimeError: If the transaction is closed or the driver reports no rowcount
        """
        start_time = time.monotonic()
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        try:
            if result.rowcount is None:
                raise RuntimeError(
                    "execute() received None rowcount for statement. "
                    "This may indicate a DDL statement or unsupported operation type."
                )
            rowcount = int(result.rowcount)
        finally:
            result.close()

        if table is not None and op_type is not None:
            self._writes.append(_TrackedWrite(start_time, table, op_type))
        return rowcount

    def execute_scalar(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """Execute a statement expected to return a single scalar value (e.g. RETURNING)."""
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        try:
            return result.scalar_one_or_none()
        finally:
            result.close()

    def fetch_one(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Execute a SELECT expected to return 0 or 1 row. Raises if more than one row."""
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        try:
            row = result.mappings().one_or_none()
            return dict(row) if row is not None else None
        finally:
            result.close()

    def fetch_all(
        self,
        sql: str | TextClause,
        params: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        conn = self._connection()
        stmt = text(sql) if isinstance(sql, str) else sql
        result = conn.execute(stmt, params or {})
        try:
            return [dict(row) for row in result.mappings()]
        finally:
            result.close()


class DbFactory:
    """
    Hands out one DbTransaction per unit of work from a shared Engine.

    The Engine's pool is the only shared state, so a single factory can be
    used from many threads at once.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def begin(self) -> DbTransaction:
        return DbTransaction(self.engine)
