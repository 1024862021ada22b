from __future__ import annotations

import logging
from dataclasses import replace
from typing import AbstractSet, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import TextClause

from ..errors import DbWriteError, UnknownOperationError, ValidationError
from .metrics import observe_batch
from .models import BatchOperation, OperationType
from .statements import build_statement
from .tx import DbFactory

logger = logging.getLogger(__name__)


class BatchExecutor:
    """
    All-or-nothing application of a batch of PUT / PATCH / DELETE operations.

    Every operation is validated and turned into SQL before a connection is
    checked out, so malformed input never opens a transaction. Statements then
    run strictly in order inside one transaction; later operations see the
    effects of earlier ones. The first failure rolls the whole batch back and
    propagates:

    - ValidationError / UnknownOperationError for malformed operations,
      with ``index`` set to the offending position
    - DbWriteError for anything PostgreSQL rejects (constraint violations,
      type coercion failures, unknown tables or columns, lost connections),
      chained to the SQLAlchemy error

    Nothing is retried here; retry policy belongs to the caller.
    """

    def __init__(
        self,
        factory: DbFactory,
        allowed_tables: Optional[AbstractSet[str]] = None,
    ) -> None:
        self.factory = factory
        self.allowed_tables = frozenset(allowed_tables) if allowed_tables is not None else None

    def apply_batch(self, batch: Iterable[BatchOperation]) -> None:
        operations = list(batch)
        if not operations:
            observe_batch("invalid", 0)
            raise ValidationError("Batch must contain at least one operation")

        try:
            prepared = [self._prepare(index, op) for index, op in enumerate(operations)]
        except ValidationError:
            observe_batch("invalid", len(operations))
            raise

        try:
            self._run(prepared)
        except BaseException:
            observe_batch("error", len(operations))
            raise

        observe_batch("success", len(operations))
        logger.debug("Applied batch of %d operations", len(operations))

    def _prepare(self, index: int, op: BatchOperation) -> tuple[BatchOperation, TextClause]:
        try:
            kind = OperationType.parse(op.op)
        except UnknownOperationError as exc:
            raise UnknownOperationError(
                f"batch operation {index}: {exc}",
                index=index,
                operation=op,
            ) from exc
        if kind is not op.op:
            # Plain strings such as "put" are accepted from Python callers.
            op = replace(op, op=kind)
        if self.allowed_tables is not None and op.table not in self.allowed_tables:
            raise ValidationError(
                f"batch operation {index} ({op.describe()}): table {op.table!r} is not allowed",
                index=index,
                operation=op,
            )
        try:
            return op, build_statement(op)
        except ValidationError as exc:
            raise type(exc)(
                f"batch operation {index} ({op.describe()}): {exc}",
                index=index,
                operation=op,
            ) from exc
        except TypeError as exc:
            # Non-string table or column names.
            raise ValidationError(
                f"batch operation {index} ({op.describe()}): {exc}",
                index=index,
                operation=op,
            ) from exc

    def _run(self, prepared: list[tuple[BatchOperation, TextClause]]) -> None:
        try:
            tx = self.factory.begin()
        except SQLAlchemyError as exc:
            raise DbWriteError(f"Could not start batch transaction: {_reason(exc)}") from exc

        try:
            for index, (op, stmt) in enumerate(prepared):
                try:
                    rowcount = tx.execute(stmt, table=op.table, op_type=op.op.value.lower())
                except SQLAlchemyError as exc:
                    raise DbWriteError(
                        f"batch operation {index} ({op.describe()}) failed: {_reason(exc)}",
                        index=index,
                        operation=op,
                    ) from exc
                if rowcount == 0 and op.op is not OperationType.PUT:
                    logger.debug("%s matched no row", op.describe())
        except BaseException as exc:
            logger.warning(
                "Rolling back batch of %d operations: %s", len(prepared), exc
            )
            try:
                tx.rollback()
            except Exception:
                logger.warning("Rollback failed", exc_info=True)
            raise

        try:
            tx.commit()
        except SQLAlchemyError as exc:
            raise DbWriteError(f"Batch commit failed: {_reason(exc)}") from exc


def _reason(exc: SQLAlchemyError) -> str:
    # Prefer the driver's message over SQLAlchemy's wrapper, which embeds the SQL.
    orig = getattr(exc, "orig", None)
    return str(orig).strip() if orig is not None else str(exc)
