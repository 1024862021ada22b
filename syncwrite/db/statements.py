"""
SQL statement builders for batch operations.

Every builder is pure: it validates one BatchOperation and returns a
parameterized ``TextClause`` with its bind values attached. Nothing here
touches a connection.

Rows are never typed client-side. The operation's ``data`` is sent as a single
JSON parameter and ``json_populate_record(CAST(NULL AS <table>), ...)`` asks
PostgreSQL to coerce it into the target table's own row type, so arbitrary
tables can be written without a schema cache. Keys that are not columns of
the table are ignored by the populate step; columns absent from the payload
come out as NULL.
"""
from __future__ import annotations

import json
from dataclasses import replace
from typing import Any, Mapping

from sqlalchemy import text
from sqlalchemy.sql.elements import TextClause

from ..errors import ValidationError
from .helpers import quote_identifier, quote_table
from .models import BatchOperation, OperationType

ID_COLUMN = "id"


def _require_id(op: BatchOperation) -> str:
    if not isinstance(op.id, str) or not op.id.strip():
        raise ValidationError(f"Id is required for {op.op.value} operation")
    return op.id


def _require_data(op: BatchOperation) -> Mapping[str, Any]:
    if not op.data:
        raise ValidationError(f"Data is required for {op.op.value} operation")
    if not isinstance(op.data, Mapping):
        raise ValidationError(f"Data must be an object, got {type(op.data).__name__}")
    return op.data


def _row_with_id(data: Mapping[str, Any], id_value: str) -> dict[str, Any]:
    # The top-level id always wins over an "id" entry in the payload.
    row = dict(data)
    row[ID_COLUMN] = id_value
    return row


def _encode(row: Mapping[str, Any]) -> str:
    try:
        return json.dumps(row, allow_nan=False, default=str)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Data is not JSON serializable: {exc}") from exc


def _populate(table_sql: str) -> str:
    return f"json_populate_record(CAST(NULL AS {table_sql}), CAST(:data AS json))"


def build_put(op: BatchOperation) -> TextClause:
    """
    Insert the row, or overwrite the supplied columns when ``id`` already exists.

    Applying the same PUT twice leaves the table as applying it once.
    """
    if not isinstance(op.table, str) or not op.table.strip():
        raise ValidationError("Table name cannot be empty")
    table_sql = quote_table(op.table)
    id_value = _require_id(op)
    row = _row_with_id(_require_data(op), id_value)

    columns = [quote_identifier(col, "column") for col in row if col != ID_COLUMN]
    if columns:
        assignments = ", ".join(f"{col} = EXCLUDED.{col}" for col in columns)
        conflict = f"DO UPDATE SET {assignments}"
    else:
        conflict = "DO NOTHING"

    sql = (
        f"WITH data_row AS (SELECT ({_populate(table_sql)}).*) "
        f"INSERT INTO {table_sql} SELECT * FROM data_row "
        f'ON CONFLICT ("{ID_COLUMN}") {conflict}'
    )
    return text(sql).bindparams(data=_encode(row))


def build_patch(op: BatchOperation) -> TextClause:
    """
    Update only the columns present in ``data`` on the row matching ``id``.

    The payload is populated against the table's row type, so each value is
    coerced to its destination column type by PostgreSQL. Columns missing
    from ``data`` are not part of the SET list and stay untouched.
    """
    table_sql = quote_table(op.table)
    id_value = _require_id(op)
    data = _require_data(op)

    columns = [quote_identifier(col, "column") for col in data if col != ID_COLUMN]
    if not columns:
        raise ValidationError("No updatable columns provided")

    row = _row_with_id(data, id_value)
    assignments = ", ".join(f"{col} = data_row.{col}" for col in columns)
    sql = (
        f"WITH data_row AS (SELECT * FROM {_populate(table_sql)}) "
        f"UPDATE {table_sql} SET {assignments} "
        f'FROM data_row WHERE {table_sql}."{ID_COLUMN}" = data_row."{ID_COLUMN}"'
    )
    return text(sql).bindparams(data=_encode(row))


def build_delete(op: BatchOperation) -> TextClause:
    """Delete the row matching ``id``; ``data`` is ignored."""
    table_sql = quote_table(op.table)
    id_value = _require_id(op)

    sql = (
        f"WITH data_row AS (SELECT ({_populate(table_sql)}).*) "
        f"DELETE FROM {table_sql} USING data_row "
        f'WHERE {table_sql}."{ID_COLUMN}" = data_row."{ID_COLUMN}"'
    )
    return text(sql).bindparams(data=_encode({ID_COLUMN: id_value}))


_BUILDERS = {
    OperationType.PUT: build_put,
    OperationType.PATCH: build_patch,
    OperationType.DELETE: build_delete,
}


def build_statement(op: BatchOperation) -> TextClause:
    """Dispatch on the operation kind; plain strings are resolved case-insensitively."""
    kind = OperationType.parse(op.op)
    if kind is not op.op:
        op = replace(op, op=kind)
    return _BUILDERS[kind](op)


def build_checkpoint_bump(table: str, user_id: str, client_id: str) -> TextClause:
    """
    Single-statement increment-or-create for a (user_id, client_id) checkpoint.

    Concurrent bumps on the same key serialize on the conflicting row inside
    PostgreSQL, so each caller sees a distinct value.
    """
    table_sql = quote_table(table)
    sql = (
        f"INSERT INTO {table_sql} (user_id, client_id, checkpoint) "
        "VALUES (:user_id, :client_id, 1) "
        "ON CONFLICT (user_id, client_id) "
        f"DO UPDATE SET checkpoint = {table_sql}.checkpoint + 1 "
        "RETURNING checkpoint"
    )
    return text(sql).bindparams(user_id=user_id, client_id=client_id)
