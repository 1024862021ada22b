from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from ..errors import UnknownOperationError, ValidationError


class OperationType(str, Enum):
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, value: Any) -> "OperationType":
        """Case-insensitive lookup; raises UnknownOperationError for anything else."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise UnknownOperationError(f"Unknown operation type: {value!r}")


@dataclass(frozen=True)
class BatchOperation:
    """
    A single row mutation pushed by a client.

    ``data`` maps column names to JSON-compatible values (str, int, float,
    bool, None, nested dict/list). It is required for PUT and PATCH and ignored
    for DELETE. The ``id`` entry of ``data`` is always reconciled with ``id``
    when statements are built.
    """
    op: OperationType
    table: str
    id: str
    data: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "BatchOperation":
        """Decode one wire entry of the form ``{"op", "table", "id", "data"}``."""
        if not isinstance(raw, Mapping):
            raise ValidationError(f"Batch entry must be an object, got {type(raw).__name__}")

        data = raw.get("data")
        if data is not None and not isinstance(data, Mapping):
            raise ValidationError(f"'data' must be an object, got {type(data).__name__}")

        return cls(
            op=OperationType.parse(raw.get("op")),
            table=_as_text(raw.get("table")),
            id=_as_text(raw.get("id")),
            data=dict(data) if data is not None else None,
        )

    def describe(self) -> str:
        kind = self.op.value if isinstance(self.op, OperationType) else repr(self.op)
        return f"{kind} {self.table}/{self.id}"


def parse_batch(payload: Iterable[Mapping[str, Any]]) -> list[BatchOperation]:
    """
    Decode a list of wire entries into BatchOperations.

    Errors carry the index of the offending entry.
    """
    if isinstance(payload, (str, bytes, Mapping)) or not isinstance(payload, Iterable):
        raise ValidationError("Batch must be a list of operations")

    operations: list[BatchOperation] = []
    for index, raw in enumerate(payload):
        try:
            operations.append(BatchOperation.from_mapping(raw))
        except ValidationError as exc:
            raise type(exc)(f"batch entry {index}: {exc}", index=index) from exc
    return operations


def _as_text(value: Any) -> str:
    # Numeric ids are common on the wire; the engine treats ids as text.
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)
