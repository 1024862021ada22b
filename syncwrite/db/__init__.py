from .checkpoint import CheckpointStore
from .executor import BatchExecutor
from .helpers import quote_identifier, quote_table, validate_identifier
from .models import BatchOperation, OperationType, parse_batch
from .tx import DbFactory, DbTransaction

__all__ = [
    "BatchExecutor",
    "BatchOperation",
    "CheckpointStore",
    "DbFactory",
    "DbTransaction",
    "OperationType",
    "parse_batch",
    "quote_identifier",
    "quote_table",
    "validate_identifier",
]
