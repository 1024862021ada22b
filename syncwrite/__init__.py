from .config import DbConfig
from .db.models import BatchOperation, OperationType, parse_batch
from .errors import (
    ConfigurationError,
    DbWriteError,
    SyncWriteError,
    UnknownOperationError,
    ValidationError,
)
from .persister import Persister, PostgresPersister, make_persister

__all__ = [
    "BatchOperation",
    "ConfigurationError",
    "DbConfig",
    "DbWriteError",
    "OperationType",
    "Persister",
    "PostgresPersister",
    "SyncWriteError",
    "UnknownOperationError",
    "ValidationError",
    "make_persister",
    "parse_batch",
]
