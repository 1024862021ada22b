from __future__ import annotations

from typing import Any


class SyncWriteError(Exception):
    """Base exception for syncwrite errors."""


class BatchError(SyncWriteError):
    """
    Failure attributed to a batch, optionally to one operation in it.

    ``index`` is the zero-based position of the failing operation and
    ``operation`` the operation itself; both are None when the failure is not
    tied to a single operation (e.g. an empty batch or a failed commit).
    """

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        operation: Any = None,
    ) -> None:
        super().__init__(message)
        self.index = index
        self.operation = operation


class ValidationError(BatchError, ValueError):
    """Malformed input detected before any statement reached the database."""


class UnknownOperationError(ValidationError):
    """Operation kind outside PUT / PATCH / DELETE."""


class DbWriteError(BatchError):
    """Any failure raised by the database while applying writes."""


class ConfigurationError(SyncWriteError, ValueError):
    """Malformed connection string/URI or invalid pool settings."""
