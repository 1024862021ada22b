from __future__ import annotations

import logging
import time

from sqlalchemy.exc import SQLAlchemyError

from ..errors import DbWriteError, ValidationError
from .metrics import observe_checkpoint_bump
from .statements import build_checkpoint_bump
from .tx import DbFactory

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_TABLE = "checkpoints"


class CheckpointStore:
    """
    Per-(user_id, client_id) sync progress counter.

    The table must have a unique constraint on (user_id, client_id) and a
    BIGINT ``checkpoint`` column:

        CREATE TABLE checkpoints (
            user_id   TEXT   NOT NULL,
            client_id TEXT   NOT NULL,
            checkpoint BIGINT NOT NULL,
            PRIMARY KEY (user_id, client_id)
        );

    There is no application-level locking: a bump is one INSERT ... ON CONFLICT
    DO UPDATE ... RETURNING statement, and PostgreSQL serializes concurrent
    bumps of the same key on the conflicting row.
    """

    def __init__(self, factory: DbFactory, table: str = DEFAULT_CHECKPOINT_TABLE) -> None:
        self.factory = factory
        self.table = table

    def bump(self, user_id: str, client_id: str) -> int:
        """
        Create the checkpoint at 1, or increment it by exactly 1.

        Returns:
            The checkpoint value after this call

        Raises:
            ValidationError: If user_id or client_id is empty or not a string
            DbWriteError: If the upsert fails
        """
        for name, value in (("user_id", user_id), ("client_id", client_id)):
            if not isinstance(value, str) or not value:
                raise ValidationError(f"{name} is required to create a checkpoint")

        stmt = build_checkpoint_bump(self.table, user_id, client_id)
        start_time = time.monotonic()
        try:
            with self.factory.begin() as tx:
                value = tx.execute_scalar(stmt)
        except SQLAlchemyError as exc:
            observe_checkpoint_bump("error", time.monotonic() - start_time)
            orig = getattr(exc, "orig", None)
            raise DbWriteError(
                f"Checkpoint bump failed for {user_id}/{client_id}: {orig or exc}"
            ) from exc

        observe_checkpoint_bump("success", time.monotonic() - start_time)
        logger.debug("Checkpoint for %s/%s is now %s", user_id, client_id, value)
        return int(value)
