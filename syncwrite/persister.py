from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol, Union

from sqlalchemy.engine import Engine

from .config import DbConfig
from .db.checkpoint import CheckpointStore
from .db.engine import make_engine
from .db.executor import BatchExecutor
from .db.models import BatchOperation
from .db.tx import DbFactory
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class Persister(Protocol):
    """
    What the HTTP layer depends on.

    Both methods either return normally or raise a SyncWriteError whose
    message describes the failure.
    """

    def apply_batch(self, batch: Iterable[BatchOperation]) -> None:
        """Apply every operation of the batch, or none of them."""
        ...

    def bump(self, user_id: str, client_id: str) -> int:
        """Create or increment the (user_id, client_id) checkpoint and return it."""
        ...


class PostgresPersister:
    """
    PostgreSQL-backed Persister.

    Construct once per process and share it: it owns nothing but the pooled
    Engine, and every call checks out its own connection.

    Usage:
        persister = PostgresPersister("postgres://app:secret@db:5432/sync")
        persister.apply_batch(parse_batch(request_json["batch"]))
        checkpoint = persister.bump(user_id, client_id)
    """

    def __init__(self, config: Union[DbConfig, str], *, engine: Optional[Engine] = None) -> None:
        """
        Args:
            config: DbConfig, or a bare connection string / URI
            engine: Existing Engine to use instead of building a pool from
                ``config`` (e.g. one shared with other components or tests)

        Raises:
            ConfigurationError: If the connection string/URI or pool settings are invalid
        """
        if isinstance(config, str):
            config = DbConfig(database_uri=config)
        self.config = config
        logger.info(
            "Using Postgres persister at %s",
            config.url.render_as_string(hide_password=True),
        )
        self.engine = engine if engine is not None else make_engine(config)
        factory = DbFactory(self.engine)
        self._batches = BatchExecutor(factory, allowed_tables=config.allowed_tables)
        self._checkpoints = CheckpointStore(factory, table=config.checkpoint_table)

    def apply_batch(self, batch: Iterable[BatchOperation]) -> None:
        self._batches.apply_batch(batch)

    def bump(self, user_id: str, client_id: str) -> int:
        return self._checkpoints.bump(user_id, client_id)

    def close(self) -> None:
        """Dispose of the connection pool."""
        self.engine.dispose()

    def __enter__(self) -> "PostgresPersister":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False


SUPPORTED_DATABASE_TYPES = ("postgres", "mysql", "mongodb")


def make_persister(database_type: str, config: Union[DbConfig, str]) -> Persister:
    """
    Create the Persister for a configured database type.

    Only PostgreSQL is implemented. MySQL and MongoDB are recognised names so
    that configuration validation accepts them, but they have no backend yet.
    """
    normalized = (database_type or "").strip().lower()

    if normalized in ("postgres", "postgresql"):
        return PostgresPersister(config)

    if normalized == "mysql":
        raise NotImplementedError("MySQL persister is not implemented")

    if normalized == "mongodb":
        raise NotImplementedError("MongoDB persister is not implemented")

    raise ConfigurationError(
        f"Unsupported database type: {database_type!r}. "
        f"Supported types are: {', '.join(SUPPORTED_DATABASE_TYPES)}"
    )
