from .registry import (
    BATCH_SIZE,
    BATCH_TOTAL,
    CHECKPOINT_BUMP_LATENCY_SECONDS,
    CHECKPOINT_BUMP_TOTAL,
    DB_WRITE_LATENCY_SECONDS,
    DB_WRITE_TOTAL,
)

__all__ = [
    "BATCH_SIZE",
    "BATCH_TOTAL",
    "CHECKPOINT_BUMP_LATENCY_SECONDS",
    "CHECKPOINT_BUMP_TOTAL",
    "DB_WRITE_LATENCY_SECONDS",
    "DB_WRITE_TOTAL",
]
