from prometheus_client import Counter, Histogram

DB_WRITE_TOTAL = Counter(
    "syncwrite_db_write_total",
    "Row writes applied through batches, by final transaction status.",
    ["table", "op_type", "status"],
)

DB_WRITE_LATENCY_SECONDS = Histogram(
    "syncwrite_db_write_latency_seconds",
    "Time from statement start until its transaction committed or rolled back.",
    ["table", "op_type"],
)

BATCH_TOTAL = Counter(
    "syncwrite_batch_total",
    "Batches processed, by outcome.",
    ["status"],
)

BATCH_SIZE = Histogram(
    "syncwrite_batch_size",
    "Number of operations per batch.",
    buckets=(1, 2, 5, 10, 25, 50, 100, 250, 500, 1000),
)

CHECKPOINT_BUMP_TOTAL = Counter(
    "syncwrite_checkpoint_bump_total",
    "Checkpoint increments, by outcome.",
    ["status"],
)

CHECKPOINT_BUMP_LATENCY_SECONDS = Histogram(
    "syncwrite_checkpoint_bump_latency_seconds",
    "Latency of the checkpoint upsert round trip.",
)
