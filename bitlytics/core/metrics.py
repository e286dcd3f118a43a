from prometheus_client import Counter, Histogram

# Script dispatch
SCRIPT_DISPATCH_TOTAL = Counter(
    "bitlytics_script_dispatch_total",
    "Aggregation script invocations by kind.",
    ["kind"],
)
SCRIPT_LOADS_TOTAL = Counter(
    "bitlytics_script_loads_total", "Script sources submitted to Redis."
)
SCRIPT_NOSCRIPT_RETRIES_TOTAL = Counter(
    "bitlytics_script_noscript_retries_total",
    "Dispatches retried after the script identifier was unknown.",
)
SCRIPT_DISPATCH_LATENCY_SECONDS = Histogram(
    "bitlytics_script_dispatch_latency_seconds",
    "Latency of aggregation script invocations.",
)

# Connection
STORE_ERRORS_SUPPRESSED_TOTAL = Counter(
    "bitlytics_store_errors_suppressed_total",
    "Redis errors swallowed because silent mode is on.",
)
READONLY_RECONNECTS_TOTAL = Counter(
    "bitlytics_readonly_reconnects_total",
    "Reconnects after writing to a read-only replica.",
)

# Writes
COUNTER_WRITES_TOTAL = Counter(
    "bitlytics_counter_writes_total", "Counter bucket increments.", ["granularity"]
)
TRACKER_WRITES_TOTAL = Counter(
    "bitlytics_tracker_writes_total", "Tracker presence bits set.", ["granularity"]
)

# Temporary operation keys
TEMP_KEYS_ALLOCATED_TOTAL = Counter(
    "bitlytics_temp_keys_allocated_total", "Temporary result keys allocated."
)
TEMP_KEYS_RELEASED_TOTAL = Counter(
    "bitlytics_temp_keys_released_total", "Temporary result keys deleted."
)
