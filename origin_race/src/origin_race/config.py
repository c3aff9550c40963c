import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Where per-request race variables come from: "env" (process environment) or "redis" (one hash)
VARIABLE_SOURCE = os.getenv("VARIABLE_SOURCE", "env").strip().lower()
# Optional prefix for env-backed variables, e.g. "OR_" makes ORIGIN_1 read OR_ORIGIN_1
VARIABLE_ENV_PREFIX = os.getenv("VARIABLE_ENV_PREFIX", "")

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_VARIABLES_KEY = os.getenv("REDIS_VARIABLES_KEY", "origin_race:variables")

# Upper bound for the shared probe client; each probe passes its own (smaller) timeout
PROBE_CLIENT_TIMEOUT_SECS = float(os.getenv("PROBE_CLIENT_TIMEOUT_SECS", 10))

# Per-request defaults, used when the variable store omits a key or holds garbage
DEFAULT_RACE_CACHE_MINUTES = 3
DEFAULT_RACE_TIMEOUT_MS = 500
DEFAULT_USE_STALE_RACE_CACHE = True
DEFAULT_RACE_CACHE_REFRESH_THRESHOLD = 0.8
DEFAULT_SYNC_ON_COLD = True
DEFAULT_RACE_METHOD = "HEAD"
RACE_METHODS = ("GET", "HEAD")

# Decision sink
SELECTED_ORIGIN_HEADER = "x-selected-origin"
SELECTION_SOURCE_HEADER = "x-origin-race-source"

# Server bind address for `python -m origin_race`
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
