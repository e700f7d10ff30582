import os

# -------- Expansion defaults -------------------------------------------
# Settings mirror these; tests compare the two so they cannot drift.
EXPAND_KEY = os.getenv("EXPAND_KEY", "_expand")
EXPAND_PLACEHOLDER_KEY = os.getenv("EXPAND_PLACEHOLDER_KEY", "_items")
EXPAND_MAX_DEPTH = int(os.getenv("EXPAND_MAX_DEPTH", "3"))
EXPAND_EXCLUDED_PREFIX = os.getenv("EXPAND_EXCLUDED_PREFIX", "_")
# Hard ceiling for per-request depth overrides (GET /v1/entries?depth=).
EXPAND_DEPTH_CEILING = int(os.getenv("EXPAND_DEPTH_CEILING", "8"))

# -------- Cache ---------------------------------------------------------
CACHE_NAMESPACE = os.getenv("CACHE_NAMESPACE", "hx:v1")

# -------- Remote origin / HTTP retry -----------------------------------
TIMEOUT_FETCH_MS = int(os.getenv("TIMEOUT_FETCH_MS", "400"))
REMOTE_FETCH_CONCURRENCY = int(os.getenv("REMOTE_FETCH_CONCURRENCY", "8"))
HTTP_RETRY_BASE_MS = int(os.getenv("HTTP_RETRY_BASE_MS", "50"))
HTTP_RETRY_JITTER_MS = int(os.getenv("HTTP_RETRY_JITTER_MS", "200"))
HTTP_RETRY_CAP_MS = int(os.getenv("HTTP_RETRY_CAP_MS", "1000"))

HYDRATOR_PORT = int(os.getenv("HYDRATOR_PORT", "8080"))

def fetch_timeout_s() -> float:
    return TIMEOUT_FETCH_MS / 1000.0
