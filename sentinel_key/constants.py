"""Shared constants for Sentinel Key.

Magic numbers and well-known names used across modules live here.
No magic numbers in other modules — import from here.
"""

# ─── Credential Extraction ───────────────────────────────────────────────────

# Header carrying the API key unless custom_auth_header overrides it.
DEFAULT_AUTH_HEADER: str = "X-API-KEY"

# Query parameter accepted when the header is absent.
API_KEY_QUERY_PARAM: str = "api_key"

# ─── Key Material ────────────────────────────────────────────────────────────

# Random bytes behind each raw key (base64-encoded → 44 chars).
RAW_KEY_BYTES: int = 32

# Random bytes behind the default "Key-XXXXXX" label.
LABEL_RANDOM_BYTES: int = 6

# AES block size == CBC IV length (bytes).
AES_IV_LENGTH: int = 16

# AES-256 key length (bytes) derived from the master secret.
AES_KEY_LENGTH: int = 32

# HKDF salt/info for master secret → AES key derivation.
# Changing these invalidates every stored payload.
KDF_SALT: bytes = b"sentinel-key-v1"
KDF_INFO: bytes = b"sentinel-key-payload-encryption"

# Environment variable holding the externally supplied master secret.
MASTER_SECRET_ENV_VAR: str = "SENTINEL_ENCRYPTION_KEY"

# ─── Throttling ──────────────────────────────────────────────────────────────

# Default failure-counting window; the pipeline passes failure_limit_time.
# One hour matches the default failure_limit_time.
FAILURE_WINDOW_SECONDS: int = 3600

# Cache key prefix for all counters: sentinel_key:{kind}:{key_id}
CACHE_PREFIX: str = "sentinel_key"

# ─── State Store Names ───────────────────────────────────────────────────────

# StateStore entry holding sha256(master secret) last seen by the watcher.
ENCRYPTION_KEY_HASH_STATE: str = "encryption_key_hash"

# ─── Cleanup ─────────────────────────────────────────────────────────────────

# Expired keys are purged once they have been expired for this long.
DEFAULT_PURGE_AFTER_SECONDS: int = 30 * 24 * 3600

# Interval between cleanup runs inside the application lifespan.
DEFAULT_CLEANUP_INTERVAL_SECONDS: int = 3600

# ─── Cache Sizing ────────────────────────────────────────────────────────────

# MemoryCache evicts the least-recently-used entry past this many entries.
MEMORY_CACHE_MAXSIZE: int = 10_000

# ─── Server ──────────────────────────────────────────────────────────────────

# uvicorn answers 503 past this many concurrent connections.
SERVER_LIMIT_CONCURRENCY: int = 100

# Pending TCP connections queued by the OS.
SERVER_BACKLOG: int = 50

# Seconds an idle keep-alive connection stays open.
SERVER_TIMEOUT_KEEP_ALIVE: int = 5
