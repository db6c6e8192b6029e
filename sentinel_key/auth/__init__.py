"""Sentinel Key authentication package.

Modules:
    lifecycle.py  — KeyLifecycleService (generate, rotate, revoke, regenerate)
    ratelimit.py  — RateLimitCounter (usage and failure windows)
    pipeline.py   — AuthenticationPipeline (ordered gates → AuthOutcome)
    watcher.py    — MasterKeyRotationWatcher
    autogen.py    — AutoGenerator (keys on registration / login)
    cleanup.py    — run_cleanup_task (purge of long-expired keys)
    middleware.py — authenticate_request dependency, RequestAuditMiddleware
    router.py     — /api/sentinel and /api/keys/me endpoints
    limiter.py    — shared slowapi Limiter
"""

from sentinel_key.auth.autogen import AutoGenerator
from sentinel_key.auth.lifecycle import KeyLifecycleService, generate_raw_key
from sentinel_key.auth.pipeline import AuthenticationPipeline, compile_path_pattern
from sentinel_key.auth.ratelimit import RateLimitCounter
from sentinel_key.auth.watcher import MasterKeyRotationWatcher

__all__ = [
    "AuthenticationPipeline",
    "AutoGenerator",
    "KeyLifecycleService",
    "MasterKeyRotationWatcher",
    "RateLimitCounter",
    "compile_path_pattern",
    "generate_raw_key",
]
