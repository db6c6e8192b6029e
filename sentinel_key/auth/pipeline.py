"""AuthenticationPipeline — turns an incoming request into an AuthOutcome.

Gate order (first failing gate wins):

  1. applies()      credential header or ``api_key`` query param present
  2. blacklist      client IP listed                → IP_BLACKLISTED
  3. whitelist      list non-empty, IP not in it    → IP_NOT_WHITELISTED
  4. path           patterns set, none matches      → PATH_NOT_ALLOWED
  5. credential     header, else query param        → NO_CREDENTIAL
  6. lookup         sha256(raw) unknown             → INVALID_KEY
  7. status         blocked / disabled / expired    → KEY_BLOCKED / KEY_DISABLED / KEY_EXPIRED
  8. throttle       usage window exceeded           → RATE_LIMITED
  9. owner          principal missing or inactive   → OWNER_INACTIVE

Only RATE_LIMITED and OWNER_INACTIVE denials count towards the failure
limit; the denial that reaches it blocks the key and is reported as
KEY_BLOCKED. Disabled and expired keys are logged as failed uses but never
touch the counters. A successful authentication clears the failure window.

A rate_limit notification is sent once per usage window, on the first
request that exceeds it.

Every denial is written to the ``sentinel_key.audit`` log channel with the
client IP, path and reason. The HTTP layer never sees the reason.

Any exception raised by a collaborator is logged and converted into
INTERNAL_ERROR: the pipeline fails closed.
"""

from __future__ import annotations

import re
import time
from typing import Callable, Optional

from starlette.requests import Request

from sentinel_key.auth.ratelimit import RateLimitCounter
from sentinel_key.config import SentinelConfig
from sentinel_key.constants import API_KEY_QUERY_PARAM
from sentinel_key.crypto.vault import CryptoVault
from sentinel_key.models.key import ApiKeyRecord, KeyUsageEvent
from sentinel_key.models.outcome import AuthOutcome, DenialReason
from sentinel_key.notify.service import BLOCK, RATE_LIMIT, Notifier
from sentinel_key.principals import PrincipalDirectory
from sentinel_key.store.protocol import KeyStore
from sentinel_key.utils.logger import get_audit_logger, get_logger

logger = get_logger(__name__)
audit_logger = get_audit_logger()


def compile_path_pattern(pattern: str) -> re.Pattern[str]:
    """Compile an allowed-path glob: ``*`` matches anything, all else is literal."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")))


def client_ip_of(request: Request) -> str:
    return request.client.host if request.client else ""


class AuthenticationPipeline:
    """Ordered authentication gates over injected collaborators.

    Args:
        config:    Allow/deny lists, header name and throttling limits.
        vault:     Hashes presented credentials.
        store:     Key lookup and usage log.
        counter:   Usage and failure windows.
        directory: Resolves key owners.
        notifier:  block / rate_limit notifications (best-effort).
        clock:     Time source (UNIX seconds).
    """

    def __init__(
        self,
        config: SentinelConfig,
        vault: CryptoVault,
        store: KeyStore,
        counter: RateLimitCounter,
        directory: PrincipalDirectory,
        notifier: Notifier,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._vault = vault
        self._store = store
        self._counter = counter
        self._directory = directory
        self._notifier = notifier
        self._clock = clock

        self._header = config.custom_auth_header
        self._blacklist = frozenset(config.blacklist_ips)
        self._whitelist = frozenset(config.whitelist_ips)
        self._path_patterns = [compile_path_pattern(p) for p in config.allowed_paths]

    # ── Request inspection ───────────────────────────────────────────────────

    def extract_credential(self, request: Request) -> Optional[str]:
        """The presented raw key: header first, then the query parameter."""
        return request.headers.get(self._header) or request.query_params.get(API_KEY_QUERY_PARAM) or None

    def applies(self, request: Request) -> bool:
        """True when the request carries the auth header or the query param."""
        return self._header in request.headers or API_KEY_QUERY_PARAM in request.query_params

    def path_allowed(self, path: str) -> bool:
        if not self._path_patterns:
            return True
        return any(pattern.fullmatch(path) for pattern in self._path_patterns)

    # ── Entry point ──────────────────────────────────────────────────────────

    async def authenticate(self, request: Request) -> AuthOutcome:
        """Run gates 2–9 and return the outcome. Never raises."""
        client_ip = client_ip_of(request)
        path = request.url.path

        try:
            outcome = await self._run_gates(request, client_ip, path)
        except Exception as exc:
            logger.error(
                "Authentication pipeline error — failing closed",
                path=path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            outcome = AuthOutcome.denied(DenialReason.INTERNAL_ERROR)

        if not outcome.authenticated:
            audit_logger.warning(
                "API key authentication denied",
                client_ip=client_ip,
                path=path,
                reason=outcome.reason.value if outcome.reason else None,
                key_id=outcome.key_id,
            )
        return outcome

    async def _run_gates(self, request: Request, client_ip: str, path: str) -> AuthOutcome:
        # ── Network and path gates ───────────────────────────────────────────
        if client_ip in self._blacklist:
            return AuthOutcome.denied(DenialReason.IP_BLACKLISTED)
        if self._whitelist and client_ip not in self._whitelist:
            return AuthOutcome.denied(DenialReason.IP_NOT_WHITELISTED)
        if not self.path_allowed(path):
            return AuthOutcome.denied(DenialReason.PATH_NOT_ALLOWED)

        # ── Credential ───────────────────────────────────────────────────────
        raw = self.extract_credential(request)
        if not raw:
            return AuthOutcome.denied(DenialReason.NO_CREDENTIAL)

        record = await self._store.find_by_hash(self._vault.hash(raw))
        if record is None:
            return AuthOutcome.denied(DenialReason.INVALID_KEY)

        # ── Key status ───────────────────────────────────────────────────────
        if record.blocked:
            await self._log_usage(record, False, client_ip, path)
            return AuthOutcome.denied(DenialReason.KEY_BLOCKED, record.id)

        if not record.enabled:
            await self._log_usage(record, False, client_ip, path)
            return AuthOutcome.denied(DenialReason.KEY_DISABLED, record.id)
        if record.is_expired(self._clock()):
            await self._log_usage(record, False, client_ip, path)
            return AuthOutcome.denied(DenialReason.KEY_EXPIRED, record.id)

        # ── Throttle ─────────────────────────────────────────────────────────
        limited = await self._counter.record_and_check_usage(
            record.id,
            self._config.max_rate_limit_time.seconds,
            self._config.max_rate_limit,
        )
        if limited:
            window = self._config.max_rate_limit_time.seconds
            if await self._counter.claim_rate_limit_notice(record.id, window):
                await self._notify(RATE_LIMIT, record.owner_id)
            return await self._deny(record, DenialReason.RATE_LIMITED, client_ip, path)

        # ── Owner ────────────────────────────────────────────────────────────
        principal = await self._directory.load(record.owner_id)
        if principal is None or not principal.is_active():
            return await self._deny(record, DenialReason.OWNER_INACTIVE, client_ip, path)

        await self._log_usage(record, True, client_ip, path)
        await self._counter.reset_failure_window(record.id)
        logger.info(
            "API key authenticated",
            key_id=record.id,
            owner_id=record.owner_id,
            path=path,
        )
        return AuthOutcome.granted(principal, record.id)

    # ── Failure accounting ───────────────────────────────────────────────────

    async def _deny(
        self,
        record: ApiKeyRecord,
        reason: DenialReason,
        client_ip: str,
        path: str,
    ) -> AuthOutcome:
        await self._log_usage(record, False, client_ip, path)
        blocked = await self._counter.record_failure_and_check_block(
            record.id,
            self._config.failure_limit,
            self._config.failure_limit_time.seconds,
        )
        if blocked:
            await self._notify(BLOCK, record.owner_id)
            reason = DenialReason.KEY_BLOCKED
        return AuthOutcome.denied(reason, record.id)

    async def _log_usage(self, record: ApiKeyRecord, success: bool, client_ip: str, path: str) -> None:
        await self._store.log_usage(
            KeyUsageEvent(
                key_id=record.id,
                success=success,
                timestamp=self._clock(),
                client_ip=client_ip or None,
                path=path,
            )
        )

    async def _notify(self, kind: str, owner_id: str) -> None:
        try:
            await self._notifier.notify(kind, owner_id)
        except Exception as exc:
            logger.warning(
                "Notification failed (ignored)",
                notification_type=kind,
                owner_id=owner_id,
                error=str(exc),
            )
