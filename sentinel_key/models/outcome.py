"""Authentication outcome contracts.

AuthenticationPipeline.authenticate() returns exactly one AuthOutcome:
  - authenticated: principal set, reason None
  - denied:        principal None, reason set

The HTTP layer renders every denial identically ("Unauthorized"); the reason
only reaches the server-side audit log.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from sentinel_key.principals import Principal


class DenialReason(str, Enum):
    """Why a request was refused (gate order)."""

    IP_BLACKLISTED = "ip_blacklisted"
    IP_NOT_WHITELISTED = "ip_not_whitelisted"
    PATH_NOT_ALLOWED = "path_not_allowed"
    NO_CREDENTIAL = "no_credential"
    INVALID_KEY = "invalid_key"
    KEY_BLOCKED = "key_blocked"
    KEY_DISABLED = "key_disabled"
    KEY_EXPIRED = "key_expired"
    RATE_LIMITED = "rate_limited"
    OWNER_INACTIVE = "owner_inactive"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class AuthOutcome:
    """Terminal result of one pipeline run."""

    principal: Optional["Principal"] = None
    reason: Optional[DenialReason] = None
    key_id: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.principal is not None and self.reason is None

    @classmethod
    def granted(cls, principal: "Principal", key_id: str) -> "AuthOutcome":
        return cls(principal=principal, key_id=key_id)

    @classmethod
    def denied(cls, reason: DenialReason, key_id: Optional[str] = None) -> "AuthOutcome":
        return cls(reason=reason, key_id=key_id)
