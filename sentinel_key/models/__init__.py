"""Sentinel Key models package.

Plain data contracts shared by the store, lifecycle service and pipeline:

  - key.py       — ApiKeyRecord, GeneratedKey, KeyUsageEvent, UsageSummary
  - outcome.py   — DenialReason, AuthOutcome
  - timeframe.py — Timeframe enum (rate-limit / reporting windows)
"""

from sentinel_key.models.key import (
    ApiKeyRecord,
    GeneratedKey,
    KeyUsageEvent,
    UsageSummary,
    validate_record,
)
from sentinel_key.models.outcome import AuthOutcome, DenialReason
from sentinel_key.models.timeframe import Timeframe

__all__ = [
    "ApiKeyRecord",
    "AuthOutcome",
    "DenialReason",
    "GeneratedKey",
    "KeyUsageEvent",
    "Timeframe",
    "UsageSummary",
    "validate_record",
]
