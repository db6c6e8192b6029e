"""Timeframe enum — lookback windows for rate limiting and usage reporting.

Values are the strings stored in configuration (``max_rate_limit_time: 1h``).
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Optional

_HOUR = 3600
_DAY = 24 * _HOUR


class Timeframe(str, Enum):
    """Trailing window selectable in configuration."""

    ONE_HOUR = "1h"
    TWO_HOURS = "2h"
    THREE_HOURS = "3h"
    SIX_HOURS = "6h"
    ONE_DAY = "1d"
    SEVEN_DAYS = "7d"
    THIRTY_DAYS = "30d"

    @property
    def seconds(self) -> int:
        """Lookback duration in seconds."""
        return _SECONDS[self]

    @property
    def label(self) -> str:
        """Human-readable name, e.g. ``"1 hour"``."""
        return _LABELS[self]

    def window_start(self, now: Optional[float] = None) -> float:
        """UNIX timestamp at which this window begins, relative to ``now``."""
        if now is None:
            now = time.time()
        return now - self.seconds

    @classmethod
    def from_string(cls, value: str) -> Optional["Timeframe"]:
        """Parse a config value; returns None for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return None

    @classmethod
    def options(cls) -> dict[str, str]:
        """Mapping of value → label, in declaration order."""
        return {tf.value: tf.label for tf in cls}


_SECONDS: dict[Timeframe, int] = {
    Timeframe.ONE_HOUR: _HOUR,
    Timeframe.TWO_HOURS: 2 * _HOUR,
    Timeframe.THREE_HOURS: 3 * _HOUR,
    Timeframe.SIX_HOURS: 6 * _HOUR,
    Timeframe.ONE_DAY: _DAY,
    Timeframe.SEVEN_DAYS: 7 * _DAY,
    Timeframe.THIRTY_DAYS: 30 * _DAY,
}

_LABELS: dict[Timeframe, str] = {
    Timeframe.ONE_HOUR: "1 hour",
    Timeframe.TWO_HOURS: "2 hours",
    Timeframe.THREE_HOURS: "3 hours",
    Timeframe.SIX_HOURS: "6 hours",
    Timeframe.ONE_DAY: "1 day",
    Timeframe.SEVEN_DAYS: "7 days",
    Timeframe.THIRTY_DAYS: "30 days",
}
