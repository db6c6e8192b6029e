"""Config loading for Sentinel Key.

Reads ``.sentinel_key/config.yaml`` (or ``~/.sentinel_key/config.yaml``).
Raises SystemExit on parse errors, a missing ``version`` field, or invalid
option values. If no config file is found, returns defaults (safe to run
without config — authentication then accepts any IP and any path, with
throttling disabled).

Config search order:
  1. ``config_path`` argument (if provided — for testing or explicit override)
  2. SENTINEL_KEY_CONFIG environment variable (if set)
  3. ``.sentinel_key/config.yaml`` (working directory — for development)
  4. ``~/.sentinel_key/config.yaml`` (home directory — for production)

Environment variable overrides:
  SENTINEL_KEY_DB_PATH — overrides store.path
  SENTINEL_KEY_PORT    — overrides server.port

Example::

    version: 1
    encryption_mode: env
    custom_auth_header: X-API-KEY
    whitelist_ips: []
    blacklist_ips: ["203.0.113.7"]
    allowed_paths: ["/api/*"]
    failure_limit: 10
    failure_limit_time: 1h
    max_rate_limit: 100
    max_rate_limit_time: 1h
    auto_generate:
      enabled: true
      roles: [developer]
      duration: 90
      unit: days
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from sentinel_key.constants import (
    DEFAULT_AUTH_HEADER,
    DEFAULT_CLEANUP_INTERVAL_SECONDS,
    DEFAULT_PURGE_AFTER_SECONDS,
)
from sentinel_key.models.key import VALID_DURATION_UNITS
from sentinel_key.models.timeframe import Timeframe
from sentinel_key.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

VALID_ENCRYPTION_MODES: frozenset[str] = frozenset({"config", "env"})

DEFAULT_CONFIG_PATHS = [
    ".sentinel_key/config.yaml",
    os.path.expanduser("~/.sentinel_key/config.yaml"),
]

_DEFAULT_DB_PATH = "~/.sentinel_key/keys.db"


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class AutoGenerateConfig:
    """Automatic key issuance for new or logging-in users.

    duration=0 means generated keys never expire.
    """

    enabled: bool = False
    roles: list[str] = field(default_factory=list)
    duration: int = 0
    unit: str = "days"


@dataclass
class NotificationConfig:
    """Owner notifications on key state changes."""

    enabled: bool = True
    webhook_url: Optional[str] = None
    # Base URL used to build the "view your key" link in new_key notices.
    key_link_base: Optional[str] = None


@dataclass
class StoreConfig:
    """Key store location."""

    path: str = _DEFAULT_DB_PATH


@dataclass
class ServerConfig:
    """HTTP binding configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class CleanupConfig:
    """Periodic purge of long-expired keys."""

    enabled: bool = True
    interval_seconds: int = DEFAULT_CLEANUP_INTERVAL_SECONDS
    purge_after_seconds: int = DEFAULT_PURGE_AFTER_SECONDS


@dataclass
class SentinelConfig:
    """Root configuration object populated from config.yaml.

    All fields have safe defaults — Sentinel Key can start without a config
    file (a master secret must still come from SENTINEL_ENCRYPTION_KEY before
    any key can be issued).
    """

    version: int = SUPPORTED_CONFIG_VERSION
    whitelist_ips: list[str] = field(default_factory=list)
    blacklist_ips: list[str] = field(default_factory=list)
    custom_auth_header: str = DEFAULT_AUTH_HEADER
    allowed_paths: list[str] = field(default_factory=list)
    failure_limit: int = 0              # 0 = disabled
    failure_limit_time: Timeframe = Timeframe.ONE_HOUR
    max_rate_limit: int = 0             # 0 = disabled
    max_rate_limit_time: Timeframe = Timeframe.ONE_HOUR
    encryption_mode: str = "env"        # "config" | "env"
    master_secret: Optional[str] = None
    auto_generate: AutoGenerateConfig = field(default_factory=AutoGenerateConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    cleanup: CleanupConfig = field(default_factory=CleanupConfig)
    path: Optional[str] = None  # Path to the loaded config file

    def __repr__(self) -> str:
        # master_secret must never end up in logs or tracebacks
        secret = "'***'" if self.master_secret else "None"
        return (
            f"SentinelConfig(version={self.version}, "
            f"custom_auth_header={self.custom_auth_header!r}, "
            f"encryption_mode={self.encryption_mode!r}, master_secret={secret}, "
            f"failure_limit={self.failure_limit}, max_rate_limit={self.max_rate_limit}, "
            f"path={self.path!r})"
        )

    @classmethod
    def defaults(cls) -> "SentinelConfig":
        """Return a fully-default config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "SentinelConfig":
        """Construct config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are ignored.

        Raises:
            SystemExit(1): On an invalid timeframe, encryption mode, limit,
                           auth header, or auto-generate unit.
        """
        # ── Throttling ────────────────────────────────────────────────────────
        failure_limit = _non_negative_int(raw, "failure_limit", 0)
        max_rate_limit = _non_negative_int(raw, "max_rate_limit", 0)
        failure_limit_time = _timeframe(raw, "failure_limit_time")
        max_rate_limit_time = _timeframe(raw, "max_rate_limit_time")

        # ── Encryption ───────────────────────────────────────────────────────
        encryption_mode = raw.get("encryption_mode", "env")
        if encryption_mode not in VALID_ENCRYPTION_MODES:
            _fail(
                f"CONFIG ERROR: Invalid encryption_mode: '{encryption_mode}'. "
                f"Supported values: {sorted(VALID_ENCRYPTION_MODES)}."
            )

        custom_header = raw.get("custom_auth_header") or DEFAULT_AUTH_HEADER
        if not isinstance(custom_header, str) or not custom_header.strip():
            _fail("CONFIG ERROR: custom_auth_header must be a non-empty string.")

        # ── Auto-generate ─────────────────────────────────────────────────────
        auto_raw = raw.get("auto_generate") or {}
        unit = auto_raw.get("unit", "days")
        if unit not in VALID_DURATION_UNITS:
            _fail(
                f"CONFIG ERROR: Invalid auto_generate.unit: '{unit}'. "
                f"Supported values: {sorted(VALID_DURATION_UNITS)}."
            )
        auto_generate = AutoGenerateConfig(
            enabled=bool(auto_raw.get("enabled", False)),
            roles=_string_list(auto_raw, "roles", "auto_generate.roles"),
            duration=_non_negative_int(auto_raw, "duration", 0, "auto_generate.duration"),
            unit=unit,
        )

        # ── Notifications ─────────────────────────────────────────────────────
        notify_raw = raw.get("notifications") or {}
        notifications = NotificationConfig(
            enabled=bool(notify_raw.get("enabled", True)),
            webhook_url=notify_raw.get("webhook_url"),
            key_link_base=notify_raw.get("key_link_base"),
        )

        # ── Store / Server / Cleanup ──────────────────────────────────────────
        store_raw = raw.get("store") or {}
        store = StoreConfig(path=store_raw.get("path", _DEFAULT_DB_PATH))

        server_raw = raw.get("server") or {}
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 8080),
        )

        cleanup_raw = raw.get("cleanup") or {}
        cleanup = CleanupConfig(
            enabled=bool(cleanup_raw.get("enabled", True)),
            interval_seconds=cleanup_raw.get("interval_seconds", DEFAULT_CLEANUP_INTERVAL_SECONDS),
            purge_after_seconds=cleanup_raw.get("purge_after_seconds", DEFAULT_PURGE_AFTER_SECONDS),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            whitelist_ips=_string_list(raw, "whitelist_ips"),
            blacklist_ips=_string_list(raw, "blacklist_ips"),
            custom_auth_header=custom_header.strip(),
            allowed_paths=_string_list(raw, "allowed_paths"),
            failure_limit=failure_limit,
            failure_limit_time=failure_limit_time,
            max_rate_limit=max_rate_limit,
            max_rate_limit_time=max_rate_limit_time,
            encryption_mode=encryption_mode,
            master_secret=raw.get("master_secret") or None,
            auto_generate=auto_generate,
            notifications=notifications,
            store=store,
            server=server,
            cleanup=cleanup,
            path=path,
        )


# ─── Field helpers ────────────────────────────────────────────────────────────


def _fail(msg: str) -> None:
    print(msg, file=sys.stderr)
    raise SystemExit(1)


def _non_negative_int(raw: dict, key: str, default: int, display: Optional[str] = None) -> int:
    value: Any = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        _fail(f"CONFIG ERROR: {display or key} must be a non-negative integer, got {value!r}.")
    return value


def _timeframe(raw: dict, key: str) -> Timeframe:
    value = raw.get(key, Timeframe.ONE_HOUR.value)
    timeframe = Timeframe.from_string(str(value))
    if timeframe is None:
        _fail(
            f"CONFIG ERROR: Invalid {key}: '{value}'. "
            f"Supported values: {list(Timeframe.options())}."
        )
    return timeframe  # type: ignore[return-value]


def _string_list(raw: dict, key: str, display: Optional[str] = None) -> list[str]:
    value = raw.get(key) or []
    if isinstance(value, str):
        # Accept the one-per-line textarea form as well as a YAML list
        value = value.splitlines()
    if not isinstance(value, list):
        _fail(f"CONFIG ERROR: {display or key} must be a list of strings.")
    return [str(item).strip() for item in value if str(item).strip()]


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> SentinelConfig:
    """Load and validate Sentinel Key configuration.

    If no file is found at any search path, returns defaults (not an error).
    If a file is found but invalid, writes the error to stderr and raises
    SystemExit(1).

    Returns:
        SentinelConfig with file values merged onto defaults and env
        overrides applied.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field,
                       unsupported version, or invalid option values.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("SENTINEL_KEY_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = SentinelConfig.defaults()
        _apply_env_overrides(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        msg = (
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "Sentinel Key refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)
    except OSError as exc:
        msg = f"CONFIG ERROR: Could not read {found_path}: {exc}"
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if not isinstance(raw, dict):
        if raw is None:
            msg = (
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        else:
            msg = (
                f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
                "The config file must be a YAML dictionary at the top level."
            )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        msg = (
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if version not in SUPPORTED_VERSIONS:
        msg = (
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    config = SentinelConfig.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    # ── Security warnings ─────────────────────────────────────────────────────
    if config.master_secret and config.encryption_mode == "env":
        logger.warning(
            "master_secret is set in the config file but encryption_mode is 'env'. "
            "It is used only when SENTINEL_ENCRYPTION_KEY is unset."
        )
    if config.encryption_mode == "config":
        logger.warning(
            "encryption_mode is 'config': the master secret lives next to the "
            "application config. Prefer SENTINEL_ENCRYPTION_KEY in production."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        failure_limit=config.failure_limit,
        max_rate_limit=config.max_rate_limit,
        allowed_paths=len(config.allowed_paths),
    )
    return config


def _apply_env_overrides(config: SentinelConfig) -> None:
    """Apply environment variable overrides to a config in-place.

    Handles:
      SENTINEL_KEY_DB_PATH — overrides config.store.path
      SENTINEL_KEY_PORT    — overrides config.server.port (SystemExit(1) if invalid)
    """
    env_db = os.environ.get("SENTINEL_KEY_DB_PATH")
    if env_db:
        config.store.path = env_db

    env_port = os.environ.get("SENTINEL_KEY_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            msg = (
                f"CONFIG ERROR: SENTINEL_KEY_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )
            print(msg, file=sys.stderr)
            raise SystemExit(1)
