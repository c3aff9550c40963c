"""Turn a variable snapshot into validated per-request race settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from . import config

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """The request cannot be routed by the race: origins or domains are missing."""


class NoOriginsError(ConfigurationError):
    """No ORIGIN_1..N variables are set."""


@dataclass(frozen=True)
class RaceSettings:
    origins: List[str]
    race_domain: str
    origin_domain: str
    cache_minutes: int = config.DEFAULT_RACE_CACHE_MINUTES
    use_stale: bool = config.DEFAULT_USE_STALE_RACE_CACHE
    timeout_ms: int = config.DEFAULT_RACE_TIMEOUT_MS
    refresh_threshold: float = config.DEFAULT_RACE_CACHE_REFRESH_THRESHOLD
    sync_on_cold: bool = config.DEFAULT_SYNC_ON_COLD
    probe_path: str = "/"
    probe_method: str = config.DEFAULT_RACE_METHOD

    @property
    def cache_ttl_secs(self) -> float:
        return self.cache_minutes * 60.0

    def host_for(self, origin: str) -> str:
        """Fully-qualified hostname handed to the routing layer."""
        return f"{origin}{self.origin_domain}"


def load_origins(variables: Dict[str, str]) -> List[str]:
    """Read ORIGIN_1..N, stopping at the first missing or empty index."""
    out = []
    i = 1
    while True:
        origin = variables.get(f"ORIGIN_{i}")
        if not origin:
            break
        out.append(origin)
        i += 1
    logger.debug("Loaded origins=%d", len(out))
    return out


def _parse_int(variables: Dict[str, str], key: str, default: int) -> int:
    raw = variables.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        logger.warning("Invalid %s=%s, using %d", key, raw, default)
        return default


def _parse_flag(variables: Dict[str, str], key: str, default: bool) -> bool:
    # Anything other than an explicit "false" keeps the feature on
    raw = variables.get(key)
    if raw is None:
        return default
    return str(raw).strip().lower() != "false"


def _parse_threshold(raw: Optional[str]) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return config.DEFAULT_RACE_CACHE_REFRESH_THRESHOLD
    # NaN fails both comparisons
    if not (0.0 <= value <= 1.0):
        return config.DEFAULT_RACE_CACHE_REFRESH_THRESHOLD
    return value


def normalize_method(raw: Optional[str]) -> str:
    """Return GET or HEAD; anything else is coerced to HEAD."""
    method = (raw or config.DEFAULT_RACE_METHOD).strip().upper()
    if method not in config.RACE_METHODS:
        logger.warning("Invalid RACE_METHOD=%s, using %s", raw, config.DEFAULT_RACE_METHOD)
        return config.DEFAULT_RACE_METHOD
    return method


def load_race_settings(variables: Dict[str, str], request_path: str = "/") -> RaceSettings:
    """Validate one request's variables.

    Raises ConfigurationError when no origins are configured or either
    domain suffix is missing; every optional value falls back to its default.
    """
    origins = load_origins(variables)
    if not origins:
        raise NoOriginsError("No origins configured (ORIGIN_1 is not set)")

    race_domain = variables.get("RACE_DOMAIN")
    if not race_domain:
        raise ConfigurationError("RACE_DOMAIN is required but not set")
    origin_domain = variables.get("ORIGIN_DOMAIN")
    if not origin_domain:
        raise ConfigurationError("ORIGIN_DOMAIN is required but not set")

    return RaceSettings(
        origins=origins,
        race_domain=race_domain,
        origin_domain=origin_domain,
        cache_minutes=_parse_int(variables, "RACE_CACHE_MINUTES", config.DEFAULT_RACE_CACHE_MINUTES),
        use_stale=_parse_flag(variables, "USE_STALE_RACE_CACHE", config.DEFAULT_USE_STALE_RACE_CACHE),
        timeout_ms=_parse_int(variables, "RACE_TIMEOUT_MS", config.DEFAULT_RACE_TIMEOUT_MS),
        refresh_threshold=_parse_threshold(variables.get("RACE_CACHE_REFRESH_THRESHOLD")),
        sync_on_cold=_parse_flag(variables, "SYNC_ON_COLD", config.DEFAULT_SYNC_ON_COLD),
        probe_path=variables.get("RACE_URL") or request_path or "/",
        probe_method=normalize_method(variables.get("RACE_METHOD")),
    )
