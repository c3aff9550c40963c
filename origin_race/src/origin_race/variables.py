"""Per-request variable stores.

A variable store is the read-only key -> string lookup the selector is
configured from. It is read once per request as a snapshot, so a race
started by that request sees one consistent set of values.
"""

import abc
import os
from typing import Dict, Mapping, Optional

import redis.asyncio as redis

from . import config


class VariableStore(abc.ABC):
    """Abstract base class for all variable sources."""

    @abc.abstractmethod
    async def snapshot(self) -> Dict[str, str]:
        """Return every variable currently visible to a request."""
        pass

    async def aclose(self):
        return None


class EnvVariableStore(VariableStore):
    """Reads variables from the process environment, optionally under a prefix."""

    def __init__(self, prefix: str = "", environ: Optional[Mapping[str, str]] = None):
        self.prefix = prefix
        self._environ = environ if environ is not None else os.environ

    async def snapshot(self) -> Dict[str, str]:
        if not self.prefix:
            return dict(self._environ)
        n = len(self.prefix)
        return {k[n:]: v for k, v in self._environ.items() if k.startswith(self.prefix)}


class MappingVariableStore(VariableStore):
    """In-memory variables; handy for embedding and tests."""

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self.values: Dict[str, str] = dict(values or {})

    async def snapshot(self) -> Dict[str, str]:
        return dict(self.values)


class RedisVariableStore(VariableStore):
    """Reads variables from a single Redis hash (HGETALL per request).

    Operators can re-point origins or tune the race without restarting:
        HSET origin_race:variables ORIGIN_1 us-east ORIGIN_2 us-west
    """

    def __init__(self, redis_client, key: str = config.REDIS_VARIABLES_KEY):
        self.redis_client = redis_client
        self.key = key

    async def snapshot(self) -> Dict[str, str]:
        raw = await self.redis_client.hgetall(self.key) or {}
        out = {}
        for k, v in raw.items():
            # Clients created without decode_responses hand back bytes
            if isinstance(k, bytes):
                k = k.decode()
            if isinstance(v, bytes):
                v = v.decode()
            out[k] = v
        return out

    async def aclose(self):
        await self.redis_client.close()


def get_variable_store(source: str, **kwargs) -> VariableStore:
    """Build the variable store named by VARIABLE_SOURCE."""
    source = (source or "").strip().lower()
    if source == "env":
        return EnvVariableStore(prefix=kwargs.get("prefix", config.VARIABLE_ENV_PREFIX))
    if source == "redis":
        redis_client = kwargs.get("redis_client")
        if redis_client is None:
            redis_client = redis.Redis(host=config.REDIS_HOST, port=config.REDIS_PORT, decode_responses=True)
        return RedisVariableStore(redis_client, key=kwargs.get("key", config.REDIS_VARIABLES_KEY))
    raise ValueError(f"Unknown variable source: {source}")
