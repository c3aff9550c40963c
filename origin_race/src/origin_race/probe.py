"""Single-shot reachability probe against one origin."""

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """A probe failed: non-2xx status, transport error or timeout."""

    def __init__(self, origin: str, reason: str):
        super().__init__(f"{origin} failed: {reason}")
        self.origin = origin
        self.reason = reason


def build_probe_url(origin: str, race_domain: str, path: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    return f"https://{origin}{race_domain}{path}"


async def probe_origin(client, origin: str, url: str, method: str, timeout_ms: int) -> str:
    """Issue one request and return ``origin`` if it answered 2xx.

    The timeout is handed to the client and also enforced around the call, so
    a misbehaving transport cannot hold the race open. No retries.
    """
    timeout_s = max(0, timeout_ms) / 1000.0
    try:
        resp = await asyncio.wait_for(
            client.request(method, url, timeout=httpx.Timeout(timeout_s)),
            timeout=timeout_s,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        raise ProbeError(origin, f"timeout after {timeout_ms}ms")
    except httpx.HTTPError as e:
        raise ProbeError(origin, f"{type(e).__name__}: {e}")

    if not 200 <= resp.status_code < 300:
        raise ProbeError(origin, f"HTTP {resp.status_code}")
    logger.debug("%s OK %d", origin, resp.status_code)
    return origin
