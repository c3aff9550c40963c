"""First-success race across all origins."""

import asyncio
import logging
from typing import List, Optional

from .probe import ProbeError, build_probe_url, probe_origin

logger = logging.getLogger(__name__)


async def race_origins(
    client,
    origins: List[str],
    race_domain: str,
    path: str,
    method: str,
    timeout_ms: int,
) -> Optional[str]:
    """
    Probe every origin concurrently and return the first one to answer 2xx.

    Args:
        client: httpx.AsyncClient-compatible object exposing ``request``
        origins: Origin ids, probed as https://{origin}{race_domain}{path}
        race_domain: Racing domain suffix
        path: Probe path (with optional query)
        method: GET or HEAD
        timeout_ms: Per-probe timeout, the same for every origin

    Returns:
        The winning origin id, or None when every probe failed. Probe
        failures never propagate out of the race.
    """
    if not origins:
        logger.warning("Race aborted: no origins")
        return None

    logger.debug(
        "Race begin: origins=%d race_domain=%s path=%s method=%s timeout=%dms",
        len(origins), race_domain, path, method, timeout_ms,
    )

    tasks = {}
    for i, origin in enumerate(origins):
        url = build_probe_url(origin, race_domain, path)
        logger.debug("Probe[%d]: %s %s timeout=%dms", i + 1, method, url, timeout_ms)
        tasks[asyncio.create_task(probe_origin(client, origin, url, method, timeout_ms))] = origin

    winner = None
    try:
        while tasks and winner is None:
            done, _ = await asyncio.wait(tasks.keys(), return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                origin = tasks.pop(task)
                try:
                    result = task.result()
                except ProbeError as e:
                    logger.debug("%s failed: %s", origin, e.reason)
                    continue
                except Exception as e:
                    logger.debug("%s failed: %s", origin, e)
                    continue
                if winner is None:
                    winner = result
    finally:
        # Losers are abandoned; their outcome is never consulted
        for task in tasks:
            task.cancel()

    if winner is None:
        logger.warning("Race failed (all origins)")
        return None
    logger.info("Race winner=%s", winner)
    return winner
