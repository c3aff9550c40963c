"""Per-request origin selection: cache, background refresh, or blocking race."""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from .race import race_origins
from .settings import RaceSettings
from .state import RACE_STATE, RaceState

logger = logging.getLogger(__name__)


class SelectionSource(Enum):
    """Where a request's origin came from."""
    CACHE_HIT = "cache_hit"       # cached winner younger than the TTL
    CACHE_STALE = "cache_stale"   # cached winner past the TTL, stale use allowed
    SYNC_RACE = "sync_race"       # cold start, this request waited on a race
    RANDOM = "random"             # async cold start, or the sync race found no winner


@dataclass
class Selection:
    origin: str
    host: str
    source: SelectionSource
    cache_age_secs: Optional[float] = None
    refresh_started: bool = False

    def as_dict(self) -> dict:
        return {
            "selected_origin": self.host,
            "origin": self.origin,
            "source": self.source.value,
            "cache_age_secs": None if self.cache_age_secs is None else int(self.cache_age_secs),
            "refresh_started": self.refresh_started,
        }


class OriginSelector:
    """Chooses an origin for each request and keeps the shared winner fresh.

    A cached winner is answered without waiting. Once its age passes
    ``ttl * refresh_threshold`` one background race (at most, per process)
    re-measures the origins. With no usable cache the request either waits
    on a race or takes a random origin while a background race fills the
    cache for later requests.
    """

    def __init__(
        self,
        client,
        state: Optional[RaceState] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        race_fn=race_origins,
    ):
        self.client = client
        self.state = state if state is not None else RACE_STATE
        self.clock = clock
        self.rng = rng or random.Random()
        self.race_fn = race_fn
        # Strong references so the loop does not drop fire-and-forget races
        self._background = set()

    async def select(self, settings: RaceSettings) -> Selection:
        now = self.clock()  # frozen for the whole invocation
        ttl = settings.cache_ttl_secs
        entry = self.state.snapshot()

        if entry:
            age = now - entry.measured_at
            fresh = age < ttl
            if fresh or settings.use_stale:
                host = settings.host_for(entry.origin)
                logger.info(
                    "Cache %s: %s age=%ds ttl=%ds",
                    "hit" if fresh else "stale", host, int(age), int(ttl),
                )
                refresh = False
                if age > ttl * settings.refresh_threshold:
                    logger.debug(
                        "Refresh: age=%ds thr=%ds ttl=%ds",
                        int(age), int(ttl * settings.refresh_threshold), int(ttl),
                    )
                    refresh = self._start_background_race(settings, now)
                return Selection(
                    origin=entry.origin,
                    host=host,
                    source=SelectionSource.CACHE_HIT if fresh else SelectionSource.CACHE_STALE,
                    cache_age_secs=age,
                    refresh_started=refresh,
                )
            logger.info("Cache expired: %s age=%ds ttl=%ds, stale use disabled", entry.origin, int(age), int(ttl))
        else:
            logger.info("Cache miss")

        if settings.sync_on_cold:
            logger.info("No cache => sync race (timeout=%dms)", settings.timeout_ms)
            winner = await self._race(settings)
            if winner:
                self.state.record_winner(winner, now)
                host = settings.host_for(winner)
                logger.info("Sync race winner: %s", host)
                return Selection(origin=winner, host=host, source=SelectionSource.SYNC_RACE)
            logger.warning("Sync race failed => using random fallback")
        else:
            logger.info("No cache => async mode (random + background race)")

        origin = self.select_random(settings.origins)
        host = settings.host_for(origin)
        logger.info("Using random origin: %s", host)
        refresh = self._start_background_race(settings, now)
        return Selection(origin=origin, host=host, source=SelectionSource.RANDOM, refresh_started=refresh)

    def select_random(self, origins: List[str]) -> str:
        idx = self.rng.randrange(len(origins))
        logger.debug("Random origin %d/%d: %s", idx + 1, len(origins), origins[idx])
        return origins[idx]

    async def _race(self, settings: RaceSettings) -> Optional[str]:
        return await self.race_fn(
            self.client,
            settings.origins,
            settings.race_domain,
            settings.probe_path,
            settings.probe_method,
            settings.timeout_ms,
        )

    def _start_background_race(self, settings: RaceSettings, timestamp: float) -> bool:
        if not self.state.try_begin_background_race():
            logger.debug("Refresh skipped: race in-flight")
            return False
        logger.debug("Starting background race")
        task = asyncio.create_task(self._background_race(settings, timestamp))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    async def _background_race(self, settings: RaceSettings, timestamp: float):
        try:
            logger.debug("BG race start: timeout=%dms origins=%d", settings.timeout_ms, len(settings.origins))
            winner = await self._race(settings)
            if winner:
                logger.info("BG race winner=%s", winner)
                # Keep the initiating request's start time
                self.state.record_winner(winner, timestamp)
            else:
                logger.warning("BG race no winner")
        except Exception as e:
            logger.error("BG race error: %s", e)
        finally:
            self.state.end_background_race()

    async def wait_for_background(self):
        """Wait for any in-flight background race (shutdown, tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
