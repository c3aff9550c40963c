"""Process-wide winner cache and single-flight flag for background races."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CacheEntry:
    origin: str = ""
    # Start time of the request that launched the winning race, not the race's end
    measured_at: float = 0.0

    def __bool__(self) -> bool:
        return bool(self.origin)


class RaceState:
    """Winner cache plus the background-race guard.

    Both are shared by every request handled in this process. Under asyncio
    each method runs without a suspension point, so check-and-set and the
    cache swap cannot interleave with another request. A threaded host would
    put a lock inside these methods; callers never touch the fields.
    """

    def __init__(self):
        self._entry = CacheEntry()
        self._race_in_flight = False

    def snapshot(self) -> CacheEntry:
        return self._entry

    def record_winner(self, origin: str, timestamp: float):
        # Last writer wins, origin and timestamp swap together
        self._entry = CacheEntry(origin=origin, measured_at=timestamp)

    def try_begin_background_race(self) -> bool:
        """Claim the single background slot. False means one is already running."""
        if self._race_in_flight:
            return False
        self._race_in_flight = True
        return True

    def end_background_race(self):
        self._race_in_flight = False

    @property
    def background_race_in_flight(self) -> bool:
        return self._race_in_flight

    def reset(self):
        self._entry = CacheEntry()
        self._race_in_flight = False


# One per process; the FastAPI app and the default selector share it
RACE_STATE = RaceState()
