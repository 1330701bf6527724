"""
Spawn process for new parcels.

Two mechanisms feed parcels into a source: rate-based ambient spawning and
a queue of births scheduled for a given simulated time.
"""

import math
import numpy as np
from typing import List, Set, Tuple

from .parcel import Parcel

HOUR = 3600.0


def spawn_count(lam: float, p: float, max_count: int = 5) -> int:
    """
    Number of parcels to create in one step.

    Compares the Poisson probability mass at successive counts against a
    single uniform draw. This is not inverse-CDF Poisson sampling; the
    resulting distribution is kept as-is for compatibility.

    Args:
        lam: Expected number of births in the step (dt * rate)
        p: Uniform random value in [0, 1)
        max_count: Upper bound on the returned count

    Returns:
        Count in [0, max_count]
    """
    n = 0
    factorial = 1.0
    decay = math.exp(-lam)
    while n < max_count and (lam ** n) * decay / factorial < p:
        n += 1
        factorial *= n
    return n


class AmbientSpawner:
    """Rate-based random births scattered over the whole globe."""

    def __init__(
        self,
        rate: float,
        rng: np.random.Generator,
        lifetime_range: Tuple[float, float] = (1.0 * HOUR, 24.0 * HOUR),
        max_per_step: int = 5
    ):
        """
        Args:
            rate: Births per simulated second
            rng: Random generator shared with the owning source
            lifetime_range: (min, max) lifetime of new parcels (seconds)
            max_per_step: Cap on births in a single step
        """
        self.rate = rate
        self.rng = rng
        self.lifetime_range = lifetime_range
        self.max_per_step = max_per_step

    def count(self, dt: float) -> int:
        return spawn_count(dt * self.rate, self.rng.random(), self.max_per_step)

    def draw_locations(self, n: int) -> np.ndarray:
        """
        Draw positions and lifetimes for new parcels.

        Returns:
            Array of shape (n, 3) with [lon, lat, lifetime]
        """
        lo, hi = self.lifetime_range
        lons = self.rng.uniform(-180.0, 180.0, n)
        lats = self.rng.uniform(-90.0, 90.0, n)
        lifetimes = lo + (hi - lo) * self.rng.random(n)
        return np.column_stack([lons, lats, lifetimes])


class SpawnQueue:
    """Parcels waiting for their scheduled birth time."""

    def __init__(self):
        self._entries: List[Tuple[float, Parcel]] = []
        self._ids: Set[int] = set()

    def schedule(self, birth_time: float, parcel: Parcel):
        self._entries.append((birth_time, parcel))
        self._ids.add(parcel.id)

    def pop_due(self, now: float) -> List[Parcel]:
        """
        Remove and return every parcel whose birth time is at or before now.

        The whole queue is scanned because several routes can be in flight
        at once, so entries are only ordered within a single route.
        """
        due = [parcel for t, parcel in self._entries if t <= now]
        if due:
            self._entries = [(t, p) for t, p in self._entries if t > now]
            self._ids.difference_update(p.id for p in due)
        return due

    def remove(self, uid: int) -> bool:
        """Drop a pending parcel so it is never born."""
        if uid not in self._ids:
            return False
        self._entries = [(t, p) for t, p in self._entries if p.id != uid]
        self._ids.discard(uid)
        return True

    def peek_times(self) -> List[float]:
        return [t for t, _ in self._entries]

    def clear(self):
        self._entries.clear()
        self._ids.clear()

    def __contains__(self, uid: int) -> bool:
        return uid in self._ids

    def __len__(self) -> int:
        return len(self._entries)
