"""
Parcel module for the point-lifecycle simulation.

Defines individual air parcels, the per-source entity table and the
identifier namespacing used when several point sources run side by side.
"""

import numpy as np
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

# Each point source owns one block of identifiers of this size
NAMESPACE_SIZE = 1_000_000

WHITE = (255, 255, 255, 255)

Color = Tuple[int, int, int, int]


class NamespaceOverflowError(RuntimeError):
    """Raised when a source runs out of identifiers in its namespace."""


@dataclass
class Parcel:
    """Represents a single air parcel tracked by a point source."""

    id: int

    # Position (degrees)
    lon: float
    lat: float

    # Lifetime (seconds)
    max_lifetime: float
    age: float = 0.0
    lifetime_multiplier: float = 1.0

    # Display hints, stored and forwarded but never read by the engine
    size: float = 1.0
    color: Color = WHITE

    # Previous waypoint of the same flight, if any
    predecessor_id: Optional[int] = None

    @property
    def location(self) -> Tuple[float, float]:
        return self.lon, self.lat

    @property
    def expired(self) -> bool:
        """True once the parcel has outlived its (scaled) lifetime."""
        return self.age > self.max_lifetime * self.lifetime_multiplier


@dataclass(frozen=True)
class ParcelState:
    """Immutable copy of a parcel as captured in a snapshot."""

    id: int
    lon: float
    lat: float
    age: float
    max_lifetime: float
    lifetime_multiplier: float = 1.0
    size: float = 1.0
    color: Color = WHITE
    predecessor_id: Optional[int] = None

    @classmethod
    def from_parcel(cls, parcel: Parcel, offset: int = 0) -> "ParcelState":
        """Freeze a live parcel, shifting its ids into a source namespace."""
        predecessor = parcel.predecessor_id
        if predecessor is not None:
            predecessor += offset
        return cls(
            id=parcel.id + offset,
            lon=float(parcel.lon),
            lat=float(parcel.lat),
            age=float(parcel.age),
            max_lifetime=float(parcel.max_lifetime),
            lifetime_multiplier=float(parcel.lifetime_multiplier),
            size=parcel.size,
            color=parcel.color,
            predecessor_id=predecessor,
        )

    @property
    def location(self) -> Tuple[float, float]:
        return self.lon, self.lat

    @property
    def life_fraction(self) -> float:
        """Fraction of the scaled lifetime already used, for fading."""
        span = self.max_lifetime * self.lifetime_multiplier
        if span <= 0:
            return 0.0
        return self.age / span


@dataclass(frozen=True)
class LifecycleEvent:
    """A parcel appearing in or vanishing from the published snapshot."""

    kind: str  # "born" or "removed"
    id: int
    time: float


def namespaced_id(native_id: int, source_index: int) -> int:
    """
    Map a source-local identifier into the engine-wide identifier space.

    Args:
        native_id: Identifier as reported by the point source
        source_index: Position of the source in the engine's source list

    Returns:
        source_index * NAMESPACE_SIZE + native_id
    """
    if not 0 <= native_id < NAMESPACE_SIZE:
        raise NamespaceOverflowError(
            f"Source {source_index} reported identifier {native_id}, "
            f"outside its namespace of {NAMESPACE_SIZE}"
        )
    return source_index * NAMESPACE_SIZE + native_id


class IdAllocator:
    """
    Hands out identifiers in [first, limit), counting upwards.

    Once the top of the range is reached the count wraps to `first`,
    skipping every identifier for which `in_use` is true, so an identifier
    is only handed out again after nothing holds it any more.
    """

    def __init__(
        self,
        first: int = 1,
        limit: int = NAMESPACE_SIZE,
        in_use: Optional[Callable[[int], bool]] = None
    ):
        """
        Args:
            first: Lowest identifier handed out
            limit: One past the highest identifier handed out
            in_use: Callable telling whether an identifier is still held
        """
        self.first = first
        self.limit = limit
        self.in_use = in_use
        self._next = first

    def next_id(self) -> int:
        span = self.limit - self.first
        for _ in range(max(span, 0)):
            if self._next >= self.limit:
                if self.in_use is None:
                    break
                self._next = self.first
            uid = self._next
            self._next += 1
            if self.in_use is None or not self.in_use(uid):
                return uid
        raise NamespaceOverflowError(
            f"Identifier space of {self.limit} exhausted"
        )

    @property
    def issued(self) -> int:
        """Next identifier that would be handed out."""
        return self._next


class ParcelTable:
    """Authoritative mapping from identifier to parcel for one source."""

    def __init__(self):
        self._parcels: Dict[int, Parcel] = {}

    def add(self, parcel: Parcel):
        """Add a parcel to the table."""
        if parcel.id in self._parcels:
            raise ValueError(f"Parcel {parcel.id} is already in the table")
        self._parcels[parcel.id] = parcel

    def remove(self, uid: int) -> Optional[Parcel]:
        return self._parcels.pop(uid, None)

    def get(self, uid: int) -> Optional[Parcel]:
        return self._parcels.get(uid)

    def clear(self):
        self._parcels.clear()

    def cull(self) -> List[int]:
        """
        Remove every parcel whose age exceeds its scaled lifetime.

        Returns:
            Identifiers of the removed parcels
        """
        expired = [uid for uid, p in self._parcels.items() if p.expired]
        for uid in expired:
            del self._parcels[uid]
        return expired

    def positions(self) -> np.ndarray:
        """
        Get positions of all parcels.

        Returns:
            Array of shape (n, 2) with [lon, lat]
        """
        if not self._parcels:
            return np.array([]).reshape(0, 2)
        return np.array([[p.lon, p.lat] for p in self._parcels.values()])

    def __contains__(self, uid: int) -> bool:
        return uid in self._parcels

    def __len__(self) -> int:
        return len(self._parcels)

    def __iter__(self) -> Iterator[Parcel]:
        return iter(list(self._parcels.values()))
