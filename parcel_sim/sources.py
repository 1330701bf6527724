"""
Point sources: the things that create, move and remove parcels.

The engine drives every source through the same four calls (seed, advance,
cull, active_points), whether it is the lightweight built-in rule set or a
heavyweight full-mode provider.
"""

import logging
import numpy as np
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Set

from .atmosphere import AtmosphericModel
from .flight import FlightPathGenerator
from .geodesy import displace, wrap_longitude, zonal_step
from .parcel import Color, IdAllocator, Parcel, ParcelTable
from .spawn import AmbientSpawner, SpawnQueue

logger = logging.getLogger(__name__)

IDLE_SIZE = 0.1
DENSE_COLOR = (255, 255, 255, 127)
DENSE_SIZE = 0.3
FLIGHT_COLOR = (18, 231, 255, 255)
FLIGHT_SIZE = 1.0


def child_rng(master: np.random.Generator, used: Optional[Set[int]] = None) -> np.random.Generator:
    """
    Derive an independent generator for one source from a master generator.

    Seeds already handed out (tracked in `used`) are never reused.
    """
    used = used if used is not None else set()
    while True:
        seed = int(master.integers(0, 2**32))
        if seed not in used:
            used.add(seed)
            return np.random.default_rng(seed)


class PointSource(ABC):
    """Capability interface for anything that owns a population of parcels."""

    name = "source"

    def start(self, time: float):
        """Called by the engine when the source becomes active at `time`."""

    @abstractmethod
    def seed(self, dt: float):
        """Create the parcels due in the coming step."""

    @abstractmethod
    def advance(self, dt: float):
        """Move and age every live parcel by one step."""

    @abstractmethod
    def cull(self) -> List[int]:
        """Remove expired parcels and return their identifiers."""

    @abstractmethod
    def active_points(self) -> Iterable[Parcel]:
        """Live parcels; each reports at least `location` and `id`."""

    def remove(self, uid: int) -> bool:
        """Terminate a parcel by its native identifier."""
        return False

    def clear(self):
        """Drop every live and pending parcel."""

    def create_point(self, lon: float, lat: float) -> Optional[int]:
        """Place a parcel on request; None if the source does not accept one."""
        return None

    def fly_route(self, origin_lon: float, origin_lat: float,
                  dest_lon: float, dest_lat: float) -> List[int]:
        """Schedule a flight; empty if the source does not fly routes."""
        return []

    @property
    def pending(self) -> int:
        return 0


class TableSource(PointSource):
    """
    Point source backed by a ParcelTable and a queue of scheduled births.

    Subclasses supply the motion rule in `_move`.
    """

    def __init__(
        self,
        rng: np.random.Generator,
        lifetime_multiplier: float = 1.0,
        flights: Optional[FlightPathGenerator] = None,
        start_time: float = 0.0
    ):
        self.rng = rng
        self.lifetime_multiplier = lifetime_multiplier
        self.flights = flights
        self.table = ParcelTable()
        self.queue = SpawnQueue()
        self.ids = IdAllocator(in_use=self.holds)
        self.time = start_time

    def start(self, time: float):
        self.time = time

    def add_parcel(self, lon: float, lat: float, lifetime: float,
                   size: float = 1.0, color: Optional[Color] = None) -> Parcel:
        parcel = Parcel(
            id=self.ids.next_id(),
            lon=wrap_longitude(lon),
            lat=float(lat),
            max_lifetime=float(lifetime),
            lifetime_multiplier=self.lifetime_multiplier,
            size=size,
        )
        if color is not None:
            parcel.color = color
        self.table.add(parcel)
        return parcel

    def _promote_due(self) -> int:
        due = self.queue.pop_due(self.time)
        for parcel in due:
            parcel.lifetime_multiplier = self.lifetime_multiplier
            self.table.add(parcel)
        return len(due)

    def seed(self, dt: float):
        self._promote_due()

    def advance(self, dt: float):
        parcels = list(self.table)
        if parcels:
            lons = np.array([p.lon for p in parcels])
            lats = np.array([p.lat for p in parcels])
            new_lons, new_lats = self._move(lons, lats, dt)
            for parcel, lon, lat in zip(parcels, new_lons, new_lats):
                parcel.lon = float(lon)
                parcel.lat = float(lat)
                parcel.age += dt
        self.time += dt

    @abstractmethod
    def _move(self, lons: np.ndarray, lats: np.ndarray, dt: float):
        """Return new (lons, lats) arrays after one step."""

    def cull(self) -> List[int]:
        removed = self.table.cull()
        if removed:
            logger.debug("%s: culled %d parcels", self.name, len(removed))
        return removed

    def active_points(self) -> Iterable[Parcel]:
        return iter(self.table)

    def remove(self, uid: int) -> bool:
        """Terminate a live parcel or cancel a scheduled one."""
        if self.table.remove(uid) is not None:
            return True
        return self.queue.remove(uid)

    def holds(self, uid: int) -> bool:
        """True while an identifier belongs to a live or scheduled parcel."""
        return uid in self.table or uid in self.queue

    def clear(self):
        self.table.clear()
        self.queue.clear()

    def fly_route(self, origin_lon, origin_lat, dest_lon, dest_lat) -> List[int]:
        if self.flights is None:
            return []
        entries = self.flights.plan(
            origin_lon, origin_lat, dest_lon, dest_lat, self.time, self.ids.next_id
        )
        for birth_time, parcel in entries:
            self.queue.schedule(birth_time, parcel)
        return [parcel.id for _, parcel in entries]

    @property
    def pending(self) -> int:
        return len(self.queue)

    def __len__(self) -> int:
        return len(self.table)


class IdleSource(TableSource):
    """
    Lightweight built-in rules: random births, eastward drift, age culling.
    """

    name = "idle"

    def __init__(
        self,
        rng: np.random.Generator,
        rate: float = 1.0 / 3600.0,
        speed: float = 200.0 * 1000.0 / 3600.0,
        lifetime_range=(3600.0, 24.0 * 3600.0),
        max_per_step: int = 5,
        interactive_lifetime: float = 6.0 * 3600.0,
        lifetime_multiplier: float = 1.0,
        flights: Optional[FlightPathGenerator] = None,
        start_time: float = 0.0
    ):
        """
        Args:
            rng: Random generator for births
            rate: Ambient births per simulated second
            speed: Eastward ground speed of every parcel (m/s)
            lifetime_range: (min, max) lifetime of random parcels (seconds)
            max_per_step: Cap on random births per step
            interactive_lifetime: Lifetime of user-placed parcels (seconds)
            lifetime_multiplier: Scale applied to every parcel's lifetime
            flights: Planner used by fly_route (flights disabled if None)
            start_time: Simulated time the source starts at (seconds)
        """
        super().__init__(rng, lifetime_multiplier, flights, start_time)
        self.speed = speed
        self.interactive_lifetime = interactive_lifetime
        self.spawner = AmbientSpawner(rate, rng, lifetime_range, max_per_step)
        self.total_spawned = 0

    def populate(self, n: int) -> List[int]:
        """Scatter n random parcels over the globe immediately."""
        uids = []
        for lon, lat, lifetime in self.spawner.draw_locations(n):
            uids.append(self.add_parcel(lon, lat, lifetime, size=IDLE_SIZE).id)
        self.total_spawned += len(uids)
        return uids

    def seed(self, dt: float):
        promoted = self._promote_due()
        n_new = self.spawner.count(dt)
        if n_new:
            self.populate(n_new)
        if promoted or n_new:
            logger.debug("idle: %d scheduled and %d random births", promoted, n_new)

    def _move(self, lons, lats, dt):
        return zonal_step(lons, lats, self.speed, dt), lats

    def create_point(self, lon: float, lat: float) -> Optional[int]:
        return self.add_parcel(lon, lat, self.interactive_lifetime, size=IDLE_SIZE).id


class WindSource(TableSource):
    """Table source whose parcels drift with an atmospheric model."""

    def __init__(self, atmosphere: AtmosphericModel, rng: np.random.Generator, **kwargs):
        super().__init__(rng, **kwargs)
        self.atmosphere = atmosphere

    def _move(self, lons, lats, dt):
        u, v = self.atmosphere.get_wind_velocity(lons, lats, self.time)
        du, dv = self.atmosphere.get_turbulent_velocity(dt, self.rng, len(lons))
        return displace(lons, lats, np.asarray(u) + du, np.asarray(v) + dv, dt)


class DenseSource(WindSource):
    """
    Full-mode source seeding parcels at random inside a region.

    Parcels that drift out of the latitude band are culled along with the
    expired ones.
    """

    name = "dense"

    def __init__(
        self,
        atmosphere: AtmosphericModel,
        rng: np.random.Generator,
        lon_limits=(-180.0, 180.0),
        lat_limits=(-90.0, 90.0),
        rate: float = 0.5,
        lifetime: float = 48.0 * 3600.0,
        lifetime_multiplier: float = 1.0,
        start_time: float = 0.0
    ):
        super().__init__(atmosphere, rng, lifetime_multiplier=lifetime_multiplier,
                         start_time=start_time)
        self.lon_limits = lon_limits
        self.lat_limits = lat_limits
        self.rate = rate
        self.lifetime = lifetime

    def populate(self, n: int) -> List[int]:
        lons = self.rng.uniform(self.lon_limits[0], self.lon_limits[1], n)
        lats = self.rng.uniform(self.lat_limits[0], self.lat_limits[1], n)
        return [
            self.add_parcel(lon, lat, self.lifetime, size=DENSE_SIZE, color=DENSE_COLOR).id
            for lon, lat in zip(lons, lats)
        ]

    def seed(self, dt: float):
        self._promote_due()
        n_new = int(self.rng.poisson(self.rate * dt))
        if n_new:
            self.populate(n_new)

    def cull(self) -> List[int]:
        removed = super().cull()
        lo, hi = self.lat_limits
        outside = [p.id for p in self.table if not lo <= p.lat <= hi]
        for uid in outside:
            self.table.remove(uid)
        return removed + outside

    def create_point(self, lon: float, lat: float) -> Optional[int]:
        return self.add_parcel(lon, lat, self.lifetime, size=DENSE_SIZE, color=DENSE_COLOR).id


class FlightSource(WindSource):
    """Full-mode source holding flight waypoints, advected by the wind."""

    name = "flights"

    def __init__(self, atmosphere: AtmosphericModel, rng: np.random.Generator,
                 flights: FlightPathGenerator, lifetime_multiplier: float = 1.0,
                 start_time: float = 0.0):
        super().__init__(atmosphere, rng, lifetime_multiplier=lifetime_multiplier,
                         flights=flights, start_time=start_time)


def build_full_sources(config, rng: Optional[np.random.Generator] = None) -> List[PointSource]:
    """
    Construct the heavyweight full-mode sources.

    This tabulates the wind field and scatters the initial dense population,
    so it is meant to run off the update thread.

    Args:
        config: EngineConfig with a `full` section
        rng: Master generator; sources get independent child generators

    Returns:
        List of ready-to-run point sources
    """
    full = config.full
    rng = rng if rng is not None else np.random.default_rng(config.seed)
    seeds_used: Set[int] = set()

    atmosphere = AtmosphericModel(
        wind_speed=full.wind_speed,
        wind_direction=full.wind_direction,
        jet_speed=full.jet_speed,
        turbulence=full.turbulence,
    )
    atmosphere.precompute_grid(full.grid_resolution)

    dense = DenseSource(
        atmosphere,
        child_rng(rng, seeds_used),
        lon_limits=full.lon_limits,
        lat_limits=full.lat_limits,
        rate=full.dense_rate,
        lifetime=full.dense_lifetime,
        lifetime_multiplier=config.lifetime_multiplier,
    )
    dense.populate(full.dense_initial)
    sources: List[PointSource] = [dense]

    if full.flights_active:
        planner = FlightPathGenerator(
            cruise_speed=config.flight_speed,
            segment_length=config.flight_segment_length,
            lifetime=config.flight_lifetime,
            color=FLIGHT_COLOR,
            size=FLIGHT_SIZE,
        )
        sources.append(FlightSource(atmosphere, child_rng(rng, seeds_used), planner,
                                    lifetime_multiplier=config.lifetime_multiplier))

    logger.info("Full-mode sources built: %s (%d initial parcels)",
                ", ".join(s.name for s in sources), len(dense))
    return sources
