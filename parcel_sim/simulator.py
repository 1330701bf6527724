"""
Main simulator module integrating all components.

Implements the fixed-step parcel engine exposed to a renderer.
"""

import logging
import numpy as np
from collections import deque
from concurrent.futures import Future
from datetime import datetime
from functools import partial
from typing import Callable, Dict, List, Optional

from .clock import SimulationClock
from .config import EngineConfig
from .flight import FlightPathGenerator
from .initializer import HandoffError, FullModeInitializer
from .interpolation import SnapshotInterpolator
from .parcel import NAMESPACE_SIZE, LifecycleEvent, Parcel, ParcelState, namespaced_id
from .sources import IdleSource, PointSource, build_full_sources, child_rng

logger = logging.getLogger(__name__)

LIGHTWEIGHT = "lightweight"
FULL = "full"


def freeze_point(point, source_index: int) -> ParcelState:
    """
    Snapshot a point reported by any source into the engine id space.

    Points that are not Parcels only need `location` and `id`.
    """
    offset = source_index * NAMESPACE_SIZE
    uid = namespaced_id(point.id, source_index)
    if isinstance(point, Parcel):
        return ParcelState.from_parcel(point, offset)

    lon, lat = point.location
    predecessor = getattr(point, "predecessor_id", None)
    return ParcelState(
        id=uid,
        lon=float(lon),
        lat=float(lat),
        age=float(getattr(point, "age", 0.0)),
        max_lifetime=float(getattr(point, "max_lifetime", 0.0)),
        lifetime_multiplier=float(getattr(point, "lifetime_multiplier", 1.0)),
        size=getattr(point, "size", 1.0),
        color=getattr(point, "color", (255, 255, 255, 255)),
        predecessor_id=None if predecessor is None else predecessor + offset,
    )


class ParcelSimulator:
    """
    Fixed-step parcel engine.

    Starts in lightweight mode with the built-in idle rules and can hand off
    once to heavyweight full-mode sources constructed in the background.
    Only one thread may call into the engine.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Initialize the engine in lightweight mode.

        Args:
            config: Engine settings (defaults if None)
            rng: Master random generator (seeded from config.seed if None)
        """
        self.config = config or EngineConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self._seeds_used = set()

        self.clock = SimulationClock(self.config.dt, self.config.start_date)
        self.interpolator = SnapshotInterpolator()
        self.events = deque(maxlen=self.config.max_events)
        self.mode = LIGHTWEIGHT
        self._initializer: Optional[FullModeInitializer] = None

        idle = IdleSource(
            child_rng(self.rng, self._seeds_used),
            rate=self.config.ambient_rate,
            speed=self.config.zonal_speed,
            lifetime_range=self.config.ambient_lifetime,
            max_per_step=self.config.max_spawn_per_step,
            interactive_lifetime=self.config.interactive_lifetime,
            lifetime_multiplier=self.config.lifetime_multiplier,
            flights=FlightPathGenerator(
                cruise_speed=self.config.flight_speed,
                segment_length=self.config.flight_segment_length,
                lifetime=self.config.flight_lifetime,
            ),
        )
        idle.populate(self.config.initial_points)
        self.sources: List[PointSource] = []
        self._install([idle])

        logger.info("Lightweight engine started at %s with %d parcels (dt=%.0f s)",
                    self.clock.start_date.isoformat(), len(idle), self.clock.dt)

    # ------------------------------------------------------------------ stepping

    def _install(self, sources: List[PointSource]):
        for source in sources:
            source.start(self.clock.current_time)
        # Single assignment: the new list is complete before it is published
        self.sources = list(sources)

    def step(self):
        """Advance every source by one fixed step."""
        dt = self.clock.dt
        for source in self.sources:
            source.seed(dt)
            source.advance(dt)
            source.cull()
        self.clock.advance()

    def advance_external(self, dt: float) -> int:
        """
        Report elapsed caller time and run the catch-up loop.

        Args:
            dt: Elapsed external time (simulated seconds)

        Returns:
            Number of fixed steps taken

        Raises:
            HandoffError: if a pending full-mode construction failed; the
                lightweight engine has still been stepped
        """
        handoff_error = None
        try:
            self.poll_handoff()
        except HandoffError as e:
            handoff_error = e

        self.clock.advance_external(dt)
        steps = 0
        while self.clock.due():
            self.step()
            steps += 1

        if steps:
            self._capture()

        if handoff_error is not None:
            raise handoff_error
        return steps

    def _capture(self):
        states: Dict[int, ParcelState] = {}
        for index, source in enumerate(self.sources):
            for point in source.active_points():
                state = freeze_point(point, index)
                states[state.id] = state
        self.interpolator.capture(states)

        born, removed = self.interpolator.diff()
        now = self.clock.current_time
        self.events.extend(LifecycleEvent("born", uid, now) for uid in born)
        self.events.extend(LifecycleEvent("removed", uid, now) for uid in removed)

    # ------------------------------------------------------------------ queries

    def get_point_data(self) -> List[ParcelState]:
        """Interpolated parcels for the current external time."""
        return self.interpolator.interpolate(self.clock.step_fraction)

    def get_current_time(self) -> datetime:
        """Calendar time the caller has reached."""
        return self.clock.external_date

    def get_simulated_time(self) -> datetime:
        """Calendar time of the last completed fixed step."""
        return self.clock.current_date

    def drain_events(self) -> List[LifecycleEvent]:
        """Return and forget the lifecycle events since the last drain."""
        events = list(self.events)
        self.events.clear()
        return events

    def get_statistics(self) -> dict:
        """
        Get simulation statistics.

        Returns:
            Dictionary with statistics
        """
        return {
            "mode": self.mode,
            "active_parcels": sum(len(list(s.active_points())) for s in self.sources),
            "queued_parcels": sum(s.pending for s in self.sources),
            "steps": self.clock.step_count,
            "simulation_time": self.clock.elapsed,
            "sources": [s.name for s in self.sources],
        }

    # ------------------------------------------------------------------ commands

    def create_interactive_point(self, lon: float, lat: float) -> Optional[int]:
        """
        Place a parcel at a user-chosen position.

        Returns:
            Engine-wide identifier, or None if no active source accepts it
        """
        for index, source in enumerate(self.sources):
            uid = source.create_point(lon, lat)
            if uid is not None:
                return namespaced_id(uid, index)
        logger.warning("No active source accepts interactive points")
        return None

    def fly_route(
        self,
        origin_lon: float,
        origin_lat: float,
        dest_lon: float,
        dest_lat: float
    ) -> List[int]:
        """
        Schedule the waypoints of a flight along the great circle.

        Returns:
            Engine-wide identifiers of the scheduled waypoints
        """
        for index, source in enumerate(self.sources):
            uids = source.fly_route(origin_lon, origin_lat, dest_lon, dest_lat)
            if uids:
                return [namespaced_id(uid, index) for uid in uids]
        logger.warning("No active source flies routes")
        return []

    def terminate_point(self, uid: int) -> bool:
        """Remove a live parcel by its engine-wide identifier."""
        index, native = divmod(uid, NAMESPACE_SIZE)
        if not 0 <= index < len(self.sources):
            return False
        return self.sources[index].remove(native)

    def clear(self):
        """Remove every live and pending parcel and forget both snapshots."""
        for source in self.sources:
            source.clear()
        self._forget_snapshots()
        logger.info("Engine cleared")

    def _forget_snapshots(self):
        now = self.clock.current_time
        self.events.extend(LifecycleEvent("removed", uid, now) for uid in self.interpolator.new)
        self.interpolator.reset()

    # ------------------------------------------------------------------ hand-off

    @property
    def handoff_state(self) -> Optional[str]:
        return None if self._initializer is None else self._initializer.state

    def request_full_mode(
        self,
        factory: Optional[Callable[[], List[PointSource]]] = None
    ) -> Future:
        """
        Start building the full-mode sources without blocking this thread.

        Args:
            factory: Callable returning the sources (defaults to
                build_full_sources with this engine's config)

        Returns:
            Future of the construction
        """
        if self.mode == FULL:
            raise RuntimeError("Engine is already in full mode")
        if self._initializer is not None and self._initializer.state in ("loading", "ready"):
            raise RuntimeError("Full-mode construction is already running")

        if factory is None:
            factory = partial(build_full_sources, self.config,
                              child_rng(self.rng, self._seeds_used))
        self._initializer = FullModeInitializer(factory)
        return self._initializer.start()

    def poll_handoff(self) -> bool:
        """
        Switch to full mode if construction has finished.

        Returns:
            True if the switch happened on this call

        Raises:
            HandoffError: if construction failed
        """
        if self._initializer is None or self.mode == FULL:
            return False

        sources = self._initializer.poll()
        if sources is None:
            return False

        for source in self.sources:
            source.clear()
        self._forget_snapshots()
        self._install(sources)
        self.mode = FULL
        logger.info("Switched to full mode at %s (%s)",
                    self.get_simulated_time().isoformat(),
                    ", ".join(s.name for s in self.sources))
        return True

    def wait_for_handoff(self, timeout: Optional[float] = None) -> bool:
        """Block until construction finishes, then switch; for scripts and tests."""
        if self._initializer is None:
            return False
        self._initializer.wait(timeout)
        return self.poll_handoff()
