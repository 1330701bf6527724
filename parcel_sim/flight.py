"""
Flight-path generator.

Turns an origin/destination pair into a chain of parcels along the great
circle, each scheduled for birth when the aircraft would pass over it.
"""

import logging
from typing import Callable, List, Tuple

from .geodesy import great_circle_waypoints
from .parcel import Color, Parcel

logger = logging.getLogger(__name__)

CYAN = (0, 255, 255, 255)


class FlightPathGenerator:
    """Plans the waypoint parcels of a single flight."""

    def __init__(
        self,
        cruise_speed: float = 230.0,
        segment_length: float = 100.0e3,
        lifetime: float = 24.0 * 3600.0,
        color: Color = CYAN,
        size: float = 0.1
    ):
        """
        Args:
            cruise_speed: Ground speed of the aircraft (m/s)
            segment_length: Distance between waypoints (m)
            lifetime: Lifetime of each waypoint parcel (seconds)
            color: Display color forwarded with each waypoint
            size: Display size forwarded with each waypoint
        """
        if cruise_speed <= 0:
            raise ValueError(f"Cruise speed must be positive, got {cruise_speed}")
        self.cruise_speed = cruise_speed
        self.segment_length = segment_length
        self.lifetime = lifetime
        self.color = color
        self.size = size

    def plan(
        self,
        origin_lon: float,
        origin_lat: float,
        dest_lon: float,
        dest_lat: float,
        start_time: float,
        allocate_id: Callable[[], int]
    ) -> List[Tuple[float, Parcel]]:
        """
        Build the scheduled waypoints of a flight.

        Args:
            origin_lon, origin_lat: Departure position (degrees)
            dest_lon, dest_lat: Arrival position (degrees)
            start_time: Simulated time of departure (seconds)
            allocate_id: Callable returning a fresh identifier per waypoint

        Returns:
            List of (birth_time, parcel), birth times strictly increasing
        """
        lons, lats, segment = great_circle_waypoints(
            origin_lon, origin_lat, dest_lon, dest_lat, self.segment_length
        )
        interval = segment / self.cruise_speed

        entries = []
        previous = None
        for i, (lon, lat) in enumerate(zip(lons, lats)):
            parcel = Parcel(
                id=allocate_id(),
                lon=float(lon),
                lat=float(lat),
                max_lifetime=self.lifetime,
                size=self.size,
                color=self.color,
                predecessor_id=previous,
            )
            entries.append((start_time + i * interval, parcel))
            previous = parcel.id

        logger.info(
            "Planned flight (%.2f, %.2f) -> (%.2f, %.2f): %d waypoints, %.0f s apart",
            origin_lon, origin_lat, dest_lon, dest_lat, len(entries), interval
        )
        return entries
