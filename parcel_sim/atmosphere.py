"""
Atmospheric model for full-mode parcel transport.

Provides a simple, replaceable wind field for the full-mode point sources.
"""

import logging
import numpy as np
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)


class AtmosphericModel:
    """
    Simple atmospheric model for parcel transport.

    Provides horizontal wind velocity and turbulent perturbations.
    """

    def __init__(
        self,
        wind_speed: float = 5.0,
        wind_direction: float = 270.0,
        jet_speed: float = 0.0,
        jet_latitude: float = 45.0,
        jet_width: float = 10.0,
        turbulence: float = 0.0,
        custom_wind_field: Optional[Callable] = None
    ):
        """
        Initialize atmospheric model.

        Args:
            wind_speed: Background wind speed (m/s)
            wind_direction: Background wind direction (degrees, 0=North, 90=East)
            jet_speed: Peak westerly jet speed added in both hemispheres (m/s)
            jet_latitude: Latitude of the jet cores (degrees)
            jet_width: Gaussian half-width of the jets (degrees)
            turbulence: Horizontal turbulent velocity scale (m/s)
            custom_wind_field: Optional custom wind field function(lon, lat, time) -> (u, v)
        """
        self.wind_speed = wind_speed
        self.wind_direction = wind_direction
        self.jet_speed = jet_speed
        self.jet_latitude = jet_latitude
        self.jet_width = jet_width
        self.turbulence = turbulence
        self.custom_wind_field = custom_wind_field

        # Optional lookup grid, filled by precompute_grid()
        self._grid_lons: Optional[np.ndarray] = None
        self._grid_lats: Optional[np.ndarray] = None
        self._grid_u: Optional[np.ndarray] = None
        self._grid_v: Optional[np.ndarray] = None

    def _analytic_wind(self, lon, lat) -> Tuple[np.ndarray, np.ndarray]:
        lat = np.asarray(lat, dtype=float)

        # Convert from meteorological convention (direction FROM which wind blows)
        direction_rad = np.radians(self.wind_direction)
        u = -self.wind_speed * np.sin(direction_rad) * np.ones_like(lat)
        v = -self.wind_speed * np.cos(direction_rad) * np.ones_like(lat)

        if self.jet_speed:
            core = np.abs(lat) - self.jet_latitude
            u = u + self.jet_speed * np.exp(-(core / self.jet_width) ** 2)

        return u, v

    def precompute_grid(self, resolution: float = 1.0):
        """
        Tabulate the wind field on a regular lon/lat grid.

        Later lookups use the nearest grid cell instead of evaluating the
        field per parcel.
        """
        self._grid_lons = np.arange(-180.0, 180.0, resolution)
        self._grid_lats = np.arange(-90.0, 90.0 + resolution / 2, resolution)
        lon2d, lat2d = np.meshgrid(self._grid_lons, self._grid_lats)

        if self.custom_wind_field:
            u, v = self.custom_wind_field(lon2d, lat2d, 0.0)
            u = np.broadcast_to(np.asarray(u, dtype=float), lon2d.shape)
            v = np.broadcast_to(np.asarray(v, dtype=float), lon2d.shape)
        else:
            u, v = self._analytic_wind(lon2d, lat2d)

        self._grid_u = np.array(u)
        self._grid_v = np.array(v)
        logger.debug("Wind grid tabulated: %d x %d at %.2f deg",
                     len(self._grid_lats), len(self._grid_lons), resolution)

    @property
    def has_grid(self) -> bool:
        return self._grid_u is not None

    def get_wind_velocity(
        self,
        lon,
        lat,
        time: float = 0.0
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Get wind velocity components at given positions and time.

        Args:
            lon: Longitude(s) (degrees)
            lat: Latitude(s) (degrees)
            time: Simulation time (seconds)

        Returns:
            Tuple of (u, v) wind components in m/s
            u: eastward component
            v: northward component
        """
        if self.has_grid:
            res = self._grid_lons[1] - self._grid_lons[0] if len(self._grid_lons) > 1 else 360.0
            j = np.mod(np.rint((np.asarray(lon) + 180.0) / res).astype(int), len(self._grid_lons))
            i = np.clip(np.rint((np.asarray(lat) + 90.0) / res).astype(int), 0, len(self._grid_lats) - 1)
            return self._grid_u[i, j], self._grid_v[i, j]

        if self.custom_wind_field:
            return self.custom_wind_field(lon, lat, time)

        return self._analytic_wind(lon, lat)

    def get_turbulent_velocity(
        self,
        dt: float,
        rng: np.random.Generator,
        n: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Get turbulent velocity components (random walk).

        Args:
            dt: Time step (seconds)
            rng: Random generator of the calling source
            n: Number of parcels

        Returns:
            Tuple of (du, dv) arrays in m/s
        """
        if self.turbulence <= 0 or n == 0:
            return np.zeros(n), np.zeros(n)

        # Random walk with time scaling relative to a one-minute reference
        sigma = self.turbulence * np.sqrt(dt / 60.0)
        du = rng.normal(0, sigma, n)
        dv = rng.normal(0, sigma, n)
        return du, dv
