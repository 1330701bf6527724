"""
Spherical geometry helpers.

Longitudes and latitudes are in degrees, distances in metres. Functions
accept scalars or numpy arrays.
"""

import numpy as np
from typing import Tuple

R_EARTH = 6378.0e3  # Earth radius [m]


def wrap_longitude(lon):
    """Wrap longitude into [-180, 180)."""
    wrapped = np.mod(np.asarray(lon, dtype=float) + 180.0, 360.0) - 180.0
    # fmod rounding can land exactly on +180
    wrapped = np.where(wrapped >= 180.0, wrapped - 360.0, wrapped)
    if np.ndim(wrapped) == 0:
        return float(wrapped)
    return wrapped


def local_circumference(lat):
    """Length of the circle of latitude (m)."""
    return 2.0 * np.pi * R_EARTH * np.cos(np.radians(lat))


def zonal_step(lon, lat, speed: float, dt: float):
    """
    Move eastward at a fixed ground speed.

    Args:
        lon, lat: Position (degrees)
        speed: Eastward ground speed (m/s)
        dt: Time step (seconds)

    Returns:
        New longitude, wrapped into [-180, 180)
    """
    dlon = dt * speed * 360.0 / local_circumference(lat)
    return wrap_longitude(np.asarray(lon, dtype=float) + dlon)


def displace(lon, lat, u, v, dt: float):
    """
    Move a position by an eastward (u) and northward (v) velocity in m/s.

    Returns:
        Tuple of (lon, lat); longitude wrapped, latitude left as computed
    """
    meters_per_degree_lat = np.pi * R_EARTH / 180.0
    meters_per_degree_lon = meters_per_degree_lat * np.cos(np.radians(lat))

    dlat = np.asarray(v) * dt / meters_per_degree_lat
    dlon = np.asarray(u) * dt / meters_per_degree_lon
    return wrap_longitude(np.asarray(lon, dtype=float) + dlon), np.asarray(lat, dtype=float) + dlat


def great_circle_distance(lon1, lat1, lon2, lat2):
    """Haversine distance between two positions (m)."""
    phi1, phi2 = np.radians(lat1), np.radians(lat2)
    dphi = phi2 - phi1
    dlam = np.radians(np.asarray(lon2) - np.asarray(lon1))
    a = np.sin(dphi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(dlam / 2) ** 2
    return 2.0 * R_EARTH * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def _to_vector(lon, lat) -> np.ndarray:
    lam, phi = np.radians(lon), np.radians(lat)
    return np.array([np.cos(phi) * np.cos(lam), np.cos(phi) * np.sin(lam), np.sin(phi)])


def _pole_direction(a: np.ndarray) -> np.ndarray:
    """Unit vector perpendicular to a, pointing towards the north pole."""
    toward = np.array([0.0, 0.0, 1.0])
    u = toward - a[2] * a
    if np.linalg.norm(u) < 1e-9:
        # a is itself a pole, so head along the prime meridian instead
        toward = np.array([1.0, 0.0, 0.0])
        u = toward - a[0] * a
    return u / np.linalg.norm(u)


def intermediate_point(lon1, lat1, lon2, lat2, fraction):
    """
    Point a given fraction of the way along the great circle.

    Antipodal endpoints are joined by the great circle through the north
    pole (or along the prime meridian when both endpoints are poles).

    Returns:
        Tuple of (lon, lat) in degrees
    """
    fraction = np.asarray(fraction, dtype=float)
    a = _to_vector(lon1, lat1)
    b = _to_vector(lon2, lat2)
    cos_omega = np.clip(np.dot(a, b), -1.0, 1.0)
    omega = np.arccos(cos_omega)

    if omega < 1e-12:
        lons = np.full(fraction.shape, float(lon1))
        lats = np.full(fraction.shape, float(lat1))
    else:
        # Rotate a towards b within their plane, u being the in-plane normal to a
        u = b - cos_omega * a
        norm = np.linalg.norm(u)
        if norm < 1e-9:
            u = _pole_direction(a)
        else:
            u = u / norm
        angle = fraction * omega
        xyz = np.multiply.outer(np.cos(angle), a) + np.multiply.outer(np.sin(angle), u)
        lons = np.degrees(np.arctan2(xyz[..., 1], xyz[..., 0]))
        lats = np.degrees(np.arctan2(xyz[..., 2], np.hypot(xyz[..., 0], xyz[..., 1])))

    lons = wrap_longitude(lons)
    if np.ndim(lons) == 0:
        return float(lons), float(lats)
    return lons, lats


def great_circle_waypoints(
    lon1: float,
    lat1: float,
    lon2: float,
    lat2: float,
    segment_length: float
) -> Tuple[np.ndarray, np.ndarray, float]:
    """
    Evenly spaced waypoints along the great circle between two positions.

    The route is cut into the whole number of equal segments closest to
    segment_length, so every consecutive pair is about that far apart.

    Args:
        lon1, lat1: Origin (degrees)
        lon2, lat2: Destination (degrees)
        segment_length: Desired spacing between waypoints (m)

    Returns:
        Tuple of (lons, lats, actual_segment_length); both endpoints included
    """
    if segment_length <= 0:
        raise ValueError(f"Segment length must be positive, got {segment_length}")

    distance = float(great_circle_distance(lon1, lat1, lon2, lat2))
    if distance == 0.0:
        return np.array([wrap_longitude(lon1)]), np.array([float(lat1)]), 0.0

    n_segments = max(1, int(round(distance / segment_length)))
    fractions = np.linspace(0.0, 1.0, n_segments + 1)
    lons, lats = intermediate_point(lon1, lat1, lon2, lat2, fractions)
    return lons, lats, distance / n_segments
