"""
Tests for spherical helpers and the flight-path generator.
"""

import math

import numpy as np
import pytest
from parcel_sim.flight import FlightPathGenerator
from parcel_sim.geodesy import (
    R_EARTH,
    great_circle_distance,
    great_circle_waypoints,
    intermediate_point,
    wrap_longitude,
    zonal_step,
)


def test_wrap_longitude():
    """Test wrapping into [-180, 180)."""
    assert wrap_longitude(180.0) == -180.0
    assert wrap_longitude(-180.0) == -180.0
    assert wrap_longitude(540.0) == -180.0
    assert wrap_longitude(179.5) == 179.5
    assert wrap_longitude(-190.0) == pytest.approx(170.0)

    wrapped = wrap_longitude(np.array([-720.0, -181.0, 0.0, 359.0, 1e6]))
    assert np.all(wrapped >= -180.0)
    assert np.all(wrapped < 180.0)


def test_zonal_step_equator():
    """Test one hour at 200 km/h on the equator."""
    speed = 200.0 * 1000.0 / 3600.0
    lon = zonal_step(0.0, 0.0, speed, 3600.0)
    expected = 200.0e3 * 360.0 / (2.0 * math.pi * R_EARTH)
    assert lon == pytest.approx(expected)


def test_zonal_step_faster_at_high_latitude():
    """Test the same ground speed covers more longitude near the poles."""
    equator = zonal_step(0.0, 0.0, 50.0, 600.0)
    north = zonal_step(0.0, 60.0, 50.0, 600.0)
    assert north == pytest.approx(2.0 * equator)


def test_zonal_step_wraps():
    """Test crossing the antimeridian wraps the longitude."""
    lons = zonal_step(np.array([179.9, 179.99]), np.array([0.0, 0.0]), 250.0, 3600.0)
    assert np.all(lons < 0.0)
    assert np.all(lons >= -180.0)


def test_great_circle_distance():
    """Test a quarter of the equator."""
    assert great_circle_distance(0.0, 0.0, 90.0, 0.0) == pytest.approx(math.pi * R_EARTH / 2)
    assert great_circle_distance(10.0, 20.0, 10.0, 20.0) == pytest.approx(0.0)


def test_intermediate_point():
    """Test the midpoint of an equatorial arc and of a meridian."""
    lon, lat = intermediate_point(0.0, 0.0, 90.0, 0.0, 0.5)
    assert lon == pytest.approx(45.0)
    assert lat == pytest.approx(0.0, abs=1e-9)

    lon, lat = intermediate_point(0.0, 0.0, 0.0, 60.0, 0.5)
    assert lat == pytest.approx(30.0)


def test_intermediate_point_antipodal():
    """Test antipodal endpoints are joined through the north pole."""
    lon, lat = intermediate_point(0.0, 0.0, 180.0, 0.0, 0.5)
    assert lat == pytest.approx(90.0)

    lon, lat = intermediate_point(0.0, 0.0, 180.0, 0.0, 1.0)
    assert abs(lon) == pytest.approx(180.0)
    assert lat == pytest.approx(0.0, abs=1e-9)

    # Pole to pole runs down the prime meridian
    lon, lat = intermediate_point(0.0, 90.0, 0.0, -90.0, 0.5)
    assert lon == pytest.approx(0.0, abs=1e-9)
    assert lat == pytest.approx(0.0, abs=1e-9)


def test_waypoints_between_antipodes():
    """Test fly_route(0, 0, 180, 0) yields an evenly spaced route."""
    lons, lats, segment = great_circle_waypoints(0.0, 0.0, 180.0, 0.0, 100.0e3)

    assert len(lons) == 201
    assert segment == pytest.approx(100.0e3, rel=0.01)
    gaps = great_circle_distance(lons[:-1], lats[:-1], lons[1:], lats[1:])
    assert np.allclose(gaps, segment, rtol=1e-6)


def test_waypoints_evenly_spaced():
    """Test fly_route(0, 0, 90, 0) spacing of about 100 km."""
    lons, lats, segment = great_circle_waypoints(0.0, 0.0, 90.0, 0.0, 100.0e3)

    assert lons[0] == pytest.approx(0.0)
    assert lons[-1] == pytest.approx(90.0)
    assert segment == pytest.approx(100.0e3, rel=0.01)

    gaps = great_circle_distance(lons[:-1], lats[:-1], lons[1:], lats[1:])
    assert np.allclose(gaps, 100.0e3, rtol=0.01)


def test_waypoints_across_antimeridian():
    """Test routes crossing 180 degrees keep wrapped longitudes."""
    lons, lats, _ = great_circle_waypoints(170.0, 10.0, -170.0, 10.0, 100.0e3)
    assert np.all(lons >= -180.0)
    assert np.all(lons < 180.0)
    gaps = great_circle_distance(lons[:-1], lats[:-1], lons[1:], lats[1:])
    assert np.all(gaps < 120.0e3)


def test_waypoints_degenerate_route():
    """Test origin equal to destination gives one waypoint."""
    lons, lats, segment = great_circle_waypoints(5.0, 5.0, 5.0, 5.0, 100.0e3)
    assert len(lons) == 1
    assert segment == 0.0


def test_flight_plan_schedule():
    """Test birth times increase by segment / cruise speed."""
    counter = iter(range(1, 1000))
    planner = FlightPathGenerator(cruise_speed=230.0, segment_length=100.0e3)
    entries = planner.plan(0.0, 0.0, 90.0, 0.0, start_time=1000.0,
                           allocate_id=lambda: next(counter))

    times = [t for t, _ in entries]
    assert times[0] == 1000.0
    assert all(b > a for a, b in zip(times, times[1:]))
    assert times[1] - times[0] == pytest.approx(100.0e3 / 230.0, rel=0.01)

    parcels = [p for _, p in entries]
    assert parcels[0].predecessor_id is None
    assert [p.predecessor_id for p in parcels[1:]] == [p.id for p in parcels[:-1]]
    assert all(p.max_lifetime == 24.0 * 3600.0 for p in parcels)


def test_flight_plan_rejects_bad_speed():
    """Test a non-positive cruise speed is refused."""
    with pytest.raises(ValueError):
        FlightPathGenerator(cruise_speed=0.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
