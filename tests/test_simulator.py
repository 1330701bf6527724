"""
Tests for the parcel engine: clock, stepping, snapshots and commands.
"""

import math
from datetime import datetime, timezone

import numpy as np
import pytest
from parcel_sim import EngineConfig, ParcelSimulator, ParcelState
from parcel_sim.parcel import NAMESPACE_SIZE

START = datetime(2024, 3, 15, 6, 0, tzinfo=timezone.utc)


def make_simulator(**overrides):
    """Quiet engine: no initial parcels and no random births unless asked."""
    settings = dict(dt=60.0, start_date=START, seed=7, initial_points=0, ambient_rate=0.0)
    settings.update(overrides)
    return ParcelSimulator(EngineConfig(**settings))


def idle_source(sim):
    return sim.sources[0]


def test_simulator_initialization():
    """Test engine starts in lightweight mode with the initial population."""
    sim = make_simulator(initial_points=25)

    assert sim.mode == "lightweight"
    assert len(sim.sources) == 1
    assert len(idle_source(sim)) == 25
    assert sim.get_current_time() == START


def test_no_data_before_first_step():
    """Test querying before any step returns an empty snapshot."""
    sim = make_simulator(initial_points=25)
    assert sim.get_point_data() == []


def test_step_count_matches_elapsed_time():
    """Test the catch-up loop runs floor(T / dt) steps, within one."""
    sim = make_simulator()
    reports = [10.0, 25.0, 7.5, 100.0, 0.0, 57.5, 600.0]
    total = sum(reports)

    steps = sum(sim.advance_external(dt) for dt in reports)

    assert steps == sim.clock.step_count
    assert abs(steps - math.floor(total / 60.0)) <= 1
    assert sim.clock.current_time == sim.clock.start_time + steps * 60.0


def test_small_reports_skip_steps():
    """Test reports shorter than dt only step once simulated time is reached."""
    sim = make_simulator()
    assert sim.advance_external(0.0) == 1
    assert sim.advance_external(20.0) == 0
    assert sim.advance_external(20.0) == 0
    assert sim.advance_external(20.0) == 1


def test_large_report_runs_many_steps():
    """Test one long report runs several steps in a row."""
    sim = make_simulator()
    sim.advance_external(0.0)
    assert sim.advance_external(600.0) == 10


def test_negative_report_rejected():
    """Test external time cannot run backwards."""
    sim = make_simulator()
    with pytest.raises(ValueError):
        sim.advance_external(-1.0)


def test_simulated_calendar_time():
    """Test simulated time is reported as a calendar date."""
    sim = make_simulator()
    sim.advance_external(90.0)

    assert sim.get_current_time() == datetime(2024, 3, 15, 6, 1, 30, tzinfo=timezone.utc)
    assert sim.get_simulated_time() == datetime(2024, 3, 15, 6, 2, tzinfo=timezone.utc)


def test_longitude_stays_wrapped():
    """Test longitudes stay in [-180, 180) while parcels drift east."""
    sim = make_simulator(initial_points=300, dt=3600.0, zonal_speed_kph=2000.0)
    sim.create_interactive_point(179.99, 89.0)
    sim.create_interactive_point(-180.0, -89.5)

    for _ in range(12):
        sim.advance_external(3600.0)
        lons = idle_source(sim).table.positions()[:, 0]
        assert np.all(lons >= -180.0)
        assert np.all(lons < 180.0)
        for state in sim.get_point_data():
            assert -180.0 <= state.lon < 180.0


def test_latitude_not_changed_by_drift():
    """Test zonal transport leaves latitude alone."""
    sim = make_simulator()
    uid = sim.create_interactive_point(10.0, 45.0)
    sim.advance_external(0.0)
    sim.advance_external(600.0)

    parcel = idle_source(sim).table.get(uid)
    assert parcel.lat == 45.0
    assert parcel.lon > 10.0


def test_age_increases_by_dt():
    """Test a parcel ages by exactly dt per step."""
    sim = make_simulator()
    uid = sim.create_interactive_point(0.0, 0.0)
    parcel = idle_source(sim).table.get(uid)

    sim.advance_external(0.0)
    ages = [parcel.age]
    for _ in range(5):
        sim.advance_external(60.0)
        ages.append(parcel.age)

    assert ages == [60.0 * (i + 1) for i in range(6)]


def test_cull_removes_expired_parcel():
    """Test a parcel vanishes from the first snapshot after it expires."""
    sim = make_simulator(interactive_lifetime=150.0)
    uid = sim.create_interactive_point(0.0, 0.0)

    sim.advance_external(0.0)  # age 60
    assert uid in {s.id for s in sim.get_point_data()}
    sim.advance_external(60.0)  # age 120
    assert uid in {s.id for s in sim.get_point_data()}
    sim.advance_external(60.0)  # age 180 > 150
    assert uid not in {s.id for s in sim.get_point_data()}
    assert uid not in idle_source(sim).table


def test_lifetime_multiplier_scales_cull():
    """Test the lifetime multiplier delays culling."""
    sim = make_simulator(interactive_lifetime=150.0, lifetime_multiplier=2.0)
    uid = sim.create_interactive_point(0.0, 0.0)

    sim.advance_external(0.0)
    sim.advance_external(240.0)  # age 300, limit 300
    assert uid in idle_source(sim).table
    sim.advance_external(60.0)
    assert uid not in idle_source(sim).table


def test_interpolated_positions_between_steps():
    """Test get_point_data blends the old and new snapshots."""
    sim = make_simulator(initial_points=5)
    sim.advance_external(0.0)
    sim.advance_external(60.0)

    old = sim.interpolator.old
    new = sim.interpolator.new

    # Caller is exactly at the previous step boundary
    for state in sim.get_point_data():
        assert state.lon == pytest.approx(old[state.id].lon)
        assert state.lat == pytest.approx(old[state.id].lat)

    # Half way to the next step
    sim.advance_external(30.0)
    for state in sim.get_point_data():
        dlon = (new[state.id].lon - old[state.id].lon + 180.0) % 360.0 - 180.0
        expected = (old[state.id].lon + 0.5 * dlon + 180.0) % 360.0 - 180.0
        assert state.lon == pytest.approx(expected)


def test_interactive_point_wraps_longitude():
    """Test out-of-range longitude is wrapped, latitude passed through."""
    sim = make_simulator()
    uid = sim.create_interactive_point(190.0, 95.0)
    parcel = idle_source(sim).table.get(uid)

    assert parcel.lon == pytest.approx(-170.0)
    assert parcel.lat == 95.0


def test_fly_route_schedules_waypoints():
    """Test flights are queued and promoted as simulated time passes."""
    sim = make_simulator(dt=600.0)
    uids = sim.fly_route(0.0, 0.0, 10.0, 0.0)

    # About 1113 km, so eleven 100 km segments
    assert len(uids) == 12
    assert idle_source(sim).pending == 12

    # Only the departure waypoint is due at the first step
    sim.advance_external(0.0)
    assert len(idle_source(sim)) == 1
    assert idle_source(sim).pending == 11

    sim.advance_external(6000.0)
    assert len(idle_source(sim)) == 12
    assert idle_source(sim).pending == 0


def test_flight_waypoints_reference_predecessor():
    """Test each waypoint carries the id of the one before it."""
    sim = make_simulator()
    uids = sim.fly_route(0.0, 0.0, 5.0, 5.0)
    sim.advance_external(0.0)
    sim.advance_external(10 * 3600.0)

    states = {s.id: s for s in sim.get_point_data()}
    assert states[uids[0]].predecessor_id is None
    for previous, current in zip(uids, uids[1:]):
        assert states[current].predecessor_id == previous


def test_terminate_point():
    """Test explicit removal by identifier."""
    sim = make_simulator()
    uid = sim.create_interactive_point(0.0, 0.0)

    assert sim.terminate_point(uid)
    assert not sim.terminate_point(uid)
    assert not sim.terminate_point(5 * NAMESPACE_SIZE + 1)


def test_terminate_pending_waypoint():
    """Test a waypoint cancelled before its birth time never appears."""
    sim = make_simulator(dt=600.0)
    uids = sim.fly_route(0.0, 0.0, 10.0, 0.0)
    sim.advance_external(0.0)

    assert sim.terminate_point(uids[5])
    assert not sim.terminate_point(uids[5])
    assert idle_source(sim).pending == 10

    sim.drain_events()
    sim.advance_external(6000.0)
    born = {e.id for e in sim.drain_events() if e.kind == "born"}
    live = {s.id for s in sim.get_point_data()}

    assert uids[5] not in born
    assert uids[5] not in live
    assert len(live) == 11


def test_event_log_is_bounded():
    """Test undrained lifecycle events are capped, dropping the oldest."""
    sim = make_simulator(ambient_rate=1.0, ambient_lifetime=(60.0, 60.0), max_events=50)
    for _ in range(100):
        sim.advance_external(60.0)

    assert len(sim.events) == 50
    events = sim.drain_events()
    assert len(events) == 50
    assert events[-1].time == sim.clock.current_time


def test_clear_empties_everything():
    """Test clear drops parcels, queued flights and snapshots."""
    sim = make_simulator(initial_points=20)
    sim.fly_route(0.0, 0.0, 20.0, 0.0)
    sim.advance_external(0.0)
    assert sim.get_point_data()

    sim.clear()

    assert sim.get_point_data() == []
    assert len(idle_source(sim)) == 0
    assert idle_source(sim).pending == 0


def test_lifecycle_events():
    """Test births and removals are queued for the caller to drain."""
    sim = make_simulator(initial_points=3, interactive_lifetime=90.0)
    uid = sim.create_interactive_point(0.0, 0.0)
    sim.advance_external(0.0)

    born = {e.id for e in sim.drain_events() if e.kind == "born"}
    assert uid in born
    assert len(born) == 4
    assert sim.drain_events() == []

    sim.advance_external(60.0)
    removed = [e for e in sim.drain_events() if e.kind == "removed"]
    assert [e.id for e in removed] == [uid]


def test_ambient_spawning_adds_parcels():
    """Test a high birth rate creates parcels with lifetimes in range."""
    sim = make_simulator(ambient_rate=1.0)
    sim.advance_external(0.0)
    sim.advance_external(600.0)

    parcels = list(idle_source(sim).table)
    assert parcels
    for parcel in parcels:
        assert 3600.0 <= parcel.max_lifetime <= 24 * 3600.0
        assert -90.0 <= parcel.lat <= 90.0


def test_statistics():
    """Test statistics summary."""
    sim = make_simulator(initial_points=10)
    sim.advance_external(120.0)

    stats = sim.get_statistics()
    assert stats["mode"] == "lightweight"
    assert stats["active_parcels"] == 10
    assert stats["steps"] == 3
    assert stats["simulation_time"] == 180.0


def test_snapshot_states_are_immutable():
    """Test returned parcel states cannot be modified."""
    sim = make_simulator(initial_points=1)
    sim.advance_external(0.0)
    state = sim.get_point_data()[0]

    assert isinstance(state, ParcelState)
    with pytest.raises(AttributeError):
        state.lon = 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
