"""
Example script demonstrating the Python API.
"""

from parcel_sim import EngineConfig, HandoffError, ParcelSimulator, RasterOutput


def main():
    """Run example simulation."""
    print("Starting lightweight engine...")
    simulator = ParcelSimulator(EngineConfig(seed=42))

    # A few flights for the renderer to show as trails
    simulator.fly_route(-0.45, 51.47, -73.78, 40.64)  # London - New York
    simulator.fly_route(139.78, 35.55, -122.38, 37.62)  # Tokyo - San Francisco

    print("Requesting full mode in the background...")
    simulator.request_full_mode()

    # Emulate a 60 fps render loop at one simulated hour per second
    frame_dt = 3600.0 / 60.0
    for frame in range(60 * 12):
        try:
            simulator.advance_external(frame_dt)
        except HandoffError as e:
            print(f"  Full mode unavailable: {e}")
        points = simulator.get_point_data()
        events = simulator.drain_events()
        if frame % 60 == 0:
            print(f"  {simulator.get_current_time():%Y-%m-%d %H:%M} "
                  f"[{simulator.mode}] {len(points)} parcels, "
                  f"{len(events)} events this frame")

    print("\nSimulation statistics:")
    for key, value in simulator.get_statistics().items():
        print(f"  {key}: {value}")

    raster = RasterOutput(resolution=2.0)
    raster.add_snapshot(simulator.get_point_data())
    raster.save_raster("example_api_output")
    print("\nDone! Check example_api_output.png and example_api_output.pgw")


if __name__ == "__main__":
    main()
