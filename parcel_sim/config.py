"""
Configuration and logging setup for the parcel simulator.
"""

import json
import logging
import sys
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Optional, Tuple


@dataclass
class FullModeConfig:
    """Settings for the heavyweight point sources loaded on hand-off."""

    lon_limits: Tuple[float, float] = (-180.0, 180.0)
    lat_limits: Tuple[float, float] = (-80.0, 80.0)

    # Dense random seeding
    dense_rate: float = 0.5  # parcels per simulated second
    dense_initial: int = 2000
    dense_lifetime: float = 48.0 * 3600.0

    # Wind model
    wind_speed: float = 5.0
    wind_direction: float = 270.0
    jet_speed: float = 30.0
    turbulence: float = 1.0
    grid_resolution: float = 1.0

    flights_active: bool = True

    def __post_init__(self):
        self.lon_limits = tuple(self.lon_limits)
        self.lat_limits = tuple(self.lat_limits)
        if self.lon_limits[0] >= self.lon_limits[1]:
            raise ValueError(f"Invalid longitude limits {self.lon_limits}")
        if self.lat_limits[0] >= self.lat_limits[1]:
            raise ValueError(f"Invalid latitude limits {self.lat_limits}")
        if self.dense_rate < 0:
            raise ValueError(f"Dense seeding rate cannot be negative ({self.dense_rate})")
        if self.grid_resolution <= 0:
            raise ValueError(f"Grid resolution must be positive ({self.grid_resolution})")


@dataclass
class EngineConfig:
    """Engine settings, already validated when constructed."""

    # Fixed simulation step (seconds)
    dt: float = 300.0
    start_date: Optional[datetime] = None
    seed: Optional[int] = None

    # Undrained lifecycle events kept, oldest dropped first (0 records none)
    max_events: int = 10000

    # Lightweight mode
    initial_points: int = 700
    ambient_rate: float = 1.0 / 3600.0  # parcels per simulated second
    max_spawn_per_step: int = 5
    ambient_lifetime: Tuple[float, float] = (3600.0, 24.0 * 3600.0)
    zonal_speed_kph: float = 200.0
    interactive_lifetime: float = 6.0 * 3600.0
    lifetime_multiplier: float = 1.0

    # Flights
    flight_speed: float = 230.0  # m/s
    flight_segment_length: float = 100.0e3  # m
    flight_lifetime: float = 24.0 * 3600.0

    full: FullModeConfig = field(default_factory=FullModeConfig)

    def __post_init__(self):
        if self.dt <= 0:
            raise ValueError(f"Time step must be positive, got {self.dt}")
        if self.ambient_rate < 0:
            raise ValueError(f"Ambient rate cannot be negative ({self.ambient_rate})")
        if self.initial_points < 0:
            raise ValueError(f"Initial point count cannot be negative ({self.initial_points})")
        if self.max_events < 0:
            raise ValueError(f"Event log size cannot be negative ({self.max_events})")
        self.ambient_lifetime = tuple(self.ambient_lifetime)
        if self.ambient_lifetime[0] > self.ambient_lifetime[1]:
            raise ValueError(f"Invalid lifetime range {self.ambient_lifetime}")
        if self.lifetime_multiplier <= 0:
            raise ValueError(f"Lifetime multiplier must be positive ({self.lifetime_multiplier})")
        if self.flight_speed <= 0 or self.flight_segment_length <= 0:
            raise ValueError("Flight speed and segment length must be positive")

    @property
    def zonal_speed(self) -> float:
        """Zonal transport speed in m/s."""
        return self.zonal_speed_kph * 1000.0 / 3600.0

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        """Build a config from plain values, e.g. a parsed JSON file."""
        data = dict(data)
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

        full = data.pop("full", None)
        if isinstance(full, dict):
            full_known = {f.name for f in fields(FullModeConfig)}
            full_unknown = set(full) - full_known
            if full_unknown:
                raise ValueError(f"Unknown full-mode configuration keys: {sorted(full_unknown)}")
            data["full"] = FullModeConfig(**full)

        start = data.get("start_date")
        if isinstance(start, str):
            try:
                data["start_date"] = datetime.fromisoformat(start)
            except ValueError as e:
                raise ValueError(f"Invalid start date '{start}': {e}")

        return cls(**data)


def load_config(config_file: str) -> EngineConfig:
    """Load configuration from JSON file."""
    with open(config_file, 'r') as f:
        return EngineConfig.from_dict(json.load(f))


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None):
    """
    Configure the 'parcel_sim' logger.

    Args:
        level: Logging level (e.g. logging.DEBUG)
        log_file: Optional path to also write the log to
    """
    logger = logging.getLogger("parcel_sim")
    logger.setLevel(level)
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
