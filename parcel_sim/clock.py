"""
Simulation clock.

Tracks simulated time against the time reported by the caller (usually a
render loop) so that the engine can run zero, one or many fixed steps per
report.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SimulationClock:
    """
    Fixed-step clock with an externally driven target time.

    All times are seconds since the reference epoch.
    """

    def __init__(
        self,
        dt: float,
        start_date: Optional[datetime] = None,
        reference_date: datetime = EPOCH
    ):
        """
        Initialize the clock.

        Args:
            dt: Fixed simulation step (seconds)
            start_date: Calendar time of the first step (defaults to now, UTC)
            reference_date: Epoch that times are counted from
        """
        if dt <= 0:
            raise ValueError(f"Time step must be positive, got {dt}")
        if start_date is None:
            start_date = datetime.now(timezone.utc)
        elif start_date.tzinfo is None:
            start_date = start_date.replace(tzinfo=timezone.utc)

        self.dt = float(dt)
        self.reference_date = reference_date
        self.start_date = start_date
        self.start_time = (start_date - reference_date).total_seconds()
        self.step_count = 0

        # Where the caller thinks we are
        self.external_time = self.start_time

    @property
    def current_time(self) -> float:
        """Simulated time at the last fixed-step boundary."""
        return self.start_time + self.step_count * self.dt

    @property
    def elapsed(self) -> float:
        return self.step_count * self.dt

    def advance_external(self, dt_external: float):
        """Accumulate caller time; stepping is left to the engine loop."""
        if dt_external < 0:
            raise ValueError(f"External time cannot run backwards ({dt_external})")
        self.external_time += dt_external

    def due(self) -> bool:
        """True while simulated time has not caught up with the caller."""
        return self.current_time <= self.external_time

    def advance(self):
        self.step_count += 1

    @property
    def time_to_next_step(self) -> float:
        return self.current_time - self.external_time

    @property
    def step_fraction(self) -> float:
        """How far the caller is between the previous and current step."""
        return 1.0 - self.time_to_next_step / self.dt

    @property
    def current_date(self) -> datetime:
        return self.reference_date + timedelta(seconds=self.current_time)

    @property
    def external_date(self) -> datetime:
        return self.reference_date + timedelta(seconds=self.external_time)
