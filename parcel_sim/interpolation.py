"""
Snapshot interpolation between the two most recent fixed steps.
"""

from dataclasses import replace
from types import MappingProxyType
from typing import Dict, List, Mapping, Tuple

from .geodesy import wrap_longitude
from .parcel import ParcelState

_EMPTY: Mapping[int, ParcelState] = MappingProxyType({})


class SnapshotInterpolator:
    """
    Holds the `old` and `new` snapshots and blends them for a query time.

    Snapshots are read-only once captured.
    """

    def __init__(self):
        self.old: Mapping[int, ParcelState] = _EMPTY
        self.new: Mapping[int, ParcelState] = _EMPTY
        self.captures = 0

    def capture(self, states: Dict[int, ParcelState]):
        """Shift `new` into `old` and store a copy of `states` as `new`."""
        self.old = self.new
        self.new = MappingProxyType(dict(states))
        self.captures += 1

    def reset(self):
        self.old = _EMPTY
        self.new = _EMPTY
        self.captures = 0

    def diff(self) -> Tuple[List[int], List[int]]:
        """
        Identifiers that appeared and vanished between `old` and `new`.

        Returns:
            Tuple of (born_ids, removed_ids)
        """
        born = [uid for uid in self.new if uid not in self.old]
        removed = [uid for uid in self.old if uid not in self.new]
        return born, removed

    def interpolate(self, step_fraction: float) -> List[ParcelState]:
        """
        Positions at `step_fraction` of the way from `old` to `new`.

        Parcels only in `new` are returned where they are; parcels only in
        `old` were removed this step and are left out.
        """
        result = []
        for uid, new in self.new.items():
            old = self.old.get(uid)
            if old is None:
                result.append(new)
                continue

            # Take the short way round when the parcel crossed the antimeridian
            dlon = new.lon - old.lon
            if dlon >= 180.0:
                dlon -= 360.0
            elif dlon < -180.0:
                dlon += 360.0

            result.append(replace(
                new,
                lon=wrap_longitude(old.lon + step_fraction * dlon),
                lat=old.lat + step_fraction * (new.lat - old.lat),
            ))
        return result

    def __len__(self) -> int:
        return len(self.new)
