"""
Parcel Simulator - a fixed-step engine for short-lived geographic air parcels.

This package provides the parcel lifecycle (birth, drift, culling), flight
routes along great circles and smooth snapshots for an external renderer.
"""

__version__ = "0.1.0"
__author__ = "parcel_sim contributors"

from .simulator import ParcelSimulator
from .parcel import Parcel, ParcelState, ParcelTable, LifecycleEvent, NamespaceOverflowError
from .sources import PointSource, IdleSource, DenseSource, FlightSource, build_full_sources
from .atmosphere import AtmosphericModel
from .config import EngineConfig, FullModeConfig, load_config
from .initializer import HandoffError
from .output import RasterOutput

__all__ = [
    "ParcelSimulator",
    "Parcel",
    "ParcelState",
    "ParcelTable",
    "LifecycleEvent",
    "NamespaceOverflowError",
    "PointSource",
    "IdleSource",
    "DenseSource",
    "FlightSource",
    "build_full_sources",
    "AtmosphericModel",
    "EngineConfig",
    "FullModeConfig",
    "load_config",
    "HandoffError",
    "RasterOutput",
]
