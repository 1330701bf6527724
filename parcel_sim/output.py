"""
Output module for georeferenced raster snapshots of the parcel field.

Produces PNG images with PGW world files for GIS compatibility.
"""

import logging
import numpy as np
from typing import Iterable, Tuple

from .parcel import ParcelState

logger = logging.getLogger(__name__)

WORLD_BOUNDS = (-180.0, -90.0, 180.0, 90.0)


class RasterOutput:
    """
    Grid a snapshot of parcels into a density raster.

    This is a headless diagnostic of where parcels are, not a renderer.
    """

    def __init__(
        self,
        bounds: Tuple[float, float, float, float] = WORLD_BOUNDS,
        resolution: float = 1.0
    ):
        """
        Initialize raster output generator.

        Args:
            bounds: (min_lon, min_lat, max_lon, max_lat) in degrees
            resolution: Grid resolution in degrees
        """
        self.min_lon, self.min_lat, self.max_lon, self.max_lat = bounds
        self.resolution = resolution

        # Calculate grid dimensions
        self.nx = int((self.max_lon - self.min_lon) / resolution) + 1
        self.ny = int((self.max_lat - self.min_lat) / resolution) + 1

        self.grid = np.zeros((self.ny, self.nx))

    def add_snapshot(self, states: Iterable[ParcelState], weight_by_life: bool = False):
        """
        Accumulate a snapshot into the grid.

        Args:
            states: Parcels as returned by get_point_data()
            weight_by_life: Weight each parcel by its remaining life fraction
        """
        states = list(states)
        if not states:
            return

        lats = np.array([s.lat for s in states])
        lons = np.array([s.lon for s in states])
        if weight_by_life:
            weights = np.array([max(0.0, 1.0 - s.life_fraction) for s in states])
        else:
            weights = np.ones(len(states))

        i_indices = np.floor((lats - self.min_lat) / self.resolution).astype(int)
        j_indices = np.floor((lons - self.min_lon) / self.resolution).astype(int)

        # Filter out-of-bounds parcels
        valid = (
            (i_indices >= 0) & (i_indices < self.ny) &
            (j_indices >= 0) & (j_indices < self.nx)
        )
        np.add.at(self.grid, (i_indices[valid], j_indices[valid]), weights[valid])

    def save_raster(self, filename: str, colormap: str = "viridis", title: str = "Parcel density"):
        """
        Save raster as PNG with PGW world file.

        Args:
            filename: Output filename (without extension)
            colormap: Matplotlib colormap name
            title: Plot title, e.g. the simulated date
        """
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt

        fig, ax = plt.subplots(figsize=(12, 6))
        vmax = np.max(self.grid) if np.any(self.grid > 0) else 1.0
        im = ax.imshow(
            np.flipud(self.grid),
            extent=[self.min_lon, self.max_lon, self.min_lat, self.max_lat],
            cmap=colormap,
            vmin=0,
            vmax=vmax,
            interpolation='nearest'
        )
        plt.colorbar(im, ax=ax, label='Parcels per cell')
        ax.set_xlabel('Longitude (°)')
        ax.set_ylabel('Latitude (°)')
        ax.set_title(title)

        plt.savefig(f"{filename}.png", dpi=150, bbox_inches='tight')
        plt.close(fig)

        self._save_world_file(filename)
        logger.info("Raster written to %s.png", filename)

    def _save_world_file(self, filename: str):
        """
        Save PGW world file for georeferencing.

        The world file format has 6 lines:
        1. x-scale (pixel size in x direction)
        2. rotation about y-axis (usually 0)
        3. rotation about x-axis (usually 0)
        4. y-scale (negative pixel size in y direction)
        5. x-coordinate of upper-left pixel center
        6. y-coordinate of upper-left pixel center
        """
        with open(f"{filename}.pgw", 'w') as f:
            f.write(f"{self.resolution}\n")
            f.write("0\n")
            f.write("0\n")
            # Negative because y increases downward in image
            f.write(f"{-self.resolution}\n")
            f.write(f"{self.min_lon}\n")
            f.write(f"{self.max_lat}\n")

    def get_grid_statistics(self) -> dict:
        """
        Get statistics about the density grid.

        Returns:
            Dictionary with statistics
        """
        occupied = int(np.sum(self.grid > 0))
        return {
            "total_weight": float(np.sum(self.grid)),
            "max_cell_weight": float(np.max(self.grid)),
            "occupied_cells": occupied,
            "total_cells": self.nx * self.ny,
        }
