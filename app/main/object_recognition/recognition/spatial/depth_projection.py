"""
Depth Projection ("range image") of a voxel index.

Projects every full leaf orthographically onto the xy plane (the plane the
scanning device roughly looks at) and stores per pixel the visible depth
interval [z1, z2]:
- The sensor looks along +z, smaller z is closer
- The visible surface of a pixel is the front-most run of leaf depths whose
  consecutive gaps stay within one voxel diagonal
- z1 = front depth - eps_front, z2 = end of the front run + eps_back

Pixels also carry a mutable set of hypothesis ids, filled while building the
conflict graph.
"""

from __future__ import annotations
from enum import IntEnum
from typing import Optional
import logging
import math

import numpy as np

from .voxel_index import VoxelIndex

logger = logging.getLogger(__name__)


class DepthClass(IntEnum):
    """Classification of a transformed point against the visible surface."""
    IGNORED = 0  # No pixel, or behind the visible surface
    MATCHED = 1  # Inside the visible depth interval
    ILLEGAL = 2  # In front of the visible surface (should have been seen)


class DepthProjection:
    """
    Orthographic depth grid built from a VoxelIndex.

    Attributes:
        pixel_size: Pixel edge length (= voxel size of the index)
        origin_xy: (2,) lower corner of the grid
        shape: (nx, ny) grid size
        z1: (nx, ny) front depth bound, NaN where invalid
        z2: (nx, ny) back depth bound, NaN where invalid
        valid: (nx, ny) True where at least one leaf projects

    Notes:
        - Pixel ids are flat indices ix * ny + iy
        - Use DepthProjection.build(...) instead of the constructor
    """

    def __init__(self, pixel_size: float):
        self.pixel_size = float(pixel_size)
        self.origin_xy = np.zeros(2)
        self.shape = (0, 0)
        self.z1 = np.zeros((0, 0))
        self.z2 = np.zeros((0, 0))
        self.valid = np.zeros((0, 0), dtype=bool)
        self.full_pixels: list[int] = []
        self._hypothesis_ids: dict[int, set[int]] = {}

    @classmethod
    def build(cls, index: VoxelIndex, eps_front: float, eps_back: float) -> DepthProjection:
        """
        Build the projection of all full leaves of index.

        Args:
            index: Scene voxel index
            eps_front: Depth tolerance in front of the visible surface
            eps_back: Depth tolerance behind the visible surface

        Returns:
            DepthProjection (empty grid if the index is empty)
        """
        projection = cls(index.voxel_size)
        bounds = index.bounds()
        if bounds is None:
            return projection

        lo, hi = bounds
        projection.origin_xy = lo[:2].copy()
        nx, ny = (np.round((hi[:2] - lo[:2]) / projection.pixel_size).astype(int))
        nx, ny = max(int(nx), 1), max(int(ny), 1)
        projection.shape = (nx, ny)

        pixels = projection.pixels_of(index.points, require_valid=False)
        depths = index.points[:, 2]
        inside = pixels >= 0
        pixels, depths = pixels[inside], depths[inside]

        # Sort by pixel, then depth (front first)
        order = np.lexsort((depths, pixels))
        pixels, depths = pixels[order], depths[order]

        max_gap = math.sqrt(3.0) * projection.pixel_size
        breaks = np.append((np.diff(depths) > max_gap) | (np.diff(pixels) != 0), True)
        starts = np.flatnonzero(np.append(True, np.diff(pixels) != 0))
        break_positions = np.flatnonzero(breaks)
        run_ends = break_positions[np.searchsorted(break_positions, starts)]

        z1 = np.full(nx * ny, np.nan)
        z2 = np.full(nx * ny, np.nan)
        full = pixels[starts]
        z1[full] = depths[starts] - eps_front
        z2[full] = depths[run_ends] + eps_back

        projection.z1 = z1.reshape(nx, ny)
        projection.z2 = z2.reshape(nx, ny)
        projection.valid = np.isfinite(projection.z1)
        projection.full_pixels = [int(p) for p in full]

        logger.debug(
            "DepthProjection.build: %d leaf/leaves -> %d full pixel(s) on a %dx%d grid",
            index.num_leaves, len(full), nx, ny,
        )
        return projection

    @property
    def num_pixels(self) -> int:
        return int(self.shape[0] * self.shape[1])

    def pixels_of(self, points: np.ndarray, require_valid: bool = True) -> np.ndarray:
        """
        Pixel ids of (N, 3) points.

        Args:
            points: (N, 3) points
            require_valid: Also map pixels without any leaf to -1

        Returns:
            (N,) int array, -1 where a point has no pixel
        """
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        nx, ny = self.shape
        if nx == 0 or ny == 0:
            return np.full(len(points), -1, dtype=np.int64)

        with np.errstate(invalid="ignore"):
            ij = np.floor((points[:, :2] - self.origin_xy) / self.pixel_size)
        inside = np.isfinite(ij).all(axis=1)
        inside &= (ij[:, 0] >= 0) & (ij[:, 0] < nx) & (ij[:, 1] >= 0) & (ij[:, 1] < ny)

        flat = np.full(len(points), -1, dtype=np.int64)
        ij_in = ij[inside].astype(np.int64)
        flat[inside] = ij_in[:, 0] * ny + ij_in[:, 1]
        if require_valid:
            has_leaf = np.zeros(len(points), dtype=bool)
            has_leaf[inside] = self.valid.reshape(-1)[flat[inside]]
            flat[~has_leaf] = -1
        return flat

    def pixel_of(self, point: np.ndarray) -> Optional[int]:
        """Pixel id of a single point, None if outside the grid or without leaf."""
        pixel = int(self.pixels_of(np.asarray(point, dtype=float).reshape(1, 3))[0])
        return None if pixel < 0 else pixel

    def interval(self, pixel: int) -> tuple[float, float]:
        """Visible depth interval (z1, z2) of a valid pixel."""
        return float(self.z1.reshape(-1)[pixel]), float(self.z2.reshape(-1)[pixel])

    def contains_depth(self, pixel: int, z: float) -> bool:
        """True if depth z lies inside the visible interval of pixel."""
        if pixel is None or pixel < 0 or not self.valid.reshape(-1)[pixel]:
            return False
        z1, z2 = self.interval(pixel)
        return z1 <= z <= z2

    def classify_depths(self, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Classify (N, 3) points against the visible surface.

        Returns:
            (pixels, classes): pixel ids (-1 for none) and DepthClass values
        """
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        pixels = self.pixels_of(points)
        classes = np.full(len(points), int(DepthClass.IGNORED), dtype=np.int8)

        hit = pixels >= 0
        z = points[hit, 2]
        z1 = self.z1.reshape(-1)[pixels[hit]]
        z2 = self.z2.reshape(-1)[pixels[hit]]
        hit_classes = np.full(len(z), int(DepthClass.IGNORED), dtype=np.int8)
        hit_classes[z < z1] = int(DepthClass.ILLEGAL)
        hit_classes[(z1 <= z) & (z <= z2)] = int(DepthClass.MATCHED)
        classes[hit] = hit_classes
        return pixels, classes

    def add_hypothesis_id(self, pixel: int, hypothesis_id: int):
        self._hypothesis_ids.setdefault(int(pixel), set()).add(int(hypothesis_id))

    def hypothesis_ids(self, pixel: int) -> set[int]:
        return self._hypothesis_ids.get(int(pixel), set())

    def pixels_with_hypotheses(self) -> list[int]:
        """Pixels holding at least one hypothesis id, ascending."""
        return sorted(p for p, ids in self._hypothesis_ids.items() if ids)

    def clear_hypothesis_ids(self):
        self._hypothesis_ids.clear()

    def as_depth_image(self) -> np.ndarray:
        """(nx, ny) front depth bound z1, NaN where no leaf projects."""
        return self.z1.copy()
