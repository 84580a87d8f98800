"""
Voxel Spatial Index.

Bins an oriented point cloud into a regular voxel grid and keeps one
representative (point, normal) per occupied voxel ("full leaf"):
- Representative point = mean of the voxel's points
- Representative normal = normalized mean of the voxel's unit normals
- Leaves ordered lexicographically by voxel key (deterministic for equal input)

Proximity queries ("which leaves lie on a sphere shell around p") go through
a KD-tree over the representative points.
"""

from __future__ import annotations
from typing import Optional
import logging
import math

import numpy as np
from scipy.spatial import cKDTree

logger = logging.getLogger(__name__)

EPS = 1e-9


class VoxelIndex:
    """
    Voxel index over an oriented point cloud.

    Attributes:
        voxel_size: Edge length of a voxel
        origin: (3,) minimum corner of the voxel grid
        keys: (L, 3) integer voxel keys of the full leaves
        points: (L, 3) representative points
        normals: (L, 3) representative unit normals
        counts: (L,) number of input points per leaf

    Notes:
        - Read-only after build(); safe to share between threads
        - Use VoxelIndex.build(...) instead of the constructor
    """

    def __init__(self, voxel_size: float):
        if voxel_size <= 0.0:
            raise ValueError(f"voxel_size must be positive, got {voxel_size}")
        self.voxel_size = float(voxel_size)
        self.origin = np.zeros(3)
        self.keys = np.zeros((0, 3), dtype=np.int64)
        self.points = np.zeros((0, 3))
        self.normals = np.zeros((0, 3))
        self.counts = np.zeros(0, dtype=np.int64)
        self._key_to_leaf: dict[tuple[int, int, int], int] = {}
        self._tree: Optional[cKDTree] = None

    @classmethod
    def build(cls, points: np.ndarray, normals: np.ndarray, voxel_size: float) -> VoxelIndex:
        """
        Build the index from points and normals.

        Args:
            points: (N, 3) positions
            normals: (N, 3) normals (normalized internally)
            voxel_size: Voxel edge length

        Returns:
            VoxelIndex (possibly with zero leaves)

        Raises:
            ValueError: points/normals shapes do not match (N, 3)

        Notes:
            - Points with non-finite coordinates or (near) zero-length
              normals are dropped before binning
        """
        index = cls(voxel_size)
        points = np.asarray(points, dtype=float)
        normals = np.asarray(normals, dtype=float)

        if points.size == 0 and normals.size == 0:
            return index
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Expected (N, 3) points, got shape {points.shape}")
        if normals.shape != points.shape:
            raise ValueError(
                f"normals shape {normals.shape} does not match points shape {points.shape}"
            )

        norm = np.linalg.norm(normals, axis=1)
        keep = np.isfinite(points).all(axis=1) & np.isfinite(normals).all(axis=1) & (norm > EPS)
        dropped = int(len(points) - np.count_nonzero(keep))
        if dropped:
            logger.debug("VoxelIndex.build: dropped %d degenerate point(s)", dropped)
        points = points[keep]
        normals = normals[keep] / norm[keep, None]
        if len(points) == 0:
            return index

        index.origin = points.min(axis=0)
        voxel_keys = np.floor((points - index.origin) / index.voxel_size).astype(np.int64)

        # np.unique sorts keys lexicographically -> deterministic leaf order
        keys, inverse, counts = np.unique(voxel_keys, axis=0, return_inverse=True, return_counts=True)
        inverse = inverse.reshape(-1)

        point_sums = np.zeros((len(keys), 3))
        normal_sums = np.zeros((len(keys), 3))
        np.add.at(point_sums, inverse, points)
        np.add.at(normal_sums, inverse, normals)

        rep_points = point_sums / counts[:, None]
        normal_len = np.linalg.norm(normal_sums, axis=1)
        # Opposing normals inside one voxel cancel out; keep the first input normal then
        _, first_idx = np.unique(inverse, return_index=True)
        first_normal = normals[first_idx]
        rep_normals = np.where(
            (normal_len > EPS)[:, None],
            normal_sums / np.where(normal_len > EPS, normal_len, 1.0)[:, None],
            first_normal,
        )

        index.keys = keys
        index.points = rep_points
        index.normals = rep_normals
        index.counts = counts
        index._key_to_leaf = {tuple(int(c) for c in key): i for i, key in enumerate(keys)}
        index._tree = cKDTree(rep_points)

        logger.debug(
            "VoxelIndex.build: %d point(s) -> %d full leaf/leaves (voxel_size=%.4g)",
            len(points), len(keys), index.voxel_size,
        )
        return index

    @property
    def num_leaves(self) -> int:
        return int(len(self.points))

    @property
    def default_tolerance(self) -> float:
        """Half the voxel diagonal."""
        return 0.5 * math.sqrt(3.0) * self.voxel_size

    def bounds(self) -> Optional[tuple[np.ndarray, np.ndarray]]:
        """
        Axis-aligned bounding box of the occupied voxels.

        Returns:
            (min_corner, max_corner) or None if the index is empty
        """
        if self.num_leaves == 0:
            return None
        lo = self.origin + self.keys.min(axis=0) * self.voxel_size
        hi = self.origin + (self.keys.max(axis=0) + 1) * self.voxel_size
        return lo, hi

    def leaf_at(self, point: np.ndarray) -> Optional[int]:
        """Leaf id of the voxel containing point, None if the voxel is empty."""
        if self.num_leaves == 0:
            return None
        key = np.floor((np.asarray(point, dtype=float) - self.origin) / self.voxel_size)
        return self._key_to_leaf.get(tuple(int(c) for c in key))

    def leaves_on_sphere(self, center: np.ndarray, radius: float,
                         tolerance: Optional[float] = None) -> np.ndarray:
        """
        All leaves whose representative lies at distance radius +- tolerance.

        Args:
            center: (3,) sphere center
            radius: Sphere radius
            tolerance: Shell half-thickness (default: half the voxel diagonal)

        Returns:
            Sorted int array of leaf ids (possibly empty)
        """
        if self._tree is None:
            return np.zeros(0, dtype=np.int64)
        if tolerance is None:
            tolerance = self.default_tolerance
        center = np.asarray(center, dtype=float)

        candidates = np.asarray(self._tree.query_ball_point(center, radius + tolerance), dtype=np.int64)
        if len(candidates) == 0:
            return candidates
        dist = np.linalg.norm(self.points[candidates] - center, axis=1)
        shell = candidates[np.abs(dist - radius) <= tolerance]
        return np.sort(shell)

    def random_leaf_on_sphere(self, center: np.ndarray, radius: float,
                              rng: np.random.Generator,
                              tolerance: Optional[float] = None) -> Optional[int]:
        """
        Random leaf at distance radius +- tolerance from center.

        Args:
            center: (3,) sphere center
            radius: Sphere radius
            rng: Generator used for the draw (caller owned)
            tolerance: Shell half-thickness (default: half the voxel diagonal)

        Returns:
            Leaf id chosen uniformly among the candidates, None if there is none
        """
        shell = self.leaves_on_sphere(center, radius, tolerance)
        if len(shell) == 0:
            return None
        return int(shell[rng.integers(len(shell))])
