"""
Model Library.

Registers rigid object models and fills the shared geometric hash table:
- add_model: build the model's voxel index, enumerate its oriented point
  pairs at distance pair_width, hash them by signature
- remove_model / clear: drop models and their hash entries

Models must be registered before a recognize() call can find them.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional
import logging

import numpy as np

from ..geometry.vectors import oriented_pair_signature, points_are_coplanar
from ..spatial.voxel_index import VoxelIndex
from .hash_table import SignatureHashTable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Model:
    """
    Registered library model (immutable).

    Attributes:
        name: Unique model name
        index: Model's own voxel index
        centroid: (3,) mean of the model's leaf representatives
        user_data: Arbitrary payload returned with every recognition
        num_pairs: Number of oriented point pairs in the hash table
    """
    name: str
    index: VoxelIndex
    centroid: np.ndarray
    user_data: Any = None
    num_pairs: int = 0

    @property
    def num_leaves(self) -> int:
        return self.index.num_leaves


class ModelLibrary:
    """
    Library of models sharing one SignatureHashTable.

    Args:
        pair_width: Distance between the points of a pair
        voxel_size: Voxel size of the model indices
        max_coplanarity_angle: Tolerance of the coplanarity test (radians)
        ignore_coplanar_opps: Skip coplanar pairs when filling the table
        hash_cell_angle: Hash table cell size (radians)
        pair_tolerance: Accepted deviation from pair_width
                        (default: half the voxel diagonal)
    """

    def __init__(self, pair_width: float, voxel_size: float, max_coplanarity_angle: float,
                 ignore_coplanar_opps: bool = True, hash_cell_angle: float = np.deg2rad(5.0),
                 pair_tolerance: Optional[float] = None):
        self.pair_width = float(pair_width)
        self.voxel_size = float(voxel_size)
        self.max_coplanarity_angle = float(max_coplanarity_angle)
        self.ignore_coplanar_opps = ignore_coplanar_opps
        self.pair_tolerance = pair_tolerance
        self.hash_table = SignatureHashTable(hash_cell_angle)
        self._models: dict[str, Model] = {}

    @property
    def models(self) -> dict[str, Model]:
        return dict(self._models)

    def get_model(self, name: str) -> Optional[Model]:
        return self._models.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._models

    def __len__(self) -> int:
        return len(self._models)

    def add_model(self, name: str, points: np.ndarray, normals: np.ndarray,
                  user_data: Any = None) -> bool:
        """
        Register a model and hash all its oriented point pairs.

        Args:
            name: Unique model name
            points: (N, 3) model points
            normals: (N, 3) model normals
            user_data: Payload returned with every recognition of this model

        Returns:
            True if registered, False if the name is already taken

        Raises:
            ValueError: Bad shapes, or no usable points

        Algorithm:
            1. Build the model's voxel index (same voxel size as the scene)
            2. For every leaf i: leaves j at distance pair_width +- tolerance
            3. Drop coplanar (i, j) if ignore_coplanar_opps
            4. Insert every remaining ordered pair under its signature
        """
        if name in self._models:
            logger.warning("ModelLibrary.add_model: model '%s' already registered, skipped", name)
            return False

        index = VoxelIndex.build(points, normals, self.voxel_size)
        if index.num_leaves == 0:
            raise ValueError(f"Model '{name}' has no usable points")

        pairs = self._enumerate_pairs(index)
        p1, n1 = index.points[pairs[:, 0]], index.normals[pairs[:, 0]]
        p2, n2 = index.points[pairs[:, 1]], index.normals[pairs[:, 1]]

        if self.ignore_coplanar_opps and len(pairs):
            keep = ~points_are_coplanar(p1, n1, p2, n2, self.max_coplanarity_angle)
            pairs, p1, n1, p2, n2 = pairs[keep], p1[keep], n1[keep], p2[keep], n2[keep]

        num_pairs = self.hash_table.insert(name, oriented_pair_signature(p1, n1, p2, n2), pairs)

        self._models[name] = Model(
            name=name,
            index=index,
            centroid=index.points.mean(axis=0),
            user_data=user_data,
            num_pairs=num_pairs,
        )
        if num_pairs == 0:
            logger.warning(
                "ModelLibrary.add_model: model '%s' has no oriented pairs at width %.4g",
                name, self.pair_width,
            )
        logger.info(
            "ModelLibrary.add_model: '%s' registered (%d leaves, %d pairs)",
            name, index.num_leaves, num_pairs,
        )
        return True

    def _enumerate_pairs(self, index: VoxelIndex) -> np.ndarray:
        """All ordered leaf pairs (i, j), i != j, at distance pair_width +- tolerance."""
        chunks = []
        for i in range(index.num_leaves):
            shell = index.leaves_on_sphere(index.points[i], self.pair_width, self.pair_tolerance)
            shell = shell[shell != i]
            if len(shell):
                chunks.append(np.column_stack([np.full(len(shell), i, dtype=np.int64), shell]))
        if not chunks:
            return np.zeros((0, 2), dtype=np.int64)
        return np.concatenate(chunks)

    def remove_model(self, name: str) -> bool:
        """Remove a model and its hash entries. Returns False if unknown."""
        if self._models.pop(name, None) is None:
            return False
        removed = self.hash_table.remove_model(name)
        logger.info("ModelLibrary.remove_model: '%s' removed (%d pairs)", name, removed)
        return True

    def clear(self):
        self._models.clear()
        self.hash_table.clear()
