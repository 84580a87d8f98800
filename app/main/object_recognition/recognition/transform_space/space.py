"""
Discrete Rigid Transform Space.

Clusters near-identical hypotheses:
- Position: the transformed model centroid falls into a cell of a regular
  grid over the (enlarged) scene bounds. Every occupied position cell owns
  one RotationSpace.
- Rotation: inside a RotationSpace, the rotation vector (axis * angle, from
  scipy's Rotation) falls into a cell of a regular grid over [-pi, pi]^3.
- Every TransformCell accumulates, per model, the sum of the rotations and
  translations inserted there; the cluster representative is their average.

Spaces and cells are created lazily and addressed by integer keys.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional
import logging
import math

import numpy as np
from scipy.spatial.transform import Rotation

from ..geometry.vectors import orthonormalize

logger = logging.getLogger(__name__)

CellKey = tuple[int, int, int]


@dataclass
class CellEntry:
    """Running sums of the transforms of one model inside one cell."""
    rotation_sum: np.ndarray = field(default_factory=lambda: np.zeros((3, 3)))
    translation_sum: np.ndarray = field(default_factory=lambda: np.zeros(3))
    count: int = 0


@dataclass
class TransformCell:
    """
    Rotation cell inside a RotationSpace.

    Attributes:
        position_id: Key of the owning position cell
        rotation_id: Key of this rotation cell
        entries: Model name -> CellEntry
    """
    position_id: CellKey
    rotation_id: CellKey
    entries: dict[str, CellEntry] = field(default_factory=dict)

    def add(self, model_name: str, rotation_sum: np.ndarray, translation_sum: np.ndarray, count: int):
        entry = self.entries.setdefault(model_name, CellEntry())
        entry.rotation_sum += rotation_sum
        entry.translation_sum += translation_sum
        entry.count += count

    def average_transform(self, model_name: str) -> tuple[np.ndarray, np.ndarray]:
        """
        Mean transform of a model's entries.

        Returns:
            (rotation, translation): the mean rotation projected back onto
            SO(3), and the mean translation
        """
        entry = self.entries[model_name]
        rotation = orthonormalize(entry.rotation_sum / entry.count)
        return rotation, entry.translation_sum / entry.count


@dataclass
class RotationSpace:
    """
    All rotation cells of one position cell.

    Attributes:
        position_id: Key of the position cell
        cells: Rotation key -> TransformCell
    """
    position_id: CellKey
    cells: dict[CellKey, TransformCell] = field(default_factory=dict)

    def cell(self, rotation_id: CellKey) -> TransformCell:
        if rotation_id not in self.cells:
            self.cells[rotation_id] = TransformCell(self.position_id, rotation_id)
        return self.cells[rotation_id]

    def full_cells(self) -> list[TransformCell]:
        """Occupied cells ordered by rotation key."""
        return [self.cells[key] for key in sorted(self.cells)]


class TransformSpace:
    """
    Discretized position x rotation space.

    Attributes:
        lower: (3,) lower corner of the position grid
        position_step: Position cell edge length
        rotation_step: Rotation cell edge length (radians)
        num_position_cells: (3,) position cells per axis
        num_rotation_cells: Rotation cells per axis
    """

    def __init__(self):
        self.lower = np.zeros(3)
        self.position_step = 1.0
        self.rotation_step = 1.0
        self.num_position_cells = np.ones(3, dtype=np.int64)
        self.num_rotation_cells = 1
        self._spaces: dict[CellKey, RotationSpace] = {}

    @classmethod
    def build(cls, lower: np.ndarray, upper: np.ndarray,
              position_step: float, rotation_step: float) -> TransformSpace:
        """
        Create an empty space over the box [lower, upper].

        Args:
            lower: (3,) lower corner
            upper: (3,) upper corner
            position_step: Position cell edge length (> 0)
            rotation_step: Rotation cell edge length in radians (> 0)

        Notes:
            - A zero-size box still gets one position cell per axis
        """
        if position_step <= 0.0 or rotation_step <= 0.0:
            raise ValueError("position_step and rotation_step must be positive")
        space = cls()
        space.lower = np.asarray(lower, dtype=float).copy()
        extent = np.maximum(np.asarray(upper, dtype=float) - space.lower, 0.0)
        space.position_step = float(position_step)
        space.rotation_step = float(rotation_step)
        space.num_position_cells = np.maximum(np.ceil(extent / position_step).astype(np.int64), 1)
        space.num_rotation_cells = max(int(math.ceil(2.0 * math.pi / rotation_step)), 1)
        return space

    @classmethod
    def around_bounds(cls, bounds: Optional[tuple[np.ndarray, np.ndarray]], enlargement: float,
                      position_step: float, rotation_step: float) -> TransformSpace:
        """
        Space over scene bounds enlarged by enlargement * largest extent per side.

        Args:
            bounds: (lower, upper) or None for an empty scene
        """
        if bounds is None:
            return cls.build(np.zeros(3), np.zeros(3), position_step, rotation_step)
        lower, upper = (np.asarray(b, dtype=float) for b in bounds)
        margin = enlargement * float(np.max(upper - lower))
        return cls.build(lower - margin, upper + margin, position_step, rotation_step)

    def position_keys(self, positions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """
        Position cell keys of (K, 3) positions.

        Returns:
            (keys, inside): (K, 3) int keys and (K,) mask of in-bounds positions
        """
        with np.errstate(invalid="ignore"):
            keys = np.floor((positions - self.lower) / self.position_step)
        inside = np.isfinite(keys).all(axis=1)
        inside &= np.all((keys >= 0) & (keys < self.num_position_cells), axis=1)
        return np.where(inside[:, None], keys, 0).astype(np.int64), inside

    def rotation_keys(self, rotations: np.ndarray) -> np.ndarray:
        """(K, 3) rotation cell keys of (K, 3, 3) rotation matrices."""
        rotvecs = Rotation.from_matrix(rotations).as_rotvec()
        keys = np.floor((rotvecs + math.pi) / self.rotation_step).astype(np.int64)
        return np.clip(keys, 0, self.num_rotation_cells - 1)

    def add_rigid_transforms(self, model_name: str, centroid: np.ndarray,
                             rotations: np.ndarray, translations: np.ndarray,
                             valid: Optional[np.ndarray] = None) -> int:
        """
        Insert transforms of one model.

        Args:
            model_name: Model the transforms belong to
            centroid: (3,) model centroid in model space
            rotations: (K, 3, 3) rotations
            translations: (K, 3) translations
            valid: Optional (K,) mask; False entries are skipped

        Returns:
            Number of transforms inserted (transformed centroid inside bounds)
        """
        rotations = np.asarray(rotations, dtype=float).reshape(-1, 3, 3)
        translations = np.asarray(translations, dtype=float).reshape(-1, 3)
        if valid is not None:
            rotations, translations = rotations[valid], translations[valid]
        if len(rotations) == 0:
            return 0

        centers = rotations @ np.asarray(centroid, dtype=float) + translations
        pos_keys, inside = self.position_keys(centers)
        rotations, translations, pos_keys = rotations[inside], translations[inside], pos_keys[inside]
        if len(rotations) == 0:
            return 0

        keys = np.hstack([pos_keys, self.rotation_keys(rotations)])
        unique_keys, inverse = np.unique(keys, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)

        rotation_sums = np.zeros((len(unique_keys), 3, 3))
        translation_sums = np.zeros((len(unique_keys), 3))
        np.add.at(rotation_sums, inverse, rotations)
        np.add.at(translation_sums, inverse, translations)
        counts = np.bincount(inverse, minlength=len(unique_keys))

        for key, rot_sum, trans_sum, count in zip(unique_keys, rotation_sums, translation_sums, counts):
            position_id = tuple(int(c) for c in key[:3])
            rotation_id = tuple(int(c) for c in key[3:])
            space = self._spaces.get(position_id)
            if space is None:
                space = self._spaces[position_id] = RotationSpace(position_id)
            space.cell(rotation_id).add(model_name, rot_sum, trans_sum, int(count))

        return int(len(rotations))

    def rotation_spaces(self) -> list[RotationSpace]:
        """Occupied rotation spaces ordered by position key."""
        return [self._spaces[key] for key in sorted(self._spaces)]

    @property
    def num_rotation_spaces(self) -> int:
        return len(self._spaces)

    @property
    def num_cells(self) -> int:
        return sum(len(space.cells) for space in self._spaces.values())
