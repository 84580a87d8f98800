"""
Recognition Configuration Models.

This module defines the configuration structures for the object recognizer:
- RecognitionMode: How far the pipeline runs
- RecognitionConfig: All recognizer parameters (5 groups)

All lengths in scene units (whatever the clouds are measured in).
Angles in radians unless the attribute name says otherwise.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional, Any
import math
import warnings


DEG_TO_RAD = math.pi / 180.0


class RecognitionMode(Enum):
    """
    How far a recognize() call runs.

    Values:
        FULL_RECOGNITION: Run the whole pipeline and return recognized objects
        SAMPLE_OPP: Stop after sampling oriented point pairs
        TEST_HYPOTHESES: Stop after clustering and verification

    Notes:
        - Early-stop modes return an empty list; the intermediate results are
          available on the recognizer (sampled_pairs, accepted_hypotheses)
    """
    FULL_RECOGNITION = "full_recognition"
    SAMPLE_OPP = "sample_opp"
    TEST_HYPOTHESES = "test_hypotheses"


@dataclass
class RecognitionConfig:
    """
    Complete recognizer configuration (all parameters).

    Organized in 5 groups:
    1. Geometry: pair width and voxel size (required)
    2. Discretization: transform space and hash table resolution
    3. Acceptance: visibility, illegal points, conflict overlap
    4. Sampling: coplanarity and iteration count
    5. Execution: mode, seed, threading

    Notes:
        - Attributes left as None are derived from voxel_size in __post_init__
        - Values outside their valid range raise ValueError on construction,
          before any pipeline stage can run
    """

    # ========== 1. Geometry ==========
    pair_width: float
    """Target distance between the two points of an oriented point pair."""

    voxel_size: float
    """Edge length of a voxel of the scene and model indices."""

    pair_tolerance: Optional[float] = None
    """Accepted deviation from pair_width. Default: half the voxel diagonal."""

    # ========== 2. Discretization ==========
    position_discretization: Optional[float] = None
    """Edge length of a position cell of the transform space. Default: 5 * voxel_size."""

    rotation_discretization: float = 5.0 * DEG_TO_RAD
    """Edge length of a rotation cell (rotation-vector space, radians)."""

    abs_zdist_thresh: Optional[float] = None
    """Depth tolerance in front of/behind the visible surface. Default: 1.5 * voxel_size."""

    hash_cell_angle: float = 5.0 * DEG_TO_RAD
    """Edge length of a hash table cell in signature space (radians)."""

    scene_bounds_enlargement_factor: float = 0.25
    """Transform space bounds = scene bounds enlarged by this fraction of the largest extent."""

    # ========== 3. Acceptance ==========
    visibility: float = 0.06
    """Minimum fraction of model voxels that must match the scene."""

    relative_num_of_illegal_pts: float = 0.02
    """Maximum fraction of model voxels allowed in front of the visible surface."""

    intersection_fraction: float = 0.03
    """Two hypotheses conflict if either shares more than this fraction of its pixels."""

    # ========== 4. Sampling ==========
    max_coplanarity_angle: float = 3.0 * DEG_TO_RAD
    """Oriented pairs within this angular tolerance of coplanarity are rejected."""

    ignore_coplanar_opps: bool = True
    """Reject coplanar pairs when filling the model hash table.

    The scene sampler always rejects coplanar pairs."""

    relative_obj_size: float = 0.05
    """Expected object size relative to the scene, drives the iteration count."""

    # ========== 5. Execution ==========
    mode: RecognitionMode = RecognitionMode.FULL_RECOGNITION
    """How far recognize() runs."""

    seed: Optional[int] = None
    """Seed used when recognize() gets no explicit generator."""

    max_workers: int = 1
    """Worker threads for sampling, generation and verification (1 = inline)."""

    chunk_size: int = 64
    """Number of pairs per work unit. Fixes the random streams independent of max_workers."""

    def __post_init__(self):
        """Derive voxel-relative defaults and validate all values."""
        if isinstance(self.mode, str):
            self.mode = RecognitionMode(self.mode)

        _require_positive("voxel_size", self.voxel_size)
        _require_positive("pair_width", self.pair_width)

        if self.pair_tolerance is None:
            self.pair_tolerance = 0.5 * math.sqrt(3.0) * self.voxel_size
        if self.position_discretization is None:
            self.position_discretization = 5.0 * self.voxel_size
        if self.abs_zdist_thresh is None:
            self.abs_zdist_thresh = 1.5 * self.voxel_size

        _require_positive("pair_tolerance", self.pair_tolerance)
        _require_positive("position_discretization", self.position_discretization)
        _require_positive("abs_zdist_thresh", self.abs_zdist_thresh)

        for name in ("rotation_discretization", "hash_cell_angle", "max_coplanarity_angle"):
            value = getattr(self, name)
            if not (0.0 < value <= math.pi):
                raise ValueError(f"{name} must lie in (0, pi], got {value}")

        if not (0.0 < self.relative_obj_size <= 1.0):
            raise ValueError(f"relative_obj_size must lie in (0, 1], got {self.relative_obj_size}")

        for name in ("visibility", "relative_num_of_illegal_pts", "intersection_fraction"):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must lie in [0, 1], got {value}")

        if self.scene_bounds_enlargement_factor < 0.0:
            raise ValueError(
                f"scene_bounds_enlargement_factor must be >= 0, "
                f"got {self.scene_bounds_enlargement_factor}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")

        if self.pair_width < 2.0 * self.voxel_size:
            warnings.warn(
                f"pair_width={self.pair_width} is less than two voxels "
                f"(voxel_size={self.voxel_size}). Pair signatures will be noisy."
            )
        if self.visibility <= self.relative_num_of_illegal_pts:
            warnings.warn(
                f"visibility={self.visibility} is not greater than "
                f"relative_num_of_illegal_pts={self.relative_num_of_illegal_pts}. "
                f"Poorly supported hypotheses may be accepted."
            )

    @property
    def eps_front(self) -> float:
        """Tolerance in front of the visible surface (same as abs_zdist_thresh)."""
        return self.abs_zdist_thresh

    @property
    def eps_back(self) -> float:
        """Tolerance behind the visible surface (same as abs_zdist_thresh)."""
        return self.abs_zdist_thresh

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecognitionConfig:
        """
        Create a config from a plain dict (e.g. request JSON).

        Args:
            data: Mapping of attribute name -> value. Must contain
                  pair_width and voxel_size.

        Returns:
            Validated RecognitionConfig

        Raises:
            ValueError: Unknown keys, missing required keys or invalid values
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        missing = {"pair_width", "voxel_size"} - set(data)
        if missing:
            raise ValueError(f"Missing required config keys: {sorted(missing)}")
        return cls(**data)

    def to_dict(self) -> dict[str, Any]:
        """Plain dict of all attributes (mode as its string value)."""
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result["mode"] = self.mode.value
        return result


def _require_positive(name: str, value: float):
    if value is None or not math.isfinite(value) or value <= 0.0:
        raise ValueError(f"{name} must be a positive finite number, got {value}")
