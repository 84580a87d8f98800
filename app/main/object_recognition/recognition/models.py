"""
Recognition Data Models.

This module defines the data structures passed between pipeline stages:
- RigidTransform: 3D rotation + translation
- OrientedPointPair: Two (point, normal) samples from the scene
- Hypothesis: Verified candidate pose of a library model
- RecognizedObject: Final output of a recognize() call
- RecognitionReport: Counters and timings of the last call

Coordinate convention: transforms map model space into scene space,
p_scene = R @ p_model + t. The sensor looks along +z (smaller z is closer).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Any
import numpy as np


@dataclass
class RigidTransform:
    """
    3D rigid transformation: rotation + translation.

    Attributes:
        rotation: (3, 3) rotation matrix
        translation: (3,) translation vector

    Notes:
        - Rotation first, then translation
        - compose(other) applies other first, then self
    """
    rotation: np.ndarray
    translation: np.ndarray

    def __post_init__(self):
        self.rotation = np.asarray(self.rotation, dtype=float).reshape(3, 3)
        self.translation = np.asarray(self.translation, dtype=float).reshape(3)

    @classmethod
    def identity(cls) -> RigidTransform:
        return cls(np.eye(3), np.zeros(3))

    @classmethod
    def from_matrix(cls, mat: np.ndarray) -> RigidTransform:
        """
        Create RigidTransform from a 3x4 or 4x4 matrix [R | t].

        Args:
            mat: (3, 4) or (4, 4) matrix

        Returns:
            RigidTransform instance
        """
        mat = np.asarray(mat, dtype=float)
        if mat.shape not in ((3, 4), (4, 4)):
            raise ValueError(f"Expected (3, 4) or (4, 4) matrix, got shape {mat.shape}")
        return cls(mat[:3, :3], mat[:3, 3])

    def to_matrix(self) -> np.ndarray:
        """4x4 homogeneous matrix."""
        mat = np.eye(4)
        mat[:3, :3] = self.rotation
        mat[:3, 3] = self.translation
        return mat

    def to_3x4(self) -> np.ndarray:
        """3x4 matrix [R | t]."""
        return self.to_matrix()[:3, :]

    def compose(self, other: RigidTransform) -> RigidTransform:
        """Result maps p to self(other(p))."""
        return RigidTransform(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
        )

    def inverse(self) -> RigidTransform:
        rot_t = self.rotation.T
        return RigidTransform(rot_t, -rot_t @ self.translation)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """
        Apply transform to points.

        Args:
            points: (3,) point or (N, 3) array of points

        Returns:
            Transformed points, same shape as input
        """
        points = np.asarray(points, dtype=float)
        if points.ndim == 1:
            return self.rotation @ points + self.translation
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Expected (N, 3) array, got shape {points.shape}")
        return points @ self.rotation.T + self.translation

    def apply_to_normals(self, normals: np.ndarray) -> np.ndarray:
        """Rotate normals (no translation)."""
        normals = np.asarray(normals, dtype=float)
        if normals.ndim == 1:
            return self.rotation @ normals
        return normals @ self.rotation.T


@dataclass
class OrientedPointPair:
    """
    Oriented point pair (OPP) sampled from the scene.

    Attributes:
        p1, n1: First point and its unit normal, shape (3,)
        p2, n2: Second point and its unit normal, shape (3,)
        first_id: Leaf id of the first point in the scene index
        second_id: Leaf id of the second point in the scene index

    Notes:
        - Created per sampling draw and consumed by hypothesis generation
        - Guaranteed non-coplanar within the configured angle
    """
    p1: np.ndarray
    n1: np.ndarray
    p2: np.ndarray
    n2: np.ndarray
    first_id: int = -1
    second_id: int = -1


@dataclass
class Hypothesis:
    """
    Verified candidate pose of a library model.

    Attributes:
        model_name: Name of the library model
        rotation: (3, 3) rotation matrix (model -> scene)
        translation: (3,) translation (model -> scene)
        match: Number of model voxels matching the visible scene surface
        penalty: Number of model voxels in front of the visible surface
        confidence: match / model voxel count, in (0, 1] when accepted
        explained_pixels: Sorted unique depth-projection pixel ids explained
        position_id: Transform space position cell (i, j, k)
        rotation_id: Transform space rotation cell (i, j, k)
    """
    model_name: str
    rotation: np.ndarray
    translation: np.ndarray
    match: int = 0
    penalty: int = 0
    confidence: float = 0.0
    explained_pixels: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    position_id: Optional[tuple[int, int, int]] = None
    rotation_id: Optional[tuple[int, int, int]] = None

    @property
    def num_explained(self) -> int:
        return int(len(self.explained_pixels))

    @property
    def transform(self) -> RigidTransform:
        return RigidTransform(self.rotation, self.translation)


@dataclass
class RecognizedObject:
    """
    Recognized object (one per selected conflict graph node).

    Attributes:
        model_name: Name of the recognized library model
        rotation: (3, 3) rotation matrix (model -> scene)
        translation: (3,) translation (model -> scene)
        confidence: Fraction of model voxels matching the scene, in (0, 1]
        user_data: Payload given when the model was registered
        explained_pixels: Depth-projection pixel ids explained by this object
    """
    model_name: str
    rotation: np.ndarray
    translation: np.ndarray
    confidence: float
    user_data: Any = None
    explained_pixels: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))

    @property
    def transform(self) -> RigidTransform:
        return RigidTransform(self.rotation, self.translation)

    @property
    def matrix_3x4(self) -> np.ndarray:
        return self.transform.to_3x4()

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation (user_data passed through as is)."""
        return {
            "model_name": self.model_name,
            "rotation": self.rotation.tolist(),
            "translation": self.translation.tolist(),
            "confidence": float(self.confidence),
            "user_data": self.user_data,
            "num_explained_pixels": int(len(self.explained_pixels)),
        }


@dataclass
class RecognitionReport:
    """
    Counters and stage timings of one recognize() call.

    Attributes:
        num_scene_leaves: Occupied voxels of the scene index
        num_iterations: Sampling iterations after capping
        num_attempts: First points actually drawn
        num_pairs: Oriented point pairs kept
        num_hypotheses: Hypotheses generated (hash matches)
        num_clustered: Hypotheses inserted into the transform space
        num_accepted: Hypotheses accepted by verification
        num_recognized: Objects returned
        stage_seconds: Stage name -> elapsed seconds
    """
    num_scene_leaves: int = 0
    num_iterations: int = 0
    num_attempts: int = 0
    num_pairs: int = 0
    num_hypotheses: int = 0
    num_clustered: int = 0
    num_accepted: int = 0
    num_recognized: int = 0
    stage_seconds: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "num_scene_leaves": self.num_scene_leaves,
            "num_iterations": self.num_iterations,
            "num_attempts": self.num_attempts,
            "num_pairs": self.num_pairs,
            "num_hypotheses": self.num_hypotheses,
            "num_clustered": self.num_clustered,
            "num_accepted": self.num_accepted,
            "num_recognized": self.num_recognized,
            "stage_seconds": dict(self.stage_seconds),
        }
