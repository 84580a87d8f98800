"""
Vector and Rigid Transform Utilities.

Pure functions over numpy arrays (no state):
- normalize / normalize_rows: unit vectors (zero vector for degenerate input)
- project_on_plane: remove the component along a plane normal
- transform_points: p -> R @ p + t
- points_are_coplanar: coplanarity test for two oriented points
- oriented_pair_signature: 3 angles invariant under rigid motion
- rigid_transforms_from_pairs: closed-form alignment of two oriented pairs
- orthonormalize / rotation_angle_between: rotation matrix helpers

Every function accepting (3,) vectors also accepts (..., 3) stacks and
broadcasts over the leading axes.
"""

from __future__ import annotations
from typing import Optional
import numpy as np

from ..models import RigidTransform

EPS = 1e-9  # Degenerate length threshold


def _unit(v: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Unit vectors along the last axis and the mask of non-degenerate inputs.

    Returns:
        (unit, ok): unit has the shape of v (zero rows where degenerate),
        ok has the shape of v without the last axis
    """
    v = np.asarray(v, dtype=float)
    norm = np.linalg.norm(v, axis=-1, keepdims=True)
    ok = norm > EPS
    unit = np.where(ok, v / np.where(ok, norm, 1.0), 0.0)
    return unit, ok[..., 0]


def _dot(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return np.sum(a * b, axis=-1)


def _angle(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Angle between unit vectors, dot product clamped to [-1, 1]."""
    return np.arccos(np.clip(_dot(a, b), -1.0, 1.0))


def normalize(v: np.ndarray) -> np.ndarray:
    """Unit vector of v; zero vector if |v| is (near) zero."""
    return _unit(v)[0]


def normalize_rows(vectors: np.ndarray) -> np.ndarray:
    """Row-wise unit vectors of an (N, 3) array; degenerate rows become zero."""
    vectors = np.asarray(vectors, dtype=float)
    if vectors.ndim != 2 or vectors.shape[1] != 3:
        raise ValueError(f"Expected (N, 3) array, got shape {vectors.shape}")
    return _unit(vectors)[0]


def project_on_plane(x: np.ndarray, plane_normal: np.ndarray) -> np.ndarray:
    """
    Project x onto the plane through the origin with unit normal plane_normal.

    Notes:
        - plane_normal must already be a unit vector
    """
    x = np.asarray(x, dtype=float)
    plane_normal = np.asarray(plane_normal, dtype=float)
    return x - _dot(x, plane_normal)[..., None] * plane_normal


def transform_points(rotation: np.ndarray, translation: np.ndarray, points: np.ndarray) -> np.ndarray:
    """
    Apply p -> R @ p + t.

    Args:
        rotation: (3, 3) matrix
        translation: (3,) vector
        points: (3,) point or (N, 3) points

    Returns:
        Transformed points, same shape as points
    """
    points = np.asarray(points, dtype=float)
    return points @ np.asarray(rotation, dtype=float).T + np.asarray(translation, dtype=float)


def points_are_coplanar(p1, n1, p2, n2, max_angle: float):
    """
    Check whether two oriented points lie (approximately) on one plane.

    Args:
        p1, n1: First point and normal, (3,) or (..., 3)
        p2, n2: Second point and normal, (3,) or (..., 3)
        max_angle: Angular tolerance in radians

    Returns:
        bool for single pairs, bool array for stacks

    Algorithm:
        1. Normals further apart than max_angle -> not coplanar
        2. Line p1->p2 deviating from perpendicular to n1 by more
           than max_angle -> not coplanar
        3. Otherwise coplanar

    Notes:
        - Degenerate input (zero normal, coincident points) counts as
          coplanar so the pair is rejected
    """
    u1, ok1 = _unit(n1)
    u2, ok2 = _unit(n2)
    line, ok_line = _unit(np.asarray(p2, dtype=float) - np.asarray(p1, dtype=float))

    normals_close = _angle(u1, u2) <= max_angle
    line_in_plane = np.abs(_angle(u1, line) - 0.5 * np.pi) <= max_angle

    result = (normals_close & line_in_plane) | ~(ok1 & ok2 & ok_line)
    if np.ndim(result) == 0:
        return bool(result)
    return result


def oriented_pair_signature(p1, n1, p2, n2) -> np.ndarray:
    """
    Rigid-motion invariant signature of an oriented point pair.

    Args:
        p1, n1: First point and unit normal, (3,) or (N, 3)
        p2, n2: Second point and unit normal, (3,) or (N, 3)

    Returns:
        (3,) or (N, 3) array of angles in [0, pi]:
        [angle(n1, l), angle(n2, -l), angle(n1, n2)] with l = unit(p2 - p1)
    """
    line, _ = _unit(np.asarray(p2, dtype=float) - np.asarray(p1, dtype=float))
    u1, _ = _unit(n1)
    u2, _ = _unit(n2)
    return np.stack([_angle(u1, line), _angle(u2, -line), _angle(u1, u2)], axis=-1)


def _pair_frames(p1, n1, p2, n2) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Orthonormal frame of an oriented pair.

    Returns:
        (frames, origins, ok): frames (..., 3, 3) with columns x|y|z,
        origins (..., 3), ok (...,) False where the frame is degenerate
    """
    p1 = np.asarray(p1, dtype=float)
    p2 = np.asarray(p2, dtype=float)
    origin = 0.5 * (p1 + p2)
    x, ok_x = _unit(p2 - p1)
    y, ok_y = _unit(project_on_plane(n1, x) + project_on_plane(n2, x))
    z = np.cross(x, y)
    frames = np.stack([x, y, z], axis=-1)
    return frames, origin, ok_x & ok_y


def rigid_transforms_from_pairs(model_p1, model_n1, model_p2, model_n2,
                                scene_p1, scene_n1, scene_p2, scene_n2
                                ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Closed-form rigid transforms aligning model pairs onto a scene pair.

    Args:
        model_p1, model_n1, model_p2, model_n2: (3,) or (K, 3) model pair(s)
        scene_p1, scene_n1, scene_p2, scene_n2: (3,) or (K, 3) scene pair(s)

    Returns:
        (rotations, translations, valid):
        - rotations: (..., 3, 3)
        - translations: (..., 3)
        - valid: (...,) False where either frame is degenerate

    Algorithm:
        1. Frame of each pair: origin at the midpoint, x along p1->p2,
           y along the sum of both normals projected onto the plane
           perpendicular to x, z = x cross y
        2. R = F_scene @ F_model^T
        3. t = o_scene - R @ o_model
    """
    frames_m, origin_m, ok_m = _pair_frames(model_p1, model_n1, model_p2, model_n2)
    frames_s, origin_s, ok_s = _pair_frames(scene_p1, scene_n1, scene_p2, scene_n2)

    rotations = np.matmul(frames_s, np.swapaxes(frames_m, -1, -2))
    translations = origin_s - np.einsum("...ij,...j->...i", rotations, origin_m)
    return rotations, translations, ok_m & ok_s


def rigid_transform_from_pairs(model_pair, scene_pair) -> Optional[RigidTransform]:
    """
    Single-pair version of rigid_transforms_from_pairs.

    Args:
        model_pair: (p1, n1, p2, n2) of the model
        scene_pair: (p1, n1, p2, n2) of the scene

    Returns:
        RigidTransform mapping the model pair onto the scene pair,
        None if a frame is degenerate
    """
    rotation, translation, valid = rigid_transforms_from_pairs(*model_pair, *scene_pair)
    if not bool(valid):
        return None
    return RigidTransform(rotation, translation)


def orthonormalize(matrix: np.ndarray) -> np.ndarray:
    """
    Closest rotation matrix to a (3, 3) matrix (SVD projection onto SO(3)).
    """
    u, _, vt = np.linalg.svd(np.asarray(matrix, dtype=float))
    rotation = u @ vt
    if np.linalg.det(rotation) < 0.0:
        u[:, -1] *= -1.0
        rotation = u @ vt
    return rotation


def rotation_angle_between(rot_a: np.ndarray, rot_b: np.ndarray) -> float:
    """Geodesic angle (radians) between two rotation matrices."""
    relative = np.asarray(rot_a, dtype=float).T @ np.asarray(rot_b, dtype=float)
    cos_angle = 0.5 * (np.trace(relative) - 1.0)
    return float(np.arccos(np.clip(cos_angle, -1.0, 1.0)))
