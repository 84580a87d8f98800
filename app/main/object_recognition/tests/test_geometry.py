"""
Tests for geometry/vectors.py.

Test Groups:
- V1-V4: normalize, projection, point transforms
- C1-C5: coplanarity test
- P1-P3: oriented pair signature
- T1-T5: closed-form rigid transforms and rotation helpers
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import math

import pytest
import numpy as np
from scipy.spatial.transform import Rotation

from recognition.geometry import (
    normalize,
    normalize_rows,
    project_on_plane,
    transform_points,
    points_are_coplanar,
    oriented_pair_signature,
    rigid_transforms_from_pairs,
    rigid_transform_from_pairs,
    orthonormalize,
    rotation_angle_between,
)


# ========== Fixtures ==========

@pytest.fixture
def pose():
    """Known rigid transform (rotation, translation)"""
    rotation = Rotation.from_euler("zyx", [40.0, -25.0, 70.0], degrees=True).as_matrix()
    return rotation, np.array([3.0, -7.5, 12.0])


@pytest.fixture
def model_pair():
    """Non-degenerate oriented pair"""
    p1 = np.array([0.0, 0.0, 0.0])
    n1 = normalize(np.array([0.0, 1.0, 1.0]))
    p2 = np.array([10.0, 0.0, 0.0])
    n2 = normalize(np.array([0.3, -1.0, 1.0]))
    return p1, n1, p2, n2


def apply_pose(pose, pair):
    rotation, translation = pose
    p1, n1, p2, n2 = pair
    return (rotation @ p1 + translation, rotation @ n1,
            rotation @ p2 + translation, rotation @ n2)


# ========== Test Group V: basic vector helpers ==========

def test_V1_normalize():
    """V1: normalize returns unit vectors, zero for degenerate input"""
    print("\nTest V1: Normalize...", end=" ")

    assert np.allclose(normalize(np.array([3.0, 4.0, 0.0])), [0.6, 0.8, 0.0])
    assert np.allclose(normalize(np.zeros(3)), np.zeros(3))

    rows = normalize_rows(np.array([[0.0, 0.0, 2.0], [0.0, 0.0, 0.0]]))
    assert np.allclose(rows, [[0.0, 0.0, 1.0], [0.0, 0.0, 0.0]])

    print("✓")


def test_V2_normalize_rows_rejects_bad_shape():
    """V2: normalize_rows only accepts (N, 3)"""
    print("\nTest V2: Bad Shape...", end=" ")

    with pytest.raises(ValueError):
        normalize_rows(np.zeros((4, 2)))

    print("✓")


def test_V3_project_on_plane():
    """V3: Projection removes the component along the plane normal"""
    print("\nTest V3: Project On Plane...", end=" ")

    projected = project_on_plane(np.array([1.0, 2.0, 3.0]), np.array([0.0, 0.0, 1.0]))
    assert np.allclose(projected, [1.0, 2.0, 0.0])

    print("✓")


def test_V4_transform_points(pose):
    """V4: transform_points handles single points and stacks"""
    print("\nTest V4: Transform Points...", end=" ")

    rotation, translation = pose
    points = np.array([[1.0, 2.0, 3.0], [-4.0, 0.5, 2.0]])

    single = transform_points(rotation, translation, points[0])
    stack = transform_points(rotation, translation, points)

    assert single.shape == (3,)
    assert stack.shape == (2, 3)
    assert np.allclose(single, rotation @ points[0] + translation)
    assert np.allclose(stack[1], rotation @ points[1] + translation)

    print("✓")


# ========== Test Group C: coplanarity ==========

def test_C1_flat_pair_is_coplanar():
    """C1: Parallel normals perpendicular to the connecting line"""
    print("\nTest C1: Flat Pair...", end=" ")

    z = np.array([0.0, 0.0, 1.0])
    assert points_are_coplanar(np.zeros(3), z, np.array([10.0, 0.0, 0.0]), z, math.radians(3.0))

    print("✓")


def test_C2_tilted_normal_is_not_coplanar():
    """C2: Normals 30 degrees apart"""
    print("\nTest C2: Tilted Normal...", end=" ")

    z = np.array([0.0, 0.0, 1.0])
    tilted = Rotation.from_euler("y", 30.0, degrees=True).apply(z)
    assert not points_are_coplanar(np.zeros(3), z, np.array([10.0, 0.0, 0.0]), tilted, math.radians(3.0))

    print("✓")


def test_C3_line_along_normal_is_not_coplanar():
    """C3: Parallel normals but the second point lies along the normal"""
    print("\nTest C3: Line Along Normal...", end=" ")

    z = np.array([0.0, 0.0, 1.0])
    assert not points_are_coplanar(np.zeros(3), z, np.array([0.0, 0.0, 10.0]), z, math.radians(3.0))

    print("✓")


def test_C4_degenerate_input_counts_as_coplanar():
    """C4: Zero normal or coincident points reject the pair"""
    print("\nTest C4: Degenerate Input...", end=" ")

    z = np.array([0.0, 0.0, 1.0])
    x = np.array([1.0, 0.0, 0.0])
    p = np.array([1.0, 2.0, 3.0])

    assert points_are_coplanar(np.zeros(3), np.zeros(3), np.array([10.0, 0.0, 0.0]), x, math.radians(3.0))
    assert points_are_coplanar(p, z, p, x, math.radians(3.0))

    print("✓")


def test_C5_vectorized():
    """C5: Stacks return a bool array"""
    print("\nTest C5: Vectorized...", end=" ")

    z = np.array([[0.0, 0.0, 1.0], [0.0, 0.0, 1.0]])
    p1 = np.zeros((2, 3))
    p2 = np.array([[10.0, 0.0, 0.0], [0.0, 0.0, 10.0]])

    result = points_are_coplanar(p1, z, p2, z, math.radians(3.0))
    assert result.dtype == bool
    assert result.tolist() == [True, False]

    print("✓")


# ========== Test Group P: signature ==========

def test_P1_signature_values():
    """P1: Known angles"""
    print("\nTest P1: Signature Values...", end=" ")

    signature = oriented_pair_signature(
        np.zeros(3), np.array([0.0, 0.0, 1.0]),
        np.array([10.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0]),
    )
    assert np.allclose(signature, [math.pi / 2, math.pi, math.pi / 2])

    print("✓")


def test_P2_signature_is_rigid_invariant(pose, model_pair):
    """P2: Signature does not change under a rigid transform"""
    print("\nTest P2: Rigid Invariance...", end=" ")

    before = oriented_pair_signature(*model_pair)
    after = oriented_pair_signature(*apply_pose(pose, model_pair))

    assert np.allclose(before, after)
    assert np.all((before >= 0.0) & (before <= math.pi))

    print("✓")


def test_P3_signature_vectorized(model_pair):
    """P3: (N, 3) inputs give (N, 3) signatures"""
    print("\nTest P3: Vectorized Signature...", end=" ")

    stacked = [np.stack([v, v]) for v in model_pair]
    signatures = oriented_pair_signature(*stacked)

    assert signatures.shape == (2, 3)
    assert np.allclose(signatures[0], oriented_pair_signature(*model_pair))

    print("✓")


# ========== Test Group T: rigid transforms ==========

def test_T1_recovers_known_transform(pose, model_pair):
    """T1: Aligning a pair with its transformed copy gives back the transform"""
    print("\nTest T1: Recover Transform...", end=" ")

    rotation, translation = pose
    transform = rigid_transform_from_pairs(model_pair, apply_pose(pose, model_pair))

    assert transform is not None
    assert np.allclose(transform.rotation, rotation, atol=1e-9)
    assert np.allclose(transform.translation, translation, atol=1e-9)

    print("✓")


def test_T2_degenerate_frame():
    """T2: Normals parallel to the connecting line give no transform"""
    print("\nTest T2: Degenerate Frame...", end=" ")

    x = np.array([1.0, 0.0, 0.0])
    pair = (np.zeros(3), x, np.array([10.0, 0.0, 0.0]), x)
    assert rigid_transform_from_pairs(pair, pair) is None

    print("✓")


def test_T3_vectorized_over_model_pairs(pose, model_pair):
    """T3: K model pairs against one scene pair"""
    print("\nTest T3: Vectorized Transforms...", end=" ")

    p1, n1, p2, n2 = model_pair
    x = np.array([1.0, 0.0, 0.0])
    model_p1 = np.stack([p1, np.zeros(3)])
    model_n1 = np.stack([n1, x])
    model_p2 = np.stack([p2, np.array([10.0, 0.0, 0.0])])
    model_n2 = np.stack([n2, x])

    rotations, translations, valid = rigid_transforms_from_pairs(
        model_p1, model_n1, model_p2, model_n2, *apply_pose(pose, model_pair)
    )

    assert rotations.shape == (2, 3, 3)
    assert translations.shape == (2, 3)
    assert valid.tolist() == [True, False]
    assert np.allclose(rotations[0], pose[0], atol=1e-9)

    print("✓")


def test_T4_orthonormalize():
    """T4: Noisy matrix is projected back onto SO(3)"""
    print("\nTest T4: Orthonormalize...", end=" ")

    rng = np.random.default_rng(3)
    rotation = Rotation.from_euler("xyz", [10.0, 20.0, 30.0], degrees=True).as_matrix()
    noisy = rotation + 0.01 * rng.standard_normal((3, 3))

    fixed = orthonormalize(noisy)
    assert np.allclose(fixed.T @ fixed, np.eye(3), atol=1e-9)
    assert np.isclose(np.linalg.det(fixed), 1.0)
    assert rotation_angle_between(fixed, rotation) < math.radians(2.0)

    print("✓")


def test_T5_rotation_angle_between():
    """T5: Geodesic angle of a known rotation"""
    print("\nTest T5: Rotation Angle...", end=" ")

    rotation = Rotation.from_euler("z", 30.0, degrees=True).as_matrix()
    assert math.isclose(rotation_angle_between(np.eye(3), rotation), math.radians(30.0), abs_tol=1e-9)
    assert rotation_angle_between(rotation, rotation) == pytest.approx(0.0, abs=1e-6)

    print("✓")
