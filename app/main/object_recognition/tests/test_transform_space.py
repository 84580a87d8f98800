"""
Tests for transform_space/space.py and transform_space/verification.py.

Test Groups:
- R1-R6: TransformSpace discretization and cell averaging
- V1-V4: HypothesisVerifier, is_acceptable, verify_transform_space
"""

import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import math

import pytest
import numpy as np
from scipy.spatial.transform import Rotation

from recognition.geometry import rotation_angle_between
from recognition.library import ModelLibrary
from recognition.spatial import VoxelIndex, DepthProjection
from recognition.transform_space import (
    TransformSpace,
    HypothesisVerifier,
    is_acceptable,
    verify_transform_space,
)


VOXEL_SIZE = 2.0


def make_patch(half_size=12.0, spacing=0.5):
    """Curved, asymmetric height field patch with analytic normals"""
    xs = np.arange(-half_size, half_size + 1e-9, spacing)
    x, y = np.meshgrid(xs, xs, indexing="ij")
    x, y = x.ravel(), y.ravel()
    z = 3.0 * np.sin(x / 6.0) + 2.5 * np.cos(y / 5.0) + 0.02 * x * y
    fx = 0.5 * np.cos(x / 6.0) + 0.02 * y
    fy = -0.5 * np.sin(y / 5.0) + 0.02 * x
    normals = np.column_stack([-fx, -fy, np.ones_like(x)])
    normals /= np.linalg.norm(normals, axis=1, keepdims=True)
    return np.column_stack([x, y, z]), normals


def rot_z(degrees):
    return Rotation.from_euler("z", degrees, degrees=True).as_matrix()


# ========== Fixtures ==========

@pytest.fixture
def space():
    """10 x 10 x 10 box, position step 5, rotation step pi/2"""
    return TransformSpace.build(np.zeros(3), np.full(3, 10.0), 5.0, math.pi / 2)


@pytest.fixture(scope="module")
def scene():
    """Library with the patch and the projection of the patch itself"""
    points, normals = make_patch()
    library = ModelLibrary(10.0, VOXEL_SIZE, math.radians(3.0))
    library.add_model("patch", points, normals)
    index = VoxelIndex.build(points, normals, VOXEL_SIZE)
    projection = DepthProjection.build(index, 1.5 * VOXEL_SIZE, 1.5 * VOXEL_SIZE)
    return library, index, projection


# ========== Test Group R: TransformSpace ==========

def test_R1_grid_sizes(space):
    """R1: Cells per axis follow the box and the steps"""
    print("\nTest R1: Grid Sizes...", end=" ")

    assert space.num_position_cells.tolist() == [2, 2, 2]
    assert space.num_rotation_cells == 4

    flat = TransformSpace.build(np.zeros(3), np.zeros(3), 5.0, math.pi / 2)
    assert flat.num_position_cells.tolist() == [1, 1, 1]

    with pytest.raises(ValueError):
        TransformSpace.build(np.zeros(3), np.ones(3), 0.0, 1.0)

    print("✓")


def test_R2_around_bounds():
    """R2: Bounds are enlarged by the factor times the largest extent"""
    print("\nTest R2: Around Bounds...", end=" ")

    space = TransformSpace.around_bounds(
        (np.zeros(3), np.array([10.0, 20.0, 5.0])), 0.25, 5.0, math.pi / 2
    )
    assert np.allclose(space.lower, [-5.0, -5.0, -5.0])
    assert space.num_position_cells.tolist() == [4, 6, 3]

    empty = TransformSpace.around_bounds(None, 0.25, 5.0, math.pi / 2)
    assert empty.num_position_cells.tolist() == [1, 1, 1]

    print("✓")


def test_R3_same_cell_accumulates(space):
    """R3: Transforms landing in one cell are summed and averaged"""
    print("\nTest R3: Accumulate...", end=" ")

    rotations = np.stack([np.eye(3), np.eye(3)])
    translations = np.array([[1.0, 1.0, 1.0], [2.0, 2.0, 2.0]])

    assert space.add_rigid_transforms("m", np.zeros(3), rotations, translations) == 2
    assert space.num_rotation_spaces == 1
    assert space.num_cells == 1

    cell = space.rotation_spaces()[0].full_cells()[0]
    assert cell.entries["m"].count == 2
    rotation, translation = cell.average_transform("m")
    assert np.allclose(rotation, np.eye(3))
    assert np.allclose(translation, [1.5, 1.5, 1.5])

    print("✓")


def test_R4_out_of_bounds_and_invalid_dropped(space):
    """R4: Centroids outside the box and invalid entries are skipped"""
    print("\nTest R4: Dropped Entries...", end=" ")

    rotations = np.stack([np.eye(3)] * 3)
    translations = np.array([[1.0, 1.0, 1.0], [100.0, 0.0, 0.0], [6.0, 6.0, 6.0]])

    assert space.add_rigid_transforms("m", np.zeros(3), rotations, translations) == 2
    assert space.num_rotation_spaces == 2

    valid = np.array([True, True, False])
    assert space.add_rigid_transforms("m", np.zeros(3), rotations, translations, valid) == 1

    print("✓")


def test_R5_rotation_cells():
    """R5: Distant rotations fall into separate cells of one rotation space"""
    print("\nTest R5: Rotation Cells...", end=" ")

    space = TransformSpace.build(np.zeros(3), np.full(3, 10.0), 20.0, math.pi / 8)
    rotations = np.stack([np.eye(3), rot_z(90.0)])
    translations = np.full((2, 3), 1.0)

    space.add_rigid_transforms("m", np.zeros(3), rotations, translations)
    assert space.num_rotation_spaces == 1
    assert space.num_cells == 2

    print("✓")


def test_R6_average_is_a_rotation(space):
    """R6: The mean of nearby rotations is projected back onto SO(3)"""
    print("\nTest R6: Average Rotation...", end=" ")

    rotations = np.stack([rot_z(10.0), rot_z(20.0)])
    space.add_rigid_transforms("m", np.zeros(3), rotations, np.full((2, 3), 1.0))

    cell = space.rotation_spaces()[0].full_cells()[0]
    rotation, _ = cell.average_transform("m")
    assert np.allclose(rotation.T @ rotation, np.eye(3), atol=1e-9)
    assert rotation_angle_between(rotation, rot_z(15.0)) < 1e-6

    print("✓")


# ========== Test Group V: verification ==========

def test_V1_identity_pose_matches(scene):
    """V1: The model at its own pose matches without penalty"""
    print("\nTest V1: Identity Pose...", end=" ")

    library, _, projection = scene
    model = library.get_model("patch")
    match, penalty, explained = HypothesisVerifier(projection).test(model, np.eye(3), np.zeros(3))

    assert penalty == 0
    assert match >= 0.9 * model.num_leaves
    assert len(explained) > 0
    assert np.all(np.diff(explained) > 0)

    print("✓")


def test_V2_pose_in_front_is_illegal(scene):
    """V2: The model moved towards the sensor is all penalty"""
    print("\nTest V2: Pose In Front...", end=" ")

    library, _, projection = scene
    model = library.get_model("patch")
    match, penalty, explained = HypothesisVerifier(projection).test(
        model, np.eye(3), np.array([0.0, 0.0, -10.0])
    )

    assert match == 0
    assert penalty == model.num_leaves
    assert len(explained) == 0

    print("✓")


def test_V3_is_acceptable():
    """V3: Visibility and illegal-fraction thresholds"""
    print("\nTest V3: Acceptance...", end=" ")

    assert is_acceptable(10, 2, 100, 0.06, 0.02)
    assert not is_acceptable(10, 3, 100, 0.06, 0.02)
    assert not is_acceptable(5, 0, 100, 0.06, 0.02)
    assert not is_acceptable(0, 0, 100, 0.0, 0.02)

    print("✓")


def test_V4_verify_keeps_accepted_best(scene):
    """V4: Only the correct pose survives, one per rotation space"""
    print("\nTest V4: Verify Transform Space...", end=" ")

    library, index, projection = scene
    model = library.get_model("patch")
    space = TransformSpace.around_bounds(index.bounds(), 0.25, 5.0 * VOXEL_SIZE, math.radians(5.0))

    rotations = np.stack([np.eye(3), np.eye(3)])
    translations = np.array([[0.0, 0.0, 0.0], [0.0, 0.0, -10.0]])
    assert space.add_rigid_transforms("patch", model.centroid, rotations, translations) == 2

    accepted = verify_transform_space(space, library, HypothesisVerifier(projection), 0.06, 0.02)

    assert len(accepted) == 1
    hypothesis = accepted[0]
    assert hypothesis.model_name == "patch"
    assert np.allclose(hypothesis.translation, 0.0)
    assert 0.06 <= hypothesis.confidence <= 1.0
    assert hypothesis.penalty <= 0.02 * model.num_leaves
    assert hypothesis.confidence == pytest.approx(hypothesis.match / model.num_leaves)

    print("✓")
