"""
Geometry helpers for oriented point pairs and rigid transforms.
"""

from .vectors import (
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

__all__ = [
    "normalize",
    "normalize_rows",
    "project_on_plane",
    "transform_points",
    "points_are_coplanar",
    "oriented_pair_signature",
    "rigid_transforms_from_pairs",
    "rigid_transform_from_pairs",
    "orthonormalize",
    "rotation_angle_between",
]
