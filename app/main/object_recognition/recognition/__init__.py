"""
RANSAC Object Recognition with Geometric Hashing.

Finds rigid poses of known 3D models in a scene of oriented points
(points + normals). Oriented point pairs sampled from the scene are looked
up in a hash table of model pair signatures; every match yields a closed-form
rigid transform. Transforms are clustered in a discretized transform space,
verified against the scene's visible surface, and overlapping survivors are
resolved with a conflict graph.

Main API:
    ObjectRecognizer(config).add_model(name, points, normals, user_data)
    ObjectRecognizer(config).recognize(points, normals, success_probability) -> list[RecognizedObject]
"""

from .config import RecognitionConfig, RecognitionMode
from .models import (
    RigidTransform,
    OrientedPointPair,
    Hypothesis,
    RecognizedObject,
    RecognitionReport,
)
from .performance import RecognitionTimeout
from .recognizer import ObjectRecognizer


__all__ = [
    # Main API
    "ObjectRecognizer",
    # Config
    "RecognitionConfig",
    "RecognitionMode",
    # Models
    "RigidTransform",
    "OrientedPointPair",
    "Hypothesis",
    "RecognizedObject",
    "RecognitionReport",
    # Errors
    "RecognitionTimeout",
]
