"""
Transform-Space Clustering & Verification.

- TransformSpace: position x rotation discretization of hypotheses
- HypothesisVerifier: match/penalty scoring against the depth projection
- verify_transform_space: best accepted hypothesis per rotation space
"""

from .space import CellEntry, TransformCell, RotationSpace, TransformSpace
from .verification import HypothesisVerifier, is_acceptable, verify_transform_space

__all__ = [
    "CellEntry",
    "TransformCell",
    "RotationSpace",
    "TransformSpace",
    "HypothesisVerifier",
    "is_acceptable",
    "verify_transform_space",
]
