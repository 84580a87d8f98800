"""
Hypotheses Module.

This module provides pair sampling and hypothesis generation:
- compute_number_of_iterations: RANSAC iteration count
- sample_oriented_point_pairs: Random non-coplanar scene pairs
- generate_hypotheses: Hash lookup + closed-form transforms per pair
"""

from .sampling import SamplingResult, compute_number_of_iterations, sample_oriented_point_pairs
from .generation import HypothesisBatch, ModelHypotheses, generate_hypotheses

__all__ = [
    "SamplingResult",
    "compute_number_of_iterations",
    "sample_oriented_point_pairs",
    "HypothesisBatch",
    "ModelHypotheses",
    "generate_hypotheses",
]
