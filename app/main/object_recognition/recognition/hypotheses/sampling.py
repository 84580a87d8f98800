"""
Oriented Point Pair Sampling.

This module draws the oriented point pairs the hypotheses are generated from:
- compute_number_of_iterations: RANSAC iteration count from the desired
  success probability
- sample_oriented_point_pairs: random, well separated, non-coplanar pairs

Randomness comes only from the generator passed in by the caller. Draws are
processed in fixed-size chunks, each with its own child generator, so the
result depends on the seed and chunk_size but not on the worker count.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional
import logging
import math

import numpy as np

from ..geometry.vectors import points_are_coplanar
from ..models import OrientedPointPair
from ..spatial.voxel_index import VoxelIndex

logger = logging.getLogger(__name__)

# Probability that, given the first sample lies on an object, the second
# sample lies on the same object
P_SAME_OBJECT = 0.25


@dataclass
class SamplingResult:
    """
    Output of one sampling run.

    Attributes:
        pairs: Emitted oriented point pairs (in draw order)
        num_attempts: First points drawn (= capped iteration count)
        drawn_ids: Leaf ids drawn as first points, in draw order
    """
    pairs: list[OrientedPointPair] = field(default_factory=list)
    num_attempts: int = 0
    drawn_ids: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))


def compute_number_of_iterations(success_probability: float, relative_obj_size: float) -> int:
    """
    Number of RANSAC iterations needed to hit an object with the given probability.

    Args:
        success_probability: Desired probability of success, values >= 1.0
                             are clamped to 0.99
        relative_obj_size: Expected object size relative to the scene (0, 1]

    Returns:
        Iteration count >= 1

    Raises:
        ValueError: Negative success_probability or relative_obj_size out of (0, 1]

    Formula:
        p = P_SAME_OBJECT * relative_obj_size
        N = int(log(1 - P) / log(1 - p) + 1)
    """
    if success_probability < 0.0:
        raise ValueError(f"success_probability must be >= 0, got {success_probability}")
    if not (0.0 < relative_obj_size <= 1.0):
        raise ValueError(f"relative_obj_size must lie in (0, 1], got {relative_obj_size}")

    if success_probability >= 1.0:
        success_probability = 0.99

    p = P_SAME_OBJECT * relative_obj_size
    if 1.0 - p <= 0.0:
        return 1
    return int(math.log(1.0 - success_probability) / math.log(1.0 - p) + 1.0)


def _sample_chunk(index: VoxelIndex, first_ids: np.ndarray, pair_width: float,
                  tolerance: Optional[float], max_coplanarity_angle: float,
                  rng: np.random.Generator) -> list[OrientedPointPair]:
    """Sample the second point for each first point of one chunk."""
    pairs = []
    for leaf1 in first_ids:
        p1, n1 = index.points[leaf1], index.normals[leaf1]

        leaf2 = index.random_leaf_on_sphere(p1, pair_width, rng, tolerance)
        if leaf2 is None:
            continue

        p2, n2 = index.points[leaf2], index.normals[leaf2]
        if points_are_coplanar(p1, n1, p2, n2, max_coplanarity_angle):
            continue

        pairs.append(OrientedPointPair(
            p1=p1.copy(), n1=n1.copy(), p2=p2.copy(), n2=n2.copy(),
            first_id=int(leaf1), second_id=int(leaf2),
        ))
    return pairs


def sample_oriented_point_pairs(index: VoxelIndex, num_iterations: int, pair_width: float,
                                max_coplanarity_angle: float, rng,
                                tolerance: Optional[float] = None,
                                chunk_size: int = 64, max_workers: int = 1) -> SamplingResult:
    """
    Sample oriented point pairs from a scene index.

    Args:
        index: Scene voxel index (read-only)
        num_iterations: Requested draws, capped at index.num_leaves
        pair_width: Target distance between the two points
        max_coplanarity_angle: Coplanarity tolerance (radians)
        rng: numpy Generator or seed
        tolerance: Accepted deviation from pair_width (default: half voxel diagonal)
        chunk_size: Draws per work unit
        max_workers: Threads processing chunks (1 = inline)

    Returns:
        SamplingResult with at most num_iterations pairs

    Algorithm:
        1. First points: the first N ids of a random permutation of all leaf
           ids (uniform, without replacement)
        2. Per draw: random leaf on the sphere of radius pair_width around
           the first point; none found -> skip
        3. Coplanar pair -> skip
        4. Otherwise emit the pair
    """
    rng = np.random.default_rng(rng)
    num_attempts = max(0, min(int(num_iterations), index.num_leaves))
    if num_attempts == 0:
        return SamplingResult()

    drawn_ids = rng.permutation(index.num_leaves)[:num_attempts]
    chunks = [drawn_ids[start:start + chunk_size] for start in range(0, num_attempts, chunk_size)]
    seeds = np.random.SeedSequence(int(rng.integers(2**63 - 1))).spawn(len(chunks))
    chunk_rngs = [np.random.default_rng(seed) for seed in seeds]

    def run(args):
        ids, chunk_rng = args
        return _sample_chunk(index, ids, pair_width, tolerance, max_coplanarity_angle, chunk_rng)

    if max_workers > 1 and len(chunks) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            chunk_pairs = list(executor.map(run, zip(chunks, chunk_rngs)))
    else:
        chunk_pairs = [run(args) for args in zip(chunks, chunk_rngs)]

    pairs = [pair for chunk in chunk_pairs for pair in chunk]
    logger.info(
        "sample_oriented_point_pairs: %d attempt(s) -> %d pair(s)", num_attempts, len(pairs)
    )
    return SamplingResult(pairs=pairs, num_attempts=num_attempts, drawn_ids=drawn_ids)
