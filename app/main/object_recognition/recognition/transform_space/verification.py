"""
Hypothesis Verification.

Scores cluster representatives of the transform space against the scene's
depth projection and keeps the best accepted hypothesis per rotation space.

A model voxel transformed into the scene is
- matched: its pixel's visible depth interval contains its depth
- illegal: it lies in front of the visible surface (an occlusion violation)
- ignored: no pixel, or behind the visible surface
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from typing import Optional
import logging

import numpy as np

from ..geometry.vectors import transform_points
from ..library.model_library import Model, ModelLibrary
from ..models import Hypothesis
from ..performance import timed
from ..spatial.depth_projection import DepthClass, DepthProjection
from .space import RotationSpace, TransformSpace

logger = logging.getLogger(__name__)


class HypothesisVerifier:
    """Scores model poses against a DepthProjection (read-only)."""

    def __init__(self, projection: DepthProjection):
        self.projection = projection

    def test(self, model: Model, rotation: np.ndarray,
             translation: np.ndarray) -> tuple[int, int, np.ndarray]:
        """
        Score one pose.

        Args:
            model: Library model
            rotation: (3, 3) model -> scene rotation
            translation: (3,) model -> scene translation

        Returns:
            (match, penalty, explained_pixels): matched voxel count, illegal
            voxel count, sorted unique ids of the pixels matched voxels fall in
        """
        transformed = transform_points(rotation, translation, model.index.points)
        pixels, classes = self.projection.classify_depths(transformed)
        matched = classes == DepthClass.MATCHED
        match = int(np.count_nonzero(matched))
        penalty = int(np.count_nonzero(classes == DepthClass.ILLEGAL))
        return match, penalty, np.unique(pixels[matched])


def is_acceptable(match: int, penalty: int, num_leaves: int,
                  visibility: float, illegal_fraction: float) -> bool:
    """Acceptance test: enough matched voxels and few enough illegal ones."""
    return match > 0 and match >= visibility * num_leaves and penalty <= illegal_fraction * num_leaves


def _best_in_rotation_space(space: RotationSpace, library: ModelLibrary, verifier: HypothesisVerifier,
                            visibility: float, illegal_fraction: float) -> tuple[Optional[Hypothesis], int]:
    """Best accepted hypothesis of one rotation space and the number tested."""
    best = None
    num_tested = 0
    for cell in space.full_cells():
        for model_name in sorted(cell.entries):
            model = library.get_model(model_name)
            if model is None:
                continue
            rotation, translation = cell.average_transform(model_name)
            match, penalty, explained = verifier.test(model, rotation, translation)
            num_tested += 1

            num_leaves = model.num_leaves
            if not is_acceptable(match, penalty, num_leaves, visibility, illegal_fraction):
                continue
            if best is not None and len(explained) <= best.num_explained:
                continue

            best = Hypothesis(
                model_name=model_name,
                rotation=rotation,
                translation=translation,
                match=match,
                penalty=penalty,
                confidence=match / num_leaves,
                explained_pixels=explained,
                position_id=cell.position_id,
                rotation_id=cell.rotation_id,
            )
    return best, num_tested


@timed
def verify_transform_space(space: TransformSpace, library: ModelLibrary,
                           verifier: HypothesisVerifier, visibility: float,
                           illegal_fraction: float, max_workers: int = 1) -> list[Hypothesis]:
    """
    Test every cluster representative and keep the best per rotation space.

    Args:
        space: Filled transform space
        library: Model library
        verifier: Verifier over the scene depth projection
        visibility: Minimum matched fraction of model voxels
        illegal_fraction: Maximum illegal fraction of model voxels
        max_workers: Threads processing rotation spaces (1 = inline)

    Returns:
        Accepted hypotheses, at most one per rotation space, ordered by
        position key

    Notes:
        - Among accepted hypotheses of one rotation space the one explaining
          the most pixels wins; the first one wins ties
        - confidence = match / model voxel count
    """
    rotation_spaces = space.rotation_spaces()

    def run(rs):
        return _best_in_rotation_space(rs, library, verifier, visibility, illegal_fraction)

    if max_workers > 1 and len(rotation_spaces) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(run, rotation_spaces))
    else:
        results = [run(rs) for rs in rotation_spaces]

    accepted = [best for best, _ in results if best is not None]
    num_tested = sum(tested for _, tested in results)
    logger.info(
        "verify_transform_space: %d rotation space(s), %d representative(s) tested, %d accepted",
        len(rotation_spaces), num_tested, len(accepted),
    )
    return accepted
