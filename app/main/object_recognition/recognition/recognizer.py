"""
RANSAC object recognizer.

Finds rigid poses of library models in a scene of oriented points:

1. Scene voxel index
2. Depth projection (visible surface per pixel)
3. Sample oriented point pairs
4. Generate hypotheses via the geometric hash table
5. Cluster hypotheses in the transform space, verify the representatives
6. Conflict graph over accepted hypotheses
7. Select non-conflicting hypotheses

Stages run strictly in this order within one recognize() call. The
recognizer keeps the intermediate data of the last call for inspection.
"""

from __future__ import annotations
from typing import Any, Optional
import logging

import numpy as np

from .config import RecognitionConfig, RecognitionMode
from .conflict import build_conflict_graph, select_hypotheses
from .hypotheses import compute_number_of_iterations, generate_hypotheses, sample_oriented_point_pairs
from .library import Model, ModelLibrary
from .models import Hypothesis, OrientedPointPair, RecognitionReport, RecognizedObject
from .performance import check_deadline, get_timer, time_block
from .spatial import DepthProjection, VoxelIndex
from .transform_space import HypothesisVerifier, TransformSpace, verify_transform_space

logger = logging.getLogger(__name__)


class ObjectRecognizer:
    """
    Recognizes library models in oriented point clouds.

    Args:
        config: RecognitionConfig (fixed for the lifetime of the recognizer)

    Attributes:
        config: The configuration
        library: Registered models and their hash table
        sampled_pairs: Pairs sampled by the last call
        accepted_hypotheses: Hypotheses accepted by verification in the last call
        last_report: Counters and stage timings of the last call
        scene_index: Scene VoxelIndex of the last call
        scene_projection: Scene DepthProjection of the last call

    Example:
        >>> recognizer = ObjectRecognizer(RecognitionConfig(pair_width=40.0, voxel_size=4.0))
        >>> recognizer.add_model("mug", mug_points, mug_normals, user_data={"id": 7})
        >>> objects = recognizer.recognize(scene_points, scene_normals, 0.99, rng=0)
    """

    def __init__(self, config: RecognitionConfig):
        self.config = config
        self.library = ModelLibrary(
            pair_width=config.pair_width,
            voxel_size=config.voxel_size,
            max_coplanarity_angle=config.max_coplanarity_angle,
            ignore_coplanar_opps=config.ignore_coplanar_opps,
            hash_cell_angle=config.hash_cell_angle,
            pair_tolerance=config.pair_tolerance,
        )
        self._reset_last_call()

    def _reset_last_call(self):
        self.sampled_pairs: list[OrientedPointPair] = []
        self.accepted_hypotheses: list[Hypothesis] = []
        self.last_report = RecognitionReport()
        self.scene_index: Optional[VoxelIndex] = None
        self.scene_projection: Optional[DepthProjection] = None

    # ========== Model management ==========

    def add_model(self, name: str, points: np.ndarray, normals: np.ndarray,
                  user_data: Any = None) -> bool:
        """Register a model. Returns False if the name is already taken."""
        return self.library.add_model(name, points, normals, user_data)

    def remove_model(self, name: str) -> bool:
        return self.library.remove_model(name)

    def clear_models(self):
        self.library.clear()

    @property
    def models(self) -> dict[str, Model]:
        return self.library.models

    def compute_number_of_iterations(self, success_probability: float) -> int:
        """RANSAC iterations for success_probability at config.relative_obj_size."""
        return compute_number_of_iterations(success_probability, self.config.relative_obj_size)

    # ========== Recognition ==========

    def recognize(self, points: np.ndarray, normals: np.ndarray, success_probability: float = 0.99,
                  rng=None, deadline: Optional[float] = None) -> list[RecognizedObject]:
        """
        Recognize library models in a scene.

        Args:
            points: (N, 3) scene points
            normals: (N, 3) scene normals
            success_probability: Desired probability of finding an object of
                                 relative size config.relative_obj_size
            rng: numpy Generator or int seed; None uses config.seed
            deadline: Absolute time.monotonic() value, checked between stages

        Returns:
            Recognized objects ordered by conflict graph node id
            (the order verification accepted them in). Empty for an empty scene
            and in the SAMPLE_OPP / TEST_HYPOTHESES modes.

        Raises:
            ValueError: Mismatched point/normal shapes, negative success_probability
            RecognitionTimeout: Deadline passed between two stages
        """
        config = self.config
        self._reset_last_call()
        report = self.last_report
        rng = np.random.default_rng(config.seed if rng is None else rng)
        num_iterations = self.compute_number_of_iterations(success_probability)

        try:
            with time_block("recognize"):
                objects = self._run_pipeline(points, normals, num_iterations, rng, deadline, report)
        finally:
            timer = get_timer()
            results = timer.pop_results()
            for result in results:
                for child in result['children']:
                    report.stage_seconds[child['name']] = child['elapsed']
            timer.log_results(results)

        logger.info(
            "recognize: %d leaf/leaves, %d pair(s), %d hypothesis/hypotheses, %d accepted, %d recognized",
            report.num_scene_leaves, report.num_pairs, report.num_hypotheses,
            report.num_accepted, report.num_recognized,
        )
        return objects

    def _run_pipeline(self, points, normals, num_iterations: int, rng: np.random.Generator,
                      deadline: Optional[float], report: RecognitionReport) -> list[RecognizedObject]:
        config = self.config

        check_deadline(deadline, "scene_index")
        with time_block("scene_index"):
            self.scene_index = VoxelIndex.build(points, normals, config.voxel_size)
        report.num_scene_leaves = self.scene_index.num_leaves
        if self.scene_index.num_leaves == 0:
            logger.info("recognize: empty scene")
            return []

        check_deadline(deadline, "depth_projection")
        with time_block("depth_projection"):
            self.scene_projection = DepthProjection.build(
                self.scene_index, config.eps_front, config.eps_back
            )

        check_deadline(deadline, "sampling")
        report.num_iterations = min(num_iterations, self.scene_index.num_leaves)
        with time_block("sampling"):
            sampling = sample_oriented_point_pairs(
                self.scene_index,
                num_iterations,
                config.pair_width,
                config.max_coplanarity_angle,
                rng,
                tolerance=config.pair_tolerance,
                chunk_size=config.chunk_size,
                max_workers=config.max_workers,
            )
        self.sampled_pairs = sampling.pairs
        report.num_attempts = sampling.num_attempts
        report.num_pairs = len(sampling.pairs)
        if config.mode is RecognitionMode.SAMPLE_OPP:
            return []

        check_deadline(deadline, "generation")
        with time_block("generation"):
            batch = generate_hypotheses(
                sampling.pairs, self.library,
                chunk_size=config.chunk_size, max_workers=config.max_workers,
            )
        report.num_hypotheses = batch.num_hypotheses

        check_deadline(deadline, "clustering")
        with time_block("clustering"):
            space = TransformSpace.around_bounds(
                self.scene_index.bounds(),
                config.scene_bounds_enlargement_factor,
                config.position_discretization,
                config.rotation_discretization,
            )
            for model_name, hypotheses in batch.by_model.items():
                model = self.library.get_model(model_name)
                report.num_clustered += space.add_rigid_transforms(
                    model_name, model.centroid,
                    hypotheses.rotations, hypotheses.translations, hypotheses.valid,
                )

        check_deadline(deadline, "verification")
        verifier = HypothesisVerifier(self.scene_projection)
        with time_block("verification"):
            self.accepted_hypotheses = verify_transform_space(
                space, self.library, verifier,
                config.visibility, config.relative_num_of_illegal_pts,
                max_workers=config.max_workers,
            )
        report.num_accepted = len(self.accepted_hypotheses)
        if config.mode is RecognitionMode.TEST_HYPOTHESES:
            return []

        check_deadline(deadline, "selection")
        with time_block("selection"):
            graph = build_conflict_graph(
                self.accepted_hypotheses, self.library, self.scene_projection, verifier,
                config.intersection_fraction,
            )
            selected = select_hypotheses(graph)

        objects = [
            RecognizedObject(
                model_name=h.model_name,
                rotation=h.rotation,
                translation=h.translation,
                confidence=h.confidence,
                user_data=self.library.get_model(h.model_name).user_data,
                explained_pixels=h.explained_pixels,
            )
            for h in selected
        ]
        report.num_recognized = len(objects)
        return objects
