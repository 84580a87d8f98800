"""
Hypothesis Selection.

Accepted hypotheses overlap when they explain the same depth pixels. Two
hypotheses conflict when their explained pixel sets share more than
intersection_fraction of either set; the selection keeps a maximal set of
non-conflicting hypotheses, preferring those explaining much of the scene
that no neighbor explains.
"""

from __future__ import annotations
import logging

import numpy as np

from ..library.model_library import ModelLibrary
from ..models import Hypothesis
from ..performance import timed
from ..spatial.depth_projection import DepthProjection
from ..transform_space.verification import HypothesisVerifier
from .graph import ConflictGraph

logger = logging.getLogger(__name__)


@timed
def build_conflict_graph(hypotheses: list[Hypothesis], library: ModelLibrary,
                         projection: DepthProjection, verifier: HypothesisVerifier,
                         intersection_fraction: float) -> ConflictGraph:
    """
    Build the conflict graph of accepted hypotheses.

    Args:
        hypotheses: Accepted hypotheses (node id = list position)
        library: Model library the hypotheses refer to
        projection: Scene depth projection; its per-pixel id sets are reset
        verifier: Verifier over the same projection
        intersection_fraction: Overlap fraction above which two
                               hypotheses conflict

    Returns:
        ConflictGraph with one node per hypothesis

    Algorithm:
        1. Re-project every hypothesis and record its id in each pixel it
           explains
        2. Connect all ids sharing a pixel
        3. Delete an edge when the shared pixels are at most
           intersection_fraction of both explained sets
    """
    graph = ConflictGraph()
    projection.clear_hypothesis_ids()

    for hypothesis in hypotheses:
        node = graph.add_node(hypothesis)
        model = library.get_model(hypothesis.model_name)
        _, _, explained = verifier.test(model, hypothesis.rotation, hypothesis.translation)
        for pixel in explained:
            projection.add_hypothesis_id(pixel, node.id)

    for pixel in projection.pixels_with_hypotheses():
        ids = sorted(projection.hypothesis_ids(pixel))
        for i, id1 in enumerate(ids):
            for id2 in ids[i + 1:]:
                graph.insert_edge(id1, id2)

    num_candidates = len(graph.edges())
    for id1, id2 in graph.edges():
        pixels1 = graph.nodes[id1].hypothesis.explained_pixels
        pixels2 = graph.nodes[id2].hypothesis.explained_pixels
        shared = len(np.intersect1d(pixels1, pixels2, assume_unique=True))
        frac1 = shared / len(pixels1) if len(pixels1) else 0.0
        frac2 = shared / len(pixels2) if len(pixels2) else 0.0
        if frac1 <= intersection_fraction and frac2 <= intersection_fraction:
            graph.delete_edge(id1, id2)

    logger.info(
        "build_conflict_graph: %d node(s), %d candidate edge(s), %d conflict(s)",
        len(graph), num_candidates, len(graph.edges()),
    )
    return graph


@timed
def select_hypotheses(graph: ConflictGraph) -> list[Hypothesis]:
    """
    Pick non-conflicting hypotheses.

    fitness = own explained pixel count - sum of the neighbors' counts

    Returns:
        Hypotheses of the ON nodes, ordered by node id
    """
    for node in graph.nodes:
        own = node.hypothesis.num_explained
        node.fitness = own - sum(graph.nodes[n].hypothesis.num_explained for n in node.neighbors)

    on_nodes, _ = graph.compute_maximal_on_off_partition()
    selected = [node.hypothesis for node in sorted(on_nodes, key=lambda n: n.id)]
    logger.debug("select_hypotheses: %d of %d hypothesis/hypotheses kept", len(selected), len(graph))
    return selected
