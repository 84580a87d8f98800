"""
Hypothesis Generation.

For every sampled scene pair: compute its signature, fetch the hash table
cell and its neighbors, and compute one closed-form rigid transform per
(model, model pair) entry found there.

The number of hypotheses is exactly the number of matched entries; pairs
whose frame is degenerate are kept with valid=False so the count stays a
function of the table and the pairs only.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging

import numpy as np

from ..geometry.vectors import oriented_pair_signature, rigid_transforms_from_pairs
from ..library.model_library import ModelLibrary
from ..models import OrientedPointPair
from ..performance import timed

logger = logging.getLogger(__name__)


@dataclass
class ModelHypotheses:
    """
    All hypotheses of one model.

    Attributes:
        rotations: (K, 3, 3) rotation matrices
        translations: (K, 3) translations
        valid: (K,) False where the alignment frame was degenerate
    """
    rotations: np.ndarray
    translations: np.ndarray
    valid: np.ndarray

    def __len__(self) -> int:
        return int(len(self.valid))


@dataclass
class HypothesisBatch:
    """
    Output of generate_hypotheses.

    Attributes:
        by_model: Model name -> ModelHypotheses
        per_pair_counts: (P,) hash entries matched by each input pair
    """
    by_model: dict[str, ModelHypotheses] = field(default_factory=dict)
    per_pair_counts: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))

    @property
    def num_hypotheses(self) -> int:
        return sum(len(h) for h in self.by_model.values())

    @property
    def num_valid(self) -> int:
        return sum(int(np.count_nonzero(h.valid)) for h in self.by_model.values())


def _generate_chunk(pairs: list[OrientedPointPair], library: ModelLibrary):
    """Hypotheses of a chunk of pairs as thread-local per-model lists."""
    local: dict[str, list[tuple[np.ndarray, np.ndarray, np.ndarray]]] = {}
    counts = []
    table = library.hash_table

    for pair in pairs:
        signature = oriented_pair_signature(pair.p1, pair.n1, pair.p2, pair.n2)
        count = 0
        for bucket in table.neighbors(signature):
            for model_name, entries in bucket.items():
                model = library.get_model(model_name)
                index = model.index
                first, second = entries[:, 0], entries[:, 1]
                rotations, translations, valid = rigid_transforms_from_pairs(
                    index.points[first], index.normals[first],
                    index.points[second], index.normals[second],
                    pair.p1, pair.n1, pair.p2, pair.n2,
                )
                local.setdefault(model_name, []).append((rotations, translations, valid))
                count += len(entries)
        counts.append(count)
    return local, counts


@timed
def generate_hypotheses(pairs: list[OrientedPointPair], library: ModelLibrary,
                        chunk_size: int = 64, max_workers: int = 1) -> HypothesisBatch:
    """
    Generate rigid transform hypotheses for all sampled pairs.

    Args:
        pairs: Sampled scene pairs
        library: Model library (read-only during this call)
        chunk_size: Pairs per work unit
        max_workers: Threads processing chunks (1 = inline)

    Returns:
        HypothesisBatch grouped by model, merged in pair order
    """
    chunks = [pairs[start:start + chunk_size] for start in range(0, len(pairs), chunk_size)]

    if max_workers > 1 and len(chunks) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(lambda chunk: _generate_chunk(chunk, library), chunks))
    else:
        results = [_generate_chunk(chunk, library) for chunk in chunks]

    merged: dict[str, list[tuple[np.ndarray, np.ndarray, np.ndarray]]] = {}
    counts: list[int] = []
    for local, chunk_counts in results:
        for model_name, parts in local.items():
            merged.setdefault(model_name, []).extend(parts)
        counts.extend(chunk_counts)

    batch = HypothesisBatch(per_pair_counts=np.asarray(counts, dtype=np.int64))
    for model_name in sorted(merged):
        parts = merged[model_name]
        batch.by_model[model_name] = ModelHypotheses(
            rotations=np.concatenate([p[0] for p in parts]),
            translations=np.concatenate([p[1] for p in parts]),
            valid=np.concatenate([p[2] for p in parts]),
        )

    logger.info(
        "generate_hypotheses: %d pair(s) -> %d hypothesis/hypotheses (%d valid)",
        len(pairs), batch.num_hypotheses, batch.num_valid,
    )
    return batch
