"""
Geometric Hash Table over oriented point pair signatures.

Signatures are 3 angles in [0, pi] (see geometry.oriented_pair_signature).
The signature cube is split into cells of equal size; every cell ("bucket")
maps model name -> (k, 2) array of leaf-id pairs of that model.

Lookups return the cell of the query signature plus its neighbors (at most
27 cells) to tolerate small numeric perturbation.
"""

from __future__ import annotations
from itertools import product
import logging
import math

import numpy as np

logger = logging.getLogger(__name__)

Bucket = dict[str, np.ndarray]
CellKey = tuple[int, int, int]


class SignatureHashTable:
    """
    Hash table on a regular 3D grid over [0, upper]^3.

    Attributes:
        cell_size: Cell edge length in signature space (radians)
        upper: Upper bound of every signature component
        num_cells: Cells per axis
    """

    def __init__(self, cell_size: float, upper: float = math.pi):
        if cell_size <= 0.0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = float(cell_size)
        self.upper = float(upper)
        self.num_cells = max(int(math.ceil(self.upper / self.cell_size)), 1)
        self._buckets: dict[CellKey, Bucket] = {}

    def keys_of(self, signatures: np.ndarray) -> np.ndarray:
        """(N, 3) signatures -> (N, 3) integer cell keys, clipped into the grid."""
        signatures = np.asarray(signatures, dtype=float).reshape(-1, 3)
        keys = np.floor(signatures / self.cell_size).astype(np.int64)
        return np.clip(keys, 0, self.num_cells - 1)

    def insert(self, model_name: str, signatures: np.ndarray, pairs: np.ndarray) -> int:
        """
        Insert the pairs of one model under their signatures.

        Args:
            model_name: Owning model
            signatures: (N, 3) signatures
            pairs: (N, 2) leaf-id pairs in the model's own index

        Returns:
            Number of inserted entries
        """
        pairs = np.asarray(pairs, dtype=np.int64).reshape(-1, 2)
        if len(pairs) == 0:
            return 0
        keys = self.keys_of(signatures)
        if len(keys) != len(pairs):
            raise ValueError(f"{len(keys)} signature(s) for {len(pairs)} pair(s)")

        unique_keys, inverse = np.unique(keys, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)
        order = np.argsort(inverse, kind="stable")
        splits = np.cumsum(np.bincount(inverse, minlength=len(unique_keys)))[:-1]

        for key, members in zip(unique_keys, np.split(order, splits)):
            bucket = self._buckets.setdefault(tuple(int(c) for c in key), {})
            entries = pairs[members]
            if model_name in bucket:
                entries = np.concatenate([bucket[model_name], entries])
            bucket[model_name] = entries
        return int(len(pairs))

    def bucket(self, key: CellKey) -> Bucket:
        return self._buckets.get(tuple(key), {})

    def neighbors(self, signature: np.ndarray) -> list[Bucket]:
        """
        Non-empty buckets of the signature's cell and its neighbors.

        Returns:
            At most 27 buckets, in a fixed order (lexicographic offsets)
        """
        center = self.keys_of(signature)[0]
        found = []
        for offset in product((-1, 0, 1), repeat=3):
            key = center + np.array(offset)
            if np.any(key < 0) or np.any(key >= self.num_cells):
                continue
            bucket = self._buckets.get(tuple(int(c) for c in key))
            if bucket:
                found.append(bucket)
        return found

    def count_matches(self, signature: np.ndarray) -> int:
        """Number of entries (over all models) in the neighborhood of signature."""
        return sum(len(entries) for bucket in self.neighbors(signature) for entries in bucket.values())

    @property
    def num_buckets(self) -> int:
        return len(self._buckets)

    @property
    def num_entries(self) -> int:
        return sum(len(entries) for bucket in self._buckets.values() for entries in bucket.values())

    def remove_model(self, model_name: str) -> int:
        """Drop all entries of a model. Returns the number removed."""
        removed = 0
        for key in list(self._buckets):
            bucket = self._buckets[key]
            entries = bucket.pop(model_name, None)
            if entries is not None:
                removed += len(entries)
            if not bucket:
                del self._buckets[key]
        return removed

    def clear(self):
        self._buckets.clear()
