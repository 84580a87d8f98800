"""
Model library and geometric hash table.
"""

from .hash_table import SignatureHashTable
from .model_library import Model, ModelLibrary

__all__ = [
    "SignatureHashTable",
    "Model",
    "ModelLibrary",
]
