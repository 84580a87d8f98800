"""
Spatial structures over oriented point clouds.

- VoxelIndex: one representative (point, normal) per occupied voxel
- DepthProjection: per-pixel visible depth interval of a VoxelIndex
"""

from .voxel_index import VoxelIndex
from .depth_projection import DepthProjection, DepthClass

__all__ = [
    "VoxelIndex",
    "DepthProjection",
    "DepthClass",
]
