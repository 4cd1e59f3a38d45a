"""Acceleration structures.

Components:
    bvh: Bounding volume hierarchy over triangle bounds, built on the host
        with NumPy and stored as flat node arrays ready for upload
"""

from .bvh import (
    DEFAULT_LEAF_SIZE,
    DEFAULT_MAX_DEPTH,
    MAX_SUPPORTED_DEPTH,
    BVH,
    build_bvh,
    build_scene_bvh,
)

__all__ = [
    "BVH",
    "build_bvh",
    "build_scene_bvh",
    "DEFAULT_LEAF_SIZE",
    "DEFAULT_MAX_DEPTH",
    "MAX_SUPPORTED_DEPTH",
]
