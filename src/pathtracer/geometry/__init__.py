"""Geometry module for meshes and intersection primitives.

Components:
    mesh: Immutable meshes, the mesh arena, scene objects and 4x4 transforms
    aabb: Axis-aligned bounding boxes and the ray-slab test
    triangle: Ray-triangle intersection

Intersection routines are Taichi functions (@ti.func); bounds and transforms
are computed with NumPy on the host.
"""

from .aabb import box_contains, hit_aabb, safe_inverse, triangle_bounds, union_bounds
from .mesh import (
    Mesh,
    MeshArena,
    SceneObject,
    compose,
    compute_vertex_normals,
    identity,
    make_cube_mesh,
    make_quad_mesh,
    rotation,
    scaling,
    translation,
)
from .triangle import hit_triangle, is_degenerate, triangle_area, triangle_normal

__all__ = [
    # Meshes and objects
    "Mesh",
    "MeshArena",
    "SceneObject",
    "compute_vertex_normals",
    "make_quad_mesh",
    "make_cube_mesh",
    # Transforms
    "identity",
    "translation",
    "scaling",
    "rotation",
    "compose",
    # Bounding boxes
    "triangle_bounds",
    "union_bounds",
    "box_contains",
    "safe_inverse",
    "hit_aabb",
    # Triangles
    "hit_triangle",
    "is_degenerate",
    "triangle_normal",
    "triangle_area",
]
