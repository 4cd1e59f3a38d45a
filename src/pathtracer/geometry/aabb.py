"""Axis-aligned bounding box utilities.

Python-side helpers compute per-triangle bounds and centroids with NumPy for
the BVH builder. The Taichi side implements the slab test used during BVH
traversal.

The slab test intersects the ray with the three pairs of axis-aligned planes
and keeps the overlap of the per-axis [t_near, t_far] intervals:

    t_enter = max(t_min, t_near.x, t_near.y, t_near.z)
    t_exit  = min(t_max, t_far.x, t_far.y, t_far.z)

The box is hit when t_enter <= t_exit. The exit distance is scaled by a small
robustness factor so that rounding never rejects a ray that grazes a box of
zero thickness (a flat, axis-aligned mesh).
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

# Direction components smaller than this are clamped before inversion
MIN_DIRECTION_COMPONENT = 1e-12

# Conservative scale applied to the slab exit distance
SLAB_ROBUSTNESS = 1.0 + 4e-7


def triangle_bounds(
    vertices: npt.NDArray[np.float32],
) -> tuple[npt.NDArray[np.float32], npt.NDArray[np.float32], npt.NDArray[np.float32]]:
    """Compute bounding boxes and centroids of a batch of triangles.

    Args:
        vertices: Array of shape (N, 3, 3) holding the three corners of each
            triangle.

    Returns:
        Tuple (bounds_min, bounds_max, centroids), each of shape (N, 3).

    Raises:
        ValueError: If the array does not have shape (N, 3, 3).
    """
    vertices = np.asarray(vertices, dtype=np.float32)
    if vertices.ndim != 3 or vertices.shape[1:] != (3, 3):
        raise ValueError(f"Expected triangle vertices of shape (N, 3, 3), got {vertices.shape}")

    bounds_min = vertices.min(axis=1)
    bounds_max = vertices.max(axis=1)
    centroids = vertices.mean(axis=1, dtype=np.float64).astype(np.float32)
    return bounds_min, bounds_max, centroids


def union_bounds(
    bounds_min: npt.NDArray[np.float32],
    bounds_max: npt.NDArray[np.float32],
) -> tuple[npt.NDArray[np.float32], npt.NDArray[np.float32]]:
    """Compute the box enclosing a set of boxes."""
    return bounds_min.min(axis=0), bounds_max.max(axis=0)


def box_contains(
    outer_min: npt.NDArray[np.float32],
    outer_max: npt.NDArray[np.float32],
    inner_min: npt.NDArray[np.float32],
    inner_max: npt.NDArray[np.float32],
) -> bool:
    """Check whether the outer box fully contains the inner box(es).

    The inner arguments may be single boxes of shape (3,) or batches of
    shape (N, 3).
    """
    return bool(np.all(inner_min >= outer_min) and np.all(inner_max <= outer_max))


# =============================================================================
# Ray-Box Intersection (Taichi)
# =============================================================================


@ti.func
def safe_inverse(direction: vec3) -> vec3:
    """Invert a direction component-wise without producing infinities or NaN.

    Components with magnitude below MIN_DIRECTION_COMPONENT are replaced by
    a tiny value carrying the same sign before inversion.
    """
    d = direction
    for axis in ti.static(range(3)):
        if ti.abs(d[axis]) < MIN_DIRECTION_COMPONENT:
            if d[axis] < 0.0:
                d[axis] = -MIN_DIRECTION_COMPONENT
            else:
                d[axis] = MIN_DIRECTION_COMPONENT
    return 1.0 / d


@ti.func
def hit_aabb(
    box_min: vec3,
    box_max: vec3,
    ray_origin: vec3,
    inv_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Slab test between a ray and an axis-aligned box.

    Args:
        box_min: Minimum corner of the box.
        box_max: Maximum corner of the box.
        ray_origin: The starting point of the ray.
        inv_direction: Component-wise inverse of the ray direction, as
            returned by safe_inverse().
        t_min: Start of the valid ray interval.
        t_max: End of the valid ray interval (typically the closest hit so far).

    Returns:
        A tuple (hit, t_enter) where hit is 1 if the ray overlaps the box
        within [t_min, t_max], and t_enter is the entry distance.
    """
    t0 = (box_min - ray_origin) * inv_direction
    t1 = (box_max - ray_origin) * inv_direction
    t_near = tm.min(t0, t1)
    t_far = tm.max(t0, t1)

    t_enter = ti.max(ti.max(t_near.x, t_near.y), ti.max(t_near.z, t_min))
    t_exit = ti.min(ti.min(t_far.x, t_far.y), ti.min(t_far.z, t_max))

    hit = 0
    if t_enter <= t_exit * SLAB_ROBUSTNESS:
        hit = 1
    return hit, t_enter
