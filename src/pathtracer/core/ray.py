"""Ray data structure and vector utilities for CPU/GPU ray tracing.

This module provides the fundamental Ray dataclass and the vector helpers
shared by the intersector, the light visibility queries and the path
integrator. All operations are designed to work within Taichi kernels.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> origin = ti.math.vec3(0.0, 0.0, 0.0)
    >>> direction = ti.math.vec3(0.0, 0.0, -1.0)
    >>> ray = Ray(origin=origin, direction=direction)
    >>> point = ray_at(ray, 5.0)  # Point 5 units along the ray
"""

import taichi as ti
import taichi.math as tm

from src.pathtracer.core.sampler import random_unit_vector

# Type alias for 3D vectors using Taichi's math module
vec3 = tm.vec3

# Ray offset epsilon to avoid self-intersection
RAY_EPSILON = 1e-4

# Attempts at drawing a non-degenerate diffuse bounce direction
MAX_BOUNCE_ATTEMPTS = 8


@ti.dataclass
class Ray:
    """A ray with an origin point and direction vector.

    Attributes:
        origin: The starting point of the ray (vec3).
        direction: The direction vector of the ray (vec3). Callers may pass an
            unnormalized direction; make_ray() normalizes it so that the ray
            parameter t measures world-space distance.
    """

    origin: vec3
    direction: vec3


@ti.func
def ray_at(ray: Ray, t: ti.f32) -> vec3:
    """Compute the point along the ray at parameter t.

    Args:
        ray: The ray to evaluate.
        t: The parameter value. Positive values are in front of the origin.

    Returns:
        The point ray.origin + t * ray.direction.
    """
    return ray.origin + t * ray.direction


@ti.func
def make_ray(origin: vec3, direction: vec3) -> Ray:
    """Create a ray from origin and direction, normalizing the direction.

    Args:
        origin: The starting point of the ray.
        direction: The direction vector (any non-zero length).

    Returns:
        A new Ray instance with a unit-length direction.
    """
    return Ray(origin=origin, direction=normalize(direction))


# =============================================================================
# Vector Utility Functions
# =============================================================================


@ti.func
def length_squared(v: vec3) -> ti.f32:
    """Compute the squared length of a vector."""
    return tm.dot(v, v)


@ti.func
def normalize(v: vec3) -> vec3:
    """Normalize a vector to unit length.

    Args:
        v: The input vector.

    Returns:
        A unit vector in the same direction as v, or the zero vector if v
        has (near) zero length.
    """
    result = vec3(0.0, 0.0, 0.0)
    len_sq = tm.dot(v, v)
    if len_sq > 1e-30:
        result = v / ti.sqrt(len_sq)
    return result


@ti.func
def near_zero(v: vec3) -> ti.i32:
    """Check if a vector is near zero in all components.

    Useful for detecting degenerate cases in scattering.

    Args:
        v: The vector to check.

    Returns:
        1 if all components are near zero, 0 otherwise.
    """
    s = 1e-8
    result = 0
    if ti.abs(v.x) < s and ti.abs(v.y) < s and ti.abs(v.z) < s:
        result = 1
    return result


@ti.func
def offset_ray_origin(point: vec3, normal: vec3, direction: vec3) -> vec3:
    """Offset ray origin to avoid self-intersection.

    Pushes the point slightly along the geometric normal, on the side the
    new ray will travel toward.

    Args:
        point: The intersection point.
        normal: The geometric surface normal.
        direction: The direction of the ray leaving the point.

    Returns:
        The offset origin point.
    """
    offset_dir = normal
    if tm.dot(direction, normal) < 0.0:
        offset_dir = -normal
    return point + RAY_EPSILON * offset_dir


# =============================================================================
# Diffuse Bounce Sampling
# =============================================================================


@ti.func
def sample_diffuse_direction(state: ti.u32, normal: vec3):
    """Sample a cosine-weighted-like bounce direction around a normal.

    Adds a uniformly distributed point of the unit sphere to the normal and
    normalizes the sum. When the sum is near zero (the sphere point is
    almost exactly opposite the normal) a new point is drawn.

    Args:
        state: The current generator state.
        normal: The unit shading normal.

    Returns:
        A tuple (new_state, direction) with a unit-length direction.
    """
    s = state
    direction = normal
    found = 0
    for _ in range(MAX_BOUNCE_ATTEMPTS):
        if found == 0:
            s, on_sphere = random_unit_vector(s)
            candidate = normal + on_sphere
            if near_zero(candidate) == 0:
                direction = tm.normalize(candidate)
                found = 1
    return s, direction
