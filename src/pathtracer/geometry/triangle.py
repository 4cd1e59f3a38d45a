"""Triangle primitive with ray-triangle intersection.

Intersection uses the Möller–Trumbore algorithm, which solves

    origin + t * direction = (1 - u - v) * v0 + u * v1 + v * v2

for (t, u, v) with Cramer's rule. The returned (u, v) pair, together with
w = 1 - u - v, are the barycentric weights of the hit point relative to
(v0, v1, v2) and drive normal and texture coordinate interpolation.

Degenerate triangles (collinear or coincident vertices) have zero area and a
vanishing determinant. Both conditions are rejected explicitly, and a hit
whose distance is NaN or infinite is discarded, so malformed input can never
produce a hit.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtracer.geometry.triangle import hit_triangle
    >>> # Use hit_triangle within a Taichi kernel:
    >>> # hit, t, u, v = hit_triangle(origin, direction, v0, v1, v2, 1e-4, 1e10)
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

# Squared cross-product length below which a triangle is treated as degenerate
DEGENERATE_AREA_EPSILON = 1e-20

# Determinant magnitude below which the ray is treated as parallel
PARALLEL_EPSILON = 1e-12


@ti.func
def is_degenerate(v0: vec3, v1: vec3, v2: vec3) -> ti.i32:
    """Check whether a triangle has (near) zero area.

    Returns:
        1 if the triangle is degenerate, 0 otherwise.
    """
    n = tm.cross(v1 - v0, v2 - v0)
    result = 0
    if not tm.dot(n, n) > DEGENERATE_AREA_EPSILON:
        result = 1
    return result


@ti.func
def hit_triangle(
    ray_origin: vec3,
    ray_direction: vec3,
    v0: vec3,
    v1: vec3,
    v2: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
):
    """Test for ray-triangle intersection.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The direction vector of the ray.
        v0: First vertex of the triangle.
        v1: Second vertex of the triangle.
        v2: Third vertex of the triangle.
        t_min: Minimum t value to consider a valid hit.
        t_max: Maximum t value to consider a valid hit.

    Returns:
        A tuple (hit, t, u, v). hit is 1 when the ray intersects the triangle
        strictly inside (t_min, t_max); u and v are the barycentric weights
        of v1 and v2. Values other than hit are only meaningful when hit == 1.
    """
    edge1 = v1 - v0
    edge2 = v2 - v0

    did_hit = 0
    hit_t = 0.0
    hit_u = 0.0
    hit_v = 0.0

    if is_degenerate(v0, v1, v2) == 0:
        p = tm.cross(ray_direction, edge2)
        det = tm.dot(edge1, p)

        if ti.abs(det) > PARALLEL_EPSILON:
            inv_det = 1.0 / det
            s = ray_origin - v0
            u = tm.dot(s, p) * inv_det

            if u >= 0.0 and u <= 1.0:
                q = tm.cross(s, edge1)
                v = tm.dot(ray_direction, q) * inv_det

                if v >= 0.0 and u + v <= 1.0:
                    t = tm.dot(edge2, q) * inv_det

                    if t > t_min and t < t_max and not tm.isnan(t) and not tm.isinf(t):
                        did_hit = 1
                        hit_t = t
                        hit_u = u
                        hit_v = v

    return did_hit, hit_t, hit_u, hit_v


@ti.func
def triangle_normal(v0: vec3, v1: vec3, v2: vec3) -> vec3:
    """Compute the geometric (face) normal following the winding order.

    Returns:
        normalize(cross(v1 - v0, v2 - v0)), or the zero vector for a
        degenerate triangle.
    """
    n = tm.cross(v1 - v0, v2 - v0)
    result = vec3(0.0, 0.0, 0.0)
    len_sq = tm.dot(n, n)
    if len_sq > DEGENERATE_AREA_EPSILON:
        result = n / ti.sqrt(len_sq)
    return result


@ti.func
def triangle_area(v0: vec3, v1: vec3, v2: vec3) -> ti.f32:
    """Compute the area of a triangle."""
    return 0.5 * tm.length(tm.cross(v1 - v0, v2 - v0))
