"""Scene-level ray intersection against a BVH of triangles.

This module owns the Taichi fields holding the read-only scene geometry and
its bounding volume hierarchy, and provides the closest-hit and any-hit
queries used by the integrator and the light visibility tests.

Triangles are stored in BVH leaf order, so a leaf's range [start, count)
indexes the triangle fields directly. Each stored triangle remembers the
(object id, triangle id) pair it came from.

Traversal is iterative with a fixed-size local stack. The closer child is
visited first and nodes whose entry distance lies beyond the closest hit
found so far are skipped when popped.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtracer.accel.bvh import build_scene_bvh
    >>> from src.pathtracer.scene.intersection import upload_geometry, intersect_rays
    >>> bvh = build_scene_bvh(vertices)
    >>> upload_geometry(vertices, normals, uvs, bvh)
    >>> result = intersect_rays(origins, directions)
    >>> result["t"]  # inf where the ray missed
"""

import logging

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.pathtracer.accel.bvh import BVH
from src.pathtracer.core.ray import normalize
from src.pathtracer.geometry.aabb import hit_aabb, safe_inverse
from src.pathtracer.geometry.triangle import hit_triangle, triangle_normal

logger = logging.getLogger(__name__)

# Type aliases for vectors using Taichi's math module
vec3 = tm.vec3
vec2 = tm.vec2

# Maximum number of triangles in the scene
MAX_TRIANGLES = 1 << 18

# A binary tree over N leaves has fewer than 2N nodes
MAX_NODES = 2 * MAX_TRIANGLES

# Capacity of the per-ray traversal stack
TRAVERSAL_STACK_SIZE = 64


@ti.dataclass
class RayHit:
    """Result of a closest-hit query.

    Attributes:
        hit: 1 if the ray intersected a triangle, 0 otherwise.
        t: Distance along the ray, +inf on a miss.
        object_id: Index of the object owning the triangle, -1 on a miss.
        triangle_id: Index of the triangle within its object's mesh, -1 on a miss.
        prim: Index of the triangle in the scene's triangle fields, -1 on a miss.
        bary: Barycentric weights (w0, w1, w2) of the hit point. They sum to 1.
    """

    hit: ti.i32
    t: ti.f32
    object_id: ti.i32
    triangle_id: ti.i32
    prim: ti.i32
    bary: vec3


# Triangle storage in BVH leaf order; the second axis is the corner index
tri_vertices = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_TRIANGLES, 3))
tri_normals = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_TRIANGLES, 3))
tri_uvs = ti.Vector.field(2, dtype=ti.f32, shape=(MAX_TRIANGLES, 3))
tri_object_ids = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
tri_triangle_ids = ti.field(dtype=ti.i32, shape=MAX_TRIANGLES)
num_triangles = ti.field(dtype=ti.i32, shape=())

# BVH node storage: Structure of Arrays layout
node_min = ti.Vector.field(3, dtype=ti.f32, shape=MAX_NODES)
node_max = ti.Vector.field(3, dtype=ti.f32, shape=MAX_NODES)
node_left = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_right = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_start = ti.field(dtype=ti.i32, shape=MAX_NODES)
node_count = ti.field(dtype=ti.i32, shape=MAX_NODES)
num_nodes = ti.field(dtype=ti.i32, shape=())


def clear_scene() -> None:
    """Remove all geometry from the scene.

    Resets the triangle and node counts to zero. The field data itself is
    overwritten by the next upload.
    """
    num_triangles[None] = 0
    num_nodes[None] = 0


def get_triangle_count() -> int:
    """Get the number of triangles in the scene."""
    return int(num_triangles[None])


def get_node_count() -> int:
    """Get the number of BVH nodes in the scene."""
    return int(num_nodes[None])


@ti.kernel
def _upload_triangles(
    vertices: ti.types.ndarray(),
    normals: ti.types.ndarray(),
    uvs: ti.types.ndarray(),
    refs: ti.types.ndarray(),
    n: ti.i32,
):
    for i, k in ti.ndrange(n, 3):
        tri_vertices[i, k] = vec3(vertices[i, k, 0], vertices[i, k, 1], vertices[i, k, 2])
        tri_normals[i, k] = vec3(normals[i, k, 0], normals[i, k, 1], normals[i, k, 2])
        tri_uvs[i, k] = vec2(uvs[i, k, 0], uvs[i, k, 1])
    for i in range(n):
        tri_object_ids[i] = refs[i, 0]
        tri_triangle_ids[i] = refs[i, 1]


@ti.kernel
def _upload_nodes(
    lo: ti.types.ndarray(),
    hi: ti.types.ndarray(),
    left: ti.types.ndarray(),
    right: ti.types.ndarray(),
    start: ti.types.ndarray(),
    count: ti.types.ndarray(),
    m: ti.i32,
):
    for i in range(m):
        node_min[i] = vec3(lo[i, 0], lo[i, 1], lo[i, 2])
        node_max[i] = vec3(hi[i, 0], hi[i, 1], hi[i, 2])
        node_left[i] = left[i]
        node_right[i] = right[i]
        node_start[i] = start[i]
        node_count[i] = count[i]


def upload_geometry(
    vertices: npt.ArrayLike,
    normals: npt.ArrayLike,
    uvs: npt.ArrayLike,
    bvh: BVH,
) -> None:
    """Copy world-space triangles and their BVH into the scene fields.

    Args:
        vertices: Triangle corners in input order, shape (N, 3, 3).
        normals: Per-corner normals, shape (N, 3, 3).
        uvs: Per-corner texture coordinates, shape (N, 3, 2).
        bvh: Hierarchy built over the same N triangles.

    Raises:
        ValueError: If the arrays disagree with each other or with the BVH.
        RuntimeError: If the scene exceeds the field capacities.
    """
    vertices = np.asarray(vertices, dtype=np.float32).reshape(-1, 3, 3)
    normals = np.asarray(normals, dtype=np.float32).reshape(-1, 3, 3)
    uvs = np.asarray(uvs, dtype=np.float32).reshape(-1, 3, 2)

    n = len(vertices)
    if len(normals) != n or len(uvs) != n or bvh.primitive_count != n:
        raise ValueError(
            f"Geometry arrays disagree: vertices={n}, normals={len(normals)}, "
            f"uvs={len(uvs)}, bvh primitives={bvh.primitive_count}"
        )
    if n > MAX_TRIANGLES:
        raise RuntimeError(f"Maximum number of triangles ({MAX_TRIANGLES}) exceeded: {n}")
    if bvh.node_total > MAX_NODES:
        raise RuntimeError(f"Maximum number of BVH nodes ({MAX_NODES}) exceeded: {bvh.node_total}")

    clear_scene()
    if n == 0:
        logger.info("Uploaded empty scene")
        return

    order = bvh.prim_order
    _upload_triangles(
        np.ascontiguousarray(vertices[order]),
        np.ascontiguousarray(normals[order]),
        np.ascontiguousarray(uvs[order]),
        np.ascontiguousarray(bvh.prim_refs, dtype=np.int32),
        n,
    )
    _upload_nodes(
        np.ascontiguousarray(bvh.node_min),
        np.ascontiguousarray(bvh.node_max),
        np.ascontiguousarray(bvh.node_left),
        np.ascontiguousarray(bvh.node_right),
        np.ascontiguousarray(bvh.node_start),
        np.ascontiguousarray(bvh.node_count),
        bvh.node_total,
    )
    num_triangles[None] = n
    num_nodes[None] = bvh.node_total
    logger.info("Uploaded %d triangles and %d BVH nodes", n, bvh.node_total)


# =============================================================================
# Queries (Taichi)
# =============================================================================


@ti.func
def _make_miss() -> RayHit:
    return RayHit(
        hit=0,
        t=tm.inf,
        object_id=-1,
        triangle_id=-1,
        prim=-1,
        bary=vec3(0.0, 0.0, 0.0),
    )


@ti.func
def _hit_primitive(
    ray_origin: vec3,
    ray_direction: vec3,
    k: ti.i32,
    t_min: ti.f32,
    t_max: ti.f32,
):
    return hit_triangle(
        ray_origin,
        ray_direction,
        tri_vertices[k, 0],
        tri_vertices[k, 1],
        tri_vertices[k, 2],
        t_min,
        t_max,
    )


@ti.func
def _make_hit(k: ti.i32, t: ti.f32, u: ti.f32, v: ti.f32) -> RayHit:
    return RayHit(
        hit=1,
        t=t,
        object_id=tri_object_ids[k],
        triangle_id=tri_triangle_ids[k],
        prim=k,
        bary=vec3(1.0 - u - v, u, v),
    )


@ti.func
def intersect_scene(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> RayHit:
    """Find the closest triangle hit along a ray.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The unit direction of the ray.
        t_min: Minimum distance to consider a valid hit.
        t_max: Maximum distance to consider a valid hit.

    Returns:
        The closest hit within (t_min, t_max), or a miss record (hit == 0,
        t == inf). Among hits at exactly the same distance the first one
        found is kept.
    """
    result = _make_miss()
    closest = t_max

    if num_nodes[None] > 0:
        inv_direction = safe_inverse(ray_direction)
        stack = ti.Vector([0] * TRAVERSAL_STACK_SIZE, dt=ti.i32)
        entry = ti.Vector([0.0] * TRAVERSAL_STACK_SIZE, dt=ti.f32)
        sp = 0

        root_hit, root_t = hit_aabb(node_min[0], node_max[0], ray_origin, inv_direction, t_min, closest)
        if root_hit == 1:
            stack[0] = 0
            entry[0] = root_t
            sp = 1

        while sp > 0:
            sp -= 1
            node = stack[sp]
            if entry[sp] <= closest:
                count = node_count[node]
                if count > 0:
                    start = node_start[node]
                    for k in range(start, start + count):
                        h, t, u, v = _hit_primitive(ray_origin, ray_direction, k, t_min, closest)
                        if h == 1:
                            closest = t
                            result = _make_hit(k, t, u, v)
                else:
                    left = node_left[node]
                    right = node_right[node]
                    hit_l, t_l = hit_aabb(node_min[left], node_max[left], ray_origin, inv_direction, t_min, closest)
                    hit_r, t_r = hit_aabb(node_min[right], node_max[right], ray_origin, inv_direction, t_min, closest)

                    if hit_l == 1 and hit_r == 1:
                        near = left
                        far = right
                        t_near = t_l
                        t_far = t_r
                        if t_r < t_l:
                            near = right
                            far = left
                            t_near = t_r
                            t_far = t_l
                        # Far child goes below the near one so near pops first
                        stack[sp] = far
                        entry[sp] = t_far
                        stack[sp + 1] = near
                        entry[sp + 1] = t_near
                        sp += 2
                    elif hit_l == 1:
                        stack[sp] = left
                        entry[sp] = t_l
                        sp += 1
                    elif hit_r == 1:
                        stack[sp] = right
                        entry[sp] = t_r
                        sp += 1

    return result


@ti.func
def intersect_scene_any(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> ti.i32:
    """Test if a ray hits any triangle (shadow ray query).

    Stops at the first hit found, so no ordering of children is needed.

    Args:
        ray_origin: The starting point of the ray.
        ray_direction: The unit direction of the ray.
        t_min: Minimum distance to consider a valid hit.
        t_max: Maximum distance to consider a valid hit.

    Returns:
        1 if any triangle was hit within (t_min, t_max), 0 otherwise.
    """
    hit_any = 0

    if num_nodes[None] > 0:
        inv_direction = safe_inverse(ray_direction)
        stack = ti.Vector([0] * TRAVERSAL_STACK_SIZE, dt=ti.i32)
        stack[0] = 0
        sp = 1

        while sp > 0 and hit_any == 0:
            sp -= 1
            node = stack[sp]
            box_hit, _ = hit_aabb(node_min[node], node_max[node], ray_origin, inv_direction, t_min, t_max)
            if box_hit == 1:
                count = node_count[node]
                if count > 0:
                    start = node_start[node]
                    for k in range(start, start + count):
                        if hit_any == 0:
                            h, _t, _u, _v = _hit_primitive(ray_origin, ray_direction, k, t_min, t_max)
                            if h == 1:
                                hit_any = 1
                else:
                    stack[sp] = node_right[node]
                    stack[sp + 1] = node_left[node]
                    sp += 2

    return hit_any


@ti.func
def intersect_brute_force(
    ray_origin: vec3,
    ray_direction: vec3,
    t_min: ti.f32,
    t_max: ti.f32,
) -> RayHit:
    """Find the closest hit by testing every triangle.

    Reference implementation without the BVH, used to check traversal.
    """
    result = _make_miss()
    closest = t_max
    for k in range(num_triangles[None]):
        h, t, u, v = _hit_primitive(ray_origin, ray_direction, k, t_min, closest)
        if h == 1:
            closest = t
            result = _make_hit(k, t, u, v)
    return result


# =============================================================================
# Surface Attributes (Taichi)
# =============================================================================


@ti.func
def geometric_normal(hit: RayHit) -> vec3:
    """Get the face normal of the hit triangle, following its winding."""
    k = hit.prim
    return triangle_normal(tri_vertices[k, 0], tri_vertices[k, 1], tri_vertices[k, 2])


@ti.func
def interpolate_normal(hit: RayHit) -> vec3:
    """Interpolate the vertex normals of the hit triangle.

    Falls back to the face normal when the interpolated normal vanishes.
    """
    k = hit.prim
    n = hit.bary[0] * tri_normals[k, 0] + hit.bary[1] * tri_normals[k, 1] + hit.bary[2] * tri_normals[k, 2]
    result = normalize(n)
    if tm.dot(result, result) == 0.0:
        result = geometric_normal(hit)
    return result


@ti.func
def interpolate_uv(hit: RayHit) -> vec2:
    """Interpolate the texture coordinates of the hit triangle."""
    k = hit.prim
    return hit.bary[0] * tri_uvs[k, 0] + hit.bary[1] * tri_uvs[k, 1] + hit.bary[2] * tri_uvs[k, 2]


@ti.func
def interpolate_position(hit: RayHit) -> vec3:
    """Reconstruct the hit point from the barycentric weights."""
    k = hit.prim
    return hit.bary[0] * tri_vertices[k, 0] + hit.bary[1] * tri_vertices[k, 1] + hit.bary[2] * tri_vertices[k, 2]


# =============================================================================
# Batch Queries (Python)
# =============================================================================


@ti.kernel
def _intersect_rays_kernel(
    origins: ti.types.ndarray(),
    directions: ti.types.ndarray(),
    t_min: ti.f32,
    t_max: ti.f32,
    brute_force: ti.template(),
    hit_out: ti.types.ndarray(),
    t_out: ti.types.ndarray(),
    object_out: ti.types.ndarray(),
    triangle_out: ti.types.ndarray(),
    bary_out: ti.types.ndarray(),
):
    for i in range(origins.shape[0]):
        origin = vec3(origins[i, 0], origins[i, 1], origins[i, 2])
        direction = normalize(vec3(directions[i, 0], directions[i, 1], directions[i, 2]))
        rec = _make_miss()
        if ti.static(brute_force):
            rec = intersect_brute_force(origin, direction, t_min, t_max)
        else:
            rec = intersect_scene(origin, direction, t_min, t_max)
        hit_out[i] = rec.hit
        t_out[i] = rec.t
        object_out[i] = rec.object_id
        triangle_out[i] = rec.triangle_id
        for c in ti.static(range(3)):
            bary_out[i, c] = rec.bary[c]


@ti.kernel
def _occluded_kernel(
    origins: ti.types.ndarray(),
    directions: ti.types.ndarray(),
    t_min: ti.f32,
    t_max: ti.f32,
    out: ti.types.ndarray(),
):
    for i in range(origins.shape[0]):
        origin = vec3(origins[i, 0], origins[i, 1], origins[i, 2])
        direction = normalize(vec3(directions[i, 0], directions[i, 1], directions[i, 2]))
        out[i] = intersect_scene_any(origin, direction, t_min, t_max)


def _ray_arrays(origins: npt.ArrayLike, directions: npt.ArrayLike):
    o = np.ascontiguousarray(np.asarray(origins, dtype=np.float32).reshape(-1, 3))
    d = np.ascontiguousarray(np.asarray(directions, dtype=np.float32).reshape(-1, 3))
    if len(o) != len(d):
        raise ValueError(f"Got {len(o)} origins but {len(d)} directions")
    return o, d


def intersect_rays(
    origins: npt.ArrayLike,
    directions: npt.ArrayLike,
    t_min: float = 0.0,
    t_max: float = float("inf"),
    brute_force: bool = False,
) -> dict[str, npt.NDArray]:
    """Intersect a batch of rays with the uploaded scene.

    Directions are normalized, so distances are in world units.

    Args:
        origins: Ray origins, shape (N, 3).
        directions: Ray directions, shape (N, 3).
        t_min: Minimum hit distance.
        t_max: Maximum hit distance.
        brute_force: Test every triangle instead of traversing the BVH.

    Returns:
        Dictionary with arrays "hit" (N,), "t" (N,), "object_id" (N,),
        "triangle_id" (N,) and "bary" (N, 3).
    """
    o, d = _ray_arrays(origins, directions)
    n = len(o)
    result = {
        "hit": np.zeros(n, dtype=np.int32),
        "t": np.zeros(n, dtype=np.float32),
        "object_id": np.zeros(n, dtype=np.int32),
        "triangle_id": np.zeros(n, dtype=np.int32),
        "bary": np.zeros((n, 3), dtype=np.float32),
    }
    if n == 0:
        return result
    _intersect_rays_kernel(
        o,
        d,
        t_min,
        t_max,
        brute_force,
        result["hit"],
        result["t"],
        result["object_id"],
        result["triangle_id"],
        result["bary"],
    )
    return result


def occluded_rays(
    origins: npt.ArrayLike,
    directions: npt.ArrayLike,
    t_min: float = 0.0,
    t_max: float = float("inf"),
) -> npt.NDArray[np.int32]:
    """Run the any-hit query for a batch of rays.

    Returns:
        Array of shape (N,) with 1 where something blocks the ray.
    """
    o, d = _ray_arrays(origins, directions)
    out = np.zeros(len(o), dtype=np.int32)
    if len(o) > 0:
        _occluded_kernel(o, d, t_min, t_max, out)
    return out
