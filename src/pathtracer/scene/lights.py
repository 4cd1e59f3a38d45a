"""Light sources and light visibility queries.

Lights form a tagged variant with two kinds:

- DIRECTIONAL: parallel light travelling along a fixed direction. Its
  attenuation is always 1.
- POINT: light emitted from a position and fading out smoothly to zero at a
  finite radius:

      attenuation = clamp(1 - (d / r)^4, 0, 1)^2 / (d^2 + 1)

A single dispatch function, light_visibility(), evaluates either kind and
tests occlusion with an any-hit query from the surface point toward the
light.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtracer.scene.lights import add_directional_light, add_point_light
    >>> add_directional_light(direction=(0.0, -1.0, 0.0), intensity=(1.0, 1.0, 1.0))
    >>> add_point_light(position=(0.0, 2.0, 0.0), intensity=(4.0, 4.0, 4.0), radius=5.0)
"""

import math
from enum import IntEnum

import numpy as np
import taichi as ti
import taichi.math as tm

from src.pathtracer.core.ray import normalize, offset_ray_origin
from src.pathtracer.scene.intersection import intersect_scene_any

vec3 = tm.vec3


class LightKind(IntEnum):
    """Enumeration of supported light kinds."""

    DIRECTIONAL = 0
    POINT = 1


_DIRECTIONAL = int(LightKind.DIRECTIONAL)

# Maximum number of lights in the scene
MAX_LIGHTS = 64

light_kinds = ti.field(dtype=ti.i32, shape=MAX_LIGHTS)
# Travel direction for directional lights, position for point lights
light_vectors = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
light_radii = ti.field(dtype=ti.f32, shape=MAX_LIGHTS)
light_intensities = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LIGHTS)
num_lights = ti.field(dtype=ti.i32, shape=())


def clear_lights() -> None:
    """Remove all lights."""
    num_lights[None] = 0


def get_light_count() -> int:
    """Get the number of lights in the scene."""
    return int(num_lights[None])


def _validate_intensity(intensity: tuple[float, float, float]) -> None:
    if len(intensity) != 3:
        raise ValueError(f"Intensity must have 3 components, got {len(intensity)}")
    for c in intensity:
        if not math.isfinite(c) or c < 0.0:
            raise ValueError(f"Intensity components must be finite and non-negative, got {intensity}")


def _add_light(kind: LightKind, vector, radius: float, intensity) -> int:
    idx = num_lights[None]
    if idx >= MAX_LIGHTS:
        raise RuntimeError(f"Maximum number of lights ({MAX_LIGHTS}) exceeded")
    light_kinds[idx] = int(kind)
    light_vectors[idx] = [float(c) for c in vector]
    light_radii[idx] = radius
    light_intensities[idx] = [float(c) for c in intensity]
    num_lights[None] = idx + 1
    return idx


def add_directional_light(
    direction: tuple[float, float, float],
    intensity: tuple[float, float, float] = (1.0, 1.0, 1.0),
) -> int:
    """Add a directional light.

    Args:
        direction: Direction the light travels in (from the light toward
            the scene). Normalized on insertion.
        intensity: RGB intensity.

    Returns:
        The index of the added light.

    Raises:
        ValueError: If the direction is zero or the intensity is invalid.
        RuntimeError: If the maximum number of lights is exceeded.
    """
    d = np.asarray(direction, dtype=np.float64)
    norm = float(np.linalg.norm(d))
    if d.shape != (3,) or not norm > 1e-12:
        raise ValueError(f"Light direction must be a non-zero 3-vector, got {direction}")
    _validate_intensity(intensity)
    return _add_light(LightKind.DIRECTIONAL, d / norm, 0.0, intensity)


def add_point_light(
    position: tuple[float, float, float],
    intensity: tuple[float, float, float] = (1.0, 1.0, 1.0),
    radius: float = 10.0,
) -> int:
    """Add a point light with a finite radius of influence.

    Args:
        position: Light position in world space.
        intensity: RGB intensity.
        radius: Distance at which the light's contribution reaches zero.

    Returns:
        The index of the added light.

    Raises:
        ValueError: If the radius is not positive or the intensity is invalid.
        RuntimeError: If the maximum number of lights is exceeded.
    """
    if len(position) != 3:
        raise ValueError(f"Light position must be a 3-vector, got {position}")
    if not radius > 0.0:
        raise ValueError(f"Light radius must be positive, got {radius}")
    _validate_intensity(intensity)
    return _add_light(LightKind.POINT, position, radius, intensity)


def point_light_falloff(distance: float, radius: float) -> float:
    """Evaluate the point light attenuation on the Python side."""
    window = min(max(1.0 - (distance / radius) ** 4, 0.0), 1.0)
    return window * window / (distance * distance + 1.0)


# =============================================================================
# Visibility (Taichi)
# =============================================================================


@ti.func
def light_visibility(light: ti.i32, point: vec3, normal: vec3):
    """Evaluate one light as seen from a surface point.

    Args:
        light: Index of the light.
        point: The surface point.
        normal: The geometric normal at the point, used to offset the
            shadow ray origin off the surface.

    Returns:
        A tuple (direction, attenuation, visible): the unit direction from
        the point toward the light, the distance attenuation, and 1 if no
        geometry blocks the light.
    """
    direction = vec3(0.0, 0.0, 0.0)
    attenuation = 0.0
    distance = tm.inf

    if light_kinds[light] == _DIRECTIONAL:
        direction = -light_vectors[light]
        attenuation = 1.0
    else:
        to_light = light_vectors[light] - point
        distance = tm.length(to_light)
        direction = normalize(to_light)
        ratio = distance / light_radii[light]
        window = tm.clamp(1.0 - ratio * ratio * ratio * ratio, 0.0, 1.0)
        attenuation = window * window / (distance * distance + 1.0)

    visible = 0
    if attenuation > 0.0 and tm.dot(direction, direction) > 0.0:
        origin = offset_ray_origin(point, normal, direction)
        if intersect_scene_any(origin, direction, 0.0, distance) == 0:
            visible = 1
    return direction, attenuation, visible


@ti.func
def direct_lighting(point: vec3, shading_normal: vec3, geometric_normal: vec3) -> vec3:
    """Sum the unoccluded diffuse illumination of all lights at a point.

    Each visible light contributes attenuation * max(dot(n, l), 0) * intensity.

    Args:
        point: The surface point.
        shading_normal: Unit normal used for the cosine term.
        geometric_normal: Face normal used to offset shadow rays.

    Returns:
        The RGB illumination.
    """
    illumination = vec3(0.0, 0.0, 0.0)
    for i in range(num_lights[None]):
        direction, attenuation, visible = light_visibility(i, point, geometric_normal)
        if visible == 1:
            diffuse = ti.max(tm.dot(shading_normal, direction), 0.0)
            illumination += attenuation * diffuse * light_intensities[i]
    return illumination


@ti.kernel
def _visibility_kernel(
    points: ti.types.ndarray(),
    normals: ti.types.ndarray(),
    light: ti.i32,
    directions_out: ti.types.ndarray(),
    attenuation_out: ti.types.ndarray(),
    visible_out: ti.types.ndarray(),
):
    for i in range(points.shape[0]):
        p = vec3(points[i, 0], points[i, 1], points[i, 2])
        n = vec3(normals[i, 0], normals[i, 1], normals[i, 2])
        direction, attenuation, visible = light_visibility(light, p, n)
        for k in ti.static(range(3)):
            directions_out[i, k] = direction[k]
        attenuation_out[i] = attenuation
        visible_out[i] = visible


def query_visibility(light: int, points, normals) -> dict[str, np.ndarray]:
    """Evaluate a light's visibility for a batch of surface points.

    Args:
        light: Index of the light.
        points: Surface points, shape (N, 3).
        normals: Geometric normals, shape (N, 3).

    Returns:
        Dictionary with "direction" (N, 3), "attenuation" (N,) and
        "visible" (N,) arrays.

    Raises:
        ValueError: If the light index is out of range.
    """
    if light < 0 or light >= get_light_count():
        raise ValueError(f"Invalid light index: {light}")
    p = np.ascontiguousarray(np.asarray(points, dtype=np.float32).reshape(-1, 3))
    n = np.ascontiguousarray(np.asarray(normals, dtype=np.float32).reshape(-1, 3))
    result = {
        "direction": np.zeros((len(p), 3), dtype=np.float32),
        "attenuation": np.zeros(len(p), dtype=np.float32),
        "visible": np.zeros(len(p), dtype=np.int32),
    }
    if len(p) > 0:
        _visibility_kernel(p, n, light, result["direction"], result["attenuation"], result["visible"])
    return result
