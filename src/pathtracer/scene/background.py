"""Scene background: a constant color or an equirectangular environment image.

The background is looked up only for camera rays that leave the scene
without hitting anything. Environment images are indexed by the normalized
ray direction:

    u = 0.5 + atan2(d.x, -d.z) / (2 * pi)
    v = acos(d.y) / pi

so the image center faces -Z and its top row is straight up (+Y).
Background values are used as given, without any color conversion.
"""

import math

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.pathtracer.materials.texture import get_texture_count, sample_texture

vec3 = tm.vec3
vec2 = tm.vec2

# Background modes
BACKGROUND_COLOR = 0
BACKGROUND_IMAGE = 1

_background_mode = ti.field(dtype=ti.i32, shape=())
_background_color = ti.Vector.field(3, dtype=ti.f32, shape=())
_background_texture = ti.field(dtype=ti.i32, shape=())


def set_background_color(color: tuple[float, float, float]) -> None:
    """Use a constant background color.

    Raises:
        ValueError: If a component is negative or not finite.
    """
    if len(color) != 3 or not all(math.isfinite(c) and c >= 0.0 for c in color):
        raise ValueError(f"Background color must be 3 finite non-negative values, got {color}")
    _background_mode[None] = BACKGROUND_COLOR
    _background_color[None] = [float(c) for c in color]
    _background_texture[None] = -1


def set_background_texture(texture_id: int) -> None:
    """Use an already registered texture as the equirectangular background.

    Raises:
        ValueError: If the texture ID is not registered.
    """
    if texture_id < 0 or texture_id >= get_texture_count():
        raise ValueError(f"Invalid texture_id: {texture_id}")
    _background_mode[None] = BACKGROUND_IMAGE
    _background_texture[None] = texture_id


def reset_background() -> None:
    """Reset the background to black."""
    set_background_color((0.0, 0.0, 0.0))


def get_background_color() -> tuple[float, float, float]:
    """Get the constant background color."""
    c = _background_color[None]
    return (float(c[0]), float(c[1]), float(c[2]))


def direction_to_equirect(direction: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Map unit directions to equirectangular texture coordinates (NumPy).

    Args:
        direction: Directions of shape (..., 3).

    Returns:
        Coordinates of shape (..., 2).
    """
    d = np.asarray(direction, dtype=np.float64)
    u = 0.5 + np.arctan2(d[..., 0], -d[..., 2]) / (2.0 * np.pi)
    v = np.arccos(np.clip(d[..., 1], -1.0, 1.0)) / np.pi
    return np.stack([u, v], axis=-1)


@ti.func
def equirect_uv(direction: vec3) -> vec2:
    """Map a unit direction to equirectangular texture coordinates."""
    u = 0.5 + ti.atan2(direction.x, -direction.z) / (2.0 * tm.pi)
    v = ti.acos(tm.clamp(direction.y, -1.0, 1.0)) / tm.pi
    return vec2(u, v)


@ti.func
def sample_background(direction: vec3) -> vec3:
    """Look up the background seen along a unit direction."""
    result = _background_color[None]
    if _background_mode[None] == BACKGROUND_IMAGE:
        result = sample_texture(_background_texture[None], equirect_uv(direction))
    return result
