"""Path tracing integrator.

For every pixel and every sample the integrator jitters a position inside
the pixel, shoots a camera ray through it and follows a path of at most
max_depth segments:

1. If the ray escapes, the background is added on the first segment only,
   and the path ends. Deeper escapes contribute nothing.
2. Otherwise the normal and texture coordinates are interpolated at the hit,
   the base color is fetched from the object's texture (texel ** 2.2), and
   the direct illumination of all lights is summed.
3. throughput *= base_color, then color += throughput * illumination.
4. Unless this was the last segment, the path continues from the hit point
   along normalize(normal + random unit vector).

Samples are summed per pixel in the shading pass. A second pass divides by
the sample count (zero samples give black) and applies the gamma encoding
c ** (1 / gamma). Values are not clamped.

Both passes run through the row scheduler. Random numbers come from a
generator state seeded per (seed, x, y, sample), so images are identical for
any number of worker threads.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtracer.core.integrator import (
    ...     setup_render_target, set_render_params, render_image, get_image_numpy
    ... )
    >>> setup_render_target(64, 48)
    >>> set_render_params(samples=16, max_depth=4, seed=0)
    >>> render_image()
    >>> image = get_image_numpy()  # (48, 64, 3)
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

from src.pathtracer.camera.pinhole import get_ray
from src.pathtracer.core.ray import offset_ray_origin, sample_diffuse_direction
from src.pathtracer.core.sampler import next_float, seed_rng
from src.pathtracer.core.scheduler import RowPass, for_each_row
from src.pathtracer.materials.texture import sample_texture
from src.pathtracer.scene.background import sample_background
from src.pathtracer.scene.intersection import (
    geometric_normal,
    interpolate_normal,
    interpolate_uv,
    intersect_scene,
)
from src.pathtracer.scene.lights import direct_lighting
from src.pathtracer.scene.manager import get_object_texture, is_two_sided

# Type alias for 3D vectors
vec3 = tm.vec3

# =============================================================================
# Rendering Constants
# =============================================================================

# Exponent converting sRGB texels to linear base colors
TEXTURE_GAMMA = 2.2

# Default output gamma
DEFAULT_GAMMA = 2.2

# t_min and t_max for ray intersection
T_MIN = 1e-4
T_MAX = 1e10

# =============================================================================
# Render Target (Image Buffer)
# =============================================================================

# Maximum supported image dimensions (preallocated to avoid kernel recompilation)
MAX_IMAGE_WIDTH = 2048
MAX_IMAGE_HEIGHT = 2048

# Active image size and render parameters
_width = ti.field(dtype=ti.i32, shape=())
_height = ti.field(dtype=ti.i32, shape=())
_samples = ti.field(dtype=ti.i32, shape=())
_max_depth = ti.field(dtype=ti.i32, shape=())
_seed = ti.field(dtype=ti.i32, shape=())
_gamma = ti.field(dtype=ti.f32, shape=())

# Color buffer indexed [row, column]; row 0 is the top of the image
_image = ti.Vector.field(3, dtype=ti.f32, shape=(MAX_IMAGE_HEIGHT, MAX_IMAGE_WIDTH))

_render_target_initialized = ti.field(dtype=ti.i32, shape=())


def setup_render_target(width: int, height: int) -> None:
    """Set the active image size and clear the color buffer.

    Args:
        width: Image width in pixels (max MAX_IMAGE_WIDTH).
        height: Image height in pixels (max MAX_IMAGE_HEIGHT).

    Raises:
        ValueError: If a dimension is not positive or exceeds the maximum.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if width > MAX_IMAGE_WIDTH or height > MAX_IMAGE_HEIGHT:
        raise ValueError(
            f"Image dimensions ({width}x{height}) exceed maximum supported "
            f"({MAX_IMAGE_WIDTH}x{MAX_IMAGE_HEIGHT})"
        )

    _width[None] = width
    _height[None] = height
    _render_target_initialized[None] = 1
    clear_render_target()


def clear_render_target() -> None:
    """Clear the color buffer to zero."""
    _image.fill(0.0)


def get_image_dimensions() -> tuple[int, int]:
    """Get the current render target dimensions as (width, height)."""
    return int(_width[None]), int(_height[None])


def _check_render_target_initialized() -> None:
    if _render_target_initialized[None] == 0:
        raise RuntimeError("Render target not set up. Call setup_render_target() first.")


def set_render_params(
    samples: int,
    max_depth: int,
    seed: int = 0,
    gamma: float = DEFAULT_GAMMA,
) -> None:
    """Set the sampling parameters of the next render.

    Args:
        samples: Samples per pixel (0 gives a black image).
        max_depth: Maximum path segments (0 samples only the background).
        seed: Seed of the per-path random streams.
        gamma: Output gamma; 1.0 leaves the image linear.

    Raises:
        ValueError: If a parameter is out of range.
    """
    if samples < 0:
        raise ValueError(f"samples must be non-negative, got {samples}")
    if max_depth < 0:
        raise ValueError(f"max_depth must be non-negative, got {max_depth}")
    if not gamma > 0.0:
        raise ValueError(f"gamma must be positive, got {gamma}")
    _samples[None] = samples
    _max_depth[None] = max_depth
    # Seeds are hashed as 32-bit words
    seed &= 0xFFFFFFFF
    if seed >= 1 << 31:
        seed -= 1 << 32
    _seed[None] = seed
    _gamma[None] = gamma


# =============================================================================
# Path Tracing (Taichi)
# =============================================================================


@ti.func
def _sanitize(color: vec3) -> vec3:
    result = color
    for c in ti.static(range(3)):
        if tm.isnan(result[c]) or tm.isinf(result[c]):
            result[c] = 0.0
    return result


@ti.func
def trace_path(x: ti.i32, y: ti.i32, sample: ti.i32) -> vec3:
    """Trace one path through pixel (x, y).

    Args:
        x: Pixel column (0 = left).
        y: Pixel row (0 = top).
        sample: Sample index, selecting the random stream.

    Returns:
        The radiance (RGB) carried by this path, with non-finite channels
        replaced by zero.
    """
    state = seed_rng(_seed[None], x, y, sample)
    state, jx = next_float(state)
    state, jy = next_float(state)
    u = (ti.cast(x, ti.f32) + jx) / ti.cast(_width[None], ti.f32)
    v = (ti.cast(y, ti.f32) + jy) / ti.cast(_height[None], ti.f32)

    ray = get_ray(u, v)
    origin = ray.origin
    direction = ray.direction

    color = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    depth = _max_depth[None]

    if depth == 0:
        color = sample_background(direction)

    # Active flag for path continuation
    active = 1

    for bounce in range(depth):
        if active == 1:
            hit = intersect_scene(origin, direction, T_MIN, T_MAX)

            if hit.hit == 0:
                if bounce == 0:
                    color += sample_background(direction)
                active = 0
            else:
                point = origin + hit.t * direction
                face_normal = geometric_normal(hit)
                normal = interpolate_normal(hit)
                if is_two_sided(hit.object_id) == 1 and tm.dot(normal, direction) > 0.0:
                    normal = -normal

                texel = sample_texture(get_object_texture(hit.object_id), interpolate_uv(hit))
                base_color = tm.max(texel, vec3(0.0, 0.0, 0.0)) ** TEXTURE_GAMMA

                illumination = direct_lighting(point, normal, face_normal)

                throughput *= base_color
                color += throughput * illumination

                if bounce < depth - 1:
                    state, bounce_direction = sample_diffuse_direction(state, normal)
                    origin = offset_ray_origin(point, face_normal, bounce_direction)
                    direction = bounce_direction

    return _sanitize(color)


@ti.func
def shade_row(y: ti.i32):
    """Accumulate every sample of every pixel in row y."""
    for x in range(_width[None]):
        for s in range(_samples[None]):
            _image[y, x] += trace_path(x, y, s)


@ti.func
def resolve_row(y: ti.i32):
    """Average the samples of row y and apply the output gamma."""
    samples = _samples[None]
    gamma = _gamma[None]
    for x in range(_width[None]):
        color = vec3(0.0, 0.0, 0.0)
        if samples > 0:
            color = _image[y, x] / ti.cast(samples, ti.f32)
        if gamma != 1.0:
            color = color ** (1.0 / gamma)
        _image[y, x] = color


_ROW_PASSES = {
    RowPass.SHADE: shade_row,
    RowPass.RESOLVE: resolve_row,
}


@ti.kernel
def _render_single_sample(x: ti.i32, y: ti.i32, sample: ti.i32) -> vec3:
    return trace_path(x, y, sample)


@ti.kernel
def _copy_image(out: ti.types.ndarray()):
    for y, x in ti.ndrange(_height[None], _width[None]):
        for c in ti.static(range(3)):
            out[y, x, c] = _image[y, x][c]


# =============================================================================
# Public Rendering API
# =============================================================================


def run_pass(row_pass: RowPass) -> None:
    """Run one pass over all rows of the render target."""
    _check_render_target_initialized()
    for_each_row(int(_height[None]), _ROW_PASSES[row_pass])


def render_image() -> None:
    """Render the image: clear, shade every row, then resolve every row.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    clear_render_target()
    run_pass(RowPass.SHADE)
    run_pass(RowPass.RESOLVE)


def render_sample(x: int, y: int, sample: int = 0) -> tuple[float, float, float]:
    """Trace a single path from Python, for testing.

    Args:
        x: Pixel column (0 = left).
        y: Pixel row (0 = top).
        sample: Sample index.

    Returns:
        Tuple of (R, G, B) radiance before averaging and gamma.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    color = _render_single_sample(x, y, sample)
    return (float(color[0]), float(color[1]), float(color[2]))


def get_image_numpy() -> npt.NDArray[np.float32]:
    """Copy the active region of the color buffer to NumPy.

    Returns:
        Array of shape (height, width, 3); row 0 is the top of the image.

    Raises:
        RuntimeError: If the render target has not been set up.
    """
    _check_render_target_initialized()
    width, height = get_image_dimensions()
    out = np.zeros((height, width, 3), dtype=np.float32)
    _copy_image(out)
    return out
