"""Base-color textures stored in a shared texel atlas.

Every texture is an RGB image whose texels are appended to one flat Taichi
field. A texture is described by its offset into the atlas and its size.
Solid colors are stored as 1x1 textures so all objects are shaded the same
way.

Lookups use bilinear filtering with repeat wrapping. Texture coordinate
v = 0 addresses the first image row (the top of the image as loaded).

Texel values are stored as given, in [0, 1] sRGB. The integrator converts
them to linear base colors with an exponent of 2.2.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtracer.materials.texture import add_texture, add_constant_texture
    >>> checker = add_texture(np.array([[[1, 1, 1], [0, 0, 0]], [[0, 0, 0], [1, 1, 1]]]))
    >>> grey = add_constant_texture((0.5, 0.5, 0.5))
    >>> # Within a Taichi kernel:
    >>> # color = sample_texture(grey, uv)
"""

import numpy as np
import numpy.typing as npt
import taichi as ti
import taichi.math as tm

# Type aliases for vectors
vec3 = tm.vec3
vec2 = tm.vec2

# Maximum number of textures
MAX_TEXTURES = 64

# Total texel budget shared by all textures
MAX_TEXELS = 1 << 21

# Atlas storage
texels = ti.Vector.field(3, dtype=ti.f32, shape=MAX_TEXELS)
texture_offsets = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
texture_widths = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
texture_heights = ti.field(dtype=ti.i32, shape=MAX_TEXTURES)
num_textures = ti.field(dtype=ti.i32, shape=())
num_texels = ti.field(dtype=ti.i32, shape=())


def clear_textures() -> None:
    """Remove all textures from the atlas."""
    num_textures[None] = 0
    num_texels[None] = 0


def get_texture_count() -> int:
    """Get the number of registered textures."""
    return int(num_textures[None])


def as_rgb_image(image: npt.ArrayLike) -> npt.NDArray[np.float32]:
    """Convert an image to a float32 (H, W, 3) array in [0, 1].

    Integer images are scaled by their type's maximum value. Grayscale
    images of shape (H, W) are replicated across the three channels and an
    alpha channel is dropped.

    Raises:
        ValueError: If the image is empty or has an unsupported shape.
    """
    array = np.asarray(image)
    if np.issubdtype(array.dtype, np.integer):
        array = array.astype(np.float32) / float(np.iinfo(array.dtype).max)
    else:
        array = array.astype(np.float32)

    if array.ndim == 2:
        array = np.repeat(array[:, :, None], 3, axis=2)
    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise ValueError(f"Texture must have shape (H, W, 3), got {array.shape}")
    if array.shape[0] == 0 or array.shape[1] == 0:
        raise ValueError("Texture must not be empty")
    return np.ascontiguousarray(array[:, :, :3])


@ti.kernel
def _upload_texels(data: ti.types.ndarray(), offset: ti.i32, height: ti.i32, width: ti.i32):
    for y, x in ti.ndrange(height, width):
        texels[offset + y * width + x] = vec3(data[y, x, 0], data[y, x, 1], data[y, x, 2])


def add_texture(image: npt.ArrayLike) -> int:
    """Add an RGB image to the atlas.

    Args:
        image: Image of shape (H, W, 3); row 0 is the top of the image.

    Returns:
        The texture ID.

    Raises:
        ValueError: If the image has an unsupported shape.
        RuntimeError: If the texture count or texel budget is exceeded.
    """
    data = as_rgb_image(image)
    height, width = data.shape[:2]

    idx = num_textures[None]
    if idx >= MAX_TEXTURES:
        raise RuntimeError(f"Maximum number of textures ({MAX_TEXTURES}) exceeded")
    offset = num_texels[None]
    if offset + height * width > MAX_TEXELS:
        raise RuntimeError(
            f"Texture of {width}x{height} does not fit in the texel atlas "
            f"({MAX_TEXELS - offset} texels left)"
        )

    _upload_texels(data, offset, height, width)
    texture_offsets[idx] = offset
    texture_widths[idx] = width
    texture_heights[idx] = height
    num_texels[None] = offset + height * width
    num_textures[None] = idx + 1
    return idx


def add_constant_texture(color: tuple[float, float, float]) -> int:
    """Add a solid color as a 1x1 texture.

    Args:
        color: The RGB color, each component in [0, 1].

    Returns:
        The texture ID.

    Raises:
        ValueError: If any component is outside [0, 1].
    """
    if len(color) != 3:
        raise ValueError(f"Color must have 3 components, got {len(color)}")
    for c in color:
        if not 0.0 <= c <= 1.0:
            raise ValueError(f"Color components must be in [0, 1], got {color}")
    return add_texture(np.array([[color]], dtype=np.float32))


# =============================================================================
# Sampling (Taichi)
# =============================================================================


@ti.func
def _texel(offset: ti.i32, width: ti.i32, height: ti.i32, x: ti.i32, y: ti.i32) -> vec3:
    # Taichi's integer % follows Python semantics, so the result is never negative
    return texels[offset + (y % height) * width + (x % width)]


@ti.func
def sample_texture(texture_id: ti.i32, uv: vec2) -> vec3:
    """Sample a texture bilinearly with repeat wrapping.

    Args:
        texture_id: The texture to sample.
        uv: Texture coordinates; integer translations address the same texel.

    Returns:
        The filtered RGB value. Unknown texture IDs return white, and
        non-finite coordinates are treated as (0, 0).
    """
    result = vec3(1.0, 1.0, 1.0)
    if 0 <= texture_id and texture_id < num_textures[None]:
        offset = texture_offsets[texture_id]
        width = texture_widths[texture_id]
        height = texture_heights[texture_id]

        u = uv[0]
        v = uv[1]
        if tm.isnan(u) or tm.isinf(u):
            u = 0.0
        if tm.isnan(v) or tm.isinf(v):
            v = 0.0
        # Bring coordinates into [0, 1) so the integer cast cannot overflow
        u = u - ti.floor(u)
        v = v - ti.floor(v)

        x = u * width - 0.5
        y = v * height - 0.5
        x0 = ti.floor(x)
        y0 = ti.floor(y)
        fx = x - x0
        fy = y - y0
        ix = ti.cast(x0, ti.i32)
        iy = ti.cast(y0, ti.i32)

        c00 = _texel(offset, width, height, ix, iy)
        c10 = _texel(offset, width, height, ix + 1, iy)
        c01 = _texel(offset, width, height, ix, iy + 1)
        c11 = _texel(offset, width, height, ix + 1, iy + 1)
        top = c00 * (1.0 - fx) + c10 * fx
        bottom = c01 * (1.0 - fx) + c11 * fx
        result = top * (1.0 - fy) + bottom * fy
    return result


# =============================================================================
# Utility Functions
# =============================================================================


@ti.kernel
def _sample_kernel(texture_id: ti.i32, uvs: ti.types.ndarray(), out: ti.types.ndarray()):
    for i in range(uvs.shape[0]):
        c = sample_texture(texture_id, vec2(uvs[i, 0], uvs[i, 1]))
        for k in ti.static(range(3)):
            out[i, k] = c[k]


def sample_texture_numpy(texture_id: int, uvs: npt.ArrayLike) -> npt.NDArray[np.float32]:
    """Sample a texture at a batch of coordinates from Python.

    Args:
        texture_id: The texture to sample.
        uvs: Texture coordinates, shape (N, 2).

    Returns:
        Filtered colors, shape (N, 3).
    """
    coords = np.ascontiguousarray(np.asarray(uvs, dtype=np.float32).reshape(-1, 2))
    out = np.zeros((len(coords), 3), dtype=np.float32)
    if len(coords) > 0:
        _sample_kernel(texture_id, coords, out)
    return out
