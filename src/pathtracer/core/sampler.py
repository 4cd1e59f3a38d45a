"""Explicit random number generation for Monte Carlo sampling.

Every sampling routine in the renderer takes a generator state and returns the
advanced state together with the drawn value. The state is a single 32-bit
unsigned integer seeded from (seed, pixel x, pixel y, sample index), so each
path owns an independent stream and the image does not depend on how rows are
distributed across worker threads.

The generator is a xorshift32 stream whose initial state is scrambled with the
Wang integer hash.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtracer.core.sampler import seed_rng, next_float
    >>> @ti.kernel
    ... def draw() -> ti.f32:
    ...     state = seed_rng(7, 0, 0, 0)
    ...     state, value = next_float(state)
    ...     return value
"""

import taichi as ti
import taichi.math as tm

vec3 = tm.vec3

# Replacement for an all-zero xorshift state (zero is a fixed point)
_NONZERO_STATE = 0x6C8E9CF5

# Maximum rejection-sampling attempts for sphere sampling
MAX_REJECTION_ATTEMPTS = 64


@ti.func
def wang_hash(value: ti.u32) -> ti.u32:
    """Scramble a 32-bit integer with the Wang hash."""
    s = (value ^ ti.cast(61, ti.u32)) ^ ti.bit_shr(value, 16)
    s = s * ti.cast(9, ti.u32)
    s = s ^ ti.bit_shr(s, 4)
    s = s * ti.cast(0x27D4EB2D, ti.u32)
    s = s ^ ti.bit_shr(s, 15)
    return s


@ti.func
def seed_rng(seed: ti.i32, x: ti.i32, y: ti.i32, sample: ti.i32) -> ti.u32:
    """Derive the initial generator state for one path.

    Args:
        seed: The render seed.
        x: Pixel column.
        y: Pixel row.
        sample: Sample index within the pixel.

    Returns:
        A non-zero generator state.
    """
    s = wang_hash(ti.cast(seed, ti.u32))
    s = wang_hash(s ^ ti.cast(x, ti.u32))
    s = wang_hash(s ^ ti.cast(y, ti.u32))
    s = wang_hash(s ^ ti.cast(sample, ti.u32))
    if s == ti.cast(0, ti.u32):
        s = ti.cast(_NONZERO_STATE, ti.u32)
    return s


@ti.func
def next_u32(state: ti.u32) -> ti.u32:
    """Advance a xorshift32 state by one step."""
    x = state
    x = x ^ (x << 13)
    x = x ^ ti.bit_shr(x, 17)
    x = x ^ (x << 5)
    return x


@ti.func
def next_float(state: ti.u32):
    """Draw a uniform float in [0, 1).

    Args:
        state: The current generator state.

    Returns:
        A tuple (new_state, value).
    """
    new_state = next_u32(state)
    # Top 24 bits fit exactly in an f32 mantissa
    value = ti.cast(ti.bit_shr(new_state, 8), ti.f32) * (1.0 / 16777216.0)
    return new_state, value


@ti.func
def random_in_unit_sphere(state: ti.u32):
    """Draw a point uniformly inside the unit sphere by rejection.

    Points too close to the center are rejected as well so the result can
    always be normalized.

    Args:
        state: The current generator state.

    Returns:
        A tuple (new_state, point). The point is the zero vector if every
        attempt was rejected.
    """
    s = state
    p = vec3(0.0, 0.0, 0.0)
    found = 0
    for _ in range(MAX_REJECTION_ATTEMPTS):
        if found == 0:
            s, a = next_float(s)
            s, b = next_float(s)
            s, c = next_float(s)
            candidate = vec3(a * 2.0 - 1.0, b * 2.0 - 1.0, c * 2.0 - 1.0)
            len_sq = tm.dot(candidate, candidate)
            if len_sq < 1.0 and len_sq > 1e-12:
                p = candidate
                found = 1
    return s, p


@ti.func
def random_unit_vector(state: ti.u32):
    """Draw a direction uniformly distributed on the unit sphere.

    Args:
        state: The current generator state.

    Returns:
        A tuple (new_state, direction).
    """
    s, p = random_in_unit_sphere(state)
    direction = vec3(0.0, 0.0, 1.0)
    if tm.dot(p, p) > 0.0:
        direction = tm.normalize(p)
    return s, direction
