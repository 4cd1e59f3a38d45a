"""Core rendering module.

Components:
    sampler: Hash-seeded random streams with explicit state
    ray: Ray data structure, vector helpers and diffuse bounce sampling
    scheduler: Backend initialization and parallel row passes
    integrator: Path tracing over the image rows
    render: Offline render driver with settings and statistics

All compute-intensive operations use Taichi kernels.
"""

from .ray import (
    Ray,
    length_squared,
    make_ray,
    near_zero,
    normalize,
    offset_ray_origin,
    ray_at,
    sample_diffuse_direction,
)
from .sampler import next_float, next_u32, random_in_unit_sphere, random_unit_vector, seed_rng
from .scheduler import BackendConfig, RowPass, for_each_row, init_backend

# Note: integrator and render are NOT imported here because they declare Taichi
# fields, and init_backend() must run before that. Import them directly:
#   from src.pathtracer.core.render import RenderSettings, render

__all__ = [
    "Ray",
    "ray_at",
    "make_ray",
    "length_squared",
    "normalize",
    "near_zero",
    "offset_ray_origin",
    "sample_diffuse_direction",
    "seed_rng",
    "next_u32",
    "next_float",
    "random_in_unit_sphere",
    "random_unit_vector",
    "BackendConfig",
    "RowPass",
    "init_backend",
    "for_each_row",
]
