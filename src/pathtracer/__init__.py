"""Offline BVH path tracer built on Taichi.

Renders textured triangle meshes lit by directional and point lights into a
single image. Paths bounce diffusely off every surface, and ray queries are
accelerated by a bounding volume hierarchy built with NumPy.

Subpackages:
    accel: BVH construction over triangle bounds
    camera: Pinhole camera with near-plane ray generation
    core: Random streams, rays, the path integrator, row scheduling and the
        render driver
    geometry: Meshes, transforms, bounding boxes and ray-triangle tests
    materials: Base-color textures
    scene: Intersection, lights, background, scene manager and demo scenes
    preview: PNG export
"""

__version__ = "0.1.0"
