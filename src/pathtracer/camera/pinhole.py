"""Pinhole camera model for perspective projection ray generation.

The camera is described by its position (lookfrom), the point it looks at
(lookat), an up vector (vup), a vertical field of view, an aspect ratio and
near/far plane distances. From these it derives a ray-generation basis on
the near plane:

- corner: world-space position of the top-left corner of the image
- dx: vector spanning the full image width (left to right)
- dy: vector spanning the full image height (top to bottom)

A point (u, v) in [0, 1]^2 on the image, with v = 0 at the top row, maps to
corner + u * dx + v * dy, and the primary ray goes from the camera position
through that point. The far plane is part of the projection description but
does not clip rays.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtracer.camera.pinhole import PinholeCamera, setup_camera, get_ray
    >>>
    >>> # Camera looking at the origin from z=2
    >>> camera = PinholeCamera(
    ...     lookfrom=(0.0, 0.0, 2.0),
    ...     lookat=(0.0, 0.0, 0.0),
    ...     vup=(0.0, 1.0, 0.0),
    ...     vfov=60.0,
    ...     aspect_ratio=16.0/9.0,
    ... )
    >>> setup_camera(camera)
    >>>
    >>> @ti.kernel
    ... def render():
    ...     ray = get_ray(0.5, 0.5)  # Ray through image center
"""

import math
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt
import taichi as ti

from src.pathtracer.core.ray import Ray, make_ray

# =============================================================================
# Camera Data Structures
# =============================================================================


@dataclass
class PinholeCamera:
    """Configuration for a pinhole (perspective) camera.

    Attributes:
        lookfrom: Camera position in world space (x, y, z).
        lookat: Point the camera is looking at in world space (x, y, z).
        vup: Up direction vector for camera orientation (typically (0, 1, 0)).
        vfov: Vertical field of view in degrees.
        aspect_ratio: Width divided by height of the output image.
        near: Distance of the near plane holding the image.
        far: Distance of the far plane.
    """

    lookfrom: tuple[float, float, float]
    lookat: tuple[float, float, float]
    vup: tuple[float, float, float]
    vfov: float
    aspect_ratio: float
    near: float = 0.01
    far: float = 100.0

    def validate(self) -> None:
        """Check the camera parameters.

        Raises:
            ValueError: If the parameters do not describe a valid camera.
        """
        if not 0.0 < self.vfov < 180.0:
            raise ValueError(f"vfov must be in (0, 180) degrees, got {self.vfov}")
        if not self.aspect_ratio > 0.0:
            raise ValueError(f"aspect_ratio must be positive, got {self.aspect_ratio}")
        if not 0.0 < self.near < self.far:
            raise ValueError(f"Expected 0 < near < far, got near={self.near}, far={self.far}")

        forward = np.subtract(self.lookat, self.lookfrom)
        if np.linalg.norm(forward) < 1e-12:
            raise ValueError("lookfrom and lookat must differ")
        if np.linalg.norm(np.cross(forward, self.vup)) < 1e-12:
            raise ValueError("vup must not be parallel to the viewing direction")

    def basis(self) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """Compute the orthonormal camera frame.

        Returns:
            Tuple (right, up, forward) of unit vectors.
        """
        self.validate()
        forward = np.subtract(self.lookat, self.lookfrom).astype(np.float64)
        forward /= np.linalg.norm(forward)
        right = np.cross(forward, np.asarray(self.vup, dtype=np.float64))
        right /= np.linalg.norm(right)
        up = np.cross(right, forward)
        return right, up, forward

    def pixel_shifts(
        self,
    ) -> tuple[npt.NDArray[np.float64], npt.NDArray[np.float64], npt.NDArray[np.float64]]:
        """Compute the ray-generation basis on the near plane.

        Returns:
            Tuple (corner, dx, dy): the top-left corner of the image on the
            near plane, and the vectors spanning its width and height.
        """
        right, up, forward = self.basis()
        half_height = math.tan(math.radians(self.vfov) / 2.0) * self.near
        half_width = self.aspect_ratio * half_height

        center = np.asarray(self.lookfrom, dtype=np.float64) + self.near * forward
        corner = center - half_width * right + half_height * up
        dx = 2.0 * half_width * right
        dy = -2.0 * half_height * up
        return corner, dx, dy


# =============================================================================
# Taichi Fields for Camera State
# =============================================================================

_camera_position = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_corner = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_dx = ti.Vector.field(3, dtype=ti.f32, shape=())
_camera_dy = ti.Vector.field(3, dtype=ti.f32, shape=())


def setup_camera(camera: PinholeCamera) -> None:
    """Upload the camera's ray-generation basis.

    Must be called before rendering.

    Raises:
        ValueError: If the camera parameters are invalid.
    """
    corner, dx, dy = camera.pixel_shifts()
    _camera_position[None] = [float(c) for c in camera.lookfrom]
    _camera_corner[None] = corner.tolist()
    _camera_dx[None] = dx.tolist()
    _camera_dy[None] = dy.tolist()


# =============================================================================
# Ray Generation (Taichi)
# =============================================================================


@ti.func
def get_ray(u: ti.f32, v: ti.f32) -> Ray:
    """Generate a ray through normalized image coordinates (u, v).

    Args:
        u: Horizontal coordinate in [0, 1] (left to right).
        v: Vertical coordinate in [0, 1] (top to bottom).

    Returns:
        A Ray from the camera position through the point on the near plane.
    """
    target = _camera_corner[None] + u * _camera_dx[None] + v * _camera_dy[None]
    origin = _camera_position[None]
    return make_ray(origin, target - origin)


@ti.kernel
def _rays_kernel(uvs: ti.types.ndarray(), origins: ti.types.ndarray(), directions: ti.types.ndarray()):
    for i in range(uvs.shape[0]):
        ray = get_ray(uvs[i, 0], uvs[i, 1])
        for k in ti.static(range(3)):
            origins[i, k] = ray.origin[k]
            directions[i, k] = ray.direction[k]


def generate_rays(uvs: npt.ArrayLike) -> tuple[npt.NDArray[np.float32], npt.NDArray[np.float32]]:
    """Generate primary rays for a batch of image coordinates.

    Args:
        uvs: Image coordinates, shape (N, 2).

    Returns:
        Tuple (origins, directions), each of shape (N, 3).
    """
    coords = np.ascontiguousarray(np.asarray(uvs, dtype=np.float32).reshape(-1, 2))
    origins = np.zeros((len(coords), 3), dtype=np.float32)
    directions = np.zeros((len(coords), 3), dtype=np.float32)
    if len(coords) > 0:
        _rays_kernel(coords, origins, directions)
    return origins, directions


def get_camera_info() -> dict[str, tuple[float, float, float]]:
    """Get current camera state for debugging.

    Returns:
        Dictionary with position, corner, dx and dy.
    """

    def _tuple(field) -> tuple[float, float, float]:
        value = field[None]
        return (float(value[0]), float(value[1]), float(value[2]))

    return {
        "position": _tuple(_camera_position),
        "corner": _tuple(_camera_corner),
        "dx": _tuple(_camera_dx),
        "dy": _tuple(_camera_dy),
    }
