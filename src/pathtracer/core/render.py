"""Offline render driver.

Wraps the integrator into a single call that renders a built scene through a
camera with a fixed sample budget, and reports timing and scene statistics.

Example:
    >>> from src.pathtracer.core.render import RenderSettings, render
    >>> from src.pathtracer.scene.presets import create_quad_scene
    >>> scene, camera = create_quad_scene(aspect_ratio=1.0)
    >>> result = render(scene, camera, RenderSettings(width=64, height=64, samples=4, max_depth=2))
    >>> result.image.shape
    (64, 64, 3)
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass

import numpy as np
import numpy.typing as npt

from src.pathtracer.camera.pinhole import PinholeCamera, setup_camera
from src.pathtracer.core.integrator import (
    DEFAULT_GAMMA,
    get_image_numpy,
    render_image,
    set_render_params,
    setup_render_target,
)
from src.pathtracer.scene.manager import SceneManager

logger = logging.getLogger(__name__)


@dataclass
class RenderSettings:
    """Parameters of one render.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        samples: Samples per pixel.
        max_depth: Maximum number of path segments.
        seed: Seed of the random streams.
        gamma: Output gamma (1.0 keeps the image linear).
    """

    width: int = 800
    height: int = 600
    samples: int = 8
    max_depth: int = 5
    seed: int = 0
    gamma: float = DEFAULT_GAMMA


@dataclass
class RenderStats:
    """Statistics of a finished render."""

    elapsed_seconds: float
    width: int
    height: int
    samples: int
    max_depth: int
    triangle_count: int
    node_count: int
    light_count: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RenderResult:
    """A rendered image with its statistics.

    Attributes:
        image: Gamma-encoded float image of shape (height, width, 3). Values
            may exceed 1.
        stats: Timing and scene statistics.
    """

    image: npt.NDArray[np.float32]
    stats: RenderStats


class OfflineRenderer:
    """Renderer owning the render target for a given image size.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
    """

    def __init__(self, width: int, height: int) -> None:
        """Initialize the renderer.

        Args:
            width: Image width in pixels (max 2048).
            height: Image height in pixels (max 2048).

        Raises:
            ValueError: If dimensions are out of range.
        """
        self._width = width
        self._height = height
        setup_render_target(width, height)

    @property
    def width(self) -> int:
        """Get the image width."""
        return self._width

    @property
    def height(self) -> int:
        """Get the image height."""
        return self._height

    def render(
        self,
        scene: SceneManager,
        camera: PinholeCamera,
        samples: int,
        max_depth: int,
        seed: int = 0,
        gamma: float = DEFAULT_GAMMA,
    ) -> RenderResult:
        """Render the scene to completion.

        Raises:
            RuntimeError: If the scene has not been built since its last change.
            ValueError: If the camera or a render parameter is invalid.
        """
        if not scene.is_built:
            raise RuntimeError("Scene must be built before rendering. Call scene.build() first.")

        aspect = self._width / self._height
        if abs(camera.aspect_ratio - aspect) > 1e-3:
            logger.warning(
                "Camera aspect ratio %.4f does not match image aspect %.4f", camera.aspect_ratio, aspect
            )

        setup_camera(camera)
        set_render_params(samples, max_depth, seed, gamma)
        # Rebind the active size in case another renderer changed it
        setup_render_target(self._width, self._height)

        start = time.perf_counter()
        render_image()
        image = get_image_numpy()
        elapsed = time.perf_counter() - start

        logger.info("Generation took %d ms at %dx%d.", round(elapsed * 1000.0), self._width, self._height)

        stats = RenderStats(
            elapsed_seconds=elapsed,
            width=self._width,
            height=self._height,
            samples=samples,
            max_depth=max_depth,
            triangle_count=scene.get_triangle_count(),
            node_count=scene.get_node_count(),
            light_count=scene.get_light_count(),
        )
        return RenderResult(image=image, stats=stats)

    def __repr__(self) -> str:
        return f"OfflineRenderer(width={self._width}, height={self._height})"


def render(
    scene: SceneManager,
    camera: PinholeCamera,
    settings: RenderSettings | None = None,
) -> RenderResult:
    """Render a built scene through a camera.

    Args:
        scene: The scene; it must have been built.
        camera: The camera to render from.
        settings: Image size and sampling parameters.

    Returns:
        The rendered image and its statistics.
    """
    settings = settings or RenderSettings()
    renderer = OfflineRenderer(settings.width, settings.height)
    return renderer.render(
        scene,
        camera,
        samples=settings.samples,
        max_depth=settings.max_depth,
        seed=settings.seed,
        gamma=settings.gamma,
    )
