"""Built-in demo scenes.

Each factory clears the active scene, fills it, builds it and returns the
SceneManager together with a matching camera:

- quad: one unit square facing +Z lit head-on by a directional light, seen
  from (0, 0, 2). Pixels covering the square show its base color and all
  other pixels show the background color.
- cornell: a closed room of diffuse walls (red left, green right, white
  elsewhere) holding two boxes, lit by a point light below the ceiling. The
  camera sits inside the room.
- cubes: a few transformed cubes on a large floor under a directional light.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtracer.scene.presets import create_scene
    >>> scene, camera = create_scene("cornell", aspect_ratio=4.0 / 3.0)
"""

import math
from collections.abc import Callable
from dataclasses import dataclass

from src.pathtracer.camera.pinhole import PinholeCamera
from src.pathtracer.geometry.mesh import (
    compose,
    make_cube_mesh,
    make_quad_mesh,
    rotation,
    scaling,
    translation,
)
from src.pathtracer.scene.manager import SceneManager

# Vertical field of view of the demo cameras (1.3 radians)
DEFAULT_VFOV = math.degrees(1.3)

X_AXIS = (1.0, 0.0, 0.0)
Y_AXIS = (0.0, 1.0, 0.0)


# =============================================================================
# Quad Scene
# =============================================================================


def create_quad_scene(
    aspect_ratio: float = 1.0,
    base_color: tuple[float, float, float] = (0.5, 0.5, 0.5),
    background_color: tuple[float, float, float] = (0.2, 0.3, 0.4),
    light_intensity: float = 1.0,
    vfov: float = 60.0,
) -> tuple[SceneManager, PinholeCamera]:
    """Create a single lit square in front of the camera.

    Args:
        aspect_ratio: Width / height of the image.
        base_color: Color of the square.
        background_color: Constant background color.
        light_intensity: Intensity of the directional light (all channels).
        vfov: Vertical field of view in degrees.

    Returns:
        Tuple (scene, camera).
    """
    scene = SceneManager()
    quad = scene.add_mesh(make_quad_mesh(1.0))
    texture = scene.add_constant_texture(base_color)
    scene.add_object(quad, texture_id=texture)
    scene.add_directional_light(direction=(0.0, 0.0, -1.0), intensity=(light_intensity,) * 3)
    scene.set_background_color(background_color)
    scene.build()

    camera = PinholeCamera(
        lookfrom=(0.0, 0.0, 2.0),
        lookat=(0.0, 0.0, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=vfov,
        aspect_ratio=aspect_ratio,
    )
    return scene, camera


# =============================================================================
# Cornell Scene
# =============================================================================


@dataclass
class CornellBoxParams:
    """Parameters for configuring the closed Cornell room.

    Attributes:
        light_intensity: Intensity of the point light (all channels).
        light_radius: Radius of influence of the point light.
        left_wall_color: Base color of the left wall.
        right_wall_color: Base color of the right wall.
        white_color: Base color of the other walls and the boxes.
    """

    light_intensity: float = 3.0
    light_radius: float = 4.0
    left_wall_color: tuple[float, float, float] = (0.65, 0.05, 0.05)
    right_wall_color: tuple[float, float, float] = (0.12, 0.45, 0.15)
    white_color: tuple[float, float, float] = (0.73, 0.73, 0.73)


# Half extent of the room; the floor is at y = 0
ROOM_HALF_SIZE = 1.0


def create_cornell_scene(
    aspect_ratio: float = 1.0,
    params: CornellBoxParams | None = None,
) -> tuple[SceneManager, PinholeCamera]:
    """Create a closed room with two boxes and a point light.

    The room spans [-1, 1] x [0, 2] x [-1, 1]. Every wall faces inward, so
    the scene is closed and every camera ray hits a surface.

    Args:
        aspect_ratio: Width / height of the image.
        params: Optional colors and light settings.

    Returns:
        Tuple (scene, camera).
    """
    params = params or CornellBoxParams()
    h = ROOM_HALF_SIZE
    scene = SceneManager()

    wall = scene.add_mesh(make_quad_mesh(2.0 * h))
    box = scene.add_mesh(make_cube_mesh(1.0))
    white = scene.add_constant_texture(params.white_color)
    red = scene.add_constant_texture(params.left_wall_color)
    green = scene.add_constant_texture(params.right_wall_color)

    # (transform, texture) per wall; the quad mesh faces +Z before rotation
    walls = [
        (compose(translation(0.0, 0.0, 0.0), rotation(X_AXIS, -90.0)), white),  # floor
        (compose(translation(0.0, 2.0 * h, 0.0), rotation(X_AXIS, 90.0)), white),  # ceiling
        (compose(translation(0.0, h, -h), rotation(Y_AXIS, 0.0)), white),  # back
        (compose(translation(0.0, h, h), rotation(Y_AXIS, 180.0)), white),  # front
        (compose(translation(-h, h, 0.0), rotation(Y_AXIS, 90.0)), red),  # left
        (compose(translation(h, h, 0.0), rotation(Y_AXIS, -90.0)), green),  # right
    ]
    for transform, texture in walls:
        scene.add_object(wall, transform, texture)

    scene.add_object(
        box,
        compose(translation(0.35, 0.3, 0.2), rotation(Y_AXIS, -18.0), scaling(0.6)),
        white,
    )
    scene.add_object(
        box,
        compose(translation(-0.35, 0.6, -0.3), rotation(Y_AXIS, 15.0), scaling(0.6, 1.2, 0.6)),
        white,
    )

    scene.add_point_light(
        position=(0.0, 1.8 * h, 0.0),
        intensity=(params.light_intensity,) * 3,
        radius=params.light_radius,
    )
    scene.set_background_color((0.0, 0.0, 0.0))
    scene.build()

    camera = PinholeCamera(
        lookfrom=(0.0, h, 0.95 * h),
        lookat=(0.0, h, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=DEFAULT_VFOV,
        aspect_ratio=aspect_ratio,
    )
    return scene, camera


# =============================================================================
# Cubes Scene
# =============================================================================


def create_cubes_scene(aspect_ratio: float = 1.0) -> tuple[SceneManager, PinholeCamera]:
    """Create a few transformed cubes on a floor under a directional light.

    Returns:
        Tuple (scene, camera).
    """
    scene = SceneManager()
    floor = scene.add_mesh(make_quad_mesh(10.0))
    cube = scene.add_mesh(make_cube_mesh(1.0))

    grey = scene.add_constant_texture((0.6, 0.6, 0.6))
    orange = scene.add_constant_texture((0.9, 0.5, 0.1))
    blue = scene.add_constant_texture((0.2, 0.35, 0.8))
    cream = scene.add_constant_texture((0.9, 0.85, 0.7))

    scene.add_object(floor, rotation(X_AXIS, -90.0), grey)
    scene.add_object(cube, compose(translation(-1.5, 0.5, 0.0), rotation(Y_AXIS, 30.0)), orange)
    scene.add_object(cube, compose(translation(0.2, 0.75, -1.0), rotation(Y_AXIS, -20.0), scaling(1.5)), blue)
    scene.add_object(
        cube,
        compose(translation(1.6, 0.45, 0.8), rotation((1.0, 1.0, 0.0), 35.0), scaling(0.6)),
        cream,
    )

    scene.add_directional_light(direction=(-0.5, -1.0, -0.7), intensity=(1.5, 1.5, 1.5))
    scene.set_background_color((0.55, 0.7, 0.9))
    scene.build()

    camera = PinholeCamera(
        lookfrom=(0.0, 2.5, 6.0),
        lookat=(0.0, 0.5, 0.0),
        vup=(0.0, 1.0, 0.0),
        vfov=45.0,
        aspect_ratio=aspect_ratio,
    )
    return scene, camera


# =============================================================================
# Registry
# =============================================================================

SCENES: dict[str, Callable[..., tuple[SceneManager, PinholeCamera]]] = {
    "quad": create_quad_scene,
    "cornell": create_cornell_scene,
    "cubes": create_cubes_scene,
}


def create_scene(name: str, aspect_ratio: float = 1.0) -> tuple[SceneManager, PinholeCamera]:
    """Create a built-in scene by name.

    Raises:
        ValueError: If the name is unknown.
    """
    factory = SCENES.get(name)
    if factory is None:
        raise ValueError(f"Unknown scene {name!r}, expected one of {sorted(SCENES)}")
    return factory(aspect_ratio=aspect_ratio)
