"""Scene manager coordinating meshes, objects, textures, lights and background.

The SceneManager is the single entry point for building a scene:

- Meshes are registered in a MeshArena and referenced by index.
- Objects place a mesh in the world with a transform, a base-color texture
  and a two-sided flag.
- Textures, lights and the background are written to their Taichi fields as
  soon as they are added.
- build() transforms every object to world space, builds the BVH over all
  triangles and uploads the geometry. The scene can only be rendered after
  it has been built, and must be rebuilt after objects are added.

Per-object surface parameters live in Taichi fields indexed by object ID so
the integrator can look them up from a hit record.

Example:
    >>> import taichi as ti
    >>> ti.init(arch=ti.cpu)
    >>> from src.pathtracer.geometry.mesh import make_quad_mesh
    >>> from src.pathtracer.scene.manager import SceneManager
    >>> scene = SceneManager()
    >>> quad = scene.add_mesh(make_quad_mesh())
    >>> grey = scene.add_constant_texture((0.5, 0.5, 0.5))
    >>> scene.add_object(quad, texture_id=grey)
    >>> scene.add_directional_light(direction=(0.0, 0.0, -1.0))
    >>> scene.set_background_color((0.2, 0.3, 0.4))
    >>> bvh = scene.build()
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import numpy.typing as npt
import taichi as ti

from src.pathtracer.accel.bvh import DEFAULT_LEAF_SIZE, DEFAULT_MAX_DEPTH, BVH, build_scene_bvh
from src.pathtracer.geometry.mesh import Mesh, MeshArena, SceneObject
from src.pathtracer.materials.texture import (
    add_constant_texture,
    add_texture,
    as_rgb_image,
    clear_textures,
    get_texture_count,
)
from src.pathtracer.scene.background import reset_background, set_background_color, set_background_texture
from src.pathtracer.scene.intersection import (
    clear_scene,
    get_node_count,
    get_triangle_count,
    upload_geometry,
)
from src.pathtracer.scene.lights import (
    LightKind,
    add_directional_light,
    add_point_light,
    clear_lights,
    get_light_count,
)

logger = logging.getLogger(__name__)

# Maximum number of objects in the scene
MAX_OBJECTS = 4096

# Per-object surface parameters
object_texture_ids = ti.field(dtype=ti.i32, shape=MAX_OBJECTS)
object_two_sided = ti.field(dtype=ti.i32, shape=MAX_OBJECTS)
num_objects = ti.field(dtype=ti.i32, shape=())


def _clear_object_tracking() -> None:
    """Clear the object parameter fields."""
    num_objects[None] = 0


@ti.func
def get_object_texture(object_id: ti.i32) -> ti.i32:
    """Get the base-color texture of an object.

    Returns:
        The texture ID, or -1 for invalid object IDs.
    """
    result = -1
    if 0 <= object_id and object_id < num_objects[None]:
        result = object_texture_ids[object_id]
    return result


@ti.func
def is_two_sided(object_id: ti.i32) -> ti.i32:
    """Check whether an object is shaded on both faces.

    Returns:
        1 for two-sided objects, 0 otherwise (including invalid IDs).
    """
    result = 0
    if 0 <= object_id and object_id < num_objects[None]:
        result = object_two_sided[object_id]
    return result


@dataclass
class TextureInfo:
    """Information about a registered texture.

    Attributes:
        texture_id: The texture ID.
        image: The texels as a float32 (H, W, 3) array.
        constant: Whether the texture was created from a solid color.
    """

    texture_id: int
    image: npt.NDArray[np.float32]
    constant: bool = False


@dataclass
class LightInfo:
    """Information about a light in the scene.

    Attributes:
        light_index: The index in the light storage arrays.
        kind: Directional or point light.
        vector: Travel direction (directional) or position (point).
        intensity: RGB intensity.
        radius: Radius of influence of point lights.
    """

    light_index: int
    kind: LightKind
    vector: tuple[float, float, float]
    intensity: tuple[float, float, float]
    radius: float = 0.0


@dataclass
class SceneConfig:
    """Configuration for scene serialization.

    Attributes:
        meshes: List of mesh configurations.
        textures: List of texture configurations.
        objects: List of object configurations.
        lights: List of light configurations.
        background: Background configuration.
    """

    meshes: list[dict[str, Any]] = field(default_factory=list)
    textures: list[dict[str, Any]] = field(default_factory=list)
    objects: list[dict[str, Any]] = field(default_factory=list)
    lights: list[dict[str, Any]] = field(default_factory=list)
    background: dict[str, Any] = field(default_factory=lambda: {"color": [0.0, 0.0, 0.0]})


class SceneManager:
    """Scene container and builder.

    Only one scene is active at a time since the scene data lives in
    module-level Taichi fields. Creating a SceneManager clears them.

    Attributes:
        arena: The mesh arena.
        objects: Objects in insertion order; the index is the object ID.
        textures: Registered textures.
        lights: Lights in the scene.
        bvh: The hierarchy of the last build, or None.
    """

    def __init__(self) -> None:
        """Initialize an empty scene."""
        self.arena = MeshArena()
        self.objects: list[SceneObject] = []
        self.textures: list[TextureInfo] = []
        self.lights: list[LightInfo] = []
        self.bvh: BVH | None = None
        self._background: dict[str, Any] = {}
        self._dirty = True
        self._clear_all()

    def _clear_all(self) -> None:
        """Clear all scene data including Taichi fields."""
        clear_scene()
        clear_textures()
        clear_lights()
        reset_background()
        _clear_object_tracking()
        self.arena.clear()
        self.objects.clear()
        self.textures.clear()
        self.lights.clear()
        self.bvh = None
        self._background = {"color": [0.0, 0.0, 0.0]}
        self._dirty = True

    def clear(self) -> None:
        """Clear the entire scene."""
        self._clear_all()

    @property
    def is_built(self) -> bool:
        """Whether the uploaded geometry matches the current objects."""
        return not self._dirty

    # =========================================================================
    # Meshes and Textures
    # =========================================================================

    def add_mesh(self, mesh: Mesh) -> int:
        """Register a mesh and return its mesh ID."""
        return self.arena.add(mesh)

    def add_texture(self, image: npt.ArrayLike) -> int:
        """Add an RGB image texture (row 0 at the top).

        Returns:
            The texture ID.

        Raises:
            ValueError: If the image has an unsupported shape.
            RuntimeError: If the texture capacity is exceeded.
        """
        data = as_rgb_image(image)
        texture_id = add_texture(data)
        self.textures.append(TextureInfo(texture_id=texture_id, image=data))
        return texture_id

    def add_constant_texture(self, color: tuple[float, float, float]) -> int:
        """Add a solid color texture.

        Returns:
            The texture ID.

        Raises:
            ValueError: If any component is outside [0, 1].
        """
        texture_id = add_constant_texture(color)
        data = np.array([[color]], dtype=np.float32)
        self.textures.append(TextureInfo(texture_id=texture_id, image=data, constant=True))
        return texture_id

    # =========================================================================
    # Objects
    # =========================================================================

    def add_object(
        self,
        mesh_id: int,
        transform: npt.ArrayLike | None = None,
        texture_id: int = 0,
        two_sided: bool = False,
    ) -> int:
        """Place a mesh in the scene.

        Args:
            mesh_id: The mesh to instance.
            transform: Object-to-world 4x4 matrix (identity if None).
            texture_id: The base-color texture.
            two_sided: Whether back faces are shaded like front faces.

        Returns:
            The object ID.

        Raises:
            ValueError: If the mesh, texture or transform is invalid.
            RuntimeError: If the maximum number of objects is exceeded.
        """
        self.arena.get(mesh_id)
        if texture_id < 0 or texture_id >= get_texture_count():
            raise ValueError(f"Invalid texture_id: {texture_id}")

        object_id = len(self.objects)
        if object_id >= MAX_OBJECTS:
            raise RuntimeError(f"Maximum number of objects ({MAX_OBJECTS}) exceeded")

        if transform is None:
            obj = SceneObject(mesh_id=mesh_id, texture_id=texture_id, two_sided=two_sided)
        else:
            obj = SceneObject(mesh_id=mesh_id, transform=transform, texture_id=texture_id, two_sided=two_sided)

        object_texture_ids[object_id] = texture_id
        object_two_sided[object_id] = int(two_sided)
        num_objects[None] = object_id + 1

        self.objects.append(obj)
        self._dirty = True
        return object_id

    def add_mesh_object(
        self,
        mesh: Mesh,
        transform: npt.ArrayLike | None = None,
        color: tuple[float, float, float] = (0.8, 0.8, 0.8),
        two_sided: bool = False,
    ) -> int:
        """Register a mesh and place it with a solid color in one call.

        Returns:
            The object ID.
        """
        mesh_id = self.add_mesh(mesh)
        texture_id = self.add_constant_texture(color)
        return self.add_object(mesh_id, transform, texture_id, two_sided)

    # =========================================================================
    # Lights and Background
    # =========================================================================

    def add_directional_light(
        self,
        direction: tuple[float, float, float],
        intensity: tuple[float, float, float] = (1.0, 1.0, 1.0),
    ) -> int:
        """Add a directional light travelling along `direction`.

        Returns:
            The light index.
        """
        idx = add_directional_light(direction, intensity)
        norm = float(np.linalg.norm(direction))
        self.lights.append(
            LightInfo(
                light_index=idx,
                kind=LightKind.DIRECTIONAL,
                vector=tuple(float(c) / norm for c in direction),
                intensity=tuple(float(c) for c in intensity),
            )
        )
        return idx

    def add_point_light(
        self,
        position: tuple[float, float, float],
        intensity: tuple[float, float, float] = (1.0, 1.0, 1.0),
        radius: float = 10.0,
    ) -> int:
        """Add a point light with a finite radius of influence.

        Returns:
            The light index.
        """
        idx = add_point_light(position, intensity, radius)
        self.lights.append(
            LightInfo(
                light_index=idx,
                kind=LightKind.POINT,
                vector=tuple(float(c) for c in position),
                intensity=tuple(float(c) for c in intensity),
                radius=float(radius),
            )
        )
        return idx

    def set_background_color(self, color: tuple[float, float, float]) -> None:
        """Use a constant background color."""
        set_background_color(color)
        self._background = {"color": [float(c) for c in color]}

    def set_background_image(self, image: npt.ArrayLike) -> int:
        """Use an equirectangular background image.

        Returns:
            The texture ID the image was stored under.
        """
        texture_id = self.add_texture(image)
        self.set_background_texture(texture_id)
        return texture_id

    def set_background_texture(self, texture_id: int) -> None:
        """Use a registered texture as the equirectangular background."""
        set_background_texture(texture_id)
        self._background = {"texture_id": texture_id}

    # =========================================================================
    # Building
    # =========================================================================

    def world_geometry(
        self,
    ) -> tuple[npt.NDArray[np.float32], npt.NDArray[np.float32], npt.NDArray[np.float32], npt.NDArray[np.int32]]:
        """Transform all objects to world space.

        Returns:
            Tuple (vertices, normals, uvs, prim_refs) with shapes (N, 3, 3),
            (N, 3, 3), (N, 3, 2) and (N, 2), where prim_refs holds the
            (object id, triangle id) of every triangle.
        """
        vertices = [np.zeros((0, 3, 3), dtype=np.float32)]
        normals = [np.zeros((0, 3, 3), dtype=np.float32)]
        uvs = [np.zeros((0, 3, 2), dtype=np.float32)]
        refs = [np.zeros((0, 2), dtype=np.int32)]

        for object_id, obj in enumerate(self.objects):
            v, n, t = obj.world_triangles(self.arena)
            vertices.append(v)
            normals.append(n)
            uvs.append(t)
            ids = np.arange(len(v), dtype=np.int32)
            refs.append(np.stack([np.full(len(v), object_id, dtype=np.int32), ids], axis=1))

        return (
            np.concatenate(vertices),
            np.concatenate(normals),
            np.concatenate(uvs),
            np.concatenate(refs),
        )

    def build(self, leaf_size: int = DEFAULT_LEAF_SIZE, max_depth: int = DEFAULT_MAX_DEPTH) -> BVH:
        """Build the BVH over all objects and upload the geometry.

        Args:
            leaf_size: Maximum triangles per BVH leaf.
            max_depth: Maximum BVH depth.

        Returns:
            The built hierarchy.

        Raises:
            RuntimeError: If the scene exceeds the geometry capacities.
        """
        vertices, normals, uvs, refs = self.world_geometry()
        bvh = build_scene_bvh(vertices, refs, leaf_size=leaf_size, max_depth=max_depth)
        upload_geometry(vertices, normals, uvs, bvh)
        self.bvh = bvh
        self._dirty = False
        logger.info(
            "Built scene: %d objects, %d triangles, %d BVH nodes (depth %d), %d lights",
            len(self.objects),
            bvh.primitive_count,
            bvh.node_total,
            bvh.depth(),
            get_light_count(),
        )
        return bvh

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_object_count(self) -> int:
        """Get the number of objects in the scene."""
        return len(self.objects)

    def get_triangle_count(self) -> int:
        """Get the number of uploaded triangles."""
        return get_triangle_count()

    def get_node_count(self) -> int:
        """Get the number of uploaded BVH nodes."""
        return get_node_count()

    def get_light_count(self) -> int:
        """Get the number of lights in the scene."""
        return get_light_count()

    # =========================================================================
    # Scene Serialization
    # =========================================================================

    def to_config(self) -> SceneConfig:
        """Export the scene to a configuration object."""
        config = SceneConfig()

        for mesh in self.arena:
            config.meshes.append(
                {
                    "positions": mesh.positions.tolist(),
                    "normals": mesh.normals.tolist(),
                    "uvs": mesh.uvs.tolist(),
                    "triangles": mesh.triangles.tolist(),
                }
            )

        for tex in self.textures:
            if tex.constant:
                config.textures.append({"color": tex.image[0, 0].tolist()})
            else:
                config.textures.append({"image": tex.image.tolist()})

        for obj in self.objects:
            config.objects.append(
                {
                    "mesh_id": obj.mesh_id,
                    "transform": obj.transform.tolist(),
                    "texture_id": obj.texture_id,
                    "two_sided": obj.two_sided,
                }
            )

        for light in self.lights:
            light_config: dict[str, Any] = {
                "type": light.kind.name.lower(),
                "intensity": list(light.intensity),
            }
            if light.kind == LightKind.DIRECTIONAL:
                light_config["direction"] = list(light.vector)
            else:
                light_config["position"] = list(light.vector)
                light_config["radius"] = light.radius
            config.lights.append(light_config)

        config.background = dict(self._background)

        return config

    def from_config(self, config: SceneConfig, build: bool = True) -> None:
        """Load a scene from a configuration object.

        Clears the current scene first. Textures are re-added in their
        original order so texture IDs are preserved.

        Args:
            config: The scene configuration to load.
            build: Whether to build the scene after loading.

        Raises:
            ValueError: If the configuration contains invalid data.
        """
        self.clear()

        for mesh_config in config.meshes:
            self.add_mesh(
                Mesh.create(
                    mesh_config["positions"],
                    mesh_config["triangles"],
                    normals=mesh_config.get("normals"),
                    uvs=mesh_config.get("uvs"),
                )
            )

        for tex_config in config.textures:
            if "color" in tex_config:
                color = tex_config["color"]
                self.add_constant_texture((color[0], color[1], color[2]))
            elif "image" in tex_config:
                self.add_texture(np.asarray(tex_config["image"], dtype=np.float32))
            else:
                raise ValueError(f"Texture needs 'color' or 'image', got keys {sorted(tex_config)}")

        for obj_config in config.objects:
            self.add_object(
                obj_config.get("mesh_id", 0),
                obj_config.get("transform"),
                obj_config.get("texture_id", 0),
                obj_config.get("two_sided", False),
            )

        for light_config in config.lights:
            light_type = light_config.get("type", "").lower()
            intensity = tuple(light_config.get("intensity", [1.0, 1.0, 1.0]))
            if light_type == "directional":
                self.add_directional_light(tuple(light_config.get("direction", [0.0, -1.0, 0.0])), intensity)
            elif light_type == "point":
                self.add_point_light(
                    tuple(light_config.get("position", [0.0, 0.0, 0.0])),
                    intensity,
                    light_config.get("radius", 10.0),
                )
            else:
                raise ValueError(f"Unknown light type: {light_type}")

        background = config.background or {}
        if "texture_id" in background:
            self.set_background_texture(background["texture_id"])
        else:
            color = background.get("color", [0.0, 0.0, 0.0])
            self.set_background_color((color[0], color[1], color[2]))

        if build:
            self.build()

    def to_dict(self) -> dict[str, Any]:
        """Export the scene to a dictionary (for JSON serialization)."""
        config = self.to_config()
        return {
            "meshes": config.meshes,
            "textures": config.textures,
            "objects": config.objects,
            "lights": config.lights,
            "background": config.background,
        }

    def from_dict(self, data: dict[str, Any], build: bool = True) -> None:
        """Load a scene from a dictionary.

        Args:
            data: Dictionary with 'meshes', 'textures', 'objects', 'lights'
                and 'background' keys.
            build: Whether to build the scene after loading.
        """
        config = SceneConfig(
            meshes=data.get("meshes", []),
            textures=data.get("textures", []),
            objects=data.get("objects", []),
            lights=data.get("lights", []),
            background=data.get("background", {"color": [0.0, 0.0, 0.0]}),
        )
        self.from_config(config, build=build)
