"""Scene module for geometry upload, ray queries and scene assembly.

Components:
    intersection: Triangle and BVH node storage, closest-hit and any-hit
        queries
    lights: Directional and point lights with occlusion-tested visibility
    background: Constant or equirectangular background
    manager: SceneManager assembling meshes, objects, textures and lights
    presets: Built-in demo scenes

Scene data lives in Taichi fields in structure-of-arrays layout. Triangles
are stored in BVH leaf order so every leaf covers a contiguous range.
"""

from .background import reset_background, set_background_color, set_background_texture
from .intersection import (
    MAX_TRIANGLES,
    RayHit,
    clear_scene,
    get_node_count,
    get_triangle_count,
    intersect_rays,
    intersect_scene,
    intersect_scene_any,
    occluded_rays,
    upload_geometry,
)
from .lights import (
    MAX_LIGHTS,
    LightKind,
    add_directional_light,
    add_point_light,
    clear_lights,
    direct_lighting,
    query_visibility,
)
from .manager import LightInfo, SceneConfig, SceneManager, TextureInfo
from .presets import SCENES, CornellBoxParams, create_scene

__all__ = [
    # Intersection
    "RayHit",
    "MAX_TRIANGLES",
    "clear_scene",
    "upload_geometry",
    "get_triangle_count",
    "get_node_count",
    "intersect_scene",
    "intersect_scene_any",
    "intersect_rays",
    "occluded_rays",
    # Lights
    "LightKind",
    "MAX_LIGHTS",
    "add_directional_light",
    "add_point_light",
    "clear_lights",
    "direct_lighting",
    "query_visibility",
    # Background
    "set_background_color",
    "set_background_texture",
    "reset_background",
    # Manager
    "SceneManager",
    "SceneConfig",
    "TextureInfo",
    "LightInfo",
    # Presets
    "SCENES",
    "CornellBoxParams",
    "create_scene",
]
