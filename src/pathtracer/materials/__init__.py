"""Materials module.

Every surface is ideal diffuse; its base color comes from a texture.

Components:
    texture: Texture atlas with bilinear, repeat-wrapped sampling
"""

from .texture import (
    MAX_TEXTURES,
    add_constant_texture,
    add_texture,
    as_rgb_image,
    clear_textures,
    get_texture_count,
    sample_texture,
    sample_texture_numpy,
)

__all__ = [
    "MAX_TEXTURES",
    "add_texture",
    "add_constant_texture",
    "as_rgb_image",
    "clear_textures",
    "get_texture_count",
    "sample_texture",
    "sample_texture_numpy",
]
