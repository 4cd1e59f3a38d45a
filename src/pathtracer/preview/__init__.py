"""Preview module for image output.

Components:
    export: PNG export and image loading via Pillow

Example:
    >>> from src.pathtracer.preview import save_png
    >>> save_png(result.image, "output.png")
"""

from src.pathtracer.preview.export import (
    load_image,
    save_png,
    to_uint8,
)

__all__ = [
    "save_png",
    "to_uint8",
    "load_image",
]
