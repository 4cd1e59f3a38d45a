"""Camera module for view and ray generation.

Components:
    pinhole: Pinhole camera placed with look-at parameters

Ray generation uses image coordinates:
    u in [0, 1]: left to right across the image
    v in [0, 1]: top to bottom across the image
"""

from .pinhole import (
    PinholeCamera,
    generate_rays,
    get_camera_info,
    get_ray,
    setup_camera,
)

__all__ = [
    "PinholeCamera",
    "setup_camera",
    "get_ray",
    "generate_rays",
    "get_camera_info",
]
