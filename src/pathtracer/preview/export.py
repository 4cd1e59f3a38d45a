"""Image export utilities for rendered images.

The renderer returns gamma-encoded float images whose values may exceed 1.
Clipping to [0, 1] happens only here, when an image is converted to 8 bits.

Supported formats:
    - PNG (8-bit RGB via Pillow)

Example:
    >>> from src.pathtracer.core.render import RenderSettings, render
    >>> from src.pathtracer.preview.export import save_png
    >>>
    >>> result = render(scene, camera, RenderSettings(width=512, height=512))
    >>> save_png(result.image, "output.png")
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import numpy.typing as npt
from PIL import Image as PILImage


def to_uint8(image: npt.ArrayLike) -> npt.NDArray[np.uint8]:
    """Convert a float image to uint8 for export.

    Args:
        image: Float image array of shape (H, W, 3). Non-finite values
            become 0.

    Returns:
        8-bit image array of shape (H, W, 3).

    Raises:
        ValueError: If the image is not (H, W, 3).
    """
    array = np.asarray(image, dtype=np.float32)
    if array.ndim != 3 or array.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) image, got shape {array.shape}")
    array = np.nan_to_num(array, nan=0.0, posinf=0.0, neginf=0.0)
    return (np.clip(array, 0.0, 1.0) * 255).astype(np.uint8)


def save_png(image: npt.ArrayLike, filepath: str | Path) -> None:
    """Save a float image as an 8-bit PNG file.

    Args:
        image: Float image array of shape (H, W, 3); row 0 is the top row.
        filepath: Output file path (should end in .png).
    """
    pil_image = PILImage.fromarray(to_uint8(image), mode="RGB")
    pil_image.save(filepath)


def load_image(filepath: str | Path) -> npt.NDArray[np.float32]:
    """Load an image file as a float RGB array in [0, 1].

    Suitable for textures and background images.

    Returns:
        Array of shape (H, W, 3).
    """
    with PILImage.open(filepath) as pil_image:
        rgb = pil_image.convert("RGB")
        return np.asarray(rgb, dtype=np.float32) / 255.0
