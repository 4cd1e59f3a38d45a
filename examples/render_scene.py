#!/usr/bin/env python3
"""Render one of the built-in scenes to a PNG file.

Usage:
    python -m examples.render_scene [options]

Options:
    --wxh W H           Image size in pixels (default: 800 600)
    --samples SAMPLES   Samples per pixel (default: 8)
    --depth DEPTH       Maximum path segments (default: 5)
    --scene NAME        Scene to render: quad, cornell or cubes (default: cornell)
    --output OUTPUT     Output file path
                        (default: test_<scene>_<samples>_<depth>_<w>x<h>.png)
    --threads N         Number of CPU worker threads (default: all cores)
    --seed SEED         Seed of the random streams (default: 0)
    --arch ARCH         Taichi backend (default: cpu)
    --background PATH   Equirectangular background image

Example:
    python -m examples.render_scene --scene cornell --wxh 320 240 --samples 64
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

logger = logging.getLogger("render_scene")

SCENE_NAMES = ("quad", "cornell", "cubes")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Render a built-in scene with the BVH path tracer.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--wxh",
        type=int,
        nargs=2,
        metavar=("W", "H"),
        default=(800, 600),
        help="Image width and height in pixels (default: 800 600)",
    )
    parser.add_argument(
        "--samples",
        type=int,
        default=8,
        help="Number of samples per pixel (default: 8)",
    )
    parser.add_argument(
        "--depth",
        type=int,
        default=5,
        help="Maximum path segments (default: 5)",
    )
    parser.add_argument(
        "--scene",
        choices=SCENE_NAMES,
        default="cornell",
        help="Scene to render (default: cornell)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file path (default: test_<scene>_<samples>_<depth>_<w>x<h>.png)",
    )
    parser.add_argument(
        "--threads",
        type=int,
        default=None,
        help="Number of CPU worker threads (default: all cores)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Seed of the random streams (default: 0)",
    )
    parser.add_argument(
        "--arch",
        type=str,
        default="cpu",
        help="Taichi backend: cpu, gpu, cuda, vulkan or metal (default: cpu)",
    )
    parser.add_argument(
        "--background",
        type=str,
        default=None,
        help="Equirectangular background image (default: the scene's color)",
    )
    return parser.parse_args(argv)


def default_output_name(scene: str, samples: int, depth: int, width: int, height: int) -> str:
    """Build the default output file name."""
    return f"test_{scene}_{samples}_{depth}_{width}x{height}.png"


def render_scene(
    scene_name: str,
    width: int,
    height: int,
    samples: int,
    depth: int,
    seed: int,
    output_path: str,
    background: str | None = None,
) -> Path:
    """Render a built-in scene and save it.

    Taichi must already be initialized.

    Returns:
        Path to the saved image file.
    """
    # Lazy imports to allow Taichi initialization first
    from src.pathtracer.core.render import RenderSettings, render
    from src.pathtracer.preview.export import load_image, save_png
    from src.pathtracer.scene.presets import create_scene

    logger.info("Creating %s scene (%dx%d)", scene_name, width, height)
    scene, camera = create_scene(scene_name, aspect_ratio=width / height)
    if background is not None:
        scene.set_background_image(load_image(background))

    settings = RenderSettings(
        width=width,
        height=height,
        samples=samples,
        max_depth=depth,
        seed=seed,
    )
    logger.info("Rendering %d samples per pixel, depth %d", samples, depth)
    result = render(scene, camera, settings)

    output_file = Path(output_path)
    save_png(result.image, output_file)
    logger.info("Saved to: %s", output_file.absolute())
    logger.debug("Render stats: %s", result.stats.to_dict())
    return output_file


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    width, height = args.wxh
    output = args.output or default_output_name(args.scene, args.samples, args.depth, width, height)

    from src.pathtracer.core.scheduler import BackendConfig, init_backend

    try:
        init_backend(BackendConfig(arch=args.arch, num_threads=args.threads, random_seed=args.seed))
        render_scene(
            scene_name=args.scene,
            width=width,
            height=height,
            samples=args.samples,
            depth=args.depth,
            seed=args.seed,
            output_path=output,
            background=args.background,
        )
        return 0
    except (ValueError, RuntimeError, OSError) as e:
        logger.error("Error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
