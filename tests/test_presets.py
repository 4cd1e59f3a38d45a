"""Tests for the built-in scenes and the render_scene command line."""

import numpy as np
import pytest


class TestPresets:
    """Tests for the scene factories."""

    @pytest.mark.parametrize(
        "name, triangles, objects",
        [
            ("quad", 2, 1),
            ("cornell", 6 * 2 + 2 * 12, 8),
            ("cubes", 2 + 3 * 12, 4),
        ],
    )
    def test_scene_contents(self, name, triangles, objects):
        """Test each scene is built with the expected geometry and a light."""
        from src.pathtracer.scene.presets import create_scene

        scene, camera = create_scene(name, aspect_ratio=1.5)
        assert scene.is_built
        assert scene.get_object_count() == objects
        assert scene.get_triangle_count() == triangles
        assert scene.get_light_count() == 1
        assert camera.aspect_ratio == pytest.approx(1.5)

    def test_unknown_scene(self):
        """Test an unknown name raises ValueError."""
        from src.pathtracer.scene.presets import create_scene

        with pytest.raises(ValueError):
            create_scene("teapot")

    def test_quad_faces_camera(self):
        """Test the camera looks straight at the square."""
        from src.pathtracer.scene.intersection import intersect_rays
        from src.pathtracer.scene.presets import create_quad_scene

        _, camera = create_quad_scene()
        origin = np.asarray(camera.lookfrom, dtype=np.float32)
        result = intersect_rays([origin], [-origin])
        assert result["hit"][0] == 1
        assert result["object_id"][0] == 0
        assert result["t"][0] == pytest.approx(2.0, abs=1e-5)

    def test_cornell_room_is_closed(self):
        """Test every ray leaving the camera hits a surface inside the room."""
        from src.pathtracer.scene.intersection import intersect_rays
        from src.pathtracer.scene.presets import create_cornell_scene

        _, camera = create_cornell_scene()
        rng = np.random.default_rng(7)
        directions = rng.normal(size=(512, 3))
        origins = np.tile(np.asarray(camera.lookfrom, dtype=np.float64), (512, 1))

        result = intersect_rays(origins, directions)
        assert np.all(result["hit"] == 1)
        # Nothing is farther than the room diagonal
        assert np.all(result["t"] < 2.0 * np.sqrt(3.0))

    def test_cornell_params(self):
        """Test custom parameters reach the light."""
        from src.pathtracer.scene.presets import CornellBoxParams, create_cornell_scene

        scene, _ = create_cornell_scene(params=CornellBoxParams(light_intensity=5.0, light_radius=2.5))
        light = scene.lights[0]
        assert light.intensity == (5.0, 5.0, 5.0)
        assert light.radius == pytest.approx(2.5)


class TestRenderSceneCommand:
    """Tests for the render_scene example script."""

    def test_default_arguments(self):
        from examples.render_scene import parse_args

        args = parse_args([])
        assert tuple(args.wxh) == (800, 600)
        assert args.samples == 8
        assert args.depth == 5
        assert args.scene == "cornell"
        assert args.output is None

    def test_custom_arguments(self):
        from examples.render_scene import parse_args

        args = parse_args(["--wxh", "64", "48", "--samples", "2", "--depth", "3", "--scene", "quad", "--threads", "2"])
        assert tuple(args.wxh) == (64, 48)
        assert args.samples == 2
        assert args.depth == 3
        assert args.scene == "quad"
        assert args.threads == 2

    def test_unknown_scene_rejected(self):
        from examples.render_scene import parse_args

        with pytest.raises(SystemExit):
            parse_args(["--scene", "teapot"])

    def test_default_output_name(self):
        from examples.render_scene import default_output_name

        assert default_output_name("cornell", 16, 4, 320, 240) == "test_cornell_16_4_320x240.png"

    def test_render_scene_writes_png(self, tmp_path):
        """Test a small render is written as a PNG of the requested size."""
        from examples.render_scene import render_scene
        from src.pathtracer.preview.export import load_image

        output = tmp_path / "quad.png"
        path = render_scene("quad", width=16, height=12, samples=1, depth=2, seed=0, output_path=str(output))

        assert path == output
        image = load_image(path)
        assert image.shape == (12, 16, 3)

    def test_render_scene_with_background(self, tmp_path):
        """Test an image background file is loaded and used."""
        from examples.render_scene import render_scene
        from src.pathtracer.preview.export import load_image, save_png

        background = tmp_path / "sky.png"
        save_png(np.ones((8, 16, 3), dtype=np.float32), background)

        output = tmp_path / "cubes.png"
        render_scene(
            "cubes",
            width=16,
            height=12,
            samples=1,
            depth=1,
            seed=0,
            output_path=str(output),
            background=str(background),
        )
        image = load_image(output)
        # The top row looks at the sky
        np.testing.assert_allclose(image[0, 8], [1.0, 1.0, 1.0], atol=1.0 / 255.0)
