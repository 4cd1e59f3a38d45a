"""Unit tests for lights and light visibility.

Tests cover:
- Light registration and validation
- Directional light visibility and occlusion
- Point light falloff and radius cutoff
- Direct lighting sum with the cosine term
"""

import numpy as np
import pytest
import taichi as ti


@pytest.fixture
def fresh_scene():
    """Create a fresh SceneManager for each test."""
    from src.pathtracer.scene.manager import SceneManager

    scene = SceneManager()
    yield scene
    scene.clear()


def _add_blocker(scene, z):
    """Add a 2x2 square facing +Z at height z."""
    from src.pathtracer.geometry.mesh import make_quad_mesh, translation

    return scene.add_mesh_object(make_quad_mesh(2.0), translation(0.0, 0.0, z))


class TestLightRegistration:
    """Tests for adding lights."""

    def test_add_lights(self):
        """Test lights are indexed in insertion order."""
        from src.pathtracer.scene.lights import add_directional_light, add_point_light, get_light_count

        assert add_directional_light((0.0, -2.0, 0.0)) == 0
        assert add_point_light((0.0, 1.0, 0.0), (2.0, 2.0, 2.0), radius=3.0) == 1
        assert get_light_count() == 2

    def test_direction_is_normalized(self):
        """Test directional lights store a unit direction."""
        from src.pathtracer.scene.lights import add_directional_light, light_vectors

        idx = add_directional_light((0.0, 0.0, -5.0))
        np.testing.assert_allclose(light_vectors[idx].to_numpy(), [0.0, 0.0, -1.0], atol=1e-6)

    def test_invalid_lights(self):
        """Test invalid parameters raise ValueError."""
        from src.pathtracer.scene.lights import add_directional_light, add_point_light

        with pytest.raises(ValueError):
            add_directional_light((0.0, 0.0, 0.0))
        with pytest.raises(ValueError):
            add_directional_light((0.0, -1.0, 0.0), intensity=(-1.0, 0.0, 0.0))
        with pytest.raises(ValueError):
            add_point_light((0.0, 0.0, 0.0), radius=0.0)
        with pytest.raises(ValueError):
            add_point_light((0.0, 0.0, 0.0), intensity=(float("nan"), 1.0, 1.0))

    def test_capacity(self):
        """Test exceeding the light capacity raises RuntimeError."""
        from src.pathtracer.scene.lights import MAX_LIGHTS, add_point_light

        for _ in range(MAX_LIGHTS):
            add_point_light((0.0, 0.0, 0.0))
        with pytest.raises(RuntimeError):
            add_point_light((0.0, 0.0, 0.0))

    def test_invalid_query_index(self):
        """Test querying a missing light raises ValueError."""
        from src.pathtracer.scene.lights import query_visibility

        with pytest.raises(ValueError):
            query_visibility(0, np.zeros((1, 3)), np.zeros((1, 3)))


class TestDirectionalVisibility:
    """Tests for directional lights."""

    def test_unoccluded(self, fresh_scene):
        """Test a point under open sky sees the light with attenuation 1."""
        from src.pathtracer.scene.lights import query_visibility

        _add_blocker(fresh_scene, 0.0)
        fresh_scene.build()
        light = fresh_scene.add_directional_light((0.0, 0.0, -1.0))

        result = query_visibility(light, [(0.0, 0.0, 0.0)], [(0.0, 0.0, 1.0)])
        assert result["visible"][0] == 1
        assert result["attenuation"][0] == pytest.approx(1.0)
        np.testing.assert_allclose(result["direction"][0], [0.0, 0.0, 1.0], atol=1e-6)

    def test_occluded_by_blocker(self, fresh_scene):
        """Test a square above the point blocks the light."""
        from src.pathtracer.scene.lights import query_visibility

        _add_blocker(fresh_scene, 0.0)
        _add_blocker(fresh_scene, 3.0)
        fresh_scene.build()
        light = fresh_scene.add_directional_light((0.0, 0.0, -1.0))

        points = [(0.0, 0.0, 0.0), (5.0, 0.0, 0.0)]
        normals = [(0.0, 0.0, 1.0)] * 2
        result = query_visibility(light, points, normals)
        np.testing.assert_array_equal(result["visible"], [0, 1])

    def test_surface_does_not_shadow_itself(self, fresh_scene):
        """Test the offset keeps a point from hitting its own surface."""
        from src.pathtracer.scene.lights import query_visibility

        _add_blocker(fresh_scene, 0.0)
        fresh_scene.build()
        light = fresh_scene.add_directional_light((0.3, 0.2, -1.0))

        rng = np.random.default_rng(0)
        points = np.zeros((64, 3))
        points[:, :2] = rng.uniform(-0.9, 0.9, size=(64, 2))
        normals = np.tile([0.0, 0.0, 1.0], (64, 1))
        result = query_visibility(light, points, normals)
        assert result["visible"].all()


class TestPointLight:
    """Tests for point lights."""

    def test_falloff_matches_formula(self, fresh_scene):
        """Test the Taichi attenuation equals the Python reference."""
        from src.pathtracer.scene.lights import point_light_falloff, query_visibility

        fresh_scene.build()
        light = fresh_scene.add_point_light((0.0, 0.0, 0.0), radius=4.0)

        distances = np.array([0.5, 1.0, 2.0, 3.5])
        points = np.stack([distances, np.zeros(4), np.zeros(4)], axis=1)
        result = query_visibility(light, points, np.tile([-1.0, 0.0, 0.0], (4, 1)))

        expected = [point_light_falloff(d, 4.0) for d in distances]
        np.testing.assert_allclose(result["attenuation"], expected, rtol=1e-5)
        assert result["visible"].all()

    def test_falloff_reference_values(self):
        """Test the falloff curve at the center and at the radius."""
        from src.pathtracer.scene.lights import point_light_falloff

        assert point_light_falloff(0.0, 2.0) == pytest.approx(1.0)
        assert point_light_falloff(2.0, 2.0) == pytest.approx(0.0)
        assert point_light_falloff(3.0, 2.0) == pytest.approx(0.0)
        assert point_light_falloff(1.0, 2.0) == pytest.approx((1.0 - 1.0 / 16.0) ** 2 / 2.0)

    def test_beyond_radius_not_visible(self, fresh_scene):
        """Test points outside the radius receive nothing."""
        from src.pathtracer.scene.lights import query_visibility

        fresh_scene.build()
        light = fresh_scene.add_point_light((0.0, 0.0, 0.0), radius=1.0)
        result = query_visibility(light, [(2.0, 0.0, 0.0)], [(-1.0, 0.0, 0.0)])
        assert result["attenuation"][0] == 0.0
        assert result["visible"][0] == 0

    def test_blocker_between_point_and_light(self, fresh_scene):
        """Test only geometry between the point and the light occludes."""
        from src.pathtracer.scene.lights import query_visibility

        _add_blocker(fresh_scene, 2.0)
        fresh_scene.build()
        below = fresh_scene.add_point_light((0.0, 0.0, 1.0), radius=10.0)
        above = fresh_scene.add_point_light((0.0, 0.0, 3.0), radius=10.0)

        for light, visible in ((below, 1), (above, 0)):
            result = query_visibility(light, [(0.0, 0.0, 0.0)], [(0.0, 0.0, 1.0)])
            assert result["visible"][0] == visible


class TestDirectLighting:
    """Tests for the summed direct illumination."""

    def test_cosine_weighted_sum(self, fresh_scene):
        """Test two lights add up with their cosine terms."""
        from src.pathtracer.scene.lights import direct_lighting, vec3

        fresh_scene.build()
        fresh_scene.add_directional_light((0.0, 0.0, -1.0), intensity=(1.0, 0.5, 0.25))
        fresh_scene.add_directional_light((-1.0, 0.0, -1.0), intensity=(1.0, 1.0, 1.0))

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            n = vec3(0.0, 0.0, 1.0)
            result[None] = direct_lighting(vec3(0.0, 0.0, 0.0), n, n)

        test_kernel()
        c = np.sqrt(0.5)
        np.testing.assert_allclose(result[None].to_numpy(), [1.0 + c, 0.5 + c, 0.25 + c], atol=1e-5)

    def test_light_below_surface_contributes_nothing(self, fresh_scene):
        """Test lights behind the surface are clamped to zero."""
        from src.pathtracer.scene.lights import direct_lighting, vec3

        fresh_scene.build()
        fresh_scene.add_directional_light((0.0, 0.0, 1.0))

        result = ti.Vector.field(3, dtype=ti.f32, shape=())

        @ti.kernel
        def test_kernel():
            n = vec3(0.0, 0.0, 1.0)
            result[None] = direct_lighting(vec3(0.0, 0.0, 0.0), n, n)

        test_kernel()
        np.testing.assert_allclose(result[None].to_numpy(), [0.0, 0.0, 0.0], atol=1e-7)
