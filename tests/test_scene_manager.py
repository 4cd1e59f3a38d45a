"""Unit tests for the SceneManager.

Tests cover:
- Mesh, texture and object registration
- Object validation
- Build state tracking and world-space geometry
- Scene serialization (to_dict, from_dict)
- Scene clearing
- GPU-side per-object texture lookup
"""

import json

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


class TestRegistration:
    """Tests for meshes, textures and objects."""

    def test_mesh_ids_are_sequential(self, fresh_scene):
        """Test mesh IDs follow registration order."""
        from src.pathtracer.geometry.mesh import make_cube_mesh, make_quad_mesh

        assert fresh_scene.add_mesh(make_quad_mesh()) == 0
        assert fresh_scene.add_mesh(make_cube_mesh()) == 1
        assert len(fresh_scene.arena) == 2

    def test_texture_ids_are_sequential(self, fresh_scene):
        """Test constant and image textures share one ID space."""
        a = fresh_scene.add_constant_texture((0.1, 0.2, 0.3))
        b = fresh_scene.add_texture(np.ones((4, 8, 3), dtype=np.float32))
        assert (a, b) == (0, 1)
        assert fresh_scene.textures[0].constant
        assert not fresh_scene.textures[1].constant

    def test_add_object(self, fresh_scene):
        """Test objects receive sequential IDs."""
        from src.pathtracer.geometry.mesh import make_quad_mesh

        quad = fresh_scene.add_mesh(make_quad_mesh())
        tex = fresh_scene.add_constant_texture((0.5, 0.5, 0.5))
        assert fresh_scene.add_object(quad, texture_id=tex) == 0
        assert fresh_scene.add_object(quad, texture_id=tex, two_sided=True) == 1
        assert fresh_scene.get_object_count() == 2
        assert fresh_scene.objects[1].two_sided

    def test_invalid_mesh_rejected(self, fresh_scene):
        """Test an unknown mesh ID raises ValueError."""
        fresh_scene.add_constant_texture((0.5, 0.5, 0.5))
        with pytest.raises(ValueError):
            fresh_scene.add_object(3, texture_id=0)

    def test_invalid_texture_rejected(self, fresh_scene):
        """Test an unknown texture ID raises ValueError."""
        from src.pathtracer.geometry.mesh import make_quad_mesh

        quad = fresh_scene.add_mesh(make_quad_mesh())
        with pytest.raises(ValueError):
            fresh_scene.add_object(quad, texture_id=0)

    def test_add_mesh_object(self, fresh_scene):
        """Test the one-call helper registers mesh, texture and object."""
        from src.pathtracer.geometry.mesh import make_cube_mesh

        obj = fresh_scene.add_mesh_object(make_cube_mesh(), color=(0.2, 0.4, 0.6))
        assert obj == 0
        assert len(fresh_scene.arena) == 1
        np.testing.assert_allclose(fresh_scene.textures[0].image[0, 0], [0.2, 0.4, 0.6])

    def test_invalid_light_rejected(self, fresh_scene):
        """Test a zero direction and negative intensity raise ValueError."""
        with pytest.raises(ValueError):
            fresh_scene.add_directional_light((0.0, 0.0, 0.0))
        with pytest.raises(ValueError):
            fresh_scene.add_point_light((0.0, 1.0, 0.0), intensity=(-1.0, 1.0, 1.0))


class TestBuild:
    """Tests for building the scene."""

    def test_build_state(self, fresh_scene):
        """Test adding an object invalidates the last build."""
        from src.pathtracer.geometry.mesh import make_quad_mesh

        assert not fresh_scene.is_built
        fresh_scene.add_mesh_object(make_quad_mesh())
        fresh_scene.build()
        assert fresh_scene.is_built
        fresh_scene.add_mesh_object(make_quad_mesh())
        assert not fresh_scene.is_built
        fresh_scene.build()
        assert fresh_scene.is_built

    def test_build_counts(self, fresh_scene):
        """Test build uploads every triangle of every object."""
        from src.pathtracer.geometry.mesh import make_cube_mesh, make_quad_mesh, translation

        cube = fresh_scene.add_mesh(make_cube_mesh())
        tex = fresh_scene.add_constant_texture((0.5, 0.5, 0.5))
        fresh_scene.add_object(cube, translation(-2.0, 0.0, 0.0), tex)
        fresh_scene.add_object(cube, translation(2.0, 0.0, 0.0), tex)
        fresh_scene.add_mesh_object(make_quad_mesh(4.0))

        bvh = fresh_scene.build()
        assert fresh_scene.get_triangle_count() == 12 + 12 + 2
        assert fresh_scene.get_node_count() == bvh.node_total
        assert bvh.primitive_count == 26

    def test_world_geometry(self, fresh_scene):
        """Test world geometry applies transforms and tags primitives."""
        from src.pathtracer.geometry.mesh import make_quad_mesh, translation

        quad = fresh_scene.add_mesh(make_quad_mesh())
        tex = fresh_scene.add_constant_texture((0.5, 0.5, 0.5))
        fresh_scene.add_object(quad, texture_id=tex)
        fresh_scene.add_object(quad, translation(0.0, 0.0, -3.0), tex)

        vertices, normals, uvs, refs = fresh_scene.world_geometry()
        assert vertices.shape == (4, 3, 3)
        assert normals.shape == (4, 3, 3)
        assert uvs.shape == (4, 3, 2)
        np.testing.assert_array_equal(refs, [[0, 0], [0, 1], [1, 0], [1, 1]])
        np.testing.assert_allclose(vertices[2:, :, 2], -3.0)

    def test_empty_build(self, fresh_scene):
        """Test an empty scene builds and every ray misses."""
        from src.pathtracer.scene.intersection import intersect_rays

        fresh_scene.build()
        assert fresh_scene.get_triangle_count() == 0
        result = intersect_rays([[0.0, 0.0, 5.0]], [[0.0, 0.0, -1.0]])
        assert result["hit"][0] == 0

    def test_hits_report_object_ids(self, fresh_scene):
        """Test hit records name the object each triangle came from."""
        from src.pathtracer.geometry.mesh import make_quad_mesh, translation
        from src.pathtracer.scene.intersection import intersect_rays

        quad = fresh_scene.add_mesh(make_quad_mesh())
        tex = fresh_scene.add_constant_texture((0.5, 0.5, 0.5))
        fresh_scene.add_object(quad, translation(-2.0, 0.0, 0.0), tex)
        fresh_scene.add_object(quad, translation(2.0, 0.0, 0.0), tex)
        fresh_scene.build()

        origins = [[-2.0, 0.1, 5.0], [2.0, 0.1, 5.0], [0.0, 0.0, 5.0]]
        directions = [[0.0, 0.0, -1.0]] * 3
        result = intersect_rays(origins, directions)
        np.testing.assert_array_equal(result["hit"], [1, 1, 0])
        np.testing.assert_array_equal(result["object_id"], [0, 1, -1])
        np.testing.assert_allclose(result["t"][:2], [5.0, 5.0], atol=1e-5)


class TestObjectLookupGPU:
    """Tests for per-object parameters read from kernels."""

    def test_get_object_texture(self, fresh_scene):
        """Test texture lookup by object ID, including invalid IDs."""
        from src.pathtracer.geometry.mesh import make_quad_mesh
        from src.pathtracer.scene.manager import get_object_texture, is_two_sided

        quad = fresh_scene.add_mesh(make_quad_mesh())
        a = fresh_scene.add_constant_texture((0.1, 0.1, 0.1))
        b = fresh_scene.add_constant_texture((0.9, 0.9, 0.9))
        fresh_scene.add_object(quad, texture_id=b)
        fresh_scene.add_object(quad, texture_id=a, two_sided=True)

        result = ti.field(dtype=ti.i32, shape=5)

        @ti.kernel
        def test_kernel():
            result[0] = get_object_texture(0)
            result[1] = get_object_texture(1)
            result[2] = get_object_texture(99)
            result[3] = is_two_sided(0)
            result[4] = is_two_sided(1)

        test_kernel()

        assert result[0] == b
        assert result[1] == a
        assert result[2] == -1
        assert result[3] == 0
        assert result[4] == 1


class TestSerialization:
    """Tests for scene serialization."""

    def _populate(self, scene):
        from src.pathtracer.geometry.mesh import make_cube_mesh, make_quad_mesh, rotation, translation

        quad = scene.add_mesh(make_quad_mesh(2.0))
        cube = scene.add_mesh(make_cube_mesh())
        grey = scene.add_constant_texture((0.5, 0.5, 0.5))
        checker = scene.add_texture((np.indices((4, 4)).sum(axis=0) % 2).astype(np.float32))
        scene.add_object(quad, rotation((1.0, 0.0, 0.0), -90.0), grey)
        scene.add_object(cube, translation(0.0, 0.5, 0.0), checker, two_sided=True)
        scene.add_directional_light((0.0, -1.0, 0.0), (0.5, 0.5, 0.5))
        scene.add_point_light((0.0, 2.0, 0.0), (2.0, 2.0, 2.0), radius=5.0)
        scene.set_background_color((0.1, 0.2, 0.3))

    def test_to_dict_is_json_serializable(self, fresh_scene):
        """Test the exported dictionary survives a JSON round trip."""
        self._populate(fresh_scene)
        data = fresh_scene.to_dict()
        assert json.loads(json.dumps(data)) == data
        assert [light["type"] for light in data["lights"]] == ["directional", "point"]
        assert data["background"] == {"color": [0.1, 0.2, 0.3]}

    def test_round_trip(self, fresh_scene):
        """Test loading an exported scene restores it."""
        from src.pathtracer.scene.background import get_background_color

        self._populate(fresh_scene)
        fresh_scene.build()
        data = fresh_scene.to_dict()
        triangles = fresh_scene.get_triangle_count()

        fresh_scene.clear()
        assert fresh_scene.get_object_count() == 0
        fresh_scene.from_dict(data)

        assert fresh_scene.is_built
        assert fresh_scene.get_object_count() == 2
        assert fresh_scene.get_triangle_count() == triangles
        assert fresh_scene.get_light_count() == 2
        assert len(fresh_scene.textures) == 2
        assert fresh_scene.objects[1].two_sided
        assert fresh_scene.objects[1].texture_id == 1
        np.testing.assert_allclose(get_background_color(), (0.1, 0.2, 0.3), atol=1e-6)
        assert fresh_scene.to_dict()["lights"] == data["lights"]

    def test_background_texture_round_trip(self, fresh_scene):
        """Test an image background keeps its texture ID."""
        fresh_scene.add_constant_texture((0.5, 0.5, 0.5))
        texture_id = fresh_scene.set_background_image(np.full((2, 4, 3), 0.25, dtype=np.float32))
        data = fresh_scene.to_dict()
        assert data["background"] == {"texture_id": texture_id}

        fresh_scene.from_dict(data, build=False)
        assert fresh_scene.to_dict()["background"] == {"texture_id": texture_id}
        assert not fresh_scene.is_built

    def test_background_image_is_tracked(self, fresh_scene):
        """Test a background image is recorded as a texture and serialized with it."""
        image = np.full((2, 4, 3), 0.25, dtype=np.float32)
        texture_id = fresh_scene.set_background_image(image)

        assert len(fresh_scene.textures) == 1
        assert fresh_scene.textures[0].texture_id == texture_id
        assert not fresh_scene.textures[0].constant

        data = fresh_scene.to_dict()
        assert len(data["textures"]) == 1
        np.testing.assert_allclose(np.asarray(data["textures"][texture_id]["image"]), image)

    def test_unknown_light_type(self, fresh_scene):
        """Test an unknown light type raises ValueError."""
        with pytest.raises(ValueError):
            fresh_scene.from_dict({"lights": [{"type": "spot"}]})

    def test_texture_without_data(self, fresh_scene):
        """Test a texture entry without color or image raises ValueError."""
        with pytest.raises(ValueError):
            fresh_scene.from_dict({"textures": [{"name": "brick"}]})

    def test_clear(self, fresh_scene):
        """Test clear resets every store."""
        self._populate(fresh_scene)
        fresh_scene.build()
        fresh_scene.clear()
        assert fresh_scene.get_object_count() == 0
        assert fresh_scene.get_triangle_count() == 0
        assert fresh_scene.get_light_count() == 0
        assert fresh_scene.textures == []
        assert fresh_scene.bvh is None
        assert not fresh_scene.is_built
