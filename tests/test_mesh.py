"""Unit tests for meshes, the mesh arena, transforms and scene objects."""

import numpy as np
import pytest


class TestMeshCreation:
    """Tests for Mesh.create validation."""

    def test_create_quad(self):
        """Test the quad factory produces two triangles facing +Z."""
        from src.pathtracer.geometry.mesh import make_quad_mesh

        mesh = make_quad_mesh(2.0)
        assert mesh.vertex_count == 4
        assert mesh.triangle_count == 2
        np.testing.assert_allclose(mesh.normals, [[0, 0, 1]] * 4)
        bmin, bmax = mesh.bounds()
        np.testing.assert_allclose(bmin, [-1, -1, 0])
        np.testing.assert_allclose(bmax, [1, 1, 0])

    def test_arrays_are_read_only(self):
        """Test mesh buffers cannot be modified after creation."""
        from src.pathtracer.geometry.mesh import make_quad_mesh

        mesh = make_quad_mesh()
        with pytest.raises(ValueError):
            mesh.positions[0, 0] = 5.0

    def test_default_normals_and_uvs(self):
        """Test missing normals are computed and UVs default to zero."""
        from src.pathtracer.geometry.mesh import Mesh

        mesh = Mesh.create([(0, 0, 0), (1, 0, 0), (0, 1, 0)], [(0, 1, 2)])
        np.testing.assert_allclose(mesh.normals, [[0, 0, 1]] * 3, atol=1e-6)
        np.testing.assert_array_equal(mesh.uvs, np.zeros((3, 2)))

    def test_index_out_of_range(self):
        """Test triangle indices past the vertex count are rejected."""
        from src.pathtracer.geometry.mesh import Mesh

        with pytest.raises(ValueError):
            Mesh.create([(0, 0, 0), (1, 0, 0), (0, 1, 0)], [(0, 1, 3)])

    def test_bad_shapes(self):
        """Test wrongly shaped buffers are rejected."""
        from src.pathtracer.geometry.mesh import Mesh

        with pytest.raises(ValueError):
            Mesh.create([(0, 0), (1, 0), (0, 1)], [(0, 1, 2)])
        with pytest.raises(ValueError):
            Mesh.create([(0, 0, 0), (1, 0, 0), (0, 1, 0)], [(0, 1, 2)], uvs=[(0, 0)])

    def test_empty_mesh(self):
        """Test a mesh without triangles is allowed."""
        from src.pathtracer.geometry.mesh import Mesh

        mesh = Mesh.create(np.zeros((0, 3)), np.zeros((0, 3)))
        assert mesh.triangle_count == 0

    def test_cube_normals_point_outward(self):
        """Test cube normals point away from the center, or inward on request."""
        from src.pathtracer.geometry.mesh import make_cube_mesh

        for inward, sign in ((False, 1.0), (True, -1.0)):
            mesh = make_cube_mesh(2.0, inward=inward)
            assert mesh.triangle_count == 12
            tris = mesh.positions[mesh.triangles]
            face = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
            centers = tris.mean(axis=1)
            assert np.all(sign * np.einsum("ij,ij->i", face, centers) > 0.0)


class TestMeshArena:
    """Tests for MeshArena."""

    def test_add_and_get(self):
        """Test meshes are indexed in insertion order."""
        from src.pathtracer.geometry.mesh import MeshArena, make_cube_mesh, make_quad_mesh

        arena = MeshArena()
        quad = make_quad_mesh()
        cube = make_cube_mesh()
        assert arena.add(quad) == 0
        assert arena.add(cube) == 1
        assert arena.get(1) is cube
        assert len(arena) == 2
        assert list(arena) == [quad, cube]

    def test_invalid_id(self):
        """Test an invalid mesh id raises ValueError."""
        from src.pathtracer.geometry.mesh import MeshArena

        arena = MeshArena()
        with pytest.raises(ValueError):
            arena.get(0)

    def test_clear(self):
        """Test clear removes all meshes."""
        from src.pathtracer.geometry.mesh import MeshArena, make_quad_mesh

        arena = MeshArena()
        arena.add(make_quad_mesh())
        arena.clear()
        assert len(arena) == 0


class TestTransforms:
    """Tests for transform builders."""

    def test_rotation_quarter_turn(self):
        """Test a 90 degree turn about X maps +Z to -Y."""
        from src.pathtracer.geometry.mesh import rotation

        m = rotation((1.0, 0.0, 0.0), 90.0)
        np.testing.assert_allclose(m[:3, :3] @ [0, 0, 1], [0, -1, 0], atol=1e-12)

    def test_rotation_zero_axis(self):
        """Test a zero rotation axis is rejected."""
        from src.pathtracer.geometry.mesh import rotation

        with pytest.raises(ValueError):
            rotation((0.0, 0.0, 0.0), 45.0)

    def test_compose_order(self):
        """Test compose(a, b) applies b first."""
        from src.pathtracer.geometry.mesh import compose, scaling, translation

        m = compose(translation(1.0, 0.0, 0.0), scaling(2.0))
        np.testing.assert_allclose(m @ [1, 1, 1, 1], [3, 2, 2, 1])


class TestSceneObject:
    """Tests for SceneObject world-space transformation."""

    def test_world_triangles(self):
        """Test positions are transformed and normals renormalized."""
        from src.pathtracer.geometry.mesh import MeshArena, SceneObject, compose, make_quad_mesh, scaling, translation

        arena = MeshArena()
        mesh_id = arena.add(make_quad_mesh(1.0))
        obj = SceneObject(mesh_id, compose(translation(0.0, 0.0, -2.0), scaling(2.0, 2.0, 1.0)))

        vertices, normals, uvs = obj.world_triangles(arena)
        assert vertices.shape == (2, 3, 3)
        assert normals.shape == (2, 3, 3)
        assert uvs.shape == (2, 3, 2)
        np.testing.assert_allclose(vertices[..., 2], -2.0)
        assert vertices[..., 0].max() == pytest.approx(1.0)
        np.testing.assert_allclose(normals.reshape(-1, 3), [[0, 0, 1]] * 6, atol=1e-6)

    def test_non_uniform_scale_normals(self):
        """Test normals use the inverse-transpose under non-uniform scaling."""
        from src.pathtracer.geometry.mesh import Mesh, MeshArena, SceneObject, scaling

        arena = MeshArena()
        # A slanted triangle with a 45 degree normal in the XZ plane
        n = np.array([1.0, 0.0, 1.0]) / np.sqrt(2.0)
        mesh = Mesh.create([(0, 0, 0), (0, 1, 0), (1, 0, -1)], [(0, 2, 1)], normals=[n] * 3)
        mesh_id = arena.add(mesh)
        obj = SceneObject(mesh_id, scaling(2.0, 1.0, 1.0))

        vertices, normals, _ = obj.world_triangles(arena)
        v = vertices[0]
        face = np.cross(v[1] - v[0], v[2] - v[0])
        face /= np.linalg.norm(face)
        np.testing.assert_allclose(normals[0, 0], face, atol=1e-5)

    def test_singular_transform_rejected(self):
        """Test a non-invertible transform is rejected."""
        from src.pathtracer.geometry.mesh import SceneObject, scaling

        with pytest.raises(ValueError):
            SceneObject(0, scaling(1.0, 0.0, 1.0))

    def test_bad_transform_shape(self):
        """Test a transform that is not 4x4 is rejected."""
        from src.pathtracer.geometry.mesh import SceneObject

        with pytest.raises(ValueError):
            SceneObject(0, np.eye(3))
