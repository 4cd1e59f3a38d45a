"""Immutable triangle meshes, the mesh arena and scene objects.

This module is the geometry store of the renderer. Meshes hold per-vertex
positions, normals and texture coordinates plus an index buffer of
triangles. They are created once, frozen, and registered in a MeshArena.
Objects reference a mesh by its arena index together with a world transform
and surface parameters, so the same mesh can be instanced several times
without copying its buffers.

All computations here are plain NumPy and run on the Python side before the
scene is uploaded to Taichi fields.

Example:
    >>> arena = MeshArena()
    >>> quad_id = arena.add(make_quad_mesh())
    >>> obj = SceneObject(mesh_id=quad_id, transform=translation(0.0, 0.0, -1.0))
    >>> vertices, normals, uvs = obj.world_triangles(arena)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt


def _frozen(array: npt.ArrayLike, dtype: type, width: int, name: str) -> npt.NDArray:
    """Copy an array to the given dtype, check its width and make it read-only."""
    result = np.array(array, dtype=dtype, copy=True)
    if result.size == 0:
        result = result.reshape(0, width)
    if result.ndim != 2 or result.shape[1] != width:
        raise ValueError(f"Mesh {name} must have shape (N, {width}), got {result.shape}")
    result.setflags(write=False)
    return result


def compute_vertex_normals(
    positions: npt.NDArray[np.float32],
    triangles: npt.NDArray[np.int32],
) -> npt.NDArray[np.float32]:
    """Compute area-weighted vertex normals.

    Each face contributes its unnormalized cross product to its three
    vertices. Vertices not used by any non-degenerate face get a +Z normal.

    Args:
        positions: Vertex positions of shape (V, 3).
        triangles: Triangle indices of shape (T, 3).

    Returns:
        Unit normals of shape (V, 3).
    """
    normals = np.zeros_like(positions, dtype=np.float64)
    if len(triangles) > 0:
        p0 = positions[triangles[:, 0]]
        p1 = positions[triangles[:, 1]]
        p2 = positions[triangles[:, 2]]
        face = np.cross(p1 - p0, p2 - p0)
        for corner in range(3):
            np.add.at(normals, triangles[:, corner], face)

    lengths = np.linalg.norm(normals, axis=1)
    valid = lengths > 1e-20
    normals[valid] /= lengths[valid, None]
    normals[~valid] = (0.0, 0.0, 1.0)
    return normals.astype(np.float32)


@dataclass(frozen=True)
class Mesh:
    """An immutable indexed triangle mesh.

    Attributes:
        positions: Vertex positions, shape (V, 3), float32.
        normals: Vertex normals, shape (V, 3), float32.
        uvs: Vertex texture coordinates, shape (V, 2), float32.
        triangles: Vertex indices of each triangle, shape (T, 3), int32.
    """

    positions: npt.NDArray[np.float32]
    normals: npt.NDArray[np.float32]
    uvs: npt.NDArray[np.float32]
    triangles: npt.NDArray[np.int32]

    @classmethod
    def create(
        cls,
        positions: npt.ArrayLike,
        triangles: npt.ArrayLike,
        normals: npt.ArrayLike | None = None,
        uvs: npt.ArrayLike | None = None,
    ) -> Mesh:
        """Build a validated, read-only mesh.

        Missing normals are computed from the faces, missing texture
        coordinates default to zero.

        Args:
            positions: Vertex positions, shape (V, 3).
            triangles: Triangle vertex indices, shape (T, 3).
            normals: Optional vertex normals, shape (V, 3).
            uvs: Optional texture coordinates, shape (V, 2).

        Returns:
            A new Mesh.

        Raises:
            ValueError: If shapes are inconsistent or an index is out of range.
        """
        pos = _frozen(positions, np.float32, 3, "positions")
        tris = _frozen(triangles, np.int32, 3, "triangles")
        vertex_count = len(pos)

        if len(tris) > 0 and (tris.min() < 0 or tris.max() >= vertex_count):
            raise ValueError(
                f"Triangle indices must be in [0, {vertex_count}), "
                f"got range [{tris.min()}, {tris.max()}]"
            )

        if normals is None:
            normals = compute_vertex_normals(pos, tris)
        nrm = _frozen(normals, np.float32, 3, "normals")

        if uvs is None:
            uvs = np.zeros((vertex_count, 2), dtype=np.float32)
        tex = _frozen(uvs, np.float32, 2, "uvs")

        for name, array in (("normals", nrm), ("uvs", tex)):
            if len(array) != vertex_count:
                raise ValueError(
                    f"Mesh {name} has {len(array)} entries but there are {vertex_count} vertices"
                )

        return cls(positions=pos, normals=nrm, uvs=tex, triangles=tris)

    @property
    def vertex_count(self) -> int:
        """Get the number of vertices."""
        return len(self.positions)

    @property
    def triangle_count(self) -> int:
        """Get the number of triangles."""
        return len(self.triangles)

    def bounds(self) -> tuple[npt.NDArray[np.float32], npt.NDArray[np.float32]]:
        """Get the object-space bounding box (min, max) of the mesh."""
        if self.vertex_count == 0:
            zero = np.zeros(3, dtype=np.float32)
            return zero, zero
        return self.positions.min(axis=0), self.positions.max(axis=0)


class MeshArena:
    """Owner of all meshes of a scene.

    Objects and the BVH refer to meshes by their integer index in the arena.
    Meshes are never removed individually; clear() drops all of them.
    """

    def __init__(self) -> None:
        self._meshes: list[Mesh] = []

    def add(self, mesh: Mesh) -> int:
        """Register a mesh and return its index."""
        self._meshes.append(mesh)
        return len(self._meshes) - 1

    def get(self, mesh_id: int) -> Mesh:
        """Get a mesh by index.

        Raises:
            ValueError: If mesh_id is not a valid index.
        """
        if mesh_id < 0 or mesh_id >= len(self._meshes):
            raise ValueError(f"Invalid mesh_id: {mesh_id}")
        return self._meshes[mesh_id]

    def clear(self) -> None:
        """Remove all meshes."""
        self._meshes.clear()

    def __len__(self) -> int:
        return len(self._meshes)

    def __iter__(self):
        return iter(self._meshes)


# =============================================================================
# Transforms
# =============================================================================


def identity() -> npt.NDArray[np.float64]:
    """Get the 4x4 identity transform."""
    return np.eye(4, dtype=np.float64)


def translation(x: float, y: float, z: float) -> npt.NDArray[np.float64]:
    """Build a 4x4 translation matrix."""
    m = identity()
    m[:3, 3] = (x, y, z)
    return m


def scaling(x: float, y: float | None = None, z: float | None = None) -> npt.NDArray[np.float64]:
    """Build a 4x4 scale matrix. A single argument scales uniformly."""
    y = x if y is None else y
    z = x if z is None else z
    return np.diag([x, y, z, 1.0]).astype(np.float64)


def rotation(axis: tuple[float, float, float], degrees: float) -> npt.NDArray[np.float64]:
    """Build a 4x4 rotation matrix around an arbitrary axis (Rodrigues)."""
    a = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(a)
    if norm < 1e-12:
        raise ValueError("Rotation axis must be non-zero")
    x, y, z = a / norm
    theta = math.radians(degrees)
    c, s = math.cos(theta), math.sin(theta)
    t = 1.0 - c
    m = identity()
    m[:3, :3] = [
        [t * x * x + c, t * x * y - s * z, t * x * z + s * y],
        [t * x * y + s * z, t * y * y + c, t * y * z - s * x],
        [t * x * z - s * y, t * y * z + s * x, t * z * z + c],
    ]
    return m


def compose(*transforms: npt.ArrayLike) -> npt.NDArray[np.float64]:
    """Multiply transforms left to right: compose(a, b) applies b first, then a."""
    result = identity()
    for transform in transforms:
        result = result @ np.asarray(transform, dtype=np.float64)
    return result


# =============================================================================
# Scene Objects
# =============================================================================


@dataclass
class SceneObject:
    """A placed instance of a mesh.

    Attributes:
        mesh_id: Index of the mesh in the scene's MeshArena.
        transform: Object-to-world 4x4 matrix.
        texture_id: Index of the base-color texture.
        two_sided: Whether both faces are shaded. Back-face hits of a
            two-sided object use the normal flipped toward the viewer.
    """

    mesh_id: int
    transform: npt.NDArray[np.float64] = field(default_factory=identity)
    texture_id: int = 0
    two_sided: bool = False

    def __post_init__(self) -> None:
        self.transform = np.array(self.transform, dtype=np.float64)
        if self.transform.shape != (4, 4):
            raise ValueError(f"Object transform must be 4x4, got {self.transform.shape}")
        if abs(np.linalg.det(self.transform[:3, :3])) < 1e-12:
            raise ValueError("Object transform must be invertible")

    def normal_matrix(self) -> npt.NDArray[np.float64]:
        """Get the inverse-transpose of the linear part of the transform."""
        return np.linalg.inv(self.transform[:3, :3]).T

    def world_triangles(
        self, arena: MeshArena
    ) -> tuple[npt.NDArray[np.float32], npt.NDArray[np.float32], npt.NDArray[np.float32]]:
        """Transform the object's mesh to world space, one row per triangle.

        Args:
            arena: The arena owning the referenced mesh.

        Returns:
            Tuple (vertices, normals, uvs) with shapes (T, 3, 3), (T, 3, 3)
            and (T, 3, 2).
        """
        mesh = arena.get(self.mesh_id)
        linear = self.transform[:3, :3]
        offset = self.transform[:3, 3]

        world_pos = mesh.positions.astype(np.float64) @ linear.T + offset
        world_nrm = mesh.normals.astype(np.float64) @ self.normal_matrix().T
        lengths = np.linalg.norm(world_nrm, axis=1, keepdims=True)
        world_nrm = np.divide(world_nrm, lengths, out=np.zeros_like(world_nrm), where=lengths > 1e-20)

        tris = mesh.triangles
        return (
            world_pos[tris].astype(np.float32),
            world_nrm[tris].astype(np.float32),
            mesh.uvs[tris].astype(np.float32),
        )


# =============================================================================
# Mesh Factories
# =============================================================================


def make_quad_mesh(size: float = 1.0) -> Mesh:
    """Create a square of side `size` centered at the origin, facing +Z.

    The square is made of two triangles with counter-clockwise winding seen
    from +Z, normals (0, 0, 1) and texture coordinates spanning [0, 1]^2.
    """
    h = 0.5 * size
    positions = [(-h, -h, 0.0), (h, -h, 0.0), (h, h, 0.0), (-h, h, 0.0)]
    normals = [(0.0, 0.0, 1.0)] * 4
    uvs = [(0.0, 1.0), (1.0, 1.0), (1.0, 0.0), (0.0, 0.0)]
    triangles = [(0, 1, 2), (0, 2, 3)]
    return Mesh.create(positions, triangles, normals=normals, uvs=uvs)


def make_cube_mesh(size: float = 1.0, inward: bool = False) -> Mesh:
    """Create an axis-aligned cube centered at the origin.

    Each face has its own four vertices so normals stay flat.

    Args:
        size: Edge length.
        inward: If True, faces and normals point toward the cube center
            (useful for closed rooms).
    """
    h = 0.5 * size
    # (normal, tangent u, tangent v) per face with u x v == normal
    faces = [
        ((1, 0, 0), (0, 0, -1), (0, 1, 0)),
        ((-1, 0, 0), (0, 0, 1), (0, 1, 0)),
        ((0, 1, 0), (1, 0, 0), (0, 0, -1)),
        ((0, -1, 0), (1, 0, 0), (0, 0, 1)),
        ((0, 0, 1), (1, 0, 0), (0, 1, 0)),
        ((0, 0, -1), (-1, 0, 0), (0, 1, 0)),
    ]
    positions = []
    normals = []
    uvs = []
    triangles = []
    for n, u, v in faces:
        n, u, v = (np.asarray(a, dtype=np.float64) for a in (n, u, v))
        center = n * h
        base = len(positions)
        for su, sv in ((-1, -1), (1, -1), (1, 1), (-1, 1)):
            positions.append(center + su * h * u + sv * h * v)
            uvs.append((0.5 * (su + 1), 0.5 * (1 - sv)))
            normals.append(-n if inward else n)
        if inward:
            triangles += [(base, base + 2, base + 1), (base, base + 3, base + 2)]
        else:
            triangles += [(base, base + 1, base + 2), (base, base + 2, base + 3)]
    return Mesh.create(positions, triangles, normals=normals, uvs=uvs)
