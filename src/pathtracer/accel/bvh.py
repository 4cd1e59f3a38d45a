"""Bounding volume hierarchy over scene triangles.

The BVH is built once on the Python side with NumPy and stored as flat
arrays, one entry per node, so it can be uploaded unchanged into Taichi
fields for traversal:

    node_min, node_max    Bounding box corners, shape (M, 3)
    node_left, node_right Child node indices (-1 for leaves)
    node_start, node_count Leaf range [start, start + count) into prim_order

Construction is top-down with an explicit work stack. A node becomes a leaf
when it holds at most `leaf_size` primitives or the maximum depth is reached.
Otherwise its primitives are split on the axis of greatest centroid extent
around the midpoint of the centroid bounds. When that split leaves one side
empty (for example when all centroids coincide on the axis) the range is
split evenly by index instead, which guarantees termination.

The primitive order array is partitioned in place, so leaves only store a
range and memory stays proportional to the number of primitives.

Example:
    >>> vertices, normals, uvs = obj.world_triangles(arena)
    >>> bvh = build_scene_bvh(vertices)
    >>> bvh.validate()
    >>> bvh.node_total, bvh.leaf_count, bvh.depth()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from src.pathtracer.geometry.aabb import box_contains, triangle_bounds

logger = logging.getLogger(__name__)

# Maximum primitives per leaf
DEFAULT_LEAF_SIZE = 4

# Default maximum tree depth (root has depth 0)
DEFAULT_MAX_DEPTH = 48

# Deepest tree the fixed-size traversal stack can handle
MAX_SUPPORTED_DEPTH = 63


@dataclass
class BVH:
    """A flattened bounding volume hierarchy.

    Node 0 is the root. A node is a leaf when node_count > 0.

    Attributes:
        node_min: Box minimum corners, shape (M, 3), float32.
        node_max: Box maximum corners, shape (M, 3), float32.
        node_left: Left child index per node, -1 for leaves.
        node_right: Right child index per node, -1 for leaves.
        node_start: First primitive of a leaf in prim_order.
        node_count: Number of primitives of a leaf, 0 for internal nodes.
        prim_order: Permutation of input primitive indices in leaf order.
        prim_refs: (object id, triangle id) pairs reordered like prim_order.
        prim_min: Per-primitive box minimum corners (input order).
        prim_max: Per-primitive box maximum corners (input order).
    """

    node_min: npt.NDArray[np.float32]
    node_max: npt.NDArray[np.float32]
    node_left: npt.NDArray[np.int32]
    node_right: npt.NDArray[np.int32]
    node_start: npt.NDArray[np.int32]
    node_count: npt.NDArray[np.int32]
    prim_order: npt.NDArray[np.int32]
    prim_refs: npt.NDArray[np.int32]
    prim_min: npt.NDArray[np.float32]
    prim_max: npt.NDArray[np.float32]

    @property
    def empty(self) -> bool:
        """Whether the hierarchy holds no primitives."""
        return len(self.prim_order) == 0

    @property
    def node_total(self) -> int:
        """Get the number of nodes."""
        return len(self.node_min)

    @property
    def leaf_count(self) -> int:
        """Get the number of leaf nodes."""
        return int(np.count_nonzero(self.node_count > 0))

    @property
    def primitive_count(self) -> int:
        """Get the number of primitives."""
        return len(self.prim_order)

    def is_leaf(self, node: int) -> bool:
        """Check whether a node is a leaf."""
        return bool(self.node_count[node] > 0)

    def leaf_primitives(self, node: int) -> npt.NDArray[np.int32]:
        """Get the input indices of the primitives stored in a leaf."""
        start = int(self.node_start[node])
        return self.prim_order[start : start + int(self.node_count[node])]

    def depth(self) -> int:
        """Compute the depth of the tree (0 for a single leaf, -1 if empty)."""
        if self.empty:
            return -1
        deepest = 0
        stack = [(0, 0)]
        while stack:
            node, level = stack.pop()
            deepest = max(deepest, level)
            if not self.is_leaf(node):
                stack.append((int(self.node_left[node]), level + 1))
                stack.append((int(self.node_right[node]), level + 1))
        return deepest

    def validate(self) -> None:
        """Check the structural and containment invariants of the tree.

        Every internal node's box contains its children's boxes, every leaf's
        box contains the boxes of its primitives, and every primitive is
        referenced by exactly one leaf.

        Raises:
            AssertionError: If an invariant is violated.
        """
        if self.empty:
            assert self.node_total == 0, "Empty BVH must not have nodes"
            return

        seen = np.zeros(self.primitive_count, dtype=np.int32)
        stack = [0]
        while stack:
            node = stack.pop()
            lo, hi = self.node_min[node], self.node_max[node]
            assert np.all(lo <= hi), f"Node {node} has an inverted box"
            if self.is_leaf(node):
                prims = self.leaf_primitives(node)
                assert box_contains(lo, hi, self.prim_min[prims], self.prim_max[prims]), (
                    f"Leaf {node} does not contain its primitives"
                )
                seen[prims] += 1
                continue
            for child in (int(self.node_left[node]), int(self.node_right[node])):
                assert 0 < child < self.node_total, f"Node {node} has invalid child {child}"
                assert box_contains(lo, hi, self.node_min[child], self.node_max[child]), (
                    f"Node {node} does not contain child {child}"
                )
                stack.append(child)

        assert np.all(seen == 1), "Every primitive must belong to exactly one leaf"


def _empty_bvh() -> BVH:
    vec = np.zeros((0, 3), dtype=np.float32)
    idx = np.zeros(0, dtype=np.int32)
    return BVH(
        node_min=vec,
        node_max=vec.copy(),
        node_left=idx,
        node_right=idx.copy(),
        node_start=idx.copy(),
        node_count=idx.copy(),
        prim_order=idx.copy(),
        prim_refs=np.zeros((0, 2), dtype=np.int32),
        prim_min=vec.copy(),
        prim_max=vec.copy(),
    )


def _partition(
    order: npt.NDArray[np.int32],
    start: int,
    end: int,
    centroids: npt.NDArray[np.float32],
) -> int:
    """Split order[start:end] in place and return the first index of the right half."""
    span = order[start:end]
    c = centroids[span]
    c_min = c.min(axis=0)
    c_max = c.max(axis=0)
    extent = c_max - c_min
    axis = int(np.argmax(extent))

    mid = start
    if extent[axis] > 0.0:
        split = 0.5 * (c_min[axis] + c_max[axis])
        left = c[:, axis] < split
        order[start:end] = np.concatenate((span[left], span[~left]))
        mid = start + int(np.count_nonzero(left))

    if mid == start or mid == end:
        # Degenerate split; the range keeps its current order
        mid = start + (end - start) // 2
    return mid


def build_bvh(
    prim_refs: npt.ArrayLike,
    bounds_min: npt.ArrayLike,
    bounds_max: npt.ArrayLike,
    centroids: npt.ArrayLike,
    leaf_size: int = DEFAULT_LEAF_SIZE,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> BVH:
    """Build a BVH over a set of primitives.

    Args:
        prim_refs: (object id, triangle id) per primitive, shape (N, 2).
        bounds_min: Per-primitive box minimum, shape (N, 3).
        bounds_max: Per-primitive box maximum, shape (N, 3).
        centroids: Per-primitive centroid, shape (N, 3).
        leaf_size: Maximum primitives per leaf (>= 1).
        max_depth: Maximum tree depth (0 to MAX_SUPPORTED_DEPTH).

    Returns:
        The flattened BVH. With no primitives the result is empty.

    Raises:
        ValueError: If the arrays are inconsistent or a parameter is out of range.
    """
    if leaf_size < 1:
        raise ValueError(f"leaf_size must be at least 1, got {leaf_size}")
    if not 0 <= max_depth <= MAX_SUPPORTED_DEPTH:
        raise ValueError(f"max_depth must be in [0, {MAX_SUPPORTED_DEPTH}], got {max_depth}")

    refs = np.asarray(prim_refs, dtype=np.int32).reshape(-1, 2)
    prim_min = np.asarray(bounds_min, dtype=np.float32).reshape(-1, 3)
    prim_max = np.asarray(bounds_max, dtype=np.float32).reshape(-1, 3)
    cents = np.asarray(centroids, dtype=np.float32).reshape(-1, 3)

    n = len(refs)
    if not (len(prim_min) == len(prim_max) == len(cents) == n):
        raise ValueError(
            f"Primitive arrays disagree in length: refs={n}, min={len(prim_min)}, "
            f"max={len(prim_max)}, centroids={len(cents)}"
        )
    if n == 0:
        return _empty_bvh()

    order = np.arange(n, dtype=np.int32)
    node_min: list[npt.NDArray[np.float32]] = [prim_min.min(axis=0)]
    node_max: list[npt.NDArray[np.float32]] = [prim_max.max(axis=0)]
    node_left = [-1]
    node_right = [-1]
    node_start = [0]
    node_count = [0]

    # (node index, start, end, depth)
    stack = [(0, 0, n, 0)]
    while stack:
        node, start, end, level = stack.pop()
        count = end - start

        if count <= leaf_size or level >= max_depth:
            node_start[node] = start
            node_count[node] = count
            continue

        mid = _partition(order, start, end, cents)

        for lo, hi in ((start, mid), (mid, end)):
            span = order[lo:hi]
            node_min.append(prim_min[span].min(axis=0))
            node_max.append(prim_max[span].max(axis=0))
            node_left.append(-1)
            node_right.append(-1)
            node_start.append(0)
            node_count.append(0)
        left = len(node_min) - 2
        node_left[node] = left
        node_right[node] = left + 1

        stack.append((left + 1, mid, end, level + 1))
        stack.append((left, start, mid, level + 1))

    bvh = BVH(
        node_min=np.array(node_min, dtype=np.float32),
        node_max=np.array(node_max, dtype=np.float32),
        node_left=np.array(node_left, dtype=np.int32),
        node_right=np.array(node_right, dtype=np.int32),
        node_start=np.array(node_start, dtype=np.int32),
        node_count=np.array(node_count, dtype=np.int32),
        prim_order=order,
        prim_refs=refs[order],
        prim_min=prim_min,
        prim_max=prim_max,
    )
    logger.debug(
        "Built BVH: %d primitives, %d nodes, %d leaves", n, bvh.node_total, bvh.leaf_count
    )
    return bvh


def build_scene_bvh(
    vertices: npt.ArrayLike,
    prim_refs: npt.ArrayLike | None = None,
    leaf_size: int = DEFAULT_LEAF_SIZE,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> BVH:
    """Build a BVH over world-space triangles.

    Args:
        vertices: Triangle corners, shape (N, 3, 3).
        prim_refs: Optional (object id, triangle id) per triangle. Defaults
            to object 0 with triangle ids 0..N-1.
        leaf_size: Maximum primitives per leaf.
        max_depth: Maximum tree depth.

    Returns:
        The flattened BVH.
    """
    vertices = np.asarray(vertices, dtype=np.float32)
    if vertices.size == 0:
        vertices = vertices.reshape(0, 3, 3)
    bounds_min, bounds_max, centroids = triangle_bounds(vertices)
    if prim_refs is None:
        prim_refs = np.stack(
            [np.zeros(len(vertices), dtype=np.int32), np.arange(len(vertices), dtype=np.int32)],
            axis=1,
        )
    return build_bvh(prim_refs, bounds_min, bounds_max, centroids, leaf_size, max_depth)
