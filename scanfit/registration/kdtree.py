# SPDX-License-Identifier: GPL-3.0-or-later

"""
Balanced 3D KD-tree for nearest-neighbour queries during ICP and symmetry
matching. Nodes live in flat lists with child indices; per-point normals
ride along so point-to-plane ICP gets the target normal with the match.
"""

import math
from typing import List, NamedTuple, Optional, Tuple

import numpy as np

from ..shared.linalg import as_points


class NearestNeighbor(NamedTuple):
    index: int
    distance: float
    normal: Optional[np.ndarray]


_NO_MATCH = NearestNeighbor(-1, math.inf, None)


class KDTree:
    """
    Build once, query many.

    Each node stores one point index and splits on axis depth % 3 at the
    median of its subtree. Queries on an empty or unbuilt tree return index -1.
    """

    def __init__(self, points=None, normals=None):
        self._points: Optional[np.ndarray] = None
        self._normals: Optional[np.ndarray] = None
        self._coords: List[List[float]] = []
        self._node_point: List[int] = []
        self._node_axis: List[int] = []
        self._left: List[int] = []
        self._right: List[int] = []
        self._root = -1
        if points is not None:
            self.build(points, normals)

    def build(self, points, normals=None) -> None:
        pts = as_points(points)
        if normals is not None:
            normals = as_points(normals)
            if len(normals) != len(pts):
                raise ValueError("normals must match the number of points")
        self._points = pts
        self._normals = normals
        self._coords = pts.tolist()
        self._node_point, self._node_axis, self._left, self._right = [], [], [], []
        self._root = self._build(np.arange(len(pts)), 0)

    def _build(self, indices: np.ndarray, depth: int) -> int:
        if len(indices) == 0:
            return -1
        axis = depth % 3
        order = indices[np.argsort(self._points[indices, axis], kind="stable")]
        mid = len(order) // 2

        node = len(self._node_point)
        self._node_point.append(int(order[mid]))
        self._node_axis.append(axis)
        self._left.append(-1)
        self._right.append(-1)
        self._left[node] = self._build(order[:mid], depth + 1)
        self._right[node] = self._build(order[mid + 1:], depth + 1)
        return node

    @property
    def is_built(self) -> bool:
        return self._root >= 0

    @property
    def size(self) -> int:
        return len(self._node_point)

    @property
    def has_normals(self) -> bool:
        return self._normals is not None

    @property
    def normals(self) -> Optional[np.ndarray]:
        return self._normals

    def query(self, point, max_distance: float = math.inf) -> NearestNeighbor:
        """
        Nearest stored point to `point` within `max_distance`.

        Branch and bound: the near child is searched first and the far child
        only while the splitting plane is closer than the best match.
        """
        if self._root < 0:
            return _NO_MATCH
        qx, qy, qz = (float(c) for c in np.asarray(point, dtype=np.float64).reshape(3))
        q = (qx, qy, qz)
        coords, node_point, node_axis = self._coords, self._node_point, self._node_axis
        left, right = self._left, self._right

        best_index = -1
        best_d2 = max_distance * max_distance if math.isfinite(max_distance) else math.inf
        stack: List[Tuple[int, float]] = [(self._root, 0.0)]
        while stack:
            node, bound = stack.pop()
            if bound > best_d2:
                continue
            index = node_point[node]
            p = coords[index]
            dx, dy, dz = qx - p[0], qy - p[1], qz - p[2]
            d2 = dx * dx + dy * dy + dz * dz
            if d2 < best_d2 or (best_index < 0 and d2 <= best_d2):
                best_index, best_d2 = index, d2

            axis = node_axis[node]
            diff = q[axis] - p[axis]
            if diff < 0:
                near, far = left[node], right[node]
            else:
                near, far = right[node], left[node]
            if far >= 0:
                stack.append((far, diff * diff))
            if near >= 0:
                stack.append((near, bound))

        if best_index < 0:
            return _NO_MATCH
        normal = self._normals[best_index] if self._normals is not None else None
        return NearestNeighbor(best_index, math.sqrt(best_d2), normal)

    def query_many(self, points, max_distance: float = math.inf) -> Tuple[np.ndarray, np.ndarray]:
        """Indices (-1 when unmatched) and distances (inf when unmatched) for each query."""
        queries = as_points(points)
        indices = np.full(len(queries), -1, dtype=np.int64)
        distances = np.full(len(queries), np.inf)
        for i, q in enumerate(queries):
            match = self.query(q, max_distance)
            indices[i] = match.index
            distances[i] = match.distance
        return indices, distances
