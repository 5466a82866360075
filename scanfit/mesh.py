# SPDX-License-Identifier: GPL-3.0-or-later

"""
MeshSample: the read-only mesh view consumed by fitting, alignment and
symmetry detection.

Wraps vertex positions, optional triangles and optional normals. Face
normals come from trimesh when they are not supplied. The only mutating
call is apply_transform, used by the alignment operations when the caller
asks for the transform to be applied.
"""

from typing import NamedTuple, Optional, Tuple

import numpy as np
import trimesh

from .shared.linalg import apply_transform, as_points, transform_normals


class BoundingBox(NamedTuple):
    min: np.ndarray
    max: np.ndarray

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.min + self.max)

    @property
    def dimensions(self) -> np.ndarray:
        return self.max - self.min

    @property
    def diagonal(self) -> float:
        return float(np.linalg.norm(self.max - self.min))


def _frozen(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    return array


class MeshSample:
    """
    Vertices, optional triangles and optional normals of a scanned mesh.

    Args:
        vertices: (N, 3) positions
        faces: optional (M, 3) vertex indices, each < N
        vertex_normals: optional (N, 3) unit normals
        face_normals: optional (M, 3) unit normals; computed when omitted
    """

    def __init__(self, vertices, faces=None, vertex_normals=None, face_normals=None):
        self._vertices = _frozen(as_points(vertices).copy())
        n = len(self._vertices)

        if faces is None or len(faces) == 0:
            self._faces = _frozen(np.zeros((0, 3), dtype=np.int64))
        else:
            faces = np.array(faces, dtype=np.int64)
            if faces.ndim != 2 or faces.shape[1] != 3:
                raise ValueError(f"faces must have shape (M, 3), got {faces.shape}")
            if faces.min() < 0 or faces.max() >= n:
                raise ValueError("face index out of range for vertex count")
            self._faces = _frozen(faces)

        self._vertex_normals = None
        if vertex_normals is not None:
            normals = as_points(vertex_normals).copy()
            if len(normals) != n:
                raise ValueError("vertex_normals must match the vertex count")
            self._vertex_normals = _frozen(normals)

        self._face_normals = None
        if face_normals is not None:
            normals = as_points(face_normals).copy()
            if len(normals) != len(self._faces):
                raise ValueError("face_normals must match the face count")
            self._face_normals = _frozen(normals)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_points(cls, points, normals=None) -> "MeshSample":
        return cls(points, vertex_normals=normals)

    @classmethod
    def from_trimesh(cls, mesh) -> "MeshSample":
        """Build from a trimesh.Trimesh or trimesh.PointCloud."""
        faces = getattr(mesh, "faces", None)
        if faces is None or len(faces) == 0:
            return cls(np.asarray(mesh.vertices))
        return cls(
            np.asarray(mesh.vertices),
            np.asarray(faces),
            vertex_normals=np.asarray(mesh.vertex_normals),
            face_normals=np.asarray(mesh.face_normals),
        )

    def to_trimesh(self):
        if self.face_count == 0:
            return trimesh.PointCloud(self._vertices.copy())
        kwargs = {}
        if self._vertex_normals is not None:
            kwargs["vertex_normals"] = self._vertex_normals.copy()
        return trimesh.Trimesh(
            vertices=self._vertices.copy(),
            faces=self._faces.copy(),
            process=False,
            **kwargs,
        )

    def copy(self) -> "MeshSample":
        return MeshSample(
            self._vertices,
            self._faces if self.face_count else None,
            vertex_normals=self._vertex_normals,
            face_normals=self._face_normals,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def vertices(self) -> np.ndarray:
        return self._vertices

    @property
    def faces(self) -> np.ndarray:
        return self._faces

    @property
    def vertex_count(self) -> int:
        return len(self._vertices)

    @property
    def face_count(self) -> int:
        return len(self._faces)

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0

    @property
    def face_normals(self) -> np.ndarray:
        """Unit normal of every face; degenerate faces get a zero vector."""
        if self._face_normals is None:
            normals = np.zeros((self.face_count, 3))
            if self.face_count:
                computed, valid = trimesh.triangles.normals(self._vertices[self._faces])
                normals[valid] = computed
            self._face_normals = _frozen(normals)
        return self._face_normals

    def face_normal(self, face_index: int) -> np.ndarray:
        return self.face_normals[face_index]

    @property
    def has_normals(self) -> bool:
        return self._vertex_normals is not None or self.face_count > 0

    @property
    def vertex_normals(self) -> Optional[np.ndarray]:
        """Stored vertex normals, else the normalised sum of incident face normals."""
        if self._vertex_normals is not None:
            return self._vertex_normals
        if self.face_count == 0:
            return None
        accumulated = np.zeros((self.vertex_count, 3))
        face_normals = self.face_normals
        for corner in range(3):
            np.add.at(accumulated, self._faces[:, corner], face_normals)
        lengths = np.linalg.norm(accumulated, axis=1)
        lengths[lengths < 1e-12] = 1.0
        self._vertex_normals = _frozen(accumulated / lengths[:, None])
        return self._vertex_normals

    @property
    def centroid(self) -> np.ndarray:
        if self.is_empty:
            return np.zeros(3)
        return self._vertices.mean(axis=0)

    @property
    def bounds(self) -> BoundingBox:
        if self.is_empty:
            return BoundingBox(np.zeros(3), np.zeros(3))
        return BoundingBox(self._vertices.min(axis=0), self._vertices.max(axis=0))

    @property
    def bbox_diagonal(self) -> float:
        return self.bounds.diagonal

    def gather_faces(self, face_indices) -> Tuple[np.ndarray, np.ndarray]:
        """
        Corner vertices of the selected faces, each paired with its face normal.

        Out-of-range face indices are skipped. Vertices shared by several
        selected faces appear once per face.
        """
        indices = np.asarray(face_indices, dtype=np.int64).reshape(-1)
        indices = indices[(indices >= 0) & (indices < self.face_count)]
        if len(indices) == 0:
            return np.zeros((0, 3)), np.zeros((0, 3))
        points = self._vertices[self._faces[indices]].reshape(-1, 3)
        normals = np.repeat(self.face_normals[indices], 3, axis=0)
        return points, normals

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply_transform(self, matrix) -> None:
        """Left-multiply a 4x4 transform onto vertices; normals follow."""
        matrix = np.asarray(matrix, dtype=np.float64).reshape(4, 4)
        self._vertices = _frozen(apply_transform(matrix, self._vertices))
        if self._vertex_normals is not None:
            self._vertex_normals = _frozen(transform_normals(matrix, self._vertex_normals))
        if self._face_normals is not None:
            self._face_normals = _frozen(transform_normals(matrix, self._face_normals))

    def __repr__(self) -> str:
        return f"MeshSample(vertices={self.vertex_count}, faces={self.face_count})"
