# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for the MeshSample view."""

import math
import unittest

import numpy as np
import trimesh

from scanfit.mesh import MeshSample
from scanfit.shared.linalg import make_transform, rotation_about_axis


def square():
    vertices = [[0.0, 0, 0], [1.0, 0, 0], [1.0, 1, 0], [0.0, 1, 0]]
    return MeshSample(vertices, [[0, 1, 2], [0, 2, 3]])


class TestMeshSample(unittest.TestCase):
    def test_counts_and_bounds(self) -> None:
        mesh = square()
        self.assertEqual(mesh.vertex_count, 4)
        self.assertEqual(mesh.face_count, 2)
        np.testing.assert_allclose(mesh.centroid, [0.5, 0.5, 0.0])
        np.testing.assert_allclose(mesh.bounds.dimensions, [1.0, 1.0, 0.0])
        self.assertAlmostEqual(mesh.bbox_diagonal, math.sqrt(2.0))

    def test_face_and_vertex_normals(self) -> None:
        mesh = square()
        np.testing.assert_allclose(mesh.face_normals, [[0.0, 0, 1], [0.0, 0, 1]])
        np.testing.assert_allclose(mesh.vertex_normals, np.tile([0.0, 0, 1], (4, 1)))
        self.assertTrue(mesh.has_normals)

    def test_point_cloud(self) -> None:
        cloud = MeshSample.from_points(np.zeros((5, 3)))
        self.assertEqual(cloud.face_count, 0)
        self.assertIsNone(cloud.vertex_normals)
        self.assertFalse(cloud.has_normals)
        self.assertIsInstance(cloud.to_trimesh(), trimesh.PointCloud)

    def test_empty(self) -> None:
        mesh = MeshSample(np.zeros((0, 3)))
        self.assertTrue(mesh.is_empty)
        np.testing.assert_array_equal(mesh.centroid, [0.0, 0.0, 0.0])

    def test_bad_face_index(self) -> None:
        with self.assertRaises(ValueError):
            MeshSample(np.zeros((3, 3)), [[0, 1, 3]])

    def test_arrays_are_read_only(self) -> None:
        mesh = square()
        with self.assertRaises(ValueError):
            mesh.vertices[0, 0] = 5.0

    def test_gather_faces(self) -> None:
        points, normals = square().gather_faces([1, 7])
        self.assertEqual(points.shape, (3, 3))
        np.testing.assert_allclose(normals, np.tile([0.0, 0, 1], (3, 1)))

    def test_apply_transform_moves_normals(self) -> None:
        mesh = square()
        _ = mesh.face_normals
        T = make_transform(rotation_about_axis([1.0, 0, 0], math.pi / 2), [0.0, 0.0, 2.0])
        mesh.apply_transform(T)
        np.testing.assert_allclose(mesh.vertices[2], [1.0, 0.0, 3.0], atol=1e-12)
        np.testing.assert_allclose(mesh.face_normals[0], [0.0, -1.0, 0.0], atol=1e-12)

    def test_trimesh_round_trip(self) -> None:
        box = trimesh.creation.box(extents=(1.0, 2.0, 3.0))
        mesh = MeshSample.from_trimesh(box)
        self.assertEqual(mesh.face_count, len(box.faces))
        back = mesh.to_trimesh()
        np.testing.assert_allclose(back.vertices, box.vertices)
        np.testing.assert_array_equal(back.faces, box.faces)

    def test_copy_is_independent(self) -> None:
        mesh = square()
        clone = mesh.copy()
        clone.apply_transform(make_transform(translation=[1.0, 0.0, 0.0]))
        np.testing.assert_allclose(mesh.vertices[0], [0.0, 0.0, 0.0])


if __name__ == "__main__":
    unittest.main()
