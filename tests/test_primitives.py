# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for the analytical primitive surfaces."""

import math
import unittest

import numpy as np

from scanfit.primitive_fitting.primitives import Cone, Cylinder, Plane, Sphere
from scanfit.shared.linalg import make_transform, rotation_about_axis


class TestPlane(unittest.TestCase):
    def test_distance_and_projection(self) -> None:
        plane = Plane([0.0, 0.0, 2.0], -2.0)
        self.assertAlmostEqual(plane.distance, -1.0)
        self.assertAlmostEqual(plane.signed_distance([0.0, 0.0, 3.0]), 2.0)
        np.testing.assert_allclose(plane.project_point([1.0, 2.0, 5.0]), [1.0, 2.0, 1.0])
        np.testing.assert_allclose(plane.point_on_plane, [0.0, 0.0, 1.0])

    def test_vectorised_queries(self) -> None:
        plane = Plane()
        d = plane.signed_distance(np.array([[0.0, 0, 1], [0.0, 0, -2]]))
        np.testing.assert_allclose(d, [1.0, -2.0])

    def test_which_side(self) -> None:
        plane = Plane()
        self.assertEqual(plane.which_side([0.0, 0.0, 1.0]), 1)
        self.assertEqual(plane.which_side([0.0, 0.0, -1.0]), -1)
        self.assertEqual(plane.which_side([5.0, 5.0, 0.0]), 0)

    def test_from_three_points(self) -> None:
        plane = Plane.from_three_points([0.0, 0, 1], [1.0, 0, 1], [0.0, 1, 1])
        np.testing.assert_allclose(plane.normal, [0.0, 0.0, 1.0])
        self.assertAlmostEqual(plane.distance, -1.0)

    def test_collinear_points_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Plane.from_three_points([0.0, 0, 0], [1.0, 0, 0], [2.0, 0, 0])

    def test_zero_normal_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Plane([0.0, 0.0, 0.0], 1.0)

    def test_intersections(self) -> None:
        plane = Plane()
        np.testing.assert_allclose(plane.intersect_ray([1.0, 1, 5], [0.0, 0, -1]), [1.0, 1.0, 0.0])
        self.assertIsNone(plane.intersect_ray([0.0, 0, 5], [0.0, 0, 1]))
        point, direction = plane.intersect_plane(Plane([1.0, 0, 0], -2.0))
        self.assertAlmostEqual(abs(direction[1]), 1.0)
        self.assertAlmostEqual(point[0], 2.0)
        self.assertAlmostEqual(point[2], 0.0)
        self.assertIsNone(plane.intersect_plane(Plane([0.0, 0, 1], 3.0)))

    def test_flip_and_transform(self) -> None:
        plane = Plane([0.0, 0.0, 1.0], -1.0)
        plane.flip()
        np.testing.assert_allclose(plane.normal, [0.0, 0.0, -1.0])
        self.assertAlmostEqual(plane.signed_distance([0.0, 0.0, 0.0]), 1.0)

        moved = Plane([0.0, 0.0, 1.0], 0.0).transformed(
            make_transform(rotation_about_axis([1.0, 0, 0], math.pi / 2), [0.0, 0.0, 3.0]))
        np.testing.assert_allclose(moved.normal, [0.0, -1.0, 0.0], atol=1e-12)
        self.assertAlmostEqual(moved.signed_distance([0.0, 0.0, 3.0]), 0.0)


class TestSphere(unittest.TestCase):
    def test_distance(self) -> None:
        sphere = Sphere([1.0, 0, 0], 2.0)
        self.assertAlmostEqual(sphere.signed_distance([4.0, 0, 0]), 1.0)
        self.assertAlmostEqual(sphere.signed_distance([1.0, 0, 0]), -2.0)
        np.testing.assert_allclose(sphere.project_point([1.0, 5.0, 0]), [1.0, 2.0, 0.0])
        self.assertTrue(sphere.contains_point([1.5, 0, 0]))

    def test_circumsphere(self) -> None:
        sphere = Sphere.from_four_points([1.0, 0, 0], [-1.0, 0, 0], [0.0, 1, 0], [0.0, 0, 1])
        np.testing.assert_allclose(sphere.center, [0.0, 0.0, 0.0], atol=1e-12)
        self.assertAlmostEqual(sphere.radius, 1.0)

    def test_circumsphere_of_coplanar_points(self) -> None:
        self.assertIsNone(Sphere.from_four_points([0.0, 0, 0], [1.0, 0, 0], [0.0, 1, 0], [1.0, 1, 0]))

    def test_measures_and_ray(self) -> None:
        sphere = Sphere([0.0, 0, 0], 1.0)
        self.assertAlmostEqual(sphere.surface_area, 4.0 * math.pi)
        self.assertAlmostEqual(sphere.volume, 4.0 / 3.0 * math.pi)
        np.testing.assert_allclose(sphere.intersect_ray([-5.0, 0, 0], [1.0, 0, 0]), [-1.0, 0.0, 0.0])
        self.assertIsNone(sphere.intersect_ray([-5.0, 3.0, 0], [1.0, 0, 0]))


class TestCylinder(unittest.TestCase):
    def test_distance(self) -> None:
        cyl = Cylinder([0.0, 0, 0], [0.0, 0, 1], 1.0, 2.0)
        self.assertAlmostEqual(cyl.signed_distance([3.0, 0, 100.0]), 2.0)
        self.assertAlmostEqual(cyl.signed_distance([0.5, 0, 0]), -0.5)
        np.testing.assert_allclose(cyl.project_point([2.0, 0, 0.5]), [1.0, 0.0, 0.5])
        np.testing.assert_allclose(cyl.closest_point_on_axis([2.0, 3.0, 0.5]), [0.0, 0.0, 0.5])

    def test_containment_and_caps(self) -> None:
        cyl = Cylinder([0.0, 0, 0], [0.0, 0, 1], 1.0, 2.0)
        self.assertTrue(cyl.contains_point([0.5, 0, 0.9]))
        self.assertFalse(cyl.contains_point([0.5, 0, 1.1]))
        bottom, top = cyl.end_caps()
        np.testing.assert_allclose(bottom, [0.0, 0.0, -1.0])
        np.testing.assert_allclose(top, [0.0, 0.0, 1.0])
        self.assertAlmostEqual(cyl.volume, 2.0 * math.pi)
        self.assertAlmostEqual(cyl.surface_area, 6.0 * math.pi)


class TestCone(unittest.TestCase):
    def setUp(self) -> None:
        self.cone = Cone([0.0, 0, 0], [0.0, 0, 1], math.radians(45.0), 2.0)

    def test_cached_trigonometry(self) -> None:
        self.cone.half_angle_degrees = 30.0
        self.assertAlmostEqual(self.cone.half_angle, math.radians(30.0))
        self.assertAlmostEqual(self.cone.cos_angle, math.cos(math.radians(30.0)))
        self.assertAlmostEqual(self.cone.sin_angle, 0.5)

    def test_lateral_distance(self) -> None:
        self.assertAlmostEqual(self.cone.signed_distance([1.0, 0, 1.0]), 0.0)
        self.assertAlmostEqual(self.cone.signed_distance([2.0, 0, 1.0]), math.sqrt(0.5))
        self.assertLess(self.cone.signed_distance([0.0, 0, 1.0]), 0.0)

    def test_behind_apex(self) -> None:
        self.assertAlmostEqual(self.cone.signed_distance([0.0, 3.0, -4.0]), 5.0)

    def test_beyond_base(self) -> None:
        self.assertAlmostEqual(self.cone.signed_distance([0.5, 0, 3.0]), 1.0)

    def test_projection_lies_on_surface(self) -> None:
        projected = self.cone.project_point(np.array([[2.0, 0, 1.0], [0.0, 3.0, 0.5]]))
        np.testing.assert_allclose(self.cone.lateral_distance(projected), [0.0, 0.0], atol=1e-12)

    def test_measures(self) -> None:
        self.assertAlmostEqual(self.cone.base_radius, 2.0)
        np.testing.assert_allclose(self.cone.base_center, [0.0, 0.0, 2.0])
        self.assertAlmostEqual(self.cone.volume, math.pi * 4.0 * 2.0 / 3.0)
        self.assertTrue(self.cone.contains_point([0.5, 0, 1.0]))
        self.assertFalse(self.cone.contains_point([1.5, 0, 1.0]))
        self.assertTrue(self.cone.is_valid())
        self.cone.half_angle = 0.0
        self.assertFalse(self.cone.is_valid())


if __name__ == "__main__":
    unittest.main()
