# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for sphere fitting."""

import unittest

import numpy as np

from scanfit.config import SphereFitOptions
from scanfit.primitive_fitting import algebraic_sphere, fit_sphere, fit_sphere_ransac
from scanfit.shared.linalg import get_rng

from helpers import fibonacci_sphere


class TestSphereFit(unittest.TestCase):
    def test_axis_points(self) -> None:
        pts = np.array([[1.0, 0, 0], [-1.0, 0, 0], [0, 1.0, 0], [0, -1.0, 0], [0, 0, 1.0], [0, 0, -1.0]])
        result = fit_sphere(pts)
        self.assertTrue(result.success)
        np.testing.assert_allclose(result.primitive.center, [0.0, 0.0, 0.0], atol=1e-9)
        self.assertAlmostEqual(result.primitive.radius, 1.0, places=9)

    def test_offset_sphere_round_trip(self) -> None:
        pts, _ = fibonacci_sphere(60, center=(1.0, 2.0, 3.0), radius=5.0)
        sphere = algebraic_sphere(pts)
        np.testing.assert_allclose(sphere.center, [1.0, 2.0, 3.0], atol=1e-3)
        self.assertAlmostEqual(sphere.radius, 5.0, delta=1e-3)

    def test_geometric_path(self) -> None:
        pts, _ = fibonacci_sphere(200, center=(1.0, 2.0, 3.0), radius=5.0)
        result = fit_sphere(pts, SphereFitOptions(use_algebraic_fit=False))
        self.assertTrue(result.success)
        np.testing.assert_allclose(result.primitive.center, [1.0, 2.0, 3.0], atol=1e-2)
        self.assertAlmostEqual(result.primitive.radius, 5.0, delta=1e-2)

    def test_too_few_points(self) -> None:
        result = fit_sphere(np.eye(3))
        self.assertFalse(result.success)
        self.assertIn("at least 4", result.error_message)

    def test_ransac_with_outliers(self) -> None:
        rng = get_rng(9)
        pts, _ = fibonacci_sphere(100, center=(0.5, -1.0, 2.0), radius=2.0)
        outliers = rng.uniform(-6.0, 6.0, size=(200, 3))
        far = np.abs(np.linalg.norm(outliers - [0.5, -1.0, 2.0], axis=1) - 2.0) > 0.5
        cloud = np.vstack([pts, outliers[far][:30]])

        result = fit_sphere_ransac(cloud, rng=1)
        self.assertTrue(result.success)
        np.testing.assert_allclose(result.primitive.center, [0.5, -1.0, 2.0], atol=1e-6)
        self.assertAlmostEqual(result.primitive.radius, 2.0, places=6)
        self.assertEqual(result.inlier_count, 100)


if __name__ == "__main__":
    unittest.main()
