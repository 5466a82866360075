# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for cylinder fitting with and without normals."""

import unittest

import numpy as np

from scanfit.config import CylinderFitOptions
from scanfit.primitive_fitting import PrimitiveType, fit_cylinder
from scanfit.primitive_fitting.cylinder_fit import estimate_axis_from_normals, fit_circle_2d, polish_axis

from helpers import cylinder_sample


class TestCylinderBuildingBlocks(unittest.TestCase):
    def test_circle_fit(self) -> None:
        angles = np.linspace(0.0, 2.0 * np.pi, 12, endpoint=False)
        xy = np.column_stack([3.0 + 2.0 * np.cos(angles), -1.0 + 2.0 * np.sin(angles)])
        center, radius = fit_circle_2d(xy)
        np.testing.assert_allclose(center, [3.0, -1.0], atol=1e-9)
        self.assertAlmostEqual(radius, 2.0, places=9)

    def test_axis_from_normals(self) -> None:
        _, normals = cylinder_sample(10, 24, radius=2.0, height=10.0, axis=(0.0, 1.0, 0.0))
        axis = estimate_axis_from_normals(normals)
        self.assertGreater(abs(axis[1]), 0.999)

    def test_polish_recovers_tilted_axis(self) -> None:
        axis = np.array([1.0, 1.0, 2.0]) / np.sqrt(6.0)
        pts, _ = cylinder_sample(6, 16, radius=0.5, height=3.0, axis=axis, center=(1.0, 0.0, -1.0))
        cylinder = polish_axis(pts, guess_axis=[0.0, 0.3, 1.0])
        self.assertGreater(abs(cylinder.axis @ axis), 0.999)
        self.assertAlmostEqual(cylinder.radius, 0.5, delta=5e-3)


class TestCylinderFit(unittest.TestCase):
    def test_with_normals(self) -> None:
        pts, normals = cylinder_sample(10, 24, radius=2.0, height=10.0, axis=(0.0, 1.0, 0.0))
        result = fit_cylinder(pts, normals)
        self.assertTrue(result.success)
        self.assertEqual(result.primitive_type, PrimitiveType.CYLINDER)
        cylinder = result.primitive
        self.assertGreaterEqual(abs(cylinder.axis @ [0.0, 1.0, 0.0]), 0.999)
        self.assertAlmostEqual(cylinder.radius, 2.0, delta=0.02)
        self.assertAlmostEqual(cylinder.height, 10.0, delta=0.5)
        np.testing.assert_allclose(cylinder.center, [0.0, 0.0, 0.0], atol=1e-6)

    def test_regular_sampling_without_normals(self) -> None:
        pts, _ = cylinder_sample(5, 20, radius=1.0, height=2.0)
        result = fit_cylinder(pts, rng=0)
        self.assertTrue(result.success)
        cylinder = result.primitive
        self.assertGreater(abs(cylinder.axis[2]), 0.999)
        self.assertAlmostEqual(cylinder.radius, 1.0, delta=0.01)
        self.assertAlmostEqual(cylinder.height, 2.0, delta=0.1)

    def test_regular_sampling_with_normals(self) -> None:
        pts, normals = cylinder_sample(5, 20, radius=1.0, height=2.0)
        result = fit_cylinder(pts, normals)
        self.assertGreater(abs(result.primitive.axis[2]), 0.999)
        self.assertAlmostEqual(result.primitive.radius, 1.0, delta=0.01)
        self.assertAlmostEqual(result.primitive.height, 2.0, delta=0.1)
        self.assertEqual(result.inlier_count, 100)

    def test_normals_ignored_when_disabled(self) -> None:
        pts, normals = cylinder_sample(5, 20, radius=1.0, height=2.0)
        calls = []
        result = fit_cylinder(pts, normals, CylinderFitOptions(use_normals=False, ransac_iterations=50),
                              rng=0, progress=lambda f: calls.append(f))
        self.assertTrue(result.success)
        self.assertEqual(calls, [1.0])

    def test_cancel(self) -> None:
        pts, _ = cylinder_sample(5, 20)
        result = fit_cylinder(pts, progress=lambda f: False)
        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "Cancelled")

    def test_too_few_points(self) -> None:
        result = fit_cylinder(np.random.default_rng(0).normal(size=(5, 3)))
        self.assertFalse(result.success)
        self.assertEqual(result.primitive_type, PrimitiveType.CYLINDER)

    def test_normal_count_mismatch(self) -> None:
        pts, normals = cylinder_sample(5, 20)
        result = fit_cylinder(pts, normals[:10])
        self.assertFalse(result.success)


if __name__ == "__main__":
    unittest.main()
