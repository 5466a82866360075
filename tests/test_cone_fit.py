# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for cone fitting."""

import math
import unittest

import numpy as np

from scanfit.primitive_fitting import PrimitiveFitter, PrimitiveType, fit_cone
from scanfit.primitive_fitting.cone_fit import estimate_axis_from_normals, orient_axis, refine_cone, starting_axes
from scanfit.primitive_fitting.primitives import Cone

from helpers import cone_sample


class TestConeFit(unittest.TestCase):
    def test_half_angle_with_normals(self) -> None:
        theta = math.radians(30.0)
        pts, normals = cone_sample(10, 24, theta, height=3.0)
        result = fit_cone(pts, normals)
        self.assertTrue(result.success)
        self.assertEqual(result.primitive_type, PrimitiveType.CONE)
        cone = result.primitive
        self.assertLess(abs(cone.half_angle_degrees - 30.0), 1.0)
        self.assertGreater(cone.axis[2], 0.999)
        np.testing.assert_allclose(cone.apex, [0.0, 0.0, 0.0], atol=1e-3)
        self.assertGreater(result.inlier_ratio, 0.99)

    def test_tilted_cone(self) -> None:
        axis = np.array([0.0, -1.0, 1.0]) / math.sqrt(2.0)
        pts, normals = cone_sample(8, 30, math.radians(20.0), height=2.0, apex=(1.0, 2.0, 3.0), axis=axis)
        cone = fit_cone(pts, normals).primitive
        self.assertLess(abs(cone.half_angle_degrees - 20.0), 1.0)
        self.assertGreater(cone.axis @ axis, 0.999)
        np.testing.assert_allclose(cone.apex, [1.0, 2.0, 3.0], atol=1e-2)

    def test_axis_from_normals(self) -> None:
        _, normals = cone_sample(6, 20, math.radians(40.0))
        axis = estimate_axis_from_normals(normals)
        self.assertGreater(abs(axis[2]), 0.999)

    def test_axis_orientation(self) -> None:
        pts, _ = cone_sample(6, 20, math.radians(40.0))
        np.testing.assert_allclose(orient_axis(pts, [0.0, 0.0, -1.0]), [0.0, 0.0, 1.0])

    def test_refinement_moves_apex(self) -> None:
        theta = math.radians(25.0)
        pts, _ = cone_sample(6, 20, theta, height=2.0)
        start = Cone([0.0, 0.0, 0.4], [0.0, 0.0, 1.0], 0.7, 1.6)
        cone = refine_cone(pts, start, 20)
        np.testing.assert_allclose(cone.apex, [0.0, 0.0, 0.0], atol=1e-6)
        self.assertAlmostEqual(cone.half_angle, theta, places=6)

    def test_fit_without_normals(self) -> None:
        theta = math.radians(30.0)
        pts, _ = cone_sample(10, 24, theta, height=3.0)
        for seed in (0, 2):
            result = fit_cone(pts, rng=seed)
            self.assertTrue(result.success, result.error_message)
            cone = result.primitive
            self.assertLess(abs(cone.half_angle_degrees - 30.0), 0.5)
            self.assertGreater(abs(cone.axis[2]), 0.999)
            np.testing.assert_allclose(cone.apex, [0.0, 0.0, 0.0], atol=1e-3)
            self.assertGreater(result.inlier_ratio, 0.99)

    def test_tilted_cone_without_normals(self) -> None:
        axis = np.array([0.0, -1.0, 1.0]) / math.sqrt(2.0)
        pts, _ = cone_sample(8, 30, math.radians(20.0), height=2.0, apex=(1.0, 2.0, 3.0), axis=axis)
        result = fit_cone(pts)
        self.assertTrue(result.success, result.error_message)
        cone = result.primitive
        self.assertLess(abs(cone.half_angle_degrees - 20.0), 0.5)
        self.assertGreater(cone.axis @ axis, 0.999)
        np.testing.assert_allclose(cone.apex, [1.0, 2.0, 3.0], atol=1e-2)

    def test_dispatcher_fits_cone_without_normals(self) -> None:
        pts, _ = cone_sample(10, 24, math.radians(30.0), height=3.0)
        result = PrimitiveFitter().fit_cone(pts)
        self.assertTrue(result.success, result.error_message)
        self.assertLess(abs(result.primitive.half_angle_degrees - 30.0), 0.5)
        self.assertLess(np.linalg.norm(result.primitive.apex), 1e-2)

    def test_starting_axes_include_cone_axis(self) -> None:
        pts, _ = cone_sample(10, 24, math.radians(30.0), height=3.0)
        axes = starting_axes(pts)
        self.assertEqual(len(axes), 6)
        self.assertGreater(max(abs(a[2]) for a in axes[:3]), 1.0 - 1e-6)

    def test_cancel_without_normals(self) -> None:
        pts, _ = cone_sample(6, 20, math.radians(30.0))
        result = fit_cone(pts, progress=lambda f: False)
        self.assertFalse(result.success)
        self.assertEqual(result.error_message, "Cancelled")

    def test_too_few_points(self) -> None:
        result = fit_cone(np.zeros((3, 3)))
        self.assertFalse(result.success)


if __name__ == "__main__":
    unittest.main()
