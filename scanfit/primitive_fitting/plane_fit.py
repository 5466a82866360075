# SPDX-License-Identifier: GPL-3.0-or-later

"""
Plane fitting: least squares on the point covariance and RANSAC.
"""

from typing import Optional

import numpy as np

from ..config import PlaneFitOptions
from ..shared.fit_logging import log_operation, logger
from ..shared.linalg import covariance, get_rng, principal_axes
from .primitives import Plane
from .results import FitResult, PrimitiveType, finalize_fit, prepare_samples, progress_cancelled


def least_squares_plane(points) -> Optional[Plane]:
    """
    Plane through the centroid whose normal is the covariance eigenvector of
    smallest eigenvalue, taken as v1 x v2 of the two dominant ones.

    Returns None for collinear or coincident samples.
    """
    centroid = points.mean(axis=0)
    values, axes = principal_axes(covariance(points, centroid))
    if values[0] <= 0 or values[1] <= 1e-12 * values[0]:
        return None
    normal = np.cross(axes[:, 0], axes[:, 1])
    return Plane.from_point_and_normal(centroid, normal)


def fit_plane(points, threshold: float = 0.01) -> FitResult:
    """Least-squares plane through at least 3 non-collinear points."""
    pts, _, error = prepare_samples(points, None, 3, "plane")
    if error:
        return FitResult.failure(error, PrimitiveType.PLANE, len(pts))

    plane = least_squares_plane(pts)
    if plane is None:
        return FitResult.failure("Points are collinear", PrimitiveType.PLANE, len(pts))

    result = finalize_fit(plane, pts, threshold)
    logger.debug(f"Plane fit: rms={result.rms_error:.3g}, inliers={result.inlier_count}/{len(pts)}")
    return result


def fit_plane_ransac(points, options: PlaneFitOptions = None, rng=None, progress=None) -> FitResult:
    """
    RANSAC over distinct point triples, finalised by least squares on the
    largest inlier set.
    """
    options = options or PlaneFitOptions()
    options.validate()
    pts, _, error = prepare_samples(points, None, 3, "plane")
    if error:
        return FitResult.failure(error, PrimitiveType.PLANE, len(pts))

    rng = get_rng(rng)
    n = len(pts)
    tau = options.inlier_threshold
    best_mask, best_count = None, 0

    with log_operation("Plane RANSAC", points=n, iterations=options.ransac_iterations):
        for iteration in range(options.ransac_iterations):
            i, j, k = rng.choice(n, 3, replace=False)
            normal = np.cross(pts[j] - pts[i], pts[k] - pts[i])
            length = np.linalg.norm(normal)
            if length >= 1e-12:
                normal /= length
                mask = np.abs((pts - pts[i]) @ normal) <= tau
                count = int(np.count_nonzero(mask))
                if count > best_count:
                    best_mask, best_count = mask, count
            if progress_cancelled(progress, iteration, options.ransac_iterations):
                return FitResult.failure("Cancelled", PrimitiveType.PLANE, n)

    if best_count < 3:
        return FitResult.failure("Could not find enough inliers", PrimitiveType.PLANE, n)

    plane = least_squares_plane(pts[best_mask])
    if plane is None:
        return FitResult.failure("Inliers are collinear", PrimitiveType.PLANE, n)
    result = finalize_fit(plane, pts, tau)
    logger.debug(f"Plane RANSAC: rms={result.rms_error:.3g}, inliers={result.inlier_count}/{n}")
    return result


def fit_plane_to_selection(mesh, face_indices, threshold: float = 0.01) -> FitResult:
    """
    Plane through the vertices of the selected faces, oriented to agree with
    their average face normal.
    """
    points, normals = mesh.gather_faces(face_indices)
    result = fit_plane(points, threshold)
    if result.success and len(normals):
        if normals.mean(axis=0) @ result.primitive.normal < 0:
            result.primitive.flip()
    return result
