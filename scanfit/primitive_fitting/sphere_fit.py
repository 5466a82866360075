# SPDX-License-Identifier: GPL-3.0-or-later

"""
Sphere fitting: algebraic least squares, geometric iteration and RANSAC
over circumspheres.
"""

import numpy as np

from ..config import SphereFitOptions
from ..shared.fit_logging import log_operation, logger
from ..shared.linalg import gauss_jordan_solve, get_rng
from .primitives import Sphere
from .results import FitResult, PrimitiveType, finalize_fit, prepare_samples, progress_cancelled


def bounding_sphere(points) -> Sphere:
    """Sphere around the bounding box: box center, half the diagonal."""
    lo, hi = points.min(axis=0), points.max(axis=0)
    radius = 0.5 * np.linalg.norm(hi - lo)
    return Sphere(0.5 * (lo + hi), radius if radius > 0 else 1.0)


def algebraic_sphere(points) -> Sphere:
    """
    Least squares on x^2 + y^2 + z^2 = A x + B y + C z + D.

    The 4x4 normal equations are solved by Gauss-Jordan elimination in
    coordinates centred on the sample mean and scaled to unit extent.
    c = (A, B, C) / 2 and D = r^2 - |c|^2. Falls back to the bounding
    sphere when the system is singular or the radius is not a positive
    finite number.
    """
    origin = points.mean(axis=0)
    rel = points - origin
    scale = np.abs(rel).max()
    if scale < 1e-12:
        return bounding_sphere(points)
    rel = rel / scale

    X = np.hstack([rel, np.ones((len(rel), 1))])
    y = np.sum(rel ** 2, axis=1)
    solution = gauss_jordan_solve(X.T @ X, X.T @ y)
    if solution is None:
        return bounding_sphere(points)

    center = 0.5 * solution[:3]
    radius_sq = center @ center + solution[3]
    if not np.isfinite(radius_sq) or radius_sq <= 0:
        return bounding_sphere(points)
    return Sphere(origin + center * scale, np.sqrt(radius_sq) * scale)


def geometric_sphere(points, iterations: int = 20) -> Sphere:
    """Fixed-point refinement of center and radius from the bounding sphere."""
    sphere = bounding_sphere(points)
    center, radius = sphere.center, sphere.radius
    for _ in range(iterations):
        offsets = points - center
        dist = np.linalg.norm(offsets, axis=1)
        dist[dist < 1e-12] = 1e-12
        center = center + np.mean((dist - radius)[:, None] * offsets / dist[:, None], axis=0)
        radius = float(np.mean(np.linalg.norm(points - center, axis=1)))
    return Sphere(center, radius)


def fit_sphere(points, options: SphereFitOptions = None) -> FitResult:
    """Least-squares sphere through at least 4 points (algebraic or geometric)."""
    options = options or SphereFitOptions()
    options.validate()
    pts, _, error = prepare_samples(points, None, 4, "sphere")
    if error:
        return FitResult.failure(error, PrimitiveType.SPHERE, len(pts))

    if options.use_algebraic_fit:
        sphere = algebraic_sphere(pts)
    else:
        sphere = geometric_sphere(pts, options.geometric_iterations)
    result = finalize_fit(sphere, pts, options.inlier_threshold)
    logger.debug(f"Sphere fit: {sphere}, rms={result.rms_error:.3g}")
    return result


def fit_sphere_ransac(points, options: SphereFitOptions = None, rng=None, progress=None) -> FitResult:
    """
    RANSAC over circumspheres of random quadruples, ties broken by the
    squared error of the inliers, then an algebraic re-fit on the inliers.
    """
    options = options or SphereFitOptions()
    options.validate()
    pts, _, error = prepare_samples(points, None, 4, "sphere")
    if error:
        return FitResult.failure(error, PrimitiveType.SPHERE, len(pts))

    rng = get_rng(rng)
    n = len(pts)
    tau = options.inlier_threshold
    best_mask, best_count, best_error = None, 0, np.inf

    with log_operation("Sphere RANSAC", points=n, iterations=options.ransac_iterations):
        for iteration in range(options.ransac_iterations):
            sample = pts[rng.choice(n, 4, replace=False)]
            candidate = Sphere.from_four_points(*sample)
            if candidate is not None:
                residual = np.abs(np.linalg.norm(pts - candidate.center, axis=1) - candidate.radius)
                mask = residual <= tau
                count = int(np.count_nonzero(mask))
                err = float(np.sum(residual[mask] ** 2))
                if count > best_count or (count == best_count and err < best_error):
                    best_mask, best_count, best_error = mask, count, err
            if progress_cancelled(progress, iteration, options.ransac_iterations):
                return FitResult.failure("Cancelled", PrimitiveType.SPHERE, n)

    if best_count < 4:
        return FitResult.failure("Could not find enough inliers", PrimitiveType.SPHERE, n)

    sphere = algebraic_sphere(pts[best_mask])
    result = finalize_fit(sphere, pts, tau)
    logger.debug(f"Sphere RANSAC: {sphere}, inliers={result.inlier_count}/{n}")
    return result
