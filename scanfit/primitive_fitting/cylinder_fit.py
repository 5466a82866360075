# SPDX-License-Identifier: GPL-3.0-or-later

"""
Cylinder fitting.

With normals the axis comes straight from the normal scatter matrix. Without
them a RANSAC loop over 6-point samples proposes axes, and the best one is
polished with Eberly's least-squares cylinder objective
(https://www.geometrictools.com/Documentation/LeastSquaresFitting.pdf).
"""

from typing import Optional, Tuple

import numpy as np
from scipy.optimize import minimize

from ..config import CylinderFitOptions
from ..shared.fit_logging import log_operation, logger
from ..shared.linalg import (
    covariance, deflated_eigenvector, dominant_eigenvector, get_rng, normalize,
    orthonormal_basis, skew, solve_cramer_3x3,
)
from .primitives import Cylinder
from .results import FitResult, PrimitiveType, finalize_fit, prepare_samples, progress_cancelled

MIN_POINTS = 6


# ============================================================================
# Building blocks
# ============================================================================

def fit_circle_2d(xy) -> Tuple[np.ndarray, float]:
    """
    Algebraic circle fit x^2 + y^2 = a x + b y + c on 2D points.

    The 3x3 normal equations are solved with Cramer's rule in coordinates
    centred and scaled to unit RMS radius. The radius is the mean distance
    to the recovered center. A degenerate system falls back to the centroid.
    """
    centroid = xy.mean(axis=0)
    rel = xy - centroid
    scale = np.sqrt(np.mean(np.sum(rel ** 2, axis=1)))
    if scale < 1e-12:
        return centroid, 0.0
    rel = rel / scale

    x, y = rel[:, 0], rel[:, 1]
    z = x * x + y * y
    A = np.array([
        [x @ x, x @ y, x.sum()],
        [x @ y, y @ y, y.sum()],
        [x.sum(), y.sum(), float(len(x))],
    ])
    solution = solve_cramer_3x3(A, [x @ z, y @ z, z.sum()])
    center = np.zeros(2) if solution is None else 0.5 * solution[:2]
    radius = float(np.mean(np.linalg.norm(rel - center, axis=1)))
    return centroid + center * scale, radius * scale


def fit_radius_and_center(points, axis) -> Tuple[np.ndarray, float]:
    """Circle fit of the points projected onto the plane perpendicular to axis."""
    centroid = points.mean(axis=0)
    u, v = orthonormal_basis(axis)
    rel = points - centroid
    (cx, cy), radius = fit_circle_2d(np.column_stack([rel @ u, rel @ v]))
    return centroid + u * cx + v * cy, radius


def with_height_range(points, center, axis, radius) -> Cylinder:
    """Finite cylinder whose center is the midpoint of the axial extent."""
    s = (points - center) @ axis
    lo, hi = float(s.min()), float(s.max())
    return Cylinder(center + 0.5 * (lo + hi) * axis, axis, radius, hi - lo)


def cylinder_from_axis(points, axis) -> Cylinder:
    center, radius = fit_radius_and_center(points, axis)
    return with_height_range(points, center, axis, radius)


def estimate_axis_from_normals(normals) -> np.ndarray:
    """
    Cylinder normals are perpendicular to the axis, so the axis spans the
    null space of sum(n n^T): the cross product of its two dominant
    eigenvectors.
    """
    M = normals.T @ normals
    v1, _ = dominant_eigenvector(M)
    v2, _ = deflated_eigenvector(M, v1)
    return normalize(np.cross(v1, v2))


# ============================================================================
# Axis polishing (Eberly)
# ============================================================================

def _direction(theta, phi):
    return np.array([np.cos(phi) * np.sin(theta), np.sin(phi) * np.sin(theta), np.cos(theta)])


def _angles(w) -> Tuple[float, float]:
    return float(np.arccos(np.clip(w[2], -1.0, 1.0))), float(np.arctan2(w[1], w[0]))


def _eberly_terms(w, Xs):
    P = np.identity(3) - np.outer(w, w)
    Ys = Xs @ P
    A = Ys.T @ Ys
    S = skew(w)
    A_hat = S @ A @ S.T
    yy = np.einsum("ij,ij->i", Ys, Ys)
    denom = np.trace(A_hat @ A)
    if abs(denom) < 1e-12:
        return Ys, yy, np.zeros(3)
    return Ys, yy, A_hat @ (yy[:, None] * Ys).sum(axis=0) / denom


def _eberly_error(w, Xs) -> float:
    Ys, yy, v = _eberly_terms(w, Xs)
    return float(np.sum((yy - yy.mean() - 2.0 * Ys @ v) ** 2))


def polish_axis(points, guess_axis=None) -> Cylinder:
    """
    Minimise Eberly's cylinder error over the axis direction with Powell's
    method, starting from `guess_axis` and the three coordinate axes.
    """
    mean = points.mean(axis=0)
    scale = max(np.abs(points - mean).max(), 1e-12)
    Xs = (points - mean) / scale

    start_points = [(0.0, 0.0), (np.pi / 2, 0.0), (np.pi / 2, np.pi / 2)]
    if guess_axis is not None:
        start_points.insert(0, _angles(normalize(guess_axis)))

    best_fit = None
    for sp in start_points:
        fitted = minimize(lambda x: _eberly_error(_direction(x[0], x[1]), Xs), sp,
                          method="Powell", tol=1e-6)
        if best_fit is None or fitted.fun < best_fit.fun:
            best_fit = fitted

    w = _direction(best_fit.x[0], best_fit.x[1])
    _, _, offset = _eberly_terms(w, Xs)
    P = np.identity(3) - np.outer(w, w)
    radial = (Xs - offset) @ P
    radius = float(np.sqrt(np.mean(np.einsum("ij,ij->i", radial, radial)))) * scale
    return with_height_range(points, mean + offset * scale, w, radius)


# ============================================================================
# Fitting
# ============================================================================

def _inlier_mask(cylinder: Cylinder, points, tau) -> np.ndarray:
    return np.abs(cylinder.signed_distance(points)) <= tau


def _score(cylinder: Optional[Cylinder], points, tau):
    """Sort key: more inliers first, then lower RMS over those inliers."""
    if cylinder is None or not cylinder.is_valid():
        return (-1, 0.0)
    d = np.abs(cylinder.signed_distance(points))
    mask = d <= tau
    rms = float(np.sqrt(np.mean(d[mask] ** 2))) if mask.any() else np.inf
    return (int(mask.sum()), -rms)


def refine_cylinder(points, cylinder: Cylinder, tau: float, iterations: int) -> Cylinder:
    """
    Re-fit radius, center and height range on the current inliers with the
    axis held fixed, until the inlier set stops changing.
    """
    mask = _inlier_mask(cylinder, points, tau)
    for _ in range(iterations):
        if np.count_nonzero(mask) < MIN_POINTS:
            break
        candidate = cylinder_from_axis(points[mask], cylinder.axis)
        if not candidate.is_valid():
            break
        cylinder = candidate
        new_mask = _inlier_mask(cylinder, points, tau)
        if np.array_equal(new_mask, mask):
            break
        mask = new_mask
    return cylinder


def _ransac_cylinder(pts, options, rng, progress):
    n = len(pts)
    tau = options.inlier_threshold
    best, best_key = None, (-1, 0.0)
    for iteration in range(options.ransac_iterations):
        sample = pts[rng.choice(n, MIN_POINTS, replace=False)]
        axis, _ = dominant_eigenvector(covariance(sample))
        candidate = cylinder_from_axis(sample, axis)
        if candidate.is_valid():
            key = _score(candidate, pts, tau)
            if key > best_key:
                best, best_key = candidate, key
        if progress_cancelled(progress, iteration, options.ransac_iterations):
            return None, True
    return best, False


def fit_cylinder(points, normals=None, options: CylinderFitOptions = None, rng=None,
                 progress=None) -> FitResult:
    """
    Fit a finite cylinder to at least 6 points.

    When normals are given (and options.use_normals) the axis is estimated
    from them and RANSAC is skipped.
    """
    options = options or CylinderFitOptions()
    options.validate()
    pts, nrm, error = prepare_samples(points, normals, MIN_POINTS, "cylinder")
    if error:
        return FitResult.failure(error, PrimitiveType.CYLINDER, len(pts))

    n = len(pts)
    tau = options.inlier_threshold

    if nrm is not None and options.use_normals:
        axis = estimate_axis_from_normals(nrm)
        if np.linalg.norm(axis) < 0.5:
            return FitResult.failure("Could not estimate axis from normals", PrimitiveType.CYLINDER, n)
        cylinder = cylinder_from_axis(pts, axis)
    else:
        with log_operation("Cylinder RANSAC", points=n, iterations=options.ransac_iterations):
            best, cancelled = _ransac_cylinder(pts, options, get_rng(rng), progress)
        if cancelled:
            return FitResult.failure("Cancelled", PrimitiveType.CYLINDER, n)
        candidates = [polish_axis(pts, None if best is None else best.axis)]
        if best is not None:
            candidates.append(best)
            inliers = pts[_inlier_mask(best, pts, tau)]
            if len(inliers) >= MIN_POINTS:
                candidates.append(polish_axis(inliers, best.axis))
        cylinder = max(candidates, key=lambda c: _score(c, pts, tau))
        if _score(cylinder, pts, tau)[0] < MIN_POINTS:
            return FitResult.failure("Could not find enough inliers", PrimitiveType.CYLINDER, n)

    cylinder = refine_cylinder(pts, cylinder, tau, options.refinement_iterations)
    result = finalize_fit(cylinder, pts, tau)
    logger.debug(f"Cylinder fit: {cylinder}, rms={result.rms_error:.3g}, "
                 f"inliers={result.inlier_count}/{n}")
    return result
