# SPDX-License-Identifier: GPL-3.0-or-later

"""
Cone fitting.

An axis estimate (from normals, or from RANSAC samples) seeds apex, height
and half-angle; a weighted line fit of radius against axial position then
slides the apex along the axis, and scipy's least_squares polishes the
full parameter set.
"""

import math
from typing import Optional

import numpy as np
from scipy import optimize

from ..config import ConeFitOptions
from ..shared.fit_logging import log_operation, logger
from ..shared.linalg import covariance, dominant_eigenvector, get_rng, normalize, orthonormal_basis, principal_axes
from .primitives import Cone
from .results import FitResult, PrimitiveType, finalize_fit, prepare_samples, progress_cancelled

MIN_POINTS = 6
MIN_ANGLE = 1e-4
MAX_ANGLE = 0.5 * math.pi - 1e-4


def _axial_and_radial(points, origin, axis):
    offsets = points - origin
    s = offsets @ axis
    rho = np.linalg.norm(offsets - s[:, None] * axis, axis=1)
    return s, rho


def orient_axis(points, axis) -> np.ndarray:
    """Flip `axis` so the distance from it grows along it (apex -> base)."""
    axis = normalize(axis)
    s, rho = _axial_and_radial(points, points.mean(axis=0), axis)
    if np.mean((s - s.mean()) * (rho - rho.mean())) < 0:
        return -axis
    return axis


def estimate_axis_from_normals(normals) -> np.ndarray:
    """
    Cone normals all make the same angle with the axis, so n . a is constant
    and the axis is the direction of least variance of the normals.
    """
    centered = normals - normals.mean(axis=0)
    _, axes = principal_axes(centered.T @ centered)
    return axes[:, 2]


def fit_apex_and_angle(points, axis) -> Cone:
    """
    Apex at the lowest projection onto the axis line through the centroid,
    height the axial extent, half-angle the mean of atan2(radial, axial)
    over points ahead of the apex (0.5 rad when there are none).
    """
    centroid = points.mean(axis=0)
    axis = orient_axis(points, axis)
    proj = (points - centroid) @ axis
    lo, hi = float(proj.min()), float(proj.max())
    apex = centroid + lo * axis

    s, rho = _axial_and_radial(points, apex, axis)
    ahead = s > 1e-6
    theta = float(np.mean(np.arctan2(rho[ahead], s[ahead]))) if ahead.any() else 0.5
    return Cone(apex, axis, float(np.clip(theta, MIN_ANGLE, MAX_ANGLE)), hi - lo)


def refine_cone(points, cone: Cone, iterations: int) -> Cone:
    """
    Fit radius = k * s + b with weights 1 / (1 + |d|), move the apex to the
    zero-radius point of that line and reset theta = atan(k).
    """
    for _ in range(iterations):
        s, rho = _axial_and_radial(points, cone.apex, cone.axis)
        w = 1.0 / (1.0 + np.abs(cone.signed_distance(points)))
        w_sum = w.sum()
        s_mean = (w * s).sum() / w_sum
        rho_mean = (w * rho).sum() / w_sum
        var = (w * (s - s_mean) ** 2).sum()
        if var < 1e-15:
            break
        k = (w * (s - s_mean) * (rho - rho_mean)).sum() / var
        if k <= 1e-9:
            break
        shift = s_mean - rho_mean / k
        height = float(s.max()) - shift
        if height <= 0:
            break
        theta = float(np.clip(math.atan(k), MIN_ANGLE, MAX_ANGLE))
        converged = abs(shift) < 1e-12 * max(1.0, height) and abs(theta - cone.half_angle) < 1e-12
        cone = Cone(cone.apex + shift * cone.axis, cone.axis, theta, height)
        if converged:
            break
    return cone


def polish_cone(points, cone: Cone) -> Optional[Cone]:
    """
    Least-squares polish of apex, axis and half-angle on the lateral
    distance. The axis is parametrised as a0 + a*u + b*v around the start.
    """
    u, v = orthonormal_basis(cone.axis)
    a0 = cone.axis

    def unpack(x):
        return x[:3], normalize(a0 + x[3] * u + x[4] * v), x[5]

    def cone_fit_residuals(x):
        apex, axis, theta = unpack(x)
        return Cone(apex, axis, theta, cone.height).lateral_distance(points)

    x0 = np.concatenate([cone.apex, [0.0, 0.0, np.clip(cone.half_angle, MIN_ANGLE, MAX_ANGLE)]])
    lower = np.concatenate([np.full(5, -np.inf), [MIN_ANGLE]])
    upper = np.concatenate([np.full(5, np.inf), [MAX_ANGLE]])
    try:
        results = optimize.least_squares(cone_fit_residuals, x0=x0, bounds=(lower, upper), ftol=1e-10)
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.debug(f"Cone polish failed: {e}")
        return None
    if not results.success:
        return None

    apex, axis, theta = unpack(results.x)
    s, _ = _axial_and_radial(points, apex, axis)
    height = float(s.max())
    if height <= 0:
        return None
    return Cone(apex, axis, theta, height)


def _rms(cone: Optional[Cone], points) -> float:
    if cone is None or not cone.is_valid():
        return np.inf
    return float(np.sqrt(np.mean(cone.signed_distance(points) ** 2)))


def _is_degenerate(cone: Optional[Cone]) -> bool:
    """Invalid cones and cones pinned to an angle bound (cylinder or plane in disguise)."""
    if cone is None or not cone.is_valid():
        return True
    return cone.half_angle <= MIN_ANGLE * (1.0 + 1e-6) or cone.half_angle >= MAX_ANGLE - 1e-9


def _score(cone: Optional[Cone], points, tau):
    """Sort key: more inliers first, then lower RMS over those inliers."""
    if _is_degenerate(cone):
        return (-1, 0.0)
    d = np.abs(cone.signed_distance(points))
    mask = d <= tau
    rms = float(np.sqrt(np.mean(d[mask] ** 2))) if mask.any() else np.inf
    return (int(mask.sum()), -rms)


def fit_from_axis(points, axis, iterations: int) -> Cone:
    """Initialise from an axis guess, refine apex and angle, then polish."""
    cone = refine_cone(points, fit_apex_and_angle(points, axis), iterations)
    polished = polish_cone(points, cone)
    if _rms(polished, points) < _rms(cone, points):
        cone = polished
    return cone


def starting_axes(points, ransac_cone: Optional[Cone] = None):
    """
    Axis guesses for the no-normals path: the RANSAC winner, the principal
    axes of the cloud (a cone of revolution has its axis among them) and the
    coordinate axes.
    """
    axes = [] if ransac_cone is None else [ransac_cone.axis]
    _, frame = principal_axes(covariance(points))
    axes.extend(frame.T)
    axes.extend(np.eye(3))
    return axes


def _ransac_cone(pts, options, rng, progress):
    n = len(pts)
    tau = options.inlier_threshold
    best, best_key = None, (-1, 0.0)
    for iteration in range(options.ransac_iterations):
        sample = pts[rng.choice(n, MIN_POINTS, replace=False)]
        axis, _ = dominant_eigenvector(covariance(sample))
        candidate = fit_apex_and_angle(sample, axis)
        key = _score(candidate, pts, tau)
        if key > best_key:
            best, best_key = candidate, key
        if progress_cancelled(progress, iteration, options.ransac_iterations):
            return None, True
    return best, False


def _fit_without_normals(pts, options, ransac_cone: Optional[Cone]) -> Optional[Cone]:
    tau = options.inlier_threshold
    iterations = options.refinement_iterations
    candidates = [fit_from_axis(pts, axis, iterations) for axis in starting_axes(pts, ransac_cone)]
    if ransac_cone is not None:
        inliers = pts[np.abs(ransac_cone.signed_distance(pts)) <= tau]
        if len(inliers) >= MIN_POINTS:
            candidates.append(fit_from_axis(inliers, ransac_cone.axis, iterations))

    best = max(candidates, key=lambda c: _score(c, pts, tau))
    if _is_degenerate(best):
        return None

    # Refit on the winner's inliers so outliers stop pulling the surface
    inliers = pts[np.abs(best.signed_distance(pts)) <= tau]
    if MIN_POINTS <= len(inliers) < len(pts):
        refit = fit_from_axis(inliers, best.axis, iterations)
        if _score(refit, pts, tau) > _score(best, pts, tau):
            best = refit
    return best


def fit_cone(points, normals=None, options: ConeFitOptions = None, rng=None, progress=None) -> FitResult:
    """
    Fit a finite cone to at least 6 points.

    With normals the axis is estimated from them and RANSAC is skipped.
    Without normals the RANSAC winner competes with the principal and
    coordinate axes as starting guesses; the best (inliers, -RMS) cone wins.
    """
    options = options or ConeFitOptions()
    options.validate()
    pts, nrm, error = prepare_samples(points, normals, MIN_POINTS, "cone")
    if error:
        return FitResult.failure(error, PrimitiveType.CONE, len(pts))

    n = len(pts)
    tau = options.inlier_threshold

    use_normals = nrm is not None and options.use_normals
    if use_normals:
        cone = fit_from_axis(pts, estimate_axis_from_normals(nrm), options.refinement_iterations)
    else:
        with log_operation("Cone RANSAC", points=n, iterations=options.ransac_iterations):
            ransac_cone, cancelled = _ransac_cone(pts, options, get_rng(rng), progress)
        if cancelled:
            return FitResult.failure("Cancelled", PrimitiveType.CONE, n)
        cone = _fit_without_normals(pts, options, ransac_cone)
        if cone is None or _score(cone, pts, tau)[0] < MIN_POINTS:
            return FitResult.failure("Could not find enough inliers", PrimitiveType.CONE, n)

    result = finalize_fit(cone, pts, tau)
    logger.debug(f"Cone fit: {cone}, rms={result.rms_error:.3g}, inliers={result.inlier_count}/{n}")
    return result
