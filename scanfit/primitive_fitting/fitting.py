# SPDX-License-Identifier: GPL-3.0-or-later

"""
Primitive dispatcher: decides which of plane / cylinder / cone / sphere
explains a sample best and runs the matching fitter with a threshold
scaled to the sample size.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from ..config import ConeFitOptions, CylinderFitOptions, FitOptions, PlaneFitOptions, SphereFitOptions
from ..shared.fit_logging import log_operation, logger
from ..shared.linalg import as_points, bbox_diagonal, get_rng, normalize
from .cone_fit import fit_cone
from .cylinder_fit import fit_cylinder
from .plane_fit import fit_plane_ransac
from .results import FitResult, PrimitiveType, ProgressCallback
from .sphere_fit import fit_sphere_ransac

DETECTION_ORDER = (PrimitiveType.PLANE, PrimitiveType.CYLINDER, PrimitiveType.CONE, PrimitiveType.SPHERE)
MIN_DETECTION_POINTS = 4
NORMAL_BOOST = 1.2


@dataclass
class DetectionScores:
    """Normalised plausibility of each primitive type, in [0, 1]."""

    plane: float = 0.0
    cylinder: float = 0.0
    cone: float = 0.0
    sphere: float = 0.0
    results: Dict[PrimitiveType, FitResult] = field(default_factory=dict, repr=False)

    def score(self, kind: PrimitiveType) -> float:
        if kind is PrimitiveType.UNKNOWN:
            return 0.0
        return getattr(self, kind.name.lower())

    def best(self) -> PrimitiveType:
        best_kind, best_score = PrimitiveType.UNKNOWN, 0.0
        for kind in DETECTION_ORDER:
            if self.score(kind) > best_score:
                best_kind, best_score = kind, self.score(kind)
        return best_kind

    def best_score(self) -> float:
        return max(self.plane, self.cylinder, self.cone, self.sphere)

    def to_dict(self) -> Dict[str, float]:
        return {kind.display_name: self.score(kind) for kind in DETECTION_ORDER}


def _sub_progress(progress: Optional[ProgressCallback], index: int, count: int):
    if progress is None:
        return None
    return lambda fraction: progress((index + fraction) / count)


class PrimitiveFitter:
    """
    Front door for primitive fitting.

    All thresholds derive from FitOptions: relative thresholds are scaled by
    the bounding-box diagonal of the points being fitted.
    """

    def __init__(self, options: FitOptions = None):
        self.options = options or FitOptions()
        self.options.validate()

    def threshold(self, points) -> float:
        tau = self.options.threshold_for(bbox_diagonal(points))
        return tau if tau > 0 else 1e-12

    # ------------------------------------------------------------------
    # Per-type fits
    # ------------------------------------------------------------------

    def fit_plane(self, points, normals=None, progress=None) -> FitResult:
        pts = as_points(points)
        opts = PlaneFitOptions(ransac_iterations=self.options.ransac_iterations,
                               inlier_threshold=self.threshold(pts))
        result = fit_plane_ransac(pts, opts, get_rng(self.options.seed), progress)
        if result.success and normals is not None and len(normals) == len(pts):
            if as_points(normals).mean(axis=0) @ result.primitive.normal < 0:
                result.primitive.flip()
        return result

    def fit_sphere(self, points, normals=None, progress=None) -> FitResult:
        pts = as_points(points)
        opts = SphereFitOptions(ransac_iterations=self.options.ransac_iterations,
                                inlier_threshold=self.threshold(pts))
        return fit_sphere_ransac(pts, opts, get_rng(self.options.seed), progress)

    def fit_cylinder(self, points, normals=None, progress=None) -> FitResult:
        pts = as_points(points)
        opts = CylinderFitOptions(ransac_iterations=self.options.ransac_iterations,
                                  inlier_threshold=self.threshold(pts),
                                  refinement_iterations=self.options.refinement_iterations,
                                  use_normals=self.options.use_normals)
        return fit_cylinder(pts, normals, opts, get_rng(self.options.seed), progress)

    def fit_cone(self, points, normals=None, progress=None) -> FitResult:
        pts = as_points(points)
        opts = ConeFitOptions(ransac_iterations=self.options.ransac_iterations,
                              inlier_threshold=self.threshold(pts),
                              refinement_iterations=self.options.refinement_iterations,
                              use_normals=self.options.use_normals)
        return fit_cone(pts, normals, opts, get_rng(self.options.seed), progress)

    def fit_primitive(self, points, normals=None, primitive_type: PrimitiveType = PrimitiveType.PLANE,
                      progress=None) -> FitResult:
        fitters = {
            PrimitiveType.PLANE: self.fit_plane,
            PrimitiveType.SPHERE: self.fit_sphere,
            PrimitiveType.CYLINDER: self.fit_cylinder,
            PrimitiveType.CONE: self.fit_cone,
        }
        if primitive_type not in fitters:
            return FitResult.failure(f"Cannot fit primitive type {primitive_type.display_name}",
                                     primitive_type, len(as_points(points)))
        return fitters[primitive_type](points, normals, progress)

    # ------------------------------------------------------------------
    # Detection and dispatch
    # ------------------------------------------------------------------

    def _normal_boosts(self, points, normals) -> Tuple[float, float]:
        """Multipliers for the plane and sphere scores suggested by normals."""
        unit = normals / np.maximum(np.linalg.norm(normals, axis=1), 1e-12)[:, None]
        mean_normal = normalize(unit.mean(axis=0))
        plane_boost = NORMAL_BOOST if np.mean(1.0 - np.abs(unit @ mean_normal)) < 0.1 else 1.0

        radial = points - points.mean(axis=0)
        radial /= np.maximum(np.linalg.norm(radial, axis=1), 1e-12)[:, None]
        alignment = np.abs(np.einsum("ij,ij->i", unit, radial))
        sphere_boost = NORMAL_BOOST if np.mean(alignment) > 0.9 else 1.0
        return plane_boost, sphere_boost

    def detect_primitive_type(self, points, normals=None, progress=None) -> DetectionScores:
        """
        Fit every type and score it as inlier_ratio / (1 + rms / tau),
        nudged by the normals when available, normalised by the best score.
        """
        pts = as_points(points)
        if len(pts) < MIN_DETECTION_POINTS:
            return DetectionScores()
        nrm = None
        if normals is not None and len(normals) == len(pts):
            nrm = as_points(normals)

        tau = self.threshold(pts)
        raw, results = {}, {}
        with log_operation("Primitive detection", points=len(pts)):
            for index, kind in enumerate(DETECTION_ORDER):
                result = self.fit_primitive(pts, nrm, kind, _sub_progress(progress, index, len(DETECTION_ORDER)))
                results[kind] = result
                raw[kind] = result.inlier_ratio / (1.0 + result.rms_error / tau) if result.success else 0.0
                if result.error_message == "Cancelled":
                    break

        if nrm is not None:
            plane_boost, sphere_boost = self._normal_boosts(pts, nrm)
            raw[PrimitiveType.PLANE] *= plane_boost
            raw[PrimitiveType.SPHERE] = raw.get(PrimitiveType.SPHERE, 0.0) * sphere_boost

        scale = max(max(raw.values()), 0.001)
        scores = DetectionScores(results=results)
        for kind, value in raw.items():
            setattr(scores, kind.name.lower(), value / scale)
        logger.debug(f"Detection scores: {scores.to_dict()}")
        return scores

    def fit_best(self, points, normals=None, progress=None) -> FitResult:
        """Fit every type and keep the most confident success."""
        pts = as_points(points)
        if normals is not None and len(normals) != len(pts):
            normals = None
        best = None
        for index, kind in enumerate(DETECTION_ORDER):
            result = self.fit_primitive(pts, normals, kind, _sub_progress(progress, index, len(DETECTION_ORDER)))
            if result.error_message == "Cancelled":
                return result
            if result.success and (best is None or result.confidence > best.confidence):
                best = result
        if best is None:
            return FitResult.failure("No primitive type could be fitted", PrimitiveType.UNKNOWN, len(pts))
        return best

    def fit_auto(self, points, normals=None, progress=None) -> FitResult:
        """Fit the most plausible type, or the most confident one when detection is unsure."""
        pts = as_points(points)
        if len(pts) < MIN_DETECTION_POINTS:
            return FitResult.failure(f"Need at least {MIN_DETECTION_POINTS} points, got {len(pts)}",
                                     PrimitiveType.UNKNOWN, len(pts))
        if self.options.try_all_types:
            return self.fit_best(pts, normals, progress)

        scores = self.detect_primitive_type(pts, normals, progress)
        for result in scores.results.values():
            if result.error_message == "Cancelled":
                return result
        kind = scores.best()
        if kind is PrimitiveType.UNKNOWN or scores.best_score() < self.options.detection_threshold:
            result = self.fit_best(pts, normals, progress)
        else:
            result = scores.results[kind]
        if result.success:
            logger.info(f"Auto fit: {result.primitive_type.display_name} "
                        f"(confidence={result.confidence:.2f}, rms={result.rms_error:.3g})")
        else:
            logger.warning(f"Auto fit failed: {result.error_message}")
        return result

    # ------------------------------------------------------------------
    # Mesh selections
    # ------------------------------------------------------------------

    def detect_selection(self, mesh, face_indices, progress=None) -> DetectionScores:
        points, normals = mesh.gather_faces(face_indices)
        return self.detect_primitive_type(points, normals, progress)

    def fit_selection(self, mesh, face_indices, primitive_type: PrimitiveType = None,
                      progress=None) -> FitResult:
        """
        Fit the vertices of the selected faces, paired with their face
        normals. Without a type the best one is chosen automatically.
        """
        points, normals = mesh.gather_faces(face_indices)
        if primitive_type is None:
            return self.fit_auto(points, normals, progress)
        return self.fit_primitive(points, normals, primitive_type, progress)

    def fit_mesh(self, mesh, primitive_type: PrimitiveType = None, progress=None) -> FitResult:
        """Fit all vertices of a mesh sample, using its vertex normals when present."""
        normals = mesh.vertex_normals
        if primitive_type is None:
            return self.fit_auto(mesh.vertices, normals, progress)
        return self.fit_primitive(mesh.vertices, normals, primitive_type, progress)
