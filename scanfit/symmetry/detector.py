# SPDX-License-Identifier: GPL-3.0-or-later

"""
Mirror symmetry detection.

Candidate planes through the centroid (coordinate axes, principal axes and
six diagonals) are scored by the fraction of points whose reflection lands
within tolerance of another sample point, refined by coordinate descent on
the plane parameters, and the best one is reported.
"""

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
import trimesh

from ..config import SymmetryOptions
from ..mesh import MeshSample
from ..primitive_fitting.primitives import Plane
from ..registration.kdtree import KDTree
from ..shared.fit_logging import log_operation, logger
from ..shared.linalg import apply_transform, as_points, bbox_diagonal, covariance, normalize, power_eigen_frame

DIAGONAL_NORMALS = (
    (1.0, 1.0, 0.0),
    (1.0, 0.0, 1.0),
    (0.0, 1.0, 1.0),
    (1.0, 1.0, 1.0),
    (1.0, -1.0, 0.0),
    (1.0, 0.0, -1.0),
)
PARALLEL_NORMAL_LIMIT = 0.95

Matcher = Callable[[np.ndarray], np.ndarray]


@dataclass
class SymmetryResult:
    found: bool = False
    plane: Optional[Plane] = None
    quality: float = 0.0
    average_deviation: float = 0.0
    max_deviation: float = 0.0
    matched_pairs: int = 0
    error_message: str = ""


def reflect_points(points, plane: Plane) -> np.ndarray:
    pts = as_points(points)
    d = pts @ plane.normal + plane.distance
    return pts - 2.0 * d[:, None] * plane.normal


def reflect_point(point, plane: Plane) -> np.ndarray:
    return reflect_points(point, plane)[0]


def _brute_force_matcher(points: np.ndarray) -> Matcher:
    chunk = max(1, (1 << 20) // max(len(points), 1))

    def nearest(queries: np.ndarray) -> np.ndarray:
        out = np.empty(len(queries))
        for start in range(0, len(queries), chunk):
            block = queries[start:start + chunk]
            diff = block[:, None, :] - points[None, :, :]
            out[start:start + chunk] = np.sqrt(np.min(np.einsum("ijk,ijk->ij", diff, diff), axis=1))
        return out

    return nearest


def _kdtree_matcher(points: np.ndarray) -> Matcher:
    tree = KDTree(points)

    def nearest(queries: np.ndarray) -> np.ndarray:
        return tree.query_many(queries)[1]

    return nearest


class SymmetryDetector:
    """Finds the best plane of mirror symmetry of a point sample."""

    def __init__(self, options: SymmetryOptions = None):
        self.options = options or SymmetryOptions()
        self.options.validate()

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def matcher(self, points: np.ndarray) -> Matcher:
        """Nearest-sample distance function; brute force for small samples."""
        if len(points) >= self.options.kdtree_min_points:
            return _kdtree_matcher(points)
        return _brute_force_matcher(points)

    def tolerance(self, points) -> float:
        diag = bbox_diagonal(points)
        return self.options.match_tolerance * (diag if diag > 0 else 1.0)

    def generate_candidates(self, points) -> List[Plane]:
        pts = as_points(points)
        centroid = pts.mean(axis=0)
        normals = []
        if self.options.test_axis_aligned:
            normals.extend(np.eye(3))
        if self.options.test_pca:
            _, frame = power_eigen_frame(covariance(pts, centroid))
            normals.extend(frame.T)
        if self.options.test_diagonal:
            normals.extend(normalize(n) for n in DIAGONAL_NORMALS)
        return [Plane.from_point_and_normal(centroid, n) for n in normals if np.linalg.norm(n) > 0.5]

    def evaluate(self, points, plane: Plane, tolerance: float = None, matcher: Matcher = None) -> float:
        """Fraction of points whose reflection has a sample within tolerance."""
        pts = as_points(points)
        if len(pts) == 0:
            return 0.0
        tolerance = self.tolerance(pts) if tolerance is None else tolerance
        matcher = matcher or self.matcher(pts)
        distances = matcher(reflect_points(pts, plane))
        return float(np.count_nonzero(distances <= tolerance) / len(pts))

    def evaluate_detailed(self, points, plane: Plane, tolerance: float = None,
                          matcher: Matcher = None) -> SymmetryResult:
        """
        Quality plus deviation statistics over matched points. Each mirrored
        pair is seen from both sides, so matched_pairs is half the matches.
        """
        pts = as_points(points)
        if len(pts) == 0:
            return SymmetryResult(error_message="Empty point set")
        tolerance = self.tolerance(pts) if tolerance is None else tolerance
        matcher = matcher or self.matcher(pts)
        distances = matcher(reflect_points(pts, plane))
        matched = distances <= tolerance
        count = int(np.count_nonzero(matched))
        return SymmetryResult(
            found=count > len(pts) / 2,
            plane=plane,
            quality=count / len(pts),
            average_deviation=float(distances[matched].mean()) if count else 0.0,
            max_deviation=float(distances[matched].max()) if count else 0.0,
            matched_pairs=count // 2,
        )

    def refine(self, points, plane: Plane, tolerance: float = None,
               matcher: Matcher = None) -> Tuple[Plane, float]:
        """
        Coordinate descent: nudge the normal along each axis by +/- step
        (pivoting about the plane's foot of the centroid) and the offset by
        +/- step, keep strict improvements, shrink the step.
        """
        pts = as_points(points)
        tolerance = self.tolerance(pts) if tolerance is None else tolerance
        matcher = matcher or self.matcher(pts)
        centroid = pts.mean(axis=0)

        best_plane = plane.copy()
        best_quality = self.evaluate(pts, best_plane, tolerance, matcher)
        step = self.options.initial_step
        for _ in range(self.options.refinement_steps):
            if best_quality >= 1.0:
                break
            pivot = best_plane.project_point(centroid)
            variants = []
            for axis in np.eye(3):
                for sign in (1.0, -1.0):
                    normal = best_plane.normal + sign * step * axis
                    if np.linalg.norm(normal) > 1e-9:
                        variants.append(Plane.from_point_and_normal(pivot, normal))
            for sign in (1.0, -1.0):
                variants.append(Plane(best_plane.normal, best_plane.distance + sign * step))

            for variant in variants:
                quality = self.evaluate(pts, variant, tolerance, matcher)
                if quality > best_quality:
                    best_plane, best_quality = variant, quality
            step *= self.options.step_decay
        return best_plane, best_quality

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, points) -> SymmetryResult:
        pts = as_points(points)
        if len(pts) < 2:
            return SymmetryResult(error_message="Need at least 2 points")

        tolerance = self.tolerance(pts)
        matcher = self.matcher(pts)
        candidates = self.generate_candidates(pts)
        if not candidates:
            return SymmetryResult(error_message="No candidate planes enabled")

        with log_operation("Symmetry detection", points=len(pts)):
            best_plane, best_quality = None, -1.0
            for candidate in candidates:
                quality = self.evaluate(pts, candidate, tolerance, matcher)
                if quality > best_quality:
                    best_plane, best_quality = candidate, quality
            best_plane, best_quality = self.refine(pts, best_plane, tolerance, matcher)
            result = self.evaluate_detailed(pts, best_plane, tolerance, matcher)

        logger.info(f"Symmetry plane {best_plane}: quality={result.quality:.3f}")
        return result

    def detect_mesh(self, mesh: MeshSample) -> SymmetryResult:
        return self.detect(mesh.vertices)

    def detect_selection(self, mesh: MeshSample, face_indices) -> SymmetryResult:
        points, _ = mesh.gather_faces(face_indices)
        return self.detect(np.unique(points, axis=0) if len(points) else points)

    def find_reflection_match(self, points, index: int, plane: Plane, tolerance: float = None) -> int:
        """Index of the sample matching the mirror image of points[index], or -1."""
        pts = as_points(points)
        tolerance = self.tolerance(pts) if tolerance is None else tolerance
        match = KDTree(pts).query(reflect_point(pts[index], plane), tolerance)
        return match.index

    @staticmethod
    def reflect_mesh(mesh: MeshSample, plane: Plane) -> MeshSample:
        """Mirror image of a mesh; triangle winding is reversed to keep normals outward."""
        matrix = trimesh.transformations.reflection_matrix(plane.point_on_plane, plane.normal)
        normals = mesh.vertex_normals
        reflected = MeshSample(
            apply_transform(matrix, mesh.vertices),
            mesh.faces[:, ::-1] if mesh.face_count else None,
            vertex_normals=None if normals is None else normals @ matrix[:3, :3].T,
        )
        return reflected


class MultiSymmetryDetector(SymmetryDetector):
    """Reports several distinct symmetry planes and checks rotational folds."""

    def detect_all(self, points, min_quality: float = 0.7, max_planes: int = 3) -> List[SymmetryResult]:
        pts = as_points(points)
        if len(pts) < 2:
            return []
        tolerance = self.tolerance(pts)
        matcher = self.matcher(pts)

        scored = []
        with log_operation("Multi-plane symmetry detection", points=len(pts)):
            for candidate in self.generate_candidates(pts):
                plane, quality = self.refine(pts, candidate, tolerance, matcher)
                if quality >= min_quality:
                    scored.append((quality, plane))
        scored.sort(key=lambda item: item[0], reverse=True)

        accepted: List[SymmetryResult] = []
        for quality, plane in scored:
            if len(accepted) >= max_planes:
                break
            if any(abs(plane.normal @ r.plane.normal) > PARALLEL_NORMAL_LIMIT for r in accepted):
                continue
            accepted.append(self.evaluate_detailed(pts, plane, tolerance, matcher))
        return accepted

    def check_rotational_symmetry(self, points, axis, fold: int, center=None) -> float:
        """
        Fraction of points that land on a sample after rotating by 2*pi/fold
        about `axis` through `center` (the centroid by default).
        """
        pts = as_points(points)
        if fold < 2 or len(pts) == 0:
            return 0.0
        center = pts.mean(axis=0) if center is None else np.asarray(center, dtype=np.float64)
        matrix = trimesh.transformations.rotation_matrix(2.0 * math.pi / fold, normalize(axis), center)
        radius = np.linalg.norm(pts - center, axis=1).max()
        tolerance = self.options.match_tolerance * (radius if radius > 0 else 1.0)
        distances = self.matcher(pts)(apply_transform(matrix, pts))
        return float(np.count_nonzero(distances <= tolerance) / len(pts))
