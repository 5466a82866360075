# SPDX-License-Identifier: GPL-3.0-or-later

"""
Iterative closest point refinement.

Per iteration: nearest-neighbour correspondences through a KD-tree on the
target, statistical outlier rejection (mean + k * std) with optional
trimming, then either a Kabsch update (point-to-point) or a linearised
6-DOF solve of sum(((R p + t - q) . n)^2) (point-to-plane). The increment is
left-multiplied onto the running transform.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, NamedTuple, Optional

import numpy as np

from ..config import ICPAlgorithm, ICPOptions
from ..shared.fit_logging import log_operation, logger
from ..shared.linalg import apply_transform, as_points, gauss_jordan_solve, make_transform, rigid_fit, rotation_from_vector
from .kdtree import KDTree

MIN_CORRESPONDENCES = 3
MIN_PLANE_CORRESPONDENCES = 6


class Correspondence(NamedTuple):
    source_index: int
    target_index: int
    source_point: np.ndarray
    target_point: np.ndarray
    target_normal: Optional[np.ndarray]
    distance: float
    weight: float


@dataclass
class Correspondences:
    """Matched pairs of one iteration, stored column-wise."""

    source_indices: np.ndarray
    target_indices: np.ndarray
    source_points: np.ndarray
    target_points: np.ndarray
    target_normals: Optional[np.ndarray]
    distances: np.ndarray
    weights: np.ndarray

    def __len__(self) -> int:
        return len(self.distances)

    def subset(self, mask) -> "Correspondences":
        return Correspondences(
            self.source_indices[mask],
            self.target_indices[mask],
            self.source_points[mask],
            self.target_points[mask],
            None if self.target_normals is None else self.target_normals[mask],
            self.distances[mask],
            self.weights[mask],
        )

    def rms(self) -> float:
        if len(self) == 0:
            return math.inf
        return float(np.sqrt(np.mean(self.distances ** 2)))

    def __iter__(self) -> Iterator[Correspondence]:
        for i in range(len(self)):
            yield Correspondence(
                int(self.source_indices[i]),
                int(self.target_indices[i]),
                self.source_points[i],
                self.target_points[i],
                None if self.target_normals is None else self.target_normals[i],
                float(self.distances[i]),
                float(self.weights[i]),
            )


class ICPIterationStats(NamedTuple):
    iteration: int
    rms_error: float
    correspondence_count: int
    outlier_count: int
    transform_change: float


IterationCallback = Callable[[ICPIterationStats], bool]


@dataclass
class ICPResult:
    converged: bool = False
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    initial_rms: float = math.inf
    final_rms: float = math.inf
    max_error: float = math.inf
    iterations: int = 0
    correspondence_count: int = 0
    error_history: List[float] = field(default_factory=list)
    message: str = ""

    @property
    def success(self) -> bool:
        return self.converged


def progress_callback(progress: Callable[[float], bool], max_iterations: int) -> IterationCallback:
    """Adapt a progress(fraction) -> bool callback to per-iteration stats."""
    def callback(stats: ICPIterationStats) -> bool:
        return progress(min(1.0, (stats.iteration + 1) / max_iterations))
    return callback


class ICP:
    """
    ICP engine. One instance can run any number of alignments; every call
    builds its own target tree.
    """

    def __init__(self, options: ICPOptions = None):
        self.options = options or ICPOptions()
        self.options.validate()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def find_correspondences(self, tree: KDTree, target_points, working_points, sample_indices) -> Correspondences:
        indices, distances = tree.query_many(working_points[sample_indices],
                                             self.options.max_correspondence_distance)
        found = indices >= 0
        source_indices = sample_indices[found]
        target_indices = indices[found]
        normals = tree.normals[target_indices] if tree.has_normals else None
        return Correspondences(
            source_indices,
            target_indices,
            working_points[source_indices],
            target_points[target_indices],
            normals,
            distances[found],
            np.ones(len(target_indices)),
        )

    def reject_outliers(self, corr: Correspondences):
        """Drop pairs beyond mean + k * std, then trim the worst fraction."""
        keep = np.ones(len(corr), dtype=bool)
        d = corr.distances
        if self.options.outlier_rejection and len(corr):
            keep &= d <= d.mean() + self.options.outlier_threshold * d.std()

        if self.options.trim_percentage > 0:
            kept = np.flatnonzero(keep)
            n_keep = max(MIN_CORRESPONDENCES, int(math.ceil((1.0 - self.options.trim_percentage) * len(kept))))
            if n_keep < len(kept):
                keep[:] = False
                keep[kept[np.argsort(d[kept], kind="stable")[:n_keep]]] = True

        return corr.subset(keep), int(len(corr) - keep.sum())

    @staticmethod
    def point_to_plane_increment(corr: Correspondences) -> Optional[np.ndarray]:
        """
        Linearise around zero rotation: each pair contributes
        [p x n, n] . [w, t] = -(p - q) . n. Returns None when the 6x6 normal
        equations are singular or there are too few pairs.
        """
        if corr.target_normals is None or len(corr) < MIN_PLANE_CORRESPONDENCES:
            return None
        p, q, n = corr.source_points, corr.target_points, corr.target_normals
        sw = np.sqrt(corr.weights)[:, None]
        r = np.einsum("ij,ij->i", n, p - q)
        A = np.hstack([np.cross(p, n), n]) * sw
        b = -r * sw[:, 0]
        x = gauss_jordan_solve(A.T @ A, A.T @ b)
        if x is None:
            return None
        return make_transform(rotation_from_vector(x[:3]), x[3:])

    # ------------------------------------------------------------------
    # Alignment
    # ------------------------------------------------------------------

    def align_points(self, source_points, target_points, target_normals=None, initial_transform=None,
                     callback: Optional[IterationCallback] = None) -> ICPResult:
        """Register source points onto target points; the source arrays are not modified."""
        opts = self.options
        src = as_points(source_points)
        tgt = as_points(target_points)
        if len(src) < MIN_CORRESPONDENCES or len(tgt) < MIN_CORRESPONDENCES:
            return ICPResult(message=f"Need at least {MIN_CORRESPONDENCES} source and target points")

        point_to_plane = (ICPAlgorithm(opts.algorithm) is ICPAlgorithm.POINT_TO_PLANE
                          and opts.use_normals and target_normals is not None)
        normals = as_points(target_normals) if point_to_plane else None
        if normals is not None and len(normals) != len(tgt):
            return ICPResult(message="Target normal count does not match target point count")

        tree = KDTree(tgt, normals)
        T = np.eye(4) if initial_transform is None else np.array(initial_transform, dtype=np.float64)
        working = apply_transform(T, src)
        sample_indices = np.arange(0, len(src), opts.correspondence_sampling)

        result = ICPResult(transform=T.copy())
        with log_operation("ICP", source=len(src), target=len(tgt),
                           mode="point_to_plane" if point_to_plane else "point_to_point"):
            corr = self.find_correspondences(tree, tgt, working, sample_indices)
            result.initial_rms = corr.rms()
            message = f"No convergence after {opts.max_iterations} iterations"

            for iteration in range(opts.max_iterations):
                if iteration > 0:
                    corr = self.find_correspondences(tree, tgt, working, sample_indices)
                if len(corr) == 0:
                    message = "No correspondences found"
                    break
                result.error_history.append(corr.rms())

                corr, outliers = self.reject_outliers(corr)
                if len(corr) < MIN_CORRESPONDENCES:
                    message = "Too few correspondences after outlier rejection"
                    break

                increment = self.point_to_plane_increment(corr) if point_to_plane else None
                if increment is None:
                    fit = rigid_fit(corr.source_points, corr.target_points, corr.weights)
                    if not fit.success:
                        message = f"Rigid fit failed: {fit.message}"
                        break
                    increment = fit.transform

                T = increment @ T
                working = apply_transform(increment, working)
                change = float(np.linalg.norm(increment - np.eye(4)))
                result.transform = T.copy()
                result.iterations = iteration + 1
                result.correspondence_count = len(corr)
                logger.debug(f"ICP iteration {iteration}: rms={result.error_history[-1]:.6g}, "
                             f"pairs={len(corr)}, outliers={outliers}, change={change:.3g}")

                if change < opts.convergence_threshold:
                    result.converged = True
                    message = ""
                    break

                stats = ICPIterationStats(iteration, result.error_history[-1], len(corr), outliers, change)
                keep_going = callback(stats) if callback is not None else True
                if keep_going is not None and not keep_going:
                    message = "cancelled"
                    break

            result.message = message
            final = self.find_correspondences(tree, tgt, working, sample_indices)
            result.final_rms = final.rms()
            if len(final):
                result.max_error = float(final.distances.max())

        if result.converged:
            logger.info(f"ICP converged in {result.iterations} iterations: "
                        f"rms {result.initial_rms:.4g} -> {result.final_rms:.4g}")
        else:
            logger.warning(f"ICP did not converge: {result.message}")
        return result

    def align(self, source_mesh, target_mesh, apply: bool = True,
              callback: Optional[IterationCallback] = None) -> ICPResult:
        """
        Register a source mesh sample onto a target mesh sample.

        The source mesh is transformed only when ICP converged and `apply`
        is set.
        """
        result = self.align_points(source_mesh.vertices, target_mesh.vertices,
                                   target_mesh.vertex_normals, callback=callback)
        if result.converged and apply:
            source_mesh.apply_transform(result.transform)
        return result
