# SPDX-License-Identifier: GPL-3.0-or-later

"""Option models for primitive fitting, alignment and symmetry detection."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class ICPAlgorithm(str, Enum):
    POINT_TO_POINT = "point_to_point"
    POINT_TO_PLANE = "point_to_plane"


def _check_positive_int(name: str, value: int) -> None:
    if int(value) != value or value < 1:
        raise ValueError(f"{name} must be an integer >= 1")


def _check_non_negative(name: str, value: float) -> None:
    if not (value >= 0):
        raise ValueError(f"{name} must be >= 0")


@dataclass
class PlaneFitOptions:
    """Configuration for RANSAC plane fitting."""

    ransac_iterations: int = 100
    inlier_threshold: float = 0.01

    def validate(self) -> None:
        """Validate configuration values."""
        _check_positive_int("ransac_iterations", self.ransac_iterations)
        _check_non_negative("inlier_threshold", self.inlier_threshold)

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "ransac_iterations": self.ransac_iterations,
            "inlier_threshold": self.inlier_threshold,
        }


@dataclass
class SphereFitOptions:
    """Configuration for sphere fitting."""

    ransac_iterations: int = 200
    inlier_threshold: float = 0.01
    use_algebraic_fit: bool = True
    geometric_iterations: int = 20

    def validate(self) -> None:
        """Validate configuration values."""
        _check_positive_int("ransac_iterations", self.ransac_iterations)
        _check_non_negative("inlier_threshold", self.inlier_threshold)
        _check_positive_int("geometric_iterations", self.geometric_iterations)

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "ransac_iterations": self.ransac_iterations,
            "inlier_threshold": self.inlier_threshold,
            "use_algebraic_fit": self.use_algebraic_fit,
            "geometric_iterations": self.geometric_iterations,
        }


@dataclass
class CylinderFitOptions:
    """Configuration for cylinder fitting."""

    ransac_iterations: int = 500
    inlier_threshold: float = 0.01
    refinement_iterations: int = 10
    use_normals: bool = True

    def validate(self) -> None:
        """Validate configuration values."""
        _check_positive_int("ransac_iterations", self.ransac_iterations)
        _check_non_negative("inlier_threshold", self.inlier_threshold)
        if self.refinement_iterations < 0:
            raise ValueError("refinement_iterations must be >= 0")

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "ransac_iterations": self.ransac_iterations,
            "inlier_threshold": self.inlier_threshold,
            "refinement_iterations": self.refinement_iterations,
            "use_normals": self.use_normals,
        }


@dataclass
class ConeFitOptions:
    """Configuration for cone fitting."""

    ransac_iterations: int = 500
    inlier_threshold: float = 0.01
    refinement_iterations: int = 20
    use_normals: bool = True

    def validate(self) -> None:
        """Validate configuration values."""
        _check_positive_int("ransac_iterations", self.ransac_iterations)
        _check_non_negative("inlier_threshold", self.inlier_threshold)
        if self.refinement_iterations < 0:
            raise ValueError("refinement_iterations must be >= 0")

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "ransac_iterations": self.ransac_iterations,
            "inlier_threshold": self.inlier_threshold,
            "refinement_iterations": self.refinement_iterations,
            "use_normals": self.use_normals,
        }


@dataclass
class FitOptions:
    """Configuration for the primitive dispatcher."""

    ransac_iterations: int = 500
    inlier_threshold: float = 0.01
    inlier_threshold_rel: float = 0.01
    use_relative_threshold: bool = True
    refinement_iterations: int = 10
    use_normals: bool = True
    detection_threshold: float = 0.7
    try_all_types: bool = False
    seed: Optional[int] = None

    def validate(self) -> None:
        """Validate configuration values."""
        _check_positive_int("ransac_iterations", self.ransac_iterations)
        _check_non_negative("inlier_threshold", self.inlier_threshold)
        _check_non_negative("inlier_threshold_rel", self.inlier_threshold_rel)
        if self.refinement_iterations < 0:
            raise ValueError("refinement_iterations must be >= 0")
        if not (0.0 <= self.detection_threshold <= 1.0):
            raise ValueError("detection_threshold must be between 0 and 1")

    def threshold_for(self, diagonal: float) -> float:
        """Inlier threshold for a sample whose bounding-box diagonal is given."""
        if self.use_relative_threshold and diagonal > 0:
            return self.inlier_threshold_rel * diagonal
        return self.inlier_threshold

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "ransac_iterations": self.ransac_iterations,
            "inlier_threshold": self.inlier_threshold,
            "inlier_threshold_rel": self.inlier_threshold_rel,
            "use_relative_threshold": self.use_relative_threshold,
            "refinement_iterations": self.refinement_iterations,
            "use_normals": self.use_normals,
            "detection_threshold": self.detection_threshold,
            "try_all_types": self.try_all_types,
            "seed": self.seed,
        }


@dataclass
class ICPOptions:
    """Configuration for ICP refinement."""

    algorithm: ICPAlgorithm = ICPAlgorithm.POINT_TO_PLANE
    max_iterations: int = 50
    convergence_threshold: float = 1e-5
    outlier_rejection: bool = True
    outlier_threshold: float = 3.0
    trim_percentage: float = 0.0
    max_correspondence_distance: float = math.inf
    correspondence_sampling: int = 1
    use_normals: bool = True

    def validate(self) -> None:
        """Validate configuration values."""
        try:
            ICPAlgorithm(self.algorithm)
        except ValueError:
            raise ValueError(f"algorithm must be one of {[a.value for a in ICPAlgorithm]}") from None
        _check_positive_int("max_iterations", self.max_iterations)
        _check_non_negative("convergence_threshold", self.convergence_threshold)
        _check_non_negative("outlier_threshold", self.outlier_threshold)
        if not (0.0 <= self.trim_percentage < 1.0):
            raise ValueError("trim_percentage must be in [0, 1)")
        if not (self.max_correspondence_distance > 0):
            raise ValueError("max_correspondence_distance must be > 0")
        _check_positive_int("correspondence_sampling", self.correspondence_sampling)

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "algorithm": ICPAlgorithm(self.algorithm).value,
            "max_iterations": self.max_iterations,
            "convergence_threshold": self.convergence_threshold,
            "outlier_rejection": self.outlier_rejection,
            "outlier_threshold": self.outlier_threshold,
            "trim_percentage": self.trim_percentage,
            "max_correspondence_distance": self.max_correspondence_distance,
            "correspondence_sampling": self.correspondence_sampling,
            "use_normals": self.use_normals,
        }


@dataclass
class AlignmentOptions:
    """Configuration shared by the alignment operations."""

    preview: bool = False
    compute_error: bool = True
    tolerance: float = 1e-6

    def validate(self) -> None:
        """Validate configuration values."""
        if not (self.tolerance > 0):
            raise ValueError("tolerance must be > 0")

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "preview": self.preview,
            "compute_error": self.compute_error,
            "tolerance": self.tolerance,
        }


@dataclass
class SymmetryOptions:
    """Configuration for mirror symmetry detection."""

    match_tolerance: float = 0.01
    test_axis_aligned: bool = True
    test_pca: bool = True
    test_diagonal: bool = True
    refinement_steps: int = 20
    initial_step: float = 0.1
    step_decay: float = 0.8
    kdtree_min_points: int = 4096

    def validate(self) -> None:
        """Validate configuration values."""
        if not (self.match_tolerance > 0):
            raise ValueError("match_tolerance must be > 0")
        if self.refinement_steps < 0:
            raise ValueError("refinement_steps must be >= 0")
        if not (self.initial_step > 0):
            raise ValueError("initial_step must be > 0")
        if not (0.0 < self.step_decay < 1.0):
            raise ValueError("step_decay must be in (0, 1)")
        if not (self.test_axis_aligned or self.test_pca or self.test_diagonal):
            raise ValueError("at least one candidate family must be enabled")

    def to_dict(self) -> Dict[str, object]:
        """Return a JSON-serializable dict."""
        return {
            "match_tolerance": self.match_tolerance,
            "test_axis_aligned": self.test_axis_aligned,
            "test_pca": self.test_pca,
            "test_diagonal": self.test_diagonal,
            "refinement_steps": self.refinement_steps,
            "initial_step": self.initial_step,
            "step_decay": self.step_decay,
            "kdtree_min_points": self.kdtree_min_points,
        }
