# SPDX-License-Identifier: GPL-3.0-or-later

"""
FitResult and the error statistics shared by every primitive fitter.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, Union

import numpy as np

from ..shared.linalg import as_points
from .primitives import Cone, Cylinder, Plane, Sphere

ProgressCallback = Callable[[float], bool]
Primitive = Union[Plane, Sphere, Cylinder, Cone]

# RANSAC loops report progress after every block of this many iterations
PROGRESS_BLOCK = 50


class PrimitiveType(Enum):
    UNKNOWN = 0
    PLANE = 1
    CYLINDER = 2
    CONE = 3
    SPHERE = 4

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @classmethod
    def of(cls, primitive) -> "PrimitiveType":
        for kind, primitive_cls in ((cls.PLANE, Plane), (cls.SPHERE, Sphere),
                                    (cls.CYLINDER, Cylinder), (cls.CONE, Cone)):
            if isinstance(primitive, primitive_cls):
                return kind
        return cls.UNKNOWN


@dataclass
class FitResult:
    """Outcome of a single primitive fit."""

    success: bool = False
    primitive_type: PrimitiveType = PrimitiveType.UNKNOWN
    primitive: Optional[Primitive] = None
    rms_error: float = 0.0
    max_error: float = 0.0
    inlier_count: int = 0
    inlier_ratio: float = 0.0
    confidence: float = 0.0
    total_points: int = 0
    error_message: str = ""

    @classmethod
    def failure(cls, message: str, primitive_type: PrimitiveType = PrimitiveType.UNKNOWN,
                total_points: int = 0) -> "FitResult":
        return cls(success=False, primitive_type=primitive_type,
                   total_points=total_points, error_message=message)

    def __bool__(self) -> bool:
        return self.success


def compute_confidence(inlier_ratio: float, rms_error: float, threshold: float) -> float:
    """min(1, ratio * tau / (tau + rms)), boosted by 1.1 when over 90% are inliers."""
    denom = threshold + rms_error
    factor = threshold / denom if denom > 0 else 1.0
    confidence = inlier_ratio * factor
    if inlier_ratio > 0.9:
        confidence *= 1.1
    return float(min(1.0, max(0.0, confidence)))


def finalize_fit(primitive: Primitive, points, threshold: float) -> FitResult:
    """Error statistics of `primitive` over every sample point."""
    pts = as_points(points)
    kind = PrimitiveType.of(primitive)
    if primitive is None or not primitive.is_valid():
        return FitResult.failure("Fitted primitive is invalid", kind, len(pts))

    distances = np.abs(np.asarray(primitive.signed_distance(pts), dtype=np.float64).reshape(-1))
    if not np.all(np.isfinite(distances)):
        return FitResult.failure("Non-finite fit error", kind, len(pts))

    rms = float(np.sqrt(np.mean(distances ** 2)))
    inliers = int(np.count_nonzero(distances <= threshold))
    ratio = inliers / len(pts)
    return FitResult(
        success=True,
        primitive_type=kind,
        primitive=primitive,
        rms_error=rms,
        max_error=float(distances.max()),
        inlier_count=inliers,
        inlier_ratio=ratio,
        confidence=compute_confidence(ratio, rms, threshold),
        total_points=len(pts),
    )


def prepare_samples(points, normals, minimum: int, what: str) -> Tuple[np.ndarray, Optional[np.ndarray], str]:
    """
    Validate a point (and optional normal) sequence for a fitter.

    Returns (points, normals, error); error is "" when the input is usable.
    """
    pts = as_points(points)
    if len(pts) < minimum:
        return pts, None, f"Need at least {minimum} points for {what} fitting, got {len(pts)}"
    if not np.all(np.isfinite(pts)):
        return pts, None, "Points contain non-finite coordinates"
    if normals is None:
        return pts, None, ""
    nrm = as_points(normals)
    if len(nrm) != len(pts):
        return pts, None, f"Got {len(nrm)} normals for {len(pts)} points"
    return pts, nrm, ""


def progress_cancelled(progress: Optional[ProgressCallback], iteration: int, total: int) -> bool:
    """Report progress at block boundaries; True when the callback asks to stop."""
    done = iteration + 1
    if progress is None or (done % PROGRESS_BLOCK and done != total):
        return False
    keep_going = progress(done / total)
    return keep_going is not None and not keep_going
