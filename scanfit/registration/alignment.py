# SPDX-License-Identifier: GPL-3.0-or-later

"""
Rigid alignment of a mesh sample.

- align_to_wcs: two oriented features mapped onto world axes
- align_by_n_points: least-squares fit of labelled point pairs
- fine_align: ICP refinement against a target sample
- align_interactive: apply a transform chosen elsewhere

Every operation returns an AlignmentResult and leaves the mesh untouched
on failure or in preview mode.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from ..config import AlignmentOptions, ICPOptions
from ..shared.fit_logging import logger, timed
from ..shared.linalg import apply_transform, as_points, make_transform, normalize, rigid_fit
from .icp import ICP, IterationCallback


class FeatureKind(Enum):
    POINT = "point"
    LINE = "line"
    PLANE = "plane"
    CYLINDER_AXIS = "cylinder_axis"
    SPHERE_CENTER = "sphere_center"


class WCSAxis(Enum):
    POS_X = (1.0, 0.0, 0.0)
    NEG_X = (-1.0, 0.0, 0.0)
    POS_Y = (0.0, 1.0, 0.0)
    NEG_Y = (0.0, -1.0, 0.0)
    POS_Z = (0.0, 0.0, 1.0)
    NEG_Z = (0.0, 0.0, -1.0)

    @property
    def vector(self) -> np.ndarray:
        return np.array(self.value)


@dataclass
class AlignmentFeature:
    """An anchor point plus a direction (zero for point-like features)."""

    kind: FeatureKind
    point: np.ndarray
    direction: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self):
        self.point = np.asarray(self.point, dtype=np.float64).reshape(3)
        self.direction = np.asarray(self.direction, dtype=np.float64).reshape(3)

    @classmethod
    def at_point(cls, point) -> "AlignmentFeature":
        return cls(FeatureKind.POINT, point)

    @classmethod
    def line(cls, point, direction) -> "AlignmentFeature":
        return cls(FeatureKind.LINE, point, normalize(direction))

    @classmethod
    def from_plane(cls, plane, anchor=None) -> "AlignmentFeature":
        point = plane.point_on_plane if anchor is None else plane.project_point(anchor)
        return cls(FeatureKind.PLANE, point, plane.normal)

    @classmethod
    def from_cylinder(cls, cylinder) -> "AlignmentFeature":
        return cls(FeatureKind.CYLINDER_AXIS, cylinder.center, cylinder.axis)

    @classmethod
    def from_sphere(cls, sphere) -> "AlignmentFeature":
        return cls(FeatureKind.SPHERE_CENTER, sphere.center)

    @property
    def has_direction(self) -> bool:
        return bool(np.linalg.norm(self.direction) > 0)


@dataclass
class PointPair:
    source: np.ndarray
    target: np.ndarray
    weight: float = 1.0


@dataclass
class AlignmentResult:
    """
    Outcome of an alignment. `rotation` is a unit quaternion in scipy's
    scalar-last (x, y, z, w) order; `scale` holds the column lengths of the
    linear part.
    """

    success: bool = False
    transform: np.ndarray = field(default_factory=lambda: np.eye(4))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))
    rms_error: float = 0.0
    max_error: float = 0.0
    iterations: int = 0
    error_message: str = ""

    @staticmethod
    def decompose(transform) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        T = np.asarray(transform, dtype=np.float64)
        scale = np.linalg.norm(T[:3, :3], axis=0)
        safe = np.where(scale > 1e-12, scale, 1.0)
        quat = Rotation.from_matrix(T[:3, :3] / safe).as_quat()
        return T[:3, 3].copy(), quat, scale

    @staticmethod
    def compose(translation, rotation, scale=(1.0, 1.0, 1.0)) -> np.ndarray:
        R = Rotation.from_quat(rotation).as_matrix() * np.asarray(scale, dtype=np.float64)
        return make_transform(R, translation)

    @classmethod
    def create_success(cls, transform, rms_error: float = 0.0, max_error: float = 0.0,
                       iterations: int = 0) -> "AlignmentResult":
        T = np.array(transform, dtype=np.float64)
        translation, rotation, scale = cls.decompose(T)
        return cls(True, T, translation, rotation, scale, float(rms_error), float(max_error), iterations)

    @classmethod
    def create_failure(cls, message: str) -> "AlignmentResult":
        logger.warning(f"Alignment failed: {message}")
        return cls(success=False, error_message=message)

    @property
    def rotation_matrix(self) -> np.ndarray:
        return Rotation.from_quat(self.rotation).as_matrix()


def _apply(mesh, transform, options: AlignmentOptions) -> None:
    if mesh is not None and not options.preview:
        mesh.apply_transform(transform)


# ============================================================================
# Feature alignment to the world coordinate system
# ============================================================================

def align_to_wcs(mesh, primary: AlignmentFeature, primary_axis: WCSAxis,
                 secondary: AlignmentFeature, secondary_axis: WCSAxis,
                 origin=None, options: AlignmentOptions = None) -> AlignmentResult:
    """
    Rotate the primary direction onto `primary_axis` and the part of the
    secondary direction orthogonal to it onto `secondary_axis`, then move the
    origin (the primary anchor unless given) to the world origin.
    """
    options = options or AlignmentOptions()
    options.validate()
    tol = options.tolerance

    if np.linalg.norm(primary.direction) < tol:
        return AlignmentResult.create_failure("Primary feature must be a plane, line, or cylinder axis")
    if np.linalg.norm(secondary.direction) < tol:
        return AlignmentResult.create_failure("Secondary feature must be a plane, line, or cylinder axis")

    p = normalize(primary.direction)
    s = secondary.direction - (secondary.direction @ p) * p
    if np.linalg.norm(s) < tol:
        return AlignmentResult.create_failure("Primary and secondary features are parallel")
    s = normalize(s)

    tp, ts = primary_axis.vector, secondary_axis.vector
    if np.linalg.norm(np.cross(tp, ts)) < tol:
        return AlignmentResult.create_failure("Primary and secondary target axes are parallel")

    source = np.column_stack([p, s, np.cross(p, s)])
    target = np.column_stack([tp, ts, np.cross(tp, ts)])
    R = target @ source.T

    origin_source = primary.point if origin is None else np.asarray(origin, dtype=np.float64).reshape(3)
    T = make_transform(R, -R @ origin_source)

    error = 0.0
    if options.compute_error:
        anchor = R @ primary.point + T[:3, 3]
        error = float(np.linalg.norm(anchor - (anchor @ tp) * tp))

    _apply(mesh, T, options)
    logger.info(f"WCS alignment: {primary.kind.value} -> {primary_axis.name}, "
                f"{secondary.kind.value} -> {secondary_axis.name}")
    return AlignmentResult.create_success(T, error, error)


def align_interactive(mesh, transform, options: AlignmentOptions = None) -> AlignmentResult:
    """Apply a user-specified 4x4 transform."""
    options = options or AlignmentOptions()
    options.validate()
    T = np.asarray(transform, dtype=np.float64)
    if T.shape != (4, 4) or not np.all(np.isfinite(T)):
        return AlignmentResult.create_failure("Transform must be a finite 4x4 matrix")
    if np.abs(np.linalg.det(T[:3, :3])) < options.tolerance:
        return AlignmentResult.create_failure("Transform is singular")
    _apply(mesh, T, options)
    return AlignmentResult.create_success(T)


# ============================================================================
# N-point alignment
# ============================================================================

@timed("N-point alignment")
def align_by_n_points(mesh, pairs: Sequence[PointPair], options: AlignmentOptions = None) -> AlignmentResult:
    """
    Weighted Kabsch fit of source -> target pairs; the transform moves the
    mesh carrying the source points.
    """
    options = options or AlignmentOptions()
    options.validate()
    if len(pairs) < 3:
        return AlignmentResult.create_failure(f"At least 3 point pairs are required, got {len(pairs)}")

    source = as_points([pair.source for pair in pairs])
    target = as_points([pair.target for pair in pairs])
    weights = np.array([pair.weight for pair in pairs], dtype=np.float64)
    if np.any(weights < 0):
        return AlignmentResult.create_failure("Point pair weights must be non-negative")

    fit = rigid_fit(source, target, weights)
    if not fit.success:
        return AlignmentResult.create_failure(fit.message)

    rms, max_error = 0.0, 0.0
    if options.compute_error:
        residuals = np.linalg.norm(apply_transform(fit.transform, source) - target, axis=1)
        rms, max_error = float(np.sqrt(np.mean(residuals ** 2))), float(residuals.max())

    _apply(mesh, fit.transform, options)
    logger.info(f"N-point alignment with {len(pairs)} pairs: rms={rms:.4g}")
    return AlignmentResult.create_success(fit.transform, rms, max_error)


# ============================================================================
# ICP refinement
# ============================================================================

@timed("ICP fine alignment")
def fine_align(mesh, target_mesh, icp_options: ICPOptions = None, options: AlignmentOptions = None,
               callback: Optional[IterationCallback] = None) -> AlignmentResult:
    """Refine the position of `mesh` against `target_mesh` with ICP."""
    options = options or AlignmentOptions()
    options.validate()
    icp_result = ICP(icp_options).align_points(mesh.vertices, target_mesh.vertices,
                                               target_mesh.vertex_normals, callback=callback)
    if not icp_result.converged:
        result = AlignmentResult.create_failure(icp_result.message or "ICP did not converge")
        result.transform = icp_result.transform
        result.iterations = icp_result.iterations
        result.rms_error = icp_result.final_rms
        return result

    _apply(mesh, icp_result.transform, options)
    return AlignmentResult.create_success(icp_result.transform, icp_result.final_rms,
                                          icp_result.max_error, icp_result.iterations)
