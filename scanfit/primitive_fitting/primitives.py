# SPDX-License-Identifier: GPL-3.0-or-later

"""
Parametric surfaces recovered by the fitters: plane, sphere, cylinder, cone.

Distance and projection queries accept a single point (3,) or an (N, 3)
array and return a float / (3,) array or an (N,) / (N, 3) array to match.
"""

import copy
import math
from typing import Optional, Tuple

import numpy as np

from ..shared.linalg import normal_matrix, normalize, orthonormal_basis, solve_cramer_3x3


def _query(points):
    pts = np.asarray(points, dtype=np.float64)
    return pts.reshape(-1, 3), pts.ndim == 1


def _scalar_or_array(values: np.ndarray, single: bool):
    return float(values[0]) if single else values


def _point_or_array(values: np.ndarray, single: bool):
    return values[0] if single else values


def _mean_scale(transform) -> float:
    """Average length of the three columns of the linear part."""
    linear = np.asarray(transform, dtype=np.float64)[:3, :3]
    return float(np.linalg.norm(linear, axis=0).mean())


def _transform_point(transform, point) -> np.ndarray:
    T = np.asarray(transform, dtype=np.float64)
    return T[:3, :3] @ point + T[:3, 3]


def _transform_direction(transform, direction) -> np.ndarray:
    T = np.asarray(transform, dtype=np.float64)
    return normalize(T[:3, :3] @ direction)


class _Primitive:
    def copy(self):
        return copy.deepcopy(self)

    def transformed(self, transform):
        other = self.copy()
        other.transform(transform)
        return other

    def absolute_distance(self, points):
        return np.abs(self.signed_distance(points))


# ============================================================================
# Plane
# ============================================================================

class Plane(_Primitive):
    """Plane n.x + d = 0 with unit normal n."""

    def __init__(self, normal=(0.0, 0.0, 1.0), distance: float = 0.0):
        n = np.asarray(normal, dtype=np.float64).reshape(3)
        length = np.linalg.norm(n)
        if length < 1e-12:
            raise ValueError("Plane normal must be non-zero")
        self.normal = n / length
        self.distance = float(distance) / length

    @classmethod
    def from_point_and_normal(cls, point, normal) -> "Plane":
        n = normalize(normal)
        return cls(n, -float(n @ np.asarray(point, dtype=np.float64)))

    @classmethod
    def from_three_points(cls, p1, p2, p3) -> "Plane":
        p1, p2, p3 = (np.asarray(p, dtype=np.float64) for p in (p1, p2, p3))
        n = np.cross(p2 - p1, p3 - p1)
        if np.linalg.norm(n) < 1e-12:
            raise ValueError("Points are collinear")
        return cls.from_point_and_normal(p1, n)

    @property
    def equation(self) -> np.ndarray:
        return np.append(self.normal, self.distance)

    @property
    def point_on_plane(self) -> np.ndarray:
        return -self.distance * self.normal

    def signed_distance(self, points):
        pts, single = _query(points)
        return _scalar_or_array(pts @ self.normal + self.distance, single)

    def project_point(self, points):
        pts, single = _query(points)
        d = pts @ self.normal + self.distance
        return _point_or_array(pts - d[:, None] * self.normal, single)

    def which_side(self, point, tolerance: float = 1e-9) -> int:
        """+1 in front of the plane, -1 behind, 0 on it."""
        d = self.signed_distance(point)
        if d > tolerance:
            return 1
        if d < -tolerance:
            return -1
        return 0

    def intersect_ray(self, origin, direction) -> Optional[np.ndarray]:
        origin = np.asarray(origin, dtype=np.float64)
        direction = normalize(direction)
        denom = float(self.normal @ direction)
        if abs(denom) < 1e-12:
            return None
        t = -(float(self.normal @ origin) + self.distance) / denom
        if t < 0:
            return None
        return origin + t * direction

    def intersect_plane(self, other: "Plane") -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Line of intersection as (point, unit direction), None if parallel."""
        direction = np.cross(self.normal, other.normal)
        if np.linalg.norm(direction) < 1e-9:
            return None
        A = np.vstack([self.normal, other.normal, direction])
        point = solve_cramer_3x3(A, [-self.distance, -other.distance, 0.0])
        if point is None:
            return None
        return point, normalize(direction)

    def flip(self) -> None:
        self.normal = -self.normal
        self.distance = -self.distance

    def is_valid(self) -> bool:
        length = np.linalg.norm(self.normal)
        return bool(0.9 < length < 1.1 and math.isfinite(self.distance))

    def transform(self, transform) -> None:
        point = _transform_point(transform, self.point_on_plane)
        self.normal = normalize(normal_matrix(transform) @ self.normal)
        self.distance = -float(self.normal @ point)

    def basis(self) -> Tuple[np.ndarray, np.ndarray]:
        return orthonormal_basis(self.normal)

    def __repr__(self) -> str:
        return f"Plane(normal={np.round(self.normal, 6).tolist()}, distance={self.distance:.6g})"


# ============================================================================
# Sphere
# ============================================================================

class Sphere(_Primitive):
    """Sphere with center c and radius r > 0."""

    def __init__(self, center=(0.0, 0.0, 0.0), radius: float = 1.0):
        self.center = np.asarray(center, dtype=np.float64).reshape(3).copy()
        self.radius = float(radius)

    @classmethod
    def from_four_points(cls, p1, p2, p3, p4) -> Optional["Sphere"]:
        """
        Circumsphere through four points; None when they are coplanar.

        Each row d_i = p_{i+1} - p_1 gives d_i . c = 0.5 (|p_{i+1}|^2 - |p_1|^2).
        Coordinates are taken relative to p1 and scaled to unit size so the
        determinant test does not depend on the units of the input.
        """
        pts = np.asarray([p1, p2, p3, p4], dtype=np.float64)
        origin = pts[0]
        rel = pts - origin
        scale = np.abs(rel).max()
        if scale < 1e-12:
            return None
        rel = rel / scale
        A = rel[1:]
        b = 0.5 * np.sum(rel[1:] ** 2, axis=1)
        c = solve_cramer_3x3(A, b)
        if c is None:
            return None
        radius = np.linalg.norm(c) * scale
        if not np.isfinite(radius) or radius <= 0 or radius > 1e10:
            return None
        return cls(origin + c * scale, radius)

    def signed_distance(self, points):
        pts, single = _query(points)
        return _scalar_or_array(np.linalg.norm(pts - self.center, axis=1) - self.radius, single)

    def project_point(self, points):
        pts, single = _query(points)
        offsets = pts - self.center
        lengths = np.linalg.norm(offsets, axis=1)
        offsets[lengths < 1e-12] = [0.0, 0.0, 1.0]
        lengths[lengths < 1e-12] = 1.0
        return _point_or_array(self.center + self.radius * offsets / lengths[:, None], single)

    def contains_point(self, point, tolerance: float = 0.0) -> bool:
        return bool(self.signed_distance(point) <= tolerance)

    def normal_at(self, point) -> np.ndarray:
        return normalize(np.asarray(point, dtype=np.float64) - self.center)

    def intersect_ray(self, origin, direction) -> Optional[np.ndarray]:
        """First intersection of a ray with the sphere surface, if any."""
        origin = np.asarray(origin, dtype=np.float64)
        direction = normalize(direction)
        oc = origin - self.center
        b = float(oc @ direction)
        c = float(oc @ oc) - self.radius ** 2
        disc = b * b - c
        if disc < 0:
            return None
        root = math.sqrt(disc)
        for t in (-b - root, -b + root):
            if t >= 0:
                return origin + t * direction
        return None

    @property
    def surface_area(self) -> float:
        return 4.0 * math.pi * self.radius ** 2

    @property
    def volume(self) -> float:
        return 4.0 / 3.0 * math.pi * self.radius ** 3

    def is_valid(self) -> bool:
        return bool(np.all(np.isfinite(self.center)) and math.isfinite(self.radius) and self.radius > 0)

    def transform(self, transform) -> None:
        self.center = _transform_point(transform, self.center)
        self.radius *= _mean_scale(transform)

    def __repr__(self) -> str:
        return f"Sphere(center={np.round(self.center, 6).tolist()}, radius={self.radius:.6g})"


# ============================================================================
# Cylinder
# ============================================================================

class Cylinder(_Primitive):
    """
    Finite capped cylinder.

    `center` is the midpoint of the height range along the unit `axis`.
    Distances are measured to the infinite lateral surface.
    """

    def __init__(self, center=(0.0, 0.0, 0.0), axis=(0.0, 0.0, 1.0), radius: float = 1.0,
                 height: float = 1.0):
        self.center = np.asarray(center, dtype=np.float64).reshape(3).copy()
        self.axis = normalize(axis)
        self.radius = float(radius)
        self.height = float(height)

    def _decompose(self, pts):
        offsets = pts - self.center
        s = offsets @ self.axis
        radial = offsets - s[:, None] * self.axis
        return s, radial

    def signed_distance(self, points):
        pts, single = _query(points)
        _, radial = self._decompose(pts)
        return _scalar_or_array(np.linalg.norm(radial, axis=1) - self.radius, single)

    def closest_point_on_axis(self, points):
        pts, single = _query(points)
        s, _ = self._decompose(pts)
        return _point_or_array(self.center + s[:, None] * self.axis, single)

    def project_point(self, points):
        pts, single = _query(points)
        s, radial = self._decompose(pts)
        lengths = np.linalg.norm(radial, axis=1)
        degenerate = lengths < 1e-12
        if np.any(degenerate):
            radial[degenerate] = orthonormal_basis(self.axis)[0]
            lengths[degenerate] = 1.0
        surface = self.center + s[:, None] * self.axis + self.radius * radial / lengths[:, None]
        return _point_or_array(surface, single)

    def contains_point(self, point, tolerance: float = 0.0) -> bool:
        s, radial = self._decompose(np.asarray(point, dtype=np.float64).reshape(1, 3))
        return bool(abs(s[0]) <= 0.5 * self.height + tolerance
                    and np.linalg.norm(radial[0]) <= self.radius + tolerance)

    def end_caps(self) -> Tuple[np.ndarray, np.ndarray]:
        half = 0.5 * self.height * self.axis
        return self.center - half, self.center + half

    @property
    def surface_area(self) -> float:
        return 2.0 * math.pi * self.radius * (self.height + self.radius)

    @property
    def volume(self) -> float:
        return math.pi * self.radius ** 2 * self.height

    def is_valid(self) -> bool:
        return bool(
            np.all(np.isfinite(self.center))
            and abs(np.linalg.norm(self.axis) - 1.0) < 1e-6
            and self.radius > 0 and math.isfinite(self.radius)
            and self.height > 0 and math.isfinite(self.height)
        )

    def transform(self, transform) -> None:
        scale = _mean_scale(transform)
        self.center = _transform_point(transform, self.center)
        self.axis = _transform_direction(transform, self.axis)
        self.radius *= scale
        self.height *= scale

    def __repr__(self) -> str:
        return (f"Cylinder(center={np.round(self.center, 6).tolist()}, "
                f"axis={np.round(self.axis, 6).tolist()}, radius={self.radius:.6g}, "
                f"height={self.height:.6g})")


# ============================================================================
# Cone
# ============================================================================

class Cone(_Primitive):
    """
    Finite cone with apex, unit axis pointing from apex to base, half-angle
    theta in (0, pi/2) and height from apex to base plane.
    """

    def __init__(self, apex=(0.0, 0.0, 0.0), axis=(0.0, 0.0, 1.0), half_angle: float = 0.5,
                 height: float = 1.0):
        self.apex = np.asarray(apex, dtype=np.float64).reshape(3).copy()
        self.axis = normalize(axis)
        self.height = float(height)
        self.half_angle = half_angle

    @property
    def half_angle(self) -> float:
        return self._half_angle

    @half_angle.setter
    def half_angle(self, value: float) -> None:
        self._half_angle = float(value)
        self.cos_angle = math.cos(self._half_angle)
        self.sin_angle = math.sin(self._half_angle)

    @property
    def half_angle_degrees(self) -> float:
        return math.degrees(self._half_angle)

    @half_angle_degrees.setter
    def half_angle_degrees(self, value: float) -> None:
        self.half_angle = math.radians(value)

    @property
    def tan_angle(self) -> float:
        return self.sin_angle / self.cos_angle

    def _decompose(self, pts):
        offsets = pts - self.apex
        s = offsets @ self.axis
        rho = np.linalg.norm(offsets - s[:, None] * self.axis, axis=1)
        return offsets, s, rho

    def signed_distance(self, points):
        """
        Distance to the finite cone.

        Behind the apex the distance to the apex; beyond the base plane but
        inside the base radius the axial overshoot; everywhere else the
        signed distance along the lateral surface normal.
        """
        pts, single = _query(points)
        offsets, s, rho = self._decompose(pts)
        d = rho * self.cos_angle - s * self.sin_angle
        cap = (s > self.height) & (rho <= self.height * self.tan_angle)
        d = np.where(cap, s - self.height, d)
        d = np.where(s < 0, np.linalg.norm(offsets, axis=1), d)
        return _scalar_or_array(d, single)

    def lateral_distance(self, points):
        """Signed distance to the infinite lateral surface, ignoring apex and base."""
        pts, single = _query(points)
        _, s, rho = self._decompose(pts)
        return _scalar_or_array(rho * self.cos_angle - s * self.sin_angle, single)

    def radius_at_height(self, s: float) -> float:
        return max(0.0, float(s)) * self.tan_angle

    @property
    def base_center(self) -> np.ndarray:
        return self.apex + self.height * self.axis

    @property
    def base_radius(self) -> float:
        return self.radius_at_height(self.height)

    def project_point(self, points):
        """Closest point on the lateral surface (clamped at the apex)."""
        pts, single = _query(points)
        offsets, s, rho = self._decompose(pts)
        radial = offsets - s[:, None] * self.axis
        degenerate = rho < 1e-12
        if np.any(degenerate):
            radial[degenerate] = orthonormal_basis(self.axis)[0]
            rho = np.where(degenerate, 1.0, rho)
        generatrix = self.cos_angle * self.axis + self.sin_angle * radial / rho[:, None]
        t = np.maximum(np.einsum("ij,ij->i", offsets, generatrix), 0.0)
        return _point_or_array(self.apex + t[:, None] * generatrix, single)

    def contains_point(self, point, tolerance: float = 0.0) -> bool:
        _, s, rho = self._decompose(np.asarray(point, dtype=np.float64).reshape(1, 3))
        s, rho = s[0], rho[0]
        return bool(-tolerance <= s <= self.height + tolerance
                    and rho <= max(s, 0.0) * self.tan_angle + tolerance)

    @property
    def surface_area(self) -> float:
        r = self.base_radius
        return math.pi * r * (self.height / self.cos_angle) + math.pi * r * r

    @property
    def volume(self) -> float:
        return math.pi * self.base_radius ** 2 * self.height / 3.0

    def is_valid(self) -> bool:
        return bool(
            np.all(np.isfinite(self.apex))
            and 0.0 < self._half_angle < 0.5 * math.pi
            and self.height > 0 and math.isfinite(self.height)
        )

    def transform(self, transform) -> None:
        self.apex = _transform_point(transform, self.apex)
        self.axis = _transform_direction(transform, self.axis)
        self.height *= _mean_scale(transform)

    def __repr__(self) -> str:
        return (f"Cone(apex={np.round(self.apex, 6).tolist()}, axis={np.round(self.axis, 6).tolist()}, "
                f"half_angle={self.half_angle:.6g}, height={self.height:.6g})")
