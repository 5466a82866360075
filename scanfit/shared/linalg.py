# SPDX-License-Identifier: GPL-3.0-or-later

"""
Dense linear algebra shared by the primitive fitters, ICP and alignment.

Everything here works on float64 numpy arrays. Solvers signal singular
systems by returning None; the rigid fit returns an identity transform
with success=False. Callers convert those sentinels into result records.
"""

from typing import NamedTuple, Optional

import numpy as np

EPS = np.finfo(np.float32).eps
SINGULAR_TOLERANCE = 1e-10
POWER_ITERATIONS = 50
DEFAULT_SEED = 0

_POWER_SEED = np.array([1.0, 0.5, 0.25])


def as_points(points) -> np.ndarray:
    """Coerce a point or normal sequence to a float64 (N, 3) array."""
    pts = np.asarray(points, dtype=np.float64)
    if pts.size == 0:
        return np.zeros((0, 3))
    if pts.ndim == 1:
        pts = pts.reshape(1, -1)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"Expected an (N, 3) array, got shape {pts.shape}")
    return pts


def normalize(v, eps: float = 1e-12) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    length = np.linalg.norm(v)
    if length < eps:
        return v.copy()
    return v / length


def get_rng(seed=None) -> np.random.Generator:
    """
    Return the random generator used by RANSAC loops.

    A Generator is passed through untouched so callers can share one stream
    across several fits; an integer seeds a fresh generator. Without a seed
    the fixed DEFAULT_SEED is used, never ambient entropy.
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(DEFAULT_SEED if seed is None else seed)


# ============================================================================
# Symmetric 3x3 eigen problems
# ============================================================================

def dominant_eigenvector(matrix, seed=None, iterations: int = POWER_ITERATIONS):
    """
    Power iteration for the eigenvector of the largest eigenvalue.

    Returns (v, eigenvalue). If M·v collapses the current vector is
    returned with a zero eigenvalue.
    """
    M = np.asarray(matrix, dtype=np.float64).reshape(3, 3)
    v = normalize(_POWER_SEED if seed is None else seed)
    for _ in range(iterations):
        w = M @ v
        length = np.linalg.norm(w)
        if length < SINGULAR_TOLERANCE:
            return v, 0.0
        v = w / length
    return v, float(v @ M @ v)


def deflated_eigenvector(matrix, v1, iterations: int = POWER_ITERATIONS):
    """
    Second eigenvector of a symmetric matrix by deflating the first.

    The iterate is kept orthogonal to v1. It starts from whichever of the
    projected seed and the two basis vectors of the plane normal to v1 the
    deflated matrix stretches most, so a seed lying in the null space does
    not collapse the iteration when the top eigenvalues coincide.
    """
    M = np.asarray(matrix, dtype=np.float64).reshape(3, 3)
    v1 = normalize(v1)
    lam1 = float(v1 @ M @ v1)
    deflated = M - lam1 * np.outer(v1, v1)

    starts = list(orthonormal_basis(v1))
    seed = _POWER_SEED - (_POWER_SEED @ v1) * v1
    if np.linalg.norm(seed) >= 1e-6:
        starts.insert(0, normalize(seed))
    v = max(starts, key=lambda s: np.linalg.norm(deflated @ s))

    for _ in range(iterations):
        w = deflated @ v
        w -= (w @ v1) * v1
        length = np.linalg.norm(w)
        if length < SINGULAR_TOLERANCE:
            return v, 0.0
        v = w / length
    return v, float(v @ M @ v)


def power_eigen_frame(matrix):
    """
    Eigen decomposition of a symmetric 3x3 matrix by power iteration.

    Returns (eigenvalues, frame) where the frame columns are v1, v2 and
    v1 x v2 (right-handed), eigenvalues in the same order. Only reliable
    for well separated spectra such as point cloud covariances; use
    principal_axes when two eigenvalues may nearly coincide.
    """
    M = np.asarray(matrix, dtype=np.float64).reshape(3, 3)
    v1, lam1 = dominant_eigenvector(M)
    v2, lam2 = deflated_eigenvector(M, v1)
    v3 = normalize(np.cross(v1, v2))
    lam3 = float(v3 @ M @ v3)
    return np.array([lam1, lam2, lam3]), np.column_stack([v1, v2, v3])


def principal_axes(matrix):
    """
    Same contract as power_eigen_frame backed by LAPACK (numpy.linalg.eigh).

    Eigenvalues are sorted in decreasing order and the frame is right-handed.
    """
    M = np.asarray(matrix, dtype=np.float64).reshape(3, 3)
    values, vectors = np.linalg.eigh(0.5 * (M + M.T))
    values = values[::-1].copy()
    vectors = vectors[:, ::-1].copy()
    if np.linalg.det(vectors) < 0:
        vectors[:, 2] *= -1.0
    return values, vectors


def covariance(points, center=None) -> np.ndarray:
    """Scatter matrix sum((x - c)(x - c)^T) of an (N, 3) array."""
    pts = as_points(points)
    if center is None:
        center = pts.mean(axis=0)
    centered = pts - center
    return centered.T @ centered


# ============================================================================
# Linear solves
# ============================================================================

def gauss_jordan_solve(A, b) -> Optional[np.ndarray]:
    """
    Solve A x = b by Gauss-Jordan elimination with partial pivoting.

    Returns None when a pivot magnitude falls below SINGULAR_TOLERANCE.
    """
    A = np.array(A, dtype=np.float64)
    b = np.array(b, dtype=np.float64).reshape(-1)
    n = A.shape[0]
    if A.shape != (n, n) or b.shape[0] != n:
        raise ValueError(f"Incompatible system shapes {A.shape} and {b.shape}")

    aug = np.hstack([A, b[:, None]])
    for col in range(n):
        pivot = col + int(np.argmax(np.abs(aug[col:, col])))
        if not np.isfinite(aug[pivot, col]) or abs(aug[pivot, col]) < SINGULAR_TOLERANCE:
            return None
        if pivot != col:
            aug[[col, pivot]] = aug[[pivot, col]]
        aug[col] /= aug[col, col]
        factors = aug[:, col].copy()
        factors[col] = 0.0
        aug -= np.outer(factors, aug[col])
    return aug[:, n]


def solve_cramer_3x3(A, b) -> Optional[np.ndarray]:
    """Solve a 3x3 system with Cramer's rule, None when |det| < 1e-10."""
    A = np.asarray(A, dtype=np.float64).reshape(3, 3)
    b = np.asarray(b, dtype=np.float64).reshape(3)
    det = np.linalg.det(A)
    if not np.isfinite(det) or abs(det) < SINGULAR_TOLERANCE:
        return None
    x = np.empty(3)
    for i in range(3):
        Ai = A.copy()
        Ai[:, i] = b
        x[i] = np.linalg.det(Ai) / det
    return x


# ============================================================================
# Rigid transforms
# ============================================================================

class RigidFit(NamedTuple):
    transform: np.ndarray
    success: bool
    message: str = ""


def make_transform(rotation=None, translation=None) -> np.ndarray:
    T = np.eye(4)
    if rotation is not None:
        T[:3, :3] = rotation
    if translation is not None:
        T[:3, 3] = np.asarray(translation, dtype=np.float64).reshape(3)
    return T


def apply_transform(transform, points) -> np.ndarray:
    """Left-multiply a 4x4 homogeneous transform onto (N, 3) points."""
    T = np.asarray(transform, dtype=np.float64)
    pts = as_points(points)
    return pts @ T[:3, :3].T + T[:3, 3]


def normal_matrix(transform) -> np.ndarray:
    """Inverse-transpose of the linear part, used to carry normals."""
    linear = np.asarray(transform, dtype=np.float64)[:3, :3]
    try:
        return np.linalg.inv(linear).T
    except np.linalg.LinAlgError:
        return linear


def transform_normals(transform, normals) -> np.ndarray:
    n = as_points(normals) @ normal_matrix(transform).T
    lengths = np.linalg.norm(n, axis=1)
    lengths[lengths < 1e-12] = 1.0
    return n / lengths[:, None]


def skew(v) -> np.ndarray:
    x, y, z = np.asarray(v, dtype=np.float64).reshape(3)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def rotation_about_axis(axis, angle: float) -> np.ndarray:
    """Rodrigues' formula for a rotation of `angle` radians about `axis`."""
    k = normalize(axis)
    K = skew(k)
    return np.eye(3) + np.sin(angle) * K + (1.0 - np.cos(angle)) * (K @ K)


def rotation_from_vector(omega) -> np.ndarray:
    """Rotation for an axis-angle vector (angle = |omega|)."""
    omega = np.asarray(omega, dtype=np.float64).reshape(3)
    angle = np.linalg.norm(omega)
    if angle < 1e-15:
        return np.eye(3)
    return rotation_about_axis(omega / angle, angle)


def _is_collinear(centered: np.ndarray) -> bool:
    s = np.linalg.svd(centered, compute_uv=False)
    return s[0] < 1e-12 or s[1] <= 1e-9 * s[0]


def rigid_fit(source, target, weights=None) -> RigidFit:
    """
    Weighted Kabsch/Umeyama fit of a proper rigid transform S -> T.

    Minimises sum w_i |R s_i + t - t_i|^2. The reflection correction
    diag(1, 1, det(V U^T)) keeps det(R) = +1.
    """
    identity = np.eye(4)
    src = as_points(source)
    dst = as_points(target)
    if len(src) != len(dst):
        return RigidFit(identity, False, "Source and target point counts differ")

    w = np.ones(len(src)) if weights is None else np.asarray(weights, dtype=np.float64).reshape(-1)
    if len(w) != len(src):
        return RigidFit(identity, False, "Weight count does not match point count")
    if not np.all(np.isfinite(w)) or np.any(w < 0):
        return RigidFit(identity, False, "Weights must be finite and non-negative")

    active = w > 0
    if np.count_nonzero(active) < 3:
        return RigidFit(identity, False, "Need at least 3 point pairs")

    w_sum = w.sum()
    src_centroid = (w[:, None] * src).sum(axis=0) / w_sum
    dst_centroid = (w[:, None] * dst).sum(axis=0) / w_sum
    src_centered = src - src_centroid
    dst_centered = dst - dst_centroid

    try:
        if _is_collinear(src_centered[active]) or _is_collinear(dst_centered[active]):
            return RigidFit(identity, False, "Point pairs are collinear")
        H = (w[:, None] * src_centered).T @ dst_centered
        U, _, Vt = np.linalg.svd(H)
    except np.linalg.LinAlgError as e:
        return RigidFit(identity, False, f"SVD failed: {e}")

    V = Vt.T
    d = 1.0 if np.linalg.det(V @ U.T) >= 0 else -1.0
    R = V @ np.diag([1.0, 1.0, d]) @ U.T
    t = dst_centroid - R @ src_centroid
    return RigidFit(make_transform(R, t), True, "")


# ============================================================================
# Geometry helpers
# ============================================================================

def orthonormal_basis(axis):
    """
    In-plane basis (u, v) perpendicular to `axis` with v = axis x u.

    The anchor is the X axis unless the axis is close to X, then Y.
    """
    a = normalize(axis)
    anchor = np.array([1.0, 0.0, 0.0]) if abs(a[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    u = normalize(np.cross(a, anchor))
    v = np.cross(a, u)
    return u, v


def bbox_diagonal(points) -> float:
    pts = as_points(points)
    if len(pts) == 0:
        return 0.0
    return float(np.linalg.norm(pts.max(axis=0) - pts.min(axis=0)))
