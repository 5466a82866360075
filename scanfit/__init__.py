# SPDX-License-Identifier: GPL-3.0-or-later
"""
ScanFit - Primitive fitting, rigid alignment and symmetry detection for scanned meshes

Recovers planes, spheres, cylinders and cones from mesh samples, aligns
scans to a world coordinate system or to each other (WCS features, point
pairs, ICP) and detects planes of mirror symmetry.
"""

from .config import (
    AlignmentOptions,
    ConeFitOptions,
    CylinderFitOptions,
    FitOptions,
    ICPAlgorithm,
    ICPOptions,
    PlaneFitOptions,
    SphereFitOptions,
    SymmetryOptions,
)
from .mesh import BoundingBox, MeshSample
from .primitive_fitting import Cone, Cylinder, FitResult, Plane, PrimitiveFitter, PrimitiveType, Sphere
from .registration import ICP, KDTree, align_by_n_points, align_interactive, align_to_wcs, fine_align
from .symmetry import MultiSymmetryDetector, SymmetryDetector, SymmetryResult

__version__ = "0.1.0"

__all__ = [
    'AlignmentOptions',
    'ConeFitOptions',
    'CylinderFitOptions',
    'FitOptions',
    'ICPAlgorithm',
    'ICPOptions',
    'PlaneFitOptions',
    'SphereFitOptions',
    'SymmetryOptions',
    'BoundingBox',
    'MeshSample',
    'Plane',
    'Sphere',
    'Cylinder',
    'Cone',
    'FitResult',
    'PrimitiveFitter',
    'PrimitiveType',
    'ICP',
    'KDTree',
    'align_to_wcs',
    'align_by_n_points',
    'align_interactive',
    'fine_align',
    'SymmetryDetector',
    'MultiSymmetryDetector',
    'SymmetryResult',
]
