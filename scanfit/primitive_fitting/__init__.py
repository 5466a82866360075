# SPDX-License-Identifier: GPL-3.0-or-later
"""
Primitive Fitting Module

Provides:
- Plane, Sphere, Cylinder, Cone: analytical surfaces with distance queries
- fit_plane / fit_sphere / fit_cylinder / fit_cone: per-type fitters
- PrimitiveFitter: type detection and best-fit dispatch over mesh selections
- FitResult: quality record shared by every fitter
"""

from .primitives import Plane, Sphere, Cylinder, Cone
from .results import FitResult, PrimitiveType, compute_confidence
from .plane_fit import fit_plane, fit_plane_ransac, fit_plane_to_selection, least_squares_plane
from .sphere_fit import fit_sphere, fit_sphere_ransac, algebraic_sphere, geometric_sphere
from .cylinder_fit import fit_cylinder
from .cone_fit import fit_cone
from .fitting import PrimitiveFitter, DetectionScores

__all__ = [
    'Plane',
    'Sphere',
    'Cylinder',
    'Cone',
    'FitResult',
    'PrimitiveType',
    'compute_confidence',
    # Fitters
    'fit_plane',
    'fit_plane_ransac',
    'fit_plane_to_selection',
    'least_squares_plane',
    'fit_sphere',
    'fit_sphere_ransac',
    'algebraic_sphere',
    'geometric_sphere',
    'fit_cylinder',
    'fit_cone',
    'PrimitiveFitter',
    'DetectionScores',
]
