# SPDX-License-Identifier: GPL-3.0-or-later
"""
Symmetry Module

Provides:
- SymmetryDetector: best mirror plane of a point sample
- MultiSymmetryDetector: several distinct planes plus rotational fold checks
"""

from .detector import (
    MultiSymmetryDetector,
    SymmetryDetector,
    SymmetryResult,
    reflect_point,
    reflect_points,
)

__all__ = [
    'SymmetryDetector',
    'MultiSymmetryDetector',
    'SymmetryResult',
    'reflect_point',
    'reflect_points',
]
