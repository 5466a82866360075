# SPDX-License-Identifier: GPL-3.0-or-later
"""
Registration Module

Provides:
- KDTree: nearest-neighbour search used by ICP and symmetry scoring
- ICP: point-to-point and point-to-plane iterative closest point
- align_to_wcs / align_by_n_points / align_interactive / fine_align
"""

from .kdtree import KDTree, NearestNeighbor
from .icp import ICP, ICPResult, Correspondence, Correspondences
from .alignment import (
    AlignmentFeature,
    AlignmentResult,
    FeatureKind,
    PointPair,
    WCSAxis,
    align_to_wcs,
    align_by_n_points,
    align_interactive,
    fine_align,
)

__all__ = [
    'KDTree',
    'NearestNeighbor',
    'ICP',
    'ICPResult',
    'Correspondence',
    'Correspondences',
    # Alignment
    'AlignmentFeature',
    'AlignmentResult',
    'FeatureKind',
    'PointPair',
    'WCSAxis',
    'align_to_wcs',
    'align_by_n_points',
    'align_interactive',
    'fine_align',
]
