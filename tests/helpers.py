# SPDX-License-Identifier: GPL-3.0-or-later

"""Synthetic samples shared by the test modules."""

import math

import numpy as np


def fibonacci_sphere(count, center=(0.0, 0.0, 0.0), radius=1.0):
    """Near-uniform points on a sphere with their outward unit normals."""
    i = np.arange(count) + 0.5
    phi = np.arccos(1.0 - 2.0 * i / count)
    theta = math.pi * (1.0 + 5.0 ** 0.5) * i
    normals = np.column_stack([np.cos(theta) * np.sin(phi), np.sin(theta) * np.sin(phi), np.cos(phi)])
    return np.asarray(center) + radius * normals, normals


def ellipsoid(count, axes=(1.5, 1.0, 0.6)):
    """Points on an axis-aligned ellipsoid with outward unit normals."""
    unit, _ = fibonacci_sphere(count)
    a = np.asarray(axes, dtype=np.float64)
    points = unit * a
    normals = points / a ** 2
    normals /= np.linalg.norm(normals, axis=1)[:, None]
    return points, normals


def cylinder_sample(rings, slices, radius=1.0, height=2.0, axis=(0.0, 0.0, 1.0), center=(0.0, 0.0, 0.0)):
    """Regular grid on the lateral surface of a cylinder with outward normals."""
    axis = np.asarray(axis, dtype=np.float64)
    axis /= np.linalg.norm(axis)
    anchor = np.array([1.0, 0.0, 0.0]) if abs(axis[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    u = np.cross(axis, anchor)
    u /= np.linalg.norm(u)
    v = np.cross(axis, u)

    angles = np.linspace(0.0, 2.0 * math.pi, slices, endpoint=False)
    heights = np.linspace(-0.5 * height, 0.5 * height, rings)
    a, h = np.meshgrid(angles, heights)
    a, h = a.ravel(), h.ravel()
    normals = np.cos(a)[:, None] * u + np.sin(a)[:, None] * v
    points = np.asarray(center) + radius * normals + h[:, None] * axis
    return points, normals


def cone_sample(rings, slices, half_angle, height=2.0, apex=(0.0, 0.0, 0.0), axis=(0.0, 0.0, 1.0)):
    """Points on the lateral surface of a cone (excluding the apex) with outward normals."""
    axis = np.asarray(axis, dtype=np.float64)
    axis /= np.linalg.norm(axis)
    anchor = np.array([1.0, 0.0, 0.0]) if abs(axis[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
    u = np.cross(axis, anchor)
    u /= np.linalg.norm(u)
    v = np.cross(axis, u)

    angles = np.linspace(0.0, 2.0 * math.pi, slices, endpoint=False)
    heights = np.linspace(0.2 * height, height, rings)
    a, s = np.meshgrid(angles, heights)
    a, s = a.ravel(), s.ravel()
    radial = np.cos(a)[:, None] * u + np.sin(a)[:, None] * v
    points = np.asarray(apex) + s[:, None] * axis + (s * math.tan(half_angle))[:, None] * radial
    normals = math.cos(half_angle) * radial - math.sin(half_angle) * axis
    return points, normals


def cube_surface(steps=5, half=1.0):
    """Grid points on the six faces of an axis-aligned cube centred at the origin."""
    ticks = np.linspace(-half, half, steps)
    points = set()
    for a in ticks:
        for b in ticks:
            for face in (-half, half):
                points.add((face, a, b))
                points.add((a, face, b))
                points.add((a, b, face))
    return np.array(sorted(points))
