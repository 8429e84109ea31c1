#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Geometry primitives shared by the two-view estimators.

Homogeneous coordinates, Hartley normalization of image points, rigid
transforms and rotation helpers. Everything here works on plain numpy arrays.

Date: 2026-10-18
"""

import numpy as np
import cv2
import logging
from typing import Tuple, Optional

logger = logging.getLogger(__name__)

def to_homogeneous(points: np.ndarray) -> np.ndarray:
    """Append a column of ones to an Nx2 (or Nx3) point array.

    Args:
        points: NxD array of points

    Returns:
        Nx(D+1) array of homogeneous points
    """
    points = np.asarray(points, dtype=np.float64)
    ones = np.ones((points.shape[0], 1))
    return np.hstack([points, ones])


def normalize_image_points(points: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """Hartley-normalize 2D points (centroid at origin, mean distance sqrt(2)).

    Args:
        points: Nx2 array of pixel coordinates

    Returns:
        Tuple of (Nx2 normalized points, 3x3 normalizing transform T), or None
        when the points coincide and no scale can be defined
    """
    points = np.asarray(points, dtype=np.float64)
    center = np.mean(points, axis=0)
    centered = points - center

    mean_dist = np.mean(np.linalg.norm(centered, axis=1))

    # Degenerate case: every point at the centroid
    if not np.isfinite(mean_dist) or mean_dist < 1e-10:
        return None

    scale = np.sqrt(2.0) / mean_dist

    T = np.array([
        [scale, 0.0, -scale * center[0]],
        [0.0, scale, -scale * center[1]],
        [0.0, 0.0, 1.0]
    ])

    normalized = (T @ to_homogeneous(points).T).T[:, :2]

    return normalized, T


def skew_symmetric(v: np.ndarray) -> np.ndarray:
    """Cross-product matrix [v]x such that [v]x @ w == cross(v, w)."""
    x, y, z = np.asarray(v, dtype=np.float64).flatten()
    return np.array([
        [0.0, -z, y],
        [z, 0.0, -x],
        [-y, x, 0.0]
    ])


def create_transformation_matrix(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Create 4x4 transformation matrix from rotation and translation.

    Args:
        R: 3x3 rotation matrix
        t: 3-element translation vector

    Returns:
        4x4 transformation matrix
    """
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = np.asarray(t).flatten()
    return T


def invert_rigid_transform(R: np.ndarray, t: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Invert the rigid transform X' = R X + t.

    Returns:
        Tuple of (R^T, -R^T t)
    """
    R_inv = R.T
    t_inv = -R_inv @ np.asarray(t).flatten()
    return R_inv, t_inv


def transform_points(points: np.ndarray, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Apply X' = R X + t to a single 3-vector or an Nx3 array."""
    points = np.asarray(points, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64).flatten()

    if points.ndim == 1:
        return R @ points + t

    return (R @ points.T).T + t


def rodrigues_to_rotation_matrix(rvec: np.ndarray) -> np.ndarray:
    """Convert Rodrigues rotation vector to 3x3 rotation matrix.

    Args:
        rvec: 3-element Rodrigues rotation vector

    Returns:
        3x3 rotation matrix
    """
    R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
    return R


def rotation_angle_between(R1: np.ndarray, R2: np.ndarray) -> float:
    """Geodesic angle (degrees) between two rotation matrices."""
    R_delta = R1.T @ R2
    cos_angle = np.clip((np.trace(R_delta) - 1.0) / 2.0, -1.0, 1.0)
    return float(np.degrees(np.arccos(cos_angle)))


def translation_direction_angle(t1: np.ndarray, t2: np.ndarray) -> float:
    """Angle (degrees) between two translation directions, ignoring sign and scale.

    Returns:
        Angle in [0, 90], or 180.0 when either vector has zero length
    """
    t1 = np.asarray(t1, dtype=np.float64).flatten()
    t2 = np.asarray(t2, dtype=np.float64).flatten()
    n1 = np.linalg.norm(t1)
    n2 = np.linalg.norm(t2)
    if n1 < 1e-12 or n2 < 1e-12:
        return 180.0

    cos_angle = np.clip(abs(np.dot(t1, t2)) / (n1 * n2), 0.0, 1.0)
    return float(np.degrees(np.arccos(cos_angle)))
