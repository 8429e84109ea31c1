#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Two-view linear triangulation (Direct Linear Transform).

Camera 1 sits at the origin with identity orientation; camera 2 is placed by
the relative pose. Points are returned in camera 1's frame. Every rejection
below is an independent short-circuit, evaluated in order, and yields None.

Date: 2026-10-18
"""

import numpy as np
import logging
from typing import List, Optional

from relpose.core.camera import RelativePose

logger = logging.getLogger(__name__)

# Rejection thresholds
MIN_SINGULAR_VALUE = 1e-10  # Largest singular value below this: no solution
MAX_CONDITION_NUMBER = 1e8  # Ill-conditioned constraint system
MIN_HOMOGENEOUS_SCALE = 1e-10  # Point at infinity
MIN_DEPTH = 1e-6  # Cheirality in camera 1
MAX_SQUARED_DISTANCE = 1e8  # Implausibly far from camera 1


def build_dlt_system(point1: np.ndarray,
                     point2: np.ndarray,
                     P1: np.ndarray,
                     P2: np.ndarray) -> np.ndarray:
    """Stack the 4x4 homogeneous system A X = 0 for one correspondence.

    Args:
        point1: Pixel (x, y) in the first image
        point2: Pixel (x, y) in the second image
        P1: 3x4 projection matrix of the first camera
        P2: 3x4 projection matrix of the second camera

    Returns:
        4x4 coefficient matrix
    """
    x1, y1 = float(point1[0]), float(point1[1])
    x2, y2 = float(point2[0]), float(point2[1])

    A = np.zeros((4, 4))
    A[0] = x1 * P1[2] - P1[0]
    A[1] = y1 * P1[2] - P1[1]
    A[2] = x2 * P2[2] - P2[0]
    A[3] = y2 * P2[2] - P2[1]

    return A


def triangulate_point(point1: np.ndarray,
                      point2: np.ndarray,
                      K1: np.ndarray,
                      K2: np.ndarray,
                      pose: RelativePose) -> Optional[np.ndarray]:
    """Triangulate one 3D point from two calibrated observations.

    Args:
        point1: Pixel (x, y) in the first image
        point2: Pixel (x, y) in the second image
        K1: 3x3 intrinsic matrix of the first camera
        K2: 3x3 intrinsic matrix of the second camera
        pose: Relative pose of camera 2 with respect to camera 1

    Returns:
        3D point in camera 1's frame, or None if the geometry is degenerate
    """
    P1 = K1 @ np.hstack([np.eye(3), np.zeros((3, 1))])
    P2 = pose.projection_matrix(K2)

    A = build_dlt_system(point1, point2, P1, P2)

    try:
        _, S, Vt = np.linalg.svd(A)
    except np.linalg.LinAlgError:
        return None

    # (a) No meaningful solution
    if S[0] < MIN_SINGULAR_VALUE:
        return None

    # (b) Ill-conditioned. The smallest singular value belongs to the solution
    # itself (zero for noise-free data), so conditioning is measured over the
    # three constraint directions.
    if S[2] <= 0 or S[0] / S[2] > MAX_CONDITION_NUMBER:
        return None

    X = Vt[-1]

    # (c) Point at infinity
    if abs(X[3]) < MIN_HOMOGENEOUS_SCALE:
        return None

    point = X[:3] / X[3]

    # (d) Behind or at camera 1
    if point[2] <= MIN_DEPTH:
        return None

    # (e) Too far away to be numerically reliable
    if float(np.dot(point, point)) > MAX_SQUARED_DISTANCE:
        return None

    return point


def triangulate_points(points1: np.ndarray,
                       points2: np.ndarray,
                       K1: np.ndarray,
                       K2: np.ndarray,
                       pose: RelativePose) -> List[Optional[np.ndarray]]:
    """Triangulate every row of two aligned Nx2 pixel arrays.

    Returns:
        List with one entry per row: the 3D point or None
    """
    points1 = np.asarray(points1, dtype=np.float64)
    points2 = np.asarray(points2, dtype=np.float64)

    if points1.shape != points2.shape:
        raise ValueError(f"Point arrays must have the same shape: {points1.shape} vs {points2.shape}")

    return [triangulate_point(p1, p2, K1, K2, pose) for p1, p2 in zip(points1, points2)]
