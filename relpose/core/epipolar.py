#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Epipolar geometry: fundamental and essential matrices.

Implements the normalized eight-point algorithm with rank-2 enforcement,
the essential matrix E = K2^T F K1, its decomposition into the four
candidate relative poses, and Sampson-distance inlier scoring.

Convention: for a correspondence (p1 in image A, p2 in image B),
p2^T F p1 = 0.

Date: 2026-10-18
"""

import numpy as np
import logging
from typing import List, Optional

from relpose.core.camera import RelativePose
from relpose.utils.transforms import normalize_image_points, skew_symmetric, to_homogeneous

logger = logging.getLogger(__name__)

MIN_POINTS = 8

# 90 degree rotation about z used to split E into rotations
W = np.array([
    [0.0, -1.0, 0.0],
    [1.0, 0.0, 0.0],
    [0.0, 0.0, 1.0]
])


def build_design_matrix(points1: np.ndarray, points2: np.ndarray) -> np.ndarray:
    """Build the Nx9 coefficient matrix of the eight-point algorithm.

    Args:
        points1: Nx2 points in the first image
        points2: Nx2 points in the second image

    Returns:
        Nx9 matrix whose rows are the outer-product terms of p2 and p1
    """
    x1, y1 = points1[:, 0], points1[:, 1]
    x2, y2 = points2[:, 0], points2[:, 1]
    ones = np.ones(len(points1))

    return np.column_stack([
        x2 * x1, x2 * y1, x2,
        y2 * x1, y2 * y1, y2,
        x1, y1, ones
    ])


def enforce_rank2(F: np.ndarray) -> np.ndarray:
    """Enforce the rank-2 epipolar constraint by zeroing the smallest singular value.

    Args:
        F: 3x3 matrix

    Returns:
        Rank-2 matrix closest to F in Frobenius norm
    """
    U, S, Vt = np.linalg.svd(F)
    S[2] = 0.0
    return U @ np.diag(S) @ Vt


def estimate_fundamental_matrix(points1: np.ndarray,
                                points2: np.ndarray) -> Optional[np.ndarray]:
    """Estimate the fundamental matrix with the normalized eight-point algorithm.

    Args:
        points1: Nx2 pixel coordinates in the first image (N >= 8)
        points2: Nx2 pixel coordinates in the second image

    Returns:
        3x3 rank-2 fundamental matrix (unit Frobenius norm), or None for a
        degenerate sample
    """
    points1 = np.asarray(points1, dtype=np.float64)
    points2 = np.asarray(points2, dtype=np.float64)

    if points1.shape != points2.shape:
        raise ValueError(f"Point arrays must have the same shape: {points1.shape} vs {points2.shape}")

    if len(points1) < MIN_POINTS:
        return None

    normalized1 = normalize_image_points(points1)
    normalized2 = normalize_image_points(points2)
    if normalized1 is None or normalized2 is None:
        return None

    pts1_norm, T1 = normalized1
    pts2_norm, T2 = normalized2

    A = build_design_matrix(pts1_norm, pts2_norm)

    try:
        _, S, Vt = np.linalg.svd(A)

        # Rank-deficient design matrix (repeated or collinear samples):
        # the null space is not one-dimensional
        if S[MIN_POINTS - 1] < 1e-10 * S[0]:
            return None

        F_norm = enforce_rank2(Vt[-1].reshape(3, 3))
    except np.linalg.LinAlgError:
        return None

    F = T2.T @ F_norm @ T1

    norm = np.linalg.norm(F)
    if not np.isfinite(norm) or norm < 1e-12:
        return None

    return F / norm


def compute_essential_matrix(F: np.ndarray, K1: np.ndarray, K2: np.ndarray) -> np.ndarray:
    """Compute the essential matrix E = K2^T F K1."""
    return K2.T @ F @ K1


def decompose_essential_matrix(E: np.ndarray) -> List[RelativePose]:
    """Decompose an essential matrix into its four candidate relative poses.

    Args:
        E: 3x3 essential matrix

    Returns:
        Poses in the order (R1, +t), (R1, -t), (R2, +t), (R2, -t)
    """
    U, _, Vt = np.linalg.svd(E)

    # Translation direction: left null vector of E
    t = U[:, 2]

    R1 = U @ W @ Vt
    R2 = U @ W.T @ Vt

    # Ensure rotations have det(R) = 1
    if np.linalg.det(R1) < 0:
        R1 = -R1
    if np.linalg.det(R2) < 0:
        R2 = -R2

    return [
        RelativePose(R1, t),
        RelativePose(R1, -t),
        RelativePose(R2, t),
        RelativePose(R2, -t)
    ]


def sampson_distance(F: np.ndarray, points1: np.ndarray, points2: np.ndarray) -> np.ndarray:
    """Squared Sampson distance of each correspondence to F.

    Args:
        F: 3x3 fundamental matrix
        points1: Nx2 points in the first image
        points2: Nx2 points in the second image

    Returns:
        N array of squared distances in pixels^2 (inf where undefined)
    """
    p1 = to_homogeneous(points1)
    p2 = to_homogeneous(points2)

    Fp1 = p1 @ F.T  # rows: F @ p1
    Ftp2 = p2 @ F  # rows: F^T @ p2
    p2tFp1 = np.sum(p2 * Fp1, axis=1)

    denominator = Fp1[:, 0] ** 2 + Fp1[:, 1] ** 2 + Ftp2[:, 0] ** 2 + Ftp2[:, 1] ** 2

    distances = np.full(len(p1), np.inf)
    valid = np.abs(denominator) >= 1e-8
    distances[valid] = p2tFp1[valid] ** 2 / denominator[valid]

    return distances


def compute_inlier_mask(F: np.ndarray,
                        points1: np.ndarray,
                        points2: np.ndarray,
                        threshold: float) -> np.ndarray:
    """Boolean mask of correspondences whose Sampson distance is within threshold pixels."""
    return sampson_distance(F, points1, points2) < threshold * threshold


def essential_from_pose(pose: RelativePose) -> np.ndarray:
    """Build E = [t]x R for a known relative pose."""
    return skew_symmetric(pose.t) @ pose.R


def fundamental_from_pose(pose: RelativePose, K1: np.ndarray, K2: np.ndarray) -> np.ndarray:
    """Build F = K2^-T [t]x R K1^-1 for a known relative pose."""
    E = essential_from_pose(pose)
    return np.linalg.inv(K2).T @ E @ np.linalg.inv(K1)
