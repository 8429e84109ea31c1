#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
RANSAC relative-pose estimation between two calibrated images.

Each iteration fits a fundamental matrix to a minimal sample, turns it into
the four essential-matrix pose candidates and scores the sample's Sampson
inliers over every correspondence. A hypothesis only replaces the running
best after it passes majority cheirality verification on its inliers.

Date: 2026-10-18
"""

import numpy as np
import logging
import threading
from typing import Optional
from dataclasses import dataclass

from relpose.core.camera import RelativePose
from relpose.core.epipolar import (
    compute_essential_matrix,
    compute_inlier_mask,
    decompose_essential_matrix,
    estimate_fundamental_matrix,
)
from relpose.core.matching import filter_valid_matches
from relpose.core.triangulation import triangulate_point

logger = logging.getLogger(__name__)

@dataclass
class RansacOptions:
    """Options for RANSAC relative-pose estimation."""
    iterations: int = 2000  # Fixed iteration budget
    threshold: float = 1.5  # Sampson distance threshold in pixels
    sample_size: int = 8  # Correspondences per minimal sample
    verification_samples: int = 10  # Inliers triangulated during cheirality verification
    seed: Optional[int] = None  # Seed for the per-call random generator

    def __post_init__(self):
        if self.iterations < 1:
            raise ValueError(f"iterations must be positive, got {self.iterations}")
        if self.threshold <= 0:
            raise ValueError(f"threshold must be positive, got {self.threshold}")
        if self.sample_size < 8:
            raise ValueError(f"sample_size must be at least 8, got {self.sample_size}")
        if self.verification_samples < 1:
            raise ValueError(f"verification_samples must be positive, got {self.verification_samples}")


@dataclass
class PoseEstimate:
    """Outcome of a relative-pose estimation."""
    pose: Optional[RelativePose]  # None when no hypothesis passed verification
    inliers: np.ndarray  # Kx2 correspondences supporting the pose

    @property
    def found(self) -> bool:
        return self.pose is not None

    @property
    def num_inliers(self) -> int:
        return len(self.inliers)

    @classmethod
    def empty(cls) -> 'PoseEstimate':
        return cls(pose=None, inliers=np.zeros((0, 2), dtype=int))


def verify_pose_geometry(pose: Optional[RelativePose],
                         points1: np.ndarray,
                         points2: np.ndarray,
                         K1: np.ndarray,
                         K2: np.ndarray,
                         max_samples: int = 10) -> bool:
    """Check that a pose puts most inlier points in front of both cameras.

    Args:
        pose: Candidate relative pose
        points1: Kx2 inlier pixels in the first image, in inlier order
        points2: Kx2 inlier pixels in the second image
        K1: Intrinsic matrix of the first camera
        K2: Intrinsic matrix of the second camera
        max_samples: Number of leading inliers to triangulate

    Returns:
        True iff strictly more than half of the sampled points have positive
        depth in both camera frames
    """
    if pose is None or len(points1) == 0:
        return False

    sample_count = min(max_samples, len(points1))
    in_front = 0

    for i in range(sample_count):
        point = triangulate_point(points1[i], points2[i], K1, K2, pose)
        if point is None:
            continue

        point_b = pose.transform(point)
        if point[2] > 0 and point_b[2] > 0:
            in_front += 1

    return 2 * in_front > sample_count


class RelativePoseEstimator:
    """Robust relative-pose estimation with a fixed RANSAC budget."""

    def __init__(self, options: Optional[RansacOptions] = None):
        """Initialize estimator.

        Args:
            options: RANSAC options
        """
        self.options = options or RansacOptions()

    def _make_rng(self, rng: Optional[np.random.Generator]) -> np.random.Generator:
        if rng is not None:
            return rng
        return np.random.default_rng(self.options.seed)

    def estimate(self,
                 keypoints1: np.ndarray,
                 keypoints2: np.ndarray,
                 matches: np.ndarray,
                 K1: np.ndarray,
                 K2: np.ndarray,
                 cancel: Optional[threading.Event] = None,
                 rng: Optional[np.random.Generator] = None) -> PoseEstimate:
        """Estimate the pose of camera 2 relative to camera 1.

        Args:
            keypoints1: Nx2 keypoints of the first image
            keypoints2: Nx2 keypoints of the second image
            matches: Mx2 correspondences (index into keypoints1, index into keypoints2)
            K1: Intrinsic matrix of the first camera
            K2: Intrinsic matrix of the second camera
            cancel: Cancellation signal, checked between iterations
            rng: Random generator for sampling (a fresh one seeded from the
                options is used otherwise)

        Returns:
            Best verified pose and its inlier correspondences, or an empty
            estimate if none was found or the run was cancelled
        """
        keypoints1 = np.asarray(keypoints1, dtype=np.float64).reshape(-1, 2)
        keypoints2 = np.asarray(keypoints2, dtype=np.float64).reshape(-1, 2)
        matches = filter_valid_matches(matches, len(keypoints1), len(keypoints2))

        num_matches = len(matches)
        if num_matches < self.options.sample_size:
            logger.debug(f"Not enough correspondences for RANSAC: {num_matches}")
            return PoseEstimate.empty()

        points1 = keypoints1[matches[:, 0]]
        points2 = keypoints2[matches[:, 1]]
        rng = self._make_rng(rng)

        best_pose = None
        best_mask = None
        best_count = 0

        for iteration in range(self.options.iterations):
            if cancel is not None and cancel.is_set():
                logger.debug(f"RANSAC cancelled after {iteration} iterations")
                return PoseEstimate.empty()

            sample = rng.choice(num_matches, self.options.sample_size, replace=False)

            F = estimate_fundamental_matrix(points1[sample], points2[sample])
            if F is None:
                continue

            E = compute_essential_matrix(F, K1, K2)
            candidates = decompose_essential_matrix(E)

            # Inliers are scored for the sampled F, so every candidate shares
            # the same count and the first enumerated one is kept
            mask = compute_inlier_mask(F, points1, points2, self.options.threshold)
            count = int(np.count_nonzero(mask))
            hypothesis = candidates[0]

            if count <= best_count:
                continue

            if verify_pose_geometry(hypothesis, points1[mask], points2[mask], K1, K2,
                                    self.options.verification_samples):
                best_pose = hypothesis
                best_mask = mask
                best_count = count

        if best_pose is None:
            return PoseEstimate.empty()

        return PoseEstimate(pose=best_pose, inliers=matches[best_mask])

    def estimate_from_points(self,
                             points1: np.ndarray,
                             points2: np.ndarray,
                             K1: np.ndarray,
                             K2: np.ndarray,
                             cancel: Optional[threading.Event] = None,
                             rng: Optional[np.random.Generator] = None) -> PoseEstimate:
        """Estimate a relative pose from aligned raw pixel pairs.

        Row i of points1 corresponds to row i of points2.
        """
        points1 = np.asarray(points1, dtype=np.float64).reshape(-1, 2)
        points2 = np.asarray(points2, dtype=np.float64).reshape(-1, 2)

        if points1.shape != points2.shape:
            raise ValueError(f"Point arrays must have the same shape: {points1.shape} vs {points2.shape}")

        identity = np.repeat(np.arange(len(points1)), 2).reshape(-1, 2)
        return self.estimate(points1, points2, identity, K1, K2, cancel=cancel, rng=rng)
