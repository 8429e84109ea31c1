#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Feature matching module.

Matchers turn two feature sets into an ordered list of correspondences
(query index into the first set, train index into the second). The geometry
core only relies on that index array; confidences are informational.

Date: 2026-10-18
"""

import numpy as np
import cv2
import logging
import threading
from typing import Optional
from dataclasses import dataclass

from relpose.core.features import FeatureData

logger = logging.getLogger(__name__)

# Largest L2 distance between two SIFT descriptors
MAX_SIFT_DISTANCE = 512.0
# Largest Hamming distance between two 256-bit ORB descriptors
MAX_HAMMING_DISTANCE = 256.0


@dataclass
class MatchData:
    """Container for feature matching data."""
    matches: np.ndarray  # Mx2 array of feature indices (idx_a, idx_b)
    confidence: Optional[np.ndarray] = None  # M array of match confidence scores
    match_type: str = "unknown"  # Type of matching algorithm used

    def __post_init__(self):
        self.matches = np.asarray(self.matches, dtype=int).reshape(-1, 2)
        if self.confidence is None:
            self.confidence = np.ones(len(self.matches), dtype=float)

    @property
    def num_matches(self) -> int:
        """Get number of matches."""
        return len(self.matches)

    def filter_by_confidence(self, threshold: float) -> 'MatchData':
        """Filter matches by confidence score.

        Args:
            threshold: Confidence threshold

        Returns:
            Filtered match data
        """
        mask = self.confidence >= threshold
        return MatchData(
            matches=self.matches[mask],
            confidence=self.confidence[mask],
            match_type=self.match_type
        )

    @classmethod
    def empty(cls, match_type: str = "unknown") -> 'MatchData':
        return cls(matches=np.zeros((0, 2), dtype=int),
                   confidence=np.zeros(0, dtype=float),
                   match_type=match_type)


def filter_valid_matches(matches: np.ndarray, num_features1: int, num_features2: int) -> np.ndarray:
    """Drop correspondences whose indices fall outside either feature set.

    Args:
        matches: Mx2 correspondence array
        num_features1: Number of keypoints in the first set
        num_features2: Number of keypoints in the second set

    Returns:
        The rows that satisfy 0 <= idx < count on both sides
    """
    matches = np.asarray(matches, dtype=int).reshape(-1, 2)
    valid = ((matches[:, 0] >= 0) & (matches[:, 0] < num_features1) &
             (matches[:, 1] >= 0) & (matches[:, 1] < num_features2))

    num_invalid = int(np.count_nonzero(~valid))
    if num_invalid > 0:
        logger.warning(f"Discarding {num_invalid} correspondences with out-of-range indices")

    return matches[valid]


class FeatureMatcher:
    """Base class for feature matchers."""

    def __init__(self, name: str):
        """Initialize feature matcher.

        Args:
            name: Name of the feature matcher
        """
        self.name = name

    def match(self,
              features1: FeatureData,
              features2: FeatureData,
              cancel: Optional[threading.Event] = None) -> MatchData:
        """Match features between two images.

        Args:
            features1: Features from first image
            features2: Features from second image
            cancel: Cancellation signal

        Returns:
            Match data
        """
        raise NotImplementedError("Subclasses must implement match")


class MutualNNMatcher(FeatureMatcher):
    """Mutual Nearest Neighbor matcher."""

    def __init__(self, ratio_threshold: float = 0.8, cross_check: bool = True):
        """Initialize mutual nearest neighbor matcher.

        Args:
            ratio_threshold: Ratio test threshold (Lowe's ratio test)
            cross_check: Whether to use cross-checking
        """
        super().__init__("mutual_nn")
        self.ratio_threshold = ratio_threshold
        self.cross_check = cross_check

    def _ratio_test(self, knn_matches) -> list:
        good = []
        for pair in knn_matches:
            # Fewer than two neighbours when the other set is tiny
            if len(pair) < 2:
                continue
            m, n = pair
            if m.distance < self.ratio_threshold * n.distance:
                good.append(m)
        return good

    def match(self,
              features1: FeatureData,
              features2: FeatureData,
              cancel: Optional[threading.Event] = None) -> MatchData:
        """Match features using mutual nearest neighbors with ratio test.

        Args:
            features1: Features from first image
            features2: Features from second image
            cancel: Cancellation signal, checked between the two directions

        Returns:
            Match data
        """
        desc1 = features1.descriptors
        desc2 = features2.descriptors

        # Check if we have descriptors
        if desc1 is None or desc2 is None or len(desc1) == 0 or len(desc2) == 0:
            logger.warning("No descriptors to match")
            return MatchData.empty(self.name)

        if cancel is not None and cancel.is_set():
            return MatchData.empty(self.name)

        # Binary descriptors are compared with Hamming distance
        if desc1.dtype == np.uint8 and desc2.dtype == np.uint8:
            matcher = cv2.BFMatcher(cv2.NORM_HAMMING)
            max_dist = MAX_HAMMING_DISTANCE
        else:
            desc1 = desc1.astype(np.float32)
            desc2 = desc2.astype(np.float32)
            matcher = cv2.BFMatcher(cv2.NORM_L2)
            max_dist = MAX_SIFT_DISTANCE

        # Match descriptors (k=2 for ratio test)
        good_matches_1to2 = self._ratio_test(matcher.knnMatch(desc1, desc2, k=2))

        if self.cross_check:
            if cancel is not None and cancel.is_set():
                return MatchData.empty(self.name)

            good_matches_2to1 = self._ratio_test(matcher.knnMatch(desc2, desc1, k=2))

            # Create reverse mapping for quick lookup
            reverse_map = {m.queryIdx: m.trainIdx for m in good_matches_2to1}

            good_matches_1to2 = [
                m for m in good_matches_1to2
                if reverse_map.get(m.trainIdx) == m.queryIdx
            ]

        matches = np.array([(m.queryIdx, m.trainIdx) for m in good_matches_1to2], dtype=int).reshape(-1, 2)

        # Compute confidence from distance
        confidence = np.array([1.0 - min(m.distance / max_dist, 1.0) for m in good_matches_1to2], dtype=float)

        return MatchData(
            matches=matches,
            confidence=confidence,
            match_type=self.name
        )
