#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Image records and feature extraction.

An Image carries its calibration and, once detection has run, a write-once
set of keypoints. Detectors are black boxes behind FeatureExtractor; SIFT and
ORB are provided through OpenCV.

Date: 2026-10-18
"""

import numpy as np
import cv2
import logging
import threading
from typing import Any, Hashable, List, Optional, Tuple
from dataclasses import dataclass

from relpose.core.camera import readonly_matrix

logger = logging.getLogger(__name__)

@dataclass
class FeatureData:
    """Container for feature data."""
    keypoints: np.ndarray  # Nx2 array of (x, y) coordinates
    descriptors: Optional[np.ndarray] = None  # NxD array of descriptors
    image_size: Tuple[int, int] = (0, 0)  # (width, height) of the source image
    feature_type: str = "unknown"  # Type of features (e.g., 'sift', 'orb', 'manual')

    def __post_init__(self):
        self.keypoints = np.asarray(self.keypoints, dtype=np.float64).reshape(-1, 2)

    @property
    def num_features(self) -> int:
        """Get number of features."""
        return len(self.keypoints)

    @classmethod
    def from_points(cls, points: np.ndarray, feature_type: str = "manual") -> 'FeatureData':
        """Wrap raw pixel coordinates as a descriptor-less feature set."""
        return cls(keypoints=points, feature_type=feature_type)


class Image:
    """A calibrated image taking part in pairwise alignment."""

    def __init__(self,
                 image_id: Hashable,
                 intrinsics: np.ndarray,
                 name: Optional[str] = None,
                 data: Optional[np.ndarray] = None):
        """Initialize image.

        Args:
            image_id: Opaque identifier, unique within a run
            intrinsics: 3x3 intrinsic matrix K (stored as a read-only copy)
            name: Display name (defaults to str(image_id))
            data: Pixel data handed to the feature extractor
        """
        self.image_id = image_id
        self.name = name if name is not None else str(image_id)
        self.data = data
        self._intrinsics = readonly_matrix(intrinsics)
        self._features: Optional[FeatureData] = None
        self._lock = threading.Lock()

    @property
    def intrinsics(self) -> np.ndarray:
        return self._intrinsics

    @property
    def K(self) -> np.ndarray:
        return self._intrinsics

    @property
    def features(self) -> Optional[FeatureData]:
        return self._features

    @features.setter
    def features(self, value: FeatureData):
        with self._lock:
            if self._features is not None:
                raise RuntimeError(f"Features of image {self.name} are already set")
            self._features = value

    @property
    def has_features(self) -> bool:
        return self._features is not None

    @property
    def num_features(self) -> int:
        return self._features.num_features if self._features is not None else 0

    def __repr__(self) -> str:
        return f"Image(id={self.image_id!r}, name={self.name!r}, features={self.num_features})"


class FeatureExtractor:
    """Base class for feature extractors."""

    def __init__(self, name: str):
        """Initialize feature extractor.

        Args:
            name: Name of the feature extractor
        """
        self.name = name

    def extract(self, image: np.ndarray) -> FeatureData:
        """Extract features from image.

        Args:
            image: Input image

        Returns:
            Feature data
        """
        raise NotImplementedError("Subclasses must implement extract")

    def detect(self, image: Image, cancel: Optional[threading.Event] = None) -> FeatureData:
        """Detect features on an Image record.

        Args:
            image: Image whose pixel data is processed
            cancel: Cancellation signal, checked before work starts

        Returns:
            Feature data (empty if cancelled)
        """
        if cancel is not None and cancel.is_set():
            return FeatureData(keypoints=np.zeros((0, 2)), feature_type=self.name)

        if image.data is None:
            raise ValueError(f"Image {image.name} has no pixel data")

        return self.extract(image.data)


def _to_grayscale(image: np.ndarray) -> np.ndarray:
    # Ensure image is grayscale
    if len(image.shape) > 2 and image.shape[2] > 1:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


def _keypoints_to_feature_data(keypoints: List[Any],
                               descriptors: Optional[np.ndarray],
                               image: np.ndarray,
                               feature_type: str,
                               descriptor_size: int,
                               descriptor_dtype: Any) -> FeatureData:
    image_size = (image.shape[1], image.shape[0])

    if keypoints is None or len(keypoints) == 0 or descriptors is None:
        return FeatureData(
            keypoints=np.zeros((0, 2)),
            descriptors=np.zeros((0, descriptor_size), dtype=descriptor_dtype),
            image_size=image_size,
            feature_type=feature_type
        )

    kp_array = np.array([[kp.pt[0], kp.pt[1]] for kp in keypoints])

    return FeatureData(
        keypoints=kp_array,
        descriptors=descriptors,
        image_size=image_size,
        feature_type=feature_type
    )


class SIFTExtractor(FeatureExtractor):
    """SIFT feature extractor."""

    def __init__(self,
                 max_features: int = 2000,
                 contrast_threshold: float = 0.04,
                 edge_threshold: float = 10):
        """Initialize SIFT extractor.

        Args:
            max_features: Maximum number of features
            contrast_threshold: Contrast threshold
            edge_threshold: Edge threshold
        """
        super().__init__("sift")

        self.max_features = max_features
        self.contrast_threshold = contrast_threshold
        self.edge_threshold = edge_threshold

        # Create SIFT detector
        self.sift = cv2.SIFT_create(
            nfeatures=self.max_features,
            contrastThreshold=self.contrast_threshold,
            edgeThreshold=self.edge_threshold
        )
        self._lock = threading.Lock()

    def extract(self, image: np.ndarray) -> FeatureData:
        """Extract SIFT features.

        Args:
            image: Input image (BGR or grayscale)

        Returns:
            SIFT feature data
        """
        image = _to_grayscale(image)

        # One detector instance is shared by the worker threads
        with self._lock:
            keypoints, descriptors = self.sift.detectAndCompute(image, None)

        return _keypoints_to_feature_data(keypoints, descriptors, image, "sift", 128, np.float32)


class ORBExtractor(FeatureExtractor):
    """ORB feature extractor."""

    def __init__(self, max_features: int = 2000, scale_factor: float = 1.2):
        """Initialize ORB extractor.

        Args:
            max_features: Maximum number of features
            scale_factor: Scale factor for multi-scale detection
        """
        super().__init__("orb")

        self.max_features = max_features
        self.scale_factor = scale_factor

        self.orb = cv2.ORB_create(
            nfeatures=self.max_features,
            scaleFactor=self.scale_factor
        )
        self._lock = threading.Lock()

    def extract(self, image: np.ndarray) -> FeatureData:
        """Extract ORB features."""
        image = _to_grayscale(image)

        with self._lock:
            keypoints, descriptors = self.orb.detectAndCompute(image, None)

        return _keypoints_to_feature_data(keypoints, descriptors, image, "orb", 32, np.uint8)


def create_feature_extractor(feature_type: str, **kwargs) -> FeatureExtractor:
    """Factory function for creating feature extractors.

    Args:
        feature_type: Type of feature extractor ('sift', 'orb')
        **kwargs: Additional parameters for the extractor

    Returns:
        Feature extractor instance
    """
    if feature_type == 'sift':
        return SIFTExtractor(**kwargs)
    elif feature_type == 'orb':
        return ORBExtractor(**kwargs)
    else:
        logger.warning(f"Unknown feature type: {feature_type}, using SIFT")
        return SIFTExtractor(**kwargs)
