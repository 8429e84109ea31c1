#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Camera module: intrinsic calibration and two-view relative poses.

A RelativePose maps coordinates expressed in the first camera's frame into
the second camera's frame (X_b = R @ X_a + t). Translation is only known up
to scale and sign when it comes out of an essential matrix.

Date: 2026-10-18
"""

import numpy as np
import logging
from typing import Dict, Optional, Tuple
from dataclasses import dataclass

from relpose.utils.transforms import (
    create_transformation_matrix,
    invert_rigid_transform,
    transform_points,
)

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class CameraIntrinsics:
    """Camera intrinsic parameters (pinhole, no distortion)."""
    width: int
    height: int
    fx: float  # Focal length x
    fy: float  # Focal length y
    cx: float  # Principal point x
    cy: float  # Principal point y

    @property
    def K(self) -> np.ndarray:
        """Get intrinsic matrix."""
        return np.array([
            [self.fx, 0, self.cx],
            [0, self.fy, self.cy],
            [0, 0, 1]
        ], dtype=np.float64)

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            "width": self.width,
            "height": self.height,
            "fx": self.fx,
            "fy": self.fy,
            "cx": self.cx,
            "cy": self.cy
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'CameraIntrinsics':
        """Create from dictionary."""
        return cls(
            width=data.get("width", 0),
            height=data.get("height", 0),
            fx=data.get("fx", 0.0),
            fy=data.get("fy", 0.0),
            cx=data.get("cx", 0.0),
            cy=data.get("cy", 0.0)
        )

    @classmethod
    def from_calibration_matrix(cls, K: np.ndarray, width: int, height: int) -> 'CameraIntrinsics':
        """Create from calibration matrix."""
        return cls(
            width=width,
            height=height,
            fx=float(K[0, 0]),
            fy=float(K[1, 1]),
            cx=float(K[0, 2]),
            cy=float(K[1, 2])
        )


def estimate_camera_intrinsics(image_size: Tuple[int, int],
                               focal_length_px: Optional[float] = None) -> CameraIntrinsics:
    """Estimate camera intrinsics from focal length or image size.

    Args:
        image_size: (width, height) of the image
        focal_length_px: Focal length in pixels

    Returns:
        Camera intrinsics
    """
    width, height = image_size

    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size: {image_size}")

    if focal_length_px is None:
        # Common heuristic when no EXIF focal length is known
        focal_length_px = max(width, height) * 1.2

    return CameraIntrinsics(
        width=width,
        height=height,
        fx=focal_length_px,
        fy=focal_length_px,
        cx=width / 2,
        cy=height / 2
    )


def readonly_matrix(K: np.ndarray) -> np.ndarray:
    """Return a non-writeable float64 copy of a 3x3 matrix."""
    K = np.array(K, dtype=np.float64, copy=True)
    if K.shape != (3, 3):
        raise ValueError(f"Expected a 3x3 intrinsic matrix, got shape {K.shape}")
    K.flags.writeable = False
    return K


@dataclass(frozen=True, eq=False)
class RelativePose:
    """Rigid transform from camera A's frame into camera B's frame."""
    R: np.ndarray  # 3x3 rotation matrix
    t: np.ndarray  # 3-element translation vector

    def __post_init__(self):
        R = np.array(self.R, dtype=np.float64)
        t = np.array(self.t, dtype=np.float64).reshape(3)
        if R.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got shape {R.shape}")
        R.flags.writeable = False
        t.flags.writeable = False
        object.__setattr__(self, "R", R)
        object.__setattr__(self, "t", t)

    @property
    def matrix(self) -> np.ndarray:
        """Get 4x4 transformation matrix."""
        return create_transformation_matrix(self.R, self.t)

    @property
    def inverse(self) -> 'RelativePose':
        """Get inverse transformation (camera B's frame into camera A's)."""
        R_inv, t_inv = invert_rigid_transform(self.R, self.t)
        return RelativePose(R_inv, t_inv)

    def transform(self, points: np.ndarray) -> np.ndarray:
        """Map point(s) from camera A's frame into camera B's frame."""
        return transform_points(points, self.R, self.t)

    def projection_matrix(self, K: np.ndarray) -> np.ndarray:
        """Get 3x4 projection matrix K @ [R|t]."""
        return K @ np.hstack([self.R, self.t.reshape(3, 1)])

    @classmethod
    def identity(cls) -> 'RelativePose':
        """Camera B coincides with camera A."""
        return cls(np.eye(3), np.zeros(3))
