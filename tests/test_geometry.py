"""
Tests for geometry primitives and the camera data model.
"""

import unittest

import numpy as np

from relpose.core.camera import (
    CameraIntrinsics,
    RelativePose,
    estimate_camera_intrinsics,
    readonly_matrix,
)
from relpose.utils.transforms import (
    normalize_image_points,
    rotation_angle_between,
    skew_symmetric,
    to_homogeneous,
    translation_direction_angle,
)

from scene_utils import K, rotation


class TestTransforms(unittest.TestCase):

    def test_to_homogeneous(self):
        points = np.array([[1.0, 2.0], [3.0, 4.0]])
        result = to_homogeneous(points)
        np.testing.assert_allclose(result, [[1, 2, 1], [3, 4, 1]])

    def test_normalize_image_points(self):
        rng = np.random.default_rng(0)
        points = rng.uniform(0, 640, (50, 2))

        normalized, T = normalize_image_points(points)

        np.testing.assert_allclose(normalized.mean(axis=0), [0, 0], atol=1e-9)
        self.assertAlmostEqual(np.mean(np.linalg.norm(normalized, axis=1)), np.sqrt(2))
        np.testing.assert_allclose((T @ to_homogeneous(points).T).T[:, :2], normalized)

    def test_normalize_coincident_points(self):
        points = np.tile([[100.0, 200.0]], (8, 1))
        self.assertIsNone(normalize_image_points(points))

    def test_skew_symmetric(self):
        v = np.array([1.0, -2.0, 3.0])
        w = np.array([0.5, 4.0, -1.0])
        np.testing.assert_allclose(skew_symmetric(v) @ w, np.cross(v, w))

    def test_angles(self):
        R = rotation([0.0, 0.0, np.radians(30)])
        self.assertAlmostEqual(rotation_angle_between(np.eye(3), R), 30.0, places=6)
        self.assertAlmostEqual(translation_direction_angle([1, 0, 0], [-2, 0, 0]), 0.0)
        self.assertAlmostEqual(translation_direction_angle([1, 0, 0], [0, 1, 0]), 90.0)


class TestCamera(unittest.TestCase):

    def test_estimate_intrinsics(self):
        intrinsics = estimate_camera_intrinsics((640, 480))
        self.assertAlmostEqual(intrinsics.fx, 768.0)
        self.assertAlmostEqual(intrinsics.cx, 320.0)
        self.assertAlmostEqual(intrinsics.cy, 240.0)

        with self.assertRaises(ValueError):
            estimate_camera_intrinsics((0, 480))

    def test_intrinsics_roundtrip(self):
        intrinsics = CameraIntrinsics.from_calibration_matrix(K, 640, 480)
        np.testing.assert_allclose(intrinsics.K, K)
        self.assertEqual(CameraIntrinsics.from_dict(intrinsics.to_dict()), intrinsics)

    def test_readonly_matrix(self):
        source = K.copy()
        stored = readonly_matrix(source)
        source[0, 0] = 1.0

        self.assertEqual(stored[0, 0], 500.0)
        with self.assertRaises(ValueError):
            stored[0, 0] = 1.0
        with self.assertRaises(ValueError):
            readonly_matrix(np.eye(4))

    def test_relative_pose_inverse(self):
        pose = RelativePose(rotation(), [0.3, -0.2, 1.0])
        point = np.array([0.5, 1.0, 6.0])

        round_trip = pose.inverse.transform(pose.transform(point))
        np.testing.assert_allclose(round_trip, point, atol=1e-12)
        np.testing.assert_allclose(pose.matrix @ pose.inverse.matrix, np.eye(4), atol=1e-12)

    def test_relative_pose_is_immutable(self):
        pose = RelativePose.identity()
        with self.assertRaises(ValueError):
            pose.R[0, 0] = 2.0
        with self.assertRaises(ValueError):
            RelativePose(np.eye(2), np.zeros(3))

    def test_projection_matrix(self):
        pose = RelativePose(np.eye(3), [1.0, 0.0, 0.0])
        P = pose.projection_matrix(K)
        self.assertEqual(P.shape, (3, 4))
        np.testing.assert_allclose(P[:, 3], K @ np.array([1.0, 0.0, 0.0]))


if __name__ == "__main__":
    unittest.main()
