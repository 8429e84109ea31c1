"""
Tests for two-view DLT triangulation.
"""

import unittest

import numpy as np

from relpose.core.camera import RelativePose
from relpose.core.triangulation import triangulate_point, triangulate_points

from scene_utils import K, DEFAULT_T, make_scene, project, rotation


class TestTriangulation(unittest.TestCase):

    def setUp(self):
        self.pose = RelativePose(rotation(), DEFAULT_T)

    def observe(self, X):
        X = np.asarray(X, dtype=np.float64).reshape(1, 3)
        return project(X)[0], project(self.pose.transform(X))[0]

    def test_exact_intersection(self):
        X = np.array([0.5, -0.3, 6.0])
        p1, p2 = self.observe(X)

        point = triangulate_point(p1, p2, K, K, self.pose)

        self.assertIsNotNone(point)
        np.testing.assert_allclose(point, X, atol=1e-6)
        self.assertGreater(point[2], 0)
        self.assertGreater(self.pose.transform(point)[2], 0)

    def test_point_behind_first_camera(self):
        p1, p2 = self.observe([0.5, 0.2, -6.0])
        self.assertIsNone(triangulate_point(p1, p2, K, K, self.pose))

    def test_point_too_far(self):
        p1, p2 = self.observe([0.0, 0.0, 2.0e4])
        self.assertIsNone(triangulate_point(p1, p2, K, K, self.pose))

    def test_distant_point_within_limit(self):
        X = np.array([10.0, -5.0, 5000.0])
        p1, p2 = self.observe(X)

        point = triangulate_point(p1, p2, K, K, self.pose)

        self.assertIsNotNone(point)
        np.testing.assert_allclose(point, X, rtol=1e-3)

    def test_zero_projection_matrices(self):
        zero = np.zeros((3, 3))
        self.assertIsNone(triangulate_point([10.0, 20.0], [30.0, 40.0], zero, zero, self.pose))

    def test_zero_baseline_is_ill_conditioned(self):
        p1 = np.array([300.0, 200.0])
        self.assertIsNone(triangulate_point(p1, p1, K, K, RelativePose.identity()))

    def test_parallel_rays_meet_at_infinity(self):
        pose = RelativePose(np.eye(3), [-1.0, 0.0, 0.0])
        principal_point = np.array([320.0, 240.0])

        self.assertIsNone(triangulate_point(principal_point, principal_point, K, K, pose))

    def test_batch(self):
        scene = make_scene(num_points=20)
        points = triangulate_points(scene["points1"], scene["points2"], K, K, self.pose)

        self.assertEqual(len(points), 20)
        for point, X in zip(points, scene["X"]):
            np.testing.assert_allclose(point, X, atol=1e-6)

        with self.assertRaises(ValueError):
            triangulate_points(scene["points1"], scene["points2"][:5], K, K, self.pose)


if __name__ == "__main__":
    unittest.main()
