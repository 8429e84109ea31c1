"""
Synthetic two-camera scenes shared by the tests.
"""

import numpy as np

from relpose.utils.transforms import rodrigues_to_rotation_matrix

K = np.array([
    [500.0, 0.0, 320.0],
    [0.0, 500.0, 240.0],
    [0.0, 0.0, 1.0]
])

DEFAULT_RVEC = np.array([0.05, -0.1, 0.02])
DEFAULT_T = np.array([-1.0, 0.1, 0.05])


def rotation(rvec=DEFAULT_RVEC):
    return rodrigues_to_rotation_matrix(rvec)


def project(points, K=K):
    """Project Nx3 camera-frame points to Nx2 pixels."""
    uvw = (K @ points.T).T
    return uvw[:, :2] / uvw[:, 2:3]


def make_scene(num_points=100, outlier_ratio=0.0, noise=0.0, seed=42,
               rvec=DEFAULT_RVEC, t=DEFAULT_T):
    """Random points in front of both cameras and their projections.

    Returns:
        dict with points1, points2 (Nx2 pixels), X (Nx3 in camera 1),
        R, t (true pose), inlier_mask (N bool)
    """
    rng = np.random.default_rng(seed)

    X = np.column_stack([
        rng.uniform(-2.0, 2.0, num_points),
        rng.uniform(-1.5, 1.5, num_points),
        rng.uniform(5.0, 10.0, num_points)
    ])

    R = rotation(rvec)
    t = np.asarray(t, dtype=np.float64)
    X_b = (R @ X.T).T + t

    points1 = project(X)
    points2 = project(X_b)

    if noise > 0:
        points1 = points1 + rng.normal(0.0, noise, points1.shape)
        points2 = points2 + rng.normal(0.0, noise, points2.shape)

    inlier_mask = np.ones(num_points, dtype=bool)
    num_outliers = int(round(outlier_ratio * num_points))
    if num_outliers > 0:
        outliers = rng.choice(num_points, num_outliers, replace=False)
        points2[outliers] = np.column_stack([
            rng.uniform(0.0, 640.0, num_outliers),
            rng.uniform(0.0, 480.0, num_outliers)
        ])
        inlier_mask[outliers] = False

    return {
        "points1": points1,
        "points2": points2,
        "X": X,
        "R": R,
        "t": t,
        "inlier_mask": inlier_mask
    }
