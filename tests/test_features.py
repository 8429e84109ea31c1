"""
Tests for image records, OpenCV feature extraction and matching.
"""

import threading
import unittest

import cv2
import numpy as np

from relpose.core.features import (
    FeatureData,
    Image,
    ORBExtractor,
    SIFTExtractor,
    create_feature_extractor,
)
from relpose.core.matching import MatchData, MutualNNMatcher, filter_valid_matches

from scene_utils import K


def textured_image(seed=0):
    """Checkerboard with noise, rich in corners."""
    rng = np.random.default_rng(seed)
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    for i in range(0, 480, 40):
        for j in range(0, 640, 40):
            if (i // 40 + j // 40) % 2 == 0:
                image[i:i + 40, j:j + 40] = [255, 255, 255]

    noise = rng.integers(0, 30, image.shape, dtype=np.uint8)
    return cv2.add(image, noise)


class TestImage(unittest.TestCase):

    def test_features_are_write_once(self):
        image = Image("a", K)
        self.assertFalse(image.has_features)

        image.features = FeatureData(keypoints=np.zeros((3, 2)))
        self.assertEqual(image.num_features, 3)

        with self.assertRaises(RuntimeError):
            image.features = FeatureData(keypoints=np.zeros((5, 2)))

    def test_intrinsics_are_read_only(self):
        image = Image("a", K)
        with self.assertRaises(ValueError):
            image.K[0, 0] = 1.0
        self.assertEqual(image.name, "a")

    def test_detect_without_data(self):
        extractor = SIFTExtractor()
        with self.assertRaises(ValueError):
            extractor.detect(Image("a", K))


class TestFeatureExtraction(unittest.TestCase):

    def test_sift_detection(self):
        features = SIFTExtractor(max_features=500).detect(Image("a", K, data=textured_image()))

        self.assertGreater(features.num_features, 0)
        self.assertEqual(features.feature_type, "sift")
        self.assertEqual(features.image_size, (640, 480))
        self.assertEqual(features.descriptors.shape, (features.num_features, 128))

    def test_orb_detection(self):
        features = ORBExtractor(max_features=500).extract(textured_image())

        self.assertGreater(features.num_features, 0)
        self.assertEqual(features.descriptors.dtype, np.uint8)

    def test_no_texture(self):
        blank = np.ones((480, 640, 3), dtype=np.uint8) * 128
        features = SIFTExtractor().extract(blank)

        self.assertEqual(features.num_features, 0)
        self.assertEqual(features.keypoints.shape, (0, 2))

    def test_cancelled_detection_is_empty(self):
        cancel = threading.Event()
        cancel.set()

        features = SIFTExtractor().detect(Image("a", K, data=textured_image()), cancel)

        self.assertEqual(features.num_features, 0)

    def test_factory(self):
        self.assertIsInstance(create_feature_extractor("orb"), ORBExtractor)
        self.assertIsInstance(create_feature_extractor("unknown"), SIFTExtractor)


class TestMatching(unittest.TestCase):

    def setUp(self):
        rng = np.random.default_rng(1)
        self.descriptors = rng.random((80, 128)).astype(np.float32)
        self.permutation = rng.permutation(80)

        self.features1 = FeatureData(keypoints=rng.uniform(0, 640, (80, 2)), descriptors=self.descriptors)
        noisy = self.descriptors[self.permutation] + rng.normal(0, 0.01, (80, 128)).astype(np.float32)
        self.features2 = FeatureData(keypoints=rng.uniform(0, 640, (80, 2)), descriptors=noisy)

    def test_mutual_nearest_neighbors(self):
        result = MutualNNMatcher().match(self.features1, self.features2)

        self.assertGreater(result.num_matches, 70)
        for query_idx, train_idx in result.matches:
            self.assertEqual(self.permutation[train_idx], query_idx)
        self.assertTrue(np.all((result.confidence >= 0) & (result.confidence <= 1)))

    def test_missing_descriptors(self):
        empty = FeatureData(keypoints=np.zeros((0, 2)))
        result = MutualNNMatcher().match(self.features1, empty)
        self.assertEqual(result.num_matches, 0)
        self.assertEqual(result.matches.shape, (0, 2))

    def test_cancelled_matching(self):
        cancel = threading.Event()
        cancel.set()
        result = MutualNNMatcher().match(self.features1, self.features2, cancel)
        self.assertEqual(result.num_matches, 0)

    def test_filter_valid_matches(self):
        matches = np.array([[0, 1], [5, 2], [2, 9], [-1, 0]])
        np.testing.assert_array_equal(filter_valid_matches(matches, 5, 5), [[0, 1]])

    def test_filter_by_confidence(self):
        data = MatchData(matches=[[0, 0], [1, 1]], confidence=np.array([0.2, 0.9]))
        np.testing.assert_array_equal(data.filter_by_confidence(0.5).matches, [[1, 1]])


if __name__ == "__main__":
    unittest.main()
