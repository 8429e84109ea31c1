"""
Tests for configuration loading and the command line helpers.
"""

import os
import tempfile
import unittest
from unittest import mock

import numpy as np

from relpose.config.config import CONFIG_ENV_VAR, get_config_path, load_config, options_from_config
from relpose.main import main, parse_args
from relpose.utils.io_utils import load_point_pairs


class TestConfig(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def write(self, name, content):
        path = os.path.join(self.tmpdir.name, name)
        with open(path, "w") as f:
            f.write(content)
        return path

    def test_config_path_resolution(self):
        with mock.patch.dict(os.environ, {CONFIG_ENV_VAR: "from_env.yaml"}):
            self.assertEqual(get_config_path("explicit.yaml"), os.path.abspath("explicit.yaml"))
            self.assertEqual(get_config_path(), os.path.abspath("from_env.yaml"))

        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertIsNone(get_config_path())

    def test_empty_file(self):
        self.assertEqual(load_config(self.write("empty.yaml", "")), {})

    def test_options_from_config(self):
        path = self.write("config.yaml", (
            "pairwise:\n"
            "  min_matches: 30\n"
            "  matching_progress: [0.4, 0.9]\n"
            "  unknown_option: 1\n"
            "ransac:\n"
            "  iterations: 100\n"
            "  threshold: 2.0\n"
            "  seed: 3\n"
        ))

        with self.assertLogs("relpose.config.config", level="WARNING") as logs:
            options = options_from_config(load_config(path))

        self.assertEqual(options.min_matches, 30)
        self.assertEqual(options.min_keypoints, 50)
        self.assertEqual(options.matching_progress, (0.4, 0.9))
        self.assertEqual(options.ransac.iterations, 100)
        self.assertEqual(options.ransac.threshold, 2.0)
        self.assertEqual(options.ransac.seed, 3)
        self.assertIn("unknown_option", logs.output[0])

    def test_defaults_without_config(self):
        options = options_from_config(None)
        self.assertEqual(options.ransac.iterations, 2000)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            options_from_config({"pairwise": {"detection_progress": [0.5, 0.3]}})
        with self.assertRaises(ValueError):
            options_from_config({"ransac": "not a mapping"})

    def test_point_pairs_file(self):
        path = self.write("points.yaml", (
            "pairs:\n"
            "  - [[10, 20], [12, 21]]\n"
            "  - [[30, 40], [33, 41]]\n"
        ))

        pairs = load_point_pairs(path)

        self.assertEqual(pairs.shape, (2, 2, 2))
        np.testing.assert_allclose(pairs[1, 1], [33, 41])


class TestCommandLine(unittest.TestCase):

    def test_parse_args(self):
        args = parse_args(["--image_dir", "images", "--manual_points", "p.yaml", "--pair", "0", "2"])
        self.assertEqual(args.image_dir, "images")
        self.assertEqual(args.pair, [0, 2])
        self.assertEqual(args.feature_type, "sift")

    def test_manual_points_need_pair(self):
        with self.assertRaises(SystemExit):
            parse_args(["--image_dir", "images", "--manual_points", "p.yaml"])

    def test_empty_image_dir_exits_with_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(SystemExit) as context:
                main(["--image_dir", tmpdir])

        self.assertEqual(context.exception.code, 1)


if __name__ == "__main__":
    unittest.main()
