#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Command line entry point: align a directory of images pairwise and report
the resulting reconstruction graph.

Date: 2026-10-18
"""

import os
import sys
import argparse
import logging
import time

from relpose.config.config import get_config_path, load_config, options_from_config
from relpose.core.camera import estimate_camera_intrinsics
from relpose.core.features import Image, create_feature_extractor
from relpose.core.matching import MutualNNMatcher
from relpose.core.pairwise import PairwiseProcessor
from relpose.utils.io_utils import get_image_files, load_images, load_point_pairs

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="relpose: pairwise relative pose estimation")

    # Input options
    parser.add_argument("--image_dir", required=True, help="Directory containing input images")
    parser.add_argument("--config", help="Path to configuration file (defaults to $RELPOSE_CONFIG)")

    # Camera and features
    parser.add_argument("--focal_length", type=float,
                        help="Focal length in pixels (default: 1.2 x largest image dimension)")
    parser.add_argument("--feature_type", choices=["sift", "orb"], default="sift",
                        help="Feature detector to use")
    parser.add_argument("--max_features", type=int, default=2000,
                        help="Maximum number of features per image")

    # Manual link
    parser.add_argument("--manual_points", help="YAML file with manual point pairs")
    parser.add_argument("--pair", type=int, nargs=2, metavar=("I", "J"),
                        help="Indices of the images linked by --manual_points")

    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)

    if (args.manual_points is None) != (args.pair is None):
        parser.error("--manual_points and --pair must be given together")

    return args


def build_images(image_dir, focal_length=None):
    """Load images and attach default intrinsics."""
    paths = get_image_files(image_dir)
    logger.info(f"Found {len(paths)} images in {image_dir}")

    images = []
    for index, (path, data) in enumerate(load_images(paths)):
        height, width = data.shape[:2]
        intrinsics = estimate_camera_intrinsics((width, height), focal_length)
        images.append(Image(index, intrinsics.K, name=os.path.basename(path), data=data))

    return images


def log_progress(fraction, message):
    logger.info(f"[{fraction * 100:5.1f}%] {message}")


def log_summary(processor, graph):
    """Log the graph summary."""
    logger.info(f"Reconstruction graph: {graph.num_nodes} images, {graph.num_edges} edges")

    for edge in graph.edges():
        logger.info(f"  {edge.source} -> {edge.target}: {edge.num_inliers} inliers, "
                    f"t = {edge.pose.t.round(3).tolist()}")

    report = processor.last_report
    if report is not None:
        logger.info(f"State: {processor.state.value}, {len(report.groups)} groups, "
                    f"unmatched images: {report.unmatched_images}")


def run(args):
    config_path = get_config_path(args.config)
    config = load_config(config_path) if config_path else {}
    options = options_from_config(config)

    images = build_images(args.image_dir, args.focal_length)
    if not images:
        raise ValueError(f"No readable images in {args.image_dir}")

    extractor = create_feature_extractor(args.feature_type, max_features=args.max_features)
    processor = PairwiseProcessor(extractor, MutualNNMatcher(), options)

    start_time = time.time()
    graph = processor.run(images, progress=log_progress)
    logger.info(f"Pairwise alignment finished in {time.time() - start_time:.2f} seconds")

    if args.manual_points:
        i, j = args.pair
        if not (0 <= i < len(images) and 0 <= j < len(images)) or i == j:
            raise ValueError(f"Invalid image pair: {i} {j}")
        point_pairs = load_point_pairs(args.manual_points)
        processor.add_manual_link(graph, images[i], images[j], point_pairs)

    log_summary(processor, graph)
    return graph


def main(argv=None):
    """Main function."""
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        run(args)
    except Exception as e:
        logger.error(f"Pairwise alignment failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
