#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
I/O utility functions for the command line: image discovery and loading,
and manual point-pair files.

Date: 2026-10-18
"""

import os
import numpy as np
import cv2
import logging
import yaml
from typing import List, Tuple
from tqdm import tqdm

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ['jpg', 'jpeg', 'png', 'bmp', 'tif', 'tiff']


def get_file_extension(filepath: str) -> str:
    """Get lower-case file extension without the dot."""
    return os.path.splitext(filepath)[1].lower().lstrip('.')


def get_image_files(directory: str) -> List[str]:
    """Get all image files in directory.

    Args:
        directory: Directory path

    Returns:
        Sorted list of image file paths
    """
    if not os.path.isdir(directory):
        raise FileNotFoundError(f"Image directory not found: {directory}")

    file_paths = []
    for root, _, files in os.walk(directory):
        for file in files:
            if get_file_extension(file) in IMAGE_EXTENSIONS:
                file_paths.append(os.path.join(root, file))

    file_paths.sort()

    return file_paths


def load_images(image_paths: List[str]) -> List[Tuple[str, np.ndarray]]:
    """Load images from file paths.

    Args:
        image_paths: List of image file paths

    Returns:
        List of (path, BGR image) for every file that could be read
    """
    images = []

    for path in tqdm(image_paths, desc="Loading images"):
        img = cv2.imread(path)

        if img is None:
            logger.warning(f"Failed to load image: {path}")
            continue

        images.append((path, img))

    return images


def load_point_pairs(filepath: str) -> np.ndarray:
    """Load manual point pairs from a YAML file.

    The file holds a `pairs:` list whose entries are [[x_a, y_a], [x_b, y_b]].

    Returns:
        Kx2x2 array of pixel pairs
    """
    with open(filepath, 'r') as f:
        data = yaml.safe_load(f) or {}

    pairs = data.get("pairs", []) if isinstance(data, dict) else data

    try:
        array = np.asarray(pairs, dtype=np.float64).reshape(-1, 2, 2)
    except ValueError as e:
        raise ValueError(f"Malformed point pairs in {filepath}: {e}") from e

    logger.info(f"Loaded {len(array)} point pairs from {filepath}")
    return array
