#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Pairwise alignment: feature detection, matching and relative-pose
estimation for every image pair, assembled into a reconstruction graph.

Detection runs one task per image and matching one task per unordered pair,
each phase on its own thread pool and joined before the next one starts.
A single threading.Event is handed to every detector, matcher and RANSAC
call. Per-image and per-pair failures are logged and absorbed.

Date: 2026-10-18
"""

import numpy as np
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Hashable, List, Optional, Sequence, Set, Tuple
from dataclasses import dataclass, field

from tqdm import tqdm

from relpose.core.camera import RelativePose
from relpose.core.features import FeatureExtractor, FeatureData, Image
from relpose.core.graph import PoseEdge, ReconstructionGraph
from relpose.core.matching import FeatureMatcher, filter_valid_matches
from relpose.core.ransac import PoseEstimate, RansacOptions, RelativePoseEstimator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


class PipelineState(Enum):
    """Processing state of a PairwiseProcessor."""
    IDLE = "idle"
    DETECTING_FEATURES = "detecting_features"
    MATCHING_FEATURES = "matching_features"
    AWAITING_MANUAL_INPUT = "awaiting_manual_input"
    READY = "ready"
    CANCELLED = "cancelled"


def _validate_range(name: str, value: Tuple[float, float]):
    start, end = value
    if not 0.0 <= start <= end <= 1.0:
        raise ValueError(f"{name} must satisfy 0 <= start <= end <= 1, got {value}")


@dataclass
class PairwiseOptions:
    """Options for pairwise alignment."""
    min_keypoints: int = 50  # Pairs with an image at or below this many keypoints are skipped
    min_matches: int = 50  # Pairs with at most this many correspondences are skipped
    min_inliers: int = 20  # An edge needs strictly more verified inliers than this
    detection_progress: Tuple[float, float] = (0.1, 0.4)  # Progress sub-range of the detection phase
    matching_progress: Tuple[float, float] = (0.4, 0.7)  # Progress sub-range of the matching phase
    max_workers: Optional[int] = None  # Thread pool size (None: executor default)
    show_progress: bool = False  # Show tqdm progress bars
    manual_ransac_iterations: int = 1  # RANSAC iterations for manual point pairs
    manual_threshold: float = 999.0  # Sampson threshold for manual point pairs (pixels)
    ransac: RansacOptions = field(default_factory=RansacOptions)

    def __post_init__(self):
        self.detection_progress = tuple(self.detection_progress)
        self.matching_progress = tuple(self.matching_progress)
        _validate_range("detection_progress", self.detection_progress)
        _validate_range("matching_progress", self.matching_progress)
        if self.detection_progress[1] > self.matching_progress[0]:
            raise ValueError("detection_progress must end before matching_progress starts")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")
        if self.manual_ransac_iterations < 1:
            raise ValueError(f"manual_ransac_iterations must be positive, got {self.manual_ransac_iterations}")
        if self.manual_threshold <= 0:
            raise ValueError(f"manual_threshold must be positive, got {self.manual_threshold}")


class ProgressCounter:
    """Thread-safe completion counter mapped onto a progress sub-range."""

    def __init__(self,
                 total: int,
                 progress_range: Tuple[float, float],
                 message: str,
                 callback: Optional[ProgressCallback] = None,
                 show_progress: bool = False):
        self.total = total
        self.start, self.end = progress_range
        self.message = message
        self.callback = callback
        self.done = 0
        self._lock = threading.Lock()
        self._bar = tqdm(total=total, desc=message) if show_progress else None

    def increment(self) -> float:
        """Record one completed task and report the new fraction."""
        with self._lock:
            self.done += 1
            fraction = self.start + (self.done / max(self.total, 1)) * (self.end - self.start)

            if self._bar is not None:
                self._bar.update(1)

            # Fractions within a phase arrive in increasing order
            if self.callback is not None:
                self.callback(fraction, f"{self.message} ({self.done}/{self.total})")

        return fraction

    def close(self):
        if self._bar is not None:
            self._bar.close()


@dataclass
class ConnectivityReport:
    """Outcome of connectivity analysis after matching."""
    unmatched_images: List[Hashable]  # Images without usable features and without edges
    groups: List[Set[Hashable]]  # Connected components of the graph, largest first

    @property
    def is_connected(self) -> bool:
        return not self.unmatched_images and len(self.groups) == 1


class PairwiseProcessor:
    """Builds a reconstruction graph from a set of calibrated images."""

    def __init__(self,
                 extractor: FeatureExtractor,
                 matcher: FeatureMatcher,
                 options: Optional[PairwiseOptions] = None):
        """Initialize processor.

        Args:
            extractor: Feature detector used for every image
            matcher: Feature matcher used for every pair
            options: Pairwise options
        """
        self.extractor = extractor
        self.matcher = matcher
        self.options = options or PairwiseOptions()
        self.estimator = RelativePoseEstimator(self.options.ransac)

        self.state = PipelineState.IDLE
        self.last_report: Optional[ConnectivityReport] = None
        self._images: List[Image] = []
        self._cancel_event = threading.Event()

    def cancel(self):
        """Request cancellation of the run in progress."""
        logger.info("Cancellation requested")
        self._cancel_event.set()

    def _resolve_cancel(self, cancel: Optional[threading.Event]) -> threading.Event:
        return cancel if cancel is not None else self._cancel_event

    @staticmethod
    def generate_image_pairs(images: Sequence[Image]) -> List[Tuple[Image, Image]]:
        """Enumerate every unordered pair (i < j) in input order."""
        return [
            (images[i], images[j])
            for i in range(len(images))
            for j in range(i + 1, len(images))
        ]

    def _detect_image(self, image: Image, cancel: threading.Event, counter: ProgressCounter):
        if cancel.is_set():
            return

        if not image.has_features:
            try:
                features = self.extractor.detect(image, cancel)
            except Exception as e:
                logger.warning(f"Feature detection failed for image {image.name}: {e}")
                features = None

            # A detection interrupted by cancellation is discarded so the
            # image can be detected again later
            if features is not None and not cancel.is_set():
                image.features = features
                logger.debug(f"Detected {features.num_features} features in image {image.name}")

        counter.increment()

    def detect_features(self,
                        images: Sequence[Image],
                        cancel: Optional[threading.Event] = None,
                        progress: Optional[ProgressCallback] = None):
        """Detect features for every image that does not have them yet.

        Args:
            images: Images to process
            cancel: Cancellation signal (defaults to the processor's own)
            progress: Progress callback
        """
        cancel = self._resolve_cancel(cancel)
        counter = ProgressCounter(len(images), self.options.detection_progress,
                                  "Detecting features...", progress, self.options.show_progress)

        logger.info(f"Detecting {self.extractor.name} features in {len(images)} images")

        try:
            with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
                futures = [executor.submit(self._detect_image, image, cancel, counter) for image in images]
                for future in futures:
                    future.result()
        finally:
            counter.close()

        num_detected = sum(1 for image in images if image.has_features)
        logger.info(f"Features available for {num_detected}/{len(images)} images")

    def _evaluate_pair(self,
                       image_a: Image,
                       image_b: Image,
                       cancel: threading.Event) -> Optional[PoseEdge]:
        features_a = image_a.features
        features_b = image_b.features
        pair_name = f"{image_a.name} - {image_b.name}"

        if features_a is None or features_b is None:
            logger.debug(f"Skipping pair {pair_name}: missing features")
            return None

        min_keypoints = self.options.min_keypoints
        if features_a.num_features <= min_keypoints or features_b.num_features <= min_keypoints:
            logger.debug(f"Skipping pair {pair_name}: too few keypoints "
                         f"({features_a.num_features}, {features_b.num_features})")
            return None

        match_data = self.matcher.match(features_a, features_b, cancel)
        if cancel.is_set():
            return None

        matches = filter_valid_matches(match_data.matches, features_a.num_features, features_b.num_features)
        if len(matches) <= self.options.min_matches:
            logger.debug(f"Skipping pair {pair_name}: only {len(matches)} matches")
            return None

        estimate = self.estimator.estimate(
            features_a.keypoints, features_b.keypoints, matches,
            image_a.K, image_b.K, cancel=cancel
        )

        if not estimate.found or estimate.num_inliers <= self.options.min_inliers:
            logger.debug(f"No verified pose for pair {pair_name} ({estimate.num_inliers} inliers)")
            return None

        return PoseEdge(
            source=image_a.image_id,
            target=image_b.image_id,
            pose=estimate.pose,
            inliers=estimate.inliers
        )

    def _process_pair(self,
                      image_a: Image,
                      image_b: Image,
                      cancel: threading.Event,
                      counter: ProgressCounter) -> Optional[PoseEdge]:
        if cancel.is_set():
            return None

        try:
            edge = self._evaluate_pair(image_a, image_b, cancel)
        except Exception as e:
            logger.warning(f"Matching failed for pair {image_a.name} - {image_b.name}: {e}")
            edge = None

        counter.increment()
        return edge

    def match_features(self,
                       images: Sequence[Image],
                       graph: ReconstructionGraph,
                       cancel: Optional[threading.Event] = None,
                       progress: Optional[ProgressCallback] = None) -> int:
        """Match every image pair and insert verified poses into the graph.

        Args:
            images: Images with detected features
            graph: Graph receiving the accepted edges
            cancel: Cancellation signal (defaults to the processor's own)
            progress: Progress callback

        Returns:
            Number of edges inserted
        """
        cancel = self._resolve_cancel(cancel)
        pairs = self.generate_image_pairs(images)

        for image in images:
            graph.add_node(image.image_id)

        counter = ProgressCounter(len(pairs), self.options.matching_progress,
                                  "Matching pairs...", progress, self.options.show_progress)

        logger.info(f"Matching {len(pairs)} image pairs using {self.matcher.name}")

        try:
            with ThreadPoolExecutor(max_workers=self.options.max_workers) as executor:
                futures = [executor.submit(self._process_pair, a, b, cancel, counter) for a, b in pairs]
                candidates = [future.result() for future in futures]
        finally:
            counter.close()

        num_added = 0
        for edge in candidates:
            if edge is None:
                continue
            if graph.add_edge(edge):
                num_added += 1
                logger.info(f"Added edge {edge.source!r} - {edge.target!r} with {edge.num_inliers} inliers")

        return num_added

    def analyze_connectivity(self,
                             images: Sequence[Image],
                             graph: ReconstructionGraph) -> ConnectivityReport:
        """Decide whether the graph is ready or needs manual links.

        Args:
            images: Images taking part in the run
            graph: Graph built by the matching phase

        Returns:
            Connectivity report (also stored as last_report)
        """
        for image in images:
            graph.add_node(image.image_id)

        groups = graph.connected_components()

        if len(images) < 2:
            logger.error("At least two images are required for pairwise alignment")
            self.state = PipelineState.AWAITING_MANUAL_INPUT
            self.last_report = ConnectivityReport([image.image_id for image in images], groups)
            return self.last_report

        unmatched = [
            image.image_id for image in images
            if (image.features is None or image.num_features <= self.options.min_keypoints)
            and not graph.neighbors(image.image_id)
        ]

        if unmatched or len(groups) > 1:
            self.state = PipelineState.AWAITING_MANUAL_INPUT
            logger.info(f"Manual input required: {len(unmatched)} unmatched images, {len(groups)} image groups")
        else:
            self.state = PipelineState.READY
            logger.info("All images matched into a single group")

        self.last_report = ConnectivityReport(unmatched, groups)
        return self.last_report

    def run(self,
            images: Sequence[Image],
            cancel: Optional[threading.Event] = None,
            progress: Optional[ProgressCallback] = None) -> ReconstructionGraph:
        """Run detection and matching, then analyze connectivity.

        Args:
            images: Images to align
            cancel: Cancellation signal (defaults to the processor's own)
            progress: Progress callback

        Returns:
            Reconstruction graph (partial if cancelled)
        """
        if cancel is None:
            self._cancel_event.clear()
        cancel = self._resolve_cancel(cancel)

        self._images = list(images)
        graph = ReconstructionGraph(image.image_id for image in self._images)

        self.state = PipelineState.DETECTING_FEATURES
        self.detect_features(self._images, cancel, progress)
        if cancel.is_set():
            return self._cancelled(graph)

        self.state = PipelineState.MATCHING_FEATURES
        self.match_features(self._images, graph, cancel, progress)
        if cancel.is_set():
            return self._cancelled(graph)

        self.analyze_connectivity(self._images, graph)
        return graph

    def _cancelled(self, graph: ReconstructionGraph) -> ReconstructionGraph:
        self.state = PipelineState.CANCELLED
        logger.info(f"Processing cancelled by the user ({graph.num_edges} edges kept)")
        return graph

    def _estimate_manual(self,
                         image_a: Image,
                         image_b: Image,
                         point_pairs: Sequence) -> PoseEstimate:
        pairs = np.asarray(point_pairs, dtype=np.float64).reshape(-1, 2, 2)

        features_a = FeatureData.from_points(pairs[:, 0])
        features_b = FeatureData.from_points(pairs[:, 1])

        ransac = self.options.ransac
        estimator = RelativePoseEstimator(RansacOptions(
            iterations=self.options.manual_ransac_iterations,
            threshold=self.options.manual_threshold,
            sample_size=ransac.sample_size,
            verification_samples=ransac.verification_samples,
            seed=ransac.seed
        ))

        return estimator.estimate_from_points(features_a.keypoints, features_b.keypoints,
                                              image_a.K, image_b.K)

    def compute_manual_pose(self,
                            image_a: Image,
                            image_b: Image,
                            point_pairs: Sequence) -> Optional[RelativePose]:
        """Estimate a relative pose from user-supplied point pairs.

        Args:
            image_a: First image
            image_b: Second image
            point_pairs: Sequence of ((x_a, y_a), (x_b, y_b)) pixel pairs

        Returns:
            Pose of image_b relative to image_a, or None
        """
        estimate = self._estimate_manual(image_a, image_b, point_pairs)
        if not estimate.found:
            logger.info(f"No manual pose found between {image_a.name} and {image_b.name}")
        return estimate.pose

    def add_manual_link(self,
                        graph: ReconstructionGraph,
                        image_a: Image,
                        image_b: Image,
                        point_pairs: Sequence,
                        images: Optional[Sequence[Image]] = None) -> bool:
        """Link two images from user-supplied point pairs and re-check connectivity.

        Args:
            graph: Graph receiving the edge
            image_a: First image
            image_b: Second image
            point_pairs: Sequence of ((x_a, y_a), (x_b, y_b)) pixel pairs
            images: Images for the connectivity check (defaults to the last run's)

        Returns:
            True if an edge was inserted
        """
        pose = self.compute_manual_pose(image_a, image_b, point_pairs)
        if pose is None:
            logger.warning(f"Manual link failed between {image_a.name} and {image_b.name}")
            return False

        edge = PoseEdge(
            source=image_a.image_id,
            target=image_b.image_id,
            pose=pose,
            inliers=np.zeros((0, 2), dtype=int)
        )

        added = graph.add_edge(edge)
        if added:
            logger.info(f"Added manual link between {image_a.name} and {image_b.name}")
        else:
            logger.info(f"Images {image_a.name} and {image_b.name} are already linked")

        self.analyze_connectivity(images if images is not None else self._images or [image_a, image_b], graph)
        return added
