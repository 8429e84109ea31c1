#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Reconstruction graph: images as nodes, verified pairwise poses as edges.

The graph is insert-only and holds at most one edge per unordered image
pair; the first accepted edge for a pair wins. Edges keep the orientation
they were created with and are re-oriented on the way out.

Date: 2026-10-18
"""

import numpy as np
import logging
import networkx as nx
from typing import Hashable, Iterable, List, Optional, Set, Tuple
from dataclasses import dataclass

from relpose.core.camera import RelativePose

logger = logging.getLogger(__name__)

@dataclass(frozen=True, eq=False)
class PoseEdge:
    """Verified relative pose between two images."""
    source: Hashable
    target: Hashable
    pose: RelativePose  # Maps source camera coordinates into target camera coordinates
    inliers: np.ndarray  # Kx2 correspondences (source keypoint, target keypoint)

    def __post_init__(self):
        inliers = np.array(self.inliers, dtype=int).reshape(-1, 2)
        inliers.flags.writeable = False
        object.__setattr__(self, "inliers", inliers)

    @property
    def num_inliers(self) -> int:
        return len(self.inliers)

    def reversed(self) -> 'PoseEdge':
        """The same relation seen from the target image."""
        return PoseEdge(
            source=self.target,
            target=self.source,
            pose=self.pose.inverse,
            inliers=self.inliers[:, ::-1]
        )


class ReconstructionGraph:
    """Pose graph consumed by the later reconstruction stages."""

    def __init__(self, image_ids: Optional[Iterable[Hashable]] = None):
        self._graph = nx.Graph()
        for image_id in image_ids or []:
            self.add_node(image_id)

    def add_node(self, image_id: Hashable):
        if not self._graph.has_node(image_id):
            self._graph.add_node(image_id)

    def add_edge(self, edge: PoseEdge) -> bool:
        """Insert an edge unless the unordered pair is already connected.

        Args:
            edge: Edge to insert

        Returns:
            True if the edge was inserted
        """
        if edge.source == edge.target:
            raise ValueError(f"Self-loop edges are not allowed: {edge.source!r}")

        if self._graph.has_edge(edge.source, edge.target):
            logger.debug(f"Edge {edge.source!r} - {edge.target!r} already present, keeping the first")
            return False

        self._graph.add_edge(edge.source, edge.target, edge=edge, weight=edge.num_inliers)
        return True

    def has_edge(self, image_a: Hashable, image_b: Hashable) -> bool:
        return self._graph.has_edge(image_a, image_b)

    def get_edge(self, image_a: Hashable, image_b: Hashable) -> Optional[PoseEdge]:
        """Get the edge between two images, oriented from image_a to image_b."""
        if not self._graph.has_edge(image_a, image_b):
            return None

        edge = self._graph.edges[image_a, image_b]["edge"]
        if edge.source == image_a:
            return edge
        return edge.reversed()

    def neighbors(self, image_id: Hashable) -> List[Tuple[Hashable, np.ndarray, RelativePose]]:
        """List the neighbours of an image.

        Returns:
            (neighbour id, inliers, pose from image_id to the neighbour) per edge;
            walking an edge backwards yields the inverse pose
        """
        if not self._graph.has_node(image_id):
            return []

        result = []
        for neighbor in self._graph.neighbors(image_id):
            edge = self.get_edge(image_id, neighbor)
            result.append((neighbor, edge.inliers, edge.pose))

        return result

    def edges(self) -> List[PoseEdge]:
        """All edges in their stored orientation."""
        return [data["edge"] for _, _, data in self._graph.edges(data=True)]

    def connected_components(self) -> List[Set[Hashable]]:
        """Groups of images linked by pose edges, largest first."""
        components = [set(c) for c in nx.connected_components(self._graph)]
        components.sort(key=len, reverse=True)
        return components

    @property
    def nodes(self) -> List[Hashable]:
        return list(self._graph.nodes)

    @property
    def num_nodes(self) -> int:
        return self._graph.number_of_nodes()

    @property
    def num_edges(self) -> int:
        return self._graph.number_of_edges()

    def __contains__(self, image_id: Hashable) -> bool:
        return self._graph.has_node(image_id)

    def __repr__(self) -> str:
        return f"ReconstructionGraph(nodes={self.num_nodes}, edges={self.num_edges})"
