"""Tree data structures for GPU-efficient storage and access."""

from dataclasses import dataclass

import mlx.core as mx
import numpy as np


@dataclass
class TreeArrays:
    """Tree stored as parallel arrays for vectorized traversal.

    Attributes:
        feature_indices: Which feature to split on (-1 for leaf nodes).
        thresholds: Split threshold values. NaN sends only missing values left.
        left_children: Index of left child (-1 for leaf nodes).
        right_children: Index of right child (-1 for leaf nodes).
        values: Mean outcome vector of the node's samples, (n_nodes, n_outcomes).
        is_leaf: Boolean mask indicating leaf nodes.
        n_node_samples: Number of training samples that reached each node.
        n_nodes: Actual number of nodes used in the tree.
        depth: Depth of the deepest leaf (root = 0).
    """

    feature_indices: mx.array  # (n_nodes,) int32
    thresholds: mx.array  # (n_nodes,) float32
    left_children: mx.array  # (n_nodes,) int32
    right_children: mx.array  # (n_nodes,) int32
    values: mx.array  # (n_nodes, n_outcomes) float32
    is_leaf: mx.array  # (n_nodes,) bool
    n_node_samples: mx.array  # (n_nodes,) int32
    n_nodes: int = 0
    depth: int = 0

    @property
    def n_outcomes(self) -> int:
        return self.values.shape[1]

    @property
    def n_leaves(self) -> int:
        return int(mx.sum(self.is_leaf[: self.n_nodes]))


@dataclass
class TreeBuffers:
    """Mutable numpy arrays filled while a tree is grown."""

    feature_indices: np.ndarray
    thresholds: np.ndarray
    left_children: np.ndarray
    right_children: np.ndarray
    values: np.ndarray
    is_leaf: np.ndarray
    n_node_samples: np.ndarray

    def to_tree(self, n_nodes: int, depth: int) -> TreeArrays:
        """Trim to ``n_nodes`` and convert to MLX arrays."""
        return TreeArrays(
            feature_indices=mx.array(self.feature_indices[:n_nodes]),
            thresholds=mx.array(self.thresholds[:n_nodes]),
            left_children=mx.array(self.left_children[:n_nodes]),
            right_children=mx.array(self.right_children[:n_nodes]),
            values=mx.array(self.values[:n_nodes]),
            is_leaf=mx.array(self.is_leaf[:n_nodes]),
            n_node_samples=mx.array(self.n_node_samples[:n_nodes]),
            n_nodes=n_nodes,
            depth=depth,
        )


def create_empty_tree(max_nodes: int, n_outputs: int) -> TreeBuffers:
    """Create pre-allocated buffers for growing a tree.

    Args:
        max_nodes: Maximum number of nodes (at most 2 * n_samples - 1).
        n_outputs: Number of outcomes stored per node.

    Returns:
        Empty TreeBuffers ready for filling.
    """
    return TreeBuffers(
        feature_indices=np.full((max_nodes,), -1, dtype=np.int32),
        thresholds=np.zeros((max_nodes,), dtype=np.float32),
        left_children=np.full((max_nodes,), -1, dtype=np.int32),
        right_children=np.full((max_nodes,), -1, dtype=np.int32),
        values=np.zeros((max_nodes, n_outputs), dtype=np.float32),
        is_leaf=np.ones((max_nodes,), dtype=bool),
        n_node_samples=np.zeros((max_nodes,), dtype=np.int32),
    )


def compute_max_nodes(n_samples: int, max_depth: int | None = None) -> int:
    """Upper bound on the number of nodes of a binary tree.

    Args:
        n_samples: Number of samples the tree is grown on.
        max_depth: Optional depth limit.

    Returns:
        Maximum number of nodes possible.
    """
    max_nodes = 2 * max(n_samples, 1) - 1
    if max_depth is not None:
        max_nodes = min(max_nodes, 2 ** (max_depth + 1) - 1)
    return max_nodes
