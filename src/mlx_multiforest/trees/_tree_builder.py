"""Iterative tree growing around the multivariate splitting rule.

Nodes are processed breadth-first. Every node keeps its own array of sample
indices, the splitting rule decides between split and leaf, and the chosen
split partitions the node's samples into two children.
"""

from collections import deque
from dataclasses import dataclass

import numpy as np

from mlx_multiforest.trees._dataset import Dataset
from mlx_multiforest.trees._split_finder import MultiRegressionSplittingRule
from mlx_multiforest.trees._tree_structure import (
    TreeArrays,
    compute_max_nodes,
    create_empty_tree,
)


@dataclass
class NodeInfo:
    """Information about a node to be processed.

    Attributes:
        node_idx: Index of this node in the tree arrays.
        depth: Depth of this node (root = 0).
    """

    node_idx: int
    depth: int


def draw_split_variables(
    n_features: int, mtry: int | None, rng: np.random.Generator
) -> np.ndarray:
    """Draw the candidate split variables of one node.

    The number of candidates is Poisson(mtry), clamped to [1, n_features], and
    the candidates are drawn without replacement. ``mtry=None`` returns every
    feature in index order.
    """
    if mtry is None:
        return np.arange(n_features)

    num_draws = int(rng.poisson(mtry))
    num_draws = min(max(num_draws, 1), n_features)
    return rng.choice(n_features, size=num_draws, replace=False)


def partition_samples(
    dataset: Dataset, samples: np.ndarray, variable: int, threshold: float
) -> tuple[np.ndarray, np.ndarray]:
    """Split samples into left (value <= threshold or missing) and right."""
    column = dataset.data[samples, variable]
    goes_left = np.isnan(column) | (column <= threshold)
    return samples[goes_left], samples[~goes_left]


def node_mean(
    responses: np.ndarray, samples: np.ndarray, sample_weight: np.ndarray | None
) -> np.ndarray:
    """Mean outcome vector of a node, weighted when sample weights are given.

    A node whose weights sum to zero falls back to the unweighted mean.
    """
    node_responses = responses[samples]
    if sample_weight is not None:
        weights = sample_weight[samples]
        total = weights.sum()
        if total > 0:
            return weights @ node_responses / total
    return node_responses.mean(axis=0)


def build_multi_regression_tree(
    dataset: Dataset,
    responses: np.ndarray,
    splitting_rule: MultiRegressionSplittingRule,
    samples: np.ndarray | None = None,
    mtry: int | None = None,
    min_node_size: int = 5,
    max_depth: int | None = None,
    rng: np.random.Generator | None = None,
    sample_weight: np.ndarray | None = None,
) -> TreeArrays:
    """Grow one multivariate regression tree.

    A node becomes a leaf when it holds ``min_node_size`` samples or fewer,
    sits at ``max_depth``, or the splitting rule finds no admissible split.
    Sample weights only enter the node values; split search is unweighted.

    Args:
        dataset: Feature accessor over the full training matrix.
        responses: Outcomes of shape (n_samples, n_outcomes).
        splitting_rule: Rule used for every node of this tree.
        samples: Indices of the samples the tree is grown on (all by default).
        mtry: Mean number of candidate variables per node; None uses all.
        min_node_size: Nodes of at most this many samples are not split.
        max_depth: Optional maximum depth.
        rng: Random generator for candidate variable draws.
        sample_weight: Optional weights of shape (n_samples,) for the node
            mean vectors.

    Returns:
        Fitted TreeArrays structure.
    """
    if rng is None:
        rng = np.random.default_rng()
    if samples is None:
        samples = np.arange(dataset.n_samples)
    samples = np.asarray(samples, dtype=np.int64)
    responses = np.ascontiguousarray(responses, dtype=np.float64)

    max_nodes = compute_max_nodes(samples.shape[0], max_depth)
    buffers = create_empty_tree(max_nodes, responses.shape[1])

    # Sample indices per node, indexed by node id
    node_samples: list[np.ndarray] = [samples]
    nodes_to_process = deque([NodeInfo(node_idx=0, depth=0)])

    next_node_idx = 1
    tree_depth = 0

    while nodes_to_process:
        current_node = nodes_to_process.popleft()
        node_idx = current_node.node_idx
        depth = current_node.depth
        current_samples = node_samples[node_idx]
        tree_depth = max(tree_depth, depth)

        n_node_samples = current_samples.shape[0]
        buffers.n_node_samples[node_idx] = n_node_samples
        buffers.values[node_idx] = node_mean(responses, current_samples, sample_weight)

        should_stop = n_node_samples <= min_node_size or (
            max_depth is not None and depth >= max_depth
        )
        if should_stop:
            continue

        split = splitting_rule.find_best_split(
            data=dataset,
            node=node_idx,
            possible_split_vars=draw_split_variables(dataset.n_features, mtry, rng),
            responses_by_sample=responses,
            samples=node_samples,
            split_vars=buffers.feature_indices,
            split_values=buffers.thresholds,
        )
        if split.is_leaf:
            continue

        left_samples, right_samples = partition_samples(
            dataset, current_samples, split.variable, split.value
        )

        left_child_idx = next_node_idx
        right_child_idx = next_node_idx + 1
        next_node_idx += 2

        buffers.left_children[node_idx] = left_child_idx
        buffers.right_children[node_idx] = right_child_idx
        buffers.is_leaf[node_idx] = False

        node_samples.extend([left_samples, right_samples])
        nodes_to_process.append(NodeInfo(node_idx=left_child_idx, depth=depth + 1))
        nodes_to_process.append(NodeInfo(node_idx=right_child_idx, depth=depth + 1))

    return buffers.to_tree(n_nodes=next_node_idx, depth=tree_depth)
