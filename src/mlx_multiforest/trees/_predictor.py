"""Vectorized prediction for multivariate regression trees.

All samples are routed through the tree simultaneously, one level per step,
so prediction costs ``depth + 1`` gathers instead of a per-sample walk.
"""

import mlx.core as mx

from mlx_multiforest.trees._tree_structure import TreeArrays


def apply_tree(tree: TreeArrays, X: mx.array) -> mx.array:
    """Return the index of the leaf each sample falls into.

    Missing values (NaN) go to the left child, matching how the training
    samples were partitioned.

    Args:
        tree: Fitted tree structure.
        X: Features of shape (n_samples, n_features).

    Returns:
        Leaf indices of shape (n_samples,), int32.
    """
    n_samples = X.shape[0]
    sample_indices = mx.arange(n_samples)
    current_nodes = mx.zeros((n_samples,), dtype=mx.int32)

    for _ in range(tree.depth + 1):
        features = tree.feature_indices[current_nodes]
        thresholds = tree.thresholds[current_nodes]
        left = tree.left_children[current_nodes]
        right = tree.right_children[current_nodes]
        is_leaf = tree.is_leaf[current_nodes]

        # Leaves carry feature -1; clamp before gathering
        safe_features = mx.clip(features, 0, X.shape[1] - 1)
        feature_values = X[sample_indices, safe_features]

        goes_left = mx.isnan(feature_values) | (feature_values <= thresholds)
        next_nodes = mx.where(goes_left, left, right)

        next_nodes = mx.clip(next_nodes, 0, tree.n_nodes - 1)
        current_nodes = mx.where(is_leaf, current_nodes, next_nodes)

    return current_nodes


def predict_multi_regression(tree: TreeArrays, X: mx.array) -> mx.array:
    """Predict outcome vectors for all samples.

    Args:
        tree: Fitted tree structure.
        X: Features of shape (n_samples, n_features).

    Returns:
        Mean outcome vector of each sample's leaf, shape (n_samples, n_outcomes).
    """
    leaf_ids = apply_tree(tree, X)
    return tree.values[leaf_ids]
