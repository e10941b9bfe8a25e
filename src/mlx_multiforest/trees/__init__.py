"""Tree implementations for MLX MultiForest.

Multivariate regression trees split with a Mahalanobis impurity criterion.
"""

from mlx_multiforest.trees._dataset import Dataset
from mlx_multiforest.trees._split_finder import MultiRegressionSplittingRule, NodeSplit
from mlx_multiforest.trees._tree_builder import build_multi_regression_tree
from mlx_multiforest.trees.multi_regression_tree import MultiRegressionTree

__all__ = [
    "Dataset",
    "MultiRegressionSplittingRule",
    "MultiRegressionTree",
    "NodeSplit",
    "build_multi_regression_tree",
]
