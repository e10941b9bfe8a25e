"""MLX MultiForest - multivariate regression forests with a Mahalanobis splitting rule."""

from mlx_multiforest.base import BaseEstimator
from mlx_multiforest.forest import MultiRegressionForest
from mlx_multiforest.trees import (
    Dataset,
    MultiRegressionSplittingRule,
    MultiRegressionTree,
    NodeSplit,
)

__version__ = "0.1.0"
__all__ = [
    "BaseEstimator",
    "Dataset",
    "MultiRegressionForest",
    "MultiRegressionSplittingRule",
    "MultiRegressionTree",
    "NodeSplit",
    "__version__",
]
