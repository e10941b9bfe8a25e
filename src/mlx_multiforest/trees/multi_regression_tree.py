"""Single multivariate regression tree estimator.

The tree is grown on host-side numpy data with the Mahalanobis splitting
rule and stored as MLX arrays for vectorized prediction.
"""

from typing import TYPE_CHECKING

import mlx.core as mx
import numpy as np

from mlx_multiforest.base import BaseEstimator
from mlx_multiforest.trees._dataset import Dataset
from mlx_multiforest.trees._predictor import apply_tree, predict_multi_regression
from mlx_multiforest.trees._split_finder import MultiRegressionSplittingRule
from mlx_multiforest.trees._tree_builder import build_multi_regression_tree

if TYPE_CHECKING:
    from mlx_multiforest.trees._tree_structure import TreeArrays


class MultiRegressionTree(BaseEstimator):
    """Regression tree for several correlated outcomes.

    Splits minimize the size-weighted sum of within-child squared Mahalanobis
    distances between each sample's outcome vector and its child's mean.

    Args:
        alpha: Minimum child size as a fraction of the parent node size.
            Default is 0.05.
        imbalance_penalty: Reserved; stored but not applied. Default is 0.0.
        sigma: Outcome dispersion matrix (n_outcomes, n_outcomes). Defaults to
            the identity, i.e. plain multivariate sum of squares.
        min_node_size: Nodes with at most this many samples become leaves.
            Default is 5.
        max_depth: Maximum depth of the tree. Default is None (unlimited).
        mtry: Mean number of candidate variables per node (Poisson draw).
            Default is None, which scans every variable at every node.
        random_state: Seed for the candidate variable draws.

    Attributes:
        tree_: Fitted tree structure (TreeArrays) after calling fit().
        n_features_in_: Number of features seen during fit.
        n_outcomes_: Number of outcomes seen during fit.

    Example:
        >>> import mlx.core as mx
        >>> from mlx_multiforest import MultiRegressionTree
        >>> X = mx.array([[1.0], [2.0], [3.0], [4.0]])
        >>> Y = mx.array([[0.0, 0.0], [0.0, 0.0], [5.0, 5.0], [5.0, 5.0]])
        >>> model = MultiRegressionTree(min_node_size=1)
        >>> model.fit(X, Y)
        >>> predictions = model.predict(X)
    """

    def __init__(
        self,
        alpha: float = 0.05,
        imbalance_penalty: float = 0.0,
        sigma: np.ndarray | None = None,
        min_node_size: int = 5,
        max_depth: int | None = None,
        mtry: int | None = None,
        random_state: int | None = None,
    ) -> None:
        self.alpha = alpha
        self.imbalance_penalty = imbalance_penalty
        self.sigma = sigma
        self.min_node_size = min_node_size
        self.max_depth = max_depth
        self.mtry = mtry
        self.random_state = random_state

        self.tree_: TreeArrays | None = None
        self.n_features_in_: int | None = None
        self.n_outcomes_: int | None = None

    def fit(
        self,
        X: mx.array,
        Y: mx.array,
        sample_weight: mx.array | np.ndarray | None = None,
    ) -> "MultiRegressionTree":
        """Fit the tree to training data.

        Args:
            X: Training features of shape (n_samples, n_features). NaN marks
                missing values.
            Y: Outcomes of shape (n_samples, n_outcomes).
            sample_weight: Optional non-negative observation weights of shape
                (n_samples,). They weight the leaf mean vectors.

        Returns:
            Self for method chaining.
        """
        X = self._validate_X(X)
        Y = self._validate_Y(Y)
        if X.shape[0] != Y.shape[0]:
            raise ValueError(
                f"X and Y have different numbers of samples: {X.shape[0]} != {Y.shape[0]}"
            )
        sample_weight = self._validate_sample_weight(sample_weight, X.shape[0])

        dataset = Dataset(np.array(X, dtype=np.float64))
        self.n_features_in_ = dataset.n_features
        self.n_outcomes_ = Y.shape[1]

        rule = MultiRegressionSplittingRule(
            max_num_unique_values=dataset.max_num_unique_values,
            alpha=self.alpha,
            imbalance_penalty=self.imbalance_penalty,
            num_outcomes=self.n_outcomes_,
            sigma=self.sigma,
        )

        self.tree_ = build_multi_regression_tree(
            dataset=dataset,
            responses=Y,
            splitting_rule=rule,
            mtry=self.mtry,
            min_node_size=self.min_node_size,
            max_depth=self.max_depth,
            rng=np.random.default_rng(self.random_state),
            sample_weight=sample_weight,
        )

        return self

    def predict(self, X: mx.array) -> mx.array:
        """Predict outcome vectors for new data.

        Args:
            X: Features of shape (n_samples, n_features).

        Returns:
            Predictions of shape (n_samples, n_outcomes).

        Raises:
            ValueError: If model has not been fitted.
        """
        tree = self._check_fitted()
        X = self._validate_X(X)

        predictions = predict_multi_regression(tree, X)
        mx.eval(predictions)
        return predictions

    def apply(self, X: mx.array) -> mx.array:
        """Return the leaf index each sample falls into."""
        tree = self._check_fitted()
        X = self._validate_X(X)

        leaves = apply_tree(tree, X)
        mx.eval(leaves)
        return leaves

    def _check_fitted(self) -> "TreeArrays":
        if self.tree_ is None:
            raise ValueError("Model not fitted. Call fit() first.")
        return self.tree_
