"""Multivariate regression forests using MLX.

Each tree is grown on a subsample drawn without replacement and split with
the Mahalanobis splitting rule. Predictions average the trees' leaf mean
vectors; out-of-bag predictions average only the trees that did not see a
sample during training.
"""

import logging
import math
import time
from typing import TYPE_CHECKING

import mlx.core as mx
import numpy as np

from mlx_multiforest.base import BaseEstimator
from mlx_multiforest.trees._dataset import Dataset
from mlx_multiforest.trees._predictor import predict_multi_regression
from mlx_multiforest.trees._split_finder import MultiRegressionSplittingRule
from mlx_multiforest.trees._tree_builder import build_multi_regression_tree
from mlx_multiforest.utils.metrics import mse

if TYPE_CHECKING:
    from mlx_multiforest.trees._tree_structure import TreeArrays

logger = logging.getLogger(__name__)


def default_mtry(n_features: int) -> int:
    """Default number of candidate variables: min(ceil(sqrt(p) + 20), p)."""
    return min(math.ceil(math.sqrt(n_features) + 20), n_features)


class MultiRegressionForest(BaseEstimator):
    """Random forest for several correlated outcomes.

    Args:
        n_estimators: Number of trees. Default is 100.
        mtry: Mean number of candidate variables per node. Default is None,
            which uses ``min(ceil(sqrt(n_features) + 20), n_features)``.
        min_node_size: Nodes with at most this many samples become leaves.
            Default is 5.
        sample_fraction: Fraction of the samples each tree is grown on, drawn
            without replacement. Default is 0.5.
        alpha: Minimum child size as a fraction of the parent node size.
            Default is 0.05.
        imbalance_penalty: Reserved; stored but not applied. Default is 0.0.
        sigma: Outcome dispersion matrix (n_outcomes, n_outcomes). Defaults to
            the identity.
        max_depth: Maximum depth of individual trees. Default is None.
        compute_oob_predictions: Whether fit() computes out-of-bag predictions.
            Default is True.
        random_state: Seed for subsampling and variable draws.
        verbose: Verbosity level. Default is 0.

    Attributes:
        trees_: List of fitted tree structures.
        inbag_: Per tree, the boolean mask of training samples it was grown on.
        oob_predictions_: Out-of-bag predictions (n_samples, n_outcomes); NaN
            rows for samples that were in every tree's subsample.
        oob_score_: Mean squared error of the available OOB predictions,
            weighted by the sample weights when fit() received them.
        fit_time_: Wall-clock training time in seconds.

    Example:
        >>> import numpy as np
        >>> from mlx_multiforest import MultiRegressionForest
        >>> X = np.random.randn(200, 5)
        >>> Y = np.stack([X[:, 0], X[:, 0] + X[:, 1]], axis=1)
        >>> model = MultiRegressionForest(n_estimators=50, random_state=0)
        >>> model.fit(X, Y)
        >>> predictions = model.predict(X)
    """

    def __init__(
        self,
        n_estimators: int = 100,
        mtry: int | None = None,
        min_node_size: int = 5,
        sample_fraction: float = 0.5,
        alpha: float = 0.05,
        imbalance_penalty: float = 0.0,
        sigma: np.ndarray | None = None,
        max_depth: int | None = None,
        compute_oob_predictions: bool = True,
        random_state: int | None = None,
        verbose: int = 0,
    ) -> None:
        self.n_estimators = n_estimators
        self.mtry = mtry
        self.min_node_size = min_node_size
        self.sample_fraction = sample_fraction
        self.alpha = alpha
        self.imbalance_penalty = imbalance_penalty
        self.sigma = sigma
        self.max_depth = max_depth
        self.compute_oob_predictions = compute_oob_predictions
        self.random_state = random_state
        self.verbose = verbose

        self.trees_: list[TreeArrays] = []
        self.inbag_: list[np.ndarray] = []
        self.oob_predictions_: mx.array | None = None
        self.oob_score_: float | None = None
        self.fit_time_: float | None = None
        self.n_features_in_: int | None = None
        self.n_outcomes_: int | None = None

    def fit(
        self,
        X: mx.array,
        Y: mx.array,
        sample_weight: mx.array | np.ndarray | None = None,
    ) -> "MultiRegressionForest":
        """Fit the forest.

        Args:
            X: Training features of shape (n_samples, n_features). NaN marks
                missing values.
            Y: Outcomes of shape (n_samples, n_outcomes).
            sample_weight: Optional non-negative observation weights of shape
                (n_samples,). They weight every leaf mean vector and the
                out-of-bag score; split search is unweighted.

        Returns:
            Self for method chaining.
        """
        if not 0.0 < self.sample_fraction <= 1.0:
            raise ValueError(
                f"sample_fraction must be in (0, 1], got {self.sample_fraction}"
            )
        if self.n_estimators < 1:
            raise ValueError(f"n_estimators must be positive, got {self.n_estimators}")

        X = self._validate_X(X)
        Y = self._validate_Y(Y)
        if X.shape[0] != Y.shape[0]:
            raise ValueError(
                f"X and Y have different numbers of samples: {X.shape[0]} != {Y.shape[0]}"
            )
        sample_weight = self._validate_sample_weight(sample_weight, X.shape[0])

        start = time.perf_counter()

        dataset = Dataset(np.array(X, dtype=np.float64))
        n_samples = dataset.n_samples
        self.n_features_in_ = dataset.n_features
        self.n_outcomes_ = Y.shape[1]

        mtry = self.mtry if self.mtry is not None else default_mtry(self.n_features_in_)
        n_inbag = max(int(n_samples * self.sample_fraction), 1)
        rng = np.random.default_rng(self.random_state)

        # One rule, sized from the full dataset, serves every tree
        rule = MultiRegressionSplittingRule(
            max_num_unique_values=dataset.max_num_unique_values,
            alpha=self.alpha,
            imbalance_penalty=self.imbalance_penalty,
            num_outcomes=self.n_outcomes_,
            sigma=self.sigma,
        )

        self.trees_ = []
        self.inbag_ = []

        for iteration in range(self.n_estimators):
            samples = np.sort(rng.choice(n_samples, size=n_inbag, replace=False))

            tree = build_multi_regression_tree(
                dataset=dataset,
                responses=Y,
                splitting_rule=rule,
                samples=samples,
                mtry=mtry,
                min_node_size=self.min_node_size,
                max_depth=self.max_depth,
                rng=rng,
                sample_weight=sample_weight,
            )

            inbag = np.zeros(n_samples, dtype=bool)
            inbag[samples] = True

            self.trees_.append(tree)
            self.inbag_.append(inbag)

            if self.verbose > 0 and (iteration + 1) % 10 == 0:
                logger.info(
                    f"Tree {iteration + 1}/{self.n_estimators}, "
                    f"nodes: {tree.n_nodes}, depth: {tree.depth}"
                )

        if self.compute_oob_predictions:
            self.oob_predictions_ = self.predict_oob(X)
            oob_np = np.array(self.oob_predictions_)
            available = ~np.isnan(oob_np).any(axis=1)
            oob_weight = None
            if sample_weight is not None:
                oob_weight = mx.array(sample_weight[available].astype(np.float32))
            if available.any() and (oob_weight is None or float(mx.sum(oob_weight)) > 0):
                self.oob_score_ = float(
                    mse(
                        mx.array(Y[available].astype(np.float32)),
                        mx.array(oob_np[available]),
                        oob_weight,
                    )
                )
            else:
                logger.warning("No sample was out of bag; oob_score_ is undefined")
                self.oob_score_ = None

        self.fit_time_ = time.perf_counter() - start
        if self.verbose > 0:
            logger.info(
                f"Trained {self.n_estimators} trees in {self.fit_time_:.3f}s"
            )

        return self

    def predict(self, X: mx.array) -> mx.array:
        """Predict outcome vectors by averaging the trees.

        Args:
            X: Features of shape (n_samples, n_features).

        Returns:
            Predictions of shape (n_samples, n_outcomes).

        Raises:
            ValueError: If model has not been fitted.
        """
        self._check_fitted()
        X = self._validate_X(X)

        y_pred = mx.zeros((X.shape[0], self.n_outcomes_), dtype=mx.float32)
        for tree in self.trees_:
            y_pred = y_pred + predict_multi_regression(tree, X)

        y_pred = y_pred / len(self.trees_)
        mx.eval(y_pred)
        return y_pred

    def predict_oob(self, X: mx.array) -> mx.array:
        """Out-of-bag predictions for the training samples.

        Each row averages the trees whose subsample did not contain that
        sample. Rows of samples that were never out of bag are NaN.

        Args:
            X: The training features passed to fit().

        Returns:
            Predictions of shape (n_samples, n_outcomes).

        Raises:
            ValueError: If model has not been fitted or X is not the
                training matrix.
        """
        self._check_fitted()
        X = self._validate_X(X)
        if X.shape[0] != self.inbag_[0].shape[0]:
            raise ValueError(
                f"X must be the training matrix with {self.inbag_[0].shape[0]} rows, "
                f"got {X.shape[0]}"
            )

        sums = mx.zeros((X.shape[0], self.n_outcomes_), dtype=mx.float32)
        counts = mx.zeros((X.shape[0], 1), dtype=mx.float32)
        for tree, inbag in zip(self.trees_, self.inbag_):
            oob = mx.array(~inbag)[:, None]
            tree_pred = predict_multi_regression(tree, X)
            sums = sums + mx.where(oob, tree_pred, 0.0)
            counts = counts + oob.astype(mx.float32)

        oob_pred = mx.where(counts > 0, sums / mx.maximum(counts, 1.0), mx.nan)
        mx.eval(oob_pred)
        return oob_pred

    def _check_fitted(self) -> None:
        if not self.trees_:
            raise ValueError("Model not fitted. Call fit() first.")
