"""Base classes for MLX MultiForest estimators."""

import inspect
from abc import ABC, abstractmethod
from typing import Any

import mlx.core as mx
import numpy as np

from mlx_multiforest.utils.data import to_mlx_array, to_numpy


class BaseEstimator(ABC):
    """Abstract base class for all multivariate regression estimators.

    All estimators should specify all the parameters that can be set
    at the class level in their ``__init__`` as explicit keyword arguments.
    """

    @abstractmethod
    def fit(
        self,
        X: mx.array,
        Y: mx.array,
        sample_weight: mx.array | np.ndarray | None = None,
    ) -> "BaseEstimator":
        """Fit the model to training data.

        Args:
            X: Training features of shape (n_samples, n_features).
            Y: Outcomes of shape (n_samples, n_outcomes).
            sample_weight: Optional non-negative observation weights of shape
                (n_samples,).

        Returns:
            Self for method chaining.
        """

    @abstractmethod
    def predict(self, X: mx.array) -> mx.array:
        """Predict outcome vectors for new data.

        Args:
            X: Features of shape (n_samples, n_features).

        Returns:
            Predictions of shape (n_samples, n_outcomes).
        """

    def get_params(self) -> dict[str, Any]:
        """Get parameters for this estimator.

        Returns:
            Parameter names mapped to their values.
        """
        names = list(inspect.signature(self.__init__).parameters)
        return {key: getattr(self, key) for key in names if hasattr(self, key)}

    def set_params(self, **params: Any) -> "BaseEstimator":
        """Set parameters for this estimator.

        Args:
            **params: Estimator parameters.

        Returns:
            Self for method chaining.

        Raises:
            ValueError: If a name is not a parameter of this estimator.
        """
        valid = self.get_params()
        for key, value in params.items():
            if key not in valid:
                raise ValueError(
                    f"Invalid parameter {key!r} for {type(self).__name__}"
                )
            setattr(self, key, value)
        return self

    def _validate_X(self, X: mx.array | np.ndarray | list) -> mx.array:
        """Validate and convert input features.

        Args:
            X: Input features.

        Returns:
            Validated float32 MLX array of shape (n_samples, n_features).
        """
        X = to_mlx_array(X)

        if X.ndim == 1:
            X = X.reshape(-1, 1)
        if X.ndim != 2:
            raise ValueError(f"X must be 2D (n_samples, n_features), got shape {X.shape}")

        return X.astype(mx.float32)

    def _validate_Y(self, Y: mx.array | np.ndarray | list) -> np.ndarray:
        """Validate and convert outcomes.

        A 1D input is treated as a single outcome.

        Args:
            Y: Outcomes.

        Returns:
            Float64 numpy array of shape (n_samples, n_outcomes).
        """
        Y = to_numpy(Y)

        if Y.ndim == 1:
            Y = Y.reshape(-1, 1)
        if Y.ndim != 2:
            raise ValueError(f"Y must be 2D (n_samples, n_outcomes), got shape {Y.shape}")
        if np.isnan(Y).any():
            raise ValueError("Y must not contain missing values")

        return Y

    def _validate_sample_weight(
        self, sample_weight: mx.array | np.ndarray | list | None, n_samples: int
    ) -> np.ndarray | None:
        """Validate observation weights.

        Args:
            sample_weight: Weights, or None for unweighted fitting.
            n_samples: Number of training samples.

        Returns:
            Float64 numpy array of shape (n_samples,), or None.
        """
        if sample_weight is None:
            return None

        sample_weight = to_numpy(sample_weight)
        if sample_weight.shape != (n_samples,):
            raise ValueError(
                f"sample_weight must have shape ({n_samples},), got {sample_weight.shape}"
            )
        if not np.isfinite(sample_weight).all() or (sample_weight < 0).any():
            raise ValueError("sample_weight must be finite and non-negative")
        if sample_weight.sum() <= 0:
            raise ValueError("sample_weight must have a positive sum")

        return sample_weight
