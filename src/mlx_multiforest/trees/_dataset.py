"""Column access over the training matrix for split finding.

The dataset is kept as a host-side numpy array: split search runs sample by
sample in sorted order, which is not a workload that benefits from MLX.
Feature values are rounded to float32, the precision MLX predicts at, so a
threshold routes a value the same way during training and prediction.
"""

import numpy as np


class Dataset:
    """Read-only view of a feature matrix used by the splitting rule.

    Missing values are encoded as NaN. For split finding, all missing values of
    a variable count as one distinct value that sorts before every observed
    value, so missing samples always sit in their own bucket.

    Args:
        X: Feature matrix of shape (n_samples, n_features). Values are
            stored at float32 precision in a float64 array.

    Attributes:
        n_samples: Number of rows.
        n_features: Number of columns.
        max_num_unique_values: Largest number of distinct values (missing
            counted once) of any single feature over the full dataset.
    """

    def __init__(self, X: np.ndarray) -> None:
        X = np.asarray(X, dtype=np.float32).astype(np.float64)
        if X.ndim != 2:
            raise ValueError(f"X must be 2D (n_samples, n_features), got shape {X.shape}")

        self._X = X
        self.n_samples, self.n_features = X.shape
        self.max_num_unique_values = self._compute_max_num_unique_values()

    @property
    def data(self) -> np.ndarray:
        """Underlying feature matrix."""
        return self._X

    def value_at(self, sample: int, variable: int) -> float:
        """Return the value of one variable for one sample (NaN if missing)."""
        return float(self._X[sample, variable])

    def get_all_values(
        self, samples: np.ndarray, variable: int
    ) -> tuple[np.ndarray, np.ndarray]:
        """Distinct values of a variable and the samples grouped by value.

        Args:
            samples: Sample indices of the node.
            variable: Feature index.

        Returns:
            values: Ascending distinct values. A leading NaN stands for the
                missing group when any sample is missing.
            sorted_samples: ``samples`` reordered so that missing samples come
                first, followed by observed values in ascending order. The sort
                is stable.
        """
        samples = np.asarray(samples, dtype=np.int64)
        column = self._X[samples, variable]

        missing = np.isnan(column)
        observed_idx = np.flatnonzero(~missing)
        order = observed_idx[np.argsort(column[observed_idx], kind="mergesort")]

        values = np.unique(column[observed_idx])
        if missing.any():
            order = np.concatenate([np.flatnonzero(missing), order])
            values = np.concatenate([[np.nan], values])

        return values, samples[order]

    def _compute_max_num_unique_values(self) -> int:
        max_unique = 1
        for f in range(self.n_features):
            column = self._X[:, f]
            missing = np.isnan(column)
            n_unique = np.unique(column[~missing]).size + int(missing.any())
            max_unique = max(max_unique, n_unique)
        return max_unique

    def __repr__(self) -> str:
        return f"Dataset(n_samples={self.n_samples}, n_features={self.n_features})"
