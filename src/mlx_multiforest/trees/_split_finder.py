"""Multivariate split finding with a Mahalanobis impurity.

For a node, every candidate variable is scanned over its distinct values and
each boundary between two adjacent values is scored with the size-weighted
within-child dispersion

    loss = n_left / n * SS_left + n_right / n * SS_right
    SS_child = sum_i (y_i - mu_child)^T sigma^-1 (y_i - mu_child)

The smallest loss wins. Samples are aggregated into per-value buckets first,
so each boundary is scored from running totals instead of revisiting the
samples of both children. The totals are taken over outcomes centered on the
node mean: the shift leaves every SS unchanged and keeps the running-total
form from cancelling when outcomes share a large common offset.
"""

import math
from typing import NamedTuple, Sequence

import numpy as np
from numba import njit

from mlx_multiforest.trees._dataset import Dataset

# Loss of the "no split found" state
NO_SPLIT_LOSS: float = math.inf


class NodeSplit(NamedTuple):
    """Result of a best-split search for one node.

    Attributes:
        is_leaf: True when no admissible split exists.
        variable: Feature index to split on (meaningless for leaves).
        value: Threshold; samples with value <= threshold go left. NaN means
            missing values go left and every observed value goes right.
        loss: Weighted within-child dispersion of the chosen split.
    """

    is_leaf: bool
    variable: int
    value: float
    loss: float


@njit(cache=True)
def _quadratic_form(v: np.ndarray, matrix: np.ndarray) -> float:
    """Compute v^T M v."""
    n = v.shape[0]
    acc = 0.0
    for a in range(n):
        row = 0.0
        for b in range(n):
            row += matrix[a, b] * v[b]
        acc += v[a] * row
    return acc


@njit(cache=True)
def _centered_quadratic_form(
    y: np.ndarray, center: np.ndarray, matrix: np.ndarray
) -> float:
    """Compute (y - c)^T M (y - c)."""
    n = y.shape[0]
    acc = 0.0
    for a in range(n):
        row = 0.0
        for b in range(n):
            row += matrix[a, b] * (y[b] - center[b])
        acc += (y[a] - center[a]) * row
    return acc


@njit(cache=True)
def _node_totals(
    node_samples: np.ndarray,
    responses: np.ndarray,
    center: np.ndarray,
    sigma_inv: np.ndarray,
) -> tuple[np.ndarray, float]:
    """Sums of centered outcome vectors and of their quadratic forms in a node."""
    n_outcomes = responses.shape[1]
    sum_node = np.zeros(n_outcomes)
    quad_node = 0.0
    for i in range(node_samples.shape[0]):
        sample = node_samples[i]
        for k in range(n_outcomes):
            sum_node[k] += responses[sample, k] - center[k]
        quad_node += _centered_quadratic_form(responses[sample], center, sigma_inv)
    return sum_node, quad_node


@njit(cache=True)
def _fill_buckets(
    sorted_samples: np.ndarray,
    sorted_values: np.ndarray,
    responses: np.ndarray,
    center: np.ndarray,
    sigma_inv: np.ndarray,
    counter: np.ndarray,
    sums: np.ndarray,
    quad_sums: np.ndarray,
    n_buckets: int,
) -> None:
    """Aggregate centered samples into one bucket per distinct value.

    ``sorted_values`` must be grouped by value. Two missing values belong to the
    same bucket; a missing and an observed value never do.
    """
    counter[:n_buckets] = 0
    sums[:n_buckets, :] = 0.0
    quad_sums[:n_buckets] = 0.0

    n_outcomes = responses.shape[1]
    n = sorted_samples.shape[0]
    split_index = 0
    for i in range(n):
        sample = sorted_samples[i]
        counter[split_index] += 1
        for k in range(n_outcomes):
            sums[split_index, k] += responses[sample, k] - center[k]
        quad_sums[split_index] += _centered_quadratic_form(
            responses[sample], center, sigma_inv
        )

        if i + 1 < n:
            value = sorted_values[i]
            next_value = sorted_values[i + 1]
            if value != next_value and not (np.isnan(value) and np.isnan(next_value)):
                split_index += 1


@njit(cache=True)
def _find_best_boundary(
    counter: np.ndarray,
    sums: np.ndarray,
    quad_sums: np.ndarray,
    num_splits: int,
    sum_node: np.ndarray,
    quad_node: float,
    size_node: int,
    min_child_size: int,
    sigma_inv: np.ndarray,
    best_loss: float,
) -> tuple[int, float]:
    """Scan bucket boundaries left to right.

    Returns:
        Index of the first boundary whose loss is strictly below ``best_loss``
        and below every earlier boundary, or -1, together with the new best loss.
    """
    n_outcomes = sum_node.shape[0]
    sum_left = np.zeros(n_outcomes)
    mu_left = np.empty(n_outcomes)
    mu_right = np.empty(n_outcomes)

    n_left = 0
    quad_left = 0.0
    best_index = -1
    for i in range(num_splits):
        n_left += counter[i]
        quad_left += quad_sums[i]
        for k in range(n_outcomes):
            sum_left[k] += sums[i, k]

        if n_left < min_child_size:
            continue

        # Later boundaries only grow the left child
        n_right = size_node - n_left
        if n_right < min_child_size:
            break

        for k in range(n_outcomes):
            mu_left[k] = sum_left[k] / n_left
            mu_right[k] = (sum_node[k] - sum_left[k]) / n_right

        ss_left = quad_left - n_left * _quadratic_form(mu_left, sigma_inv)
        ss_right = (quad_node - quad_left) - n_right * _quadratic_form(
            mu_right, sigma_inv
        )
        loss = (n_left / size_node) * ss_left + (n_right / size_node) * ss_right

        if loss < best_loss:
            best_loss = loss
            best_index = i

    return best_index, best_loss


class MultiRegressionSplittingRule:
    """Best-split search minimizing a Mahalanobis within-child dispersion.

    The rule owns scratch buffers sized once from ``max_num_unique_values``
    and overwrites them on every call. An instance is not reentrant: use one
    per tree-growing context (one per worker when trees are grown in
    parallel).

    Args:
        max_num_unique_values: Capacity of the bucket buffers; the largest
            number of distinct values any variable can have in a node.
        alpha: Minimum child size as a fraction of the node size. A split is
            admissible only if both children hold at least
            ``max(ceil(alpha * node_size), 1)`` samples.
        imbalance_penalty: Reserved for a child-size imbalance penalty. Stored
            but not applied.
        num_outcomes: Dimension of the outcome vectors.
        sigma: Outcome dispersion matrix of shape (num_outcomes, num_outcomes).
            Defaults to the identity.

    Raises:
        ValueError: If the buffer capacity or outcome count is not positive, or
            if ``sigma`` has the wrong shape or is singular.
    """

    def __init__(
        self,
        max_num_unique_values: int,
        alpha: float,
        imbalance_penalty: float,
        num_outcomes: int,
        sigma: np.ndarray | None = None,
    ) -> None:
        if max_num_unique_values < 1:
            raise ValueError(
                f"max_num_unique_values must be positive, got {max_num_unique_values}"
            )
        if num_outcomes < 1:
            raise ValueError(f"num_outcomes must be positive, got {num_outcomes}")

        self.alpha = alpha
        self.imbalance_penalty = imbalance_penalty
        self.num_outcomes = num_outcomes
        self.max_num_unique_values = max_num_unique_values

        if sigma is None:
            sigma = np.eye(num_outcomes)
        sigma = np.asarray(sigma, dtype=np.float64)
        if sigma.shape != (num_outcomes, num_outcomes):
            raise ValueError(
                f"sigma must have shape ({num_outcomes}, {num_outcomes}), "
                f"got {sigma.shape}"
            )
        try:
            sigma_inv = np.linalg.inv(sigma)
        except np.linalg.LinAlgError as err:
            raise ValueError("sigma must be invertible") from err

        self.sigma = sigma
        self.sigma_inv = np.ascontiguousarray(sigma_inv)

        self.counter = np.zeros(max_num_unique_values, dtype=np.int64)
        self.sums = np.zeros((max_num_unique_values, num_outcomes), dtype=np.float64)
        self.quad_sums = np.zeros(max_num_unique_values, dtype=np.float64)

    def find_best_split(
        self,
        data: Dataset,
        node: int,
        possible_split_vars: Sequence[int],
        responses_by_sample: np.ndarray,
        samples: Sequence[np.ndarray],
        split_vars: np.ndarray | None = None,
        split_values: np.ndarray | None = None,
    ) -> NodeSplit:
        """Find the best split of one node.

        Args:
            data: Feature accessor.
            node: Node index into ``samples``.
            possible_split_vars: Candidate variables, scanned in order.
            responses_by_sample: Outcomes of shape (n_samples, num_outcomes).
            samples: Sample indices per node; ``samples[node]`` is non-empty.
            split_vars: Optional per-node output array for the chosen variable.
            split_values: Optional per-node output array for the threshold.

        Returns:
            NodeSplit. Output arrays are only written when a split is found.
        """
        node_samples = np.asarray(samples[node], dtype=np.int64)
        size_node = node_samples.shape[0]
        min_child_size = max(math.ceil(size_node * self.alpha), 1)

        responses = np.ascontiguousarray(responses_by_sample, dtype=np.float64)
        center = responses[node_samples].mean(axis=0)
        sum_node, quad_node = _node_totals(
            node_samples, responses, center, self.sigma_inv
        )

        best = (0, 0.0, NO_SPLIT_LOSS)
        for var in possible_split_vars:
            best = self.find_best_split_value(
                data,
                int(var),
                node_samples,
                responses,
                center,
                sum_node,
                quad_node,
                min_child_size,
                best,
            )

        best_var, best_value, best_loss = best
        if best_loss == NO_SPLIT_LOSS:
            return NodeSplit(is_leaf=True, variable=-1, value=math.nan, loss=best_loss)

        if split_vars is not None:
            split_vars[node] = best_var
        if split_values is not None:
            split_values[node] = best_value
        return NodeSplit(
            is_leaf=False, variable=best_var, value=best_value, loss=best_loss
        )

    def find_best_split_value(
        self,
        data: Dataset,
        var: int,
        node_samples: np.ndarray,
        responses: np.ndarray,
        center: np.ndarray,
        sum_node: np.ndarray,
        quad_node: float,
        min_child_size: int,
        best: tuple[int, float, float],
    ) -> tuple[int, float, float]:
        """Scan one variable and return the updated ``(var, value, loss)``.

        The returned triple is ``best`` itself unless a strictly smaller loss
        was found. ``sum_node`` and ``quad_node`` are totals of the node's
        outcomes centered on ``center``.
        """
        possible_split_values, sorted_samples = data.get_all_values(node_samples, var)

        # Constant in this node
        if possible_split_values.shape[0] < 2:
            return best

        # No split at the largest value
        num_splits = possible_split_values.shape[0] - 1
        sorted_values = np.ascontiguousarray(data.data[sorted_samples, var])

        _fill_buckets(
            sorted_samples,
            sorted_values,
            responses,
            center,
            self.sigma_inv,
            self.counter,
            self.sums,
            self.quad_sums,
            num_splits + 1,
        )
        index, loss = _find_best_boundary(
            self.counter,
            self.sums,
            self.quad_sums,
            num_splits,
            sum_node,
            quad_node,
            node_samples.shape[0],
            min_child_size,
            self.sigma_inv,
            best[2],
        )

        if index < 0:
            return best
        return var, float(possible_split_values[index]), float(loss)
