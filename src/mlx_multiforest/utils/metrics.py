"""Evaluation metrics for multi-outcome predictions."""

import mlx.core as mx


def mse(
    y_true: mx.array, y_pred: mx.array, sample_weight: mx.array | None = None
) -> mx.array:
    """Compute Mean Squared Error over every outcome entry.

    Args:
        y_true: Ground truth values, (n_samples, n_outcomes).
        y_pred: Predicted values, same shape.
        sample_weight: Optional row weights, (n_samples,). Each row's mean
            squared error is weighted by its sample weight.

    Returns:
        MSE value.
    """
    squared = (y_true - y_pred) ** 2
    if sample_weight is None:
        return mx.mean(squared)

    row_errors = mx.mean(squared, axis=1)
    return mx.sum(sample_weight * row_errors) / mx.sum(sample_weight)


def rmse(
    y_true: mx.array, y_pred: mx.array, sample_weight: mx.array | None = None
) -> mx.array:
    """Compute Root Mean Squared Error."""
    return mx.sqrt(mse(y_true, y_pred, sample_weight))


def mae(y_true: mx.array, y_pred: mx.array) -> mx.array:
    """Compute Mean Absolute Error."""
    return mx.mean(mx.abs(y_true - y_pred))


def mahalanobis_distance(
    y_true: mx.array, y_pred: mx.array, sigma: mx.array
) -> mx.array:
    """Squared Mahalanobis distance of each prediction to its target.

    Args:
        y_true: Ground truth values, (n_samples, n_outcomes).
        y_pred: Predicted values, same shape.
        sigma: Outcome dispersion matrix, (n_outcomes, n_outcomes).

    Returns:
        ``(y - y_hat)^T sigma^-1 (y - y_hat)`` per row, shape (n_samples,).
    """
    # mx.linalg runs on the CPU stream only
    sigma_inv = mx.linalg.inv(sigma, stream=mx.cpu)
    diff = y_true - y_pred
    return mx.sum((diff @ sigma_inv) * diff, axis=1)
