"""Data utilities for MLX MultiForest."""

import mlx.core as mx
import numpy as np


def to_mlx_array(data: np.ndarray | mx.array | list) -> mx.array:
    """Convert input data to MLX array.

    Args:
        data: Input data as numpy array, MLX array, or list.

    Returns:
        MLX array.

    Raises:
        TypeError: If input type is not supported.
    """
    if isinstance(data, mx.array):
        return data
    if isinstance(data, (np.ndarray, list)):
        return mx.array(np.asarray(data, dtype=np.float32))
    raise TypeError(f"Unsupported data type: {type(data)}")


def to_numpy(data: np.ndarray | mx.array | list) -> np.ndarray:
    """Convert input data to a float64 numpy array for host-side split search.

    Raises:
        TypeError: If input type is not supported.
    """
    if isinstance(data, mx.array):
        return np.array(data, dtype=np.float64)
    if isinstance(data, (np.ndarray, list)):
        return np.asarray(data, dtype=np.float64)
    raise TypeError(f"Unsupported data type: {type(data)}")
