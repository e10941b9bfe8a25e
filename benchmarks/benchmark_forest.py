"""Benchmark MultiRegressionForest: MLX vs sklearn."""

import time
from typing import Any

import mlx.core as mx
import numpy as np


def make_outcomes(X: np.ndarray) -> np.ndarray:
    """Three correlated outcomes with additive noise."""
    base = np.sin(X[:, 0]) + 0.5 * X[:, 1]
    noise = np.random.randn(X.shape[0], 3)
    Y = np.stack([base, base + X[:, 2], -base], axis=1) + 0.1 * noise
    return Y.astype(np.float32)


def benchmark_forest(
    n_samples: int, n_features: int, n_estimators: int
) -> dict[str, Any]:
    """Benchmark multi-outcome forest training on synthetic data."""
    print(f"\n{'=' * 60}")
    print(
        f"Forest: {n_samples:,} samples, {n_features} features, {n_estimators} trees"
    )
    print("=" * 60)

    # Generate data
    np.random.seed(42)
    X_np = np.random.randn(n_samples, n_features).astype(np.float32)
    Y_np = make_outcomes(X_np)

    results = {}

    # sklearn benchmark
    try:
        from sklearn.ensemble import RandomForestRegressor as SklearnRFR

        sklearn_model = SklearnRFR(
            n_estimators=n_estimators,
            min_samples_leaf=5,
            max_samples=0.5,
        )

        start = time.perf_counter()
        sklearn_model.fit(X_np, Y_np)
        sklearn_time = time.perf_counter() - start
        results["sklearn_time"] = sklearn_time
        print(f"sklearn:     {sklearn_time:.3f}s")
    except ImportError:
        print("sklearn not installed, skipping sklearn benchmark")
        sklearn_time = None

    # MLX benchmark
    from mlx_multiforest import MultiRegressionForest

    X_mx = mx.array(X_np)
    Y_mx = mx.array(Y_np)

    mlx_model = MultiRegressionForest(
        n_estimators=n_estimators,
        min_node_size=5,
        sample_fraction=0.5,
        sigma=np.cov(Y_np, rowvar=False),
        random_state=42,
    )

    # Warm-up, also compiles the numba kernels
    mx.eval(X_mx, Y_mx)
    MultiRegressionForest(n_estimators=1).fit(X_mx[:100], Y_mx[:100])

    start = time.perf_counter()
    mlx_model.fit(X_mx, Y_mx)
    mlx_time = time.perf_counter() - start
    results["mlx_time"] = mlx_time
    print(f"MLX:         {mlx_time:.3f}s")
    print(f"OOB MSE:     {mlx_model.oob_score_:.4f}")

    if sklearn_time is not None:
        speedup = sklearn_time / mlx_time
        results["speedup"] = speedup
        print(f"Speedup:     {speedup:.2f}x")

    return results


def main() -> None:
    """Run all benchmarks."""
    print("\n" + "=" * 60)
    print("MLX-MultiForest Benchmark vs sklearn")
    print("=" * 60)

    all_results = []

    configs = [
        # (n_samples, n_features, n_estimators)
        (1_000, 10, 50),
        (10_000, 20, 100),
        (50_000, 20, 100),
    ]

    for n_samples, n_features, n_estimators in configs:
        forest_results = benchmark_forest(n_samples, n_features, n_estimators)
        forest_results["n_samples"] = n_samples
        forest_results["n_features"] = n_features
        forest_results["n_estimators"] = n_estimators
        all_results.append(forest_results)

    # Summary
    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"{'Samples':>10} {'Features':>10} {'Trees':>8} {'Speedup':>10}")
    print("-" * 60)

    for r in all_results:
        if "speedup" in r:
            print(
                f"{r['n_samples']:>10,} {r['n_features']:>10} "
                f"{r['n_estimators']:>8} {r['speedup']:>9.2f}x"
            )


if __name__ == "__main__":
    main()
