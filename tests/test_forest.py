"""Tests for MultiRegressionForest."""

import logging

import mlx.core as mx
import numpy as np
import pytest

from mlx_multiforest import MultiRegressionForest
from mlx_multiforest.forest import default_mtry
from mlx_multiforest.trees._predictor import predict_multi_regression


def make_regression(n_samples: int = 120, seed: int = 0) -> tuple[np.ndarray, np.ndarray]:
    """Two correlated outcomes driven by a step in the first feature."""
    rng = np.random.default_rng(seed)
    X = rng.uniform(size=(n_samples, 3)).astype(np.float32)
    step = np.where(X[:, 0] > 0.5, 4.0, 0.0)
    Y = np.stack([step, -step + X[:, 1]], axis=1).astype(np.float32)
    return X, Y


class TestMultiRegressionForest:
    """Tests for MultiRegressionForest."""

    def test_fit_basic(self) -> None:
        """Test basic fitting on simple data."""
        X, Y = make_regression()

        model = MultiRegressionForest(n_estimators=5, random_state=0)
        model.fit(X, Y)

        assert len(model.trees_) == 5
        assert len(model.inbag_) == 5
        assert model.n_features_in_ == 3
        assert model.n_outcomes_ == 2
        assert model.fit_time_ is not None and model.fit_time_ >= 0.0

    def test_predict_shape(self) -> None:
        X, Y = make_regression()

        model = MultiRegressionForest(n_estimators=5, random_state=0)
        model.fit(X, Y)

        predictions = model.predict(X)
        mx.eval(predictions)

        assert predictions.shape == (120, 2)

    def test_learns_step(self) -> None:
        """Forest predictions track a step function closely."""
        X, Y = make_regression()

        model = MultiRegressionForest(n_estimators=30, random_state=0)
        model.fit(X, Y)

        predictions = np.array(model.predict(X))
        mse = float(np.mean((predictions - Y) ** 2))
        assert mse < 1.0

    def test_predict_averages_trees(self) -> None:
        X, Y = make_regression(n_samples=60)

        model = MultiRegressionForest(n_estimators=4, random_state=3)
        model.fit(X, Y)

        expected = np.mean(
            [np.array(predict_multi_regression(tree, mx.array(X))) for tree in model.trees_],
            axis=0,
        )
        np.testing.assert_allclose(np.array(model.predict(X)), expected, rtol=1e-5, atol=1e-5)

    def test_subsample_size(self) -> None:
        """Each tree is grown on sample_fraction of the rows, without repeats."""
        X, Y = make_regression(n_samples=100)

        model = MultiRegressionForest(n_estimators=3, sample_fraction=0.3, random_state=0)
        model.fit(X, Y)

        for tree, inbag in zip(model.trees_, model.inbag_):
            assert inbag.sum() == 30
            assert int(tree.n_node_samples[0]) == 30

    def test_deterministic_with_seed(self) -> None:
        X, Y = make_regression()

        first = MultiRegressionForest(n_estimators=5, mtry=1, random_state=42).fit(X, Y)
        second = MultiRegressionForest(n_estimators=5, mtry=1, random_state=42).fit(X, Y)

        np.testing.assert_array_equal(np.array(first.predict(X)), np.array(second.predict(X)))

    def test_one_dimensional_outcome(self) -> None:
        X, Y = make_regression()

        model = MultiRegressionForest(n_estimators=3, random_state=0)
        model.fit(X, Y[:, 0])

        assert model.predict(X).shape == (120, 1)

    def test_missing_features(self) -> None:
        """Training and prediction accept NaN feature values."""
        X, Y = make_regression()
        X[::7, 1] = np.nan

        model = MultiRegressionForest(n_estimators=5, random_state=0)
        model.fit(X, Y)

        predictions = np.array(model.predict(X))
        assert np.isfinite(predictions).all()


class TestOutOfBag:
    """Tests for out-of-bag predictions."""

    def test_oob_shape(self) -> None:
        X, Y = make_regression()

        model = MultiRegressionForest(n_estimators=10, random_state=0)
        model.fit(X, Y)

        assert model.oob_predictions_.shape == (120, 2)
        assert model.oob_score_ is not None
        assert model.oob_score_ >= 0.0

    def test_oob_averages_out_of_bag_trees(self) -> None:
        """Each OOB row averages only the trees that did not see the sample."""
        X, Y = make_regression(n_samples=50)

        model = MultiRegressionForest(n_estimators=6, random_state=1)
        model.fit(X, Y)

        tree_predictions = np.stack(
            [np.array(predict_multi_regression(tree, mx.array(X))) for tree in model.trees_]
        )
        oob_mask = ~np.stack(model.inbag_)
        oob = np.array(model.oob_predictions_)

        for i in range(50):
            trees = oob_mask[:, i]
            if trees.any():
                expected = tree_predictions[trees, i].mean(axis=0)
                np.testing.assert_allclose(oob[i], expected, rtol=1e-5, atol=1e-5)
            else:
                assert np.isnan(oob[i]).all()

    def test_predict_oob_matches_fit(self) -> None:
        X, Y = make_regression(n_samples=50)

        model = MultiRegressionForest(n_estimators=4, random_state=2)
        model.fit(X, Y)

        np.testing.assert_array_equal(
            np.array(model.predict_oob(X)), np.array(model.oob_predictions_)
        )

    def test_no_out_of_bag_samples(self, caplog: pytest.LogCaptureFixture) -> None:
        """With full subsamples no row has an OOB prediction."""
        X, Y = make_regression(n_samples=40)

        model = MultiRegressionForest(n_estimators=3, sample_fraction=1.0, random_state=0)
        with caplog.at_level(logging.WARNING, logger="mlx_multiforest.forest"):
            model.fit(X, Y)

        assert np.isnan(np.array(model.oob_predictions_)).all()
        assert model.oob_score_ is None
        assert "No sample was out of bag" in caplog.text

    def test_oob_disabled(self) -> None:
        X, Y = make_regression()

        model = MultiRegressionForest(
            n_estimators=3, compute_oob_predictions=False, random_state=0
        )
        model.fit(X, Y)

        assert model.oob_predictions_ is None
        assert model.oob_score_ is None

    def test_predict_oob_wrong_rows(self) -> None:
        X, Y = make_regression()

        model = MultiRegressionForest(n_estimators=3, random_state=0)
        model.fit(X, Y)

        with pytest.raises(ValueError, match="training matrix"):
            model.predict_oob(X[:10])


class TestForestConfiguration:
    """Tests for parameters, validation and logging."""

    def test_predict_not_fitted(self) -> None:
        """Test error when predicting without fitting."""
        model = MultiRegressionForest()

        with pytest.raises(ValueError, match="not fitted"):
            model.predict(mx.array([[1.0, 2.0]]))

    @pytest.mark.parametrize("sample_fraction", [0.0, -0.5, 1.5])
    def test_invalid_sample_fraction(self, sample_fraction: float) -> None:
        X, Y = make_regression()

        model = MultiRegressionForest(sample_fraction=sample_fraction)

        with pytest.raises(ValueError, match="sample_fraction"):
            model.fit(X, Y)

    def test_invalid_n_estimators(self) -> None:
        X, Y = make_regression()

        with pytest.raises(ValueError, match="n_estimators"):
            MultiRegressionForest(n_estimators=0).fit(X, Y)

    def test_sample_count_mismatch(self) -> None:
        X, Y = make_regression()

        with pytest.raises(ValueError, match="different numbers of samples"):
            MultiRegressionForest(n_estimators=2).fit(X, Y[:50])

    def test_singular_sigma(self) -> None:
        X, Y = make_regression()

        model = MultiRegressionForest(n_estimators=2, sigma=np.ones((2, 2)))

        with pytest.raises(ValueError, match="invertible"):
            model.fit(X, Y)

    def test_verbose_logging(self, caplog: pytest.LogCaptureFixture) -> None:
        """Progress and training time are logged when verbose."""
        X, Y = make_regression(n_samples=60)

        model = MultiRegressionForest(n_estimators=10, verbose=1, random_state=0)
        with caplog.at_level(logging.INFO, logger="mlx_multiforest.forest"):
            model.fit(X, Y)

        assert "Tree 10/10" in caplog.text
        assert "Trained 10 trees" in caplog.text

    def test_silent_by_default(self, caplog: pytest.LogCaptureFixture) -> None:
        X, Y = make_regression(n_samples=60)

        with caplog.at_level(logging.INFO, logger="mlx_multiforest.forest"):
            MultiRegressionForest(n_estimators=10, random_state=0).fit(X, Y)

        assert "Tree 10/10" not in caplog.text

    def test_default_mtry(self) -> None:
        assert default_mtry(5) == 5
        assert default_mtry(1000) == 52

    def test_get_params(self) -> None:
        model = MultiRegressionForest(n_estimators=7, sample_fraction=0.4)

        params = model.get_params()

        assert params["n_estimators"] == 7
        assert params["sample_fraction"] == 0.4
        assert "trees_" not in params


class TestForestSampleWeights:
    """Tests for observation weights in the forest."""

    def test_uniform_weights_match_unweighted(self) -> None:
        X, Y = make_regression(n_samples=60)

        plain = MultiRegressionForest(n_estimators=5, random_state=0).fit(X, Y)
        weighted = MultiRegressionForest(n_estimators=5, random_state=0).fit(
            X, Y, sample_weight=np.ones(60)
        )

        np.testing.assert_allclose(
            np.array(weighted.predict(X)), np.array(plain.predict(X)), rtol=1e-5, atol=1e-5
        )
        assert weighted.oob_score_ == pytest.approx(plain.oob_score_, rel=1e-5)

    def test_weights_shift_predictions(self) -> None:
        """Heavily weighted rows pull the leaf means towards their outcomes."""
        X = np.zeros((40, 1), dtype=np.float32)
        Y = np.zeros((40, 1), dtype=np.float32)
        Y[:20] = 10.0
        weights = np.where(np.arange(40) < 20, 9.0, 1.0)

        plain = MultiRegressionForest(n_estimators=5, random_state=0).fit(X, Y)
        weighted = MultiRegressionForest(n_estimators=5, random_state=0).fit(
            X, Y, sample_weight=weights
        )

        assert float(np.array(weighted.predict(X[:1]))[0, 0]) > float(
            np.array(plain.predict(X[:1]))[0, 0]
        )

    def test_weighted_oob_score(self) -> None:
        """The OOB score weights each row's squared error by its sample weight."""
        X, Y = make_regression(n_samples=60)
        weights = np.random.default_rng(3).uniform(0.5, 2.0, size=60)

        model = MultiRegressionForest(n_estimators=8, random_state=0)
        model.fit(X, Y, sample_weight=weights)

        oob = np.array(model.oob_predictions_)
        available = ~np.isnan(oob).any(axis=1)
        row_errors = np.mean((oob[available] - Y[available]) ** 2, axis=1)
        expected = np.sum(weights[available] * row_errors) / np.sum(weights[available])
        assert model.oob_score_ == pytest.approx(expected, rel=1e-4)

    def test_invalid_weights(self) -> None:
        X, Y = make_regression()

        with pytest.raises(ValueError, match="sample_weight must have shape"):
            MultiRegressionForest(n_estimators=2).fit(X, Y, sample_weight=np.ones(5))
