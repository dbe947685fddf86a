import math

import numpy as np
import pytest
from sklearn.exceptions import UndefinedMetricWarning
from sklearn.metrics import mean_absolute_error, mean_squared_error

from helper_metrics import evaluate, mae, rmse, rsq


def test_perfect_predictions():
    y = np.array([1.0, 2.5, 3.0, 7.0])
    record = evaluate(y, y, "perfect")

    assert record["model"] == "perfect"
    assert record["mae"] == 0.0
    assert record["rmse"] == 0.0
    assert record["rsq"] == pytest.approx(1.0)


def test_known_values():
    observed = [1.0, 2.0, 3.0]
    predicted = [2.0, 2.0, 5.0]

    assert mae(observed, predicted) == pytest.approx(1.0)
    assert rmse(observed, predicted) == pytest.approx(math.sqrt(5 / 3))
    r = np.corrcoef(observed, predicted)[0, 1]
    assert rsq(observed, predicted) == pytest.approx(r * r)


@pytest.mark.parametrize("seed", range(5))
def test_metric_bounds(seed):
    rng = np.random.default_rng(seed)
    observed = rng.normal(size=30)
    predicted = observed + rng.normal(scale=2.0, size=30)

    record = evaluate(observed, predicted, "noisy")

    assert record["mae"] >= 0
    assert record["rmse"] >= record["mae"] - 1e-12
    assert 0.0 <= record["rsq"] <= 1.0


def test_constant_predictions_signal_undefined_rsq():
    with pytest.warns(UndefinedMetricWarning):
        value = rsq([1.0, 2.0, 3.0], [2.0, 2.0, 2.0])
    assert math.isnan(value)

    with pytest.warns(UndefinedMetricWarning):
        record = evaluate([1.0, 1.0], [0.5, 2.0], "flat truth")
    assert math.isnan(record["rsq"])
    assert np.isfinite(record["mae"])


def test_invalid_inputs():
    with pytest.raises(ValueError):
        mae([1.0, 2.0], [1.0])
    with pytest.raises(ValueError):
        rmse([], [])


def test_errors_agree_with_sklearn():
    rng = np.random.default_rng(9)
    observed = rng.normal(size=25)
    predicted = observed + rng.normal(size=25)

    assert mae(observed, predicted) == pytest.approx(
        mean_absolute_error(observed, predicted))
    assert rmse(observed, predicted) == pytest.approx(
        math.sqrt(mean_squared_error(observed, predicted)))
