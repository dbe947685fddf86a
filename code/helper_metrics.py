"""
Held-out regression metrics.

R² here is the squared Pearson correlation between observed and predicted
values, not the coefficient of determination.
"""

import warnings

import numpy as np
from sklearn.exceptions import UndefinedMetricWarning
from sklearn.metrics import mean_absolute_error, mean_squared_error


def mae(observed, predicted):
    observed, predicted = _check_pair(observed, predicted)
    return float(mean_absolute_error(observed, predicted))


def rmse(observed, predicted):
    observed, predicted = _check_pair(observed, predicted)
    return float(np.sqrt(mean_squared_error(observed, predicted)))


def rsq(observed, predicted):
    """
    Squared Pearson correlation.

    Returns NaN and emits UndefinedMetricWarning when either vector has
    zero variance (e.g. a model that predicts a constant).
    """
    observed, predicted = _check_pair(observed, predicted)
    if np.std(predicted) == 0 or np.std(observed) == 0:
        which = "predictions" if np.std(predicted) == 0 else "observed values"
        warnings.warn(
            f"R² is undefined: {which} have zero variance",
            UndefinedMetricWarning,
        )
        return float("nan")
    r = np.corrcoef(observed, predicted)[0, 1]
    return float(min(r * r, 1.0))


def evaluate(observed, predicted, label):
    """
    Evaluation record for one model on held-out data.

    Returns:
        dict with model, mae, rmse, rsq
    """
    return {
        "model": label,
        "mae": mae(observed, predicted),
        "rmse": rmse(observed, predicted),
        "rsq": rsq(observed, predicted),
    }


def _check_pair(observed, predicted):
    observed = np.asarray(observed, dtype=float).ravel()
    predicted = np.asarray(predicted, dtype=float).ravel()
    if len(observed) != len(predicted):
        raise ValueError("observed and predicted must have the same length")
    if len(observed) == 0:
        raise ValueError("Cannot evaluate an empty prediction set")
    return observed, predicted
