"""
Preprocessing recipe: an ordered list of column transformations that is
fit on the training partition and applied unchanged to any other partition.

Each step exposes
    fit(X) -> state        learn everything from the training predictors
    apply(state, X) -> X   transform a predictor frame using that state

`Recipe.prep(train)` runs the steps in order and returns a `Blueprint`,
whose `bake(data)` replays them. Nothing in a blueprint depends on the data
it is baked on.
"""

import numpy as np
import pandas as pd
from sklearn.feature_selection import VarianceThreshold
from sklearn.impute import SimpleImputer
from sklearn.preprocessing import StandardScaler

from config import CORR_THRESHOLD, NZV_FREQ_CUT, NZV_UNIQUE_CUT


def _numeric_columns(X):
    return [c for c in X.columns if pd.api.types.is_numeric_dtype(X[c])]


class ZeroVarianceFilter:
    """Drop predictors with at most one distinct non-missing value."""
    name = "zero_variance"

    def fit(self, X):
        numeric = _numeric_columns(X)
        drop = [c for c in X.columns
                if c not in numeric and X[c].nunique(dropna=True) <= 1]

        selector = None
        if numeric:
            values = X[numeric].astype(float)
            # all-missing columns have no variance estimate
            empty = values.columns[values.isna().all()].tolist()
            usable = [c for c in numeric if c not in empty]
            if usable:
                selector = VarianceThreshold(threshold=0.0)
                try:
                    selector.fit(values[usable])
                    keep = selector.get_support()
                except ValueError:
                    # raised when no column clears the threshold
                    selector = None
                    keep = np.zeros(len(usable), dtype=bool)
                empty += [c for c, k in zip(usable, keep) if not k]
            drop += empty

        return {"drop": [c for c in X.columns if c in drop], "selector": selector}

    def apply(self, state, X):
        return X.drop(columns=state["drop"])


class NearZeroVarianceFilter:
    """
    Drop predictors that are almost constant.

    A column is dropped when the ratio of its most common to second most
    common value exceeds `freq_cut` and its distinct values make up less
    than `unique_cut` percent of the rows.
    """
    name = "near_zero_variance"

    def __init__(self, freq_cut=NZV_FREQ_CUT, unique_cut=NZV_UNIQUE_CUT):
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

    def fit(self, X):
        n = len(X)
        drop = []
        for c in X.columns:
            counts = X[c].value_counts(dropna=True)
            if len(counts) < 2:
                drop.append(c)
                continue
            freq_ratio = counts.iloc[0] / counts.iloc[1]
            pct_unique = 100.0 * len(counts) / n
            if freq_ratio > self.freq_cut and pct_unique < self.unique_cut:
                drop.append(c)
        return {"drop": drop}

    def apply(self, state, X):
        return X.drop(columns=state["drop"])


class MeanImputer:
    """Fill missing numeric values with the training mean."""
    name = "impute_mean"

    def fit(self, X):
        cols = _numeric_columns(X)
        imputer = None
        if cols:
            imputer = SimpleImputer(strategy="mean", keep_empty_features=True)
            imputer.fit(X[cols].astype(float))
        return {"columns": cols, "imputer": imputer}

    def apply(self, state, X):
        if state["imputer"] is None:
            return X
        X = X.copy()
        cols = state["columns"]
        X[cols] = state["imputer"].transform(X[cols].astype(float))
        return X


class Normalizer:
    """
    Center and scale numeric predictors with the training mean and sample
    sd. A zero sd scales by 1.
    """
    name = "normalize"

    def fit(self, X):
        cols = _numeric_columns(X)
        scaler = None
        if cols:
            scaler = StandardScaler()
            scaler.fit(X[cols].astype(float))
            # StandardScaler divides by n; rescale to the n - 1 sd
            n = np.asarray(scaler.n_samples_seen_, dtype=float)
            factor = np.sqrt(n / np.maximum(n - 1, 1))
            scaler.scale_ = np.where(scaler.var_ > 0, scaler.scale_ * factor, 1.0)
        return {"columns": cols, "scaler": scaler}

    def apply(self, state, X):
        if state["scaler"] is None:
            return X
        X = X.copy()
        cols = state["columns"]
        X[cols] = state["scaler"].transform(X[cols].astype(float))
        return X


class CorrelationFilter:
    """
    Remove predictors until no pair has |r| above `threshold`.

    The pair with the largest absolute correlation is resolved first by
    dropping the member with the higher mean absolute correlation to the
    remaining predictors (the later column on ties). Predictors whose
    correlation with everything else is undefined are dropped too.
    """
    name = "correlation"

    def __init__(self, threshold=CORR_THRESHOLD):
        self.threshold = threshold

    def fit(self, X):
        cols = _numeric_columns(X)
        if len(cols) < 2:
            return {"drop": []}

        corr = X[cols].astype(float).corr().abs().to_numpy(copy=True)
        np.fill_diagonal(corr, np.nan)

        undefined = [i for i in range(len(cols)) if np.all(np.isnan(corr[i]))]
        corr = np.nan_to_num(corr, nan=0.0)

        keep = [i for i in range(len(cols)) if i not in undefined]
        drop = [cols[i] for i in undefined]
        while len(keep) > 1:
            sub = corr[np.ix_(keep, keep)]
            flat = int(np.argmax(sub))
            i, j = divmod(flat, len(keep))
            if sub[i, j] <= self.threshold:
                break
            mean_abs = sub.sum(axis=1) / (len(keep) - 1)
            victim = i if mean_abs[i] > mean_abs[j] else j
            if mean_abs[i] == mean_abs[j]:
                victim = max(i, j)
            drop.append(cols[keep[victim]])
            del keep[victim]

        return {"drop": drop}

    def apply(self, state, X):
        return X.drop(columns=state["drop"])


class RemoveColumns:
    """Remove named columns (e.g. leakage columns) from the predictors."""
    name = "remove"

    def __init__(self, columns):
        self.columns = list(columns)

    def fit(self, X):
        return {"drop": [c for c in self.columns if c in X.columns]}

    def apply(self, state, X):
        return X.drop(columns=state["drop"])


class Blueprint:
    """A recipe fitted on training data."""

    def __init__(self, input_predictors, fitted_steps):
        self.input_predictors = list(input_predictors)
        self.fitted_steps = fitted_steps

    @property
    def dropped(self):
        return {step.name: list(state.get("drop", []))
                for step, state in self.fitted_steps}

    @property
    def predictors(self):
        removed = {c for cols in self.dropped.values() for c in cols}
        return [c for c in self.input_predictors if c not in removed]

    def bake(self, data):
        """Apply every fitted step to `data`; returns the predictor frame."""
        missing = [c for c in self.input_predictors if c not in data.columns]
        if missing:
            raise ValueError(f"Columns missing from data: {missing[:5]}")
        X = data[self.input_predictors]
        for step, state in self.fitted_steps:
            X = step.apply(state, X)
        return X


class Recipe:
    """Ordered preprocessing steps over a fixed set of predictor columns."""

    def __init__(self, predictors, steps):
        self.predictors = list(predictors)
        self.steps = list(steps)

    def prep(self, train, verbose=True):
        """Fit the steps in order on the training partition."""
        missing = [c for c in self.predictors if c not in train.columns]
        if missing:
            raise ValueError(f"Predictor columns missing from training data: {missing[:5]}")

        X = train[self.predictors]
        fitted = []
        for step in self.steps:
            state = step.fit(X)
            X = step.apply(state, X)
            fitted.append((step, state))
            if verbose and "drop" in state:
                print(f"    {step.name}: dropped {len(state['drop']):,} columns")

        if verbose:
            print(f"    Retained {X.shape[1]:,} of {len(self.predictors):,} predictors")
        return Blueprint(self.predictors, fitted)


def build_recipe(predictors, remove=(), corr_threshold=CORR_THRESHOLD,
                 freq_cut=NZV_FREQ_CUT, unique_cut=NZV_UNIQUE_CUT):
    """
    The standard preprocessing recipe:
    zero variance -> near zero variance -> mean imputation -> normalization
    -> correlation filter -> removal of the named columns.
    """
    return Recipe(predictors, [
        ZeroVarianceFilter(),
        NearZeroVarianceFilter(freq_cut=freq_cut, unique_cut=unique_cut),
        MeanImputer(),
        Normalizer(),
        CorrelationFilter(threshold=corr_threshold),
        RemoveColumns(remove),
    ])
