"""
===============================================================================
FILE: stage_04_model.py
PROJECT: Moral Judgment Text Analysis
===============================================================================
PURPOSE:
    Fit and compare regression models predicting each outcome (p_right,
    t_right) from the Stage 3 feature table. This is Stage 4 of the
    analysis pipeline.

DESCRIPTION OF STEPS (run once per outcome):
    1. Drop rows with a missing outcome; split train/test (80/20)
    2. Fit the preprocessing recipe (blueprint) on the training partition:
       zero variance -> near zero variance -> mean imputation ->
       normalization -> correlation filter -> removal of leakage columns
       (the other outcome and the experimental condition)
    3. Build 10 shuffled folds over the training rows
    4. Tune each model family by minimizing mean CV RMSE:
       - Ridge / Lasso: penalty grid, refined around the best value in
         successively narrower passes
       - Gradient boosted trees, in three stages:
           (a) number of trees at fixed depth / leaf size
           (b) depth x minimum leaf size at that tree count
           (c) slower learning rate, number of trees re-swept
    5. Refit on the whole training partition, evaluate on the test
       partition (MAE, RMSE, R²) and rank feature importances

INPUT FILES:
    - data/03_features/features.csv     (from stage_03_features.py)

OUTPUT FILES:
    - results/model_results.csv
    - results/feature_importance.csv
    - results/test_predictions.csv
    - results/cv_results_<outcome>_<model>.csv
    - results/plots/*.png
    - models/<outcome>_<model>.pkl, models/<outcome>_blueprint.pkl

DEPENDENCIES:
    - scikit-learn (Ridge, Lasso, GradientBoostingRegressor, GridSearchCV)
    - numpy, pandas, matplotlib

USAGE:
    python code/stage_04_model.py
===============================================================================
"""
import time
from pathlib import Path

import numpy as np
import pandas as pd
from sklearn.dummy import DummyRegressor
from sklearn.ensemble import GradientBoostingRegressor
from sklearn.linear_model import ElasticNet, Lasso, Ridge
from sklearn.model_selection import GridSearchCV, cross_val_score, train_test_split

from config import (
    FEATURE_TABLE, MODEL_RESULTS, FEATURE_IMPORTANCE, TEST_PREDICTIONS, PLOTS_DIR,
    ID_COLUMNS, TEXT_COLUMN, CONDITION_COLUMN, OUTCOME_COLUMNS,
    TRAIN_PROP, CV_FOLDS, CORR_THRESHOLD, NZV_FREQ_CUT, NZV_UNIQUE_CUT,
    LINEAR_MODELS, PENALTY_GRID, REFINE_PASSES, REFINE_POINTS, GBM_PARAMS,
    SEEDS, N_JOBS, cv_results_path, model_path, blueprint_path,
    save_pickle, save_csv
)
from helper_cv import kfold_indices
from helper_metrics import evaluate
from helper_plots import plot_importance, plot_predictions
from helper_recipe import build_recipe
import stage_03_features

SCORING = "neg_root_mean_squared_error"


def load_feature_table(path=FEATURE_TABLE):
    """
    Load the Stage 3 feature table, generating it first if it is missing.
    """
    print("\n=== Loading Feature Table ===")
    path = Path(path)

    if not path.exists():
        print(f"  No cached feature table at {path}, running Stage 3...")
        stage_03_features.main()

    features = pd.read_csv(path)
    print(f"Loaded {len(features):,} documents × {features.shape[1]:,} columns")
    return features


def select_predictors(features, outcome, exclude=()):
    """
    Candidate predictor columns for one outcome.

    Numeric columns other than ids, text and the outcome itself. Columns in
    `exclude` are kept as candidates so the recipe can remove them itself.
    """
    skip = set(ID_COLUMNS) | {TEXT_COLUMN, outcome}
    predictors = []
    for col in features.columns:
        if col in skip:
            continue
        if col in exclude or pd.api.types.is_numeric_dtype(features[col]):
            predictors.append(col)
    return predictors


def split_data(df, train_prop=TRAIN_PROP, seed=SEEDS["split"]):
    """Random train/test split; returns (train, test) with fresh indices."""
    train, test = train_test_split(df, train_size=train_prop, random_state=seed)
    return train.reset_index(drop=True), test.reset_index(drop=True)


# =========================================
# ============ MODEL FACTORIES ============
# =========================================
def make_linear_model(mixture, penalty=1.0):
    """
    Penalized linear regression.

    mixture 0 is pure L2 (ridge), 1 is pure L1 (lasso), anything in
    between an elastic net. The penalty is tuned through `alpha`.
    """
    if not 0.0 <= mixture <= 1.0:
        raise ValueError(f"mixture must be in [0, 1], got {mixture}")
    if mixture == 0.0:
        return Ridge(alpha=penalty)
    if mixture == 1.0:
        return Lasso(alpha=penalty, max_iter=10000)
    return ElasticNet(alpha=penalty, l1_ratio=mixture, max_iter=10000)


def make_boosted_trees(n_estimators=100, max_depth=3, min_samples_leaf=10,
                       learning_rate=0.1, subsample=1.0, seed=SEEDS["model"]):
    return GradientBoostingRegressor(
        n_estimators=n_estimators,
        max_depth=max_depth,
        min_samples_leaf=min_samples_leaf,
        learning_rate=learning_rate,
        subsample=subsample,
        random_state=seed,
    )


# =========================================
# ============ GRID SEARCH ================
# =========================================
def grid_search(estimator, param_grid, X, y, folds, n_jobs=N_JOBS):
    """
    Cross-validated grid search minimizing mean RMSE, refit on all of X.

    Raises:
        ValueError: If the grid or any of its value lists is empty
    """
    if not param_grid or any(len(values) == 0 for values in param_grid.values()):
        raise ValueError(f"Hyperparameter grid must be non-empty, got {param_grid}")

    search = GridSearchCV(
        estimator,
        param_grid,
        scoring=SCORING,
        cv=folds,
        n_jobs=n_jobs,
        refit=True,
    )
    search.fit(X, y)
    return search


def cv_table(search):
    """Tidy table of a search's grid points with mean / sd CV RMSE."""
    res = search.cv_results_
    table = pd.DataFrame(list(res["params"]))
    table["cv_rmse_mean"] = -res["mean_test_score"]
    table["cv_rmse_std"] = res["std_test_score"]
    return table


def refine_grid(grid, best, n_points=REFINE_POINTS):
    """
    A narrower grid centered on `best`.

    Spans the neighbours of `best` in the previous (sorted) grid; at an
    edge the same step is mirrored outward, never below 0 for a
    non-negative grid. Geometric spacing for positive grids, linear
    otherwise. A single-value grid is returned unchanged.
    """
    grid = sorted(set(float(g) for g in grid))
    if len(grid) < 2:
        return grid

    idx = grid.index(float(best))
    geometric = grid[0] > 0
    if idx > 0:
        lo = grid[idx - 1]
    else:
        lo = best * best / grid[1] if geometric else best - (grid[1] - best)
        # penalties stay non-negative
        if grid[0] >= 0:
            lo = max(lo, 0.0)
    if idx < len(grid) - 1:
        hi = grid[idx + 1]
    else:
        hi = best * best / grid[-2] if geometric else best + (best - grid[-2])

    space = np.geomspace if geometric else np.linspace
    refined = set(float(v) for v in space(lo, hi, n_points))
    refined.add(float(best))
    return sorted(refined)


def baseline_cv_rmse(X, y, folds):
    """CV RMSE of always predicting the training mean."""
    scores = cross_val_score(DummyRegressor(strategy="mean"), X, y,
                             cv=folds, scoring=SCORING)
    return float(-scores.mean())


# =========================================
# ============== TRAINERS =================
# =========================================
def tune_linear(X, y, folds, mixture, penalty_grid=PENALTY_GRID,
                refine_passes=REFINE_PASSES, refine_points=REFINE_POINTS,
                n_jobs=N_JOBS):
    """
    Tune the penalty of a ridge / lasso model.

    A coarse pass over `penalty_grid` is followed by `refine_passes`
    narrower passes around the previous best.

    Returns:
        dict with estimator, best_params, cv_rmse, cv_results
    """
    grid = list(penalty_grid)
    tables = []
    search = None
    for pass_no in range(refine_passes + 1):
        if pass_no > 0:
            if len(grid) < 2:
                break
            grid = refine_grid(grid, search.best_params_["alpha"], refine_points)
        search = grid_search(make_linear_model(mixture), {"alpha": grid},
                             X, y, folds, n_jobs)
        table = cv_table(search)
        table["pass"] = pass_no + 1
        tables.append(table)
        print(f"      pass {pass_no + 1}: {len(grid)} penalties, "
              f"best alpha={search.best_params_['alpha']:.4g} "
              f"(CV RMSE {-search.best_score_:.4f})")

    return {
        "estimator": search.best_estimator_,
        "best_params": dict(search.best_params_),
        "cv_rmse": float(-search.best_score_),
        "cv_results": pd.concat(tables, ignore_index=True),
    }


def _plateau_trees(table, tol):
    """Smallest tree count whose CV RMSE is within tol of the best."""
    best = table["cv_rmse_mean"].min()
    within = table[table["cv_rmse_mean"] <= best * (1 + tol)]
    return int(within["n_estimators"].min())


def tune_boosted_trees(X, y, folds, params=GBM_PARAMS, seed=SEEDS["model"],
                       n_jobs=N_JOBS):
    """
    Staged tuning of a gradient boosted tree model.

    1. Sweep trees_grid at fixed_depth / fixed_min_leaf / learning_rate;
       keep the smallest tree count on the RMSE plateau (plateau_tol).
    2. Sweep depth_grid x min_leaf_grid at that tree count.
    3. Switch to slow_learning_rate and sweep slow_trees_grid at the chosen
       depth / leaf size.

    Returns:
        dict with estimator, best_params, cv_rmse, cv_results
    """
    subsample = params.get("subsample", 1.0)
    tables = []

    # Stage 1: number of trees
    base = make_boosted_trees(max_depth=params["fixed_depth"],
                              min_samples_leaf=params["fixed_min_leaf"],
                              learning_rate=params["learning_rate"],
                              subsample=subsample, seed=seed)
    search = grid_search(base, {"n_estimators": list(params["trees_grid"])},
                         X, y, folds, n_jobs)
    table = cv_table(search).assign(stage=1)
    tables.append(table)
    n_trees = _plateau_trees(table, params.get("plateau_tol", 0.0))
    print(f"      stage 1: trees={n_trees} "
          f"(best CV RMSE {-search.best_score_:.4f})")

    # Stage 2: depth and leaf size
    base = make_boosted_trees(n_estimators=n_trees,
                              learning_rate=params["learning_rate"],
                              subsample=subsample, seed=seed)
    search = grid_search(base, {"max_depth": list(params["depth_grid"]),
                                "min_samples_leaf": list(params["min_leaf_grid"])},
                         X, y, folds, n_jobs)
    tables.append(cv_table(search).assign(stage=2))
    depth = search.best_params_["max_depth"]
    min_leaf = search.best_params_["min_samples_leaf"]
    print(f"      stage 2: depth={depth}, min_leaf={min_leaf} "
          f"(CV RMSE {-search.best_score_:.4f})")

    # Stage 3: slower learning rate, trees again
    base = make_boosted_trees(max_depth=depth, min_samples_leaf=min_leaf,
                              learning_rate=params["slow_learning_rate"],
                              subsample=subsample, seed=seed)
    search = grid_search(base, {"n_estimators": list(params["slow_trees_grid"])},
                         X, y, folds, n_jobs)
    tables.append(cv_table(search).assign(stage=3))
    print(f"      stage 3: trees={search.best_params_['n_estimators']} at "
          f"learning rate {params['slow_learning_rate']} "
          f"(CV RMSE {-search.best_score_:.4f})")

    best_params = {
        "n_estimators": search.best_params_["n_estimators"],
        "max_depth": depth,
        "min_samples_leaf": min_leaf,
        "learning_rate": params["slow_learning_rate"],
    }
    return {
        "estimator": search.best_estimator_,
        "best_params": best_params,
        "cv_rmse": float(-search.best_score_),
        "cv_results": pd.concat(tables, ignore_index=True),
    }


def feature_importance(model, columns):
    """
    Importance ranking: impurity importance for tree ensembles, absolute
    coefficients for linear models.
    """
    if hasattr(model, "feature_importances_"):
        values = model.feature_importances_
    else:
        values = np.abs(np.ravel(model.coef_))
    table = pd.DataFrame({"feature": list(columns), "importance": values})
    table = table.sort_values("importance", ascending=False, kind="mergesort")
    table["rank"] = np.arange(1, len(table) + 1)
    return table.reset_index(drop=True)


# =========================================
# ========= PER-OUTCOME TRAINING ==========
# =========================================
def train_outcome(features, outcome, exclude,
                  train_prop=TRAIN_PROP,
                  cv_folds=CV_FOLDS,
                  corr_threshold=CORR_THRESHOLD,
                  freq_cut=NZV_FREQ_CUT,
                  unique_cut=NZV_UNIQUE_CUT,
                  linear_models=LINEAR_MODELS,
                  penalty_grid=PENALTY_GRID,
                  refine_passes=REFINE_PASSES,
                  refine_points=REFINE_POINTS,
                  gbm_params=GBM_PARAMS,
                  seeds=SEEDS,
                  n_jobs=N_JOBS):
    """
    Train and evaluate every model family for one outcome.

    Args:
        features: Feature table (one row per document)
        outcome: Outcome column to predict
        exclude: Columns that must never be used as predictors for this
            outcome (the other outcome, the condition label)
        linear_models: name -> mixture for each penalized regression
        gbm_params: Boosting grids (see GBM_PARAMS); None skips boosting

    Returns:
        dict with outcome, blueprint, folds, baseline_cv_rmse, models,
        metrics, importance, predictions
    """
    print(f"\n{'=' * 60}")
    print(f"OUTCOME: {outcome}")
    print(f"{'=' * 60}")

    if outcome not in features.columns:
        raise ValueError(f"Outcome column '{outcome}' not found")

    # Drop rows without this outcome before splitting
    df = features.dropna(subset=[outcome]).reset_index(drop=True)
    removed = len(features) - len(df)
    if removed > 0:
        print(f"Removed {removed:,} rows with missing {outcome}")

    # Leakage columns stay candidates until the recipe removes them
    exclude = [c for c in exclude if c != outcome]
    predictors = select_predictors(df, outcome, exclude)

    # Train/test split
    train, test = split_data(df, train_prop, seeds["split"])
    print(f"Train: {len(train):,} rows, test: {len(test):,} rows, "
          f"{len(predictors):,} candidate predictors")

    # Blueprint sees training rows only
    print("\n  Fitting blueprint on training data...")
    blueprint = build_recipe(predictors, remove=exclude,
                             corr_threshold=corr_threshold,
                             freq_cut=freq_cut,
                             unique_cut=unique_cut).prep(train)
    X_train = blueprint.bake(train)
    X_test = blueprint.bake(test)
    if X_train.shape[1] == 0:
        raise ValueError(f"No predictors left for {outcome} after preprocessing")
    y_train = train[outcome].to_numpy(dtype=float)
    y_test = test[outcome].to_numpy(dtype=float)

    # One fold assignment shared by every model family
    folds = kfold_indices(len(train), cv_folds, seeds["cv"])
    baseline = baseline_cv_rmse(X_train, y_train, folds)
    print(f"  Mean-only baseline CV RMSE: {baseline:.4f}")

    # Penalized regressions
    models = {}
    for name, mixture in linear_models.items():
        print(f"\n  [{name}] tuning penalty (mixture={mixture})")
        start = time.time()
        models[name] = tune_linear(X_train, y_train, folds, mixture,
                                   penalty_grid, refine_passes, refine_points,
                                   n_jobs)
        models[name]["fit_time"] = time.time() - start

    # Staged boosting tuning (skipped when gbm_params is None)
    if gbm_params is not None:
        print(f"\n  [gbm] staged tuning")
        start = time.time()
        models["gbm"] = tune_boosted_trees(X_train, y_train, folds, gbm_params,
                                           seeds["model"], n_jobs)
        models["gbm"]["fit_time"] = time.time() - start

    # Held-out evaluation and importance for every fitted model
    records = []
    importances = []
    predictions = pd.DataFrame({"outcome": outcome, "observed": y_test})
    for name, fitted in models.items():
        pred = fitted["estimator"].predict(X_test)
        predictions[name] = pred

        record = evaluate(y_test, pred, name)
        record.update({
            "outcome": outcome,
            "cv_rmse": fitted["cv_rmse"],
            "baseline_cv_rmse": baseline,
            "best_params": str(fitted["best_params"]),
            "n_predictors": X_train.shape[1],
        })
        records.append(record)

        imp = feature_importance(fitted["estimator"], X_train.columns)
        imp.insert(0, "model", name)
        imp.insert(0, "outcome", outcome)
        importances.append(imp)

        if fitted["cv_rmse"] >= baseline:
            print(f"  ⚠ {name}: tuned CV RMSE {fitted['cv_rmse']:.4f} does not "
                  f"improve on the mean baseline {baseline:.4f}")
        print(f"  ✓ {name}: test MAE {record['mae']:.4f}, "
              f"RMSE {record['rmse']:.4f}, R² {record['rsq']:.4f}")

    metrics = pd.DataFrame(records, columns=[
        "outcome", "model", "mae", "rmse", "rsq", "cv_rmse",
        "baseline_cv_rmse", "n_predictors", "best_params"])

    return {
        "outcome": outcome,
        "blueprint": blueprint,
        "folds": folds,
        "baseline_cv_rmse": baseline,
        "models": models,
        "metrics": metrics,
        "importance": pd.concat(importances, ignore_index=True),
        "predictions": predictions,
    }


def run_modeling(features, outcomes=OUTCOME_COLUMNS,
                 condition_column=CONDITION_COLUMN, **kwargs):
    """
    Train every outcome, each one excluding the other outcomes and the
    condition label from its predictors.

    Returns:
        (dict outcome -> train_outcome result, stacked metrics DataFrame)
    """
    results = {}
    for outcome in outcomes:
        exclude = [o for o in outcomes if o != outcome]
        if condition_column in features.columns:
            exclude.append(condition_column)
        results[outcome] = train_outcome(features, outcome, exclude, **kwargs)

    metrics = pd.concat([r["metrics"] for r in results.values()], ignore_index=True)
    return results, metrics


def save_results(results, metrics, make_plots=True):
    """Persist metrics, importances, predictions, models and plots."""
    save_csv(metrics, MODEL_RESULTS)
    save_csv(pd.concat([r["importance"] for r in results.values()],
                       ignore_index=True), FEATURE_IMPORTANCE)
    save_csv(pd.concat([r["predictions"] for r in results.values()],
                       ignore_index=True), TEST_PREDICTIONS)

    for outcome, result in results.items():
        save_pickle(result["blueprint"], blueprint_path(outcome))
        for name, fitted in result["models"].items():
            save_csv(fitted["cv_results"], cv_results_path(outcome, name))
            save_pickle(fitted["estimator"], model_path(outcome, name))

            if make_plots:
                preds = result["predictions"]
                plot_predictions(preds["observed"], preds[name],
                                 f"{outcome}: {name}",
                                 PLOTS_DIR / f"{outcome}_{name}_predictions.png")
                imp = result["importance"]
                plot_importance(imp[imp["model"] == name],
                                f"{outcome}: {name} importance",
                                PLOTS_DIR / f"{outcome}_{name}_importance.png")


def analyze_results(metrics, results):
    """Print a comparison of all models and the top features per model."""
    print(f"\n{'=' * 60}")
    print(f"{'MODEL COMPARISON':^60}")
    print(f"{'=' * 60}")

    for outcome, subset in metrics.groupby("outcome", sort=False):
        print(f"\n{outcome}:")
        for _, row in subset.sort_values("rmse").iterrows():
            print(f"  {row['model']:<6} MAE = {row['mae']:.4f}, "
                  f"RMSE = {row['rmse']:.4f}, R² = {row['rsq']:.4f} "
                  f"(CV RMSE {row['cv_rmse']:.4f})")
            print(f"         {row['best_params']}")

    print(f"\n{'=' * 60}")
    print(f"TOP 5 FEATURES BY MODEL")
    print(f"{'=' * 60}")
    for outcome, result in results.items():
        imp = result["importance"]
        for name in result["models"]:
            top = imp[imp["model"] == name].head(5)
            print(f"\n{outcome} / {name}:")
            for _, row in top.iterrows():
                print(f"  {row['rank']}. {row['feature']} ({row['importance']:.4f})")

    print(f"\n{'=' * 60}\n")


def main():
    """
    Main execution function for standalone runs.
    """
    print("\n" + "=" * 60)
    print("STAGE 4: MODEL TRAINING & EVALUATION")
    print("=" * 60)

    start_time = time.time()

    features = load_feature_table()
    results, metrics = run_modeling(features)

    print("\n=== Saving Results ===")
    save_results(results, metrics)
    analyze_results(metrics, results)

    total_time = time.time() - start_time
    print(f"\n{'=' * 60}")
    print(f"{'PIPELINE COMPLETE':^60}")
    print(f"{'=' * 60}")
    print(f"\nTotal execution time: {total_time / 60:.2f} minutes ({total_time:.0f} seconds)")
    best = metrics.loc[metrics.groupby("outcome")["rmse"].idxmin()]
    for _, row in best.iterrows():
        print(f"Best model for {row['outcome']}: {row['model']} "
              f"(test RMSE {row['rmse']:.4f}, R² {row['rsq']:.4f})")
    print(f"{'=' * 60}\n")

    return results, metrics


if __name__ == "__main__":
    main()
