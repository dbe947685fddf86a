# helper_cv.py
import numpy as np
from sklearn.model_selection import KFold


def kfold_indices(n_rows, k, seed=42):
    """
    Plain (non-stratified) k-fold split over row positions.

    Rows are shuffled with `seed` and cut into k near-equal blocks; fold i
    validates on block i while training on every other block.

    Args:
        n_rows: Number of training rows
        k: Number of folds (2 <= k <= n_rows)
        seed: Seed for the shuffle

    Returns:
        List of k (train_idx, val_idx) integer arrays; usable directly as
        the `cv` argument of scikit-learn searches
    """
    if k < 2:
        raise ValueError(f"Need at least 2 folds, got k={k}")
    if k > n_rows:
        raise ValueError(f"Cannot split {n_rows} rows into {k} folds")

    splitter = KFold(n_splits=k, shuffle=True, random_state=seed)
    return [(np.sort(train_idx), np.sort(val_idx))
            for train_idx, val_idx in splitter.split(np.arange(n_rows))]
