# helper_plots.py
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np


def plot_predictions(observed, predicted, title, filepath):
    """Observed vs predicted scatter with the identity line."""
    observed = np.asarray(observed, dtype=float)
    predicted = np.asarray(predicted, dtype=float)

    fig, ax = plt.subplots(figsize=(5, 5))
    ax.scatter(observed, predicted, s=12, alpha=0.6)
    lo = np.nanmin([observed.min(), predicted.min()])
    hi = np.nanmax([observed.max(), predicted.max()])
    ax.plot([lo, hi], [lo, hi], linestyle="--", color="grey", linewidth=1)
    ax.set_xlabel("Observed")
    ax.set_ylabel("Predicted")
    ax.set_title(title)
    fig.tight_layout()
    return _save(fig, filepath)


def plot_importance(importance, title, filepath, top_n=20):
    """Horizontal bar chart of the top_n features by importance."""
    top = importance.head(top_n).iloc[::-1]

    fig, ax = plt.subplots(figsize=(6, max(3, 0.3 * len(top))))
    ax.barh(top["feature"], top["importance"])
    ax.set_xlabel("Importance")
    ax.set_title(title)
    fig.tight_layout()
    return _save(fig, filepath)


def _save(fig, filepath):
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(filepath, dpi=120)
    plt.close(fig)
    return filepath
