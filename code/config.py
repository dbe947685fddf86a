# config.py
import os
import pickle
from pathlib import Path

import numpy as np


# ============================================
# BASE PATHS
# ============================================
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
MODELS_DIR = PROJECT_ROOT / "models"
RESULTS_DIR = PROJECT_ROOT / "results"
PLOTS_DIR = RESULTS_DIR / "plots"

# ============================================
# RAW DATA PATHS
# ============================================
RAW_DIR = DATA_DIR / "01_raw"

# One survey export per study
STUDY_FILES = {
    "study1": RAW_DIR / "study1.csv",
    "study2": RAW_DIR / "study2.csv",
    "study3": RAW_DIR / "study3.csv",
}

# Precomputed artifacts, one row per document in documents.csv order
EMBEDDINGS_FILE = RAW_DIR / "embeddings.csv"
LIWC_SCORES = RAW_DIR / "liwc_scores.csv"

# Moral Foundations Dictionary (LIWC .dic format)
MFD_DICTIONARY = RAW_DIR / "mfd2.0.dic"

# spaCy model package name or path to a model directory on disk
SPACY_MODEL = "en_core_web_sm"

# ============================================
# PROCESSED DATA PATHS
# ============================================
CLEANED_DIR = DATA_DIR / "02_cleaned"
FEATURES_DIR = DATA_DIR / "03_features"

DOCUMENTS_FILE = CLEANED_DIR / "documents.csv"
TOKENIZED_DOCUMENTS = CLEANED_DIR / "tokenized_documents.csv"
FEATURE_TABLE = FEATURES_DIR / "features.csv"

# ============================================
# RESULTS PATHS
# ============================================
MODEL_RESULTS = RESULTS_DIR / "model_results.csv"
FEATURE_IMPORTANCE = RESULTS_DIR / "feature_importance.csv"
TEST_PREDICTIONS = RESULTS_DIR / "test_predictions.csv"


def cv_results_path(outcome, model_name):
    return RESULTS_DIR / f"cv_results_{outcome}_{model_name}.csv"


def model_path(outcome, model_name):
    return MODELS_DIR / f"{outcome}_{model_name}.pkl"


def blueprint_path(outcome):
    return MODELS_DIR / f"{outcome}_blueprint.pkl"


# ============================================
# DATA COLUMN NAMES
# ============================================
STUDY_COLUMN = "study"
ID_COLUMN = "participant_id"
CONDITION_COLUMN = "condition"
TEXT_COLUMN = "text"
OUTCOME_COLUMNS = ["p_right", "t_right"]

ID_COLUMNS = [STUDY_COLUMN, ID_COLUMN]

# Raw survey export name -> canonical name
SOURCE_COLUMN_MAP = {
    "ResponseId": ID_COLUMN,
    "pid": ID_COLUMN,
    "cond": CONDITION_COLUMN,
    "response": TEXT_COLUMN,
    "open_text": TEXT_COLUMN,
}

# ============================================
# TEXT PROCESSING PARAMETERS
# ============================================
REMOVE_PUNCT = True
REMOVE_NUMBERS = True
REMOVE_SYMBOLS = True
REMOVE_SEPARATORS = True
LOWERCASE = True

# Lexical diversity
MATTR_WINDOW = 50
MTLD_THRESHOLD = 0.72

# Annotation batch size for nlp.pipe
ANNOTATION_BATCH_SIZE = 200

# ============================================
# PREPROCESSING (RECIPE) PARAMETERS
# ============================================
TRAIN_PROP = 0.8
CV_FOLDS = 10
CORR_THRESHOLD = 0.8
NZV_FREQ_CUT = 95 / 5
NZV_UNIQUE_CUT = 10

# ============================================
# HYPERPARAMETERS
# ============================================

# Penalized regression: mixture 0 = ridge, 1 = lasso
LINEAR_MODELS = {
    "ridge": 0.0,
    "lasso": 1.0,
}
PENALTY_GRID = list(np.logspace(-4, 2, 13))
REFINE_PASSES = 2
REFINE_POINTS = 9

# Gradient boosting, tuned in three stages
GBM_PARAMS = {
    # stage 1: sweep trees at fixed depth / leaf size
    "trees_grid": [100, 250, 500, 750, 1000, 1500],
    "fixed_depth": 3,
    "fixed_min_leaf": 10,
    "learning_rate": 0.1,
    "plateau_tol": 0.01,
    # stage 2: sweep depth and leaf size at the chosen tree count
    "depth_grid": [1, 2, 3, 4, 5],
    "min_leaf_grid": [5, 10, 20],
    # stage 3: slower learning rate, re-sweep trees
    "slow_learning_rate": 0.01,
    "slow_trees_grid": [1000, 2000, 3000, 5000],
    "subsample": 1.0,
}

# Seeds per stage
SEEDS = {
    "split": 2024,
    "cv": 2025,
    "model": 2026,
}

N_JOBS = int(os.environ.get("SLURM_CPUS_PER_TASK", 1))


def save_pickle(obj, filepath):
    """Save object to pickle file"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'wb') as f:
        pickle.dump(obj, f)
    print(f"Saved to {filepath}")


def load_pickle(filepath):
    """Load object from pickle file"""
    with open(filepath, 'rb') as f:
        return pickle.load(f)


def save_csv(df, filepath, index=False):
    """Save DataFrame to CSV, creating parent directories"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(filepath, index=index)
    print(f"Saved to {filepath}")
